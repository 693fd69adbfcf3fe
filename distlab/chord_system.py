"""Setting up, wiring and routing through a complete Chord ring."""

from __future__ import annotations

import sys
from typing import Iterable, Mapping, Sequence

from distlab.chord import (
    CHORD_FINGER_TABLE_MAX_ENTRIES,
    CHORD_RING_TABLE_MAX_ENTRIES,
    ChordMessage,
    ChordNode,
    Internet,
    chord_id_max,
    chord_id_min,
)

_DEMO_NODES = [(ident, 100 + ident) for ident in range(16)]


class ChordSystemConfig:
    """Ring parameters together with every node's identifier and address."""

    def __init__(
        self,
        ring_bits: int,
        ring_redundancy: int,
        all_nodes: Mapping[int, int] | Iterable[tuple[int, int]],
    ) -> None:
        if not 1 <= ring_bits <= CHORD_FINGER_TABLE_MAX_ENTRIES:
            raise ValueError(f"ring bits must be in [1..{CHORD_FINGER_TABLE_MAX_ENTRIES}]")
        if not 1 <= ring_redundancy <= CHORD_RING_TABLE_MAX_ENTRIES:
            raise ValueError(f"ring redundancy must be in [1..{CHORD_RING_TABLE_MAX_ENTRIES}]")
        nodes = dict(all_nodes.items() if isinstance(all_nodes, Mapping) else all_nodes)
        low, high = chord_id_min(ring_bits), chord_id_max(ring_bits)
        out_of_range = [ident for ident in nodes if not low <= ident <= high]
        if out_of_range:
            raise ValueError(f"node identifiers out of the ring's range: {out_of_range}")
        self.ring_bits = ring_bits
        self.ring_redundancy = ring_redundancy
        self.all_nodes: dict[int, int] = dict(sorted(nodes.items()))

    def setup_system(self) -> tuple[Internet, dict[int, ChordNode]]:
        """Create the network and one connected, unwired node per identifier."""
        net = Internet()
        nodes: dict[int, ChordNode] = {}
        for ident, addr in self.all_nodes.items():
            node = ChordNode(net, self.ring_bits, self.ring_redundancy, ident, addr)
            net.connect_node(addr, node)
            nodes[ident] = node
        return net, nodes


def wire_all_nodes(nodes: Iterable[ChordNode], all_nodes: Mapping[int, int]) -> None:
    """Fill in every node's routing tables from global knowledge of the ring."""
    for node in nodes:
        node.recreate_links_from_oracle(all_nodes)


def route(net: Internet, cfg: ChordSystemConfig, src_id: int, dst_id: int) -> list[int]:
    """Route a message from node ``src_id`` towards ``dst_id``; return its hops."""
    if src_id not in cfg.all_nodes:
        raise ValueError(f"no node with identifier {src_id}")
    delivered: list[list[int]] = []
    addr = cfg.all_nodes[src_id]
    net.send(addr, addr, ChordMessage(dst_id, delivered.append))
    if not delivered:
        raise RuntimeError(f"message from {src_id} to {dst_id} was not delivered")
    return delivered[0]


def parse_chord_id(text: str, name: str, cfg: ChordSystemConfig) -> int:
    """Parse an identifier that must lie within the ring of ``cfg``."""
    low, high = chord_id_min(cfg.ring_bits), chord_id_max(cfg.ring_bits)
    hint = f"       It must be a number in [{low}..{high}]!"
    digits = text[1:] if text.startswith("+") else text
    if not digits.isascii() or not digits.isdigit() or int(digits) >= 1 << 128:
        raise ValueError(f"The value of {name} is invalid!\n{hint}")
    ident = int(digits)
    if not low <= ident <= high:
        raise ValueError(f"The value of {name} is out of range!\n{hint}")
    return ident


def main(argv: Sequence[str] | None = None) -> int:
    """Route between two nodes of a full 4-bit ring and print the hops."""
    args = list(sys.argv[1:] if argv is None else argv)
    cfg = ChordSystemConfig(4, 1, _DEMO_NODES)
    if len(args) != 2:
        print("ERROR: Two command-line arguments required: <src_node_id> <dst_node_id>!")
        return 1
    try:
        src_id = parse_chord_id(args[0], "<src_node_id>", cfg)
        dst_id = parse_chord_id(args[1], "<dst_node_id>", cfg)
    except ValueError as exc:
        print(f"ERROR: {exc}")
        return 1

    net, nodes = cfg.setup_system()
    wire_all_nodes(nodes.values(), cfg.all_nodes)
    print(
        f"In a Chord ring with {cfg.ring_bits}-bit identifiers and "
        f"{cfg.ring_redundancy} successor/predecessor links,"
    )
    print(f"routing a message from node {src_id} to node {dst_id} yields the following hops:")
    hops = route(net, cfg, src_id, dst_id)
    print(" -> ".join(str(hop) for hop in hops))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())