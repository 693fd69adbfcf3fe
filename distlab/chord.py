"""Routing in a Chord ring with successor, predecessor and finger links."""

from __future__ import annotations

import bisect
import itertools
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Callable, Mapping

CHORD_FINGER_TABLE_MAX_ENTRIES = 128
"""The maximal number of entries in a finger table (bits of an identifier)."""

CHORD_RING_TABLE_MAX_ENTRIES = 16
"""The maximal number of entries in a successor or predecessor table."""


def chord_id_min(ring_bits: int) -> int:
    """Return the smallest identifier for a ring with the given number of bits."""
    if ring_bits < 0:
        raise ValueError(f"ring bits must not be negative, got {ring_bits}")
    return 0


def chord_id_max(ring_bits: int) -> int:
    """Return the largest identifier for a ring with the given number of bits."""
    return (1 << ring_bits) - 1


def chord_id_advance_by(ring_bits: int, base: int, delta: int) -> int:
    """Return ``base`` moved clockwise by ``delta`` around the ring."""
    return (base + delta) & chord_id_max(ring_bits)


def chord_id_distance(ring_bits: int, from_id: int, to_id: int) -> int:
    """Return the clockwise distance from ``from_id`` to ``to_id``."""
    if to_id >= from_id:
        return to_id - from_id
    return (chord_id_max(ring_bits) - from_id) + (to_id - chord_id_min(ring_bits)) + 1


def chord_id_in_range(
    ring_bits: int,
    ident: int,
    start: int,
    end: int,
    *,
    include_start: bool = True,
    include_end: bool = False,
) -> bool:
    """Check whether ``ident`` lies in the clockwise range from ``start`` to ``end``.

    An open range with equal ends is empty and is rejected with ``ValueError``;
    a range open at the start and closed at the end with equal ends is the
    whole ring.
    """
    after_start = ident >= start if include_start else ident > start
    before_end = ident <= end if include_end else ident < end
    if start == end:
        if include_start and include_end:
            return ident == start
        if include_start:
            return False
        if include_end:
            return True
        raise ValueError("Empty range disallowed!")
    if start < end:
        return after_start and before_end
    return (after_start and ident <= chord_id_max(ring_bits)) or (
        ident >= chord_id_min(ring_bits) and before_end
    )


@dataclass(frozen=True)
class ChordLinkId:
    """A link to a node: its ring identifier and transport address."""

    id: int
    addr: int


@dataclass
class ChordRoutingState:
    """Finger, successor and predecessor tables of a node."""

    finger_table: list[ChordLinkId | None]
    succ_table: list[ChordLinkId | None]
    pred_table: list[ChordLinkId | None]


@dataclass(frozen=True)
class ChordMessage:
    """A routed message; on delivery the hops it followed are reported."""

    dst_id: int
    on_delivery: Callable[[list[int]], None] = field(repr=False, compare=False)
    hops: tuple[int, ...] = ()


@dataclass(frozen=True)
class Accept:
    """The routing node accepts the message."""


@dataclass(frozen=True)
class Forward:
    """The message goes on to the node with the given address."""

    addr: int


RoutingOutcome = Accept | Forward


class Internet:
    """Carries Chord messages between nodes by transport address."""

    def __init__(self) -> None:
        self._links: dict[int, ChordNode] = {}
        self._pending: deque[tuple[int, int, ChordMessage]] = deque()
        self._delivering = False

    def connect_node(self, addr: int, node: ChordNode) -> None:
        """Attach a node at an address that must not be taken yet."""
        if addr in self._links:
            raise ValueError(f"A node with address {addr} already exists!")
        self._links[addr] = node

    def send(self, src: int, dst: int, msg: ChordMessage) -> None:
        """Deliver a message; messages to unknown addresses are dropped."""
        self._pending.append((src, dst, msg))
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._pending:
                src, dst, msg = self._pending.popleft()
                node = self._links.get(dst)
                if node is not None:
                    node.receive(msg, src)
        finally:
            self._pending.clear()
            self._delivering = False


class ChordNode:
    """A node on the Chord ring."""

    def __init__(
        self,
        net: Internet,
        ring_bits: int,
        ring_redundancy: int,
        node_id: int,
        addr: int,
    ) -> None:
        if not 1 <= ring_bits <= CHORD_FINGER_TABLE_MAX_ENTRIES:
            raise ValueError(f"ring bits must be in [1..{CHORD_FINGER_TABLE_MAX_ENTRIES}]")
        if not 1 <= ring_redundancy <= CHORD_RING_TABLE_MAX_ENTRIES:
            raise ValueError(f"ring redundancy must be in [1..{CHORD_RING_TABLE_MAX_ENTRIES}]")
        if not chord_id_min(ring_bits) <= node_id <= chord_id_max(ring_bits):
            raise ValueError(f"identifier {node_id} out of range for {ring_bits}-bit ring")
        self.node_id = node_id
        self.addr = addr
        self._net = net
        self._ring_bits = ring_bits
        self._redundancy = ring_redundancy
        self.routing_state = ChordRoutingState(
            finger_table=[None] * ring_bits,
            succ_table=[None] * ring_redundancy,
            pred_table=[None] * ring_redundancy,
        )

    def recreate_links_from_oracle(self, all_nodes: Mapping[int, int]) -> None:
        """Rebuild the routing tables from a complete identifier-to-address map."""
        if self.node_id not in all_nodes:
            raise ValueError(f"node {self.node_id} is missing from the node map")
        low, high = chord_id_min(self._ring_bits), chord_id_max(self._ring_bits)
        if any(not low <= ident <= high for ident in all_nodes):
            raise ValueError("node identifier out of the ring's range")

        ids = sorted(all_nodes)
        pos = ids.index(self.node_id)
        clockwise = ids[pos + 1 :] + ids[:pos]
        links = [ChordLinkId(ident, all_nodes[ident]) for ident in clockwise]

        def padded(seq: list[ChordLinkId]) -> list[ChordLinkId | None]:
            head: list[ChordLinkId | None] = list(seq[: self._redundancy])
            return head + [None] * (self._redundancy - len(head))

        distances = [chord_id_distance(self._ring_bits, self.node_id, link.id) for link in links]
        fingers: list[ChordLinkId | None] = []
        for level in range(self._ring_bits):
            idx = bisect.bisect_left(distances, 1 << level)
            fingers.append(links[idx] if idx < len(links) else None)

        self.routing_state = ChordRoutingState(
            finger_table=fingers,
            succ_table=padded(links),
            pred_table=padded(links[::-1]),
        )

    def find_next_routing_hop(self, dst_id: int) -> RoutingOutcome:
        """Decide whether to accept a message for ``dst_id`` or where to forward it."""
        if dst_id == self.node_id:
            return Accept()
        bits = self._ring_bits
        state = self.routing_state

        last_id = self.node_id
        for link in state.succ_table:
            if link is None:
                # Tables are filled in order: the whole ring is known here.
                return Accept()
            if chord_id_in_range(
                bits, dst_id, last_id, link.id, include_start=False, include_end=True
            ):
                return Forward(link.addr)
            last_id = link.id

        last: ChordLinkId | None = None
        for link in state.pred_table:
            if link is None:
                return Accept()
            if dst_id == link.id:
                return Forward(link.addr)
            later_id = self.node_id if last is None else last.id
            if link.id != later_id and chord_id_in_range(
                bits, dst_id, link.id, later_id, include_start=False, include_end=False
            ):
                return Accept() if last is None else Forward(last.addr)
            last = link

        remaining = chord_id_distance(bits, self.node_id, dst_id)
        best: ChordLinkId | None = None
        best_distance = 0
        for link in itertools.chain(state.finger_table, state.succ_table):
            if link is None:
                continue
            covered = chord_id_distance(bits, self.node_id, link.id)
            if best_distance < covered <= remaining:
                best, best_distance = link, covered
        return Accept() if best is None else Forward(best.addr)

    def receive(self, msg: ChordMessage, src: int) -> None:
        """Record this node as a hop, then accept or forward the message."""
        msg = replace(msg, hops=msg.hops + (self.node_id,))
        match self.find_next_routing_hop(msg.dst_id):
            case Accept():
                msg.on_delivery(list(msg.hops))
            case Forward(addr=addr):
                self._net.send(self.addr, addr, msg)