"""Gossip-based aggregation of query counts with probabilistic counters."""

from __future__ import annotations

import copy
import sys
import time
import uuid
from typing import Callable, MutableSequence, Sequence
from uuid import UUID

from distlab.counter import ProbabilisticCounter, RandomnessSource, RandomSource

Predicate = Callable[[UUID], bool]
QueryInfo = tuple[int, Predicate]


class PeerSamplingService:
    """Picks random peers from a shared list of nodes."""

    def __init__(self, nodes: Sequence[Node], rs: RandomnessSource) -> None:
        self._nodes = nodes
        self._rs = rs

    def get_random_peer(self) -> Node:
        rand = self._rs.next_u32()
        return self._nodes[rand % len(self._nodes)]


class Node:
    """A node that gossips the counters of installed queries."""

    def __init__(self, uuid: UUID, rs: RandomnessSource, pss: PeerSamplingService) -> None:
        self.uuid = uuid
        self._rs = rs
        self._pss = pss
        self._counters: dict[UUID, ProbabilisticCounter] = {}
        self._predicates: dict[UUID, QueryInfo] = {}

    def install_query(self, bits_per_instance: int, num_instances: int, predicate: Predicate) -> None:
        """Install a query initiated by this node; an invalid configuration is ignored."""
        if (
            bits_per_instance <= 0
            or bits_per_instance > 32
            or bits_per_instance % 8 != 0
            or num_instances <= 0
        ):
            return
        timestamp = time.time_ns()
        counter = ProbabilisticCounter(bits_per_instance, num_instances)
        if predicate(self.uuid):
            counter.count_one_more(self._rs)
        self._counters[self.uuid] = counter
        self._predicates[self.uuid] = (timestamp, predicate)

    def poll(self, initiator: UUID) -> int | None:
        """Return the current estimate of the query from ``initiator``, if known."""
        counter = self._counters.get(initiator)
        return None if counter is None else counter.evaluate()

    def trigger_sync(self) -> None:
        """Send the state of all known queries to a random peer."""
        peer = self._pss.get_random_peer()
        peer.receive_gossip(dict(self._counters), dict(self._predicates))

    def receive_gossip(
        self,
        counters: dict[UUID, ProbabilisticCounter],
        predicates: dict[UUID, QueryInfo],
    ) -> None:
        """Merge the gossiped state of queries into this node's state."""
        for query_id, received in counters.items():
            received = copy.copy(received)
            received_ts, received_predicate = predicates[query_id]
            local = self._predicates.get(query_id)
            if local is None or received_ts > local[0]:
                if received_predicate(self.uuid):
                    received.count_one_more(self._rs)
                self._counters[query_id] = received
                self._predicates[query_id] = (received_ts, received_predicate)
            else:
                self._counters[query_id].merge_with(received)


def _parse_number(text: str, what: str) -> int:
    digits = text[1:] if text.startswith("+") else text
    if not digits.isascii() or not digits.isdigit():
        raise ValueError(f"Unable to parse the {what}!")
    return int(digits)


def parse_args(argv: Sequence[str]) -> tuple[int, int, int]:
    """Parse ``<num_processes> <num_instances> <divisor>``; no arguments gives defaults."""
    if len(argv) == 0:
        return 100, 16, 2
    if len(argv) != 3:
        raise ValueError("Three command-line arguments are accepted!")
    num_processes = _parse_number(argv[0], "number of processes")
    if num_processes == 0 or num_processes > 1000:
        raise ValueError("The number of processes should be in [1..1000]!")
    num_instances = _parse_number(argv[1], "number of instances")
    if num_instances == 0 or num_instances > 100:
        raise ValueError("The number of instances should be in [1..100]!")
    divisor = _parse_number(argv[2], "divisor")
    if divisor == 0 or divisor > num_processes:
        raise ValueError(f"The divisor should be in [1..{num_processes}]!")
    return num_processes, num_instances, divisor


def _print_usage(prog_name: str) -> None:
    print("The program:")
    print(
        "    demonstrates eventually-consistent gossip-based aggregation "
        "with probabilistic counting sketches."
    )
    print("Usage:")
    print(f"    {prog_name} <num_processes> <num_instances> <divisor>")
    print("Where:")
    print("    <num_processes> is the number of processes performing the query computation.")
    print(
        "    <num_instances> is the number of probabilistic counting sketch instances "
        "utilized in the computation."
    )
    print("    <divisor> is X such that roughly 1/X of the processes satisfy the query predicate.")


def _print_progress(start: float, actual: int, estimated: int | None) -> None:
    elapsed_ms = int((time.monotonic() - start) * 1000)
    shown = "?" if estimated is None else str(estimated)
    print(f"{elapsed_ms} | # nodes satisfying query: actual={actual} vs estimated={shown}")


def main(argv: Sequence[str] | None = None) -> int:
    """Run a gossip aggregation demo and print how the estimate converges."""
    args = list(sys.argv[1:] if argv is None else argv)
    prog_name = "python -m distlab.gossip"
    if not args:
        print("INFO: Assuming default parameter values.")
    try:
        num_nodes, num_instances, divisor = parse_args(args)
    except ValueError as exc:
        print(f"ERROR: {exc}")
        _print_usage(prog_name)
        return 1

    nodes: MutableSequence[Node] = []
    actual = 0
    for _ in range(num_nodes):
        node_id = uuid.uuid4()
        if node_id.int % divisor == 0:
            actual += 1
        seed = (node_id.int >> 64) ^ (node_id.int & ((1 << 64) - 1))
        pss = PeerSamplingService(nodes, RandomSource(seed))
        nodes.append(Node(node_id, RandomSource(seed), pss))

    initiator = nodes[0]
    initiator.install_query(32, num_instances, lambda u: u.int % divisor == 0)

    start = time.monotonic()
    for _ in range(100):
        estimate = nodes[-1].poll(initiator.uuid)
        for node in nodes:
            node.trigger_sync()
        time.sleep(0.01)
        _print_progress(start, actual, estimate)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())