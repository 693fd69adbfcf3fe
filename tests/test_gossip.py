import uuid

import pytest

from distlab.counter import ProbabilisticCounter
from distlab.gossip import Node, PeerSamplingService, main, parse_args


class FixedSequence:
    def __init__(self, seq, repeat):
        self.seq = list(seq)
        self.repeat = repeat
        self.next_idx = 0

    def next_u32(self):
        if not self.repeat and self.next_idx >= len(self.seq):
            raise AssertionError("too many numbers generated by the sequence")
        value = self.seq[self.next_idx]
        self.next_idx += 1
        if self.repeat and self.next_idx >= len(self.seq):
            self.next_idx = 0
        return value


def build_nodes(count):
    ids = [uuid.uuid4() for _ in range(count)]
    nodes = []
    for i, node_id in enumerate(ids):
        pss = PeerSamplingService(
            nodes, FixedSequence([(i + k) % count for k in range(count)], repeat=True)
        )
        rs = FixedSequence([ProbabilisticCounter.geometric_to_sample_u32(i)], repeat=True)
        nodes.append(Node(node_id, rs, pss))
    return ids, nodes


def test_gossip_node_aggregates_should_converge():
    count = 4
    ids, nodes = build_nodes(count)
    satisfying = {ids[0], ids[1]}
    nodes[0].install_query(32, 1, lambda u: u in satisfying)
    for _ in range(count * 2):
        for node in nodes:
            node.trigger_sync()
    assert nodes[count - 1].poll(ids[0]) == 5
    assert [node.poll(ids[0]) for node in nodes] == [5] * count


def test_poll_unknown_query_returns_none():
    ids, nodes = build_nodes(3)
    assert nodes[1].poll(ids[0]) is None


def test_install_counts_initiator_when_predicate_holds():
    ids, nodes = build_nodes(3)
    nodes[0].install_query(32, 1, lambda u: True)
    # bit 0 set: first zero at 1, estimate round(1.29281 * 2) == 3
    assert nodes[0].poll(ids[0]) == 3


def test_install_without_match_estimates_zero():
    ids, nodes = build_nodes(3)
    nodes[0].install_query(16, 2, lambda u: False)
    assert nodes[0].poll(ids[0]) == 0


@pytest.mark.parametrize(("bits", "instances"), [(0, 1), (40, 1), (12, 1), (8, 0)])
def test_invalid_install_is_ignored(bits, instances):
    ids, nodes = build_nodes(2)
    nodes[0].install_query(bits, instances, lambda u: True)
    assert nodes[0].poll(ids[0]) is None


def test_peer_sampling_wraps_around():
    _, nodes = build_nodes(3)
    pss = PeerSamplingService(nodes, FixedSequence([4, 2, 9], repeat=False))
    assert [pss.get_random_peer() for _ in range(3)] == [nodes[1], nodes[2], nodes[0]]


def test_newer_query_replaces_older_one():
    query_id = uuid.uuid4()
    node = Node(uuid.uuid4(), FixedSequence([1 << 2], repeat=True), None)

    old = ProbabilisticCounter(8, 1)
    old.set_bit(0, 0, True)
    node.receive_gossip({query_id: old}, {query_id: (10, lambda u: False)})
    assert node.poll(query_id) == 3

    newer = ProbabilisticCounter(8, 1)
    node.receive_gossip({query_id: newer}, {query_id: (20, lambda u: True)})
    # the node counts itself with bit 2: first zero at 0, estimate 1
    assert node.poll(query_id) == 1
    assert newer.get_bit(0, 2) is False


def test_same_or_older_query_is_merged():
    query_id = uuid.uuid4()
    node = Node(uuid.uuid4(), FixedSequence([1], repeat=True), None)
    first = ProbabilisticCounter(8, 1)
    first.set_bit(0, 0, True)
    node.receive_gossip({query_id: first}, {query_id: (10, lambda u: False)})

    second = ProbabilisticCounter(8, 1)
    second.set_bit(0, 1, True)
    node.receive_gossip({query_id: second}, {query_id: (10, lambda u: True)})
    # bits 0 and 1 merged: first zero at 2, estimate round(1.29281 * 4) == 5
    assert node.poll(query_id) == 5


@pytest.mark.parametrize(
    ("argv", "expected"),
    [([], (100, 16, 2)), (["10", "4", "3"], (10, 4, 3)), (["1000", "100", "1000"], (1000, 100, 1000))],
)
def test_parse_args_accepts(argv, expected):
    assert parse_args(argv) == expected


@pytest.mark.parametrize(
    "argv",
    [
        ["1", "2"],
        ["x", "1", "1"],
        ["0", "1", "1"],
        ["1001", "1", "1"],
        ["10", "0", "1"],
        ["10", "101", "1"],
        ["10", "1", "0"],
        ["10", "1", "11"],
        ["10", "1", "-1"],
    ],
)
def test_parse_args_rejects(argv):
    with pytest.raises(ValueError):
        parse_args(argv)


def test_main_reports_bad_arguments(capsys):
    assert main(["0", "1", "1"]) == 1
    out = capsys.readouterr().out
    assert "ERROR: The number of processes should be in [1..1000]!" in out
    assert "Usage:" in out