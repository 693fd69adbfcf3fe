import pytest

from distlab.chord import (
    CHORD_FINGER_TABLE_MAX_ENTRIES,
    CHORD_RING_TABLE_MAX_ENTRIES,
    Accept,
    ChordLinkId,
    ChordMessage,
    ChordNode,
    ChordRoutingState,
    Forward,
    Internet,
    chord_id_advance_by,
    chord_id_distance,
    chord_id_in_range,
    chord_id_max,
    chord_id_min,
)

FULL_FOUR_BIT = {i: 100 + i for i in range(16)}


def build(ring_bits, redundancy, all_nodes):
    net = Internet()
    nodes = {}
    for ident, addr in all_nodes.items():
        node = ChordNode(net, ring_bits, redundancy, ident, addr)
        net.connect_node(addr, node)
        nodes[ident] = node
    return net, nodes


def wire(nodes, all_nodes):
    for node in nodes.values():
        node.recreate_links_from_oracle(all_nodes)


def route(net, all_nodes, src, dst):
    hops = []
    addr = all_nodes[src]
    net.send(addr, addr, ChordMessage(dst, hops.extend))
    return hops


def expected_state(ring_bits, redundancy, all_nodes, succs, preds, fingers):
    def link(ident):
        return ChordLinkId(ident, all_nodes[ident])

    succ_table = [link(i) for i in succs] + [None] * (redundancy - len(succs))
    pred_table = [link(i) for i in preds] + [None] * (redundancy - len(preds))
    finger_table = [None] * ring_bits
    for idx, ident in fingers:
        finger_table[idx] = link(ident)
    return ChordRoutingState(finger_table, succ_table, pred_table)


def test_id_helpers():
    assert chord_id_min(4) == 0
    assert chord_id_max(4) == 15
    assert chord_id_max(128) == (1 << 128) - 1
    assert chord_id_advance_by(4, 15, 1) == 0
    assert chord_id_advance_by(4, 4, 15) == 3
    assert chord_id_distance(4, 4, 2) == 14
    assert chord_id_distance(4, 2, 4) == 2
    assert chord_id_distance(4, 7, 7) == 0


def test_in_range_wraps_and_bounds():
    assert chord_id_in_range(4, 15, 14, 2)
    assert chord_id_in_range(4, 1, 14, 2)
    assert not chord_id_in_range(4, 2, 14, 2)
    assert chord_id_in_range(4, 2, 14, 2, include_end=True)
    assert not chord_id_in_range(4, 14, 14, 2, include_start=False)
    assert chord_id_in_range(4, 5, 5, 5, include_end=True)
    assert not chord_id_in_range(4, 5, 5, 5)
    assert chord_id_in_range(4, 9, 5, 5, include_start=False, include_end=True)


def test_in_range_rejects_empty_open_range():
    with pytest.raises(ValueError):
        chord_id_in_range(4, 3, 5, 5, include_start=False, include_end=False)


def test_wiring_full_four_bit_ring_with_no_redundancy_should_have_all_links():
    net, nodes = build(4, 1, FULL_FOUR_BIT)
    wire(nodes, FULL_FOUR_BIT)
    for ident, node in nodes.items():
        plus = lambda d: chord_id_advance_by(4, ident, d)  # noqa: E731
        assert node.routing_state == expected_state(
            4,
            1,
            FULL_FOUR_BIT,
            [plus(1)],
            [plus(15)],
            [(0, plus(1)), (1, plus(2)), (2, plus(4)), (3, plus(8))],
        )


def test_wiring_singleton_max_bit_ring_with_max_redundancy_should_have_no_links():
    all_nodes = {42: 19}
    net, nodes = build(CHORD_FINGER_TABLE_MAX_ENTRIES, CHORD_RING_TABLE_MAX_ENTRIES, all_nodes)
    wire(nodes, all_nodes)
    state = nodes[42].routing_state
    assert state == expected_state(
        CHORD_FINGER_TABLE_MAX_ENTRIES, CHORD_RING_TABLE_MAX_ENTRIES, all_nodes, [], [], []
    )
    assert len(state.finger_table) == 128
    assert len(state.succ_table) == 16


def test_wiring_sparse_ring():
    all_nodes = {1: 11, 5: 15, 9: 19}
    net, nodes = build(4, 3, all_nodes)
    wire(nodes, all_nodes)
    assert nodes[1].routing_state == expected_state(
        4, 3, all_nodes, [5, 9], [9, 5], [(0, 5), (1, 5), (2, 5), (3, 9)]
    )


@pytest.mark.parametrize("dst", [42, 43, 64, (1 << 128) - 1, 0])
def test_routing_in_singleton_max_bit_ring_should_only_node_accept_everything(dst):
    all_nodes = {42: 19}
    net, _ = build(CHORD_FINGER_TABLE_MAX_ENTRIES, CHORD_RING_TABLE_MAX_ENTRIES, all_nodes)
    assert route(net, all_nodes, 42, dst) == [42]


def _full_ring_with_replaced_states():
    net, nodes = build(4, 1, FULL_FOUR_BIT)
    for ident, node in nodes.items():
        node.routing_state = expected_state(
            4,
            1,
            FULL_FOUR_BIT,
            [chord_id_advance_by(4, ident, 1)],
            [chord_id_advance_by(4, ident, chord_id_max(4))],
            [(level, chord_id_advance_by(4, ident, 1 << level)) for level in range(4)],
        )
    return net


def test_routing_in_full_four_bit_ring_specific_paths():
    net = _full_ring_with_replaced_states()
    assert route(net, FULL_FOUR_BIT, 4, 2) == [4, 12, 0, 2]
    assert route(net, FULL_FOUR_BIT, 4, 3) == [4, 3]


def test_routing_in_full_four_bit_ring_with_no_redundancy_should_use_all_links():
    net = _full_ring_with_replaced_states()
    for src in FULL_FOUR_BIT:
        for dst in FULL_FOUR_BIT:
            if chord_id_advance_by(4, dst, 1) == src:
                expected = 2
            else:
                expected = bin(chord_id_distance(4, src, dst)).count("1") + 1
            hops = route(net, FULL_FOUR_BIT, src, dst)
            assert len(hops) == expected, (src, dst, hops)
            assert hops[0] == src and hops[-1] == dst


def test_routing_after_oracle_wiring_matches():
    net, nodes = build(4, 1, FULL_FOUR_BIT)
    wire(nodes, FULL_FOUR_BIT)
    assert route(net, FULL_FOUR_BIT, 4, 2) == [4, 12, 0, 2]


def test_routing_in_sparse_ring_reaches_owner():
    all_nodes = {1: 11, 5: 15, 9: 19}
    net, nodes = build(4, 2, all_nodes)
    wire(nodes, all_nodes)
    assert route(net, all_nodes, 1, 9) == [1, 9]
    assert route(net, all_nodes, 1, 3) == [1, 5]
    assert route(net, all_nodes, 9, 5) == [9, 5]


def test_find_next_routing_hop():
    net, nodes = build(4, 1, FULL_FOUR_BIT)
    wire(nodes, FULL_FOUR_BIT)
    node = nodes[4]
    assert node.find_next_routing_hop(4) == Accept()
    assert node.find_next_routing_hop(5) == Forward(105)
    assert node.find_next_routing_hop(3) == Forward(103)
    assert node.find_next_routing_hop(2) == Forward(112)


def test_internet_rejects_duplicate_address():
    net = Internet()
    net.connect_node(100, ChordNode(net, 4, 1, 0, 100))
    with pytest.raises(ValueError):
        net.connect_node(100, ChordNode(net, 4, 1, 1, 100))


def test_internet_drops_messages_to_unknown_addresses():
    net = Internet()
    hops = []
    net.send(1, 999, ChordMessage(3, hops.extend))
    assert hops == []


@pytest.mark.parametrize(
    "ring_bits, redundancy, ident",
    [(0, 1, 0), (129, 1, 0), (4, 0, 0), (4, 17, 0), (4, 1, 16)],
)
def test_node_rejects_invalid_configuration(ring_bits, redundancy, ident):
    with pytest.raises(ValueError):
        ChordNode(Internet(), ring_bits, redundancy, ident, 1)


def test_oracle_wiring_requires_self_in_map():
    node = ChordNode(Internet(), 4, 1, 3, 103)
    with pytest.raises(ValueError):
        node.recreate_links_from_oracle({1: 101, 2: 102})


def test_oracle_wiring_rejects_out_of_range_ids():
    node = ChordNode(Internet(), 4, 1, 3, 103)
    with pytest.raises(ValueError):
        node.recreate_links_from_oracle({3: 103, 20: 120})