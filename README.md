# distlab

Small simulations of classic distributed algorithms. Everything runs inside
one Python process and uses only the standard library (`asyncio` where
concurrency matters).

## Modules

- `distlab.raft`: Raft leader election. A `Raft` process is a follower,
  candidate or leader (`Role`). It exchanges `Heartbeat`, `HeartbeatResponse`,
  `RequestVote` and `RequestVoteResponse` messages, wrapped in `RaftMessage`.
  Its `ProcessState` (term, vote, known leader) is saved to a stable storage
  such as `RamStorage`. `ExecutorSender` delivers messages to the registered
  processes. `Raft.disable()` makes a process ignore everything from then on,
  which simulates a crash or a network partition. The election timeout in
  `ProcessConfig` is given in seconds and is not randomized. A leader sends
  heartbeats every tenth of its timeout.
- `distlab.editor`: a collaborative text editor kept consistent with
  operational transformation. There are three actions, `Insert`, `Delete` and
  `Nop`, each with `apply_to(text)`. `Operation.transform_wrt` transforms an
  operation against a concurrent one. A `Process` serves one client and trades
  operations with the other processes in rounds. `SimpleClient` prints its text
  after every edit. `SimpleBroadcast` delivers operations in order with a
  simulated delay.
- `distlab.counter`: `ProbabilisticCounter`, a set of probabilistic counting
  sketches that can be used as a conflict-free replicated counter. It offers
  `count_one_more`, `merge_with`, `evaluate`, `set_to_zero` and
  `set_to_infinity`. An infinite count evaluates to `U64_MAX`. Incrementing an
  infinite counter, or merging counters with different configurations, raises
  `CounterError`. `RandomSource` is a seeded source of 32-bit values.
- `distlab.gossip`: gossip-based aggregation. A `Node` installs a counting
  query with `install_query` and pushes its counters to a random peer with
  `trigger_sync`, using a `PeerSamplingService`. The receiving node merges them
  in `receive_gossip`. `poll` returns the current estimate for a query.
- `distlab.chord`: Chord ring arithmetic (`chord_id_min`, `chord_id_max`,
  `chord_id_advance_by`, `chord_id_distance`, `chord_id_in_range`). It also
  has `ChordNode`, which keeps successor, predecessor and finger tables in a
  `ChordRoutingState` and picks the next hop with `find_next_routing_hop`,
  returning `Accept` or `Forward`. `Internet` delivers a `ChordMessage` between
  nodes by transport address.
- `distlab.chord_system`: builds a whole ring. `ChordSystemConfig` holds the
  ring parameters and every node, and `setup_system` creates and connects the
  nodes. `wire_all_nodes` fills in the nodes' tables. `route` returns the hops
  a message takes, and `parse_chord_id` validates an identifier.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command-line demos

```
distlab-raft
```
Starts two Raft processes with election timeouts of 0.5 s and 1 s and logs
the election. After two seconds it disables the first process and stops.

```
distlab-editor
```
Runs two editor processes through a short concurrent-editing scenario. Each
client prints its text after every edit it applies.

```
distlab-gossip [<num_processes> <num_instances> <divisor>]
```
Installs a counting query on the first node. The query counts the nodes whose
identifier is divisible by the divisor. The demo then runs 100 gossip rounds
and, for each round, prints the elapsed time, the actual count and the current
estimate. Without arguments it uses 100 processes, 16 sketch instances and
divisor 2. The number of processes must be in [1..1000], the number of
instances in [1..100], and the divisor between 1 and the number of processes.

```
distlab-chord <src_node_id> <dst_node_id>
```
Builds a fully populated 4-bit ring with one successor and one predecessor per
node and wires every node. It then prints the hops a message follows from the
source to the destination. Identifiers must be in [0..15].

## Library use

```python
from distlab.counter import ProbabilisticCounter, RandomSource

counter = ProbabilisticCounter(32, 16)
counter.count_one_more(RandomSource(7))
print(counter.evaluate())
```

```python
from distlab.chord import chord_id_advance_by, chord_id_distance

chord_id_advance_by(4, 15, 1)   # 0
chord_id_distance(4, 12, 2)     # 6
```

```python
from distlab.chord_system import ChordSystemConfig, route, wire_all_nodes

cfg = ChordSystemConfig(4, 1, [(i, 100 + i) for i in range(16)])
net, nodes = cfg.setup_system()
wire_all_nodes(nodes.values(), cfg.all_nodes)
print(route(net, cfg, 4, 2))
```

## What it does not do

- The Raft processes only elect a leader. They do not replicate a log, and
  their storage is kept in memory only.
- Nothing goes over a real network. Messages are passed between objects in the
  same process.
- Chord nodes are wired only from a complete map of the ring. There is no
  protocol for nodes joining, leaving or repairing their tables.