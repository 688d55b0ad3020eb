# raftshard

Raft consensus in pure Python, with a shard controller replicated by
Raft. It also provides the client, messages and state machine of a
sharded key/value store. It uses only the standard library.

## Parts

- `raftshard.raft`
  - `node.Raft` is a Raft peer. It does leader election, log replication,
    persistence and log compaction. Its public methods are `get_state`,
    `start`, `snapshot`, `kill` and `killed`. It also has the RPC handlers
    `request_vote`, `append_entries` and `install_snapshot`.
  - `log.RaftLog` is the replicated log. Entries are addressed by logical
    index, and the head of the log may be compacted into a snapshot.
  - `persister.Persister` stores a peer's Raft state and the service's
    snapshot, and saves the two together.
  - `messages` holds `Role`, `ApplyMsg`, `Entry`, the RPC argument and
    reply dataclasses, and `Peer`, an in-process endpoint.
- `raftshard.shardctrler`
  - `common.Config` is one numbered assignment of the `NSHARDS` (10)
    shards to replica groups. The module also holds the Join, Leave, Move
    and Query messages and `Err`.
  - `balancer` has plain functions that derive the next configuration
    from a list of configurations. `new_config` and `remove_groups`
    rebalance the shards while moving as few as possible. `move_shard`
    hands one shard to a group, and `query_config` returns a past or the
    latest configuration.
  - `server.ShardCtrler` is one replica of the controller. It sends every
    operation through Raft and discards duplicate requests from a clerk.
  - `client.Clerk` sends `join`, `leave`, `move` and `query` requests. It
    tries each replica in turn until one of them accepts.
- `raftshard.shardkv`
  - `client.key2shard` maps a key to its shard. `client.Clerk` asks the
    controller which group holds a key, then sends `get`, `put` and
    `append` requests to that group's servers. It retries until it gets
    an answer.
  - `store.ShardStore` is the state machine of one group. It holds the
    per-shard data, the duplicate-request tables and the migration status
    of each shard. It applies client ops, configuration updates, shard
    pulls and shard removals. It can also export and import single shards
    and dump and load whole snapshots.
  - `common` holds the `Err`, `CommandType` and `ShardStatus` enums, the
    request and reply dataclasses, and `Command`.

## Transport

Endpoints are `raftshard.raft.messages.Peer` objects. `Peer.call(method,
args)` takes a name such as `"Raft.RequestVote"` and turns it into the
target's `request_vote` method. It deep-copies the arguments and the
reply. It returns `None` when the endpoint is disconnected, has no
target, or the target has no such handler. Set `connected = False` on an
endpoint to simulate a lost link.

A three-peer Raft cluster in one process:

```python
import queue
from raftshard.raft.messages import Peer
from raftshard.raft.node import Raft
from raftshard.raft.persister import Persister

n = 3
ends = [[Peer() for _ in range(n)] for _ in range(n)]
applied = [queue.Queue() for _ in range(n)]
rafts = [Raft(ends[i], i, Persister(), applied[i]) for i in range(n)]
for row in ends:
    for j, end in enumerate(row):
        end.target = rafts[j]

# Once a leader is elected:
# index, term, is_leader = leader.start("command")
# committed entries then arrive in each queue as ApplyMsg values.
```

## Using the controller logic directly

```python
from raftshard.shardctrler.common import Config
from raftshard.shardctrler.balancer import new_config, remove_groups, query_config

configs = [Config()]
configs.append(new_config(configs, {1: ["x", "y", "z"]}))
configs.append(new_config(configs, {2: ["a", "b", "c"]}))
configs.append(remove_groups(configs, [1]))
print(query_config(configs, -1).shards)
```

## What the package does not do

- There is no key/value server. No class replicates a `ShardStore`
  through Raft or answers the `ShardKV.Get` and `ShardKV.PutAppend`
  requests that `shardkv.client.Clerk` sends. No class moves shards
  between groups over the network either. To serve the key/value
  client, you must build a server around `ShardStore` and `Raft`
  yourself.
- There is no network transport beyond the in-process `Peer`.
- There is no command-line program.

## Running the tests

```
pip install .[test]
pytest
```