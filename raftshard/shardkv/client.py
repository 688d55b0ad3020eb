"""Client of the sharded key/value service."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable, Sequence

from raftshard.raft.messages import Peer
from raftshard.shardctrler.client import Clerk as CtrlerClerk
from raftshard.shardctrler.common import NSHARDS, Config
from raftshard.shardkv.common import (
    APPEND,
    PUT,
    Err,
    GetArgs,
    PutAppendArgs,
)

QUERY_INTERVAL = 0.1  # seconds before asking the controller again


def key2shard(key: str) -> int:
    """The shard a key belongs to: its first byte modulo the shard count."""
    data = key.encode("utf-8")
    shard = data[0] if data else 0
    return shard % NSHARDS


class Clerk:
    """Finds the group serving a key from the controller and talks to it.

    ``make_end`` turns a server name from a configuration into an endpoint.
    Requests are numbered per shard so servers can discard duplicates.
    """

    def __init__(self, ctrlers: Sequence[Peer], make_end: Callable[[str], Peer]) -> None:
        self.sm = CtrlerClerk(ctrlers)
        self.config = Config()
        self.make_end = make_end
        self.clerk_id = secrets.randbelow(1 << 62)
        self._index = [0] * NSHARDS

    def _next_index(self, shard: int) -> int:
        self._index[shard] += 1
        return self._index[shard]

    def _servers_for(self, shard: int) -> list[str] | None:
        return self.config.groups.get(self.config.shards[shard])

    def _refresh(self) -> None:
        time.sleep(QUERY_INTERVAL)
        self.config = self.sm.query(-1)

    def get(self, key: str) -> str:
        """Current value of ``key``, or "" if it has none; retries forever."""
        shard = key2shard(key)
        args = GetArgs(
            key=key, shard=shard, clerk=self.clerk_id, index=self._next_index(shard)
        )
        while True:
            for name in self._servers_for(shard) or []:
                reply = self.make_end(name).call("ShardKV.Get", args)
                if reply is None:
                    continue
                if reply.err in (Err.OK, Err.NO_KEY):
                    return reply.value
                if reply.err == Err.WRONG_GROUP:
                    break
            self._refresh()

    def put_append(self, key: str, value: str, op: str) -> None:
        """Send a Put or Append of ``value`` to ``key``; retries until accepted."""
        shard = key2shard(key)
        args = PutAppendArgs(
            key=key,
            value=value,
            op=op,
            shard=shard,
            clerk=self.clerk_id,
            index=self._next_index(shard),
        )
        while True:
            for name in self._servers_for(shard) or []:
                reply = self.make_end(name).call("ShardKV.PutAppend", args)
                if reply is None:
                    continue
                if reply.err == Err.OK:
                    return
                if reply.err == Err.WRONG_GROUP:
                    break
            self._refresh()

    def put(self, key: str, value: str) -> None:
        self.put_append(key, value, PUT)

    def append(self, key: str, value: str) -> None:
        self.put_append(key, value, APPEND)