"""Client for the shard controller service."""

from __future__ import annotations

import secrets
import time
from collections.abc import Sequence
from typing import Any

from raftshard.raft.messages import Peer
from raftshard.shardctrler.common import (
    Config,
    Err,
    JoinArgs,
    LeaveArgs,
    MoveArgs,
    QueryArgs,
)

RETRY_INTERVAL = 0.1  # seconds between attempts


class Clerk:
    """Sends controller requests, retrying across replicas until one succeeds.

    Every request carries this clerk's id and a fresh sequence number so
    the service can discard duplicates.
    """

    def __init__(self, servers: Sequence[Peer]) -> None:
        if not servers:
            raise ValueError("a clerk needs at least one server")
        self.servers = list(servers)
        self.clerk_id = secrets.randbelow(1 << 62)
        self._index = 0
        self._leader = 0

    def _next_index(self) -> int:
        index = self._index
        self._index += 1
        return index

    def _call(self, method: str, args: Any) -> Any:
        while True:
            reply = self.servers[self._leader].call(method, args)
            if reply is not None and not reply.wrong_leader and reply.err == Err.OK:
                return reply
            self._leader = (self._leader + 1) % len(self.servers)
            time.sleep(RETRY_INTERVAL)

    def query(self, num: int) -> Config:
        args = QueryArgs(num=num, index=self._next_index(), clerk=self.clerk_id)
        return self._call("ShardCtrler.Query", args).config

    def join(self, servers: dict[int, list[str]]) -> None:
        args = JoinArgs(servers=servers, index=self._next_index(), clerk=self.clerk_id)
        self._call("ShardCtrler.Join", args)

    def leave(self, gids: list[int]) -> None:
        args = LeaveArgs(gids=list(gids), index=self._next_index(), clerk=self.clerk_id)
        self._call("ShardCtrler.Leave", args)

    def move(self, shard: int, gid: int) -> None:
        args = MoveArgs(shard=shard, gid=gid, index=self._next_index(), clerk=self.clerk_id)
        self._call("ShardCtrler.Move", args)