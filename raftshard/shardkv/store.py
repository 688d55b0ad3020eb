"""The state machine of one shard key/value group: data, dedup tables and shard status."""

from __future__ import annotations

import copy
import pickle
from dataclasses import dataclass, field

from raftshard.shardctrler.common import NSHARDS, Config
from raftshard.shardkv.common import (
    APPEND,
    GET,
    PUT,
    Err,
    ShardArgs,
    ShardStatus,
)

_DECODE_ERRORS = (pickle.UnpicklingError, ValueError, TypeError, EOFError, AttributeError)


@dataclass
class Op:
    """A client Get, Put or Append as it travels through the Raft log.

    ``command_index`` is the clerk's per-shard sequence number; ``num`` the
    configuration the receiving server was in; ``index`` tags the request
    so its handler can recognise the result.
    """

    key: str = ""
    value: str = ""
    op_type: str = GET
    clerk: int = 0
    command_index: int = 0
    num: int = 0
    shard: int = 0
    index: int = 0


@dataclass
class PullShardOp:
    shard: int = 0
    data: bytes = b""
    num: int = 0


@dataclass
class UpdateConfigOp:
    config: Config = field(default_factory=Config)


@dataclass
class RemoveShardOp:
    shard: int = 0
    num: int = 0


@dataclass
class Record:
    """The outcome of an applied client operation."""

    index: int = 0
    value: str = ""
    err: Err | None = None


class ShardStore:
    """Per-shard key/value data and migration state of the group ``gid``.

    Not thread-safe; the owning server serialises access.
    """

    def __init__(self, gid: int) -> None:
        self.gid = gid
        self.db: list[dict[str, str]] = [{} for _ in range(NSHARDS)]
        self.last_index: list[dict[int, int]] = [{} for _ in range(NSHARDS)]
        self.status: list[ShardStatus] = [ShardStatus.REMOVED] * NSHARDS
        self.prev_config = Config()
        self.current_config = Config()
        self.last_applied = 0

    # ------------------------------------------------------------------
    # queries

    def is_shard_valid(self, shard: int) -> bool:
        """Whether this group currently serves ``shard``."""
        return (
            self.status[shard] == ShardStatus.WAITING
            and self.current_config.shards[shard] == self.gid
        )

    def is_shard_unoccupied(self) -> bool:
        """Whether no shard is being pulled or pushed."""
        return all(
            status not in (ShardStatus.PULLING, ShardStatus.PUSHING)
            for status in self.status
        )

    def is_remove_request_handled(self, args: ShardArgs) -> bool:
        """Whether the shard named by ``args`` has been taken over, or the request is stale."""
        return (
            self.current_config.num == args.num
            and self.status[args.shard] == ShardStatus.WAITING
        ) or self.current_config.num > args.num

    # ------------------------------------------------------------------
    # applying log commands

    def execute(self, op: Op) -> Record:
        """Apply a client operation; duplicate Puts and Appends are not applied twice."""
        result = Record(index=op.index)
        if op.num != self.current_config.num or not self.is_shard_valid(op.shard):
            result.err = Err.WRONG_GROUP
            return result

        seen = self.last_index[op.shard].get(op.clerk, 0)
        if op.command_index <= seen and op.op_type != GET:
            result.err = Err.OK
            return result
        if op.command_index > seen:
            self.last_index[op.shard][op.clerk] = op.command_index

        result.err = Err.OK
        data = self.db[op.shard]
        if op.op_type == GET:
            result.value = data.get(op.key, "")
        elif op.op_type == PUT:
            data[op.key] = op.value
        elif op.op_type == APPEND:
            data[op.key] = data.get(op.key, "") + op.value
        return result

    def pull_shard(self, op: PullShardOp) -> bool:
        """Install a pulled shard; False if the shard is not awaiting it."""
        if op.num != self.current_config.num or self.status[op.shard] != ShardStatus.PULLING:
            return False
        self.import_shard(op.shard, op.data)
        self.status[op.shard] = ShardStatus.WAITING
        return True

    def update_config(self, op: UpdateConfigOp) -> bool:
        """Move to the next configuration and mark shards to pull or push.

        Refused unless the configuration is exactly the next one and no
        shard is still migrating.
        """
        config = op.config
        if config.num != self.current_config.num + 1:
            return False
        if not self.is_shard_unoccupied():
            return False

        self.prev_config = self.current_config
        self.current_config = copy.deepcopy(config)
        prev, current = self.prev_config.shards, self.current_config.shards
        for shard in range(NSHARDS):
            if prev[shard] != self.gid and current[shard] == self.gid:
                # GID 0 holds no data, so there is nothing to pull.
                self.status[shard] = (
                    ShardStatus.WAITING if prev[shard] == 0 else ShardStatus.PULLING
                )
            if prev[shard] == self.gid and current[shard] != self.gid:
                self.status[shard] = (
                    ShardStatus.REMOVED if current[shard] == 0 else ShardStatus.PUSHING
                )
        return True

    def remove_shard(self, op: RemoveShardOp) -> bool:
        """Drop a pushed shard once its new owner has it."""
        if self.current_config.num != op.num:
            return False
        if self.status[op.shard] != ShardStatus.PUSHING:
            return False
        self.db[op.shard] = {}
        self.last_index[op.shard] = {}
        self.status[op.shard] = ShardStatus.REMOVED
        return True

    # ------------------------------------------------------------------
    # shard transfer and snapshots

    def export_shard(self, shard: int) -> bytes:
        """Encode one shard's data and dedup table for transfer."""
        return pickle.dumps((self.db[shard], self.last_index[shard]))

    def import_shard(self, shard: int, data: bytes) -> bool:
        """Replace a shard with transferred data; False if ``data`` is empty or undecodable."""
        if not data:
            return False
        try:
            db, last_index = pickle.loads(data)
        except _DECODE_ERRORS:
            return False
        self.db[shard] = dict(db)
        self.last_index[shard] = dict(last_index)
        return True

    def dump(self) -> bytes:
        """Encode the whole state machine as a snapshot."""
        return pickle.dumps(
            (
                self.db,
                self.last_index,
                self.last_applied,
                self.status,
                self.prev_config,
                self.current_config,
            )
        )

    def load(self, data: bytes) -> bool:
        """Restore from a snapshot; False, changing nothing, if it is empty or undecodable."""
        if not data:
            return False
        try:
            db, last_index, last_applied, status, prev_config, current_config = (
                pickle.loads(data)
            )
        except _DECODE_ERRORS:
            return False
        self.db = db
        self.last_index = last_index
        self.last_applied = last_applied
        self.status = list(status)
        self.prev_config = prev_config
        self.current_config = current_config
        return True