"""Errors, RPC messages and log command wrappers of the sharded key/value service."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

CLERK_TIMEOUT = 0.2  # seconds a handler waits for its op to be applied
RESPONDER_TIMEOUT = 0.05  # seconds the applier waits for a handler to take a result

GET = "Get"
PUT = "Put"
APPEND = "Append"


class Err(str, enum.Enum):
    OK = "OK"
    NO_KEY = "ErrNoKey"
    WRONG_GROUP = "ErrWrongGroup"
    WRONG_LEADER = "ErrWrongLeader"
    TIMEOUT = "ErrTimeOut"


class CommandType(enum.IntEnum):
    """What kind of operation a command in the Raft log carries."""

    KV = 0
    PULL_SHARD = 1
    UPDATE_CONFIG = 2
    REMOVE_SHARD = 3


class ShardStatus(enum.IntEnum):
    """Where a shard stands in a configuration change.

    WAITING shards are served; PULLING shards wait for data from the
    previous owner; PUSHING shards wait for the new owner to take them;
    REMOVED shards are not held here.
    """

    WAITING = 0
    PULLING = 1
    PUSHING = 2
    REMOVED = 3


@dataclass
class PutAppendArgs:
    key: str = ""
    value: str = ""
    op: str = PUT
    shard: int = 0
    clerk: int = 0
    index: int = 0


@dataclass
class PutAppendReply:
    err: Err | None = None


@dataclass
class GetArgs:
    key: str = ""
    shard: int = 0
    clerk: int = 0
    index: int = 0


@dataclass
class GetReply:
    err: Err | None = None
    value: str = ""


@dataclass
class ShardArgs:
    """Names a shard as of configuration ``num``, for pulling or removing it."""

    shard: int = 0
    num: int = 0


@dataclass
class ShardReply:
    data: bytes = b""
    err: Err | None = None
    num: int = 0


@dataclass
class Command:
    """An entry of the Raft log: an operation tagged with its kind."""

    type: CommandType = CommandType.KV
    op: Any = field(default=None)