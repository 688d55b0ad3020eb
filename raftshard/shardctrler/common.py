"""Shard controller configurations and the RPC messages of its interface.

A configuration assigns each of the ``NSHARDS`` shards to a replica group
(by GID) and maps each GID to its servers. Configuration 0 has no groups
and every shard assigned to GID 0, the invalid group.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

NSHARDS = 10


class Err(str, enum.Enum):
    OK = "OK"
    NO_KEY = "ErrNoKey"
    WRONG_LEADER = "ErrWrongLeader"
    TIMEOUT = "ErrTimeout"
    RPC_FAILED = "ErrRPCFailed"
    OTHERS = "ErrOthers"


def _unassigned() -> list[int]:
    return [0] * NSHARDS


@dataclass
class Config:
    """One numbered assignment of shards to groups.

    ``standby`` holds groups that joined while all ``NSHARDS`` group slots
    were taken; they are promoted as other groups leave. It takes no part
    in comparisons.
    """

    num: int = 0
    shards: list[int] = field(default_factory=_unassigned)
    groups: dict[int, list[str]] = field(default_factory=dict)
    standby: dict[int, list[str]] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        self.shards = list(self.shards)
        if len(self.shards) != NSHARDS:
            raise ValueError(f"a configuration holds exactly {NSHARDS} shards")


@dataclass
class JoinArgs:
    servers: dict[int, list[str]] = field(default_factory=dict)
    index: int = 0
    clerk: int = 0


@dataclass
class JoinReply:
    wrong_leader: bool = False
    err: Err | None = None


@dataclass
class LeaveArgs:
    gids: list[int] = field(default_factory=list)
    index: int = 0
    clerk: int = 0


@dataclass
class LeaveReply:
    wrong_leader: bool = False
    err: Err | None = None


@dataclass
class MoveArgs:
    shard: int = 0
    gid: int = 0
    index: int = 0
    clerk: int = 0


@dataclass
class MoveReply:
    wrong_leader: bool = False
    err: Err | None = None


@dataclass
class QueryArgs:
    num: int = -1
    index: int = 0
    clerk: int = 0


@dataclass
class QueryReply:
    wrong_leader: bool = False
    err: Err | None = None
    config: Config = field(default_factory=Config)