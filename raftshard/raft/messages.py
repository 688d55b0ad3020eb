"""Roles, timing constants, RPC messages and peer endpoints for Raft."""

from __future__ import annotations

import copy
import enum
import re
from dataclasses import dataclass, field
from typing import Any

NO_VOTE = -1
INIT_TERM = 0

# Timings in milliseconds.
DELAY_ELECTION_MIN_TIME = 450
DELAY_ELECTION_RANGE_SIZE = 150
HEARTBEAT_INTERVAL = 100
FAST_OPERATE_TIME = 10

# Placeholder command carried by the sentinel entry at the head of a log.
SENTINEL_COMMAND = "孩子们，这不好笑"


class Role(enum.IntEnum):
    FOLLOWER = 0
    CANDIDATE = 1
    LEADER = 2

    def __str__(self) -> str:
        return self.name.capitalize()


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _handler_name(method: str) -> str:
    """Turn ``"Raft.RequestVote"`` or ``"request_vote"`` into an attribute name."""
    name = method.rsplit(".", 1)[-1]
    if "_" in name or name.islower():
        return name
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class Peer:
    """An in-process endpoint through which RPCs reach a target object.

    ``call`` returns the handler's reply, or ``None`` when the endpoint is
    disconnected, has no target, or the target lacks the handler; this is
    how a lost request or an unreachable server shows up to the caller.
    Arguments and replies are deep-copied so sender and receiver never
    share mutable state.
    """

    def __init__(self, target: Any = None, connected: bool = True) -> None:
        self.target = target
        self.connected = connected

    def call(self, method: str, args: Any) -> Any:
        target = self.target
        if not self.connected or target is None:
            return None
        handler = getattr(target, _handler_name(method), None)
        if handler is None or not callable(handler):
            return None
        reply = handler(copy.deepcopy(args))
        if not self.connected:
            return None
        return copy.deepcopy(reply)


@dataclass
class ApplyMsg:
    """A committed command or an installed snapshot handed to the service."""

    command_valid: bool = False
    command: Any = None
    command_index: int = 0
    command_term: int = 0

    snapshot_valid: bool = False
    snapshot: bytes = b""
    snapshot_term: int = 0
    snapshot_index: int = 0


@dataclass
class Entry:
    term: int
    index: int
    command: Any = None


@dataclass
class RequestVoteArgs:
    term: int
    candidate_id: int
    last_log_term: int
    last_log_index: int


@dataclass
class RequestVoteReply:
    term: int = 0
    vote_granted: bool = False


@dataclass
class AppendEntriesArgs:
    term: int
    leader_id: int
    leader_commit: int
    prev_log_index: int
    prev_log_term: int = 0
    entries: list[Entry] = field(default_factory=list)


@dataclass
class AppendEntriesReply:
    """Reply to AppendEntries; the x-fields guide the leader's fast backup.

    ``xterm`` is the term of the conflicting entry (-1 if the follower's log
    is too short), ``xindex`` the first index with that term, and ``xlen``
    the follower's log length.
    """

    term: int = 0
    success: bool = False
    xterm: int = 0
    xindex: int = 0
    xlen: int = 0


@dataclass
class InstallSnapshotArgs:
    term: int
    leader_id: int
    last_included_index: int
    last_included_term: int
    data: bytes = b""
    offset: int = 0
    done: bool = True


@dataclass
class InstallSnapshotReply:
    term: int = 0