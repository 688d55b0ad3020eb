"""A Raft consensus peer: leader election, log replication and snapshots."""

from __future__ import annotations

import logging
import pickle
import random
import threading
import time
from collections.abc import Sequence
from typing import Any, Protocol

from raftshard.raft.log import RaftLog
from raftshard.raft.messages import (
    DELAY_ELECTION_MIN_TIME,
    DELAY_ELECTION_RANGE_SIZE,
    FAST_OPERATE_TIME,
    HEARTBEAT_INTERVAL,
    INIT_TERM,
    NO_VOTE,
    AppendEntriesArgs,
    AppendEntriesReply,
    ApplyMsg,
    InstallSnapshotArgs,
    InstallSnapshotReply,
    Peer,
    RequestVoteArgs,
    RequestVoteReply,
    Role,
)
from raftshard.raft.persister import Persister

_logger = logging.getLogger(__name__)


class ApplySink(Protocol):
    """Anything committed messages can be put into, such as ``queue.Queue``."""

    def put(self, item: ApplyMsg) -> Any: ...


class _Timer:
    """A resettable periodic timer, fired by waiting on it."""

    def __init__(self, period_ms: float) -> None:
        self._cond = threading.Condition()
        self._period = period_ms / 1000
        self._deadline = time.monotonic() + self._period
        self._stopped = False

    def reset(self, period_ms: float) -> None:
        with self._cond:
            self._period = period_ms / 1000
            self._deadline = time.monotonic() + self._period
            self._cond.notify_all()

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()

    def wait(self) -> bool:
        """Block until the timer fires; False once it has been stopped."""
        with self._cond:
            while not self._stopped:
                remaining = self._deadline - time.monotonic()
                if remaining <= 0:
                    self._deadline = time.monotonic() + self._period
                    return True
                self._cond.wait(remaining)
            return False


def _spawn(target: Any, *args: Any) -> None:
    threading.Thread(target=target, args=args, daemon=True).start()


class Raft:
    """One Raft peer.

    ``peers`` are the endpoints of every server, this one at position ``me``.
    Committed commands and installed snapshots are put into ``apply_ch`` as
    :class:`ApplyMsg` values.
    """

    def __init__(
        self,
        peers: Sequence[Peer],
        me: int,
        persister: Persister,
        apply_ch: ApplySink,
    ) -> None:
        self.peers = list(peers)
        self.me = me
        self.persister = persister
        self.apply_ch = apply_ch

        self._mu = threading.Lock()
        self._apply_cond = threading.Condition(self._mu)
        self._vote_lock = threading.Lock()
        self._dead = threading.Event()

        self.current_term = INIT_TERM
        self.voted_for = NO_VOTE
        self.role = Role.FOLLOWER
        self.vote_count = 0
        self.log = RaftLog()
        self.commit_index = 0
        self.last_applied = 0
        self.next_index = [0] * len(self.peers)
        self.match_index = [0] * len(self.peers)

        self._election_timer = _Timer(0)
        self._heartbeat_timer = _Timer(0)
        self._delay_election()

        self._read_persist(persister.read_raft_state())
        self._read_snapshot(persister.read_snapshot())

        self.next_index = [self.log.last_index() + 1] * len(self.peers)

        _logger.debug("server start: %s", self.me)
        _spawn(self._ticker)
        _spawn(self._commit_loop)

    # ------------------------------------------------------------------
    # timers and role changes

    def _delay_election(self) -> None:
        self._election_timer.reset(
            DELAY_ELECTION_MIN_TIME + random.randrange(DELAY_ELECTION_RANGE_SIZE)
        )

    def _reset_heartbeat(self) -> None:
        self._heartbeat_timer.reset(HEARTBEAT_INTERVAL)

    def _fast_opt(self) -> None:
        self._heartbeat_timer.reset(FAST_OPERATE_TIME)

    def _convert_to_follower(self, term: int) -> None:
        self.voted_for = NO_VOTE
        self.current_term = term
        self.role = Role.FOLLOWER

    def _convert_to_candidate(self) -> None:
        self.role = Role.CANDIDATE
        self.vote_count = 1
        self.voted_for = self.me
        self.current_term += 1

    def _convert_to_leader(self) -> None:
        self.role = Role.LEADER
        _logger.debug("new leader: %s", self.me)

    # ------------------------------------------------------------------
    # persistence

    def _persist(self) -> None:
        raftstate = pickle.dumps(
            (
                self.voted_for,
                self.current_term,
                self.log.entries,
                self.log.last_included_index,
                self.log.last_included_term,
            )
        )
        self.persister.save(raftstate, self.log.snapshot)

    def _read_persist(self, data: bytes) -> None:
        if not data:
            return
        try:
            voted_for, current_term, entries, last_index, last_term = pickle.loads(data)
        except (pickle.UnpicklingError, ValueError, TypeError, EOFError):
            _logger.debug("server[%s] read persist failed", self.me)
            return
        self.voted_for = voted_for
        self.current_term = current_term
        self.log = RaftLog(entries, last_index, last_term, self.log.snapshot)
        self.commit_index = last_index
        self.last_applied = last_index

    def _read_snapshot(self, data: bytes) -> None:
        if data:
            self.log.snapshot = data

    # ------------------------------------------------------------------
    # public interface

    def get_state(self) -> tuple[int, bool]:
        """Return the current term and whether this peer believes it leads."""
        with self._mu:
            return self.current_term, self.role == Role.LEADER

    def start(self, command: Any) -> tuple[int, int, bool]:
        """Begin agreement on ``command``; return ``(index, term, is_leader)``."""
        with self._mu:
            if self.role != Role.LEADER:
                return -1, -1, False
            index = self.log.append(self.current_term, command)
            self._persist()
            self._fast_opt()
            return index, self.current_term, True

    def snapshot(self, index: int, snapshot: bytes) -> None:
        """Trim the log through ``index``, which the service's snapshot covers."""
        with self._mu:
            if not (self.commit_index >= index > self.log.last_included_index):
                _logger.debug(
                    "server %s rejects snapshot at %s (commit %s, included %s)",
                    self.me, index, self.commit_index, self.log.last_included_index,
                )
                return
            if not self.log.compact(index, snapshot):
                return
            self.commit_index = max(index, self.commit_index)
            self.last_applied = max(index, self.last_applied)
            self._persist()

    def kill(self) -> None:
        self._dead.set()
        with self._mu:
            self._election_timer.stop()
            self._heartbeat_timer.stop()
            self._apply_cond.notify_all()
        _logger.debug("server killed: %s", self.me)

    def killed(self) -> bool:
        return self._dead.is_set()

    # ------------------------------------------------------------------
    # RPC handlers

    def request_vote(self, args: RequestVoteArgs) -> RequestVoteReply:
        reply = RequestVoteReply()
        with self._mu:
            if args.term < self.current_term:
                reply.term = self.current_term
                return reply
            if args.term > self.current_term:
                self._convert_to_follower(args.term)
                self._persist()
            has_ticket = self.voted_for in (NO_VOTE, args.candidate_id)
            if has_ticket and self.log.is_candidate_up_to_date(
                args.last_log_term, args.last_log_index
            ):
                self._convert_to_follower(args.term)
                self.voted_for = args.candidate_id
                self._delay_election()
                self._persist()
                reply.vote_granted = True
            reply.term = self.current_term
            return reply

    def append_entries(self, args: AppendEntriesArgs) -> AppendEntriesReply:
        reply = AppendEntriesReply()
        with self._mu:
            if args.term < self.current_term:
                reply.term = self.current_term
                return reply

            self._delay_election()
            if args.term > self.current_term:
                self._convert_to_follower(args.term)
                self._persist()

            if args.prev_log_index < self.log.last_included_index:
                reply.term = self.current_term
                reply.success = True
                return reply

            conflict = self.log.conflict(
                args.prev_log_index, args.prev_log_term, self.commit_index
            )
            if conflict is not None:
                reply.xterm, reply.xindex, reply.xlen = conflict
                reply.term = self.current_term
                return reply

            self.log.merge(args.prev_log_index, args.entries)
            self._persist()
            reply.success = True
            reply.term = self.current_term

            if args.leader_commit > self.commit_index:
                self.commit_index = min(args.leader_commit, self.log.last_index())
                self._apply_cond.notify()
            return reply

    def install_snapshot(self, args: InstallSnapshotArgs) -> InstallSnapshotReply:
        reply = InstallSnapshotReply()
        with self._mu:
            if args.term < self.current_term:
                reply.term = self.current_term
                return reply

            self._convert_to_follower(args.term)
            self._delay_election()

            installed = (
                args.last_included_index < self.log.last_included_index
                or args.last_included_index < self.commit_index
            )
            if installed:
                reply.term = self.current_term
                return reply

            self.log.install(args.last_included_index, args.last_included_term, args.data)
            self.commit_index = max(self.commit_index, args.last_included_index)
            self.last_applied = max(self.last_applied, args.last_included_index)
            self.apply_ch.put(
                ApplyMsg(
                    snapshot_valid=True,
                    snapshot=args.data,
                    snapshot_term=args.last_included_term,
                    snapshot_index=args.last_included_index,
                )
            )
            reply.term = self.current_term
            self._persist()
            return reply

    # ------------------------------------------------------------------
    # election

    def _ticker(self) -> None:
        while not self.killed():
            if not self._election_timer.wait():
                return
            with self._mu:
                if self.role != Role.LEADER:
                    _spawn(self._election)
                self._delay_election()

    def _election(self) -> None:
        with self._mu:
            self._convert_to_candidate()
            args = RequestVoteArgs(
                term=self.current_term,
                candidate_id=self.me,
                last_log_term=self.log.last_term(),
                last_log_index=self.log.last_index(),
            )
            for peer in range(len(self.peers)):
                if peer != self.me:
                    _spawn(self._check_vote, peer, args)

    def _ask_for_vote(self, peer: int, args: RequestVoteArgs) -> bool:
        reply = self.peers[peer].call("Raft.RequestVote", args)
        if reply is None:
            return False
        with self._mu:
            if args.term != self.current_term:
                return False
            if reply.term > self.current_term:
                self._convert_to_follower(reply.term)
                self._persist()
            return reply.vote_granted

    def _check_vote(self, peer: int, args: RequestVoteArgs) -> None:
        if not self._ask_for_vote(peer, args):
            return
        majority = len(self.peers) // 2
        with self._vote_lock:
            if self.vote_count > majority:
                return
            self.vote_count += 1
            if self.vote_count <= majority:
                return
            with self._mu:
                if self.role == Role.FOLLOWER:
                    return
                self._convert_to_leader()
                for i in range(len(self.peers)):
                    self.next_index[i] = self.log.last_index() + 1
                    self.match_index[i] = self.log.last_included_index
                _spawn(self._heartbeat)

    # ------------------------------------------------------------------
    # replication

    def _heartbeat(self) -> None:
        while not self.killed():
            if not self._heartbeat_timer.wait():
                return
            with self._mu:
                if self.role != Role.LEADER:
                    return
                for peer in range(len(self.peers)):
                    if peer != self.me:
                        self._replicate_to(peer)
            self._reset_heartbeat()

    def _replicate_to(self, peer: int) -> None:
        prev_log_index = self.next_index[peer] - 1
        if prev_log_index < self.log.last_included_index:
            _spawn(
                self._post_install_snapshot,
                peer,
                InstallSnapshotArgs(
                    term=self.current_term,
                    leader_id=self.me,
                    last_included_index=self.log.last_included_index,
                    last_included_term=self.log.last_included_term,
                    data=self.log.snapshot,
                ),
            )
            return
        if self.log.last_index() > prev_log_index:
            entries = self.log.entries_from(prev_log_index + 1)
        else:
            entries = []
        args = AppendEntriesArgs(
            term=self.current_term,
            leader_id=self.me,
            leader_commit=self.commit_index,
            prev_log_index=prev_log_index,
            prev_log_term=self.log.term_at(prev_log_index),
            entries=entries,
        )
        _spawn(self._post_append_entries, peer, args)

    def _post_append_entries(self, peer: int, args: AppendEntriesArgs) -> None:
        reply = self.peers[peer].call("Raft.AppendEntries", args)
        if reply is None:
            return
        with self._mu:
            if self.role != Role.LEADER or args.term != self.current_term:
                return
            if reply.success:
                self.match_index[peer] = max(
                    self.match_index[peer], args.prev_log_index + len(args.entries)
                )
                self.next_index[peer] = self.match_index[peer] + 1
                self.commit_index = self._seek_synchronized_index()
                self._apply_cond.notify()
                return
            if reply.term > self.current_term:
                self._convert_to_follower(reply.term)
                self._delay_election()
                self._persist()
                return
            if reply.term == self.current_term:
                self.next_index[peer] = self.log.next_index_after_conflict(
                    self.next_index[peer], reply.xterm, reply.xindex, reply.xlen
                )

    def _seek_synchronized_index(self) -> int:
        """Highest index replicated on a majority, counting only current-term entries."""
        index = self.log.last_index()
        while index > self.commit_index:
            synchronized = 1
            for peer in range(len(self.peers)):
                if peer == self.me:
                    continue
                if (
                    self.match_index[peer] >= index
                    and self.log.term_at(index) == self.current_term
                ):
                    synchronized += 1
            if synchronized > len(self.peers) // 2:
                break
            index -= 1
        return index

    def _post_install_snapshot(self, peer: int, args: InstallSnapshotArgs) -> None:
        reply = self.peers[peer].call("Raft.InstallSnapshot", args)
        if reply is None:
            return
        with self._mu:
            if self.role != Role.LEADER or args.term != self.current_term:
                return
            if reply.term > self.current_term:
                self._convert_to_follower(reply.term)
                self._delay_election()
                self._persist()
                return
            self.match_index[peer] = max(self.match_index[peer], args.last_included_index)
            self.next_index[peer] = self.match_index[peer] + 1

    # ------------------------------------------------------------------
    # applying committed entries

    def _commit_loop(self) -> None:
        while not self.killed():
            with self._apply_cond:
                while self.commit_index <= self.last_applied:
                    if self.killed():
                        return
                    self._apply_cond.wait(0.05)
                pending = []
                for index in range(self.last_applied + 1, self.commit_index + 1):
                    if index <= self.log.last_included_index:
                        continue
                    entry = self.log.entry_at(index)
                    pending.append(
                        ApplyMsg(
                            command_valid=True,
                            command=entry.command,
                            command_index=index,
                            command_term=entry.term,
                        )
                    )
            for msg in pending:
                with self._mu:
                    if msg.command_index != self.last_applied + 1:
                        continue
                self.apply_ch.put(msg)
                with self._mu:
                    if msg.command_index != self.last_applied + 1:
                        continue
                    self.last_applied = msg.command_index