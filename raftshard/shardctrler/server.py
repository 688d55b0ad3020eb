"""The replicated shard controller service, built on Raft."""

from __future__ import annotations

import copy
import queue
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from raftshard.raft.messages import ApplyMsg, Peer
from raftshard.raft.node import Raft
from raftshard.raft.persister import Persister
from raftshard.shardctrler.balancer import (
    move_shard,
    new_config,
    query_config,
    remove_groups,
)
from raftshard.shardctrler.common import (
    Config,
    Err,
    JoinArgs,
    JoinReply,
    LeaveArgs,
    LeaveReply,
    MoveArgs,
    MoveReply,
    QueryArgs,
    QueryReply,
)

JOIN = "Join"
LEAVE = "Leave"
MOVE = "Move"
QUERY = "Query"

RESPONDER_TIMEOUT = 0.5  # seconds a handler waits for its op to be applied


@dataclass
class Op:
    """A controller operation as it travels through the Raft log."""

    op_type: str
    servers: dict[int, list[str]] = field(default_factory=dict)
    gids: list[int] = field(default_factory=list)
    shard: int = 0
    gid: int = 0
    num: int = 0
    index: int = 0
    clerk: int = 0


@dataclass
class Record:
    """The outcome of an applied operation."""

    term: int = 0
    index: int = 0
    config: Config = field(default_factory=Config)
    err: Err | None = None


class ShardCtrler:
    """One replica of the shard controller.

    ``servers`` are the Raft endpoints of all replicas; the Raft peer is
    exposed as ``rf`` so endpoints can be pointed at it.
    """

    def __init__(self, servers: Sequence[Peer], me: int, persister: Persister) -> None:
        self.me = me
        self.configs: list[Config] = [Config()]
        self._mu = threading.Lock()
        self._dead = threading.Event()
        self._history: dict[int, Record] = {}
        self._waiters: dict[int, queue.Queue] = {}
        self._apply_ch: queue.Queue = queue.Queue()
        self.rf = Raft(servers, me, persister, self._apply_ch)
        threading.Thread(target=self._run, daemon=True).start()

    # ------------------------------------------------------------------
    # RPC handlers

    def join(self, args: JoinArgs) -> JoinReply:
        result = self._submit(
            Op(op_type=JOIN, servers=args.servers, index=args.index, clerk=args.clerk)
        )
        return JoinReply(wrong_leader=result.err == Err.WRONG_LEADER, err=result.err)

    def leave(self, args: LeaveArgs) -> LeaveReply:
        result = self._submit(
            Op(op_type=LEAVE, gids=list(args.gids), index=args.index, clerk=args.clerk)
        )
        return LeaveReply(wrong_leader=result.err == Err.WRONG_LEADER, err=result.err)

    def move(self, args: MoveArgs) -> MoveReply:
        result = self._submit(
            Op(
                op_type=MOVE,
                shard=args.shard,
                gid=args.gid,
                index=args.index,
                clerk=args.clerk,
            )
        )
        return MoveReply(wrong_leader=result.err == Err.WRONG_LEADER, err=result.err)

    def query(self, args: QueryArgs) -> QueryReply:
        result = self._submit(
            Op(op_type=QUERY, num=args.num, index=args.index, clerk=args.clerk)
        )
        return QueryReply(
            wrong_leader=result.err == Err.WRONG_LEADER,
            err=result.err,
            config=result.config,
        )

    def kill(self) -> None:
        self.rf.kill()
        self._dead.set()

    def killed(self) -> bool:
        return self._dead.is_set()

    # ------------------------------------------------------------------

    def _submit(self, op: Op) -> Record:
        with self._mu:
            done = self._history.get(op.clerk)
            if done is not None and done.index == op.index:
                return copy.deepcopy(done)

        index, term, is_leader = self.rf.start(op)
        if not is_leader:
            return Record(err=Err.WRONG_LEADER)

        waiter: queue.Queue = queue.Queue()
        with self._mu:
            self._waiters[index] = waiter
        try:
            outcome = waiter.get(timeout=RESPONDER_TIMEOUT)
        except queue.Empty:
            return Record(err=Err.TIMEOUT)
        finally:
            with self._mu:
                if self._waiters.get(index) is waiter:
                    del self._waiters[index]
        if outcome.term != term:
            return Record(err=Err.WRONG_LEADER)
        return outcome

    def _append_config(self, config: Config) -> None:
        if config.num > self.configs[-1].num:
            self.configs.append(config)

    def _execute(self, op: Op) -> Record:
        result = Record(index=op.index, err=Err.OK)
        try:
            if op.op_type == JOIN:
                self._append_config(new_config(self.configs, op.servers))
            elif op.op_type == LEAVE:
                self._append_config(remove_groups(self.configs, op.gids))
            elif op.op_type == MOVE:
                self._append_config(move_shard(self.configs, op.shard, op.gid))
            elif op.op_type == QUERY:
                result.config = query_config(self.configs, op.num)
        except (ValueError, IndexError):
            result.err = Err.OTHERS
        return result

    def _run(self) -> None:
        while not self.killed():
            try:
                msg: ApplyMsg = self._apply_ch.get(timeout=0.1)
            except queue.Empty:
                continue
            if not msg.command_valid:
                continue
            op = msg.command
            with self._mu:
                done = self._history.get(op.clerk)
                if done is not None and done.index >= op.index:
                    result = copy.deepcopy(done)
                else:
                    result = self._execute(op)
                    self._history[op.clerk] = result
                waiter = self._waiters.get(msg.command_index)
                if waiter is not None:
                    waiter.put(replace(copy.deepcopy(result), term=msg.command_term))