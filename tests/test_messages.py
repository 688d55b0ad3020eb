from raftshard.raft.messages import (
    AppendEntriesArgs,
    AppendEntriesReply,
    ApplyMsg,
    Entry,
    InstallSnapshotArgs,
    InstallSnapshotReply,
    Peer,
    RequestVoteArgs,
    RequestVoteReply,
    Role,
)


class _Echo:
    def __init__(self):
        self.seen = []

    def request_vote(self, args):
        self.seen.append(args)
        args.term += 1
        return RequestVoteReply(term=args.term, vote_granted=True)

    def append_entries(self, args):
        self.seen.append(args)
        return AppendEntriesReply(term=args.term, success=True)


def test_role_ordering_matches_source():
    assert Role(0) is Role.FOLLOWER
    assert Role(1) is Role.CANDIDATE
    assert Role(2) is Role.LEADER
    assert Role(0) < Role(1) < Role(2)


def test_role_string_names():
    assert str(Role(2)) == "Leader"
    assert str(Role(1)) == "Candidate"
    assert str(Role(0)) == "Follower"


def test_peer_dispatches_go_style_method_name():
    target = _Echo()
    peer = Peer(target)
    args = RequestVoteArgs(term=3, candidate_id=1, last_log_term=2, last_log_index=5)
    reply = peer.call("Raft.RequestVote", args)
    assert reply == RequestVoteReply(term=4, vote_granted=True)
    assert len(target.seen) == 1


def test_peer_dispatches_snake_case_name():
    target = _Echo()
    peer = Peer(target)
    args = AppendEntriesArgs(term=7, leader_id=0, leader_commit=0, prev_log_index=0)
    reply = peer.call("append_entries", args)
    assert reply.success is True
    assert reply.term == 7


def test_peer_isolates_arguments():
    target = _Echo()
    peer = Peer(target)
    args = RequestVoteArgs(term=3, candidate_id=1, last_log_term=2, last_log_index=5)
    peer.call("Raft.RequestVote", args)
    assert args.term == 3
    assert target.seen[0] is not args


def test_disconnected_peer_returns_none():
    target = _Echo()
    peer = Peer(target, connected=False)
    args = RequestVoteArgs(term=1, candidate_id=0, last_log_term=0, last_log_index=0)
    assert peer.call("Raft.RequestVote", args) is None
    assert target.seen == []


def test_peer_without_target_or_handler_returns_none():
    assert Peer().call("Raft.RequestVote", None) is None
    assert Peer(_Echo()).call("Raft.InstallSnapshot", None) is None


def test_apply_msg_defaults_are_invalid():
    msg = ApplyMsg()
    assert msg.command_valid is False
    assert msg.snapshot_valid is False
    assert msg.snapshot == b""


def test_append_entries_default_entries_not_shared():
    a = AppendEntriesArgs(term=1, leader_id=0, leader_commit=0, prev_log_index=0)
    b = AppendEntriesArgs(term=1, leader_id=0, leader_commit=0, prev_log_index=0)
    a.entries.append(Entry(term=1, index=1, command="x"))
    assert b.entries == []
    assert a.entries[0].command == "x"


def test_install_snapshot_round_trip_fields():
    args = InstallSnapshotArgs(
        term=2, leader_id=1, last_included_index=9, last_included_term=2, data=b"snap"
    )
    assert args.data == b"snap"
    assert args.last_included_index == 9
    assert InstallSnapshotReply().term == 0