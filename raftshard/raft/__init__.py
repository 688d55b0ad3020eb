"""Raft peers, their messages, replicated log and persistent storage."""