"""Raft consensus, a shard controller, and the client and state machine of a sharded key/value store."""

__version__ = "0.1.0"