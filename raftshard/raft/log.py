"""A Raft log whose head may be compacted into a snapshot."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from raftshard.raft.messages import SENTINEL_COMMAND, Entry


class RaftLog:
    """Log entries addressed by logical index, with snapshot bookkeeping.

    The first stored entry stands for the last entry covered by the
    snapshot (or is a sentinel on a fresh log), so the entry at logical
    index ``last_included_index`` is always present and its term is known.
    """

    def __init__(
        self,
        entries: Iterable[Entry] | None = None,
        last_included_index: int = 0,
        last_included_term: int = 0,
        snapshot: bytes = b"",
    ) -> None:
        self.entries: list[Entry] = (
            list(entries)
            if entries is not None
            else [Entry(term=0, index=-1, command=SENTINEL_COMMAND)]
        )
        self.last_included_index = last_included_index
        self.last_included_term = last_included_term
        self.snapshot = snapshot

    def __len__(self) -> int:
        return len(self.entries)

    def _physical(self, index: int) -> int:
        position = index - self.last_included_index
        if not 0 <= position < len(self.entries):
            raise IndexError(
                f"log index {index} outside "
                f"[{self.last_included_index}, {self.last_index()}]"
            )
        return position

    def last_index(self) -> int:
        return self.last_included_index + len(self.entries) - 1

    def last_term(self) -> int:
        return self.entries[-1].term

    def term_at(self, index: int) -> int:
        return self.entries[self._physical(index)].term

    def entry_at(self, index: int) -> Entry:
        return self.entries[self._physical(index)]

    def entries_from(self, index: int) -> list[Entry]:
        """Return the entries from ``index`` to the end; empty past the end."""
        if index == self.last_index() + 1:
            return []
        return self.entries[self._physical(index):]

    def append(self, term: int, command: Any) -> int:
        """Append a new entry and return its logical index."""
        index = self.last_index() + 1
        self.entries.append(Entry(term=term, index=index, command=command))
        return index

    def is_candidate_up_to_date(self, last_log_term: int, last_log_index: int) -> bool:
        """Whether a candidate's log is at least as up to date as this one."""
        if last_log_term > self.last_term():
            return True
        return last_log_term == self.last_term() and last_log_index >= self.last_index()

    def conflict(
        self, prev_log_index: int, prev_log_term: int, commit_index: int
    ) -> tuple[int, int, int] | None:
        """Check the entry before new ones; return ``(xterm, xindex, xlen)`` on mismatch.

        ``None`` means the log holds ``prev_log_index`` with ``prev_log_term``.
        A log that is too short yields ``xterm == -1``.
        """
        length = self.last_index() + 1
        if prev_log_index >= length:
            return -1, 0, length
        xterm = self.term_at(prev_log_index)
        if xterm == prev_log_term:
            return None
        rollback = prev_log_index
        while rollback > commit_index and self.term_at(rollback) == xterm:
            rollback -= 1
        return xterm, rollback + 1, length

    def merge(self, prev_log_index: int, entries: Iterable[Entry]) -> None:
        """Merge a leader's entries that follow ``prev_log_index``.

        Existing entries are kept until the first one whose term differs;
        from there the log is replaced by the leader's entries.
        """
        incoming = list(entries)
        base = self._physical(prev_log_index) + 1
        for offset, entry in enumerate(incoming):
            position = base + offset
            if position >= len(self.entries):
                self.entries.extend(incoming[offset:])
                return
            if self.entries[position].term != entry.term:
                del self.entries[position:]
                self.entries.extend(incoming[offset:])
                return

    def compact(self, index: int, snapshot: bytes) -> bool:
        """Drop entries before ``index``, keeping it as the new head.

        Returns False, changing nothing, if ``index`` is not newer than the
        current snapshot or lies beyond the end of the log.
        """
        if index <= self.last_included_index or index > self.last_index():
            return False
        position = self._physical(index)
        self.snapshot = snapshot
        self.last_included_term = self.entries[position].term
        self.entries = self.entries[position:]
        self.last_included_index = index
        return True

    def install(self, last_included_index: int, last_included_term: int, data: bytes) -> None:
        """Replace the head of the log with a snapshot sent by the leader."""
        position = last_included_index - self.last_included_index
        # The retained-suffix test compares the stored term with the index.
        if 0 <= position < len(self.entries) and self.entries[position].term == last_included_index:
            self.entries = self.entries[position:]
        else:
            self.entries = [
                Entry(
                    term=self.last_included_term,
                    index=self.last_included_index,
                    command=SENTINEL_COMMAND,
                )
            ]
        self.snapshot = data
        self.last_included_index = last_included_index
        self.last_included_term = last_included_term

    def next_index_after_conflict(
        self, next_index: int, xterm: int, xindex: int, xlen: int
    ) -> int:
        """Where a leader should resume sending after a follower's rejection."""
        base = self.last_included_index
        if xterm == -1:
            return max(base, xlen)
        rollback = max(base, next_index - 1)
        while rollback > base and self.term_at(rollback) > xterm:
            rollback -= 1
        term = self.term_at(rollback)
        if rollback == base and term > xterm:
            return base
        if term != xterm:
            return max(base, xindex)
        return rollback + 1