"""
Forward-only cursor used by the document-at-a-time merges.
"""

from typing import Iterable, Optional


class Cursor:
    """
    Cursor over a docid-ordered sequence of postings or score entries.

    State:
      - current entry (None once exhausted)
      - the remaining entries, consumed lazily

    A cursor cannot be reset; a restart means evaluating the operand again.
    """

    __slots__ = ("_entries", "current")

    def __init__(self, entries: Iterable):
        self._entries = iter(entries)
        self.current = next(self._entries, None)

    @property
    def exhausted(self) -> bool:
        return self.current is None

    def docid(self) -> Optional[int]:
        """Docid of the current entry, or None when exhausted."""
        return None if self.current is None else self.current.docid

    def advance(self) -> Optional[int]:
        """Move to the next entry and return its docid."""
        if self.current is not None:
            self.current = next(self._entries, None)
        return self.docid()

    def advance_to(self, target: int) -> Optional[int]:
        """Move to the first entry with docid >= target and return its docid."""
        while self.current is not None and self.current.docid < target:
            self.current = next(self._entries, None)
        return self.docid()
