"""
Postings, inverted list and term vector data structures.
"""

from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
import bisect


@dataclass(frozen=True)
class Posting:
    """
    Occurrences of one term in one document field.

    Attributes:
        docid: Internal document identifier
        tf: Number of times the term appears in the field
        positions: Ascending 0-based token positions of the occurrences
    """
    docid: int
    tf: int
    positions: Tuple[int, ...] = ()

    @classmethod
    def from_positions(cls, docid: int, positions: Sequence[int]) -> 'Posting':
        """Create a posting whose tf is the number of positions."""
        ordered = tuple(sorted(positions))
        return cls(docid=docid, tf=len(ordered), positions=ordered)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'docid': self.docid,
            'tf': self.tf,
            'positions': list(self.positions)
        }


class InvertedList:
    """
    All postings of one term (or one proximity/synonym expression) in a field.
    Postings are strictly increasing by docid.
    """

    def __init__(self, field: str, postings: Sequence[Posting] = (),
                 ctf: Optional[int] = None):
        """
        Initialize inverted list.

        Args:
            field: Field the postings belong to
            postings: Postings ordered by docid
            ctf: Collection term frequency (default: sum of posting tfs)
        """
        self.field = field
        self.postings: Tuple[Posting, ...] = tuple(postings)
        self.ctf = ctf if ctf is not None else sum(p.tf for p in self.postings)

        for prev, cur in zip(self.postings, self.postings[1:]):
            if cur.docid <= prev.docid:
                raise ValueError(
                    f"Postings must be strictly increasing by docid "
                    f"({prev.docid} followed by {cur.docid})"
                )

    @property
    def df(self) -> int:
        """Number of documents in the list."""
        return len(self.postings)

    def get_doc_ids(self) -> List[int]:
        """Get list of all document IDs in this list."""
        return [p.docid for p in self.postings]

    def get_posting(self, docid: int) -> Optional[Posting]:
        """
        Get posting entry for a specific document.

        Args:
            docid: Document identifier

        Returns:
            Posting if found, None otherwise
        """
        idx = bisect.bisect_left(self.postings, docid, key=lambda p: p.docid)
        if idx < len(self.postings) and self.postings[idx].docid == docid:
            return self.postings[idx]
        return None

    def get_positions(self, docid: int) -> Tuple[int, ...]:
        """Get positions of the term in a specific document."""
        posting = self.get_posting(docid)
        return posting.positions if posting else ()

    def __len__(self) -> int:
        return len(self.postings)

    def __iter__(self):
        return iter(self.postings)

    def __repr__(self):
        return f"InvertedList(field={self.field!r}, df={self.df}, ctf={self.ctf})"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'field': self.field,
            'df': self.df,
            'ctf': self.ctf,
            'postings': [p.to_dict() for p in self.postings]
        }


@dataclass
class TermVector:
    """
    Stems of one document field with their frequencies.

    Attributes:
        docid: Internal document identifier
        field: Field name
        length: Number of tokens in the field
        tf: Stem -> frequency in this document
        ctf: Stem -> frequency in the whole collection (same field)
    """
    docid: int
    field: str
    length: int = 0
    tf: Dict[str, int] = field(default_factory=dict)
    ctf: Dict[str, int] = field(default_factory=dict)

    def stems(self) -> List[str]:
        """Stems in the document, sorted."""
        return sorted(self.tf)

    def __len__(self) -> int:
        return len(self.tf)
