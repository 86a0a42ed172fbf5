"""
Document score list produced by query evaluation.
"""

from typing import Callable, Iterator, List, NamedTuple


class ScoreEntry(NamedTuple):
    """A <docid, score> pair."""
    docid: int
    score: float


class ScoreList:
    """
    Ordered list of document scores.

    Operators append entries in ascending docid order while merging; the final
    ranking is produced with sort().
    """

    def __init__(self):
        self.scores: List[ScoreEntry] = []

    def add(self, docid: int, score: float):
        """
        Append a document score.

        Args:
            docid: Internal document id
            score: The document's score
        """
        self.scores.append(ScoreEntry(docid, float(score)))

    def get_docid(self, n: int) -> int:
        """Get the n'th document id."""
        return self.scores[n].docid

    def get_score(self, n: int) -> float:
        """Get the score of the n'th document."""
        return self.scores[n].score

    def get_doc_ids(self) -> List[int]:
        return [entry.docid for entry in self.scores]

    def as_dict(self) -> dict:
        """Map docid -> score."""
        return {entry.docid: entry.score for entry in self.scores}

    def sort(self, external_id: Callable[[int], str]):
        """
        Sort by score descending; ties are broken by ascending external id.

        Args:
            external_id: Maps an internal docid to its external identifier
        """
        self.scores.sort(key=lambda entry: (-entry.score, external_id(entry.docid)))

    def truncate(self, n: int):
        """Keep only the first n entries."""
        del self.scores[n:]

    def __len__(self) -> int:
        return len(self.scores)

    def __iter__(self) -> Iterator[ScoreEntry]:
        return iter(self.scores)

    def __eq__(self, other):
        if not isinstance(other, ScoreList):
            return NotImplemented
        return self.scores == other.scores

    def __repr__(self):
        head = ', '.join(f"({e.docid}, {e.score:.4f})" for e in self.scores[:5])
        more = ', ...' if len(self.scores) > 5 else ''
        return f"ScoreList([{head}{more}])"
