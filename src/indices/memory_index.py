"""
In-memory positional index implementing the PostingStore and DocLengthStore
collaborator interfaces.
"""

from typing import Dict, List, Mapping, Sequence
from collections import defaultdict
import logging

from src.index_base import PostingStore, DocLengthStore
from src.qryeval.errors import ExternalIdNotFoundError, TermNotFoundError
from src.qryeval.postings import InvertedList, Posting, TermVector

logger = logging.getLogger(__name__)


class MemoryIndex(PostingStore, DocLengthStore):
    """
    Fielded positional inverted index held in memory.
    Maps (field, term) to postings, and keeps document lengths and term
    vectors per field.
    """

    def __init__(self):
        """Initialize empty index."""
        # field -> term -> docid -> positions
        self.dictionary: Dict[str, Dict[str, Dict[int, List[int]]]] = defaultdict(dict)
        # field -> term -> collection term frequency
        self._ctf: Dict[str, Dict[str, int]] = defaultdict(dict)
        # field -> docid -> length
        self._doc_lengths: Dict[str, Dict[int, int]] = defaultdict(dict)
        # (docid, field) -> term -> tf
        self._doc_terms: Dict[tuple, Dict[str, int]] = {}

        self._doc_id_to_internal: Dict[str, int] = {}
        self._internal_to_doc_id: Dict[int, str] = {}
        self._next_internal_id = 0

    def add_document(self, external_id: str, fields: Mapping[str, Sequence[str]]) -> int:
        """
        Add a document to the index.

        Args:
            external_id: External document identifier
            fields: Field name -> tokens (already normalized)

        Returns:
            Internal document ID
        """
        if external_id in self._doc_id_to_internal:
            raise ValueError(f"Document already indexed: {external_id}")

        docid = self._next_internal_id
        self._next_internal_id += 1
        self._doc_id_to_internal[external_id] = docid
        self._internal_to_doc_id[docid] = external_id

        for field, tokens in fields.items():
            # Collect positions for each term
            term_positions = defaultdict(list)
            for position, token in enumerate(tokens):
                term_positions[token].append(position)

            postings = self.dictionary[field]
            ctf = self._ctf[field]
            for term, positions in term_positions.items():
                postings.setdefault(term, {})[docid] = positions
                ctf[term] = ctf.get(term, 0) + len(positions)

            self._doc_lengths[field][docid] = len(tokens)
            self._doc_terms[(docid, field)] = {
                term: len(positions) for term, positions in term_positions.items()
            }

        return docid

    def lookup_postings(self, term: str, field: str) -> InvertedList:
        docs = self.dictionary.get(field, {}).get(term)
        if not docs:
            raise TermNotFoundError(term, field)
        postings = [Posting.from_positions(docid, docs[docid]) for docid in sorted(docs)]
        return InvertedList(field, postings, ctf=self._ctf[field][term])

    def doc_length(self, field: str, docid: int) -> int:
        return self._doc_lengths.get(field, {}).get(docid, 0)

    def total_collection_tokens(self, field: str) -> int:
        return sum(self._doc_lengths.get(field, {}).values())

    def num_docs(self) -> int:
        return len(self._internal_to_doc_id)

    def doc_count(self, field: str) -> int:
        return sum(1 for length in self._doc_lengths.get(field, {}).values() if length > 0)

    def term_vector(self, docid: int, field: str) -> TermVector:
        tf = dict(self._doc_terms.get((docid, field), {}))
        ctf = {term: self._ctf[field][term] for term in tf}
        return TermVector(docid=docid, field=field, length=self.doc_length(field, docid),
                          tf=tf, ctf=ctf)

    def external_id(self, docid: int) -> str:
        return self._internal_to_doc_id[docid]

    def internal_id(self, external_id: str) -> int:
        try:
            return self._doc_id_to_internal[external_id]
        except KeyError:
            raise ExternalIdNotFoundError(external_id) from None

    def get_statistics(self) -> Dict:
        """Get index statistics."""
        return {
            'num_documents': self.num_docs(),
            'fields': {
                field: {
                    'vocabulary_size': len(terms),
                    'total_tokens': self.total_collection_tokens(field),
                    'doc_count': self.doc_count(field),
                }
                for field, terms in self.dictionary.items()
            }
        }
