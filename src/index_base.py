from abc import ABC, abstractmethod
from enum import Enum

# Fields a query term may be restricted to with the ``term.field`` suffix
class Field(Enum):
    URL = 'url'
    KEYWORDS = 'keywords'
    TITLE = 'title'
    BODY = 'body'
    INLINK = 'inlink'

    @classmethod
    def from_suffix(cls, suffix: str):
        """Return the Field for a query suffix, or None if it is not a known field."""
        try:
            return cls(suffix.lower())
        except ValueError:
            return None


DEFAULT_FIELD = Field.BODY.value


class PostingStore(ABC):
    """
    Read-only view of an inverted index, queried by (term, field).

    Implementations must be safe for repeated sequential reads; the engine
    never writes through this interface.

    Sample usage:
        store = MemoryIndex()
        inv_list = store.lookup_postings('appl', 'body')
        print(inv_list.df, inv_list.ctf)
    """

    @abstractmethod
    def lookup_postings(self, term: str, field: str):
        """
        Fetch the inverted list of a term in a field.

        Args:
            term: Normalized stem
            field: Field name

        Returns:
            InvertedList ordered by docid

        Raises:
            TermNotFoundError: If the term does not occur in the field
        """
        pass

    @abstractmethod
    def total_collection_tokens(self, field: str) -> int:
        """Total number of tokens in a field across the collection."""
        pass

    @abstractmethod
    def num_docs(self) -> int:
        """Number of documents in the collection."""
        pass

    @abstractmethod
    def doc_count(self, field: str) -> int:
        """Number of documents that have at least one token in the field."""
        pass

    @abstractmethod
    def term_vector(self, docid: int, field: str):
        """
        Fetch the term vector of one document field.

        Returns:
            TermVector with per-document tf and collection ctf for every stem
        """
        pass

    @abstractmethod
    def external_id(self, docid: int) -> str:
        """Map an internal docid to its external identifier."""
        pass

    @abstractmethod
    def internal_id(self, external_id: str) -> int:
        """
        Map an external identifier to an internal docid.

        Raises:
            ExternalIdNotFoundError: If no document has this identifier
        """
        pass


class DocLengthStore(ABC):
    """Document length oracle, queried by (field, docid)."""

    @abstractmethod
    def doc_length(self, field: str, docid: int) -> int:
        """Number of tokens of a document in a field."""
        pass
