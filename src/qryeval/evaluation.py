"""
Evaluation context and the per-query driver.
"""

from typing import Dict, Iterable, Iterator, Optional, Tuple
import logging
import time

from tqdm import tqdm

from src.index_base import PostingStore, DocLengthStore
from .errors import QuerySyntaxError
from .operators import QueryOperator, ScoreOperator, QueryResult
from .query_parser import QueryParser
from .retrieval_models import RetrievalModel
from .score_list import ScoreList

logger = logging.getLogger(__name__)


class EvaluationContext:
    """
    Collaborators for one evaluation: the posting store and the document
    length oracle. Passed explicitly to every parse/evaluate call.

    Field statistics are cached per context; the collaborators are assumed
    not to change while a context is in use.
    """

    def __init__(self, index: PostingStore, doc_lengths: Optional[DocLengthStore] = None):
        """
        Initialize context.

        Args:
            index: Posting store answering (term, field) lookups
            doc_lengths: Document length oracle (default: the index itself)
        """
        self.index = index
        self.doc_lengths = doc_lengths if doc_lengths is not None else index
        self._collection_length: Dict[str, int] = {}
        self._avg_doc_length: Dict[str, float] = {}
        self._num_docs: Optional[int] = None

    def lookup_postings(self, term: str, field: str):
        return self.index.lookup_postings(term, field)

    def doc_length(self, field: str, docid: int) -> int:
        return self.doc_lengths.doc_length(field, docid)

    def collection_length(self, field: str) -> int:
        """Total tokens in a field (cached)."""
        if field not in self._collection_length:
            self._collection_length[field] = self.index.total_collection_tokens(field)
        return self._collection_length[field]

    def num_docs(self) -> int:
        if self._num_docs is None:
            self._num_docs = self.index.num_docs()
        return self._num_docs

    def average_doc_length(self, field: str) -> float:
        """Average field length over documents that have the field (cached)."""
        if field not in self._avg_doc_length:
            count = self.index.doc_count(field)
            self._avg_doc_length[field] = (
                self.collection_length(field) / count if count > 0 else 0.0
            )
        return self._avg_doc_length[field]

    def external_id(self, docid: int) -> str:
        return self.index.external_id(docid)

    def internal_id(self, external_id: str) -> int:
        return self.index.internal_id(external_id)

    def term_vector(self, docid: int, field: str):
        return self.index.term_vector(docid, field)


def evaluate_query(tree: QueryOperator, model: RetrievalModel,
                   context: EvaluationContext) -> ScoreList:
    """
    Evaluate a query tree and return its (unsorted) score list.

    A tree whose root produces an inverted list (a bare term or proximity
    operator) is scored through a SCORE operator.
    """
    if not tree.produces_scores:
        tree = ScoreOperator(tree)
    result: QueryResult = tree.evaluate(model, context)
    return result.score_list


class QueryEvaluator:
    """
    Parses, evaluates and ranks queries one at a time.
    """

    def __init__(self, model: RetrievalModel, context: EvaluationContext, tokenizer,
                 feedback=None, max_results: int = 100, show_progress: bool = True):
        """
        Initialize evaluator.

        Args:
            model: Retrieval model used for every query
            context: Evaluation context
            tokenizer: Tokenizer collaborator used by the parser
            feedback: Optional RelevanceFeedbackExpander
            max_results: Number of ranked documents kept per query
            show_progress: Whether run() shows a progress bar
        """
        self.model = model
        self.context = context
        self.parser = QueryParser(tokenizer)
        self.feedback = feedback
        self.max_results = max_results
        self.show_progress = show_progress

    def run_query(self, query_id: str, query: str) -> ScoreList:
        """
        Evaluate one query and return its ranking.

        Args:
            query_id: Query identifier (used by relevance feedback)
            query: Structured or unstructured query string

        Returns:
            ScoreList sorted by score, truncated to max_results
        """
        start_time = time.time()

        tree = self.parser.parse(query, self.model)
        logger.debug(f"Query {query_id}: {tree}")

        if self.feedback is not None:
            score_list = self.feedback.expand(tree, query_id, query)
        else:
            score_list = evaluate_query(tree, self.model, self.context)

        score_list.sort(self.context.external_id)
        score_list.truncate(self.max_results)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Query {query_id}: {len(score_list)} results in {elapsed_ms:.2f} ms")
        return score_list

    def run(self, queries: Iterable[Tuple[str, str]]) -> Iterator[Tuple[str, ScoreList]]:
        """
        Evaluate queries in order.

        Queries with syntax errors are logged and yield an empty ScoreList.

        Yields:
            Tuples of (query_id, ranked ScoreList)
        """
        queries = list(queries)
        for query_id, query in tqdm(queries, desc="Evaluating queries",
                                    disable=not self.show_progress):
            try:
                score_list = self.run_query(query_id, query)
            except QuerySyntaxError as e:
                logger.error(f"Query {query_id}: {e}")
                score_list = ScoreList()
            yield query_id, score_list
