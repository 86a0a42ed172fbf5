"""
Pseudo relevance feedback for the Indri retrieval model.

The top documents of an initial ranking vote for expansion terms:

    weight(t) = sum_d p(t|d) * score(d) * log(C / ctf(t))
    p(t|d)    = (tf(t, d) + fb_mu * ctf(t) / C) / (|d| + fb_mu)

The highest weighted terms form a #WAND expansion query that is combined
with the original query:

    #WAND( w #AND( original ) 1-w #WAND( weight_1 t_1 ... ) )
"""

from typing import Dict, List, Mapping, Optional, Sequence, TextIO, Tuple
import heapq
import logging
import math
import re

from src.index_base import DEFAULT_FIELD
from .errors import IllegalStateError
from .evaluation import EvaluationContext, evaluate_query
from .operators import AndOperator, QueryOperator, TermOperator, WandOperator
from .retrieval_models import ModelType, RetrievalModel
from .score_list import ScoreList

logger = logging.getLogger(__name__)

# Stems that could not be written back as query terms
_UNSAFE_STEM = re.compile(r'[\s.,()#]')


class RelevanceFeedbackExpander:
    """Expands queries with terms from top-ranked documents."""

    def __init__(self, model: RetrievalModel, context: EvaluationContext,
                 fb_docs: int = 10, fb_terms: int = 10, fb_mu: float = 0.0,
                 fb_orig_weight: float = 0.5,
                 initial_rankings: Optional[Mapping[str, Sequence[Tuple[str, float]]]] = None,
                 field: str = DEFAULT_FIELD,
                 expansion_writer: Optional[TextIO] = None):
        """
        Initialize expander.

        Args:
            model: Retrieval model; must be Indri
            context: Evaluation context
            fb_docs: Number of feedback documents
            fb_terms: Number of expansion terms
            fb_mu: Dirichlet prior used for p(t|d)
            fb_orig_weight: Weight of the original query in the combined query
            initial_rankings: Query id -> ranked (external id, score) pairs; when
                absent the original query is evaluated to find feedback documents
            field: Field the term vectors and expansion terms come from
            expansion_writer: Optional text stream receiving "qid: expansion query" lines

        Raises:
            IllegalStateError: If the model is not Indri
        """
        if model.model_type is not ModelType.INDRI:
            raise IllegalStateError(
                f"Relevance feedback requires the Indri retrieval model, got {model}")
        if fb_docs < 1 or fb_terms < 1:
            raise ValueError(f"fb_docs and fb_terms must be positive ({fb_docs}, {fb_terms})")
        if fb_mu < 0:
            raise ValueError(f"fb_mu must be non-negative, got {fb_mu}")
        if not 0.0 <= fb_orig_weight <= 1.0:
            raise ValueError(f"fb_orig_weight must be in [0, 1], got {fb_orig_weight}")

        self.model = model
        self.context = context
        self.fb_docs = fb_docs
        self.fb_terms = fb_terms
        self.fb_mu = fb_mu
        self.fb_orig_weight = fb_orig_weight
        self.initial_rankings = initial_rankings
        self.field = field
        self.expansion_writer = expansion_writer

    def expand(self, tree: QueryOperator, query_id: str, original_query: str) -> ScoreList:
        """
        Evaluate a query with relevance feedback.

        Args:
            tree: Parsed original query
            query_id: Query identifier (key into the initial rankings)
            original_query: Original query string

        Returns:
            ScoreList of the combined query (unsorted)
        """
        expansion = self.build_expansion_query(tree, query_id)

        if self.expansion_writer is not None:
            self.expansion_writer.write(f"{query_id}: {expansion_query_string(expansion)}\n")

        combined = self.combine(tree, expansion)
        logger.debug(f"Query {query_id} ({original_query!r}) expanded to {combined}")
        return evaluate_query(combined, self.model, self.context)

    def combine(self, tree: QueryOperator, expansion: QueryOperator) -> WandOperator:
        """Weighted combination of the original and the expansion query."""
        return WandOperator(
            AndOperator(tree),
            expansion,
            weights=[self.fb_orig_weight, 1.0 - self.fb_orig_weight],
        )

    def build_expansion_query(self, tree: QueryOperator, query_id: str) -> WandOperator:
        """Select expansion terms and return them as a #WAND query."""
        feedback_docs = self.feedback_documents(tree, query_id)
        weights = self.term_weights(feedback_docs)
        top_terms = self.select_terms(weights)

        logger.info(f"Query {query_id}: {len(feedback_docs)} feedback documents, "
                    f"{len(weights)} candidate terms, {len(top_terms)} expansion terms")

        terms = [TermOperator(stem, self.field) for stem, _ in top_terms]
        return WandOperator(*terms, weights=[weight for _, weight in top_terms])

    def feedback_documents(self, tree: QueryOperator, query_id: str) -> List[Tuple[int, float]]:
        """
        Top documents with their scores, in rank order.

        Returns:
            List of (internal docid, score)
        """
        if self.initial_rankings is not None and query_id in self.initial_rankings:
            ranking = self.initial_rankings[query_id][:self.fb_docs]
            return [(self.context.internal_id(external_id), float(score))
                    for external_id, score in ranking]

        if self.initial_rankings is not None:
            logger.warning(f"No initial ranking for query {query_id}; retrieving feedback documents")

        score_list = evaluate_query(tree, self.model, self.context)
        score_list.sort(self.context.external_id)
        score_list.truncate(self.fb_docs)
        return [(entry.docid, entry.score) for entry in score_list]

    def term_weights(self, feedback_docs: Sequence[Tuple[int, float]]) -> Dict[str, float]:
        """
        Accumulate the expansion weight of every candidate stem.

        Every stem seen in any feedback document is scored against every
        feedback document, with tf = 0 where the stem is absent.
        """
        collection_length = self.context.collection_length(self.field)
        vectors = [self.context.term_vector(docid, self.field) for docid, _ in feedback_docs]

        ctf: Dict[str, int] = {}
        for vector in vectors:
            for stem in vector.stems():
                if stem not in ctf and not _UNSAFE_STEM.search(stem):
                    ctf[stem] = vector.ctf[stem]

        weights: Dict[str, float] = dict.fromkeys(sorted(ctf), 0.0)
        if collection_length <= 0:
            return weights

        for vector, (docid, doc_score) in zip(vectors, feedback_docs):
            doc_len = self.context.doc_length(self.field, docid)
            if doc_len + self.fb_mu <= 0:
                continue
            for stem in weights:
                p_mle = ctf[stem] / collection_length
                p_t_d = (vector.tf.get(stem, 0) + self.fb_mu * p_mle) / (doc_len + self.fb_mu)
                idf = math.log(collection_length / ctf[stem])
                weights[stem] += p_t_d * doc_score * idf

        return weights

    def select_terms(self, weights: Mapping[str, float]) -> List[Tuple[str, float]]:
        """Top fb_terms (stem, weight) pairs with a positive weight; ties broken by stem."""
        candidates = [(stem, weight) for stem, weight in weights.items() if weight > 0]
        return heapq.nsmallest(self.fb_terms, candidates,
                               key=lambda item: (-item[1], item[0]))


def expansion_query_string(expansion: WandOperator) -> str:
    """Render an expansion query in the form written to the expansion query file."""
    inner = ''.join(f"{weight:.4f} {arg.term} "
                    for weight, arg in zip(expansion.weights, expansion.args))
    return f"#WAND( {inner})"
