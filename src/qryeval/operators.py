"""
Query operator tree and its evaluation algorithms.

Two kinds of operators:
- Inverted-list operators (TERM, SYN, NEAR/n, WINDOW/n) produce postings with
  positions, so they can be nested inside each other.
- Score-list operators (SCORE, AND, OR, SUM, WAND, WSUM) produce document
  scores. Their inverted-list arguments are scored through an implicit SCORE
  operator at evaluation time.

All merges are document-at-a-time over docid-ordered cursors. Nodes keep no
evaluation state, so one tree can be evaluated any number of times.
"""

from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple
from abc import ABC, abstractmethod
import heapq
import logging
import math

from src.index_base import DEFAULT_FIELD, Field
from .cursor import Cursor
from .errors import QuerySyntaxError, TermNotFoundError, UnsupportedModelError
from .postings import InvertedList, Posting
from .retrieval_models import ModelType, RetrievalModel
from .score_list import ScoreList

logger = logging.getLogger(__name__)


class QueryResult:
    """
    Result of evaluating one operator.

    Attributes:
        score_list: Document scores in ascending docid order
        inverted_list: Postings (only populated by inverted-list operators)
    """

    def __init__(self, score_list: Optional[ScoreList] = None,
                 inverted_list: Optional[InvertedList] = None,
                 default_scorer: Optional[Callable[[int], float]] = None):
        self.score_list = score_list if score_list is not None else ScoreList()
        self.inverted_list = inverted_list if inverted_list is not None else InvertedList(DEFAULT_FIELD)
        self._default_scorer = default_scorer

    def default_score(self, docid: int) -> float:
        """
        Score for a document this operator did not match.
        0.0 except for models that smooth over the whole vocabulary.
        """
        if self._default_scorer is None:
            return 0.0
        return self._default_scorer(docid)


# ---------------------------------------------------------------------------
# Cursor merges
# ---------------------------------------------------------------------------

def intersect(cursors: Sequence[Cursor]) -> Iterator[Tuple[int, list]]:
    """
    DAAT intersection over docid-ordered cursors.

    The cursor with the smallest docid is advanced until all cursors agree;
    the scan ends as soon as any cursor is exhausted.

    Yields:
        (docid, [current entry of each cursor])
    """
    if not cursors:
        return
    while True:
        docids = [cursor.docid() for cursor in cursors]
        if any(docid is None for docid in docids):
            return
        low = min(docids)
        if low == max(docids):
            yield low, [cursor.current for cursor in cursors]
            for cursor in cursors:
                cursor.advance()
        else:
            cursors[docids.index(low)].advance()


def union(cursors: Sequence[Cursor]) -> Iterator[Tuple[int, Dict[int, object]]]:
    """
    DAAT union over docid-ordered cursors (multiway heap merge).

    Yields:
        (docid, {cursor index: entry}) for every docid in any cursor, ascending
    """
    heap: List[Tuple[int, int]] = []
    for i, cursor in enumerate(cursors):
        if not cursor.exhausted:
            heap.append((cursor.docid(), i))
    heapq.heapify(heap)

    while heap:
        docid, i = heapq.heappop(heap)
        matched = {i: cursors[i].current}
        while heap and heap[0][0] == docid:
            _, j = heapq.heappop(heap)
            matched[j] = cursors[j].current
        for j in matched:
            nxt = cursors[j].advance()
            if nxt is not None:
                heapq.heappush(heap, (nxt, j))
        yield docid, matched


def _weighted_geometric_mean(scores: Sequence[float], weights: Sequence[float]) -> float:
    total = 0.0
    for score, weight in zip(scores, weights):
        if weight == 0:
            continue
        if score <= 0:
            return 0.0
        total += weight * math.log(score)
    return math.exp(total)


def _weighted_mean(scores: Sequence[float], weights: Sequence[float]) -> float:
    return sum(weight * score for score, weight in zip(scores, weights))


def _probabilistic_or(scores: Sequence[float]) -> float:
    product = 1.0
    for score in scores:
        product *= 1.0 - score
    return 1.0 - product


# ---------------------------------------------------------------------------
# Operator base classes
# ---------------------------------------------------------------------------

class QueryOperator(ABC):
    """Base class for query operators."""

    name: str = ''
    produces_scores: bool = True
    weighted: bool = False

    def __init__(self, *args: 'QueryOperator'):
        self.args: List[QueryOperator] = list(args)

    def add(self, arg: 'QueryOperator'):
        """Append an argument."""
        self.args.append(arg)

    @abstractmethod
    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        """
        Evaluate the operator, including its arguments.

        Args:
            model: Retrieval model that controls scoring
            context: EvaluationContext with the index collaborators

        Returns:
            QueryResult
        """
        pass

    def __str__(self):
        inner = ''.join(f"{arg} " for arg in self.args)
        return f"{self.name}( {inner})"

    def __repr__(self):
        return f"<{self.__class__.__name__} {self}>"


class InvertedListOperator(QueryOperator):
    """Operators whose result is an inverted list with positions."""

    produces_scores = False

    @property
    def field(self) -> str:
        """Field of the result (the field of the first argument)."""
        for arg in self.args:
            if isinstance(arg, InvertedListOperator):
                return arg.field
        return DEFAULT_FIELD

    def _evaluate_lists(self, model: RetrievalModel, context) -> List[InvertedList]:
        lists = []
        for arg in self.args:
            if arg.produces_scores:
                raise QuerySyntaxError(f"{self.name} only accepts terms and proximity operators, "
                                       f"got {arg.name}")
            lists.append(arg.evaluate(model, context).inverted_list)
        return lists


class ScoreListOperator(QueryOperator):
    """Operators whose result is a score list."""

    def _evaluate_args(self, model: RetrievalModel, context) -> List[QueryResult]:
        results = []
        for arg in self.args:
            if not arg.produces_scores:
                arg = ScoreOperator(arg)
            results.append(arg.evaluate(model, context))
        return results

    def _combine_union(self, results: List[QueryResult],
                       combine: Callable[[List[float]], float]) -> QueryResult:
        """
        Score every document matched by any argument; arguments that did not
        match a document contribute their default score.
        """
        score_list = ScoreList()
        cursors = [Cursor(result.score_list) for result in results]
        for docid, matched in union(cursors):
            scores = [
                matched[i].score if i in matched else result.default_score(docid)
                for i, result in enumerate(results)
            ]
            score_list.add(docid, combine(scores))

        def default_scorer(docid: int) -> float:
            return combine([result.default_score(docid) for result in results])

        return QueryResult(score_list=score_list, default_scorer=default_scorer)


# ---------------------------------------------------------------------------
# Inverted-list operators
# ---------------------------------------------------------------------------

class TermOperator(InvertedListOperator):
    """A single stem in a field."""

    name = '#TERM'

    def __init__(self, term: str, field: str = DEFAULT_FIELD):
        super().__init__()
        self.term = term
        self._field = field

    @property
    def field(self) -> str:
        return self._field

    def add(self, arg: QueryOperator):
        raise QuerySyntaxError(f"A term cannot take arguments: {self}")

    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        try:
            inverted_list = context.lookup_postings(self.term, self._field)
        except TermNotFoundError:
            logger.debug(f"Term not in index: {self}")
            inverted_list = InvertedList(self._field)
        return QueryResult(inverted_list=inverted_list)

    def __str__(self):
        # A dotted body stem is written bare so that it parses back as one term.
        # Dotted stems in other fields have no parseable form.
        if self._field == DEFAULT_FIELD and self.term.count('.') == 1:
            if Field.from_suffix(self.term.split('.')[1]) is None:
                return self.term
        return f"{self.term}.{self._field}"


class SynOperator(InvertedListOperator):
    """Treats its arguments as one term: postings and positions are merged."""

    name = '#SYN'

    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        field = self.field
        lists = []
        for inverted_list in self._evaluate_lists(model, context):
            if inverted_list.field != field:
                logger.warning(f"{self.name}: ignoring argument in field "
                               f"'{inverted_list.field}' (expected '{field}')")
                continue
            lists.append(inverted_list)

        postings = []
        for docid, matched in union([Cursor(lst.postings) for lst in lists]):
            positions = [pos for posting in matched.values() for pos in posting.positions]
            postings.append(Posting.from_positions(docid, positions))

        return QueryResult(inverted_list=InvertedList(field, postings))


class ProximityOperator(InvertedListOperator):
    """Base for NEAR/n and WINDOW/n: positional matching within candidate documents."""

    def __init__(self, distance: int, *args: QueryOperator):
        super().__init__(*args)
        if distance < 1:
            raise QuerySyntaxError(f"{self.name} distance must be a positive integer, got {distance}")
        self.distance = distance

    @abstractmethod
    def match_positions(self, positions: List[Sequence[int]]) -> List[int]:
        """
        Find matches in one document.

        Args:
            positions: Ascending position list of each argument, in argument order

        Returns:
            One recorded position per match
        """
        pass

    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        lists = self._evaluate_lists(model, context)
        field = lists[0].field if lists else self.field

        postings = []
        for docid, entries in intersect([Cursor(lst.postings) for lst in lists]):
            matches = self.match_positions([posting.positions for posting in entries])
            if matches:
                postings.append(Posting(docid=docid, tf=len(matches), positions=tuple(matches)))

        logger.debug(f"{self}: {len(postings)} matching documents")
        return QueryResult(inverted_list=InvertedList(field, postings))

    def __str__(self):
        inner = ''.join(f"{arg} " for arg in self.args)
        return f"{self.name}/{self.distance}( {inner})"


class NearOperator(ProximityOperator):
    """
    Ordered proximity: the arguments appear in order, each within `distance`
    positions after the previous one.
    """

    name = '#NEAR'

    def match_positions(self, positions: List[Sequence[int]]) -> List[int]:
        k = len(positions)
        idx = [0] * k
        matches = []

        while all(idx[j] < len(positions[j]) for j in range(k)):
            matched = True
            for j in range(1, k):
                gap = positions[j][idx[j]] - positions[j - 1][idx[j - 1]]
                if gap <= 0:
                    idx[j] += 1
                    matched = False
                    break
                if gap > self.distance:
                    idx[j - 1] += 1
                    matched = False
                    break
            if matched:
                matches.append(positions[k - 1][idx[k - 1]])
                idx = [i + 1 for i in idx]

        return matches


class WindowOperator(ProximityOperator):
    """
    Unordered proximity: all arguments appear inside a window of `distance`
    positions (max position - min position < distance).
    """

    name = '#WINDOW'

    def match_positions(self, positions: List[Sequence[int]]) -> List[int]:
        k = len(positions)
        idx = [0] * k
        matches = []

        while all(idx[j] < len(positions[j]) for j in range(k)):
            current = [positions[j][idx[j]] for j in range(k)]
            low, high = min(current), max(current)
            if high - low < self.distance:
                matches.append(high)
                idx = [i + 1 for i in idx]
            else:
                idx[current.index(low)] += 1

        return matches


# ---------------------------------------------------------------------------
# Score-list operators
# ---------------------------------------------------------------------------

class ScoreOperator(ScoreListOperator):
    """
    Converts an inverted list into a score list using the retrieval model's
    per-posting formula. The returned inverted list is always empty.
    """

    name = '#SCORE'

    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        arg = self.args[0]
        result = arg.evaluate(model, context)
        if arg.produces_scores:
            return result

        inverted_list = result.inverted_list
        field = inverted_list.field
        score_list = ScoreList()
        default_scorer = None
        kind = model.model_type

        if kind is ModelType.UNRANKED_BOOLEAN or kind is ModelType.RANKED_BOOLEAN:
            for posting in inverted_list:
                score_list.add(posting.docid, model.score(posting.tf))

        elif kind is ModelType.BM25:
            num_docs = context.num_docs()
            avg_doc_len = context.average_doc_length(field)
            df = inverted_list.df
            for posting in inverted_list:
                doc_len = context.doc_length(field, posting.docid)
                score_list.add(posting.docid,
                               model.score(posting.tf, df, doc_len, num_docs, avg_doc_len))

        elif kind is ModelType.INDRI:
            collection_length = context.collection_length(field)
            ctf = inverted_list.ctf
            for posting in inverted_list:
                doc_len = context.doc_length(field, posting.docid)
                score_list.add(posting.docid,
                               model.score(posting.tf, ctf, doc_len, collection_length))

            def default_scorer(docid: int) -> float:
                return model.default_score(ctf, context.doc_length(field, docid), collection_length)

        else:
            raise UnsupportedModelError(self.name, model)

        return QueryResult(score_list=score_list, inverted_list=InvertedList(field),
                           default_scorer=default_scorer)


class AndOperator(ScoreListOperator):
    """
    Boolean models and BM25: documents matched by every argument.
    Indri: geometric mean of argument scores over documents matched by any argument.
    """

    name = '#AND'

    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        results = self._evaluate_args(model, context)
        kind = model.model_type

        if kind is ModelType.INDRI:
            weights = [1.0 / len(results)] * len(results) if results else []
            return self._combine_union(
                results, lambda scores: _weighted_geometric_mean(scores, weights))

        if kind not in (ModelType.UNRANKED_BOOLEAN, ModelType.RANKED_BOOLEAN, ModelType.BM25):
            raise UnsupportedModelError(self.name, model)

        score_list = ScoreList()
        for docid, entries in intersect([Cursor(result.score_list) for result in results]):
            if kind is ModelType.UNRANKED_BOOLEAN:
                score_list.add(docid, 1.0)
            else:
                score_list.add(docid, min(entry.score for entry in entries))
        return QueryResult(score_list=score_list)


class OrOperator(ScoreListOperator):
    """
    Boolean models and BM25: documents matched by any argument, scored by the
    best argument. Indri: probabilistic OR.
    """

    name = '#OR'

    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        results = self._evaluate_args(model, context)
        kind = model.model_type

        if kind is ModelType.INDRI:
            return self._combine_union(results, _probabilistic_or)

        if kind not in (ModelType.UNRANKED_BOOLEAN, ModelType.RANKED_BOOLEAN, ModelType.BM25):
            raise UnsupportedModelError(self.name, model)

        score_list = ScoreList()
        for docid, matched in union([Cursor(result.score_list) for result in results]):
            if kind is ModelType.UNRANKED_BOOLEAN:
                score_list.add(docid, 1.0)
            else:
                score_list.add(docid, max(entry.score for entry in matched.values()))
        return QueryResult(score_list=score_list)


class SumOperator(ScoreListOperator):
    """Sum of argument scores over documents matched by any argument."""

    name = '#SUM'

    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        if model.model_type is ModelType.INDRI:
            raise UnsupportedModelError(self.name, model)

        results = self._evaluate_args(model, context)
        score_list = ScoreList()
        for docid, matched in union([Cursor(result.score_list) for result in results]):
            score_list.add(docid, sum(entry.score for entry in matched.values()))
        return QueryResult(score_list=score_list)


class WeightedOperator(ScoreListOperator):
    """Base for operators that take one weight per argument."""

    weighted = True

    def __init__(self, *args: QueryOperator, weights: Sequence[float] = ()):
        super().__init__(*args)
        self.weights: List[float] = [float(w) for w in weights]

    def add_weight(self, weight: float):
        """Append the weight of the next argument."""
        self.weights.append(float(weight))

    def remove_weight(self):
        """Drop the pending weight (its argument was a stop word)."""
        self.weights.pop()

    def needs_weight(self) -> bool:
        """Whether the next token must be a weight."""
        return len(self.weights) <= len(self.args)

    def normalized_weights(self) -> List[float]:
        if len(self.weights) != len(self.args):
            raise QuerySyntaxError(f"{self.name} has {len(self.weights)} weights "
                                   f"for {len(self.args)} arguments")
        total = sum(self.weights)
        if self.args and total <= 0:
            raise QuerySyntaxError(f"{self.name} weights must have a positive sum")
        return [w / total for w in self.weights]

    def evaluate(self, model: RetrievalModel, context) -> QueryResult:
        if model.model_type is not ModelType.INDRI:
            raise UnsupportedModelError(self.name, model)
        weights = self.normalized_weights()
        results = self._evaluate_args(model, context)
        return self._combine_union(results, lambda scores: self.combine(scores, weights))

    @abstractmethod
    def combine(self, scores: Sequence[float], weights: Sequence[float]) -> float:
        pass

    def __str__(self):
        inner = ''.join(f"{weight!r} {arg} " for weight, arg in zip(self.weights, self.args))
        return f"{self.name}( {inner})"


class WandOperator(WeightedOperator):
    """Weighted geometric mean of argument scores."""

    name = '#WAND'

    def combine(self, scores: Sequence[float], weights: Sequence[float]) -> float:
        return _weighted_geometric_mean(scores, weights)


class WsumOperator(WeightedOperator):
    """Weighted arithmetic mean of argument scores."""

    name = '#WSUM'

    def combine(self, scores: Sequence[float], weights: Sequence[float]) -> float:
        return _weighted_mean(scores, weights)


# Keyword -> operator class, for operators that take no distance
OPERATORS = {
    '#and': AndOperator,
    '#or': OrOperator,
    '#syn': SynOperator,
    '#sum': SumOperator,
    '#wand': WandOperator,
    '#wsum': WsumOperator,
}

# Keyword -> operator class, for operators written as #NAME/distance
DISTANCE_OPERATORS = {
    '#near': NearOperator,
    '#window': WindowOperator,
}
