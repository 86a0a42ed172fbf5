"""
Unit tests for operator evaluation under each retrieval model
Run with: pytest tests/test_operators.py -v
"""

import math
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.qryeval.errors import QuerySyntaxError, UnsupportedModelError
from src.qryeval.evaluation import evaluate_query
from src.qryeval.operators import (
    AndOperator, NearOperator, OrOperator, ScoreOperator, SumOperator, SynOperator,
    TermOperator, WandOperator, WindowOperator, WsumOperator, intersect, union,
)
from src.qryeval.cursor import Cursor
from src.qryeval.postings import Posting
from src.qryeval.retrieval_models import BM25, Indri, RankedBoolean, UnrankedBoolean


def term(stem, field='body'):
    return TermOperator(stem, field)


def scores_by_external_id(score_list, context):
    return {context.external_id(entry.docid): entry.score for entry in score_list}


class TestMerges:
    """Test DAAT merge helpers."""

    def setup_method(self):
        self.a = [Posting.from_positions(d, [0]) for d in (1, 3, 5, 7)]
        self.b = [Posting.from_positions(d, [0]) for d in (3, 4, 7)]

    def test_intersect(self):
        docids = [docid for docid, _ in intersect([Cursor(self.a), Cursor(self.b)])]
        assert docids == [3, 7]

    def test_intersect_nothing(self):
        assert list(intersect([])) == []
        assert list(intersect([Cursor(self.a), Cursor([])])) == []

    def test_union(self):
        merged = list(union([Cursor(self.a), Cursor(self.b)]))
        assert [docid for docid, _ in merged] == [1, 3, 4, 5, 7]
        assert sorted(merged[1][1]) == [0, 1]
        assert list(merged[2][1]) == [1]


class TestTermAndScore:

    def test_missing_term_is_empty(self, context):
        result = term('banana').evaluate(RankedBoolean(), context)
        assert len(result.inverted_list) == 0

    def test_ranked_boolean_scores_tf(self, context):
        scores = evaluate_query(term('pie'), RankedBoolean(), context)
        assert scores_by_external_id(scores, context) == {'d1': 1.0, 'd3': 2.0}

    def test_score_operator_returns_empty_inverted_list(self, context):
        result = ScoreOperator(term('pie')).evaluate(RankedBoolean(), context)
        assert len(result.inverted_list) == 0
        assert result.score_list.get_doc_ids() == [0, 2]

    def test_field_restriction(self, context):
        scores = evaluate_query(term('apple', 'title'), UnrankedBoolean(), context)
        assert scores_by_external_id(scores, context) == {'d1': 1.0}

    def test_bm25_score(self, context):
        model = BM25()
        scores = scores_by_external_id(evaluate_query(term('tart'), model, context), context)
        # N = 3, df = 1, avg body length = 8 / 3
        expected = model.score(1, 1, 2, 3, 8 / 3)
        assert expected > 0
        assert scores == {'d2': pytest.approx(expected)}

    def test_indri_score(self, context):
        model = Indri()
        scores = scores_by_external_id(evaluate_query(term('tart'), model, context), context)
        assert scores == {'d2': pytest.approx(model.score(1, 1, 2, 8))}


class TestAnd:

    def test_intersection(self, context):
        scores = evaluate_query(AndOperator(term('apple'), term('pie')), RankedBoolean(), context)
        assert scores_by_external_id(scores, context) == {'d1': 1.0, 'd3': 1.0}

    def test_operand_order_does_not_matter(self, context):
        for model in (UnrankedBoolean(), RankedBoolean(), BM25()):
            forward = evaluate_query(AndOperator(term('apple'), term('pie'), term('recipe')),
                                     model, context)
            backward = evaluate_query(AndOperator(term('recipe'), term('pie'), term('apple')),
                                      model, context)
            assert forward == backward

    def test_unranked_scores_one(self, context):
        scores = evaluate_query(AndOperator(term('pie'), term('pie')), UnrankedBoolean(), context)
        assert set(scores.as_dict().values()) == {1.0}

    def test_ranked_takes_minimum(self, context):
        tree = AndOperator(term('pie'), OrOperator(term('apple'), term('pie')))
        scores = evaluate_query(tree, RankedBoolean(), context)
        assert scores_by_external_id(scores, context) == {'d1': 1.0, 'd3': 2.0}

    def test_indri_uses_default_scores(self, context):
        model = Indri()
        scores = scores_by_external_id(
            evaluate_query(AndOperator(term('apple'), term('pie')), model, context), context)
        assert set(scores) == {'d1', 'd2', 'd3'}
        assert max(scores, key=scores.get) == 'd3'

        d2_pie = model.default_score(3, 2, 8)
        d2_apple = model.score(1, 3, 2, 8)
        assert scores['d2'] == pytest.approx(math.sqrt(d2_pie * d2_apple))

    def test_indri_empty_field_without_smoothing(self, context):
        # d3 has an empty title; with mu = 0 its title default score is lambda * p
        model = Indri(mu=0)
        tree = AndOperator(term('apple', 'title'), term('pie'))
        scores = scores_by_external_id(evaluate_query(tree, model, context), context)
        assert set(scores) == {'d1', 'd3'}
        title_default = 0.4 * (1 / 3)
        pie_d3 = 0.6 * (2 / 3) + 0.4 * (3 / 8)
        assert scores['d3'] == pytest.approx(math.sqrt(title_default * pie_d3))


class TestOr:

    def test_union_with_max(self, context):
        scores = evaluate_query(OrOperator(term('apple'), term('pie')), RankedBoolean(), context)
        assert scores_by_external_id(scores, context) == {'d1': 1.0, 'd2': 1.0, 'd3': 2.0}

    def test_unranked(self, context):
        scores = evaluate_query(OrOperator(term('tart'), term('recipe')), UnrankedBoolean(), context)
        assert scores_by_external_id(scores, context) == {'d1': 1.0, 'd2': 1.0}

    def test_indri_probabilistic_or(self, context):
        model = Indri()
        scores = scores_by_external_id(
            evaluate_query(OrOperator(term('tart'), term('recipe')), model, context), context)
        tart = model.score(1, 1, 2, 8)
        recipe_default = model.default_score(1, 2, 8)
        assert scores['d2'] == pytest.approx(1 - (1 - tart) * (1 - recipe_default))


class TestSum:

    def test_bm25_sum(self, context):
        model = BM25()
        single = scores_by_external_id(evaluate_query(term('tart'), model, context), context)
        summed = scores_by_external_id(
            evaluate_query(SumOperator(term('tart'), term('tart')), model, context), context)
        assert summed['d2'] == pytest.approx(2 * single['d2'])

    def test_indri_rejects_sum(self, context):
        with pytest.raises(UnsupportedModelError):
            evaluate_query(SumOperator(term('apple')), Indri(), context)


class TestSyn:

    def test_merges_postings(self, context):
        result = SynOperator(term('apple'), term('tart')).evaluate(RankedBoolean(), context)
        lst = result.inverted_list
        assert lst.get_doc_ids() == [0, 1, 2]
        assert lst.get_positions(1) == (0, 1)
        assert lst.get_posting(1).tf == 2

    def test_tf_sums_occurrences(self, context):
        result = SynOperator(term('pie'), term('pie')).evaluate(RankedBoolean(), context)
        lst = result.inverted_list
        assert lst.get_positions(2) == (0, 0, 2, 2)
        assert lst.get_posting(2).tf == 4
        assert lst.ctf == 6

    def test_rejects_score_arguments(self, context):
        with pytest.raises(QuerySyntaxError):
            SynOperator(AndOperator(term('pie'))).evaluate(RankedBoolean(), context)


class TestProximity:

    def test_near_is_ordered(self, context):
        forward = NearOperator(1, term('apple'), term('pie')).evaluate(RankedBoolean(), context)
        backward = NearOperator(1, term('pie'), term('apple')).evaluate(RankedBoolean(), context)
        assert forward.inverted_list.get_doc_ids() == [0, 2]
        assert backward.inverted_list.get_doc_ids() == [2]

    def test_near_records_last_position(self, context):
        result = NearOperator(1, term('apple'), term('pie')).evaluate(RankedBoolean(), context)
        assert result.inverted_list.get_positions(0) == (1,)
        assert result.inverted_list.get_positions(2) == (2,)

    def test_near_positions(self):
        near = NearOperator(2)
        assert near.match_positions([[0, 5, 10], [1, 7, 20]]) == [1, 7]
        assert near.match_positions([[0, 5, 10], [3, 20]]) == []
        assert near.match_positions([[0], [1], [3]]) == [3]

    def test_window_is_unordered(self, context):
        result = WindowOperator(2, term('pie'), term('apple')).evaluate(RankedBoolean(), context)
        assert result.inverted_list.get_doc_ids() == [0, 2]

    def test_window_positions(self):
        window = WindowOperator(3)
        assert window.match_positions([[5, 20], [3, 30]]) == [5]
        assert window.match_positions([[0], [3]]) == []

    @pytest.mark.parametrize("op_class", [NearOperator, WindowOperator])
    def test_monotone_in_distance(self, context, op_class):
        previous = set()
        for distance in range(1, 5):
            result = op_class(distance, term('apple'), term('pie')).evaluate(RankedBoolean(), context)
            matched = set(result.inverted_list.get_doc_ids())
            assert previous <= matched
            previous = matched

    def test_invalid_distance(self):
        with pytest.raises(QuerySyntaxError):
            NearOperator(0, term('a'), term('b'))

    def test_near_scored_by_model(self, context):
        tree = NearOperator(1, term('apple'), term('pie'))
        scores = evaluate_query(tree, RankedBoolean(), context)
        assert scores_by_external_id(scores, context) == {'d1': 1.0, 'd3': 1.0}

    def test_str(self):
        assert str(WindowOperator(4, term('a'), term('b', 'title'))) == '#WINDOW/4( a.body b.title )'


class TestWeighted:

    def test_wand_matches_and_for_equal_weights(self, context):
        model = Indri()
        wand = evaluate_query(WandOperator(term('apple'), term('pie'), weights=[1, 1]), model, context)
        and_ = evaluate_query(AndOperator(term('apple'), term('pie')), model, context)
        assert wand.get_doc_ids() == and_.get_doc_ids()
        for a, b in zip(wand, and_):
            assert a.score == pytest.approx(b.score)

    def test_weights_are_normalized(self, context):
        model = Indri()
        small = evaluate_query(WsumOperator(term('apple'), term('pie'), weights=[1, 3]), model, context)
        large = evaluate_query(WsumOperator(term('apple'), term('pie'), weights=[2, 6]), model, context)
        for a, b in zip(small, large):
            assert a.score == pytest.approx(b.score)

    def test_wsum_is_weighted_mean(self, context):
        model = Indri()
        scores = scores_by_external_id(
            evaluate_query(WsumOperator(term('tart'), term('recipe'), weights=[0.25, 0.75]),
                           model, context), context)
        expected = 0.25 * model.score(1, 1, 2, 8) + 0.75 * model.default_score(1, 2, 8)
        assert scores['d2'] == pytest.approx(expected)

    @pytest.mark.parametrize("op_class", [WandOperator, WsumOperator])
    def test_require_indri(self, context, op_class):
        with pytest.raises(UnsupportedModelError):
            evaluate_query(op_class(term('apple'), weights=[1]), BM25(), context)

    def test_weight_mismatch(self, context):
        with pytest.raises(QuerySyntaxError):
            evaluate_query(WandOperator(term('apple'), term('pie'), weights=[1]), Indri(), context)

    def test_str(self):
        assert str(WandOperator(term('a'), term('b'), weights=[0.3, 0.7])) == \
            '#WAND( 0.3 a.body 0.7 b.body )'


class TestStatelessEvaluation:

    def test_tree_can_be_evaluated_twice(self, context):
        tree = AndOperator(NearOperator(1, term('apple'), term('pie')), term('recipe'))
        first = evaluate_query(tree, BM25(), context)
        second = evaluate_query(tree, BM25(), context)
        assert first == second
