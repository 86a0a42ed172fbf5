"""
Unit tests for the structured query parser
Run with: pytest tests/test_query_parser.py -v
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.qryeval.errors import QuerySyntaxError
from src.qryeval.evaluation import evaluate_query
from src.qryeval.operators import (
    AndOperator, NearOperator, SumOperator, TermOperator, WandOperator,
)
from src.qryeval.query_parser import QueryParser, parse_query
from src.qryeval.retrieval_models import BM25, Indri, RankedBoolean


class TestParsing:
    """Test tree construction."""

    @pytest.fixture(autouse=True)
    def _parser(self, tokenizer):
        self.parser = QueryParser(tokenizer)

    def test_unstructured_query_uses_default_operator(self):
        assert str(self.parser.parse('apple pie', BM25())) == '#SUM( apple.body pie.body )'
        assert str(self.parser.parse('apple pie', Indri())) == '#AND( apple.body pie.body )'
        assert str(self.parser.parse('apple pie', RankedBoolean())) == '#OR( apple.body pie.body )'

    def test_single_operator_is_not_wrapped(self):
        tree = self.parser.parse('#AND(apple pie.title)', BM25())
        assert isinstance(tree, AndOperator)
        assert str(tree) == '#AND( apple.body pie.title )'

    def test_multiple_operators_are_wrapped(self):
        tree = self.parser.parse('#AND(a) #OR(b)', Indri())
        assert str(tree) == '#AND( #AND( a.body ) #OR( b.body ) )'

    def test_operator_names_are_case_insensitive(self):
        assert str(self.parser.parse('#and(Apple #Near/3(b c))', BM25())) == \
            '#AND( apple.body #NEAR/3( b.body c.body ) )'

    def test_commas_separate_terms(self):
        assert str(self.parser.parse('#OR(a,b, c)', BM25())) == '#OR( a.body b.body c.body )'

    def test_fields(self):
        tree = self.parser.parse('#OR(a.url b.keywords c.title d.body e.inlink)', BM25())
        assert [arg.field for arg in tree.args] == ['url', 'keywords', 'title', 'body', 'inlink']

    def test_unknown_field_suffix_stays_in_term(self):
        tree = self.parser.parse('#OR(e.g)', BM25())
        assert tree.args[0].term == 'e.g'
        assert tree.args[0].field == 'body'
        assert str(tree) == '#OR( e.g )'

    def test_proximity_distance(self):
        tree = self.parser.parse('#WINDOW/8(a b)', BM25())
        assert tree.distance == 8

    def test_weights(self):
        tree = self.parser.parse('#WAND(0.3 apple 0.7 #AND(pie tart))', Indri())
        assert isinstance(tree, WandOperator)
        assert tree.weights == [0.3, 0.7]
        assert str(tree) == '#WAND( 0.3 apple.body 0.7 #AND( pie.body tart.body ) )'

    def test_stop_word_is_dropped(self):
        assert str(self.parser.parse('#AND(the apple)', BM25())) == '#AND( apple.body )'

    def test_stop_word_drops_its_weight(self):
        tree = self.parser.parse('#WSUM(0.3 the 0.7 pie)', Indri())
        assert tree.weights == [0.7]
        assert str(tree) == '#WSUM( 0.7 pie.body )'

    def test_empty_root_operator(self):
        tree = self.parser.parse('#AND()', Indri())
        assert tree.args == []

    def test_single_term_query(self):
        tree = self.parser.parse('apple', BM25())
        assert isinstance(tree, SumOperator)
        assert isinstance(tree.args[0], TermOperator)

    @pytest.mark.parametrize("query,model", [
        ('#AND( apple.body #NEAR/2( pie.body apple.body ) )', Indri()),
        ('#WAND( 0.3 apple.title 0.7 #OR( pie.body #SYN( tart.body recipe.body ) ) )', Indri()),
        ('#SUM( #WINDOW/4( apple.body pie.body ) tart.body )', BM25()),
        ('#OR( e.g apple.title )', RankedBoolean()),
    ])
    def test_round_trip(self, context, query, model):
        first = self.parser.parse(query, model)
        second = self.parser.parse(str(first), model)
        assert str(first) == query
        assert str(second) == str(first)

        first_scores = evaluate_query(first, model, context)
        second_scores = evaluate_query(second, model, context)
        assert len(first_scores) > 0
        assert first_scores == second_scores

    def test_parse_query_function(self, tokenizer):
        tree = parse_query('#NEAR/1(a b)', BM25(), tokenizer)
        assert isinstance(tree, NearOperator)


class TestSyntaxErrors:
    """Malformed queries raise QuerySyntaxError."""

    @pytest.fixture(autouse=True)
    def _parser(self, tokenizer):
        self.parser = QueryParser(tokenizer)

    @pytest.mark.parametrize("query", [
        '#AND(apple',
        '#AND(apple))',
        '#AND(a #OR(b)',
        '#FOO(a)',
        '#NEAR(a b)',
        '#NEAR/0(a b)',
        '#NEAR/x(a b)',
        '#AND apple',
        '#AND(a ( b))',
        '#AND(a #OR())',
        '#OR(a.b.c)',
        '#OR(ice-cream)',
    ])
    def test_malformed(self, query):
        with pytest.raises(QuerySyntaxError):
            self.parser.parse(query, BM25())

    @pytest.mark.parametrize("query", [
        '#WAND(apple 0.5 pie)',
        '#WAND(0.5 apple 0.5)',
        '#WAND(#AND(a) 1 b)',
        '#WAND(-1 apple 2 pie)',
        '#WAND(0 apple 0 pie)',
        '#WSUM(inf apple)',
    ])
    def test_bad_weights(self, query):
        with pytest.raises(QuerySyntaxError):
            self.parser.parse(query, Indri())

    @pytest.mark.parametrize("query", [
        '#NEAR/2(a #AND(b c))',
        '#SYN(a #SUM(b))',
        '#NEAR/2(a.title b)',
        '#SYN(a.url b.body)',
    ])
    def test_inverted_list_argument_rules(self, query):
        with pytest.raises(QuerySyntaxError):
            self.parser.parse(query, BM25())

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError) as exc_info:
            self.parser.parse('#AND(apple', BM25())
        assert exc_info.value.query == '#AND(apple'
