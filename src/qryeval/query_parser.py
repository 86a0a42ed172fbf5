"""
Structured query parser.

Grammar:
    query    := term | operator
    operator := "#" OPNAME ["/" INT] "(" (weight? operand)* ")"
    OPNAME   := AND | OR | SYN | SUM | WAND | WSUM | NEAR | WINDOW
    term     := STEM ["." FIELD]
    FIELD    := url | keywords | title | body | inlink   (default: body)
    weight   := FLOAT   (before each operand of WAND/WSUM only)

Sample usage:
    parser = QueryParser(tokenizer)
    tree = parser.parse('#AND(apple #NEAR/2(pie recipe.title))', Indri())
"""

from typing import List, Optional
import logging
import math
import re

from src.index_base import DEFAULT_FIELD, Field
from .errors import QuerySyntaxError
from .operators import (
    DISTANCE_OPERATORS,
    OPERATORS,
    InvertedListOperator,
    QueryOperator,
    TermOperator,
)

logger = logging.getLogger(__name__)

_DELIMITERS = re.compile(r'([\s,()])')


class QueryParser:
    """
    Builds operator trees from query strings.

    Uses an explicit stack of operators under construction; a completed
    operator is attached to the operator below it on the stack.
    """

    def __init__(self, tokenizer):
        """
        Initialize parser.

        Args:
            tokenizer: Object with normalize(raw_term) -> list of stems
        """
        self.tokenizer = tokenizer

    def parse(self, query: str, model) -> QueryOperator:
        """
        Parse a query string into an operator tree.

        Args:
            query: Query string (e.g., "#AND(apple pie.title)" or "apple pie")
            model: Retrieval model; supplies the default operator for
                unstructured queries

        Returns:
            Root QueryOperator

        Raises:
            QuerySyntaxError: If the query is malformed
        """
        text = query.strip()
        if not self._is_single_operator(text):
            text = f"{model.default_operator}({text})"

        tokens = self._tokenize(text)
        stack: List[QueryOperator] = []
        root: Optional[QueryOperator] = None
        pos = 0

        while pos < len(tokens):
            token = tokens[pos]
            pos += 1

            if token.startswith('#'):
                op = self._create_operator(token, query)
                if pos >= len(tokens) or tokens[pos] != '(':
                    raise QuerySyntaxError(f"Expected '(' after {token}", query)
                pos += 1
                if stack:
                    self._check_weight(stack[-1], op.name, query)
                stack.append(op)

            elif token == ')':
                if not stack:
                    raise QuerySyntaxError("Unbalanced parentheses", query)
                op = stack.pop()
                self._check_complete(op, query)
                if not stack:
                    root = op
                    break
                if not op.args:
                    raise QuerySyntaxError(f"{op.name} has no arguments", query)
                self._attach(stack[-1], op, query)

            elif token == '(':
                raise QuerySyntaxError("Unexpected '(' without an operator", query)

            else:
                if not stack:
                    raise QuerySyntaxError(f"Term outside of an operator: {token}", query)
                current = stack[-1]

                if current.weighted and current.needs_weight():
                    current.add_weight(self._parse_weight(token, current.name, query))
                    continue

                term = self._create_term(token, query)
                if term is None:
                    # Stop word: drop it, along with its weight
                    if current.weighted:
                        current.remove_weight()
                    continue
                self._attach(current, term, query)

        if root is None:
            raise QuerySyntaxError("Unbalanced parentheses: missing ')'", query)
        if pos < len(tokens):
            raise QuerySyntaxError(f"Unexpected tokens after the query: {' '.join(tokens[pos:])}",
                                   query)

        logger.debug(f"Parsed {query!r} -> {root}")
        return root

    def _tokenize(self, text: str) -> List[str]:
        """Split on whitespace, commas and parentheses; parentheses are kept."""
        return [t for t in _DELIMITERS.split(text) if t and not t.isspace() and t != ',']

    @staticmethod
    def _is_single_operator(text: str) -> bool:
        """Whether the text is one operator expression spanning the whole string."""
        if not text.startswith('#'):
            return False
        depth = 0
        for i, char in enumerate(text):
            if char == '(':
                depth += 1
            elif char == ')':
                depth -= 1
                if depth == 0:
                    return i == len(text) - 1
        # Unbalanced; parse() reports it
        return True

    @staticmethod
    def _create_operator(token: str, query: str) -> QueryOperator:
        keyword = token.lower()
        if keyword in OPERATORS:
            return OPERATORS[keyword]()

        name, sep, distance = keyword.partition('/')
        if name in DISTANCE_OPERATORS:
            if not sep or not distance.isdigit() or int(distance) < 1:
                raise QuerySyntaxError(f"{token} requires a positive integer distance", query)
            return DISTANCE_OPERATORS[name](int(distance))

        raise QuerySyntaxError(f"Unknown operator: {token}", query)

    def _create_term(self, token: str, query: str) -> Optional[TermOperator]:
        """
        Create a term from a token, splitting off a field suffix.

        Returns:
            TermOperator, or None if the term normalizes to nothing
        """
        parts = token.split('.')
        if len(parts) > 2:
            raise QuerySyntaxError(f"Invalid field specifier: {token}", query)

        term, field = token, DEFAULT_FIELD
        if len(parts) == 2:
            known = Field.from_suffix(parts[1])
            if known is not None:
                term, field = parts[0], known.value

        stems = self.tokenizer.normalize(term)
        if len(stems) > 1:
            raise QuerySyntaxError(f"Term normalizes to more than one token: {token} -> {stems}",
                                   query)
        if not stems:
            logger.debug(f"Dropping stop word: {token}")
            return None
        return TermOperator(stems[0], field)

    @staticmethod
    def _parse_weight(token: str, operator_name: str, query: str) -> float:
        try:
            weight = float(token)
        except ValueError:
            raise QuerySyntaxError(f"{operator_name} requires a weight before {token}", query)
        if not math.isfinite(weight) or weight < 0:
            raise QuerySyntaxError(f"Invalid weight for {operator_name}: {token}", query)
        return weight

    @staticmethod
    def _check_weight(parent: QueryOperator, operator_name: str, query: str):
        if parent.weighted and parent.needs_weight():
            raise QuerySyntaxError(f"{parent.name} requires a weight before {operator_name}", query)

    @staticmethod
    def _check_complete(op: QueryOperator, query: str):
        if not op.weighted:
            return
        if len(op.weights) != len(op.args):
            raise QuerySyntaxError(f"{op.name} has a weight without an argument", query)
        if op.args and sum(op.weights) <= 0:
            raise QuerySyntaxError(f"{op.name} weights must have a positive sum", query)

    @staticmethod
    def _attach(parent: QueryOperator, child: QueryOperator, query: str):
        """Add child to parent, enforcing inverted-list operator argument rules."""
        if isinstance(parent, InvertedListOperator):
            if child.produces_scores:
                raise QuerySyntaxError(
                    f"{parent.name} only accepts terms and proximity operators, got {child.name}",
                    query)
            if parent.args and child.field != parent.field:
                raise QuerySyntaxError(
                    f"{parent.name} arguments must share one field "
                    f"({parent.field} and {child.field})", query)
        parent.add(child)


def parse_query(query: str, model, tokenizer) -> QueryOperator:
    """Parse a query string with a one-off QueryParser."""
    return QueryParser(tokenizer).parse(query, model)
