"""
Exceptions raised by the query evaluation engine.
"""


class QueryEvalError(Exception):
    """Base class for all query evaluation errors."""


class QuerySyntaxError(QueryEvalError, ValueError):
    """A structured query could not be parsed."""

    def __init__(self, message: str, query: str = None):
        self.query = query
        if query is not None:
            message = f"{message} (query: {query!r})"
        super().__init__(message)


class TermNotFoundError(QueryEvalError, KeyError):
    """A term does not occur in the requested field of the index."""

    def __init__(self, term: str, field: str):
        self.term = term
        self.field = field
        super().__init__(f"{term}.{field}")


class ExternalIdNotFoundError(QueryEvalError, KeyError):
    """An external document id is unknown to the index."""

    def __init__(self, external_id: str):
        self.external_id = external_id
        super().__init__(external_id)


class IllegalStateError(QueryEvalError, RuntimeError):
    """A component was configured in a state it cannot operate in."""


class UnsupportedModelError(QueryEvalError):
    """An operator was evaluated under a retrieval model it does not support."""

    def __init__(self, operator: str, model):
        self.operator = operator
        self.model = model
        super().__init__(f"{operator} does not support the {model} retrieval model")
