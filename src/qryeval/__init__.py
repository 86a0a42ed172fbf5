"""
QryEval - structured query evaluation engine.
"""

from .errors import (
    QueryEvalError,
    QuerySyntaxError,
    TermNotFoundError,
    ExternalIdNotFoundError,
    IllegalStateError,
    UnsupportedModelError,
)
from .postings import Posting, InvertedList, TermVector
from .score_list import ScoreList, ScoreEntry
from .cursor import Cursor
from .retrieval_models import (
    ModelType,
    RetrievalModel,
    UnrankedBoolean,
    RankedBoolean,
    BM25,
    Indri,
    create_model,
)
from .operators import (
    QueryResult,
    QueryOperator,
    TermOperator,
    SynOperator,
    NearOperator,
    WindowOperator,
    ScoreOperator,
    AndOperator,
    OrOperator,
    SumOperator,
    WandOperator,
    WsumOperator,
)
from .query_parser import QueryParser, parse_query
from .evaluation import EvaluationContext, QueryEvaluator, evaluate_query
from .feedback import RelevanceFeedbackExpander, expansion_query_string

__all__ = [
    'QueryEvalError',
    'QuerySyntaxError',
    'TermNotFoundError',
    'ExternalIdNotFoundError',
    'IllegalStateError',
    'UnsupportedModelError',

    'Posting',
    'InvertedList',
    'TermVector',
    'ScoreList',
    'ScoreEntry',
    'Cursor',

    'ModelType',
    'RetrievalModel',
    'UnrankedBoolean',
    'RankedBoolean',
    'BM25',
    'Indri',
    'create_model',

    'QueryResult',
    'QueryOperator',
    'TermOperator',
    'SynOperator',
    'NearOperator',
    'WindowOperator',
    'ScoreOperator',
    'AndOperator',
    'OrOperator',
    'SumOperator',
    'WandOperator',
    'WsumOperator',

    'QueryParser',
    'parse_query',
    'EvaluationContext',
    'QueryEvaluator',
    'evaluate_query',
    'RelevanceFeedbackExpander',
    'expansion_query_string',
]
