"""
Retrieval models: parameter sets and per-posting scoring formulas.

UnrankedBoolean: match => 1.0
RankedBoolean:   match => tf
BM25:            idf_weight * tf_weight * user_weight
Indri:           (1 - lambda) * (tf + mu * p_mle) / (doc_len + mu) + lambda * p_mle
"""

from typing import Dict, Mapping, Optional
from types import MappingProxyType
from abc import ABC
from enum import Enum
import logging
import math

logger = logging.getLogger(__name__)


class ModelType(Enum):
    UNRANKED_BOOLEAN = 'UnrankedBoolean'
    RANKED_BOOLEAN = 'RankedBoolean'
    BM25 = 'BM25'
    INDRI = 'Indri'


class RetrievalModel(ABC):
    """
    Base class for retrieval models.

    Subclasses declare their parameters in ``_defaults`` and accepted spellings
    in ``_aliases``. Parameters are set before evaluation and only read after.
    """

    model_type: ModelType
    default_operator: str
    _defaults: Dict[str, float] = {}
    _aliases: Dict[str, str] = {}
    _bounds: Dict[str, tuple] = {}

    def __init__(self, **params):
        self._params: Dict[str, float] = dict(self._defaults)
        for name, value in params.items():
            self.set_parameter(name, value)

    @property
    def name(self) -> str:
        return self.model_type.value

    @property
    def is_boolean(self) -> bool:
        return self.model_type in (ModelType.UNRANKED_BOOLEAN, ModelType.RANKED_BOOLEAN)

    @property
    def parameters(self) -> Mapping[str, float]:
        """Read-only view of the current parameters."""
        return MappingProxyType(self._params)

    def set_parameter(self, name: str, value) -> bool:
        """
        Set a retrieval model parameter.

        Unknown names and invalid values are reported and ignored; the
        existing parameters stay unchanged.

        Args:
            name: Parameter name
            value: New value (anything float() accepts)

        Returns:
            Whether the parameter was set
        """
        canonical = self._aliases.get(name, name)
        if canonical not in self._defaults:
            logger.warning(f"Unknown parameter name for retrieval model {self.name}: {name}")
            return False

        try:
            value = float(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid value for {self.name}:{name}: {value!r}")
            return False

        low, high = self._bounds.get(canonical, (0.0, math.inf))
        if not low <= value <= high or math.isnan(value):
            logger.warning(f"Value out of range for {self.name}:{name}: {value} "
                           f"(expected {low} <= value <= {high})")
            return False

        self._params[canonical] = value
        return True

    def get_parameter(self, name: str) -> float:
        """Get a retrieval model parameter."""
        return self._params[self._aliases.get(name, name)]

    def __repr__(self):
        params = ', '.join(f"{k}={v}" for k, v in self._params.items())
        return f"{self.__class__.__name__}({params})"

    def __str__(self):
        return self.name


class UnrankedBoolean(RetrievalModel):
    """The unranked Boolean retrieval model has no parameters."""

    model_type = ModelType.UNRANKED_BOOLEAN
    default_operator = '#OR'

    def score(self, tf: int) -> float:
        return 1.0


class RankedBoolean(RetrievalModel):
    """Ranked Boolean: a match scores its term frequency."""

    model_type = ModelType.RANKED_BOOLEAN
    default_operator = '#OR'

    def score(self, tf: int) -> float:
        return float(tf)


class BM25(RetrievalModel):
    """Okapi BM25 with query-term weighting."""

    model_type = ModelType.BM25
    default_operator = '#SUM'
    _defaults = {'b': 0.75, 'k1': 1.2, 'k3': 0.0}
    _aliases = {'k_1': 'k1', 'k_3': 'k3'}
    _bounds = {'b': (0.0, 1.0)}

    @property
    def b(self) -> float:
        return self._params['b']

    @property
    def k1(self) -> float:
        return self._params['k1']

    @property
    def k3(self) -> float:
        return self._params['k3']

    @staticmethod
    def idf_weight(df: int, num_docs: int) -> float:
        """RSJ weight, floored at zero for terms in more than half the documents."""
        return max(0.0, math.log((num_docs - df + 0.5) / (df + 0.5)))

    def tf_weight(self, tf: int, doc_len: int, avg_doc_len: float) -> float:
        norm = (1 - self.b) + self.b * doc_len / avg_doc_len if avg_doc_len > 0 else 1.0
        return tf / (tf + self.k1 * norm)

    def user_weight(self, qtf: int = 1) -> float:
        return (self.k3 + 1) * qtf / (self.k3 + qtf)

    def score(self, tf: int, df: int, doc_len: int, num_docs: int,
              avg_doc_len: float, qtf: int = 1) -> float:
        """
        Score one posting.

        Args:
            tf: Term frequency in the document field
            df: Document frequency of the term
            doc_len: Length of the document field
            num_docs: Number of documents in the collection
            avg_doc_len: Average length of the field
            qtf: Frequency of the term in the query

        Returns:
            BM25 score
        """
        if tf == 0:
            return 0.0
        return (self.idf_weight(df, num_docs)
                * self.tf_weight(tf, doc_len, avg_doc_len)
                * self.user_weight(qtf))


class Indri(RetrievalModel):
    """Indri query likelihood with Dirichlet and Jelinek-Mercer smoothing."""

    model_type = ModelType.INDRI
    default_operator = '#AND'
    _defaults = {'mu': 2500.0, 'lambda': 0.4}
    _aliases = {'lam': 'lambda'}
    _bounds = {'lambda': (0.0, 1.0)}

    @property
    def mu(self) -> float:
        return self._params['mu']

    @property
    def lam(self) -> float:
        return self._params['lambda']

    @staticmethod
    def p_mle(ctf: int, collection_length: int) -> float:
        """
        Maximum likelihood estimate of the term in the collection.

        A term missing from the field gets half an occurrence so that every
        document keeps a non-zero probability for it.
        """
        if collection_length <= 0:
            return 0.0
        return (ctf if ctf > 0 else 0.5) / collection_length

    def score(self, tf: int, ctf: int, doc_len: int, collection_length: int) -> float:
        p = self.p_mle(ctf, collection_length)
        if doc_len + self.mu <= 0:
            # Empty field with mu = 0: only the collection model is left
            return self.lam * p
        return (1 - self.lam) * (tf + self.mu * p) / (doc_len + self.mu) + self.lam * p

    def default_score(self, ctf: int, doc_len: int, collection_length: int) -> float:
        """Score of a document that does not contain the term."""
        return self.score(0, ctf, doc_len, collection_length)


_MODELS = {
    ModelType.UNRANKED_BOOLEAN.value: UnrankedBoolean,
    ModelType.RANKED_BOOLEAN.value: RankedBoolean,
    ModelType.BM25.value: BM25,
    ModelType.INDRI.value: Indri,
}


def create_model(name: str, params: Optional[Mapping] = None) -> RetrievalModel:
    """
    Create a retrieval model by name.

    Args:
        name: UnrankedBoolean, RankedBoolean, BM25 or Indri (case-insensitive)
        params: Parameter name -> value; unknown names are reported and ignored

    Returns:
        Configured RetrievalModel
    """
    lookup = {key.lower(): cls for key, cls in _MODELS.items()}
    cls = lookup.get(str(name).lower())
    if cls is None:
        raise ValueError(f"Unknown retrieval model: {name}. "
                         f"Expected one of {sorted(_MODELS)}")

    model = cls()
    for param_name, value in (params or {}).items():
        model.set_parameter(str(param_name), value)

    logger.info(f"Retrieval model: {model!r}")
    return model
