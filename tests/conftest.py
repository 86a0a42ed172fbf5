"""
Shared fixtures: a three-document fielded collection and a tokenizer that
keeps terms as written (lowercased), drops "the" and splits on hyphens.
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.indices.memory_index import MemoryIndex
from src.qryeval.evaluation import EvaluationContext


TOY_DOCUMENTS = [
    ('d1', {'title': 'apple pie', 'body': 'apple pie recipe'}),
    ('d2', {'title': 'tart', 'body': 'apple tart'}),
    ('d3', {'title': '', 'body': 'pie apple pie'}),
]


class SimpleTokenizer:
    """Lowercases, drops stop words and splits hyphenated terms."""

    stopwords = {'the'}

    def normalize(self, raw_term):
        return [t for t in raw_term.lower().split('-') if t and t not in self.stopwords]

    def preprocess(self, text):
        return [t for t in text.lower().split() if t not in self.stopwords]


def build_index(documents=TOY_DOCUMENTS):
    index = MemoryIndex()
    tokenizer = SimpleTokenizer()
    for external_id, fields in documents:
        index.add_document(external_id, {
            field: tokenizer.preprocess(text) for field, text in fields.items()
        })
    return index


@pytest.fixture
def tokenizer():
    return SimpleTokenizer()


@pytest.fixture
def toy_index():
    return build_index()


@pytest.fixture
def context(toy_index):
    return EvaluationContext(toy_index)
