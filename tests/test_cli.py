"""
Tests for the command line interface over the Hydra configuration
Run with: pytest tests/test_cli.py -v
"""

import json
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from main import QueryEvalCLI, _as_list


class TestOverrides:

    def test_as_list(self):
        assert _as_list(()) == []
        assert _as_list(None) == []
        assert _as_list('feedback.fb_docs=20') == ['feedback.fb_docs=20']
        assert _as_list(['a=1', 'b=2']) == ['a=1', 'b=2']

    def test_named_options_come_first(self):
        cli = QueryEvalCLI()
        overrides = cli._overrides('indri', 'corpus.jsonl', ['feedback.fb_docs=20'])
        assert overrides == ['retrieval=indri', "paths.corpus='corpus.jsonl'",
                             'feedback.fb_docs=20']


class TestCommands:

    @pytest.fixture(autouse=True)
    def _setup(self, tmp_path):
        self.tmp_path = tmp_path
        corpus = tmp_path / "corpus.jsonl"
        corpus.write_text(
            json.dumps({'id': 'a', 'body': 'apple pie'}) + '\n'
            + json.dumps({'id': 'b', 'body': 'apple tart'}) + '\n',
            encoding='utf-8')
        self.queries = tmp_path / "queries.txt"
        self.queries.write_text("1:apple pie\n2:#FOO(x)\n", encoding='utf-8')
        self.output = tmp_path / "run.teIn"
        self.overrides = [
            f"paths.corpus='{corpus}'",
            f"paths.output='{self.output}'",
            'preprocessing.remove_stopwords=false',
            'indexing.show_progress=false',
        ]

    def test_parse(self):
        tree = QueryEvalCLI().parse('apple pies', retrieval='indri', overrides=self.overrides)
        assert tree == '#AND( appl.body pie.body )'

    def test_override_changes_retrieval_model(self):
        tree = QueryEvalCLI().parse('apple', overrides=self.overrides + ['retrieval=ranked_boolean'])
        assert tree == '#OR( appl.body )'

    def test_run_writes_trec_file(self):
        QueryEvalCLI().run(retrieval='ranked_boolean', queries=str(self.queries),
                           overrides=self.overrides)
        assert self.output.read_text(encoding='utf-8').splitlines() == [
            '1 Q0 a 1 1.000000 qryeval',
            '1 Q0 b 2 1.000000 qryeval',
            '2 Q0 dummy 1 0 qryeval',
        ]

    def test_stats(self):
        stats = QueryEvalCLI().stats(overrides=self.overrides)
        assert stats['num_documents'] == 2
        assert stats['fields']['body']['vocabulary_size'] == 3
