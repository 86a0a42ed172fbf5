#!/usr/bin/env python
"""
Main entry point for the structured query evaluation engine.
Uses Fire for CLI and Hydra for configuration management.
"""

import os
import sys
import logging
from pathlib import Path
import fire
import hydra
from omegaconf import OmegaConf
from dotenv import load_dotenv

# Load .env variables and register resolver
load_dotenv()
OmegaConf.register_new_resolver("env", os.getenv, replace=True)

# Add src to path
sys.path.insert(0, str(Path(__file__).parent))

from src.data.data_loader import DataLoader
from src.preprocessing.text_preprocessor import TextPreprocessor
from src.qryeval.evaluation import EvaluationContext, QueryEvaluator
from src.qryeval.feedback import RelevanceFeedbackExpander
from src.qryeval.query_parser import QueryParser
from src.qryeval.retrieval_models import create_model
from src.utils.trec_io import read_queries, write_results, read_initial_rankings


def _as_list(overrides):
    """Hydra overrides passed as one string or a list of strings."""
    if not overrides:
        return []
    if isinstance(overrides, str):
        return [overrides]
    return [str(item) for item in overrides]


class QueryEvalCLI:
    """CLI for the structured query evaluation engine."""

    def __init__(self, config_path: str = "conf", config_name: str = "config"):
        """
        Initialize CLI with configuration.

        Args:
            config_path: Path to config directory
            config_name: Name of main config file
        """
        self.config_path = config_path
        self.config_name = config_name
        self.config = None
        self.index = None
        self.logger = None

    def _init_config(self, overrides=None):
        """Initialize Hydra configuration."""
        with hydra.initialize(version_base=None, config_path=self.config_path):
            if overrides:
                self.config = hydra.compose(config_name=self.config_name, overrides=overrides)
            else:
                self.config = hydra.compose(config_name=self.config_name)

        # Setup logging
        logging.basicConfig(
            level=getattr(logging, self.config.logging.level),
            format=self.config.logging.format
        )
        self.logger = logging.getLogger(__name__)

        output_dir = Path(self.config.paths.output).parent
        output_dir.mkdir(parents=True, exist_ok=True)

    def _overrides(self, retrieval=None, corpus=None, extra=()):
        overrides = []
        if retrieval:
            overrides.append(f"retrieval={retrieval}")
        if corpus:
            overrides.append(f"paths.corpus='{corpus}'")
        overrides.extend(extra)
        return overrides

    def _get_index(self, preprocessor):
        """Build the index from the configured corpus, once per CLI instance."""
        if self.index is None:
            self.index = DataLoader(self.config).build_index(preprocessor)
        return self.index

    def _create_model(self):
        params = OmegaConf.to_container(self.config.retrieval.params, resolve=True) or {}
        return create_model(self.config.retrieval.model, params)

    def _create_feedback(self, model, context, expansion_writer=None):
        """Relevance feedback expander from config.feedback, or None when disabled."""
        fb = self.config.feedback
        if not fb.enabled:
            return None

        initial_rankings = None
        if self.config.paths.get('initial_ranking'):
            initial_rankings = read_initial_rankings(self.config.paths.initial_ranking, fb.fb_docs)

        return RelevanceFeedbackExpander(
            model, context,
            fb_docs=fb.fb_docs,
            fb_terms=fb.fb_terms,
            fb_mu=fb.fb_mu,
            fb_orig_weight=fb.fb_orig_weight,
            initial_rankings=initial_rankings,
            field=fb.field,
            expansion_writer=expansion_writer,
        )

    def run(self, retrieval: str = None, corpus: str = None, queries: str = None,
            output: str = None, feedback: bool = None, overrides=()):
        """
        Evaluate a query file and write a TREC run file.

        Args:
            retrieval: Retrieval model config (unranked_boolean, ranked_boolean, bm25, indri)
            corpus: JSONL corpus path
            queries: Query file path ("qid:query" lines)
            output: Run file path
            feedback: Enable relevance feedback (Indri only)
            overrides: Extra Hydra overrides, e.g. --overrides="[feedback.fb_docs=20]"
        """
        extra = _as_list(overrides)
        if queries:
            extra.append(f"paths.queries='{queries}'")
        if output:
            extra.append(f"paths.output='{output}'")
        if feedback is not None:
            extra.append(f"feedback.enabled={str(bool(feedback)).lower()}")
        self._init_config(self._overrides(retrieval, corpus, extra))

        self.logger.info("=" * 60)
        self.logger.info("QUERY EVALUATION RUN")
        self.logger.info("=" * 60)
        self.logger.info(f"Retrieval model: {self.config.retrieval.model}")
        self.logger.info(f"Queries: {self.config.paths.queries}")
        self.logger.info(f"Output: {self.config.paths.output}")

        preprocessor = TextPreprocessor(self.config)
        index = self._get_index(preprocessor)
        model = self._create_model()
        context = EvaluationContext(index)
        query_list = read_queries(self.config.paths.queries)

        expansion_writer = None
        if self.config.feedback.enabled and self.config.paths.get('expansion_output'):
            expansion_writer = open(self.config.paths.expansion_output, 'w', encoding='utf-8')

        try:
            expander = self._create_feedback(model, context, expansion_writer)
            evaluator = QueryEvaluator(
                model, context, preprocessor,
                feedback=expander,
                max_results=self.config.query.max_results,
                show_progress=self.config.indexing.show_progress,
            )

            with open(self.config.paths.output, 'w', encoding='utf-8') as writer:
                for query_id, score_list in evaluator.run(query_list):
                    write_results(writer, query_id, score_list, index,
                                  max_results=self.config.query.max_results,
                                  run_id=self.config.query.run_id)
        finally:
            if expansion_writer is not None:
                expansion_writer.close()

        self.logger.info(f"✓ Wrote results for {len(query_list)} queries to {self.config.paths.output}")

    def parse(self, query: str, retrieval: str = None, overrides=()):
        """
        Parse a query and print its operator tree.

        Args:
            query: Structured or unstructured query string
            retrieval: Retrieval model config (decides the default operator)
        """
        self._init_config(self._overrides(retrieval, extra=_as_list(overrides)))
        preprocessor = TextPreprocessor(self.config)
        tree = QueryParser(preprocessor).parse(query, self._create_model())
        print(tree)
        return str(tree)

    def search(self, query: str, retrieval: str = None, corpus: str = None,
               max_results: int = 10, overrides=()):
        """
        Evaluate a single query against the corpus and print the ranking.

        Args:
            query: Structured or unstructured query string
            retrieval: Retrieval model config
            corpus: JSONL corpus path
            max_results: Number of results shown
        """
        self._init_config(self._overrides(retrieval, corpus, _as_list(overrides)))

        preprocessor = TextPreprocessor(self.config)
        index = self._get_index(preprocessor)
        model = self._create_model()
        context = EvaluationContext(index)
        evaluator = QueryEvaluator(model, context, preprocessor,
                                   feedback=self._create_feedback(model, context),
                                   max_results=max_results, show_progress=False)

        score_list = evaluator.run_query('search', query)

        self.logger.info("\n" + "=" * 60)
        self.logger.info("QUERY RESULTS")
        self.logger.info("=" * 60)
        self.logger.info(f"Query: {query}")
        self.logger.info(f"Model: {model}")
        self.logger.info(f"Total Hits: {len(score_list)}")

        results = []
        for rank, entry in enumerate(score_list, start=1):
            external_id = index.external_id(entry.docid)
            self.logger.info(f"{rank}. {external_id}  score={entry.score:.4f}")
            results.append({'rank': rank, 'id': external_id, 'score': entry.score})

        return results

    def stats(self, corpus: str = None, overrides=()):
        """
        Build the index and report its statistics.

        Args:
            corpus: JSONL corpus path
        """
        self._init_config(self._overrides(corpus=corpus, extra=_as_list(overrides)))

        preprocessor = TextPreprocessor(self.config)
        stats = self._get_index(preprocessor).get_statistics()

        self.logger.info(f"Documents: {stats['num_documents']}")
        for field, field_stats in stats['fields'].items():
            self.logger.info(f"  {field}: {field_stats['vocabulary_size']} terms, "
                             f"{field_stats['total_tokens']} tokens, "
                             f"{field_stats['doc_count']} documents")
        return stats


def main():
    """Main entry point."""
    fire.Fire(QueryEvalCLI)


if __name__ == "__main__":
    main()
