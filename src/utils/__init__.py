"""Utility functions."""

from .trec_io import read_queries, write_results, read_initial_rankings

__all__ = ['read_queries', 'write_results', 'read_initial_rankings']
