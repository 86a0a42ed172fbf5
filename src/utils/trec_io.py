"""
Query files, TREC run files and initial rankings.

Query file:      one "qid:query" per line
Run file:        "qid Q0 external_id rank score run_id" per result
Initial ranking: a run file; only qid, external_id and score are used
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, TextIO, Tuple, Union

from src.qryeval.errors import QuerySyntaxError
from src.qryeval.score_list import ScoreList

logger = logging.getLogger(__name__)


def read_queries(path: Union[str, Path]) -> List[Tuple[str, str]]:
    """
    Read a query file.

    Args:
        path: Path to a file of "qid:query" lines

    Returns:
        List of (query_id, query) in file order

    Raises:
        QuerySyntaxError: If a non-empty line has no ':'
    """
    queries = []
    with open(path, 'r', encoding='utf-8') as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            if ':' not in line:
                raise QuerySyntaxError(f"Missing ':' in query line {line_no}", line)
            query_id, query = line.split(':', 1)
            queries.append((query_id.strip(), query.strip()))

    logger.info(f"Read {len(queries)} queries from {path}")
    return queries


def write_results(writer: TextIO, query_id: str, score_list: ScoreList, index,
                  max_results: int = 100, run_id: str = 'qryeval'):
    """
    Write one query's ranking in TREC format.

    An empty ranking is written as a single "dummy" line so the query is
    still present in the run file.

    Args:
        writer: Output text stream
        query_id: Query identifier
        score_list: Ranked ScoreList (already sorted)
        index: Anything with external_id(docid)
        max_results: Maximum number of lines written
        run_id: Run tag in the last column
    """
    if len(score_list) == 0:
        writer.write(f"{query_id} Q0 dummy 1 0 {run_id}\n")
        return

    for rank, entry in enumerate(score_list, start=1):
        if rank > max_results:
            break
        writer.write(f"{query_id} Q0 {index.external_id(entry.docid)} {rank} "
                     f"{entry.score:f} {run_id}\n")


def read_initial_rankings(path: Union[str, Path],
                          fb_docs: Optional[int] = None) -> Dict[str, List[Tuple[str, float]]]:
    """
    Read a TREC run file used as the initial ranking for relevance feedback.

    Args:
        path: Path to the run file
        fb_docs: Keep at most this many documents per query (all if None)

    Returns:
        Query id -> [(external_id, score)] in file order
    """
    rankings: Dict[str, List[Tuple[str, float]]] = {}
    with open(path, 'r', encoding='utf-8') as f:
        for line_no, line in enumerate(f, start=1):
            parts = line.split()
            if not parts:
                continue
            if len(parts) < 5:
                logger.warning(f"Skipping malformed ranking line {line_no}: {line.strip()!r}")
                continue

            query_id, external_id = parts[0], parts[2]
            try:
                score = float(parts[4])
            except ValueError:
                logger.warning(f"Skipping ranking line {line_no}: bad score {parts[4]!r}")
                continue

            ranking = rankings.setdefault(query_id, [])
            if fb_docs is None or len(ranking) < fb_docs:
                ranking.append((external_id, score))

    logger.info(f"Read initial rankings for {len(rankings)} queries from {path}")
    return rankings
