import json
import logging
from pathlib import Path
from typing import Dict, Iterator, Tuple
from tqdm import tqdm

from src.indices.memory_index import MemoryIndex

logger = logging.getLogger(__name__)


class DataLoader:
    """Loads a JSONL corpus and builds the in-memory index from it."""

    def __init__(self, config):
        """
        Initialize data loader.

        Args:
            config: Hydra configuration object
        """
        self.config = config

    def load_dataset(self) -> Iterator[Tuple[str, Dict]]:
        """
        Load documents from the configured corpus file.

        Yields:
            Tuples of (external_id, document dict)
        """
        dataset_path = Path(self.config.paths.corpus)

        if not dataset_path.exists():
            raise FileNotFoundError(f"Corpus file not found: {dataset_path}")

        logger.info(f"Loading corpus from: {dataset_path}")

        total_lines = self._count_lines(dataset_path)

        max_docs = self.config.dataset.get('sample_size')
        if max_docs is not None:
            total_lines = min(total_lines, max_docs)

        id_field = self.config.dataset.fields.id_field

        with open(dataset_path, 'r', encoding='utf-8') as f:
            pbar = tqdm(
                total=total_lines,
                desc="Loading documents",
                disable=not self.config.indexing.show_progress
            )

            for i, line in enumerate(f):
                if max_docs is not None and i >= max_docs:
                    break
                if not line.strip():
                    continue

                try:
                    doc = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning(f"Error parsing line {i}: {e}")
                    continue

                if not isinstance(doc, dict):
                    logger.warning(f"Skipping line {i}: not a JSON object")
                    continue

                doc_id = doc.get(id_field)
                if doc_id is None:
                    logger.warning(f"Skipping line {i}: missing '{id_field}'")
                    continue

                yield str(doc_id), doc
                pbar.update(1)

            pbar.close()

    def _count_lines(self, filepath: Path) -> int:
        """Count lines in a file."""
        count = 0
        with open(filepath, 'r', encoding='utf-8') as f:
            for _ in f:
                count += 1
        logger.debug(f"Found {count:,} lines in {filepath}")
        return count

    def build_index(self, preprocessor) -> MemoryIndex:
        """
        Tokenize the configured fields of every document and index them.

        Args:
            preprocessor: TextPreprocessor used for document text

        Returns:
            Populated MemoryIndex
        """
        index = MemoryIndex()
        fields = list(self.config.dataset.fields.indexed)

        for doc_id, doc in self.load_dataset():
            tokens = {
                field: preprocessor.preprocess(doc.get(field) or '')
                for field in fields
            }
            try:
                index.add_document(doc_id, tokens)
            except ValueError as e:
                logger.warning(f"Skipping document: {e}")

        logger.info(f"Indexed {index.num_docs()} documents over fields {fields}")
        return index
