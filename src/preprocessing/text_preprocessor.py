from pathlib import Path
from typing import List, Set
import nltk
from nltk.corpus import stopwords
from nltk.stem import PorterStemmer
from nltk.tokenize import RegexpTokenizer

class TextPreprocessor:
    """Lowercasing, stop word removal and stemming for documents and query terms."""

    def __init__(self, config):
        """
        Initialize preprocessor with configuration.

        Args:
            config: Hydra config object with preprocessing settings
        """
        self.config = config
        self.tokenizer = RegexpTokenizer(r"[A-Za-z0-9]+")
        self.stemmer = PorterStemmer() if config.preprocessing.stemming else None
        self.stopwords = self._load_stopwords()

    def _load_stopwords(self) -> Set[str]:
        """Load stop words from the configured file, or NLTK's English list."""
        if not self.config.preprocessing.remove_stopwords:
            return set()

        stopwords_file = self.config.preprocessing.get('stopwords_file')
        if stopwords_file:
            with open(Path(stopwords_file), 'r', encoding='utf-8') as f:
                return {line.strip().lower() for line in f if line.strip()}

        self._download_nltk_data()
        return set(stopwords.words('english'))

    def _download_nltk_data(self):
        """Download required NLTK data."""
        try:
            nltk.data.find('corpora/stopwords')
        except LookupError:
            nltk.download('stopwords', quiet=True)

    def preprocess(self, text: str) -> List[str]:
        """
        Preprocess text according to configuration.

        Args:
            text: Input text string

        Returns:
            List of processed tokens
        """
        if not text:
            return []

        # Lowercase
        if self.config.preprocessing.lowercase:
            text = text.lower()

        # Tokenize; the pattern drops punctuation
        tokens = self.tokenizer.tokenize(text)

        # Filter by length
        tokens = [
            token for token in tokens
            if self.config.preprocessing.min_word_length <= len(token) <= self.config.preprocessing.max_word_length
        ]

        # Remove stopwords
        if self.stopwords:
            tokens = [token for token in tokens if token not in self.stopwords]

        # Stemming
        if self.stemmer:
            tokens = [self.stemmer.stem(token) for token in tokens]

        return tokens

    def normalize(self, raw_term: str) -> List[str]:
        """
        Normalize one raw query term.

        Args:
            raw_term: Term as written in the query (without field suffix)

        Returns:
            Stems: empty for a stop word, more than one if the term splits
        """
        return self.preprocess(raw_term)
