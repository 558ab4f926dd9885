"""
Token-set text similarity for complaint descriptions
"""
import re
from typing import FrozenSet, Iterable, Optional, Set

from civic_triage.logging_config import logger

URL_PATTERN = re.compile(r'http[s]?://(?:[a-zA-Z]|[0-9]|[$-_@.&+]|[!*\\(\\),]|(?:%[0-9a-fA-F][0-9a-fA-F]))+')
TOKEN_PATTERN = re.compile(r'[^\W_]+')

STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "been", "but", "by", "for",
    "from", "has", "have", "here", "in", "into", "is", "it", "its", "near",
    "of", "on", "or", "our", "so", "that", "the", "there", "this", "to",
    "very", "was", "were", "with", "my", "we", "i", "me", "please", "again",
})

ABBREVIATIONS = {
    "st": "street",
    "rd": "road",
    "ave": "avenue",
    "av": "avenue",
    "blvd": "boulevard",
    "ln": "lane",
    "dr": "drive",
    "hwy": "highway",
    "nr": "near",
    "opp": "opposite",
    "jn": "junction",
    "jct": "junction",
}


class TextSimilarityEngine:
    """Jaccard similarity over normalized word-token sets"""

    def __init__(self, stop_words: Optional[Iterable[str]] = None):
        """
        Initialize similarity engine

        Args:
            stop_words: Words ignored when comparing (default: built-in list)
        """
        self.stop_words: FrozenSet[str] = frozenset(stop_words) if stop_words is not None else STOP_WORDS
        logger.info(f"Text similarity engine initialized with {len(self.stop_words)} stop words")

    def _tokenize(self, text: str) -> list[str]:
        """
        Normalize text into tokens: strip URLs and punctuation, lowercase,
        expand street abbreviations and fold simple plurals

        Args:
            text: Text to tokenize

        Returns:
            List of tokens
        """
        if not text:
            return []

        text = URL_PATTERN.sub(' ', text)
        tokens = TOKEN_PATTERN.findall(text.lower())

        return [self._fold(ABBREVIATIONS.get(token, token)) for token in tokens]

    @staticmethod
    def _fold(token: str) -> str:
        if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
            return token[:-1]
        return token

    def normalize(self, text: str) -> str:
        """Lowercased, punctuation-free, whitespace-collapsed form of text"""
        return ' '.join(self._tokenize(text))

    def token_set(self, text: str) -> Set[str]:
        """Content tokens of text with stop words removed"""
        return {token for token in self._tokenize(text) if token not in self.stop_words}

    def similarity(self, text_a: str, text_b: str) -> float:
        """
        Similarity between two descriptions

        Args:
            text_a: First description
            text_b: Second description

        Returns:
            Score in [0, 1]; 0.0 when either text has no word tokens
        """
        raw_a = set(self._tokenize(text_a))
        raw_b = set(self._tokenize(text_b))
        if not raw_a or not raw_b:
            return 0.0

        tokens_a = raw_a - self.stop_words
        tokens_b = raw_b - self.stop_words

        # Stop-word-only text compares on its full token set
        if not tokens_a or not tokens_b:
            tokens_a, tokens_b = raw_a, raw_b

        intersection = len(tokens_a & tokens_b)
        union = len(tokens_a | tokens_b)
        score = intersection / union if union else 0.0

        logger.debug(f"Text similarity {score:.3f} ({intersection}/{union} shared tokens)")
        return score

    def has_content(self, text: str) -> bool:
        return bool(self._tokenize(text))
