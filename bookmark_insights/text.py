"""Tokenization and normalization shared by the index and similarity code."""
import re
from typing import List, Set

from bookmark_insights.models import Bookmark


STOP_WORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "can", "about", "from", "up", "out",
    "into", "over", "under", "this", "that", "these", "those", "i", "you", "he", "she", "it",
    "we", "they", "me", "him", "her", "us", "them", "my", "your", "his", "its", "our", "their",
    "what", "which", "who", "when", "where", "why", "how", "all", "each", "every", "both",
    "few", "more", "most", "other", "some", "such", "no", "not", "only", "same", "so", "than",
    "too", "very", "just", "also", "now", "here", "there", "then", "once", "if", "any", "as",
])

# Field weights are applied by repeating tokens, so term frequency carries them
TITLE_REPEAT = 3
DESCRIPTION_REPEAT = 2
KEYWORD_REPEAT = 2
MAX_DESCRIPTION_WORDS = 20

_NON_WORD = re.compile(r"[^\w\s]")
_WORD = re.compile(r"\w+")


def _is_meaningful(word: str) -> bool:
    return len(word) > 2 and word not in STOP_WORDS


def normalize_words(text: str) -> List[str]:
    """Lowercase, strip punctuation and drop short words and stopwords.

    Args:
        text: Raw text

    Returns:
        Remaining words in order
    """
    if not text:
        return []
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [w for w in cleaned.split() if _is_meaningful(w)]


def word_set(text: str) -> Set[str]:
    return set(normalize_words(text))


def extract_words(bookmark: Bookmark) -> List[str]:
    """Extract the weighted word bag for a bookmark.

    Title words appear three times, the first 20 description words and each
    keyword twice, and the category once.

    Args:
        bookmark: Bookmark to tokenize

    Returns:
        Token list whose term counts encode field importance
    """
    words: List[str] = []

    title_words = normalize_words(bookmark.title)
    words.extend(title_words * TITLE_REPEAT)

    description_words = normalize_words(bookmark.description)[:MAX_DESCRIPTION_WORDS]
    words.extend(description_words * DESCRIPTION_REPEAT)

    keyword_words = [k.lower() for k in bookmark.keywords if _is_meaningful(k.lower())]
    words.extend(keyword_words * KEYWORD_REPEAT)

    if bookmark.category:
        words.append(bookmark.category.lower())

    return words


def index_words(text: str) -> List[str]:
    """Split text into lowercase word tokens for the search index."""
    return _WORD.findall(text.lower()) if text else []


def forward_tokens(text: str) -> List[str]:
    """Expand every word into its prefixes so partial words match.

    "rust" yields "r", "ru", "rus", "rust".
    """
    tokens: List[str] = []
    seen: Set[str] = set()
    for word in index_words(text):
        for end in range(1, len(word) + 1):
            prefix = word[:end]
            if prefix not in seen:
                seen.add(prefix)
                tokens.append(prefix)
    return tokens
