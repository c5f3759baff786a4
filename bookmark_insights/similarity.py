"""TF-IDF similarity and URL-based duplicate detection."""
import logging
import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from bookmark_insights.models import (
    Bookmark,
    DuplicateGroup,
    DuplicateReport,
    RelatedBookmark,
    SimilarPair,
)
from bookmark_insights.text import extract_words


logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.3
DEFAULT_MAX_PAIRS = 100
# Stop scanning once this many times max_pairs candidates are collected
EARLY_EXIT_FACTOR = 3

SAME_DOMAIN_BOOST = 1.5
SAME_CATEGORY_BOOST = 1.3
MIN_RELATED_SCORE = 0.1


@dataclass
class TfidfVector:
    id: str
    scores: Dict[str, float]
    magnitude: float


def calculate_tfidf(documents: Sequence[Tuple[str, List[str]]]) -> List[TfidfVector]:
    """Weight each document's terms by TF-IDF.

    Term frequency is normalized by document length and IDF is
    ln(N / document frequency) over the given documents.

    Args:
        documents: (id, word list) pairs; word lists must be non-empty

    Returns:
        One vector per document, in input order
    """
    n_docs = len(documents)
    term_counts = [Counter(words) for _, words in documents]

    document_frequency: Counter = Counter()
    for counts in term_counts:
        document_frequency.update(counts.keys())

    idf = {term: math.log(n_docs / df) for term, df in document_frequency.items()}

    vectors = []
    for (doc_id, words), counts in zip(documents, term_counts):
        total = len(words)
        scores = {term: (count / total) * idf[term] for term, count in counts.items()}
        magnitude = math.sqrt(sum(score * score for score in scores.values()))
        vectors.append(TfidfVector(id=doc_id, scores=scores, magnitude=magnitude))

    return vectors


def cosine_similarity(vec1: TfidfVector, vec2: TfidfVector) -> float:
    """Cosine similarity over the terms both vectors share.

    Returns 0.0 when there is no overlap or either vector has zero
    magnitude. Shared terms are summed in sorted order so the result is
    identical for (a, b) and (b, a).
    """
    common = sorted(vec1.scores.keys() & vec2.scores.keys())
    if not common:
        return 0.0
    if vec1.magnitude == 0 or vec2.magnitude == 0:
        return 0.0

    dot_product = sum(vec1.scores[term] * vec2.scores[term] for term in common)
    return dot_product / (vec1.magnitude * vec2.magnitude)


def _documents(bookmarks: Sequence[Bookmark]) -> List[Tuple[Bookmark, List[str]]]:
    docs = [(b, extract_words(b)) for b in bookmarks]
    return [(b, words) for b, words in docs if words]


def find_similar_pairs(
    bookmarks: Sequence[Bookmark],
    threshold: float = DEFAULT_THRESHOLD,
    max_pairs: int = DEFAULT_MAX_PAIRS,
) -> List[SimilarPair]:
    """Find pairs of bookmarks with similar content across the corpus.

    Pairs sharing a URL are skipped (they are duplicates, not similar).
    Scanning stops early once 3x max_pairs qualifying pairs are collected.

    Args:
        bookmarks: Corpus to compare
        threshold: Minimum cosine similarity to keep a pair
        max_pairs: Maximum number of pairs to return

    Returns:
        Pairs sorted by similarity, highest first
    """
    if len(bookmarks) < 2:
        return []

    docs = _documents(bookmarks)
    vectors = calculate_tfidf([(b.id, words) for b, words in docs])
    budget = max_pairs * EARLY_EXIT_FACTOR

    pairs: List[SimilarPair] = []
    for i in range(len(vectors)):
        first = docs[i][0]
        for j in range(i + 1, len(vectors)):
            second = docs[j][0]
            if first.url == second.url:
                continue

            similarity = cosine_similarity(vectors[i], vectors[j])
            if similarity >= threshold:
                pairs.append(SimilarPair(
                    bookmark1=first,
                    bookmark2=second,
                    similarity=similarity,
                    common_category=bool(first.category) and first.category == second.category,
                    same_domain=bool(first.domain) and first.domain == second.domain,
                ))
            if len(pairs) >= budget:
                break
        if len(pairs) >= budget:
            logger.debug("Similar-pair scan stopped early after %d candidates", len(pairs))
            break

    pairs.sort(key=lambda pair: pair.similarity, reverse=True)
    return pairs[:max_pairs]


def find_related(
    bookmarks: Sequence[Bookmark],
    target_id: str,
    limit: int = 10,
) -> List[RelatedBookmark]:
    """Rank the corpus by TF-IDF similarity to one bookmark.

    Scores are boosted for a shared domain (x1.5) and category (x1.3);
    results at or below 0.1 are dropped.
    """
    target = next((b for b in bookmarks if b.id == target_id), None)
    if target is None:
        return []
    target_words = extract_words(target)
    if not target_words:
        return []

    others = _documents([b for b in bookmarks if b.id != target_id])
    vectors = calculate_tfidf(
        [(target.id, target_words)] + [(b.id, words) for b, words in others]
    )
    target_vector = vectors[0]

    related = []
    for (bookmark, _), vector in zip(others, vectors[1:]):
        score = cosine_similarity(target_vector, vector)
        same_domain = bool(bookmark.domain) and bookmark.domain == target.domain
        same_category = bool(bookmark.category) and bookmark.category == target.category
        if same_domain:
            score *= SAME_DOMAIN_BOOST
        if same_category:
            score *= SAME_CATEGORY_BOOST
        if score > MIN_RELATED_SCORE:
            related.append(RelatedBookmark(
                bookmark=bookmark,
                similarity=score,
                same_domain=same_domain,
                same_category=same_category,
            ))

    related.sort(key=lambda r: r.similarity, reverse=True)
    return related[:limit]


def normalize_url(url: str) -> Optional[str]:
    """Reduce a URL to host (without www.) plus path (without trailing slash).

    Scheme, port, query string and fragment are ignored.

    Returns:
        Normalized URL, or None if the URL cannot be parsed
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None

    host = re.sub(r"^www\.", "", hostname)
    path = re.sub(r"/$", "", parts.path)
    return host + path


def find_duplicates(bookmarks: Sequence[Bookmark]) -> DuplicateReport:
    """Group bookmarks by exact URL and by normalized URL.

    Normalized groups are only reported when they contain more than one
    distinct raw URL, so exact duplicates are not reported twice.
    Bookmarks with unparseable URLs still take part in exact matching.
    """
    by_url: Dict[str, List[Bookmark]] = {}
    by_normalized: Dict[str, List[Bookmark]] = {}

    for bookmark in bookmarks:
        by_url.setdefault(bookmark.url, []).append(bookmark)

        normalized = normalize_url(bookmark.url)
        if normalized is None:
            logger.debug("Skipping URL normalization for bookmark %s", bookmark.id)
            continue
        by_normalized.setdefault(normalized, []).append(bookmark)

    report = DuplicateReport()
    for group in by_url.values():
        if len(group) > 1:
            report.exact.append(DuplicateGroup(kind="exact", bookmarks=group))
    for group in by_normalized.values():
        if len(group) > 1 and len({b.url for b in group}) > 1:
            report.similar.append(DuplicateGroup(kind="similar", bookmarks=group))

    return report
