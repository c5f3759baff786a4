"""Fuzzy likely-duplicate scoring with candidate pre-filtering.

The comprehensive scorer mixes edit distance on titles (and URL paths for
same-domain pairs) with word-level Jaccard overlap. Same-domain and
cross-domain pairs use different weights, and cross-domain pairs must clear
a higher bar.
"""
import logging
import random
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlsplit

from rapidfuzz.distance import Levenshtein

from bookmark_insights.models import Bookmark, FuzzyMatch, FuzzyScanOptions, SimilarityRecord
from bookmark_insights.text import word_set


logger = logging.getLogger(__name__)

SAME_DOMAIN_WEIGHTS: Dict[str, float] = {
    "title_fuzzy": 0.25,
    "title_words": 0.20,
    "url_path": 0.20,
    "description_words": 0.15,
    "keywords": 0.10,
    "category": 0.10,
}

CROSS_DOMAIN_WEIGHTS: Dict[str, float] = {
    "title_fuzzy": 0.30,
    "title_words": 0.25,
    "description_words": 0.20,
    "keywords": 0.15,
    "category": 0.10,
}

CROSS_DOMAIN_PENALTY = 0.1
PAIR_CAP_FACTOR = 2

DOMAIN_CANDIDATE_CAP = 50
CATEGORY_CANDIDATE_CAP = 30
KEYWORD_CANDIDATE_CAP = 20
DEFAULT_TOP_N = 10
MIN_RECORD_SCORE = 0.1


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / max length; two empty strings are identical."""
    return Levenshtein.normalized_similarity(a, b)


def jaccard(first: Set[str], second: Set[str]) -> Optional[float]:
    """Intersection over union, or None when both sets are empty."""
    if not first and not second:
        return None
    return len(first & second) / len(first | second)


def _url_path(url: str) -> Optional[str]:
    if not url:
        return None
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts.path.rstrip("/")


def is_same_domain(a: Bookmark, b: Bookmark) -> bool:
    return bool(a.domain) and a.domain.lower() == b.domain.lower()


def similarity_components(a: Bookmark, b: Bookmark) -> Dict[str, Optional[float]]:
    """Score each similarity signal for a pair.

    A component is None when neither bookmark has data for it; the URL path
    component is only computed for same-domain pairs.
    """
    title_a, title_b = a.title.strip().lower(), b.title.strip().lower()
    category_a, category_b = a.category.lower(), b.category.lower()

    components: Dict[str, Optional[float]] = {
        "title_fuzzy": levenshtein_similarity(title_a, title_b) if (title_a or title_b) else None,
        "title_words": jaccard(word_set(a.title), word_set(b.title)),
        "description_words": jaccard(word_set(a.description), word_set(b.description)),
        "keywords": jaccard({k.lower() for k in a.keywords}, {k.lower() for k in b.keywords}),
        "category": (
            float(bool(category_a) and category_a == category_b)
            if (category_a or category_b) else None
        ),
        "domain": float(is_same_domain(a, b)),
    }

    if is_same_domain(a, b):
        path_a, path_b = _url_path(a.url), _url_path(b.url)
        if path_a is not None and path_b is not None:
            components["url_path"] = levenshtein_similarity(path_a, path_b)

    return components


def comprehensive_similarity(a: Bookmark, b: Bookmark) -> Tuple[float, Dict[str, float]]:
    """Combine the similarity components into one score in [0, 1].

    Components with no data on either side are left out and the remaining
    weights renormalized, so sparse bookmarks are judged on what they have.

    Returns:
        (score, breakdown of the components that contributed)
    """
    weights = SAME_DOMAIN_WEIGHTS if is_same_domain(a, b) else CROSS_DOMAIN_WEIGHTS
    components = similarity_components(a, b)

    breakdown: Dict[str, float] = {}
    weighted = 0.0
    total_weight = 0.0
    for name, weight in weights.items():
        value = components.get(name)
        if value is None:
            continue
        breakdown[name] = value
        weighted += weight * value
        total_weight += weight

    if total_weight == 0:
        return 0.0, breakdown
    return weighted / total_weight, breakdown


def select_candidates(
    target: Bookmark,
    same_domain: Iterable[Bookmark],
    same_category: Iterable[Bookmark],
    corpus: Iterable[Bookmark],
    domain_cap: int = DOMAIN_CANDIDATE_CAP,
    category_cap: int = CATEGORY_CANDIDATE_CAP,
    keyword_cap: int = KEYWORD_CANDIDATE_CAP,
) -> List[Bookmark]:
    """Narrow the comparison set for one bookmark.

    Candidates are up to 50 same-domain bookmarks, 30 same-category
    bookmarks and 20 bookmarks sharing at least one keyword, de-duplicated
    and excluding the target itself.
    """
    candidates: Dict[str, Bookmark] = {}

    def take(source: Iterable[Bookmark], cap: int) -> None:
        taken = 0
        for bookmark in source:
            if taken >= cap:
                break
            if bookmark.id == target.id:
                continue
            taken += 1
            candidates.setdefault(bookmark.id, bookmark)

    take(same_domain, domain_cap)
    take(same_category, category_cap)

    target_keywords = {k.lower() for k in target.keywords}
    if target_keywords:
        take(
            (b for b in corpus if target_keywords & {k.lower() for k in b.keywords}),
            keyword_cap,
        )

    return list(candidates.values())


def rank_candidates(
    target: Bookmark,
    candidates: Sequence[Bookmark],
    top_n: int = DEFAULT_TOP_N,
    now: Optional[datetime] = None,
) -> List[SimilarityRecord]:
    """Score candidates against a target and keep the top N as records."""
    computed_at = now or datetime.now(timezone.utc)

    records = []
    for candidate in candidates:
        score, _ = comprehensive_similarity(target, candidate)
        if score <= MIN_RECORD_SCORE:
            continue
        records.append(SimilarityRecord(
            bookmark_id=target.id,
            related_bookmark_id=candidate.id,
            score=score,
            same_domain=is_same_domain(target, candidate),
            same_category=bool(target.category) and target.category.lower() == candidate.category.lower(),
            computed_at=computed_at,
        ))

    records.sort(key=lambda r: r.score, reverse=True)
    return records[:top_n]


def _match(a: Bookmark, b: Bookmark, score: float, breakdown: Dict[str, float]) -> FuzzyMatch:
    return FuzzyMatch(
        bookmark1=a,
        bookmark2=b,
        score=score,
        same_domain=is_same_domain(a, b),
        breakdown=breakdown,
    )


def same_domain_matches(bookmarks: Sequence[Bookmark], options: FuzzyScanOptions) -> List[FuzzyMatch]:
    """Compare every pair inside each domain bucket.

    Stops as soon as 2x max_pairs matches have been collected.
    """
    cap = options.max_pairs * PAIR_CAP_FACTOR
    buckets: Dict[str, List[Bookmark]] = {}
    for bookmark in bookmarks:
        if bookmark.domain:
            buckets.setdefault(bookmark.domain.lower(), []).append(bookmark)

    matches: List[FuzzyMatch] = []
    for bucket in buckets.values():
        for i in range(len(bucket)):
            for j in range(i + 1, len(bucket)):
                first, second = bucket[i], bucket[j]
                if first.url and first.url == second.url:
                    continue
                score, breakdown = comprehensive_similarity(first, second)
                if score >= options.min_similarity:
                    matches.append(_match(first, second, score, breakdown))
                    if len(matches) >= cap:
                        return matches
    return matches


def cross_domain_matches(
    bookmarks: Sequence[Bookmark],
    options: FuzzyScanOptions,
    found: int = 0,
    rng: Optional[random.Random] = None,
) -> List[FuzzyMatch]:
    """Compare bookmarks from different domains within a bounded sample.

    Only up to `options.sample_size` bookmarks are compared, and pairs must
    score at least min_similarity + 0.1.

    Args:
        bookmarks: Full corpus
        options: Scan options
        found: Matches already collected, counted against the pair cap
        rng: Random source for the sample; defaults to one seeded from options
    """
    cap = options.max_pairs * PAIR_CAP_FACTOR
    threshold = options.min_similarity + CROSS_DOMAIN_PENALTY
    if rng is None:
        rng = random.Random(options.seed)

    sample = list(bookmarks)
    if len(sample) > options.sample_size:
        sample = rng.sample(sample, options.sample_size)

    matches: List[FuzzyMatch] = []
    for i in range(len(sample)):
        for j in range(i + 1, len(sample)):
            first, second = sample[i], sample[j]
            if is_same_domain(first, second):
                continue
            if first.url and first.url == second.url:
                continue
            score, breakdown = comprehensive_similarity(first, second)
            if score >= threshold:
                matches.append(_match(first, second, score, breakdown))
                if found + len(matches) >= cap:
                    return matches
    return matches


def rank_matches(matches: List[FuzzyMatch], max_pairs: int) -> List[FuzzyMatch]:
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches[:max_pairs]
