"""Filter and ranking layer for bookmark search."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from bookmark_insights.models import (
    ActiveFilters,
    Bookmark,
    ParsedQuery,
    SearchHit,
    SpecialFilters,
)
from bookmark_insights.query_parser import matches_advanced_query


logger = logging.getLogger(__name__)

STALE_AFTER_DAYS = 30

# Relevance weights per matched term
TITLE_MATCH = 10
TITLE_PREFIX_BONUS = 5
DOMAIN_MATCH = 5
CATEGORY_MATCH = 4
DESCRIPTION_MATCH = 2
URL_MATCH = 1

# Relevance weights per matched regex
REGEX_TITLE_MATCH = 8
REGEX_URL_MATCH = 3
REGEX_DESCRIPTION_MATCH = 2


class SearchIndex(Protocol):
    """Protocol for the ranked text index the search pipeline consults."""

    def search(
        self,
        terms: Iterable[str],
        fields: Optional[Iterable[str]] = None,
        boost: Optional[Dict[str, float]] = None,
    ) -> List[Tuple[str, float]]:
        """Search the index for any of the terms.

        Args:
            terms: Query terms
            fields: Fields to search
            boost: Per-field weights

        Returns:
            (bookmark id, score) pairs, highest score first
        """
        ...

    def is_searchable(self, term: str) -> bool:
        ...


def is_stale(bookmark: Bookmark, now: datetime, stale_after_days: int = STALE_AFTER_DAYS) -> bool:
    """Old, never opened and not known to be dead."""
    is_old = bookmark.date_added < now - timedelta(days=stale_after_days)
    never_accessed = not bookmark.access_count
    return is_old and never_accessed and bookmark.is_alive is not False


def _in_range(value: Optional[float], bounds: Tuple[Optional[float], Optional[float]]) -> bool:
    low, high = bounds
    value = value or 0
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def _matches_active(bookmark: Bookmark, filters: ActiveFilters, now: datetime, stale_after_days: int) -> bool:
    if filters.domains:
        domain = bookmark.domain.lower()
        if not any(d.lower() in domain for d in filters.domains):
            return False

    if filters.folders:
        folder = bookmark.folder_path.lower()
        if not any(f.lower() in folder for f in filters.folders):
            return False

    if filters.topics:
        topics = [t.lower() for t in bookmark.topics]
        wanted = [t.lower() for t in filters.topics]
        if not any(bt == t or bt.startswith(t + "/") for t in wanted for bt in topics):
            return False

    if filters.types:
        content_type = bookmark.content_type.lower()
        if not any(content_type == t.lower() for t in filters.types):
            return False

    if filters.creators and bookmark.creator_key not in filters.creators:
        return False

    if filters.tags and not any(t in bookmark.tags for t in filters.tags):
        return False

    if filters.dead_links and bookmark.is_alive is not False:
        return False

    if filters.stale and not is_stale(bookmark, now, stale_after_days):
        return False

    if filters.date_range is not None:
        start, end = filters.date_range
        if bookmark.date_added < start or bookmark.date_added > end:
            return False

    if filters.reading_time_range is not None and not _in_range(bookmark.reading_time, filters.reading_time_range):
        return False

    if filters.quality_score_range is not None and not _in_range(bookmark.quality_score, filters.quality_score_range):
        return False

    if filters.has_published_date is not None:
        has_date = bool(bookmark.published_date or bookmark.raw_metadata.get("publishedDate"))
        if has_date != filters.has_published_date:
            return False

    return True


def apply_active_filters(
    bookmarks: Iterable[Bookmark],
    filters: Optional[ActiveFilters],
    now: Optional[datetime] = None,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> List[Bookmark]:
    """Apply structured sidebar filters as exact predicates.

    Args:
        bookmarks: Corpus to filter
        filters: Active filters; None keeps everything
        now: Reference time for the stale check
        stale_after_days: Age after which an unopened bookmark is stale

    Returns:
        Bookmarks satisfying every filter, in input order
    """
    if filters is None:
        return list(bookmarks)
    now = now or datetime.now(timezone.utc)
    return [b for b in bookmarks if _matches_active(b, filters, now, stale_after_days)]


def _matches_creator(creator: str, wanted: str) -> bool:
    creator = creator.lower()
    wanted = wanted.lower()
    return (
        wanted in creator
        or wanted.lstrip("@") in creator
        or wanted in f"@{creator}"
    )


def _matches_special(bookmark: Bookmark, filters: SpecialFilters, now: datetime, stale_after_days: int) -> bool:
    if filters.category and (bookmark.category or "uncategorized").lower() != filters.category:
        return False

    if filters.domain and filters.domain not in bookmark.domain.lower():
        return False

    if filters.accessed is not None and filters.accessed != (bookmark.access_count > 0):
        return False

    if filters.stale and not is_stale(bookmark, now, stale_after_days):
        return False

    if filters.enriched is not None and filters.enriched != bookmark.is_enriched:
        return False

    if filters.dead is not None and filters.dead != (bookmark.is_alive is False):
        return False

    if filters.folder and filters.folder not in bookmark.folder_path.lower():
        return False

    if filters.platform and (bookmark.platform or "other").lower() != filters.platform:
        return False

    if filters.creator and not _matches_creator(bookmark.creator, filters.creator):
        return False

    if filters.repo and filters.repo not in bookmark.repo_name:
        return False

    if filters.content_type:
        allowed = [t.strip() for t in filters.content_type.split("|")]
        if bookmark.content_type.lower() not in allowed:
            return False

    if filters.has_image is not None and filters.has_image != bookmark.has_image:
        return False

    if filters.playlist and filters.playlist not in str(bookmark.extra.get("playlistId") or ""):
        return False

    return True


def apply_special_filters(
    bookmarks: Iterable[Bookmark],
    filters: SpecialFilters,
    now: Optional[datetime] = None,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> List[Bookmark]:
    """Apply `key:value` query filters as predicates."""
    now = now or datetime.now(timezone.utc)
    return [b for b in bookmarks if _matches_special(b, filters, now, stale_after_days)]


def calculate_relevance_score(bookmark: Bookmark, parsed: ParsedQuery) -> float:
    """Score a bookmark that already matched the query.

    Each positive term, phrase and regular term scores by the fields it
    appears in (title 10, +5 when the title starts with it, domain 5,
    category 4, description 2, url 1). Each regex adds 8 for the title,
    3 for the url and 2 for the description.
    """
    title = bookmark.title.lower()
    url = bookmark.url.lower()
    domain = bookmark.domain.lower()
    description = bookmark.description.lower()
    category = bookmark.category.lower()

    score = 0
    for term in parsed.positive + parsed.phrases + parsed.regular:
        if term in title:
            score += TITLE_MATCH
            if title.startswith(term):
                score += TITLE_PREFIX_BONUS
        if term in domain:
            score += DOMAIN_MATCH
        if term in category:
            score += CATEGORY_MATCH
        if term in description:
            score += DESCRIPTION_MATCH
        if term in url:
            score += URL_MATCH

    for regex in parsed.regex_patterns:
        if regex.search(bookmark.title):
            score += REGEX_TITLE_MATCH
        if regex.search(bookmark.url):
            score += REGEX_URL_MATCH
        if regex.search(bookmark.description):
            score += REGEX_DESCRIPTION_MATCH

    return float(score)


def _newest_first(hit: SearchHit) -> float:
    return -hit.bookmark.date_added.timestamp()


_SORTS: Dict[str, Tuple[Callable[[SearchHit], object], bool]] = {
    "relevance": (lambda h: (-h.score, _newest_first(h)), False),
    "date_desc": (lambda h: h.bookmark.date_added, True),
    "date_asc": (lambda h: h.bookmark.date_added, False),
    "title_asc": (lambda h: h.bookmark.title.casefold(), False),
    "title_desc": (lambda h: h.bookmark.title.casefold(), True),
    "domain_asc": (lambda h: h.bookmark.domain.casefold(), False),
}


def sort_hits(hits: List[SearchHit], sort_by: Optional[str]) -> List[SearchHit]:
    """Sort hits in place by a sort key; unknown keys sort newest first."""
    key, reverse = _SORTS.get(sort_by or "date_desc", _SORTS["date_desc"])
    hits.sort(key=key, reverse=reverse)
    return hits


def linear_scan(bookmarks: Iterable[Bookmark], parsed: ParsedQuery) -> List[Bookmark]:
    """Match bookmarks against a parsed query without the index."""
    return [b for b in bookmarks if matches_advanced_query(b, parsed)]


def match_text(
    candidates: Sequence[Bookmark],
    parsed: ParsedQuery,
    index: Optional[SearchIndex],
    fields: Optional[Iterable[str]] = None,
    boost: Optional[Dict[str, float]] = None,
) -> Tuple[List[Bookmark], bool]:
    """Narrow candidates to those matching the free-text query.

    Regular terms are looked up in the index and every hit is re-validated
    against the full query. Queries with no regular terms, or with a term
    the index cannot tokenize, go straight to a linear scan. If the index
    is missing or raises, the linear scan answers instead.

    Args:
        candidates: Bookmarks that survived the structural filters
        parsed: Parsed free-text query
        index: Search index, or None when unavailable
        fields: Fields to search
        boost: Per-field weights

    Returns:
        Tuple of (matching bookmarks, True if the index fault path was taken)
    """
    if not parsed.regular:
        return linear_scan(candidates, parsed), False

    if index is None:
        logger.error("Search index unavailable, falling back to linear scan")
        return linear_scan(candidates, parsed), True

    try:
        if not all(index.is_searchable(term) for term in parsed.regular):
            return linear_scan(candidates, parsed), False
        hit_ids = {bookmark_id for bookmark_id, _ in index.search(parsed.regular, fields, boost)}
    except Exception as e:
        logger.error("Search index failed, falling back to linear scan: %s", e)
        return linear_scan(candidates, parsed), True

    return linear_scan((b for b in candidates if b.id in hit_ids), parsed), False


def rank(bookmarks: Iterable[Bookmark], parsed: ParsedQuery) -> List[SearchHit]:
    return [SearchHit(bookmark=b, score=calculate_relevance_score(b, parsed)) for b in bookmarks]
