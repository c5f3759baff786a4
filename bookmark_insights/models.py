"""Data model shared by the search and similarity engine."""
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


INDEXED_FIELDS: Tuple[str, ...] = ("title", "url", "description", "keywords", "category", "domain")

DEFAULT_BOOST: Dict[str, float] = {
    "title": 3,
    "category": 2,
    "keywords": 2,
    "description": 1,
    "url": 1,
    "domain": 1,
}

SORT_KEYS = ("relevance", "date_desc", "date_asc", "title_asc", "title_desc", "domain_asc")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce a stored timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings and epoch milliseconds (the format
    the browser extension stores).

    Args:
        value: Raw timestamp value

    Returns:
        Aware datetime, or None for empty values
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _pick(data: Dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


@dataclass(frozen=True)
class Bookmark:
    """A saved bookmark as supplied by the Bookmark Store.

    The engine never mutates bookmarks; every call treats them as read-only
    input.
    """
    id: str
    url: str = ""
    title: str = ""
    description: str = ""
    domain: str = ""
    category: str = ""
    folder_path: str = ""
    keywords: Tuple[str, ...] = ()
    tags: frozenset = frozenset()
    topics: Tuple[str, ...] = ()
    content_type: str = ""
    platform: str = ""
    creator: str = ""
    date_added: datetime = _EPOCH
    last_accessed: Optional[datetime] = None
    access_count: int = 0
    is_alive: Optional[bool] = None
    reading_time: Optional[float] = None
    quality_score: Optional[float] = None
    published_date: Optional[datetime] = None
    content_snippet: str = ""
    platform_data: Dict[str, Any] = field(default_factory=dict)
    raw_metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bookmark":
        """Build a bookmark from a store record.

        Both snake_case and the extension's camelCase keys are accepted.
        """
        keywords = data.get("keywords") or ()
        if isinstance(keywords, str):
            keywords = [k for k in re.split(r"[,\s]+", keywords) if k]

        return cls(
            id=str(data["id"]),
            url=data.get("url") or "",
            title=data.get("title") or "",
            description=data.get("description") or "",
            domain=data.get("domain") or "",
            category=data.get("category") or "",
            folder_path=_pick(data, "folder_path", "folderPath") or "",
            keywords=tuple(keywords),
            tags=frozenset(data.get("tags") or ()),
            topics=tuple(data.get("topics") or ()),
            content_type=_pick(data, "content_type", "contentType") or "",
            platform=data.get("platform") or "",
            creator=data.get("creator") or "",
            date_added=to_datetime(_pick(data, "date_added", "dateAdded")) or _EPOCH,
            last_accessed=to_datetime(_pick(data, "last_accessed", "lastAccessed")),
            access_count=int(_pick(data, "access_count", "accessCount") or 0),
            is_alive=_pick(data, "is_alive", "isAlive"),
            reading_time=_pick(data, "reading_time", "readingTime"),
            quality_score=_pick(data, "quality_score", "qualityScore"),
            published_date=to_datetime(_pick(data, "published_date", "publishedDate")),
            content_snippet=_pick(data, "content_snippet", "contentSnippet") or "",
            platform_data=dict(_pick(data, "platform_data", "platformData") or {}),
            raw_metadata=dict(_pick(data, "raw_metadata", "rawMetadata") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict (snake_case keys)."""
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "domain": self.domain,
            "category": self.category,
            "folder_path": self.folder_path,
            "keywords": list(self.keywords),
            "tags": sorted(self.tags),
            "topics": list(self.topics),
            "content_type": self.content_type,
            "platform": self.platform,
            "creator": self.creator,
            "date_added": _iso(self.date_added),
            "last_accessed": _iso(self.last_accessed),
            "access_count": self.access_count,
            "is_alive": self.is_alive,
            "reading_time": self.reading_time,
            "quality_score": self.quality_score,
            "published_date": _iso(self.published_date),
            "content_snippet": self.content_snippet,
            "platform_data": self.platform_data,
            "raw_metadata": self.raw_metadata,
        }

    @property
    def extra(self) -> Dict[str, Any]:
        """Platform-specific extras (owner, repo, thumbnail, playlistId...)."""
        return self.platform_data.get("extra") or {}

    @property
    def is_enriched(self) -> bool:
        return bool(self.description or self.keywords or self.content_snippet)

    @property
    def has_image(self) -> bool:
        open_graph = self.raw_metadata.get("openGraph") or {}
        twitter_card = self.raw_metadata.get("twitterCard") or {}
        return bool(
            self.extra.get("thumbnail")
            or open_graph.get("og:image")
            or twitter_card.get("twitter:image")
        )

    @property
    def repo_name(self) -> str:
        owner, repo = self.extra.get("owner"), self.extra.get("repo")
        return f"{owner}/{repo}".lower() if owner and repo else ""

    @property
    def creator_key(self) -> str:
        return f"{self.platform or 'other'}:{self.creator}"


@dataclass
class IndexedDocument:
    """Tokenized projection of a bookmark, one token list per indexed field."""
    id: str
    fields: Dict[str, List[str]]


@dataclass
class ParsedQuery:
    """Structured form of the free-text part of a search query."""
    positive: List[str] = field(default_factory=list)
    negative: List[str] = field(default_factory=list)
    phrases: List[str] = field(default_factory=list)
    regular: List[str] = field(default_factory=list)
    regex_patterns: List[re.Pattern] = field(default_factory=list)

    @property
    def has_modifiers(self) -> bool:
        return bool(self.positive or self.negative or self.phrases or self.regex_patterns)

    @property
    def is_empty(self) -> bool:
        return not (self.has_modifiers or self.regular)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positive": list(self.positive),
            "negative": list(self.negative),
            "phrases": list(self.phrases),
            "regular": list(self.regular),
            "regex_patterns": [p.pattern for p in self.regex_patterns],
            "has_modifiers": self.has_modifiers,
        }


@dataclass
class SpecialFilters:
    """`key:value` filters lifted out of a search query."""
    category: Optional[str] = None
    domain: Optional[str] = None
    platform: Optional[str] = None
    creator: Optional[str] = None
    repo: Optional[str] = None
    content_type: Optional[str] = None
    has_image: Optional[bool] = None
    playlist: Optional[str] = None
    accessed: Optional[bool] = None
    stale: Optional[bool] = None
    enriched: Optional[bool] = None
    dead: Optional[bool] = None
    folder: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class ActiveFilters:
    """Structured sidebar filters applied before any text matching.

    Range filters are (min, max) tuples where either side may be None.
    """
    domains: List[str] = field(default_factory=list)
    folders: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    creators: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    dead_links: bool = False
    stale: bool = False
    date_range: Optional[Tuple[datetime, datetime]] = None
    reading_time_range: Optional[Tuple[Optional[float], Optional[float]]] = None
    quality_score_range: Optional[Tuple[Optional[float], Optional[float]]] = None
    has_published_date: Optional[bool] = None

    def __post_init__(self):
        if self.date_range is not None:
            start, end = self.date_range
            if start > end:
                raise ValueError("date_range start must not be after end")
        for name in ("reading_time_range", "quality_score_range"):
            bounds = getattr(self, name)
            if bounds is not None:
                low, high = bounds
                if low is not None and high is not None and low > high:
                    raise ValueError(f"{name} minimum must not exceed maximum")


@dataclass
class SearchOptions:
    """Recognized options for a search call, validated on construction."""
    limit: int = 50
    offset: int = 0
    sort_by: Optional[str] = None
    compute_stats: bool = False
    fields: Tuple[str, ...] = INDEXED_FIELDS
    boost: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_BOOST))

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError("limit must be positive")
        if self.offset < 0:
            raise ValueError("offset must not be negative")
        if self.sort_by is not None and self.sort_by not in SORT_KEYS:
            raise ValueError(f"Unknown sort option: {self.sort_by}")
        unknown = set(self.fields) - set(INDEXED_FIELDS)
        if unknown:
            raise ValueError(f"Unknown search fields: {sorted(unknown)}")
        self.fields = tuple(self.fields)


class SearchStatus(str, Enum):
    """How a search call was answered."""
    OK = "ok"
    DEGRADED = "degraded"  # index unavailable, answered by linear scan
    FAILED = "failed"  # store unavailable, empty result


@dataclass
class SearchHit:
    bookmark: Bookmark
    score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = self.bookmark.to_dict()
        data["search_score"] = self.score
        return data


@dataclass
class DateBuckets:
    week: int = 0
    two_week: int = 0
    month: int = 0
    three_month: int = 0
    six_month: int = 0
    year: int = 0
    older: int = 0


@dataclass
class FacetStats:
    """Per-facet counts over a result set."""
    domain_counts: Dict[str, int] = field(default_factory=dict)
    domain_latest: Dict[str, datetime] = field(default_factory=dict)
    folder_counts: Dict[str, int] = field(default_factory=dict)
    topic_counts: Dict[str, int] = field(default_factory=dict)
    creator_counts: Dict[str, int] = field(default_factory=dict)
    content_type_counts: Dict[str, int] = field(default_factory=dict)
    date_counts: DateBuckets = field(default_factory=DateBuckets)

    def to_dict(self) -> Dict[str, Any]:
        """Render count-descending lists in the shape the sidebar expects."""
        def ranked(counts: Dict[str, int]) -> List[Tuple[str, int]]:
            return sorted(counts.items(), key=lambda item: item[1], reverse=True)

        creators = []
        for key, count in ranked(self.creator_counts):
            platform, _, creator = key.partition(":")
            creators.append({"key": key, "creator": creator, "platform": platform, "count": count})

        return {
            "domains": [
                {"domain": d, "count": c, "latest_date": _iso(self.domain_latest.get(d))}
                for d, c in ranked(self.domain_counts)
            ],
            "folders": [{"folder": f, "count": c} for f, c in ranked(self.folder_counts)],
            "topics": [{"topic": t, "count": c} for t, c in ranked(self.topic_counts)],
            "creators": creators,
            "contentTypes": [{"type": t, "count": c} for t, c in ranked(self.content_type_counts)],
            "dateCounts": dict(self.date_counts.__dict__),
        }


@dataclass
class SearchResponse:
    """Result of a search call.

    `status` records whether the answer came from the index, from the
    linear-scan fallback, or could not be produced at all.
    """
    results: List[SearchHit]
    total: int
    has_more: bool
    parsed_query: Optional[ParsedQuery] = None
    special_filters: Optional[SpecialFilters] = None
    stats: Optional[FacetStats] = None
    status: SearchStatus = SearchStatus.OK
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.status is SearchStatus.DEGRADED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [hit.to_dict() for hit in self.results],
            "total": self.total,
            "has_more": self.has_more,
            "parsed_query": self.parsed_query.to_dict() if self.parsed_query else None,
            "special_filters": self.special_filters.to_dict() if self.special_filters else None,
            "stats": self.stats.to_dict() if self.stats else None,
            "status": self.status.value,
            "error": self.error,
        }


@dataclass
class SimilarityRecord:
    """Stored similarity between one bookmark and a related one."""
    bookmark_id: str
    related_bookmark_id: str
    score: float
    same_domain: bool
    same_category: bool
    computed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookmark_id": self.bookmark_id,
            "related_bookmark_id": self.related_bookmark_id,
            "score": self.score,
            "same_domain": self.same_domain,
            "same_category": self.same_category,
            "computed_at": _iso(self.computed_at),
        }


@dataclass
class SimilarPair:
    """Two bookmarks whose TF-IDF vectors are close."""
    bookmark1: Bookmark
    bookmark2: Bookmark
    similarity: float
    common_category: bool
    same_domain: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookmark1": self.bookmark1.to_dict(),
            "bookmark2": self.bookmark2.to_dict(),
            "similarity": self.similarity,
            "common_category": self.common_category,
            "same_domain": self.same_domain,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimilarPair":
        return cls(
            bookmark1=Bookmark.from_dict(data["bookmark1"]),
            bookmark2=Bookmark.from_dict(data["bookmark2"]),
            similarity=data["similarity"],
            common_category=data["common_category"],
            same_domain=data["same_domain"],
        )


@dataclass
class RelatedBookmark:
    bookmark: Bookmark
    similarity: float
    same_domain: bool
    same_category: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookmark": self.bookmark.to_dict(),
            "similarity": self.similarity,
            "same_domain": self.same_domain,
            "same_category": self.same_category,
        }


@dataclass
class DuplicateGroup:
    kind: str  # "exact" or "similar"
    bookmarks: List[Bookmark]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "bookmarks": [b.to_dict() for b in self.bookmarks]}


@dataclass
class DuplicateReport:
    exact: List[DuplicateGroup] = field(default_factory=list)
    similar: List[DuplicateGroup] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.exact) + len(self.similar)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exact": [g.to_dict() for g in self.exact],
            "similar": [g.to_dict() for g in self.similar],
            "total": self.total,
        }


@dataclass
class FuzzyScanOptions:
    """Options for the corpus-wide fuzzy duplicate scan.

    `seed` controls the cross-domain sample; None draws an unseeded sample.
    """
    min_similarity: float = 0.5
    max_pairs: int = 100
    include_cross_domain: bool = True
    sample_size: int = 200
    seed: Optional[int] = 42

    def __post_init__(self):
        if not 0.0 <= self.min_similarity <= 1.0:
            raise ValueError("min_similarity must be between 0 and 1")
        if self.max_pairs < 1:
            raise ValueError("max_pairs must be positive")
        if self.sample_size < 2:
            raise ValueError("sample_size must be at least 2")


@dataclass
class FuzzyMatch:
    """A likely-duplicate pair found by the fuzzy scorer."""
    bookmark1: Bookmark
    bookmark2: Bookmark
    score: float
    same_domain: bool
    breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookmark1": self.bookmark1.to_dict(),
            "bookmark2": self.bookmark2.to_dict(),
            "score": self.score,
            "same_domain": self.same_domain,
            "breakdown": dict(self.breakdown),
        }
