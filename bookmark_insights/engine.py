"""Engine facade: owns the search index and similarity caches over a Bookmark Store."""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from bookmark_insights.config import Config, get_config
from bookmark_insights.errors import CacheVersionError, IndexSnapshotError
from bookmark_insights.fuzzy import (
    cross_domain_matches,
    rank_candidates,
    rank_matches,
    same_domain_matches,
    select_candidates,
)
from bookmark_insights.models import (
    ActiveFilters,
    Bookmark,
    DuplicateReport,
    FacetStats,
    FuzzyMatch,
    FuzzyScanOptions,
    RelatedBookmark,
    SearchHit,
    SearchOptions,
    SearchResponse,
    SearchStatus,
    SimilarityRecord,
    SimilarPair,
)
from bookmark_insights.query_parser import parse_query
from bookmark_insights.search import (
    apply_active_filters,
    apply_special_filters,
    match_text,
    rank,
    sort_hits,
)
from bookmark_insights.search_index import MultiFieldIndex
from bookmark_insights.similarity import find_duplicates, find_related, find_similar_pairs
from bookmark_insights.stats import compute_stats
from bookmark_insights.store import BookmarkStore


logger = logging.getLogger(__name__)

INDEX_CACHE_KEY = "flexsearch_index"
SIMILAR_PAIRS_PREFIX = "similar_bookmarks_"
SIMILARITY_CACHE_PATTERN = "similar_"
CACHE_SCHEMA_VERSION = 1
PROGRESS_INTERVAL = 10

ProgressCallback = Callable[[int, int], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(bookmarks: Sequence[Bookmark]) -> List[Bookmark]:
    return sorted(bookmarks, key=lambda b: b.date_added, reverse=True)


class BookmarkInsightsEngine:
    """Search and similarity operations over a Bookmark Store.

    The engine keeps one in-memory search index, restored from the store's
    cache when possible. Index and cache writes are serialized by a single
    lock; searches read whichever index object is current, and a rebuild
    swaps in a complete new index.
    """

    def __init__(
        self,
        store: BookmarkStore,
        config: Optional[Config] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the engine.

        Args:
            store: Bookmark Store supplying the corpus and cache
            config: Engine configuration. Defaults to the global config
            clock: Returns the current aware datetime
        """
        self.store = store
        self.config = config or get_config()
        self._clock = clock
        self._index: Optional[MultiFieldIndex] = None
        self._write_lock = asyncio.Lock()

    # Index lifecycle

    async def initialize_index(self) -> MultiFieldIndex:
        """Load the search index from cache, or build it from the store.

        An unusable cached snapshot is treated as a cache miss.

        Returns:
            The current index
        """
        if self._index is not None:
            return self._index

        async with self._write_lock:
            if self._index is not None:
                return self._index

            index = await self._load_cached_index()
            if index is None:
                index = await self._build_index()
            else:
                logger.info("Loaded search index from cache (%d bookmarks)", len(index))
            self._index = index
            return index

    async def _load_cached_index(self) -> Optional[MultiFieldIndex]:
        try:
            cached = await self.store.get_cache(INDEX_CACHE_KEY)
        except ValueError as e:
            # Undecodable row; _build_index overwrites it
            logger.warning("Cached search index unreadable, rebuilding: %s", e)
            return None
        if cached is None:
            return None
        try:
            snapshot = cached.get("index") if isinstance(cached, dict) else cached
            return MultiFieldIndex.from_snapshot(snapshot)
        except IndexSnapshotError as e:
            logger.warning("Cached search index unusable, rebuilding: %s", e)
            return None

    async def _build_index(self) -> MultiFieldIndex:
        bookmarks = await self.store.get_all_bookmarks()
        index = MultiFieldIndex()
        for bookmark in bookmarks:
            index.add(bookmark)
        await self._save_index(index)
        logger.info("Built search index with %d bookmarks", len(index))
        return index

    async def _save_index(self, index: MultiFieldIndex) -> None:
        await self.store.set_cache(INDEX_CACHE_KEY, {
            "index": index.export(),
            "timestamp": self._clock().isoformat(),
        })

    async def rebuild_index(self) -> int:
        """Rebuild the search index from the store and replace the current one.

        Returns:
            Number of bookmarks indexed
        """
        async with self._write_lock:
            index = await self._build_index()
            self._index = index
        await self._invalidate_similarity_caches()
        return len(index)

    async def add_bookmark(self, bookmark: Bookmark, save_cache: bool = True) -> None:
        """Index a bookmark the store has just saved."""
        index = await self.initialize_index()
        async with self._write_lock:
            index.add(bookmark)
            if save_cache:
                await self._save_index(index)
        await self._invalidate_similarity_caches()

    async def update_bookmark(self, bookmark: Bookmark, save_cache: bool = True) -> None:
        index = await self.initialize_index()
        async with self._write_lock:
            index.update(bookmark)
            if save_cache:
                await self._save_index(index)
        await self._invalidate_similarity_caches()

    async def remove_bookmark(self, bookmark_id: str, save_cache: bool = True) -> bool:
        """Drop a bookmark from the index.

        Returns:
            True if the bookmark was indexed
        """
        index = await self.initialize_index()
        async with self._write_lock:
            removed = index.remove(bookmark_id)
            if removed and save_cache:
                await self._save_index(index)
        if removed:
            await self._invalidate_similarity_caches()
        return removed

    def invalidate_index(self) -> None:
        """Forget the in-memory index; the next search reloads it."""
        self._index = None

    async def clear_index(self) -> None:
        """Forget the index and its cached snapshot."""
        async with self._write_lock:
            self._index = None
            await self.store.set_cache(INDEX_CACHE_KEY, None)

    def get_index_stats(self) -> Dict[str, Any]:
        return {
            "initialized": self._index is not None,
            "document_count": len(self._index) if self._index is not None else 0,
            "fields": list(self._index.fields) if self._index is not None else [],
        }

    async def _invalidate_similarity_caches(self) -> None:
        async with self._write_lock:
            await self.store.clear_cache(SIMILARITY_CACHE_PATTERN)

    # Search

    async def _index_for_search(self) -> Optional[MultiFieldIndex]:
        try:
            return await self.initialize_index()
        except Exception as e:
            logger.error("Search index could not be loaded: %s", e)
            return None

    async def search_bookmarks(
        self,
        query: str = "",
        active_filters: Optional[ActiveFilters] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        """Search bookmarks with structured filters and an advanced text query.

        Args:
            query: Raw query (special filters, regexes, phrases, +/- terms)
            active_filters: Structured sidebar filters
            options: Pagination, sorting, field and stats options

        Returns:
            SearchResponse. Status is DEGRADED when the index could not be
            used and FAILED when the store could not be read.
        """
        if options is None:
            options = SearchOptions(
                limit=self.config.search.default_limit,
                boost=dict(self.config.search.boost),
            )
        stale_days = self.config.search.stale_after_days

        try:
            corpus = await self.store.get_all_bookmarks()
        except Exception as e:
            logger.error("Bookmark store failed during search: %s", e)
            return SearchResponse(
                results=[], total=0, has_more=False,
                status=SearchStatus.FAILED, error=str(e),
            )

        now = self._clock()
        candidates = apply_active_filters(corpus, active_filters, now, stale_days)
        status = SearchStatus.OK
        parsed = special = None

        if query and query.strip():
            special, parsed = parse_query(query)
            if not special.is_empty():
                candidates = apply_special_filters(candidates, special, now, stale_days)

        if parsed is not None and not parsed.is_empty:
            index = await self._index_for_search() if parsed.regular else None
            matched, degraded = match_text(candidates, parsed, index, options.fields, options.boost)
            if degraded:
                status = SearchStatus.DEGRADED
            hits = rank(matched, parsed)
            sort_hits(hits, options.sort_by or "relevance")
        else:
            hits = [SearchHit(bookmark=b) for b in candidates]
            sort_hits(hits, options.sort_by or "date_desc")

        total = len(hits)
        page = hits[options.offset:options.offset + options.limit]

        return SearchResponse(
            results=page,
            total=total,
            has_more=options.offset + options.limit < total,
            parsed_query=parsed,
            special_filters=special,
            stats=compute_stats([h.bookmark for h in hits], now) if options.compute_stats else None,
            status=status,
        )

    def compute_search_result_stats(self, bookmarks: Sequence[Bookmark]) -> FacetStats:
        return compute_stats(bookmarks, self._clock())

    # Similarity

    async def _all_bookmarks(self, operation: str) -> Optional[List[Bookmark]]:
        try:
            return await self.store.get_all_bookmarks()
        except Exception as e:
            logger.error("Bookmark store failed during %s: %s", operation, e)
            return None

    async def find_duplicates_enhanced(self) -> DuplicateReport:
        """Group exact and normalized-URL duplicates across the corpus."""
        bookmarks = await self._all_bookmarks("duplicate detection")
        if bookmarks is None:
            return DuplicateReport()
        return find_duplicates(bookmarks)

    def _pairs_from_cache(self, key: str, cached: Any, max_pairs: int) -> Optional[List[SimilarPair]]:
        if not isinstance(cached, dict):
            return None
        version = cached.get("schema_version")
        if version != CACHE_SCHEMA_VERSION:
            raise CacheVersionError(key, version, CACHE_SCHEMA_VERSION)
        if cached.get("max_pairs") != max_pairs:
            return None
        return [SimilarPair.from_dict(p) for p in cached.get("pairs", [])]

    async def find_similar_bookmarks_enhanced(
        self,
        threshold: Optional[float] = None,
        max_pairs: Optional[int] = None,
        use_cache: bool = True,
    ) -> List[SimilarPair]:
        """Find similar bookmark pairs by TF-IDF cosine similarity.

        Results are cached per threshold for a few minutes.

        Args:
            threshold: Minimum similarity. Defaults to config
            max_pairs: Maximum pairs returned. Defaults to config
            use_cache: Read a fresh cached result when one exists

        Returns:
            Pairs sorted by similarity, highest first
        """
        threshold = self.config.similarity.threshold if threshold is None else threshold
        max_pairs = self.config.similarity.max_pairs if max_pairs is None else max_pairs
        key = f"{SIMILAR_PAIRS_PREFIX}{threshold}"

        if use_cache:
            try:
                pairs = self._pairs_from_cache(key, await self.store.get_cache(key), max_pairs)
            except CacheVersionError as e:
                logger.info("Ignoring cached similar pairs: %s", e)
                pairs = None
            except Exception as e:
                logger.error("Failed to read similar pairs cache: %s", e)
                pairs = None
            if pairs is not None:
                return pairs

        bookmarks = await self._all_bookmarks("similarity search")
        if bookmarks is None:
            return []

        await asyncio.sleep(0)
        pairs = find_similar_pairs(bookmarks, threshold, max_pairs)

        try:
            async with self._write_lock:
                await self.store.set_cache(key, {
                    "schema_version": CACHE_SCHEMA_VERSION,
                    "max_pairs": max_pairs,
                    "pairs": [p.to_dict() for p in pairs],
                    "timestamp": self._clock().isoformat(),
                }, ttl=self.config.similarity.pairs_cache_ttl)
        except Exception as e:
            logger.error("Failed to cache similar pairs: %s", e)

        return pairs

    async def find_related_bookmarks(self, bookmark_id: str, limit: int = 10) -> List[RelatedBookmark]:
        """Rank the corpus by TF-IDF similarity to one bookmark."""
        bookmarks = await self._all_bookmarks("related bookmark search")
        if bookmarks is None:
            return []
        return find_related(bookmarks, bookmark_id, limit)

    async def _candidates(self, target: Bookmark, corpus: Optional[Sequence[Bookmark]]) -> List[Bookmark]:
        cfg = self.config.similarity
        # One extra row since the target itself is usually in its own domain
        if corpus is None:
            same_domain = (
                await self.store.get_bookmarks_by_domain(target.domain, limit=cfg.domain_candidates + 1)
                if target.domain else []
            )
            same_category = (
                await self.store.get_bookmarks_by_category(target.category, limit=cfg.category_candidates + 1)
                if target.category else []
            )
            keyword_pool = await self.store.get_all_bookmarks() if target.keywords else []
        else:
            ordered = _newest_first(corpus)
            domain, category = target.domain.lower(), target.category.lower()
            same_domain = [b for b in ordered if domain and b.domain.lower() == domain]
            same_category = [b for b in ordered if category and b.category.lower() == category]
            keyword_pool = ordered

        return select_candidates(
            target,
            same_domain,
            same_category,
            keyword_pool,
            domain_cap=cfg.domain_candidates,
            category_cap=cfg.category_candidates,
            keyword_cap=cfg.keyword_candidates,
        )

    async def compute_similarity_for_bookmark(
        self,
        bookmark_id: str,
        top_n: Optional[int] = None,
        corpus: Optional[Sequence[Bookmark]] = None,
    ) -> List[SimilarityRecord]:
        """Score one bookmark against its pre-filtered candidates and store the top N.

        Args:
            bookmark_id: Bookmark to compute records for
            top_n: Number of records to keep. Defaults to config
            corpus: Already-loaded corpus to draw candidates from, if any

        Returns:
            Stored records, best first; empty if the bookmark is unknown
        """
        try:
            target = await self.store.get_bookmark(bookmark_id)
            if target is None:
                return []
            candidates = await self._candidates(target, corpus)
        except Exception as e:
            logger.error("Bookmark store failed computing similarities for %s: %s", bookmark_id, e)
            return []

        top_n = self.config.similarity.top_n if top_n is None else top_n
        records = rank_candidates(target, candidates, top_n, self._clock())

        try:
            async with self._write_lock:
                await self.store.store_similarities(target.id, records)
        except Exception as e:
            logger.error("Failed to store similarities for %s: %s", bookmark_id, e)

        return records

    def _is_fresh(self, records: List[SimilarityRecord]) -> bool:
        max_age = timedelta(seconds=self.config.similarity.records_ttl)
        now = self._clock()
        return all(now - r.computed_at < max_age for r in records)

    async def get_similar_bookmarks_with_cache(
        self,
        bookmark_id: str,
        limit: Optional[int] = None,
    ) -> List[SimilarityRecord]:
        """Get stored similarity records, recomputing them when missing or stale."""
        try:
            stored = await self.store.get_stored_similarities(bookmark_id)
        except Exception as e:
            logger.error("Failed to read stored similarities for %s: %s", bookmark_id, e)
            stored = []

        if stored and self._is_fresh(stored):
            records = stored
        else:
            records = await self.compute_similarity_for_bookmark(bookmark_id)

        return records[:limit] if limit is not None else records

    async def find_similar_bookmarks_enhanced_fuzzy(
        self,
        options: Optional[FuzzyScanOptions] = None,
    ) -> List[FuzzyMatch]:
        """Find likely duplicates with the fuzzy scorer.

        Same-domain buckets are compared exhaustively first; a bounded
        cross-domain sample is only compared if that found fewer than
        max_pairs matches.

        Returns:
            Matches sorted by score, highest first
        """
        if options is None:
            cfg = self.config.similarity
            options = FuzzyScanOptions(
                max_pairs=cfg.max_pairs,
                sample_size=cfg.fuzzy_sample_size,
                seed=cfg.sample_seed,
            )

        bookmarks = await self._all_bookmarks("fuzzy similarity scan")
        if bookmarks is None:
            return []

        matches = same_domain_matches(bookmarks, options)
        await asyncio.sleep(0)

        if options.include_cross_domain and len(matches) < options.max_pairs:
            matches.extend(cross_domain_matches(bookmarks, options, found=len(matches)))
            await asyncio.sleep(0)

        return rank_matches(matches, options.max_pairs)

    async def precompute_similarities(self, progress: Optional[ProgressCallback] = None) -> int:
        """Compute and store similarity records for every enriched bookmark.

        Args:
            progress: Called with (completed, total) every 10 bookmarks and at the end

        Returns:
            Number of bookmarks processed
        """
        bookmarks = await self._all_bookmarks("similarity precompute")
        if bookmarks is None:
            return 0

        enriched = [b for b in bookmarks if b.is_enriched]
        total = len(enriched)
        logger.info("Precomputing similarities for %d enriched bookmarks", total)

        for completed, bookmark in enumerate(enriched, start=1):
            await self.compute_similarity_for_bookmark(bookmark.id, corpus=bookmarks)
            if completed % PROGRESS_INTERVAL == 0 or completed == total:
                logger.info("Similarity precompute progress: %d/%d", completed, total)
                if progress:
                    progress(completed, total)

        return total
