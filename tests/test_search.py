"""Tests for search module."""
import pytest

from bookmark_insights.models import ActiveFilters, Bookmark, SearchHit, SpecialFilters
from bookmark_insights.query_parser import parse_advanced_query, parse_special_filters
from bookmark_insights.search import (
    apply_active_filters,
    apply_special_filters,
    calculate_relevance_score,
    is_stale,
    linear_scan,
    match_text,
    sort_hits,
)
from bookmark_insights.search_index import MultiFieldIndex

from tests.conftest import NOW, days_ago


def ids(bookmarks):
    return [b.id for b in bookmarks]


class TestActiveFilters:
    def test_none_keeps_everything(self, corpus):
        assert apply_active_filters(corpus, None, NOW) == corpus

    def test_domains_are_substring_matches(self, corpus):
        result = apply_active_filters(corpus, ActiveFilters(domains=["example.com"]), NOW)
        assert ids(result) == ["rust-tutorial", "dead-article"]

    def test_topics_match_hierarchically(self, corpus):
        result = apply_active_filters(corpus, ActiveFilters(topics=["Dev"]), NOW)
        assert ids(result) == ["rust-book", "rust-tutorial", "repo"]

    def test_topic_prefix_requires_separator(self):
        bookmark = Bookmark(id="1", topics=("developer",))
        assert apply_active_filters([bookmark], ActiveFilters(topics=["dev"]), NOW) == []

    def test_creators_use_platform_key(self, corpus):
        result = apply_active_filters(corpus, ActiveFilters(creators=["github:tokio-rs"]), NOW)
        assert ids(result) == ["repo"]

    def test_dead_links(self, corpus):
        result = apply_active_filters(corpus, ActiveFilters(dead_links=True), NOW)
        assert ids(result) == ["cat-video", "dead-article"]

    def test_stale_excludes_dead_and_accessed(self, corpus):
        result = apply_active_filters(corpus, ActiveFilters(stale=True), NOW)
        assert ids(result) == ["rust-tutorial"]

    def test_date_range_is_inclusive(self, corpus):
        filters = ActiveFilters(date_range=(days_ago(20), days_ago(3)))
        assert ids(apply_active_filters(corpus, filters, NOW)) == ["rust-book", "live-video", "repo"]

    def test_reading_time_missing_counts_as_zero(self):
        bookmarks = [Bookmark(id="none"), Bookmark(id="long", reading_time=30)]
        result = apply_active_filters(bookmarks, ActiveFilters(reading_time_range=(None, 10)), NOW)
        assert ids(result) == ["none"]

    def test_quality_score_min(self):
        bookmarks = [Bookmark(id="low", quality_score=20), Bookmark(id="high", quality_score=90)]
        result = apply_active_filters(bookmarks, ActiveFilters(quality_score_range=(50, None)), NOW)
        assert ids(result) == ["high"]

    def test_has_published_date_reads_raw_metadata(self):
        bookmarks = [
            Bookmark(id="raw", raw_metadata={"publishedDate": "2024-01-01"}),
            Bookmark(id="none"),
        ]
        assert ids(apply_active_filters(bookmarks, ActiveFilters(has_published_date=True), NOW)) == ["raw"]
        assert ids(apply_active_filters(bookmarks, ActiveFilters(has_published_date=False), NOW)) == ["none"]

    def test_invalid_ranges_rejected(self):
        with pytest.raises(ValueError):
            ActiveFilters(quality_score_range=(80, 10))
        with pytest.raises(ValueError):
            ActiveFilters(date_range=(days_ago(1), days_ago(5)))


class TestSpecialFilters:
    def test_dead_and_category(self, corpus):
        filters, _ = parse_special_filters("dead:yes category:video")
        assert ids(apply_special_filters(corpus, filters, NOW)) == ["cat-video"]

    def test_missing_category_is_uncategorized(self):
        bookmarks = [Bookmark(id="1"), Bookmark(id="2", category="news")]
        result = apply_special_filters(bookmarks, SpecialFilters(category="uncategorized"), NOW)
        assert ids(result) == ["1"]

    def test_missing_platform_is_other(self, corpus):
        result = apply_special_filters(corpus, SpecialFilters(platform="other"), NOW)
        assert ids(result) == ["rust-book", "rust-tutorial", "dead-article"]

    def test_creator_with_at_sign(self, corpus):
        result = apply_special_filters(corpus, SpecialFilters(creator="@catchannel"), NOW)
        assert ids(result) == ["cat-video"]

    def test_repo(self, corpus):
        assert ids(apply_special_filters(corpus, SpecialFilters(repo="tokio-rs/"), NOW)) == ["repo"]

    def test_content_type_alternatives(self, corpus):
        result = apply_special_filters(corpus, SpecialFilters(content_type="video|repository"), NOW)
        assert ids(result) == ["cat-video", "live-video", "repo"]

    def test_has_image_and_playlist(self, corpus):
        assert ids(apply_special_filters(corpus, SpecialFilters(has_image=True), NOW)) == ["cat-video"]
        assert ids(apply_special_filters(corpus, SpecialFilters(playlist="PL1"), NOW)) == ["cat-video"]

    def test_accessed_and_enriched(self, corpus):
        accessed = apply_special_filters(corpus, SpecialFilters(accessed=True), NOW)
        assert ids(accessed) == ["rust-book", "live-video"]
        unenriched = apply_special_filters(corpus, SpecialFilters(enriched=False), NOW)
        assert ids(unenriched) == ["cat-video", "dead-article"]

    def test_is_stale(self):
        old = Bookmark(id="1", date_added=days_ago(31))
        assert is_stale(old, NOW)
        assert not is_stale(Bookmark(id="2", date_added=days_ago(5)), NOW)
        assert not is_stale(Bookmark(id="3", date_added=days_ago(31), access_count=1), NOW)


class TestRelevance:
    def test_title_prefix_bonus(self):
        bookmark = Bookmark(id="1", title="Rust Book", url="https://example.com")
        assert calculate_relevance_score(bookmark, parse_advanced_query("rust")) == 15

    def test_field_weights(self):
        bookmark = Bookmark(
            id="1",
            title="The Rust Book",
            url="https://rust.example.com",
            domain="rust.example.com",
            category="rust",
            description="rust",
        )
        # title 10 + domain 5 + category 4 + description 2 + url 1
        assert calculate_relevance_score(bookmark, parse_advanced_query("rust")) == 22

    def test_regex_weights(self):
        bookmark = Bookmark(id="1", title="Rust", url="https://example.com/rust", description="nothing")
        assert calculate_relevance_score(bookmark, parse_advanced_query("/rust/")) == 11


class TestSorting:
    def hits(self):
        return [
            SearchHit(Bookmark(id="old", title="beta", domain="b.com", date_added=days_ago(10)), score=5),
            SearchHit(Bookmark(id="new", title="Alpha", domain="c.com", date_added=days_ago(1)), score=5),
            SearchHit(Bookmark(id="top", title="gamma", domain="a.com", date_added=days_ago(30)), score=9),
        ]

    def test_relevance_breaks_ties_by_newest(self):
        assert [h.bookmark.id for h in sort_hits(self.hits(), "relevance")] == ["top", "new", "old"]

    def test_date_and_title_orders(self):
        assert [h.bookmark.id for h in sort_hits(self.hits(), "date_desc")] == ["new", "old", "top"]
        assert [h.bookmark.id for h in sort_hits(self.hits(), "date_asc")] == ["top", "old", "new"]
        assert [h.bookmark.id for h in sort_hits(self.hits(), "title_asc")] == ["new", "old", "top"]
        assert [h.bookmark.id for h in sort_hits(self.hits(), "title_desc")] == ["top", "old", "new"]
        assert [h.bookmark.id for h in sort_hits(self.hits(), "domain_asc")] == ["top", "old", "new"]

    def test_unknown_key_sorts_newest_first(self):
        assert [h.bookmark.id for h in sort_hits(self.hits(), "bogus")] == ["new", "old", "top"]


class BrokenIndex:
    def is_searchable(self, term):
        return True

    def search(self, terms, fields=None, boost=None):
        raise RuntimeError("index corrupted")


class TestMatchText:
    def test_index_hits_are_revalidated(self, corpus):
        index = MultiFieldIndex()
        for bookmark in corpus:
            index.add(bookmark)
        matched, degraded = match_text(corpus, parse_advanced_query("rust -tutorial"), index)
        assert not degraded
        assert ids(matched) == ["rust-book", "repo"]

    def test_index_failure_falls_back_to_linear_scan(self, corpus):
        parsed = parse_advanced_query("rust -tutorial")
        matched, degraded = match_text(corpus, parsed, BrokenIndex())
        assert degraded
        assert matched == linear_scan(corpus, parsed)

    def test_missing_index_is_degraded(self, corpus):
        matched, degraded = match_text(corpus, parse_advanced_query("tokio"), None)
        assert degraded
        assert ids(matched) == ["repo"]

    def test_untokenizable_term_uses_linear_scan(self):
        bookmarks = [Bookmark(id="1", title="C# tips"), Bookmark(id="2", title="Go tips")]
        index = MultiFieldIndex()
        for bookmark in bookmarks:
            index.add(bookmark)
        matched, degraded = match_text(bookmarks, parse_advanced_query("#"), index)
        assert not degraded
        assert ids(matched) == ["1"]
