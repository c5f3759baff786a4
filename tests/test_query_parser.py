"""Tests for query_parser module."""
import re

from bookmark_insights.models import Bookmark
from bookmark_insights.query_parser import (
    compile_query_regex,
    matches_advanced_query,
    parse_advanced_query,
    parse_filter_query,
    parse_query,
    parse_special_filters,
)


class TestSpecialFilters:
    def test_extracts_filters_and_remaining_text(self):
        filters, remaining = parse_special_filters("category:Video rust domain:GitHub.com")
        assert filters.category == "video"
        assert filters.domain == "github.com"
        assert remaining == "rust"

    def test_yes_no_filters_become_booleans(self):
        filters, remaining = parse_special_filters("dead:yes accessed:no")
        assert filters.dead is True
        assert filters.accessed is False
        assert remaining == ""

    def test_quoted_folder(self):
        filters, remaining = parse_special_filters('folder:"Dev Tools" cli')
        assert filters.folder == "dev tools"
        assert remaining == "cli"

    def test_channel_and_author_alias_creator(self):
        assert parse_special_filters("channel:@CatChannel")[0].creator == "@CatChannel"
        assert parse_special_filters("author:someone")[0].creator == "someone"

    def test_type_alias(self):
        filters, _ = parse_special_filters("type:video|article")
        assert filters.content_type == "video|article"

    def test_keys_are_case_insensitive(self):
        filters, _ = parse_special_filters("CATEGORY:news")
        assert filters.category == "news"

    def test_key_inside_word_is_not_a_filter(self):
        filters, remaining = parse_special_filters("subcategory:foo")
        assert filters.category is None
        assert remaining == "subcategory:foo"

    def test_empty_query(self):
        filters, remaining = parse_special_filters("   ")
        assert filters.is_empty()
        assert remaining == ""


class TestAdvancedQuery:
    def test_term_kinds(self):
        parsed = parse_advanced_query('+Rust -tutorial "exact phrase" guide')
        assert parsed.positive == ["rust"]
        assert parsed.negative == ["tutorial"]
        assert parsed.phrases == ["exact phrase"]
        assert parsed.regular == ["guide"]
        assert parsed.has_modifiers

    def test_phrase_modifiers(self):
        parsed = parse_advanced_query('+"must have" -"must not"')
        assert parsed.positive == ["must have"]
        assert parsed.negative == ["must not"]
        assert parsed.phrases == []

    def test_regex_defaults_to_case_insensitive(self):
        parsed = parse_advanced_query("/ru+st/")
        assert len(parsed.regex_patterns) == 1
        assert parsed.regex_patterns[0].flags & re.IGNORECASE

    def test_regex_with_flags_is_case_sensitive(self):
        parsed = parse_advanced_query("/Rust/g")
        assert not parsed.regex_patterns[0].flags & re.IGNORECASE

    def test_invalid_regex_is_dropped(self, caplog):
        parsed = parse_advanced_query("/[/ rust")
        assert parsed.regex_patterns == []
        assert parsed.regular == ["rust"]
        assert "Invalid regex" in caplog.text

    def test_only_invalid_regex_is_empty(self):
        assert parse_advanced_query("/[/").is_empty

    def test_bare_modifiers_are_skipped(self):
        parsed = parse_advanced_query("+ - rust")
        assert parsed.positive == []
        assert parsed.negative == []
        assert parsed.regular == ["rust"]

    def test_parse_query_is_pure(self):
        first = parse_query('dead:yes +rust "a b" /x/i')
        second = parse_query('dead:yes +rust "a b" /x/i')
        assert first[0] == second[0]
        assert first[1].to_dict() == second[1].to_dict()

    def test_compile_invalid_returns_none(self):
        assert compile_query_regex("(unclosed") is None


class TestMatching:
    def bookmark(self):
        return Bookmark(
            id="1",
            url="https://doc.rust-lang.org/book/",
            title="The Rust Book",
            description="Learn systems programming",
            domain="doc.rust-lang.org",
            category="programming",
            keywords=("cargo",),
        )

    def test_positive_and_negative(self):
        assert matches_advanced_query(self.bookmark(), parse_advanced_query("+rust -python"))
        assert not matches_advanced_query(self.bookmark(), parse_advanced_query("+rust -book"))

    def test_regular_terms_are_or(self):
        assert matches_advanced_query(self.bookmark(), parse_advanced_query("python cargo"))
        assert not matches_advanced_query(self.bookmark(), parse_advanced_query("python java"))

    def test_phrases(self):
        assert matches_advanced_query(self.bookmark(), parse_advanced_query('"systems programming"'))
        assert not matches_advanced_query(self.bookmark(), parse_advanced_query('"programming systems"'))

    def test_case_sensitive_regex_sees_original_text(self):
        assert matches_advanced_query(self.bookmark(), parse_advanced_query("/Rust B/g"))
        assert not matches_advanced_query(self.bookmark(), parse_advanced_query("/rust b/g"))
        assert matches_advanced_query(self.bookmark(), parse_advanced_query("/rust b/"))


class TestFilterQuery:
    def test_structured_filters(self):
        text, filters = parse_filter_query('site:github.com folder:"Dev Tools" topic:dev tag:a tag:b rust')
        assert text == "rust"
        assert filters.domains == ["github.com"]
        assert filters.folders == ["dev tools"]
        assert filters.topics == ["dev"]
        assert filters.tags == ["a", "b"]

    def test_dead_and_stale(self):
        text, filters = parse_filter_query("is:dead stale:yes")
        assert text == ""
        assert filters.dead_links
        assert filters.stale

    def test_prefix_must_start_a_word(self):
        text, filters = parse_filter_query("subdomain:x mytag:y notis:dead rust")
        assert text == "subdomain:x mytag:y notis:dead rust"
        assert filters.domains == []
        assert filters.tags == []
        assert not filters.dead_links
