"""Tests for search_index module."""
import pytest

from bookmark_insights.errors import IndexSnapshotError
from bookmark_insights.models import Bookmark
from bookmark_insights.search_index import INDEX_SCHEMA_VERSION, MultiFieldIndex


@pytest.fixture
def index(corpus):
    idx = MultiFieldIndex()
    for bookmark in corpus:
        idx.add(bookmark)
    return idx


class TestMultiFieldIndex:
    def test_add_and_len(self, index, corpus):
        assert len(index) == len(corpus)
        assert "rust-book" in index

    def test_prefix_match(self, index):
        ids = [bookmark_id for bookmark_id, _ in index.search(["prog"])]
        assert "rust-book" in ids

    def test_title_boost_ranks_title_hits_first(self):
        idx = MultiFieldIndex()
        idx.add(Bookmark(id="desc", title="Other", description="rust"))
        idx.add(Bookmark(id="title", title="Rust"))
        results = idx.search(["rust"])
        assert [bookmark_id for bookmark_id, _ in results] == ["title", "desc"]
        assert results[0][1] == 3

    def test_scores_accumulate_across_fields(self):
        idx = MultiFieldIndex()
        idx.add(Bookmark(id="1", title="Rust", category="rust"))
        assert idx.search(["rust"]) == [("1", 5)]

    def test_custom_fields_and_boost(self, index):
        results = index.search(["rust"], fields=["domain"], boost={"domain": 7})
        assert results == [("rust-book", 7)]

    def test_ties_keep_insertion_order(self):
        idx = MultiFieldIndex()
        idx.add(Bookmark(id="b", title="Rust"))
        idx.add(Bookmark(id="a", title="Rust"))
        assert [bookmark_id for bookmark_id, _ in idx.search(["rust"])] == ["b", "a"]

    def test_remove(self, index):
        assert index.remove("rust-book")
        assert not index.remove("rust-book")
        assert "rust-book" not in index
        assert all(bookmark_id != "rust-book" for bookmark_id, _ in index.search(["rust"]))

    def test_update_replaces_document(self, index):
        index.update(Bookmark(id="rust-book", title="Go Book"))
        ids = [bookmark_id for bookmark_id, _ in index.search(["rust"])]
        assert "rust-book" not in ids
        assert index.search(["go"])[0][0] == "rust-book"
        assert len(index.document_for(Bookmark(id="x")).fields) == len(index.fields)

    def test_add_twice_keeps_one_document(self, index, corpus):
        index.add(corpus[0])
        assert len(index) == len(corpus)

    def test_is_searchable(self):
        assert MultiFieldIndex.is_searchable("c++")
        assert not MultiFieldIndex.is_searchable("++")


class TestSnapshots:
    def test_export_round_trip(self, index):
        restored = MultiFieldIndex.from_snapshot(index.export())
        assert len(restored) == len(index)
        assert restored.search(["rust"]) == index.search(["rust"])

    def test_version_mismatch(self, index):
        snapshot = index.export()
        snapshot["schema_version"] = INDEX_SCHEMA_VERSION + 1
        with pytest.raises(IndexSnapshotError):
            MultiFieldIndex.from_snapshot(snapshot)

    @pytest.mark.parametrize("snapshot", [
        None,
        "garbage",
        {"schema_version": INDEX_SCHEMA_VERSION},
        {"schema_version": INDEX_SCHEMA_VERSION, "fields": ["title"], "documents": {"1": {"url": []}}},
        {"schema_version": INDEX_SCHEMA_VERSION, "fields": ["title"], "documents": []},
    ])
    def test_malformed_snapshots(self, snapshot):
        with pytest.raises(IndexSnapshotError):
            MultiFieldIndex.from_snapshot(snapshot)
