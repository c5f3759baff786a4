"""In-memory multi-field inverted index over bookmarks."""
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from bookmark_insights.errors import IndexSnapshotError
from bookmark_insights.models import DEFAULT_BOOST, INDEXED_FIELDS, Bookmark, IndexedDocument
from bookmark_insights.text import forward_tokens, index_words


INDEX_SCHEMA_VERSION = 1


def _field_text(bookmark: Bookmark, field_name: str) -> str:
    if field_name == "keywords":
        return " ".join(bookmark.keywords)
    return getattr(bookmark, field_name) or ""


class MultiFieldIndex:
    """One forward-tokenized inverted index per bookmark field.

    Every word is indexed under all of its prefixes, so a query for "prog"
    finds "programming". Each live bookmark id has exactly one
    IndexedDocument.
    """

    def __init__(self, fields: Iterable[str] = INDEXED_FIELDS):
        self.fields: Tuple[str, ...] = tuple(fields)
        self._postings: Dict[str, Dict[str, Set[str]]] = {
            name: defaultdict(set) for name in self.fields
        }
        self._documents: Dict[str, IndexedDocument] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, bookmark_id: object) -> bool:
        return bookmark_id in self._documents

    def document_for(self, bookmark: Bookmark) -> IndexedDocument:
        """Project a bookmark onto its per-field token lists."""
        return IndexedDocument(
            id=bookmark.id,
            fields={name: forward_tokens(_field_text(bookmark, name)) for name in self.fields},
        )

    def _insert(self, document: IndexedDocument) -> None:
        for name, tokens in document.fields.items():
            postings = self._postings[name]
            for token in tokens:
                postings[token].add(document.id)
        self._documents[document.id] = document

    def add(self, bookmark: Bookmark) -> None:
        """Index a bookmark, replacing any existing document with the same id."""
        if bookmark.id in self._documents:
            self.remove(bookmark.id)
        self._insert(self.document_for(bookmark))

    def remove(self, bookmark_id: str) -> bool:
        """Drop a bookmark from every field index.

        Returns:
            True if the bookmark was indexed
        """
        document = self._documents.pop(bookmark_id, None)
        if document is None:
            return False

        for name, tokens in document.fields.items():
            postings = self._postings[name]
            for token in tokens:
                ids = postings.get(token)
                if ids is None:
                    continue
                ids.discard(bookmark_id)
                if not ids:
                    del postings[token]
        return True

    def update(self, bookmark: Bookmark) -> None:
        self.remove(bookmark.id)
        self._insert(self.document_for(bookmark))

    def clear(self) -> None:
        for postings in self._postings.values():
            postings.clear()
        self._documents.clear()

    @staticmethod
    def is_searchable(term: str) -> bool:
        """True if a query term yields at least one index token."""
        return bool(index_words(term))

    def search(
        self,
        terms: Iterable[str],
        fields: Optional[Iterable[str]] = None,
        boost: Optional[Dict[str, float]] = None,
    ) -> List[Tuple[str, float]]:
        """Find documents matching any query term in any requested field.

        Each (field, word) hit adds the field's boost to the document's
        score.

        Args:
            terms: Query terms (OR semantics)
            fields: Fields to search; defaults to all indexed fields
            boost: Per-field weights; defaults to DEFAULT_BOOST

        Returns:
            (bookmark id, score) pairs, highest score first
        """
        boost = boost or DEFAULT_BOOST
        search_fields = [name for name in (fields or self.fields) if name in self._postings]

        words: List[str] = []
        for term in terms:
            for word in index_words(term):
                if word not in words:
                    words.append(word)

        scores: Dict[str, float] = defaultdict(float)
        for name in search_fields:
            postings = self._postings[name]
            weight = boost.get(name, 1)
            for word in words:
                for bookmark_id in postings.get(word, ()):
                    scores[bookmark_id] += weight

        order = {bookmark_id: position for position, bookmark_id in enumerate(self._documents)}
        return sorted(scores.items(), key=lambda item: (-item[1], order[item[0]]))

    def export(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible snapshot."""
        return {
            "schema_version": INDEX_SCHEMA_VERSION,
            "fields": list(self.fields),
            "documents": {
                bookmark_id: document.fields
                for bookmark_id, document in self._documents.items()
            },
        }

    @classmethod
    def from_snapshot(cls, snapshot: Any) -> "MultiFieldIndex":
        """Restore an index from `export()` output.

        Raises:
            IndexSnapshotError: If the snapshot is malformed or was written
                by a different schema version
        """
        if not isinstance(snapshot, dict):
            raise IndexSnapshotError("Index snapshot is not a mapping")

        version = snapshot.get("schema_version")
        if version != INDEX_SCHEMA_VERSION:
            raise IndexSnapshotError(
                f"Index snapshot version {version!r} does not match {INDEX_SCHEMA_VERSION}"
            )

        try:
            index = cls(snapshot["fields"])
            for bookmark_id, fields in snapshot["documents"].items():
                if set(fields) != set(index.fields):
                    raise IndexSnapshotError(f"Document {bookmark_id!r} has unexpected fields")
                index._insert(IndexedDocument(
                    id=str(bookmark_id),
                    fields={name: [str(t) for t in tokens] for name, tokens in fields.items()},
                ))
        except (KeyError, TypeError, AttributeError) as e:
            raise IndexSnapshotError(f"Corrupt index snapshot: {e}") from e

        return index
