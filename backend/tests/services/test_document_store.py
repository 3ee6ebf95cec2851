# backend/tests/services/test_document_store.py
"""
Tests for SqlDocumentStore.

This module tests:
- get/set with full replacement
- update as a shallow merge that creates missing documents
- Prefix listing, including LIKE wildcards in keys
- Isolation of returned data from stored data
"""


class TestGetSet:
    """Tests for get() and set()."""

    def test_get_missing(self, document_store):
        """Should return None for an unknown key."""
        assert document_store.get("users/u1/portfolio") is None

    def test_set_then_get(self, document_store):
        """Should read back what was written."""
        document_store.set("users/u1/portfolio", {"stocks": [{"ticker": "BBCA"}]})

        assert document_store.get("users/u1/portfolio") == {"stocks": [{"ticker": "BBCA"}]}

    def test_set_replaces_whole_document(self, document_store):
        """Should drop fields absent from the new document."""
        document_store.set("k", {"a": 1, "b": 2})
        document_store.set("k", {"a": 3})

        assert document_store.get("k") == {"a": 3}

    def test_returned_data_is_a_copy(self, document_store):
        """Should not let callers mutate stored state through a returned dict."""
        document_store.set("k", {"items": [1]})

        document_store.get("k")["items"].append(2)

        assert document_store.get("k") == {"items": [1]}


class TestUpdate:
    """Tests for update()."""

    def test_update_merges_top_level(self, document_store):
        """Should keep untouched fields and replace given ones."""
        document_store.set("k", {"stocks": [1], "cash": [2]})

        merged = document_store.update("k", {"stocks": [3]})

        assert merged == {"stocks": [3], "cash": [2]}
        assert document_store.get("k") == merged

    def test_update_creates_missing(self, document_store):
        """Should create the document when nothing is stored yet."""
        merged = document_store.update("k", {"gold": []})

        assert merged == {"gold": []}
        assert document_store.get("k") == {"gold": []}


class TestList:
    """Tests for list()."""

    def test_list_by_prefix_ordered(self, document_store):
        """Should return only matching keys, sorted."""
        document_store.set("users/u1/history/2024-06-02", {"date": "2024-06-02"})
        document_store.set("users/u1/history/2024-06-01", {"date": "2024-06-01"})
        document_store.set("users/u1/portfolio", {})
        document_store.set("users/u2/history/2024-06-01", {"date": "2024-06-01"})

        rows = document_store.list("users/u1/history/")

        assert [key for key, _ in rows] == [
            "users/u1/history/2024-06-01",
            "users/u1/history/2024-06-02",
        ]
        assert rows[0][1] == {"date": "2024-06-01"}

    def test_prefix_wildcards_are_literal(self, document_store):
        """Should not treat '_' or '%' in the prefix as wildcards."""
        document_store.set("users/a_b/history/1", {})
        document_store.set("users/axb/history/1", {})
        document_store.set("users/100%/history/1", {})
        document_store.set("users/1000/history/1", {})

        assert [k for k, _ in document_store.list("users/a_b/")] == ["users/a_b/history/1"]
        assert [k for k, _ in document_store.list("users/100%/")] == ["users/100%/history/1"]

    def test_list_empty(self, document_store):
        """Should return an empty list when nothing matches."""
        assert document_store.list("users/none/") == []
