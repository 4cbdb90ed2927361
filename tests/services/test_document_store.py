"""Tests for the keyed JSON document store."""

from datetime import datetime, timedelta, timezone

import pytest

from sales_kernel.exceptions import DocumentBodyError, UnsupportedFilterError
from sales_kernel.services.document_store import DocumentStore, Filter, deep_merge

T0 = datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc)


def _doc(operator_id, recorded_at, **extra):
    return {"operator_id": operator_id, "recorded_at": recorded_at.isoformat(), **extra}


@pytest.fixture
def populated(store):
    store.put("sales", "s1", _doc("op-1", T0))
    store.put("sales", "s2", _doc("op-1", T0 + timedelta(hours=2)))
    store.put("sales", "s3", _doc("op-2", T0 + timedelta(hours=1)))
    store.put("settlements", "x", _doc("op-1", T0))
    return store


class TestGetPut:

    def test_get_missing_returns_none(self, store):
        assert store.get("sales", "nope") is None

    def test_put_then_get(self, store):
        store.put("sales", "s1", {"a": 1, "nested": {"b": 2}})
        assert store.get("sales", "s1") == {"a": 1, "nested": {"b": 2}}

    def test_put_overwrites_by_default(self, store):
        store.put("sales", "s1", {"a": 1, "b": 2})
        store.put("sales", "s1", {"a": 3})
        assert store.get("sales", "s1") == {"a": 3}

    def test_put_with_merge(self, store):
        store.put("configuration", "k", {"rates": {"VES": "36"}, "base": "USD"})
        store.put("configuration", "k", {"rates": {"COP": "3900"}}, merge=True)
        assert store.get("configuration", "k") == {
            "rates": {"VES": "36", "COP": "3900"},
            "base": "USD",
        }

    def test_returned_bodies_are_copies(self, store):
        store.put("sales", "s1", {"nested": {"b": 2}})
        body = store.get("sales", "s1")
        body["nested"]["b"] = 99
        assert store.get("sales", "s1") == {"nested": {"b": 2}}

    def test_non_mapping_body_rejected(self, store):
        with pytest.raises(DocumentBodyError):
            store.put("sales", "s1", ["not", "a", "mapping"])

    def test_same_key_in_two_collections(self, store):
        store.put("sales", "k", {"v": 1})
        store.put("settlements", "k", {"v": 2})
        assert store.get("sales", "k") == {"v": 1}
        assert store.get("settlements", "k") == {"v": 2}


class TestList:

    def test_lists_collection_ordered_by_recorded_at(self, populated):
        assert [key for key, _ in populated.list("sales")] == ["s1", "s3", "s2"]

    def test_equality_filter(self, populated):
        rows = populated.list("sales", [Filter("operator_id", "==", "op-1")])
        assert [key for key, _ in rows] == ["s1", "s2"]

    def test_range_filter_with_tuples(self, populated):
        rows = populated.list(
            "sales",
            [
                ("recorded_at", ">", T0),
                ("recorded_at", "<=", T0 + timedelta(hours=1)),
            ],
        )
        assert [key for key, _ in rows] == ["s3"]

    def test_bounds_in_other_offsets_compare_in_utc(self, populated):
        caracas = timezone(timedelta(hours=-4))
        start = datetime(2024, 3, 15, 5, 30, tzinfo=caracas)  # 09:30 UTC
        rows = populated.list("sales", [Filter("recorded_at", ">=", start)])
        assert [key for key, _ in rows] == ["s2"]

    def test_stored_offsets_are_normalized(self, store):
        caracas = timezone(timedelta(hours=-4))
        store.put("sales", "late", _doc("op-1", datetime(2024, 3, 15, 22, 0, tzinfo=caracas)))
        rows = store.list("sales", [Filter("recorded_at", ">=", datetime(2024, 3, 16, 1, 0))])
        assert [key for key, _ in rows] == ["late"]

    @pytest.mark.parametrize(
        "flt",
        [
            Filter("client.name", "==", "x"),
            Filter("operator_id", "!=", "op-1"),
            Filter("operator_id", "in", ["op-1"]),
        ],
    )
    def test_unsupported_filters_rejected(self, populated, flt):
        with pytest.raises(UnsupportedFilterError) as exc_info:
            populated.list("sales", [flt])
        assert exc_info.value.code == "UNSUPPORTED_FILTER"


class TestDelete:

    def test_delete_existing(self, populated):
        assert populated.delete("sales", "s1") is True
        assert populated.get("sales", "s1") is None

    def test_delete_missing(self, store):
        assert store.delete("sales", "nope") is False


class TestDeepMerge:

    def test_nested_merge_does_not_mutate_inputs(self):
        base = {"a": {"b": 1, "c": 2}}
        patch = {"a": {"c": 3}, "d": 4}

        merged = deep_merge(base, patch)

        assert merged == {"a": {"b": 1, "c": 3}, "d": 4}
        assert base == {"a": {"b": 1, "c": 2}}

    def test_non_mapping_replaces(self):
        assert deep_merge({"a": {"b": 1}}, {"a": 5}) == {"a": 5}


def test_store_is_flush_only(session, engine):
    DocumentStore(session).put("sales", "s1", {"v": 1})
    session.rollback()
    assert DocumentStore(session).get("sales", "s1") is None
