"""
Tests for BaseCollectionRef.
"""

import pytest
from unittest.mock import MagicMock

from fireschema import (
    BaseCollectionRef,
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
    QueryBuilder,
)

from fixtures.models import Counter, SampleCollection, SampleModel


class TestConstruction:
    """Tests for collection accessor construction."""

    def test_empty_path_rejected(self, memory_store):
        """Should reject an empty collection path."""
        with pytest.raises(InvalidArgumentError, match="path"):
            SampleCollection(memory_store, "")

    def test_missing_record_type_rejected(self, memory_store):
        """Should require a record type from the subclass or the constructor."""
        with pytest.raises(InvalidArgumentError, match="record type"):
            BaseCollectionRef(memory_store, "things")

    def test_record_type_argument(self, memory_store):
        """Should accept the record type as a constructor argument."""
        counters = BaseCollectionRef(memory_store, "counters", Counter)

        assert counters.record_type is Counter

    def test_resolves_collection_once(self):
        """Should ask the store for the collection handle at construction."""
        store = MagicMock()

        SampleCollection(store, "samples")

        store.collection.assert_called_once_with("samples")


class TestDocuments:
    """Tests for CRUD operations."""

    def test_add_generates_key_and_populates_identity(self, samples):
        """Should store under a new key and write it back into the record."""
        ann = SampleModel(id="ignored", name="Ann", value=10)

        key = samples.add(ann)

        assert key and key != "ignored"
        assert ann.id == key
        assert samples.get(key).name == "Ann"

    def test_identity_not_stored(self, samples, memory_store):
        """Should keep the identity field out of stored data."""
        key = samples.add(SampleModel(name="Ann"))

        raw = memory_store.collection("samples").document(key).get()

        assert "id" not in raw.data

    def test_get_missing_returns_none(self, samples):
        """Should return None for a missing document."""
        assert samples.get("nope") is None

    def test_get_or_raise(self, samples):
        """Should raise NotFoundError for a missing document."""
        with pytest.raises(NotFoundError) as exc_info:
            samples.get_or_raise("nope")

        assert exc_info.value.collection == "samples"
        assert exc_info.value.key == "nope"

    def test_set_overwrites(self, samples):
        """Should replace the whole document."""
        samples.set("u1", SampleModel(name="Ann", tags=["a"]))
        samples.set("u1", SampleModel(name="Bea"))

        result = samples.get_or_raise("u1")
        assert result.id == "u1"
        assert result.name == "Bea"
        assert result.tags == []

    def test_set_merge_with_dict(self, samples):
        """Should merge a partial field map, ignoring the identity field."""
        samples.set("u1", SampleModel(name="Ann", value=1))

        samples.set_merge("u1", {"value": 2, "id": "spoofed"})

        result = samples.get_or_raise("u1")
        assert result.id == "u1"
        assert result.name == "Ann"
        assert result.value == 2

    def test_set_merge_rejects_other_types(self, samples):
        """Should reject anything but a record or a dict."""
        with pytest.raises(InvalidArgumentError):
            samples.set_merge("u1", ["value", 2])

    def test_update(self, samples):
        """Should commit the mutations registered by the callback."""
        samples.set("u1", SampleModel(name="Ann", value=1))

        samples.update("u1", lambda u: u.set("name", "Bea").increment("value", 2))

        result = samples.get_or_raise("u1")
        assert (result.name, result.value) == ("Bea", 3)

    def test_update_without_mutations(self, samples):
        """Should fail when the callback registers nothing."""
        samples.set("u1", SampleModel(name="Ann"))

        with pytest.raises(PreconditionFailedError):
            samples.update("u1", lambda u: None)

    def test_delete(self, samples):
        """Should remove the document; deleting again is not an error."""
        samples.set("u1", SampleModel(name="Ann"))

        samples.delete("u1")
        samples.delete("u1")

        assert samples.get("u1") is None

    @pytest.mark.parametrize("bad_id", ["", None])
    def test_empty_id_rejected(self, samples, bad_id):
        """Should reject empty document ids."""
        with pytest.raises(InvalidArgumentError, match="id"):
            samples.get(bad_id)


class TestQueryEntryPoints:
    """Tests for query shortcuts."""

    def test_query_is_typed(self, samples):
        """Should return a QueryBuilder bound to the record type."""
        query = samples.query()

        assert isinstance(query, QueryBuilder)
        assert query.record_type is SampleModel

    def test_shortcuts_start_fresh_queries(self, seeded_samples):
        """Should start an independent query from each shortcut."""
        first = seeded_samples.where_equal_to("value", 701)
        second = seeded_samples.order_by("name")

        assert len(first.descriptor.filters) == 1
        assert second.descriptor.filters == ()
        assert [r.name for r in seeded_samples.limit(1).fetch()] == ["alpha"]
