"""
Scenario tests against the in-memory store.

Exercises the full path (collection accessor -> builders -> store) with
document-store semantics: filters, ordering, limits, cursors and every
mutation marker.
"""

import threading
from datetime import datetime, timezone

import pytest

from fireschema import FieldPath, NotFoundError, fields
from fireschema.stores.memory import MemoryStore, sort_key, values_equal

from fixtures.models import Address, Person, SampleModel


class TestFilters:
    """Tests for filter evaluation."""

    def test_equal_to_scenario(self, seeded_samples):
        """Should return exactly the two documents with value 701."""
        results = seeded_samples.where_equal_to(fields(SampleModel).value, 701).fetch()

        assert len(results) == 2
        assert all(r.value == 701 for r in results)
        assert sorted(r.id for r in results) == ["b", "c"]

    def test_not_equal_to(self, seeded_samples):
        """Should return documents whose value differs."""
        results = seeded_samples.where_not_equal_to("value", 701).fetch()

        assert [r.id for r in results] == ["a"]

    def test_range_filters(self, seeded_samples):
        """Should apply range comparisons."""
        assert len(seeded_samples.where_less_than("value", 701).fetch()) == 1
        assert len(seeded_samples.where_less_than_or_equal_to("value", 701).fetch()) == 3
        assert len(seeded_samples.where_greater_than("value", 700).fetch()) == 2
        assert len(seeded_samples.where_greater_than_or_equal_to("value", 702).fetch()) == 0

    def test_range_does_not_cross_types(self, samples):
        """Should not match values of another type in range filters."""
        samples.set_merge("n", {"value": 5})
        samples.set_merge("s", {"name": "x", "value": "5"})

        results = samples.query().where_greater_than("value", 1).fetch_raw()

        assert [r.key for r in results] == ["n"]

    def test_array_contains(self, seeded_samples):
        """Should match arrays containing the value."""
        results = seeded_samples.where_array_contains("tags", "x").fetch()

        assert sorted(r.id for r in results) == ["a", "c"]

    def test_in_and_not_in(self, seeded_samples):
        """Should match set membership."""
        assert sorted(r.id for r in seeded_samples.where_in("name", ["alpha", "gamma"]).fetch()) == ["a", "c"]
        assert [r.id for r in seeded_samples.where_not_in("name", ["alpha", "gamma"]).fetch()] == ["b"]

    def test_array_contains_any(self, seeded_samples):
        """Should match arrays sharing any value."""
        results = seeded_samples.where_array_contains_any("tags", ["y", "q"]).fetch()

        assert [r.id for r in results] == ["b"]

    def test_document_id_filter(self, seeded_samples):
        """Should filter on the storage key through the identity selector."""
        results = seeded_samples.where_in(fields(SampleModel).id, ["a", "c"]).fetch()

        assert [r.id for r in results] == ["a", "c"]

    def test_missing_field_never_matches(self, seeded_samples):
        """Should exclude documents lacking the filtered field."""
        assert seeded_samples.where_not_equal_to("optionalValue", 1.0).fetch() == []

    def test_nested_field_filter(self, people):
        """Should filter on nested paths."""
        people.set_merge("p1", {"displayName": "Ann", "address": {"cityName": "Springfield"}})
        people.set_merge("p2", {"displayName": "Bob", "address": {"cityName": "Shelbyville"}})

        results = people.where_equal_to("address.cityName", "Springfield").fetch()

        assert [p.display_name for p in results] == ["Ann"]


class TestOrderingAndLimits:
    """Tests for ordering, limit and limit_to_last."""

    def test_order_by_with_key_tiebreak(self, seeded_samples):
        """Should order by the field, then by key."""
        results = seeded_samples.order_by_descending("value").fetch()

        assert [r.id for r in results] == ["c", "b", "a"]

    def test_order_by_excludes_missing_field(self, seeded_samples):
        """Should exclude documents lacking the ordered field."""
        seeded_samples.set_merge("d", {"name": "delta", "optionalValue": 1.0})

        results = seeded_samples.order_by("optionalValue").fetch()

        assert [r.id for r in results] == ["d"]

    def test_limit(self, seeded_samples):
        """Should cap results from the start."""
        results = seeded_samples.order_by("name").limit(2).fetch()

        assert [r.name for r in results] == ["alpha", "beta"]

    def test_limit_to_last(self, seeded_samples):
        """Should return the last n results in query order."""
        results = seeded_samples.order_by("name").limit_to_last(2).fetch()

        assert [r.name for r in results] == ["beta", "gamma"]

    def test_first(self, seeded_samples):
        """Should return the first result only."""
        assert seeded_samples.order_by_descending("name").first().name == "gamma"

    def test_first_keeps_limit_to_last_window(self, seeded_samples):
        """Should return the first result of the last-n window."""
        assert seeded_samples.order_by("name").limit_to_last(2).first().name == "beta"

    def test_naive_and_server_timestamps_order_together(self, samples):
        """Should order naive timestamps against server timestamps as UTC."""
        samples.set("a", SampleModel(name="old", created_at=datetime(2024, 1, 1)))
        samples.set("b", SampleModel(name="new"))
        samples.update("b", lambda u: u.set_server_timestamp("createdAt"))

        results = samples.order_by("createdAt").fetch()

        assert [r.id for r in results] == ["a", "b"]


class TestPagination:
    """Tests for cursor-based pagination."""

    def test_start_after_over_three_pages(self, samples):
        """Should page through every document exactly once."""
        for i in range(7):
            samples.set(f"doc{i}", SampleModel(name=f"n{i}", value=i % 3))

        base = samples.order_by("value").limit(3)
        pages = []
        page = base.fetch_raw()
        while page:
            pages.append([d.key for d in page])
            page = base.start_after(page[-1]).fetch_raw()

        assert len(pages) == 3
        assert [len(p) for p in pages] == [3, 3, 1]
        seen = [key for p in pages for key in p]
        assert sorted(seen) == sorted(f"doc{i}" for i in range(7))

    def test_value_cursors(self, seeded_samples):
        """Should position value cursors on the ordered field."""
        query = seeded_samples.order_by("value")

        assert [r.id for r in query.start_at(701).fetch()] == ["b", "c"]
        assert [r.id for r in query.start_after(700).fetch()] == ["b", "c"]
        assert [r.id for r in query.end_at(700).fetch()] == ["a"]
        assert [r.id for r in query.end_before(701).fetch()] == ["a"]

    def test_record_anchor(self, seeded_samples):
        """Should page after a previously fetched record."""
        query = seeded_samples.order_by("value")
        first = query.first()

        rest = query.start_after(first).fetch()

        assert [r.id for r in rest] == ["b", "c"]

    def test_descending_cursor(self, seeded_samples):
        """Should honour descending order when positioning cursors."""
        results = seeded_samples.order_by_descending("value").start_after(701).fetch()

        assert [r.id for r in results] == ["a"]


class TestMutations:
    """Tests for mutation markers applied by the memory store."""

    def test_array_union_scenario(self, samples):
        """Should add only missing elements."""
        samples.set("d", SampleModel(tags=["a", "b"]))

        samples.update("d", lambda u: u.array_union("tags", "c", "a"))

        assert set(samples.get("d").tags) == {"a", "b", "c"}
        assert len(samples.get("d").tags) == 3

    def test_array_remove_scenario(self, samples):
        """Should remove every occurrence."""
        samples.set("d", SampleModel(tags=["x", "y", "z", "y"]))

        samples.update("d", lambda u: u.array_remove("tags", "y"))

        assert samples.get("d").tags == ["x", "z"]

    def test_increment(self, samples):
        """Should add to existing numbers and start missing fields at the delta."""
        samples.set("d", SampleModel(value=10))

        samples.update("d", lambda u: u.increment("value", -3).increment("optionalValue", 0.5))

        result = samples.get("d")
        assert result.value == 7
        assert result.optional_value == 0.5

    def test_delete_and_server_timestamp(self, samples):
        """Should remove deleted fields and stamp server timestamps."""
        samples.set("d", SampleModel(name="Ann", optional_value=1.0))

        samples.update(
            "d",
            lambda u: u.delete(fields(SampleModel).optional_value).set_server_timestamp("createdAt"),
        )

        result = samples.get("d")
        assert result.optional_value is None
        assert isinstance(result.created_at, datetime)

    def test_nested_set(self, people):
        """Should create intermediate maps for nested paths."""
        people.set_merge("p1", {"displayName": "Ann"})

        people.update("p1", lambda u: u.set("address.cityName", "Springfield"))

        assert people.get("p1").address.city == "Springfield"

    def test_set_record_value(self, people):
        """Should store a record literal as a nested map."""
        people.set_merge("p1", {"displayName": "Ann"})

        people.update("p1", lambda u: u.set(fields(Person).address, Address(street="Main", city="X")))

        result = people.get("p1")
        assert result.address.city == "X"
        assert result.address.street == "Main"

    def test_tuple_value_accepts_array_union(self, samples):
        """Should store a tuple as an array that later array mutations extend."""
        samples.set("d", SampleModel(name="Ann"))

        samples.update("d", lambda u: u.set("tags", ("x", "y")))
        samples.update("d", lambda u: u.array_union("tags", "z"))

        assert samples.get("d").tags == ["x", "y", "z"]

    def test_update_missing_document(self, samples):
        """Should raise NotFoundError for a missing document."""
        with pytest.raises(NotFoundError, match="missing"):
            samples.update("missing", lambda u: u.set("name", "x"))

    def test_failed_update_leaves_document_untouched(self, samples):
        """Should apply all mutations or none."""
        samples.set("d", SampleModel(name="Ann", value=1))
        document = samples.doc("d")

        # Locks cannot be copied into the stored document
        with pytest.raises(TypeError):
            document.update({FieldPath("name"): "Bea", FieldPath("other"): threading.Lock()})

        assert samples.get("d").name == "Ann"


class TestStoreIsolation:
    """Tests for copy semantics and store lifecycle."""

    def test_reads_do_not_alias_storage(self, samples):
        """Should return copies of stored data."""
        samples.set("d", SampleModel(tags=["a"]))

        samples.get("d").tags.append("b")

        assert samples.get("d").tags == ["a"]

    def test_close_clears_data(self):
        """Should drop all collections on close."""
        store = MemoryStore()
        store.collection("c").document("k").set({"a": 1})

        store.close()

        assert store.collection("c").document("k").get().exists is False

    def test_generated_keys_are_unique(self, memory_store):
        """Should generate distinct keys for new documents."""
        collection = memory_store.collection("c")

        assert collection.document().key != collection.document().key


class TestValueOrdering:
    """Tests for the cross-type value ordering."""

    def test_type_order(self):
        """Should order null < bool < number < timestamp < string < bytes < array < map."""
        values = [{"a": 1}, [1], b"x", "s", datetime(2024, 1, 1), 3, True, None]

        ordered = sorted(values, key=sort_key)

        assert ordered == [None, True, 3, datetime(2024, 1, 1), "s", b"x", [1], {"a": 1}]

    def test_bool_is_not_number(self):
        """Should distinguish True from 1 but not 1 from 1.0."""
        assert not values_equal(True, 1)
        assert values_equal(1, 1.0)

    def test_naive_timestamp_is_utc(self):
        """Should order naive timestamps as UTC next to aware ones."""
        naive = datetime(2024, 1, 1, 12, 0)
        aware_before = datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc)
        aware_after = datetime(2024, 1, 1, 13, 0, tzinfo=timezone.utc)

        ordered = sorted([aware_after, naive, aware_before], key=sort_key)

        assert ordered == [aware_before, naive, aware_after]
        assert values_equal(naive, datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))
