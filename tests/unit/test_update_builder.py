"""
Tests for the update builder.
"""

from fractions import Fraction

import pytest
from unittest.mock import MagicMock

from fireschema import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    FieldPath,
    Increment,
    InvalidArgumentError,
    PreconditionFailedError,
    UpdateBuilder,
    WriteResult,
    fields,
)

from fixtures.models import Address, Person, SampleModel


@pytest.fixture
def mock_document():
    """Mock document handle acknowledging every update."""
    document = MagicMock()
    document.key = "u1"
    document.update.return_value = WriteResult(update_time="2024-01-01T00:00:00Z")
    return document


@pytest.fixture
def builder(mock_document):
    return UpdateBuilder(mock_document, collection="samples")


class TestAccumulation:
    """Tests for mutation registration."""

    def test_each_method_registers_marker(self, builder):
        """Should register the matching marker for each method."""
        (
            builder.set("name", "Ann")
            .delete("legacy")
            .set_server_timestamp("updatedAt")
            .increment("value", -2)
            .array_union("tags", "c", "a")
            .array_remove("labels", "y")
        )

        assert dict(builder.mutations) == {
            FieldPath("name"): "Ann",
            FieldPath("legacy"): DELETE_FIELD,
            FieldPath("updatedAt"): SERVER_TIMESTAMP,
            FieldPath("value"): Increment(-2),
            FieldPath("tags"): ArrayUnion(("c", "a")),
            FieldPath("labels"): ArrayRemove(("y",)),
        }

    def test_last_write_wins(self, builder):
        """Should keep only the latest mutation per path."""
        builder.set("name", "v1").set("name", "v2")

        assert len(builder) == 1
        assert builder.mutations[FieldPath("name")] == "v2"

    def test_dotted_and_selector_paths_are_equal(self, builder):
        """Should treat dotted strings and selectors for one field as one path."""
        builder.set("address.cityName", "Springfield")
        builder.set(fields(Person).address.city, "Shelbyville")

        assert dict(builder.mutations) == {FieldPath("address", "cityName"): "Shelbyville"}

    def test_identity_field_rejected(self, builder):
        """Should refuse to mutate the document id."""
        with pytest.raises(InvalidArgumentError, match="document id"):
            builder.set(fields(SampleModel).id, "other")

    def test_increment_rejects_non_numbers(self, builder):
        """Should reject deltas that are not plain ints or floats."""
        with pytest.raises(InvalidArgumentError):
            builder.increment("value", "1")
        with pytest.raises(InvalidArgumentError):
            builder.increment("value", True)
        with pytest.raises(InvalidArgumentError):
            builder.increment("value", complex(1, 1))
        with pytest.raises(InvalidArgumentError):
            builder.increment("value", Fraction(1, 2))

    def test_array_methods_need_elements(self, builder):
        """Should require at least one element for array union/remove."""
        with pytest.raises(InvalidArgumentError):
            builder.array_union("tags")
        with pytest.raises(InvalidArgumentError):
            builder.array_remove("tags")

    def test_mutations_view_is_read_only(self, builder):
        """Should expose a read-only view of the mutation set."""
        builder.set("name", "Ann")

        with pytest.raises(TypeError):
            builder.mutations[FieldPath("other")] = 1

    def test_requires_document(self):
        """Should reject a missing document handle."""
        with pytest.raises(InvalidArgumentError):
            UpdateBuilder(None)


class TestLiteralNormalisation:
    """Tests for record and tuple literals passed to set and the array methods."""

    def test_set_record_stores_field_map(self, builder):
        """Should store a nested record as a map keyed by wire names."""
        builder.set(fields(Person).address, Address(street="Main", city="X"))

        assert builder.mutations[FieldPath("address")] == {"street": "Main", "cityName": "X"}

    def test_set_tuple_stores_list(self, builder):
        """Should store a tuple as a list."""
        builder.set("tags", ("x", "y"))

        assert builder.mutations[FieldPath("tags")] == ["x", "y"]

    def test_nested_identity_is_dropped(self, builder):
        """Should leave identity fields of nested records out of the stored map."""
        builder.set("owner", SampleModel(id="k1", name="n"))
        builder.set("members", [Person(id="p1", display_name="Ann")])

        assert "id" not in builder.mutations[FieldPath("owner")]
        assert builder.mutations[FieldPath("owner")]["name"] == "n"
        (member,) = builder.mutations[FieldPath("members")]
        assert "id" not in member
        assert member["displayName"] == "Ann"

    def test_array_elements_are_normalised(self, builder):
        """Should convert record elements of array_union and array_remove to maps."""
        builder.array_union("previousAddresses", Address(street="Old", city="Y"))
        builder.array_remove("history", ("a", "b"))

        assert builder.mutations[FieldPath("previousAddresses")] == ArrayUnion(
            ({"street": "Old", "cityName": "Y"},)
        )
        assert builder.mutations[FieldPath("history")] == ArrayRemove((["a", "b"],))


class TestCommit:
    """Tests for UpdateBuilder.commit."""

    def test_empty_commit_fails_without_io(self, builder, mock_document):
        """Should raise PreconditionFailedError and make no store call."""
        with pytest.raises(PreconditionFailedError, match="No update operations specified."):
            builder.commit()

        mock_document.update.assert_not_called()

    def test_commit_sends_one_update(self, builder, mock_document):
        """Should send the whole mutation set in one update call."""
        builder.set("name", "v1").increment("value", 1).set("name", "v2")

        result = builder.commit()

        mock_document.update.assert_called_once_with(
            {FieldPath("value"): Increment(1), FieldPath("name"): "v2"}
        )
        assert result.update_time == "2024-01-01T00:00:00Z"

    def test_store_errors_propagate(self, builder, mock_document):
        """Should propagate store failures unchanged."""
        mock_document.update.side_effect = ConnectionError("unavailable")
        builder.set("name", "Ann")

        with pytest.raises(ConnectionError, match="unavailable"):
            builder.commit()
