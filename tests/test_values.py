"""
Tests for canonical values and the normalizer.

Change detection relies on these: two observations of the same state must
compare equal no matter how the raw storage formatted them.
"""
from datetime import datetime, timedelta, timezone

import pytest

from changetrail.models.enums import ValueKind
from changetrail.models.references import EntityReference
from changetrail.models.values import Value, equals
from changetrail.services.normalizer import PropertyKeyPolicy, ValueNormalizer


class TestValueEquality:
    """Values are equal only when kind and content match."""

    def test_different_kinds_are_never_equal(self):
        """
        INVARIANT: Values of different kinds are never equal.
        """
        assert Value.of_bool(True) != Value.of_int(1)
        assert Value.of_int(1) != Value.of_float(1.0)
        assert Value.of_str("1") != Value.of_int(1)
        assert Value.null() != Value.of_str("")

    def test_datetimes_compare_at_second_granularity(self):
        """
        INVARIANT: Datetimes differing only below one second are equal.
        """
        a = datetime(2024, 5, 1, 9, 30, 0, 100000, tzinfo=timezone.utc)
        b = datetime(2024, 5, 1, 9, 30, 0, 900000, tzinfo=timezone.utc)

        assert Value.of_datetime(a) == Value.of_datetime(b)
        assert Value.of_datetime(a) != Value.of_datetime(a + timedelta(seconds=1))

    def test_datetimes_compare_across_zones(self):
        utc = datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc)
        plus_two = datetime(2024, 5, 1, 11, 0, 0, tzinfo=timezone(timedelta(hours=2)))

        assert Value.of_datetime(utc) == Value.of_datetime(plus_two)

    def test_references_compare_by_kind_and_key_only(self):
        a = Value.of_reference(EntityReference("post", 5, "Old title"))
        b = Value.of_reference(EntityReference("post", 5, "New title"))
        c = Value.of_reference(EntityReference("user", 5))

        assert a == b
        assert a != c

    def test_lists_compare_element_wise_in_order(self):
        one_two = Value.of_list([Value.of_int(1), Value.of_int(2)])

        assert one_two == Value.of_list([Value.of_int(1), Value.of_int(2)])
        assert one_two != Value.of_list([Value.of_int(2), Value.of_int(1)])

    def test_nan_equals_nan(self):
        assert Value.of_float(float("nan")) == Value.of_float(float("nan"))
        assert Value.of_float(float("nan")) != Value.of_float(0.0)

    def test_absent_only_equals_absent(self):
        assert equals(None, None)
        assert not equals(None, Value.null())
        assert not equals(Value.of_int(0), None)

    def test_values_are_immutable(self):
        value = Value.of_int(3)

        with pytest.raises(AttributeError):
            value.data = 4

    def test_list_items_must_be_values(self):
        with pytest.raises(TypeError):
            Value.of_list([1, 2])

    def test_tagged_json_keeps_kind(self, registry):
        value = Value.of_list([
            Value.of_bool(False),
            Value.of_datetime(datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)),
            Value.of_reference(EntityReference("post", 5, "Hello world")),
        ])

        restored = Value.from_json(value.to_json(), registry=registry)

        assert restored == value
        assert restored.data[2].data.registry is registry
        assert restored.data[2].data.cached_name == "Hello world"


class TestNormalizer:
    """Raw storage values become typed Values."""

    def test_numeric_string_equals_integer(self):
        """
        INVARIANT: "0" and 0 normalize to the same integer.
        """
        normalizer = ValueNormalizer()

        assert normalizer.normalize("0") == normalizer.normalize(0)
        assert normalizer.normalize("0").kind == ValueKind.INTEGER
        assert normalizer.normalize("42") == Value.of_int(42)

    def test_zero_one_are_booleans_only_for_listed_keys(self):
        """
        INVARIANT: "0"/"1" become booleans only for allow-listed keys, so ids are never flags.
        """
        normalizer = ValueNormalizer(boolean_keys=["show_admin_bar_front"])

        assert normalizer.normalize("1", "show_admin_bar_front") == Value.of_bool(True)
        assert normalizer.normalize(0, "show_admin_bar_front") == Value.of_bool(False)
        assert normalizer.normalize("true", "show_admin_bar_front") == Value.of_bool(True)
        assert normalizer.normalize("1", "menu_order") == Value.of_int(1)

    def test_decimal_strings_stay_strings(self):
        """
        INVARIANT: "6.1" and "6.10" are different values, not the same float.
        """
        normalizer = ValueNormalizer()

        assert normalizer.normalize("6.10", "Version") == Value.of_str("6.10")
        assert normalizer.normalize("6.1") != normalizer.normalize("6.10")
        assert normalizer.normalize(1.5) == Value.of_float(1.5)

    def test_site_datetime_is_anchored_to_site_zone(self):
        site_zone = timezone(timedelta(hours=10))
        normalizer = ValueNormalizer(tz=site_zone)

        value = normalizer.normalize("2024-05-01 19:30:00")

        assert value.kind == ValueKind.DATETIME
        assert value == Value.of_datetime(datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc))

    def test_iso_datetime(self):
        value = ValueNormalizer().normalize("2024-05-01T09:30:00Z")

        assert value == Value.of_datetime(datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc))

    def test_malformed_datetime_stays_a_string(self):
        """
        INVARIANT: A value that looks like a datetime but isn't one is kept as a string.
        """
        value = ValueNormalizer().normalize("2024-13-45 99:99:99")

        assert value == Value.of_str("2024-13-45 99:99:99")

    def test_zero_date_stays_a_string(self):
        assert ValueNormalizer().normalize("0000-00-00 00:00:00") == Value.of_str("0000-00-00 00:00:00")

    def test_json_list_and_object_strings(self):
        normalizer = ValueNormalizer()

        assert normalizer.normalize("[1, 2]") == Value.of_list([Value.of_int(1), Value.of_int(2)])

        pairs = normalizer.normalize('{"a": "x"}')
        assert pairs == Value.of_list([Value.of_list([Value.of_str("a"), Value.of_str("x")])])

    def test_broken_json_stays_a_string(self):
        assert ValueNormalizer().normalize("[not json").kind == ValueKind.STRING

    def test_sequential_mapping_is_a_list(self):
        normalizer = ValueNormalizer()

        assert normalizer.normalize({0: "a", 1: "b"}) == normalizer.normalize(["a", "b"])

    def test_none_is_null(self):
        assert ValueNormalizer().normalize(None).is_null

    def test_reference_keys_become_bound_references(self, normalizer, registry):
        value = normalizer.normalize("2", "post_author")

        assert value.kind == ValueKind.REFERENCE
        assert value.data == EntityReference("user", 2)
        assert value.data.registry is registry

    def test_reference_id_zero_is_null(self, normalizer):
        assert normalizer.normalize(0, "post_parent").is_null
        assert normalizer.normalize("", "post_parent").is_null

    def test_unknown_objects_are_stored_as_strings(self):
        class Thing:
            def __str__(self):
                return "thing"

        assert ValueNormalizer().normalize(Thing()) == Value.of_str("thing")


class TestPropertyKeyPolicy:

    def test_denylist_wins(self):
        policy = PropertyKeyPolicy(denylist=["post_modified_gmt"], allowlist=["post_modified_gmt", "post_title"])

        assert not policy.allows("post_modified_gmt")
        assert policy.allows("post_title")
        assert not policy.allows("post_content")

    def test_everything_allowed_by_default(self):
        assert PropertyKeyPolicy().allows("anything")
