"""Tests for tag set operations."""
import pytest

from filemeta.exceptions import ParamError
from filemeta.services.tag_algebra import TagAlgebra


class TestNormalize:
    """Tests for deduplication and casing."""

    def test_first_seen_casing_wins(self):
        assert TagAlgebra.normalize(["Apple", "apple", "APPLE", "pear"]) == ["Apple", "pear"]

    def test_drops_blank_entries(self):
        assert TagAlgebra.normalize(["", "  ", "a"]) == ["a"]

    def test_idempotent(self):
        tags = ["B", "a", "b", "Straße", "STRASSE"]
        once = TagAlgebra.normalize(tags)
        assert TagAlgebra.normalize(once) == once

    def test_casefold_equivalence(self):
        """casefold treats ß and ss as the same tag."""
        assert TagAlgebra.normalize(["Straße", "STRASSE"]) == ["Straße"]

    def test_rejects_bare_string(self):
        with pytest.raises(ParamError):
            TagAlgebra.normalize("abc")

    def test_rejects_non_strings(self):
        with pytest.raises(ParamError):
            TagAlgebra.normalize(["a", 3])


class TestEdits:
    """Tests for add/clear/set."""

    def test_add_reports_change(self):
        tags, changed = TagAlgebra.add_tags(["a"], ["B"])
        assert tags == ["a", "B"]
        assert changed

    def test_add_existing_is_no_change(self):
        tags, changed = TagAlgebra.add_tags(["Apple"], ["apple"])
        assert tags == ["Apple"]
        assert not changed

    def test_clear(self):
        tags, changed = TagAlgebra.clear_tags(["a", "B", "c"], ["b"])
        assert tags == ["a", "c"]
        assert changed

    def test_clear_absent_is_no_change(self):
        tags, changed = TagAlgebra.clear_tags(["a"], ["z"])
        assert tags == ["a"]
        assert not changed

    def test_add_then_clear_restores_original(self):
        original = ["x", "y"]
        added, _ = TagAlgebra.add_tags(original, ["new"])
        cleared, _ = TagAlgebra.clear_tags(added, ["NEW"])
        assert cleared == original

    def test_set_replaces(self):
        assert TagAlgebra.set_tags(["b", "B", "a"]) == ["b", "a"]


class TestIntersect:
    """Tests for the common-tags intersection."""

    def test_keeps_first_set_order_and_casing(self):
        common = TagAlgebra.intersect([["Red", "blue", "x"], ["BLUE", "red"], ["red", "Blue"]])
        assert common == ["Red", "blue"]

    def test_empty_set_empties_result(self):
        assert TagAlgebra.intersect([["a"], []]) == []
        assert TagAlgebra.intersect([]) == []

    def test_same_tags_ignores_case_and_order(self):
        assert TagAlgebra.same_tags(["A", "b"], ["B", "a"])
        assert not TagAlgebra.same_tags(["a"], ["a", "b"])


class TestOrderedByHint:
    def test_hinted_first(self):
        assert TagAlgebra.ordered_by_hint(["c", "B", "a"], ["b", "zzz", "A"]) == ["B", "a", "c"]
