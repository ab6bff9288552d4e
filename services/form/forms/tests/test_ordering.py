"""Tests for order key assignment."""
from __future__ import annotations

from types import SimpleNamespace

from django.test import SimpleTestCase

from forms.ordering import (
    REMOVED_ORDER_KEY,
    assign_order_keys,
    is_contiguous,
    is_live,
    live_only,
    sort_by_order,
)


class AssignOrderKeysTests(SimpleTestCase):
    def test_live_nodes_are_numbered_in_array_order(self) -> None:
        assigned = assign_order_keys(["c", "a", "b"])
        self.assertEqual(assigned, [("c", 1), ("a", 2), ("b", 3)])

    def test_removed_nodes_get_sentinel_without_consuming_a_position(self) -> None:
        assigned = assign_order_keys(["a", "x", "b", "y"], is_removed=lambda node: node in {"x", "y"})
        self.assertEqual(
            assigned,
            [("a", 1), ("x", REMOVED_ORDER_KEY), ("b", 2), ("y", REMOVED_ORDER_KEY)],
        )

    def test_empty_input(self) -> None:
        self.assertEqual(assign_order_keys([]), [])

    def test_sentinel_is_never_live(self) -> None:
        self.assertFalse(is_live(REMOVED_ORDER_KEY))
        self.assertFalse(is_live(0))
        self.assertFalse(is_live(None))
        self.assertTrue(is_live(1))


class ContiguityTests(SimpleTestCase):
    def test_contiguous_ignores_removed_keys(self) -> None:
        self.assertTrue(is_contiguous([2, -1, 1, 0, 3]))
        self.assertTrue(is_contiguous([]))
        self.assertTrue(is_contiguous([-1, -1]))

    def test_gaps_and_duplicates_are_rejected(self) -> None:
        self.assertFalse(is_contiguous([1, 3]))
        self.assertFalse(is_contiguous([1, 1, 2]))
        self.assertFalse(is_contiguous([2, 3]))


class ReadOrderTests(SimpleTestCase):
    def setUp(self) -> None:
        self.items = [
            SimpleNamespace(name="removed", order_key=-1),
            SimpleNamespace(name="second", order_key=2),
            SimpleNamespace(name="first", order_key=1),
            SimpleNamespace(name="cleared", order_key=0),
        ]

    def test_sort_by_order_lists_live_items_first(self) -> None:
        names = [item.name for item in sort_by_order(self.items)]
        self.assertEqual(names, ["first", "second", "removed", "cleared"])

    def test_live_only_filters_removed_items(self) -> None:
        names = [item.name for item in live_only(self.items)]
        self.assertEqual(names, ["first", "second"])
