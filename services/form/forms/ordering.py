"""Order key assignment for sibling questions and options.

Live siblings carry order keys ``1..N`` with no gaps. Removed siblings carry
``REMOVED_ORDER_KEY``, which sits below every live position, so one integer
column serves as both the ordering key and the removal marker.
"""
from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

REMOVED_ORDER_KEY = -1


def is_live(order_key: Optional[int]) -> bool:
    return order_key is not None and order_key > 0


def assign_order_keys(
    nodes: Sequence[T],
    is_removed: Callable[[T], bool] = lambda node: False,
) -> List[Tuple[T, int]]:
    """Pair each node with its final order key.

    Array position is the requested order. Live nodes are numbered from 1 in
    that order regardless of identity; removed nodes get the sentinel and do
    not consume a position.
    """

    assigned: List[Tuple[T, int]] = []
    position = 0
    for node in nodes:
        if is_removed(node):
            assigned.append((node, REMOVED_ORDER_KEY))
            continue
        position += 1
        assigned.append((node, position))
    return assigned


def sort_by_order(items: Iterable[T], key: Callable[[T], int] = lambda item: item.order_key) -> List[T]:
    """Live items in ascending position first, then removed ones."""

    return sorted(items, key=lambda item: (not is_live(key(item)), key(item)))


def live_only(items: Iterable[T], key: Callable[[T], int] = lambda item: item.order_key) -> List[T]:
    return sorted((item for item in items if is_live(key(item))), key=key)


def is_contiguous(order_keys: Iterable[int]) -> bool:
    """True when the live keys are exactly ``1..N``; removed keys are ignored."""

    live = sorted(key for key in order_keys if is_live(key))
    return live == list(range(1, len(live) + 1))
