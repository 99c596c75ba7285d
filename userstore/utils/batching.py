"""
userstore/utils/batching.py

Purpose: Helpers for bulk lookups

- Order-preserving de-duplication
- Fixed-size chunking for membership queries
"""

from typing import Hashable, Iterable, List, Sequence, TypeVar

T = TypeVar("T", bound=Hashable)


def unique(items: Iterable[T]) -> List[T]:
    """
    Drops repeated items, keeping the first occurrence of each.
    """
    return list(dict.fromkeys(items))


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """
    Splits items into consecutive chunks of at most ``size`` elements.

    Example:
        chunked([1, 2, 3, 4, 5], 2) -> [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]
