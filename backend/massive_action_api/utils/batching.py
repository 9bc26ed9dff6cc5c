"""Helper functions for chunking iterables."""
from collections.abc import Iterable, Iterator
from itertools import islice
from typing import TypeVar

T = TypeVar("T")


def chunked(iterable: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield successive contiguous chunks of at most ``size`` items.

    Order is preserved; only the last chunk may be smaller.
    """
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    iterator = iter(iterable)
    while chunk := list(islice(iterator, size)):
        yield chunk

