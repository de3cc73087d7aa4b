"""Drain list endpoints that hand back results page by page."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from typing import Generic, TypeVar

V = TypeVar("V")

ListFunc = Callable[[str], "tuple[Sequence[V], str]"]


class Paginator(Generic[V]):
    """Follow continuation tokens until a list endpoint is exhausted.

    ``list_func`` is called with the continuation token of the previous page
    (an empty string for the first page) and returns the page's items along
    with the next continuation token, which is empty on the last page.
    """

    def __init__(self, list_func: Callable[[str], tuple[Sequence[V], str]]) -> None:
        self.list_func = list_func

    def __iter__(self) -> Iterator[V]:
        cont = ""
        while True:
            items, cont = self.list_func(cont)
            yield from items
            if not cont:
                return

    def get(self) -> list[V]:
        """Return every item from every page."""
        return list(self)