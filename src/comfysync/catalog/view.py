"""Merged, deduplicated view over several catalog sources."""

from __future__ import annotations

import threading
from typing import Callable, Iterator, List, Sequence

from .records import ResourceCategory, ResourceRecord, by_name
from .source import CatalogSource, ChangeSet

SortKey = Callable[[ResourceRecord], tuple]


def merge_records(sources: Sequence[CatalogSource], key: SortKey = by_name) -> List[ResourceRecord]:
    """sort(dedup(union(sources))), earlier sources winning on duplicate ids."""
    seen = {}
    for source in sources:
        for record in source.records():
            seen.setdefault(record.id, record)
    return sorted(seen.values(), key=lambda r: (key(r), r.sort_key, r.id))


class MergedCatalogView:
    """Read-only sequence of records for one category.

    ``sources`` are given highest precedence first. The view recomputes
    whenever one of them changes.
    """

    def __init__(
        self,
        category: ResourceCategory,
        sources: Sequence[CatalogSource],
        key: SortKey = by_name,
    ):
        self.category = category
        self.sources = list(sources)
        self.key = key
        self._items: List[ResourceRecord] = []
        self._lock = threading.Lock()
        self._listeners: List[Callable[["MergedCatalogView"], None]] = []
        for source in self.sources:
            source.subscribe(self._on_source_changed)
        self.refresh()

    def _on_source_changed(self, source: CatalogSource, changes: ChangeSet) -> None:
        self.refresh()

    def refresh(self) -> None:
        items = merge_records(self.sources, self.key)
        with self._lock:
            changed = items != self._items
            self._items = items
        if changed:
            for listener in list(self._listeners):
                listener(self)

    def subscribe(self, listener: Callable[["MergedCatalogView"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def items(self) -> List[ResourceRecord]:
        with self._lock:
            return list(self._items)

    def names(self) -> List[str]:
        return [r.display_name for r in self.items]

    def ids(self) -> List[str]:
        return [r.id for r in self.items]

    def __iter__(self) -> Iterator[ResourceRecord]:
        return iter(self.items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __getitem__(self, index: int) -> ResourceRecord:
        with self._lock:
            return self._items[index]
