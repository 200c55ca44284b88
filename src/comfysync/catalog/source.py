"""Keyed set of resource records from one origin."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .records import EqualityPolicy, Origin, ResourceCategory, ResourceRecord, records_equal

logger = logging.getLogger(__name__)


@dataclass
class ChangeSet:
    """Records touched by one update."""
    added: List[ResourceRecord] = field(default_factory=list)
    updated: List[ResourceRecord] = field(default_factory=list)
    removed: List[ResourceRecord] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.updated or self.removed)

    def __len__(self) -> int:
        return len(self.added) + len(self.updated) + len(self.removed)

    def to_dict(self) -> dict:
        return {
            "added": len(self.added),
            "updated": len(self.updated),
            "removed": len(self.removed),
        }


Listener = Callable[["CatalogSource", ChangeSet], None]


def _dedupe(items: Iterable[ResourceRecord]) -> Dict[str, ResourceRecord]:
    # Later entries win, so a repeated id collapses to one record.
    result: Dict[str, ResourceRecord] = {}
    for record in items:
        result[record.id] = record
    return result


class CatalogSource:
    """Records for one (category, origin), keyed by id.

    Updates are atomic with respect to readers of this source. Listeners are
    called after an update that changed something, outside the lock.
    """

    def __init__(self, category: ResourceCategory, origin: Origin):
        self.category = category
        self.origin = origin
        self._records: Dict[str, ResourceRecord] = {}
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def __repr__(self) -> str:
        return f"CatalogSource({self.category.value}, {self.origin.value}, {len(self)} records)"

    # --- Updates ---

    def diff_apply(
        self,
        items: Iterable[ResourceRecord],
        equality: EqualityPolicy = records_equal,
    ) -> ChangeSet:
        """Make the contents equal ``items``.

        Records that compare equal under ``equality`` are left as they are, so
        applying the same input twice changes nothing the second time.
        """
        incoming = _dedupe(items)
        changes = ChangeSet()

        with self._lock:
            for rid in list(self._records):
                if rid not in incoming:
                    changes.removed.append(self._records.pop(rid))
            self._merge_locked(incoming, equality, changes)

        self._notify(changes)
        return changes

    def additive_merge(
        self,
        items: Iterable[ResourceRecord],
        equality: EqualityPolicy = records_equal,
    ) -> ChangeSet:
        """Insert or update ``items``; never remove anything."""
        incoming = _dedupe(items)
        changes = ChangeSet()

        with self._lock:
            self._merge_locked(incoming, equality, changes)

        self._notify(changes)
        return changes

    def _merge_locked(
        self,
        incoming: Dict[str, ResourceRecord],
        equality: EqualityPolicy,
        changes: ChangeSet,
    ) -> None:
        for rid, record in incoming.items():
            current = self._records.get(rid)
            if current is None:
                self._records[rid] = record
                changes.added.append(record)
            elif not equality(current, record):
                self._records[rid] = record
                changes.updated.append(record)

    def clear(self) -> ChangeSet:
        return self.diff_apply([])

    # --- Reads ---

    def lookup(self, rid: str) -> Optional[ResourceRecord]:
        with self._lock:
            return self._records.get(rid)

    def records(self) -> List[ResourceRecord]:
        with self._lock:
            return list(self._records.values())

    def ids(self) -> set:
        with self._lock:
            return set(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, rid: object) -> bool:
        with self._lock:
            return rid in self._records

    # --- Observation ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; return a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, changes: ChangeSet) -> None:
        if not changes:
            return
        logger.debug(
            "%s/%s changed: %s",
            self.category.value,
            self.origin.value,
            changes.to_dict(),
        )
        for listener in list(self._listeners):
            listener(self, changes)
