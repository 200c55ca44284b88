"""Per-category catalog sources and their merged views."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..index import LocalIndex
from .categories import CATEGORY_DEFINITIONS, CategoryDefinition, MergePolicy
from .channel import UpdateChannel
from .records import (
    ORIGIN_PRECEDENCE,
    Origin,
    RecordKind,
    ResourceCategory,
    ResourceRecord,
    records_equal,
    remote_local_equal,
)
from .source import CatalogSource, ChangeSet
from .view import MergedCatalogView

logger = logging.getLogger(__name__)


def _option_records(names: Iterable[str], origin: Origin) -> List[ResourceRecord]:
    return [ResourceRecord.option(name, origin, position=i) for i, name in enumerate(names)]


class CatalogManager:
    """Holds a Local, Remote and Downloadable source for every category.

    Every mutation is marshalled through ``channel`` so that source updates
    and view recomputation happen on one consumer, one at a time.
    """

    def __init__(
        self,
        channel: Optional[UpdateChannel] = None,
        definitions: Sequence[CategoryDefinition] = CATEGORY_DEFINITIONS,
    ):
        self.channel = channel or UpdateChannel()
        self.definitions: Dict[ResourceCategory, CategoryDefinition] = {
            d.category: d for d in definitions
        }
        self._sources: Dict[ResourceCategory, Dict[Origin, CatalogSource]] = {}
        self._views: Dict[ResourceCategory, MergedCatalogView] = {}

        for category, definition in self.definitions.items():
            sources = {origin: CatalogSource(category, origin) for origin in ORIGIN_PRECEDENCE}
            self._sources[category] = sources
            self._views[category] = MergedCatalogView(
                category,
                [sources[o] for o in ORIGIN_PRECEDENCE],
                key=definition.sort_key,
            )

    @property
    def categories(self) -> List[ResourceCategory]:
        return list(self.definitions)

    def source(self, category: ResourceCategory, origin: Origin) -> CatalogSource:
        return self._sources[ResourceCategory(category)][origin]

    def view(self, category: ResourceCategory) -> MergedCatalogView:
        return self._views[ResourceCategory(category)]

    def snapshot(self) -> Dict[str, List[str]]:
        """Display names per category, in view order."""
        return {c.value: self._views[c].names() for c in self.definitions}

    # --- Local ---

    def local_records(self, definition: CategoryDefinition, index: Optional[LocalIndex]) -> List[ResourceRecord]:
        records: List[ResourceRecord] = []
        if definition.placeholder is not None:
            records.append(definition.placeholder)
        records.extend(_option_records(definition.builtin, Origin.LOCAL))

        if index is not None and definition.local_folders:
            for model in index.find_by_folders(definition.local_folders):
                path = model.file_name if definition.local_by_file_name else model.relative_path
                records.append(ResourceRecord.from_local(path))
        return records

    def reset_local(self, index: Optional[LocalIndex] = None) -> Dict[ResourceCategory, ChangeSet]:
        """Recompute every Local source from ``index`` and the built-in defaults."""
        return self.channel.call(self._reset_local, index)

    def _reset_local(self, index: Optional[LocalIndex]) -> Dict[ResourceCategory, ChangeSet]:
        results: Dict[ResourceCategory, ChangeSet] = {}
        for category, definition in self.definitions.items():
            records = self.local_records(definition, index)
            results[category] = self._sources[category][Origin.LOCAL].diff_apply(records, records_equal)
            self._refresh_downloadable(category)
        return results

    # --- Remote ---

    def remote_records(self, category: ResourceCategory, names: Iterable[str]) -> List[ResourceRecord]:
        definition = self.definitions[ResourceCategory(category)]
        if definition.record_kind == RecordKind.OPTION:
            # Built-ins keep their slot; backend-only options follow them in backend order
            builtin = {name: i for i, name in enumerate(definition.builtin)}
            offset = len(definition.builtin)
            return [
                ResourceRecord.option(name, Origin.REMOTE, position=builtin.get(name, offset + i))
                for i, name in enumerate(names)
            ]
        return [ResourceRecord.from_remote(name) for name in names]

    def apply_remote(
        self,
        category: ResourceCategory,
        names: Iterable[str],
        policy: Optional[MergePolicy] = None,
    ) -> ChangeSet:
        """Apply a listing fetched from the backend to the category's Remote source."""
        category = ResourceCategory(category)
        records = self.remote_records(category, names)
        policy = policy or self.definitions[category].merge
        return self.channel.call(self._apply_remote, category, records, policy)

    def _apply_remote(
        self,
        category: ResourceCategory,
        records: List[ResourceRecord],
        policy: MergePolicy,
    ) -> ChangeSet:
        source = self._sources[category][Origin.REMOTE]
        if policy == MergePolicy.ADDITIVE:
            changes = source.additive_merge(records, remote_local_equal)
        else:
            changes = source.diff_apply(records, remote_local_equal)
        self._refresh_downloadable(category)
        return changes

    def clear_remote(self) -> Dict[ResourceCategory, ChangeSet]:
        return self.channel.call(self._clear_remote)

    def _clear_remote(self) -> Dict[ResourceCategory, ChangeSet]:
        results: Dict[ResourceCategory, ChangeSet] = {}
        for category in self.definitions:
            results[category] = self._sources[category][Origin.REMOTE].clear()
            self._refresh_downloadable(category)
        return results

    # --- Downloadable ---

    def refresh_downloadable(self, category: ResourceCategory) -> ChangeSet:
        return self.channel.call(self._refresh_downloadable, ResourceCategory(category))

    def _refresh_downloadable(self, category: ResourceCategory) -> ChangeSet:
        definition = self.definitions[category]
        sources = self._sources[category]
        available = sources[Origin.LOCAL].ids() | sources[Origin.REMOTE].ids()
        records = [
            ResourceRecord.downloadable(path, url)
            for path, url in definition.downloadable
        ]
        return sources[Origin.DOWNLOADABLE].diff_apply(
            [r for r in records if r.id not in available],
            records_equal,
        )
