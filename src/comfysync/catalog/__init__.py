"""Resource catalog: per-origin sources merged into one view per category."""

from .categories import (
    CATEGORY_DEFINITIONS,
    SYNC_ORDER,
    CategoryDefinition,
    MergePolicy,
    RemoteListing,
    SortOrder,
    get_definition,
)
from .channel import UpdateChannel
from .manager import CatalogManager
from .records import (
    DEFAULT_RECORD,
    NONE_RECORD,
    Origin,
    RecordKind,
    ResourceCategory,
    ResourceRecord,
    records_equal,
    remote_local_equal,
)
from .source import CatalogSource, ChangeSet
from .view import MergedCatalogView, merge_records

__all__ = [
    # Records
    "ResourceCategory",
    "ResourceRecord",
    "Origin",
    "RecordKind",
    "NONE_RECORD",
    "DEFAULT_RECORD",
    "records_equal",
    "remote_local_equal",
    # Sources and views
    "CatalogSource",
    "ChangeSet",
    "MergedCatalogView",
    "merge_records",
    "UpdateChannel",
    "CatalogManager",
    # Categories
    "CategoryDefinition",
    "RemoteListing",
    "MergePolicy",
    "SortOrder",
    "CATEGORY_DEFINITIONS",
    "SYNC_ORDER",
    "get_definition",
]
