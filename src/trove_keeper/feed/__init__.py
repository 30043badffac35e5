"""
Catalog feed assembly and snapshot storage.
"""

from trove_keeper.feed.assembler import (
    CatalogSnapshot,
    FeedAssembler,
    merge_products,
    sort_alphabetically,
)
from trove_keeper.feed.store import DiffIdentity, FeedDiff, FeedSnapshotStore

__all__ = [
    "CatalogSnapshot",
    "DiffIdentity",
    "FeedAssembler",
    "FeedDiff",
    "FeedSnapshotStore",
    "merge_products",
    "sort_alphabetically",
]
