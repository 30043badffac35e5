"""
Game Library Management.

Tracks catalog products as persistent game records and reconciles
them with downloaded installers on disk.
"""

from trove_keeper.catalog.library import (
    GameLibrary,
    GameRecord,
    LibraryState,
)

__all__ = [
    "GameLibrary",
    "GameRecord",
    "LibraryState",
]
