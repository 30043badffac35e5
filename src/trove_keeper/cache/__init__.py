"""
Local content cache.

Stores the raw bytes referenced by the catalog, keyed by a digest of
their source locator.
"""

from trove_keeper.cache.content_cache import ContentCache, locator_digest

__all__ = [
    "ContentCache",
    "locator_digest",
]
