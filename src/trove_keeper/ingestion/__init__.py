"""
Catalog ingestion collaborators.

Provides the HTTP fetcher, the embedded payload extractor and the
feed data contracts.
"""

from trove_keeper.ingestion.extractor import EmbeddedJsonExtractor, Extractor
from trove_keeper.ingestion.fetcher import Fetcher, HttpFetcher

__all__ = [
    "EmbeddedJsonExtractor",
    "Extractor",
    "Fetcher",
    "HttpFetcher",
]
