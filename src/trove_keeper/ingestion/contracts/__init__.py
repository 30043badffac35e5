"""
Data contracts for the catalog feed.

Pydantic models that define the expected structure of the embedded
catalog payload, ensuring validation throughout assembly and loading.
"""

from trove_keeper.ingestion.contracts.feed import (
    CarouselContent,
    Download,
    DownloadUrl,
    FeedPayload,
    Product,
    TimerOptions,
)

__all__ = [
    "CarouselContent",
    "Download",
    "DownloadUrl",
    "FeedPayload",
    "Product",
    "TimerOptions",
]
