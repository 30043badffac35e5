"""Shared fixtures and catalog builders for tests."""

import json
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from trove_keeper.cache import ContentCache
from trove_keeper.errors import TransportError
from trove_keeper.feed import CatalogSnapshot, FeedAssembler
from trove_keeper.feed.assembler import parse_payload
from trove_keeper.ingestion import EmbeddedJsonExtractor

ROOT_URL = "https://catalog.example.com/trove"
CHUNK_TEMPLATE = "https://catalog.example.com/api/chunk?index={index}"
ELEMENT_ID = "webpack-monthly-trove-data"
FUTURE = "2099-01-01T00:00:00.000000"
PAST = "2000-01-01T00:00:00.000000"
NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeFetcher:
    """In-memory Fetcher that counts calls per URL."""

    def __init__(self, responses: dict[str, bytes] | None = None) -> None:
        self.responses: dict[str, bytes] = dict(responses or {})
        self.calls: list[str] = []
        self.enabled = True

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        if not self.enabled or url not in self.responses:
            raise TransportError(f"No response for {url}", locator=url)
        return self.responses[url]

    def count(self, url: str) -> int:
        return self.calls.count(url)


def product_dict(
    machine_name: str,
    human_name: str | None = None,
    *,
    date_added: int = 0,
    platforms: Iterable[str] = ("windows",),
    image: str | None = None,
) -> dict[str, Any]:
    """A product as it appears on the wire."""
    return {
        "machine_name": machine_name,
        "human-name": human_name or machine_name.replace("_", " ").title(),
        "date-added": date_added,
        "description-text": f"About {machine_name}",
        "image": image if image is not None else f"https://img.example.com/{machine_name}.png",
        "logo": None,
        "carousel-content": {
            "thumbnail": [f"https://img.example.com/{machine_name}_t0.jpg"],
            "screenshot": [f"https://img.example.com/{machine_name}_s0.jpg"],
        },
        "downloads": {
            platform: {
                "machine_name": f"{machine_name}_{platform}",
                "name": platform.title(),
                "url": {"web": f"https://dl.example.com/{platform}/{machine_name}.exe?ttl=1"},
                "file_size": 1024,
                "md5": "d41d8cd98f00b204e9800998ecf8427e",
            }
            for platform in platforms
        },
    }


def root_payload(
    chunks: int,
    *,
    next_addition: str = FUTURE,
    newly_added: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Embedded payload of the root document."""
    return {
        "chunks": chunks,
        "allAccess": [],
        "downloadPlatformOrder": ["windows", "mac", "linux"],
        "countdownTimerOptions": {
            "currentTime|datetime": "2024-03-01T12:00:00.000000",
            "nextAdditionTime|datetime": next_addition,
        },
        "newlyAdded": newly_added or [],
    }


def root_document(payload: dict[str, Any]) -> bytes:
    """Root HTML document embedding a payload."""
    return (
        "<html><head><title>Trove</title></head><body>"
        f'<script id="{ELEMENT_ID}" type="application/json">{json.dumps(payload)}</script>'
        "</body></html>"
    ).encode("utf-8")


def catalog_responses(
    chunks: list[list[dict[str, Any]]],
    *,
    next_addition: str = FUTURE,
    newly_added: list[dict[str, Any]] | None = None,
) -> dict[str, bytes]:
    """Fetcher responses for a root document and its chunks."""
    responses = {
        ROOT_URL: root_document(
            root_payload(len(chunks), next_addition=next_addition, newly_added=newly_added)
        )
    }
    for index, chunk in enumerate(chunks):
        responses[CHUNK_TEMPLATE.format(index=index)] = json.dumps(chunk).encode("utf-8")
    return responses


def make_snapshot(products: list[dict[str, Any]], *, next_addition: str = FUTURE) -> CatalogSnapshot:
    """Snapshot built directly from wire products, bypassing assembly."""
    raw = root_payload(1, next_addition=next_addition)
    raw["standardProducts"] = products
    return CatalogSnapshot.from_payload(parse_payload(raw), json.dumps(raw, indent=2))


@pytest.fixture
def fetcher() -> FakeFetcher:
    """Empty fake fetcher."""
    return FakeFetcher()


@pytest.fixture
def cache(tmp_path: Path, fetcher: FakeFetcher) -> ContentCache:
    """Content cache under a temporary directory."""
    return ContentCache(tmp_path / "cache", fetcher)


@pytest.fixture
def assembler(cache: ContentCache) -> FeedAssembler:
    """Assembler with a fixed clock."""
    return FeedAssembler(
        cache,
        EmbeddedJsonExtractor(ELEMENT_ID),
        root_url=ROOT_URL,
        chunk_url_template=CHUNK_TEMPLATE,
        max_refresh_attempts=1,
        clock=lambda: NOW,
    )
