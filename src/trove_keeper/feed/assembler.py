"""
Catalog Feed Assembler.

Reconstructs one complete, de-duplicated catalog snapshot from the
paginated remote source, using the content cache for every request.
"""

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from trove_keeper.cache import ContentCache
from trove_keeper.errors import FilesystemError, ParseError, StaleFeedRace, TransportError
from trove_keeper.ingestion.contracts import FeedPayload, Product
from trove_keeper.ingestion.extractor import Extractor

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(timezone.utc)


def merge_products(standard: Iterable[Product], newly_added: Iterable[Product]) -> list[Product]:
    """
    Merge the standard and newly added lists, first seen wins.

    Duplicates within the standard list are dropped too, so the result
    never holds two products sharing a machine_name.
    """
    seen: set[str] = set()
    merged: list[Product] = []
    for product in (*standard, *newly_added):
        if product.machine_name in seen:
            continue
        seen.add(product.machine_name)
        merged.append(product)
    return merged


def sort_alphabetically(products: Iterable[Product]) -> list[Product]:
    """Sort case-insensitively by display name, machine_name breaking ties."""
    return sorted(products, key=lambda p: (p.human_name.lower(), p.machine_name))


@dataclass
class CatalogSnapshot:
    """
    One point-in-time catalog.

    `text` is the serialized payload exactly as captured at assembly time;
    it is what gets persisted, never re-derived from `products`.
    """

    products: list[Product]
    text: str
    expires_at: datetime
    captured_at: datetime
    newly_added: list[Product] = field(default_factory=list)
    locators: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(
        cls,
        payload: FeedPayload,
        text: str,
        *,
        captured_at: datetime | None = None,
        locators: list[str] | None = None,
    ) -> "CatalogSnapshot":
        """Build a de-duplicated, alphabetically sorted snapshot from a payload."""
        timer = payload.countdown_timer_options
        products = merge_products(payload.standard_products, payload.newly_added)
        return cls(
            products=sort_alphabetically(products),
            text=text,
            expires_at=timer.next_addition_time,
            captured_at=timer.current_time or captured_at or utc_now(),
            newly_added=list(payload.newly_added),
            locators=list(locators or []),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the next catalog addition time has passed."""
        return (now or utc_now()) > self.expires_at

    def machine_names(self) -> list[str]:
        """Machine names in snapshot order."""
        return [p.machine_name for p in self.products]

    def alphabetically(self) -> list[Product]:
        """Products sorted by display name."""
        return sort_alphabetically(self.products)

    def newest_to_oldest(self) -> list[Product]:
        """Products sorted by date added, newest first."""
        return sorted(self.products, key=lambda p: p.date_added, reverse=True)


def parse_payload(raw: dict[str, Any], *, locator: str | None = None) -> FeedPayload:
    """Validate a raw payload, converting validation failures to ParseError."""
    try:
        return FeedPayload.model_validate(raw)
    except ValidationError as e:
        raise ParseError(
            f"Catalog payload failed validation: {e.error_count()} error(s)",
            locator=locator,
            original_error=e,
        ) from e


class FeedAssembler:
    """
    Assembles the full catalog from the root document and its chunks.

    Assembly is all-or-nothing: a missing payload, a failed chunk fetch or
    a decode failure aborts it. When the assembled catalog is already
    expired, every locator it touched is invalidated and assembly is
    retried, at most `max_refresh_attempts` times.

    Example:
        >>> assembler = FeedAssembler(cache, EmbeddedJsonExtractor(), root_url=..., chunk_url_template=...)
        >>> snapshot = assembler.assemble()
    """

    def __init__(
        self,
        cache: ContentCache,
        extractor: Extractor,
        *,
        root_url: str,
        chunk_url_template: str,
        max_refresh_attempts: int = 1,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize the assembler.

        Args:
            cache: Content cache used for every retrieval
            extractor: Locates the embedded payload in the root document
            root_url: Root document locator
            chunk_url_template: Chunk locator template containing '{index}'
            max_refresh_attempts: Invalidate-and-retry cycles allowed when expired
            clock: Wall-clock source (defaults to UTC now)
        """
        if max_refresh_attempts < 0:
            raise ValueError("max_refresh_attempts must be >= 0")
        self._cache = cache
        self._extractor = extractor
        self.root_url = root_url
        self.chunk_url_template = chunk_url_template
        self.max_refresh_attempts = max_refresh_attempts
        self._clock = clock or utc_now

    def chunk_url(self, index: int) -> str:
        """Locator of one catalog chunk."""
        return self.chunk_url_template.format(index=index)

    def locators(self, chunks: int) -> list[str]:
        """Root locator followed by every chunk locator."""
        return [self.root_url, *(self.chunk_url(i) for i in range(chunks))]

    def assemble(self) -> CatalogSnapshot:
        """
        Produce a complete, non-expired catalog snapshot.

        Returns:
            CatalogSnapshot: De-duplicated products sorted by display name

        Raises:
            TransportError: If the root document or a chunk cannot be fetched
            ParseError: If the payload or a chunk is malformed
            StaleFeedRace: If the catalog is still expired after the last retry
        """
        attempts = self.max_refresh_attempts + 1
        for attempt in range(1, attempts + 1):
            snapshot = self._assemble_once()
            if not snapshot.is_expired(self._clock()):
                logger.info(
                    "Assembled catalog",
                    products=len(snapshot.products),
                    chunks=len(snapshot.locators) - 1,
                    expires_at=snapshot.expires_at.isoformat(),
                )
                return snapshot

            if attempt == attempts:
                break

            logger.warning(
                "Refreshing expired catalog",
                attempt=attempt,
                expires_at=snapshot.expires_at.isoformat(),
            )
            for locator in snapshot.locators:
                self._cache.invalidate(locator)

        raise StaleFeedRace(
            f"Catalog still expired after {self.max_refresh_attempts} refresh attempt(s)",
            locator=self.root_url,
            expires_at=snapshot.expires_at,
            attempts=attempts,
        )

    def _assemble_once(self) -> CatalogSnapshot:
        document = self._cache.retrieve(self.root_url)
        try:
            payload = self._extractor.extract(document)
        except ParseError as e:
            e.locator = self.root_url
            raise
        chunks = self._chunk_count(payload)

        logger.debug("Getting product list", chunks=chunks)
        products: list[Any] = []
        for index in range(chunks):
            products.extend(self._read_chunk(self.chunk_url(index)))

        payload["standardProducts"] = products
        text = json.dumps(payload, indent=2, ensure_ascii=False)
        return CatalogSnapshot.from_payload(
            parse_payload(payload, locator=self.root_url),
            text,
            captured_at=self._clock(),
            locators=self.locators(chunks),
        )

    def _chunk_count(self, payload: dict[str, Any]) -> int:
        chunks = payload.get("chunks")
        if isinstance(chunks, bool) or not isinstance(chunks, int) or chunks < 0:
            raise ParseError(
                f"Unable to get chunks value: {chunks!r}",
                locator=self.root_url,
            )
        return chunks

    def _read_chunk(self, url: str) -> list[Any]:
        data = self._cache.retrieve(url)
        try:
            chunk = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(f"Unable to decode chunk: {e}", locator=url, original_error=e) from e
        if not isinstance(chunk, list):
            raise ParseError("Chunk is not a JSON array", locator=url)
        return chunk

    def cache_images(self, snapshot: CatalogSnapshot) -> list[str]:
        """
        Warm the cache with every image referenced by the snapshot.

        Failures are logged and collected rather than raised.

        Returns:
            list[str]: Locators that could not be cached
        """
        failed: list[str] = []
        urls = [url for product in snapshot.products for url in product.image_urls()]
        for url in urls:
            try:
                self._cache.retrieve(url)
            except (TransportError, FilesystemError) as e:
                logger.warning("Unable to cache image", url=url, error=str(e))
                failed.append(url)

        logger.info("Cached images", total=len(urls), failed=len(failed))
        return failed
