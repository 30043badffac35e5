"""
Data contracts for the catalog feed.

These Pydantic models define the expected structure of the embedded
catalog payload and its product chunks, keeping the wire field names
(kebab-case products, camelCase root) as aliases.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FeedModel(BaseModel):
    """Common configuration: accept aliases or names, ignore unknown fields."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DownloadUrl(FeedModel):
    """Download locations for one platform."""

    web: str
    bittorrent: str | None = None


class Download(FeedModel):
    """Download descriptor for one platform."""

    machine_name: str = ""
    name: str = ""
    url: DownloadUrl
    file_size: int = Field(default=0, ge=0, description="Size in bytes")
    md5: str = Field(default="", description="MD5 checksum of the file")
    size: str | None = Field(default=None, description="Human-readable size")


class CarouselContent(FeedModel):
    """Media shown in the product carousel."""

    youtube_link: list[str] | None = Field(default=None, alias="youtube-link")
    thumbnail: list[str] = Field(default_factory=list)
    screenshot: list[str] = Field(default_factory=list)


class Product(FeedModel):
    """One catalog item."""

    # Identifiers
    machine_name: str = Field(..., min_length=1, description="Stable unique identifier")
    human_name: str = Field(..., alias="human-name", description="Display name")

    # Description
    date_added: int = Field(default=0, alias="date-added", description="Unix timestamp")
    description_text: str = Field(default="", alias="description-text")
    popularity: int = Field(default=0)
    marketing_blurb: Any = Field(default=None, alias="marketing-blurb")
    publishers: Any = Field(default=None)
    developers: Any = Field(default=None)

    # Media
    image: str = Field(default="")
    logo: str | None = Field(default=None)
    background_image: str | None = Field(default=None, alias="background-image")
    youtube_link: str | None = Field(default=None, alias="youtube-link")
    carousel_content: CarouselContent = Field(
        default_factory=CarouselContent, alias="carousel-content"
    )

    # Downloads keyed by platform
    downloads: dict[str, Download] = Field(default_factory=dict)

    @property
    def screenshots(self) -> list[str]:
        """Screenshot locators."""
        return self.carousel_content.screenshot

    @property
    def thumbnails(self) -> list[str]:
        """Thumbnail locators."""
        return self.carousel_content.thumbnail

    def image_urls(self) -> list[str]:
        """All image locators referenced by this product, in a stable order."""
        urls = [self.image] if self.image else []
        if self.logo:
            urls.append(self.logo)
        urls.extend(self.screenshots)
        urls.extend(self.thumbnails)
        return urls


class TimerOptions(FeedModel):
    """Countdown to the next catalog addition; shared by the whole catalog."""

    current_time: datetime | None = Field(default=None, alias="currentTime|datetime")
    next_addition_time: datetime = Field(..., alias="nextAdditionTime|datetime")

    @field_validator("current_time", "next_addition_time")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps in the feed are UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class FeedPayload(FeedModel):
    """
    The embedded catalog payload.

    standardProducts is absent from the root document and filled in
    from the chunks during assembly.
    """

    chunks: int | None = Field(default=None, ge=0)
    all_access: list[str] = Field(default_factory=list, alias="allAccess")
    download_platform_order: list[str] = Field(
        default_factory=list, alias="downloadPlatformOrder"
    )
    countdown_timer_options: TimerOptions = Field(..., alias="countdownTimerOptions")
    standard_products: list[Product] = Field(default_factory=list, alias="standardProducts")
    newly_added: list[Product] = Field(default_factory=list, alias="newlyAdded")
