"""
Game Library.

Merges catalog products into persistent game records and reconciles
them with the installers present on disk.
"""

import os
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from trove_keeper.cache import ContentCache
from trove_keeper.errors import (
    FilesystemError,
    ParseError,
    TransportError,
    UnknownGameError,
)
from trove_keeper.feed.assembler import CatalogSnapshot
from trove_keeper.ingestion.contracts import Product

logger = structlog.get_logger(__name__)

DEFAULT_PLATFORMS: tuple[str, ...] = ("windows",)


def filename_from_url(url: str) -> str:
    """Last segment of a download URL's decoded path, query string excluded."""
    return PurePosixPath(unquote(urlparse(url).path)).name


def is_plain_filename(name: str) -> bool:
    """Whether a name refers to a file directly inside a directory."""
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


def url_extension(url: str) -> str | None:
    """File extension of a URL's path, without the dot."""
    suffix = PurePosixPath(urlparse(url).path).suffix
    return suffix[1:] if suffix else None


class GameRecord(BaseModel):
    """A catalog product as tracked by the library."""

    # Identifiers
    machine_name: str
    human_name: str

    # Description
    description: str = ""
    date_added: int = 0

    # Download
    platform: str
    download_url: str
    filename: str
    downloaded: bool = False

    # Set by whoever installs the game, never by the library itself
    installed: bool = False
    executable: str = ""

    # Media
    image: str = ""
    logo: str | None = None
    screenshots: list[str] = Field(default_factory=list)
    thumbnails: list[str] = Field(default_factory=list)
    trailer: str | None = None

    # Catalog history
    first_seen_on: str = ""
    last_seen_on: str = ""
    removed_from_catalog: bool = False

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        """Ensure the installer name cannot escape its directory."""
        if not is_plain_filename(v):
            raise ValueError(f"filename must be a plain file name, got {v!r}")
        return v

    @classmethod
    def from_product(
        cls,
        product: Product,
        platforms: Sequence[str] = DEFAULT_PLATFORMS,
        seen_on: str = "",
    ) -> "GameRecord":
        """
        Create a record, choosing the first available platform in priority order.

        Raises:
            ParseError: If the product offers none of the platforms
        """
        platform = next((p for p in platforms if p in product.downloads), None)
        if platform is None:
            raise ParseError(
                f"No download for platforms {list(platforms)} "
                f"(available: {sorted(product.downloads)})",
                machine_name=product.machine_name,
            )

        download_url = product.downloads[platform].url.web
        filename = filename_from_url(download_url)
        if not is_plain_filename(filename):
            raise ParseError(
                f"Download URL has no usable file name: {download_url}",
                locator=download_url,
                machine_name=product.machine_name,
            )

        record = cls(
            machine_name=product.machine_name,
            human_name=product.human_name,
            platform=platform,
            download_url=download_url,
            filename=filename,
            first_seen_on=seen_on,
        )
        record.refresh(product, seen_on)
        return record

    def refresh(self, product: Product, seen_on: str) -> None:
        """Update descriptive fields from a newer catalog entry."""
        self.human_name = product.human_name
        self.description = product.description_text
        self.date_added = product.date_added
        self.image = product.image
        self.logo = product.logo
        self.screenshots = list(product.screenshots)
        self.thumbnails = list(product.thumbnails)
        self.trailer = product.youtube_link
        self.last_seen_on = seen_on
        self.removed_from_catalog = False


class LibraryState(BaseModel):
    """On-disk representation of the library (library.json)."""

    root: Path
    downloads: Path
    number_downloaded: int = 0
    total: int = 0
    games: list[GameRecord] = Field(default_factory=list)


class GameLibrary:
    """
    Persistent collection of game records, unique by machine_name.

    Records are created on first sight of a product and never deleted;
    products missing from a later catalog are flagged as removed.

    Example:
        >>> library = GameLibrary.create(Path("/games/trove"), Path("~/Downloads"))
        >>> library.add_feed(snapshot)
        >>> library.update_download_status()
        >>> unmoved = library.move_downloads()
    """

    def __init__(
        self,
        root: Path,
        downloads: Path,
        *,
        platforms: Sequence[str] = DEFAULT_PLATFORMS,
        games: list[GameRecord] | None = None,
    ) -> None:
        if not platforms:
            raise ValueError("At least one platform is required")
        self.root = Path(root)
        self.downloads = Path(downloads)
        self.platforms = tuple(platforms)
        self.games: list[GameRecord] = []
        self._index: dict[str, GameRecord] = {}
        self.number_downloaded = 0
        self.total = 0
        for game in games or []:
            if game.machine_name not in self._index:
                self._index[game.machine_name] = game
                self.games.append(game)
        self.total = len(self.games)
        self.number_downloaded = sum(1 for g in self.games if g.downloaded)

    @classmethod
    def create(
        cls,
        root: Path,
        downloads: Path,
        *,
        platforms: Sequence[str] = DEFAULT_PLATFORMS,
        games: list[GameRecord] | None = None,
    ) -> "GameLibrary":
        """
        Create a library after checking both directories exist.

        Raises:
            FilesystemError: If the root or downloads directory is missing
        """
        for label, directory in (("root", root), ("downloads", downloads)):
            if not Path(directory).is_dir():
                raise FilesystemError(
                    f"Library {label} directory does not exist: {directory}",
                    path=Path(directory),
                )
        return cls(root, downloads, platforms=platforms, games=games)

    @classmethod
    def load(
        cls,
        state_path: Path,
        *,
        platforms: Sequence[str] = DEFAULT_PLATFORMS,
    ) -> "GameLibrary":
        """
        Restore a library from library.json.

        Raises:
            FilesystemError: If the file cannot be read or a directory is missing
            ParseError: If the file content is invalid
        """
        try:
            text = state_path.read_text(encoding="utf-8")
        except OSError as e:
            raise FilesystemError(
                f"Unable to read library: {e}", path=state_path, original_error=e
            ) from e
        try:
            state = LibraryState.model_validate_json(text)
        except ValidationError as e:
            raise ParseError(
                f"Library file is invalid: {e.error_count()} error(s)",
                path=state_path,
                original_error=e,
            ) from e
        return cls.create(state.root, state.downloads, platforms=platforms, games=state.games)

    def save(self, state_path: Path) -> None:
        """Write library.json."""
        state = LibraryState(
            root=self.root,
            downloads=self.downloads,
            number_downloaded=self.number_downloaded,
            total=self.total,
            games=self.games,
        )
        try:
            state_path.parent.mkdir(parents=True, exist_ok=True)
            state_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise FilesystemError(
                f"Unable to save library: {e}", path=state_path, original_error=e
            ) from e
        logger.debug("Saved library", path=str(state_path), total=self.total)

    def __len__(self) -> int:
        return len(self.games)

    def __contains__(self, machine_name: object) -> bool:
        return machine_name in self._index

    def get(self, machine_name: str) -> GameRecord:
        """
        Look up a record.

        Raises:
            UnknownGameError: If no record has this machine_name
        """
        try:
            return self._index[machine_name]
        except KeyError:
            raise UnknownGameError(
                f"No game named {machine_name!r} in library", machine_name=machine_name
            ) from None

    def add_feed(self, snapshot: CatalogSnapshot) -> list[GameRecord]:
        """
        Merge a catalog snapshot into the library.

        New products get a record; known ones are refreshed. Records whose
        product is missing from the snapshot are flagged as removed.

        Returns:
            list[GameRecord]: Records created by this merge

        Raises:
            ParseError: If a new product has no download for any accepted platform
        """
        seen_on = snapshot.captured_at.date().isoformat()
        in_feed = {p.machine_name for p in snapshot.products}

        # A failure while building new records must leave the library unchanged
        added = [
            GameRecord.from_product(p, self.platforms, seen_on)
            for p in snapshot.products
            if p.machine_name not in self._index
        ]

        for product in snapshot.products:
            existing = self._index.get(product.machine_name)
            if existing is not None:
                existing.refresh(product, seen_on)
        for record in added:
            self._index[record.machine_name] = record
            self.games.append(record)

        removed = 0
        for game in self.games:
            if game.machine_name not in in_feed and not game.removed_from_catalog:
                game.removed_from_catalog = True
                removed += 1

        self.total = len(self.games)
        logger.info("Merged catalog", added=len(added), removed=removed, total=self.total)
        return added

    def update_download_status(self) -> tuple[int, int]:
        """
        Recompute each record's downloaded flag from the root directory.

        Returns:
            tuple[int, int]: (number downloaded, total)
        """
        count = 0
        for game in self.games:
            game.downloaded = (self.root / game.filename).exists()
            if game.downloaded:
                count += 1
        self.number_downloaded = count
        self.total = len(self.games)
        logger.info("Download status", downloaded=self.number_downloaded, total=self.total)
        return self.number_downloaded, self.total

    def downloaded(self) -> list[GameRecord]:
        return [g for g in self.games if g.downloaded]

    def not_downloaded(self) -> list[GameRecord]:
        return [g for g in self.games if not g.downloaded]

    def removed(self) -> list[GameRecord]:
        return [g for g in self.games if g.removed_from_catalog]

    def mark_installed(self, machine_name: str, executable: Path | str) -> GameRecord:
        """Record that a game has been installed with the given executable."""
        game = self.get(machine_name)
        game.installed = True
        game.executable = str(executable)
        return game

    def format(self, game: GameRecord) -> str:
        """One listing line for a record."""
        return f"{game.date_added} {game.human_name} {game.downloaded}"

    def stray_downloads(self) -> list[Path]:
        """
        Installers of known games still sitting in the downloads directory.

        Raises:
            FilesystemError: If the downloads directory is missing
        """
        if not self.downloads.is_dir():
            raise FilesystemError(
                f"Downloads directory does not exist: {self.downloads}", path=self.downloads
            )
        strays: dict[Path, None] = {}
        for game in self.games:
            candidate = self.downloads / game.filename
            if candidate.is_file():
                strays.setdefault(candidate)
        return list(strays)

    def move_downloads(self) -> list[Path]:
        """
        Relocate stray downloads into the root directory.

        Each file is copied under a temporary name and renamed into place,
        then the source is deleted only if the copy succeeded. A failed copy
        leaves nothing behind in root. Existing files in root are never
        overwritten. A crash between rename and delete leaves both copies;
        the next update_download_status() still sees the game as downloaded.

        Returns:
            list[Path]: Source files that could not be moved
        """
        unmoved: list[Path] = []
        for source in self.stray_downloads():
            dest = self.root / source.name
            logger.info("Moving download", source=str(source), dest=str(dest))

            if dest.exists():
                logger.warning("Destination exists, skipping", dest=str(dest))
                unmoved.append(source)
                continue

            try:
                self._copy_into_root(source, dest)
            except OSError as e:
                logger.warning("Copy failed", source=str(source), dest=str(dest), error=str(e))
                unmoved.append(source)
                continue

            try:
                source.unlink()
            except OSError as e:
                logger.warning("Unable to remove source", source=str(source), error=str(e))
                unmoved.append(source)

        return unmoved

    def _copy_into_root(self, source: Path, dest: Path) -> None:
        """Copy under a temporary name in root, then rename onto dest."""
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{dest.name}.", suffix=".part")
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            shutil.copy2(source, tmp)
            os.replace(tmp, dest)
        finally:
            tmp.unlink(missing_ok=True)

    def export_metadata(self, cache: ContentCache, metadata_dir: Path) -> list[str]:
        """
        Copy each game's images from the content cache into metadata_dir.

        Files are named <machine_name>.<ext>, <machine_name>_logo.<ext>,
        <machine_name>_t<i>.<ext> and <machine_name>_s<i>.<ext>.

        Returns:
            list[str]: Image locators that could not be exported
        """
        try:
            metadata_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Unable to create metadata directory: {e}", path=metadata_dir, original_error=e
            ) from e

        failed: list[str] = []
        for game in self.games:
            targets: list[tuple[str, str]] = []
            if game.image:
                targets.append((game.image, game.machine_name))
            if game.logo:
                targets.append((game.logo, f"{game.machine_name}_logo"))
            targets.extend((url, f"{game.machine_name}_t{i}") for i, url in enumerate(game.thumbnails))
            targets.extend((url, f"{game.machine_name}_s{i}") for i, url in enumerate(game.screenshots))

            for url, stem in targets:
                ext = url_extension(url)
                if ext is None:
                    logger.warning("Image has no extension", url=url, machine_name=game.machine_name)
                    failed.append(url)
                    continue
                try:
                    (metadata_dir / f"{stem}.{ext}").write_bytes(cache.retrieve(url))
                except (TransportError, FilesystemError, OSError) as e:
                    logger.warning(
                        "Unable to export image",
                        url=url,
                        machine_name=game.machine_name,
                        error=str(e),
                    )
                    failed.append(url)

        return failed
