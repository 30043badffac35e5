"""
Command-line interface for Trove Keeper.

Provides commands to refresh the catalog, compare snapshots and
reconcile the game library with downloaded installers.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from trove_keeper.cache import ContentCache
from trove_keeper.catalog import GameLibrary
from trove_keeper.config import Settings, get_settings
from trove_keeper.errors import FilesystemError, TroveError
from trove_keeper.feed import CatalogSnapshot, DiffIdentity, FeedAssembler, FeedSnapshotStore
from trove_keeper.ingestion import EmbeddedJsonExtractor, HttpFetcher
from trove_keeper.logger import get_logger, setup_logging

LIBRARY_FILENAME = "library.json"

logger = get_logger(__name__, component="cli")


class CLIOutput(BaseModel):
    """Structured output for CLI commands."""

    success: bool
    command: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] | list[Any] | None = None
    error: str | None = None


def print_json(output: CLIOutput) -> None:
    """Print output as formatted JSON."""
    print(json.dumps(output.model_dump(), indent=2, default=str))


def build_assembler(settings: Settings, fetcher: HttpFetcher) -> FeedAssembler:
    """Wire the cache and extractor into an assembler from settings."""
    cache = ContentCache(settings.paths.resolved_cache_dir, fetcher)
    return FeedAssembler(
        cache,
        EmbeddedJsonExtractor(settings.feed.payload_element_id),
        root_url=settings.feed.root_url,
        chunk_url_template=settings.feed.chunk_url_template,
        max_refresh_attempts=settings.feed.max_refresh_attempts,
    )


def update_snapshot(settings: Settings, fetcher: HttpFetcher) -> CatalogSnapshot:
    """Assemble a fresh snapshot, save it and write the day's backup."""
    store = FeedSnapshotStore(settings.paths.resolved_state_dir)
    snapshot = build_assembler(settings, fetcher).assemble()
    store.save(snapshot)
    store.backup(snapshot)
    return snapshot


def current_snapshot(settings: Settings, fetcher: HttpFetcher) -> CatalogSnapshot:
    """Load the saved snapshot, assembling one if none exists yet."""
    store = FeedSnapshotStore(settings.paths.resolved_state_dir)
    if not store.current_path.exists():
        return update_snapshot(settings, fetcher)
    snapshot = store.load()
    if snapshot.is_expired():
        logger.warning("Catalog is expired, run feed-update to refresh it")
    return snapshot


def open_library(settings: Settings) -> GameLibrary:
    """Load library.json, or create an empty library from the configured paths."""
    state_path = settings.paths.resolved_state_dir / LIBRARY_FILENAME
    platforms = settings.library.platform_priority
    if state_path.exists():
        return GameLibrary.load(state_path, platforms=platforms)
    if settings.paths.library_root is None or settings.paths.downloads_dir is None:
        raise FilesystemError(
            "TROVE_LIBRARY_ROOT and TROVE_DOWNLOADS_DIR must be set to create a library",
            path=state_path,
        )
    return GameLibrary.create(
        settings.paths.library_root, settings.paths.downloads_dir, platforms=platforms
    )


def cmd_show_config(settings: Settings, args: list[str]) -> CLIOutput:
    """Show the resolved configuration."""
    return CLIOutput(
        success=True,
        command="show-config",
        data={
            "cache_dir": str(settings.paths.resolved_cache_dir),
            "state_dir": str(settings.paths.resolved_state_dir),
            "library_root": str(settings.paths.library_root or ""),
            "downloads_dir": str(settings.paths.downloads_dir or ""),
            "root_url": settings.feed.root_url,
            "max_refresh_attempts": settings.feed.max_refresh_attempts,
            "diff_identity": settings.feed.diff_identity,
            "platform_priority": settings.library.platform_priority,
        },
    )


def cmd_feed_update(settings: Settings, args: list[str]) -> CLIOutput:
    """Assemble and save a fresh catalog snapshot."""
    with HttpFetcher(http_config=settings.http, retry_config=settings.retry) as fetcher:
        snapshot = update_snapshot(settings, fetcher)
    return CLIOutput(
        success=True,
        command="feed-update",
        data={
            "products": len(snapshot.products),
            "expires_at": snapshot.expires_at.isoformat(),
        },
    )


def cmd_feed_list(settings: Settings, args: list[str]) -> CLIOutput:
    """List catalog titles alphabetically, or newest first with --newest."""
    with HttpFetcher(http_config=settings.http, retry_config=settings.retry) as fetcher:
        snapshot = current_snapshot(settings, fetcher)
    products = snapshot.newest_to_oldest() if "--newest" in args else snapshot.products
    return CLIOutput(
        success=True,
        command="feed-list",
        data=[p.human_name for p in products],
    )


def cmd_feed_diff(settings: Settings, args: list[str]) -> CLIOutput:
    """Diff the current snapshot against an older snapshot file."""
    if not args:
        raise ValueError("path to an older snapshot required")
    store = FeedSnapshotStore(settings.paths.resolved_state_dir)
    with HttpFetcher(http_config=settings.http, retry_config=settings.retry) as fetcher:
        current = current_snapshot(settings, fetcher)
    older = store.load(Path(args[0]))
    diff = store.diff(current, older, DiffIdentity(settings.feed.diff_identity))
    return CLIOutput(success=True, command="feed-diff", data=diff.to_dict())


def cmd_feed_backups(settings: Settings, args: list[str]) -> CLIOutput:
    """List dated snapshot backups, oldest first."""
    store = FeedSnapshotStore(settings.paths.resolved_state_dir)
    return CLIOutput(
        success=True,
        command="feed-backups",
        data=[str(p) for p in store.backups()],
    )


def cmd_cache_images(settings: Settings, args: list[str]) -> CLIOutput:
    """Cache every image referenced by the current snapshot."""
    with HttpFetcher(http_config=settings.http, retry_config=settings.retry) as fetcher:
        snapshot = current_snapshot(settings, fetcher)
        failed = build_assembler(settings, fetcher).cache_images(snapshot)
    return CLIOutput(
        success=not failed,
        command="cache-images",
        data={"failed": failed},
    )


def cmd_library_sync(settings: Settings, args: list[str]) -> CLIOutput:
    """Merge the current snapshot into the library and refresh download status."""
    state_path = settings.paths.resolved_state_dir / LIBRARY_FILENAME
    library = open_library(settings)
    with HttpFetcher(http_config=settings.http, retry_config=settings.retry) as fetcher:
        snapshot = current_snapshot(settings, fetcher)
    added = library.add_feed(snapshot)
    downloaded, total = library.update_download_status()
    library.save(state_path)
    return CLIOutput(
        success=True,
        command="library-sync",
        data={
            "added": [g.machine_name for g in added],
            "removed_from_catalog": [g.machine_name for g in library.removed()],
            "downloaded": downloaded,
            "total": total,
        },
    )


def cmd_library_status(settings: Settings, args: list[str]) -> CLIOutput:
    """Show downloaded and missing games."""
    library = open_library(settings)
    downloaded, total = library.update_download_status()
    return CLIOutput(
        success=True,
        command="library-status",
        data={
            "downloaded": downloaded,
            "total": total,
            "not_downloaded": [library.format(g) for g in library.not_downloaded()],
            "stray_downloads": [str(p) for p in library.stray_downloads()],
        },
    )


def cmd_library_move(settings: Settings, args: list[str]) -> CLIOutput:
    """Move stray downloads into the library root."""
    state_path = settings.paths.resolved_state_dir / LIBRARY_FILENAME
    library = open_library(settings)
    unmoved = library.move_downloads()
    downloaded, total = library.update_download_status()
    library.save(state_path)
    return CLIOutput(
        success=not unmoved,
        command="library-move",
        data={
            "unmoved": [str(p) for p in unmoved],
            "downloaded": downloaded,
            "total": total,
        },
    )


COMMANDS = {
    "show-config": cmd_show_config,
    "feed-update": cmd_feed_update,
    "feed-list": cmd_feed_list,
    "feed-diff": cmd_feed_diff,
    "feed-backups": cmd_feed_backups,
    "cache-images": cmd_cache_images,
    "library-sync": cmd_library_sync,
    "library-status": cmd_library_status,
    "library-move": cmd_library_move,
}


def print_usage() -> None:
    """Print CLI usage information."""
    usage = """
Trove Keeper CLI
================

Usage: trove-keeper <command> [arguments]

Commands:
  show-config                 Show resolved configuration
  feed-update                 Assemble, save and back up a fresh catalog
  feed-list [--newest]        List catalog titles (alphabetical or newest first)
  feed-diff <path>            Diff the current catalog against an older snapshot
  feed-backups                List dated catalog backups
  cache-images                Cache every image referenced by the catalog
  library-sync                Merge the catalog into the library
  library-status              Show downloaded and missing games
  library-move                Move stray downloads into the library root

Environment:
  TROVE_HOME, TROVE_LIBRARY_ROOT, TROVE_DOWNLOADS_DIR, LIBRARY_PLATFORM_PRIORITY, ...

Examples:
  trove-keeper feed-diff ~/.trove/catalog-2024-01-01.json
"""
    print(usage)


def main() -> None:
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(1)

    command = sys.argv[1]
    if command in ("help", "--help", "-h"):
        print_usage()
        return

    handler = COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        print_usage()
        sys.exit(1)

    setup_logging()
    try:
        output = handler(get_settings(), sys.argv[2:])
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except (TroveError, ValueError) as e:
        logger.exception("CLI error", error=str(e))
        print_json(CLIOutput(success=False, command=command, error=str(e)))
        sys.exit(1)

    print_json(output)
    if not output.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
