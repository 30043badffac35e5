"""
Catalog snapshot persistence.

Saves and restores snapshots as the exact text captured at assembly
time, keeps one dated backup per day and compares snapshots.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path

from trove_keeper.errors import FilesystemError, ParseError
from trove_keeper.feed.assembler import CatalogSnapshot, parse_payload
from trove_keeper.ingestion.contracts import Product
from trove_keeper.logger import get_logger

CURRENT_FILENAME = "catalog_current.json"
BACKUP_PREFIX = "catalog-"
BACKUP_FORMAT = "catalog-%Y-%m-%d.json"


class DiffIdentity(str, Enum):
    """
    Product field deciding whether two snapshots share a product.

    HUMAN_NAME matches historical diffs but collapses distinct titles
    sharing a display name; MACHINE_NAME does not.
    """

    HUMAN_NAME = "human_name"
    MACHINE_NAME = "machine_name"


@dataclass
class FeedDiff:
    """Products added and removed between two snapshots."""

    added: list[Product] = field(default_factory=list)
    removed: list[Product] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """Whether the snapshots hold the same products."""
        return not self.added and not self.removed

    def to_dict(self) -> dict:
        """Display names of added and removed products."""
        return {
            "added": [p.human_name for p in self.added],
            "removed": [p.human_name for p in self.removed],
        }


class FeedSnapshotStore:
    """
    Stores catalog snapshots under a state directory.

    Files:
    - catalog_current.json     latest snapshot
    - catalog-YYYY-MM-DD.json  one backup per day
    """

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = Path(state_dir)
        self._logger = get_logger(__name__, component="snapshot_store")

    @property
    def current_path(self) -> Path:
        """Location of the latest snapshot."""
        return self.state_dir / CURRENT_FILENAME

    def save(self, snapshot: CatalogSnapshot, path: Path | None = None) -> Path:
        """
        Write the snapshot's captured text.

        Raises:
            FilesystemError: If the file cannot be written
        """
        target = path or self.current_path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(snapshot.text, encoding="utf-8")
        except OSError as e:
            raise FilesystemError(
                f"Unable to save snapshot: {e}", path=target, original_error=e
            ) from e
        self._logger.debug("Saved snapshot", path=str(target), products=len(snapshot.products))
        return target

    def load(self, path: Path | None = None) -> CatalogSnapshot:
        """
        Read a snapshot, re-applying de-duplication and sorting.

        Raises:
            FilesystemError: If the file cannot be read
            ParseError: If the content is not a valid catalog payload
        """
        source = path or self.current_path
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as e:
            raise FilesystemError(
                f"Unable to read snapshot: {e}", path=source, original_error=e
            ) from e

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(
                f"Snapshot is not valid JSON: {e}", path=source, original_error=e
            ) from e
        if not isinstance(raw, dict):
            raise ParseError("Snapshot is not a JSON object", path=source)

        try:
            payload = parse_payload(raw)
        except ParseError as e:
            e.path = source
            raise

        snapshot = CatalogSnapshot.from_payload(
            payload,
            text,
            captured_at=datetime.fromtimestamp(source.stat().st_mtime, tz=timezone.utc),
        )
        self._logger.debug("Loaded snapshot", path=str(source), products=len(snapshot.products))
        return snapshot

    def backup(
        self,
        snapshot: CatalogSnapshot,
        directory: Path | None = None,
        today: date | None = None,
    ) -> Path:
        """Write the day's backup, replacing an earlier one from the same day."""
        day = today or datetime.now(timezone.utc).date()
        target = (directory or self.state_dir) / day.strftime(BACKUP_FORMAT)
        self._logger.info("Creating backup", path=str(target))
        return self.save(snapshot, target)

    def backups(self, directory: Path | None = None) -> list[Path]:
        """Backup files, oldest first."""
        folder = directory or self.state_dir
        if not folder.is_dir():
            return []
        return sorted(folder.glob(f"{BACKUP_PREFIX}????-??-??.json"))

    def diff(
        self,
        current: CatalogSnapshot,
        older: CatalogSnapshot,
        identity: DiffIdentity = DiffIdentity.HUMAN_NAME,
    ) -> FeedDiff:
        """
        Compare two snapshots.

        Added products are in `current` but not `older`; removed products
        the reverse. Each list keeps its own snapshot's order.
        """
        key = DiffIdentity(identity).value
        current_keys = {getattr(p, key) for p in current.products}
        older_keys = {getattr(p, key) for p in older.products}

        result = FeedDiff(
            added=[p for p in current.products if getattr(p, key) not in older_keys],
            removed=[p for p in older.products if getattr(p, key) not in current_keys],
        )
        self._logger.info(
            "Diffed snapshots",
            identity=key,
            added=len(result.added),
            removed=len(result.removed),
        )
        return result
