"""Tests for the command-line interface."""

import json
import os
from datetime import date
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import make_snapshot, product_dict

from trove_keeper import cli
from trove_keeper.config import Settings, get_settings
from trove_keeper.feed import FeedSnapshotStore


@pytest.fixture
def env(tmp_path: Path) -> dict[str, str]:
    root, downloads = tmp_path / "trove", tmp_path / "Downloads"
    root.mkdir()
    downloads.mkdir()
    return {
        "TROVE_HOME": str(tmp_path / "home"),
        "TROVE_LIBRARY_ROOT": str(root),
        "TROVE_DOWNLOADS_DIR": str(downloads),
    }


class TestCommands:
    """Tests for individual command handlers."""

    def test_show_config(self, env: dict[str, str]) -> None:
        """Test that resolved paths are reported."""
        with patch.dict(os.environ, env, clear=True):
            output = cli.cmd_show_config(Settings(), [])

        assert output.success
        assert output.data["state_dir"] == env["TROVE_HOME"]
        assert output.data["platform_priority"] == ["windows"]

    def test_feed_backups(self, env: dict[str, str]) -> None:
        """Test that backups are listed oldest first."""
        with patch.dict(os.environ, env, clear=True):
            settings = Settings()
        store = FeedSnapshotStore(settings.paths.resolved_state_dir)
        snapshot = make_snapshot([product_dict("alpha")])
        store.backup(snapshot, today=date(2024, 2, 1))
        store.backup(snapshot, today=date(2024, 1, 1))

        output = cli.cmd_feed_backups(settings, [])

        assert [Path(p).name for p in output.data] == [
            "catalog-2024-01-01.json",
            "catalog-2024-02-01.json",
        ]

    def test_feed_diff_requires_path(self, env: dict[str, str]) -> None:
        """Test that feed-diff without a path is rejected."""
        with patch.dict(os.environ, env, clear=True):
            settings = Settings()

        with pytest.raises(ValueError, match="path"):
            cli.cmd_feed_diff(settings, [])

    def test_library_status(self, env: dict[str, str]) -> None:
        """Test status of a library synced from a saved snapshot."""
        with patch.dict(os.environ, env, clear=True):
            settings = Settings()
        FeedSnapshotStore(settings.paths.resolved_state_dir).save(
            make_snapshot([product_dict("alpha"), product_dict("beta")])
        )
        Path(env["TROVE_LIBRARY_ROOT"], "alpha.exe").write_bytes(b"x")

        synced = cli.cmd_library_sync(settings, [])
        status = cli.cmd_library_status(settings, [])

        assert sorted(synced.data["added"]) == ["alpha", "beta"]
        assert status.data["downloaded"] == 1
        assert status.data["total"] == 2
        assert (settings.paths.resolved_state_dir / cli.LIBRARY_FILENAME).exists()

    def test_library_requires_paths(self, tmp_path: Path) -> None:
        """Test that a new library needs root and downloads configured."""
        with patch.dict(os.environ, {"TROVE_HOME": str(tmp_path)}, clear=True):
            settings = Settings()

        with pytest.raises(cli.FilesystemError):
            cli.open_library(settings)


class TestMain:
    """Tests for the entry point."""

    def test_unknown_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that unknown commands exit with status 1."""
        with patch("sys.argv", ["trove-keeper", "bogus"]), pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 1
        assert "Unknown command: bogus" in capsys.readouterr().out

    def test_show_config_prints_json(
        self, env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that command output is JSON on stdout."""
        get_settings.cache_clear()
        try:
            with (
                patch.dict(os.environ, env, clear=True),
                patch("sys.argv", ["trove-keeper", "show-config"]),
                patch.object(cli, "setup_logging"),
            ):
                cli.main()
        finally:
            get_settings.cache_clear()

        output = json.loads(capsys.readouterr().out)
        assert output["success"] is True
        assert output["command"] == "show-config"

    def test_error_reported_as_json(
        self, env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that domain errors become a failed JSON result."""
        get_settings.cache_clear()
        try:
            with (
                patch.dict(os.environ, env, clear=True),
                patch("sys.argv", ["trove-keeper", "feed-diff", "/nonexistent/catalog.json"]),
                patch.object(cli, "setup_logging"),
                patch.object(cli, "current_snapshot", return_value=make_snapshot([])),
                pytest.raises(SystemExit) as exc_info,
            ):
                cli.main()
        finally:
            get_settings.cache_clear()

        assert exc_info.value.code == 1
        output = json.loads(capsys.readouterr().out)
        assert output["success"] is False
        assert "catalog.json" in output["error"]
