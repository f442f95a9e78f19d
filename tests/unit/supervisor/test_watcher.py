"""Unit tests for the file watch trigger."""

from pathlib import Path

import pytest
from watchfiles import Change


class TestFormatChange:
    @pytest.mark.parametrize(
        ("change", "expected"),
        [
            (Change.added, "added: /src/a.py"),
            (Change.modified, "modified: /src/a.py"),
            (Change.deleted, "deleted: /src/a.py"),
        ],
    )
    def test_formats(self, change: Change, expected: str) -> None:
        from chopup.supervisor._watcher import format_change

        assert format_change(change, "/src/a.py") == expected


class TestBuildWatchFilter:
    def test_skips_changes_in_ignored_directories(self, tmp_path: Path) -> None:
        from chopup.supervisor._watcher import build_watch_filter

        log_dir = tmp_path / "chopup-logs"
        should_watch = build_watch_filter([log_dir])

        assert not should_watch(Change.added, str(log_dir / "log_1.log"))
        assert should_watch(Change.modified, str(tmp_path / "src" / "app.py"))

    def test_sibling_with_common_prefix_is_watched(self, tmp_path: Path) -> None:
        from chopup.supervisor._watcher import build_watch_filter

        should_watch = build_watch_filter([tmp_path / "logs"])

        assert should_watch(Change.added, str(tmp_path / "logs-old" / "a.log"))
