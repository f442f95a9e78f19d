"""File watch trigger using watchfiles.

Chops the output whenever files under the watched paths change. Each batch
of changes reported by watchfiles yields one chop, dispatched through the
control server so it is serialized with client commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from chopup.utils import get_null_logger

from ._wire import ChopCommand, ControlStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from structlog.typing import FilteringBoundLogger
    from watchfiles import Change

    from ._server import ControlServer


def format_change(change: Change, path: str) -> str:
    """Format a file change event as a string.

    Args:
        change: The type of change (added, modified, deleted).
        path: The path to the changed file.

    Returns:
        A formatted string describing the change.
    """
    from watchfiles import Change as WatchChange  # noqa: PLC0415

    change_names = {
        WatchChange.added: "added",
        WatchChange.modified: "modified",
        WatchChange.deleted: "deleted",
    }
    change_name = change_names.get(change, "unknown")
    return f"{change_name}: {path}"


def build_watch_filter(ignore_dirs: Sequence[Path]) -> Callable[[Change, str], bool]:
    """Build a watchfiles filter that skips changes under ``ignore_dirs``.

    The log directory must be ignored when it lies inside a watched path,
    otherwise every chop would trigger the next one.
    """
    resolved = tuple(directory.resolve() for directory in ignore_dirs)

    def should_watch(_change: Change, changed_path: str) -> bool:
        changed = Path(changed_path).resolve()
        return not any(changed.is_relative_to(directory) for directory in resolved)

    return should_watch


async def watch_and_chop(
    paths: Sequence[Path],
    server: ControlServer,
    *,
    ignore_dirs: Sequence[Path] = (),
    logger: FilteringBoundLogger | None = None,
) -> None:
    """Chop the output on every batch of file changes.

    Runs until cancelled.

    Args:
        paths: Files or directories to watch.
        server: Control server whose dispatch path performs the chop.
        ignore_dirs: Directories whose changes never trigger a chop.
        logger: Diagnostic logger.
    """
    from watchfiles import awatch  # noqa: PLC0415

    log = (logger or get_null_logger()).bind(component="watcher")
    log.info("watch_started", paths=[str(path) for path in paths])

    async for changes in awatch(*paths, watch_filter=build_watch_filter(ignore_dirs)):
        for change, changed_path in sorted(changes):
            log.debug("file_changed", change=format_change(change, changed_path))

        response = await server.execute(ChopCommand())
        if response.status is ControlStatus.SHUTTING_DOWN:
            return
        if response.status is ControlStatus.LOGS_CHOPPED:
            log.info("watch_chop", path=response.path, changes=len(changes))
        else:
            log.warning("watch_chop_failed", status=response.status.value, error=response.message)
