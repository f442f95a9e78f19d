"""Process-tree termination.

``kill_tree`` terminates a process together with every descendant it
spawned: SIGTERM first, SIGKILL for whatever is still alive after the grace
timeout. Descendants are found two ways, because either one alone misses
processes: by walking the process tree with psutil, and by signalling the
process group the child leads (which still reaches descendants that were
re-parented after their parent died).

Liveness is polled rather than waited for: waiting would reap the direct
child behind the event loop's back and lose its exit status. A zombie counts
as gone.

The function blocks; call it through ``anyio.to_thread.run_sync``.
"""

import contextlib
import os
import signal
import time
from enum import StrEnum

import psutil


class KillResult(StrEnum):
    """Outcome of a tree kill.

    - OK: Every process exited after SIGTERM (or nothing was running)
    - ESCALATED: Some processes needed SIGKILL, all are gone now
    - FAILED: Some processes survived SIGKILL
    """

    OK = "ok"
    ESCALATED = "escalated"
    FAILED = "failed"


def _collect_tree(pid: int | None) -> list[psutil.Process]:
    """Return the process and its descendants that still exist."""
    if pid is None:
        return []
    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return []

    processes = [root]
    try:
        processes.extend(root.children(recursive=True))
    except psutil.NoSuchProcess:
        pass
    return processes


def _collect_group(pgid: int, known: set[int]) -> list[psutil.Process]:
    """Return members of the process group not already in ``known``."""
    members: list[psutil.Process] = []
    for proc in psutil.process_iter():
        if proc.pid in known:
            continue
        try:
            if os.getpgid(proc.pid) == pgid:
                members.append(proc)
        except (ProcessLookupError, PermissionError):
            continue
    return members


def _is_gone(proc: psutil.Process) -> bool:
    try:
        return not proc.is_running() or proc.status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True
    except psutil.AccessDenied:
        return False


def _wait_gone(
    processes: list[psutil.Process],
    timeout: float,
    interval: float = 0.05,
) -> list[psutil.Process]:
    """Poll until every process is gone or the timeout expires.

    Returns:
        The processes still alive.
    """
    deadline = time.monotonic() + timeout
    alive = [proc for proc in processes if not _is_gone(proc)]
    while alive and time.monotonic() < deadline:
        time.sleep(interval)
        alive = [proc for proc in alive if not _is_gone(proc)]
    return alive


def _signal_all(processes: list[psutil.Process], sig: signal.Signals) -> None:
    for proc in processes:
        with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
            proc.send_signal(sig)


def _signal_group(pgid: int | None, sig: signal.Signals) -> None:
    if pgid is None or pgid == os.getpgrp():
        return
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(pgid, sig)


def kill_tree(
    pid: int | None,
    *,
    pgid: int | None = None,
    timeout: float = 5.0,
) -> tuple[KillResult, tuple[int, ...]]:
    """Terminate a process and all of its descendants.

    Args:
        pid: Root of the tree, or None when the root has already exited
            and only its process group is left to sweep.
        pgid: Process group to sweep as well. Never the caller's own group.
        timeout: Seconds to wait after SIGTERM before sending SIGKILL.

    Returns:
        The outcome and the PIDs that survived SIGKILL (empty unless FAILED).
    """
    processes = _collect_tree(pid)
    if pgid is not None and pgid != os.getpgrp():
        processes.extend(_collect_group(pgid, {proc.pid for proc in processes}))

    if not processes:
        _signal_group(pgid, signal.SIGKILL)
        return KillResult.OK, ()

    _signal_all(processes, signal.SIGTERM)
    _signal_group(pgid, signal.SIGTERM)
    alive = _wait_gone(processes, timeout)

    if not alive:
        # Sweep anything spawned between the walk and SIGTERM.
        _signal_group(pgid, signal.SIGKILL)
        return KillResult.OK, ()

    _signal_all(alive, signal.SIGKILL)
    _signal_group(pgid, signal.SIGKILL)
    survivors = _wait_gone(alive, timeout)

    if survivors:
        return KillResult.FAILED, tuple(proc.pid for proc in survivors)
    return KillResult.ESCALATED, ()
