import os
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import anyio
import psutil
import pytest


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if Path(item.path).is_relative_to(Path(__file__).parent):
            item.add_marker(pytest.mark.integration)


async def wait_until(
    predicate: Callable[[], bool],
    *,
    timeout: float = 10.0,
    interval: float = 0.02,
) -> None:
    """Poll until the predicate holds, failing the test after the timeout."""
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(interval)


def pid_alive(pid: int) -> bool:
    """Return True if the process exists and is not a zombie."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def read_pids(path: Path) -> list[int]:
    """Read the PIDs a test child recorded, one per line."""
    if not path.exists():
        return []
    return [int(line) for line in path.read_text().split() if line.strip()]


def spawn_chopup(
    args: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> subprocess.Popen[str]:
    """Start ``python -m chopup`` as a subprocess with piped output.

    Args:
        args: Arguments after ``python -m chopup``.
        env: Extra environment variables.
        cwd: Working directory.

    Returns:
        The running process.
    """
    os_env = os.environ.copy()
    os_env.pop("CHOPUP_DEBUG", None)
    if env:
        os_env.update(env)

    return subprocess.Popen(  # noqa: S603 - Safe: running our own CLI tool
        [sys.executable, "-m", "chopup", *args],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=os_env,
        cwd=str(cwd) if cwd is not None else None,
    )


def run_chopup(
    args: Sequence[str],
    *,
    timeout: float = 30.0,
) -> subprocess.CompletedProcess[str]:
    """Run ``python -m chopup`` to completion."""
    return subprocess.run(  # noqa: S603 - Safe: running our own CLI tool
        [sys.executable, "-m", "chopup", *args],
        capture_output=True,
        text=True,
        check=False,
        timeout=timeout,
    )
