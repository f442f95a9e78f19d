"""Shared test fixtures for chopup tests."""

import shutil
import sys
import tempfile
import textwrap
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from rich.console import Console

ScriptFactory = Callable[[str], tuple[str, ...]]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def console() -> Console:
    return Console(
        width=70,
        force_terminal=True,
        highlight=False,
        color_system=None,
        legacy_windows=False,
    )


@pytest.fixture
def short_dir() -> Iterator[Path]:
    """Create a directory with a short path.

    Unix socket paths are limited to about 100 bytes, which pytest's
    tmp_path can exceed.
    """
    path = Path(tempfile.mkdtemp(prefix="chopup-"))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def python_script(tmp_path: Path) -> ScriptFactory:
    """Return a factory writing a Python script and returning its command.

    The script runs unbuffered so output reaches the pipes immediately.
    """
    counter = 0

    def _make(source: str) -> tuple[str, ...]:
        nonlocal counter
        counter += 1
        script = tmp_path / f"child_{counter}.py"
        script.write_text(textwrap.dedent(source))
        return (sys.executable, "-u", str(script))

    return _make
