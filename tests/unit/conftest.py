from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pendulum import DateTime

    from chopup.exceptions import ChildIOError


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if Path(item.path).is_relative_to(Path(__file__).parent):
            item.add_marker(pytest.mark.unit)


class FakeChild:
    """Stands in for ChildSupervisor in server tests."""

    def __init__(self, error: ChildIOError | None = None) -> None:
        self.received: list[str] = []
        self.error = error

    async def send_input(self, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.received.append(text)


@pytest.fixture
def fake_child() -> FakeChild:
    return FakeChild()


class TickingClock:
    """Clock advancing by a fixed step on every call."""

    def __init__(self, start: DateTime, step_microseconds: int = 1) -> None:
        self.current = start
        self.step = step_microseconds

    def __call__(self) -> DateTime:
        moment = self.current
        self.current = moment.add(microseconds=self.step)
        return moment


@pytest.fixture
def fixed_clock() -> Callable[[], DateTime]:
    """Return a clock that always reports the same instant."""
    import pendulum

    fixed = pendulum.datetime(2026, 10, 18, 9, 30, 15, tz="UTC")
    return lambda: fixed


@pytest.fixture
def ticking_clock() -> TickingClock:
    import pendulum

    return TickingClock(pendulum.datetime(2026, 10, 18, 9, 30, 15, tz="UTC"))
