"""Unit tests for supervisor data models."""

import dataclasses
import signal
from pathlib import Path

import pytest


class TestChildExit:
    def test_normal_exit(self) -> None:
        from chopup.supervisor import ChildExit

        child_exit = ChildExit(returncode=3)

        assert child_exit.exit_code == 3
        assert child_exit.term_signal is None

    @pytest.mark.parametrize(
        ("sig", "expected"),
        [(signal.SIGINT, 130), (signal.SIGKILL, 137), (signal.SIGTERM, 143)],
    )
    def test_killed_by_signal(self, sig: signal.Signals, expected: int) -> None:
        from chopup.supervisor import ChildExit

        child_exit = ChildExit(returncode=-sig.value)

        assert child_exit.exit_code == expected
        assert child_exit.term_signal is sig


class TestOutputSegment:
    def test_is_immutable(self) -> None:
        from chopup.supervisor import OutputSegment

        segment = OutputSegment(
            path=Path("/logs/log_1.log"),
            started_at="2026-10-18T09:30:15Z",
            ended_at="2026-10-18T09:31:15Z",
            byte_count=10,
        )

        with pytest.raises(dataclasses.FrozenInstanceError):
            segment.byte_count = 11  # pyright: ignore[reportAttributeAccessIssue]
        assert not segment.final


class TestSession:
    def test_starts_in_starting_state(self) -> None:
        from chopup.supervisor import Session, SessionState

        session = Session(
            command=("sleep", "1"),
            log_dir=Path("/logs"),
            log_prefix="log_",
            socket_path=Path("/logs/chopup-1.sock"),
            created_at="2026-10-18T09:30:15Z",
        )

        assert session.state is SessionState.STARTING
        assert session.segments == []
        assert session.exit_code is None
