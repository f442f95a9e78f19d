# pyright: reportAny=false
"""Unit tests for the chopup CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, cast

import orjson
import pytest
from cyclopts import App

from chopup.cli._commands import ExitCode, register_commands
from chopup.exceptions import ControlConnectionError, ControlProtocolError
from chopup.supervisor import ControlResponse, ControlStatus

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

RunCli = Callable[..., int]

REQUEST_CHOP = "chopup.cli._commands._request_logs.request_chop"
SEND_INPUT = "chopup.cli._commands._send_input.send_input_to"


class TestCommandRegistration:
    def test_registers_all_subcommands(self, mocker: MockerFixture) -> None:
        mock_app = mocker.MagicMock(spec=App)
        register_commands(mock_app)

        assert cast("int", mock_app.command.call_count) == 3


class TestRequestLogs:
    def test_prints_chopped_path(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        response = ControlResponse(
            status=ControlStatus.LOGS_CHOPPED,
            path="/logs/log_1.log",
            active_path="/logs/log_2.log",
        )
        mock_chop = mocker.patch(REQUEST_CHOP, mocker.AsyncMock(return_value=response))

        code = chopup_cli_with_exit_code("request-logs", "--socket", "/tmp/ctl.sock")

        assert code == ExitCode.SUCCESS
        assert "Logs chopped to: /logs/log_1.log" in capsys.readouterr().out
        mock_chop.assert_awaited_once_with(Path("/tmp/ctl.sock"), timeout=10.0)

    def test_pipe_prints_segment_content(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
        tmp_path: Path,
    ) -> None:
        segment = tmp_path / "log_1.log"
        segment.write_text("first line\nsecond line\n")
        response = ControlResponse(status=ControlStatus.LOGS_CHOPPED, path=str(segment))
        _ = mocker.patch(REQUEST_CHOP, mocker.AsyncMock(return_value=response))

        code = chopup_cli_with_exit_code(
            "request-logs", "--socket", "/tmp/ctl.sock", "--pipe"
        )

        out = capsys.readouterr().out
        assert code == ExitCode.SUCCESS
        assert out == f"Logs chopped to: {segment}\nfirst line\nsecond line\n"

    def test_json_output(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
        tmp_path: Path,
    ) -> None:
        segment = tmp_path / "log_1.log"
        segment.write_text("hello\n")
        response = ControlResponse(
            status=ControlStatus.LOGS_CHOPPED,
            path=str(segment),
            active_path=str(tmp_path / "log_2.log"),
        )
        _ = mocker.patch(REQUEST_CHOP, mocker.AsyncMock(return_value=response))

        code = chopup_cli_with_exit_code(
            "request-logs", "--socket", "/tmp/ctl.sock", "--format", "json", "--pipe"
        )

        data = orjson.loads(capsys.readouterr().out)
        assert code == ExitCode.SUCCESS
        assert data == {
            "status": "LOGS_CHOPPED",
            "path": str(segment),
            "active_path": str(tmp_path / "log_2.log"),
            "content": "hello\n",
        }

    def test_connection_error_exits_with_error(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
    ) -> None:
        error = ControlConnectionError("Cannot connect to chopup at /tmp/ctl.sock: missing")
        _ = mocker.patch(REQUEST_CHOP, mocker.AsyncMock(side_effect=error))

        code = chopup_cli_with_exit_code("request-logs", "--socket", "/tmp/ctl.sock")

        assert code == ExitCode.ERROR

    def test_rejected_chop_exits_with_rejected(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        response = ControlResponse(status=ControlStatus.SHUTTING_DOWN, message="stopping")
        _ = mocker.patch(REQUEST_CHOP, mocker.AsyncMock(return_value=response))

        code = chopup_cli_with_exit_code("request-logs", "--socket", "/tmp/ctl.sock")

        captured = capsys.readouterr()
        assert code == ExitCode.REJECTED
        assert "SHUTTING_DOWN" in captured.err
        assert "Logs chopped" not in captured.out

    def test_protocol_error_exits_with_protocol_error(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
    ) -> None:
        error = ControlProtocolError("Malformed response", raw=b"garbage")
        _ = mocker.patch(REQUEST_CHOP, mocker.AsyncMock(side_effect=error))

        code = chopup_cli_with_exit_code("request-logs", "--socket", "/tmp/ctl.sock")

        assert code == ExitCode.PROTOCOL_ERROR


class TestSendInput:
    def test_sends_text_verbatim(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        response = ControlResponse(status=ControlStatus.INPUT_SENT)
        mock_send = mocker.patch(SEND_INPUT, mocker.AsyncMock(return_value=response))

        code = chopup_cli_with_exit_code(
            "send-input", "--socket", "/tmp/ctl.sock", "--input", "y"
        )

        assert code == ExitCode.SUCCESS
        assert "Input sent." in capsys.readouterr().out
        mock_send.assert_awaited_once_with(Path("/tmp/ctl.sock"), "y", timeout=10.0)

    def test_newline_flag_appends_newline(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
    ) -> None:
        response = ControlResponse(status=ControlStatus.INPUT_SENT)
        mock_send = mocker.patch(SEND_INPUT, mocker.AsyncMock(return_value=response))

        code = chopup_cli_with_exit_code(
            "send-input", "--socket", "/tmp/ctl.sock", "--input", "yes", "--newline"
        )

        assert code == ExitCode.SUCCESS
        assert mock_send.await_args.args[1] == "yes\n"

    def test_no_child_exits_with_rejected(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        response = ControlResponse(
            status=ControlStatus.INPUT_SEND_ERROR_NO_CHILD,
            message="No child process is running",
        )
        _ = mocker.patch(SEND_INPUT, mocker.AsyncMock(return_value=response))

        code = chopup_cli_with_exit_code(
            "send-input", "--socket", "/tmp/ctl.sock", "--input", "y"
        )

        assert code == ExitCode.REJECTED
        assert "CHOPUP_INPUT_SEND_ERROR_NO_CHILD" in capsys.readouterr().err

    def test_json_output(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        response = ControlResponse(status=ControlStatus.INPUT_SENT)
        _ = mocker.patch(SEND_INPUT, mocker.AsyncMock(return_value=response))

        code = chopup_cli_with_exit_code(
            "send-input", "--socket", "/tmp/ctl.sock", "--input", "y", "-f", "json"
        )

        assert code == ExitCode.SUCCESS
        assert orjson.loads(capsys.readouterr().out) == {"status": "CHOPUP_INPUT_SENT"}

    def test_connection_error_exits_with_error(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
    ) -> None:
        error = ControlConnectionError("Timed out connecting to /tmp/ctl.sock")
        _ = mocker.patch(SEND_INPUT, mocker.AsyncMock(side_effect=error))

        code = chopup_cli_with_exit_code(
            "send-input", "--socket", "/tmp/ctl.sock", "--input", "y"
        )

        assert code == ExitCode.ERROR


class TestRun:
    def test_exits_with_coordinator_result(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        tmp_path: Path,
    ) -> None:
        coordinator_cls = mocker.patch("chopup.supervisor.LifecycleCoordinator")
        coordinator_cls.return_value.run = mocker.AsyncMock(return_value=7)

        code = chopup_cli_with_exit_code(
            "run", "--log-dir", str(tmp_path), "--log-prefix", "app_", "--", "echo", "hi"
        )

        assert code == 7
        config = coordinator_cls.call_args.args[0]
        assert config.command == ("echo", "hi")
        assert config.log_dir == tmp_path
        assert config.log_prefix == "app_"

    def test_verbose_enables_debug_logging(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
    ) -> None:
        coordinator_cls = mocker.patch("chopup.supervisor.LifecycleCoordinator")
        coordinator_cls.return_value.run = mocker.AsyncMock(return_value=0)

        code = chopup_cli_with_exit_code("run", "--verbose", "--", "true")

        assert code == 0
        assert coordinator_cls.call_args.args[0].logging.level == "debug"

    def test_invalid_prefix_exits_with_error(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        coordinator_cls = mocker.patch("chopup.supervisor.LifecycleCoordinator")

        code = chopup_cli_with_exit_code("run", "--log-prefix", "a/b", "--", "true")

        assert code == ExitCode.ERROR
        assert "path separators" in capsys.readouterr().err
        coordinator_cls.assert_not_called()

    def test_missing_command_exits_with_error(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
    ) -> None:
        coordinator_cls = mocker.patch("chopup.supervisor.LifecycleCoordinator")

        code = chopup_cli_with_exit_code("run")

        assert code == ExitCode.ERROR
        coordinator_cls.assert_not_called()

    def test_startup_failure_exits_with_error(
        self,
        chopup_cli_with_exit_code: RunCli,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from chopup.exceptions import ChildSpawnError

        coordinator_cls = mocker.patch("chopup.supervisor.LifecycleCoordinator")
        coordinator_cls.return_value.run = mocker.AsyncMock(
            side_effect=ChildSpawnError("Failed to start nope", command=("nope",))
        )

        code = chopup_cli_with_exit_code("run", "--", "nope")

        assert code == ExitCode.ERROR
        assert "Failed to start nope" in capsys.readouterr().err
