"""Lines printed on the supervisor's stdout.

stdout is reserved for these lines and for the usage banner; diagnostics go
to stderr or the log file.
"""

from pathlib import Path

WRAPPER_TAG = "[chopup_wrapper]"
SOCKET_PATH_MARKER = "CHOPUP_SOCKET_PATH"
PROCESS_READY_MARKER = "CHOPUP_PROCESS_READY"

INSTRUCTIONS_TEMPLATE = """\
--- Chopup Control ---
Output of PID {pid} is captured in {log_dir}
Chop the current output into a new file:
  {exec_name} request-logs --socket {socket_path}
Send input to the wrapped process:
  {exec_name} send-input --socket {socket_path} --input "<text>"
-----------------------"""


def socket_path_line(socket_path: Path) -> str:
    """Return the line announcing the control socket."""
    return f"{WRAPPER_TAG} {SOCKET_PATH_MARKER}={socket_path}"


def process_ready_line() -> str:
    """Return the line announcing that the child was spawned."""
    return PROCESS_READY_MARKER


def instructions(*, exec_name: str, pid: int, log_dir: Path, socket_path: Path) -> str:
    """Render the usage banner printed after startup."""
    body = INSTRUCTIONS_TEMPLATE.format(
        exec_name=exec_name,
        pid=pid,
        log_dir=log_dir,
        socket_path=socket_path,
    )
    return f"{WRAPPER_TAG} {body}"
