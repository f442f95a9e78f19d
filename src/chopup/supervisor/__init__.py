"""Supervisor package for one wrapped child process.

This package captures the child's output into segment files that can be
rotated ("chopped") on demand, and serves chop and send-input commands over
a local Unix socket.

Key Components:
    - SegmentedOutputSink: Segment files plus an in-memory tail
    - ConsoleOutputSink: Passthrough echo to the supervisor's console
    - ChildSupervisor: Spawns, feeds and terminates the child
    - kill_tree: Terminates a process and every descendant
    - ControlServer: Unix socket command server
    - LifecycleCoordinator: Startup, run loop and the single shutdown

Example:
    >>> from chopup.config import load_run_config
    >>> from chopup.supervisor import LifecycleCoordinator
    >>> config = load_run_config(command=("python", "server.py"))
    >>> exit_code = await LifecycleCoordinator(config).run()
"""

from ._child import ChildSupervisor
from ._coordinator import LifecycleCoordinator
from ._killtree import KillResult, kill_tree
from ._messages import PROCESS_READY_MARKER, SOCKET_PATH_MARKER
from ._models import (
    ChildExit,
    ChildHandle,
    OutputSegment,
    Session,
    SessionState,
    ShutdownReason,
)
from ._output import ConsoleOutputSink, PassthroughConsole
from ._protocol import OutputSink, StreamName
from ._server import ControlServer, endpoint_is_live
from ._sink import SegmentedOutputSink
from ._watcher import watch_and_chop
from ._wire import (
    MAX_MESSAGE_BYTES,
    ChopCommand,
    ControlCommand,
    ControlResponse,
    ControlStatus,
    SendInputCommand,
    decode_command,
    decode_response,
    encode_command,
    encode_response,
)

__all__ = [
    "MAX_MESSAGE_BYTES",
    "PROCESS_READY_MARKER",
    "SOCKET_PATH_MARKER",
    "ChildExit",
    "ChildHandle",
    "ChildSupervisor",
    "ChopCommand",
    "ConsoleOutputSink",
    "ControlCommand",
    "ControlResponse",
    "ControlServer",
    "ControlStatus",
    "KillResult",
    "LifecycleCoordinator",
    "OutputSegment",
    "OutputSink",
    "PassthroughConsole",
    "SegmentedOutputSink",
    "SendInputCommand",
    "Session",
    "SessionState",
    "ShutdownReason",
    "StreamName",
    "decode_command",
    "decode_response",
    "encode_command",
    "encode_response",
    "endpoint_is_live",
    "kill_tree",
    "watch_and_chop",
]
