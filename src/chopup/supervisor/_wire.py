"""Wire protocol of the control channel.

Every message is one UTF-8 JSON object terminated by a newline, in both
directions. Requests carry a ``command`` tag:

    {"command": "request-logs"}
    {"command": "send-input", "input": "<text>"}

Responses carry a stable ``status`` string plus optional ``path``,
``active_path`` and ``message`` fields. The send-input statuses carry
a ``CHOPUP_`` prefix, e.g. ``CHOPUP_INPUT_SENT``.
"""

from enum import StrEnum
from typing import Annotated, ClassVar, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from chopup.exceptions import ControlProtocolError

MAX_MESSAGE_BYTES = 1024 * 1024
DELIMITER = b"\n"


class ControlStatus(StrEnum):
    """Status codes returned to control clients."""

    LOGS_CHOPPED = "LOGS_CHOPPED"
    CHOP_FAILED = "CHOP_FAILED"
    INPUT_SENT = "CHOPUP_INPUT_SENT"
    INPUT_SEND_ERROR = "CHOPUP_INPUT_SEND_ERROR"
    INPUT_SEND_ERROR_NO_CHILD = "CHOPUP_INPUT_SEND_ERROR_NO_CHILD"
    INPUT_SEND_ERROR_BACKPRESSURE = "CHOPUP_INPUT_SEND_ERROR_BACKPRESSURE"
    IPC_PARSE_ERROR = "IPC_PARSE_ERROR"
    UNKNOWN_COMMAND = "UNKNOWN_COMMAND"
    SHUTTING_DOWN = "SHUTTING_DOWN"

    @property
    def ok(self) -> bool:
        """Return True for statuses reporting a performed command."""
        return self in {ControlStatus.LOGS_CHOPPED, ControlStatus.INPUT_SENT}


class ChopCommand(BaseModel):
    """Rotate the active output segment."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    command: Literal["request-logs"] = "request-logs"


class SendInputCommand(BaseModel):
    """Write text verbatim to the child's stdin."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    command: Literal["send-input"] = "send-input"
    input: str


ControlCommand = Annotated[
    ChopCommand | SendInputCommand,
    Field(discriminator="command"),
]

COMMAND_NAMES: frozenset[str] = frozenset({"request-logs", "send-input"})

_command_adapter: TypeAdapter[ChopCommand | SendInputCommand] = TypeAdapter(ControlCommand)


class ControlResponse(BaseModel):
    """Reply to one control command.

    Attributes:
        status: Outcome of the command.
        path: Closed segment, for LOGS_CHOPPED.
        active_path: Segment now receiving output, for LOGS_CHOPPED.
        message: Human-readable detail, mostly for failures.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    status: ControlStatus
    path: str | None = None
    active_path: str | None = None
    message: str | None = None


def decode_command(line: bytes) -> ChopCommand | SendInputCommand:
    """Decode one request record.

    Args:
        line: The record, with or without its trailing newline.

    Returns:
        The decoded command.

    Raises:
        ControlProtocolError: If the record is not a JSON object, names an
            unknown command (``unknown_command`` is set), or lacks fields.
    """
    raw = line.rstrip(DELIMITER)
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        msg = f"Malformed control message: {e}"
        raise ControlProtocolError(msg, raw=raw[:256]) from e

    if not isinstance(payload, dict):
        msg = "Control message must be a JSON object"
        raise ControlProtocolError(msg, raw=raw[:256])

    name = payload.get("command")
    if not isinstance(name, str):
        msg = "Control message has no 'command' field"
        raise ControlProtocolError(msg, raw=raw[:256])

    if name not in COMMAND_NAMES:
        msg = f"Unknown command: {name}"
        raise ControlProtocolError(msg, raw=raw[:256], unknown_command=True)

    try:
        return _command_adapter.validate_python(payload)
    except ValidationError as e:
        msg = f"Invalid '{name}' message: {e.error_count()} validation error(s)"
        raise ControlProtocolError(msg, raw=raw[:256]) from e


def encode_command(command: ChopCommand | SendInputCommand) -> bytes:
    """Encode a request as one framed record."""
    return command.model_dump_json().encode() + DELIMITER


def encode_response(response: ControlResponse) -> bytes:
    """Encode a response as one framed record."""
    return response.model_dump_json(exclude_none=True).encode() + DELIMITER


def decode_response(line: bytes) -> ControlResponse:
    """Decode one response record.

    Raises:
        ControlProtocolError: If the record is not a valid response.
    """
    raw = line.rstrip(DELIMITER)
    try:
        return ControlResponse.model_validate_json(raw)
    except ValidationError as e:
        msg = f"Malformed control response: {e.error_count()} validation error(s)"
        raise ControlProtocolError(msg, raw=raw[:256]) from e
