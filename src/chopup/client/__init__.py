"""Client for the control socket of a running chopup supervisor."""

from ._client import DEFAULT_TIMEOUT, ControlClient, request_chop, send_input

__all__ = ["DEFAULT_TIMEOUT", "ControlClient", "request_chop", "send_input"]
