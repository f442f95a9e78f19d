"""Protocol definitions for the supervisor system.

This module defines the interfaces that decouple the child supervisor from
the places its output ends up:
- OutputSink: Protocol for consuming child output
"""

from typing import Literal, Protocol, runtime_checkable

StreamName = Literal["stdout", "stderr"]


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for consuming child output.

    ``append`` is synchronous on purpose: a call can never be suspended
    half-way, so under the single event loop a rotation always sees every
    append either entirely before it or entirely after it.

    Implementations must handle:
    - Arbitrary byte chunks (not necessarily whole lines)
    - Interleaved chunks from stdout and stderr
    """

    def append(self, data: bytes, stream: StreamName) -> None:
        """Consume a chunk of child output.

        Args:
            data: Raw bytes as read from the pipe.
            stream: Which output stream the bytes came from.

        Raises:
            ChildIOError: If the sink could not persist the chunk.
        """
        ...
