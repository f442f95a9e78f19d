"""Console passthrough sink.

This module provides an OutputSink that echoes the child's output to the
supervisor's own console, for ``chopup run --passthrough``.
"""

from __future__ import annotations

import errno
from typing import TYPE_CHECKING, final

from rich.console import Console
from rich.style import Style
from rich.text import Text

from chopup.exceptions import ChildIOError

if TYPE_CHECKING:
    from ._protocol import StreamName


class PassthroughConsole(Console):
    """Console that reports a closed pipe instead of exiting the process.

    rich's default reaction to a broken pipe redirects stdout to /dev/null
    and raises SystemExit, which would also silence the protocol lines.
    """

    def on_broken_pipe(self) -> None:
        self.quiet = True
        msg = "Console pipe closed"
        raise BrokenPipeError(errno.EPIPE, msg)


@final
class ConsoleOutputSink:
    """Output sink that echoes child output through a rich Console.

    Chunks are decoded as UTF-8 with replacement and printed without added
    newlines, so the child's own line structure is preserved:
    - stdout: Default styling
    - stderr: Dim red styling

    Once writing to the console fails (for example a closed pipe), echoing
    stops for the rest of the session.
    """

    __slots__ = ("_broken", "_console", "_stderr_style", "_stdout_style")

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the output sink.

        Args:
            console: Rich Console instance for output. If None, creates a
                PassthroughConsole writing to stderr, keeping stdout free for
                protocol lines.
        """
        self._console = console or PassthroughConsole(stderr=True, highlight=False)
        self._stdout_style = Style()
        self._stderr_style = Style(color="red", dim=True)
        self._broken = False

    @property
    def broken(self) -> bool:
        """Return True once a console write has failed."""
        return self._broken

    def append(self, data: bytes, stream: StreamName) -> None:
        """Echo a chunk of child output.

        Args:
            data: Raw bytes as read from the pipe.
            stream: Which output stream the bytes came from.

        Raises:
            ChildIOError: On the first failed console write.
        """
        if self._broken:
            return

        style = self._stderr_style if stream == "stderr" else self._stdout_style
        text = Text(data.decode("utf-8", errors="replace"), style=style)
        try:
            self._console.print(text, end="", soft_wrap=True)
        except OSError as e:
            self._broken = True
            msg = f"Console passthrough stopped: {e}"
            raise ChildIOError(msg, cause=e) from e
