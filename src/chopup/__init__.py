"""chopup: supervise a process, capture its output, chop the logs on demand."""

from chopup.exceptions import ChopupError

__version__ = "0.1.0"

__all__ = ["ChopupError", "__version__"]
