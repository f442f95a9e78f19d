"""chopup configuration.

Example:
    >>> from chopup.config import load_run_config
    >>> config = load_run_config(command=("python", "server.py"))
    >>> config.log_prefix
    'log_'
"""

from chopup.exceptions import ConfigurationError

from ._load import deep_merge, load_run_config, parse_env_vars
from ._models import LogFormat, LoggingConfig, LogLevel, RunConfig

__all__ = [
    "ConfigurationError",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "RunConfig",
    "deep_merge",
    "load_run_config",
    "parse_env_vars",
]
