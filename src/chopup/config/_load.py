"""Configuration loading for chopup.

Values are merged from three sources in increasing precedence: built-in
defaults, ``CHOPUP_*`` environment variables, and CLI overrides.
"""

import os
from typing import Any

import orjson
from pydantic import ValidationError

from chopup.exceptions import ConfigurationError

from ._models import RunConfig

ENV_PREFIX = "CHOPUP_"


def _parse_env_value(value: str) -> Any:  # pyright: ignore[reportExplicitAny]
    """Parse environment variable value with type inference.

    Args:
        value: The raw string value from the environment variable.

    Returns:
        The parsed value with appropriate type.

    Order of type inference:
        1. Boolean: true/false/1/0 (case-insensitive)
        2. Integer: parseable as int
        3. Float: parseable as float (with decimal point)
        4. JSON array: starts with [ ends with ]
        5. String: anything else
    """
    lower_value = value.lower()
    if lower_value in ("true", "false", "1", "0"):
        return lower_value in ("true", "1")

    try:
        return int(value)
    except ValueError:
        pass

    if "." in value:
        try:
            return float(value)
        except ValueError:
            pass

    if value.startswith("[") and value.endswith("]"):
        try:
            return orjson.loads(value)
        except orjson.JSONDecodeError:
            pass

    return value


def _set_nested_key(data: dict[str, Any], dotted: str, value: object) -> None:  # pyright: ignore[reportExplicitAny]
    parts = dotted.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child  # pyright: ignore[reportUnknownVariableType]
    current[parts[-1]] = value


def parse_env_vars(
    environ: dict[str, str] | None = None,
    prefix: str = ENV_PREFIX,
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Parse environment variables into a config dictionary.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.
        prefix: Environment variable prefix (default: "CHOPUP_").

    Returns:
        Dictionary of parsed config values with nested structure.

    Environment variable naming:
        - Add prefix (CHOPUP_)
        - Convert to uppercase
        - Replace dots with double underscores
        - Example: logging.level -> CHOPUP_LOGGING__LEVEL
    """
    source = os.environ if environ is None else environ
    result: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    for key, value in source.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :]
        if not config_key:
            continue

        config_path = config_key.replace("__", ".").lower()
        _set_nested_key(result, config_path, _parse_env_value(value))

    return result


def deep_merge(
    base: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    override: dict[str, Any],  # pyright: ignore[reportExplicitAny]
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Merge two config dictionaries, ``override`` winning on conflicts.

    Nested dictionaries are merged recursively; neither input is mutated.
    """
    merged = dict(base)
    for key, value in override.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = deep_merge(existing, value)  # pyright: ignore[reportUnknownArgumentType]
        else:
            merged[key] = value
    return merged


def load_run_config(
    *,
    environ: dict[str, str] | None = None,
    **cli_overrides: object,
) -> RunConfig:
    """Build the run configuration from environment and CLI values.

    CLI overrides whose value is None are ignored so that unset flags do not
    mask environment values.

    Args:
        environ: Mapping to read ``CHOPUP_*`` variables from.
        **cli_overrides: Values from the command line.

    Returns:
        The validated run configuration.

    Raises:
        ConfigurationError: If the merged values fail validation.
    """
    env_values = parse_env_vars(environ)
    if env_values.pop("debug", False):
        env_values = deep_merge(env_values, {"logging": {"level": "debug"}})
    if "log_level" in env_values:
        level = env_values.pop("log_level")
        env_values = deep_merge(env_values, {"logging": {"level": level}})

    cli_values = {key: value for key, value in cli_overrides.items() if value is not None}
    merged = deep_merge(env_values, cli_values)

    try:
        return RunConfig.model_validate(merged)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        msg = f"Invalid configuration: {errors}"
        raise ConfigurationError(msg, cause=e) from e
