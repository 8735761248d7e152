"""Configuration loading and management for s3stream.

Configuration is loaded from TOML files with environment variable overrides.

Configuration precedence (highest to lowest):
1. Environment variables
2. Local config (./s3stream.toml)
3. Global config (~/.s3stream/s3stream.toml)
4. Default values

Example ``s3stream.toml``::

    max_local_cache = "64MiB"
    use_checksums = true

    [aws]
    region = "eu-central-1"

    [logging]
    level = "DEBUG"
"""

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from s3stream._errors import ConfigurationError
from s3stream.logging import LoggingConfig
from s3stream.pipeline import QUEUE_DEPTH
from s3stream.writer import DEFAULT_MAX_LOCAL_CACHE

GLOBAL_CONFIG_PATH = Path.home() / ".s3stream" / "s3stream.toml"
LOCAL_CONFIG_PATH = Path.cwd() / "s3stream.toml"

_SIZE_UNITS = {
    "": 1,
    "B": 1,
    "KB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "KIB": 1024,
    "MIB": 1024**2,
    "GIB": 1024**3,
}
_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([A-Za-z]*)\s*$")


def parse_size(value: int | str) -> int:
    """Parse a byte size such as ``52428800``, ``"50MiB"`` or ``"64 MB"``."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid size: {value!r}")
    if isinstance(value, int):
        return value
    match = _SIZE_PATTERN.match(value)
    if not match or match.group(2).upper() not in _SIZE_UNITS:
        raise ConfigurationError(f"Invalid size: {value!r}")
    return int(match.group(1)) * _SIZE_UNITS[match.group(2).upper()]


def _parse_bool(value: str) -> bool:
    lower = value.strip().lower()
    if lower in ("true", "1", "yes", "on"):
        return True
    if lower in ("false", "0", "no", "off"):
        return False
    raise ConfigurationError(f"Invalid boolean value: {value}")


def _as_bool(value: Any, name: str) -> bool:
    """Accept a TOML boolean or a boolean-like string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _parse_bool(value)
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as e:
            raise ConfigurationError(f"Invalid {name}: {value!r}") from e
    raise ConfigurationError(f"Invalid {name}: {value!r}")


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file, returning empty dict if not found."""
    if path.exists():
        with path.open("rb") as f:
            return tomllib.load(f)
    return {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into base.

    Lists and scalars are replaced; dicts are merged recursively.
    """
    result = base.copy()
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@dataclass
class StreamConfig:
    """Main s3stream configuration.

    Attributes:
        max_local_cache: Memory budget per stream in bytes.
        use_checksums: Whether to send Content-MD5 checksums.
        queue_depth: Capacity of the upload pipeline's queue.
        overwrite: Whether an existing object may be replaced.
        aws_region: AWS region for the S3 client.
        aws_endpoint: S3 endpoint for S3-compatible stores or local development.
        logging: Logging configuration.
    """

    max_local_cache: int = DEFAULT_MAX_LOCAL_CACHE
    use_checksums: bool = True
    queue_depth: int = QUEUE_DEPTH
    overwrite: bool = True

    # AWS configuration (from [aws] table)
    aws_region: str = ""
    aws_endpoint: str = ""

    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "StreamConfig":
        """Create a StreamConfig from a dictionary."""
        aws_config = d.get("aws", {})
        logging_config = d.get("logging", {})

        logging_cfg = LoggingConfig(
            level=logging_config.get("level", "INFO"),
            format=logging_config.get("format", "human"),
            show_timestamps=logging_config.get("show_timestamps", True),
        )
        return cls(
            max_local_cache=parse_size(
                d.get("max_local_cache", DEFAULT_MAX_LOCAL_CACHE)
            ),
            use_checksums=_as_bool(d.get("use_checksums", True), "use_checksums"),
            queue_depth=_as_int(d.get("queue_depth", QUEUE_DEPTH), "queue depth"),
            overwrite=_as_bool(d.get("overwrite", True), "overwrite"),
            aws_region=aws_config.get("region", ""),
            aws_endpoint=aws_config.get("endpoint", ""),
            logging=logging_cfg,
        )


def load_config() -> StreamConfig:
    """Load and merge configuration from global and local TOML files.

    Applies environment variable overrides.
    """
    global_cfg = _load_toml(GLOBAL_CONFIG_PATH)
    local_cfg = _load_toml(LOCAL_CONFIG_PATH)
    merged = _deep_merge(global_cfg, local_cfg)

    config = StreamConfig.from_dict(merged)

    if env_cache := os.environ.get("S3STREAM_MAX_LOCAL_CACHE"):
        config.max_local_cache = parse_size(env_cache)
    if env_checksums := os.environ.get("S3STREAM_USE_CHECKSUMS"):
        config.use_checksums = _parse_bool(env_checksums)
    if env_depth := os.environ.get("S3STREAM_QUEUE_DEPTH"):
        config.queue_depth = _as_int(env_depth, "queue depth")
    if env_region := os.environ.get("S3STREAM_AWS_REGION"):
        config.aws_region = env_region
    if env_endpoint := os.environ.get("S3STREAM_AWS_ENDPOINT"):
        config.aws_endpoint = env_endpoint
    if env_log_level := os.environ.get("S3STREAM_LOG_LEVEL"):
        config.logging.level = env_log_level
    if env_log_format := os.environ.get("S3STREAM_LOG_FORMAT"):
        config.logging.format = env_log_format

    return config
