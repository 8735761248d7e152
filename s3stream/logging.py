"""Logging utilities for s3stream."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class LogFormat(Enum):
    HUMAN = "human"
    JSON = "json"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "human"
    show_timestamps: bool = True


class HumanFormatter(logging.Formatter):
    """Human-readable log formatter."""

    def __init__(self, config: LoggingConfig) -> None:
        super().__init__()
        self.config = config

    def format(self, record: logging.LogRecord) -> str:
        timestamp = ""
        if self.config.show_timestamps:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            timestamp = f"{timestamp} - "

        level = record.levelname
        message = record.getMessage()

        return f"[{level}] {timestamp}{message}"


class JsonFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def __init__(self, config: LoggingConfig) -> None:
        super().__init__()
        self.config = config

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "level": record.levelname,
            "ts": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "event": getattr(record, "event", "log"),
            "message": record.getMessage(),
        }

        for key in (
            "bucket",
            "key",
            "upload_id",
            "part",
            "size",
            "parts",
            "duration",
            "status",
            "location",
        ):
            val = getattr(record, key, None)
            if val is not None:
                data[key] = val

        return json.dumps(data)


def get_logger(name: str, config: LoggingConfig) -> logging.Logger:
    """Create a configured logger."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        JsonFormatter(config)
        if config.format == LogFormat.JSON.value
        else HumanFormatter(config)
    )
    logger.addHandler(handler)
    logger.propagate = False

    return logger


class UploadLogger:
    """Logger for multipart upload lifecycle events."""

    def __init__(self, bucket: str, key: str, logger: logging.Logger) -> None:
        self.bucket = bucket
        self.key = key
        self.logger = logger
        self.upload_id: str | None = None
        self.start_time: datetime | None = None

    @property
    def target(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def _extra(self, event: str, **fields: Any) -> dict[str, Any]:
        return {
            "event": event,
            "bucket": self.bucket,
            "key": self.key,
            "upload_id": self.upload_id,
            **fields,
        }

    def session_start(self, upload_id: str) -> None:
        """Log the start of a multipart upload."""
        self.upload_id = upload_id
        self.start_time = datetime.now()
        self.logger.info(
            f"Multipart upload to {self.target} started (upload_id={upload_id})",
            extra=self._extra("session_start"),
        )

    def part_complete(self, part_number: int, size: int, duration: float) -> None:
        """Log an acknowledged part."""
        extra = self._extra(
            "part_complete",
            part=part_number,
            size=size,
            duration=duration,
            status="success",
        )
        self.logger.debug(
            f"Part {part_number} of {self.target} uploaded "
            f"({size} bytes in {duration:.3f}s)",
            extra=extra,
        )

    def part_fail(
        self, part_number: int, size: int, duration: float, error: BaseException
    ) -> None:
        """Log a failed part."""
        extra = self._extra(
            "part_fail",
            part=part_number,
            size=size,
            duration=duration,
            status="failed",
        )
        self.logger.error(
            f"Part {part_number} of {self.target} failed after {duration:.3f}s: {error}",
            extra=extra,
        )

    def session_complete(self, n_parts: int, location: str) -> None:
        """Log a completed multipart upload."""
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()
        else:
            duration = 0.0

        extra = self._extra(
            "session_complete",
            parts=n_parts,
            duration=duration,
            status="success",
            location=location,
        )
        self.logger.info(
            f"Multipart upload to {self.target} completed with {n_parts} part(s) "
            f"in {duration:.3f}s",
            extra=extra,
        )

    def session_abort(self, reason: BaseException | str) -> None:
        """Log an aborted multipart upload."""
        extra = self._extra("session_abort", status="aborted")
        self.logger.warning(
            f"Multipart upload to {self.target} aborted: {reason}", extra=extra
        )

    def abort_failed(self, error: BaseException) -> None:
        """Log a failure to abort a multipart upload on the store."""
        extra = self._extra("abort_fail", status="failed")
        self.logger.error(
            f"Could not abort multipart upload to {self.target}: {error}",
            extra=extra,
        )

    def direct_put(self, size: int, location: str) -> None:
        """Log a single-request upload."""
        extra = self._extra("direct_put", size=size, location=location)
        self.logger.info(
            f"Uploaded {size} bytes to {self.target} in a single request",
            extra=extra,
        )


def get_logging_config(
    level: str | None = None,
    format: str | None = None,
    show_timestamps: bool | None = None,
) -> LoggingConfig:
    """Create LoggingConfig with optional overrides."""
    return LoggingConfig(
        level=level or "INFO",
        format=format or "human",
        show_timestamps=show_timestamps if show_timestamps is not None else True,
    )
