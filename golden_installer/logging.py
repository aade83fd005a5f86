from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "GOLDEN_INSTALLER_LOG_DIR",
        Path.home() / ".local" / "state" / "golden-installer" / "logs",
    )
)

# Note: TRACE level already exists in loguru at level 5 (below DEBUG which is 10)


def _should_log_command_output(record) -> bool:
    """Keep raw tool stdout/stderr echoes out of the console unless tracing."""
    tags = record["extra"].get("tags", [])

    if record["level"].no >= logger.level("WARNING").no:
        return True

    if "output" in tags:
        return record["level"].no <= logger.level("TRACE").no

    return True


def _should_log_progress(record) -> bool:
    """Progress lines are already throttled; drop them below INFO on the console."""
    tags = record["extra"].get("tags", [])

    if "progress" in tags:
        return record["level"].no >= logger.level("INFO").no

    return True


def _combined_filter(record) -> bool:
    """Combined filter for all console suppression rules."""
    return _should_log_command_output(record) and _should_log_progress(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Fatal pipeline failures
    - SUCCESS/INFO: Stage transitions, selected disk, generated identifiers
    - WARNING: Swallowed best-effort failures
    - DEBUG: Every external command and its exit status
    - TRACE: Raw tool output

    Log Files:
    - install.log: INFO+ events (14 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (14 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/golden-installer/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "INSTALLER"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr) - operator-facing, filtered
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <12}</cyan> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Install Log - Important events only (INFO+)
    logger.add(
        log_dir / "install.log",
        level="INFO",
        rotation="5 MB",
        retention="14 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <12} | "
            "{extra[job_id]: <20} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Detailed diagnostics (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <12} | "
                "{extra[job_id]: <20} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log - For analysis tools (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="14 days",
        compression="zip",
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["disk", "lvm"])
        source: Source component (e.g., "wipe", "chroot")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking a pipeline stage with automatic timing.

    Logs stage start, completion, and failure with duration tracking.

    Args:
        operation: Stage name (e.g., "clone", "fix-partitions")
        **details: Stage-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("clone", target="/dev/sda") as log:
            log.debug("Streaming image")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source, tags, and context for the domain.
    """

    @staticmethod
    def for_disk() -> Logger:
        """Logger for block device discovery and partition tables."""
        return logger.bind(source="disk", tags=["disk", "storage"])

    @staticmethod
    def for_clone(job_id: str | None = None) -> Logger:
        """Logger for image streaming."""
        if job_id is None:
            job_id = f"clone-{uuid.uuid4().hex[:8]}"
        return logger.bind(job_id=job_id, source="clone", tags=["clone", "storage"])

    @staticmethod
    def for_lvm() -> Logger:
        """Logger for volume group and logical volume operations."""
        return logger.bind(source="lvm", tags=["lvm", "storage"])

    @staticmethod
    def for_filesystem() -> Logger:
        """Logger for filesystem check, resize and identifier operations."""
        return logger.bind(source="fs", tags=["fs", "storage"])

    @staticmethod
    def for_chroot() -> Logger:
        """Logger for commands run inside the target root."""
        return logger.bind(source="chroot", tags=["chroot", "boot"])

    @staticmethod
    def for_command() -> Logger:
        """Logger for raw command execution."""
        return logger.bind(source="command", tags=["command"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, preconditions, config)."""
        return logger.bind(source="system", tags=["system"])


class ThrottledLogger:
    """
    Logger wrapper that throttles high-frequency log events.

    Used for dd progress updates, which arrive several times per second.
    """

    def __init__(self, log: Logger, interval_seconds: float = 5.0):
        self.log = log
        self.interval = interval_seconds
        self.last_log_time: dict[str, float] = {}

    def debug(self, key: str, message: str, **kwargs) -> None:
        """Log at DEBUG level, throttled by key."""
        self._throttled_log("DEBUG", key, message, **kwargs)

    def info(self, key: str, message: str, **kwargs) -> None:
        """Log at INFO level, throttled by key."""
        self._throttled_log("INFO", key, message, **kwargs)

    def _throttled_log(self, level: str, key: str, message: str, **kwargs) -> None:
        now = time.time()
        last_time = self.last_log_time.get(key, 0)

        if now - last_time >= self.interval:
            log_method = getattr(self.log, level.lower())
            log_method(message, **kwargs)
            self.last_log_time[key] = now


class EventLogger:
    """
    Structured event logger using standardized schemas.

    Provides methods for logging installer events with consistent
    structure and fields.
    """

    @staticmethod
    def log_install_started(log: Logger, image: str, auto: bool, **extra) -> None:
        """Log installer start."""
        log.info(
            "Installation started",
            event_type="install_started",
            image=image,
            auto_mode=auto,
            **extra,
        )

    @staticmethod
    def log_target_selected(log: Logger, device: str, size_bytes: int, **extra) -> None:
        """Log the chosen target disk."""
        log.info(
            f"Target disk selected: {device}",
            event_type="target_selected",
            device=device,
            size_bytes=size_bytes,
            **extra,
        )

    @staticmethod
    def log_clone_progress(
        log: Logger, bytes_copied: int, speed_mbps: float | None, **extra
    ) -> None:
        """Log clone progress update."""
        log.debug(
            "Clone progress update",
            event_type="clone_progress",
            bytes_copied=bytes_copied,
            speed_mbps=round(speed_mbps, 2) if speed_mbps is not None else None,
            **extra,
        )
