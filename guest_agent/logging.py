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
        "GUEST_AGENT_LOG_DIR",
        "/var/vcap/bosh/log",
    )
)


def _should_log_poll(record) -> bool:
    """Filter per-iteration poll logs - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    # Device polls and ARP sends fire every few hundred milliseconds
    if "poll" in tags:
        return record["level"].no <= logger.level("TRACE").no or (
            record["level"].no >= logger.level("WARNING").no
        )

    return True


def _should_log_stats(record) -> bool:
    """Filter stats sampling logs - these are noisy and not useful."""
    if record["extra"].get("source") == "stats":
        return record["level"].no >= logger.level("INFO").no or (
            record["level"].no <= logger.level("TRACE").no
        )

    return True


def _combined_filter(record) -> bool:
    """Combined filter for all log suppression rules."""
    return _should_log_poll(record) and _should_log_stats(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Setup steps that aborted bring-up of a resource
    - SUCCESS/INFO: Disk, network and supervisor setup milestones
    - DEBUG: Command execution, resolver candidates
    - TRACE: Every poll iteration and ARP send

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to /var/vcap/bosh/log)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "AGENT"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "<blue>{extra[job_id]: <22}</blue> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log - Important events only (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <22} | "
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
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <22} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log - For analysis tools (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
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
        tags: Tags for filtering (e.g., ["disk", "poll"])
        source: Source component (e.g., "disk", "net", "monit")

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
    Context manager for tracking setup operations with automatic timing.

    Logs operation start, completion and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "ephemeral-disk", "manual-networking")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("ephemeral-disk", device="/dev/sdb") as log:
            log.debug("Probing disk size")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation.split("-")[0], job_id=job_id, tags=[operation])

        # Details go through bind(): loguru would str.format() a message
        # passed alongside keyword arguments, and error text may hold braces
        log.bind(**details).info(f"{operation} started")

        try:
            yield log
            duration = time.time() - start_time
            log.bind(duration_seconds=round(duration, 2)).success(f"{operation} completed")
        except Exception as e:
            duration = time.time() - start_time
            log.bind(
                error=str(e),
                error_type=type(e).__name__,
                step=getattr(e, "step", None),
                duration_seconds=round(duration, 2),
            ).error(f"{operation} failed: {e}")
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source and tags for the domain.
    """

    @staticmethod
    def for_disk() -> Logger:
        """Logger for device resolution, partitioning and mounting."""
        return logger.bind(source="disk", tags=["disk", "storage"])

    @staticmethod
    def for_network() -> Logger:
        """Logger for interface configuration and ARP announcements."""
        return logger.bind(source="net", tags=["net"])

    @staticmethod
    def for_monit() -> Logger:
        """Logger for process supervisor readiness."""
        return logger.bind(source="monit", tags=["monit"])

    @staticmethod
    def for_stats() -> Logger:
        """Logger for background stats sampling."""
        return logger.bind(source="stats", tags=["stats"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for command execution and filesystem access."""
        return logger.bind(source="system", tags=["system"])

    @staticmethod
    def for_platform() -> Logger:
        """Logger for platform wiring and startup."""
        return logger.bind(source="platform", tags=["platform"])
