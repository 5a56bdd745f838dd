"""
Logging setup for bundling runs.

File layout, one folder per day:

    logs/bundler/2025-01-15/bundler_download_20250115_p12345.log
    logs/bundler/2025-01-15/bundler_merge_20250115_p12345.log
    logs/bundler/2025-01-15/bundler_pipeline_20250115_p12345.log

Stage files only receive records logged while that stage is the active
log context; the "pipeline" file receives everything. Console output
goes to stdout.
"""

import io
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

from bundle_core.logging.context import set_log_context
from bundle_core.logging.filters import StageContextFilter
from bundle_core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LOG_DIR = Path("logs")
DEFAULT_DOMAIN = "bundler"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5

# Stage name of the combined file in multi-stage setups
COMBINED_STAGE = "pipeline"

# Third-party loggers capped at WARNING
NOISY_LOGGERS = ("aiohttp", "asyncio", "PIL", "urllib3")

PLAIN_FILE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)


def get_log_file_path(
    log_dir: Path,
    domain: Optional[str] = None,
    stage: Optional[str] = None,
    instance_id: Optional[str] = None,
) -> Path:
    """
    Path of the log file for a domain/stage on today's date.

    Names are built from whichever of domain and stage are given, then the
    date and optional instance id: ``{domain}_{stage}_{YYYYMMDD}[_{instance}].log``.
    Files live under ``{log_dir}/{domain}/{YYYY-MM-DD}/`` (the domain folder
    is omitted when there is no domain).
    """
    today = datetime.now()
    parts = [p for p in (domain, stage) if p] or [COMBINED_STAGE]
    parts.append(today.strftime("%Y%m%d"))
    if instance_id:
        parts.append(instance_id)

    folder = Path(log_dir)
    if domain:
        folder = folder / domain
    return folder / today.strftime("%Y-%m-%d") / ("_".join(parts) + ".log")


def _stdout_handler(level: int) -> logging.Handler:
    stream = sys.stdout
    if sys.platform == "win32":
        # cp1252 consoles choke on non-ASCII URLs
        stream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def _file_handler(
    path: Path,
    level: int,
    json_format: bool,
    max_bytes: int,
    backup_count: int,
    stage_filter: Optional[str] = None,
) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FILE_FORMAT))
    if stage_filter:
        handler.addFilter(StageContextFilter(stage_filter))
    return handler


def _install(handlers: Iterable[logging.Handler], suppress_noisy: bool) -> None:
    root_logger = logging.getLogger()
    # Handlers do the level filtering
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)

    if suppress_noisy:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def _instance_id(use_instance_id: bool) -> Optional[str]:
    return f"p{os.getpid()}" if use_instance_id else None


def setup_logging(
    name: str = "bundle_pipeline",
    stage: Optional[str] = None,
    domain: Optional[str] = DEFAULT_DOMAIN,
    log_dir: Optional[Path] = None,
    json_format: bool = True,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    worker_id: Optional[str] = None,
    use_instance_id: bool = True,
) -> logging.Logger:
    """
    Log one stage to stdout and a single rotating file.

    Replaces any handlers already on the root logger, so calling it again
    reconfigures rather than duplicates output.

    Args:
        name: Logger to return
        stage: Stage recorded in the log context and the file name
        domain: Domain folder and file name prefix
        log_dir: Base directory (default: ./logs)
        json_format: JSON lines in the file instead of plain text
        console_level: Minimum level for stdout
        file_level: Minimum level for the file
        max_bytes: Rotate after this many bytes
        backup_count: Rotated files to keep
        suppress_noisy: Cap HTTP and imaging library loggers at WARNING
        worker_id: Worker recorded in the log context
        use_instance_id: Add the process id to the file name

    Returns:
        The logger called ``name``
    """
    set_log_context(domain=domain, stage=stage, worker_id=worker_id)

    log_file = get_log_file_path(
        log_dir or DEFAULT_LOG_DIR,
        domain=domain,
        stage=stage,
        instance_id=_instance_id(use_instance_id),
    )
    _install(
        [
            _file_handler(log_file, file_level, json_format, max_bytes, backup_count),
            _stdout_handler(console_level),
        ],
        suppress_noisy,
    )

    logger = logging.getLogger(name)
    logger.debug(f"Logging to {log_file} (json={json_format})")
    return logger


def setup_multi_worker_logging(
    workers: Iterable[str],
    domain: str = DEFAULT_DOMAIN,
    log_dir: Optional[Path] = None,
    json_format: bool = True,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    use_instance_id: bool = True,
) -> logging.Logger:
    """
    Log several stages of one process to separate files.

    Each stage in ``workers`` gets a file that only receives records logged
    while ``set_log_context(stage=...)`` names it. A combined "pipeline"
    file and stdout receive every record.

    Args:
        workers: Stage names, e.g. ["download", "merge"]
        (remaining arguments as for setup_logging)

    Returns:
        The "bundle_pipeline" logger
    """
    stages = list(workers)
    base_dir = log_dir or DEFAULT_LOG_DIR
    instance_id = _instance_id(use_instance_id)

    def file_for(stage: str, stage_filter: Optional[str]) -> logging.Handler:
        path = get_log_file_path(base_dir, domain=domain, stage=stage, instance_id=instance_id)
        return _file_handler(path, file_level, json_format, max_bytes, backup_count, stage_filter)

    handlers = [_stdout_handler(console_level)]
    handlers.extend(file_for(stage, stage) for stage in stages)
    handlers.append(file_for(COMBINED_STAGE, None))
    _install(handlers, suppress_noisy)

    set_log_context(domain=domain)

    logger = logging.getLogger("bundle_pipeline")
    logger.debug(f"Per-stage logging initialized: stages={stages}, domain={domain}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger; use instead of logging.getLogger() for consistent naming."""
    return logging.getLogger(name)
