"""Bundle pipeline configuration.

Configuration is captured once at startup and passed explicitly to every
worker and to the merge coordinator. BundlerConfig is frozen, so no stage
can change settings another stage sees.

Sources, lowest to highest precedence:
    1. Field defaults
    2. YAML file (under the 'bundler:' key)
    3. BUNDLER_* environment variables
    4. Explicit overrides (e.g. CLI arguments)
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from bundle_core.download.http_client import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MAX_IMAGE_BYTES,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    USER_AGENT,
)
from bundle_core.errors.exceptions import ConfigurationError
from bundle_core.validation.header import DEFAULT_MAX_HEADER_BYTES

DEFAULT_WORKER_COUNT = 4
DEFAULT_ROLLOVER_THRESHOLD = 100
DEFAULT_ERROR_BACKOFF_SECONDS = 1.0
DEFAULT_MAX_TASK_ATTEMPTS = 2

MANIFEST_DIR_SUFFIX = "_output"
MANIFEST_FILENAME = "merged_shards.jsonl"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# Environment variable and parser for each field
ENV_VARS: Dict[str, tuple] = {
    "output_path": ("BUNDLER_OUTPUT_PATH", str),
    "shard_dir": ("BUNDLER_SHARD_DIR", str),
    "worker_count": ("BUNDLER_WORKER_COUNT", int),
    "rollover_threshold": ("BUNDLER_ROLLOVER_THRESHOLD", int),
    "connect_timeout": ("BUNDLER_CONNECT_TIMEOUT", float),
    "read_timeout": ("BUNDLER_READ_TIMEOUT", float),
    "request_timeout": ("BUNDLER_REQUEST_TIMEOUT", float),
    "max_image_bytes": ("BUNDLER_MAX_IMAGE_BYTES", int),
    "error_backoff_seconds": ("BUNDLER_ERROR_BACKOFF_SECONDS", float),
    "max_header_bytes": ("BUNDLER_MAX_HEADER_BYTES", int),
    "max_task_attempts": ("BUNDLER_MAX_TASK_ATTEMPTS", int),
    "block_private_hosts": ("BUNDLER_BLOCK_PRIVATE_HOSTS", _parse_bool),
    "user_agent": ("BUNDLER_USER_AGENT", str),
    "write_manifest": ("BUNDLER_WRITE_MANIFEST", _parse_bool),
}


@dataclass(frozen=True)
class BundlerConfig:
    """Immutable settings for one bundling run.

    Attributes:
        output_path: Final bundle index path (data file is output_path + ".dat")
        shard_dir: Directory for worker shard files (default: output_path's directory)
        worker_count: Batches run concurrently, and the number of URL partitions
        rollover_threshold: Processed URLs per shard before rolling over
        connect_timeout: Seconds allowed to connect to an image host
        read_timeout: Seconds allowed between body reads
        request_timeout: Seconds allowed for one whole request
        max_image_bytes: Larger images are rejected
        error_backoff_seconds: Pause after an unexpected per-URL error
        max_header_bytes: Most bytes inspected when parsing an image header
        max_task_attempts: Attempts per batch before the run fails
        block_private_hosts: Skip URLs pointing at loopback/private hosts
        user_agent: User-Agent sent with every request
        write_manifest: Write merge confirmations next to the output
        manifest_path: Confirmation file (default: <output>_output/merged_shards.jsonl)
    """

    output_path: Path
    shard_dir: Optional[Path] = None
    worker_count: int = DEFAULT_WORKER_COUNT
    rollover_threshold: int = DEFAULT_ROLLOVER_THRESHOLD
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    error_backoff_seconds: float = DEFAULT_ERROR_BACKOFF_SECONDS
    max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES
    max_task_attempts: int = DEFAULT_MAX_TASK_ATTEMPTS
    block_private_hosts: bool = False
    user_agent: str = USER_AGENT
    write_manifest: bool = True
    manifest_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if not self.output_path:
            raise ConfigurationError("output_path is required")

        output_path = Path(self.output_path)
        object.__setattr__(self, "output_path", output_path)
        object.__setattr__(
            self,
            "shard_dir",
            Path(self.shard_dir) if self.shard_dir else output_path.parent,
        )
        if self.manifest_path:
            object.__setattr__(self, "manifest_path", Path(self.manifest_path))
        elif self.write_manifest:
            object.__setattr__(
                self,
                "manifest_path",
                Path(str(output_path) + MANIFEST_DIR_SUFFIX) / MANIFEST_FILENAME,
            )

        if self.worker_count < 1:
            raise ConfigurationError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.rollover_threshold < 1:
            raise ConfigurationError(
                f"rollover_threshold must be >= 1, got {self.rollover_threshold}"
            )
        if min(self.connect_timeout, self.read_timeout, self.request_timeout) <= 0:
            raise ConfigurationError("Timeouts must be positive")
        if self.error_backoff_seconds < 0:
            raise ConfigurationError("error_backoff_seconds must not be negative")
        if self.max_header_bytes < 64:
            raise ConfigurationError(
                f"max_header_bytes must be >= 64, got {self.max_header_bytes}"
            )
        if self.max_image_bytes < 1:
            raise ConfigurationError(
                f"max_image_bytes must be >= 1, got {self.max_image_bytes}"
            )
        if self.max_task_attempts < 1:
            raise ConfigurationError(
                f"max_task_attempts must be >= 1, got {self.max_task_attempts}"
            )

    @classmethod
    def from_env(cls, output_path: Optional[Union[str, Path]] = None) -> "BundlerConfig":
        """Load configuration from BUNDLER_* environment variables.

        Required (unless output_path is passed):
            BUNDLER_OUTPUT_PATH: Final bundle path

        Optional environment variables (with defaults):
            BUNDLER_SHARD_DIR: output directory (default)
            BUNDLER_WORKER_COUNT: 4 (default)
            BUNDLER_ROLLOVER_THRESHOLD: 100 (default)
            BUNDLER_CONNECT_TIMEOUT: 10 (default, seconds)
            BUNDLER_READ_TIMEOUT: 60 (default, seconds)
            BUNDLER_REQUEST_TIMEOUT: 300 (default, seconds)
            BUNDLER_MAX_IMAGE_BYTES: 67108864 (default)
            BUNDLER_ERROR_BACKOFF_SECONDS: 1 (default)
            BUNDLER_MAX_HEADER_BYTES: 1048576 (default)
            BUNDLER_MAX_TASK_ATTEMPTS: 2 (default)
            BUNDLER_BLOCK_PRIVATE_HOSTS: false (default)
            BUNDLER_USER_AGENT
            BUNDLER_WRITE_MANIFEST: true (default)

        Raises:
            ConfigurationError: Missing output path or invalid values
        """
        values = _env_values()
        if output_path is not None:
            values["output_path"] = output_path
        return cls._from_mapping(values)

    @classmethod
    def _from_mapping(cls, values: Mapping[str, Any]) -> "BundlerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        if not values.get("output_path"):
            raise ConfigurationError(
                "Output bundle path is required (BUNDLER_OUTPUT_PATH or output_path)"
            )
        return cls(**values)


def _env_values() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name, (env_var, parser) in ENV_VARS.items():
        raw = os.getenv(env_var)
        if raw is None or raw == "":
            continue
        try:
            values[name] = parser(raw)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid value for {env_var}: {raw!r}", cause=e
            ) from e
    return values


def _yaml_values(config_path: Path) -> Dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {config_path}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}", cause=e) from e

    section = data.get("bundler", {}) if isinstance(data, dict) else None
    if not isinstance(section, dict):
        raise ConfigurationError(f"'bundler' section in {config_path} must be a mapping")
    return dict(section)


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> BundlerConfig:
    """Build a BundlerConfig from YAML, environment and explicit overrides.

    Overrides whose value is None are ignored, so CLI arguments that were
    not given don't mask file or environment settings.

    Args:
        config_path: Optional YAML file with a 'bundler:' section
        **overrides: Field values taking precedence over everything else

    Raises:
        ConfigurationError: Unreadable file, unknown keys or invalid values
    """
    values: Dict[str, Any] = {}
    if config_path is not None:
        values.update(_yaml_values(Path(config_path)))
    values.update(_env_values())
    values.update({k: v for k, v in overrides.items() if v is not None})
    return BundlerConfig._from_mapping(values)

