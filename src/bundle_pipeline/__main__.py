"""
Entry point for the image bundler.

Usage:
    # Download a URL list into one bundle using 8 concurrent workers
    python -m bundle_pipeline download urls.txt /data/images.bundle 8

    # Smaller shards, YAML config, metrics exporter
    python -m bundle_pipeline download urls.txt out.bundle 4 \\
        --threshold 50 --config bundler.yaml --metrics-port 8000

    # Summarize an existing bundle
    python -m bundle_pipeline inspect /data/images.bundle

Exit codes:
    0  success
    1  a batch or the merge failed
    2  invalid arguments or configuration
"""

import argparse
import asyncio
import logging
import os
import sys
from collections import Counter
from pathlib import Path
from typing import List, Optional

from prometheus_client import start_http_server

from bundle_core.bundle import Bundle, BundleMode
from bundle_core.errors.exceptions import BundleError, ConfigurationError, PipelineError
from bundle_core.logging.setup import get_logger, setup_multi_worker_logging
from bundle_pipeline.config import load_config
from bundle_pipeline.executor import LocalExecutor, read_url_list

# Stages for multi-worker logging
WORKER_STAGES = ["download", "merge"]

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

# Placeholder logger until logging is configured in main()
logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="bundle_pipeline",
        description="Download image URL lists into image bundles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    download = subparsers.add_parser(
        "download",
        help="Download a URL list into a bundle",
    )
    download.add_argument("url_list", type=Path, help="File with one image URL per line")
    download.add_argument("output_bundle", type=Path, help="Final bundle index path")
    download.add_argument("workers", type=int, help="Number of concurrent download workers")
    download.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML file with a 'bundler:' section",
    )
    download.add_argument(
        "--threshold",
        type=int,
        default=None,
        help="URLs per shard before rolling over (default: 100)",
    )
    download.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    download.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Log directory path (default: from LOG_DIR env var or ./logs)",
    )
    download.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port",
    )

    inspect = subparsers.add_parser("inspect", help="Summarize an existing bundle")
    inspect.add_argument("bundle", type=Path, help="Bundle index path")

    return parser.parse_args(argv)


def run_download(args: argparse.Namespace) -> int:
    global logger

    log_level = getattr(logging, args.log_level)

    # JSON_LOGS=false for human-readable file logs during local runs
    json_logs = os.getenv("JSON_LOGS", "true").lower() in ("true", "1", "yes")

    # Log directory: CLI arg > env var > default ./logs
    log_dir = Path(args.log_dir or os.getenv("LOG_DIR", "logs"))

    setup_multi_worker_logging(
        workers=WORKER_STAGES,
        log_dir=log_dir,
        json_format=json_logs,
        console_level=log_level,
    )
    logger = get_logger(__name__)

    try:
        config = load_config(
            args.config,
            output_path=args.output_bundle,
            worker_count=args.workers,
            rollover_threshold=args.threshold,
        )
        urls = read_url_list(args.url_list)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_USAGE
    except OSError as e:
        logger.error(f"Cannot read URL list {args.url_list}: {e}")
        return EXIT_USAGE

    if args.metrics_port is not None:
        logger.info(f"Starting metrics server on port {args.metrics_port}")
        start_http_server(args.metrics_port)

    try:
        report = asyncio.run(LocalExecutor(config).run(urls))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        return EXIT_FAILURE
    except PipelineError as e:
        logger.error(f"Bundling failed: {e}", exc_info=True)
        return EXIT_FAILURE

    logger.info(
        f"Wrote {report.image_count} images from {report.shards_merged} shards "
        f"to {report.output_path}",
        extra={
            "output_path": report.output_path,
            "image_count": report.image_count,
            "data_length": report.data_length,
            "shard_count": report.shards_merged,
        },
    )
    if report.cleanup_failures:
        logger.warning(
            f"{len(report.cleanup_failures)} merged shard(s) could not be deleted",
            extra={"records": len(report.cleanup_failures)},
        )
    return EXIT_OK


def run_inspect(args: argparse.Namespace) -> int:
    try:
        with Bundle.open(args.bundle, BundleMode.READ) as bundle:
            type_counts = Counter(record.image_type.name for record in bundle.records)
            print(f"bundle:  {bundle.path}")
            print(f"data:    {bundle.data_path}")
            print(f"images:  {bundle.image_count}")
            print(f"bytes:   {bundle.data_length}")
            for name, count in sorted(type_counts.items()):
                print(f"  {name}: {count}")
    except BundleError as e:
        print(f"Cannot read bundle: {e}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    if args.command == "inspect":
        return run_inspect(args)
    return run_download(args)


if __name__ == "__main__":
    sys.exit(main())
