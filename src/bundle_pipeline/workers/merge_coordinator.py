"""
Merge coordinator: concatenates shard bundles into the final bundle.

Each shard is appended with Bundle.append_bundle, so merge cost is one
sequential copy per shard and no image is decoded again. Merged shards
are deleted as soon as they have been absorbed.
"""

import json
import logging
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from bundle_core.bundle import Bundle, BundleMode, delete_bundle
from bundle_core.errors.exceptions import BundleIOError
from bundle_core.logging.context import set_log_context
from bundle_core.logging.utilities import log_exception, log_with_context
from bundle_pipeline.config import BundlerConfig
from bundle_pipeline.metrics import record_cleanup_failure, record_shard_merged
from bundle_pipeline.schemas import MergeConfirmation, MergeReport, ShardResult

logger = logging.getLogger(__name__)

Heartbeat = Callable[[], None]


def _merge_order(shard_results: Iterable[ShardResult]) -> List[ShardResult]:
    ready = [r for r in shard_results if r.ready]
    return sorted(ready, key=lambda r: (r.sequence_start, r.shard_path))


def run_merge(
    shard_results: Iterable[ShardResult],
    config: BundlerConfig,
    progress: Optional[Heartbeat] = None,
) -> MergeReport:
    """
    Merge every ready shard into ``config.output_path``.

    The output is always truncated first. Shards are merged one at a time
    in (sequence_start, shard_path) order; after each one the shard files
    are deleted and ``progress`` is called so long merges stay visibly
    alive. Zero shards produce an empty, valid bundle.

    Args:
        shard_results: Records emitted by download workers (ready=False ignored)
        config: Run configuration
        progress: Optional heartbeat called after each shard

    Returns:
        MergeReport describing the final bundle

    Raises:
        BundleError: A shard is missing or corrupt, or the output cannot
            be written. Shard deletion failures are not raised.
    """
    set_log_context(stage="merge")
    start = time.perf_counter()
    shards = _merge_order(shard_results)
    output_path = Path(config.output_path)

    logger.info(
        "Starting merge",
        extra={"output_path": str(output_path), "shard_count": len(shards)},
    )

    confirmations: List[MergeConfirmation] = []
    cleanup_failures: List[str] = []

    with Bundle.open(output_path, BundleMode.WRITE, truncate=True) as final:
        for shard_result in shards:
            with Bundle.open(shard_result.shard_path, BundleMode.READ) as shard:
                appended = final.append_bundle(shard)
                shard_bytes = shard.data_length

            cleaned_up = _delete_shard(shard_result.shard_path)
            if not cleaned_up:
                cleanup_failures.append(shard_result.shard_path)

            record_shard_merged()
            confirmations.append(
                MergeConfirmation(
                    shard_path=shard_result.shard_path,
                    image_count=appended,
                    data_length=shard_bytes,
                    cleaned_up=cleaned_up,
                )
            )
            log_with_context(
                logger,
                logging.INFO,
                "Merged shard",
                shard_path=shard_result.shard_path,
                sequence_start=shard_result.sequence_start,
                image_count=appended,
                data_length=shard_bytes,
            )
            if progress is not None:
                progress()

        image_count = final.image_count
        data_length = final.data_length

    report = MergeReport(
        output_path=str(output_path),
        shards_merged=len(confirmations),
        image_count=image_count,
        data_length=data_length,
        confirmations=confirmations,
        cleanup_failures=cleanup_failures,
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    logger.info(
        "Merge complete",
        extra={
            "output_path": report.output_path,
            "shard_count": report.shards_merged,
            "image_count": report.image_count,
            "data_length": report.data_length,
            "elapsed_ms": report.duration_ms,
        },
    )
    return report


def _delete_shard(shard_path: str) -> bool:
    try:
        delete_bundle(shard_path)
    except BundleIOError as e:
        record_cleanup_failure()
        log_exception(
            logger,
            e,
            "Failed to delete merged shard",
            level=logging.WARNING,
            include_traceback=False,
            shard_path=shard_path,
        )
        return False
    return True


def write_merge_manifest(report: MergeReport, path: Union[str, Path]) -> Path:
    """
    Write one JSON line per merge confirmation.

    Args:
        report: Completed merge report
        path: Manifest file (parent directories are created)

    Returns:
        The manifest path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for confirmation in report.confirmations:
            f.write(json.dumps(confirmation.model_dump(mode="json")) + "\n")

    logger.info(
        "Wrote merge manifest",
        extra={"output_path": str(path), "records": len(report.confirmations)},
    )
    return path
