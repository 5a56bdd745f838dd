"""
Download worker: turns one URL batch into a sequence of shard bundles.

For each URL in the batch, in order:
1. Fetch the URL and validate content type and image header
2. Commit accepted images to the current shard
3. Roll over to a new shard every ``rollover_threshold`` processed URLs

Per-URL problems (bad URLs, unreachable hosts, non-images, corrupt headers)
are logged and skipped. Bundle failures are fatal to the batch and
propagate so the executor can retry it.
"""

import asyncio
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from bundle_core.bundle import Bundle, BundleMode
from bundle_core.download import FetchOutcome, FetchStatus, ImageFetcher
from bundle_core.errors.exceptions import BundleError
from bundle_core.logging.context import set_log_context
from bundle_core.logging.utilities import log_exception
from bundle_pipeline.config import BundlerConfig
from bundle_pipeline.metrics import (
    record_image_committed,
    record_shard_emitted,
    record_url_processed,
)
from bundle_pipeline.schemas import ShardResult, UrlBatch

logger = logging.getLogger(__name__)

SHARD_SUFFIX = ".shard.tmp"

Sleeper = Callable[[float], Awaitable[None]]


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchOutcome: ...


class WorkerState(str, Enum):
    """Where a download worker is in its batch."""

    IDLE = "idle"
    FETCHING = "fetching"
    VALIDATING = "validating"
    COMMITTING = "committing"
    ROLLOVER = "rollover"
    NEXT_URL = "next_url"
    FLUSH = "flush"
    DONE = "done"


def shard_path_for(shard_dir: Path, start_index: int) -> Path:
    """Shard index path for a shard rooted at absolute URL index ``start_index``."""
    return Path(shard_dir) / f"{start_index}{SHARD_SUFFIX}"


class DownloadWorker:
    """
    Processes one UrlBatch into shard bundles.

    The worker owns its current shard and (unless one is injected) its
    fetcher. Nothing is shared with other workers, so many can run
    concurrently in one event loop.

    Usage:
        worker = DownloadWorker(batch, config)
        shard_results = await worker.run()
    """

    def __init__(
        self,
        batch: UrlBatch,
        config: BundlerConfig,
        fetcher: Optional[Fetcher] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.batch = batch
        self.config = config
        self.state = WorkerState.IDLE
        self._fetcher = fetcher
        self._owns_fetcher = fetcher is None
        self._sleep = sleep

        self._shard: Optional[Bundle] = None
        self._shard_io: Optional[asyncio.Future] = None
        self._shard_start = batch.sequence_start
        self._shard_url_count = 0
        self._results: List[ShardResult] = []

    @property
    def worker_id(self) -> str:
        return f"batch-{self.batch.sequence_start}"

    @property
    def results(self) -> List[ShardResult]:
        """Shards emitted so far, in order."""
        return list(self._results)

    def _get_fetcher(self) -> Fetcher:
        if self._fetcher is None:
            self._fetcher = ImageFetcher(
                connect_timeout=self.config.connect_timeout,
                read_timeout=self.config.read_timeout,
                user_agent=self.config.user_agent,
                max_header_bytes=self.config.max_header_bytes,
                block_private_hosts=self.config.block_private_hosts,
                request_timeout=self.config.request_timeout,
                max_image_bytes=self.config.max_image_bytes,
            )
        return self._fetcher

    async def run(self) -> List[ShardResult]:
        """
        Process every URL in the batch.

        Returns:
            ShardResult for each shard, in the order they were closed. An
            empty batch still yields one (empty) shard.

        Raises:
            BundleError: A shard could not be created, written or closed
        """
        set_log_context(
            stage="download",
            worker_id=self.worker_id,
            batch_start=self.batch.sequence_start,
        )
        logger.info(
            "Starting download batch",
            extra={
                "sequence_start": self.batch.sequence_start,
                "url_count": len(self.batch),
            },
        )

        threshold = self.config.rollover_threshold
        try:
            await self._open_shard(self.batch.sequence_start)

            for position, url in enumerate(self.batch.urls):
                if position > 0 and position % threshold == 0:
                    self.state = WorkerState.ROLLOVER
                    await self._emit_shard()
                    await self._open_shard(self.batch.sequence_start + position)

                await self._process_position(position, url)
                self._shard_url_count += 1
                self.state = WorkerState.NEXT_URL

            self.state = WorkerState.FLUSH
            await self._emit_shard()
        finally:
            await self._abandon_shard()
            if self._owns_fetcher and self._fetcher is not None:
                await self._fetcher.close()
                self._fetcher = None

        self.state = WorkerState.DONE
        logger.info(
            "Finished download batch",
            extra={
                "sequence_start": self.batch.sequence_start,
                "url_count": len(self.batch),
                "shard_count": len(self._results),
                "image_count": sum(r.image_count for r in self._results),
            },
        )
        return self.results

    async def _process_position(self, position: int, url: str) -> None:
        start = time.perf_counter()
        try:
            status = await self._process_url(url)
        except BundleError:
            raise
        except Exception as e:
            elapsed = time.perf_counter() - start
            log_exception(
                logger,
                e,
                f"Unexpected error on URL in {elapsed:.2f}s, backing off",
                url=url,
                position=position,
                backoff_seconds=self.config.error_backoff_seconds,
            )
            record_url_processed("error", elapsed)
            await self._sleep(self.config.error_backoff_seconds)
            return

        elapsed = time.perf_counter() - start
        record_url_processed(status.value, elapsed)

    async def _process_url(self, url: str) -> FetchStatus:
        self.state = WorkerState.FETCHING
        outcome = await self._get_fetcher().fetch(url)

        self.state = WorkerState.VALIDATING
        if outcome.accepted:
            self.state = WorkerState.COMMITTING
            record = await self._run_shard_io(
                self._shard.append_image, outcome.stream, outcome.image_type
            )
            record_image_committed(record.length)
            logger.info(
                f"Added to bundle in {outcome.elapsed_ms / 1000:.2f}s",
                extra={
                    "url": url,
                    "status": outcome.status.value,
                    "image_type": outcome.image_type.name,
                    "bytes": record.length,
                    "width": outcome.header.width,
                    "height": outcome.header.height,
                    "elapsed_ms": outcome.elapsed_ms,
                    "shard_path": str(self._shard.path),
                },
            )
            return outcome.status

        self._log_skipped(outcome)
        if outcome.should_back_off:
            await self._sleep(self.config.error_backoff_seconds)
        return outcome.status

    def _log_skipped(self, outcome: FetchOutcome) -> None:
        level = logging.INFO
        if outcome.status in (FetchStatus.CONNECTION_ERROR, FetchStatus.TRANSFER_ERROR):
            level = logging.WARNING
        logger.log(
            level,
            f"Skipped URL in {outcome.elapsed_ms / 1000:.2f}s: {outcome.reason}",
            extra={
                "url": outcome.url,
                "status": outcome.status.value,
                "reason": outcome.reason,
                "content_type": outcome.content_type,
                "http_status": outcome.http_status,
                "error_category": (
                    outcome.error_category.value if outcome.error_category else None
                ),
                "elapsed_ms": outcome.elapsed_ms,
            },
        )

    async def _open_shard(self, start_index: int) -> None:
        path = shard_path_for(self.config.shard_dir, start_index)
        self._shard = await self._run_shard_io(Bundle.open, path, BundleMode.WRITE, True)
        self._shard_start = start_index
        self._shard_url_count = 0
        logger.debug(
            "Opened shard",
            extra={"shard_path": str(path), "sequence_start": start_index},
        )

    async def _run_shard_io(self, func: Callable[..., Any], *args: Any) -> Any:
        """
        Run blocking shard I/O in a thread.

        The thread cannot be interrupted, so cancellation only stops the
        wait; _abandon_shard later waits for the operation to finish.
        """
        self._shard_io = asyncio.ensure_future(asyncio.to_thread(func, *args))
        return await asyncio.shield(self._shard_io)

    async def _settle_shard_io(self) -> Any:
        """Wait for in-flight shard I/O; return its result, or None if it failed."""
        pending, self._shard_io = self._shard_io, None
        if pending is None:
            return None
        await asyncio.wait([pending])
        if pending.cancelled() or pending.exception() is not None:
            return None
        return pending.result()

    async def _emit_shard(self) -> None:
        shard = self._shard
        await self._run_shard_io(shard.close)
        self._shard = None

        result = ShardResult(
            ready=True,
            shard_path=str(shard.path),
            sequence_start=self._shard_start,
            url_count=self._shard_url_count,
            image_count=shard.image_count,
            data_length=shard.data_length,
        )
        self._results.append(result)
        record_shard_emitted()
        logger.info(
            "Emitted shard",
            extra={
                "shard_path": result.shard_path,
                "sequence_start": result.sequence_start,
                "url_count": result.url_count,
                "image_count": result.image_count,
                "data_length": result.data_length,
            },
        )

    async def _abandon_shard(self) -> None:
        """Close a shard left open by a failed batch. It is never emitted."""
        opened = await self._settle_shard_io()
        if self._shard is None and isinstance(opened, Bundle):
            # Cancelled while the shard was being opened
            self._shard = opened
        if self._shard is None:
            return
        shard, self._shard = self._shard, None
        try:
            await asyncio.to_thread(shard.close)
        except BundleError as e:
            log_exception(
                logger,
                e,
                "Failed to close abandoned shard",
                level=logging.WARNING,
                include_traceback=False,
                shard_path=str(shard.path),
            )


async def run_worker(
    batch: UrlBatch,
    config: BundlerConfig,
    fetcher: Optional[Fetcher] = None,
    sleep: Sleeper = asyncio.sleep,
) -> List[ShardResult]:
    """
    Download a batch of URLs into shard bundles.

    Args:
        batch: URLs and their absolute starting index
        config: Run configuration (shard_dir, rollover_threshold, timeouts, ...)
        fetcher: Object with ``async fetch(url) -> FetchOutcome``. Defaults to
            an ImageFetcher built from config and closed when the batch ends.
        sleep: Awaitable used for error backoff

    Returns:
        ShardResult per shard, in emission order

    Raises:
        BundleError: Fatal shard I/O failure
    """
    worker = DownloadWorker(batch, config, fetcher=fetcher, sleep=sleep)
    return await worker.run()
