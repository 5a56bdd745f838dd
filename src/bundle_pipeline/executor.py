"""
Local work distribution.

Splits the URL list into contiguous batches, runs a download worker per
batch with bounded concurrency, retries failed batches, then hands every
emitted shard to a single merge.

    executor = LocalExecutor(config)
    report = asyncio.run(executor.run(read_url_list("urls.txt")))
"""

import asyncio
import logging
import math
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

from bundle_core.errors.exceptions import PipelineError, TaskFailedError
from bundle_core.logging.utilities import log_exception
from bundle_pipeline.config import BundlerConfig
from bundle_pipeline.metrics import record_task_retry
from bundle_pipeline.schemas import MergeReport, ShardResult, UrlBatch
from bundle_pipeline.workers.download_worker import Fetcher, run_worker
from bundle_pipeline.workers.merge_coordinator import run_merge, write_merge_manifest

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[BundlerConfig], Fetcher]


def read_url_list(path: Union[str, Path]) -> List[str]:
    """Read one URL per line, skipping blank lines."""
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


def partition_urls(urls: Sequence[str], worker_count: int) -> List[UrlBatch]:
    """
    Split URLs into at most ``worker_count`` contiguous batches.

    Batch sizes are ceil(len(urls) / worker_count), so every batch but the
    last is full. Each batch keeps the absolute index of its first URL,
    which keeps shard names unique across batches.

    Returns:
        Batches in URL order (empty list for no URLs)
    """
    if worker_count < 1:
        raise ValueError(f"worker_count must be >= 1, got {worker_count}")

    urls = list(urls)
    if not urls:
        return []

    size = math.ceil(len(urls) / worker_count)
    return [
        UrlBatch(sequence_start=start, urls=tuple(urls[start:start + size]))
        for start in range(0, len(urls), size)
    ]


class LocalExecutor:
    """
    Runs download workers in this process and merges their shards.

    Up to ``config.worker_count`` batches run concurrently. A batch that
    fails is rerun from the start (its shards are recreated with
    truncation) until ``config.max_task_attempts`` is reached. Errors whose
    category is PERMANENT (corrupt bundle, wrong mode) fail immediately.

    Args:
        config: Run configuration
        fetcher_factory: Builds a fetcher per batch attempt. Defaults to each
            worker creating its own ImageFetcher.
    """

    def __init__(
        self,
        config: BundlerConfig,
        fetcher_factory: Optional[FetcherFactory] = None,
    ):
        self.config = config
        self._fetcher_factory = fetcher_factory
        self._merged_shards = 0

    async def run_batch(self, batch: UrlBatch) -> List[ShardResult]:
        """
        Run one batch, retrying the whole batch on failure.

        Raises:
            TaskFailedError: Every attempt failed, or the error was permanent
        """
        max_attempts = self.config.max_task_attempts
        for attempt in range(1, max_attempts + 1):
            fetcher = self._fetcher_factory(self.config) if self._fetcher_factory else None
            try:
                return await run_worker(batch, self.config, fetcher=fetcher)
            except Exception as e:
                retryable = not isinstance(e, PipelineError) or e.is_retryable
                if attempt >= max_attempts or not retryable:
                    log_exception(
                        logger,
                        e,
                        "Batch failed, not retrying",
                        sequence_start=batch.sequence_start,
                        attempt=attempt,
                        max_attempts=max_attempts,
                    )
                    raise TaskFailedError(batch.sequence_start, attempt, cause=e) from e

                record_task_retry()
                log_exception(
                    logger,
                    e,
                    "Batch failed, retrying",
                    level=logging.WARNING,
                    sequence_start=batch.sequence_start,
                    attempt=attempt,
                    max_attempts=max_attempts,
                )
            finally:
                close = getattr(fetcher, "close", None)
                if close is not None:
                    await close()

    async def run_batches(self, batches: Iterable[UrlBatch]) -> List[ShardResult]:
        """
        Run all batches with at most ``worker_count`` in flight.

        Returns:
            Every emitted ShardResult, batch by batch in input order

        Raises:
            TaskFailedError: A batch exhausted its attempts (others are cancelled)
        """
        semaphore = asyncio.Semaphore(self.config.worker_count)

        async def bounded(batch: UrlBatch) -> List[ShardResult]:
            async with semaphore:
                return await self.run_batch(batch)

        tasks = [asyncio.create_task(bounded(batch)) for batch in batches]
        try:
            per_batch = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return [result for results in per_batch for result in results]

    def _heartbeat(self) -> None:
        self._merged_shards += 1
        logger.debug(
            "Merge progress",
            extra={"shard_count": self._merged_shards},
        )

    async def run(self, urls: Sequence[str]) -> MergeReport:
        """
        Download every URL and merge the result into ``config.output_path``.

        Returns:
            MergeReport for the final bundle

        Raises:
            TaskFailedError: A batch exhausted its attempts; nothing is merged
            BundleError: The merge failed
        """
        batches = partition_urls(urls, self.config.worker_count)
        logger.info(
            "Starting bundling run",
            extra={
                "url_count": len(urls),
                "batch_count": len(batches),
                "output_path": str(self.config.output_path),
            },
        )

        shard_results = await self.run_batches(batches)

        self._merged_shards = 0
        report = await asyncio.to_thread(
            run_merge, shard_results, self.config, self._heartbeat
        )

        if self.config.write_manifest and self.config.manifest_path is not None:
            await asyncio.to_thread(
                write_merge_manifest, report, self.config.manifest_path
            )

        return report
