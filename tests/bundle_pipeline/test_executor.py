"""
Tests for local work distribution.

Test coverage:
- URL list reading and partitioning
- Bounded concurrency
- Batch retries and TaskFailedError
- End-to-end run: download, merge, cleanup, manifest
"""

import asyncio
import json
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest

from bundle_core.bundle import Bundle, BundleMode
from bundle_core.errors.exceptions import BundleIOError, CorruptBundleError, TaskFailedError
from bundle_pipeline.config import BundlerConfig
from bundle_pipeline.executor import LocalExecutor, partition_urls, read_url_list
from bundle_pipeline.schemas import ShardResult, UrlBatch


def _urls(count):
    return [f"https://img.test/{i}.jpg" for i in range(count)]


class TestReadUrlList:
    """Tests for read_url_list."""

    def test_skips_blank_lines(self, tmp_path):
        """Blank lines are dropped and whitespace stripped."""
        url_file = tmp_path / "urls.txt"
        url_file.write_text("https://a.test/1.jpg\n\n   \nhttps://a.test/2.png  \n")

        assert read_url_list(url_file) == ["https://a.test/1.jpg", "https://a.test/2.png"]


class TestPartitionUrls:
    """Tests for partition_urls."""

    def test_contiguous_ceil_divided(self):
        """URLs are split into contiguous ceil-sized batches."""
        batches = partition_urls(_urls(10), 3)

        assert [b.sequence_start for b in batches] == [0, 4, 8]
        assert [len(b) for b in batches] == [4, 4, 2]
        assert [u for b in batches for u in b.urls] == _urls(10)

    def test_fewer_urls_than_workers(self):
        """No empty batches when there are fewer URLs than workers."""
        batches = partition_urls(_urls(2), 5)
        assert [(b.sequence_start, len(b)) for b in batches] == [(0, 1), (1, 1)]

    def test_empty(self):
        """No URLs gives no batches."""
        assert partition_urls([], 4) == []

    def test_invalid_worker_count(self):
        """A worker count below one raises ValueError."""
        with pytest.raises(ValueError):
            partition_urls(_urls(3), 0)


class TestRunBatches:
    """Tests for batch scheduling and retries."""

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, bundler_config):
        """No more batches run at once than there are workers."""
        config = replace(bundler_config, worker_count=2)
        active = 0
        peak = 0

        async def fake_worker(batch, config, fetcher=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return [ShardResult(shard_path=f"/tmp/{batch.sequence_start}.shard.tmp",
                                sequence_start=batch.sequence_start)]

        batches = [UrlBatch(sequence_start=i, urls=(f"https://img.test/{i}.jpg",)) for i in range(5)]
        with patch("bundle_pipeline.executor.run_worker", side_effect=fake_worker):
            results = await LocalExecutor(config).run_batches(batches)

        assert peak == 2
        assert [r.sequence_start for r in results] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_failed_batch_retried(self, bundler_config):
        """A batch that fails once is run again."""
        result = ShardResult(shard_path="/tmp/0.shard.tmp", sequence_start=0)
        mock_worker = AsyncMock(side_effect=[BundleIOError("disk full"), [result]])

        with patch("bundle_pipeline.executor.run_worker", mock_worker):
            results = await LocalExecutor(bundler_config).run_batch(UrlBatch(sequence_start=0))

        assert results == [result]
        assert mock_worker.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise(self, bundler_config):
        """TaskFailedError is raised after the last attempt."""
        config = replace(bundler_config, max_task_attempts=3)
        cause = BundleIOError("disk full")
        mock_worker = AsyncMock(side_effect=cause)

        with patch("bundle_pipeline.executor.run_worker", mock_worker):
            with pytest.raises(TaskFailedError) as exc_info:
                await LocalExecutor(config).run_batch(UrlBatch(sequence_start=40))

        assert mock_worker.await_count == 3
        assert exc_info.value.sequence_start == 40
        assert exc_info.value.attempts == 3
        assert exc_info.value.cause is cause

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self, bundler_config):
        """Permanent errors fail the batch on the first attempt."""
        config = replace(bundler_config, max_task_attempts=3)
        mock_worker = AsyncMock(side_effect=CorruptBundleError("index truncated"))

        with patch("bundle_pipeline.executor.run_worker", mock_worker):
            with pytest.raises(TaskFailedError) as exc_info:
                await LocalExecutor(config).run_batch(UrlBatch(sequence_start=0))

        assert mock_worker.await_count == 1
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_fetcher_per_attempt_closed(self, bundler_config, stub_fetcher):
        """Each attempt gets its own fetcher, closed afterwards."""
        created = []

        def factory(config):
            fetcher = stub_fetcher()
            created.append(fetcher)
            return fetcher

        mock_worker = AsyncMock(side_effect=[BundleIOError("disk full"), []])
        with patch("bundle_pipeline.executor.run_worker", mock_worker):
            await LocalExecutor(bundler_config, fetcher_factory=factory).run_batch(
                UrlBatch(sequence_start=0)
            )

        assert len(created) == 2
        assert all(f.closed for f in created)
        assert mock_worker.await_args_list[0].kwargs["fetcher"] is created[0]


class TestLocalExecutorRun:
    """End-to-end runs with a stub fetcher."""

    @pytest.mark.asyncio
    async def test_250_urls_single_worker(self, bundler_config, stub_fetcher):
        """One worker rolls over into three shards that merge into one bundle."""
        config = replace(bundler_config, worker_count=1)
        executor = LocalExecutor(config, fetcher_factory=lambda c: stub_fetcher())

        report = await executor.run(_urls(250))

        assert report.shards_merged == 3
        assert report.image_count == 250
        with Bundle.open(config.output_path, BundleMode.READ) as bundle:
            assert bundle.image_count == 250
        assert list(config.shard_dir.glob("*.shard.tmp*")) == []

    @pytest.mark.asyncio
    async def test_output_preserves_url_order(self, bundler_config, stub_fetcher):
        """Images appear in URL order across workers and shards."""
        config = replace(bundler_config, worker_count=3, rollover_threshold=4)
        urls = _urls(20) + ["https://img.test/not-image", "https://img.test/last.png"]
        executor = LocalExecutor(config, fetcher_factory=lambda c: stub_fetcher())

        report = await executor.run(urls)

        reference = stub_fetcher()
        expected = []
        for url in urls:
            outcome = await reference.fetch(url)
            if outcome.accepted:
                expected.append(outcome.stream.read())

        with Bundle.open(config.output_path, BundleMode.READ) as bundle:
            assert [image.data for image in bundle] == expected
        assert report.image_count == 21

    @pytest.mark.asyncio
    async def test_writes_manifest(self, bundler_config, stub_fetcher):
        """One confirmation line is written per merged shard."""
        executor = LocalExecutor(bundler_config, fetcher_factory=lambda c: stub_fetcher())

        report = await executor.run(_urls(5))

        lines = bundler_config.manifest_path.read_text().splitlines()
        assert len(lines) == report.shards_merged
        assert all(json.loads(line)["ready"] for line in lines)

    @pytest.mark.asyncio
    async def test_manifest_disabled(self, tmp_path, stub_fetcher):
        """No manifest folder is created when manifests are off."""
        config = BundlerConfig(
            output_path=tmp_path / "final.bundle",
            error_backoff_seconds=0.0,
            write_manifest=False,
        )
        executor = LocalExecutor(config, fetcher_factory=lambda c: stub_fetcher())

        await executor.run(_urls(3))

        assert not (tmp_path / "final.bundle_output").exists()

    @pytest.mark.asyncio
    async def test_empty_url_list(self, bundler_config, stub_fetcher):
        """An empty run still writes an empty bundle."""
        report = await LocalExecutor(bundler_config).run([])

        assert report.image_count == 0
        assert report.shards_merged == 0
        with Bundle.open(bundler_config.output_path, BundleMode.READ) as bundle:
            assert bundle.image_count == 0

    @pytest.mark.asyncio
    async def test_failed_batch_fails_run(self, bundler_config):
        """A failed batch stops the run before any output is written."""
        mock_worker = AsyncMock(side_effect=BundleIOError("disk full"))

        with patch("bundle_pipeline.executor.run_worker", mock_worker):
            with pytest.raises(TaskFailedError):
                await LocalExecutor(bundler_config).run(_urls(4))

        assert not bundler_config.output_path.exists()
