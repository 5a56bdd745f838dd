"""
Prometheus metrics for bundle pipeline monitoring.

Provides instrumentation for:
- Per-URL outcomes and processing time
- Bytes committed to shards
- Shard emission, merge and cleanup
- Batch retries
"""

from prometheus_client import Counter, Histogram

urls_processed_total = Counter(
    "bundler_urls_processed_total",
    "Total number of URLs processed by download workers",
    ["status"],  # FetchStatus value, or "error" for unexpected exceptions
)

image_bytes_committed_total = Counter(
    "bundler_image_bytes_committed_total",
    "Total image bytes appended to shard bundles",
)

url_processing_duration_seconds = Histogram(
    "bundler_url_processing_duration_seconds",
    "Time spent fetching, validating and committing one URL",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

shards_emitted_total = Counter(
    "bundler_shards_emitted_total",
    "Total number of shard bundles closed and handed to the merge stage",
)

shards_merged_total = Counter(
    "bundler_shards_merged_total",
    "Total number of shard bundles appended to the final bundle",
)

shard_cleanup_failures_total = Counter(
    "bundler_shard_cleanup_failures_total",
    "Total number of merged shards whose files could not be deleted",
)

task_retries_total = Counter(
    "bundler_task_retries_total",
    "Total number of batch attempts retried after a failure",
)


def record_url_processed(status: str, duration_seconds: float) -> None:
    """Record one processed URL."""
    urls_processed_total.labels(status=status).inc()
    url_processing_duration_seconds.observe(duration_seconds)


def record_image_committed(size: int) -> None:
    image_bytes_committed_total.inc(size)


def record_shard_emitted() -> None:
    shards_emitted_total.inc()


def record_shard_merged() -> None:
    shards_merged_total.inc()


def record_cleanup_failure() -> None:
    shard_cleanup_failures_total.inc()


def record_task_retry() -> None:
    task_retries_total.inc()
