"""
Pipeline workers.

- download_worker: URL batch -> shard bundles
- merge_coordinator: shard bundles -> final bundle
"""

from bundle_pipeline.workers.download_worker import (
    DownloadWorker,
    WorkerState,
    run_worker,
    shard_path_for,
)
from bundle_pipeline.workers.merge_coordinator import run_merge, write_merge_manifest

__all__ = [
    "DownloadWorker",
    "WorkerState",
    "run_merge",
    "run_worker",
    "shard_path_for",
    "write_merge_manifest",
]
