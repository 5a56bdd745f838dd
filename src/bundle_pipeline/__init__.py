"""
Image bundling pipeline.

Downloads image URL lists with concurrent workers into shard bundles and
merges the shards into one final bundle.

Modules:
    config      - BundlerConfig and load_config
    executor    - partitioning, concurrent batches, retries, merge
    metrics     - Prometheus counters
    schemas/    - records passed between stages
    workers/    - download worker and merge coordinator

Run with ``python -m bundle_pipeline``.
"""
