"""
Stage record schemas.

Pydantic models for everything passed between pipeline stages.

Schemas:
    batches.py  - UrlBatch (work assigned to one download worker)
    results.py  - ShardResult (worker -> merge), MergeConfirmation, MergeReport

Design Decisions:
    - Pydantic for validation and JSON serialization
    - Records handed between stages are frozen
    - Datetime fields as ISO 8601 strings
"""

from bundle_pipeline.schemas.batches import UrlBatch
from bundle_pipeline.schemas.results import MergeConfirmation, MergeReport, ShardResult

__all__ = [
    "MergeConfirmation",
    "MergeReport",
    "ShardResult",
    "UrlBatch",
]
