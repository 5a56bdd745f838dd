"""
Shard and merge result schemas.

Contains Pydantic models for records passed from download workers to the
merge coordinator, and for the merge coordinator's confirmations and
final report.
"""

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, Field, field_serializer, field_validator


class ShardResult(BaseModel):
    """Record emitted by a download worker for each closed shard.

    Attributes:
        ready: True when the shard is complete and may be merged. Records
            with ready=False are ignored by the merge coordinator.
        shard_path: Index path of the shard bundle
        sequence_start: Absolute URL index the shard was rooted at
        url_count: URLs processed into this shard window
        image_count: Images committed to the shard
        data_length: Bytes in the shard's data file

    Example:
        >>> result = ShardResult(
        ...     shard_path="/data/out/100.shard.tmp",
        ...     sequence_start=100,
        ...     url_count=100,
        ...     image_count=93,
        ...     data_length=4_812_331,
        ... )
    """

    model_config = {"frozen": True}

    ready: bool = Field(
        default=True,
        description="Shard is complete and ready to merge",
    )
    shard_path: str = Field(
        ...,
        description="Index path of the shard bundle",
        min_length=1,
    )
    sequence_start: int = Field(
        ...,
        description="Absolute URL index the shard was rooted at",
        ge=0,
    )
    url_count: int = Field(default=0, ge=0)
    image_count: int = Field(default=0, ge=0)
    data_length: int = Field(default=0, ge=0)

    @field_validator("shard_path")
    @classmethod
    def validate_shard_path(cls, v: str) -> str:
        """Ensure shard path is not empty or whitespace-only."""
        if not v.strip():
            raise ValueError("shard_path cannot be empty or whitespace")
        return v.strip()


class MergeConfirmation(BaseModel):
    """Confirmation that one shard was absorbed into the final bundle."""

    ready: bool = True
    shard_path: str = Field(..., min_length=1)
    image_count: int = Field(default=0, ge=0)
    data_length: int = Field(default=0, ge=0)
    cleaned_up: bool = Field(
        default=True,
        description="Both shard files were deleted",
    )
    merged_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("merged_at")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """Serialize datetime to ISO 8601 format."""
        return timestamp.isoformat()


class MergeReport(BaseModel):
    """Summary of a completed merge.

    Attributes:
        output_path: Final bundle index path
        shards_merged: Shards appended to the final bundle
        image_count: Records in the final bundle
        data_length: Bytes in the final bundle's data file
        confirmations: One entry per merged shard, in merge order
        cleanup_failures: Shard paths whose files could not be deleted
        duration_ms: Wall time of the merge
    """

    output_path: str
    shards_merged: int = Field(default=0, ge=0)
    image_count: int = Field(default=0, ge=0)
    data_length: int = Field(default=0, ge=0)
    confirmations: List[MergeConfirmation] = Field(default_factory=list)
    cleanup_failures: List[str] = Field(default_factory=list)
    duration_ms: int = Field(default=0, ge=0)
