"""
URL batch schema.

A UrlBatch is the unit of work handed to one download worker.
"""

from typing import Tuple

from pydantic import BaseModel, Field, field_validator


class UrlBatch(BaseModel):
    """Immutable ordered URLs assigned to one worker.

    Attributes:
        sequence_start: Absolute index of the first URL in the full list.
            Shard filenames derive from it, and batches own disjoint ranges,
            so shard paths never collide between workers.
        urls: URLs in processing order

    Example:
        >>> batch = UrlBatch.from_text(200, "https://a.example/1.jpg\\nhttps://a.example/2.png\\n")
        >>> batch.sequence_end
        202
    """

    model_config = {"frozen": True}

    sequence_start: int = Field(
        ...,
        description="Absolute index of the first URL",
        ge=0,
    )
    urls: Tuple[str, ...] = Field(
        default=(),
        description="URLs in processing order",
    )

    @field_validator("urls")
    @classmethod
    def strip_urls(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Strip whitespace around each URL."""
        return tuple(u.strip() for u in v)

    @property
    def sequence_end(self) -> int:
        """Absolute index one past the last URL."""
        return self.sequence_start + len(self.urls)

    def __len__(self) -> int:
        return len(self.urls)

    @classmethod
    def from_text(cls, sequence_start: int, text: str) -> "UrlBatch":
        """Build a batch from newline-delimited URLs, skipping blank lines."""
        urls = tuple(line.strip() for line in text.splitlines() if line.strip())
        return cls(sequence_start=sequence_start, urls=urls)
