from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class S3Object:
    bucket: str
    key: str

    @property
    def bucket_key_path(self) -> str:
        """Return the ``CopySource`` locator for this object."""
        return f"{self.bucket}/{self.key}"

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True)
class PartRange:
    part_number: int
    start: int
    end: int

    @property
    def copy_source_range(self) -> str:
        return f"bytes={self.start}-{self.end}"

    @property
    def size(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class CompletedPart:
    part_number: int
    etag: str

    def as_dict(self) -> dict[str, object]:
        return {"ETag": self.etag, "PartNumber": self.part_number}


@dataclass
class RunAccounting:
    """Bookkeeping for one prefix copy, owned by the dispatcher loop."""

    planned: int = 0
    completed: int = 0
    listing_complete: bool = False

    @property
    def succeeded(self) -> bool:
        return self.listing_complete and self.completed == self.planned


def part_count(object_size: int, part_size: int) -> int:
    return math.ceil(object_size / part_size)


def plan_parts(object_size: int, part_size: int) -> list[PartRange]:
    """Split ``[0, object_size)`` into contiguous inclusive byte ranges.

    Args:
        object_size: Total size of the source object in bytes.
        part_size: Maximum size of each part in bytes.

    Returns:
        Ranges ordered by part number, starting at 1. The last range may be
        shorter than ``part_size``. An empty object yields no ranges.

    Raises:
        ValueError: If ``part_size`` is not positive or ``object_size`` is
            negative.
    """
    if part_size <= 0:
        msg = f"part_size must be positive, got {part_size}"
        raise ValueError(msg)
    if object_size < 0:
        msg = f"object_size must not be negative, got {object_size}"
        raise ValueError(msg)

    parts: list[PartRange] = []
    position = 0
    part_number = 1
    while position < object_size:
        last_byte = min(position + part_size - 1, object_size - 1)
        parts.append(PartRange(part_number, position, last_byte))
        part_number += 1
        position += part_size
    return parts


def normalize_etag(etag: str) -> str:
    """Strip the surrounding double quotes S3 puts around ETag values."""
    if len(etag) >= 2 and etag.startswith('"') and etag.endswith('"'):
        return etag[1:-1]
    return etag
