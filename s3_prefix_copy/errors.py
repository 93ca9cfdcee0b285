"""Errors raised while copying objects between buckets.

Every error is terminal for the object (or listing) it names. The original
botocore exception is chained as ``__cause__``.
"""

from __future__ import annotations


class S3CopyError(Exception):
    """Base class for copy failures."""

    action = "copy"

    def __init__(self, bucket: str, key: str, detail: object = None):
        self.bucket = bucket
        self.key = key
        self.detail = detail
        message = f"{self.action} failed for s3://{bucket}/{key}"
        if detail is not None:
            message = f"{message}: {detail}"
        super().__init__(message)


class ListingError(S3CopyError):
    action = "listing"


class MetadataFetchError(S3CopyError):
    action = "head object"


class MetadataRewriteError(S3CopyError):
    action = "content type rewrite"


class SinglePartCopyError(S3CopyError):
    action = "single part copy"


class MultipartInitError(S3CopyError):
    action = "create multipart upload"


class PartCopyError(S3CopyError):
    action = "upload part copy"

    def __init__(
        self, bucket: str, key: str, part_number: int, detail: object = None
    ):
        self.part_number = part_number
        super().__init__(bucket, key, detail)

    def __str__(self) -> str:
        return f"{super().__str__()} (part {self.part_number})"


class CompleteUploadError(S3CopyError):
    action = "complete multipart upload"


__all__ = [
    "CompleteUploadError",
    "ListingError",
    "MetadataFetchError",
    "MetadataRewriteError",
    "MultipartInitError",
    "PartCopyError",
    "S3CopyError",
    "SinglePartCopyError",
]
