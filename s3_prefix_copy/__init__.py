"""Server-side bulk copy of S3 objects sharing a key prefix."""

from .copier import S3Copier
from .errors import (
    CompleteUploadError,
    ListingError,
    MetadataFetchError,
    MetadataRewriteError,
    MultipartInitError,
    PartCopyError,
    S3CopyError,
    SinglePartCopyError,
)
from .objects import RunAccounting, S3Object, normalize_etag, plan_parts
from .settings import CopierSettings

__all__ = [
    "CompleteUploadError",
    "CopierSettings",
    "ListingError",
    "MetadataFetchError",
    "MetadataRewriteError",
    "MultipartInitError",
    "PartCopyError",
    "RunAccounting",
    "S3CopyError",
    "S3Copier",
    "S3Object",
    "SinglePartCopyError",
    "normalize_etag",
    "plan_parts",
]
