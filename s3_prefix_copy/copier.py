from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio
from anyio import CapacityLimiter, create_memory_object_stream, create_task_group
from anyio import from_thread, to_thread
from boto3.session import Session
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

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
from .objects import (
    CompletedPart,
    PartRange,
    RunAccounting,
    S3Object,
    normalize_etag,
    part_count,
    plan_parts,
)
from .settings import CopierSettings, load_settings_from_env

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from anyio.streams.memory import (
        MemoryObjectReceiveStream,
        MemoryObjectSendStream,
    )

LOG = logging.getLogger("s3_prefix_copy.copier")


@dataclass(frozen=True)
class _Listed:
    key: str


@dataclass(frozen=True)
class _ListingFinished:
    pass


@dataclass(frozen=True)
class _Done:
    key: str


@dataclass(frozen=True)
class _Failed:
    error: Exception


_Signal = _Listed | _ListingFinished | _Done | _Failed


def _check_cancelled() -> None:
    """Raise the cancellation exception if the calling worker was cancelled."""
    try:
        from_thread.check_cancelled()
    except RuntimeError:
        # not running in an anyio worker thread
        return


class S3Copier:
    """Server-side copy of objects between buckets of one S3 service."""

    def __init__(self, settings: CopierSettings, client: Any = None):
        self._settings = settings
        self._client = client if client is not None else self._build_client()

    @classmethod
    def from_env(cls) -> S3Copier:
        """Create an S3Copier instance from environment variables.

        Returns:
            S3Copier configured from environment variables.
        """
        return cls(settings=load_settings_from_env())

    @property
    def settings(self) -> CopierSettings:
        return self._settings

    def _build_client(self):
        session = Session(
            aws_access_key_id=self._settings.access_key,
            aws_secret_access_key=self._settings.secret_key,
            aws_session_token=self._settings.session_token,
            region_name=self._settings.region,
        )
        return session.client(
            "s3",
            endpoint_url=self._settings.endpoint,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 3},
                s3={"addressing_style": self._settings.addressing_style},
            ),
        )

    async def copy_with_prefix(
        self, src_bucket: str, dest_bucket: str, prefix: str
    ) -> RunAccounting:
        """Copy every object under ``prefix`` from ``src_bucket`` to ``dest_bucket``.

        Workers start before listing so copying overlaps with pagination. The
        first failure cancels the remaining work and is raised unchanged;
        objects copied before that point are left in the destination.

        Returns:
            The run accounting, with ``completed == planned``.

        Raises:
            S3CopyError: The first listing or copy failure observed. Any other
                exception raised while copying is re-raised the same way.
        """
        settings = self._settings
        accounting = RunAccounting()
        failure: Exception | None = None
        limiter = CapacityLimiter(settings.worker_count)

        job_send, job_receive = create_memory_object_stream[str](settings.queue_size)
        signal_send, signal_receive = create_memory_object_stream[_Signal](
            settings.queue_size
        )

        LOG.info(
            "copying s3://%s/%s* to s3://%s (workers=%d)",
            src_bucket,
            prefix,
            dest_bucket,
            settings.worker_count,
        )
        async with create_task_group() as tg:
            async with job_receive, signal_send:
                for worker_id in range(settings.worker_count):
                    tg.start_soon(
                        self._run_worker,
                        worker_id,
                        src_bucket,
                        dest_bucket,
                        job_receive.clone(),
                        signal_send.clone(),
                        limiter,
                    )
                tg.start_soon(
                    self._list_keys, src_bucket, prefix, job_send, signal_send.clone()
                )

            async with signal_receive:
                async for signal in signal_receive:
                    if isinstance(signal, _Listed):
                        accounting.planned += 1
                    elif isinstance(signal, _ListingFinished):
                        accounting.listing_complete = True
                    elif isinstance(signal, _Done):
                        accounting.completed += 1
                        LOG.info("%s copied.", signal.key)
                    else:
                        failure = signal.error
                        tg.cancel_scope.cancel()
                        break
                    if accounting.succeeded:
                        break

        if failure is not None:
            LOG.error(
                "copy of s3://%s/%s* aborted after %d of %d objects: %s",
                src_bucket,
                prefix,
                accounting.completed,
                accounting.planned,
                failure,
            )
            raise failure

        LOG.info(
            "copied %d objects from s3://%s/%s* to s3://%s",
            accounting.completed,
            src_bucket,
            prefix,
            dest_bucket,
        )
        return accounting

    def copy_with_prefix_sync(
        self, src_bucket: str, dest_bucket: str, prefix: str
    ) -> RunAccounting:
        """Blocking variant of :meth:`copy_with_prefix`."""
        return anyio.run(self.copy_with_prefix, src_bucket, dest_bucket, prefix)

    async def _run_worker(
        self,
        worker_id: int,
        src_bucket: str,
        dest_bucket: str,
        jobs: MemoryObjectReceiveStream[str],
        signals: MemoryObjectSendStream[_Signal],
        limiter: CapacityLimiter,
    ) -> None:
        async with jobs, signals:
            async for key in jobs:
                src = S3Object(bucket=src_bucket, key=key)
                dest = S3Object(bucket=dest_bucket, key=key)
                LOG.debug("worker %d copying %s -> %s", worker_id, src, dest)
                try:
                    await to_thread.run_sync(self.copy_to, src, dest, limiter=limiter)
                except Exception as error:
                    await signals.send(_Failed(error))
                    return
                await signals.send(_Done(key))

    async def _list_keys(
        self,
        bucket: str,
        prefix: str,
        jobs: MemoryObjectSendStream[str],
        signals: MemoryObjectSendStream[_Signal],
    ) -> None:
        async with jobs, signals:
            paginator = self._client.get_paginator("list_objects_v2")
            pages = iter(paginator.paginate(Bucket=bucket, Prefix=prefix))
            while True:
                try:
                    page = await to_thread.run_sync(next, pages, None)
                except (BotoCoreError, ClientError) as error:
                    await signals.send(_Failed(ListingError(bucket, prefix, error)))
                    return
                if page is None:
                    break
                for item in page.get("Contents", []):
                    key = item["Key"]
                    await signals.send(_Listed(key))
                    await jobs.send(key)
            await signals.send(_ListingFinished())

    def copy_to(self, src: S3Object, dest: S3Object) -> None:
        """Copy one object, choosing single-shot or multipart by size."""
        head = self._head_object(src)

        if self._is_manifest(src.key):
            self._ensure_manifest_content_type(src, head)
            LOG.debug("content type updated for %s", src)

        object_size = head["ContentLength"]
        if object_size <= self._settings.single_part_limit:
            self._copy_single_part(src, dest)
        else:
            self.copy_multipart(src, dest)

    def copy_multipart(self, src: S3Object, dest: S3Object) -> None:
        """Copy one object part by part with ``UploadPartCopy``.

        Parts are copied sequentially in ascending order. Any failure or
        cancellation after the upload is created aborts it unless
        ``abort_on_failure`` is disabled.
        """
        head = self._head_object(src)
        object_size = head["ContentLength"]

        with self._multipart_upload(dest, head) as upload_id:
            parts = plan_parts(object_size, self._settings.part_size)
            LOG.debug(
                "multipart copy %s -> %s size=%d parts=%d",
                src,
                dest,
                object_size,
                part_count(object_size, self._settings.part_size),
            )
            completed: list[CompletedPart] = []
            for part in parts:
                _check_cancelled()
                completed.append(self._upload_part_copy(src, dest, part, upload_id))
            self._complete_multipart_upload(dest, upload_id, completed)

        LOG.debug("multipart copy %s -> %s complete", src, dest)

    def _is_manifest(self, key: str) -> bool:
        suffixes = self._settings.manifest_suffixes
        return bool(suffixes) and key.endswith(tuple(suffixes))

    def _head_object(self, obj: S3Object) -> Mapping[str, Any]:
        try:
            return self._client.head_object(Bucket=obj.bucket, Key=obj.key)
        except (BotoCoreError, ClientError) as error:
            raise MetadataFetchError(obj.bucket, obj.key, error) from error

    def _ensure_manifest_content_type(
        self, src: S3Object, head: Mapping[str, Any]
    ) -> None:
        try:
            self._client.copy_object(
                Bucket=src.bucket,
                Key=src.key,
                CopySource=src.bucket_key_path,
                ContentType=self._settings.manifest_content_type,
                Metadata=head.get("Metadata") or {},
                MetadataDirective="REPLACE",
            )
        except (BotoCoreError, ClientError) as error:
            raise MetadataRewriteError(src.bucket, src.key, error) from error

    def _copy_single_part(self, src: S3Object, dest: S3Object) -> None:
        try:
            self._client.copy_object(
                Bucket=dest.bucket,
                Key=dest.key,
                CopySource=src.bucket_key_path,
            )
        except (BotoCoreError, ClientError) as error:
            raise SinglePartCopyError(dest.bucket, dest.key, error) from error
        LOG.debug("single part copy %s -> %s", src, dest)

    @contextmanager
    def _multipart_upload(
        self, dest: S3Object, src_head: Mapping[str, Any]
    ) -> Iterator[str]:
        upload_id = self._create_multipart_upload(dest, src_head)
        try:
            yield upload_id
        except BaseException:
            if self._settings.abort_on_failure:
                self._abort_multipart_upload(dest, upload_id)
            else:
                LOG.warning(
                    "leaving multipart upload %s for %s in place", upload_id, dest
                )
            raise

    def _create_multipart_upload(
        self, dest: S3Object, src_head: Mapping[str, Any]
    ) -> str:
        create_kwargs: dict[str, Any] = {
            "Bucket": dest.bucket,
            "Key": dest.key,
            "Metadata": src_head.get("Metadata") or {},
        }
        if src_head.get("ContentType"):
            create_kwargs["ContentType"] = src_head["ContentType"]
        try:
            result = self._client.create_multipart_upload(**create_kwargs)
        except (BotoCoreError, ClientError) as error:
            raise MultipartInitError(dest.bucket, dest.key, error) from error
        return result["UploadId"]

    def _upload_part_copy(
        self, src: S3Object, dest: S3Object, part: PartRange, upload_id: str
    ) -> CompletedPart:
        try:
            result = self._client.upload_part_copy(
                Bucket=dest.bucket,
                Key=dest.key,
                CopySource=src.bucket_key_path,
                CopySourceRange=part.copy_source_range,
                PartNumber=part.part_number,
                UploadId=upload_id,
            )
        except (BotoCoreError, ClientError) as error:
            raise PartCopyError(
                dest.bucket, dest.key, part.part_number, error
            ) from error
        etag = (result.get("CopyPartResult") or {}).get("ETag")
        if not etag:
            raise PartCopyError(
                dest.bucket, dest.key, part.part_number, "response has no ETag"
            )
        return CompletedPart(part_number=part.part_number, etag=normalize_etag(etag))

    def _complete_multipart_upload(
        self, dest: S3Object, upload_id: str, parts: list[CompletedPart]
    ) -> None:
        try:
            self._client.complete_multipart_upload(
                Bucket=dest.bucket,
                Key=dest.key,
                MultipartUpload={"Parts": [part.as_dict() for part in parts]},
                UploadId=upload_id,
            )
        except (BotoCoreError, ClientError) as error:
            raise CompleteUploadError(dest.bucket, dest.key, error) from error

    def _abort_multipart_upload(self, dest: S3Object, upload_id: str) -> None:
        try:
            self._client.abort_multipart_upload(
                Bucket=dest.bucket, Key=dest.key, UploadId=upload_id
            )
        except (BotoCoreError, ClientError):
            LOG.warning(
                "failed to abort multipart upload %s for %s (non-fatal)",
                upload_id,
                dest,
                exc_info=True,
            )
            return
        LOG.info("aborted multipart upload %s for %s", upload_id, dest)
