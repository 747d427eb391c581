# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Remote Store - backup artifacts in an S3 (or S3-compatible) bucket.

Objects are stored as:
    s3://<bucket>/<prefix>/<hostname>/<artifact file name>

with hostname, timestamp and cluster carried as object metadata. A client
is opened per operation from one aiobotocore session.
"""

from pathlib import Path
from typing import Any, AsyncIterator, Mapping

import aiofiles
import structlog
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)

from etcdbackup.exceptions import (
    DeleteError,
    DownloadError,
    RemoteFailure,
    RemoteStoreError,
    UploadError,
)
from etcdbackup.models import ObjectInfo
from etcdbackup.storage.base import RemoteStore

logger = structlog.get_logger()

_AUTH_CODES = {
    "AccessDenied",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
    "AllAccessDisabled",
    "403",
}
_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}

_DOWNLOAD_CHUNK = 1024 * 1024

# S3 rejects single PutObject bodies over 5 GiB and parts under 5 MiB
DEFAULT_MULTIPART_THRESHOLD = 64 * 1024 * 1024
DEFAULT_PART_SIZE = 64 * 1024 * 1024


def classify_error(error: Exception) -> RemoteFailure:
    """Map a botocore/aiohttp exception to a RemoteFailure reason."""
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        if code == "NoSuchBucket":
            return RemoteFailure.BUCKET_NOT_FOUND
        if code in _AUTH_CODES:
            return RemoteFailure.AUTH_FAILURE
        if code in _NOT_FOUND_CODES:
            return RemoteFailure.NOT_FOUND
        return RemoteFailure.UNKNOWN
    if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
        return RemoteFailure.AUTH_FAILURE
    if isinstance(error, (BotoConnectionError, OSError)):
        return RemoteFailure.NETWORK_FAILURE
    return RemoteFailure.UNKNOWN


def create_session(profile: str | None = None) -> Any:
    """Create an aiobotocore session, optionally bound to a named profile."""
    from aiobotocore.session import AioSession

    return AioSession(profile=profile) if profile else AioSession()


class S3RemoteStore(RemoteStore):
    """RemoteStore backed by S3 through aiobotocore."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str = "us-west-2",
        profile: str | None = None,
        endpoint_url: str | None = None,
        storage_class: str | None = "STANDARD_IA",
        session: Any = None,
        list_batch_size: int = 1000,
        multipart_threshold: int = DEFAULT_MULTIPART_THRESHOLD,
        part_size: int = DEFAULT_PART_SIZE,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.storage_class = storage_class
        self.list_batch_size = list_batch_size
        self.multipart_threshold = multipart_threshold
        self.part_size = part_size
        self._session = session if session is not None else create_session(profile)

    def _client(self) -> Any:
        return self._session.create_client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
        )

    async def put(self, key: str, local_path: Path, metadata: Mapping[str, str]) -> None:
        """
        Upload a local file.

        Files up to multipart_threshold go in a single PutObject request;
        larger files are streamed as a multipart upload of part_size chunks,
        which is aborted if any part fails.

        Raises:
            UploadError: reason AUTH_FAILURE, NETWORK_FAILURE, BUCKET_NOT_FOUND
                or UNKNOWN
        """
        try:
            size = Path(local_path).stat().st_size
        except OSError as e:
            raise UploadError(
                f"Cannot read artifact for upload: {e}",
                details={"path": str(local_path), "key": key},
            ) from e

        extra = {"Metadata": dict(metadata)}
        if self.storage_class:
            extra["StorageClass"] = self.storage_class

        multipart = size > self.multipart_threshold
        try:
            async with self._client() as s3_client:
                if multipart:
                    await self._put_multipart(s3_client, key, local_path, extra)
                else:
                    async with aiofiles.open(local_path, "rb") as f:
                        body = await f.read()
                    await s3_client.put_object(
                        Bucket=self.bucket, Key=key, Body=body, **extra
                    )
        except (ClientError, BotoCoreError, OSError) as e:
            reason = classify_error(e)
            raise UploadError(
                f"Upload to s3://{self.bucket}/{key} failed: {e}",
                reason=reason,
                details={"key": key, "reason": reason.value},
            ) from e

        logger.info(
            "object_uploaded",
            bucket=self.bucket,
            key=key,
            size=size,
            multipart=multipart,
            storage_class=self.storage_class,
        )

    async def _put_multipart(
        self, s3_client: Any, key: str, local_path: Path, extra: dict
    ) -> None:
        upload = await s3_client.create_multipart_upload(
            Bucket=self.bucket, Key=key, **extra
        )
        upload_id = upload["UploadId"]
        parts = []

        try:
            async with aiofiles.open(local_path, "rb") as f:
                part_number = 1
                while True:
                    chunk = await f.read(self.part_size)
                    if not chunk:
                        break
                    response = await s3_client.upload_part(
                        Bucket=self.bucket,
                        Key=key,
                        UploadId=upload_id,
                        PartNumber=part_number,
                        Body=chunk,
                    )
                    parts.append({"ETag": response["ETag"], "PartNumber": part_number})
                    logger.debug("part_uploaded", key=key, part=part_number, size=len(chunk))
                    part_number += 1

            await s3_client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except (ClientError, BotoCoreError, OSError):
            try:
                await s3_client.abort_multipart_upload(
                    Bucket=self.bucket, Key=key, UploadId=upload_id
                )
            except (ClientError, BotoCoreError, OSError) as abort_error:
                logger.warning(
                    "multipart_abort_failed",
                    key=key,
                    upload_id=upload_id,
                    error=str(abort_error),
                )
            raise

    async def list(self, prefix: str) -> AsyncIterator[ObjectInfo]:
        """
        Yield every object under prefix, in S3's key order.

        Raises:
            RemoteStoreError: If the listing fails part-way
        """
        try:
            async with self._client() as s3_client:
                paginator = s3_client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(
                    Bucket=self.bucket,
                    Prefix=prefix,
                    PaginationConfig={"PageSize": self.list_batch_size},
                ):
                    for obj in page.get("Contents", []):
                        yield ObjectInfo(
                            key=obj["Key"],
                            size=int(obj.get("Size", 0)),
                            last_modified=obj["LastModified"],
                        )
        except (ClientError, BotoCoreError, OSError) as e:
            reason = classify_error(e)
            raise RemoteStoreError(
                f"Listing s3://{self.bucket}/{prefix} failed: {e}",
                reason=reason,
                details={"prefix": prefix, "reason": reason.value},
            ) from e

    async def delete(self, key: str) -> None:
        """
        Delete an object. Deleting an absent key succeeds.

        Raises:
            DeleteError: For any failure other than absence
        """
        try:
            async with self._client() as s3_client:
                await s3_client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError, OSError) as e:
            reason = classify_error(e)
            if reason is RemoteFailure.NOT_FOUND:
                logger.debug("object_already_absent", key=key)
                return
            raise DeleteError(
                f"Delete of s3://{self.bucket}/{key} failed: {e}",
                reason=reason,
                details={"key": key, "reason": reason.value},
            ) from e

        logger.info("object_deleted", bucket=self.bucket, key=key)

    async def get(self, key: str, destination: Path) -> None:
        """
        Download an object to destination.

        Data is streamed into `<destination>.part` and renamed on success,
        so a failed download never leaves a truncated artifact behind.

        Raises:
            DownloadError: reason NOT_FOUND when the key is absent
        """
        destination = Path(destination)
        partial = destination.with_name(destination.name + ".part")
        size = 0

        try:
            async with self._client() as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket, Key=key)
                async with response["Body"] as stream:
                    async with aiofiles.open(partial, "wb") as f:
                        while True:
                            chunk = await stream.read(_DOWNLOAD_CHUNK)
                            if not chunk:
                                break
                            await f.write(chunk)
                            size += len(chunk)
            partial.replace(destination)
        except (ClientError, BotoCoreError, OSError) as e:
            if partial.exists():
                partial.unlink()
            reason = classify_error(e)
            raise DownloadError(
                f"Download of s3://{self.bucket}/{key} failed: {e}",
                reason=reason,
                details={"key": key, "reason": reason.value},
            ) from e

        logger.info(
            "object_downloaded",
            bucket=self.bucket,
            key=key,
            path=str(destination),
            size=size,
        )
