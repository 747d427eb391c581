# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 remote store tests against a mocked aiobotocore client.
"""

from datetime import datetime, UTC
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from etcdbackup.exceptions import (
    DeleteError,
    DownloadError,
    RemoteFailure,
    RemoteStoreError,
    UploadError,
)
from etcdbackup.storage import S3RemoteStore, classify_error


def _client_error(code: str, operation: str = "PutObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeSession:
    """Hands out the same mocked client for every create_client call."""

    def __init__(self, client):
        self.client = client
        self.create_calls = []

    def create_client(self, service, **kwargs):
        self.create_calls.append((service, kwargs))
        client = self.client

        class _Context:
            async def __aenter__(self):
                return client

            async def __aexit__(self, *exc):
                return False

        return _Context()


class FakeBody:
    def __init__(self, data: bytes, chunk: int = 4):
        self.data = data
        self.chunk = chunk

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def read(self, size: int = -1) -> bytes:
        n = min(size, self.chunk) if size > 0 else len(self.data)
        out, self.data = self.data[:n], self.data[n:]
        return out


class FakePaginator:
    def __init__(self, pages):
        self.pages = pages
        self.kwargs = None

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        pages = self.pages

        async def gen():
            for page in pages:
                if isinstance(page, Exception):
                    raise page
                yield page

        return gen()


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def s3_store(client):
    return S3RemoteStore(
        "test-bucket", region="us-east-1", session=FakeSession(client)
    )


@pytest.mark.asyncio
async def test_put_sends_body_metadata_and_storage_class(temp_dir, client, s3_store):
    artifact = temp_dir / "etcd-backup-20240715-123456.db.gz"
    artifact.write_bytes(b"compressed-snapshot")
    metadata = {"hostname": "node-1", "timestamp": "2024-07-15T12:34:56Z", "cluster": "rke2"}

    await s3_store.put("etcd-backups/node-1/" + artifact.name, artifact, metadata)

    client.put_object.assert_awaited_once_with(
        Bucket="test-bucket",
        Key="etcd-backups/node-1/etcd-backup-20240715-123456.db.gz",
        Body=b"compressed-snapshot",
        Metadata=metadata,
        StorageClass="STANDARD_IA",
    )
    assert s3_store._session.create_calls == [
        ("s3", {"region_name": "us-east-1", "endpoint_url": None})
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,reason",
    [
        (_client_error("AccessDenied"), RemoteFailure.AUTH_FAILURE),
        (_client_error("NoSuchBucket"), RemoteFailure.BUCKET_NOT_FOUND),
        (NoCredentialsError(), RemoteFailure.AUTH_FAILURE),
        (EndpointConnectionError(endpoint_url="https://s3"), RemoteFailure.NETWORK_FAILURE),
    ],
)
async def test_put_failure_carries_reason(temp_dir, client, s3_store, error, reason):
    artifact = temp_dir / "a.db.gz"
    artifact.write_bytes(b"x")
    client.put_object.side_effect = error

    with pytest.raises(UploadError) as exc_info:
        await s3_store.put("k", artifact, {})

    assert exc_info.value.reason is reason


@pytest.mark.asyncio
async def test_put_missing_file_is_upload_error(temp_dir, client, s3_store):
    with pytest.raises(UploadError):
        await s3_store.put("k", temp_dir / "absent.db.gz", {})
    client.put_object.assert_not_awaited()


@pytest.fixture
def multipart_store(client):
    return S3RemoteStore(
        "test-bucket",
        region="us-east-1",
        session=FakeSession(client),
        multipart_threshold=8,
        part_size=8,
    )


@pytest.mark.asyncio
async def test_large_put_uses_multipart_upload(temp_dir, client, multipart_store):
    artifact = temp_dir / "etcd-backup-20240715-123456.db"
    artifact.write_bytes(b"0123456789abcdefXYZ")
    client.create_multipart_upload.return_value = {"UploadId": "upload-1"}
    client.upload_part.side_effect = lambda **kwargs: {"ETag": f"etag-{kwargs['PartNumber']}"}
    metadata = {"hostname": "node-1"}

    await multipart_store.put("p/" + artifact.name, artifact, metadata)

    client.put_object.assert_not_awaited()
    client.create_multipart_upload.assert_awaited_once_with(
        Bucket="test-bucket",
        Key="p/etcd-backup-20240715-123456.db",
        Metadata=metadata,
        StorageClass="STANDARD_IA",
    )
    bodies = [call.kwargs["Body"] for call in client.upload_part.await_args_list]
    assert bodies == [b"01234567", b"89abcdef", b"XYZ"]
    assert [call.kwargs["UploadId"] for call in client.upload_part.await_args_list] == [
        "upload-1"
    ] * 3
    client.complete_multipart_upload.assert_awaited_once_with(
        Bucket="test-bucket",
        Key="p/etcd-backup-20240715-123456.db",
        UploadId="upload-1",
        MultipartUpload={
            "Parts": [
                {"ETag": "etag-1", "PartNumber": 1},
                {"ETag": "etag-2", "PartNumber": 2},
                {"ETag": "etag-3", "PartNumber": 3},
            ]
        },
    )
    client.abort_multipart_upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_put_at_threshold_is_single_request(temp_dir, client, multipart_store):
    artifact = temp_dir / "a.db.gz"
    artifact.write_bytes(b"12345678")

    await multipart_store.put("p/a.db.gz", artifact, {})

    client.put_object.assert_awaited_once()
    client.create_multipart_upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_part_aborts_multipart_upload(temp_dir, client, multipart_store):
    artifact = temp_dir / "etcd-backup-20240715-123456.db"
    artifact.write_bytes(b"x" * 20)
    client.create_multipart_upload.return_value = {"UploadId": "upload-1"}
    client.upload_part.side_effect = [
        {"ETag": "etag-1"},
        EndpointConnectionError(endpoint_url="https://s3"),
    ]

    with pytest.raises(UploadError) as exc_info:
        await multipart_store.put("p/" + artifact.name, artifact, {})

    assert exc_info.value.reason is RemoteFailure.NETWORK_FAILURE
    client.complete_multipart_upload.assert_not_awaited()
    client.abort_multipart_upload.assert_awaited_once_with(
        Bucket="test-bucket", Key="p/etcd-backup-20240715-123456.db", UploadId="upload-1"
    )


@pytest.mark.asyncio
async def test_failed_abort_still_reports_original_error(temp_dir, client, multipart_store):
    artifact = temp_dir / "etcd-backup-20240715-123456.db"
    artifact.write_bytes(b"x" * 20)
    client.create_multipart_upload.return_value = {"UploadId": "upload-1"}
    client.upload_part.side_effect = _client_error("AccessDenied", "UploadPart")
    client.abort_multipart_upload.side_effect = _client_error(
        "AccessDenied", "AbortMultipartUpload"
    )

    with pytest.raises(UploadError) as exc_info:
        await multipart_store.put("p/" + artifact.name, artifact, {})

    assert exc_info.value.reason is RemoteFailure.AUTH_FAILURE


@pytest.mark.asyncio
async def test_list_walks_every_page(client, s3_store):
    when = datetime(2024, 7, 15, tzinfo=UTC)
    paginator = FakePaginator(
        [
            {"Contents": [{"Key": "p/a.db.gz", "Size": 1, "LastModified": when}]},
            {},
            {"Contents": [{"Key": "p/b.db.gz", "Size": 2, "LastModified": when}]},
        ]
    )
    client.get_paginator = MagicMock(return_value=paginator)

    objects = [obj async for obj in s3_store.list("p/")]

    assert [(o.key, o.size, o.name) for o in objects] == [
        ("p/a.db.gz", 1, "a.db.gz"),
        ("p/b.db.gz", 2, "b.db.gz"),
    ]
    client.get_paginator.assert_called_once_with("list_objects_v2")
    assert paginator.kwargs["Bucket"] == "test-bucket"
    assert paginator.kwargs["Prefix"] == "p/"


@pytest.mark.asyncio
async def test_list_failure_raises_with_reason(client, s3_store):
    client.get_paginator = MagicMock(
        return_value=FakePaginator([_client_error("NoSuchBucket", "ListObjectsV2")])
    )

    with pytest.raises(RemoteStoreError) as exc_info:
        [obj async for obj in s3_store.list("p/")]

    assert exc_info.value.reason is RemoteFailure.BUCKET_NOT_FOUND


@pytest.mark.asyncio
async def test_delete_is_idempotent(client, s3_store):
    await s3_store.delete("p/a.db.gz")
    client.delete_object.side_effect = _client_error("NoSuchKey", "DeleteObject")
    await s3_store.delete("p/a.db.gz")

    assert client.delete_object.await_count == 2


@pytest.mark.asyncio
async def test_delete_auth_failure_raises(client, s3_store):
    client.delete_object.side_effect = _client_error("AccessDenied", "DeleteObject")

    with pytest.raises(DeleteError) as exc_info:
        await s3_store.delete("p/a.db.gz")

    assert exc_info.value.reason is RemoteFailure.AUTH_FAILURE


@pytest.mark.asyncio
async def test_get_streams_body_to_destination(temp_dir, client, s3_store):
    client.get_object.return_value = {"Body": FakeBody(b"snapshot-bytes")}
    destination = temp_dir / "etcd-backup-20240715-123456.db.gz"

    await s3_store.get("p/etcd-backup-20240715-123456.db.gz", destination)

    assert destination.read_bytes() == b"snapshot-bytes"
    assert not (temp_dir / "etcd-backup-20240715-123456.db.gz.part").exists()
    client.get_object.assert_awaited_once_with(
        Bucket="test-bucket", Key="p/etcd-backup-20240715-123456.db.gz"
    )


@pytest.mark.asyncio
async def test_get_missing_key_is_not_found(temp_dir, client, s3_store):
    client.get_object.side_effect = _client_error("NoSuchKey", "GetObject")
    destination = temp_dir / "absent.db.gz"

    with pytest.raises(DownloadError) as exc_info:
        await s3_store.get("p/absent.db.gz", destination)

    assert exc_info.value.reason is RemoteFailure.NOT_FOUND
    assert not destination.exists()
    assert not (temp_dir / "absent.db.gz.part").exists()


def test_classify_unknown_error_code():
    assert classify_error(_client_error("SlowDown")) is RemoteFailure.UNKNOWN
    assert classify_error(ValueError("boom")) is RemoteFailure.UNKNOWN
