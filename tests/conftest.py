"""
Shared test fixtures and helpers for the cafstore test suite.

``FakeS3Client`` is an in-memory stand-in for an aiobotocore S3 client.
It implements only the calls the storage adapters make and raises real
``botocore`` ``ClientError``s shaped like the ones S3 returns.
"""

import hashlib
import io
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError

from cafstore.storage import FilesystemStorageAdapter, S3StorageAdapter, S3StoreConfig
from cafstore.storage.config import MIN_PART_SIZE

BUCKET_NAME = "test-bucket-c5883e23-e48d-49cf-9f15-08ad90e686d5"
ENDPOINT_URL = "http://s3.test"


def make_client_error(code: str, message: str, status: int, operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


def _etag(data: bytes) -> str:
    return '"%s"' % hashlib.md5(data).hexdigest()


# ============================================================================
# Fake S3
# ============================================================================


class FakeBody:
    """Mimics aiobotocore's StreamingBody."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)
        self.closed = False

    async def read(self, amt: Optional[int] = None) -> bytes:
        return self._buffer.read(-1 if amt is None else amt)

    def close(self) -> None:
        self.closed = True


class FakeS3Client:
    """In-memory S3 with the subset of the API cafstore uses."""

    def __init__(self, endpoint_url: str = ENDPOINT_URL):
        self.meta = SimpleNamespace(endpoint_url=endpoint_url)
        self.buckets: Dict[str, Dict[str, bytes]] = {}
        self.acls: Dict[tuple, Any] = {}
        self.uploads: Dict[str, Dict[str, Any]] = {}
        self.aborted: List[str] = []
        self.bodies: List[FakeBody] = []
        self.calls: List[str] = []

    def create_bucket(self, name: str) -> None:
        self.buckets[name] = {}

    def objects(self, bucket: str = BUCKET_NAME) -> Dict[str, bytes]:
        return self.buckets[bucket]

    def _bucket(self, name: str, operation: str) -> Dict[str, bytes]:
        if name not in self.buckets:
            raise make_client_error(
                "NoSuchBucket", "The specified bucket does not exist", 404, operation,
            )
        return self.buckets[name]

    def _object(self, bucket: str, key: str, operation: str) -> bytes:
        objects = self._bucket(bucket, operation)
        if key not in objects:
            raise make_client_error(
                "NoSuchKey", "The specified key does not exist.", 404, operation,
            )
        return objects[key]

    async def put_object(self, Bucket: str, Key: str, Body: bytes, **kwargs: Any) -> dict:
        self.calls.append("put_object")
        self._bucket(Bucket, "PutObject")[Key] = bytes(Body)
        return {"ETag": _etag(Body)}

    async def create_multipart_upload(self, Bucket: str, Key: str, **kwargs: Any) -> dict:
        self.calls.append("create_multipart_upload")
        self._bucket(Bucket, "CreateMultipartUpload")
        upload_id = uuid.uuid4().hex
        self.uploads[upload_id] = {"Bucket": Bucket, "Key": Key, "Parts": {}}
        return {"Bucket": Bucket, "Key": Key, "UploadId": upload_id}

    async def upload_part(
        self, Bucket: str, Key: str, UploadId: str, PartNumber: int, Body: bytes,
    ) -> dict:
        self.calls.append("upload_part")
        if UploadId not in self.uploads:
            raise make_client_error(
                "NoSuchUpload", "The specified upload does not exist.", 404, "UploadPart",
            )
        self.uploads[UploadId]["Parts"][PartNumber] = bytes(Body)
        return {"ETag": _etag(Body)}

    async def complete_multipart_upload(
        self, Bucket: str, Key: str, UploadId: str, MultipartUpload: dict,
    ) -> dict:
        self.calls.append("complete_multipart_upload")
        upload = self.uploads.pop(UploadId)
        stored = upload["Parts"]
        data = b"".join(stored[part["PartNumber"]] for part in MultipartUpload["Parts"])
        for part in MultipartUpload["Parts"]:
            assert part["ETag"] == _etag(stored[part["PartNumber"]])
        self._bucket(Bucket, "CompleteMultipartUpload")[Key] = data
        return {
            "Location": f"{self.meta.endpoint_url}/{Bucket}/{Key}",
            "Bucket": Bucket,
            "Key": Key,
            "ETag": '"%s-%d"' % (hashlib.md5(data).hexdigest(), len(stored)),
        }

    async def abort_multipart_upload(self, Bucket: str, Key: str, UploadId: str) -> dict:
        self.calls.append("abort_multipart_upload")
        self.uploads.pop(UploadId, None)
        self.aborted.append(UploadId)
        return {}

    async def get_object(self, Bucket: str, Key: str) -> dict:
        self.calls.append("get_object")
        data = self._object(Bucket, Key, "GetObject")
        body = FakeBody(data)
        self.bodies.append(body)
        return {"Body": body, "ContentLength": len(data), "ETag": _etag(data)}

    async def head_object(self, Bucket: str, Key: str) -> dict:
        self.calls.append("head_object")
        # HEAD responses carry no body, so S3 only reports the status; a
        # missing bucket looks exactly like a missing key
        objects = self.buckets.get(Bucket, {})
        if Key not in objects:
            raise make_client_error("404", "Not Found", 404, "HeadObject")
        return {"ContentLength": len(objects[Key]), "ETag": _etag(objects[Key])}

    async def head_bucket(self, Bucket: str) -> dict:
        self.calls.append("head_bucket")
        if Bucket not in self.buckets:
            raise make_client_error("404", "Not Found", 404, "HeadBucket")
        return {"ResponseMetadata": {"HTTPStatusCode": 200}}

    async def copy_object(
        self, Bucket: str, Key: str, CopySource: dict, ACL: Optional[str] = None,
    ) -> dict:
        self.calls.append("copy_object")
        data = self._object(CopySource["Bucket"], CopySource["Key"], "CopyObject")
        self._bucket(Bucket, "CopyObject")[Key] = data
        if ACL is not None:
            self.acls[(Bucket, Key)] = ACL
        return {
            "CopyObjectResult": {
                "ETag": _etag(data),
                "LastModified": datetime.now(timezone.utc),
            },
        }

    async def delete_object(self, Bucket: str, Key: str) -> dict:
        self.calls.append("delete_object")
        self._bucket(Bucket, "DeleteObject").pop(Key, None)
        return {"ResponseMetadata": {"HTTPStatusCode": 204}}

    async def put_object_acl(
        self,
        Bucket: str,
        Key: str,
        ACL: Optional[str] = None,
        AccessControlPolicy: Optional[dict] = None,
    ) -> dict:
        self.calls.append("put_object_acl")
        self._object(Bucket, Key, "PutObjectAcl")
        self.acls[(Bucket, Key)] = ACL if ACL is not None else AccessControlPolicy
        return {"ResponseMetadata": {"HTTPStatusCode": 200}}


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def bucket() -> str:
    return BUCKET_NAME


@pytest.fixture
def client_error():
    """Factory for botocore ClientErrors: ``client_error(code, message, status, op)``."""
    return make_client_error


@pytest.fixture
def s3_client() -> FakeS3Client:
    client = FakeS3Client()
    client.create_bucket(BUCKET_NAME)
    return client


@pytest.fixture
def s3_adapter(s3_client) -> S3StorageAdapter:
    return S3StorageAdapter(
        S3StoreConfig(client=s3_client, bucket=BUCKET_NAME, part_size=MIN_PART_SIZE)
    )


@pytest.fixture
def fs_adapter(tmp_path) -> FilesystemStorageAdapter:
    return FilesystemStorageAdapter(root=str(tmp_path / "blobs"))


@pytest.fixture(params=["s3", "filesystem"])
def backend(request, s3_adapter, fs_adapter):
    """Every backend, for contract tests."""
    if request.param == "s3":
        return s3_adapter
    return fs_adapter
