"""In-memory stand-ins for the object store and for a Filesystem backend."""

from __future__ import annotations

import hashlib
import io
import threading
from dataclasses import dataclass, field
from pathlib import Path

from botocore.exceptions import ClientError

from s3knife.filesystem import File, Filesystem


def _client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@dataclass
class FakeObject:
    data: bytes
    content_type: str = "binary/octet-stream"
    storage_class: str = "STANDARD"
    acl: str | None = None
    etag: str | None = None

    @property
    def etag_header(self) -> str:
        return '"' + (self.etag or hashlib.md5(self.data).hexdigest()) + '"'


@dataclass
class FakeS3:
    """Implements the slice of the boto3 S3 client that s3knife calls."""

    page_size: int = 1000
    buckets: dict[str, dict[str, FakeObject]] = field(default_factory=dict)
    calls: list[tuple[str, dict]] = field(default_factory=list)
    fail_keys: set[str] = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    # -- helpers for tests ------------------------------------------------

    def add_bucket(self, name: str) -> dict[str, FakeObject]:
        return self.buckets.setdefault(name, {})

    def put(self, bucket: str, key: str, data: bytes | str, **kwargs) -> None:
        if isinstance(data, str):
            data = data.encode()
        self.add_bucket(bucket)[key] = FakeObject(data, **kwargs)

    def contents(self, bucket: str) -> dict[str, bytes]:
        return {key: obj.data for key, obj in self.buckets[bucket].items()}

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def _record(self, operation: str, **kwargs) -> None:
        with self._lock:
            self.calls.append((operation, kwargs))

    def _bucket(self, name: str, operation: str) -> dict[str, FakeObject]:
        bucket = self.buckets.get(name)
        if bucket is None:
            raise _client_error("NoSuchBucket", "The specified bucket does not exist", operation)
        return bucket

    # -- client surface ---------------------------------------------------

    def list_buckets(self) -> dict:
        self._record("list_buckets")
        return {"Buckets": [{"Name": name} for name in sorted(self.buckets)]}

    def create_bucket(self, Bucket: str, **kwargs) -> dict:
        self._record("create_bucket", Bucket=Bucket, **kwargs)
        if Bucket in self.buckets:
            raise _client_error("BucketAlreadyOwnedByYou", "Bucket exists", "CreateBucket")
        self.buckets[Bucket] = {}
        return {}

    def delete_bucket(self, Bucket: str) -> dict:
        self._record("delete_bucket", Bucket=Bucket)
        bucket = self._bucket(Bucket, "DeleteBucket")
        if bucket:
            raise _client_error("BucketNotEmpty", "The bucket you tried to delete is not empty", "DeleteBucket")
        del self.buckets[Bucket]
        return {}

    def list_objects_v2(
        self,
        Bucket: str,
        Prefix: str = "",
        ContinuationToken: str | None = None,
        StartAfter: str | None = None,
    ) -> dict:
        self._record("list_objects_v2", Bucket=Bucket, Prefix=Prefix, ContinuationToken=ContinuationToken)
        with self._lock:
            bucket = self._bucket(Bucket, "ListObjectsV2")
            keys = sorted(key for key in bucket if key.startswith(Prefix))
            after = ContinuationToken or StartAfter
            if after:
                keys = [key for key in keys if key > after]
            page, rest = keys[: self.page_size], keys[self.page_size :]
            response: dict = {"IsTruncated": bool(rest), "KeyCount": len(page)}
            if page:
                response["Contents"] = [
                    {
                        "Key": key,
                        "Size": len(bucket[key].data),
                        "ETag": bucket[key].etag_header,
                        "StorageClass": bucket[key].storage_class,
                    }
                    for key in page
                ]
            if rest:
                response["NextContinuationToken"] = page[-1]
            return response

    def get_object(self, Bucket: str, Key: str) -> dict:
        self._record("get_object", Bucket=Bucket, Key=Key)
        obj = self._bucket(Bucket, "GetObject").get(Key)
        if obj is None or Key in self.fail_keys:
            raise _client_error("NoSuchKey", "The specified key does not exist.", "GetObject")
        return {
            "Body": io.BytesIO(obj.data),
            "ContentLength": len(obj.data),
            "ContentType": obj.content_type,
            "StorageClass": obj.storage_class,
        }

    def upload_fileobj(self, Fileobj, Bucket: str, Key: str, ExtraArgs: dict | None = None) -> None:
        extra = dict(ExtraArgs or {})
        self._record("upload_fileobj", Bucket=Bucket, Key=Key, ExtraArgs=extra)
        if Key in self.fail_keys:
            raise _client_error("AccessDenied", "Access Denied", "PutObject")
        data = Fileobj.read()
        with self._lock:
            self._bucket(Bucket, "PutObject")[Key] = FakeObject(
                data,
                content_type=extra.get("ContentType", "binary/octet-stream"),
                storage_class=extra.get("StorageClass", "STANDARD"),
                acl=extra.get("ACL"),
            )

    def delete_object(self, Bucket: str, Key: str) -> dict:
        self._record("delete_object", Bucket=Bucket, Key=Key)
        if Key in self.fail_keys:
            raise _client_error("AccessDenied", "Access Denied", "DeleteObject")
        with self._lock:
            self._bucket(Bucket, "DeleteObject").pop(Key, None)
        return {}

    def delete_objects(self, Bucket: str, Delete: dict) -> dict:
        keys = [obj["Key"] for obj in Delete["Objects"]]
        self._record("delete_objects", Bucket=Bucket, Keys=keys)
        if len(keys) > 1000:
            raise _client_error("MalformedXML", "Too many keys", "DeleteObjects")
        deleted, errors = [], []
        with self._lock:
            bucket = self._bucket(Bucket, "DeleteObjects")
            for key in keys:
                if key in self.fail_keys:
                    errors.append({"Key": key, "Code": "AccessDenied", "Message": "Access Denied"})
                    continue
                bucket.pop(key, None)
                deleted.append({"Key": key})
        response: dict = {"Deleted": deleted}
        if errors:
            response["Errors"] = errors
        return response


class MemFile(File):
    def __init__(self, relative: str, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode()
        super().__init__(relative, len(data))
        self.data = data
        self.hash_calls = 0

    def _compute_md5(self) -> bytes:
        self.hash_calls += 1
        return hashlib.md5(self.data).digest()

    def open(self):
        return io.BytesIO(self.data)

    def delete(self) -> None:
        pass

    def __str__(self) -> str:
        return f"mem://{self.relative}"


class MemFilesystem(Filesystem):
    """Dict-backed filesystem; ``fail_after`` makes the listing raise part-way."""

    def __init__(self, entries: dict[str, bytes | str] | None = None, *, fail_after: int | None = None) -> None:
        super().__init__("mem://")
        self.entries: dict[str, bytes] = {}
        for relative, data in (entries or {}).items():
            self.entries[relative] = data.encode() if isinstance(data, str) else data
        self.fail_after = fail_after
        self._lock = threading.Lock()

    def _scan(self):
        for index, relative in enumerate(sorted(self.entries)):
            if self.fail_after is not None and index >= self.fail_after:
                raise OSError("listing interrupted")
            yield MemFile(relative, self.entries[relative])

    def create(self, src: File) -> None:
        with src.open() as reader:
            data = reader.read()
        with self._lock:
            self.entries[src.relative] = data

    def delete(self, relative: str) -> None:
        with self._lock:
            del self.entries[relative]


def write_tree(root: Path, files: dict[str, str | bytes]) -> Path:
    for relative, data in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data.encode() if isinstance(data, str) else data)
    return root


def read_tree(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }
