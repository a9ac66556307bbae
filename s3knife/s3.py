from __future__ import annotations

import binascii
import logging
import mimetypes
import posixpath
from contextlib import closing
from typing import Any, BinaryIO, Iterator

from s3knife.filesystem import File, Filesystem, md5_stream


logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(name: str) -> str:
    content_type, _ = mimetypes.guess_type(name)
    return content_type or DEFAULT_CONTENT_TYPE


def md5_from_etag(etag: str | None) -> bytes | None:
    """Decode a plain-upload ETag; multipart ETags (``<hex>-<parts>``) are not MD5s."""
    value = (etag or "").strip().strip('"')
    if len(value) != 32 or "-" in value:
        return None
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError):
        return None


class S3File(File):
    def __init__(
        self,
        client: Any,
        bucket: str,
        key: str,
        relative: str,
        size: int,
        etag: str | None = None,
        storage_class: str | None = None,
    ) -> None:
        super().__init__(relative, size)
        self.client = client
        self.bucket = bucket
        self.key = key
        self.etag = etag
        self.storage_class = storage_class

    @property
    def is_directory(self) -> bool:
        return self.key.endswith("/") and self.size == 0

    def _compute_md5(self) -> bytes:
        digest = md5_from_etag(self.etag)
        if digest is not None:
            return digest
        logger.debug("hashing %s by download, etag %r is not an MD5", self, self.etag)
        with closing(self.open()) as body:
            return md5_stream(body)

    def fetch(self) -> dict[str, Any]:
        """Raw get-object response: ``Body`` plus content metadata."""
        return self.client.get_object(Bucket=self.bucket, Key=self.key)

    def open(self) -> BinaryIO:
        return self.fetch()["Body"]

    def delete(self) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=self.key)

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class S3Filesystem(Filesystem):
    """Objects under ``s3://bucket/prefix``, with the prefix treated as a directory."""

    def __init__(self, client: Any, bucket: str, prefix: str = "", *, acl: str | None = None) -> None:
        super().__init__(f"s3://{bucket}/{prefix}")
        self.client = client
        self.bucket = bucket
        self.prefix = prefix
        self.acl = acl
        if prefix and not prefix.endswith("/"):
            self._exact_key: str | None = prefix
            self._dir_prefix = prefix + "/"
        else:
            self._exact_key = None
            self._dir_prefix = prefix

    def key_for(self, relative: str) -> str:
        return self._dir_prefix + relative

    def _pages(self) -> Iterator[dict[str, Any]]:
        token: str | None = None
        start_after: str | None = None
        page_number = 0
        while True:
            kwargs: dict[str, Any] = {"Bucket": self.bucket, "Prefix": self.prefix}
            if token:
                kwargs["ContinuationToken"] = token
            elif start_after:
                kwargs["StartAfter"] = start_after

            page = self.client.list_objects_v2(**kwargs)
            page_number += 1
            contents = page.get("Contents") or []
            logger.debug("%s page %d: %d object(s)", self.root, page_number, len(contents))
            yield page

            if not page.get("IsTruncated"):
                return
            token = page.get("NextContinuationToken")
            if not token:
                if not contents:
                    return
                # Some stores omit the token; resume after the last key seen.
                start_after = contents[-1]["Key"]

    def _scan(self) -> Iterator[File]:
        exact: dict[str, Any] | None = None
        has_children = False
        for page in self._pages():
            for obj in page.get("Contents") or []:
                key = obj["Key"]
                if key == self._exact_key:
                    # Held back: listed alone only if nothing sits under it.
                    exact = obj
                    continue
                if not key.startswith(self._dir_prefix):
                    continue
                relative = key[len(self._dir_prefix):]
                if not relative:
                    continue
                file = self._file(obj, relative)
                if file.is_directory:
                    # Directory markers have no local counterpart.
                    continue
                has_children = True
                yield file
        if exact is not None and not has_children:
            yield self._file(exact, posixpath.basename(exact["Key"]))

    def _file(self, obj: dict[str, Any], relative: str) -> S3File:
        return S3File(
            self.client,
            self.bucket,
            obj["Key"],
            relative,
            int(obj.get("Size") or 0),
            etag=obj.get("ETag"),
            storage_class=obj.get("StorageClass"),
        )

    def create(self, src: File) -> None:
        extra_args: dict[str, str] = {}
        if isinstance(src, S3File):
            # Object-to-object copy keeps the source's media metadata.
            response = src.fetch()
            body = response["Body"]
            content_type = response.get("ContentType")
            if content_type:
                extra_args["ContentType"] = content_type
            storage_class = src.storage_class or response.get("StorageClass")
            if storage_class:
                extra_args["StorageClass"] = storage_class
        else:
            body = src.open()
            extra_args["ContentType"] = guess_content_type(src.relative)
        if self.acl:
            extra_args["ACL"] = self.acl

        with closing(body):
            self.client.upload_fileobj(
                body,
                self.bucket,
                self.key_for(src.relative),
                ExtraArgs=extra_args,
            )

    def delete(self, relative: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=self.key_for(relative))


def list_buckets(client: Any) -> list[str]:
    response = client.list_buckets()
    return [bucket["Name"] for bucket in response.get("Buckets") or []]


def make_bucket(client: Any, name: str, *, region: str, acl: str | None = None) -> None:
    kwargs: dict[str, Any] = {"Bucket": name}
    if acl:
        kwargs["ACL"] = acl
    # us-east-1 rejects an explicit location constraint.
    if region and region != "us-east-1":
        kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
    client.create_bucket(**kwargs)


def remove_bucket(client: Any, name: str) -> None:
    client.delete_bucket(Bucket=name)
