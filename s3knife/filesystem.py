"""Uniform view over local directories and object-store prefixes.

Every backend yields :class:`File` entries in ascending order of their relative
path. The merge in :mod:`s3knife.diff` depends on that ordering, so backends
that cannot get it for free from their source sort before yielding.
"""

from __future__ import annotations

import hashlib
import logging
import queue
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, Callable, Iterator

from s3knife.errors import LocatorError

if TYPE_CHECKING:
    from s3knife.config import RunOptions


logger = logging.getLogger(__name__)

LISTING_BUFFER_SIZE = 1000
HASH_CHUNK_SIZE = 1024 * 1024
REMOTE_SCHEME = "s3://"
_REMOTE_LOCATOR = re.compile(r"^s3://([^/]+)/?(.*)$")


def md5_stream(stream: BinaryIO, chunk_size: int = HASH_CHUNK_SIZE) -> bytes:
    digest = hashlib.md5()
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        digest.update(chunk)
    return digest.digest()


class File(ABC):
    """One listed entry: a local file or a remote object."""

    relative: str
    size: int

    def __init__(self, relative: str, size: int) -> None:
        self.relative = relative
        self.size = size
        self._md5: bytes | None = None
        self._md5_lock = threading.Lock()

    @property
    def md5(self) -> bytes:
        """128-bit content fingerprint, computed once and cached."""
        with self._md5_lock:
            if self._md5 is None:
                self._md5 = self._compute_md5()
            return self._md5

    @property
    def is_directory(self) -> bool:
        return False

    @abstractmethod
    def _compute_md5(self) -> bytes: ...

    @abstractmethod
    def open(self) -> BinaryIO:
        """Open a fresh sequential read stream; the caller closes it."""

    @abstractmethod
    def delete(self) -> None: ...

    @abstractmethod
    def __str__(self) -> str: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.relative!r} {self.size}b>"


_DONE = object()


class Listing:
    """Single-pass iterator over a listing produced on a background thread.

    The producer writes into a bounded queue and blocks when it is full. Closing
    the listing early releases a blocked producer.
    """

    def __init__(
        self,
        producer: Callable[[], Iterator[File]],
        on_error: Callable[[BaseException], None],
        *,
        name: str,
        buffer_size: int = LISTING_BUFFER_SIZE,
    ) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=buffer_size)
        self._stop = threading.Event()
        self._finished = False
        self._on_error = on_error
        self._thread = threading.Thread(
            target=self._run,
            args=(producer,),
            name=f"s3knife-list:{name}",
            daemon=True,
        )
        self._thread.start()

    def _put(self, item: object) -> bool:
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False

    def _run(self, producer: Callable[[], Iterator[File]]) -> None:
        try:
            for file in producer():
                if not self._put(file):
                    return
        except Exception as exc:
            # Recorded before the end marker so the consumer sees it on exhaustion.
            self._on_error(exc)
        finally:
            self._put(_DONE)

    def __iter__(self) -> Listing:
        return self

    def __next__(self) -> File:
        if self._finished:
            raise StopIteration
        item = self._queue.get()
        if item is _DONE:
            self._finished = True
            raise StopIteration
        return item  # type: ignore[return-value]

    def close(self) -> None:
        self._stop.set()
        self._finished = True

    def __enter__(self) -> Listing:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Filesystem(ABC):
    """A root (local directory or container+prefix) that lists and accepts files."""

    def __init__(self, root: str) -> None:
        self.root = root
        self._error: BaseException | None = None
        self._error_lock = threading.Lock()

    @property
    def error(self) -> BaseException | None:
        """Enumeration failure of the last listing, valid once it is exhausted."""
        with self._error_lock:
            return self._error

    def _record_error(self, exc: BaseException) -> None:
        logger.debug("listing %s failed: %r", self.root, exc)
        with self._error_lock:
            if self._error is None:
                self._error = exc

    def files(self) -> Listing:
        """Start listing in the background and return the ordered entries."""
        with self._error_lock:
            self._error = None
        return Listing(self._scan, self._record_error, name=self.root)

    @abstractmethod
    def _scan(self) -> Iterator[File]:
        """Yield entries in ascending relative-path order; may raise."""

    @abstractmethod
    def create(self, src: File) -> None:
        """Write ``src`` at its relative path, replacing any existing entry."""

    @abstractmethod
    def delete(self, relative: str) -> None: ...

    def __str__(self) -> str:
        return self.root


@dataclass(slots=True)
class RemoteLocator:
    bucket: str
    prefix: str


def is_remote(locator: str) -> bool:
    return locator.startswith(REMOTE_SCHEME)


def parse_remote_locator(locator: str) -> RemoteLocator:
    match = _REMOTE_LOCATOR.match(locator.strip())
    if match is None:
        raise LocatorError(f"Not a bucket locator: {locator!r} (expected s3://bucket/prefix)")
    return RemoteLocator(bucket=match.group(1), prefix=match.group(2))


def bucket_name(locator: str) -> str:
    """Bucket name from ``s3://bucket/...`` or a bare ``bucket``."""
    value = locator.strip()
    if is_remote(value):
        return parse_remote_locator(value).bucket
    name = value.split("/", 1)[0]
    if not name:
        raise LocatorError(f"Missing bucket name in {locator!r}")
    return name


def open_filesystem(
    locator: str,
    *,
    client_factory: Callable[[], object],
    options: RunOptions,
) -> Filesystem:
    """Resolve a root locator to the matching backend."""
    from s3knife.local import LocalFilesystem
    from s3knife.s3 import S3Filesystem

    if is_remote(locator):
        parsed = parse_remote_locator(locator)
        return S3Filesystem(client_factory(), parsed.bucket, parsed.prefix, acl=options.acl)
    if not locator:
        raise LocatorError("Empty root locator")
    return LocalFilesystem(locator)
