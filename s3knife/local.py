from __future__ import annotations

import logging
import os
import shutil
from contextlib import closing
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator

from s3knife.errors import UnsafePathError
from s3knife.filesystem import File, Filesystem, md5_stream


logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class LocalFile(File):
    def __init__(self, path: Path, relative: str, size: int, display: str) -> None:
        super().__init__(relative, size)
        self.path = path
        self._display = display

    def _compute_md5(self) -> bytes:
        with self.path.open("rb") as fh:
            return md5_stream(fh)

    def open(self) -> BinaryIO:
        return self.path.open("rb")

    def delete(self) -> None:
        self.path.unlink()

    def __str__(self) -> str:
        return self._display


def _raise(exc: OSError) -> None:
    raise exc


class LocalFilesystem(Filesystem):
    """A local directory tree, or a single file listed under its base name."""

    def __init__(self, root: str) -> None:
        super().__init__(root)
        self.path = Path(root)

    def _scan(self) -> Iterator[File]:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            # Nothing there yet, e.g. a fresh sync destination.
            return
        if not self.path.is_dir():
            yield LocalFile(self.path, self.path.name, stat.st_size, self.root)
            return

        candidates: list[tuple[str, Path, int]] = []
        for dirpath, _, filenames in os.walk(self.path, onerror=_raise):
            base = Path(dirpath)
            for filename in filenames:
                file_path = base / filename
                if not file_path.is_file():
                    continue
                relative = file_path.relative_to(self.path).as_posix()
                candidates.append((relative, file_path, file_path.stat().st_size))

        # Directory enumeration order is up to the OS; the merge needs plain
        # string order of relative paths.
        candidates.sort(key=lambda item: item[0])
        logger.debug("listed %d local file(s) under %s", len(candidates), self.path)
        for relative, file_path, size in candidates:
            yield LocalFile(file_path, relative, size, os.path.join(self.root, relative))

    def _target(self, relative: str) -> Path:
        parts = PurePosixPath(relative).parts
        if not parts or parts[0] == "/" or ".." in parts:
            raise UnsafePathError(self.root, relative)
        return self.path.joinpath(*parts)

    def create(self, src: File) -> None:
        target = self._target(src.relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        with closing(src.open()) as reader, target.open("wb") as writer:
            shutil.copyfileobj(reader, writer, COPY_CHUNK_SIZE)

    def delete(self, relative: str) -> None:
        path = self._target(relative)
        path.unlink()
        root = self.path.resolve()
        current = path.parent.resolve()
        while current != root and root in current.parents:
            try:
                current.rmdir()
            except OSError:
                break
            current = current.parent
