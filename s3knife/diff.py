"""Merge-join two ordered listings into create/update/delete actions.

Both inputs must be sorted ascending by relative path (plain string order).
A single forward pass compares one lookahead entry from each side, so the diff
runs in O(|source| + |destination|) and never holds either listing in memory.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator

from s3knife.errors import ListingError
from s3knife.filesystem import File, Filesystem
from s3knife.models import Action, ActionKind, SyncCounts


logger = logging.getLogger(__name__)


def _same_content(a: File, b: File) -> bool:
    return a.size == b.size and a.md5 == b.md5


def diff_files(
    source: Iterable[File],
    destination: Iterable[File],
    *,
    delete_extraneous: bool = False,
    counts: SyncCounts | None = None,
    check: Callable[[], None] | None = None,
) -> Iterator[Action]:
    """Yield the actions that make ``destination`` match ``source``.

    ``check`` is called before every step and after either side runs dry; it
    raises to abort the merge, e.g. when a listing failed part-way and its
    early end must not be read as "no more entries".
    """
    counts = counts if counts is not None else SyncCounts()
    source_iter = iter(source)
    dest_iter = iter(destination)

    def pull(iterator: Iterator[File]) -> File | None:
        entry = next(iterator, None)
        if entry is None and check is not None:
            check()
        return entry

    a = pull(source_iter)
    b = pull(dest_iter)
    while a is not None or b is not None:
        if check is not None:
            check()
        if b is None or (a is not None and a.relative < b.relative):
            counts.record(ActionKind.CREATE)
            yield Action(ActionKind.CREATE, a)
            a = pull(source_iter)
        elif a is None or a.relative > b.relative:
            if delete_extraneous:
                counts.record(ActionKind.DELETE)
                yield Action(ActionKind.DELETE, b)
            b = pull(dest_iter)
        else:
            try:
                unchanged = _same_content(a, b)
            except Exception as exc:
                # Unhashable content counts as changed; the copy reports the failure.
                logger.debug("comparing %s failed: %r", a.relative, exc)
                unchanged = False
            if unchanged:
                counts.add(unchanged=1)
            else:
                counts.record(ActionKind.UPDATE)
                yield Action(ActionKind.UPDATE, a)
            a = pull(source_iter)
            b = pull(dest_iter)


def raise_for_listing(*filesystems: Filesystem) -> None:
    for fs in filesystems:
        error = fs.error
        if error is not None:
            raise ListingError(fs.root, error)


def diff_filesystems(
    source: Filesystem,
    destination: Filesystem,
    *,
    delete_extraneous: bool = False,
    counts: SyncCounts | None = None,
    source_files: Iterable[File] | None = None,
    destination_files: Iterable[File] | None = None,
) -> Iterator[Action]:
    """Diff two filesystems, stopping with :class:`ListingError` if either listing fails.

    ``source_files``/``destination_files`` override the listings, e.g. to pass
    them through a path filter; they must come from the same filesystems.
    """
    return diff_files(
        source_files if source_files is not None else source.files(),
        destination_files if destination_files is not None else destination.files(),
        delete_extraneous=delete_extraneous,
        counts=counts,
        check=lambda: raise_for_listing(source, destination),
    )
