"""Command orchestration: wires listings, the worker pool, the diff engine,
batch deletes and search together for each CLI command."""

from __future__ import annotations

import gzip
import logging
import shutil
import tempfile
import time
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Callable, Iterable

from s3knife.batch import BatchCollector, DeleteBatch, delete_batch
from s3knife.config import RunOptions
from s3knife.diff import diff_filesystems
from s3knife.errors import ListingError
from s3knife.filesystem import File, Filesystem, bucket_name, open_filesystem
from s3knife.local import LocalFilesystem
from s3knife.models import Action, ActionKind, SyncCounts
from s3knife.output import Reporter
from s3knife.pool import WorkerPool
from s3knife.s3 import S3File, list_buckets, make_bucket, remove_bucket
from s3knife.search import GZIP_SUFFIX, StreamSearcher


logger = logging.getLogger(__name__)

SPOOL_MAX_BYTES = 8 * 1024 * 1024
COPY_CHUNK_SIZE = 1024 * 1024
NO_FILES_FOUND = "No files found."


@dataclass(slots=True)
class CommandContext:
    options: RunOptions
    reporter: Reporter
    client_factory: Callable[[], Any]
    region: str = "us-east-1"


@dataclass(slots=True)
class CommandResult:
    ok: bool = True
    files: int = 0
    total_bytes: int = 0
    counts: SyncCounts = field(default_factory=SyncCounts)
    first_error: BaseException | None = None

    def fail(self, exc: BaseException) -> None:
        self.ok = False
        if self.first_error is None:
            self.first_error = exc

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


def _subject(item: object) -> str:
    if isinstance(item, Action):
        return item.file.relative
    if isinstance(item, DeleteBatch):
        return f"s3://{item.bucket}/ ({len(item.keys)} keys)"
    return str(item)


def _open_all(ctx: CommandContext, roots: Iterable[str]) -> list[Filesystem]:
    # Resolve every locator before any I/O so a bad one fails the whole command.
    return [
        open_filesystem(root, client_factory=ctx.client_factory, options=ctx.options)
        for root in roots
    ]


def _new_pool(ctx: CommandContext, handler: Callable[[Any], None], name: str) -> WorkerPool:
    return WorkerPool(
        handler,
        size=ctx.options.parallel,
        queue_size=ctx.options.queue_size,
        ignore_errors=ctx.options.ignore_errors,
        on_error=lambda item, exc: ctx.reporter.error(_subject(item), exc),
        name=f"s3knife-{name}",
    )


def _finish_pool(pool: WorkerPool, result: CommandResult) -> None:
    if not pool.ok and pool.first_error is not None:
        result.fail(pool.first_error)


def _iterate_files(
    ctx: CommandContext,
    filesystems: list[Filesystem],
    result: CommandResult,
    consume: Callable[[File], bool],
) -> None:
    """Feed every filtered entry of every root to ``consume`` in listing order.

    ``consume`` returns False to stop early. A failed listing is reported once
    for its root and marks the result failed; the remaining roots still run.
    """
    for fs in filesystems:
        with fs.files() as listing:
            for file in ctx.options.path_filter.apply(listing):
                result.files += 1
                result.total_bytes += file.size
                if not consume(file):
                    return
        if fs.error is not None:
            error = ListingError(fs.root, fs.error)
            ctx.reporter.error(fs.root, fs.error)
            result.fail(error)


def _write_spool(reporter: Reporter, spool: BinaryIO) -> None:
    spool.seek(0)
    with reporter.exclusive():
        while True:
            chunk = spool.read(COPY_CHUNK_SIZE)
            if not chunk:
                break
            reporter.write_bytes(chunk)


def _report_empty(ctx: CommandContext, result: CommandResult) -> None:
    if result.files == 0 and result.ok:
        ctx.reporter.notice(NO_FILES_FOUND)


def list_all_buckets(ctx: CommandContext) -> CommandResult:
    result = CommandResult()
    try:
        names = list_buckets(ctx.client_factory())
    except Exception as exc:
        ctx.reporter.error("ls", exc)
        result.fail(exc)
        return result
    for name in names:
        ctx.reporter.line(f"s3://{name}/")
    result.files = len(names)
    return result


def list_keys(ctx: CommandContext, roots: list[str]) -> CommandResult:
    result = CommandResult()
    filesystems = _open_all(ctx, roots)
    quiet = ctx.options.quiet

    def show(file: File) -> bool:
        ctx.reporter.line(str(file) if quiet else f"{file}\t{file.size}b")
        return True

    _iterate_files(ctx, filesystems, result, show)
    if result.files == 0:
        _report_empty(ctx, result)
    elif not quiet:
        ctx.reporter.line(f"\n{result.files} files, {result.total_bytes} bytes")
    return result


def get_keys(ctx: CommandContext, roots: list[str], destination: str | Path = ".") -> CommandResult:
    """Download every entry under ``destination`` at its relative path."""
    result = CommandResult()
    filesystems = _open_all(ctx, roots)
    target = LocalFilesystem(str(destination))

    def download(file: File) -> None:
        if not ctx.options.dry_run:
            target.create(file)
        ctx.reporter.progress(f"{file} -> {file.relative} ({file.size} bytes)")

    with _new_pool(ctx, download, "get") as pool:
        _iterate_files(ctx, filesystems, result, pool.submit)
    _finish_pool(pool, result)
    _report_empty(ctx, result)
    return result


def cat_keys(ctx: CommandContext, roots: list[str]) -> CommandResult:
    """Write the content of every entry to the output, gunzipping ``.gz`` names."""
    result = CommandResult()
    filesystems = _open_all(ctx, roots)

    def cat(file: File) -> None:
        # Download in parallel, but emit each object as one uninterrupted block.
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as spool:
            with closing(file.open()) as raw:
                if str(file).endswith(GZIP_SUFFIX):
                    with gzip.GzipFile(fileobj=raw, mode="rb") as stream:
                        shutil.copyfileobj(stream, spool, COPY_CHUNK_SIZE)
                else:
                    shutil.copyfileobj(raw, spool, COPY_CHUNK_SIZE)
            _write_spool(ctx.reporter, spool)

    with _new_pool(ctx, cat, "cat") as pool:
        _iterate_files(ctx, filesystems, result, pool.submit)
    _finish_pool(pool, result)
    _report_empty(ctx, result)
    return result


def grep_keys(ctx: CommandContext, pattern: str, roots: list[str]) -> CommandResult:
    result = CommandResult()
    filesystems = _open_all(ctx, roots)
    options = ctx.options
    searcher = StreamSearcher(
        pattern.encode("utf-8"),
        ignore_case=options.ignore_case,
        files_with_matches=options.files_with_matches,
    )

    def grep(file: File) -> None:
        if options.files_with_matches:
            with closing(searcher.search_file(file)) as matches:
                if next(matches, None) is not None:
                    ctx.reporter.line(str(file))
            return
        # Matched lines are spooled so one file's output stays together.
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as spool:
            for match in searcher.search_file(file):
                spool.write(match.render(with_filename=options.with_filename) + b"\n")
            _write_spool(ctx.reporter, spool)

    with _new_pool(ctx, grep, "grep") as pool:
        _iterate_files(ctx, filesystems, result, pool.submit)
    _finish_pool(pool, result)
    _report_empty(ctx, result)
    return result


def put_keys(ctx: CommandContext, roots: list[str]) -> CommandResult:
    """Copy every source root into the last root."""
    result = CommandResult()
    started = time.monotonic()
    filesystems = _open_all(ctx, roots)
    sources, destination = filesystems[:-1], filesystems[-1]

    def upload(file: File) -> None:
        ctx.reporter.action("A", file)
        if not ctx.options.dry_run:
            destination.create(file)
        result.counts.add(added=1)

    with _new_pool(ctx, upload, "put") as pool:
        _iterate_files(ctx, sources, result, pool.submit)
    _finish_pool(pool, result)
    ctx.reporter.summary(*result.counts.as_tuple(), time.monotonic() - started)
    return result


def rm_keys(ctx: CommandContext, roots: list[str]) -> CommandResult:
    """Delete every listed entry; remote keys go out as per-bucket bulk deletes."""
    result = CommandResult()
    started = time.monotonic()
    filesystems = _open_all(ctx, roots)
    dry_run = ctx.options.dry_run

    def remove(item: DeleteBatch | File) -> None:
        if isinstance(item, DeleteBatch):
            delete_batch(ctx.client_factory(), item)
        else:
            item.delete()

    with _new_pool(ctx, remove, "rm") as pool:

        def flush(batch: DeleteBatch) -> None:
            if not dry_run:
                pool.submit(batch)

        collector = BatchCollector(flush)

        def queue_delete(file: File) -> bool:
            ctx.reporter.action("D", file)
            result.counts.add(deleted=1)
            if isinstance(file, S3File):
                collector.add(file.bucket, file.key)
            elif not dry_run:
                return pool.submit(file)
            return not pool.stopping

        _iterate_files(ctx, filesystems, result, queue_delete)
        collector.close()
    _finish_pool(pool, result)
    logger.debug("rm: %d key(s) in %d bulk call(s)", collector.keys, collector.flushes)
    ctx.reporter.summary(*result.counts.as_tuple(), time.monotonic() - started)
    return result


def sync_files(ctx: CommandContext, source_root: str, destination_root: str) -> CommandResult:
    """Make the destination match the source, one merge pass over both listings."""
    result = CommandResult()
    started = time.monotonic()
    options = ctx.options
    source, destination = _open_all(ctx, [source_root, destination_root])

    def apply(action: Action) -> None:
        ctx.reporter.action(action.kind.code, action.file.relative)
        if options.dry_run:
            return
        if action.kind is ActionKind.DELETE:
            destination.delete(action.file.relative)
        else:
            destination.create(action.file)

    with source.files() as source_listing, destination.files() as destination_listing:
        actions = diff_filesystems(
            source,
            destination,
            delete_extraneous=options.delete_extraneous,
            counts=result.counts,
            source_files=options.path_filter.apply(source_listing),
            destination_files=options.path_filter.apply(destination_listing),
        )
        with _new_pool(ctx, apply, "sync") as pool:
            try:
                pool.submit_all(actions)
            except ListingError as exc:
                # Partial counts are meaningless once a side failed to list.
                ctx.reporter.error(exc.root, exc.cause)
                result.fail(exc)
                pool.stop()
    _finish_pool(pool, result)
    if isinstance(result.first_error, ListingError):
        return result
    ctx.reporter.summary(*result.counts.as_tuple(), time.monotonic() - started)
    return result


def make_buckets(ctx: CommandContext, names: list[str]) -> CommandResult:
    result = CommandResult()
    buckets = [bucket_name(name) for name in names]
    client = ctx.client_factory()
    for bucket in buckets:
        try:
            if not ctx.options.dry_run:
                make_bucket(client, bucket, region=ctx.region, acl=ctx.options.acl)
        except Exception as exc:
            ctx.reporter.error(f"s3://{bucket}/", exc)
            result.fail(exc)
            continue
        ctx.reporter.progress(f"A s3://{bucket}/")
    return result


def remove_buckets(ctx: CommandContext, names: list[str]) -> CommandResult:
    result = CommandResult()
    buckets = [bucket_name(name) for name in names]
    client = ctx.client_factory()
    for bucket in buckets:
        try:
            if not ctx.options.dry_run:
                remove_bucket(client, bucket)
        except Exception as exc:
            ctx.reporter.error(f"s3://{bucket}/", exc)
            result.fail(exc)
            continue
        ctx.reporter.progress(f"D s3://{bucket}/")
    return result
