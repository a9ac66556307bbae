from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from s3knife.errors import BatchDeleteError


logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 1000


@dataclass(slots=True)
class DeleteBatch:
    bucket: str
    keys: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.keys)


def delete_batch(client: Any, batch: DeleteBatch) -> None:
    """Issue one bulk delete call for ``batch``."""
    if not batch.keys:
        return
    logger.debug("bulk delete of %d key(s) from %s", len(batch.keys), batch.bucket)
    response = client.delete_objects(
        Bucket=batch.bucket,
        Delete={"Objects": [{"Key": key} for key in batch.keys], "Quiet": True},
    )
    errors = response.get("Errors") or []
    if errors:
        raise BatchDeleteError(batch.bucket, errors)


class BatchCollector:
    """Groups keys into per-bucket batches of at most ``batch_size``.

    A batch is handed to ``flush`` when it is full, when a key from a different
    bucket arrives, and on :meth:`close`. The callback decides how the bulk
    delete runs (inline, or queued on a worker pool).
    """

    def __init__(self, flush: Callable[[DeleteBatch], None], *, batch_size: int = MAX_BATCH_SIZE) -> None:
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch size must be between 1 and {MAX_BATCH_SIZE}")
        self._flush = flush
        self._batch_size = batch_size
        self._current: DeleteBatch | None = None
        self.flushes = 0
        self.keys = 0

    def add(self, bucket: str, key: str) -> None:
        if self._current is not None and self._current.bucket != bucket:
            self.flush()
        if self._current is None:
            self._current = DeleteBatch(bucket)
        self._current.keys.append(key)
        self.keys += 1
        if len(self._current) >= self._batch_size:
            self.flush()

    def flush(self) -> None:
        batch, self._current = self._current, None
        if batch is None or not batch.keys:
            return
        self.flushes += 1
        self._flush(batch)

    def close(self) -> None:
        self.flush()

    def __enter__(self) -> BatchCollector:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
