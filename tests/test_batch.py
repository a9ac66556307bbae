from __future__ import annotations

import math

import pytest

from fakes import FakeS3
from s3knife.batch import MAX_BATCH_SIZE, BatchCollector, DeleteBatch, delete_batch
from s3knife.errors import BatchDeleteError


class TestBatchCollector:
    @pytest.mark.parametrize("total", [1, 999, 1000, 1001, 2500])
    def test_flush_count_is_ceiling_of_batch_size(self, total):
        batches = []
        with BatchCollector(batches.append) as collector:
            for index in range(total):
                collector.add("bucket", f"key-{index}")

        assert len(batches) == math.ceil(total / MAX_BATCH_SIZE)
        assert all(len(batch) <= MAX_BATCH_SIZE for batch in batches)
        assert sum(len(batch) for batch in batches) == total
        assert collector.flushes == len(batches)
        assert collector.keys == total

    def test_bucket_change_forces_a_flush(self):
        batches = []
        collector = BatchCollector(batches.append)
        collector.add("one", "a")
        collector.add("one", "b")
        collector.add("two", "c")
        collector.add("one", "d")
        collector.close()

        assert [(batch.bucket, batch.keys) for batch in batches] == [
            ("one", ["a", "b"]),
            ("two", ["c"]),
            ("one", ["d"]),
        ]

    def test_close_without_keys_flushes_nothing(self):
        batches = []
        BatchCollector(batches.append).close()
        assert batches == []

    def test_batch_size_is_capped(self):
        with pytest.raises(ValueError):
            BatchCollector(lambda batch: None, batch_size=MAX_BATCH_SIZE + 1)


class TestDeleteBatch:
    def test_one_call_per_batch(self):
        fake = FakeS3()
        for index in range(3):
            fake.put("bucket", f"k{index}", "x")
        delete_batch(fake, DeleteBatch("bucket", ["k0", "k1", "k2"]))
        assert fake.count("delete_objects") == 1
        assert fake.contents("bucket") == {}

    def test_per_key_errors_raise(self):
        fake = FakeS3(fail_keys={"locked"})
        fake.put("bucket", "locked", "x")
        fake.put("bucket", "free", "x")
        with pytest.raises(BatchDeleteError) as excinfo:
            delete_batch(fake, DeleteBatch("bucket", ["free", "locked"]))

        assert excinfo.value.bucket == "bucket"
        assert [error["Key"] for error in excinfo.value.errors] == ["locked"]
        assert "locked" in str(excinfo.value)
        assert fake.contents("bucket") == {"locked": b"x"}

    def test_empty_batch_makes_no_call(self):
        fake = FakeS3()
        delete_batch(fake, DeleteBatch("bucket"))
        assert fake.count("delete_objects") == 0
