from __future__ import annotations

import random

import pytest

from fakes import MemFile, MemFilesystem
from s3knife.diff import diff_files, diff_filesystems
from s3knife.errors import ListingError
from s3knife.models import ActionKind, SyncCounts


def files(entries: dict[str, str]) -> list[MemFile]:
    return [MemFile(relative, data) for relative, data in sorted(entries.items())]


def plan(source: dict[str, str], destination: dict[str, str], **kwargs) -> list[tuple[str, str]]:
    return [
        (action.kind.code, action.file.relative)
        for action in diff_files(files(source), files(destination), **kwargs)
    ]


class TestDiffFiles:
    def test_empty_destination_creates_everything(self):
        counts = SyncCounts()
        assert plan({"a": "1", "b/c": "2"}, {}, counts=counts) == [("A", "a"), ("A", "b/c")]
        assert counts.as_tuple() == (2, 0, 0, 0)

    def test_identical_sides_produce_no_actions(self):
        counts = SyncCounts()
        assert plan({"a": "1", "b": "2"}, {"a": "1", "b": "2"}, counts=counts) == []
        assert counts.as_tuple() == (0, 0, 0, 2)

    def test_changed_content_is_an_update(self):
        assert plan({"a": "new"}, {"a": "old"}) == [("U", "a")]

    def test_same_size_different_content_is_an_update(self):
        assert plan({"a": "xy"}, {"a": "yx"}) == [("U", "a")]

    def test_size_mismatch_skips_hashing(self):
        source, destination = MemFile("a", "long"), MemFile("a", "s")
        actions = list(diff_files([source], [destination]))
        assert [action.kind for action in actions] == [ActionKind.UPDATE]
        assert source.hash_calls == 0
        assert destination.hash_calls == 0

    def test_extraneous_entries_kept_without_delete(self):
        counts = SyncCounts()
        assert plan({"a": "1"}, {"a": "1", "b": "x"}, counts=counts) == []
        assert counts.as_tuple() == (0, 0, 0, 1)

    def test_extraneous_entries_deleted_with_delete(self):
        counts = SyncCounts()
        actions = plan({"a": "1"}, {"a": "1", "b": "x"}, delete_extraneous=True, counts=counts)
        assert actions == [("D", "b")]
        assert counts.as_tuple() == (0, 1, 0, 1)

    def test_actions_follow_codepoint_order(self):
        actions = plan(
            {"a-b/x": "1", "a/b": "1", "a0": "1"},
            {"a.txt": "1", "a/b": "2"},
            delete_extraneous=True,
        )
        assert actions == [("A", "a-b/x"), ("D", "a.txt"), ("U", "a/b"), ("A", "a0")]

    def test_counts_partition_both_listings(self):
        rng = random.Random(20240101)
        names = [f"dir{rng.randint(0, 3)}/file{i:03d}" for i in range(200)]
        for _ in range(25):
            source = {name: str(rng.randint(0, 2)) for name in rng.sample(names, rng.randint(0, 120))}
            destination = {name: str(rng.randint(0, 2)) for name in rng.sample(names, rng.randint(0, 120))}
            counts = SyncCounts()
            actions = plan(source, destination, delete_extraneous=True, counts=counts)
            added, deleted, updated, unchanged = counts.as_tuple()

            assert added + updated + unchanged == len(source)
            assert deleted + updated + unchanged == len(destination)
            assert len(actions) == added + deleted + updated
            assert added == len(source.keys() - destination.keys())
            assert deleted == len(destination.keys() - source.keys())

    def test_check_can_abort_the_merge(self):
        calls = []

        def check():
            calls.append(1)
            if len(calls) > 2:
                raise RuntimeError("stop")

        with pytest.raises(RuntimeError):
            plan({"a": "1", "b": "1", "c": "1"}, {}, check=check)

    def test_unreadable_content_is_an_update(self):
        class Unreadable(MemFile):
            def _compute_md5(self) -> bytes:
                raise OSError("connection reset")

        counts = SyncCounts()
        actions = list(diff_files([Unreadable("a", "xy")], files({"a": "yx"}), counts=counts))
        assert [(action.kind, action.file.relative) for action in actions] == [(ActionKind.UPDATE, "a")]
        assert counts.as_tuple() == (0, 0, 1, 0)


class TestDiffFilesystems:
    def test_applying_actions_converges(self):
        source = MemFilesystem({"a": "1", "b/c": "2", "d": "new"})
        destination = MemFilesystem({"d": "old", "z": "gone"})
        for action in diff_filesystems(source, destination, delete_extraneous=True):
            if action.kind is ActionKind.DELETE:
                destination.delete(action.file.relative)
            else:
                destination.create(action.file)

        assert destination.entries == source.entries
        counts = SyncCounts()
        assert list(diff_filesystems(source, destination, delete_extraneous=True, counts=counts)) == []
        assert counts.as_tuple() == (0, 0, 0, 3)

    def test_failed_source_listing_never_deletes(self):
        source = MemFilesystem({"a": "1", "b": "1", "c": "1"}, fail_after=1)
        destination = MemFilesystem({"a": "1", "b": "1", "c": "1"})
        kinds = []
        with pytest.raises(ListingError) as excinfo:
            for action in diff_filesystems(source, destination, delete_extraneous=True):
                kinds.append(action.kind)

        assert ActionKind.DELETE not in kinds
        assert excinfo.value.root == source.root
        assert isinstance(excinfo.value.cause, OSError)

    def test_failed_destination_listing_never_creates(self):
        source = MemFilesystem({"a": "1", "b": "1"})
        destination = MemFilesystem({"a": "1", "b": "1"}, fail_after=0)
        kinds = []
        with pytest.raises(ListingError):
            for action in diff_filesystems(source, destination):
                kinds.append(action.kind)
        assert kinds == []
