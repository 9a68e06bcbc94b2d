"""Tests for common-tag reads and optimistic group edits."""
import pytest

from filemeta.exceptions import (BulkOperationError, EncodeTooLargeError, ErrorCode,
                                 ParamError, StaleSnapshotError)


@pytest.fixture
def group(service, make_file):
    """Three files sharing "Shared" and "both", each with a private tag."""
    paths = [make_file(f"f{i}.txt") for i in range(3)]
    for i, path in enumerate(paths):
        service.set_user_tags(path, ["Shared", f"private-{i}", "both"])
    return paths


class TestCommonTags:
    """Tests for get/set of common user tags."""

    def test_common_tags(self, service, group):
        snapshot = service.get_common_user_tags(group)
        assert list(snapshot.tags) == ["Shared", "both"]
        assert len(snapshot.identities) == 3

    def test_common_tags_case_insensitive(self, service, group):
        service.set_user_tags(group[1], ["SHARED", "private-1", "BOTH"])
        assert list(service.get_common_user_tags(group).tags) == ["Shared", "both"]

    def test_untagged_file_empties_common_set(self, service, group, make_file):
        empty = make_file("empty.txt")
        assert service.get_common_user_tags([*group, empty]).tags == ()

    def test_no_locations(self, service):
        with pytest.raises(ParamError):
            service.get_common_user_tags([])

    def test_set_preserves_private_tags(self, service, group):
        snapshot = service.get_common_user_tags(group)
        written = service.set_common_user_tags(group, snapshot, ["Shared", "new"])
        for i, path in enumerate(group):
            assert service.get_user_tags(path) == ["Shared", f"private-{i}", "new"]
            assert written[str(path)] == service.get_user_tags(path)

    def test_set_takes_edited_casing_in_place(self, service, group):
        snapshot = service.get_common_user_tags(group)
        service.set_common_user_tags(group, snapshot, ["SHARED", "both"])
        assert service.get_user_tags(group[2]) == ["SHARED", "private-2", "both"]

    def test_concurrent_private_change_is_not_stale(self, service, group):
        snapshot = service.get_common_user_tags(group)
        service.add_user_tags(group[0], ["late"])
        service.set_common_user_tags(group, snapshot, ["y"])
        assert service.get_user_tags(group[0]) == ["private-0", "late", "y"]
        assert service.get_user_tags(group[1]) == ["private-1", "y"]

    def test_stale_snapshot_writes_nothing(self, service, group, fake_io):
        snapshot = service.get_common_user_tags(group)
        # another writer removes a shared tag from one file
        service.clear_user_tags(group[2], ["both"])
        before = [fake_io.attributes(p) for p in group]
        with pytest.raises(StaleSnapshotError) as exc_info:
            service.set_common_user_tags(group, snapshot, ["replaced"])
        assert exc_info.value.code == ErrorCode.STALE_SNAPSHOT
        assert exc_info.value.actual == ["Shared"]
        assert [fake_io.attributes(p) for p in group] == before

    def test_extra_shared_tag_is_stale_too(self, service, group):
        snapshot = service.get_common_user_tags(group)
        for path in group:
            service.add_user_tags(path, ["late"])
        with pytest.raises(StaleSnapshotError):
            service.set_common_user_tags(group, snapshot, [])

    def test_check_ignores_backup_store(self, service, group, fake_io):
        """A stripped file makes the snapshot stale even though a backup exists."""
        snapshot = service.get_common_user_tags(group)
        fake_io.strip(group[0])
        with pytest.raises(StaleSnapshotError):
            service.set_common_user_tags(group, snapshot, ["x"])

    def test_snapshot_from_other_files(self, service, group, make_file):
        snapshot = service.get_common_user_tags(group)
        other = make_file("other.txt")
        with pytest.raises(ParamError) as exc_info:
            service.set_common_user_tags([group[0], group[1], other], snapshot, ["x"])
        assert exc_info.value.code == ErrorCode.SNAPSHOT_MISMATCH

    def test_too_large_result_aborts_before_writing(self, service, group, fake_io, monkeypatch):
        snapshot = service.get_common_user_tags(group)
        before = [fake_io.attributes(p) for p in group]
        monkeypatch.setattr(service.codec, "max_bytes", 80)
        with pytest.raises(EncodeTooLargeError):
            service.set_common_user_tags(group, snapshot, [f"t{i}" for i in range(10)])
        assert [fake_io.attributes(p) for p in group] == before

    def test_partial_write_failure(self, service, group, fake_io):
        snapshot = service.get_common_user_tags(group)
        fake_io.fail_paths.add(str(group[1]))
        with pytest.raises(BulkOperationError) as exc_info:
            service.set_common_user_tags(group, snapshot, ["Shared"])
        error = exc_info.value
        assert error.success_count == 2
        assert list(error.failed) == [str(group[1])]
        assert service.get_user_tags(group[0]) == ["Shared", "private-0"]
