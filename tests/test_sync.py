"""Tests for syncing tags and rating across copies of a file."""
import pytest

from filemeta.exceptions import ErrorCode, ParamError
from filemeta.models.schema import UNSET
from filemeta.storage.attribute_codec import USER_TAGS


@pytest.fixture
def copies(service, make_file):
    source = make_file("source.txt")
    targets = [make_file(f"copy{i}.txt") for i in range(2)]
    service.set_user_tags(source, ["Alpha", "beta"])
    service.set_rating(source, 4)
    service.set_user_tags(targets[0], ["stale"])
    service.set_rating(targets[1], 1)
    return source, targets


class TestSync:
    """Tests for SyncOperation via the service."""

    def test_source_overrides_targets(self, service, copies):
        source, targets = copies
        report = service.sync([source, *targets])
        assert report.tags == ["Alpha", "beta"]
        assert report.rating == 4.0
        assert len(report.succeeded) == 3
        for path in targets:
            assert service.get_user_tags(path) == ["Alpha", "beta"]
            assert service.get_rating(path) == 4.0

    def test_source_is_normalized(self, service, copies, fake_io):
        """Duplicates written by another tool are removed from the source too."""
        source, targets = copies
        name = service.codec.attribute_name(USER_TAGS)
        fake_io.write(source, name, service.codec.encode(["a", "A", "b", "a"], key=USER_TAGS))
        service.sync([source, *targets])
        raw = service.codec.decode(fake_io.read(source, name)).to_python()
        assert raw == ["a", "b"]

    def test_unset_source_rating_clears_targets(self, service, copies):
        source, targets = copies
        service.set_rating(source, UNSET)
        report = service.sync([source, *targets])
        assert report.rating is UNSET
        assert service.get_rating(targets[1]) is UNSET

    def test_per_location_failures(self, service, copies, fake_io):
        source, targets = copies
        fake_io.fail_paths.add(str(targets[0]))
        report = service.sync([source, *targets])
        assert list(report.failed) == [str(targets[0])]
        assert report.failed[str(targets[0])].error_code == ErrorCode.STORAGE_FAILURE.name
        assert service.get_user_tags(targets[1]) == ["Alpha", "beta"]

    def test_unreadable_source_fails_everything(self, service, copies, fake_io):
        source, targets = copies
        fake_io.delete(source)
        report = service.sync([source, *targets])
        assert report.succeeded == []
        assert len(report.failed) == 3
        assert service.get_user_tags(targets[0]) == ["stale"]

    def test_stripped_source_falls_back_to_backup(self, service, copies, fake_io, backup_store):
        source, targets = copies
        fake_io.strip(source)
        report = service.sync([source, *targets])
        assert report.tags == ["Alpha", "beta"]
        assert report.rating == 4.0
        assert service.get_user_tags(targets[0]) == ["Alpha", "beta"]
        assert service.get_rating(targets[1]) == 4.0
        record = backup_store.restore(fake_io.identity_of(source))
        assert record.tags_blob is not None
        assert record.rating_blob is not None
        fake_io.strip(source)
        assert service.get_user_tags(source) == ["Alpha", "beta"]

    def test_aggressive_restore_recovers_everything(self, service, copies, fake_io):
        source, targets = copies
        service.hide(source)
        fake_io.strip(source)
        report = service.sync([source, *targets], aggressive_restore=True)
        assert report.tags == ["Alpha", "beta"]
        assert report.rating == 4.0
        assert service.get_user_tags(targets[1]) == ["Alpha", "beta"]
        assert service.is_hidden(source)
        assert not service.is_hidden(targets[0])

    def test_in_background(self, service, copies):
        source, targets = copies
        report = service.sync_in_background([source, *targets]).result(timeout=10)
        assert len(report.succeeded) == 3

    def test_requires_locations(self, service):
        with pytest.raises(ParamError):
            service.sync([])

    def test_report_serializes(self, service, copies):
        source, targets = copies
        data = service.sync([source, *targets]).to_dict()
        assert data["source"] == str(source)
        assert data["rating"] == 4.0
        assert all(o["ok"] for o in data["outcomes"].values())
