"""Tests for the recent tags list."""
from filemeta.services.metadata_service import MetadataService


class TestRecentTags:
    """Tests for RecentTagsStore."""

    def test_empty_by_default(self, recent_tags):
        assert recent_tags.load_recent_tags() == []

    def test_save_and_load(self, recent_tags):
        recent_tags.save_recent_tags(["b", "a", "B"])
        assert recent_tags.load_recent_tags() == ["b", "a"]

    def test_capped_at_limit(self, recent_tags):
        recent_tags.save_recent_tags([f"t{i}" for i in range(25)])
        assert len(recent_tags.load_recent_tags()) == recent_tags.limit

    def test_update_moves_new_tags_to_front(self, recent_tags):
        recent_tags.save_recent_tags(["old", "shared"])
        updated = recent_tags.update(["shared"], ["shared", "Fresh", "old"])
        assert updated == ["Fresh", "old", "shared"]
        assert recent_tags.load_recent_tags() == updated

    def test_update_without_new_tags_is_noop(self, recent_tags):
        recent_tags.save_recent_tags(["x"])
        assert recent_tags.update(["a"], ["A"]) == ["x"]


class TestServiceRecentTags:
    """Tests for the recent list as seen through MetadataService."""

    def test_group_edit_feeds_recent_list(self, service, make_file, recent_tags):
        paths = [make_file("a.txt"), make_file("b.txt")]
        for path in paths:
            service.set_user_tags(path, ["common"])
        snapshot = service.get_common_user_tags(paths)
        service.set_common_user_tags(paths, snapshot, ["common", "Added"])
        assert service.recent_tag_list() == ["Added", "common"]
        assert service.recent_tag_list() == recent_tags.load_recent_tags()

    def test_without_store(self, fake_io, backup_store, codec):
        service = MetadataService(io=fake_io, backup_store=backup_store, codec=codec)
        try:
            assert service.recent_tag_list() == []
        finally:
            service.app_is_terminating()
