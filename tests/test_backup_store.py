"""Tests for the SQLite shadow backup store."""
import datetime
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from filemeta.exceptions import ErrorCode, StorageFailureError
from filemeta.models.schema import BackupRecord, FileIdentity


def _record(inode, path="/data/a.txt", tags=b'["a",[["s","x"]]]', **attributes):
    return BackupRecord(
        identity=FileIdentity(device=1, inode=inode),
        path=path,
        tags_blob=tags,
        rating_blob=b'["f",3.0]',
        attributes=attributes,
    )


class TestBackupStore:
    """Tests for record/restore/iteration."""

    def test_record_and_restore(self, backup_store):
        backup_store.record(_record(7, hidden=b'["s","YES"]'))
        restored = backup_store.restore(FileIdentity(1, 7))
        assert restored.path == "/data/a.txt"
        assert restored.tags_blob == b'["a",[["s","x"]]]'
        assert restored.rating_blob == b'["f",3.0]'
        assert restored.attributes == {"hidden": b'["s","YES"]'}
        assert isinstance(restored.backed_up_at, datetime.datetime)

    def test_unknown_identity(self, backup_store):
        assert backup_store.restore(FileIdentity(1, 999)) is None

    def test_overwrite_keeps_one_row(self, backup_store):
        """The newest write wins; no history is kept."""
        backup_store.record(_record(7))
        backup_store.record(_record(7, path="/data/renamed.txt", tags=None))
        assert backup_store.count() == 1
        restored = backup_store.restore(FileIdentity(1, 7))
        assert restored.path == "/data/renamed.txt"
        assert restored.tags_blob is None

    def test_iter_records_pages_through_everything(self, backup_store):
        for inode in range(12):
            backup_store.record(_record(inode, path=f"/data/{inode}"))
        records = list(backup_store.iter_records(batch_size=5))
        assert len(records) == 12
        assert {r.identity.inode for r in records} == set(range(12))

    def test_delete(self, backup_store):
        backup_store.record(_record(7))
        assert backup_store.delete(FileIdentity(1, 7))
        assert not backup_store.delete(FileIdentity(1, 7))
        assert backup_store.all_records() == []

    def test_database_failure_is_storage_failure(self, backup_store):
        with patch.object(
            backup_store, "session_factory",
            side_effect=OperationalError("stmt", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(StorageFailureError) as exc_info:
                backup_store.record(_record(7))
        assert exc_info.value.code == ErrorCode.BACKUP_FAILURE
