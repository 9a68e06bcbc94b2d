"""Shadow backup of managed attributes, keyed by file identity.

Copy tools, old backup systems and some filesystem operations silently
drop extended attributes. Every canonical write is mirrored here so the
attributes can be written back later. The store is a safety net, never a
source of truth while canonical data is present.
"""
import base64
import logging
from typing import Dict, Iterator, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from filemeta.exceptions import ErrorCode, StorageFailureError
from filemeta.models.db_models import DBBackupRecord
from filemeta.models.schema import BackupRecord, FileIdentity, utc_now

logger = logging.getLogger(__name__)


class BackupStore:
    """Overwrite-on-write mirror of canonical attribute state.

    One row per file identity; the newest write wins, no history is kept.
    """

    def __init__(self, session_factory):
        """Initialize the backup store.

        Args:
            session_factory: SQLAlchemy session factory for the backup database.
        """
        self.session_factory = session_factory

    def record(self, record: BackupRecord) -> None:
        """Insert or overwrite the backup for ``record.identity``.

        Raises:
            StorageFailureError: The database write failed.
        """
        try:
            with self.session_factory() as session:
                row = session.get(DBBackupRecord, record.identity.token)
                if row is None:
                    row = DBBackupRecord(identity=record.identity.token)
                    session.add(row)
                row.path = record.path
                row.tags_blob = record.tags_blob
                row.rating_blob = record.rating_blob
                row.attributes = {
                    key: base64.b64encode(blob).decode("ascii")
                    for key, blob in record.attributes.items()
                }
                row.backed_up_at = record.backed_up_at or utc_now()
                session.commit()
        except SQLAlchemyError as e:
            raise StorageFailureError(
                "Failed to write backup record",
                operation="backup_record",
                path=record.path,
                code=ErrorCode.BACKUP_FAILURE,
                original_error=e,
            )
        logger.debug(f"Backed up metadata for {record.path} ({record.identity})")

    def restore(self, identity: FileIdentity) -> Optional[BackupRecord]:
        """Get the backup for a file, or None if it was never backed up."""
        try:
            with self.session_factory() as session:
                row = session.get(DBBackupRecord, identity.token)
                return self._to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageFailureError(
                "Failed to read backup record",
                operation="backup_restore",
                code=ErrorCode.BACKUP_FAILURE,
                original_error=e,
            )

    def iter_records(self, batch_size: int = 500) -> Iterator[BackupRecord]:
        """Yield every backup record, ordered by identity.

        Rows are read in batches so a full restore never holds the whole
        table in memory or keeps a read transaction open while files are
        being written.
        """
        offset = 0
        while True:
            try:
                with self.session_factory() as session:
                    rows = session.scalars(
                        select(DBBackupRecord)
                        .order_by(DBBackupRecord.identity)
                        .offset(offset)
                        .limit(batch_size)
                    ).all()
                    batch = [self._to_record(row) for row in rows]
            except SQLAlchemyError as e:
                raise StorageFailureError(
                    "Failed to list backup records",
                    operation="backup_list",
                    code=ErrorCode.BACKUP_FAILURE,
                    original_error=e,
                )
            yield from batch
            if len(batch) < batch_size:
                return
            offset += batch_size

    def all_records(self) -> List[BackupRecord]:
        return list(self.iter_records())

    def count(self) -> int:
        with self.session_factory() as session:
            return session.scalar(select(func.count()).select_from(DBBackupRecord)) or 0

    def delete(self, identity: FileIdentity) -> bool:
        """Remove a backup record. Returns False if there was none.

        Never called automatically; records are only dropped on request.
        """
        with self.session_factory() as session:
            row = session.get(DBBackupRecord, identity.token)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    @staticmethod
    def _to_record(row: DBBackupRecord) -> BackupRecord:
        attributes: Dict[str, bytes] = {
            key: base64.b64decode(blob) for key, blob in (row.attributes or {}).items()
        }
        return BackupRecord(
            identity=FileIdentity.from_token(row.identity),
            path=row.path,
            tags_blob=row.tags_blob,
            rating_blob=row.rating_blob,
            attributes=attributes,
            backed_up_at=row.backed_up_at,
        )
