"""Public entry point for reading and writing file metadata.

One ``MetadataService`` per process holds the collaborators (raw attribute
I/O, backup store, restore scheduler) instead of hidden global state.
Canonical writes made through it are always mirrored to the backup store.
"""
import logging
from concurrent.futures import Future
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from filemeta.config import config
from filemeta.exceptions import ErrorCode, FileMetaError, NoDataFoundError, ParamError
from filemeta.models.db_models import get_session_factory, init_db
from filemeta.models.schema import (AttributeValue, BackupRecord, CommonTagSnapshot,
                                    EditResult, EditStatus, KeyClass, Rating,
                                    RestoreReport, SyncReport, ValueKind)
from filemeta.observability import traced
from filemeta.services.attribute_store import AttributeStore
from filemeta.services.common_tags import CommonTagReconciler
from filemeta.services.restore_scheduler import RestoreScheduler
from filemeta.services.sync_service import SyncOperation
from filemeta.services.tag_algebra import TagAlgebra
from filemeta.storage.attribute_codec import (HIDDEN, AttributeCodec, classify,
                                              companion_key, dictionary_names)
from filemeta.storage.attribute_io import (AttributeIO, Location, XattrAttributeIO,
                                           locations_from_paths)
from filemeta.storage.backup_store import BackupStore
from filemeta.storage.recent_tags import RecentTagsStore

logger = logging.getLogger(__name__)

HIDDEN_VALUE = "YES"


class MetadataService:
    """Tags, ratings and other searchable metadata on arbitrary files."""

    def __init__(
        self,
        io: Optional[AttributeIO] = None,
        backup_store: Optional[BackupStore] = None,
        codec: Optional[AttributeCodec] = None,
        recent_tags: Optional[RecentTagsStore] = None,
        engine: Optional[Engine] = None,
        max_workers: Optional[int] = None,
    ):
        """Initialize the service.

        Args:
            io: Raw attribute I/O. Defaults to the os xattr calls.
            backup_store: Shadow store. Created on ``engine`` (or the
                configured database) when None.
            codec: Value codec. Defaults to config limits and prefix.
            recent_tags: Optional recent-tags store updated after tag edits.
            engine: SQLAlchemy engine used when ``backup_store`` is None.
            max_workers: Background worker threads for restore and sync.
        """
        if backup_store is None:
            backup_store = BackupStore(get_session_factory(engine or init_db()))
        self.io = io or XattrAttributeIO(touch_mtime=config.touch_mtime_on_write)
        self.codec = codec or AttributeCodec()
        self.backup_store = backup_store
        self.recent_tags = recent_tags
        self.store = AttributeStore(self.io, self.codec, self.backup_store)
        self.reconciler = CommonTagReconciler(self.store)
        self.scheduler = RestoreScheduler(self.store, max_workers=max_workers)

    @staticmethod
    def locations_from_paths(paths: Sequence[Location]):
        return locations_from_paths(paths)

    # =========================================================================
    # User tags
    # =========================================================================

    @traced("set_user_tags")
    def set_user_tags(self, location: Location, tags: Sequence[str]) -> EditResult:
        """Replace the tags of a file. Duplicates are removed, case preserved."""
        new_tags = TagAlgebra.set_tags(tags)
        old_tags = self.store.read_tags(location, restore=False)
        if new_tags == old_tags:
            return EditResult(EditStatus.NO_CHANGE, old_tags)
        self.store.write_tags(location, new_tags)
        self._note_recent_tags(old_tags, new_tags)
        return EditResult(EditStatus.SUCCESS, new_tags)

    @traced("get_user_tags")
    def get_user_tags(self, location: Location) -> List[str]:
        """Tags on a file, restored from backup if the attribute was stripped."""
        return self.store.read_tags(location, restore=True)

    @traced("add_user_tags")
    def add_user_tags(self, location: Location, tags: Sequence[str]) -> EditResult:
        """Add tags; NO_CHANGE when every tag was already present."""
        existing = self.store.read_tags(location, restore=True)
        merged, changed = TagAlgebra.add_tags(existing, tags)
        if not changed:
            return EditResult(EditStatus.NO_CHANGE, existing)
        self.store.write_tags(location, merged)
        self._note_recent_tags(existing, merged)
        return EditResult(EditStatus.SUCCESS, merged)

    @traced("clear_user_tags")
    def clear_user_tags(self, location: Location, tags: Sequence[str]) -> EditResult:
        """Remove tags; NO_CHANGE when none of them were present."""
        existing = self.store.read_tags(location, restore=True)
        remaining, changed = TagAlgebra.clear_tags(existing, tags)
        if not changed:
            return EditResult(EditStatus.NO_CHANGE, existing)
        self.store.write_tags(location, remaining)
        return EditResult(EditStatus.SUCCESS, remaining)

    @traced("get_common_user_tags")
    def get_common_user_tags(self, locations: Sequence[Location]) -> CommonTagSnapshot:
        """Tags shared by all files; keep the snapshot for the matching set call."""
        return self.reconciler.common_tags(locations)

    @traced("set_common_user_tags")
    def set_common_user_tags(
        self,
        locations: Sequence[Location],
        snapshot: CommonTagSnapshot,
        new_tags: Sequence[str],
    ) -> Dict[str, List[str]]:
        """Replace the shared tags on every file, all or nothing.

        Raises:
            StaleSnapshotError: Another writer changed the common tags.
        """
        written = self.reconciler.set_common_tags(locations, snapshot, new_tags)
        self._note_recent_tags(snapshot.tags, new_tags)
        return written

    def recent_tag_list(self) -> List[str]:
        if self.recent_tags is None:
            return []
        return self.recent_tags.load_recent_tags()

    def _note_recent_tags(self, old_tags: Sequence[str], new_tags: Sequence[str]) -> None:
        if self.recent_tags is None:
            return
        try:
            self.recent_tags.update(old_tags, new_tags)
        except (SQLAlchemyError, FileMetaError) as e:
            logger.warning(f"Could not update recent tags: {e}")

    # =========================================================================
    # Rating
    # =========================================================================

    @traced("set_rating")
    def set_rating(self, location: Location, rating: Rating) -> Rating:
        """Set a 0-5 rating (clamped); UNSET removes the attribute.

        Returns:
            The rating as stored.
        """
        return self.store.write_rating(location, rating)

    @traced("get_rating")
    def get_rating(self, location: Location) -> Rating:
        """The rating, or UNSET if none was ever set.

        Raises:
            MalformedValueError: The stored rating is corrupt.
        """
        return self.store.read_rating(location, restore=True)

    # =========================================================================
    # Strings, hidden flag
    # =========================================================================

    @traced("set_string")
    def set_string(self, location: Location, key: str, value: str) -> None:
        self.store.write_value(location, key, AttributeValue.string(value))

    @traced("get_string")
    def get_string(self, location: Location, key: str) -> Optional[str]:
        value = self.store.read_value(location, key, expected=ValueKind.STRING)
        return None if value is None else value.value

    def hide(self, location: Location) -> None:
        self.store.write_value(location, HIDDEN, AttributeValue.string(HIDDEN_VALUE))

    def unhide(self, location: Location) -> None:
        self.store.write_value(location, HIDDEN, None)

    def is_hidden(self, location: Location) -> bool:
        return self.store.read_raw(location, HIDDEN) is not None

    # =========================================================================
    # Arrays of dictionaries
    # =========================================================================

    @traced("set_dictionaries")
    def set_dictionaries(
        self, location: Location, key: str, dictionaries: Sequence[Mapping[str, Any]]
    ) -> None:
        """Store dictionaries; only their ``name`` entries are searchable.

        Raises:
            ParamError: A dictionary lacks a string, number or date ``name``.
        """
        if not dictionaries:
            self.store.write_values(location, {key: None, companion_key(key): None})
            return
        value = AttributeValue.from_python(list(dictionaries))
        names = dictionary_names(value)
        self.store.write_values(location, {companion_key(key): value, key: names})

    def get_dictionaries(self, location: Location, key: str) -> List[Dict[str, Any]]:
        value = self.store.read_value(location, companion_key(key), expected=ValueKind.ARRAY)
        return [] if value is None else value.to_python()

    def get_dictionaries_names(self, location: Location, key: str) -> List[Any]:
        return self.get_array_metadata(location, key)

    # =========================================================================
    # Array metadata
    # =========================================================================

    def get_array_metadata(self, location: Location, key: str) -> List[Any]:
        value = self.store.read_value(location, key, expected=ValueKind.ARRAY)
        return [] if value is None else value.to_python()

    @traced("set_array_metadata")
    def set_array_metadata(self, location: Location, key: str, items: Sequence[Any]) -> None:
        value = AttributeValue.from_python(list(items)) if items else None
        self.store.write_value(location, key, value)

    @traced("add_to_array_metadata")
    def add_to_array_metadata(
        self, location: Location, key: str, items: Sequence[Any]
    ) -> EditResult:
        """Append items not already present; NO_CHANGE if all were."""
        current = self.store.read_value(location, key, expected=ValueKind.ARRAY)
        merged = list(current.value) if current is not None else []
        added = False
        for item in items:
            item_value = AttributeValue.from_python(item)
            if item_value not in merged:
                merged.append(item_value)
                added = True
        values = [v.to_python() for v in merged]
        if not added:
            return EditResult(EditStatus.NO_CHANGE, values)
        self.store.write_value(location, key, AttributeValue.array(merged))
        return EditResult(EditStatus.SUCCESS, values)

    # =========================================================================
    # Generic attributes
    # =========================================================================

    def set_indexed_attribute(self, location: Location, key: str, value: Any) -> None:
        """Write a searchable key; only primitives and arrays of them fit.

        Raises:
            ParamError: ``key`` is not an indexed key.
            WillNotIndexError: The value shape cannot be indexed.
        """
        self._require_class(key, KeyClass.INDEXED)
        self.store.write_value(location, key, AttributeValue.from_python(value))

    def get_indexed_attribute(self, location: Location, key: str) -> Any:
        self._require_class(key, KeyClass.INDEXED)
        value = self.store.read_value(location, key)
        return None if value is None else value.to_python()

    def set_opaque_attribute(self, location: Location, key: str, value: Any) -> None:
        """Write any encodable value (up to the size ceiling) to an opaque key."""
        self._require_class(key, KeyClass.OPAQUE)
        self.store.write_value(location, key, AttributeValue.from_python(value))

    def get_opaque_attribute(self, location: Location, key: str) -> Any:
        self._require_class(key, KeyClass.OPAQUE)
        value = self.store.read_value(location, key)
        return None if value is None else value.to_python()

    @staticmethod
    def _require_class(key: str, expected: KeyClass) -> None:
        if classify(key) is not expected:
            raise ParamError(
                f"Key '{key}' is not an {expected.value} key", field="key", value=key
            )

    # =========================================================================
    # Backup, restore, lifecycle
    # =========================================================================

    @traced("backup_metadata")
    def backup_metadata(self, location: Location) -> BackupRecord:
        """Mirror a file's attributes now. Writes through this service already do.

        Raises:
            StorageFailureError: The file or the backup database is unreadable.
        """
        record = self.store.snapshot(location)
        self.backup_store.record(record)
        return record

    @traced("restore_metadata")
    def restore_metadata(self, location: Location) -> List[str]:
        """Write back every backed-up attribute missing from the file.

        Tags and rating are restored automatically on read; call this for
        the other keys.

        Returns:
            Keys written back.

        Raises:
            NoDataFoundError: The file was never backed up.
        """
        path = self.locations_from_paths([location])[0]
        if self.backup_store.restore(self.io.identity_of(path)) is None:
            raise NoDataFoundError(
                "No backup recorded for this file",
                location=str(path),
                code=ErrorCode.BACKUP_NOT_FOUND,
            )
        return self.store.restore(path)

    def restore_all_on_background_thread(self) -> "Future[RestoreReport]":
        """Restore every backed-up file in the background.

        Repeated calls while a pass is running share that pass.
        """
        return self.scheduler.restore_all()

    def app_is_terminating(self) -> Optional[RestoreReport]:
        """Stop background work, letting in-flight single-file steps finish."""
        return self.scheduler.shutdown()

    # =========================================================================
    # Sync
    # =========================================================================

    @traced("sync")
    def sync(self, locations: Sequence[Location], aggressive_restore: bool = False) -> SyncReport:
        """Copy tags and rating from the first location to all of them."""
        return SyncOperation(self.store, locations, aggressive_restore).run()

    def sync_in_background(
        self, locations: Sequence[Location], aggressive_restore: bool = False
    ) -> "Future[SyncReport]":
        operation = SyncOperation(self.store, locations, aggressive_restore)
        return self.scheduler.submit(operation.run)
