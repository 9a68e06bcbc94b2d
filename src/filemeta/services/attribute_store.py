"""Canonical attribute reads and writes with backup-on-write.

Every successful canonical write through ``AttributeStore`` is followed by
a snapshot of the file's managed attributes into the BackupStore. Reads
of tags and rating fall back to the BackupStore when the canonical
attribute is missing or empty.
"""
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from filemeta.exceptions import FileMetaError, MalformedValueError, StorageFailureError
from filemeta.models.schema import (UNSET, AttributeValue, BackupRecord, Rating,
                                    ValueKind, utc_now)
from filemeta.services.rating import RatingCodec
from filemeta.services.tag_algebra import TagAlgebra
from filemeta.storage.attribute_codec import (MANAGED_KEYS, STAR_RATING, USER_TAGS,
                                              AttributeCodec)
from filemeta.storage.attribute_io import AttributeIO, Location, to_location
from filemeta.storage.backup_store import BackupStore

logger = logging.getLogger(__name__)

RESTORED = "restored"
UNCHANGED = "unchanged"
SKIPPED = "skipped"


class AttributeStore:
    """The canonical attribute store, shared by every service."""

    def __init__(
        self,
        io: AttributeIO,
        codec: AttributeCodec,
        backup_store: BackupStore,
    ):
        self.io = io
        self.codec = codec
        self.backup_store = backup_store
        self.ratings = RatingCodec(codec)

    # =========================================================================
    # Generic values
    # =========================================================================

    def read_raw(self, location: Location, key: str) -> Optional[bytes]:
        return self.io.read(to_location(location), self.codec.attribute_name(key))

    def read_value(
        self,
        location: Location,
        key: str,
        expected: Optional[ValueKind] = None,
    ) -> Optional[AttributeValue]:
        """Decode a canonical attribute; None when it is absent."""
        raw = self.read_raw(location, key)
        if raw is None:
            return None
        return self.codec.decode(raw, expected=expected, key=key)

    def write_values(
        self,
        location: Location,
        values: Mapping[str, Optional[AttributeValue]],
    ) -> None:
        """Write several keys on one file, then back the file up.

        A None value removes the attribute. All values are encoded before
        anything is written, so an oversized or unindexable value leaves
        the file untouched.
        """
        path = to_location(location)
        encoded: Dict[str, Optional[bytes]] = {
            key: None if value is None else self.codec.encode(value, key=key)
            for key, value in values.items()
        }
        for key, data in encoded.items():
            name = self.codec.attribute_name(key)
            if data is None:
                self.io.remove(path, name)
            else:
                self.io.write(path, name, data)
        self.backup(path)

    def write_value(
        self, location: Location, key: str, value: Optional[AttributeValue]
    ) -> None:
        self.write_values(location, {key: value})

    # =========================================================================
    # Tags and rating
    # =========================================================================

    def read_tags(self, location: Location, restore: bool = True) -> List[str]:
        """Read the user tags of a file.

        Args:
            restore: Consult the backup store when the canonical attribute
                is missing or empty.
        """
        path = to_location(location)
        tags = self._decode_tags(self.read_raw(path, USER_TAGS))
        if not tags and restore and self.restore(path, keys=(USER_TAGS,)):
            tags = self._decode_tags(self.read_raw(path, USER_TAGS))
        return tags

    def _decode_tags(self, raw: Optional[bytes]) -> List[str]:
        if not raw:
            return []
        value = self.codec.decode(raw, expected=ValueKind.ARRAY, key=USER_TAGS)
        if any(item.kind is not ValueKind.STRING for item in value.value):
            raise MalformedValueError("user_tags holds a non-string item", key=USER_TAGS)
        return TagAlgebra.normalize(item.value for item in value.value)

    @staticmethod
    def tags_value(tags: Sequence[str]) -> Optional[AttributeValue]:
        """Attribute value for a normalized tag list; None removes the attribute."""
        if not tags:
            return None
        return AttributeValue.array([AttributeValue.string(t) for t in tags])

    def write_tags(self, location: Location, tags: Sequence[str]) -> List[str]:
        tags = TagAlgebra.normalize(tags)
        self.write_value(location, USER_TAGS, self.tags_value(tags))
        return tags

    def read_rating(self, location: Location, restore: bool = True) -> Rating:
        path = to_location(location)
        rating = self.ratings.decode(self.read_raw(path, STAR_RATING))
        if rating is UNSET and restore and self.restore(path, keys=(STAR_RATING,)):
            rating = self.ratings.decode(self.read_raw(path, STAR_RATING))
        return rating

    def write_rating(self, location: Location, rating: Rating) -> Rating:
        value = self.ratings.encode(rating)
        self.write_value(location, STAR_RATING, value)
        return UNSET if value is None else value.value

    def write_tags_and_rating(
        self, location: Location, tags: Sequence[str], rating: Rating
    ) -> None:
        self.write_values(
            location,
            {
                USER_TAGS: self.tags_value(TagAlgebra.normalize(tags)),
                STAR_RATING: self.ratings.encode(rating),
            },
        )

    # =========================================================================
    # Backup and restore
    # =========================================================================

    def snapshot(self, location: Location) -> BackupRecord:
        """Capture the managed attributes currently on a file."""
        path = to_location(location)
        blobs = {key: self.read_raw(path, key) for key in MANAGED_KEYS}
        return BackupRecord(
            identity=self.io.identity_of(path),
            path=str(path.absolute()),
            tags_blob=blobs.pop(USER_TAGS),
            rating_blob=blobs.pop(STAR_RATING),
            attributes={key: blob for key, blob in blobs.items() if blob is not None},
            backed_up_at=utc_now(),
        )

    def backup(self, location: Location) -> Optional[BackupRecord]:
        """Mirror a file's managed attributes into the backup store.

        Failures are logged, never raised: the canonical write that
        triggered the backup has already succeeded.
        """
        try:
            record = self.snapshot(location)
            self.backup_store.record(record)
            return record
        except FileMetaError as e:
            logger.error(f"Backup of {location} failed: {e}")
            return None

    def restore(self, location: Location, keys: Optional[Sequence[str]] = None) -> List[str]:
        """Write backed-up attributes back where the canonical one is absent.

        Args:
            keys: Keys to consider; all managed keys when None.

        Returns:
            Keys that were written back.
        """
        path = to_location(location)
        record = self.backup_store.restore(self.io.identity_of(path))
        if record is None:
            return []
        restored = self._restore_from_record(path, record, keys)
        if restored:
            logger.info(f"Restored {', '.join(restored)} on {path} from backup")
            self._refresh_path(record, path)
        return restored

    def _refresh_path(self, record: BackupRecord, path: Path) -> None:
        # Keys not restored yet may still be missing canonically, so the
        # record is kept as is instead of re-snapshotting the file
        current = str(path.absolute())
        if record.path == current:
            return
        record.path = current
        try:
            self.backup_store.record(record)
        except FileMetaError as e:
            logger.error(f"Could not update backup path of {path}: {e}")

    def restore_record(self, record: BackupRecord) -> str:
        """Restore one backup record onto the file at its recorded path.

        Returns:
            RESTORED, UNCHANGED, or SKIPPED when the path is gone or now
            holds a different file.
        """
        path = Path(record.path)
        try:
            identity = self.io.identity_of(path)
        except StorageFailureError:
            return SKIPPED
        if identity != record.identity:
            return SKIPPED
        restored = self._restore_from_record(path, record, None)
        if not restored:
            return UNCHANGED
        logger.debug(f"Restored {', '.join(restored)} on {path}")
        return RESTORED

    def _restore_from_record(
        self,
        path: Path,
        record: BackupRecord,
        keys: Optional[Sequence[str]],
    ) -> List[str]:
        blobs: Dict[str, Optional[bytes]] = {
            USER_TAGS: record.tags_blob,
            STAR_RATING: record.rating_blob,
            **record.attributes,
        }
        restored = []
        for key, blob in blobs.items():
            if blob is None or (keys is not None and key not in keys):
                continue
            if self.read_raw(path, key):
                continue
            self.io.write(path, self.codec.attribute_name(key), blob)
            restored.append(key)
        return restored
