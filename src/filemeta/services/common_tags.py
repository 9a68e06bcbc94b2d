"""Group editing of the tags shared by several files.

Callers read the common tags of a group, let the user edit them, and pass
the original snapshot back with the edit. The write is refused when the
common tags changed in the meantime, so a group edit never proceeds on
data the caller has not seen and never touches a file's private tags.
"""
import logging
from typing import Dict, List, Sequence

from filemeta.exceptions import (BulkOperationError, ErrorCode, FileMetaError,
                                 ParamError, StaleSnapshotError)
from filemeta.models.schema import CommonTagSnapshot
from filemeta.services.attribute_store import AttributeStore
from filemeta.services.tag_algebra import TagAlgebra, tag_key
from filemeta.storage.attribute_codec import USER_TAGS
from filemeta.storage.attribute_io import Location, locations_from_paths

logger = logging.getLogger(__name__)


class CommonTagReconciler:
    """Computes common tags and applies optimistic multi-file tag edits."""

    def __init__(self, store: AttributeStore):
        self.store = store

    def common_tags(self, locations: Sequence[Location]) -> CommonTagSnapshot:
        """Intersection of the tags on every file.

        Each read falls back to the backup store. A file with no tags makes
        the intersection empty.

        Raises:
            ParamError: If no locations are given.
        """
        paths = locations_from_paths(locations)
        if not paths:
            raise ParamError("At least one location is required", field="locations")
        identities = tuple(self.store.io.identity_of(p) for p in paths)
        tag_sets = [self.store.read_tags(p, restore=True) for p in paths]
        return CommonTagSnapshot(
            locations=tuple(paths),
            identities=identities,
            tags=tuple(TagAlgebra.intersect(tag_sets)),
        )

    def set_common_tags(
        self,
        locations: Sequence[Location],
        snapshot: CommonTagSnapshot,
        new_tags: Sequence[str],
    ) -> Dict[str, List[str]]:
        """Replace the common tags of a group, keeping each file's private tags.

        Every file is re-read first (canonical attributes only, the backup
        store takes no part in the check). If the live common tags differ
        from ``snapshot.tags`` nothing is written.

        Returns:
            Location -> tags written to that file.

        Raises:
            ParamError: SNAPSHOT_MISMATCH when the files are not the ones the
                snapshot was taken on.
            StaleSnapshotError: The common tags changed since the snapshot.
            BulkOperationError: A write failed after others succeeded.
        """
        paths = locations_from_paths(locations)
        identities = [self.store.io.identity_of(p) for p in paths]
        if set(identities) != set(snapshot.identities):
            raise ParamError(
                "Locations do not match the files of the snapshot",
                field="snapshot",
                code=ErrorCode.SNAPSHOT_MISMATCH,
            )
        new_tags = TagAlgebra.normalize(new_tags)

        current = [self.store.read_tags(p, restore=False) for p in paths]
        live_common = TagAlgebra.intersect(current)
        if not TagAlgebra.same_tags(live_common, snapshot.tags):
            logger.info(
                f"Refusing stale common-tag edit on {len(paths)} file(s): "
                f"expected {list(snapshot.tags)}, found {live_common}"
            )
            raise StaleSnapshotError(list(snapshot.tags), live_common)

        shared_keys = {tag_key(t) for t in snapshot.tags}
        edited = {tag_key(t): t for t in new_tags}
        planned: Dict[str, List[str]] = {}
        for path, tags in zip(paths, current):
            # Surviving tags keep their position, taking the edit's casing
            kept = [
                edited.get(tag_key(t), t) for t in tags
                if tag_key(t) not in shared_keys or tag_key(t) in edited
            ]
            planned[str(path)] = TagAlgebra.normalize([*kept, *new_tags])
            # Encode up front so a too-large result aborts before any write
            self.store.codec.encode(
                self.store.tags_value(planned[str(path)]) or [], key=USER_TAGS
            )

        failed: Dict[str, str] = {}
        for path in paths:
            try:
                self.store.write_tags(path, planned[str(path)])
            except FileMetaError as e:
                logger.warning(f"Common-tag write to {path} failed: {e}")
                failed[str(path)] = str(e)
        if failed:
            raise BulkOperationError(
                f"Common tags written to {len(paths) - len(failed)} of {len(paths)} files",
                operation="set_common_tags",
                total_count=len(paths),
                success_count=len(paths) - len(failed),
                failed=failed,
            )
        return planned
