"""Sync tags and rating from one file to its copies.

The first location is authoritative: its tags and rating override
whatever the other locations hold. This is not a merge and does not use
the common-tag staleness check.
"""
import logging
from typing import Sequence

from filemeta.exceptions import FileMetaError, ParamError
from filemeta.models.schema import LocationOutcome, SyncReport
from filemeta.services.attribute_store import AttributeStore
from filemeta.storage.attribute_io import Location, locations_from_paths

logger = logging.getLogger(__name__)


class SyncOperation:
    """One sync run over an ordered list of locations."""

    def __init__(
        self,
        store: AttributeStore,
        locations: Sequence[Location],
        aggressive_restore: bool = False,
    ):
        """Prepare a sync.

        Args:
            store: Canonical attribute store.
            locations: First entry is the source; every entry is written.
            aggressive_restore: Restore every backed-up attribute the source
                is missing before reading it. Tags and rating fall back to
                the backup store either way.

        Raises:
            ParamError: If no locations are given.
        """
        self.store = store
        self.locations = locations_from_paths(locations)
        if not self.locations:
            raise ParamError("At least one location is required", field="locations")
        self.aggressive_restore = aggressive_restore

    def run(self) -> SyncReport:
        """Read the source, then write every location.

        Never raises for per-location failures; each location gets an
        outcome in the report. If the source cannot be read, every location
        is reported as failed and nothing is written.
        """
        source = self.locations[0]
        report = SyncReport(source=str(source))
        try:
            if self.aggressive_restore:
                self._restore_source()
            report.tags = self.store.read_tags(source)
            report.rating = self.store.read_rating(source)
        except FileMetaError as e:
            logger.warning(f"Sync source {source} unreadable: {e}")
            for location in self.locations:
                report.outcomes[str(location)] = LocationOutcome.failure(location, e)
            return report

        # Source read happens-before every write, including the source itself
        for location in self.locations:
            try:
                self.store.write_tags_and_rating(location, report.tags, report.rating)
                report.outcomes[str(location)] = LocationOutcome.success(location)
            except FileMetaError as e:
                logger.warning(f"Sync to {location} failed: {e}")
                report.outcomes[str(location)] = LocationOutcome.failure(location, e)

        logger.info(
            f"Synced {len(report.tags)} tag(s) from {source} to "
            f"{len(report.succeeded)}/{len(self.locations)} location(s)"
        )
        return report

    def _restore_source(self) -> None:
        source = self.locations[0]
        restored = self.store.restore(source)
        logger.debug(f"Aggressive restore of {source}: {restored or 'nothing'}")
