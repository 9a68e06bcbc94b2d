"""Recently entered tags, most recent first."""
import logging
from typing import List, Optional, Sequence

from sqlalchemy import delete, select

from filemeta.config import config
from filemeta.models.db_models import DBRecentTag
from filemeta.services.tag_algebra import TagAlgebra

logger = logging.getLogger(__name__)


class RecentTagsStore:
    """Keeps a common list of recently used tags for tag-entry UIs.

    Case preserving; "Apple" and "apple" occupy one slot.
    """

    def __init__(self, session_factory, limit: Optional[int] = None):
        self.session_factory = session_factory
        self.limit = limit or config.recent_tags_limit

    def load_recent_tags(self) -> List[str]:
        with self.session_factory() as session:
            rows = session.scalars(select(DBRecentTag).order_by(DBRecentTag.position)).all()
            return [row.name for row in rows]

    def save_recent_tags(self, tags: Sequence[str]) -> None:
        """Replace the stored list, deduplicated and capped at ``limit``."""
        tags = TagAlgebra.normalize(tags)[: self.limit]
        with self.session_factory() as session:
            session.execute(delete(DBRecentTag))
            session.add_all(
                DBRecentTag(name=name, position=index) for index, name in enumerate(tags)
            )
            session.commit()

    def update(self, old_tags: Sequence[str], new_tags: Sequence[str]) -> List[str]:
        """Move tags present in ``new_tags`` but not ``old_tags`` to the front.

        Pass the tags as they were before an edit and the full edited set.

        Returns:
            The updated recent list.
        """
        added, _ = TagAlgebra.clear_tags(new_tags, old_tags)
        current = self.load_recent_tags()
        if not added:
            return current
        updated, _ = TagAlgebra.add_tags(added, current)
        updated = updated[: self.limit]
        self.save_recent_tags(updated)
        logger.debug(f"Recent tags updated with {len(added)} new tag(s)")
        return updated
