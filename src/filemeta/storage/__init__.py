"""Storage layer: raw attribute I/O, value codec and the backup store."""

from filemeta.storage.attribute_codec import AttributeCodec
from filemeta.storage.attribute_io import AttributeIO, XattrAttributeIO
from filemeta.storage.backup_store import BackupStore
from filemeta.storage.recent_tags import RecentTagsStore

__all__ = [
    "AttributeCodec",
    "AttributeIO",
    "XattrAttributeIO",
    "BackupStore",
    "RecentTagsStore",
]
