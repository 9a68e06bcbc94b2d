"""
filemeta - searchable user metadata for any file, stored in extended attributes.

Tags, star ratings, bookmarks and workflow records are written to xattrs
so they follow the file around independently of format-specific embedded
metadata. A shadow backup store restores them when copy tools or old
backup systems strip the attributes.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("filemeta")
except PackageNotFoundError:
    __version__ = "0.3.0"
