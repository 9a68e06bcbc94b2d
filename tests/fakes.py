"""In-memory attribute I/O for testing.

MemoryAttributeIO implements the AttributeIO protocol over plain dicts so
the services can be exercised without a filesystem that supports extended
attributes. Files must be created before use; each gets a fresh inode,
which moves with it on rename.

Hooks for tests:
- strip(): drop every attribute of a file, as a careless copy tool would
- write_delay: seconds each write sleeps, to widen race windows
- fail_paths: paths whose writes raise StorageFailureError
- max_active_writes: highest number of writes seen in flight at once
"""
import errno
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Set

from filemeta.exceptions import StorageFailureError
from filemeta.models.schema import FileIdentity

FAKE_DEVICE = 42


class MemoryAttributeIO:
    """Thread-safe fake of the xattr backend."""

    def __init__(self, write_delay: float = 0.0):
        self.write_delay = write_delay
        self.fail_paths: Set[str] = set()
        self.write_count = 0
        self.active_writes = 0
        self.max_active_writes = 0
        self._lock = threading.Lock()
        self._inodes: Dict[str, int] = {}
        self._attrs: Dict[int, Dict[str, bytes]] = {}
        self._next_inode = 1000

    # -- file lifecycle -------------------------------------------------------

    def create(self, location) -> Path:
        """Create (or replace) a file at ``location`` with a new inode."""
        path = Path(location)
        with self._lock:
            self._next_inode += 1
            self._inodes[str(path)] = self._next_inode
            self._attrs[self._next_inode] = {}
        return path

    def rename(self, old, new) -> Path:
        with self._lock:
            self._inodes[str(Path(new))] = self._inodes.pop(str(Path(old)))
        return Path(new)

    def delete(self, location) -> None:
        with self._lock:
            inode = self._inodes.pop(str(Path(location)))
            self._attrs.pop(inode, None)

    def strip(self, location) -> None:
        with self._lock:
            self._attrs[self._inode(location)].clear()

    def attributes(self, location) -> Dict[str, bytes]:
        with self._lock:
            return dict(self._attrs[self._inode(location)])

    def _inode(self, location) -> int:
        try:
            return self._inodes[str(Path(location))]
        except KeyError:
            raise StorageFailureError(
                "No such file", operation="stat", path=str(location), errno=errno.ENOENT
            )

    # -- AttributeIO ----------------------------------------------------------

    def read(self, location: Path, name: str) -> Optional[bytes]:
        with self._lock:
            return self._attrs[self._inode(location)].get(name)

    def write(self, location: Path, name: str, data: bytes) -> None:
        if str(Path(location)) in self.fail_paths:
            raise StorageFailureError(
                "setxattr failed: injected", operation="setxattr",
                path=str(location), errno=errno.EIO,
            )
        with self._lock:
            self._inode(location)
            self.active_writes += 1
            self.max_active_writes = max(self.max_active_writes, self.active_writes)
        try:
            if self.write_delay:
                time.sleep(self.write_delay)
            with self._lock:
                self._attrs[self._inode(location)][name] = bytes(data)
                self.write_count += 1
        finally:
            with self._lock:
                self.active_writes -= 1

    def remove(self, location: Path, name: str) -> bool:
        if str(Path(location)) in self.fail_paths:
            raise StorageFailureError(
                "removexattr failed: injected", operation="removexattr",
                path=str(location), errno=errno.EIO,
            )
        with self._lock:
            return self._attrs[self._inode(location)].pop(name, None) is not None

    def names(self, location: Path) -> List[str]:
        with self._lock:
            return list(self._attrs[self._inode(location)])

    def identity_of(self, location: Path) -> FileIdentity:
        with self._lock:
            return FileIdentity(device=FAKE_DEVICE, inode=self._inode(location))
