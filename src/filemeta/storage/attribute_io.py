"""Raw extended attribute I/O and file identity derivation.

The rest of the package talks to the filesystem only through the
``AttributeIO`` protocol, so tests can swap in an in-memory fake.
"""
import errno
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Union

from filemeta.exceptions import ErrorCode, ParamError, StorageFailureError
from filemeta.models.schema import FileIdentity

logger = logging.getLogger(__name__)

Location = Union[str, os.PathLike]

# Linux reports a missing attribute as ENODATA, macOS as ENOATTR
_ABSENT_ERRNOS = frozenset(
    {errno.ENODATA, getattr(errno, "ENOATTR", errno.ENODATA)}
)

_MTIME_NUDGE_NS = 1_000_000_000


def to_location(location: Location) -> Path:
    """Validate a caller-supplied location and return it as a Path.

    Raises:
        ParamError: If the location is None, empty or not path-like.
    """
    if isinstance(location, Path):
        path = location
    elif isinstance(location, (str, os.PathLike)):
        raw = os.fspath(location)
        if isinstance(raw, bytes):
            raw = os.fsdecode(raw)
        if not raw or not raw.strip():
            raise ParamError(
                "Location cannot be empty",
                field="location",
                code=ErrorCode.LOCATION_INVALID,
            )
        path = Path(raw)
    else:
        raise ParamError(
            f"Location must be a path, got {type(location).__name__}",
            field="location",
            value=location,
            code=ErrorCode.LOCATION_INVALID,
        )
    if "\x00" in str(path):
        raise ParamError(
            "Location cannot contain NUL bytes",
            field="location",
            code=ErrorCode.LOCATION_INVALID,
        )
    return path


def locations_from_paths(paths: Iterable[Location]) -> List[Path]:
    """Convert a batch of path strings to validated locations."""
    return [to_location(p) for p in paths]


class AttributeIO(Protocol):
    """Raw attribute primitives of the underlying filesystem.

    ``read`` returns None when the attribute is absent and ``b""`` when it
    exists but is empty. Every other failure raises StorageFailureError.
    """

    def read(self, location: Path, name: str) -> Optional[bytes]: ...

    def write(self, location: Path, name: str, data: bytes) -> None: ...

    def remove(self, location: Path, name: str) -> bool: ...

    def names(self, location: Path) -> List[str]: ...

    def identity_of(self, location: Path) -> FileIdentity: ...


class XattrAttributeIO:
    """AttributeIO backed by the os.*xattr calls."""

    def __init__(self, touch_mtime: bool = False):
        """Initialize the xattr backend.

        Args:
            touch_mtime: Move the file's mtime forward by one second after
                each write so mtime-driven backup tools pick the change up.
        """
        self.touch_mtime = touch_mtime

    @staticmethod
    def _require_support(operation: str) -> None:
        if not hasattr(os, "getxattr"):
            raise StorageFailureError(
                "Extended attributes are not supported on this platform",
                operation=operation,
                errno=errno.ENOTSUP,
            )

    def read(self, location: Path, name: str) -> Optional[bytes]:
        self._require_support("getxattr")
        try:
            return os.getxattr(location, name)
        except OSError as e:
            if e.errno in _ABSENT_ERRNOS:
                return None
            raise StorageFailureError.from_os_error(e, "getxattr", str(location))

    def write(self, location: Path, name: str, data: bytes) -> None:
        self._require_support("setxattr")
        try:
            os.setxattr(location, name, data)
        except OSError as e:
            raise StorageFailureError.from_os_error(e, "setxattr", str(location))
        if self.touch_mtime:
            self._nudge_mtime(location)

    def remove(self, location: Path, name: str) -> bool:
        self._require_support("removexattr")
        try:
            os.removexattr(location, name)
        except OSError as e:
            if e.errno in _ABSENT_ERRNOS:
                return False
            raise StorageFailureError.from_os_error(e, "removexattr", str(location))
        if self.touch_mtime:
            self._nudge_mtime(location)
        return True

    def names(self, location: Path) -> List[str]:
        self._require_support("listxattr")
        try:
            return os.listxattr(location)
        except OSError as e:
            raise StorageFailureError.from_os_error(e, "listxattr", str(location))

    def identity_of(self, location: Path) -> FileIdentity:
        try:
            st = os.stat(location)
        except OSError as e:
            raise StorageFailureError.from_os_error(e, "stat", str(location))
        return FileIdentity(device=st.st_dev, inode=st.st_ino)

    def _nudge_mtime(self, location: Path) -> None:
        try:
            st = os.stat(location)
            os.utime(location, ns=(st.st_atime_ns, st.st_mtime_ns + _MTIME_NUDGE_NS))
        except OSError as e:
            # The attribute itself is written; a stale mtime only delays backups
            logger.warning(f"Could not update mtime of {location}: {e}")
