"""Data models for filemeta."""

import datetime
import math
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from filemeta.exceptions import ErrorCode, FileMetaError, ParamError


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


class ValueKind(str, Enum):
    """Tags of the AttributeValue union."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    ARRAY = "array"
    DICTIONARY = "dictionary"


# Kinds the search index can represent as a single searchable value
PRIMITIVE_KINDS = frozenset({ValueKind.STRING, ValueKind.NUMBER, ValueKind.DATE})


class KeyClass(str, Enum):
    """Whether an attribute key is picked up by the external search index."""

    INDEXED = "indexed"  # primitives or arrays of primitives only
    OPAQUE = "opaque"  # any encoded value, never searched


@dataclass(frozen=True)
class AttributeValue:
    """A typed value stored in a single attribute slot.

    ``value`` holds a str, an int or float, a datetime, a tuple of
    AttributeValue (ARRAY) or a dict of str -> AttributeValue (DICTIONARY).
    Build instances with the named constructors or ``from_python``.
    """

    kind: ValueKind
    value: Any

    @classmethod
    def string(cls, value: str) -> "AttributeValue":
        if not isinstance(value, str):
            raise ParamError("Expected a string", field="value", value=value)
        return cls(ValueKind.STRING, value)

    @classmethod
    def number(cls, value: Union[int, float]) -> "AttributeValue":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ParamError("Expected an int or float", field="value", value=value)
        if isinstance(value, float) and not math.isfinite(value):
            raise ParamError("Numbers must be finite", field="value", value=value)
        return cls(ValueKind.NUMBER, value)

    @classmethod
    def date(cls, value: datetime.datetime) -> "AttributeValue":
        if not isinstance(value, datetime.datetime):
            raise ParamError("Expected a datetime", field="value", value=value)
        return cls(ValueKind.DATE, value)

    @classmethod
    def array(cls, items: Sequence["AttributeValue"]) -> "AttributeValue":
        return cls(ValueKind.ARRAY, tuple(items))

    @classmethod
    def dictionary(cls, entries: Mapping[str, "AttributeValue"]) -> "AttributeValue":
        for key in entries:
            if not isinstance(key, str):
                raise ParamError("Dictionary keys must be strings", field="key", value=key)
        return cls(ValueKind.DICTIONARY, dict(entries))

    @classmethod
    def from_python(cls, obj: Any) -> "AttributeValue":
        """Build an AttributeValue from plain Python data.

        Raises:
            ParamError: For None, booleans and any other unsupported type.
        """
        if isinstance(obj, AttributeValue):
            return obj
        if isinstance(obj, str):
            return cls.string(obj)
        if isinstance(obj, datetime.datetime):
            return cls.date(obj)
        if isinstance(obj, (int, float)) and not isinstance(obj, bool):
            return cls.number(obj)
        if isinstance(obj, (list, tuple)):
            return cls.array([cls.from_python(item) for item in obj])
        if isinstance(obj, Mapping):
            return cls.dictionary({k: cls.from_python(v) for k, v in obj.items()})
        raise ParamError(
            f"Unsupported attribute value type: {type(obj).__name__}",
            field="value",
            value=obj,
        )

    def to_python(self) -> Any:
        """Convert back to plain Python data (lists and dicts)."""
        if self.kind is ValueKind.ARRAY:
            return [item.to_python() for item in self.value]
        if self.kind is ValueKind.DICTIONARY:
            return {k: v.to_python() for k, v in self.value.items()}
        return self.value

    @property
    def is_primitive(self) -> bool:
        return self.kind in PRIMITIVE_KINDS


@dataclass(frozen=True)
class FileIdentity:
    """Rename-resilient reference to a file: device and inode numbers.

    Stable across moves within one volume, not across volumes.
    """

    device: int
    inode: int

    @property
    def token(self) -> str:
        """Key used by the backup store."""
        return f"{self.device}:{self.inode}"

    @classmethod
    def from_token(cls, token: str) -> "FileIdentity":
        try:
            device, inode = token.split(":")
            return cls(device=int(device), inode=int(inode))
        except ValueError:
            raise ParamError("Malformed file identity token", field="identity", value=token)

    def __str__(self) -> str:
        return self.token


class RatingState(Enum):
    """Marker for a rating that was never set (distinct from 0)."""

    UNSET = "unset"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = RatingState.UNSET

Rating = Union[float, RatingState]


class EditStatus(str, Enum):
    """Outcome of a successful edit."""

    SUCCESS = "success"
    NO_CHANGE = "no_change"  # nothing had to be written


@dataclass
class EditResult:
    """Result of a tag or array edit.

    Attributes:
        status: SUCCESS when the attribute was written, NO_CHANGE otherwise.
        values: The values stored on the file after the call.
    """

    status: EditStatus
    values: List[Any] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.status is EditStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "values": list(self.values)}


@dataclass(frozen=True)
class CommonTagSnapshot:
    """Common tags of a group of files at read time.

    Callers pass it back to ``set_common_user_tags``; the write only goes
    ahead when the live common tags still match ``tags``.
    """

    locations: Tuple[Path, ...]
    identities: Tuple[FileIdentity, ...]
    tags: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locations": [str(p) for p in self.locations],
            "identities": [i.token for i in self.identities],
            "tags": list(self.tags),
        }


@dataclass
class BackupRecord:
    """Shadow copy of one file's managed attributes.

    Blobs are the encoded attribute values exactly as written; ``None``
    means the attribute was absent at the last write.
    """

    identity: FileIdentity
    path: str
    tags_blob: Optional[bytes] = None
    rating_blob: Optional[bytes] = None
    attributes: Dict[str, bytes] = field(default_factory=dict)
    backed_up_at: datetime.datetime = field(default_factory=utc_now)

    @property
    def is_empty(self) -> bool:
        return self.tags_blob is None and self.rating_blob is None and not self.attributes


@dataclass
class LocationOutcome:
    """Per-file result of a bulk operation."""

    location: str
    ok: bool
    error_code: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, location: Union[str, Path]) -> "LocationOutcome":
        return cls(location=str(location), ok=True)

    @classmethod
    def failure(cls, location: Union[str, Path], exc: Exception) -> "LocationOutcome":
        if isinstance(exc, FileMetaError):
            code = exc.code.name
            message = exc.message
        else:
            code = ErrorCode.STORAGE_FAILURE.name
            message = str(exc)
        return cls(location=str(location), ok=False, error_code=code, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "ok": self.ok,
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass
class SyncReport:
    """Result of syncing tags and rating from one file to several."""

    source: str
    tags: List[str] = field(default_factory=list)
    rating: Rating = UNSET
    outcomes: Dict[str, LocationOutcome] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return [loc for loc, o in self.outcomes.items() if o.ok]

    @property
    def failed(self) -> Dict[str, LocationOutcome]:
        return {loc: o for loc, o in self.outcomes.items() if not o.ok}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "tags": list(self.tags),
            "rating": None if self.rating is UNSET else self.rating,
            "outcomes": {loc: o.to_dict() for loc, o in self.outcomes.items()},
        }


class RestoreState(str, Enum):
    """Lifecycle of a full restore pass."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class RestoreReport:
    """Aggregate result of a restore pass over the backup store.

    Attributes:
        state: COMPLETED, or CANCELLED when shutdown interrupted the pass.
        restored: Paths that had at least one attribute written back.
        unchanged: Paths whose canonical attributes were already present.
        skipped: Paths that no longer exist or now hold a different file.
        failed: Path -> error message.
        dropped: Files never started because of shutdown.
    """

    state: RestoreState = RestoreState.COMPLETED
    restored: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    dropped: int = 0

    @property
    def total(self) -> int:
        return (
            len(self.restored) + len(self.unchanged) + len(self.skipped)
            + len(self.failed) + self.dropped
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "restored": list(self.restored),
            "unchanged": list(self.unchanged),
            "skipped": list(self.skipped),
            "failed": dict(self.failed),
            "dropped": self.dropped,
        }
