"""Custom exceptions for filemeta.

Provides a structured exception hierarchy with error codes and
machine-readable error information. A successful no-op edit is not an
error: edit operations report it through ``EditStatus.NO_CHANGE``.
"""
import errno as errno_module
import os
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Input errors (1xxx)
    PARAM_INVALID = 1001
    LOCATION_INVALID = 1002
    SNAPSHOT_MISMATCH = 1003

    # Lookup errors (2xxx)
    NO_DATA_FOUND = 2001
    BACKUP_NOT_FOUND = 2002

    # Value encoding errors (3xxx)
    VALUE_MALFORMED = 3001
    VALUE_TOO_LARGE = 3002
    WILL_NOT_INDEX = 3003

    # Concurrency errors (4xxx)
    STALE_SNAPSHOT = 4001

    # Storage errors (5xxx)
    STORAGE_FAILURE = 5001
    BACKUP_FAILURE = 5002

    # Bulk operation errors (55xx)
    BULK_OPERATION_PARTIAL = 5502

    # Lifecycle errors (6xxx)
    SCHEDULER_SHUT_DOWN = 6001


class FileMetaError(Exception):
    """Base exception for all filemeta errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.PARAM_INVALID,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ParamError(FileMetaError):
    """Raised for invalid input such as a malformed location or value."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.PARAM_INVALID
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class NoDataFoundError(FileMetaError):
    """Raised when an attribute or backup record is absent (not merely empty)."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        location: Optional[str] = None,
        code: ErrorCode = ErrorCode.NO_DATA_FOUND
    ):
        details = {}
        if key:
            details["key"] = key
        if location:
            details["location"] = os.path.basename(location) or location

        super().__init__(message, code=code, details=details)
        self.key = key
        self.location = location


class MalformedValueError(FileMetaError):
    """Raised when stored bytes cannot be decoded into the expected shape."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(
            message,
            code=ErrorCode.VALUE_MALFORMED,
            details={"key": key} if key else None,
        )
        self.key = key


class EncodeTooLargeError(FileMetaError):
    """Raised when an encoded value exceeds the attribute size ceiling."""

    def __init__(self, size: int, limit: int, key: Optional[str] = None):
        details: Dict[str, Any] = {"size": size, "limit": limit}
        if key:
            details["key"] = key
        super().__init__(
            f"Encoded value is {size} bytes, limit is {limit}",
            code=ErrorCode.VALUE_TOO_LARGE,
            details=details,
        )
        self.size = size
        self.limit = limit
        self.key = key


class WillNotIndexError(FileMetaError):
    """Raised when an indexed key is given a shape the search index cannot hold."""

    def __init__(self, key: str, kind: str):
        super().__init__(
            f"Indexed key '{key}' cannot hold a value of kind '{kind}'",
            code=ErrorCode.WILL_NOT_INDEX,
            details={"key": key, "kind": kind},
        )
        self.key = key
        self.kind = kind


class StaleSnapshotError(FileMetaError):
    """Raised when the common tags changed since the caller took its snapshot.

    Attributes:
        expected: Common tags recorded in the snapshot
        actual: Common tags read from the files just now
    """

    def __init__(self, expected: List[str], actual: List[str]):
        super().__init__(
            "Common tags changed since the snapshot was taken",
            code=ErrorCode.STALE_SNAPSHOT,
            details={"expected": expected[:20], "actual": actual[:20]},
        )
        self.expected = list(expected)
        self.actual = list(actual)


class StorageFailureError(FileMetaError):
    """Raised for underlying attribute or database I/O errors.

    Wraps the native errno when one is available.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        errno: Optional[int] = None,
        code: ErrorCode = ErrorCode.STORAGE_FAILURE,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = os.path.basename(path) or path
        if errno is not None:
            details["errno"] = errno
            details["errno_name"] = errno_module.errorcode.get(errno, "UNKNOWN")
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.errno = errno
        self.original_error = original_error

    @classmethod
    def from_os_error(
        cls, exc: OSError, operation: str, path: Optional[str] = None
    ) -> "StorageFailureError":
        """Wrap an OSError raised by an xattr or stat call."""
        return cls(
            f"{operation} failed: {exc.strerror or exc}",
            operation=operation,
            path=path or exc.filename,
            errno=exc.errno,
            original_error=exc,
        )


class BulkOperationError(FileMetaError):
    """Raised when a multi-file write fails part-way.

    Attributes:
        operation: Name of the bulk operation
        total_count: Total number of files attempted
        success_count: Number of files written
        failed: Location -> error message for every failed file
    """

    def __init__(
        self,
        message: str,
        operation: str,
        total_count: int = 0,
        success_count: int = 0,
        failed: Optional[Dict[str, str]] = None,
        code: ErrorCode = ErrorCode.BULK_OPERATION_PARTIAL
    ):
        if success_count > total_count:
            raise ValueError("success_count cannot exceed total_count")

        failed = dict(failed or {})
        details: Dict[str, Any] = {
            "operation": operation,
            "total_count": total_count,
            "success_count": success_count,
            "failed_count": total_count - success_count,
        }
        if failed:
            details["failed"] = list(failed)[:10]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.total_count = total_count
        self.success_count = success_count
        self.failed = failed

    @property
    def failed_count(self) -> int:
        return self.total_count - self.success_count


class SchedulerShutdownError(FileMetaError):
    """Raised when work is submitted after the restore scheduler shut down."""

    def __init__(self, message: str = "Restore scheduler has been shut down"):
        super().__init__(message, code=ErrorCode.SCHEDULER_SHUT_DOWN)
