"""Encoding of typed values into size-bounded attribute blobs.

Blobs are compact UTF-8 JSON of a tagged tree. Every node is a
two-element array ``[tag, payload]``:

    s  string            i  integer         f  float
    d  ISO-8601 date     a  array of nodes  m  object of nodes

Tagging every node keeps ints, floats and dates distinct so they come
back exactly as written.
"""
import datetime
import json
import logging
from typing import Any, Dict, Optional

from filemeta.config import config
from filemeta.exceptions import (EncodeTooLargeError, MalformedValueError,
                                 ParamError, WillNotIndexError)
from filemeta.models.schema import AttributeValue, KeyClass, ValueKind

logger = logging.getLogger(__name__)

# Well-known keys
USER_TAGS = "user_tags"  # array of strings entered by the user
STAR_RATING = "star_rating"  # number, 0 - 5
HIDDEN = "hidden"  # "YES" when the user hid the file
BOOKMARKS = "bookmarks"  # dictionaries: name, url
APPROVED = "approved"  # dictionaries: name, date
WORKFLOW = "workflow"  # dictionaries: name, what, duedate, auto
PROJECTS = "projects"  # dictionaries: name

# Full dictionaries live under "<key>.dicts"; the key itself holds the names
DICTS_SUFFIX = ".dicts"

KEY_CLASSES: Dict[str, KeyClass] = {
    USER_TAGS: KeyClass.INDEXED,
    STAR_RATING: KeyClass.INDEXED,
    HIDDEN: KeyClass.INDEXED,
    BOOKMARKS: KeyClass.INDEXED,
    APPROVED: KeyClass.INDEXED,
    WORKFLOW: KeyClass.INDEXED,
    PROJECTS: KeyClass.INDEXED,
}

DICTIONARY_KEYS = (BOOKMARKS, APPROVED, WORKFLOW, PROJECTS)

# Keys mirrored into the backup store
MANAGED_KEYS = (
    USER_TAGS,
    STAR_RATING,
    HIDDEN,
    *DICTIONARY_KEYS,
    *(key + DICTS_SUFFIX for key in DICTIONARY_KEYS),
)

NAME_FIELD = "name"

_TAG_BY_KIND = {
    ValueKind.STRING: "s",
    ValueKind.DATE: "d",
    ValueKind.ARRAY: "a",
    ValueKind.DICTIONARY: "m",
}


def classify(key: str) -> KeyClass:
    """Static classification of a key; unknown keys are opaque."""
    return KEY_CLASSES.get(key, KeyClass.OPAQUE)


def companion_key(key: str) -> str:
    """Opaque key holding the full dictionaries for a dictionary key."""
    return key + DICTS_SUFFIX


def dictionary_names(value: AttributeValue) -> AttributeValue:
    """Collect the ``name`` entry of every dictionary in an array.

    Raises:
        ParamError: If the value is not an array of dictionaries, or any
            dictionary lacks a string, number or date ``name``.
    """
    if value.kind is not ValueKind.ARRAY:
        raise ParamError("Expected an array of dictionaries", field="value")
    names = []
    for index, item in enumerate(value.value):
        if item.kind is not ValueKind.DICTIONARY:
            raise ParamError(
                f"Item {index} is a {item.kind.value}, not a dictionary", field="value"
            )
        name = item.value.get(NAME_FIELD)
        if name is None:
            raise ParamError(f"Dictionary {index} has no '{NAME_FIELD}' entry", field=NAME_FIELD)
        if not name.is_primitive:
            raise ParamError(
                f"Dictionary {index} '{NAME_FIELD}' must be a string, number or date",
                field=NAME_FIELD,
                value=name.kind.value,
            )
        names.append(name)
    return AttributeValue.array(names)


class AttributeCodec:
    """Encodes AttributeValues to bytes and back, enforcing the size ceiling."""

    def __init__(
        self,
        max_bytes: Optional[int] = None,
        prefix: Optional[str] = None,
    ):
        """Initialize the codec.

        Args:
            max_bytes: Largest encoded value accepted. Defaults to config.
            prefix: Prefix turning a key into an attribute name. Defaults to config.
        """
        self.max_bytes = max_bytes if max_bytes is not None else config.max_attribute_bytes
        self.prefix = prefix if prefix is not None else config.attribute_prefix

    def attribute_name(self, key: str) -> str:
        """Full extended attribute name for a key."""
        if not isinstance(key, str) or not key.strip():
            raise ParamError("Attribute key cannot be empty", field="key", value=key)
        if "\x00" in key:
            raise ParamError("Attribute key cannot contain NUL bytes", field="key")
        return self.prefix + key

    def check_indexable(self, key: str, value: AttributeValue) -> None:
        """Raise WillNotIndexError if an indexed key cannot hold the value."""
        if classify(key) is not KeyClass.INDEXED:
            return
        if value.is_primitive:
            return
        if value.kind is ValueKind.ARRAY and all(item.is_primitive for item in value.value):
            return
        raise WillNotIndexError(key, value.kind.value)

    def encode(self, value: Any, key: Optional[str] = None) -> bytes:
        """Encode a value for a single attribute slot.

        Args:
            value: AttributeValue or plain Python data convertible to one.
            key: Attribute key; when given, indexed-key shape rules apply.

        Raises:
            ParamError: Unsupported Python type.
            WillNotIndexError: Indexed key given a nested or dictionary value.
            EncodeTooLargeError: Encoded size above the ceiling.
        """
        value = AttributeValue.from_python(value)
        if key is not None:
            self.check_indexable(key, value)
        data = json.dumps(
            self._to_node(value),
            ensure_ascii=False,
            separators=(",", ":"),
            allow_nan=False,
        ).encode("utf-8")
        if len(data) > self.max_bytes:
            raise EncodeTooLargeError(len(data), self.max_bytes, key=key)
        return data

    def decode(
        self,
        data: bytes,
        expected: Optional[ValueKind] = None,
        key: Optional[str] = None,
    ) -> AttributeValue:
        """Decode a blob produced by ``encode``.

        Args:
            data: Raw attribute bytes.
            expected: Kind the caller requires; a mismatch is malformed.
            key: Used in error details only.

        Raises:
            MalformedValueError: The bytes are not a valid encoding, or the
                decoded kind differs from ``expected``.
        """
        try:
            node = json.loads(data.decode("utf-8"))
            value = self._from_node(node)
        except (
            UnicodeDecodeError, ValueError, TypeError, KeyError, RecursionError, ParamError
        ) as e:
            raise MalformedValueError(f"Cannot decode attribute value: {e}", key=key)
        if expected is not None and value.kind is not expected:
            raise MalformedValueError(
                f"Expected {expected.value}, found {value.kind.value}", key=key
            )
        return value

    def _to_node(self, value: AttributeValue) -> list:
        if value.kind is ValueKind.NUMBER:
            return ["i", value.value] if isinstance(value.value, int) else ["f", value.value]
        tag = _TAG_BY_KIND[value.kind]
        if value.kind is ValueKind.DATE:
            return [tag, value.value.isoformat()]
        if value.kind is ValueKind.ARRAY:
            return [tag, [self._to_node(item) for item in value.value]]
        if value.kind is ValueKind.DICTIONARY:
            return [tag, {k: self._to_node(v) for k, v in value.value.items()}]
        return [tag, value.value]

    def _from_node(self, node: Any) -> AttributeValue:
        if not isinstance(node, list) or len(node) != 2 or not isinstance(node[0], str):
            raise ValueError("node must be a [tag, payload] pair")
        tag, payload = node
        if tag == "s" and isinstance(payload, str):
            return AttributeValue.string(payload)
        if tag == "i" and isinstance(payload, int) and not isinstance(payload, bool):
            return AttributeValue.number(payload)
        if tag == "f" and isinstance(payload, (int, float)) and not isinstance(payload, bool):
            return AttributeValue.number(float(payload))
        if tag == "d" and isinstance(payload, str):
            return AttributeValue.date(datetime.datetime.fromisoformat(payload))
        if tag == "a" and isinstance(payload, list):
            return AttributeValue.array([self._from_node(item) for item in payload])
        if tag == "m" and isinstance(payload, dict):
            return AttributeValue.dictionary(
                {k: self._from_node(v) for k, v in payload.items()}
            )
        raise ValueError(f"unknown node tag {tag!r} or payload type")
