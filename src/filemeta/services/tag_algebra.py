"""Set operations over user tags.

Tags are case preserving and case insensitive: "Apple" and "apple" are the
same tag, and whichever casing was seen first is kept. Comparison uses
``str.casefold`` with no locale collation and no Unicode normalization.
"""
from typing import Iterable, List, Sequence, Set, Tuple

from filemeta.exceptions import ParamError


def tag_key(tag: str) -> str:
    """Comparison key for a tag."""
    return tag.casefold()


class TagAlgebra:
    """Pure functions over tag sequences; every result is a new list."""

    @staticmethod
    def normalize(tags: Iterable[str]) -> List[str]:
        """Deduplicate case-insensitively, keeping first-seen casing and order.

        Empty and whitespace-only entries are dropped.

        Raises:
            ParamError: If ``tags`` is a bare string or holds a non-string.
        """
        if isinstance(tags, (str, bytes)):
            raise ParamError("Tags must be a sequence of strings, not a string", field="tags")
        result: List[str] = []
        seen: Set[str] = set()
        for tag in tags:
            if not isinstance(tag, str):
                raise ParamError("Tags must be strings", field="tags", value=tag)
            if not tag.strip():
                continue
            key = tag_key(tag)
            if key not in seen:
                seen.add(key)
                result.append(tag)
        return result

    @classmethod
    def set_tags(cls, new_tags: Iterable[str]) -> List[str]:
        return cls.normalize(new_tags)

    @classmethod
    def add_tags(
        cls, existing: Iterable[str], to_add: Iterable[str]
    ) -> Tuple[List[str], bool]:
        """Union of two tag sequences.

        Returns:
            (tags, changed). ``changed`` is False when ``to_add`` brought
            nothing new; a deduplication of ``existing`` alone does not count.
        """
        current = cls.normalize(existing)
        merged = cls.normalize([*current, *cls.normalize(to_add)])
        return merged, len(merged) != len(current)

    @classmethod
    def clear_tags(
        cls, existing: Iterable[str], to_remove: Iterable[str]
    ) -> Tuple[List[str], bool]:
        """Difference of two tag sequences.

        Returns:
            (tags, changed). ``changed`` is False when none of ``to_remove``
            was present.
        """
        current = cls.normalize(existing)
        remove_keys = {tag_key(t) for t in cls.normalize(to_remove)}
        remaining = [t for t in current if tag_key(t) not in remove_keys]
        return remaining, len(remaining) != len(current)

    @classmethod
    def intersect(cls, tag_sets: Sequence[Iterable[str]]) -> List[str]:
        """Tags present in every set, in the order and casing of the first set.

        An empty set anywhere makes the result empty.
        """
        if not tag_sets:
            return []
        first = cls.normalize(tag_sets[0])
        common = {tag_key(t) for t in first}
        for tags in tag_sets[1:]:
            common &= {tag_key(t) for t in cls.normalize(tags)}
            if not common:
                return []
        return [t for t in first if tag_key(t) in common]

    @staticmethod
    def same_tags(a: Iterable[str], b: Iterable[str]) -> bool:
        """Case-insensitive set equality."""
        return {tag_key(t) for t in a} == {tag_key(t) for t in b}

    @classmethod
    def ordered_by_hint(cls, tags: Iterable[str], hint: Sequence[str]) -> List[str]:
        """Order tags so those named in ``hint`` come first, in hint order.

        Tags missing from the hint follow in their original order. Casing
        of ``tags`` is kept.
        """
        tags = cls.normalize(tags)
        by_key = {tag_key(t): t for t in tags}
        ordered: List[str] = []
        for hinted in hint:
            tag = by_key.pop(tag_key(hinted), None) if isinstance(hinted, str) else None
            if tag is not None:
                ordered.append(tag)
        ordered.extend(t for t in tags if tag_key(t) in by_key)
        return ordered
