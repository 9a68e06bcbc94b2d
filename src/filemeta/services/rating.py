"""Star ratings: 0 to 5, floating point, with an explicit "not set" state."""
import math
from typing import Optional, Union

from filemeta.exceptions import MalformedValueError, ParamError
from filemeta.models.schema import UNSET, AttributeValue, Rating, RatingState, ValueKind
from filemeta.storage.attribute_codec import STAR_RATING, AttributeCodec

MAX_RATING = 5.0
MIN_RATING = 0.0


class RatingCodec:
    """Clamps ratings on the way in and tells "no rating" from "corrupt rating"."""

    def __init__(self, codec: AttributeCodec):
        self.codec = codec

    @staticmethod
    def clamp(rating: Union[int, float]) -> float:
        if isinstance(rating, bool) or not isinstance(rating, (int, float)):
            raise ParamError("Rating must be a number", field="rating", value=rating)
        if not math.isfinite(rating):
            raise ParamError("Rating must be finite", field="rating", value=rating)
        return min(MAX_RATING, max(MIN_RATING, float(rating)))

    def encode(self, rating: Rating) -> Optional[AttributeValue]:
        """Value to store, or None when the attribute should be removed."""
        if rating is UNSET:
            return None
        if isinstance(rating, RatingState):
            raise ParamError("Unknown rating state", field="rating", value=rating)
        return AttributeValue.number(self.clamp(rating))

    def encode_bytes(self, rating: Rating) -> Optional[bytes]:
        value = self.encode(rating)
        return None if value is None else self.codec.encode(value, key=STAR_RATING)

    def decode(self, raw: Optional[bytes]) -> Rating:
        """Decode a raw attribute read.

        Returns:
            UNSET when the attribute is absent, otherwise the clamped rating.

        Raises:
            MalformedValueError: The attribute exists but is not a number.
        """
        if raw is None:
            return UNSET
        if not raw:
            raise MalformedValueError("Rating attribute is empty", key=STAR_RATING)
        value = self.codec.decode(raw, expected=ValueKind.NUMBER, key=STAR_RATING)
        return self.clamp(value.value)
