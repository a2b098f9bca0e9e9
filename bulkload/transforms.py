"""Value normalization applied after a column value is resolved.

Every transform is total: it accepts any Python value (including ``None``)
and never raises. Unexpected input degrades to ``None`` or a string.
"""

import json
import math
import re
from typing import Any, Callable, Dict, Optional, Union

from bulkload.config import TransformKind

_NA_PATTERN = re.compile(r"^N/?A$", re.IGNORECASE)
_JS_INFINITY = re.compile(r"^[+-]?Infinity$")
_FLOAT_WORDS = ("inf", "infinity", "nan")


def stringify(value: Any) -> str:
    """String form of a value, JSON-flavoured for booleans and containers."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def to_number(value: Any) -> Optional[Union[int, float]]:
    """Parse a value as a number, or return None."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    text = stringify(value).strip()
    if not text or "_" in text:
        return None
    if _JS_INFINITY.match(text):
        return float(text.replace("Infinity", "inf"))
    if text.lstrip("+-").lower() in _FLOAT_WORDS:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def _trim(value: Any) -> Any:
    return None if value is None else stringify(value).strip()


def _upper(value: Any) -> Any:
    return None if value is None else stringify(value).upper()


def _lower(value: Any) -> Any:
    return None if value is None else stringify(value).lower()


def _null_if_blank(value: Any) -> Any:
    if value is None:
        return None
    text = stringify(value).strip()
    if not text or _NA_PATTERN.match(text):
        return None
    return value


def _bool01(value: Any) -> int:
    if value is True:
        return 1
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 1:
        return 1
    if isinstance(value, str) and value.strip().lower() == "true":
        return 1
    return 0


def _string(value: Any) -> Any:
    return None if value is None else stringify(value)


TRANSFORMS: Dict[TransformKind, Callable[[Any], Any]] = {
    TransformKind.NONE: lambda value: value,
    TransformKind.TRIM: _trim,
    TransformKind.UPPER: _upper,
    TransformKind.LOWER: _lower,
    TransformKind.NULL_IF_BLANK: _null_if_blank,
    TransformKind.BOOL01: _bool01,
    TransformKind.NUMBER: to_number,
    TransformKind.STRING: _string,
}


def apply_transform(value: Any, kind: TransformKind = TransformKind.NONE) -> Any:
    """Apply one transform kind to a raw value."""
    return TRANSFORMS[TransformKind(kind)](value)
