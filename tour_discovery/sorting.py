"""Client-side ordering of tour pages."""
from __future__ import annotations

import unicodedata
from datetime import datetime
from typing import Iterable, List, Optional, Tuple, Union

from .models import SortOrder, TourItem

# Character classes in Korean collation order.
_CLASS_SPACE_PUNCT = 0
_CLASS_DIGIT = 1
_CLASS_HANGUL = 2
_CLASS_HAN = 3
_CLASS_LATIN = 4
_CLASS_OTHER = 5


def parse_modified_time(value: str) -> Optional[datetime]:
    """Parse a 14-digit YYYYMMDDHHmmss timestamp by position.

    Returns None for anything that is not exactly 14 digits or names an
    impossible date.
    """
    if not isinstance(value, str) or len(value) != 14 or not value.isdigit():
        return None
    try:
        return datetime(
            int(value[0:4]),
            int(value[4:6]),
            int(value[6:8]),
            int(value[8:10]),
            int(value[10:12]),
            int(value[12:14]),
        )
    except ValueError:
        return None


def _char_class(ch: str) -> int:
    if ch.isspace() or unicodedata.category(ch)[0] in ("P", "S"):
        return _CLASS_SPACE_PUNCT
    if ch.isdigit():
        return _CLASS_DIGIT
    code = ord(ch)
    if (0xAC00 <= code <= 0xD7A3) or (0x1100 <= code <= 0x11FF) or (0x3130 <= code <= 0x318F):
        return _CLASS_HANGUL
    if 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF or 0xF900 <= code <= 0xFAFF:
        return _CLASS_HAN
    if ch.isascii() or unicodedata.name(ch, "").startswith("LATIN"):
        return _CLASS_LATIN
    return _CLASS_OTHER


def collation_key(text: str) -> Tuple[Tuple[Tuple[int, str], ...], str]:
    normalized = unicodedata.normalize("NFC", text or "")
    folded = normalized.casefold()
    chars = tuple((_char_class(ch), ch) for ch in folded)
    return chars, normalized


def _recent_key(item: TourItem) -> Tuple[int, datetime]:
    parsed = parse_modified_time(item.last_modified)
    if parsed is None:
        return (0, datetime.min)
    return (1, parsed)


def sort_tours(items: Iterable[TourItem], order: Union[SortOrder, str] = SortOrder.RECENT) -> List[TourItem]:
    """Return a new list ordered by `order`; the input is never reordered.

    The sort is stable, so equal keys keep their input order.
    """
    order = SortOrder.parse(order)
    result = list(items)
    if order is SortOrder.RECENT:
        # reverse=True keeps stability; unparseable timestamps sink to the end.
        result.sort(key=_recent_key, reverse=True)
    elif order is SortOrder.NAME:
        result.sort(key=lambda item: collation_key(item.title))
    return result
