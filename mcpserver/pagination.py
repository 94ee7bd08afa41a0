"""Cursor-based paging over lists of named items sorted by name."""

from __future__ import annotations

import base64
import binascii
from bisect import bisect_right
from typing import Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


def _decode_cursor(cursor: str) -> str:
    try:
        raw = base64.b64decode(cursor, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid cursor {cursor!r}: {exc}") from exc
    return raw.decode("utf-8", "surrogateescape")


def _encode_cursor(name: str) -> str:
    return base64.b64encode(name.encode("utf-8", "surrogateescape")).decode("ascii")


def list_by_pagination(
    cursor: Optional[str], elements: Sequence[T], limit: Optional[int]
) -> Tuple[list, str]:
    """Return one page of ``elements`` and the cursor of the next page.

    ``elements`` must be sorted by their ``name`` attribute. The cursor is the
    base64 encoding of the last name already returned; an empty cursor starts
    at the beginning. With no limit the whole remainder is one page. The next
    cursor is empty when the page came out shorter than the limit.
    Raises ValueError if the cursor is not valid base64.
    """
    start = 0
    if cursor:
        last_seen = _decode_cursor(cursor)
        start = bisect_right(elements, last_seen, key=lambda item: item.name)
    end = len(elements)
    if limit is not None and len(elements) > start + limit:
        end = start + limit
    page = list(elements[start:end])
    next_cursor = ""
    if limit is not None and page and len(page) >= limit:
        next_cursor = _encode_cursor(page[-1].name)
    return page, next_cursor