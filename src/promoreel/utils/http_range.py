# src/promoreel/utils/http_range.py

"""
Single-range `Range: bytes=...` header parsing.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

from promoreel.errors import InvalidRangeError

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$")


def parse_range_header(header: str) -> Tuple[int, Optional[int]]:
    """
    Parse `bytes=start-end` or `bytes=start-`.

    Suffix ranges (`bytes=-N`) and multi-range requests are not supported.

    Returns:
        (start, end) with end None when open-ended
    """
    match = _RANGE_RE.match(header or "")
    if not match or not match.group(1):
        raise InvalidRangeError(f"Unsupported Range header: {header!r}")

    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else None
    if end is not None and end < start:
        raise InvalidRangeError(f"Range end {end} precedes start {start}")
    return start, end


def content_range(start: int, end: int, total: int) -> str:
    return f"bytes {start}-{end}/{total}"
