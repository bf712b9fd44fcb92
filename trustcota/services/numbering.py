"""
trustcota/services/numbering.py

Human-readable sequence numbers: PREFIX-YYYYMM-NNN (e.g. REQ-202610-007, PO-202610-012).

Sequences restart every year-month bucket. NNN is zero-padded to three digits and
simply grows past 999.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

REQUEST_PREFIX = "REQ"
ORDER_PREFIX = "PO"


def bucket(now: datetime) -> str:
    return f"{now.year:04d}{now.month:02d}"


def bucket_prefix(prefix: str, now: datetime) -> str:
    """'REQ-202610-' for October 2026."""
    return f"{prefix}-{bucket(now)}-"


def parse_sequence(number: Optional[str]) -> Optional[int]:
    """Return the NNN part of a sequence number, or None if it is malformed."""
    if not number:
        return None
    parts = number.split("-")
    if len(parts) != 3 or not parts[2].isdigit():
        return None
    return int(parts[2])


def format_number(prefix: str, now: datetime, sequence: int) -> str:
    return f"{bucket_prefix(prefix, now)}{sequence:03d}"


def next_number(prefix: str, existing: Iterable[str], now: datetime) -> str:
    """
    Next number for the current bucket given the numbers already issued in it.

    Existing numbers from other buckets or with a malformed tail are ignored.
    """
    wanted = bucket_prefix(prefix, now)
    highest = 0
    for number in existing:
        if not number or not number.startswith(wanted):
            continue
        seq = parse_sequence(number)
        if seq is not None and seq > highest:
            highest = seq
    return format_number(prefix, now, highest + 1)
