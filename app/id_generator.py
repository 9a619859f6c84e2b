"""
KBPC Identifier Generator
- Member registration numbers (NIA): PREFIX-YEAR-NNNN from a monotonic counter that is
  persisted under its own key, independent of the member list length. A number is
  consumed at generation time, so ids never repeat even if the member is never saved.
- Branch / sub-branch ids: short random ids, checked against the ids already taken.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime
from typing import Iterable, Optional

import app_config
import database

logger = logging.getLogger(__name__)

KEYS = database.KEYS

_NIA_SUFFIX = re.compile(r"-(\d+)$")

# highest number handed out by this process (covers a failed counter write)
_issued_high = 0


def _suffix_number(member_id: str) -> int:
    m = _NIA_SUFFIX.search(str(member_id or ""))
    return int(m.group(1)) if m else 0


def _existing_member_ids() -> list[str]:
    users = database.get(KEYS["USERS"], None) or []
    return [str(u.get("id")) for u in users if isinstance(u, dict) and u.get("id")]


def next_member_id(existing_ids: Optional[Iterable[str]] = None, *, year: Optional[int] = None,
                   prefix: Optional[str] = None) -> str:
    """
    Next unused registration number.
    The counter starts above both the stored sequence and every numeric suffix already in use.
    """
    global _issued_high

    taken = {str(x) for x in (existing_ids if existing_ids is not None else _existing_member_ids())}
    year = year or datetime.now().year
    prefix = prefix or app_config.get_setting("nia_prefix") or "NIA"

    seq = database.get(KEYS["NIA_SEQ"], {}) or {}
    last = int(seq.get("last") or 0) if isinstance(seq, dict) else 0
    last = max(last, _issued_high, max((_suffix_number(x) for x in taken), default=0))

    n = last + 1
    candidate = f"{prefix}-{year}-{n:04d}"
    while candidate in taken:
        n += 1
        candidate = f"{prefix}-{year}-{n:04d}"

    _issued_high = n
    if not database.set(KEYS["NIA_SEQ"], {"last": n}):
        logger.warning("NIA counter not persisted (last=%s); uniqueness kept in-process only", n)
    return candidate


def short_id(prefix: str, taken: Iterable[str] = ()) -> str:
    """Random short id such as 'br-3f9a1c2d0', unique against `taken`."""
    used = {str(t) for t in taken}
    while True:
        candidate = f"{prefix}-{uuid.uuid4().hex[:9]}"
        if candidate not in used:
            return candidate
