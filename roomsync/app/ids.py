"""
ids.py — Opaque record identifiers.

Every record id exchanged at the boundary is a canonical (lowercase) UUID
string. Ids are checked with is_record_id() before any lookup, so malformed
values never reach the store.
"""

from __future__ import annotations

import uuid

RECORD_ID_LENGTH = 36


def new_record_id() -> str:
    return str(uuid.uuid4())


def is_record_id(value) -> bool:
    """True if `value` is a string in canonical UUID form."""
    if not isinstance(value, str) or len(value) != RECORD_ID_LENGTH:
        return False
    try:
        return str(uuid.UUID(value)) == value
    except ValueError:
        return False
