"""
ID generation and timestamp utilities.

Provides new_event_id(), new_idempotency_token() and now_iso() with
deterministic UTC ISO 8601 formatting. Event ids are ULIDs.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ulid import ULID


def new_event_id() -> str:
    """
    Generate a new event ID (ULID, lexicographically sortable).

    >>> id_ = new_event_id()
    >>> isinstance(id_, str) and len(id_) == 26
    True
    """
    return str(ULID())


def new_idempotency_token(event: str, order_number: int, line_ref: object, product_id: int) -> str:
    """
    Build the deterministic token that keys one stock change for one order line.

    The same order line delivered twice yields the same token.

    >>> new_idempotency_token("ORDER_CREATED", 100001, 0, 7)
    'ORDER_CREATED:100001:0:7'
    """
    return f"{event}:{order_number}:{line_ref}:{product_id}"


def now_iso() -> str:
    """
    Return current UTC time as ISO 8601 string with Z suffix.
    Deterministic format: YYYY-MM-DDTHH:MM:SS.ffffffZ

    >>> s = now_iso()
    >>> s.endswith('Z') and 'T' in s
    True
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
