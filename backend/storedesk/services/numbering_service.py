# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

"""
Human-readable document numbers (PAY-000001, INV-000042, ...).

Numbers are advisory: the next candidate is derived from the highest
existing number and probed for collisions. The unique constraint on each
number column is the real guarantee; a collision under concurrency surfaces
as an IntegrityError and the caller's transaction is retried or failed.
"""

from __future__ import annotations

import re

from ..extensions import db
from storedesk.time_utils import timestamp_millis


MAX_PROBES = 10

_TRAILING_DIGITS = re.compile(r"(\d+)$")


class NumberingError(Exception):
    pass


def _format(prefix: str, value: int, pad: int) -> str:
    return f"{prefix}-{value:0{pad}d}"


def next_document_number(model, prefix: str, *, pad: int = 6, column: str = "number") -> str:
    """
    Next free number for `model` under `prefix`.

    Args:
        model: mapped class with a unique string number column
        prefix: e.g. "PAY" produces PAY-000001
        pad: zero-padding width of the numeric part
        column: attribute name of the number column
    """
    if not prefix:
        raise NumberingError("prefix is required")
    col = getattr(model, column, None)
    if col is None:
        raise NumberingError(f"{model.__name__} has no column {column}")

    # Zero-padded numbers sort lexicographically in numeric order
    last = (
        db.session.query(col)
        .filter(col.like(f"{prefix}-%"))
        .order_by(col.desc())
        .limit(1)
        .scalar()
    )

    base = 1
    if last:
        match = _TRAILING_DIGITS.search(last)
        if match:
            base = int(match.group(1)) + 1

    for offset in range(MAX_PROBES):
        candidate = _format(prefix, base + offset, pad)
        exists = db.session.query(model.id).filter(col == candidate).first()
        if exists is None:
            return candidate

    return f"{prefix}-{timestamp_millis()}"
