# Overview: Row locking and compare-and-set helpers for ledger state transitions.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def compare_and_set(model, criteria: list, values: dict) -> bool:
    """
    Conditionally UPDATE rows of `model` matching `criteria` in a single statement.

    Returns True if exactly one row changed. This is how flag transitions
    (refunded, voided) are claimed: two concurrent callers cannot both observe
    the flag unset and both win.
    """
    result = db.session.execute(
        update(model)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
