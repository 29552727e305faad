from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from app.register.core.error_catalog import StoreError
from app.register.db.changes import mark_changed


@contextmanager
def atomic(db, *tables: str):
    """Commit everything done in the block as one unit, or nothing at all."""
    try:
        yield
        mark_changed(db, *tables)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(exc) from exc
    except Exception:
        db.rollback()
        raise


@contextmanager
def reading(db):
    """Surface read failures as ``StoreError`` like a failed commit."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(exc) from exc
