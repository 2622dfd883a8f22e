# Overview: Transaction and locking helpers shared by the service layer.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (the whole database is
    write-locked by the first writer instead), but other DBs will honor it.
    """
    return query.with_for_update()


def run_atomic(func):
    """
    Execute one business operation as one transaction.

    Commits on success; rolls back and re-raises on any failure so a
    half-applied operation is never visible. No retries: the caller
    decides whether to resubmit.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        raise


def compare_and_set(model, entity_id: int, *, expected: dict, values: dict) -> bool:
    """
    Conditional UPDATE: set `values` on the row only while it still matches
    `expected`.

    Returns True if exactly one row changed. Two concurrent callers racing
    the same transition cannot both win.
    """
    conditions = [model.id == entity_id]
    conditions.extend(getattr(model, column) == value for column, value in expected.items())

    stmt = (
        update(model)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def insert_if_absent(model, values: dict, *, key: str) -> None:
    """
    Insert a row unless one already exists for the unique column `key`.

    Uses INSERT ... ON CONFLICT DO NOTHING (INSERT IGNORE on MySQL) where
    the dialect supports it, so two requests racing to create the same
    row never raise IntegrityError inside the caller's transaction. The
    caller should re-select the row (with populate_existing) afterwards.
    """
    table = model.__table__
    dialect = db.engine.dialect.name

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        stmt = insert(table).values(**values).on_conflict_do_nothing(index_elements=[key])
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        stmt = insert(table).values(**values).on_conflict_do_nothing(index_elements=[key])
    elif dialect in ("mysql", "mariadb"):
        from sqlalchemy.dialects.mysql import insert
        stmt = insert(table).values(**values).prefix_with("IGNORE")
    else:
        column = getattr(model, key)
        if db.session.query(model.id).filter(column == values[key]).first() is None:
            db.session.add(model(**values))
            db.session.flush()
        return

    db.session.execute(stmt)
