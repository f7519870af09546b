"""
Row locking for money-moving updates.

PostgreSQL gets SELECT ... FOR UPDATE so two webhook deliveries for the same
booking serialize on the row; SQLite (dev/tests) has no row locks and falls
back to a plain read, where the unique ledger index still catches duplicates.
"""

from typing import Optional, TypeVar, Type
from sqlalchemy.orm import Session

T = TypeVar('T')


def supports_row_locks(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == 'postgresql'


def acquire_row_lock(
    db: Session,
    model: Type[T],
    filter_condition,
    nowait: bool = False
) -> Optional[T]:
    """
    Load the first row matching `filter_condition`, locked for the rest of the
    transaction where the database supports it.

    With nowait=True a row already locked by another transaction raises
    OperationalError instead of waiting (PostgreSQL only).
    """
    query = db.query(model).filter(filter_condition)
    if supports_row_locks(db):
        query = query.with_for_update(nowait=nowait)
    return query.first()
