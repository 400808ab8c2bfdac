# picket/core/utils/db.py
"""Classification of database exceptions raised under the job store."""

from __future__ import annotations

from psycopg import InterfaceError, OperationalError
from sqlalchemy.exc import DBAPIError, OperationalError as SAOperationalError


def is_dbapi_disconnect(exc: DBAPIError) -> bool:
    """Whether SQLAlchemy flagged the error as a lost connection."""
    return bool(getattr(exc, 'connection_invalidated', False)) or bool(
        getattr(exc, 'is_disconnect', False)
    )


def is_retryable_connection_error(exc: BaseException) -> bool:
    """Transient connectivity problems: the same call may succeed on the next poll."""
    match exc:
        case OperationalError() | InterfaceError() | SAOperationalError():
            return True
        case DBAPIError() as db_exc if is_dbapi_disconnect(db_exc):
            return True
        case OSError() | TimeoutError():
            return True
        case _:
            return False
