"""
Error taxonomy shared by the stores, services and HTTP layer.

Stores translate storage-backend failures into these types at their boundary,
so route handlers never see SQLAlchemy or driver exceptions. The HTTP layer
renders every VaultError as {"error": message, "code": code} with the
status code carried by the exception class.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# SQLSTATE for unique_violation on PostgreSQL
PG_UNIQUE_VIOLATION = "23505"


class VaultError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ValidationError(VaultError):
    """Malformed or missing input"""
    status_code = 400
    code = "INVALID_INPUT"
    message = "Invalid input"


class AuthenticationError(VaultError):
    """Missing, invalid or expired credentials"""
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Unauthorized"


class ConflictError(VaultError):
    """Uniqueness conflict that is safe to disclose (duplicate email)"""
    status_code = 400
    code = "EMAIL_EXISTS"
    message = "Email already registered"


class NotFoundError(VaultError):
    """Missing record, or a record owned by someone else"""
    status_code = 404
    code = "NOT_FOUND"
    message = "Item not found"


class InternalError(VaultError):
    """Unexpected storage or crypto failure; detail stays in the server log"""


def is_unique_violation(exc: IntegrityError) -> bool:
    """Classify a driver-level integrity error as a unique-key conflict"""
    orig = getattr(exc, "orig", None)
    # psycopg2 exposes the SQLSTATE as pgcode, psycopg 3 as sqlstate
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate is not None:
        return sqlstate == PG_UNIQUE_VIOLATION
    return "UNIQUE constraint failed" in str(orig)


@contextmanager
def storage_boundary(db: Session, on_conflict: Optional[VaultError] = None) -> Iterator[None]:
    """
    Translate storage errors raised inside the block into the taxonomy.

    The session is rolled back on any storage failure so the request can
    still render a response. Unique violations become ``on_conflict`` when
    given; everything else becomes a generic InternalError.
    """
    try:
        yield
    except IntegrityError as exc:
        db.rollback()
        if on_conflict is not None and is_unique_violation(exc):
            raise on_conflict from exc
        logger.error(f"Integrity error at storage boundary: {exc.orig}")
        raise InternalError() from exc
    except PoolTimeoutError as exc:
        db.rollback()
        logger.error(f"Timed out acquiring a database connection: {exc}")
        raise InternalError("Service temporarily unavailable") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Storage error")
        raise InternalError() from exc
