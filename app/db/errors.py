"""Classifica IntegrityError do driver pelo código estruturado (SQLSTATE / extended code do SQLite)."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

# PostgreSQL (asyncpg / psycopg)
PG_UNIQUE_VIOLATION = "23505"
PG_CHECK_VIOLATION = "23514"

# SQLite extended result codes
SQLITE_CONSTRAINT_CHECK = 275
SQLITE_CONSTRAINT_PRIMARYKEY = 1555
SQLITE_CONSTRAINT_UNIQUE = 2067

UNIQUE = "unique"
CHECK = "check"
OTHER = "other"


def _sqlstate(orig: BaseException | None) -> Optional[str]:
    # asyncpg adaptado pelo SQLAlchemy expõe sqlstate/pgcode; o erro nativo fica em __cause__
    while orig is not None:
        for attr in ("sqlstate", "pgcode"):
            code = getattr(orig, attr, None)
            if code:
                return str(code)
        orig = orig.__cause__
    return None


def integrity_kind(exc: IntegrityError) -> str:
    orig = exc.orig
    sqlstate = _sqlstate(orig)
    if sqlstate is not None:
        if sqlstate == PG_UNIQUE_VIOLATION:
            return UNIQUE
        if sqlstate == PG_CHECK_VIOLATION:
            return CHECK
        return OTHER

    code = getattr(orig, "sqlite_errorcode", None)
    if code in (SQLITE_CONSTRAINT_UNIQUE, SQLITE_CONSTRAINT_PRIMARYKEY):
        return UNIQUE
    if code == SQLITE_CONSTRAINT_CHECK:
        return CHECK
    return OTHER


def is_unique_violation(exc: IntegrityError) -> bool:
    return integrity_kind(exc) == UNIQUE


def constraint_name(exc: IntegrityError) -> Optional[str]:
    """Nome da constraint violada, quando o driver informa (SQLite não informa)."""
    orig: BaseException | None = exc.orig
    while orig is not None:
        name = getattr(orig, "constraint_name", None)
        if name:
            return name
        diag = getattr(orig, "diag", None)
        if diag is not None and getattr(diag, "constraint_name", None):
            return diag.constraint_name
        orig = orig.__cause__
    return None
