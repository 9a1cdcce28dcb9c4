# app/crud/__init__.py
from app.crud.tracking import CRUDTracking, OpenIntervalConflict, tracking

__all__ = [
    "CRUDTracking",
    "OpenIntervalConflict",
    "tracking",
]
