# app/models/__init__.py
from app.models.tracking import TrackingInterval

__all__ = [
    "TrackingInterval",
]
