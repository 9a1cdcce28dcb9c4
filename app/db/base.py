from app.db.base_class import Base  # noqa

from app.models.tracking import TrackingInterval  # noqa

__all__ = [
    "Base",
    "TrackingInterval",
]
