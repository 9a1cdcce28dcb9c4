"""Tracking exception hierarchy."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from app.schemas.tracking import WindowIdentity


class TrackingError(Exception):
    """Base exception for all tracking errors."""

    retryable: bool = False


class ValidationError(TrackingError):
    """Malformed scan input (identity, workstation id, timestamps)."""


class NotFoundError(TrackingError):
    """Referenced tracking interval does not exist."""

    def __init__(self, interval_id: int) -> None:
        self.interval_id = interval_id
        super().__init__(f"Tracking {interval_id} not found")


class ConflictError(TrackingError):
    """Target workstation is occupied by a different window."""

    def __init__(
        self,
        *,
        workstation_id: int,
        window: "WindowIdentity",
        occupying_window: "WindowIdentity",
        occupying_start_time: datetime,
        conflicting_interval_id: int,
    ) -> None:
        self.workstation_id = workstation_id
        self.window = window
        self.occupying_window = occupying_window
        self.occupying_start_time = occupying_start_time
        self.conflicting_interval_id = conflicting_interval_id
        super().__init__(
            f"Cannot create tracking: Workstation {workstation_id} already has open tracking "
            f"{conflicting_interval_id} for window ({occupying_window}) "
            f"started at {occupying_start_time.isoformat()}"
        )


class ConcurrencyConflictError(TrackingError):
    """A concurrent writer won the race for the same open slot. Safe to retry."""

    retryable = True

    def __init__(
        self,
        *,
        workstation_id: int,
        window: "WindowIdentity",
        constraint: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.workstation_id = workstation_id
        self.window = window
        self.constraint = constraint
        super().__init__(
            message
            or (
                f"Concurrent tracking detected on workstation {workstation_id} "
                f"for window ({window}); retry the scan"
            )
        )


class TrackingIntegrityError(TrackingError):
    """Storage rejected a write the engine believed valid (logic bug or bypass)."""

    def __init__(self, message: str, *, constraint: Optional[str] = None) -> None:
        self.constraint = constraint
        super().__init__(message)
