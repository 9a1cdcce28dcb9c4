from .tracking import (
    ClosureReason,
    IntervalClose,
    OrphanRead,
    OverlapRead,
    ScanCreate,
    TrackingIntervalRead,
    WindowIdentity,
)

__all__ = [
    "ClosureReason",
    "IntervalClose",
    "OrphanRead",
    "OverlapRead",
    "ScanCreate",
    "TrackingIntervalRead",
    "WindowIdentity",
]
