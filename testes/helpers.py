from datetime import datetime, timedelta, timezone

BASE_TIME = datetime(2026, 2, 20, 10, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Horário relativo a 2026-02-20 10:00 UTC."""
    return BASE_TIME + timedelta(minutes=minutes)
