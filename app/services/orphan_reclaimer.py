import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from app.core.config import Settings, settings
from app.db.types import ensure_utc
from app.models.tracking import TrackingInterval
from app.schemas.tracking import ClosureReason
from app.services.tracking_engine import TrackingEngine

logger = logging.getLogger("tracking.orphans")


@dataclass(frozen=True)
class OrphanClosePolicy:
    """
    Política de fechamento de trackings órfãos.

    Um tracking aberto há mais de ``max_open`` e sem continuação na cadeia
    é fechado com end_time = max(start + max_open, now - buffer), limitado
    ao intervalo [start_time, now].
    """

    max_open: timedelta = timedelta(hours=24)
    buffer: timedelta = timedelta(hours=1)

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "OrphanClosePolicy":
        return cls(
            max_open=timedelta(hours=cfg.ORPHAN_MAX_OPEN_HOURS),
            buffer=timedelta(hours=cfg.ORPHAN_CLOSE_BUFFER_HOURS),
        )

    def proposed_end_time(self, start_time: datetime, now: datetime) -> datetime:
        end_time = max(start_time + self.max_open, now - self.buffer)
        return min(max(end_time, start_time), now)


@dataclass(frozen=True)
class OrphanCandidate:
    interval: TrackingInterval
    hours_open: float
    has_continuation: bool
    open_in_other_workstation: bool
    # None quando a ventana já seguiu na cadeia (não será fechado aqui)
    proposed_end_time: Optional[datetime]


class OrphanReclaimer:
    def __init__(
        self,
        engine: TrackingEngine,
        policy: Optional[OrphanClosePolicy] = None,
    ) -> None:
        self.engine = engine
        self.policy = policy or OrphanClosePolicy.from_settings(engine.settings)

    async def _candidates(self, db, now: datetime) -> List[OrphanCandidate]:
        rows = await self.engine.store.find_orphaned(db, now=now, older_than=self.policy.max_open)
        candidates = []
        for row in rows:
            start = row.interval.start_time
            candidates.append(
                OrphanCandidate(
                    interval=row.interval,
                    hours_open=round((now - start).total_seconds() / 3600, 2),
                    has_continuation=row.has_continuation,
                    open_in_other_workstation=row.open_in_other_workstation,
                    proposed_end_time=(
                        None if row.has_continuation else self.policy.proposed_end_time(start, now)
                    ),
                )
            )
        return candidates

    async def preview(self, now: Optional[datetime] = None) -> List[OrphanCandidate]:
        """Lista o que seria fechado, sem escrever nada."""
        now = ensure_utc(now)
        async with self.engine.session_factory() as db:
            return await self._candidates(db, now)

    async def close_orphans(self, now: Optional[datetime] = None) -> int:
        now = ensure_utc(now)
        closed = 0
        skipped = 0

        async with self.engine.session_factory() as db:
            async with db.begin():
                for candidate in await self._candidates(db, now):
                    if candidate.proposed_end_time is None:
                        skipped += 1
                        continue
                    changed = await self.engine.store.close(
                        db,
                        candidate.interval.id,
                        end_time=candidate.proposed_end_time,
                        reason=ClosureReason.AUTO_CLOSED_ORPHANED,
                        only_open=True,
                    )
                    if changed:
                        closed += 1
                        logger.info(
                            "Orphaned tracking %s closed (workstation=%s hours_open=%s end=%s)",
                            candidate.interval.id,
                            candidate.interval.workstation_id,
                            candidate.hours_open,
                            candidate.proposed_end_time.isoformat(),
                            extra={
                                "event": "tracking_closed",
                                "tracking_id": candidate.interval.id,
                                "closure_reason": ClosureReason.AUTO_CLOSED_ORPHANED.value,
                                "end_time": candidate.proposed_end_time,
                            },
                        )

        logger.info(
            "Orphan reclaim done (closed=%s skipped_with_continuation=%s max_open=%s buffer=%s)",
            closed,
            skipped,
            self.policy.max_open,
            self.policy.buffer,
            extra={"event": "tracking_orphans_reclaimed", "closed": closed, "skipped": skipped},
        )
        return closed


async def run_orphan_loop(reclaimer: OrphanReclaimer, *, interval_minutes: int) -> None:
    interval_seconds = max(interval_minutes, 1) * 60
    logger.info(
        "Orphan reclaim loop enabled (interval_minutes=%s max_open=%s)",
        interval_minutes,
        reclaimer.policy.max_open,
    )
    while True:
        try:
            await reclaimer.close_orphans()
        except Exception:
            logger.exception("Orphan reclaim failed")
        try:
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.info("Orphan reclaim loop cancelled")
            raise
