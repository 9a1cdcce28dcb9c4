# app/crud/tracking.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from sqlalchemy import and_, exists, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.db.errors import constraint_name, is_unique_violation
from app.db.types import UTCDateTime, ensure_utc
from app.models.tracking import TrackingInterval
from app.schemas.tracking import ClosureReason, WindowIdentity

logger = logging.getLogger("tracking.store")


class OpenIntervalConflict(Exception):
    """
    Sinal do store: o INSERT esbarrou em um índice único de trackings abertos.

    Não é um erro de negócio; o engine traduz para ConcurrencyConflictError.
    """

    def __init__(self, constraint: Optional[str], original: IntegrityError) -> None:
        self.constraint = constraint
        self.original = original
        super().__init__(f"open tracking uniqueness violated ({constraint or 'unknown constraint'})")


@dataclass(frozen=True)
class OverlapPair:
    workstation_id: int
    first: TrackingInterval
    second: TrackingInterval
    overlap_seconds: float
    same_window: bool


@dataclass(frozen=True)
class OrphanRow:
    interval: TrackingInterval
    has_continuation: bool
    open_in_other_workstation: bool


def _window_filter(model, window: WindowIdentity):
    return and_(
        model.lote == window.lote,
        model.instancia == window.instancia,
        model.version == window.version,
    )


class CRUDTracking:
    """
    Store de intervalos de tracking.

    Todos os métodos recebem a AsyncSession do chamador: quem abre a
    transação (o engine) decide quando faz commit/rollback.
    """

    async def get(self, db: AsyncSession, id: int) -> Optional[TrackingInterval]:
        stmt = select(TrackingInterval).where(TrackingInterval.id == id)
        res = await db.execute(stmt)
        return res.scalar_one_or_none()

    async def _newest_open(
        self,
        db: AsyncSession,
        stmt,
        *,
        anomaly: str,
        **context,
    ) -> Optional[TrackingInterval]:
        stmt = (
            stmt.where(TrackingInterval.end_time.is_(None))
            .order_by(TrackingInterval.start_time.desc(), TrackingInterval.id.desc())
            .limit(2)
        )
        res = await db.execute(stmt)
        rows = list(res.scalars().all())
        if not rows:
            return None

        if len(rows) > 1:
            # invariante quebrada (falha parcial ou escrita fora do engine)
            logger.warning(
                "More than one open tracking found (%s) %s; using newest id=%s",
                anomaly,
                " ".join(f"{k}={v}" for k, v in context.items()),
                rows[0].id,
                extra={
                    "event": "tracking_invariant_anomaly",
                    "anomaly": anomaly,
                    "tracking_ids": [r.id for r in rows],
                    **context,
                },
            )
        return rows[0]

    async def find_open_by_workstation(
        self,
        db: AsyncSession,
        workstation_id: int,
    ) -> Optional[TrackingInterval]:
        stmt = select(TrackingInterval).where(TrackingInterval.workstation_id == workstation_id)
        return await self._newest_open(
            db,
            stmt,
            anomaly="multiple_open_in_workstation",
            workstation_id=workstation_id,
        )

    async def find_open_by_window_excluding_workstation(
        self,
        db: AsyncSession,
        window: WindowIdentity,
        excluded_workstation_id: int,
    ) -> Optional[TrackingInterval]:
        stmt = select(TrackingInterval).where(
            _window_filter(TrackingInterval, window),
            TrackingInterval.workstation_id != excluded_workstation_id,
        )
        return await self._newest_open(
            db,
            stmt,
            anomaly="multiple_open_for_window",
            lote=window.lote,
            instancia=window.instancia,
            version=window.version,
        )

    async def insert_open(
        self,
        db: AsyncSession,
        *,
        workstation_id: int,
        window: WindowIdentity,
        start_time: datetime,
        user_id: Optional[int] = None,
    ) -> TrackingInterval:
        db_obj = TrackingInterval(
            workstation_id=workstation_id,
            lote=window.lote,
            instancia=window.instancia,
            version=window.version,
            start_time=start_time,
            end_time=None,
            closure_reason=None,
            user_id=user_id,
        )
        db.add(db_obj)
        try:
            await db.flush()
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise OpenIntervalConflict(constraint_name(exc), exc) from exc
            raise
        return db_obj

    async def close(
        self,
        db: AsyncSession,
        id: int,
        *,
        end_time: datetime,
        reason: ClosureReason,
        only_open: bool = False,
    ) -> int:
        """
        Fecha o tracking sem revalidar nada; retorna quantas linhas mudaram.

        ``only_open=True`` não toca em trackings que já foram fechados
        (ex.: fechados por cadeia entre a leitura e o UPDATE).
        """
        stmt = update(TrackingInterval).where(TrackingInterval.id == id)
        if only_open:
            stmt = stmt.where(TrackingInterval.end_time.is_(None))
        stmt = (
            stmt.execution_options(synchronize_session="fetch")
            .values(
                end_time=end_time,
                closure_reason=reason.value,
                updated_at=datetime.now(timezone.utc),
            )
        )
        res = await db.execute(stmt)
        return res.rowcount or 0

    async def list_by_window(
        self,
        db: AsyncSession,
        window: WindowIdentity,
    ) -> List[TrackingInterval]:
        stmt = (
            select(TrackingInterval)
            .where(_window_filter(TrackingInterval, window))
            .order_by(TrackingInterval.start_time, TrackingInterval.id)
        )
        res = await db.execute(stmt)
        return list(res.scalars().all())

    async def detect_overlaps(
        self,
        db: AsyncSession,
        *,
        now: Optional[datetime] = None,
        windows: Optional[Iterable[WindowIdentity]] = None,
        workstation_id: Optional[int] = None,
    ) -> List[OverlapPair]:
        """
        Pares de trackings do mesmo puesto cujos intervalos [start, end_or_now)
        se cruzam. Uso exclusivo de monitoramento: resultado não vazio indica
        bug no engine ou escrita direta no banco.
        """
        now = ensure_utc(now)
        t1 = aliased(TrackingInterval, name="t1")
        t2 = aliased(TrackingInterval, name="t2")
        now_param = literal(now, UTCDateTime())
        end1 = func.coalesce(t1.end_time, now_param)
        end2 = func.coalesce(t2.end_time, now_param)

        stmt = (
            select(t1, t2)
            .join(
                t2,
                and_(
                    t1.workstation_id == t2.workstation_id,
                    t1.id < t2.id,
                ),
            )
            .where(t1.start_time < end2, end1 > t2.start_time)
        )

        if workstation_id is not None:
            stmt = stmt.where(t1.workstation_id == workstation_id)

        if windows is not None:
            windows = list(windows)
            if not windows:
                return []
            stmt = stmt.where(
                or_(
                    *(_window_filter(t1, w) for w in windows),
                    *(_window_filter(t2, w) for w in windows),
                )
            )

        res = await db.execute(stmt)

        pairs: List[OverlapPair] = []
        for first, second in res.all():
            overlap_end = min(first.end_time or now, second.end_time or now)
            overlap_start = max(first.start_time, second.start_time)
            pairs.append(
                OverlapPair(
                    workstation_id=first.workstation_id,
                    first=first,
                    second=second,
                    overlap_seconds=max(0.0, (overlap_end - overlap_start).total_seconds()),
                    same_window=WindowIdentity.of(first) == WindowIdentity.of(second),
                )
            )

        pairs.sort(key=lambda p: (p.workstation_id, p.first.start_time, -p.overlap_seconds))
        return pairs

    async def find_orphaned(
        self,
        db: AsyncSession,
        *,
        now: datetime,
        older_than: timedelta,
    ) -> List[OrphanRow]:
        """
        Trackings abertos há mais de ``older_than``, com os indicadores de
        continuação da cadeia (tracking mais novo da mesma ventana) e de
        ventana aberta em outro puesto.
        """
        cutoff = ensure_utc(now) - older_than
        other = aliased(TrackingInterval, name="other")

        same_window = and_(
            other.lote == TrackingInterval.lote,
            other.instancia == TrackingInterval.instancia,
            other.version == TrackingInterval.version,
        )
        has_continuation = exists().where(
            same_window,
            other.start_time > TrackingInterval.start_time,
        )
        open_elsewhere = exists().where(
            same_window,
            other.workstation_id != TrackingInterval.workstation_id,
            other.end_time.is_(None),
        )

        stmt = (
            select(
                TrackingInterval,
                has_continuation.label("has_continuation"),
                open_elsewhere.label("open_in_other_workstation"),
            )
            .where(
                TrackingInterval.end_time.is_(None),
                TrackingInterval.start_time < cutoff,
            )
            .order_by(TrackingInterval.start_time, TrackingInterval.workstation_id)
        )
        res = await db.execute(stmt)
        return [
            OrphanRow(
                interval=row[0],
                has_continuation=bool(row[1]),
                open_in_other_workstation=bool(row[2]),
            )
            for row in res.all()
        ]


tracking = CRUDTracking()
