# app/services/tracking_engine.py
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings
from app.core.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    NotFoundError,
    TrackingIntegrityError,
    ValidationError,
)
from app.crud.tracking import CRUDTracking, OpenIntervalConflict, OverlapPair
from app.crud.tracking import tracking as crud_tracking
from app.db.errors import constraint_name
from app.db.types import ensure_utc
from app.models.tracking import TrackingInterval
from app.schemas.tracking import ClosureReason, WindowIdentity

logger = logging.getLogger("tracking.engine")

LOTE_MAX_LENGTH = 64


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_scan(
    window: WindowIdentity,
    workstation_id: int,
    start_time: datetime,
    user_id: Optional[int] = None,
) -> None:
    """
    Valida o formato do scan antes de tocar no banco.
    """
    if not isinstance(window, WindowIdentity):
        raise ValidationError("window must be a WindowIdentity")
    if not isinstance(window.lote, str) or not window.lote.strip():
        raise ValidationError("lote must be a non-empty string")
    if window.lote != window.lote.strip():
        # a API já entrega o lote sem espaços; aqui só aceitamos a forma canônica
        raise ValidationError(f"lote must not have leading or trailing whitespace, got {window.lote!r}")
    if len(window.lote) > LOTE_MAX_LENGTH:
        raise ValidationError(f"lote must have at most {LOTE_MAX_LENGTH} characters")
    if not _is_int(window.instancia) or window.instancia < 0:
        raise ValidationError(f"instancia must be a non-negative integer, got {window.instancia!r}")
    if not _is_int(window.version) or window.version < 0:
        raise ValidationError(f"version must be a non-negative integer, got {window.version!r}")
    if not _is_int(workstation_id) or workstation_id <= 0:
        raise ValidationError(f"workstation_id must be a positive integer, got {workstation_id!r}")
    if not isinstance(start_time, datetime):
        raise ValidationError(f"start_time must be a datetime, got {type(start_time).__name__}")
    if user_id is not None and (not _is_int(user_id) or user_id <= 0):
        raise ValidationError(f"user_id must be a positive integer, got {user_id!r}")


def _window_ctx(window: WindowIdentity) -> Dict[str, Any]:
    return {"lote": window.lote, "instancia": window.instancia, "version": window.version}


class TrackingEngine:
    """Motor de transições de tracking.

    A cada scan decide entre fechar por cadeia (CHAIN_TRANSITION), fechar por
    re-scan (RESCANNED_SAME_WINDOW), rejeitar (puesto ocupado por outra
    ventana) ou simplesmente abrir um tracking novo.

    Os passos rodam dentro de uma única transação. Não há lock em memória:
    os índices únicos parciais de ``trackings`` decidem corridas entre
    writers concorrentes, e o perdedor recebe ConcurrencyConflictError.

    ``session_factory`` deve ser criada com ``expire_on_commit=False`` para
    que os objetos retornados continuem legíveis após o commit.
    """

    def __init__(
        self,
        session_factory,
        store: CRUDTracking = crud_tracking,
        settings: Settings = settings,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.settings = settings

    # ------------------------------------------------------------------
    # recordScan
    # ------------------------------------------------------------------

    async def record_scan(
        self,
        window: WindowIdentity,
        workstation_id: int,
        start_time: datetime,
        user_id: Optional[int] = None,
    ) -> TrackingInterval:
        started = time.perf_counter()
        validate_scan(window, workstation_id, start_time, user_id)
        start_time = ensure_utc(start_time)

        ctx = {"workstation_id": workstation_id, **_window_ctx(window)}
        logger.info(
            "Tracking create attempt workstation=%s window=(%s) start=%s user=%s",
            workstation_id,
            window,
            start_time.isoformat(),
            user_id,
            extra={
                "event": "tracking_create_attempt",
                "start_time": start_time,
                "user_id": user_id,
                **ctx,
            },
        )

        try:
            async with self.session_factory() as db:
                async with db.begin():
                    await self._close_in_other_workstation(db, window, workstation_id, start_time)
                    await self._free_workstation(db, window, workstation_id, start_time)
                    created = await self.store.insert_open(
                        db,
                        workstation_id=workstation_id,
                        window=window,
                        start_time=start_time,
                        user_id=user_id,
                    )
        except OpenIntervalConflict as exc:
            logger.error(
                "Tracking constraint violation workstation=%s window=(%s) constraint=%s",
                workstation_id,
                window,
                exc.constraint,
                extra={
                    "event": "tracking_constraint_violation",
                    "constraint": exc.constraint,
                    **ctx,
                },
            )
            raise ConcurrencyConflictError(
                workstation_id=workstation_id,
                window=window,
                constraint=exc.constraint,
            ) from exc
        except IntegrityError as exc:
            logger.error(
                "Unexpected integrity error creating tracking workstation=%s window=(%s)",
                workstation_id,
                window,
                extra={
                    "event": "tracking_create_error",
                    "constraint": constraint_name(exc),
                    **ctx,
                },
            )
            raise TrackingIntegrityError(
                f"Database rejected tracking for workstation {workstation_id} "
                f"window ({window}); read-then-write logic missed a case",
                constraint=constraint_name(exc),
            ) from exc

        logger.info(
            "Tracking created id=%s workstation=%s window=(%s)",
            created.id,
            workstation_id,
            window,
            extra={
                "event": "tracking_created",
                "tracking_id": created.id,
                "start_time": created.start_time,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                **ctx,
            },
        )
        return created

    async def _close_in_other_workstation(
        self,
        db: AsyncSession,
        window: WindowIdentity,
        workstation_id: int,
        start_time: datetime,
    ) -> None:
        """Cadeia: a ventana saiu do puesto anterior no instante do novo scan."""
        previous = await self.store.find_open_by_window_excluding_workstation(
            db, window, workstation_id
        )
        if previous is None:
            return

        self._ensure_not_before(previous, start_time)
        await self.store.close(
            db,
            previous.id,
            end_time=start_time,
            reason=ClosureReason.CHAIN_TRANSITION,
        )
        logger.info(
            "Chain transition workstation %s -> %s window=(%s) previous_tracking=%s",
            previous.workstation_id,
            workstation_id,
            window,
            previous.id,
            extra={
                "event": "tracking_chain_transition",
                "from_workstation": previous.workstation_id,
                "to_workstation": workstation_id,
                "transition_time": start_time,
                "previous_tracking_id": previous.id,
                **_window_ctx(window),
            },
        )

    async def _free_workstation(
        self,
        db: AsyncSession,
        window: WindowIdentity,
        workstation_id: int,
        start_time: datetime,
    ) -> None:
        occupying = await self.store.find_open_by_workstation(db, workstation_id)
        if occupying is None:
            return

        occupying_window = WindowIdentity.of(occupying)
        if occupying_window == window:
            self._ensure_not_before(occupying, start_time)
            await self.store.close(
                db,
                occupying.id,
                end_time=start_time,
                reason=ClosureReason.RESCANNED_SAME_WINDOW,
            )
            logger.info(
                "Same window rescan workstation=%s window=(%s) existing_tracking=%s",
                workstation_id,
                window,
                occupying.id,
                extra={
                    "event": "tracking_same_window_rescan",
                    "existing_tracking_id": occupying.id,
                    "workstation_id": workstation_id,
                    **_window_ctx(window),
                },
            )
            return

        logger.warning(
            "Workstation %s busy with window=(%s) tracking=%s; rejecting window=(%s)",
            workstation_id,
            occupying_window,
            occupying.id,
            window,
            extra={
                "event": "tracking_validation_failed",
                "reason": "open_tracking_exists_different_window",
                "workstation_id": workstation_id,
                "conflicting_tracking_id": occupying.id,
                "conflicting_lote": occupying.lote,
                "conflicting_instancia": occupying.instancia,
                "conflicting_version": occupying.version,
                **_window_ctx(window),
            },
        )
        raise ConflictError(
            workstation_id=workstation_id,
            window=window,
            occupying_window=occupying_window,
            occupying_start_time=occupying.start_time,
            conflicting_interval_id=occupying.id,
        )

    @staticmethod
    def _ensure_not_before(interval: TrackingInterval, start_time: datetime) -> None:
        if start_time < interval.start_time:
            raise ValidationError(
                f"start_time {start_time.isoformat()} precedes start "
                f"{interval.start_time.isoformat()} of tracking {interval.id} "
                f"(workstation {interval.workstation_id}) that it would close"
            )

    async def record_scan_with_retry(
        self,
        window: WindowIdentity,
        workstation_id: int,
        start_time: datetime,
        user_id: Optional[int] = None,
        *,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> TrackingInterval:
        """
        record_scan com retry para erros transitórios.

        Só ConcurrencyConflictError (e timeout, tratado igual) é repetido;
        ConflictError e ValidationError sobem na primeira tentativa.
        """
        retries = self.settings.SCAN_MAX_RETRIES if max_retries is None else max_retries
        timeout = self.settings.SCAN_TIMEOUT_SECONDS if timeout is None else timeout

        attempts = max(retries, 0) + 1
        attempt = 0
        while True:
            attempt += 1
            try:
                scan = self.record_scan(window, workstation_id, start_time, user_id)
                if timeout and timeout > 0:
                    return await asyncio.wait_for(scan, timeout)
                return await scan
            except asyncio.TimeoutError as exc:
                error = ConcurrencyConflictError(
                    workstation_id=workstation_id,
                    window=window,
                    message=f"record_scan timed out after {timeout}s",
                )
                if attempt >= attempts:
                    raise error from exc
            except ConcurrencyConflictError as exc:
                if attempt >= attempts:
                    raise
                error = exc

            logger.warning(
                "Retrying scan workstation=%s window=(%s) attempt=%s/%s: %s",
                workstation_id,
                window,
                attempt,
                attempts,
                error,
                extra={"event": "tracking_scan_retry", "attempt": attempt, "workstation_id": workstation_id},
            )

    # ------------------------------------------------------------------
    # closeInterval / getInterval
    # ------------------------------------------------------------------

    async def close_interval(
        self,
        interval_id: int,
        end_time: datetime,
        reason: ClosureReason = ClosureReason.MANUAL_CLOSE,
    ) -> None:
        """
        Fecha um tracking incondicionalmente (uso manual e reclamação de órfãos).
        """
        if not isinstance(end_time, datetime):
            raise ValidationError(f"end_time must be a datetime, got {type(end_time).__name__}")
        try:
            reason = ClosureReason(reason)
        except ValueError as exc:
            raise ValidationError(f"unknown closure reason {reason!r}") from exc
        end_time = ensure_utc(end_time)

        try:
            async with self.session_factory() as db:
                async with db.begin():
                    current = await self.store.get(db, interval_id)
                    if current is None:
                        raise NotFoundError(interval_id)
                    if current.end_time is not None:
                        logger.warning(
                            "Tracking %s already closed (%s at %s); overwriting with %s",
                            interval_id,
                            current.closure_reason,
                            current.end_time.isoformat(),
                            reason.value,
                            extra={"event": "tracking_reclosed", "tracking_id": interval_id},
                        )
                    await self.store.close(db, interval_id, end_time=end_time, reason=reason)
        except IntegrityError as exc:
            raise TrackingIntegrityError(
                f"Database rejected closing tracking {interval_id} at {end_time.isoformat()}",
                constraint=constraint_name(exc),
            ) from exc

        logger.info(
            "Tracking closed id=%s end=%s reason=%s",
            interval_id,
            end_time.isoformat(),
            reason.value,
            extra={
                "event": "tracking_closed",
                "tracking_id": interval_id,
                "end_time": end_time,
                "closure_reason": reason.value,
            },
        )

    async def get_interval(self, interval_id: int) -> Optional[TrackingInterval]:
        async with self.session_factory() as db:
            return await self.store.get(db, interval_id)

    async def window_history(self, window: WindowIdentity) -> List[TrackingInterval]:
        async with self.session_factory() as db:
            return await self.store.list_by_window(db, window)

    # ------------------------------------------------------------------
    # auditoria
    # ------------------------------------------------------------------

    async def detect_overlaps(
        self,
        *,
        now: Optional[datetime] = None,
        windows: Optional[Iterable[WindowIdentity]] = None,
        workstation_id: Optional[int] = None,
    ) -> List[OverlapPair]:
        async with self.session_factory() as db:
            pairs = await self.store.detect_overlaps(
                db,
                now=now,
                windows=windows,
                workstation_id=workstation_id,
            )

        if pairs:
            logger.warning(
                "Detected %s overlapping tracking pairs",
                len(pairs),
                extra={
                    "event": "tracking_overlaps_detected",
                    "pairs": [(p.first.id, p.second.id) for p in pairs],
                },
            )
        return pairs
