# app/api/routes/trackings.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_orphan_reclaimer, get_tracking_engine
from app.core.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    NotFoundError,
    TrackingIntegrityError,
    ValidationError,
)
from app.schemas.tracking import (
    IntervalClose,
    OrphanRead,
    OverlapRead,
    ScanCreate,
    TrackingIntervalRead,
    WindowIdentity,
)
from app.services.orphan_reclaimer import OrphanReclaimer
from app.services.tracking_engine import TrackingEngine

router = APIRouter()


@router.post(
    "/",
    response_model=TrackingIntervalRead,
    status_code=status.HTTP_201_CREATED,
)
async def record_scan(
    scan_in: ScanCreate,
    engine: TrackingEngine = Depends(get_tracking_engine),
):
    """
    Registra o scan de uma ventana em um puesto.

    - 409 + retryable=false: puesto ocupado por outra ventana
    - 409 + retryable=true: outro scan concorrente ganhou a corrida; pode repetir
    """
    try:
        return await engine.record_scan(
            scan_in.window,
            scan_in.workstation_id,
            scan_in.start_time,
            scan_in.user_id,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "VALIDATION_ERROR", "message": str(exc)},
        )
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "WORKSTATION_OCCUPIED",
                "message": str(exc),
                "retryable": False,
                "conflicting_tracking_id": exc.conflicting_interval_id,
                "occupying_window": {
                    "lote": exc.occupying_window.lote,
                    "instancia": exc.occupying_window.instancia,
                    "version": exc.occupying_window.version,
                },
                "occupying_start_time": exc.occupying_start_time.isoformat(),
            },
        )
    except ConcurrencyConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "CONCURRENT_SCAN", "message": str(exc), "retryable": True},
        )
    except TrackingIntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": "TRACKING_INTEGRITY_ERROR", "message": str(exc)},
        )


@router.get("/overlaps", response_model=List[OverlapRead])
async def list_overlaps(
    workstation_id: Optional[int] = Query(default=None, gt=0),
    engine: TrackingEngine = Depends(get_tracking_engine),
):
    pairs = await engine.detect_overlaps(workstation_id=workstation_id)
    return [OverlapRead.model_validate(p) for p in pairs]


@router.get("/orphans", response_model=List[OrphanRead])
async def list_orphans(
    reclaimer: OrphanReclaimer = Depends(get_orphan_reclaimer),
):
    candidates = await reclaimer.preview()
    return [OrphanRead.model_validate(c) for c in candidates]


@router.get(
    "/windows/{lote}/{instancia}/{version}",
    response_model=List[TrackingIntervalRead],
)
async def window_history(
    lote: str,
    instancia: int,
    version: int,
    engine: TrackingEngine = Depends(get_tracking_engine),
):
    window = WindowIdentity(lote=lote, instancia=instancia, version=version)
    return await engine.window_history(window)


@router.get("/{tracking_id}", response_model=TrackingIntervalRead)
async def get_tracking(
    tracking_id: int,
    engine: TrackingEngine = Depends(get_tracking_engine),
):
    db_obj = await engine.get_interval(tracking_id)
    if not db_obj:
        raise HTTPException(status_code=404, detail="Tracking not found")
    return db_obj


@router.post("/{tracking_id}/close", status_code=status.HTTP_204_NO_CONTENT)
async def close_tracking(
    tracking_id: int,
    close_in: IntervalClose,
    engine: TrackingEngine = Depends(get_tracking_engine),
):
    try:
        await engine.close_interval(tracking_id, close_in.end_time, close_in.reason)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Tracking not found")
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "VALIDATION_ERROR", "message": str(exc)},
        )
    except TrackingIntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "TRACKING_INTEGRITY_ERROR", "message": str(exc)},
        )
    return None
