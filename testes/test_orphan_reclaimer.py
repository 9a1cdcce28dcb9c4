from datetime import timedelta

import pytest
from sqlalchemy import select

from app.models.tracking import TrackingInterval
from app.schemas.tracking import ClosureReason
from app.services.orphan_reclaimer import OrphanClosePolicy, OrphanReclaimer
from testes.helpers import at

HOUR = 60


def test_policy_uses_max_open_when_recent():
    policy = OrphanClosePolicy(max_open=timedelta(hours=24), buffer=timedelta(hours=1))

    # aberto há 30h: now - 1h ganha de start + 24h
    assert policy.proposed_end_time(at(0), at(30 * HOUR)) == at(29 * HOUR)
    # aberto há 24h30: start + 24h ganha de now - 1h
    assert policy.proposed_end_time(at(0), at(24 * HOUR + 30)) == at(24 * HOUR)


def test_policy_never_leaves_start_now_range():
    policy = OrphanClosePolicy(max_open=timedelta(hours=24), buffer=timedelta(hours=1))

    assert policy.proposed_end_time(at(0), at(2 * HOUR)) == at(2 * HOUR)

    zero_buffer = OrphanClosePolicy(max_open=timedelta(0), buffer=timedelta(hours=5))
    assert zero_buffer.proposed_end_time(at(0), at(HOUR)) == at(0)


async def _all(session_factory):
    async with session_factory() as db:
        res = await db.execute(select(TrackingInterval).order_by(TrackingInterval.id))
        return list(res.scalars().all())


@pytest.mark.asyncio
async def test_preview_lists_stale_open_trackings(tracking_engine, window_a, window_b):
    stale = await tracking_engine.record_scan(window_a, 1, at(0))
    await tracking_engine.record_scan(window_b, 2, at(40 * HOUR))

    reclaimer = OrphanReclaimer(tracking_engine)
    candidates = await reclaimer.preview(now=at(48 * HOUR))

    assert [c.interval.id for c in candidates] == [stale.id]
    candidate = candidates[0]
    assert candidate.hours_open == 48.0
    assert candidate.has_continuation is False
    assert candidate.open_in_other_workstation is False
    assert candidate.proposed_end_time == at(47 * HOUR)


@pytest.mark.asyncio
async def test_close_orphans_closes_and_frees_workstation(tracking_engine, window_a, window_b):
    stale = await tracking_engine.record_scan(window_a, 1, at(0))

    reclaimer = OrphanReclaimer(tracking_engine)
    closed = await reclaimer.close_orphans(now=at(30 * HOUR))

    assert closed == 1
    reloaded = await tracking_engine.get_interval(stale.id)
    assert reloaded.closure_reason == ClosureReason.AUTO_CLOSED_ORPHANED.value
    assert reloaded.end_time == at(29 * HOUR)

    # puesto livre para outra ventana
    fresh = await tracking_engine.record_scan(window_b, 1, at(30 * HOUR))
    assert fresh.end_time is None


@pytest.mark.asyncio
async def test_close_orphans_skips_window_with_continuation(session_factory, tracking_engine, window_a):
    stale = await tracking_engine.record_scan(window_a, 1, at(0))
    # continuação gravada fora do engine (sem fechar o anterior)
    async with session_factory() as db:
        async with db.begin():
            db.add(
                TrackingInterval(
                    workstation_id=2,
                    lote=window_a.lote,
                    instancia=window_a.instancia,
                    version=window_a.version,
                    start_time=at(2 * HOUR),
                    end_time=at(3 * HOUR),
                    closure_reason=ClosureReason.MANUAL_CLOSE.value,
                )
            )

    reclaimer = OrphanReclaimer(tracking_engine)
    candidates = await reclaimer.preview(now=at(30 * HOUR))
    assert len(candidates) == 1
    assert candidates[0].has_continuation is True
    assert candidates[0].proposed_end_time is None

    assert await reclaimer.close_orphans(now=at(30 * HOUR)) == 0
    reloaded = await tracking_engine.get_interval(stale.id)
    assert reloaded.end_time is None


@pytest.mark.asyncio
async def test_close_orphans_ignores_recent_trackings(session_factory, tracking_engine, window_a):
    await tracking_engine.record_scan(window_a, 1, at(0))

    reclaimer = OrphanReclaimer(tracking_engine)
    assert await reclaimer.close_orphans(now=at(5 * HOUR)) == 0
    assert all(r.end_time is None for r in await _all(session_factory))
