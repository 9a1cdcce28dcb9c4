import pytest

from app.crud.tracking import tracking as crud_tracking
from app.models.tracking import TrackingInterval
from app.schemas.tracking import ClosureReason, WindowIdentity
from testes.helpers import at


def _row(workstation_id, window, start, end=None, reason=None):
    return TrackingInterval(
        workstation_id=workstation_id,
        lote=window.lote,
        instancia=window.instancia,
        version=window.version,
        start_time=start,
        end_time=end,
        closure_reason=reason,
    )


async def _insert(session_factory, *rows):
    # escrita direta, sem passar pelo engine
    async with session_factory() as db:
        async with db.begin():
            db.add_all(rows)
    return rows


@pytest.mark.asyncio
async def test_detect_overlaps_finds_injected_pair(session_factory, tracking_engine, window_a, window_b):
    manual = ClosureReason.MANUAL_CLOSE.value
    first, second = await _insert(
        session_factory,
        _row(5, window_a, at(0), at(60), manual),
        _row(5, window_b, at(30), at(90), manual),
    )

    pairs = await tracking_engine.detect_overlaps()

    assert len(pairs) == 1
    pair = pairs[0]
    assert pair.workstation_id == 5
    assert {pair.first.id, pair.second.id} == {first.id, second.id}
    assert pair.overlap_seconds == 1800
    assert pair.same_window is False


@pytest.mark.asyncio
async def test_detect_overlaps_uses_now_for_open_interval(session_factory, tracking_engine, window_a, window_b):
    await _insert(
        session_factory,
        _row(5, window_a, at(0), at(60), ClosureReason.MANUAL_CLOSE.value),
        _row(5, window_b, at(45)),
    )

    pairs = await tracking_engine.detect_overlaps(now=at(120))

    assert len(pairs) == 1
    assert pairs[0].overlap_seconds == 900


@pytest.mark.asyncio
async def test_touching_intervals_do_not_overlap(session_factory, tracking_engine, window_a, window_b):
    chain = ClosureReason.CHAIN_TRANSITION.value
    await _insert(
        session_factory,
        _row(5, window_a, at(0), at(30), chain),
        _row(5, window_b, at(30), at(60), chain),
    )

    assert await tracking_engine.detect_overlaps() == []


@pytest.mark.asyncio
async def test_detect_overlaps_filters(session_factory, tracking_engine, window_a, window_b):
    manual = ClosureReason.MANUAL_CLOSE.value
    await _insert(
        session_factory,
        _row(5, window_a, at(0), at(60), manual),
        _row(5, window_a, at(30), at(90), manual),
        _row(6, window_b, at(0), at(60), manual),
        _row(6, window_b, at(10), at(20), manual),
    )

    all_pairs = await tracking_engine.detect_overlaps()
    assert [p.workstation_id for p in all_pairs] == [5, 6]
    assert all(p.same_window for p in all_pairs)

    only_6 = await tracking_engine.detect_overlaps(workstation_id=6)
    assert [p.workstation_id for p in only_6] == [6]
    assert only_6[0].overlap_seconds == 600

    only_a = await tracking_engine.detect_overlaps(windows=[window_a])
    assert [p.workstation_id for p in only_a] == [5]

    unknown = WindowIdentity(lote="NOPE", instancia=0, version=0)
    assert await tracking_engine.detect_overlaps(windows=[unknown]) == []
    assert await tracking_engine.detect_overlaps(windows=[]) == []


@pytest.mark.asyncio
async def test_find_open_ignores_closed_rows(session_factory, window_a):
    await _insert(
        session_factory,
        _row(1, window_a, at(0), at(10), ClosureReason.RESCANNED_SAME_WINDOW.value),
        _row(1, window_a, at(10)),
    )

    async with session_factory() as db:
        found = await crud_tracking.find_open_by_workstation(db, 1)
        elsewhere = await crud_tracking.find_open_by_window_excluding_workstation(db, window_a, 1)
        from_other = await crud_tracking.find_open_by_window_excluding_workstation(db, window_a, 2)

    assert found.start_time == at(10)
    assert elsewhere is None
    assert from_other.workstation_id == 1


@pytest.mark.asyncio
async def test_close_only_open_skips_closed_rows(session_factory, window_a):
    (closed,) = await _insert(
        session_factory,
        _row(1, window_a, at(0), at(10), ClosureReason.MANUAL_CLOSE.value),
    )

    async with session_factory() as db:
        async with db.begin():
            changed = await crud_tracking.close(
                db,
                closed.id,
                end_time=at(50),
                reason=ClosureReason.AUTO_CLOSED_ORPHANED,
                only_open=True,
            )
        reloaded = await crud_tracking.get(db, closed.id)

    assert changed == 0
    assert reloaded.end_time == at(10)
    assert reloaded.closure_reason == ClosureReason.MANUAL_CLOSE.value
