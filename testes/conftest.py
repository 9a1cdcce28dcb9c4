import pytest
import pytest_asyncio

from app.db.session import init_db, make_engine, make_session_factory
from app.schemas.tracking import WindowIdentity
from app.services.tracking_engine import TrackingEngine


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # banco SQLite descartável por teste (arquivo, para ter conexões independentes)
    db_engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracking.db'}")
    await init_db(db_engine)
    yield make_session_factory(db_engine)
    await db_engine.dispose()


@pytest.fixture
def tracking_engine(session_factory) -> TrackingEngine:
    return TrackingEngine(session_factory)


@pytest.fixture
def window_a() -> WindowIdentity:
    return WindowIdentity(lote="TEST001", instancia=1, version=1)


@pytest.fixture
def window_b() -> WindowIdentity:
    return WindowIdentity(lote="TEST002", instancia=1, version=1)
