# app/api/deps.py
from app.db.session import AsyncSessionLocal
from app.services.orphan_reclaimer import OrphanReclaimer
from app.services.tracking_engine import TrackingEngine

_engine = TrackingEngine(AsyncSessionLocal)


def get_tracking_engine() -> TrackingEngine:
    """
    Engine de tracking ligado ao AsyncSessionLocal da aplicação.
    Nos testes é trocado via app.dependency_overrides.
    """
    return _engine


def get_orphan_reclaimer() -> OrphanReclaimer:
    return OrphanReclaimer(get_tracking_engine())
