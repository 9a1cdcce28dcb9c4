# app/db/session.py
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.base import Base


def make_engine(url: str) -> AsyncEngine:
    # pool_pre_ping só faz sentido para servidores (asyncpg)
    return create_async_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=not url.startswith("sqlite"),
    )


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    """
    Factory de AsyncSession usada pelo TrackingEngine.

    expire_on_commit=False: os trackings retornados pelo engine continuam
    legíveis depois do commit (a sessão já foi fechada).
    """
    return sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ----------------------------------------------------------------------
# Engine e sessões do app, a partir de settings.database_url
# ----------------------------------------------------------------------
engine = make_engine(settings.database_url)
AsyncSessionLocal = make_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """
    Cria as tabelas a partir do Base.metadata.

    Em produção o schema vem das migrations do Alembic (o trigger de
    updated_at só existe lá); aqui é para desenvolvimento e testes.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    await engine.dispose()
