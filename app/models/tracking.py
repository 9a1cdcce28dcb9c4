# app/models/tracking.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base
from app.db.types import UTCDateTime

OPEN_ONLY = text("end_time IS NULL")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackingInterval(Base):
    """
    Intervalo de tracking: período em que uma ventana (lote, instancia, version)
    esteve em um puesto.

    end_time NULL = intervalo aberto. Uma vez fechado, o registro não muda mais.
    """

    __tablename__ = "trackings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    workstation_id: Mapped[int] = mapped_column(Integer, nullable=False)

    lote: Mapped[str] = mapped_column(String(64), nullable=False)
    instancia: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    closure_reason: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # operador que fez o scan (auditoria)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "end_time IS NULL OR start_time <= end_time",
            name="ck_trackings_valid_range",
        ),
        CheckConstraint(
            "(end_time IS NULL) = (closure_reason IS NULL)",
            name="ck_trackings_closure_reason",
        ),
        # só um tracking aberto por (puesto, ventana)
        Index(
            "uq_trackings_open_window_workstation",
            "workstation_id",
            "lote",
            "instancia",
            "version",
            unique=True,
            postgresql_where=OPEN_ONLY,
            sqlite_where=OPEN_ONLY,
        ),
        # só um tracking aberto por puesto
        Index(
            "uq_trackings_open_workstation",
            "workstation_id",
            unique=True,
            postgresql_where=OPEN_ONLY,
            sqlite_where=OPEN_ONLY,
        ),
        # só um tracking aberto por ventana
        Index(
            "uq_trackings_open_window",
            "lote",
            "instancia",
            "version",
            unique=True,
            postgresql_where=OPEN_ONLY,
            sqlite_where=OPEN_ONLY,
        ),
        Index("ix_trackings_window_start", "lote", "instancia", "version", "start_time"),
        Index("ix_trackings_overlap", "workstation_id", "start_time", "end_time"),
    )

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def __repr__(self) -> str:
        return (
            f"<TrackingInterval(id={self.id}, workstation_id={self.workstation_id}, "
            f"lote={self.lote!r}, instancia={self.instancia}, version={self.version}, "
            f"open={self.end_time is None})>"
        )
