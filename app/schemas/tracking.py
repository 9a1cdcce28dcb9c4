# app/schemas/tracking.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClosureReason(str, enum.Enum):
    CHAIN_TRANSITION = "CHAIN_TRANSITION"
    RESCANNED_SAME_WINDOW = "RESCANNED_SAME_WINDOW"
    MANUAL_CLOSE = "MANUAL_CLOSE"
    AUTO_CLOSED_ORPHANED = "AUTO_CLOSED_ORPHANED"


@dataclass(frozen=True)
class WindowIdentity:
    """Identidade imutável de uma ventana: (lote, instancia, version)."""

    lote: str
    instancia: int
    version: int

    @classmethod
    def of(cls, obj: Any) -> "WindowIdentity":
        """Extrai a identidade de qualquer objeto com lote/instancia/version (ex.: TrackingInterval)."""
        return cls(lote=obj.lote, instancia=obj.instancia, version=obj.version)

    def __str__(self) -> str:
        return f"lote: {self.lote}, instancia: {self.instancia}, version: {self.version}"


# ----- ENTRADA DE SCAN -----
class ScanCreate(BaseModel):
    workstation_id: int = Field(..., gt=0)
    lote: str = Field(..., min_length=1, max_length=64)
    instancia: int = Field(..., ge=0)
    version: int = Field(..., ge=0)
    start_time: datetime
    user_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("lote")
    @classmethod
    def strip_lote(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("lote não pode ser vazio")
        return v

    @property
    def window(self) -> WindowIdentity:
        return WindowIdentity(lote=self.lote, instancia=self.instancia, version=self.version)


class IntervalClose(BaseModel):
    end_time: datetime
    reason: ClosureReason = ClosureReason.MANUAL_CLOSE


# ----- RESPOSTAS -----
class TrackingIntervalRead(BaseModel):
    id: int
    workstation_id: int
    lote: str
    instancia: int
    version: int
    start_time: datetime
    end_time: Optional[datetime] = None
    closure_reason: Optional[ClosureReason] = None
    user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OverlapRead(BaseModel):
    """Par de trackings sobrepostos no mesmo puesto (health-check)."""

    workstation_id: int
    first: TrackingIntervalRead
    second: TrackingIntervalRead
    overlap_seconds: float
    same_window: bool

    model_config = ConfigDict(from_attributes=True)


class OrphanRead(BaseModel):
    interval: TrackingIntervalRead
    hours_open: float
    has_continuation: bool
    open_in_other_workstation: bool
    proposed_end_time: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
