# app/core/config.py
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configurações globais do serviço de tracking.

    Variáveis aceitas no .env:
    - DATABASE_URL (prioritária) ou tracking_db_host/port/user/password/name
    - LOG_LEVEL, LOG_JSON
    - SCAN_MAX_RETRIES, SCAN_TIMEOUT_SECONDS
    - ORPHAN_RECLAIM_ENABLED, ORPHAN_MAX_OPEN_HOURS, ORPHAN_CLOSE_BUFFER_HOURS,
      ORPHAN_RECLAIM_INTERVAL_MINUTES
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Window Tracking"

    # ------------------------------------------------------------------
    # Banco de tracking
    # ------------------------------------------------------------------
    tracking_db_host: str = "localhost"
    tracking_db_port: int = 5432
    tracking_db_user: str = "tracking"
    tracking_db_password: str = "tracking"
    tracking_db_name: str = "tracking_db"

    DATABASE_URL: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------
    # tentativas extras quando outro writer ganha a corrida no mesmo puesto
    SCAN_MAX_RETRIES: int = 3
    SCAN_TIMEOUT_SECONDS: float = 5.0

    # ------------------------------------------------------------------
    # Reclamação de trackings órfãos
    # ------------------------------------------------------------------
    ORPHAN_RECLAIM_ENABLED: bool = False
    ORPHAN_MAX_OPEN_HOURS: int = 24
    ORPHAN_CLOSE_BUFFER_HOURS: int = 1
    ORPHAN_RECLAIM_INTERVAL_MINUTES: int = 60

    @property
    def database_url(self) -> str:
        """
        URL async do banco para o SQLAlchemy.

        Prioridade:
        1) se DATABASE_URL estiver setada, usa ela
        2) senão, monta a partir de tracking_db_* e garante +asyncpg
        """
        url = self.DATABASE_URL
        if not url:
            url = (
                f"postgresql+asyncpg://"
                f"{self.tracking_db_user}:{self.tracking_db_password}"
                f"@{self.tracking_db_host}:{self.tracking_db_port}/{self.tracking_db_name}"
            )

        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        return url


settings = Settings()
