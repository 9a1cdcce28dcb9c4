import json
import logging

from app.core.config import Settings
from app.core.logging import JsonFormatter
from testes.helpers import at


def test_json_formatter_merges_extra_fields():
    record = logging.LogRecord(
        name="tracking.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Tracking created id=%s",
        args=(10,),
        exc_info=None,
    )
    record.event = "tracking_created"
    record.workstation_id = 3
    record.start_time = at(0)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Tracking created id=10"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "tracking.engine"
    assert payload["event"] == "tracking_created"
    assert payload["workstation_id"] == 3
    assert payload["start_time"] == "2026-02-20T10:00:00+00:00"
    assert "pathname" not in payload


def test_database_url_built_from_parts():
    cfg = Settings(
        _env_file=None,
        DATABASE_URL=None,
        tracking_db_host="db",
        tracking_db_port=5433,
        tracking_db_user="u",
        tracking_db_password="p",
        tracking_db_name="trk",
    )

    assert cfg.database_url == "postgresql+asyncpg://u:p@db:5433/trk"


def test_database_url_upgrades_plain_postgres_scheme():
    cfg = Settings(_env_file=None, DATABASE_URL="postgresql://u:p@db/trk")

    assert cfg.database_url == "postgresql+asyncpg://u:p@db/trk"


def test_database_url_keeps_other_drivers():
    cfg = Settings(_env_file=None, DATABASE_URL="sqlite+aiosqlite:///./tracking.db")

    assert cfg.database_url == "sqlite+aiosqlite:///./tracking.db"
