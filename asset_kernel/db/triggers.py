"""
Module: asset_kernel.db.triggers
Responsibility: Install, remove and verify the PostgreSQL immutability
    triggers (layer 2 of 2; layer 1 is db/immutability.py).
Architecture position: Kernel > DB. Reads SQL from db/sql/.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on a blocked UPDATE/DELETE, surfaced by
      SQLAlchemy as IntegrityError / DBAPIError.
    - FileNotFoundError if an SQL file is missing.
    - OperationalError on deadlock during installation (caller retries).
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from asset_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_audit_log.sql",
    "02_decided_records.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_audit_log_immutability_update",
    "trg_audit_log_immutability_delete",
    "trg_asset_movement_immutability",
    "trg_work_order_immutability",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _execute(engine: Engine, sql_content: str) -> None:
    with engine.connect() as conn:
        conn.exec_driver_sql(sql_content)
        conn.commit()


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install every trigger in TRIGGER_FILES order.

    Functions use CREATE OR REPLACE and triggers are dropped first, so
    re-running is safe. Tables must already exist.
    """
    for filename in TRIGGER_FILES:
        _execute(engine, _load_sql_file(filename))
    logger.info("immutability_triggers_installed", extra={"files": TRIGGER_FILES})


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Remove all triggers and their functions."""
    _execute(engine, _load_sql_file(DROP_FILE))
    logger.warning("immutability_triggers_uninstalled")


def get_installed_triggers(engine: Engine) -> list[str]:
    with engine.connect() as conn:
        result = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger "
                "WHERE tgname = ANY(:names) ORDER BY tgname"
            ),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    return not get_missing_triggers(engine)


def get_missing_triggers(engine: Engine) -> list[str]:
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
