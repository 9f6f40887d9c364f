# frota/backup.py
"""
Whole-database JSON backup.

The document is ``{table_name: [row, ...]}`` with raw snake_case rows, in an
order where every row's references are restored before the row itself.
Restoring upserts by ``id``; ``created_at`` is dropped so existing rows keep
theirs, and ``created_by`` is rewritten to whoever runs the import.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import Date, DateTime, Numeric
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from frota import models

logger = logging.getLogger(__name__)

TABLES = [
    models.Vehicle,
    models.Driver,
    models.FinancialAccount,
    models.Supplier,
    models.Customer,
    models.Checklist,
    models.Transaction,
    models.Trip,
    models.FuelEntry,
]
TABLE_ORDER = [m.__tablename__ for m in TABLES]
STRIPPED_ON_IMPORT = {"created_at"}


def backup_filename(today: date) -> str:
    return f"backup_frota_{today.isoformat()}.json"


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _column_value(column, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(column.type, DateTime) and isinstance(value, str):
        return datetime.fromisoformat(value)
    if isinstance(column.type, Date) and isinstance(value, str):
        return date.fromisoformat(value[:10])
    if isinstance(column.type, Numeric) and not isinstance(value, Decimal):
        return Decimal(str(value))
    return value


def _row(obj) -> Dict[str, Any]:
    return {c.name: _json_value(getattr(obj, c.key)) for c in obj.__table__.columns}


def export_backup(db: Session) -> Dict[str, List[Dict[str, Any]]]:
    data = {}
    for model in TABLES:
        rows = db.query(model).order_by(model.id.asc()).all()
        data[model.__tablename__] = [_row(r) for r in rows]
    logger.info("Exported backup: %s", {k: len(v) for k, v in data.items()})
    return data


def import_backup(db: Session, data: Dict[str, Any], user_id: Optional[str]) -> Dict[str, int]:
    """
    Upsert every known table of ``data`` by primary key, in dependency order,
    and commit once. Unknown tables and columns are skipped.
    Returns the number of rows restored per table.
    """
    if not isinstance(data, dict):
        raise ValueError("Backup must be a JSON object keyed by table name")

    unknown = sorted(set(data) - set(TABLE_ORDER))
    if unknown:
        logger.warning("Ignoring unknown tables in backup: %s", unknown)

    restored: Dict[str, int] = {}
    try:
        for model in TABLES:
            rows = data.get(model.__tablename__)
            if rows is None:
                continue
            if not isinstance(rows, list):
                raise ValueError(f"Table {model.__tablename__} must be a list of rows")
            columns = {c.name: c for c in model.__table__.columns}
            for raw in rows:
                if not isinstance(raw, dict) or not raw.get("id"):
                    raise ValueError(f"Every {model.__tablename__} row needs an id")
                values = {
                    columns[k].key: _column_value(columns[k], v)
                    for k, v in raw.items()
                    if k in columns and k not in STRIPPED_ON_IMPORT
                }
                values["created_by"] = user_id
                db.merge(model(**values))
            # flushed per table so inserts follow TABLES order
            db.flush()
            restored[model.__tablename__] = len(rows)
        db.commit()
    except (SQLAlchemyError, ValueError):
        db.rollback()
        logger.warning("Backup import rolled back")
        raise
    logger.info("Imported backup: %s", restored)
    return restored
