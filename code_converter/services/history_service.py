from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from code_converter.errors import PersistenceError, RecordNotFound
from code_converter.logging_config import logger
from code_converter.models import Conversion


@dataclass(frozen=True)
class HistoryStats:
    count: int
    token_sum: int
    average_latency: int
    recent: list[Conversion]


def list_records(db: Session, *, page: int, limit: int) -> tuple[list[Conversion], int]:
    """Offset pagination, most recent first."""
    page = max(1, int(page))
    limit = max(1, int(limit))
    offset = (page - 1) * limit
    try:
        stmt = (
            select(Conversion)
            .order_by(Conversion.created_at.desc(), Conversion.id.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = list(db.execute(stmt).scalars().all())
        total = db.execute(select(func.count(Conversion.id))).scalar_one()
    except SQLAlchemyError as exc:
        logger.error("failed to list history: %s", exc)
        raise PersistenceError("Failed to fetch history") from exc
    return rows, int(total)


def get_record(db: Session, record_id: int) -> Conversion:
    try:
        record = db.get(Conversion, record_id)
    except SQLAlchemyError as exc:
        logger.error("failed to load conversion %s: %s", record_id, exc)
        raise PersistenceError("Failed to fetch conversion") from exc
    if record is None:
        raise RecordNotFound()
    return record


def delete_record(db: Session, record_id: int) -> None:
    try:
        result = db.execute(delete(Conversion).where(Conversion.id == record_id))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("failed to delete conversion %s: %s", record_id, exc)
        raise PersistenceError("Failed to delete conversion") from exc
    if result.rowcount == 0:
        raise RecordNotFound()
    logger.info("conversion %s removed from history", record_id)


def aggregate(db: Session, *, recent: int = 5) -> HistoryStats:
    """Totals over the whole history; an empty history yields zeros."""
    try:
        count, token_sum, avg_latency = db.execute(
            select(
                func.count(Conversion.id),
                func.coalesce(func.sum(Conversion.tokens), 0),
                func.avg(Conversion.elapsed_ms),
            )
        ).one()
        latest = list(
            db.execute(
                select(Conversion)
                .order_by(Conversion.created_at.desc(), Conversion.id.desc())
                .limit(recent)
            )
            .scalars()
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error("failed to aggregate history: %s", exc)
        raise PersistenceError("Failed to fetch statistics") from exc

    return HistoryStats(
        count=int(count or 0),
        token_sum=int(token_sum or 0),
        average_latency=int(round(float(avg_latency))) if avg_latency is not None else 0,
        recent=latest,
    )


def ping(db: Session) -> None:
    db.execute(text("SELECT 1"))


__all__ = [
    "HistoryStats",
    "aggregate",
    "delete_record",
    "get_record",
    "list_records",
    "ping",
]
