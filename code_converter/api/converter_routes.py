"""
Converter API: translation, history and health endpoints under /api.
"""

from __future__ import annotations

import math
import time

import anyio
import httpx
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from code_converter.deps import (
    get_conversion_service,
    get_db,
    get_history_writer,
    get_http_client,
)
from code_converter.errors import ServiceUnavailable, success_envelope
from code_converter.logging_config import logger
from code_converter.provider import check_provider_health
from code_converter.schemas import (
    ConversionMetadata,
    ConversionPayload,
    ConversionRecordOut,
    ConversionResponse,
    ConversionSummaryOut,
    HealthOut,
    HistoryPage,
    Pagination,
    ProbeStatus,
    StatsOut,
)
from code_converter.services import history_service
from code_converter.services.conversion_service import ConversionService
from code_converter.services.history_writer import HistoryWriter
from code_converter.settings import settings
from code_converter.validation import validate_conversion_request

router = APIRouter(prefix="/api", tags=["converter"])


@router.post("/converter")
async def convert_code(
    payload: ConversionPayload,
    service: ConversionService = Depends(get_conversion_service),
    writer: HistoryWriter = Depends(get_history_writer),
) -> dict:
    """
    Translate one snippet. The history write, when requested, is queued
    and never awaited: its failure cannot turn this response into an error.
    """
    conversion = validate_conversion_request(payload, max_length=settings.max_code_length)
    logger.info(
        "converting %d chars (save_history=%s)",
        conversion.input_length,
        conversion.save_history,
    )

    outcome = await service.convert(conversion.source_text)

    record_id = None
    if conversion.save_history:
        pending = writer.submit(conversion.source_text, outcome)
        if pending is not None:
            record_id = pending.id

    response = ConversionResponse(
        result=outcome.result,
        record_id=record_id,
        metadata=ConversionMetadata(
            model=outcome.model,
            tokens=outcome.tokens,
            elapsed_ms=outcome.elapsed_ms,
            input_length=conversion.input_length,
        ),
    )
    return success_envelope(response.to_json(exclude_none=True))


@router.get("/historico")
def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
) -> dict:
    rows, total = history_service.list_records(db, page=page, limit=limit)
    body = HistoryPage(
        records=[ConversionRecordOut.model_validate(row) for row in rows],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit),
        ),
    )
    return success_envelope(body.to_json())


@router.get("/conversao/{record_id}")
def get_conversion(
    record_id: int,
    db: Session = Depends(get_db),
    writer: HistoryWriter = Depends(get_history_writer),
) -> dict:
    # A freshly returned recordId may still be waiting in the write queue.
    record = writer.pending_record(record_id) or history_service.get_record(db, record_id)
    return success_envelope(ConversionRecordOut.model_validate(record).to_json())


@router.delete("/conversao/{record_id}")
def delete_conversion(
    record_id: int,
    db: Session = Depends(get_db),
    writer: HistoryWriter = Depends(get_history_writer),
) -> dict:
    if not writer.discard(record_id):
        history_service.delete_record(db, record_id)
    return success_envelope({"message": "Conversion deleted successfully"})


@router.get("/stats")
def get_stats(db: Session = Depends(get_db)) -> dict:
    stats = history_service.aggregate(db, recent=5)
    body = StatsOut(
        total_conversions=stats.count,
        total_tokens=stats.token_sum,
        average_latency=stats.average_latency,
        recent_conversions=[ConversionSummaryOut.model_validate(row) for row in stats.recent],
    )
    return success_envelope(body.to_json())


@router.get("/health")
async def health(
    request: Request,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> dict:
    """
    Store and provider probes. An unreachable store makes the service
    unavailable (503); an unreachable provider only degrades it.
    """
    start = time.perf_counter()
    try:
        await anyio.to_thread.run_sync(history_service.ping, db)
    except SQLAlchemyError as exc:
        logger.error("health check: database unreachable: %s", exc)
        raise ServiceUnavailable("Service unavailable: database unreachable") from exc
    db_ms = (time.perf_counter() - start) * 1000.0

    probe = await check_provider_health(
        client,
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
    )

    started_at = getattr(request.app.state, "started_at", None)
    uptime = time.monotonic() - started_at if started_at is not None else 0.0

    body = HealthOut(
        status="OK" if probe.reachable else "DEGRADED",
        database=ProbeStatus(status="connected", response_time_ms=round(db_ms, 2)),
        provider=ProbeStatus(
            status="connected" if probe.reachable else "disconnected",
            response_time_ms=round(probe.response_time_ms, 2),
            error=probe.error_message,
        ),
        uptime_seconds=round(uptime, 3),
        version=settings.version,
    )
    return success_envelope(body.to_json(exclude_none=True))


__all__ = ["router"]
