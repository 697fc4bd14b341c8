"""
Request/response schemas for the converter API.

JSON bodies use camelCase keys; Python attributes stay snake_case.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self, **kwargs) -> dict:
        return self.model_dump(by_alias=True, mode="json", **kwargs)


class ConversionPayload(BaseModel):
    """
    Raw POST /api/converter body.

    Shape checks only; length and emptiness rules live in
    code_converter.validation so they can use runtime settings.
    The legacy field names (codigoTs / salvarHistorico) are still accepted.
    """

    model_config = ConfigDict(populate_by_name=True)

    source_text: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("sourceText", "codigoTs", "source_text"),
        description="Code snippet to translate",
    )
    save_history: bool = Field(
        True,
        validation_alias=AliasChoices("saveHistory", "salvarHistorico", "save_history"),
        description="Persist the translation in the history",
    )


class ConversionMetadata(CamelModel):
    model: str
    tokens: Optional[int] = None
    elapsed_ms: int
    input_length: int


class ConversionResponse(CamelModel):
    result: str
    record_id: Optional[int] = None
    metadata: ConversionMetadata


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ConversionRecordOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    source_text: str
    result: str
    model: str
    tokens: Optional[int] = None
    elapsed_ms: int
    input_length: int
    created_at: datetime

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> str:
        return _as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ConversionSummaryOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    created_at: datetime
    elapsed_ms: int
    tokens: Optional[int] = None

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> str:
        return _as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class HistoryPage(CamelModel):
    records: list[ConversionRecordOut]
    pagination: Pagination


class StatsOut(CamelModel):
    total_conversions: int
    total_tokens: int
    average_latency: int
    recent_conversions: list[ConversionSummaryOut]


class ProbeStatus(CamelModel):
    status: str = Field(..., description="connected / disconnected")
    response_time_ms: float
    error: Optional[str] = None


class HealthOut(CamelModel):
    status: str
    database: ProbeStatus
    provider: ProbeStatus
    uptime_seconds: float
    version: str


__all__ = [
    "ConversionMetadata",
    "ConversionPayload",
    "ConversionRecordOut",
    "ConversionResponse",
    "ConversionSummaryOut",
    "HealthOut",
    "HistoryPage",
    "Pagination",
    "ProbeStatus",
    "StatsOut",
]
