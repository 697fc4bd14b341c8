from .conversion import (
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
