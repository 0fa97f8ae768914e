"""Benchmark result ingestion: extraction, summaries and export."""

from .capture import CaptureReport, ResultCapture
from .export import (
    CSV_COLUMNS,
    TABLE_COLUMNS,
    ExportError,
    build_table,
    default_csv_name,
    export_csv,
    render_table,
)
from .extractor import (
    ResultBlock,
    ResultBlockExtractor,
    ResultDecodeError,
    decode_json,
    stream_blocks,
)
from .fio import ClientStats, FioOutput, IOStats, LatencyStats, decode_fio_payload
from .summary import ResultSummary, summarize, summarize_client

__all__ = [
    # Extraction
    "ResultBlock",
    "ResultBlockExtractor",
    "ResultDecodeError",
    "decode_json",
    "stream_blocks",
    # fio output
    "ClientStats",
    "FioOutput",
    "IOStats",
    "LatencyStats",
    "decode_fio_payload",
    # Summaries
    "ResultSummary",
    "summarize",
    "summarize_client",
    # Export
    "CSV_COLUMNS",
    "TABLE_COLUMNS",
    "ExportError",
    "build_table",
    "default_csv_name",
    "export_csv",
    "render_table",
    # Capture
    "CaptureReport",
    "ResultCapture",
]
