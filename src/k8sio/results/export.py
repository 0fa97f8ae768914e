"""Table and CSV rendering of result summaries."""

from __future__ import annotations

import csv
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .summary import ResultSummary

logger = logging.getLogger(__name__)

TABLE_COLUMNS = [
    "Test ID",
    "Sample",
    "Job",
    "Hostname",
    "Read IOPS",
    "Read BW (KB/s)",
    "Write IOPS",
    "Write BW (KB/s)",
    "Read Lat P50 (µs)",
    "Read Lat P95 (µs)",
    "Write Lat P50 (µs)",
    "Write Lat P95 (µs)",
    "Runtime (s)",
]

CSV_COLUMNS = [
    "Test ID",
    "Sample",
    "Job Type",
    "Hostname",
    "Read IOPS",
    "Read BW (KB/s)",
    "Write IOPS",
    "Write BW (KB/s)",
    "Read Lat P50 (µs)",
    "Read Lat P95 (µs)",
    "Write Lat P50 (µs)",
    "Write Lat P95 (µs)",
    "Runtime (s)",
    "Timestamp",
]

NO_RESULTS_MESSAGE = "No FIO results found"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class ExportError(Exception):
    """Raised when results cannot be exported."""

    pass


def format_row(summary: ResultSummary) -> list[str]:
    """Cells of one row, floats with one decimal place."""
    return [
        summary.test_id,
        str(summary.sample),
        summary.job_name,
        summary.hostname,
        f"{summary.read_iops:.1f}",
        str(summary.read_bw),
        f"{summary.write_iops:.1f}",
        str(summary.write_bw),
        f"{summary.read_lat_p50:.1f}",
        f"{summary.read_lat_p95:.1f}",
        f"{summary.write_lat_p50:.1f}",
        f"{summary.write_lat_p95:.1f}",
        str(summary.runtime),
    ]


def build_table(summaries: Sequence[ResultSummary]) -> Table:
    """Build the rich table for non-empty summaries."""
    table = Table(title="FIO Benchmark Results")
    for i, column in enumerate(TABLE_COLUMNS):
        table.add_column(column, justify="left" if i < 4 else "right")
    for summary in summaries:
        table.add_row(*format_row(summary))
    return table


def render_table(summaries: Sequence[ResultSummary], console: Console | None = None) -> None:
    """Print summaries as a table, or a notice when there are none."""
    console = console or Console()
    if not summaries:
        console.print(NO_RESULTS_MESSAGE)
        return
    console.print(build_table(summaries))


def default_csv_name(test_id: str, now: datetime | None = None) -> str:
    """File name for an export, e.g. ``fio-results-1a2b3c4d-20240101-120000.csv``."""
    now = now or datetime.now()
    return f"fio-results-{test_id}-{now.strftime('%Y%m%d-%H%M%S')}.csv"


def export_csv(
    summaries: Sequence[ResultSummary],
    output_path: Path | str,
    now: datetime | None = None,
) -> Path:
    """Write summaries to a CSV file.

    Every row carries the same export timestamp.

    Raises:
        ExportError: If there are no summaries or the file cannot be written
    """
    if not summaries:
        raise ExportError("no results to export")

    output_path = Path(output_path)
    timestamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_COLUMNS)
            for summary in summaries:
                writer.writerow([*format_row(summary), timestamp])
    except OSError as e:
        raise ExportError(f"failed to write {output_path}: {e}")  # noqa: B904

    logger.info("Exported %d result rows to %s", len(summaries), output_path)
    return output_path
