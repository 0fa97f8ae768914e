"""End-to-end result capture: log -> blocks -> summaries -> table/CSV.

Parsing problems are logged and never raised; a run that completed
keeps whatever partial results could be read.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from k8sio.k8s import K8sError

from .export import ExportError, default_csv_name, export_csv, render_table
from .extractor import ResultBlock, ResultBlockExtractor, stream_blocks
from .fio import decode_fio_payload
from .summary import ResultSummary, summarize

logger = logging.getLogger(__name__)


@dataclass
class CaptureReport:
    """What one capture produced."""

    blocks: list[ResultBlock] = field(default_factory=list)
    summaries: list[ResultSummary] = field(default_factory=list)
    csv_path: Path | None = None


class ResultCapture:
    """Parse fio client output and report it.

    Args:
        label: Run label used in the CSV file name
        console: Where tables are printed
        export: Write a CSV file when there are results
        output_dir: Directory for the CSV file
    """

    def __init__(
        self,
        label: str,
        console: Console | None = None,
        export: bool = True,
        output_dir: Path | str = ".",
    ):
        self.label = label
        self.console = console or Console()
        self.export = export
        self.output_dir = Path(output_dir)

    def _extractor(self) -> ResultBlockExtractor:
        return ResultBlockExtractor(decoder=decode_fio_payload)

    def from_text(self, text: str) -> CaptureReport:
        """Capture results from a complete log."""
        blocks = self._extractor().scan_text(text)
        return self._report(blocks)

    def from_stream(
        self,
        lines: Iterable[str],
        echo: Callable[[str], None] | None = None,
    ) -> CaptureReport:
        """Capture results from a live log, printing each block as it closes.

        If the line source fails part way, the blocks read so far are
        still reported and exported.
        """
        blocks = []
        try:
            for block in stream_blocks(lines, self._extractor(), echo=echo):
                blocks.append(block)
                render_table(summarize([block]), self.console)
        except K8sError as e:
            logger.warning("Log stream ended early after %d block(s): %s", len(blocks), e)
            self.console.print(f"[yellow]WARN[/yellow] Log stream ended early: {e}")
        return self._report(blocks)

    def _report(self, blocks: list[ResultBlock]) -> CaptureReport:
        report = CaptureReport(blocks=blocks)
        if not blocks:
            self.console.print("No FIO results found in output")
            return report

        self.console.print(f"Found {len(blocks)} FIO result(s)")
        report.summaries = summarize(blocks)
        render_table(report.summaries, self.console)

        if self.export:
            path = self.output_dir / default_csv_name(self.label)
            try:
                report.csv_path = export_csv(report.summaries, path)
            except ExportError as e:
                logger.warning("Failed to export results to CSV: %s", e)
                self.console.print(f"[yellow]WARN[/yellow] Failed to export results to CSV: {e}")
            else:
                self.console.print(f"Results exported to: {report.csv_path}")
        return report
