"""Conversion of decoded fio blocks into per-job summary rows."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from k8sio._constants import FIO_AGGREGATE_JOB

from .extractor import ResultBlock
from .fio import ClientStats, FioOutput, IOStats

P50 = "50.000000"
P95 = "95.000000"


@dataclass(frozen=True)
class ResultSummary:
    """One output row: one direction of one job on one host for one sample.

    Bandwidths are KiB/s, latencies microseconds, runtime seconds.
    """

    test_id: str
    sample: int
    job_name: str
    hostname: str
    read_iops: float = 0.0
    read_bw: int = 0
    write_iops: float = 0.0
    write_bw: int = 0
    read_lat_p50: float = 0.0
    read_lat_p95: float = 0.0
    write_lat_p50: float = 0.0
    write_lat_p95: float = 0.0
    runtime: int = 0


def _read_fields(stats: IOStats) -> dict:
    return {
        "read_iops": stats.iops,
        "read_bw": stats.bw,
        "read_lat_p50": stats.clat_ns.percentile_us(P50),
        "read_lat_p95": stats.clat_ns.percentile_us(P95),
    }


def _write_fields(stats: IOStats) -> dict:
    return {
        "write_iops": stats.iops,
        "write_bw": stats.bw,
        "write_lat_p50": stats.clat_ns.percentile_us(P50),
        "write_lat_p95": stats.clat_ns.percentile_us(P95),
    }


def summarize_client(test_id: str, sample: int, client: ClientStats) -> list[ResultSummary]:
    """Rows for one client_stats entry.

    A direction with no completed I/O produces no row; a mixed job
    produces a read row followed by a write row.
    """
    if client.jobname == FIO_AGGREGATE_JOB:
        return []

    common = {
        "test_id": test_id,
        "sample": sample,
        "job_name": client.jobname,
        "hostname": client.hostname,
        "runtime": client.job_runtime // 1000,
    }
    rows = []
    if client.read.total_ios > 0:
        rows.append(ResultSummary(**common, **_read_fields(client.read)))
    if client.write.total_ios > 0:
        rows.append(ResultSummary(**common, **_write_fields(client.write)))
    return rows


def summarize(blocks: Iterable[ResultBlock], test_id: str | None = None) -> list[ResultSummary]:
    """Summarize decoded blocks in scan order.

    Args:
        blocks: Blocks whose ``data`` is a :class:`FioOutput`
        test_id: Label for every row; defaults to each block's own test id

    Returns:
        Rows in block order, then client_stats order. No sorting.
    """
    summaries: list[ResultSummary] = []
    for block in blocks:
        output = block.data
        if not isinstance(output, FioOutput):
            output = FioOutput.model_validate(output)
        label = test_id or block.test_id
        for client in output.client_stats:
            summaries.extend(summarize_client(label, block.sample, client))
    return summaries
