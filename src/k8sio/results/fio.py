"""Models of fio's JSON output (``--output-format=json`` in client mode).

Only the fields the summaries read are declared; everything else in the
document is ignored.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .extractor import ResultDecodeError


class LatencyStats(BaseModel):
    """Latency distribution in nanoseconds."""

    model_config = ConfigDict(extra="ignore")

    min: float = 0
    max: float = 0
    mean: float = 0
    stddev: float = 0
    percentile: dict[str, float] = Field(default_factory=dict)

    def percentile_us(self, pct: str) -> float:
        """Percentile (e.g. ``"95.000000"``) converted to microseconds, 0 if absent."""
        value = self.percentile.get(pct)
        if value is None:
            return 0.0
        return value / 1000.0


class IOStats(BaseModel):
    """Per-direction (read/write/trim) statistics of one job."""

    model_config = ConfigDict(extra="ignore")

    io_bytes: int = 0
    bw: int = 0  # KiB/s
    iops: float = 0.0
    runtime: int = 0
    total_ios: int = 0
    clat_ns: LatencyStats = Field(default_factory=LatencyStats)
    lat_ns: LatencyStats = Field(default_factory=LatencyStats)


class ClientStats(BaseModel):
    """One ``client_stats`` entry: a job as seen from one fio server."""

    model_config = ConfigDict(extra="ignore")

    jobname: str = ""
    hostname: str = ""
    groupid: int = 0
    error: int = 0
    job_runtime: int = 0  # milliseconds
    read: IOStats = Field(default_factory=IOStats)
    write: IOStats = Field(default_factory=IOStats)
    trim: IOStats = Field(default_factory=IOStats)


class FioOutput(BaseModel):
    """Top-level fio JSON document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    fio_version: str = Field(default="", alias="fio version")
    timestamp: int = 0
    time: str = ""
    global_options: dict[str, Any] = Field(default_factory=dict, alias="global options")
    client_stats: list[ClientStats] = Field(default_factory=list)


def decode_fio_payload(text: str) -> FioOutput:
    """Decode one captured block into :class:`FioOutput`.

    Raises:
        ResultDecodeError: If the text is not JSON or not shaped like fio output
    """
    try:
        return FioOutput.model_validate(json.loads(text))
    except json.JSONDecodeError as e:
        raise ResultDecodeError(f"invalid JSON: {e}")  # noqa: B904
    except ValidationError as e:
        raise ResultDecodeError(f"unexpected fio output: {e}")  # noqa: B904
