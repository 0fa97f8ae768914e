"""Tests for fio output decoding and summary rows."""

from __future__ import annotations

import json

import pytest

from k8sio.results import (
    FioOutput,
    ResultBlock,
    ResultDecodeError,
    ResultSummary,
    decode_fio_payload,
    summarize,
)


def io_stats(total_ios=0, iops=0.0, bw=0, p50=0, p95=0) -> dict:
    return {
        "total_ios": total_ios,
        "iops": iops,
        "bw": bw,
        "clat_ns": {"percentile": {"50.000000": p50, "95.000000": p95}},
    }


def client(jobname="randrw", hostname="10.0.0.1", runtime_ms=60500, read=None, write=None) -> dict:
    return {
        "jobname": jobname,
        "hostname": hostname,
        "job_runtime": runtime_ms,
        "read": read or io_stats(),
        "write": write or io_stats(),
        "trim": io_stats(),
    }


def fio_output(*clients) -> dict:
    return {
        "fio version": "fio-3.35",
        "timestamp": 1700000000,
        "global options": {"size": "2GiB"},
        "client_stats": list(clients),
    }


def make_block(payload: dict, test_id="fio-read-4KiB-1", sample=1) -> ResultBlock:
    text = json.dumps(payload)
    return ResultBlock(test_id=test_id, sample=sample, payload=text, data=decode_fio_payload(text))


class TestDecodeFioPayload:
    """Tests for decode_fio_payload."""

    def test_aliases_and_defaults(self):
        output = decode_fio_payload(json.dumps(fio_output(client())))

        assert isinstance(output, FioOutput)
        assert output.fio_version == "fio-3.35"
        assert output.global_options == {"size": "2GiB"}
        assert output.client_stats[0].read.clat_ns.percentile_us("50.000000") == 0.0

    def test_invalid_json(self):
        with pytest.raises(ResultDecodeError, match="invalid JSON"):
            decode_fio_payload("{not json")

    def test_wrong_shape(self):
        with pytest.raises(ResultDecodeError, match="unexpected fio output"):
            decode_fio_payload(json.dumps({"client_stats": "nope"}))


class TestSummarize:
    """Tests for summarize."""

    def test_read_only_job_yields_one_row(self):
        read = io_stats(total_ios=1000, iops=16.7, bw=68, p50=250000, p95=1200000)
        rows = summarize([make_block(fio_output(client(jobname="read", read=read)))])

        assert rows == [
            ResultSummary(
                test_id="fio-read-4KiB-1",
                sample=1,
                job_name="read",
                hostname="10.0.0.1",
                read_iops=16.7,
                read_bw=68,
                read_lat_p50=250.0,
                read_lat_p95=1200.0,
                runtime=60,
            )
        ]
        assert rows[0].write_iops == 0.0 and rows[0].write_bw == 0

    def test_mixed_job_yields_read_then_write_row(self):
        payload = fio_output(
            client(
                read=io_stats(total_ios=10, iops=1.0, bw=4, p50=1000),
                write=io_stats(total_ios=20, iops=2.0, bw=8, p95=3000),
            )
        )

        rows = summarize([make_block(payload)])

        assert len(rows) == 2
        assert rows[0].read_iops == 1.0 and rows[0].write_iops == 0.0
        assert rows[1].write_iops == 2.0 and rows[1].read_iops == 0.0
        assert rows[1].write_lat_p95 == 3.0

    def test_idle_job_yields_no_rows(self):
        assert summarize([make_block(fio_output(client()))]) == []

    def test_aggregate_entry_is_excluded(self):
        busy = io_stats(total_ios=5, iops=1.0)
        payload = fio_output(
            client(hostname="10.0.0.1", read=busy),
            client(jobname="All clients", hostname="", read=busy),
            client(hostname="10.0.0.2", read=busy),
        )

        rows = summarize([make_block(payload)])

        assert [r.hostname for r in rows] == ["10.0.0.1", "10.0.0.2"]

    def test_order_follows_blocks_then_clients(self):
        busy = io_stats(total_ios=5)
        blocks = [
            make_block(fio_output(client(hostname="b", read=busy), client(hostname="a", read=busy)), sample=1),
            make_block(fio_output(client(hostname="c", read=busy)), sample=2),
        ]

        rows = summarize(blocks)

        assert [(r.sample, r.hostname) for r in rows] == [(1, "b"), (1, "a"), (2, "c")]

    def test_runtime_truncates_to_seconds(self):
        payload = fio_output(client(runtime_ms=999, read=io_stats(total_ios=1)))
        assert summarize([make_block(payload)])[0].runtime == 0

    def test_test_id_override(self):
        payload = fio_output(client(read=io_stats(total_ios=1)))
        rows = summarize([make_block(payload)], test_id="run-label")
        assert rows[0].test_id == "run-label"

    def test_accepts_undecoded_dicts(self):
        payload = fio_output(client(read=io_stats(total_ios=1)))
        raw = ResultBlock(test_id="T", sample=1, payload=json.dumps(payload), data=payload)
        assert len(summarize([raw])) == 1

    def test_summaries_are_immutable(self):
        row = ResultSummary(test_id="T", sample=1, job_name="j", hostname="h")
        with pytest.raises(AttributeError):
            row.sample = 2  # type: ignore[misc]
