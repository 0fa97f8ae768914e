"""Tests for result block extraction."""

from __future__ import annotations

import json
import logging

from k8sio.results import ResultBlockExtractor, stream_blocks


def block(test_id: str, payload: dict | str) -> list[str]:
    body = payload if isinstance(payload, str) else json.dumps(payload, indent=2)
    return [f"FIO Result for {test_id}", *body.splitlines(), f"END FIO Result for {test_id}"]


class TestResultBlockExtractor:
    """Tests for ResultBlockExtractor."""

    def test_samples_numbered_per_test_id(self):
        lines = [
            "starting client",
            *block("T1", {"n": 1}),
            "noise between blocks",
            *block("T1", {"n": 2}),
            *block("T2", {"n": 3}),
            "done",
        ]

        blocks = ResultBlockExtractor().scan(lines)

        assert [(b.test_id, b.sample) for b in blocks] == [("T1", 1), ("T1", 2), ("T2", 1)]
        assert [b.data["n"] for b in blocks] == [1, 2, 3]

    def test_interleaved_ids(self):
        lines = [*block("A", {}), *block("B", {}), *block("A", {})]
        blocks = ResultBlockExtractor().scan(lines)
        assert [(b.test_id, b.sample) for b in blocks] == [("A", 1), ("B", 1), ("A", 2)]

    def test_payload_keeps_line_endings(self):
        blocks = ResultBlockExtractor().scan(["FIO Result for T", "{", '"a": 1', "}", "END FIO Result for T"])
        assert blocks[0].payload == '{\n"a": 1\n}\n'

    def test_unterminated_block_is_dropped(self, caplog):
        lines = [*block("T1", {"n": 1}), "FIO Result for T2", "{", '"n": 2']

        with caplog.at_level(logging.WARNING):
            blocks = ResultBlockExtractor().scan(lines)

        assert [b.test_id for b in blocks] == ["T1"]
        assert "T2" in caplog.text

    def test_new_start_restarts_capture(self):
        lines = ["FIO Result for T1", "{ partial", *block("T2", {"n": 2})]
        blocks = ResultBlockExtractor().scan(lines)
        assert [(b.test_id, b.sample) for b in blocks] == [("T2", 1)]

    def test_undecodable_block_is_skipped_and_not_counted(self, caplog):
        lines = [*block("T1", "not json"), *block("T1", {"n": 2})]

        with caplog.at_level(logging.WARNING):
            blocks = ResultBlockExtractor().scan(lines)

        assert [(b.test_id, b.sample) for b in blocks] == [("T1", 1)]
        assert blocks[0].data == {"n": 2}
        assert "Failed to decode result block for T1" in caplog.text

    def test_empty_block_is_skipped(self):
        assert ResultBlockExtractor().scan(["FIO Result for T1", "END FIO Result for T1"]) == []

    def test_end_without_start_is_ignored(self):
        assert ResultBlockExtractor().scan(["END FIO Result for T1", "{}"]) == []

    def test_delimiters_match_after_strip(self):
        lines = ["  FIO Result for T1  ", "{}", "\tEND FIO Result for T1\r"]
        blocks = ResultBlockExtractor().scan(lines)
        assert [b.test_id for b in blocks] == ["T1"]

    def test_custom_marker(self):
        lines = ["HDB Result for tpcc", "{}", "END HDB Result for tpcc", *block("fio", {})]
        blocks = ResultBlockExtractor(marker="HDB Result").scan(lines)
        assert [b.test_id for b in blocks] == ["tpcc"]

    def test_rescanning_is_idempotent(self):
        text = "\n".join([*block("T1", {"n": 1}), *block("T1", {"n": 2})])
        extractor = ResultBlockExtractor()

        assert extractor.scan_text(text) == extractor.scan_text(text)
        assert [b.sample for b in extractor.scan_text(text)] == [1, 2]


class TestStreamBlocks:
    """Tests for streaming extraction."""

    def test_yields_as_end_markers_arrive(self):
        events = []
        lines = [*block("T1", {"n": 1}), "between", *block("T1", {"n": 2})]

        for b in stream_blocks(lines, echo=lambda line: events.append(("line", line))):
            events.append(("block", b.sample))

        first_block = events.index(("block", 1))
        assert events[first_block - 1] == ("line", "END FIO Result for T1")
        assert ("line", "between") in events[first_block:]
        assert events[-1] == ("block", 2)

    def test_every_line_is_echoed(self):
        lines = ["a", *block("T1", {}), "b"]
        echoed = []
        list(stream_blocks(lines, echo=echoed.append))
        assert echoed == lines

    def test_stream_matches_batch_scan(self):
        lines = [*block("T1", {"n": 1}), *block("T2", {"n": 2}), "FIO Result for T3", "{"]
        assert list(stream_blocks(lines)) == ResultBlockExtractor().scan(lines)
