"""Extraction of delimited result blocks from benchmark logs.

The fio client job prints each JSON result between two marker lines::

    FIO Result for fio-randread-4KiB-1
    { ...fio --output-format=json... }
    END FIO Result for fio-randread-4KiB-1

:class:`ResultBlockExtractor` is a two-state line scanner (scanning or
capturing) that turns those sections into :class:`ResultBlock` objects.
It behaves the same whether fed a complete log or a live stream.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from k8sio._constants import FIO_RESULT_MARKER

logger = logging.getLogger(__name__)


class ResultDecodeError(ValueError):
    """Raised when a captured block is not a valid payload."""

    pass


def decode_json(text: str) -> Any:
    """Default block decoder."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ResultDecodeError(str(e))  # noqa: B904


@dataclass(frozen=True)
class ResultBlock:
    """One decoded block.

    ``sample`` is the 1-based count of decoded blocks seen so far for
    ``test_id``, in arrival order.
    """

    test_id: str
    sample: int
    payload: str
    data: Any = field(default=None, compare=False, repr=False)


class ResultBlockExtractor:
    """Stateful scanner pulling marker-delimited blocks out of log lines."""

    def __init__(
        self,
        marker: str = FIO_RESULT_MARKER,
        decoder: Callable[[str], Any] = decode_json,
    ):
        self.marker = marker
        self.decoder = decoder
        self._start_prefix = f"{marker} for "
        self._end_prefix = f"END {marker} for "
        self.reset()

    def reset(self) -> None:
        """Return to the scanning state and forget sample counts."""
        self._test_id: str | None = None
        self._buffer: list[str] = []
        self._samples: Counter[str] = Counter()

    @property
    def capturing(self) -> bool:
        return self._test_id is not None

    def feed(self, line: str) -> ResultBlock | None:
        """Consume one line; return a block when this line closes one."""
        line = line.rstrip("\r\n")
        stripped = line.strip()

        if stripped.startswith(self._start_prefix):
            if self.capturing:
                logger.warning(
                    "Result block for %s has no end marker, discarding it", self._test_id
                )
            self._test_id = stripped[len(self._start_prefix) :].strip()
            self._buffer = []
            return None

        if not self.capturing:
            return None

        if stripped.startswith(self._end_prefix):
            return self._finalize()

        self._buffer.append(line + "\n")
        return None

    def _finalize(self) -> ResultBlock | None:
        test_id = self._test_id or ""
        payload = "".join(self._buffer)
        self._test_id = None
        self._buffer = []

        if not payload.strip():
            logger.warning("Empty result block for %s, skipping", test_id)
            return None
        try:
            data = self.decoder(payload)
        except (ResultDecodeError, ValueError) as e:
            logger.warning("Failed to decode result block for %s: %s", test_id, e)
            return None

        self._samples[test_id] += 1
        return ResultBlock(
            test_id=test_id,
            sample=self._samples[test_id],
            payload=payload,
            data=data,
        )

    def finish(self) -> None:
        """Signal end of input; an open block is dropped."""
        if self.capturing:
            logger.warning(
                "Log ended inside the result block for %s, discarding it", self._test_id
            )
        self._test_id = None
        self._buffer = []

    def scan(self, lines: Iterable[str]) -> list[ResultBlock]:
        """Extract every block from ``lines``, starting from a fresh state."""
        self.reset()
        blocks = []
        for line in lines:
            block = self.feed(line)
            if block is not None:
                blocks.append(block)
        self.finish()
        return blocks

    def scan_text(self, text: str) -> list[ResultBlock]:
        """Extract every block from a complete log."""
        return self.scan(text.splitlines())


def stream_blocks(
    lines: Iterable[str],
    extractor: ResultBlockExtractor | None = None,
    echo: Callable[[str], None] | None = None,
) -> Iterator[ResultBlock]:
    """Yield blocks as their end marker arrives in a live log.

    Every raw line is passed to ``echo`` first, for progress display.
    """
    extractor = extractor or ResultBlockExtractor()
    extractor.reset()
    for line in lines:
        if echo is not None:
            echo(line)
        block = extractor.feed(line)
        if block is not None:
            yield block
    extractor.finish()
