"""
Heuristic Text Recovery
=======================

Pattern based scanners that recover text from a Word stream (or a whole
file) without understanding its structure. They run after the structural
path, whether it succeeded or not, and each one contributes at most one
candidate to the selector.

Strategies, in run order:

    1. Null prefixed runs: a 0x00 byte followed by printable text, nulls
       inside the run are padding
    2. Printable runs: long stretches of printable 8-bit characters
    3. UTF-16 interleave: (printable byte, 0x00) pairs at any alignment
    4. Field markers: UTF-16 text on both sides of the field begin,
       separator and end codes (0x13, 0x14, 0x15) and the cell mark (0x07)
    5. Paragraph markers: UTF-16 text following a paragraph mark (0x000D)
    6. Frequency: printable runs weighted by a per-character confidence,
       skipped entirely when the buffer has too few common text bytes

Every raw run has to pass the strategy's ``TextValidityFilter``. Accepted
runs are cleaned, de-duplicated and joined with a blank line.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Callable, Iterator, List, Optional, Tuple

from worddoc2text.extractors.ms_legacy.byte_scanner import (
    iter_printable_runs,
    iter_utf16_runs,
    read_null_padded_run,
    read_utf16_run,
    read_utf16_run_backward,
)
from worddoc2text.extractors.ms_legacy.candidates import (
    ExtractionCandidate,
    StrategyKind,
)
from worddoc2text.extractors.ms_legacy.text_quality import (
    LENIENT_FILTER,
    STRICT_FILTER,
    TextValidityFilter,
    clean_segment,
    merge_segments,
)
from worddoc2text.extractors.util.scan_limits import (
    DEFAULT_EXTRACTION_LIMITS,
    ExtractionLimits,
)

logger = logging.getLogger(__name__)

NULL_RUN_MIN_CHARS = 5
MARKER_RUN_MIN_CHARS = 10
PARAGRAPH_RUN_MIN_CHARS = 20
FREQUENCY_RUN_MIN_CHARS = 10

_NULL_PREFIX = re.compile(rb"\x00[\x20-\x7e]")
_FIELD_MARKER = re.compile(rb"[\x07\x13\x14\x15]\x00")
_PARAGRAPH_MARK = re.compile(rb"\r\x00")
# A null is only padding when text follows it
_PADDED_TEXT_RUN = re.compile(rb"(?:[\x20-\x7e\t\r\n]|\x00(?=[^\x00]))+")

_TEXT_INDICATIVE_BYTES = b" etaoinsr"


class ExtractionStrategy(ABC):
    """
    One heuristic scanner.

    Subclasses yield raw text runs from ``find_runs``; ``attempt`` filters,
    cleans and merges them into a single candidate.
    """

    kind: StrategyKind
    validity_filter: TextValidityFilter = STRICT_FILTER

    @abstractmethod
    def find_runs(self, data: bytes, limits: ExtractionLimits) -> Iterator[str]:
        ...

    def attempt(
        self, data: bytes, limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS
    ) -> Optional[ExtractionCandidate]:
        """Return this strategy's candidate, or None when nothing passed the filter."""
        segments = [
            clean_segment(run)
            for run in self.find_runs(data, limits)
            if self.validity_filter.accepts(run)
        ]
        text = merge_segments(segments)
        if not text:
            return None
        return ExtractionCandidate.scored(text, self.kind)


class NullPrefixedRunStrategy(ExtractionStrategy):
    kind = StrategyKind.NULL_PREFIXED_RUN

    def find_runs(self, data: bytes, limits: ExtractionLimits) -> Iterator[str]:
        pos = 0
        while True:
            match = _NULL_PREFIX.search(data, pos)
            if match is None:
                return
            text, end = read_null_padded_run(
                data, match.start() + 1, limits.null_run_max_bytes
            )
            if len(text.strip()) > NULL_RUN_MIN_CHARS:
                yield text
            pos = max(end, match.start() + 2)


class PrintableRunStrategy(ExtractionStrategy):
    kind = StrategyKind.PRINTABLE_RUN

    def find_runs(self, data: bytes, limits: ExtractionLimits) -> Iterator[str]:
        for _, text in iter_printable_runs(data, limits.min_readable_run):
            yield text


class Utf16InterleaveStrategy(ExtractionStrategy):
    kind = StrategyKind.UTF16_INTERLEAVE
    validity_filter = LENIENT_FILTER

    def find_runs(self, data: bytes, limits: ExtractionLimits) -> Iterator[str]:
        for _, text in iter_utf16_runs(
            data, limits.utf16_run_min_chars, limits.utf16_run_max_chars
        ):
            yield text


class FieldMarkerStrategy(ExtractionStrategy):
    kind = StrategyKind.FIELD_MARKER
    validity_filter = LENIENT_FILTER

    def find_runs(self, data: bytes, limits: ExtractionLimits) -> Iterator[str]:
        for match in _FIELD_MARKER.finditer(data):
            before = read_utf16_run_backward(
                data, match.start(), limits.marker_context_chars
            )
            after = read_utf16_run(data, match.end(), limits.marker_context_chars)
            for text in (before, after):
                if len(text.strip()) > MARKER_RUN_MIN_CHARS:
                    yield text


class ParagraphMarkerStrategy(ExtractionStrategy):
    kind = StrategyKind.PARAGRAPH_MARKER

    def find_runs(self, data: bytes, limits: ExtractionLimits) -> Iterator[str]:
        consumed = 0
        for match in _PARAGRAPH_MARK.finditer(data):
            if match.start() < consumed:
                continue
            text = read_utf16_run(data, match.end(), limits.paragraph_run_max_chars)
            # marks inside an already consumed run are skipped
            consumed = match.end() + 2 * len(text)
            if len(text.strip()) > PARAGRAPH_RUN_MIN_CHARS:
                yield text


def _char_confidence(char: str) -> int:
    if char == " ":
        return 10
    if "a" <= char <= "z":
        return 8
    if "A" <= char <= "Z":
        return 7
    if "0" <= char <= "9":
        return 6
    if char in "\t\r\n":
        return 5
    if " " < char <= "~":
        return 5
    return 3


def text_byte_ratio(data: bytes) -> float:
    """Share of bytes that are a space or one of the letters e t a o i n s r."""
    if not data:
        return 0.0
    return sum(data.count(byte) for byte in _TEXT_INDICATIVE_BYTES) / len(data)


class FrequencyStrategy(ExtractionStrategy):
    kind = StrategyKind.FREQUENCY

    def find_runs(self, data: bytes, limits: ExtractionLimits) -> Iterator[str]:
        ratio = text_byte_ratio(data)
        if ratio < limits.min_text_byte_ratio:
            logger.debug(f"Text byte ratio {ratio:.4f} too low for a frequency scan")
            return

        for match in _PADDED_TEXT_RUN.finditer(data):
            text = match.group().replace(b"\x00", b"").decode("ascii")
            if len(text) <= FREQUENCY_RUN_MIN_CHARS:
                continue
            confidence = sum(_char_confidence(c) for c in text) / len(text)
            if confidence > limits.min_run_confidence:
                yield text


HEURISTIC_STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    NullPrefixedRunStrategy(),
    PrintableRunStrategy(),
    Utf16InterleaveStrategy(),
    FieldMarkerStrategy(),
    ParagraphMarkerStrategy(),
    FrequencyStrategy(),
)


def run_heuristics(
    data: bytes,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> List[ExtractionCandidate]:
    """
    Run every heuristic strategy in order and collect their candidates.

    ``should_cancel`` is polled before each strategy; once it returns True
    the remaining strategies are skipped and the candidates found so far
    are returned.
    """
    data = bytes(data)
    candidates: List[ExtractionCandidate] = []
    for strategy in HEURISTIC_STRATEGIES:
        if should_cancel is not None and should_cancel():
            logger.debug(f"Heuristic scan cancelled before {strategy.kind.value}")
            break
        candidate = strategy.attempt(data, limits)
        if candidate is None:
            logger.debug(f"Strategy {strategy.kind.value} found no text")
            continue
        logger.debug(
            f"Strategy {strategy.kind.value} found {len(candidate.text)} characters"
        )
        candidates.append(candidate)
    return candidates
