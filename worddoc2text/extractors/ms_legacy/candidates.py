"""
Extraction candidates and best-candidate selection.

Every extraction path (structural or heuristic) produces at most one
``ExtractionCandidate``. The selector ranks them by ``score_text`` and
returns a single winner. Ranking is a pure function of the candidate set.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List

from worddoc2text.exceptions import NoExtractableTextError
from worddoc2text.extractors.ms_legacy.text_quality import normalized_key

logger = logging.getLogger(__name__)

SCORE_LENGTH_CAP = 5000

_SENTENCE_MARK = re.compile(r"[.!?]")


class StrategyKind(Enum):
    """Where a candidate came from. Declaration order is run order."""

    PIECE_TABLE = "piece_table"
    TABLE_STREAM_PIECE_TABLE = "table_stream_piece_table"
    NULL_PREFIXED_RUN = "null_prefixed_run"
    PRINTABLE_RUN = "printable_run"
    UTF16_INTERLEAVE = "utf16_interleave"
    FIELD_MARKER = "field_marker"
    PARAGRAPH_MARKER = "paragraph_marker"
    FREQUENCY = "frequency"

    @property
    def is_structural(self) -> bool:
        return self in (
            StrategyKind.PIECE_TABLE,
            StrategyKind.TABLE_STREAM_PIECE_TABLE,
        )

    @property
    def order(self) -> int:
        return list(StrategyKind).index(self)


def score_text(text: str) -> float:
    """
    Rank text by how much it looks like prose.

    Sum of: length (capped at 5000), letters x 2, words longer than two
    characters x 10, sentence marks x 20, blank-line separated paragraphs
    x 5, and the share of letters and whitespace x 100.
    """
    if not text:
        return 0.0

    length = len(text)
    letters = sum(1 for c in text if c.isalpha())
    readable = sum(1 for c in text if c.isalpha() or c.isspace())
    words = sum(1 for word in text.split() if len(word) > 2)
    sentences = len(_SENTENCE_MARK.findall(text))
    paragraphs = len(text.split("\n\n"))

    return (
        min(length, SCORE_LENGTH_CAP)
        + letters * 2
        + words * 10
        + sentences * 20
        + paragraphs * 5
        + readable / length * 100
    )


@dataclass(frozen=True)
class ExtractionCandidate:
    text: str
    source: StrategyKind
    quality_score: float = 0.0

    @classmethod
    def scored(cls, text: str, source: StrategyKind) -> "ExtractionCandidate":
        return cls(text=text, source=source, quality_score=score_text(text))

    def rank_key(self):
        return (self.quality_score, self.source.is_structural, -self.source.order)


def deduplicate(candidates: Iterable[ExtractionCandidate]) -> List[ExtractionCandidate]:
    """Drop candidates whose normalized text was already seen; first one wins."""
    seen = set()
    unique: List[ExtractionCandidate] = []
    for candidate in candidates:
        key = normalized_key(candidate.text)
        if key in seen:
            logger.debug(f"Dropping duplicate candidate from {candidate.source.value}")
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def select_best(
    candidates: Iterable[ExtractionCandidate], min_length: int = 10
) -> ExtractionCandidate:
    """
    Return the highest ranked candidate.

    Candidates shorter than ``min_length`` characters are ignored. Ties on
    score go to structural candidates, then to the earlier strategy.

    Raises:
        NoExtractableTextError: No candidate is long enough.
    """
    viable = [c for c in candidates if len(c.text.strip()) >= min_length]
    if not viable:
        raise NoExtractableTextError("No extraction strategy produced usable text")

    best = max(viable, key=ExtractionCandidate.rank_key)
    logger.debug(
        f"Selected {best.source.value} candidate "
        f"(score {best.quality_score:.1f}, {len(viable)} viable)"
    )
    return best
