"""
Text validity checks and cleanup shared by all extraction paths.

Heuristic scanners produce many short runs that are really binary noise.
Each run has to pass a ``TextValidityFilter`` before it is kept, and kept
runs are cleaned with ``clean_segment`` and merged with ``merge_segments``.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

_NON_TEXT = re.compile(r"[^\x20-\x7e\t\n]")
_REPEATED_CHAR = re.compile(r"(.)\1{4,}", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")

# Word in-stream control characters
_WORD_CONTROL_REPLACEMENTS = {
    "\x07": "\t",  # cell / row mark
    "\x0b": "\n",  # vertical tab, manual line break
    "\x0c": "\n\n",  # page / section break
    "\x0d": "\n",  # paragraph mark
    "\x13": "",  # field begin
    "\x14": " ",  # field separator
    "\x15": "",  # field end
    "\x01": "",
    "\x08": "",
    "\x19": "",
    "\x1e": "",
    "\x1f": "",
    "\xa0": " ",
}


@dataclass(frozen=True)
class TextValidityFilter:
    """
    Decide whether a decoded run looks like human-readable text.

    A run passes when it is long enough, has a minimum share of ASCII
    letters, is not a degenerate repeat of a few characters and, for the
    strict variant, is made mostly of printable characters.
    """

    min_length: int
    min_letter_ratio: float
    min_printable_ratio: Optional[float] = None

    @staticmethod
    def min_distinct_chars(length: int) -> int:
        return max(3, min(length // 4, 10))

    def accepts(self, text: str) -> bool:
        text = (text or "").strip()
        length = len(text)
        if length < self.min_length:
            return False

        letters = sum(1 for c in text if c.isascii() and c.isalpha())
        if letters / length < self.min_letter_ratio:
            return False

        if len(set(text.lower())) < self.min_distinct_chars(length):
            return False

        if self.min_printable_ratio is not None:
            printable = sum(1 for c in text if " " <= c <= "~")
            if printable / length < self.min_printable_ratio:
                return False

        return True


STRICT_FILTER = TextValidityFilter(
    min_length=5, min_letter_ratio=0.4, min_printable_ratio=0.8
)
LENIENT_FILTER = TextValidityFilter(min_length=3, min_letter_ratio=0.25)


def clean_segment(text: str) -> str:
    """
    Clean one accepted run.

    Non-text characters become spaces, runs of five or more identical
    characters collapse to one, and all whitespace collapses to one space.
    """
    if not text:
        return ""
    text = _NON_TEXT.sub(" ", text)
    text = _REPEATED_CHAR.sub(r"\1", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def normalized_key(text: str) -> str:
    """Lower-cased, whitespace-collapsed form used for de-duplication."""
    return _WHITESPACE.sub(" ", text).strip().lower()


def merge_segments(segments: Iterable[str]) -> str:
    """Join segments with a blank line, dropping empty and duplicate ones."""
    seen = set()
    unique = []
    for segment in segments:
        key = normalized_key(segment)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(segment)
    return "\n\n".join(unique)


def normalize_newlines(text: str) -> str:
    """CRLF and CR become LF, three or more newlines become two, then strip."""
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def clean_word_text(text: str) -> str:
    """
    Replace Word control characters in decoded document text.

    Character Mappings:
        - \\x07 (cell marker) -> tab
        - \\x0b (vertical tab) -> newline
        - \\x0c (page break) -> double newline
        - \\x0d (carriage return) -> newline
        - \\x13 (field begin) -> removed
        - \\x14 (field separator) -> space
        - \\x15 (field end) -> removed
        - \\x01, \\x08, \\x19, \\x1e, \\x1f -> removed
        - \\xa0 (non-breaking space) -> regular space

    Spaces and tabs are collapsed per line and three or more newlines are
    reduced to a blank line.
    """
    if not text:
        return ""

    for old, new in _WORD_CONTROL_REPLACEMENTS.items():
        text = text.replace(old, new)

    text = re.sub(r"[\x00-\x08\x0e-\x1f\x7f�]", "", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()
