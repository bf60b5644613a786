from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExtractionLimits:
    """
    Caps and thresholds for legacy .doc text extraction.

    Every scan in the extraction cascade is bounded by one of these values,
    so a single call always terminates on adversarial input.
    """

    # container; stream chains may exceed max_chain_sectors up to the
    # number of sectors their declared size needs
    max_chain_sectors: int = 1000
    max_directory_entries: int = 4096
    max_pieces: int = 100_000

    # per-run caps of the heuristic scanners
    null_run_max_bytes: int = 1000
    utf16_run_max_chars: int = 2000
    utf16_run_min_chars: int = 4
    marker_context_chars: int = 500
    paragraph_run_max_chars: int = 1000
    min_readable_run: int = 16

    # statistical scan
    min_text_byte_ratio: float = 0.01
    min_run_confidence: float = 6.5

    # candidates shorter than this count as "no text"
    min_candidate_length: int = 10


DEFAULT_EXTRACTION_LIMITS = ExtractionLimits()
