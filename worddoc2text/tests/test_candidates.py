import unittest

import pytest

from worddoc2text.exceptions import NoExtractableTextError
from worddoc2text.extractors.ms_legacy.candidates import (
    ExtractionCandidate,
    StrategyKind,
    deduplicate,
    score_text,
    select_best,
)

tc = unittest.TestCase()


def test_strategy_kind_properties():
    tc.assertTrue(StrategyKind.PIECE_TABLE.is_structural)
    tc.assertTrue(StrategyKind.TABLE_STREAM_PIECE_TABLE.is_structural)
    tc.assertFalse(StrategyKind.PRINTABLE_RUN.is_structural)
    tc.assertEqual(0, StrategyKind.PIECE_TABLE.order)
    tc.assertLess(StrategyKind.NULL_PREFIXED_RUN.order, StrategyKind.FREQUENCY.order)


def test_score_text():
    # 13 chars, 10 letters, 2 words, 1 sentence mark, 1 paragraph,
    # 11 letters or whitespace
    expected = 13 + 10 * 2 + 2 * 10 + 1 * 20 + 1 * 5 + 11 / 13 * 100
    tc.assertAlmostEqual(expected, score_text("Hello, world."))
    tc.assertEqual(0.0, score_text(""))


def test_score_text_caps_length_bonus():
    long_text = "x" * 6000
    tc.assertAlmostEqual(5000 + 6000 * 2 + 1 * 10 + 5 + 100, score_text(long_text))


def test_score_prefers_prose_over_noise():
    prose = "The board met on Friday. It approved the budget."
    noise = "x1#x2#x3#x4#x5#x6#x7#x8#x9#x0#x1#x2#x3#x4#x5#x6#"
    tc.assertGreater(score_text(prose), score_text(noise))


def test_select_best_picks_highest_score():
    low = ExtractionCandidate.scored("some words here", StrategyKind.PRINTABLE_RUN)
    high = ExtractionCandidate.scored(
        "Many more words are here. And a second sentence.", StrategyKind.FREQUENCY
    )

    for _ in range(10):
        tc.assertIs(high, select_best([low, high]))
        tc.assertIs(high, select_best([high, low]))


def test_select_best_prefers_structural_on_tie():
    heuristic = ExtractionCandidate("Hello, world.", StrategyKind.NULL_PREFIXED_RUN, 50.0)
    structural = ExtractionCandidate("Hello, world!", StrategyKind.PIECE_TABLE, 50.0)

    tc.assertIs(structural, select_best([heuristic, structural]))
    tc.assertIs(structural, select_best([structural, heuristic]))


def test_select_best_prefers_earlier_strategy_on_tie():
    first = ExtractionCandidate("Alpha text one", StrategyKind.NULL_PREFIXED_RUN, 10.0)
    later = ExtractionCandidate("Alpha text two", StrategyKind.FREQUENCY, 10.0)

    tc.assertIs(first, select_best([later, first]))


def test_select_best_ignores_short_candidates():
    short = ExtractionCandidate("Tiny", StrategyKind.PIECE_TABLE, 1000.0)
    longer = ExtractionCandidate("Long enough text", StrategyKind.FREQUENCY, 1.0)

    tc.assertIs(longer, select_best([short, longer]))

    with pytest.raises(NoExtractableTextError):
        select_best([short])

    with pytest.raises(NoExtractableTextError):
        select_best([])


def test_deduplicate_keeps_first_occurrence():
    structural = ExtractionCandidate.scored("Hello  World", StrategyKind.PIECE_TABLE)
    duplicate = ExtractionCandidate.scored("hello world", StrategyKind.PRINTABLE_RUN)
    other = ExtractionCandidate.scored("Something else", StrategyKind.FREQUENCY)

    tc.assertListEqual(
        [structural, other], deduplicate([structural, duplicate, other])
    )
