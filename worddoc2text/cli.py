from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

import worddoc2text
from worddoc2text.extractors.data_types import ExtractionInterface
from worddoc2text.extractors.ms_legacy.candidates import ExtractionCandidate
from worddoc2text.extractors.serialization import serialize_extraction


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="worddoc2text",
        description="Extract the text of a legacy Word .doc file and emit it to stdout (or JSON with --json).",
    )
    parser.add_argument(
        "path",
        type=Path,
        help="Path to the .doc file to extract.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit structured JSON instead of plain full text.",
    )
    parser.add_argument(
        "--candidates",
        action="store_true",
        help="List every extraction candidate with its source and score instead of the winner.",
    )
    return parser


def _serialize_results(results: list[ExtractionInterface]) -> dict | list[dict]:
    if len(results) == 1:
        return serialize_extraction(results[0])
    return [serialize_extraction(result) for result in results]


def _serialize_full_text(results: list[ExtractionInterface]) -> str:
    return "\n\n".join(result.get_full_text().rstrip() for result in results).rstrip()


def _format_candidates(candidates: list[ExtractionCandidate]) -> str:
    blocks = []
    for index, candidate in enumerate(candidates, start=1):
        header = (
            f"[{index}] {candidate.source.value} "
            f"score={candidate.quality_score:.1f} chars={len(candidate.text)}"
        )
        blocks.append(f"{header}\n{candidate.text}")
    return "\n\n".join(blocks)


def _emit_candidates(path: Path, as_json: bool) -> None:
    worddoc2text.get_extractor(str(path))
    candidates = worddoc2text.extract_candidates(path.read_bytes())
    if not candidates:
        raise worddoc2text.NoExtractableTextError(
            f"No extraction candidates for {path}"
        )
    if as_json:
        json.dump([serialize_extraction(c) for c in candidates], sys.stdout)
    else:
        sys.stdout.write(_format_candidates(candidates))
    sys.stdout.write("\n")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    try:
        args, unknown = parser.parse_known_args(argv)
    except SystemExit as exc:
        code = exc.code if isinstance(exc.code, int) else 1
        return code

    if unknown:
        unknown_str = " ".join(unknown)
        print(
            f"worddoc2text: warning: unsupported arguments: {unknown_str}",
            file=sys.stderr,
        )
        return 1

    try:
        if args.candidates:
            _emit_candidates(args.path, bool(args.json))
            return 0
        results = list(worddoc2text.read_file(args.path))
        if not results:
            raise RuntimeError(f"No extraction results for {args.path}")
        if args.json:
            json.dump(_serialize_results(results), sys.stdout)
            sys.stdout.write("\n")
        else:
            sys.stdout.write(_serialize_full_text(results))
            sys.stdout.write("\n")
        return 0
    except Exception as exc:
        print(f"worddoc2text: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
