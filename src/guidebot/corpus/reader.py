"""Parse the line-delimited JSON report corpus into report records."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from guidebot.errors import CorpusParseError, CorpusSourceError

LOGGER = logging.getLogger(__name__)

TEXT_FIELDS: tuple[str, ...] = ("ContentText_DEID", "ContentText", "text")
ID_FIELDS: tuple[str, ...] = ("ReportID", "reportId", "report_id", "id")


@dataclass(slots=True)
class ReportRecord:
    id: str
    text: str
    line_number: int


@dataclass(slots=True)
class CorpusReadResult:
    records: List[ReportRecord] = field(default_factory=list)
    skipped_lines: int = 0


def _first_text(payload: dict) -> Optional[str]:
    for name in TEXT_FIELDS:
        value = payload.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _first_id(payload: dict) -> Optional[str]:
    for name in ID_FIELDS:
        value = payload.get(name)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    return None


def parse_report_line(
    line: str,
    *,
    line_number: int,
    position: int,
    require_report_id: bool = False,
) -> ReportRecord:
    """Turn one corpus line into a :class:`ReportRecord`.

    ``position`` is the zero-based index of the line among non-blank lines and
    becomes the report id when the record has no explicit identifier.
    """

    try:
        payload = json.loads(line)
    except ValueError as error:
        raise CorpusParseError(f"Line {line_number} is not valid JSON", line_number=line_number, cause=error) from error

    if not isinstance(payload, dict):
        raise CorpusParseError(f"Line {line_number} is not a JSON object", line_number=line_number)

    text = _first_text(payload)
    if text is None:
        raise CorpusParseError(
            f"Line {line_number} has no report text in any of {', '.join(TEXT_FIELDS)}",
            line_number=line_number,
        )

    report_id = _first_id(payload)
    if report_id is None:
        if require_report_id:
            raise CorpusParseError(f"Line {line_number} has no report id", line_number=line_number)
        report_id = str(position)

    return ReportRecord(id=report_id, text=text, line_number=line_number)


def parse_report_lines(lines: Iterable[str], *, require_report_id: bool = False) -> CorpusReadResult:
    """Parse corpus lines, skipping (and logging) every unusable record."""

    result = CorpusReadResult()
    seen_ids: set[str] = set()
    position = 0

    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line:
            continue

        try:
            record = parse_report_line(
                line,
                line_number=line_number,
                position=position,
                require_report_id=require_report_id,
            )
        except CorpusParseError as error:
            LOGGER.warning("Skipping corpus line %d: %s", line_number, error)
            result.skipped_lines += 1
            continue
        finally:
            position += 1

        if record.id in seen_ids:
            LOGGER.warning("Skipping corpus line %d: duplicate report id %s", line_number, record.id)
            result.skipped_lines += 1
            continue

        seen_ids.add(record.id)
        result.records.append(record)

    return result


def read_corpus(path: Path, *, require_report_id: bool = False) -> CorpusReadResult:
    """Read and parse the corpus file at ``path``."""

    if not path.is_file():
        raise CorpusSourceError(f"Reports file not found: {path}")

    LOGGER.info("Loading reports from %s", path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            result = parse_report_lines(handle, require_report_id=require_report_id)
    except (OSError, UnicodeDecodeError) as error:
        raise CorpusSourceError(f"Failed to read reports file {path}", cause=error) from error

    LOGGER.info(
        "Parsed %d reports from %s (%d lines skipped)",
        len(result.records),
        path,
        result.skipped_lines,
    )
    return result
