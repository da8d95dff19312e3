"""
Answer parsing rules.

Each catalog question carries an extractor: a callable that turns the raw
answer text into `{field_name: value}`. Extractors raise
ExtractionFailure when the answer does not contain what the question
asks for (e.g. no number in "things are kind of slow, I guess"); the
session store records that as a gap and keeps the answer.

The `parse_*` helpers return None instead of raising and can be used on
their own.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from assessment.exceptions import ExtractionFailure

Extractor = Callable[[str], dict[str, Any]]

_NUMBER_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*([kKmM](?![a-zA-Z]))?")
_DURATION_UNITS = {
    "day": 1, "dia": 1,
    "week": 7, "semana": 7,
    "month": 30, "mes": 30, "mês": 30,
    "year": 365, "ano": 365,
}


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------

def _to_float(raw: str) -> float:
    # "1,200" -> 1200 ; "2,5" -> 2.5 ; "1.5" -> 1.5
    if "," in raw and "." not in raw:
        head, _, tail = raw.partition(",")
        raw = head + tail if len(tail) == 3 else f"{head}.{tail}"
    return float(raw.replace(",", ""))


def parse_number(answer: str) -> Optional[float]:
    """First number in the answer, honouring k/M suffixes ("50k" -> 50000)."""
    cleaned = re.sub(r"(?<=\d),(?=\d{3}\b)", "", answer)
    match = _NUMBER_RE.search(cleaned)
    if not match:
        return None
    value = _to_float(match.group(1))
    suffix = (match.group(2) or "").lower()
    if suffix == "k":
        value *= 1_000
    elif suffix == "m":
        value *= 1_000_000
    return value


def parse_int(answer: str) -> Optional[int]:
    """Parse a single integer from an answer string."""
    value = parse_number(answer)
    return int(round(value)) if value is not None else None


def parse_percent(answer: str) -> Optional[float]:
    """Percentage as a number in 0..100 ("12%" -> 12.0, "0.3" -> 30.0)."""
    match = re.search(r"(\d+(?:[.,]\d+)?)\s*%?", answer)
    if not match:
        return None
    value = _to_float(match.group(1))
    if "%" not in answer and 0 < value < 1:
        value *= 100
    return value if 0 <= value <= 100 else None


def parse_money(answer: str) -> Optional[float]:
    """Amount in base units: "$50k" -> 50000, "R$ 2M" -> 2000000."""
    cleaned = re.sub(r"(R\$|US\$|[$€£])", "", answer)
    return parse_number(cleaned)


def parse_year(answer: str) -> Optional[int]:
    match = re.search(r"\b(1[89]\d{2}|20\d{2})\b", answer)
    if not match:
        return None
    year = int(match.group(1))
    return year if year <= datetime.now(timezone.utc).year else None


def parse_duration_days(answer: str) -> Optional[int]:
    """Duration in days: "2 weeks" -> 14, "3 months" -> 90, "45" -> 45."""
    match = re.search(r"(\d+(?:[.,]\d+)?)\s*([a-zA-Zçê]+)?", answer.lower())
    if not match:
        return None
    value = _to_float(match.group(1))
    unit = (match.group(2) or "day").rstrip("s")
    for prefix, days in _DURATION_UNITS.items():
        if unit.startswith(prefix):
            return int(round(value * days))
    return int(round(value))


def parse_list(answer: str) -> list[str]:
    """
    Split a multi-value answer.

    Handles comma, semicolon and newline separators, plus bullets
    and numbering.
    """
    answer = re.sub(r"^\s*[-*•]\s*", "", answer, flags=re.MULTILINE)
    answer = re.sub(r"^\s*\d+[.)]\s*", "", answer, flags=re.MULTILINE)

    if "\n" in answer:
        items = answer.split("\n")
    elif ";" in answer:
        items = answer.split(";")
    else:
        items = answer.split(",")

    return [item.strip() for item in items if item.strip()]


def parse_yes_no(answer: str) -> Optional[bool]:
    lowered = answer.strip().lower()
    if re.match(r"^(yes|y|sim|true)\b", lowered):
        return True
    if re.match(r"^(no|n|não|nao|false)\b", lowered):
        return False
    return None


# ---------------------------------------------------------------------------
# Extractor factories
# ---------------------------------------------------------------------------

def _fail(field: str, answer: str, what: str) -> ExtractionFailure:
    return ExtractionFailure(
        f"Could not extract {what} for {field}",
        field=field,
        raw_answer=answer,
    )


def text_field(*fields: str, min_length: int = 2) -> Extractor:
    """Store the stripped answer text in every target field."""
    def extract(answer: str) -> dict[str, Any]:
        text = answer.strip()
        if len(text) < min_length:
            raise _fail(fields[0], answer, "text")
        return {f: text for f in fields}
    return extract


def number_field(
    *fields: str,
    parser: Callable[[str], Optional[float | int]] = parse_number,
    what: str = "a number",
) -> Extractor:
    """Parse a quantity with `parser`; fails when the answer has none."""
    def extract(answer: str) -> dict[str, Any]:
        value = parser(answer)
        if value is None:
            raise _fail(fields[0], answer, what)
        return {f: value for f in fields}
    return extract


def int_field(*fields: str) -> Extractor:
    return number_field(*fields, parser=parse_int, what="an integer")


def percent_field(field: str) -> Extractor:
    return number_field(field, parser=parse_percent, what="a percentage")


def money_field(field: str) -> Extractor:
    return number_field(field, parser=parse_money, what="an amount")


def year_field(field: str) -> Extractor:
    return number_field(field, parser=parse_year, what="a year")


def duration_field(field: str) -> Extractor:
    return number_field(field, parser=parse_duration_days, what="a duration")


def choice_field(
    field: str,
    mapping: tuple[tuple[str, Any], ...],
    default: Any = None,
) -> Extractor:
    """
    Map an answer to a value by case-insensitive substring match.

    `mapping` is checked in order; the first key contained in the answer
    wins. Without a match the `default` is used, or the extraction fails
    when no default is given.
    """
    def extract(answer: str) -> dict[str, Any]:
        lowered = answer.lower()
        for needle, value in mapping:
            if needle.lower() in lowered:
                return {field: value}
        if default is not None:
            return {field: default}
        raise _fail(field, answer, "a known option")
    return extract


def flag_field(field: str) -> Extractor:
    """Yes/no answers; the stored flag is True for "yes"."""
    def extract(answer: str) -> dict[str, Any]:
        value = parse_yes_no(answer)
        if value is None:
            raise _fail(field, answer, "yes or no")
        return {field: value}
    return extract


def list_field(field: str, min_items: int = 1) -> Extractor:
    def extract(answer: str) -> dict[str, Any]:
        items = parse_list(answer)
        if len(items) < min_items:
            raise _fail(field, answer, "a list")
        return {field: items}
    return extract


def known_metric_field(known_field: str, value_field: str) -> Extractor:
    """
    "Do you know your X?" style answers.

    A negative answer records `known_field = False`; a positive one also
    tries to pull the value. A bare number counts as known.
    """
    def extract(answer: str) -> dict[str, Any]:
        flag = parse_yes_no(answer)
        value = parse_money(answer)
        if flag is False:
            return {known_field: False}
        if flag is True or value is not None:
            result: dict[str, Any] = {known_field: True}
            if value is not None:
                result[value_field] = value
            return result
        raise _fail(known_field, answer, "yes, no or a value")
    return extract
