"""
Cell coercion shared by the importer, the editor UI and the text parsers.

Integer cells that do not parse are returned as their cleaned text so the
validator can report them; nothing here silently substitutes a default for
a value the user actually typed.
"""

from __future__ import annotations

import json
import math
import numbers
import re
from typing import Any

from roster_doctor.models import parse_attributes

SMART_QUOTES = {
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
}
SENTINEL_NULLS = {"", "na", "n/a", "none", "null", "nil", "nan"}
INT_RE = re.compile(r"^[+-]?\d+(?:\.0+)?$")
RANGE_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return isinstance(value, str) and value.strip().lower() in SENTINEL_NULLS


def clean_cell_text(value: Any) -> str:
    """Strip BOM, null bytes, line breaks and smart quotes."""
    if is_blank(value):
        return ""
    text = str(value).replace("\ufeff", "").replace("\x00", "")
    text = text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    for smart, straight in SMART_QUOTES.items():
        text = text.replace(smart, straight)
    return text.strip()


def parse_int(value: Any, default: Any = None) -> Any:
    if is_blank(value):
        return default
    if isinstance(value, bool):
        return clean_cell_text(value)
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        return int(value) if float(value).is_integer() else clean_cell_text(value)
    text = clean_cell_text(value)
    if INT_RE.match(text):
        return int(float(text))
    return text


def _split_cell(value: Any) -> list[Any]:
    if is_blank(value):
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    text = clean_cell_text(value)
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return parsed
        text = text.strip("[]")
    return [piece for piece in re.split(r"[,;]", text)]


def parse_list(value: Any) -> tuple[str, ...]:
    """JSON array or comma/semicolon list -> tuple of trimmed, non-empty strings."""
    items = (clean_cell_text(item) for item in _split_cell(value))
    return tuple(item for item in items if item)


def parse_int_list(value: Any) -> tuple[Any, ...]:
    """Like parse_list, but integer-looking entries become ints."""
    parsed = []
    for item in _split_cell(value):
        if is_blank(item):
            continue
        parsed.append(parse_int(item))
    return tuple(parsed)


def parse_phases(value: Any) -> tuple[Any, ...]:
    """Phase cells accept lists ("1,2,4"), JSON arrays and ranges ("1-3, 5").

    Each list piece may be a range. Pieces that are neither an integer nor an
    ascending range stay raw text for the validator.
    """
    parsed: list[Any] = []
    for item in _split_cell(value):
        if is_blank(item):
            continue
        if isinstance(item, str):
            match = RANGE_RE.match(clean_cell_text(item))
            if match:
                start, end = int(match.group(1)), int(match.group(2))
                if start <= end:
                    parsed.extend(range(start, end + 1))
                    continue
        parsed.append(parse_int(item))
    return tuple(parsed)


def unique_in_order(values: Any) -> list[Any]:
    seen: set = set()
    ordered = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def parse_phase_list(text: str) -> list[int]:
    """'1, 3-5' -> [1, 3, 4, 5]. Hyphenated pairs are inclusive ranges."""
    phases: list[int] = []
    for part in text.split(","):
        numbers = [int(piece) for piece in re.findall(r"\d+", part)]
        if not numbers:
            continue
        if "-" in part and len(numbers) >= 2:
            phases.extend(range(min(numbers), max(numbers) + 1))
        else:
            phases.extend(numbers)
    return unique_in_order(phases)


def parse_text(value: Any) -> str:
    return clean_cell_text(value)


def _int_or(default: Any):
    def parser(value: Any) -> Any:
        return parse_int(value, default)

    return parser


# attribute name -> cell parser; blank numeric cells take the record default
FIELD_PARSERS = {
    "clients": {
        "client_id": parse_text,
        "name": parse_text,
        "priority_level": _int_or(1),
        "requested_task_ids": parse_list,
        "group_tag": parse_text,
        "location": parse_text,
        "contact_info": parse_text,
        "attributes": parse_attributes,
    },
    "workers": {
        "worker_id": parse_text,
        "name": parse_text,
        "skills": parse_list,
        "available_slots": parse_int_list,
        "max_load_per_phase": _int_or(1),
        "worker_group": parse_text,
        "qualification_level": _int_or(None),
        "location": parse_text,
        "attributes": parse_attributes,
    },
    "tasks": {
        "task_id": parse_text,
        "name": parse_text,
        "category": parse_text,
        "duration": _int_or(1),
        "required_skills": parse_list,
        "preferred_phases": parse_phases,
        "max_concurrent": _int_or(1),
        "priority_level": _int_or(None),
        "co_run_group_id": parse_text,
        "attributes": parse_attributes,
    },
}


def coerce_field(entity: str, name: str, value: Any) -> Any:
    """Coerce one edited or imported cell into the record field's shape."""
    try:
        parser = FIELD_PARSERS[entity][name]
    except KeyError as exc:
        raise ValueError(f"Unknown field '{name}' for {entity}") from exc
    return parser(value)
