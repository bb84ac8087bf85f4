"""
loader.py: file importer for roster-doctor

Supports: .csv .tsv .txt .xlsx .xlsm .xls .json

Public API:
    results = load_entities("path/to/workers.csv")
    results[0].entity   -> "workers"
    results[0].records  -> [Worker(...), ...]

A workbook yields one result per sheet whose entity type can be detected
from its headers. A JSON file is either an array of row objects or a
`{"clients": [...], "workers": [...], "tasks": [...]}` document such as the
cleaned-data export, in which case one result per non-empty collection is
returned.

Raises:
    FileNotFoundError  if the file does not exist.
    ValueError         if the format is unsupported, the file is unreadable or
                       empty, or no entity type can be detected.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import chardet
import pandas as pd

from roster_doctor.models import ENTITY_TYPES, RECORD_TYPES
from roster_doctor.normalization import clean_cell_text, coerce_field, is_blank

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
JSON_FORMATS = {".json"}
ALL_FORMATS = TEXT_FORMATS | EXCEL_FORMATS | JSON_FORMATS

# Header fragments that identify a sheet. Checked in entity order; the first
# entity with any fragment contained in any header wins.
ENTITY_PATTERNS = {
    "clients": (
        "clientid", "client_id", "client id", "clientname", "client_name",
        "requestedtaskids", "requested_task_ids", "grouptag", "group_tag",
    ),
    "workers": (
        "workerid", "worker_id", "worker id", "workername", "worker_name",
        "availableslots", "available_slots", "maxloadperphase", "workergroup",
        "worker_group", "qualificationlevel",
    ),
    "tasks": (
        "taskid", "task_id", "task id", "taskname", "task_name", "category",
        "duration", "requiredskills", "required_skills", "preferredphases",
        "preferred_phases", "maxconcurrent", "max_concurrent",
    ),
}

# Field -> accepted header spellings, compared after stripping case, spaces,
# underscores and hyphens. Earlier spellings win.
HEADER_ALIASES = {
    "clients": {
        "client_id": ("clientid", "id"),
        "name": ("clientname", "name"),
        "priority_level": ("prioritylevel", "priority"),
        "requested_task_ids": ("requestedtaskids", "requestedtasks", "taskids"),
        "group_tag": ("grouptag", "group"),
        "location": ("location", "city"),
        "contact_info": ("contactinfo", "contact", "email"),
        "attributes": ("attributesjson", "attributes", "json"),
    },
    "workers": {
        "worker_id": ("workerid", "id"),
        "name": ("workername", "name"),
        "skills": ("skills", "skill", "abilities"),
        "available_slots": ("availableslots", "slots"),
        "max_load_per_phase": ("maxloadperphase", "maxload"),
        "worker_group": ("workergroup", "group"),
        "qualification_level": ("qualificationlevel", "level"),
        "location": ("location", "city"),
        "attributes": ("attributesjson", "attributes", "json"),
    },
    "tasks": {
        "task_id": ("taskid", "id"),
        "name": ("taskname", "name", "title"),
        "category": ("category", "type"),
        "duration": ("duration", "time", "hours"),
        "required_skills": ("requiredskills", "skills"),
        "preferred_phases": ("preferredphases", "phases"),
        "max_concurrent": ("maxconcurrent", "concurrent"),
        "priority_level": ("prioritylevel", "priority"),
        "co_run_group_id": ("corungroupid", "corungroup"),
        "attributes": ("attributesjson", "attributes", "json"),
    },
}


@dataclass
class LoadResult:
    entity: str
    records: list = field(default_factory=list)
    source: str = ""
    detected_format: str = ""
    sheet_name: Optional[str] = None
    column_map: dict[str, str] = field(default_factory=dict)
    unmapped_columns: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING + DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    return result.get("encoding") or "utf-8"


def decode_text(raw: bytes) -> str:
    """
    Decode line by line: UTF-8, then the chardet guess, then latin-1.
    Null bytes and a leading BOM are dropped.
    """
    preferred = detect_encoding(raw)
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred, "latin-1"):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def detect_delimiter(text: str) -> str:
    sample = "\n".join([line for line in text.splitlines() if line.strip()][:25])
    if not sample:
        return ","
    try:
        return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
    except csv.Error:
        return ","


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT READERS
# ══════════════════════════════════════════════════════════════════════════════

def _read_text(raw: bytes, suffix: str) -> list[tuple[Optional[str], pd.DataFrame]]:
    text = decode_text(raw)
    delimiter = "\t" if suffix == ".tsv" else detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            sep=sep,
            engine="python",
            skipinitialspace=True,
        )
    except (ValueError, csv.Error) as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc
    return [(None, df)]


def _read_excel(raw: bytes, suffix: str) -> list[tuple[Optional[str], pd.DataFrame]]:
    # .xls requires xlrd; give a clear error if missing.
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError as exc:
            raise ImportError(".xls files require xlrd; run: pip install xlrd") from exc

    engine = "xlrd" if suffix == ".xls" else "openpyxl"
    try:
        sheets = pd.read_excel(io.BytesIO(raw), sheet_name=None, dtype=str, engine=engine)
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc
    return [(name, df) for name, df in sheets.items()]


def _read_json(raw: bytes) -> list[tuple[Optional[str], pd.DataFrame]]:
    text = decode_text(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc}") from exc

    if isinstance(data, list):
        return [(None, pd.DataFrame.from_records(data))]
    if isinstance(data, dict):
        collections = [
            (entity, data[entity])
            for entity in ENTITY_TYPES
            if isinstance(data.get(entity), list) and data[entity]
        ]
        if collections:
            return [(entity, pd.DataFrame.from_records(rows)) for entity, rows in collections]
        list_keys = [key for key, value in data.items() if isinstance(value, list)]
        if list_keys:
            return [(list_keys[0], pd.DataFrame.from_records(data[list_keys[0]]))]
        return [(None, pd.DataFrame.from_records([data]))]
    raise ValueError(f"JSON root must be an array or object, got {type(data).__name__}")


def read_frames(raw: bytes, filename: str) -> list[tuple[Optional[str], pd.DataFrame]]:
    """Decode `raw` into (sheet name, DataFrame) pairs according to its suffix."""
    suffix = Path(filename).suffix.lower()
    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")
    if not raw.strip():
        raise ValueError(f"{filename} appears to be empty")
    if suffix in TEXT_FORMATS:
        return _read_text(raw, suffix)
    if suffix in EXCEL_FORMATS:
        return _read_excel(raw, suffix)
    return _read_json(raw)


# ══════════════════════════════════════════════════════════════════════════════
# ENTITY DETECTION + HEADER MAPPING
# ══════════════════════════════════════════════════════════════════════════════

def _compact(header: Any) -> str:
    return re.sub(r"[\s_\-]+", "", str(header).strip().lower())


def detect_entity_type(headers: list[Any]) -> Optional[str]:
    lowered = [str(header).strip().lower() for header in headers]
    for entity in ENTITY_TYPES:
        patterns = ENTITY_PATTERNS[entity]
        if any(pattern in header for pattern in patterns for header in lowered):
            return entity
    return None


def resolve_columns(headers: list[Any], entity: str) -> dict[str, str]:
    """Map record field names to the DataFrame columns that feed them."""
    by_compact: dict[str, str] = {}
    for header in headers:
        by_compact.setdefault(_compact(header), header)

    claimed: set[str] = set()
    column_map: dict[str, str] = {}
    for name, aliases in HEADER_ALIASES[entity].items():
        for alias in aliases:
            header = by_compact.get(alias)
            if header is not None and header not in claimed:
                column_map[name] = header
                claimed.add(header)
                break
    return column_map


def records_from_dataframe(df: pd.DataFrame, entity: str, column_map: dict[str, str] | None = None) -> list:
    record_type = RECORD_TYPES[entity]
    if column_map is None:
        column_map = resolve_columns(list(df.columns), entity)

    records = []
    for row in df.to_dict(orient="records"):
        if all(is_blank(value) for value in row.values()):
            continue
        values = {
            name: coerce_field(entity, name, row.get(column))
            for name, column in column_map.items()
        }
        records.append(record_type(**values))
    return records


def load_frame(
    df: pd.DataFrame,
    *,
    source: str,
    detected_format: str,
    sheet_name: Optional[str] = None,
    entity: Optional[str] = None,
) -> LoadResult:
    df = df.rename(columns=lambda column: clean_cell_text(column))
    headers = list(df.columns)
    hint = sheet_name.lower() if sheet_name and sheet_name.lower() in ENTITY_TYPES else None
    entity = entity or hint or detect_entity_type(headers)
    if entity is None:
        raise ValueError("Could not determine data type from file headers")
    if entity not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity type '{entity}'. Expected one of: {', '.join(ENTITY_TYPES)}")

    column_map = resolve_columns(headers, entity)
    if not column_map:
        raise ValueError(f"No {entity} columns recognised in headers: {headers}")

    mapped = set(column_map.values())
    unmapped = [str(header) for header in headers if header not in mapped]
    warnings = []
    if unmapped:
        warnings.append(f"Ignored unrecognised columns: {', '.join(unmapped)}")

    records = records_from_dataframe(df, entity, column_map)
    logger.info("Loaded %d %s from %s%s", len(records), entity, source, f" [{sheet_name}]" if sheet_name else "")
    return LoadResult(
        entity=entity,
        records=records,
        source=source,
        detected_format=detected_format,
        sheet_name=sheet_name,
        column_map=column_map,
        unmapped_columns=unmapped,
        warnings=warnings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_bytes(raw: bytes, filename: str, entity: Optional[str] = None) -> list[LoadResult]:
    """
    Import entity records from the contents of an uploaded or downloaded file.

    Sheets whose type cannot be detected are skipped with a warning when
    other sheets load; a file with no detectable sheet raises ValueError.
    """
    detected_format = Path(filename).suffix.lower().lstrip(".")
    results: list[LoadResult] = []
    skipped: list[str] = []
    frames = read_frames(raw, filename)

    for sheet_name, df in frames:
        if df.empty and len(df.columns) == 0:
            skipped.append(f"{sheet_name or filename}: empty")
            continue
        try:
            results.append(
                load_frame(
                    df,
                    source=filename,
                    detected_format=detected_format,
                    sheet_name=sheet_name,
                    entity=entity,
                )
            )
        except ValueError as exc:
            if len(frames) == 1:
                raise
            skipped.append(f"{sheet_name}: {exc}")

    if not results:
        detail = "; ".join(skipped) if skipped else "no rows"
        raise ValueError(f"No client, worker or task data found in {filename} ({detail})")
    if skipped:
        results[0].warnings.append(f"Skipped sheets: {'; '.join(skipped)}")
        logger.warning("Skipped sheets in %s: %s", filename, "; ".join(skipped))
    return results


def load_entities(path: "str | Path", entity: Optional[str] = None) -> list[LoadResult]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return load_bytes(path.read_bytes(), path.name, entity=entity)
