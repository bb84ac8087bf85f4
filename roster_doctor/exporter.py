"""
roster-doctor exporter.py

Turns a store snapshot into downloadable artefacts:

    cleaned-data.json   the three sheets plus export metadata
    rules.json          business rules plus priority weights
    <entity>.csv        one flat CSV per non-empty sheet
    roster.xlsx         one styled worksheet per sheet plus a Validation sheet

Export is refused with `ExportBlockedError` while any finding has severity
`error`. Warnings never block.
"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any, Sequence

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from roster_doctor.contracts import build_contract, utc_now_iso
from roster_doctor.models import ENTITY_COLUMNS, ENTITY_TYPES, Finding
from roster_doctor.store import Snapshot

logger = logging.getLogger(__name__)

CLEANED_DATA_NAME = "cleaned-data.json"
RULES_NAME = "rules.json"
WORKBOOK_NAME = "roster.xlsx"
LIST_SEPARATOR = "; "

SHEET_COLORS = {
    "clients": "1565C0",
    "workers": "4CAF50",
    "tasks": "8E24AA",
    "Validation": "E53935",
}
FINDING_COLUMNS = ["id", "type", "entity", "rowId", "field", "message", "suggestion"]


class ExportBlockedError(ValueError):
    def __init__(self, findings: Sequence[Finding]) -> None:
        self.findings = [finding for finding in findings if finding.is_error]
        super().__init__(
            f"Export blocked: {len(self.findings)} validation error(s) must be fixed first"
        )


def validation_status(findings: Sequence[Finding]) -> str:
    if any(finding.is_error for finding in findings):
        return "errors"
    if findings:
        return "warnings"
    return "clean"


def ensure_exportable(snapshot: Snapshot) -> None:
    if any(finding.is_error for finding in snapshot.findings):
        raise ExportBlockedError(snapshot.findings)


# ══════════════════════════════════════════════════════════════════════════════
# PAYLOADS
# ══════════════════════════════════════════════════════════════════════════════

def cleaned_data_payload(snapshot: Snapshot) -> dict[str, Any]:
    payload: dict[str, Any] = {"contract": build_contract("roster_doctor.cleaned_data")}
    for entity in ENTITY_TYPES:
        payload[entity] = [record.to_row() for record in snapshot.records(entity)]
    payload["metadata"] = {
        "exportDate": utc_now_iso(),
        "totalRecords": snapshot.total_records,
        "validationStatus": validation_status(snapshot.findings),
    }
    return payload


def rules_payload(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "contract": build_contract("roster_doctor.rules_config"),
        "businessRules": [rule.to_dict() for rule in snapshot.rules],
        "prioritySettings": snapshot.priorities.to_dict(),
        "version": "1.0",
        "createdAt": utc_now_iso(),
    }


def build_export(snapshot: Snapshot) -> dict[str, dict[str, Any]]:
    """Cleaned-data and rules documents; raises ExportBlockedError on errors."""
    ensure_exportable(snapshot)
    return {
        "cleaned_data": cleaned_data_payload(snapshot),
        "rules": rules_payload(snapshot),
    }


# ══════════════════════════════════════════════════════════════════════════════
# FLAT TABLES
# ══════════════════════════════════════════════════════════════════════════════

def flatten_cell(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return LIST_SEPARATOR.join(str(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, sort_keys=True) if value else ""
    if value is None:
        return ""
    return value


def entity_frame(snapshot: Snapshot, entity: str) -> pd.DataFrame:
    columns = list(ENTITY_COLUMNS[entity].values())
    rows = [
        {column: flatten_cell(value) for column, value in record.to_row().items()}
        for record in snapshot.records(entity)
    ]
    return pd.DataFrame(rows, columns=columns)


def findings_frame(findings: Sequence[Finding]) -> pd.DataFrame:
    return pd.DataFrame([finding.to_dict() for finding in findings], columns=FINDING_COLUMNS).fillna("")


def csv_bytes(snapshot: Snapshot, entity: str) -> bytes:
    return entity_frame(snapshot, entity).to_csv(index=False).encode("utf-8")


# ══════════════════════════════════════════════════════════════════════════════
# WORKBOOK
# ══════════════════════════════════════════════════════════════════════════════

def _style_sheet(ws, header_color: str, max_width: int = 60) -> None:
    """Bold coloured header, frozen first row, widths fitted to the content."""
    fill = PatternFill("solid", fgColor=header_color)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"
    for index, column in enumerate(ws.iter_cols(values_only=True), start=1):
        longest = max((len(str(value)) for value in column if value is not None), default=0)
        ws.column_dimensions[get_column_letter(index)].width = max(10, min(max_width, longest + 2))


def _append_frame(ws, df: pd.DataFrame) -> None:
    ws.append([str(column) for column in df.columns])
    for row in df.itertuples(index=False):
        ws.append(list(row))


def workbook_bytes(snapshot: Snapshot) -> bytes:
    ensure_exportable(snapshot)
    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    for entity in ENTITY_TYPES:
        ws = wb.create_sheet(entity)
        _append_frame(ws, entity_frame(snapshot, entity))
        _style_sheet(ws, SHEET_COLORS[entity])

    ws = wb.create_sheet("Validation")
    _append_frame(ws, findings_frame(snapshot.findings))
    _style_sheet(ws, SHEET_COLORS["Validation"])
    for cell in ws["F"][1:]:
        cell.alignment = Alignment(wrap_text=True, vertical="top")

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


# ══════════════════════════════════════════════════════════════════════════════
# FILES
# ══════════════════════════════════════════════════════════════════════════════

def json_text(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def write_export(snapshot: Snapshot, out_dir: Path, formats: Sequence[str] = ("json", "csv", "xlsx")) -> list[Path]:
    """
    Write the requested artefacts into `out_dir` and return their paths.

    JSON documents are always written; "csv" and "xlsx" add the flat
    tables. Nothing is written when the snapshot has errors.
    """
    bundle = build_export(snapshot)
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    cleaned_path = out_dir / CLEANED_DATA_NAME
    cleaned_path.write_text(json_text(bundle["cleaned_data"]), encoding="utf-8")
    rules_path = out_dir / RULES_NAME
    rules_path.write_text(json_text(bundle["rules"]), encoding="utf-8")
    written.extend([cleaned_path, rules_path])

    if "csv" in formats:
        for entity in ENTITY_TYPES:
            if not snapshot.records(entity):
                continue
            path = out_dir / f"{entity}.csv"
            path.write_bytes(csv_bytes(snapshot, entity))
            written.append(path)

    if "xlsx" in formats:
        path = out_dir / WORKBOOK_NAME
        path.write_bytes(workbook_bytes(snapshot))
        written.append(path)

    logger.info("Wrote %d export files to %s", len(written), out_dir)
    return written
