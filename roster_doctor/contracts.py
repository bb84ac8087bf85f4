"""Shared versioned contracts for roster-doctor outputs."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

CONTRACT_VERSIONS = {
    "roster_doctor.validate": "1.0.0",
    "roster_doctor.search": "1.0.0",
    "roster_doctor.suggest": "1.0.0",
    "roster_doctor.cleaned_data": "1.0.0",
    "roster_doctor.rules_config": "1.0.0",
    "roster_doctor.export_summary": "1.0.0",
}
OUTPUT_STAMP_ENV = "ROSTER_DOCTOR_OUTPUT_STAMP"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    input_paths: list[Path],
    status: str = "ok",
    output_paths: list[Path] | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "roster-doctor",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_files": [str(path) for path in input_paths],
        "output_files": [str(path) for path in output_paths or []],
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
