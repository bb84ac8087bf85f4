"""
Record types shared by the validator, search, store and export layers.

Records are frozen dataclasses; list-valued cells are tuples. Each record
type knows the spreadsheet column that backs each of its fields so findings
and exports can talk in the column names users see in their sheets.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Union

ENTITY_TYPES = ("clients", "workers", "tasks")
ENTITY_SINGULAR = {"clients": "client", "workers": "worker", "tasks": "task"}
SEVERITIES = ("error", "warning")


# ══════════════════════════════════════════════════════════════════════════════
# ATTRIBUTE MAPS
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AttributeMap:
    values: dict[str, Any] = field(default_factory=dict)

    def to_cell(self) -> str:
        if not self.values:
            return ""
        return json.dumps(self.values, ensure_ascii=False, sort_keys=True)

    def to_json(self) -> dict[str, Any]:
        return dict(self.values)


@dataclass(frozen=True)
class InvalidAttributes:
    """Attribute text that did not decode to a JSON object. Kept verbatim."""

    raw: str

    def to_cell(self) -> str:
        return self.raw

    def to_json(self) -> str:
        return self.raw


Attributes = Union[AttributeMap, InvalidAttributes]


def parse_attributes(value: Any) -> Attributes:
    if isinstance(value, (AttributeMap, InvalidAttributes)):
        return value
    if value is None:
        return AttributeMap()
    if isinstance(value, float) and math.isnan(value):
        return AttributeMap()
    if isinstance(value, dict):
        return AttributeMap(dict(value))
    text = str(value).strip()
    if not text:
        return AttributeMap()
    try:
        parsed = json.loads(text)
    except ValueError:
        return InvalidAttributes(text)
    if not isinstance(parsed, dict):
        return InvalidAttributes(text)
    return AttributeMap(parsed)


# ══════════════════════════════════════════════════════════════════════════════
# ENTITIES
# ══════════════════════════════════════════════════════════════════════════════

CLIENT_COLUMNS = {
    "client_id": "ClientID",
    "name": "ClientName",
    "priority_level": "PriorityLevel",
    "requested_task_ids": "RequestedTaskIDs",
    "group_tag": "GroupTag",
    "location": "Location",
    "contact_info": "ContactInfo",
    "attributes": "AttributesJSON",
}

WORKER_COLUMNS = {
    "worker_id": "WorkerID",
    "name": "WorkerName",
    "skills": "Skills",
    "available_slots": "AvailableSlots",
    "max_load_per_phase": "MaxLoadPerPhase",
    "worker_group": "WorkerGroup",
    "qualification_level": "QualificationLevel",
    "location": "Location",
    "attributes": "AttributesJSON",
}

TASK_COLUMNS = {
    "task_id": "TaskID",
    "name": "TaskName",
    "category": "Category",
    "duration": "Duration",
    "required_skills": "RequiredSkills",
    "preferred_phases": "PreferredPhases",
    "max_concurrent": "MaxConcurrent",
    "priority_level": "PriorityLevel",
    "co_run_group_id": "CoRunGroupID",
    "attributes": "AttributesJSON",
}

ENTITY_COLUMNS = {
    "clients": CLIENT_COLUMNS,
    "workers": WORKER_COLUMNS,
    "tasks": TASK_COLUMNS,
}


def _json_value(value: Any) -> Any:
    if isinstance(value, (AttributeMap, InvalidAttributes)):
        return value.to_json()
    if isinstance(value, tuple):
        return list(value)
    return value


class _Record:
    entity = ""
    id_field = ""

    @property
    def record_id(self) -> str:
        return getattr(self, self.id_field)

    def to_row(self) -> dict[str, Any]:
        """Row keyed by spreadsheet column names, JSON-friendly values."""
        columns = ENTITY_COLUMNS[self.entity]
        return {column: _json_value(getattr(self, name)) for name, column in columns.items()}


@dataclass(frozen=True)
class Client(_Record):
    client_id: str = ""
    name: str = ""
    priority_level: int = 1
    requested_task_ids: tuple[str, ...] = ()
    group_tag: str = ""
    location: str = ""
    contact_info: str = ""
    attributes: Attributes = field(default_factory=AttributeMap)

    entity = "clients"
    id_field = "client_id"


@dataclass(frozen=True)
class Worker(_Record):
    worker_id: str = ""
    name: str = ""
    skills: tuple[str, ...] = ()
    available_slots: tuple[int, ...] = ()
    max_load_per_phase: int = 1
    worker_group: str = ""
    qualification_level: int | None = None
    location: str = ""
    attributes: Attributes = field(default_factory=AttributeMap)

    entity = "workers"
    id_field = "worker_id"


@dataclass(frozen=True)
class Task(_Record):
    task_id: str = ""
    name: str = ""
    category: str = ""
    duration: int = 1
    required_skills: tuple[str, ...] = ()
    preferred_phases: tuple[int, ...] = ()
    max_concurrent: int = 1
    priority_level: int | None = None
    co_run_group_id: str = ""
    attributes: Attributes = field(default_factory=AttributeMap)

    entity = "tasks"
    id_field = "task_id"


RECORD_TYPES = {"clients": Client, "workers": Worker, "tasks": Task}


def is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ══════════════════════════════════════════════════════════════════════════════
# FINDINGS
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Finding:
    id: str
    severity: str
    entity: str
    row_id: str
    message: str
    field: str | None = None
    suggestion: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == "error"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.severity,
            "entity": self.entity,
            "rowId": self.row_id,
            "field": self.field,
            "message": self.message,
            "suggestion": self.suggestion,
        }
