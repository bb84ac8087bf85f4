"""
roster-doctor validator.py

Structural checks for client, worker and task sheets, plus `validate_data`,
the single entry point that runs the structural pass for every collection
followed by the cross-entity pass.

Public API:
    findings = validate_data(clients, workers, tasks)
    summary  = summarize_findings(findings)

Findings are recomputed from scratch on every call. The validator reports
bad cell values as findings and never raises for them.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from typing import Any, Iterable, Sequence

from roster_doctor.config import DEFAULT_POLICY, ValidationPolicy
from roster_doctor.cross_entity import validate_cross_entity
from roster_doctor.issue_taxonomy import build_finding
from roster_doctor.models import (
    ENTITY_SINGULAR,
    ENTITY_TYPES,
    AttributeMap,
    Client,
    Finding,
    Task,
    Worker,
    is_int,
)


def clean_id(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def row_id_for(record_id: Any, index: int) -> str:
    return clean_id(record_id) or f"row_{index}"


def out_of_range(value: Any, bounds: tuple[int, int]) -> bool:
    low, high = bounds
    return not is_int(value) or not low <= value <= high


def below_minimum(value: Any, minimum: int) -> bool:
    return not is_int(value) or value < minimum


def attributes_invalid(value: Any) -> bool:
    if value is None:
        return False
    return not isinstance(value, (AttributeMap, dict))


class _FindingSink:
    """Collects findings for one entity sheet with ids `<entity>_<index>_<kind>`."""

    def __init__(self, entity: str) -> None:
        self.entity = entity
        self.prefix = ENTITY_SINGULAR[entity]
        self.findings: list[Finding] = []

    def add(
        self,
        kind: str,
        index: int,
        row_id: str,
        message: str,
        field: str | None = None,
        **hint_values: Any,
    ) -> None:
        hint_values.setdefault("label", self.prefix)
        self.findings.append(
            build_finding(
                kind,
                finding_id=f"{self.prefix}_{index}_{kind}",
                entity=self.entity,
                row_id=row_id,
                message=message,
                field=field,
                hint_values=hint_values,
            )
        )


def _check_identity(
    sink: _FindingSink,
    index: int,
    record_id: Any,
    name: Any,
    seen_ids: set[str],
    id_column: str,
    name_column: str,
) -> str:
    label = sink.prefix.capitalize()
    row_id = row_id_for(record_id, index)
    cleaned = clean_id(record_id)

    if not cleaned:
        sink.add("no_id", index, row_id, f"{id_column} is required", id_column)
    if not clean_id(name):
        sink.add("no_name", index, row_id, f"{label} name is required", name_column)

    if cleaned and cleaned in seen_ids:
        sink.add("duplicate_id", index, row_id, f"Duplicate {id_column}: {cleaned}", id_column)
    elif cleaned:
        seen_ids.add(cleaned)
    return row_id


def validate_clients(
    clients: Sequence[Client],
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> list[Finding]:
    sink = _FindingSink("clients")
    seen_ids: set[str] = set()
    low, high = policy.client_priority_range

    for index, client in enumerate(clients):
        row_id = _check_identity(
            sink, index, client.client_id, client.name, seen_ids, "ClientID", "ClientName"
        )

        if out_of_range(client.priority_level, policy.client_priority_range):
            sink.add(
                "invalid_priority",
                index,
                row_id,
                f"PriorityLevel must be between {low} and {high}",
                "PriorityLevel",
                low=low,
                high=high,
            )

        if attributes_invalid(client.attributes):
            sink.add("invalid_json", index, row_id, "Invalid JSON format in AttributesJSON", "AttributesJSON")

    return sink.findings


def validate_workers(
    workers: Sequence[Worker],
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> list[Finding]:
    sink = _FindingSink("workers")
    seen_ids: set[str] = set()

    for index, worker in enumerate(workers):
        row_id = _check_identity(
            sink, index, worker.worker_id, worker.name, seen_ids, "WorkerID", "WorkerName"
        )

        slots = worker.available_slots
        slots_are_list = isinstance(slots, (list, tuple))
        if not slots_are_list or len(slots) == 0:
            sink.add(
                "no_slots",
                index,
                row_id,
                "AvailableSlots must be a non-empty array of numbers",
                "AvailableSlots",
            )
        elif any(not is_int(slot) for slot in slots):
            sink.add("invalid_slots", index, row_id, "AvailableSlots contains non-numeric values", "AvailableSlots")

        load = worker.max_load_per_phase
        if below_minimum(load, policy.min_max_load):
            sink.add(
                "invalid_load",
                index,
                row_id,
                f"MaxLoadPerPhase must be at least {policy.min_max_load}",
                "MaxLoadPerPhase",
            )

        # independent of the no_slots check above
        if slots_are_list and is_int(load) and len(slots) < load:
            sink.add(
                "overloaded",
                index,
                row_id,
                f"MaxLoadPerPhase ({load}) exceeds available slots ({len(slots)})",
                "MaxLoadPerPhase",
            )

        if attributes_invalid(worker.attributes):
            sink.add("invalid_json", index, row_id, "Invalid JSON format in AttributesJSON", "AttributesJSON")

    return sink.findings


def co_run_group_sizes(tasks: Iterable[Task]) -> Counter:
    return Counter(clean_id(task.co_run_group_id) for task in tasks if clean_id(task.co_run_group_id))


def validate_tasks(
    tasks: Sequence[Task],
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> list[Finding]:
    sink = _FindingSink("tasks")
    seen_ids: set[str] = set()
    group_sizes = co_run_group_sizes(tasks)
    low, high = policy.task_priority_range

    for index, task in enumerate(tasks):
        row_id = _check_identity(sink, index, task.task_id, task.name, seen_ids, "TaskID", "TaskName")

        if below_minimum(task.duration, policy.min_duration):
            sink.add(
                "invalid_duration",
                index,
                row_id,
                f"Duration must be at least {policy.min_duration}",
                "Duration",
            )

        if below_minimum(task.max_concurrent, policy.min_max_concurrent):
            sink.add(
                "invalid_concurrent",
                index,
                row_id,
                f"MaxConcurrent must be at least {policy.min_max_concurrent}",
                "MaxConcurrent",
            )

        phases = task.preferred_phases
        if not isinstance(phases, (list, tuple)) or any(not is_int(phase) for phase in phases):
            sink.add(
                "invalid_phases",
                index,
                row_id,
                "PreferredPhases contains non-numeric values",
                "PreferredPhases",
            )

        if task.priority_level not in (None, "") and out_of_range(task.priority_level, policy.task_priority_range):
            sink.add(
                "invalid_priority",
                index,
                row_id,
                f"PriorityLevel must be between {low} and {high}",
                "PriorityLevel",
                low=low,
                high=high,
            )

        if attributes_invalid(task.attributes):
            sink.add("invalid_json", index, row_id, "Invalid JSON format in AttributesJSON", "AttributesJSON")

        group_id = clean_id(task.co_run_group_id)
        if group_id and group_sizes[group_id] > 1:
            sink.add(
                "corun_cycle",
                index,
                row_id,
                f"Co-run group {group_id} has {group_sizes[group_id]} tasks; check for circular dependencies",
                "CoRunGroupID",
            )

    return sink.findings


def ensure_unique_ids(findings: list[Finding]) -> list[Finding]:
    """Suffix repeated finding ids with _2, _3, ... keeping the first as-is."""
    counts: Counter = Counter()
    unique: list[Finding] = []
    for finding in findings:
        counts[finding.id] += 1
        if counts[finding.id] == 1:
            unique.append(finding)
            continue
        candidate = f"{finding.id}_{counts[finding.id]}"
        while candidate in counts:
            counts[finding.id] += 1
            candidate = f"{finding.id}_{counts[finding.id]}"
        counts[candidate] += 1
        unique.append(replace(finding, id=candidate))
    return unique


def validate_data(
    clients: Sequence[Client],
    workers: Sequence[Worker],
    tasks: Sequence[Task],
    policy: ValidationPolicy | None = None,
) -> list[Finding]:
    policy = policy or DEFAULT_POLICY
    findings: list[Finding] = []
    findings.extend(validate_clients(clients, policy))
    findings.extend(validate_workers(workers, policy))
    findings.extend(validate_tasks(tasks, policy))
    findings.extend(validate_cross_entity(clients, workers, tasks))
    return ensure_unique_ids(findings)


def has_errors(findings: Iterable[Finding]) -> bool:
    return any(finding.is_error for finding in findings)


def summarize_findings(findings: Sequence[Finding]) -> dict[str, Any]:
    errors = sum(1 for finding in findings if finding.severity == "error")
    warnings = sum(1 for finding in findings if finding.severity == "warning")
    by_entity = {entity: {"error": 0, "warning": 0} for entity in ENTITY_TYPES}
    for finding in findings:
        by_entity[finding.entity][finding.severity] += 1

    if errors:
        status = "error"
    elif warnings:
        status = "warning"
    else:
        status = "success"

    return {
        "status": status,
        "error_count": errors,
        "warning_count": warnings,
        "with_suggestions": sum(1 for finding in findings if finding.suggestion),
        "by_entity": by_entity,
        "export_blocked": errors > 0,
    }
