"""
Shared roster-doctor finding taxonomy.

This keeps severity, remediation text and `explain` wording in one place so
the structural pass, the cross-entity pass and the CLI do not drift.
"""

from __future__ import annotations

from typing import Any

from roster_doctor.models import Finding


FINDING_DEFINITIONS = {
    "no_id": {
        "severity": "error",
        "suggestion": "Add a unique identifier for this {label}",
        "description": "The record has no identifier.",
        "evidence": "The id cell is blank or missing.",
    },
    "no_name": {
        "severity": "error",
        "suggestion": "Add a name for this {label}",
        "description": "The record has no display name.",
        "evidence": "The name cell is blank or missing.",
    },
    "duplicate_id": {
        "severity": "error",
        "suggestion": "Change to a unique identifier",
        "description": "Another record earlier in the sheet already uses this identifier.",
        "evidence": "The first record with an id is kept as canonical; every later one is flagged.",
    },
    "invalid_priority": {
        "severity": "error",
        "suggestion": "Set priority between {low} (low) and {high} (high)",
        "description": "PriorityLevel is outside the configured range.",
        "evidence": "The value is not an integer inside validation.client_priority_range / task_priority_range.",
    },
    "invalid_json": {
        "severity": "error",
        "suggestion": "Fix JSON syntax or leave empty",
        "description": "AttributesJSON does not decode to a JSON object.",
        "evidence": "The cell text failed JSON decoding or decoded to a list/scalar.",
    },
    "no_slots": {
        "severity": "error",
        "suggestion": "Add available time slots as numbers",
        "description": "The worker has no available slots.",
        "evidence": "AvailableSlots is empty or is not a list.",
    },
    "invalid_slots": {
        "severity": "error",
        "suggestion": "Ensure all slots are valid numbers",
        "description": "AvailableSlots contains values that are not phase numbers.",
        "evidence": "At least one slot entry is not an integer.",
    },
    "invalid_load": {
        "severity": "error",
        "suggestion": "Set to a positive number",
        "description": "MaxLoadPerPhase is below the minimum.",
        "evidence": "MaxLoadPerPhase is not an integer of at least validation.min_max_load.",
    },
    "overloaded": {
        "severity": "warning",
        "suggestion": "Reduce MaxLoadPerPhase or add more available slots",
        "description": "The worker accepts more load per phase than it has slots.",
        "evidence": "len(AvailableSlots) < MaxLoadPerPhase.",
    },
    "invalid_phases": {
        "severity": "error",
        "suggestion": "Use phase numbers or ranges such as 1-3",
        "description": "PreferredPhases contains values that are not phase numbers.",
        "evidence": "At least one PreferredPhases entry is not an integer after range expansion.",
    },
    "invalid_duration": {
        "severity": "error",
        "suggestion": "Set to a positive number of time units",
        "description": "Duration is below the minimum.",
        "evidence": "Duration is not an integer of at least validation.min_duration.",
    },
    "invalid_concurrent": {
        "severity": "error",
        "suggestion": "Set to a positive number",
        "description": "MaxConcurrent is below the minimum.",
        "evidence": "MaxConcurrent is not an integer of at least validation.min_max_concurrent.",
    },
    "corun_cycle": {
        "severity": "warning",
        "suggestion": "Check that tasks in this co-run group do not depend on each other",
        "description": "The task shares a co-run group with other tasks; a circular dependency is possible.",
        "evidence": "More than one task carries the same CoRunGroupID. This is a coarse check, not cycle detection.",
    },
    "unknown_task": {
        "severity": "error",
        "suggestion": "Remove reference or add the missing task",
        "description": "A client requests a task id that is not in the task sheet.",
        "evidence": "A RequestedTaskIDs entry has no matching TaskID.",
    },
    "missing_skill": {
        "severity": "warning",
        "suggestion": "Add workers with this skill or remove the requirement",
        "description": "No worker has a skill this task requires.",
        "evidence": "A RequiredSkills entry is absent from the union of all worker Skills.",
    },
    "insufficient_workers": {
        "severity": "warning",
        "suggestion": "Reduce MaxConcurrent or add more qualified workers",
        "description": "Fewer workers can do the task than its MaxConcurrent allows.",
        "evidence": "Workers whose skills cover every RequiredSkills entry number less than MaxConcurrent.",
    },
    "oversaturated": {
        "severity": "warning",
        "suggestion": "Redistribute tasks across phases or add more worker capacity",
        "description": "Task demand in a phase exceeds worker capacity in that phase.",
        "evidence": "Sum of Duration over tasks preferring the phase > sum of MaxLoadPerPhase over workers with that slot.",
    },
}

# Fallbacks for callers that build findings without a per-entity sink.
DEFAULT_HINT_VALUES = {"label": "record", "low": 1, "high": 5}


def build_finding(
    kind: str,
    *,
    finding_id: str,
    entity: str,
    row_id: str,
    message: str,
    field: str | None = None,
    hint_values: dict[str, Any] | None = None,
) -> Finding:
    definition = FINDING_DEFINITIONS[kind]
    suggestion = definition["suggestion"].format(**{**DEFAULT_HINT_VALUES, **(hint_values or {})})
    return Finding(
        id=finding_id,
        severity=definition["severity"],
        entity=entity,
        row_id=row_id,
        message=message,
        field=field,
        suggestion=suggestion,
    )


def explain(kind: str) -> dict[str, Any] | None:
    definition = FINDING_DEFINITIONS.get(kind)
    if definition is None:
        return None
    return {
        "kind": kind,
        "severity": definition["severity"],
        "description": definition["description"],
        "evidence": definition["evidence"],
        "blocks_export": definition["severity"] == "error",
    }
