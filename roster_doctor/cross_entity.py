"""
Checks that join more than one sheet: dangling task references, skill
coverage, concurrency feasibility and per-phase capacity saturation.

Records are assumed to have been through the structural pass already;
values that failed it (non-integer durations, slots, loads) are skipped
here rather than reported twice.
"""

from __future__ import annotations

from typing import Any, Sequence

from roster_doctor.issue_taxonomy import build_finding
from roster_doctor.models import Client, Finding, Task, Worker, is_int

SYSTEM_ROW_ID = "system"


def _row_id(record_id: Any, index: int) -> str:
    text = "" if record_id is None else str(record_id).strip()
    return text or f"row_{index}"


def _as_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def check_task_references(clients: Sequence[Client], tasks: Sequence[Task]) -> list[Finding]:
    task_ids = {str(task.task_id).strip() for task in tasks if task.task_id}
    findings: list[Finding] = []
    for index, client in enumerate(clients):
        row_id = _row_id(client.client_id, index)
        for task_id in _as_list(client.requested_task_ids):
            if str(task_id).strip() in task_ids:
                continue
            findings.append(
                build_finding(
                    "unknown_task",
                    finding_id=f"client_{index}_unknown_task_{task_id}",
                    entity="clients",
                    row_id=row_id,
                    field="RequestedTaskIDs",
                    message=f"Unknown task reference: {task_id}",
                )
            )
    return findings


def qualified_worker_count(task: Task, workers: Sequence[Worker]) -> int:
    required = set(_as_list(task.required_skills))
    return sum(1 for worker in workers if required.issubset(set(_as_list(worker.skills))))


def check_task_staffing(tasks: Sequence[Task], workers: Sequence[Worker]) -> list[Finding]:
    all_skills = {skill for worker in workers for skill in _as_list(worker.skills)}
    findings: list[Finding] = []

    for index, task in enumerate(tasks):
        row_id = _row_id(task.task_id, index)

        for skill in _as_list(task.required_skills):
            if skill in all_skills:
                continue
            findings.append(
                build_finding(
                    "missing_skill",
                    finding_id=f"task_{index}_missing_skill_{skill}",
                    entity="tasks",
                    row_id=row_id,
                    field="RequiredSkills",
                    message=f"No workers have required skill: {skill}",
                )
            )

        if not is_int(task.max_concurrent):
            continue
        qualified = qualified_worker_count(task, workers)
        if qualified < task.max_concurrent:
            findings.append(
                build_finding(
                    "insufficient_workers",
                    finding_id=f"task_{index}_insufficient_workers",
                    entity="tasks",
                    row_id=row_id,
                    field="MaxConcurrent",
                    message=(
                        f"MaxConcurrent ({task.max_concurrent}) exceeds qualified workers ({qualified})"
                    ),
                )
            )

    return findings


def phase_supply(workers: Sequence[Worker]) -> dict[int, int]:
    supply: dict[int, int] = {}
    for worker in workers:
        if not is_int(worker.max_load_per_phase):
            continue
        for slot in _as_list(worker.available_slots):
            if is_int(slot):
                supply[slot] = supply.get(slot, 0) + worker.max_load_per_phase
    return supply


def phase_demand(tasks: Sequence[Task]) -> dict[int, int]:
    demand: dict[int, int] = {}
    for task in tasks:
        if not is_int(task.duration):
            continue
        for phase in _as_list(task.preferred_phases):
            if is_int(phase):
                demand[phase] = demand.get(phase, 0) + task.duration
    return demand


def check_phase_saturation(workers: Sequence[Worker], tasks: Sequence[Task]) -> list[Finding]:
    supply = phase_supply(workers)
    findings: list[Finding] = []
    for phase, demand in phase_demand(tasks).items():
        available = supply.get(phase, 0)
        if demand <= available:
            continue
        findings.append(
            build_finding(
                "oversaturated",
                finding_id=f"phase_{phase}_oversaturated",
                entity="tasks",
                row_id=SYSTEM_ROW_ID,
                message=f"Phase {phase} is oversaturated: demand ({demand}) exceeds supply ({available})",
            )
        )
    return findings


def validate_cross_entity(
    clients: Sequence[Client],
    workers: Sequence[Worker],
    tasks: Sequence[Task],
) -> list[Finding]:
    findings: list[Finding] = []
    findings.extend(check_task_references(clients, tasks))
    findings.extend(check_task_staffing(tasks, workers))
    findings.extend(check_phase_saturation(workers, tasks))
    return findings
