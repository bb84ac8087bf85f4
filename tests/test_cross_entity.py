from __future__ import annotations

import unittest

from roster_doctor.cross_entity import (
    SYSTEM_ROW_ID,
    check_phase_saturation,
    check_task_references,
    check_task_staffing,
    phase_demand,
    phase_supply,
    qualified_worker_count,
    validate_cross_entity,
)
from roster_doctor.models import Client, Task, Worker


class TaskReferenceTests(unittest.TestCase):
    def test_one_finding_per_missing_task(self):
        clients = [
            Client(client_id="C1", name="Acme", requested_task_ids=("T1", "T8", "T9")),
            Client(client_id="", name="Blank", requested_task_ids=("T7",)),
        ]
        tasks = [Task(task_id="T1", name="Known")]
        findings = check_task_references(clients, tasks)
        self.assertEqual(
            [finding.id for finding in findings],
            ["client_0_unknown_task_T8", "client_0_unknown_task_T9", "client_1_unknown_task_T7"],
        )
        self.assertEqual(findings[2].row_id, "row_1")
        self.assertTrue(all(finding.severity == "error" for finding in findings))
        self.assertEqual(findings[0].message, "Unknown task reference: T8")


class StaffingTests(unittest.TestCase):
    def setUp(self):
        self.workers = [
            Worker(worker_id="W1", name="A", skills=("python", "sql")),
            Worker(worker_id="W2", name="B", skills=("python",)),
            Worker(worker_id="W3", name="C", skills=("design",)),
        ]

    def test_qualified_workers_must_cover_every_skill(self):
        self.assertEqual(qualified_worker_count(Task(task_id="T1", required_skills=("python",)), self.workers), 2)
        self.assertEqual(qualified_worker_count(Task(task_id="T1", required_skills=("python", "sql")), self.workers), 1)
        self.assertEqual(qualified_worker_count(Task(task_id="T1", required_skills=()), self.workers), 3)

    def test_missing_skill_warning_per_skill(self):
        task = Task(task_id="T1", name="Weld", required_skills=("welding", "python", "rigging"))
        findings = [f for f in check_task_staffing([task], self.workers) if "missing_skill" in f.id]
        self.assertEqual([finding.id for finding in findings], ["task_0_missing_skill_welding", "task_0_missing_skill_rigging"])
        self.assertTrue(all(finding.severity == "warning" for finding in findings))

    def test_three_concurrent_with_two_qualified_workers(self):
        task = Task(task_id="T1", name="Build", required_skills=("python",), max_concurrent=3)
        findings = check_task_staffing([task], self.workers)
        self.assertEqual(len(findings), 1)
        self.assertEqual(findings[0].id, "task_0_insufficient_workers")
        self.assertEqual(findings[0].message, "MaxConcurrent (3) exceeds qualified workers (2)")
        self.assertEqual(findings[0].field, "MaxConcurrent")

    def test_non_integer_concurrency_is_left_to_structural_pass(self):
        task = Task(task_id="T1", name="Build", required_skills=("python",), max_concurrent="lots")
        self.assertEqual(check_task_staffing([task], self.workers), [])


class PhaseSaturationTests(unittest.TestCase):
    def test_supply_and_demand_sums(self):
        workers = [
            Worker(worker_id="W1", available_slots=(1, 2), max_load_per_phase=3),
            Worker(worker_id="W2", available_slots=(2, "x"), max_load_per_phase=2),
            Worker(worker_id="W3", available_slots=(2,), max_load_per_phase="bad"),
        ]
        tasks = [
            Task(task_id="T1", duration=2, preferred_phases=(1, 2)),
            Task(task_id="T2", duration="abc", preferred_phases=(2,)),
        ]
        self.assertEqual(phase_supply(workers), {1: 3, 2: 5})
        self.assertEqual(phase_demand(tasks), {1: 2, 2: 2})

    def test_demand_twelve_against_supply_eight(self):
        workers = [
            Worker(worker_id="W1", available_slots=(2,), max_load_per_phase=5),
            Worker(worker_id="W2", available_slots=(2, 3), max_load_per_phase=3),
        ]
        tasks = [
            Task(task_id="T1", duration=7, preferred_phases=(2,)),
            Task(task_id="T2", duration=5, preferred_phases=(2,)),
        ]
        findings = check_phase_saturation(workers, tasks)
        self.assertEqual(len(findings), 1)
        finding = findings[0]
        self.assertEqual(finding.id, "phase_2_oversaturated")
        self.assertEqual(finding.row_id, SYSTEM_ROW_ID)
        self.assertEqual(finding.severity, "warning")
        self.assertIn("demand (12)", finding.message)
        self.assertIn("supply (8)", finding.message)

    def test_phase_without_supply_is_saturated(self):
        findings = check_phase_saturation([], [Task(task_id="T1", duration=1, preferred_phases=(4,))])
        self.assertEqual([finding.id for finding in findings], ["phase_4_oversaturated"])


class CrossEntityOrderTests(unittest.TestCase):
    def test_rule_order_and_no_cross_category_dedup(self):
        clients = [Client(client_id="C1", name="Acme", requested_task_ids=("T9",))]
        workers = [Worker(worker_id="W1", name="A", skills=("python",), available_slots=(1,), max_load_per_phase=1)]
        tasks = [Task(task_id="T1", name="Weld", duration=4, required_skills=("welding",), preferred_phases=(1,), max_concurrent=1)]
        findings = validate_cross_entity(clients, workers, tasks)
        self.assertEqual(
            [finding.id for finding in findings],
            [
                "client_0_unknown_task_T9",
                "task_0_missing_skill_welding",
                "task_0_insufficient_workers",
                "phase_1_oversaturated",
            ],
        )

    def test_inputs_are_not_mutated(self):
        workers = [Worker(worker_id="W1", skills=("python",), available_slots=(1,))]
        tasks = [Task(task_id="T1", preferred_phases=(1,))]
        before = (list(workers), list(tasks))
        validate_cross_entity([], workers, tasks)
        self.assertEqual(before, (workers, tasks))


if __name__ == "__main__":
    unittest.main()
