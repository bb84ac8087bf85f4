from __future__ import annotations

import io
import json
import tempfile
import unittest
from pathlib import Path

import openpyxl

from roster_doctor.exporter import (
    CLEANED_DATA_NAME,
    RULES_NAME,
    WORKBOOK_NAME,
    ExportBlockedError,
    build_export,
    csv_bytes,
    entity_frame,
    flatten_cell,
    validation_status,
    workbook_bytes,
    write_export,
)
from roster_doctor.loader import load_entities
from roster_doctor.models import AttributeMap, Client, Task, Worker
from roster_doctor.rules import BusinessRule
from roster_doctor.store import store_from_records


def clean_store():
    return store_from_records(
        clients=[Client(client_id="C1", name="Acme", priority_level=3, requested_task_ids=("T1",), attributes=AttributeMap({"sla": "gold"}))],
        workers=[Worker(worker_id="W1", name="Alice", skills=("python", "sql"), available_slots=(1, 2), max_load_per_phase=1)],
        tasks=[Task(task_id="T1", name="Build", duration=1, required_skills=("python",), preferred_phases=(1,))],
    )


class FlatteningTests(unittest.TestCase):
    def test_flatten_cell(self):
        self.assertEqual(flatten_cell(("python", "sql")), "python; sql")
        self.assertEqual(flatten_cell({"b": 1, "a": 2}), '{"a": 2, "b": 1}')
        self.assertEqual(flatten_cell({}), "")
        self.assertEqual(flatten_cell(None), "")
        self.assertEqual(flatten_cell(3), 3)

    def test_entity_frame_uses_sheet_column_names(self):
        frame = entity_frame(clean_store().snapshot, "workers")
        self.assertEqual(list(frame.columns)[:3], ["WorkerID", "WorkerName", "Skills"])
        self.assertEqual(frame.loc[0, "AvailableSlots"], "1; 2")


class ExportGateTests(unittest.TestCase):
    def test_errors_block_export(self):
        store = store_from_records(tasks=[Task(task_id="T1", name="Build", duration=0)])
        with self.assertRaises(ExportBlockedError) as ctx:
            build_export(store.snapshot)
        self.assertEqual([finding.id for finding in ctx.exception.findings], ["task_0_invalid_duration"])
        with self.assertRaises(ExportBlockedError):
            workbook_bytes(store.snapshot)

    def test_warnings_do_not_block_export(self):
        store = store_from_records(workers=[Worker(worker_id="W1", name="Alice", available_slots=(1,), max_load_per_phase=2)])
        bundle = build_export(store.snapshot)
        self.assertEqual(bundle["cleaned_data"]["metadata"]["validationStatus"], "warnings")

    def test_validation_status(self):
        self.assertEqual(validation_status(()), "clean")


class PayloadTests(unittest.TestCase):
    def test_cleaned_data_and_rules_payloads(self):
        store = clean_store()
        rule = store.add_rule(BusinessRule(name="Pair", type="coRun", parameters={"tasks": ["T1", "T2"]}))
        store.set_priorities({"qualityAssurance": 80})
        bundle = build_export(store.snapshot)

        cleaned = bundle["cleaned_data"]
        self.assertEqual(cleaned["contract"]["name"], "roster_doctor.cleaned_data")
        self.assertEqual(cleaned["metadata"]["totalRecords"], 3)
        self.assertEqual(cleaned["metadata"]["validationStatus"], "clean")
        self.assertEqual(cleaned["clients"][0]["AttributesJSON"], {"sla": "gold"})
        self.assertEqual(cleaned["workers"][0]["Skills"], ["python", "sql"])

        rules = bundle["rules"]
        self.assertEqual([item["id"] for item in rules["businessRules"]], [rule.id])
        self.assertEqual(rules["prioritySettings"]["qualityAssurance"], 80)
        self.assertEqual(rules["version"], "1.0")
        json.dumps(bundle)


class FileExportTests(unittest.TestCase):
    def test_write_export_all_formats_and_reload(self):
        store = clean_store()
        with tempfile.TemporaryDirectory() as tmpdir:
            out_dir = Path(tmpdir) / "out"
            written = write_export(store.snapshot, out_dir)
            names = sorted(path.name for path in written)
            self.assertEqual(
                names,
                sorted([CLEANED_DATA_NAME, RULES_NAME, WORKBOOK_NAME, "clients.csv", "workers.csv", "tasks.csv"]),
            )

            reloaded = load_entities(out_dir / CLEANED_DATA_NAME)
            self.assertEqual([result.entity for result in reloaded], ["clients", "workers", "tasks"])
            self.assertEqual(reloaded[1].records, list(store.snapshot.workers))

            [workers_csv] = load_entities(out_dir / "workers.csv")
            self.assertEqual(workers_csv.records, list(store.snapshot.workers))

    def test_json_only_and_empty_sheets_skip_csv(self):
        store = store_from_records(tasks=[Task(task_id="T1", name="Build")])
        with tempfile.TemporaryDirectory() as tmpdir:
            written = write_export(store.snapshot, Path(tmpdir), formats=("json", "csv"))
            self.assertEqual(sorted(path.name for path in written), sorted([CLEANED_DATA_NAME, RULES_NAME, "tasks.csv"]))

    def test_blocked_export_writes_nothing(self):
        store = store_from_records(clients=[Client(client_id="", name="Nameless")])
        with tempfile.TemporaryDirectory() as tmpdir:
            out_dir = Path(tmpdir) / "out"
            with self.assertRaises(ExportBlockedError):
                write_export(store.snapshot, out_dir)
            self.assertFalse(out_dir.exists())

    def test_workbook_has_one_sheet_per_entity_plus_validation(self):
        store = store_from_records(workers=[Worker(worker_id="W1", name="Alice", available_slots=(1,), max_load_per_phase=2)])
        wb = openpyxl.load_workbook(io.BytesIO(workbook_bytes(store.snapshot)))
        self.assertEqual(wb.sheetnames, ["clients", "workers", "tasks", "Validation"])
        self.assertEqual(wb["workers"]["A2"].value, "W1")
        self.assertEqual(wb["Validation"]["A2"].value, "worker_0_overloaded")
        self.assertEqual(wb["workers"].freeze_panes, "A2")

    def test_csv_bytes_header(self):
        text = csv_bytes(clean_store().snapshot, "tasks").decode("utf-8")
        self.assertTrue(text.startswith("TaskID,TaskName,Category,Duration"))


if __name__ == "__main__":
    unittest.main()
