from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from openpyxl import Workbook

from roster_doctor.loader import (
    detect_delimiter,
    detect_entity_type,
    load_bytes,
    load_entities,
    resolve_columns,
)
from roster_doctor.models import AttributeMap, InvalidAttributes

ROOT = Path(__file__).resolve().parents[1]
SAMPLE_DIR = ROOT / "sample-data"


class HeaderDetectionTests(unittest.TestCase):
    def test_entity_type_from_headers(self):
        cases = [
            (["ClientID", "ClientName"], "clients"),
            (["Client ID", "Priority"], "clients"),
            (["worker_id", "Skills"], "workers"),
            (["TaskID", "Duration"], "tasks"),
            (["Name", "Amount"], None),
        ]
        for headers, expected in cases:
            with self.subTest(headers=headers):
                self.assertEqual(detect_entity_type(headers), expected)

    def test_resolve_columns_is_case_and_separator_insensitive(self):
        column_map = resolve_columns(["Worker ID", "worker_name", "AVAILABLE-SLOTS", "Max Load"], "workers")
        self.assertEqual(
            column_map,
            {
                "worker_id": "Worker ID",
                "name": "worker_name",
                "available_slots": "AVAILABLE-SLOTS",
                "max_load_per_phase": "Max Load",
            },
        )

    def test_delimiter_sniffing(self):
        self.assertEqual(detect_delimiter("a;b;c\n1;2;3\n"), ";")
        self.assertEqual(detect_delimiter("a,b\n1,2\n"), ",")
        self.assertEqual(detect_delimiter(""), ",")


class SampleFileTests(unittest.TestCase):
    def test_workers_csv(self):
        [result] = load_entities(SAMPLE_DIR / "workers.csv")
        self.assertEqual(result.entity, "workers")
        self.assertEqual(result.detected_format, "csv")
        self.assertEqual(len(result.records), 3)
        first = result.records[0]
        self.assertEqual(first.worker_id, "W1")
        self.assertEqual(first.skills, ("python", "sql"))
        self.assertEqual(first.available_slots, (1, 2, 3))
        self.assertEqual(first.max_load_per_phase, 2)
        self.assertEqual(first.qualification_level, 4)
        self.assertEqual(first.location, "New York")
        self.assertEqual(result.unmapped_columns, [])

    def test_tasks_csv_expands_phase_ranges(self):
        [result] = load_entities(SAMPLE_DIR / "tasks.csv")
        phases = {task.task_id: task.preferred_phases for task in result.records}
        self.assertEqual(phases["T1"], (1, 2))
        self.assertEqual(phases["T2"], (3,))
        self.assertEqual(phases["T3"], (2, 3))
        self.assertEqual(result.records[0].co_run_group_id, "")

    def test_clients_csv_with_spaced_headers(self):
        [result] = load_entities(SAMPLE_DIR / "messy_clients.csv")
        self.assertEqual(result.entity, "clients")
        client = result.records[0]
        self.assertEqual(client.priority_level, 9)
        self.assertEqual(client.requested_task_ids, ("T1", "T99"))
        self.assertEqual(client.location, "Paris")

    def test_bad_cells_are_kept_for_the_validator(self):
        [result] = load_entities(SAMPLE_DIR / "messy_tasks.csv")
        t1, t2 = result.records
        self.assertEqual(t1.duration, 0)
        self.assertEqual(t2.duration, "abc")
        self.assertEqual(t2.attributes, InvalidAttributes("{bad json"))
        self.assertEqual(t1.attributes, AttributeMap())

    def test_blank_ids_stay_blank(self):
        [result] = load_entities(SAMPLE_DIR / "messy_workers.csv")
        self.assertEqual([worker.worker_id for worker in result.records], ["W1", "W1", "W2"])
        self.assertEqual(result.records[2].name, "")
        self.assertEqual(result.records[2].available_slots, ())


class TempFileTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, name: str, text: str) -> Path:
        path = self.tmpdir / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_semicolon_csv_and_blank_rows(self):
        path = self.write("tasks.csv", "TaskID;TaskName;Duration\nT1;Build;3\n;;\nT2;Test;\n")
        [result] = load_entities(path)
        self.assertEqual([task.task_id for task in result.records], ["T1", "T2"])
        self.assertEqual(result.records[1].duration, 1)

    def test_tsv(self):
        path = self.write("workers.tsv", "WorkerID\tWorkerName\tSkills\nW1\tAna\tpython;sql\n")
        [result] = load_entities(path)
        self.assertEqual(result.records[0].skills, ("python", "sql"))

    def test_unmapped_columns_are_reported(self):
        path = self.write("clients.csv", "ClientID,ClientName,Favourite Colour\nC1,Acme,blue\n")
        [result] = load_entities(path)
        self.assertEqual(result.unmapped_columns, ["Favourite Colour"])
        self.assertTrue(result.warnings)

    def test_explicit_entity_overrides_detection(self):
        path = self.write("people.csv", "id,name\nW9,Zed\n")
        [result] = load_entities(path, entity="workers")
        self.assertEqual(result.entity, "workers")
        self.assertEqual(result.records[0].worker_id, "W9")

    def test_workbook_with_one_sheet_per_entity(self):
        wb = Workbook()
        ws = wb.active
        ws.title = "Clients"
        ws.append(["ClientID", "ClientName", "PriorityLevel", "RequestedTaskIDs"])
        ws.append(["C1", "Acme", 3, "T1"])
        ws = wb.create_sheet("Workers")
        ws.append(["WorkerID", "WorkerName", "Skills", "AvailableSlots", "MaxLoadPerPhase"])
        ws.append(["W1", "Ana", "python", "[1,2]", 2])
        ws.append([None, None, None, None, None])
        ws = wb.create_sheet("Notes")
        ws.append(["Remarks"])
        ws.append(["free text"])
        path = self.tmpdir / "roster.xlsx"
        wb.save(path)

        results = load_entities(path)
        self.assertEqual([(result.entity, result.sheet_name) for result in results], [("clients", "Clients"), ("workers", "Workers")])
        self.assertEqual(results[0].records[0].priority_level, 3)
        worker = results[1].records[0]
        self.assertEqual(worker.available_slots, (1, 2))
        self.assertEqual(worker.max_load_per_phase, 2)
        self.assertEqual(len(results[1].records), 1)
        self.assertTrue(any("Notes" in warning for warning in results[0].warnings))

    def test_json_array_and_collection_document(self):
        rows = [{"WorkerID": "W1", "WorkerName": "Ana", "Skills": ["python"], "AvailableSlots": [1, 2], "AttributesJSON": {"team": "core"}}]
        [result] = load_entities(self.write("workers.json", json.dumps(rows)))
        worker = result.records[0]
        self.assertEqual(worker.available_slots, (1, 2))
        self.assertEqual(worker.attributes, AttributeMap({"team": "core"}))

        document = {
            "clients": [{"ClientID": "C1", "ClientName": "Acme", "PriorityLevel": 2}],
            "workers": [],
            "tasks": [{"TaskID": "T1", "TaskName": "Build", "Duration": 2, "PreferredPhases": [1, 3]}],
        }
        results = load_entities(self.write("cleaned-data.json", json.dumps(document)))
        self.assertEqual([result.entity for result in results], ["clients", "tasks"])
        self.assertEqual(results[1].records[0].preferred_phases, (1, 3))

    def test_load_bytes_matches_file_loading(self):
        raw = (SAMPLE_DIR / "clients.csv").read_bytes()
        [from_bytes] = load_bytes(raw, "clients.csv")
        [from_file] = load_entities(SAMPLE_DIR / "clients.csv")
        self.assertEqual(from_bytes.records, from_file.records)

    def test_errors(self):
        with self.assertRaises(FileNotFoundError):
            load_entities(self.tmpdir / "missing.csv")
        with self.assertRaisesRegex(ValueError, "Unsupported format"):
            load_entities(self.write("notes.pdf", "x"))
        with self.assertRaisesRegex(ValueError, "empty"):
            load_entities(self.write("empty.csv", ""))
        with self.assertRaisesRegex(ValueError, "Could not determine data type"):
            load_entities(self.write("ledger.csv", "Name,Amount\nAcme,10\n"))
        with self.assertRaisesRegex(ValueError, "Invalid JSON"):
            load_entities(self.write("broken.json", "{not json"))


if __name__ == "__main__":
    unittest.main()
