#!/usr/bin/env python3
"""
Generates sample-data/messy_roster.xlsx with deliberate validation problems
for trying roster-doctor on a single workbook.

Run from the repo root:
    python sample-data/generate_xlsx.py

Problems baked in:
  Sheet "Clients"
    - PriorityLevel 7 (outside 1-5)
    - Requested task "T9" that does not exist
    - AttributesJSON that is not valid JSON
  Sheet "Workers"
    - Duplicate WorkerID "W2"
    - Empty AvailableSlots
    - MaxLoadPerPhase larger than the slot count
  Sheet "Tasks"
    - Duration 0
    - Two tasks sharing CoRunGroupID "CR1"
    - Required skill "welding" that no worker has
    - Phase 1 demand above phase 1 capacity
  Sheet "Notes"
    - Free text only; the importer skips it
"""

from pathlib import Path
import openpyxl

OUTPUT = Path(__file__).parent / "messy_roster.xlsx"

wb = openpyxl.Workbook()

# ── Sheet 1: Clients ─────────────────────────────────────────────────────────
ws = wb.active
ws.title = "Clients"
ws.append(["ClientID", "ClientName", "PriorityLevel", "RequestedTaskIDs", "GroupTag", "AttributesJSON"])
for row in [
    ["C1", "Northwind", 3, "T1,T2", "Retail", '{"region": "EU"}'],
    ["C2", "Contoso", 7, "T3,T9", "Finance", ""],
    ["C3", "Fabrikam", 2, "T2", "Retail", "{region: EU"],
]:
    ws.append(row)

# ── Sheet 2: Workers ─────────────────────────────────────────────────────────
ws = wb.create_sheet("Workers")
ws.append(["WorkerID", "WorkerName", "Skills", "AvailableSlots", "MaxLoadPerPhase", "WorkerGroup", "QualificationLevel"])
for row in [
    ["W1", "Dana", "python,sql", "[1,2]", 1, "Backend", 3],
    ["W2", "Eli", "design", "[2,3]", 3, "Frontend", 2],
    ["W2", "Fran", "sql", "[1]", 1, "Backend", 4],
    ["W3", "Gus", "python", "", 1, "Backend", 1],
]:
    ws.append(row)

# ── Sheet 3: Tasks ───────────────────────────────────────────────────────────
ws = wb.create_sheet("Tasks")
ws.append(["TaskID", "TaskName", "Category", "Duration", "RequiredSkills", "PreferredPhases", "MaxConcurrent", "CoRunGroupID"])
for row in [
    ["T1", "Schema migration", "Backend", 3, "python,sql", "1-2", 1, "CR1"],
    ["T2", "Landing page", "Frontend", 0, "design", "[2,3]", 1, "CR1"],
    ["T3", "Site weld", "Field", 2, "welding", "1", 1, ""],
]:
    ws.append(row)

# ── Sheet 4: Notes (not entity data) ─────────────────────────────────────────
ws = wb.create_sheet("Notes")
ws.append(["Remarks"])
ws.append(["Exported from the planning spreadsheet; see Clients/Workers/Tasks."])

wb.save(OUTPUT)
print(f"Created: {OUTPUT}")
