"""
roster-doctor store.py

Single source of truth for an editing session. The store owns one frozen
`Snapshot` at a time; every mutation builds a new snapshot and, when the
entity sheets changed, recomputes findings from scratch.

    store = DataStore()
    store.replace_entities("workers", workers)
    store.update_record("workers", 0, max_load_per_phase="2")
    store.snapshot.findings
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Sequence

from roster_doctor.config import DEFAULT_POLICY, ValidationPolicy
from roster_doctor.models import ENTITY_SINGULAR, ENTITY_TYPES, Client, Finding, Task, Worker
from roster_doctor.normalization import coerce_field
from roster_doctor.rule_suggestions import RuleSuggestion, suggest_rules
from roster_doctor.rules import BusinessRule, PrioritySettings, suggestion_to_rule
from roster_doctor.validator import row_id_for, summarize_findings, validate_data

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    clients: tuple[Client, ...] = ()
    workers: tuple[Worker, ...] = ()
    tasks: tuple[Task, ...] = ()
    findings: tuple[Finding, ...] = ()
    rules: tuple[BusinessRule, ...] = ()
    suggestions: tuple[RuleSuggestion, ...] = ()
    priorities: PrioritySettings = field(default_factory=PrioritySettings)
    policy: ValidationPolicy = DEFAULT_POLICY

    def records(self, entity: str) -> tuple:
        if entity not in ENTITY_TYPES:
            raise ValueError(f"Unknown entity type '{entity}'. Expected one of: {', '.join(ENTITY_TYPES)}")
        return getattr(self, entity)

    def findings_for(self, entity: str, row_id: str | None = None) -> list[Finding]:
        return [
            finding
            for finding in self.findings
            if finding.entity == entity and (row_id is None or finding.row_id == row_id)
        ]

    def cell_severities(self, entity: str) -> dict[tuple[int, str], str]:
        """(row index, column) -> worst severity of the findings that name that cell.

        Rows come from the index in the finding id; findings whose id carries
        no index fall back to matching `row_id`. Findings without a field and
        system findings are left out.
        """
        records = self.records(entity)
        rows_by_id: dict[str, list[int]] = {}
        for index, record in enumerate(records):
            rows_by_id.setdefault(row_id_for(record.record_id, index), []).append(index)
        indexed_id = re.compile(rf"^{ENTITY_SINGULAR[entity]}_(\d+)_")

        cells: dict[tuple[int, str], str] = {}
        for finding in self.findings_for(entity):
            if not finding.field:
                continue
            match = indexed_id.match(finding.id)
            rows = [int(match.group(1))] if match else rows_by_id.get(finding.row_id, [])
            for row in rows:
                if row >= len(records) or cells.get((row, finding.field)) == "error":
                    continue
                cells[(row, finding.field)] = finding.severity
        return cells

    @property
    def summary(self) -> dict[str, Any]:
        return summarize_findings(self.findings)

    @property
    def total_records(self) -> int:
        return len(self.clients) + len(self.workers) + len(self.tasks)


class DataStore:
    def __init__(
        self,
        *,
        policy: ValidationPolicy | None = None,
        priorities: PrioritySettings | None = None,
    ) -> None:
        self._snapshot = Snapshot(
            policy=policy or DEFAULT_POLICY,
            priorities=priorities or PrioritySettings(),
        )

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def _commit(self, snapshot: Snapshot, *, revalidate: bool) -> Snapshot:
        if revalidate:
            findings = validate_data(snapshot.clients, snapshot.workers, snapshot.tasks, snapshot.policy)
            snapshot = replace(snapshot, findings=tuple(findings))
            errors = sum(1 for finding in findings if finding.is_error)
            logger.debug(
                "Revalidated %d records: %d errors, %d warnings",
                snapshot.total_records,
                errors,
                len(findings) - errors,
            )
        self._snapshot = snapshot
        return snapshot

    # ── entity sheets ────────────────────────────────────────────────────────

    def replace_entities(self, entity: str, records: Iterable[Any]) -> Snapshot:
        records = tuple(records)
        self._snapshot.records(entity)
        logger.info("Replacing %s with %d records", entity, len(records))
        return self._commit(replace(self._snapshot, **{entity: records}), revalidate=True)

    def merge_entities(self, entity: str, records: Iterable[Any]) -> tuple[int, int]:
        """
        Append records whose id is not already present. The first record
        with a given id wins; later ones are skipped. Records with blank ids
        are always appended so the validator can report them.

        Returns (added, skipped).
        """
        existing = self._snapshot.records(entity)
        seen = {str(record.record_id).strip() for record in existing if str(record.record_id).strip()}
        merged = list(existing)
        skipped = 0
        for record in records:
            record_id = str(record.record_id).strip()
            if record_id and record_id in seen:
                skipped += 1
                continue
            if record_id:
                seen.add(record_id)
            merged.append(record)
        added = len(merged) - len(existing)
        logger.info("Merged %s: %d added, %d skipped as duplicates", entity, added, skipped)
        self._commit(replace(self._snapshot, **{entity: tuple(merged)}), revalidate=True)
        return added, skipped

    def update_record(self, entity: str, index: int, **changes: Any) -> Snapshot:
        """Apply a partial edit to the record at `index`; cell values are coerced."""
        records = list(self._snapshot.records(entity))
        if not 0 <= index < len(records):
            raise IndexError(f"No {entity} record at row {index}")
        coerced = {name: coerce_field(entity, name, value) for name, value in changes.items()}
        records[index] = replace(records[index], **coerced)
        return self._commit(replace(self._snapshot, **{entity: tuple(records)}), revalidate=True)

    def set_policy(self, policy: ValidationPolicy) -> Snapshot:
        return self._commit(replace(self._snapshot, policy=policy), revalidate=True)

    def revalidate(self) -> Snapshot:
        return self._commit(self._snapshot, revalidate=True)

    # ── business rules ───────────────────────────────────────────────────────

    def _rule_index(self, rule_id: str) -> int:
        for index, rule in enumerate(self._snapshot.rules):
            if rule.id == rule_id:
                return index
        raise KeyError(f"No rule with id '{rule_id}'")

    def add_rule(self, rule: BusinessRule) -> BusinessRule:
        if any(existing.id == rule.id for existing in self._snapshot.rules):
            raise ValueError(f"Rule id '{rule.id}' already exists")
        self._commit(replace(self._snapshot, rules=self._snapshot.rules + (rule,)), revalidate=False)
        logger.info("Added %s rule %s", rule.type, rule.id)
        return rule

    def update_rule(self, rule_id: str, **changes: Any) -> BusinessRule:
        index = self._rule_index(rule_id)
        rules = list(self._snapshot.rules)
        rules[index] = rules[index].updated(**changes)
        self._commit(replace(self._snapshot, rules=tuple(rules)), revalidate=False)
        return rules[index]

    def delete_rule(self, rule_id: str) -> None:
        index = self._rule_index(rule_id)
        rules = self._snapshot.rules[:index] + self._snapshot.rules[index + 1:]
        self._commit(replace(self._snapshot, rules=rules), revalidate=False)
        logger.info("Deleted rule %s", rule_id)

    # ── suggestions ──────────────────────────────────────────────────────────

    def request_suggestions(self, text: str) -> list[RuleSuggestion]:
        """Replace the pending suggestions with those derived from `text`."""
        snapshot = self._snapshot
        suggestions = suggest_rules(text, snapshot.clients, snapshot.workers, snapshot.tasks)
        self._commit(replace(snapshot, suggestions=tuple(suggestions)), revalidate=False)
        logger.debug("Derived %d rule suggestions", len(suggestions))
        return suggestions

    def _find_suggestion(self, suggestion_id: str) -> RuleSuggestion:
        for suggestion in self._snapshot.suggestions:
            if suggestion.id == suggestion_id:
                return suggestion
        raise KeyError(f"No pending suggestion with id '{suggestion_id}'")

    def _pending_without(self, suggestion_id: str) -> tuple[RuleSuggestion, ...]:
        return tuple(item for item in self._snapshot.suggestions if item.id != suggestion_id)

    def accept_suggestion(self, suggestion_id: str) -> BusinessRule:
        """Turn a pending suggestion into a rule; both changes land in one snapshot."""
        rule = suggestion_to_rule(self._find_suggestion(suggestion_id))
        if any(existing.id == rule.id for existing in self._snapshot.rules):
            raise ValueError(f"Rule id '{rule.id}' already exists")
        self._commit(
            replace(
                self._snapshot,
                rules=self._snapshot.rules + (rule,),
                suggestions=self._pending_without(suggestion_id),
            ),
            revalidate=False,
        )
        logger.info("Accepted %s suggestion as rule %s", rule.type, rule.id)
        return rule

    def dismiss_suggestion(self, suggestion_id: str) -> None:
        self._find_suggestion(suggestion_id)
        self._commit(replace(self._snapshot, suggestions=self._pending_without(suggestion_id)), revalidate=False)

    # ── priorities ───────────────────────────────────────────────────────────

    def set_priorities(self, priorities: PrioritySettings | Mapping[str, int]) -> PrioritySettings:
        if not isinstance(priorities, PrioritySettings):
            merged = {**self._snapshot.priorities.to_dict(), **dict(priorities)}
            priorities = PrioritySettings.from_dict(merged)
        self._commit(replace(self._snapshot, priorities=priorities), revalidate=False)
        return priorities


def store_from_records(
    clients: Sequence[Client] = (),
    workers: Sequence[Worker] = (),
    tasks: Sequence[Task] = (),
    *,
    policy: ValidationPolicy | None = None,
    priorities: PrioritySettings | None = None,
) -> DataStore:
    store = DataStore(policy=policy, priorities=priorities)
    store._commit(
        replace(store.snapshot, clients=tuple(clients), workers=tuple(workers), tasks=tuple(tasks)),
        revalidate=True,
    )
    return store
