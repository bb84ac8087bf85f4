"""
Heuristic free-text -> structured rule suggestions.

Each matcher looks for its own keyword cues and tokens and returns at most
one suggestion. Matchers run in a fixed order and are independent, so one
sentence can yield several suggestions. Confidence values are fixed per
matcher; they rank suggestions, they are not probabilities.

    suggest_rules("Tasks T12 and T14 should always run together")
    -> [RuleSuggestion(type="coRun", parameters={"tasks": ["T12", "T14"]}, confidence=85, ...)]
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from roster_doctor.normalization import parse_phase_list, unique_in_order

RULE_TYPES = {
    "coRun": {"label": "Co-Run Tasks", "description": "Tasks that must run together"},
    "slotRestriction": {"label": "Slot Restriction", "description": "Limit common slots for groups"},
    "loadLimit": {"label": "Load Limit", "description": "Maximum load per worker group"},
    "phaseWindow": {"label": "Phase Window", "description": "Restrict tasks to specific phases"},
    "patternMatch": {"label": "Pattern Match", "description": "Regex-based rule matching"},
    "precedenceOverride": {"label": "Precedence Override", "description": "Priority-based rule ordering"},
    "custom": {"label": "Custom Rule", "description": "Natural language rule"},
}

CO_RUN_MARKERS = ("together", "co-run", "same time")
LOAD_MARKERS = ("load", "limit", "maximum")
PHASE_RESTRICT_MARKERS = ("only", "restrict")

TASK_ID_RE = re.compile(r"\bt\d+\b", re.IGNORECASE)
STANDALONE_INT_RE = re.compile(r"\b\d+\b")
GROUP_RE = re.compile(r"\b([A-Za-z][\w-]*)\s+(?:workers|group|team)\b", re.IGNORECASE)
PHASE_SPEC_RE = re.compile(r"\bphases?\s*(\d+(?:\s*[-,]\s*\d+)*)", re.IGNORECASE)
GROUP_STOPWORDS = {
    "a", "all", "an", "any", "each", "every", "for", "of", "other", "our", "per",
    "the", "these", "those", "whole", "more", "than", "same",
}


@dataclass(frozen=True)
class RuleSuggestion:
    id: str
    type: str
    title: str
    description: str
    confidence: int
    parameters: dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "parameters": dict(self.parameters),
            "reasoning": self.reasoning,
        }


def suggestion_id(rule_type: str, text: str) -> str:
    digest = hashlib.sha1(f"{rule_type}:{text}".encode("utf-8")).hexdigest()[:10]
    return f"suggestion_{rule_type}_{digest}"


def find_group_name(text: str) -> str | None:
    for match in GROUP_RE.finditer(text):
        candidate = match.group(1)
        if candidate.lower() not in GROUP_STOPWORDS:
            return candidate
    return None


def match_co_run(text: str, lowered: str) -> Optional[RuleSuggestion]:
    if not any(marker in lowered for marker in CO_RUN_MARKERS):
        return None
    task_ids = unique_in_order([token.upper() for token in TASK_ID_RE.findall(text)])
    if len(task_ids) < 2:
        return None
    return RuleSuggestion(
        id=suggestion_id("coRun", text),
        type="coRun",
        title="Co-Run Tasks Rule",
        description=f"Tasks {', '.join(task_ids)} should run together",
        confidence=85,
        parameters={"tasks": task_ids},
        reasoning="Detected task IDs and co-execution keywords in input",
    )


def match_load_limit(text: str, lowered: str) -> Optional[RuleSuggestion]:
    if not any(marker in lowered for marker in LOAD_MARKERS):
        return None
    number = STANDALONE_INT_RE.search(text)
    group = find_group_name(text)
    if number is None or group is None:
        return None
    limit = int(number.group(0))
    return RuleSuggestion(
        id=suggestion_id("loadLimit", text),
        type="loadLimit",
        title="Load Limit Rule",
        description=f"Limit {group} group to {limit} slots per phase",
        confidence=78,
        parameters={"workerGroup": group.upper(), "maxSlotsPerPhase": limit},
        reasoning="Detected load limiting pattern with specific group and number",
    )


def match_phase_window(text: str, lowered: str) -> Optional[RuleSuggestion]:
    if "phase" not in lowered:
        return None
    if not any(marker in lowered for marker in PHASE_RESTRICT_MARKERS):
        return None
    task = TASK_ID_RE.search(text)
    phase_match = PHASE_SPEC_RE.search(text)
    if task is None or phase_match is None:
        return None
    phases = parse_phase_list(phase_match.group(1))
    if not phases:
        return None
    task_id = task.group(0).upper()
    return RuleSuggestion(
        id=suggestion_id("phaseWindow", text),
        type="phaseWindow",
        title="Phase Window Rule",
        description=f"Restrict {task_id} to phases {', '.join(str(phase) for phase in phases)}",
        confidence=82,
        parameters={"taskId": task_id, "allowedPhases": phases},
        reasoning="Detected phase restriction pattern with specific task and phases",
    )


MATCHERS: tuple[Callable[[str, str], Optional[RuleSuggestion]], ...] = (
    match_co_run,
    match_load_limit,
    match_phase_window,
)


def suggest_rules(
    text: str,
    clients: Sequence[Any] = (),
    workers: Sequence[Any] = (),
    tasks: Sequence[Any] = (),
) -> list[RuleSuggestion]:
    """
    Return candidate rules for `text`, in matcher order.

    The collections are accepted so callers can pass the current sheets;
    the matchers currently score on the text alone.
    """
    if not text:
        return []
    text = str(text)
    lowered = text.lower()
    suggestions = []
    for matcher in MATCHERS:
        suggestion = matcher(text, lowered)
        if suggestion is not None:
            suggestions.append(suggestion)
    return suggestions
