"""Business rules, priority weights and the rules-config document built from them."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from roster_doctor.contracts import build_contract, utc_now_iso
from roster_doctor.rule_suggestions import RULE_TYPES, RuleSuggestion

DEFAULT_RULE_PRIORITY = 50
RULE_PRIORITY_RANGE = (1, 100)

PRIORITY_KEYS = (
    "costOptimization",
    "timeEfficiency",
    "qualityAssurance",
    "resourceUtilization",
    "clientSatisfaction",
)
PRIORITY_LABELS = {
    "costOptimization": "Cost Optimization",
    "timeEfficiency": "Time Efficiency",
    "qualityAssurance": "Quality Assurance",
    "resourceUtilization": "Resource Utilization",
    "clientSatisfaction": "Client Satisfaction",
}
DEFAULT_WEIGHT = 50
WEIGHT_STEP = 5
IMPACT_LEVELS = (
    (80, "Very High"),
    (60, "High"),
    (40, "Medium"),
    (20, "Low"),
)


def new_rule_id() -> str:
    return f"rule_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class BusinessRule:
    name: str
    type: str = "custom"
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    priority: int = DEFAULT_RULE_PRIORITY
    active: bool = True
    id: str = field(default_factory=new_rule_id)
    created_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        if self.type not in RULE_TYPES:
            raise ValueError(f"Unknown rule type '{self.type}'. Supported: {', '.join(RULE_TYPES)}")
        low, high = RULE_PRIORITY_RANGE
        if isinstance(self.priority, bool) or not isinstance(self.priority, int) or not low <= self.priority <= high:
            raise ValueError(f"Rule priority must be an integer between {low} and {high}")

    def updated(self, **changes: Any) -> "BusinessRule":
        changes.pop("id", None)
        changes.pop("created_at", None)
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "parameters": dict(self.parameters),
            "priority": self.priority,
            "active": self.active,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "BusinessRule":
        values: dict[str, Any] = {
            "name": str(payload.get("name") or ""),
            "type": payload.get("type") or "custom",
            "description": str(payload.get("description") or ""),
            "parameters": dict(payload.get("parameters") or {}),
            "priority": int(payload.get("priority", DEFAULT_RULE_PRIORITY)),
            "active": bool(payload.get("active", True)),
        }
        if payload.get("id"):
            values["id"] = str(payload["id"])
        if payload.get("createdAt"):
            values["created_at"] = str(payload["createdAt"])
        return cls(**values)


def suggestion_to_rule(suggestion: RuleSuggestion) -> BusinessRule:
    """Accepted suggestions become active rules at the default priority."""
    return BusinessRule(
        name=suggestion.title,
        type=suggestion.type,
        description=suggestion.description,
        parameters=dict(suggestion.parameters),
    )


def impact_level(weight: int) -> str:
    for threshold, label in IMPACT_LEVELS:
        if weight >= threshold:
            return label
    return "Very Low"


@dataclass(frozen=True)
class PrioritySettings:
    costOptimization: int = DEFAULT_WEIGHT
    timeEfficiency: int = DEFAULT_WEIGHT
    qualityAssurance: int = DEFAULT_WEIGHT
    resourceUtilization: int = DEFAULT_WEIGHT
    clientSatisfaction: int = DEFAULT_WEIGHT

    def __post_init__(self) -> None:
        for key in PRIORITY_KEYS:
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
                raise ValueError(f"Priority weight '{key}' must be an integer between 0 and 100, got {value!r}")

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "PrioritySettings":
        payload = dict(payload or {})
        unknown = sorted(set(payload) - set(PRIORITY_KEYS))
        if unknown:
            raise ValueError(f"Unknown priority weights: {', '.join(unknown)}")
        return cls(**{key: int(value) for key, value in payload.items()})

    def to_dict(self) -> dict[str, int]:
        return {key: getattr(self, key) for key in PRIORITY_KEYS}

    def with_weight(self, key: str, value: int) -> "PrioritySettings":
        if key not in PRIORITY_KEYS:
            raise ValueError(f"Unknown priority weight '{key}'")
        return replace(self, **{key: value})

    def impact_levels(self) -> dict[str, str]:
        return {key: impact_level(getattr(self, key)) for key in PRIORITY_KEYS}

    def normalized_shares(self) -> dict[str, float]:
        """Each weight as a percentage of the total; equal shares when all are zero."""
        weights = self.to_dict()
        total = sum(weights.values())
        if total == 0:
            return {key: round(100 / len(weights), 2) for key in weights}
        return {key: round(value * 100 / total, 2) for key, value in weights.items()}

    def average(self) -> float:
        weights = self.to_dict()
        return sum(weights.values()) / len(weights)


def active_rules(rules: Iterable[BusinessRule]) -> list[BusinessRule]:
    return [rule for rule in rules if rule.active]


def build_rules_config(rules: Iterable[BusinessRule], priorities: PrioritySettings) -> dict[str, Any]:
    """The downloadable rules-config document: active rules plus weights."""
    active = active_rules(rules)
    return {
        "contract": build_contract("roster_doctor.rules_config"),
        "rules": [rule.to_dict() for rule in active],
        "priorities": priorities.to_dict(),
        "metadata": {
            "version": "1.0",
            "generatedAt": utc_now_iso(),
            "totalRules": len(active),
        },
    }


def rules_from_document(payload: Mapping[str, Any]) -> tuple[list[BusinessRule], PrioritySettings]:
    """Read rules back from either a rules.json export or a rules-config document."""
    if not isinstance(payload, Mapping):
        raise ValueError("Rules document root must be a JSON object.")
    raw_rules = payload.get("businessRules", payload.get("rules", []))
    if not isinstance(raw_rules, list):
        raise ValueError("Rules document must hold a list of rules.")
    rules = [BusinessRule.from_dict(item) for item in raw_rules]
    priorities = PrioritySettings.from_dict(payload.get("prioritySettings", payload.get("priorities")))
    return rules, priorities
