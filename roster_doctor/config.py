from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}
DEFAULT_CONFIG_NAME = "roster-doctor.json"
EXPORT_FORMATS = ("xlsx", "csv", "json")


@dataclass(frozen=True)
class ValidationPolicy:
    client_priority_range: tuple[int, int] = (1, 5)
    task_priority_range: tuple[int, int] = (1, 5)
    min_duration: int = 1
    min_max_concurrent: int = 1
    min_max_load: int = 1

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ValidationPolicy":
        known = {name for name in cls.__dataclass_fields__}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"Unknown validation settings: {', '.join(unknown)}")
        values = dict(payload)
        for key in ("client_priority_range", "task_priority_range"):
            if key in values:
                bounds = values[key]
                if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
                    raise ValueError(f"validation.{key} must be a [low, high] pair")
                low, high = int(bounds[0]), int(bounds[1])
                if low > high:
                    raise ValueError(f"validation.{key} low bound {low} is above high bound {high}")
                values[key] = (low, high)
        for key in ("min_duration", "min_max_concurrent", "min_max_load"):
            if key in values:
                values[key] = int(values[key])
        return cls(**values)


DEFAULT_POLICY = ValidationPolicy()


@dataclass(frozen=True)
class AppConfig:
    validation: ValidationPolicy = DEFAULT_POLICY
    priorities: dict[str, int] = field(default_factory=dict)
    export_format: str = "xlsx"


def default_config() -> dict[str, Any]:
    policy = asdict(DEFAULT_POLICY)
    policy["client_priority_range"] = list(policy["client_priority_range"])
    policy["task_priority_range"] = list(policy["task_priority_range"])
    return {
        "validation": policy,
        "priorities": {
            "costOptimization": 50,
            "timeEfficiency": 50,
            "qualityAssurance": 50,
            "resourceUtilization": 50,
            "clientSatisfaction": 50,
        },
        "export": {"format": "xlsx"},
    }


def render_default_config() -> str:
    return json.dumps(default_config(), indent=2) + "\n"


def load_config(path: Path | None) -> AppConfig:
    """Read a JSON config file. Missing sections fall back to defaults."""
    if path is None:
        return AppConfig()
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ValueError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ValueError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a JSON object.")

    validation = payload.get("validation") or {}
    if not isinstance(validation, dict):
        raise ValueError("Config 'validation' section must be an object.")
    priorities = payload.get("priorities") or {}
    if not isinstance(priorities, dict):
        raise ValueError("Config 'priorities' section must be an object.")
    export = payload.get("export") or {}
    if not isinstance(export, dict):
        raise ValueError("Config 'export' section must be an object.")
    export_format = export.get("format", "xlsx")
    if export_format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{export_format}'. Supported: {', '.join(EXPORT_FORMATS)}")

    return AppConfig(
        validation=ValidationPolicy.from_dict(validation),
        priorities={str(key): int(value) for key, value in priorities.items()},
        export_format=export_format,
    )
