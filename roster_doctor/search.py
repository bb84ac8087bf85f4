"""
roster-doctor search.py

Free-text search over the three sheets. The query is parsed into a set of
independent, optional criteria; each record is then scored additively on the
criteria that apply to its sheet.

    results = search("tasks having a Duration of more than 5", clients, workers, tasks)
    results[0].to_dict()
    -> {"entity": "tasks", "id": "T3", "match": "Duration: 8", "score": 10}

Parsing never fails: a phrase that does not fit a pattern simply leaves that
criterion unset.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from roster_doctor.models import Client, Task, Worker, is_int
from roster_doctor.normalization import parse_phase_list, unique_in_order

OPERATOR_WORDS = {
    "more than": ">",
    "greater than": ">",
    "over": ">",
    "less than": "<",
    "fewer than": "<",
    "under": "<",
    "at least": ">=",
    "at most": "<=",
    "equal to": "=",
    "equals to": "=",
    "equals": "=",
}
COMPARATORS = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "=": operator.eq,
}

# longest alternatives first so ">=" wins over ">"
_OPERATOR_PATTERN = "|".join(
    re.escape(token)
    for token in sorted(list(COMPARATORS) + list(OPERATOR_WORDS), key=len, reverse=True)
)
DURATION_RE = re.compile(
    rf"\bduration\b(?:\s+(?:of|is|was))?\s*({_OPERATOR_PATTERN})\s*(\d+)"
)
PRIORITY_RE = re.compile(
    rf"\bpriority\b(?:\s+(?:level|of|is))*\s*({_OPERATOR_PATTERN})?\s*(\d+)"
)
PHASE_RE = re.compile(r"\bphases?\s*(\d+(?:\s*(?:,|-|and)\s*\d+)*)")
SKILLS_RE = re.compile(
    r"\bskills?\s+(?:include|includes|including|having|with|of|like)\s+([a-z][a-z0-9\s,+#.-]*)"
)
LOCATION_RE = re.compile(r"\b(?:location|in|at)\s+(?:is\s+|of\s+)?([a-z][a-z\s]*)")
NAME_RE = re.compile(
    r"\bnames?\s+(?:include|includes|including|containing|contains|with|like)\s+([a-z][a-z\s]*)"
)
LIST_SPLIT_RE = re.compile(r",|\band\b|\bor\b")

PHRASE_STOPWORDS = {
    "and", "or", "with", "who", "that", "where", "whose", "having", "which",
    "in", "at", "for", "phase", "phases", "duration", "priority", "skill",
    "skills", "name", "names", "location",
}

WEIGHTS = {
    "duration": 10,
    "priority": 8,
    "phase": 6,
    "task_skill": 4,
    "worker_skill": 6,
    "name": 5,
    "location": 8,
    "token": 2,
}


@dataclass(frozen=True)
class Comparison:
    operator: str
    value: int

    def matches(self, candidate: Any) -> bool:
        if not is_int(candidate):
            return False
        return COMPARATORS[self.operator](candidate, self.value)

    def to_dict(self) -> dict[str, Any]:
        return {"operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class SearchCriteria:
    duration: Optional[Comparison] = None
    priority: Optional[Comparison] = None
    phases: Optional[tuple[int, ...]] = None
    skills: Optional[tuple[str, ...]] = None
    location: Optional[str] = None
    name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.duration is not None:
            payload["duration"] = self.duration.to_dict()
        if self.priority is not None:
            payload["priority"] = self.priority.to_dict()
        if self.phases is not None:
            payload["phases"] = list(self.phases)
        if self.skills is not None:
            payload["skills"] = list(self.skills)
        if self.location is not None:
            payload["location"] = self.location
        if self.name is not None:
            payload["name"] = self.name
        return payload


@dataclass(frozen=True)
class SearchResult:
    entity: str
    id: str
    match: str
    score: int

    def to_dict(self) -> dict[str, Any]:
        return {"entity": self.entity, "id": self.id, "match": self.match, "score": self.score}


# ══════════════════════════════════════════════════════════════════════════════
# QUERY PARSING
# ══════════════════════════════════════════════════════════════════════════════

def _normalise_operator(token: Optional[str]) -> str:
    if not token:
        return "="
    return OPERATOR_WORDS.get(token, token)


def _trim_phrase(phrase: str) -> str:
    """Keep leading words up to the first connective ("in", "with", ...)."""
    words = []
    for word in phrase.split():
        if word in PHRASE_STOPWORDS:
            break
        words.append(word)
    return " ".join(words)


def _comparison(pattern: re.Pattern, query: str) -> Optional[Comparison]:
    match = pattern.search(query)
    if match is None:
        return None
    return Comparison(_normalise_operator(match.group(1)), int(match.group(2)))


def extract_criteria(query: str) -> SearchCriteria:
    query = (query or "").lower()

    phases = None
    phase_match = PHASE_RE.search(query)
    if phase_match:
        phases = tuple(parse_phase_list(phase_match.group(1).replace("and", ","))) or None

    skills = None
    skills_match = SKILLS_RE.search(query)
    if skills_match:
        pieces = (_trim_phrase(piece) for piece in LIST_SPLIT_RE.split(skills_match.group(1)))
        skills = tuple(unique_in_order(piece for piece in pieces if piece)) or None

    location = None
    for location_match in LOCATION_RE.finditer(query):
        location = _trim_phrase(location_match.group(1)) or None
        if location:
            break

    name = None
    name_match = NAME_RE.search(query)
    if name_match:
        name = _trim_phrase(name_match.group(1)) or None

    return SearchCriteria(
        duration=_comparison(DURATION_RE, query),
        priority=_comparison(PRIORITY_RE, query),
        phases=phases,
        skills=skills,
        location=location,
        name=name,
    )


# ══════════════════════════════════════════════════════════════════════════════
# SCORING
# ══════════════════════════════════════════════════════════════════════════════

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _items(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _contains(haystack: Any, needle: str) -> bool:
    return bool(needle) and needle in _text(haystack).lower()


def _skill_hits(skills: Optional[tuple[str, ...]], record_skills: Any) -> int:
    if not skills:
        return 0
    lowered = [_text(skill).lower() for skill in _items(record_skills)]
    return sum(1 for skill in skills if any(skill in candidate for candidate in lowered))


def _phase_overlap(phases: Optional[tuple[int, ...]], record_phases: Any) -> bool:
    if not phases:
        return False
    present = set(phase for phase in _items(record_phases) if is_int(phase))
    return any(phase in present for phase in phases)


def _token_score(query: str, parts: Iterable[Any]) -> int:
    searchable = " ".join(_text(part) for part in parts).lower()
    if not searchable:
        return 0
    hits = sum(1 for token in query.lower().split() if token in searchable)
    return hits * WEIGHTS["token"]


def score_task(task: Task, criteria: SearchCriteria, query: str) -> int:
    score = 0
    if criteria.duration is not None and criteria.duration.matches(task.duration):
        score += WEIGHTS["duration"]
    if criteria.priority is not None and criteria.priority.matches(task.priority_level):
        score += WEIGHTS["priority"]
    if _phase_overlap(criteria.phases, task.preferred_phases):
        score += WEIGHTS["phase"]
    score += _skill_hits(criteria.skills, task.required_skills) * WEIGHTS["task_skill"]
    if criteria.name is not None and _contains(task.name, criteria.name):
        score += WEIGHTS["name"]

    applicable = (criteria.duration, criteria.priority, criteria.phases, criteria.skills, criteria.name)
    if all(value is None for value in applicable):
        score += _token_score(query, [task.task_id, task.name, *_items(task.required_skills)])
    return score


def score_worker(worker: Worker, criteria: SearchCriteria, query: str) -> int:
    score = _skill_hits(criteria.skills, worker.skills) * WEIGHTS["worker_skill"]
    if _phase_overlap(criteria.phases, worker.available_slots):
        score += WEIGHTS["phase"]
    if criteria.location is not None and _contains(worker.location, criteria.location):
        score += WEIGHTS["location"]
    if criteria.name is not None and _contains(worker.name, criteria.name):
        score += WEIGHTS["name"]

    applicable = (criteria.skills, criteria.phases, criteria.location, criteria.name)
    if all(value is None for value in applicable):
        score += _token_score(
            query, [worker.worker_id, worker.name, worker.location, *_items(worker.skills)]
        )
    return score


def score_client(client: Client, criteria: SearchCriteria, query: str) -> int:
    score = 0
    if criteria.priority is not None and criteria.priority.matches(client.priority_level):
        score += WEIGHTS["priority"]
    if criteria.location is not None and _contains(client.location, criteria.location):
        score += WEIGHTS["location"]
    if criteria.name is not None and _contains(client.name, criteria.name):
        score += WEIGHTS["name"]

    applicable = (criteria.priority, criteria.location, criteria.name)
    if all(value is None for value in applicable):
        score += _token_score(
            query, [client.client_id, client.name, client.location, client.contact_info]
        )
    return score


def _joined(values: Any) -> str:
    return ", ".join(_text(value) for value in _items(values))


def describe_match(record: Any, criteria: SearchCriteria) -> str:
    parts = []
    if criteria.duration is not None and isinstance(record, Task):
        parts.append(f"Duration: {record.duration}")
    priority = getattr(record, "priority_level", None)
    if criteria.priority is not None and priority not in (None, ""):
        parts.append(f"Priority: {priority}")
    if criteria.phases is not None:
        if isinstance(record, Task) and _items(record.preferred_phases):
            parts.append(f"Phases: {_joined(record.preferred_phases)}")
        elif isinstance(record, Worker) and _items(record.available_slots):
            parts.append(f"Slots: {_joined(record.available_slots)}")
    if criteria.skills is not None:
        skills = record.required_skills if isinstance(record, Task) else getattr(record, "skills", ())
        if _items(skills):
            parts.append(f"Skills: {_joined(skills)}")
    location = _text(getattr(record, "location", ""))
    if location:
        parts.append(f"Location: {location}")
    if not parts and _text(record.name):
        parts.append(f"Name: {_text(record.name)}")
    return " | ".join(parts)


def search(
    query: str,
    clients: Sequence[Client],
    workers: Sequence[Worker],
    tasks: Sequence[Task],
) -> list[SearchResult]:
    """Rank records against `query`. Tasks, then workers, then clients on ties."""
    query = _text(query)
    if not query:
        return []
    criteria = extract_criteria(query)
    results: list[SearchResult] = []

    scored = (
        [("tasks", task, score_task(task, criteria, query)) for task in tasks]
        + [("workers", worker, score_worker(worker, criteria, query)) for worker in workers]
        + [("clients", client, score_client(client, criteria, query)) for client in clients]
    )
    for entity, record, score in scored:
        if score <= 0:
            continue
        results.append(
            SearchResult(
                entity=entity,
                id=_text(record.record_id),
                match=describe_match(record, criteria),
                score=score,
            )
        )

    return sorted(results, key=lambda result: result.score, reverse=True)
