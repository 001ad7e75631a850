"""Multi-factor candidate scoring for task-to-worker matching.

Each worker gets four sub-scores in [0, 100] for a task:

* skill match: required skills graded by the worker's proficiency level
* availability: headroom against a fixed reference capacity
* proximity: straight-line distance between worker and task
* workload balance: headroom against the business's per-worker task cap

The final score is the weighted mean of the sub-scores. Scoring is pure: it
reads only the objects passed in and never raises on missing data.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from autoassign.core.config import settings as app_settings

if TYPE_CHECKING:
    from collections.abc import Iterable

    from autoassign.models.staff_profiles import StaffProfile
    from autoassign.models.tasks import Task
    from autoassign.services.agent_configurations import AssignmentSettings

SKILL_LEVEL_POINTS: dict[str, float] = {
    "expert": 100.0,
    "advanced": 75.0,
    "intermediate": 50.0,
    "novice": 25.0,
}
# Worker without coordinates for a task that has a location.
UNKNOWN_LOCATION_SCORE = 50.0
EARTH_RADIUS_KM = 6371.0088


@dataclass(frozen=True)
class ScoreBreakdown:
    skill_match: float
    availability: float
    proximity: float
    workload_balance: float
    final: float

    def as_metrics(self) -> dict[str, float]:
        return {key: round(value, 4) for key, value in asdict(self).items()}


ZERO_SCORE = ScoreBreakdown(0.0, 0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class ScoredCandidate:
    worker: StaffProfile
    score: ScoreBreakdown


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def _names(values: Iterable[object]) -> list[str]:
    return [value for value in values if isinstance(value, str)]


def ordered_required_skills(required: Iterable[str], priorities: Iterable[str]) -> list[str]:
    """Required skills with prioritised ones first; never adds or drops skills."""
    required_list = list(dict.fromkeys(_names(required)))
    required_set = set(required_list)
    first = [skill for skill in dict.fromkeys(_names(priorities)) if skill in required_set]
    rest = [skill for skill in required_list if skill not in first]
    return first + rest


def _skill_level(skills: Mapping[str, object], skill: str) -> str | None:
    entry = skills.get(skill)
    if isinstance(entry, dict):
        level = entry.get("level")
        return level.lower() if isinstance(level, str) else None
    if isinstance(entry, str):
        return entry.lower()
    return None


def skill_match_score(
    required: Iterable[str],
    worker_skills: Mapping[str, object] | None,
    priorities: Iterable[str] = (),
) -> float:
    skills = ordered_required_skills(required, priorities)
    if not skills:
        return 100.0
    if not isinstance(worker_skills, Mapping):
        worker_skills = {}
    total = 0.0
    for skill in skills:
        level = _skill_level(worker_skills, skill)
        total += SKILL_LEVEL_POINTS.get(level or "", 0.0)
    return _clamp(total / len(skills))


def availability_score(workload: int, reference_capacity: int) -> float:
    if reference_capacity <= 0:
        return 0.0
    return _clamp(100.0 * (1 - workload / reference_capacity))


def proximity_score(
    task_location: tuple[float, float] | None,
    worker_location: tuple[float, float] | None,
    max_distance_km: float,
) -> float:
    if task_location is None:
        return 100.0
    if worker_location is None:
        return UNKNOWN_LOCATION_SCORE
    distance = haversine_km(*task_location, *worker_location)
    return _clamp(100.0 * (1 - distance / max_distance_km))


def workload_balance_score(workload: int, max_tasks: int) -> float:
    if max_tasks <= 0:
        return 0.0
    return _clamp(100.0 * (1 - workload / max_tasks))


def _weight(weights: Mapping[str, object], key: str) -> float:
    try:
        value = float(weights.get(key, 0.0))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) and value > 0 else 0.0


def combine_scores(
    weights: Mapping[str, object] | None,
    *,
    skill_match: float,
    availability: float,
    proximity: float,
    workload_balance: float,
) -> float:
    """Weighted mean normalised by the weight sum; 0 when no weight is positive.

    Weights that are missing, negative or not numbers count as 0.
    """
    if not isinstance(weights, Mapping):
        weights = {}
    parts = (
        (_weight(weights, "skill_match"), skill_match),
        (_weight(weights, "availability"), availability),
        (_weight(weights, "proximity"), proximity),
        (_weight(weights, "workload"), workload_balance),
    )
    total_weight = sum(weight for weight, _ in parts)
    if total_weight <= 0:
        return 0.0
    return _clamp(sum(weight * value for weight, value in parts) / total_weight)


def _as_list(value: object) -> list[object]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _location(obj: Task | StaffProfile) -> tuple[float, float] | None:
    if obj.latitude is None or obj.longitude is None:
        return None
    return (obj.latitude, obj.longitude)


def score_candidate(
    task: Task,
    worker: StaffProfile,
    assignment_settings: AssignmentSettings,
) -> ScoreBreakdown:
    """Score one worker against one task."""
    workload = max(0, int(worker.current_workload or 0))
    max_tasks = assignment_settings.max_tasks_per_worker
    if assignment_settings.respect_max_workload and workload >= max_tasks:
        return ZERO_SCORE

    skill = skill_match_score(
        _as_list(task.required_skills),
        worker.skills,
        _as_list(assignment_settings.skill_priorities),
    )
    availability = availability_score(workload, app_settings.scoring_reference_capacity)
    proximity = proximity_score(
        _location(task),
        _location(worker),
        app_settings.scoring_max_distance_km,
    )
    balance = workload_balance_score(workload, max_tasks)
    final = combine_scores(
        assignment_settings.weights,
        skill_match=skill,
        availability=availability,
        proximity=proximity,
        workload_balance=balance,
    )
    return ScoreBreakdown(
        skill_match=skill,
        availability=availability,
        proximity=proximity,
        workload_balance=balance,
        final=final,
    )


def rank_candidates(
    task: Task,
    workers: Iterable[StaffProfile],
    assignment_settings: AssignmentSettings,
) -> list[ScoredCandidate]:
    """Score workers and sort best first; ties keep their input order."""
    scored = [
        ScoredCandidate(worker=worker, score=score_candidate(task, worker, assignment_settings))
        for worker in workers
    ]
    return sorted(scored, key=lambda candidate: candidate.score.final, reverse=True)
