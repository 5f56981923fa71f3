"""Individual candidate scores.

Each function takes a plain candidate mapping (model field names), never
raises, and returns a value in [0, 10] rounded to 2 decimals.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from recruit.pipelines.sanitization import parse_timestamp
from scoring.keywords import OPEN_TO_WORK_KEYWORDS, PASSIVE_KEYWORDS, URGENT_KEYWORDS
from scoring.stability import job_stability, round_score

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 5.0
MAX_SCORE = 10.0

RECENCY_WEIGHT = 0.4
CONNECTIONS_WEIGHT = 0.2
NOTES_WEIGHT = 0.2
COMPLETENESS_WEIGHT = 0.2


class Priority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass
class IndividualScores:
    """Sub-scores for one candidate plus the derived priority."""
    open_to_work_score: float
    job_stability_score: float
    platform_engagement_score: float
    skill_match_score: float
    average: float
    priority: Priority

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["priority"] = self.priority.value
        return data


def open_to_work_score(candidate: Mapping[str, Any]) -> float:
    """Availability signal from the open-to-work flag and summary keywords.

    An explicit flag scores 10. Otherwise primary phrases add 2, urgency
    modifiers 1 and passive phrases 0.5, capped at 10. Without any primary
    phrase the result is the neutral 5.
    """
    if candidate.get("open_to_work") is True:
        return MAX_SCORE

    text = " ".join([
        candidate.get("summary") or "",
        candidate.get("linkedin_summary") or "",
    ]).lower()

    score = 0.0
    matches = 0
    for keyword in OPEN_TO_WORK_KEYWORDS:
        if keyword in text:
            matches += 1
            score += 2
    for keyword in URGENT_KEYWORDS:
        if keyword in text:
            score += 1
    for keyword in PASSIVE_KEYWORDS:
        if keyword in text:
            score += 0.5

    if matches == 0:
        return NEUTRAL_SCORE

    return round_score(min(MAX_SCORE, score))


def job_stability_score(candidate: Mapping[str, Any], *, now: datetime | None = None) -> float:
    experience = candidate.get("experience")
    if not experience or not isinstance(experience, list):
        return 0.0
    return job_stability(experience, now=now).scaled_score


def _recency_score(days: int) -> int:
    if days <= 7:
        return 10
    if days <= 30:
        return 8
    if days <= 90:
        return 6
    if days <= 180:
        return 4
    return 2


def _connections_score(connections: int) -> int:
    if connections >= 500:
        return 10
    if connections >= 200:
        return 8
    if connections >= 100:
        return 6
    if connections >= 50:
        return 4
    return 2


def _notes_score(length: int) -> int:
    if length > 500:
        return 10
    if length > 200:
        return 8
    if length > 100:
        return 6
    if length > 0:
        return 4
    return 2


def _completeness_points(candidate: Mapping[str, Any]) -> list[int]:
    points = []
    summary = candidate.get("linkedin_summary") or ""
    if len(summary) > 50:
        points.append(3)
    if candidate.get("experience"):
        points.append(3)
    if candidate.get("skills"):
        points.append(2)
    if candidate.get("email"):
        points.append(2)
    return points


def platform_engagement_score(candidate: Mapping[str, Any], *, now: datetime | None = None) -> float:
    """Weighted LinkedIn activity score.

    Factors: last-active recency (0.4), connections (0.2), notes length (0.2)
    and profile completeness (0.2). Only factors with data contribute; with
    none the result is the neutral 5.
    """
    now = now or datetime.now(timezone.utc)
    score = 0.0
    factors = 0

    last_active = parse_timestamp(candidate.get("linkedin_last_active"))
    if last_active is not None:
        days = (now - last_active).days
        score += _recency_score(days) * RECENCY_WEIGHT
        factors += 1

    connections = candidate.get("linkedin_connections")
    if isinstance(connections, (int, float)) and not isinstance(connections, bool) and connections:
        score += _connections_score(connections) * CONNECTIONS_WEIGHT
        factors += 1

    notes = candidate.get("linkedin_notes")
    if isinstance(notes, str) and notes:
        score += _notes_score(len(notes)) * NOTES_WEIGHT
        factors += 1

    points = _completeness_points(candidate)
    if points:
        score += sum(points) / len(points) * 2 * COMPLETENESS_WEIGHT
        factors += 1

    if factors == 0:
        return NEUTRAL_SCORE

    return round_score(min(MAX_SCORE, score))


def skill_match_score(candidate: Mapping[str, Any]) -> float:
    """Skill-count bucketing.

    Placeholder until skills are matched against a job description: it only
    counts skills and ignores their relevance.
    """
    skills = candidate.get("skills")
    if not skills or not isinstance(skills, list):
        return 0.0

    count = len(skills)
    if count >= 20:
        return 10.0
    if count >= 15:
        return 8.0
    if count >= 10:
        return 6.0
    if count >= 5:
        return 4.0
    return 2.0


def classify_priority(average: float) -> Priority:
    if average >= 7:
        return Priority.HIGH
    if average >= 5:
        return Priority.MEDIUM
    return Priority.LOW


def compute_scores(candidate: Mapping[str, Any], *, now: datetime | None = None) -> IndividualScores:
    """Compute every individual score and the priority for a candidate.

    Args:
        candidate: Candidate fields, e.g. ``Candidate.to_dict()``
        now: Clock override for tests

    Returns:
        IndividualScores. The priority is classified on the unrounded
        average of the four sub-scores.
    """
    sub_scores = {
        "open_to_work_score": open_to_work_score(candidate),
        "job_stability_score": job_stability_score(candidate, now=now),
        "platform_engagement_score": platform_engagement_score(candidate, now=now),
        "skill_match_score": skill_match_score(candidate),
    }
    average = sum(sub_scores.values()) / len(sub_scores)
    priority = classify_priority(average)

    logger.debug(f"Scores for candidate {candidate.get('id')}: {sub_scores}, priority {priority.value}")

    return IndividualScores(
        **sub_scores,
        average=round_score(average),
        priority=priority,
    )
