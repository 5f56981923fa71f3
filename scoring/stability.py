"""Job stability scoring from employment history.

Combines five 0-100 factor scores into a weighted total and scales it to 0-10:

    0.30 * average tenure (two most recent jobs)
    0.20 * longest tenure
    0.25 * job changes in the last five years
    0.15 * largest employment gap
    0.10 * career continuity (title category consistency)
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from recruit.pipelines.sanitization import parse_timestamp
from scoring.keywords import TITLE_CATEGORIES

logger = logging.getLogger(__name__)

AVERAGE_MONTH_DAYS = 30.44
MIN_COUNTED_GAP_MONTHS = 2
ONGOING_MARKERS = {"current", "present"}

_YEAR_MONTH = re.compile(r"^(\d{4})[/\-](\d{1,2})$")
_MONTH_YEAR = re.compile(r"(\d{1,2})[/\-](\d{4})")
_YEAR = re.compile(r"(\d{4})")
_MONTH_NAME_FORMATS = ("%b %Y", "%B %Y")


def round_score(value: float) -> float:
    """Round half-up to 2 decimals."""
    return math.floor(value * 100 + 0.5) / 100


@dataclass
class Job:
    """One experience entry with parsed dates."""
    title: str
    company: str
    start_date: datetime
    end_date: datetime | None


@dataclass
class StabilityMetrics:
    """Raw metrics derived from the experience list."""
    avg_tenure: float  # months
    longest_tenure: int  # months
    job_changes_last_5_years: int
    largest_gap: int  # months
    continuity_score: int  # 0-100


@dataclass
class StabilityScore:
    """Per-factor scores (0-100) and the combined result."""
    avg_tenure_score: int = 0
    longest_tenure_score: int = 0
    job_change_score: int = 0
    gap_score: int = 100
    continuity_score: int = 0
    final_score: int = 0  # 0-100
    scaled_score: float = 0.0  # 0-10


def parse_experience_date(value: Any, *, now: datetime) -> datetime | None:
    """Parse the loose date formats found in resumes and scraped profiles.

    Handles "Present"/"Current", ISO dates, YYYY-MM, MM/YYYY, "Jan 2020" and a
    bare year.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return parse_timestamp(value)

    text = value.strip()
    if not text:
        return None
    if text.lower() in ONGOING_MARKERS:
        return now

    parsed = parse_timestamp(text)
    if parsed is not None:
        return parsed

    match = _YEAR_MONTH.match(text)
    if match and 1 <= int(match.group(2)) <= 12:
        return datetime(int(match.group(1)), int(match.group(2)), 1, tzinfo=timezone.utc)

    match = _MONTH_YEAR.search(text)
    if match and 1 <= int(match.group(1)) <= 12:
        return datetime(int(match.group(2)), int(match.group(1)), 1, tzinfo=timezone.utc)

    for fmt in _MONTH_NAME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    match = _YEAR.search(text)
    if match:
        return datetime(int(match.group(1)), 1, 1, tzinfo=timezone.utc)

    logger.debug(f"Unparseable experience date: {value!r}")
    return None


def parse_jobs(experience: Iterable[Any], *, now: datetime) -> list[Job]:
    """Entries without a parseable start date are skipped."""
    jobs = []
    for entry in experience:
        if not isinstance(entry, Mapping):
            continue
        start = parse_experience_date(entry.get("start_date", entry.get("startDate")), now=now)
        if start is None:
            continue
        end = parse_experience_date(entry.get("end_date", entry.get("endDate")), now=now)
        jobs.append(Job(
            title=entry.get("title") or "",
            company=entry.get("company") or "",
            start_date=start,
            end_date=end,
        ))
    return jobs


def months_between(start: datetime, end: datetime) -> int:
    days = abs((end - start).total_seconds()) / 86400
    return math.ceil(days / AVERAGE_MONTH_DAYS)


def _years_before(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:  # Feb 29
        return moment.replace(year=moment.year - years, day=28)


def largest_gap_months(jobs: list[Job]) -> int:
    if len(jobs) < 2:
        return 0

    ordered = sorted(jobs, key=lambda job: job.start_date)
    largest = 0
    for previous, current in zip(ordered, ordered[1:]):
        if previous.end_date is None:
            continue
        gap_days = (current.start_date - previous.end_date).total_seconds() / 86400
        gap = math.ceil(gap_days / AVERAGE_MONTH_DAYS)
        if gap > MIN_COUNTED_GAP_MONTHS:
            largest = max(largest, gap)
    return largest


def continuity_score(jobs: list[Job]) -> int:
    """How consistently titles stay within one career category."""
    if len(jobs) <= 1:
        return 100

    best = 0.0
    for keywords in TITLE_CATEGORIES.values():
        matching = sum(
            1 for job in jobs
            if any(keyword in job.title.lower() for keyword in keywords)
        )
        best = max(best, matching / len(jobs) * 100)

    if best >= 70:
        return 100
    if best >= 50:
        return 70
    if best >= 30:
        return 40
    return 20


def calculate_metrics(experience: Iterable[Any], *, now: datetime) -> StabilityMetrics:
    jobs = parse_jobs(experience, now=now)
    tenures = [months_between(job.start_date, job.end_date or now) for job in jobs]

    # Entries are listed most recent first
    recent = tenures[:2]
    avg_tenure = sum(recent) / len(recent) if recent else 0.0

    five_years_ago = _years_before(now, 5)
    recent_jobs = [job for job in jobs if job.start_date >= five_years_ago]

    return StabilityMetrics(
        avg_tenure=avg_tenure,
        longest_tenure=max(tenures, default=0),
        job_changes_last_5_years=max(0, len(recent_jobs) - 1),
        largest_gap=largest_gap_months(jobs),
        continuity_score=continuity_score(jobs),
    )


def score_average_tenure(months: float) -> int:
    if months >= 24:
        return 100
    if months >= 18:
        return 75
    if months >= 12:
        return 50
    if months >= 6:
        return 25
    return 0


def score_longest_tenure(months: int) -> int:
    if months >= 60:
        return 100
    if months >= 36:
        return 80
    if months >= 24:
        return 60
    if months >= 12:
        return 40
    return 20


def score_job_changes(changes: int) -> int:
    if changes <= 1:
        return 100
    if changes == 2:
        return 80
    if changes == 3:
        return 60
    if changes == 4:
        return 40
    return 20


def score_gaps(largest_gap: int) -> int:
    if largest_gap == 0:
        return 100
    if largest_gap <= 6:
        return 70
    if largest_gap <= 12:
        return 40
    return 20


def job_stability(experience: list[Any] | None, *, now: datetime | None = None) -> StabilityScore:
    """Score employment stability on a 0-10 scale.

    Args:
        experience: Experience entries, most recent first, each with
            ``title``, ``company``, ``start_date`` and ``end_date``
        now: Clock override for tests

    Returns:
        StabilityScore; all zeros (gap score 100) when there is no experience.
    """
    if not experience:
        return StabilityScore()

    now = now or datetime.now(timezone.utc)
    metrics = calculate_metrics(experience, now=now)

    avg_tenure_score = score_average_tenure(metrics.avg_tenure)
    longest_tenure_score = score_longest_tenure(metrics.longest_tenure)
    job_change_score = score_job_changes(metrics.job_changes_last_5_years)
    gap_score = score_gaps(metrics.largest_gap)

    final = (
        0.30 * avg_tenure_score
        + 0.20 * longest_tenure_score
        + 0.25 * job_change_score
        + 0.15 * gap_score
        + 0.10 * metrics.continuity_score
    )

    return StabilityScore(
        avg_tenure_score=avg_tenure_score,
        longest_tenure_score=longest_tenure_score,
        job_change_score=job_change_score,
        gap_score=gap_score,
        continuity_score=metrics.continuity_score,
        final_score=round(final),
        scaled_score=round_score(final / 100 * 10),
    )
