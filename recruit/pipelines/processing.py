"""Candidate processing pipeline.

Resolves an incoming candidate against the tenant's records, refreshes its
LinkedIn data, merges and persists the result, then recomputes the individual
scores.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from scoring.individual import IndividualScores, compute_scores
from ..enrichment import EnrichmentContext, LinkedInEnricher
from ..models import Candidate, utcnow
from ..storage import CandidateStore
from .identity import IdentityResolver, MatchedBy, normalize_email, normalize_linkedin_url
from .merge import calculate_changes, create_record, merge_records

logger = logging.getLogger(__name__)

MATCHED_BY_ID = "candidate_id"


@dataclass
class ProcessedCandidate:
    """Result of processing one incoming candidate."""
    candidate_id: int
    is_new: bool
    candidate: Candidate
    matched_by: MatchedBy | str | None = None
    changes: dict[str, dict[str, Any]] | None = None
    field_changes: dict[str, dict[str, Any]] = field(default_factory=dict)
    was_enriched: bool = False
    scores: IndividualScores | None = None


class CandidateProcessingError(Exception):
    """Raised when candidate processing fails."""
    pass


class CandidateNotFoundError(CandidateProcessingError):
    """Raised when an explicitly addressed candidate does not exist in the tenant."""

    def __init__(self, tenant_id: str, candidate_id: int):
        super().__init__(f"Candidate {candidate_id} not found in tenant {tenant_id}")
        self.tenant_id = tenant_id
        self.candidate_id = candidate_id


def prepare_incoming(incoming: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize identifiers; ``email``/``linkedin_url`` become None when blank."""
    payload = dict(incoming)
    payload["email"] = normalize_email(payload.get("email"))
    payload["linkedin_url"] = normalize_linkedin_url(payload.get("linkedin_url"))
    return payload


async def _enrich(
    enricher: LinkedInEnricher | None,
    linkedin_url: str | None,
    context: EnrichmentContext | None,
) -> dict[str, Any] | None:
    """Fetch fresh profile data; any failure means no enrichment this round."""
    if enricher is None or not linkedin_url:
        return None
    try:
        return await enricher.fetch_profile(linkedin_url, context=context)
    except Exception as e:
        logger.warning(f"LinkedIn enrichment failed for {linkedin_url}, continuing without it: {e}")
        return None


def score_values(scores: IndividualScores) -> dict[str, Any]:
    return {
        "open_to_work_score": scores.open_to_work_score,
        "job_stability_score": scores.job_stability_score,
        "platform_engagement_score": scores.platform_engagement_score,
        "skill_match_score": scores.skill_match_score,
        "hireability_score": scores.average,
        "priority": scores.priority.value,
    }


async def _apply_scores(
    store: CandidateStore,
    tenant_id: str,
    candidate: Candidate,
    now: datetime | None,
) -> tuple[Candidate, IndividualScores]:
    scores = compute_scores(candidate.to_dict(), now=now)
    updated = await store.update_candidate(tenant_id, candidate.id, score_values(scores))
    return updated, scores


async def process_candidate(
    session: AsyncSession,
    incoming: Mapping[str, Any],
    tenant_id: str,
    *,
    enricher: LinkedInEnricher | None = None,
    candidate_id: int | None = None,
    score: bool = True,
    context: EnrichmentContext | None = None,
    now: datetime | None = None,
) -> ProcessedCandidate:
    """Resolve, enrich, merge and persist one incoming candidate.

    Steps:
    1. Normalize identifiers
    2. Lock the identity and resolve it against the tenant
    3. Fetch fresh LinkedIn data (failure is not fatal)
    4. Merge with the stored record, or build a new one
    5. Persist, score and commit

    Args:
        session: Database session; committed on success, rolled back on error
        incoming: Candidate fields from ingestion or the API
        tenant_id: Owning tenant
        enricher: LinkedIn enricher; None skips enrichment
        candidate_id: Update this candidate instead of resolving identity
        score: Recompute individual scores after the write
        context: Per-operation enrichment cache
        now: Clock override for tests

    Returns:
        ProcessedCandidate

    Raises:
        CandidateNotFoundError: ``candidate_id`` is not in the tenant
        CandidateProcessingError: Storage failure; nothing was written
    """
    payload = prepare_incoming(incoming)
    email = payload["email"]
    linkedin_url = payload["linkedin_url"]
    store = CandidateStore(session)
    now = now or utcnow()

    try:
        if candidate_id is not None:
            result = await _update_specific(store, payload, tenant_id, candidate_id, enricher, context, now)
        else:
            async with store.identity_lock(tenant_id, email, linkedin_url):
                result = await _resolve_and_write(store, payload, tenant_id, enricher, context, now)

        if score:
            result.candidate, result.scores = await _apply_scores(store, tenant_id, result.candidate, now)

        await session.commit()

    except CandidateNotFoundError:
        await session.rollback()
        raise
    except Exception as e:
        logger.error(f"Candidate processing failed: {e}", exc_info=True)
        await session.rollback()
        raise CandidateProcessingError(f"Processing failed: {e}") from e

    logger.info(
        f"Processed candidate {result.candidate_id} for tenant {tenant_id} "
        f"(new={result.is_new}, matched_by={result.matched_by}, enriched={result.was_enriched})"
    )
    return result


async def _resolve_and_write(
    store: CandidateStore,
    payload: dict[str, Any],
    tenant_id: str,
    enricher: LinkedInEnricher | None,
    context: EnrichmentContext | None,
    now: datetime,
) -> ProcessedCandidate:
    resolution = await IdentityResolver(store).resolve(
        payload["email"], payload["linkedin_url"], tenant_id
    )

    if not resolution.matched:
        enriched = await _enrich(enricher, payload["linkedin_url"], context)
        candidate = await store.insert_candidate(tenant_id, create_record(payload, enriched, now=now))
        logger.info(f"Created candidate {candidate.id} in tenant {tenant_id}")
        return ProcessedCandidate(
            candidate_id=candidate.id,
            is_new=True,
            candidate=candidate,
            was_enriched=enriched is not None,
        )

    existing = resolution.record
    before = existing.to_dict()
    enriched = await _enrich(enricher, payload["linkedin_url"] or existing.linkedin_url, context)

    merged = merge_records(before, payload, enriched, resolution.matched_by, now=now)
    candidate = await store.update_candidate(tenant_id, existing.id, merged)

    return ProcessedCandidate(
        candidate_id=candidate.id,
        is_new=False,
        candidate=candidate,
        matched_by=resolution.matched_by,
        changes=resolution.changes,
        field_changes=calculate_changes(before, candidate.to_dict()),
        was_enriched=enriched is not None,
    )


async def _update_specific(
    store: CandidateStore,
    payload: dict[str, Any],
    tenant_id: str,
    candidate_id: int,
    enricher: LinkedInEnricher | None,
    context: EnrichmentContext | None,
    now: datetime,
) -> ProcessedCandidate:
    """Update an explicitly addressed candidate; identity drift rules do not apply."""
    existing = await store.get_candidate(tenant_id, candidate_id)
    if existing is None:
        raise CandidateNotFoundError(tenant_id, candidate_id)

    before = existing.to_dict()
    enriched = await _enrich(enricher, payload["linkedin_url"] or existing.linkedin_url, context)

    merged = merge_records(before, payload, enriched, None, now=now)
    candidate = await store.update_candidate(tenant_id, candidate_id, merged)

    return ProcessedCandidate(
        candidate_id=candidate.id,
        is_new=False,
        candidate=candidate,
        matched_by=MATCHED_BY_ID,
        field_changes=calculate_changes(before, candidate.to_dict()),
        was_enriched=enriched is not None,
    )


async def score_candidate(
    session: AsyncSession,
    tenant_id: str,
    candidate_id: int,
    *,
    now: datetime | None = None,
) -> tuple[Candidate, IndividualScores]:
    """Recompute and persist the individual scores of a stored candidate.

    Raises:
        CandidateNotFoundError: The candidate is not in the tenant
        CandidateProcessingError: Storage failure
    """
    store = CandidateStore(session)
    try:
        candidate = await store.get_candidate(tenant_id, candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(tenant_id, candidate_id)
        candidate, scores = await _apply_scores(store, tenant_id, candidate, now)
        await session.commit()
    except CandidateNotFoundError:
        await session.rollback()
        raise
    except Exception as e:
        logger.error(f"Scoring candidate {candidate_id} failed: {e}", exc_info=True)
        await session.rollback()
        raise CandidateProcessingError(f"Scoring failed: {e}") from e

    logger.info(f"Scored candidate {candidate_id}: {scores.average} ({scores.priority.value})")
    return candidate, scores
