"""FastAPI app with health, candidate processing endpoints, and error handling.

Candidates are always addressed within a tenant; identity resolution, LinkedIn
enrichment, merging and scoring run in the processing pipeline.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from scoring.individual import IndividualScores
from .config import settings
from .db import get_session
from .enrichment import EnrichmentContext, LinkedInEnricher
from .logging_config import setup_logging
from .models import Candidate
from .pipelines.ingest import normalize_row
from .pipelines.processing import (
    CandidateNotFoundError,
    CandidateProcessingError,
    ProcessedCandidate,
    process_candidate,
    score_candidate,
)
from .storage import CandidateStore

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 500


# Pydantic request/response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    enrichment_enabled: bool


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


class CandidateIn(BaseModel):
    """Incoming candidate; extra keys go through field-name normalization."""
    model_config = ConfigDict(extra="allow")

    email: str | None = None
    linkedin_url: str | None = None
    name: str | None = None
    title: str | None = None
    company: str | None = None
    location: str | None = None
    summary: str | None = None
    skills: list[Any] | str | None = None
    experience: list[dict[str, Any]] | None = None
    education: list[dict[str, Any]] | None = None


class BatchRequest(BaseModel):
    """Batch of incoming candidates, e.g. rows of an uploaded sheet."""
    candidates: list[dict[str, Any]] = Field(min_length=1, max_length=MAX_BATCH_SIZE)


class ScoresDTO(BaseModel):
    """Individual scores."""
    open_to_work_score: float
    job_stability_score: float
    platform_engagement_score: float
    skill_match_score: float
    average: float
    priority: str


class CandidateDTO(BaseModel):
    """Candidate data transfer object."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    email: str | None = None
    alternate_email: str | None = None
    linkedin_url: str | None = None
    name: str | None = None
    title: str | None = None
    current_title: str | None = None
    company: str | None = None
    current_company: str | None = None
    location: str | None = None
    skills: list[Any] | None = None
    experience: list[Any] | None = None
    education: list[Any] | None = None
    certifications: list[Any] | None = None
    linkedin_headline: str | None = None
    linkedin_connections: int | None = None
    linkedin_last_active: datetime | None = None
    open_to_work: bool = False
    open_to_work_score: float | None = None
    job_stability_score: float | None = None
    platform_engagement_score: float | None = None
    skill_match_score: float | None = None
    hireability_score: float = 0.0
    priority: str
    enrichment_status: str
    last_enriched: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ProcessCandidateResponse(BaseModel):
    """Result of processing one candidate."""
    status: str
    candidate_id: int
    is_new: bool
    matched_by: str | None = None
    changes: dict[str, dict[str, Any]] | None = None
    field_changes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    was_enriched: bool
    scores: ScoresDTO | None = None
    candidate: CandidateDTO


class BatchItemResult(BaseModel):
    """Outcome for one row of a batch."""
    index: int
    status: str
    candidate_id: int | None = None
    is_new: bool | None = None
    matched_by: str | None = None
    error: str | None = None


class BatchResponse(BaseModel):
    """Batch processing summary."""
    status: str
    total: int
    created: int
    updated: int
    failed: int
    results: list[BatchItemResult]


class ScoreResponse(BaseModel):
    """Scores recomputed for a stored candidate."""
    candidate_id: int
    scores: ScoresDTO


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")

    client = httpx.AsyncClient(timeout=settings.enrichment.timeout_seconds)
    app.state.enricher = None
    if settings.enrichment.enabled:
        app.state.enricher = LinkedInEnricher(client, settings.enrichment)
        logger.info("LinkedIn enrichment enabled")
    else:
        logger.warning("APIFY_API_TOKEN not set, LinkedIn enrichment disabled")

    yield

    # Shutdown
    await client.aclose()
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Tenant-scoped candidate identity resolution, enrichment and scoring",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],  # Frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_enricher(request: Request) -> LinkedInEnricher | None:
    """Shared enricher, or None when enrichment is not configured."""
    return getattr(request.app.state, "enricher", None)


# Exception handlers
@app.exception_handler(CandidateNotFoundError)
async def not_found_error_handler(request, exc: CandidateNotFoundError):
    """Handle lookups of candidates outside the tenant."""
    logger.info(f"Not found: {exc}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(
            error="candidate_not_found",
            detail=str(exc),
        ).model_dump(),
    )


@app.exception_handler(CandidateProcessingError)
async def processing_error_handler(request, exc: CandidateProcessingError):
    """Handle candidate processing errors."""
    logger.error(f"Processing error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="processing_error",
            detail=str(exc),
        ).model_dump(),
    )


def _matched_by(value: Any) -> str | None:
    return getattr(value, "value", value)


def _scores_dto(scores: IndividualScores | None) -> ScoresDTO | None:
    return ScoresDTO(**scores.to_dict()) if scores is not None else None


def _process_response(processed: ProcessedCandidate) -> ProcessCandidateResponse:
    return ProcessCandidateResponse(
        status="created" if processed.is_new else "updated",
        candidate_id=processed.candidate_id,
        is_new=processed.is_new,
        matched_by=_matched_by(processed.matched_by),
        changes=processed.changes,
        field_changes=processed.field_changes,
        was_enriched=processed.was_enriched,
        scores=_scores_dto(processed.scores),
        candidate=CandidateDTO.model_validate(processed.candidate),
    )


def _incoming(payload: CandidateIn) -> dict[str, Any]:
    return normalize_row(payload.model_dump(exclude_none=True))


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        enrichment_enabled=settings.enrichment.enabled,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "process_candidate": "/tenants/{tenant_id}/candidates",
            "process_batch": "/tenants/{tenant_id}/candidates/batch",
            "update_candidate": "/tenants/{tenant_id}/candidates/{candidate_id}",
            "get_candidate": "/tenants/{tenant_id}/candidates/{candidate_id}",
            "score_candidate": "/tenants/{tenant_id}/candidates/{candidate_id}/score",
            "docs": "/docs",
        },
    }


@app.post(
    "/tenants/{tenant_id}/candidates",
    response_model=ProcessCandidateResponse,
    status_code=status.HTTP_200_OK,
)
async def create_or_merge_candidate(
    tenant_id: str,
    payload: CandidateIn,
    session: AsyncSession = Depends(get_session),
    enricher: LinkedInEnricher | None = Depends(get_enricher),
) -> ProcessCandidateResponse:
    """Process one candidate.

    Creates a new record when the email / LinkedIn URL is unknown in the
    tenant, otherwise merges into the matched record.
    """
    logger.info(f"Processing candidate for tenant {tenant_id}")
    processed = await process_candidate(
        session,
        _incoming(payload),
        tenant_id,
        enricher=enricher,
        context=EnrichmentContext(),
    )
    return _process_response(processed)


@app.post(
    "/tenants/{tenant_id}/candidates/batch",
    response_model=BatchResponse,
    status_code=status.HTTP_200_OK,
)
async def process_batch(
    tenant_id: str,
    request: BatchRequest,
    session: AsyncSession = Depends(get_session),
    enricher: LinkedInEnricher | None = Depends(get_enricher),
) -> BatchResponse:
    """Process uploaded rows one by one; a failing row does not stop the batch."""
    logger.info(f"Processing batch of {len(request.candidates)} candidates for tenant {tenant_id}")

    context = EnrichmentContext()
    results: list[BatchItemResult] = []

    for index, row in enumerate(request.candidates):
        try:
            processed = await process_candidate(
                session,
                normalize_row(row),
                tenant_id,
                enricher=enricher,
                context=context,
            )
        except CandidateProcessingError as e:
            logger.error(f"Batch row {index} failed: {e}")
            results.append(BatchItemResult(index=index, status="failed", error=str(e)))
            continue

        results.append(BatchItemResult(
            index=index,
            status="created" if processed.is_new else "updated",
            candidate_id=processed.candidate_id,
            is_new=processed.is_new,
            matched_by=_matched_by(processed.matched_by),
        ))

    created = sum(1 for r in results if r.status == "created")
    updated = sum(1 for r in results if r.status == "updated")
    failed = len(results) - created - updated

    return BatchResponse(
        status="success" if failed == 0 else "partial",
        total=len(results),
        created=created,
        updated=updated,
        failed=failed,
        results=results,
    )


@app.put(
    "/tenants/{tenant_id}/candidates/{candidate_id}",
    response_model=ProcessCandidateResponse,
    status_code=status.HTTP_200_OK,
)
async def update_candidate(
    tenant_id: str,
    candidate_id: int,
    payload: CandidateIn,
    session: AsyncSession = Depends(get_session),
    enricher: LinkedInEnricher | None = Depends(get_enricher),
) -> ProcessCandidateResponse:
    """Merge new data into a specific candidate, re-enriching it on the way."""
    processed = await process_candidate(
        session,
        _incoming(payload),
        tenant_id,
        enricher=enricher,
        candidate_id=candidate_id,
        context=EnrichmentContext(),
    )
    return _process_response(processed)


@app.get(
    "/tenants/{tenant_id}/candidates/{candidate_id}",
    response_model=CandidateDTO,
    status_code=status.HTTP_200_OK,
)
async def get_candidate(
    tenant_id: str,
    candidate_id: int,
    session: AsyncSession = Depends(get_session),
) -> CandidateDTO:
    """Retrieve a stored candidate."""
    candidate: Candidate | None = await CandidateStore(session).get_candidate(tenant_id, candidate_id)
    if candidate is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Candidate {candidate_id} not found in tenant {tenant_id}",
        )
    return CandidateDTO.model_validate(candidate)


@app.post(
    "/tenants/{tenant_id}/candidates/{candidate_id}/score",
    response_model=ScoreResponse,
    status_code=status.HTTP_200_OK,
)
async def rescore_candidate(
    tenant_id: str,
    candidate_id: int,
    session: AsyncSession = Depends(get_session),
) -> ScoreResponse:
    """Recompute and store the individual scores of a candidate."""
    candidate, scores = await score_candidate(session, tenant_id, candidate_id)
    return ScoreResponse(candidate_id=candidate.id, scores=_scores_dto(scores))
