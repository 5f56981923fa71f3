"""Candidate identity resolution within a tenant.

Matches an incoming email and/or LinkedIn URL against stored candidates using a
three-tier strategy: both identifiers, then email alone, then LinkedIn URL
alone. The first hit wins. A single-identifier hit whose other identifier
differs is reported as drift; applying it is the merge engine's job.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..models import Candidate
from ..storage import CandidateStore

logger = logging.getLogger(__name__)


class MatchedBy(str, Enum):
    """Which identifiers produced a match."""
    EMAIL_AND_LINKEDIN = "email_and_linkedin"
    EMAIL = "email"
    LINKEDIN = "linkedin"


@dataclass(frozen=True)
class FieldDrift:
    """A secondary identifier that changed between ingestions."""
    field: str
    old: str | None
    new: str | None

    def as_change(self) -> dict[str, dict[str, str | None]]:
        return {self.field: {"old": self.old, "new": self.new}}


@dataclass
class Resolution:
    """Result of resolving one incoming identity."""
    matched: bool
    record: Candidate | None = None
    matched_by: MatchedBy | None = None
    drift: FieldDrift | None = None

    @property
    def changes(self) -> dict[str, dict[str, str | None]] | None:
        return self.drift.as_change() if self.drift else None


def normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    normalized = email.strip().lower()
    return normalized or None


def normalize_linkedin_url(linkedin_url: str | None) -> str | None:
    """Trim only; URL case is preserved for identity comparison."""
    if linkedin_url is None:
        return None
    normalized = linkedin_url.strip()
    return normalized or None


class IdentityResolver:
    """Find at most one existing candidate for an incoming identity."""

    def __init__(self, store: CandidateStore):
        self.store = store

    async def find_by_email_and_linkedin(
        self, email: str, linkedin_url: str, tenant_id: str
    ) -> Candidate | None:
        return await self.store.find_candidate(
            tenant_id,
            email=normalize_email(email),
            linkedin_url=normalize_linkedin_url(linkedin_url),
        )

    async def find_by_email(self, email: str, tenant_id: str) -> Candidate | None:
        return await self.store.find_candidate(tenant_id, email=normalize_email(email))

    async def find_by_linkedin(self, linkedin_url: str, tenant_id: str) -> Candidate | None:
        return await self.store.find_candidate(
            tenant_id, linkedin_url=normalize_linkedin_url(linkedin_url)
        )

    async def resolve(
        self,
        email: str | None,
        linkedin_url: str | None,
        tenant_id: str,
    ) -> Resolution:
        """Resolve an incoming identity to an existing candidate.

        Args:
            email: Incoming email (trimmed and lowercased here)
            linkedin_url: Incoming LinkedIn URL (trimmed here)
            tenant_id: Tenant every lookup is scoped to

        Returns:
            Resolution; ``matched=False`` when nothing was found. Storage
            errors propagate.
        """
        email = normalize_email(email)
        linkedin_url = normalize_linkedin_url(linkedin_url)

        if not email and not linkedin_url:
            return Resolution(matched=False)

        if email and linkedin_url:
            existing = await self.find_by_email_and_linkedin(email, linkedin_url, tenant_id)
            if existing is not None:
                logger.info(f"Matched candidate {existing.id} by email and LinkedIn (tenant {tenant_id})")
                return Resolution(
                    matched=True,
                    record=existing,
                    matched_by=MatchedBy.EMAIL_AND_LINKEDIN,
                )

        if email:
            existing = await self.find_by_email(email, tenant_id)
            if existing is not None:
                drift = None
                if linkedin_url and existing.linkedin_url != linkedin_url:
                    drift = FieldDrift("linkedin_url", existing.linkedin_url, linkedin_url)
                logger.info(f"Matched candidate {existing.id} by email (tenant {tenant_id})")
                return Resolution(
                    matched=True,
                    record=existing,
                    matched_by=MatchedBy.EMAIL,
                    drift=drift,
                )

        if linkedin_url:
            existing = await self.find_by_linkedin(linkedin_url, tenant_id)
            if existing is not None:
                drift = None
                if email and existing.email != email:
                    drift = FieldDrift("email", existing.email, email)
                logger.info(f"Matched candidate {existing.id} by LinkedIn URL (tenant {tenant_id})")
                return Resolution(
                    matched=True,
                    record=existing,
                    matched_by=MatchedBy.LINKEDIN,
                    drift=drift,
                )

        return Resolution(matched=False)
