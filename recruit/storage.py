"""Tenant-scoped candidate storage.

All reads and writes take the tenant as an explicit argument; the tenant in a
payload is never trusted.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Candidate

logger = logging.getLogger(__name__)

# Never written from a payload
PROTECTED_COLUMNS = frozenset({"id", "tenant_id"})


def identity_lock_keys(
    tenant_id: str,
    email: str | None,
    linkedin_url: str | None,
) -> list[str]:
    """Lock keys for one identity, sorted so concurrent callers lock in the same order."""
    keys = []
    if email:
        keys.append(f"candidate:{tenant_id}:email:{email}")
    if linkedin_url:
        keys.append(f"candidate:{tenant_id}:linkedin:{linkedin_url}")
    return sorted(keys)


class CandidateStore:
    """Repository for Candidate database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_candidate(self, tenant_id: str, **criteria: Any) -> Candidate | None:
        """Return the first candidate in the tenant whose columns equal ``criteria``."""
        query = select(Candidate).where(Candidate.tenant_id == tenant_id)
        for column, value in criteria.items():
            query = query.where(getattr(Candidate, column) == value)
        query = query.order_by(Candidate.id).limit(1)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_candidate(self, tenant_id: str, candidate_id: int) -> Candidate | None:
        """Get a candidate by ID for a specific tenant."""
        return await self.find_candidate(tenant_id, id=candidate_id)

    async def insert_candidate(self, tenant_id: str, values: Mapping[str, Any]) -> Candidate:
        """Create a new candidate in ``tenant_id``."""
        candidate = Candidate(tenant_id=tenant_id, **self._writable(values))
        self.session.add(candidate)
        await self.session.flush()
        await self.session.refresh(candidate)
        return candidate

    async def update_candidate(
        self,
        tenant_id: str,
        candidate_id: int,
        values: Mapping[str, Any],
    ) -> Candidate | None:
        """Apply ``values`` to an existing candidate. Missing keys are left untouched."""
        candidate = await self.get_candidate(tenant_id, candidate_id)
        if candidate is None:
            return None

        for column, value in self._writable(values).items():
            setattr(candidate, column, value)

        await self.session.flush()
        await self.session.refresh(candidate)
        return candidate

    @asynccontextmanager
    async def identity_lock(
        self,
        tenant_id: str,
        email: str | None,
        linkedin_url: str | None,
    ) -> AsyncIterator[None]:
        """Serialize resolve-then-write for one identity.

        On PostgreSQL this takes transaction-scoped advisory locks, released on
        commit or rollback. Other dialects get no locking.
        """
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            for key in identity_lock_keys(tenant_id, email, linkedin_url):
                await self.session.execute(
                    text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                    {"key": key},
                )
        yield

    @staticmethod
    def _writable(values: Mapping[str, Any]) -> dict[str, Any]:
        columns = Candidate.column_names() - PROTECTED_COLUMNS
        writable = {k: v for k, v in values.items() if k in columns}
        ignored = set(values) - columns - PROTECTED_COLUMNS
        if ignored:
            logger.debug(f"Ignoring non-column fields: {sorted(ignored)}")
        return writable
