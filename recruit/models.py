"""Core SQLAlchemy models (2.x style) for the candidate store.

Every candidate belongs to exactly one tenant. Identity (email / LinkedIn URL)
is resolved by application logic, so there is deliberately no unique
constraint on either column.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Candidate(Base):
    """Candidates table."""
    __tablename__ = "candidates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Identity
    email: Mapped[str | None] = mapped_column(String(320))
    alternate_email: Mapped[str | None] = mapped_column(String(320))
    linkedin_url: Mapped[str | None] = mapped_column(String(512))

    # Profile
    name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(64))
    title: Mapped[str | None] = mapped_column(String(255))
    current_title: Mapped[str | None] = mapped_column(String(255))
    company: Mapped[str | None] = mapped_column(String(255))
    current_company: Mapped[str | None] = mapped_column(String(255))
    current_employer: Mapped[str | None] = mapped_column(String(255))
    location: Mapped[str | None] = mapped_column(String(255))
    summary: Mapped[str | None] = mapped_column(Text)

    # Collections
    skills: Mapped[list | None] = mapped_column(JSON, default=list)
    experience: Mapped[list | None] = mapped_column(JSON, default=list)
    education: Mapped[list | None] = mapped_column(JSON, default=list)
    certifications: Mapped[list | None] = mapped_column(JSON, default=list)
    languages: Mapped[list | None] = mapped_column(JSON, default=list)

    # LinkedIn enrichment
    linkedin_headline: Mapped[str | None] = mapped_column(Text)
    linkedin_summary: Mapped[str | None] = mapped_column(Text)
    linkedin_connections: Mapped[int | None] = mapped_column(Integer)
    linkedin_last_active: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    linkedin_notes: Mapped[str | None] = mapped_column(Text)
    open_to_work: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Scoring
    open_to_work_score: Mapped[float | None] = mapped_column(Float)
    job_stability_score: Mapped[float | None] = mapped_column(Float)
    platform_engagement_score: Mapped[float | None] = mapped_column(Float)
    skill_match_score: Mapped[float | None] = mapped_column(Float)
    hireability_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), default="Low", nullable=False, index=True)

    # Enrichment metadata
    enrichment_status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False)
    enrichment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_enriched: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    data_source: Mapped[str | None] = mapped_column(String(32), default="upload")
    enriched_data: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_candidates_tenant_email", "tenant_id", "email"),
        Index("ix_candidates_tenant_linkedin", "tenant_id", "linkedin_url"),
        Index("ix_candidates_created_at", "created_at"),
    )

    @classmethod
    def column_names(cls) -> frozenset[str]:
        return frozenset(c.key for c in cls.__table__.columns)

    def to_dict(self) -> dict[str, Any]:
        """Plain mapping of every column, used as merge/scoring input."""
        return {name: getattr(self, name) for name in self.column_names()}
