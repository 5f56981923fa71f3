"""Record merge engine for duplicate candidates.

Source precedence, lowest to highest: stored record < newly supplied data <
freshly fetched enrichment data. Identity drift detected by the resolver is
applied after the overlay, and the result is sanitized before it is returned.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Mapping

from ..models import utcnow
from .identity import MatchedBy
from .sanitization import sanitize

logger = logging.getLogger(__name__)

# Union of all three sources, first occurrence wins
UNION_FIELDS: tuple[str, ...] = ("skills", "certifications")

# Entries have no identity of their own, so whole lists override
OVERRIDE_FIELDS: tuple[str, ...] = ("experience", "education")

# Never taken from incoming or enrichment payloads
NON_OVERLAY_FIELDS = frozenset({"id", "tenant_id", "alternate_email"})

ENRICHMENT_FIELDS: tuple[str, ...] = ("last_enriched", "enrichment_date", "enrichment_status")

TRACKED_FIELDS: tuple[str, ...] = (
    "name",
    "email",
    "phone",
    "title",
    "company",
    "linkedin_url",
    "current_company",
    "current_title",
    "linkedin_headline",
    "linkedin_connections",
)


def _present(record: Mapping[str, Any] | None) -> dict[str, Any]:
    """Fields that take part in an overlay: not None and not protected."""
    if not record:
        return {}
    return {
        key: value
        for key, value in record.items()
        if value is not None and key not in NON_OVERLAY_FIELDS
    }


def _dedupe_key(item: Any) -> tuple[str, str]:
    if isinstance(item, str):
        return ("str", item)
    return ("json", json.dumps(item, sort_keys=True, default=str))


def merge_lists(*lists: Iterable[Any] | None) -> list[Any]:
    """Ordered union of several lists.

    Strings are compared exactly (case-sensitive); structured items by deep
    equality. Non-list arguments are skipped.
    """
    merged: list[Any] = []
    seen: set[tuple[str, str]] = set()

    for items in lists:
        if not isinstance(items, (list, tuple)):
            continue
        for item in items:
            key = _dedupe_key(item)
            if key not in seen:
                seen.add(key)
                merged.append(item)

    return merged


def _first_non_empty(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return []


def merge_records(
    existing: Mapping[str, Any],
    incoming: Mapping[str, Any],
    enriched: Mapping[str, Any] | None,
    matched_by: MatchedBy | str | None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Merge a stored candidate with new and enriched data.

    Args:
        existing: Stored record (lowest precedence)
        incoming: Newly supplied data, identifiers already normalized
        enriched: Freshly fetched profile data, or None when enrichment failed
            or was skipped
        matched_by: How the resolver matched ``existing``; None for an
            explicit update by id (no drift handling)
        now: Clock override for tests

    Returns:
        The sanitized merged record, ready for persistence.
    """
    now = now or utcnow()
    existing = dict(existing)
    incoming_fields = _present(incoming)
    enriched_fields = _present(enriched)

    merged = {**existing, **incoming_fields, **enriched_fields}

    new_email = incoming_fields.get("email")
    if matched_by == MatchedBy.LINKEDIN and new_email and new_email != existing.get("email"):
        logger.info(f"Email changed: {existing.get('email')} -> {new_email}")
        merged["alternate_email"] = existing.get("email")
        merged["email"] = new_email

    new_linkedin_url = incoming_fields.get("linkedin_url")
    if (
        matched_by == MatchedBy.EMAIL
        and new_linkedin_url
        and new_linkedin_url != existing.get("linkedin_url")
    ):
        logger.info(f"LinkedIn URL changed: {existing.get('linkedin_url')} -> {new_linkedin_url}")
        merged["linkedin_url"] = new_linkedin_url

    merged["tenant_id"] = existing.get("tenant_id")
    if "id" in existing:
        merged["id"] = existing["id"]

    for field in UNION_FIELDS:
        merged[field] = merge_lists(
            existing.get(field),
            incoming_fields.get(field),
            enriched_fields.get(field),
        )

    for field in OVERRIDE_FIELDS:
        merged[field] = _first_non_empty(
            incoming_fields.get(field),
            existing.get(field),
            enriched_fields.get(field),
        )

    if enriched is not None:
        merged["last_enriched"] = now
        merged["enrichment_date"] = now
        merged["enrichment_status"] = "completed"
    else:
        for field in ENRICHMENT_FIELDS:
            if field in existing:
                merged[field] = existing[field]
            else:
                merged.pop(field, None)

    merged["updated_at"] = now
    return sanitize(merged)


def create_record(
    incoming: Mapping[str, Any],
    enriched: Mapping[str, Any] | None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the record for a candidate seen for the first time.

    Enrichment data wins over incoming data; list fields follow the same
    rules as :func:`merge_records`.
    """
    now = now or utcnow()
    incoming_fields = _present(incoming)
    enriched_fields = _present(enriched)

    record = {**incoming_fields, **enriched_fields}
    for field in UNION_FIELDS:
        record[field] = merge_lists(incoming_fields.get(field), enriched_fields.get(field))
    for field in OVERRIDE_FIELDS:
        record[field] = _first_non_empty(incoming_fields.get(field), enriched_fields.get(field))

    if enriched is not None:
        record["last_enriched"] = now
        record["enrichment_date"] = now
        record["enrichment_status"] = "completed"

    record["created_at"] = now
    record["updated_at"] = now
    return sanitize(record)


def calculate_changes(old: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Old/new pairs for tracked fields whose value changed."""
    return {
        field: {"old": old.get(field), "new": new.get(field)}
        for field in TRACKED_FIELDS
        if old.get(field) != new.get(field)
    }
