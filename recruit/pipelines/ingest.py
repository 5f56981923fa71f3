"""Ingestion helpers: turn uploaded rows and API payloads into candidate fields.

Spreadsheet headers and API keys vary ("Full Name", "E-mail", "linkedinUrl",
...); everything is mapped onto model column names here so the core pipeline
only ever sees one vocabulary.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

# Normalized header -> model field
FIELD_ALIASES: dict[str, str] = {
    "name": "name",
    "full_name": "name",
    "fullname": "name",
    "candidate_name": "name",
    "email": "email",
    "e_mail": "email",
    "email_address": "email",
    "mail": "email",
    "linkedin": "linkedin_url",
    "linkedin_url": "linkedin_url",
    "linkedin_profile": "linkedin_url",
    "linkedin_profile_url": "linkedin_url",
    "profile_url": "linkedin_url",
    # "LinkedIn ..." headers split at the capital I
    "linked_in": "linkedin_url",
    "linked_in_url": "linkedin_url",
    "linked_in_profile": "linkedin_url",
    "linked_in_profile_url": "linkedin_url",
    "phone": "phone",
    "phone_number": "phone",
    "mobile": "phone",
    "title": "title",
    "job_title": "title",
    "position": "title",
    "current_title": "current_title",
    "current_position": "current_title",
    "company": "company",
    "company_name": "company",
    "current_company": "current_company",
    "current_employer": "current_employer",
    "employer": "current_employer",
    "location": "location",
    "city": "location",
    "summary": "summary",
    "profile_summary": "summary",
    "about": "summary",
    "skills": "skills",
    "key_skills": "skills",
    "experience": "experience",
    "work_experience": "experience",
    "education": "education",
    "certifications": "certifications",
    "languages": "languages",
    "open_to_work": "open_to_work",
    "linkedin_headline": "linkedin_headline",
    "linkedin_summary": "linkedin_summary",
    "linkedin_connections": "linkedin_connections",
    "connections": "linkedin_connections",
    "linkedin_last_active": "linkedin_last_active",
    "linkedin_notes": "linkedin_notes",
}

LIST_FIELDS = frozenset({"skills", "certifications", "languages"})
TRUE_VALUES = frozenset({"true", "yes", "y", "1"})

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_WORD = re.compile(r"[^a-z0-9]+")


def normalize_header(header: str) -> str:
    """'Full Name' / 'fullName' / 'E-mail' -> 'full_name' / 'full_name' / 'e_mail'."""
    snake = _CAMEL_BOUNDARY.sub("_", header.strip())
    return _NON_WORD.sub("_", snake.lower()).strip("_")


def _split_list(value: Any) -> list[Any]:
    if isinstance(value, str):
        return [item.strip() for item in re.split(r"[,;\n]", value) if item.strip()]
    if isinstance(value, (list, tuple)):
        return [item.strip() if isinstance(item, str) else item for item in value if item not in (None, "")]
    return [value]


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VALUES
    return bool(value)


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    digits = re.sub(r"[^\d]", "", str(value))
    return int(digits) if digits else None


def normalize_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Map one uploaded row or payload onto candidate fields.

    Unknown columns and blank values are dropped. Skill, certification and
    language cells may be comma separated.
    """
    record: dict[str, Any] = {}

    for header, value in row.items():
        if not isinstance(header, str):
            continue
        target = FIELD_ALIASES.get(normalize_header(header))
        if target is None or value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue

        if target in LIST_FIELDS:
            value = _split_list(value)
        elif target == "open_to_work":
            value = _to_bool(value)
        elif target == "linkedin_connections":
            value = _to_int(value)
            if value is None:
                continue

        # First non-blank alias wins
        record.setdefault(target, value)

    return record
