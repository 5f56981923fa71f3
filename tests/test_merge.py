"""
Tests for the record merge engine.
"""

from datetime import datetime, timezone

from recruit.pipelines.identity import MatchedBy
from recruit.pipelines.merge import (
    calculate_changes,
    create_record,
    merge_lists,
    merge_records,
)


EXISTING = {
    "id": 7,
    "tenant_id": "acme",
    "email": "jane@x.com",
    "linkedin_url": "https://linkedin.com/in/jane",
    "title": "A",
    "skills": ["Go"],
    "experience": [{"title": "engineer", "company": "initech"}],
    "enrichment_status": "pending",
    "last_enriched": None,
}


class TestMergeLists:
    """Ordered union."""

    def test_union_keeps_first_occurrence_order(self):
        assert merge_lists(["Go", "Rust"], ["Python", "Go"], ["Rust", "Java"]) == [
            "Go", "Rust", "Python", "Java",
        ]

    def test_merging_same_list_is_idempotent(self):
        skills = ["Go", "Kubernetes", "SQL"]
        assert merge_lists(skills, skills, skills) == skills

    def test_strings_are_case_sensitive(self):
        assert merge_lists(["Go", "go"]) == ["Go", "go"]

    def test_structured_items_use_deep_equality(self):
        cert = {"name": "cka", "issuer": "cncf"}
        assert merge_lists([cert], [{"issuer": "cncf", "name": "cka"}]) == [cert]

    def test_non_lists_are_skipped(self):
        assert merge_lists(None, "Go", ["Go"]) == ["Go"]


class TestMergeRecords:
    """Precedence, drift and metadata."""

    def test_enriched_wins_over_incoming_and_existing(self, now):
        merged = merge_records(EXISTING, {"title": "B"}, {"title": "C"}, MatchedBy.EMAIL, now=now)
        assert merged["title"] == "C"

    def test_incoming_wins_without_enrichment(self, now):
        merged = merge_records(EXISTING, {"title": "B"}, None, MatchedBy.EMAIL, now=now)
        assert merged["title"] == "B"

    def test_none_does_not_clobber_stored_value(self, now):
        merged = merge_records(EXISTING, {"linkedin_url": None, "title": None}, None, MatchedBy.EMAIL, now=now)
        assert merged["linkedin_url"] == "https://linkedin.com/in/jane"
        assert merged["title"] == "A"

    def test_linkedin_match_moves_old_email_to_alternate(self, now):
        merged = merge_records(EXISTING, {"email": "new@x.com"}, None, MatchedBy.LINKEDIN, now=now)
        assert merged["email"] == "new@x.com"
        assert merged["alternate_email"] == "jane@x.com"

    def test_drift_is_not_clobbered_by_enrichment(self, now):
        merged = merge_records(
            EXISTING,
            {"email": "new@x.com"},
            {"email": "scraped@x.com"},
            MatchedBy.LINKEDIN,
            now=now,
        )
        assert merged["email"] == "new@x.com"
        assert merged["alternate_email"] == "jane@x.com"

    def test_email_match_updates_linkedin_url(self, now):
        merged = merge_records(
            EXISTING, {"linkedin_url": "https://linkedin.com/in/jane-2"}, None, MatchedBy.EMAIL, now=now
        )
        assert merged["linkedin_url"] == "https://linkedin.com/in/jane-2"
        assert "alternate_email" not in merged

    def test_alternate_email_cannot_be_set_directly(self, now):
        merged = merge_records(EXISTING, {"alternate_email": "sneaky@x.com"}, None, MatchedBy.EMAIL, now=now)
        assert "alternate_email" not in merged

    def test_tenant_and_id_are_forced_from_existing(self, now):
        merged = merge_records(
            EXISTING, {"tenant_id": "globex", "id": 99}, {"tenant_id": "initech"}, MatchedBy.EMAIL, now=now
        )
        assert merged["tenant_id"] == "acme"
        assert merged["id"] == 7

    def test_skills_union_across_sources(self, now):
        merged = merge_records(
            EXISTING, {"skills": ["Python", "Go"]}, {"skills": ["Go", "Kubernetes"]}, MatchedBy.EMAIL, now=now
        )
        assert merged["skills"] == ["Go", "Python", "Kubernetes"]

    def test_experience_is_overridden_not_unioned(self, now):
        incoming_experience = [{"title": "lead", "company": "hooli"}]
        merged = merge_records(EXISTING, {"experience": incoming_experience}, None, MatchedBy.EMAIL, now=now)
        assert merged["experience"] == incoming_experience

    def test_empty_incoming_experience_keeps_existing(self, now):
        merged = merge_records(EXISTING, {"experience": []}, None, MatchedBy.EMAIL, now=now)
        assert merged["experience"] == EXISTING["experience"]

    def test_enrichment_metadata_set_when_enriched(self, now):
        merged = merge_records(EXISTING, {}, {"location": "berlin"}, MatchedBy.EMAIL, now=now)
        assert merged["enrichment_status"] == "completed"
        assert merged["last_enriched"] == now
        assert merged["enrichment_date"] == now

    def test_enrichment_metadata_unchanged_without_enrichment(self, now):
        merged = merge_records(EXISTING, {"enrichment_status": "completed"}, None, MatchedBy.EMAIL, now=now)
        assert merged["enrichment_status"] == "pending"
        assert merged["last_enriched"] is None
        assert "enrichment_date" not in merged

    def test_updated_at_is_refreshed(self, now):
        merged = merge_records(EXISTING, {}, None, MatchedBy.EMAIL, now=now)
        assert merged["updated_at"] == now

    def test_output_is_sanitized(self, now):
        merged = merge_records(
            EXISTING, {"linkedin_last_active": "2024-13-40"}, None, MatchedBy.EMAIL, now=now
        )
        assert "linkedin_last_active" not in merged


class TestCreateRecord:
    """First sighting of a candidate."""

    def test_enrichment_overlays_incoming(self, now):
        record = create_record(
            {"email": "jane@x.com", "location": "paris", "skills": ["Go"]},
            {"location": "berlin", "skills": ["Go", "Kubernetes"]},
            now=now,
        )
        assert record["location"] == "berlin"
        assert record["skills"] == ["Go", "Kubernetes"]
        assert record["enrichment_status"] == "completed"
        assert record["created_at"] == now

    def test_without_enrichment(self, now):
        record = create_record({"email": "jane@x.com"}, None, now=now)
        assert "enrichment_status" not in record
        assert record["skills"] == []
        assert record["experience"] == []


class TestCalculateChanges:
    """Change tracking."""

    def test_reports_only_changed_tracked_fields(self):
        old = {"name": "jane", "title": "engineer", "summary": "x"}
        new = {"name": "jane", "title": "lead", "summary": "y"}
        assert calculate_changes(old, new) == {"title": {"old": "engineer", "new": "lead"}}
