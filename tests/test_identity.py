"""
Tests for tenant-scoped identity resolution.
"""

import pytest

from recruit.pipelines.identity import (
    IdentityResolver,
    MatchedBy,
    normalize_email,
    normalize_linkedin_url,
)
from recruit.storage import CandidateStore, identity_lock_keys

TENANT = "acme"
OTHER_TENANT = "globex"


async def _add(session, tenant_id, **values):
    candidate = await CandidateStore(session).insert_candidate(tenant_id, values)
    await session.commit()
    return candidate


class TestNormalization:
    """Identifier normalization."""

    def test_email_is_trimmed_and_lowercased(self):
        assert normalize_email("  J.Doe@X.com ") == "j.doe@x.com"

    def test_blank_email_is_none(self):
        assert normalize_email("   ") is None

    def test_linkedin_url_keeps_case(self):
        assert normalize_linkedin_url(" https://linkedin.com/in/JaneDoe ") == "https://linkedin.com/in/JaneDoe"


class TestResolve:
    """Three-tier resolution."""

    @pytest.mark.asyncio
    async def test_no_identifiers_is_no_match(self, session):
        resolution = await IdentityResolver(CandidateStore(session)).resolve(None, "  ", TENANT)
        assert resolution.matched is False
        assert resolution.record is None

    @pytest.mark.asyncio
    async def test_unknown_identity_is_no_match(self, session):
        await _add(session, TENANT, email="someone@x.com")
        resolution = await IdentityResolver(CandidateStore(session)).resolve("other@x.com", None, TENANT)
        assert resolution.matched is False

    @pytest.mark.asyncio
    async def test_both_identifiers_take_priority(self, session):
        # Email-only and LinkedIn-only records exist too and were inserted first
        await _add(session, TENANT, email="jane@x.com", linkedin_url="https://linkedin.com/in/other")
        await _add(session, TENANT, email="old@x.com", linkedin_url="https://linkedin.com/in/jane")
        both = await _add(session, TENANT, email="jane@x.com", linkedin_url="https://linkedin.com/in/jane")

        resolution = await IdentityResolver(CandidateStore(session)).resolve(
            "Jane@X.com", "https://linkedin.com/in/jane", TENANT
        )

        assert resolution.matched_by == MatchedBy.EMAIL_AND_LINKEDIN
        assert resolution.record.id == both.id
        assert resolution.drift is None

    @pytest.mark.asyncio
    async def test_email_match_reports_linkedin_drift(self, session):
        existing = await _add(session, TENANT, email="jane@x.com", linkedin_url="https://linkedin.com/in/jane-old")

        resolution = await IdentityResolver(CandidateStore(session)).resolve(
            "jane@x.com", "https://linkedin.com/in/jane-new", TENANT
        )

        assert resolution.matched_by == MatchedBy.EMAIL
        assert resolution.record.id == existing.id
        assert resolution.changes == {
            "linkedin_url": {
                "old": "https://linkedin.com/in/jane-old",
                "new": "https://linkedin.com/in/jane-new",
            }
        }

    @pytest.mark.asyncio
    async def test_email_match_without_incoming_url_has_no_drift(self, session):
        await _add(session, TENANT, email="jane@x.com", linkedin_url="https://linkedin.com/in/jane")

        resolution = await IdentityResolver(CandidateStore(session)).resolve("jane@x.com", None, TENANT)

        assert resolution.matched_by == MatchedBy.EMAIL
        assert resolution.drift is None

    @pytest.mark.asyncio
    async def test_linkedin_match_reports_email_drift(self, session):
        await _add(session, TENANT, email="old@x.com", linkedin_url="https://linkedin.com/in/jane")

        resolution = await IdentityResolver(CandidateStore(session)).resolve(
            "new@x.com", "https://linkedin.com/in/jane", TENANT
        )

        assert resolution.matched_by == MatchedBy.LINKEDIN
        assert resolution.drift.field == "email"
        assert resolution.drift.old == "old@x.com"
        assert resolution.drift.new == "new@x.com"

    @pytest.mark.asyncio
    async def test_linkedin_lookup_is_case_sensitive(self, session):
        await _add(session, TENANT, linkedin_url="https://linkedin.com/in/Jane")

        resolution = await IdentityResolver(CandidateStore(session)).resolve(
            None, "https://linkedin.com/in/jane", TENANT
        )

        assert resolution.matched is False

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, session):
        await _add(session, OTHER_TENANT, email="jane@x.com", linkedin_url="https://linkedin.com/in/jane")

        resolution = await IdentityResolver(CandidateStore(session)).resolve(
            "jane@x.com", "https://linkedin.com/in/jane", TENANT
        )

        assert resolution.matched is False


class _Dialect:
    def __init__(self, name):
        self.name = name


class _Bind:
    def __init__(self, dialect_name):
        self.dialect = _Dialect(dialect_name)


class RecordingSession:
    """Session stand-in that records executed statements."""

    def __init__(self, dialect_name):
        self.bind = _Bind(dialect_name)
        self.executed = []

    def get_bind(self):
        return self.bind

    async def execute(self, statement, params=None):
        self.executed.append((str(statement), params))


class TestIdentityLock:
    """Per-identity locking around resolve-then-write."""

    def test_keys_are_tenant_scoped(self):
        keys = identity_lock_keys(TENANT, "jane@x.com", "https://linkedin.com/in/jane")
        assert keys == [
            "candidate:acme:email:jane@x.com",
            "candidate:acme:linkedin:https://linkedin.com/in/jane",
        ]
        assert identity_lock_keys(OTHER_TENANT, "jane@x.com", None) != identity_lock_keys(
            TENANT, "jane@x.com", None
        )

    def test_keys_are_sorted(self):
        keys = identity_lock_keys(TENANT, "jane@x.com", "https://linkedin.com/in/jane")
        assert keys == sorted(keys)

    def test_keys_only_for_present_identifiers(self):
        assert identity_lock_keys(TENANT, "jane@x.com", None) == ["candidate:acme:email:jane@x.com"]
        assert identity_lock_keys(TENANT, None, "https://linkedin.com/in/jane") == [
            "candidate:acme:linkedin:https://linkedin.com/in/jane"
        ]
        assert identity_lock_keys(TENANT, None, None) == []
        assert identity_lock_keys(TENANT, "", "") == []

    @pytest.mark.asyncio
    async def test_postgresql_takes_one_advisory_lock_per_key(self):
        session = RecordingSession("postgresql")

        async with CandidateStore(session).identity_lock(
            TENANT, "jane@x.com", "https://linkedin.com/in/jane"
        ):
            pass

        assert len(session.executed) == 2
        assert all("pg_advisory_xact_lock" in statement for statement, _ in session.executed)
        assert [params["key"] for _, params in session.executed] == identity_lock_keys(
            TENANT, "jane@x.com", "https://linkedin.com/in/jane"
        )

    @pytest.mark.asyncio
    async def test_postgresql_without_identifiers_takes_no_lock(self):
        session = RecordingSession("postgresql")

        async with CandidateStore(session).identity_lock(TENANT, None, None):
            pass

        assert session.executed == []

    @pytest.mark.asyncio
    async def test_other_dialects_do_not_lock(self):
        session = RecordingSession("sqlite")

        async with CandidateStore(session).identity_lock(TENANT, "jane@x.com", None):
            pass

        assert session.executed == []

    @pytest.mark.asyncio
    async def test_sqlite_session_runs_body(self, session):
        entered = False

        async with CandidateStore(session).identity_lock(TENANT, "jane@x.com", None):
            entered = True
            assert await CandidateStore(session).find_candidate(TENANT, email="jane@x.com") is None

        assert entered
