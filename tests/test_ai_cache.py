"""Tests for the shared AI analysis cache."""

import uuid

import pytest
from fastapi import status
from httpx import AsyncClient

from beacon.services.ai_cache_service import (
    AICacheService,
    generate_prompt_hash,
    is_public_error,
)

FINGERPRINT = "a1" * 32


async def cache_entry(session, project_id, analysis_type="error_analysis", **fields):
    values = {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "prompt": "Analyze this error",
        "project_id": project_id,
        "error_patterns": ["TypeError", "Cannot read property 'name' of undefined"],
        "prompt_tokens": 100,
        "completion_tokens": 50,
    }
    values.update(fields)
    return await AICacheService(session).cache_analysis(
        FINGERPRINT,
        analysis_type,
        {"summary": "Null reference"},
        **values,
    )


# ============================================================================
# UNIT TESTS - Helpers
# ============================================================================


class TestHelpers:
    def test_prompt_hash_ignores_case_and_padding(self):
        assert generate_prompt_hash("  Analyze THIS ") == generate_prompt_hash("analyze this")
        assert len(generate_prompt_hash("x")) == 16

    def test_public_patterns(self):
        assert is_public_error(["TypeError", "x is undefined"])
        assert is_public_error(["Error", "connect ECONNREFUSED 127.0.0.1:5432"])
        assert is_public_error(["Error", "Unhandled error in Django view"])
        assert not is_public_error(["InvoiceMismatch", "Order total differs from ledger"])


# ============================================================================
# SERVICE TESTS
# ============================================================================


@pytest.mark.asyncio
class TestAICacheService:
    """Test storage, privacy and savings accounting."""

    async def test_cache_and_hit(self, db_session):
        project_id = uuid.uuid4()
        entry = await cache_entry(db_session, project_id)

        assert entry.is_public is True
        assert entry.usage_count == 1
        assert entry.confidence_score == 0.8
        assert entry.metadata_["initialTokens"] == {"prompt": 100, "completion": 50}

        hit = await AICacheService(db_session).get_cached_analysis(
            FINGERPRINT, "error_analysis", uuid.uuid4()
        )

        assert hit.id == entry.id
        assert hit.usage_count == 2
        assert hit.tokens_saved == 150
        assert len(hit.projects_used) == 2

    async def test_miss(self, db_session):
        await cache_entry(db_session, uuid.uuid4())

        service = AICacheService(db_session)

        assert await service.get_cached_analysis("unknown", "error_analysis") is None
        assert await service.get_cached_analysis(FINGERPRINT, "suggested_fix") is None

    async def test_private_entries_stay_with_their_projects(self, db_session):
        owner = uuid.uuid4()
        await cache_entry(
            db_session,
            owner,
            error_patterns=["InvoiceMismatch", "Order total differs from ledger"],
        )
        service = AICacheService(db_session)

        assert await service.get_cached_analysis(FINGERPRINT, "error_analysis", uuid.uuid4()) is None
        assert await service.get_cached_analysis(FINGERPRINT, "error_analysis", owner) is not None
        assert (
            await service.get_cached_analysis(
                FINGERPRINT, "error_analysis", uuid.uuid4(), respect_privacy=False
            )
            is not None
        )

    async def test_best_entry_wins(self, db_session):
        project_id = uuid.uuid4()
        await cache_entry(db_session, project_id, confidence_score=0.6)
        best = await cache_entry(db_session, project_id, confidence_score=0.95)

        hit = await AICacheService(db_session).get_cached_analysis(
            FINGERPRINT, "error_analysis", project_id
        )

        assert hit.id == best.id

    async def test_zero_confidence_is_kept(self, db_session):
        entry = await cache_entry(db_session, uuid.uuid4(), confidence_score=0.0)

        assert entry.confidence_score == 0.0

    async def test_stats(self, db_session):
        project_id = uuid.uuid4()
        await cache_entry(db_session, project_id)
        await cache_entry(db_session, project_id, analysis_type="suggested_fix", provider="openrouter")
        service = AICacheService(db_session)
        await service.get_cached_analysis(FINGERPRINT, "error_analysis", project_id)
        await service.get_cached_analysis(FINGERPRINT, "error_analysis", project_id)

        stats = await service.get_cache_stats()

        assert stats["totalCacheHits"] == 2
        assert stats["totalTokensSaved"] == 300
        assert stats["byAnalysisType"]["error_analysis"]["hits"] == 2
        assert stats["byAnalysisType"]["suggested_fix"]["hits"] == 0
        assert stats["byProvider"]["openrouter"] == {
            "hits": 0,
            "tokensSaved": 0,
            "costSavedCents": 0,
        }

    async def test_feedback_running_average(self, db_session):
        entry = await cache_entry(db_session, uuid.uuid4())
        service = AICacheService(db_session)

        assert await service.submit_feedback(FINGERPRINT, "error_analysis", 4) == 1
        assert await service.submit_feedback(FINGERPRINT, "error_analysis", 2) == 1

        await db_session.refresh(entry)
        assert entry.feedback_count == 2
        assert entry.avg_feedback_score == pytest.approx(3.0)


# ============================================================================
# INTEGRATION TESTS - API Endpoints
# ============================================================================


@pytest.mark.asyncio
class TestAICacheEndpoints:
    """Test the cache routes of the monitoring application."""

    async def test_stats_with_savings(
        self, monitoring_client: AsyncClient, db_session, make_user, auth_headers
    ):
        user = await make_user()
        project_id = uuid.uuid4()
        await cache_entry(db_session, project_id)
        await AICacheService(db_session).get_cached_analysis(
            FINGERPRINT, "error_analysis", project_id
        )

        response = await monitoring_client.get("/api/ai-cache/stats", headers=auth_headers(user))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["totalCacheHits"] == 1
        assert data["savings"] == {"estimatedCostSavedDollars": "0.00", "apiCallsSaved": 1}
        assert set(data["period"]) == {"startDate", "endDate"}

    async def test_get_cached_analysis(
        self, monitoring_client: AsyncClient, db_session, make_user, make_project, auth_headers
    ):
        user = await make_user()
        project = await make_project()
        await cache_entry(db_session, project.id)

        response = await monitoring_client.get(
            f"/api/projects/{project.id}/ai-cache/{FINGERPRINT}/error_analysis",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["analysis"] == {"summary": "Null reference"}
        assert data["cached"]["fingerprintHash"] == FINGERPRINT
        assert data["cached"]["usageCount"] == 2
        assert data["cached"]["metadata"]["initialTokens"]["prompt"] == 100

    async def test_get_cached_analysis_missing(
        self, monitoring_client: AsyncClient, make_user, make_project, auth_headers
    ):
        user = await make_user()
        project = await make_project()

        response = await monitoring_client.get(
            f"/api/projects/{project.id}/ai-cache/{FINGERPRINT}/error_analysis",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"error": "No cached analysis found"}

    async def test_invalid_analysis_type(
        self, monitoring_client: AsyncClient, make_user, make_project, auth_headers
    ):
        user = await make_user()
        project = await make_project()

        response = await monitoring_client.get(
            f"/api/projects/{project.id}/ai-cache/{FINGERPRINT}/summary",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["messages"][0]["rule"] == "enum"

    async def test_feedback_validation(self, monitoring_client: AsyncClient, make_user, auth_headers):
        user = await make_user()
        url = f"/api/ai-cache/{FINGERPRINT}/error_analysis/feedback"

        missing = await monitoring_client.post(url, headers=auth_headers(user), json={})
        too_low = await monitoring_client.post(url, headers=auth_headers(user), json={"score": 0})
        too_high = await monitoring_client.post(url, headers=auth_headers(user), json={"score": 6})

        assert missing.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert missing.json() == {
            "messages": [{"field": "score", "rule": "required", "message": "Score is required"}]
        }
        assert too_low.json()["messages"][0]["message"] == "Score must be at least 1"
        assert too_high.json()["messages"][0]["message"] == "Score must be at most 5"

    async def test_feedback(
        self, monitoring_client: AsyncClient, db_session, make_user, auth_headers
    ):
        user = await make_user()
        entry = await cache_entry(db_session, uuid.uuid4())

        response = await monitoring_client.post(
            f"/api/ai-cache/{FINGERPRINT}/error_analysis/feedback",
            headers=auth_headers(user),
            json={"score": 5},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True}
        await db_session.refresh(entry)
        assert entry.avg_feedback_score == 5
        assert entry.feedback_count == 1
