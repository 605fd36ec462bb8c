"""Tests for AI analysis of errors, groups and trends."""

import json
import uuid
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi import status
from httpx import AsyncClient
from pydantic import ValidationError

from beacon.exceptions import AIProviderError, AIResponseParseError
from beacon.models.error_groups import ErrorGroup
from beacon.repositories.error_events import ErrorEventRepository
from beacon.services.ai_analysis_service import (
    AIAnalysisService,
    estimate_tokens,
    generate_error_fingerprint,
    normalize_error_message,
)
from beacon.services.ai_provider import (
    AIConfig,
    AIService,
    create_ai_service,
    parse_json_response,
)
from beacon.services.error_event_service import build_event
from beacon.services.vector_store import Document

PROJECT_ID = uuid.UUID("0f3a6b1c-2d4e-4f5a-8b6c-7d8e9f0a1b2c")

ANALYSIS = {
    "summary": "Profile rendered before the user loaded",
    "severity": "medium",
    "category": "runtime",
    "possibleCauses": ["race with the user request"],
    "suggestedFixes": [{"description": "Render a loading state", "confidence": 0.8}],
    "relatedErrors": [],
}


class FakeAI:
    """Records prompts and returns canned model output."""

    def __init__(self, response: str = json.dumps(ANALYSIS)):
        self.config = SimpleNamespace(provider="openai")
        self.default_model = "gpt-4o-mini"
        self.response = response
        self.fix = "Guard the access with optional chaining."
        self.results: list[Document] = []
        self.prompts: list[str] = []
        self.context_prompts: list[str] = []
        self.documents: list[Document] = []

    async def generate(self, prompt: str, **options: Any) -> str:
        self.prompts.append(prompt)
        return self.response

    async def generate_with_context(self, prompt: str, namespace: str, **options: Any) -> str:
        self.context_prompts.append(prompt)
        return self.fix

    async def search(self, query: str, namespace: str, **options: Any) -> list[Document]:
        return self.results

    async def add_documents(self, documents: list[Document]) -> None:
        self.documents.extend(documents)


class RecordingMainApp:
    def __init__(self):
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    async def request(self, path: str, method: str = "GET", body: dict[str, Any] | None = None):
        self.calls.append((path, method, body))
        return {"success": True}

    def features(self) -> list[str]:
        return [body["feature"] for _, _, body in self.calls]


def exception_event(error_type: str, value: str, platform: str = "python"):
    return build_event(
        PROJECT_ID,
        {"platform": platform, "exception": {"values": [{"type": error_type, "value": value}]}},
    )


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def main_app():
    return RecordingMainApp()


@pytest.fixture
def service(session_context, main_app, fake_ai):
    return AIAnalysisService(session_context, main_app, ai=fake_ai)


# ============================================================================
# UNIT TESTS - Helpers
# ============================================================================


class TestHelpers:
    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_normalize_error_message(self):
        assert normalize_error_message("Timeout after 3000ms for id 'abc'") == (
            'Timeout after Nms for id "..."'
        )
        assert normalize_error_message("  too \n  much   space ") == "too much space"

    def test_fingerprint_ignores_variable_parts(self):
        first = generate_error_fingerprint(exception_event("ValueError", "bad id 12"))
        second = generate_error_fingerprint(exception_event("ValueError", "bad id 99"))
        other_type = generate_error_fingerprint(exception_event("KeyError", "bad id 12"))
        other_platform = generate_error_fingerprint(
            exception_event("ValueError", "bad id 12", platform="node")
        )

        assert first == second
        assert len(first) == 64
        assert first != other_type
        assert first != other_platform


class TestParseJsonResponse:
    """Test recovery of JSON objects from model output."""

    def test_fenced(self):
        assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_text(self):
        assert parse_json_response('Sure! Here it is: {"a": [1, 2]} Hope it helps.') == {
            "a": [1, 2]
        }

    def test_repairs_trailing_comma(self):
        assert parse_json_response('{"a": 1, "b": 2,}') == {"a": 1, "b": 2}

    def test_no_object(self):
        with pytest.raises(AIResponseParseError):
            parse_json_response("I could not analyze this error.")


class TestAIConfig:
    """Test provider configuration."""

    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            AIConfig(provider="mistral", api_key="key")

    def test_api_key_required(self):
        with pytest.raises(ValidationError):
            AIConfig(provider="openai")

    def test_local_needs_no_key_but_is_not_implemented(self):
        config = AIConfig(provider="local")

        with pytest.raises(AIProviderError, match="Local provider not yet implemented"):
            create_ai_service(config)

    def test_openrouter_gets_default_base_url(self):
        ai = create_ai_service(AIConfig(provider="openrouter", api_key="sk-test"))

        assert isinstance(ai, AIService)
        assert ai.config.base_url == "https://openrouter.ai/api/v1"
        assert ai.default_model == "gpt-4o-mini"


# ============================================================================
# SERVICE TESTS
# ============================================================================


@pytest.mark.asyncio
class TestAIAnalysisService:
    """Test analysis, caching and usage reporting."""

    async def test_analysis_is_cached(self, service, fake_ai, main_app, make_project, make_event):
        project = await make_project(organization_id="company-1")
        event = await make_event(project)

        first = await service.analyze_error(event)
        second = await service.analyze_error(event)

        assert first == ANALYSIS
        assert second == ANALYSIS
        assert len(fake_ai.prompts) == 1
        assert "Cannot read property 'name' of undefined" in fake_ai.prompts[0]
        assert main_app.features() == ["error_analysis", "error_analysis_cached"]

        path, method, body = main_app.calls[0]
        assert (path, method) == ("/ai-usage/record", "POST")
        assert body["companyId"] == "company-1"
        assert body["appName"] == "monitoring"
        assert body["provider"] == "openai"
        assert body["success"] is True
        assert body["metadata"]["projectName"] == project.name
        assert main_app.calls[1][2]["metadata"]["cacheHit"] is True

    async def test_unparseable_response(self, service, fake_ai, main_app, make_project, make_event):
        project = await make_project(organization_id="company-1")
        event = await make_event(project)
        fake_ai.response = "I am not sure what went wrong."

        assert await service.analyze_error(event) is None
        assert main_app.calls[0][2]["success"] is False
        assert main_app.calls[0][2]["errorMessage"]

    async def test_usage_skipped_without_organization(
        self, service, main_app, make_project, make_event
    ):
        project = await make_project()
        event = await make_event(project)

        await service.analyze_error(event)

        assert main_app.calls == []

    async def test_disabled_without_api_key(self, session_context, main_app, make_project, make_event):
        project = await make_project()
        event = await make_event(project)
        disabled = AIAnalysisService(session_context, main_app)

        assert disabled.ai is None
        assert disabled.provider == "unknown"
        assert await disabled.analyze_error(event) is None
        assert await disabled.find_similar_errors(event) == []
        assert await disabled.generate_suggested_fix(event) is None
        assert await disabled.suggest_error_grouping([event, event]) is None

    async def test_index_error(self, service, fake_ai, make_project, make_event):
        project = await make_project()
        event = await make_event(project, environment="staging")

        await service.index_error(event)

        document = fake_ai.documents[0]
        assert document.id == event.id
        assert document.namespace == "errors"
        assert document.content.startswith("Error: TypeError - Cannot read property")
        assert document.metadata["projectId"] == str(project.id)
        assert document.metadata["environment"] == "staging"

    async def test_find_similar_errors(self, service, fake_ai, make_project, make_event):
        project = await make_project()
        event = await make_event(project)
        fake_ai.results = [
            Document(id="event-1", content="a", metadata={"similarity": 0.93}),
            Document(id="event-2", content="b"),
        ]

        similar = await service.find_similar_errors(event)

        assert similar == [
            {"id": "event-1", "similarity": 0.93},
            {"id": "event-2", "similarity": 0.8},
        ]

    async def test_suggested_fix_is_cached(self, service, fake_ai, make_project, make_event):
        project = await make_project()
        event = await make_event(project)

        first = await service.generate_suggested_fix(event)
        second = await service.generate_suggested_fix(event)

        assert first == fake_ai.fix
        assert second == fake_ai.fix
        assert len(fake_ai.context_prompts) == 1

    async def test_grouping_needs_two_events(self, service, make_project, make_event):
        project = await make_project()
        event = await make_event(project)

        assert await service.suggest_error_grouping([event]) is None

    async def test_grouping_defaults_suggested_groups(
        self, service, fake_ai, make_project, make_event
    ):
        project = await make_project()
        events = [await make_event(project), await make_event(project)]
        fake_ai.response = '{"reasoning": "Nothing to merge"}'

        result = await service.suggest_error_grouping(events)

        assert result == {"reasoning": "Nothing to merge", "suggestedGroups": []}
        assert events[0].id in fake_ai.prompts[0]

    async def test_analyze_trends(self, service, fake_ai, make_project):
        project = await make_project()
        fake_ai.response = json.dumps(
            {"summary": "Quiet week", "insights": [], "recommendations": [], "anomalies": []}
        )

        analysis = await service.analyze_trends(
            {"projectId": project.id, "period": "7d", "trends": [], "topErrors": []}
        )

        assert analysis["summary"] == "Quiet week"
        assert "Period: 7d" in fake_ai.prompts[0]


# ============================================================================
# INTEGRATION TESTS - API Endpoints
# ============================================================================


@pytest.mark.asyncio
class TestAIAnalysisEndpoints:
    """Test the AI routes of the monitoring application."""

    async def test_analyze(
        self, monitoring_client: AsyncClient, make_user, make_project, make_event, auth_headers
    ):
        user = await make_user()
        project = await make_project()
        event = await make_event(project)

        response = await monitoring_client.post(
            f"/api/projects/{project.id}/errors/{event.id}/analyze",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is True
        assert response.json()["analysis"]["severity"] == "high"

    async def test_analyze_unavailable(
        self,
        monitoring_client: AsyncClient,
        make_user,
        make_project,
        make_event,
        auth_headers,
        ai_analysis,
    ):
        user = await make_user()
        project = await make_project()
        event = await make_event(project)
        ai_analysis.analysis = None

        response = await monitoring_client.post(
            f"/api/projects/{project.id}/errors/{event.id}/analyze",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json() == {"error": "AI service not available"}

    async def test_analyze_unknown_event(
        self, monitoring_client: AsyncClient, make_user, make_project, auth_headers
    ):
        user = await make_user()
        project = await make_project()

        response = await monitoring_client.post(
            f"/api/projects/{project.id}/errors/missing/analyze",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_similar_and_fix(
        self,
        monitoring_client: AsyncClient,
        make_user,
        make_project,
        make_event,
        auth_headers,
        ai_analysis,
    ):
        user = await make_user()
        project = await make_project()
        event = await make_event(project)
        ai_analysis.similar = [{"id": "other", "similarity": 0.91}]

        similar = await monitoring_client.get(
            f"/api/projects/{project.id}/errors/{event.id}/similar",
            headers=auth_headers(user),
        )
        fix = await monitoring_client.post(
            f"/api/projects/{project.id}/errors/{event.id}/suggest-fix",
            headers=auth_headers(user),
        )

        assert similar.json() == {"success": True, "similarErrors": ai_analysis.similar}
        assert fix.json()["suggestedFix"] == {"description": ai_analysis.fix, "confidence": 0.85}

    async def test_suggest_fix_unavailable(
        self,
        monitoring_client: AsyncClient,
        make_user,
        make_project,
        make_event,
        auth_headers,
        ai_analysis,
    ):
        user = await make_user()
        project = await make_project()
        event = await make_event(project)
        ai_analysis.fix = None

        response = await monitoring_client.post(
            f"/api/projects/{project.id}/errors/{event.id}/suggest-fix",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json() == {"error": "Could not generate fix suggestion"}

    async def test_group_analysis(
        self,
        monitoring_client: AsyncClient,
        db_session,
        make_user,
        make_project,
        make_event,
        auth_headers,
        ai_analysis,
    ):
        user = await make_user()
        project = await make_project()
        event = await make_event(project)
        group = ErrorGroup(
            project_id=project.id,
            fingerprint_hash="b" * 64,
            fingerprint=["b"],
            title="TypeError: Cannot read property",
            type="TypeError",
            message="Cannot read property 'name' of undefined",
            platform="javascript",
        )
        db_session.add(group)
        await db_session.commit()
        await ErrorEventRepository(db_session).assign_group([event.id], group.id)

        response = await monitoring_client.get(
            f"/api/projects/{project.id}/groups/{group.id}/ai-analysis",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["aiSummary"] == ai_analysis.analysis["summary"]
        assert data["lastAnalysisDate"] is not None
        assert data["statistics"]["totalEvents"] == 1
        assert data["statistics"]["recentTrend"] == {"current": 1, "previous": 0, "changePercent": 0}
        assert ai_analysis.analyzed == [event.id]

        # A fresh analysis is reused until a refresh is forced
        await monitoring_client.get(
            f"/api/projects/{project.id}/groups/{group.id}/ai-analysis",
            headers=auth_headers(user),
        )
        await monitoring_client.get(
            f"/api/projects/{project.id}/groups/{group.id}/ai-analysis",
            headers=auth_headers(user),
            params={"refresh": "true"},
        )
        assert ai_analysis.analyzed == [event.id, event.id]

    async def test_group_analysis_missing_group(
        self, monitoring_client: AsyncClient, make_user, make_project, auth_headers
    ):
        user = await make_user()
        project = await make_project()

        response = await monitoring_client.get(
            f"/api/projects/{project.id}/groups/{uuid.uuid4()}/ai-analysis",
            headers=auth_headers(user),
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"error": "Error group not found"}

    async def test_groups_batch(
        self, monitoring_client: AsyncClient, db_session, make_user, make_project, auth_headers
    ):
        user = await make_user()
        project = await make_project()
        analyzed = ErrorGroup(
            project_id=project.id,
            fingerprint_hash="c" * 64,
            fingerprint=["c"],
            title="Analyzed",
            type="Error",
            message="c",
            platform="javascript",
            ai_summary="Already explained",
        )
        pending = ErrorGroup(
            project_id=project.id,
            fingerprint_hash="d" * 64,
            fingerprint=["d"],
            title="Pending",
            type="Error",
            message="d",
            platform="javascript",
        )
        db_session.add_all([analyzed, pending])
        await db_session.commit()

        response = await monitoring_client.post(
            f"/api/projects/{project.id}/groups/ai-analysis",
            headers=auth_headers(user),
            json={"groupIds": [str(analyzed.id), str(pending.id)], "includeStats": True},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["totalGroups"] == 2
        assert data["groupsNeedingAnalysis"] == [str(pending.id)]
        assert all(group["statistics"]["totalEvents"] == 0 for group in data["groups"])

    async def test_groups_batch_limits(
        self, monitoring_client: AsyncClient, make_user, make_project, auth_headers
    ):
        user = await make_user()
        project = await make_project()
        url = f"/api/projects/{project.id}/groups/ai-analysis"

        empty = await monitoring_client.post(url, headers=auth_headers(user), json={"groupIds": []})
        too_many = await monitoring_client.post(
            url,
            headers=auth_headers(user),
            json={"groupIds": [str(uuid.uuid4()) for _ in range(21)]},
        )

        assert empty.status_code == status.HTTP_400_BAD_REQUEST
        assert empty.json() == {"error": "groupIds array is required"}
        assert too_many.status_code == status.HTTP_400_BAD_REQUEST
        assert too_many.json() == {"error": "Maximum 20 groups can be analyzed at once"}

    async def test_trends(
        self,
        monitoring_client: AsyncClient,
        make_user,
        make_project,
        make_event,
        auth_headers,
        ai_analysis,
    ):
        user = await make_user()
        project = await make_project()
        await make_event(project)

        response = await monitoring_client.get(
            f"/api/projects/{project.id}/ai/trends",
            headers=auth_headers(user),
            params={"period": "1d"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["period"] == "1d"
        assert data["aiAnalysis"] == ai_analysis.trends
        assert data["topErrors"][0]["type"] == "TypeError"
        assert ai_analysis.trend_requests[0]["period"] == "1d"

    async def test_trends_invalid_period(
        self, monitoring_client: AsyncClient, make_user, make_project, auth_headers
    ):
        user = await make_user()
        project = await make_project()

        response = await monitoring_client.get(
            f"/api/projects/{project.id}/ai/trends",
            headers=auth_headers(user),
            params={"period": "90d"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
