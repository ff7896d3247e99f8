"""Tests for the gate REST API."""
import pytest
from fastapi.testclient import TestClient

from contentgate.gate.app import app, get_gate
from contentgate.gate.errors import ProviderRejection, TransportError
from contentgate.gate.llm_provider import CompletionClient, DummyCompletionProvider, ModelSelectionContext
from contentgate.gate.orchestrator import ContentGate

from conftest import CLEAN_BODY, CLEAN_TITLE, KEYWORD, PRIMARY_URL, gate_responder

client = TestClient(app)

GENERATE_PAYLOAD = {
    "date": "2026-03-02",
    "platform": "hatena",
    "topic_label": KEYWORD,
    "primary_url": PRIMARY_URL,
    "asset_type": "knowledge-point",
    "primary_keyword": KEYWORD,
}


def draft_payload(**overrides):
    payload = {
        "draft": {"title": CLEAN_TITLE, "body": CLEAN_BODY},
        "platform": "hatena",
        "primary_url": PRIMARY_URL,
        "date": "2026-03-02",
        "asset_type": "knowledge-point",
        "primary_keyword": KEYWORD,
    }
    payload.update(overrides)
    return payload


def gate_with(responder, settings) -> ContentGate:
    async def no_sleep(_seconds):
        return None

    provider = DummyCompletionProvider(default=responder)
    selection = ModelSelectionContext(primary_model="primary/model", fallback_models=["backup/model"])
    return ContentGate(CompletionClient(provider, selection, sleep=no_sleep), settings=settings)


@pytest.fixture
def override_gate():
    """Install a gate built from a responder for the duration of one test."""
    def install(gate: ContentGate):
        app.dependency_overrides[get_gate] = lambda: gate

    yield install
    app.dependency_overrides.clear()


def test_gate_healthz():
    """Test gate service health check."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["status"] == "healthy"
    assert data["service"] == "gate"


def test_root():
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["generate"] == "/generate"


class TestValidateEndpoint:
    """POST /validate"""

    def test_unlinked_draft_is_invalid(self):
        """A draft without the CTA link fails with the link issue listed."""
        response = client.post("/validate", json=draft_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["validation"]["is_valid"] is False
        assert "body has no CTA link (insert the primary URL exactly once)" in data["validation"]["errors"]
        assert data["quality"]["seo_geo"]["primary_keyword"] == KEYWORD

    def test_invalid_url(self):
        response = client.post("/validate", json=draft_payload(primary_url="takkenai.jp/tools/juuyou/"))

        assert response.status_code == 422

    def test_unknown_platform(self):
        response = client.post("/validate", json=draft_payload(platform="medium"))

        assert response.status_code == 422


class TestRepairEndpoint:
    """POST /repair"""

    def test_repair_inserts_tracked_link(self):
        response = client.post("/repair", json=draft_payload())

        assert response.status_code == 200
        data = response.json()
        assert "utm_source=hatena" in data["draft"]["body"]
        assert "body has no CTA link (insert the primary URL exactly once)" not in data["remaining_issues"]

    def test_repair_rewrites_stale_year(self):
        payload = draft_payload(draft={"title": "2024年版 " + CLEAN_TITLE, "body": CLEAN_BODY})

        response = client.post("/repair", json=payload)

        assert response.status_code == 200
        assert "2024" not in response.json()["draft"]["title"]


class TestGenerateEndpoint:
    """POST /generate"""

    def test_generate(self, override_gate, test_settings):
        override_gate(gate_with(gate_responder, test_settings))

        response = client.post("/generate", json=GENERATE_PAYLOAD)

        assert response.status_code == 200
        data = response.json()
        assert data["draft"]["body_secondary"]
        assert data["bilingual_synthetic"] is False

    def test_quality_failure_is_422(self, override_gate, test_settings):
        def overclaiming(system_prompt, user_prompt, model):
            reply = gate_responder(system_prompt, user_prompt, model)
            return reply.replace(CLEAN_TITLE, f"絶対合格の{CLEAN_TITLE}", 1)

        override_gate(gate_with(overclaiming, test_settings))

        response = client.post("/generate", json=GENERATE_PAYLOAD)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "ValidationFailure"
        assert detail["issues"]

    def test_provider_rejection_is_502(self, override_gate, test_settings):
        def unauthorized(system_prompt, user_prompt, model):
            raise ProviderRejection("Unauthorized", status=401, fallback_allowed=False)

        override_gate(gate_with(unauthorized, test_settings))

        response = client.post("/generate", json=GENERATE_PAYLOAD)

        assert response.status_code == 502
        assert response.json()["detail"]["status"] == 401

    def test_timeout_is_504(self, override_gate, test_settings):
        def slow(system_prompt, user_prompt, model):
            raise TransportError("timed out", kind="timeout", model=model)

        override_gate(gate_with(slow, test_settings))

        response = client.post("/generate", json=GENERATE_PAYLOAD)

        assert response.status_code == 504

    def test_invalid_date(self, override_gate, test_settings):
        override_gate(gate_with(gate_responder, test_settings))

        response = client.post("/generate", json={**GENERATE_PAYLOAD, "date": "2026/03/02"})

        assert response.status_code == 422
