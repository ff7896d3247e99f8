"""Tests for candidate selection and the generation pipeline."""
import json

import pytest

from contentgate.core.settings import Settings
from contentgate.core.storage import ContentAlreadyExistsError, ContentKey, FileContentStore, InMemoryContentStore
from contentgate.gate.errors import ProviderRejection, ValidationFailure
from contentgate.gate.llm_provider import CompletionClient, DummyCompletionProvider, ModelSelectionContext
from contentgate.gate.models import ContentDraft, GenerationRequest, QualityReport, SearchReport, SeoGeoReport
from contentgate.gate.orchestrator import (
    AI_REVIEW_FALLBACK_SUMMARY,
    CandidatePool,
    ContentGate,
    DistanceWeights,
    GenerationPipeline,
    GenerationState,
    ScoreTargets,
    build_ai_review,
    distance,
)
from contentgate.gate.platforms import Platform
from contentgate.gate.prompts import REVIEW_SYSTEM_PROMPT
from contentgate.gate.scoring import build_seo_geo_report
from contentgate.gate.validators import GateIssues

from conftest import CLEAN_BODY, CLEAN_TITLE, KEYWORD, PRIMARY_URL, clean_draft_json, gate_responder


def quality(seo=85, geo=85, search=85) -> QualityReport:
    return QualityReport(
        seo_geo=SeoGeoReport(seo_score=seo, geo_score=geo),
        search=SearchReport(score=search),
    )


async def no_sleep(_seconds):
    return None


def scripted_gate(responder, settings, store=None) -> ContentGate:
    provider = DummyCompletionProvider(default=responder)
    selection = ModelSelectionContext(primary_model="primary/model", fallback_models=["backup/model"])
    return ContentGate(CompletionClient(provider, selection, sleep=no_sleep), settings=settings, store=store)


def gate_settings(**overrides) -> Settings:
    values = dict(
        review_rounds=1,
        openrouter_api_key="",
        content_model="primary/model",
        translation_model="translate/model",
        fallback_models="backup/model",
        evidence_mode="auto",
        search_gate_mode="soft",
        ai_action_gate_mode="soft",
        allowed_note_accounts="",
    )
    values.update(overrides)
    return Settings(**values)


def drafting_responder(drafts, prompts=None):
    """Gate responder whose content drafts come from ``drafts`` in order; the last one repeats."""
    seen = [] if prompts is None else prompts

    def respond(system_prompt, user_prompt, model):
        reply = gate_responder(system_prompt, user_prompt, model)
        if reply != clean_draft_json():
            return reply
        seen.append(user_prompt)
        return drafts[min(len(seen), len(drafts)) - 1]
    return respond


KEYWORDLESS_TITLE = "契約前に確認したい説明の基本"
DEGRADED_BODY = "重要事項説明は大切です。\n\n## 重要事項説明の概要\n大切な手続きです。"
CLEAN_BODY_MARKER = "説明する相手方と時期を押さえると全体像がつかめます"


class TestDistance:
    """Candidate objective."""

    def test_at_target_is_zero(self):
        assert distance(quality(), GateIssues()) == 0.0

    def test_shortfall_is_weighted(self):
        """Search shortfall weighs 0.6 per point."""
        assert distance(quality(seo=80, search=75), GateIssues()) == 11.0

    def test_hard_issue_outweighs_scores(self):
        """A clean low scorer is closer than a high scorer with a hard issue."""
        clean = distance(quality(seo=0, geo=0, search=0), GateIssues())
        broken = distance(quality(seo=100, geo=100, search=100), GateIssues(hard=["body has no CTA link"]))

        assert clean < broken

    def test_custom_weights_and_targets(self):
        weights = DistanceWeights(seo=2.0, geo=0.0, search=0.0)

        assert distance(quality(seo=80), GateIssues(), ScoreTargets(seo=90), weights) == 20.0


class TestCandidatePool:
    """Global best tracking."""

    def test_best_and_ties(self):
        """Lowest distance wins, the earliest on ties."""
        pool = CandidatePool()
        pool.add(ContentDraft(title="a"), 5.0, "round-0")
        pool.add(ContentDraft(title="b"), 2.0, "final-ai")
        pool.add(ContentDraft(title="c"), 2.0, "structured-repair")

        assert pool.best.draft.title == "b"
        assert len(pool) == 3
        assert [entry["label"] for entry in pool.summary()] == ["round-0", "final-ai", "structured-repair"]

    def test_stored_drafts_are_copies(self):
        draft = ContentDraft(title="original")
        pool = CandidatePool()
        pool.add(draft, 1.0)

        draft.title = "changed"

        assert pool.best.draft.title == "original"

    def test_empty_pool(self):
        assert CandidatePool().best is None


class TestAiReview:
    """Reviewer summary and actions."""

    @pytest.mark.asyncio
    async def test_generated(self, scripted_client, clean_draft):
        report = build_seo_geo_report(Platform.HATENA, clean_draft.title, clean_draft.body)

        summary, actions, status = await build_ai_review(scripted_client, Platform.HATENA, clean_draft, report, 80)

        assert status == "generated"
        assert actions == ["补充具体场景说明"]
        assert summary

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back(self, clean_draft):
        provider = DummyCompletionProvider(script=[ProviderRejection("Unauthorized", status=401, fallback_allowed=False)])
        client = CompletionClient(provider, ModelSelectionContext(primary_model="primary/model"))
        report = build_seo_geo_report(Platform.HATENA, clean_draft.title, clean_draft.body)

        summary, actions, status = await build_ai_review(client, Platform.HATENA, clean_draft, report)

        assert (summary, actions, status) == (AI_REVIEW_FALLBACK_SUMMARY, [], "fallback")

    @pytest.mark.asyncio
    async def test_invalid_json_falls_back(self, clean_draft):
        provider = DummyCompletionProvider(script=["良い記事です"])
        client = CompletionClient(provider, ModelSelectionContext(primary_model="primary/model"))
        report = build_seo_geo_report(Platform.HATENA, clean_draft.title, clean_draft.body)

        _, actions, status = await build_ai_review(client, Platform.HATENA, clean_draft, report)

        assert status == "fallback"
        assert actions == []


class TestContentGate:
    """End-to-end generation over a scripted provider."""

    @pytest.mark.asyncio
    async def test_generate_persists_finalized_draft(self, scripted_client, test_settings, hatena_request):
        """A clean provider run yields a bilingual, persisted draft."""
        store = InMemoryContentStore()
        gate = ContentGate(scripted_client, settings=test_settings, store=store)

        result = await gate.generate(hatena_request)

        assert result.draft.body_secondary
        assert result.draft.title_secondary == "重要事项说明的基础与确认步骤"
        assert result.bilingual_synthetic is False
        assert result.quality.ai_actions is not None
        assert result.quality.ai_actions.status == "generated"
        assert {entry["label"] for entry in result.rounds} >= {"round-0", "final-ai", "structured-repair"}
        assert result.draft.primary_url.startswith(PRIMARY_URL)

        stored = store.read(ContentKey("2026-03-02", "hatena", "standard"))
        assert stored["title"] == result.draft.title

    @pytest.mark.asyncio
    async def test_stored_record_carries_quality(self, tmp_path, scripted_client, test_settings, hatena_request):
        """The persisted file includes the finalized quality report next to the draft."""
        store = FileContentStore(str(tmp_path))
        gate = ContentGate(scripted_client, settings=test_settings, store=store)

        result = await gate.generate(hatena_request)

        metadata = store.read(ContentKey("2026-03-02", "hatena"))["metadata"]
        assert metadata["quality"]["seo_geo"]["seo_score"] == result.quality.seo_geo.seo_score
        assert metadata["quality"]["seo_geo"]["geo_score"] == result.quality.seo_geo.geo_score
        assert metadata["quality"]["search"]["score"] == result.quality.search.score
        assert metadata["quality"]["ai_actions"]["status"] == "generated"
        assert metadata["full_threshold_passed"] == result.quality.full_threshold_passed
        assert metadata["article_type"] == GenerationPipeline(gate, hatena_request).article_type.value
        assert metadata["content_variant"] == "standard"
        assert metadata["bilingual_synthetic"] is False

    @pytest.mark.asyncio
    async def test_structured_repair_adds_keyword_to_title(self, test_settings, hatena_request):
        """A draft title without the primary keyword is finalized with the keyword prefixed."""
        responder = drafting_responder([clean_draft_json(title=KEYWORDLESS_TITLE)])
        gate = scripted_gate(responder, test_settings)

        result = await gate.generate(hatena_request)

        assert result.draft.title.startswith(f"{KEYWORD}｜")
        assert KEYWORDLESS_TITLE in result.draft.title
        assert result.quality.seo_geo.checks["keyword_in_title"] is True

    @pytest.mark.asyncio
    async def test_worse_revision_loses_to_earlier_candidate(self, test_settings, hatena_request):
        """A revision that degrades the draft is recorded but the earlier, closer draft is finalized."""
        prompts = []
        clean = drafting_responder([clean_draft_json(), clean_draft_json(body=DEGRADED_BODY)], prompts)

        def rejecting_review(system_prompt, user_prompt, model):
            if system_prompt == REVIEW_SYSTEM_PROMPT:
                return json.dumps(
                    {"passed": False, "issues": ["導入が長く結論が遅い"], "suggestions": ["冒頭で結論を述べる"]},
                    ensure_ascii=False,
                )
            return clean(system_prompt, user_prompt, model)

        gate = scripted_gate(rejecting_review, test_settings)

        result = await gate.generate(hatena_request)

        distances = {entry["label"]: entry["distance"] for entry in result.rounds}
        assert distances["round-0"] < distances["final-ai"]
        assert CLEAN_BODY_MARKER in result.draft.body
        assert "導入が長く結論が遅い" in prompts[1]
        assert "冒頭で結論を述べる" in prompts[1]

    @pytest.mark.asyncio
    async def test_hard_issue_fix_reaches_revision_prompt(self, test_settings, hatena_request):
        """Hard issues skip the review call and go straight into the revision prompt with fix instructions."""
        prompts = []
        responder = drafting_responder(
            [clean_draft_json(title=f"絶対合格の{CLEAN_TITLE}"), clean_draft_json()], prompts
        )
        gate = scripted_gate(responder, test_settings)

        result = await gate.generate(hatena_request)

        assert "platform policy risk: exaggerated or guaranteed-outcome claims" in prompts[1]
        assert "誇大・断定・煽り表現" in prompts[1]
        assert "絶対合格" not in result.draft.title
        distances = {entry["label"]: entry["distance"] for entry in result.rounds}
        assert distances["round-0"] > distances["final-ai"]

    @pytest.mark.asyncio
    async def test_second_write_is_rejected(self, scripted_client, test_settings, hatena_request):
        """Each (date, platform, variant) is written once."""
        gate = ContentGate(scripted_client, settings=test_settings, store=InMemoryContentStore())
        await gate.generate(hatena_request)

        with pytest.raises(ContentAlreadyExistsError):
            await gate.generate(hatena_request)

    @pytest.mark.asyncio
    async def test_unrepairable_draft_fails(self, test_settings, hatena_request):
        """Issues no repair can fix surface as ValidationFailure with the full list."""
        def overclaiming(system_prompt, user_prompt, model):
            reply = gate_responder(system_prompt, user_prompt, model)
            if reply == clean_draft_json():
                return clean_draft_json(title=f"絶対合格の{CLEAN_TITLE}")
            return reply

        store = InMemoryContentStore()
        gate = scripted_gate(overclaiming, test_settings, store)

        with pytest.raises(ValidationFailure) as exc_info:
            await gate.generate(hatena_request)

        assert "platform policy risk: exaggerated or guaranteed-outcome claims" in exc_info.value.issues
        assert store.read(ContentKey("2026-03-02", "hatena", "standard")) is None

    @pytest.mark.asyncio
    async def test_pipeline_states(self, scripted_client, test_settings, hatena_request):
        gate = ContentGate(scripted_client, settings=test_settings)
        pipeline = GenerationPipeline(gate, hatena_request)

        await pipeline.run()

        assert pipeline.state == GenerationState.DONE
        assert pipeline.log.extra["gate_state"] == "done"

    @pytest.mark.asyncio
    async def test_failed_pipeline_state(self, test_settings, hatena_request):
        def unauthorized(system_prompt, user_prompt, model):
            raise ProviderRejection("Unauthorized", status=401, fallback_allowed=False)

        gate = scripted_gate(unauthorized, test_settings)
        pipeline = GenerationPipeline(gate, hatena_request)

        with pytest.raises(ProviderRejection):
            await pipeline.run()

        assert pipeline.state == GenerationState.FAILED

    @pytest.mark.asyncio
    async def test_generate_many_isolates_failures(self, scripted_client, test_settings, hatena_request):
        """A failing sibling does not take down the others."""
        gate = ContentGate(scripted_client, settings=test_settings, store=InMemoryContentStore())
        duplicate = hatena_request.copy()

        results = await gate.generate_many([hatena_request, duplicate])

        assert sum(isinstance(item, ContentAlreadyExistsError) for item in results) == 1
        assert sum(not isinstance(item, Exception) for item in results) == 1


class TestPipelineSetup:
    """Per-request context resolution."""

    def test_related_note_outside_allow_list_is_dropped(self, scripted_client):
        settings = Settings(allowed_note_accounts="takken_ai")
        gate = ContentGate(scripted_client, settings=settings)
        request = GenerationRequest(
            date="2026-03-02",
            platform="note",
            topic_label=KEYWORD,
            primary_url=PRIMARY_URL,
            related_note_url="https://note.com/someone_else/n/abc123",
            related_note_title="別の記事",
        )

        pipeline = GenerationPipeline(gate, request)

        assert pipeline.ctx.related_note_url == ""
        assert pipeline.related_note_title == ""

    def test_note_viral_has_no_related_link(self, scripted_client, test_settings):
        gate = ContentGate(scripted_client, settings=test_settings)
        request = GenerationRequest(
            date="2026-03-02",
            platform="note",
            topic_label=KEYWORD,
            primary_url=PRIMARY_URL,
            content_variant="note-viral",
            related_note_url="https://note.com/takken_ai/n/abc123",
        )

        pipeline = GenerationPipeline(gate, request)

        assert pipeline.is_note_viral is True
        assert pipeline.ctx.related_note_url == ""

    def test_reference_year_and_tracking(self, scripted_client, test_settings, hatena_request):
        pipeline = GenerationPipeline(ContentGate(scripted_client, settings=test_settings), hatena_request)

        assert pipeline.reference_year == 2026
        assert "utm_source=hatena" in pipeline.tracked_url

    def test_search_report_uses_gate_settings(self, scripted_client, clean_draft, hatena_request):
        """The reported search gate mode is the one this gate enforces."""
        gate = ContentGate(scripted_client, settings=gate_settings(search_gate_mode="hard"))
        pipeline = GenerationPipeline(gate, hatena_request)

        assert pipeline._quality(clean_draft).search.gate_mode == "hard"

    @pytest.mark.asyncio
    async def test_search_pass_discards_regression(self, hatena_request):
        """A search rewrite that scores worse is dropped and never enters the pool."""
        prompts = []
        gate = scripted_gate(drafting_responder([clean_draft_json(body=DEGRADED_BODY)], prompts),
                             gate_settings(search_threshold=100))
        pipeline = GenerationPipeline(gate, hatena_request)
        draft = pipeline._light_repair(ContentDraft(title=CLEAN_TITLE, body=CLEAN_BODY, hashtags=["宅建"]))
        assert pipeline._issues(draft).all == []
        assert pipeline._quality(draft).search.passed is False

        kept = await pipeline._search_pass(draft, "user prompt", "system prompt")

        assert len(prompts) == 1
        assert kept.body == draft.body
        assert "search-pass" not in [entry["label"] for entry in pipeline.pool.summary()]

    def test_from_settings_without_key_is_offline(self, test_settings):
        gate = ContentGate.from_settings(settings=test_settings)

        assert isinstance(gate.client.provider, DummyCompletionProvider)
        assert gate.bilingual.model == "translate/model"
