"""
Generation orchestrator.

Drives one request through DRAFTING -> VALIDATING -> REVISING (bounded) ->
FINALIZING -> DONE | FAILED. Every candidate seen along the way is scored
with ``distance`` and the global best is finalized, because an AI revision
is not guaranteed to improve on the previous round.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from contentgate.core.logging import get_logger, get_pipeline_logger
from contentgate.core.settings import Settings, get_settings
from contentgate.core.storage import ContentKey, ContentStore
from contentgate.core.time import resolve_reference_year
from contentgate.core.utils import (
    build_tracked_url,
    is_note_url_allowed_by_accounts,
    normalize_note_article_url,
    normalize_topic_label,
)
from .bilingual import BilingualEngine, validate_final_consistency
from .errors import ConsistencyFailure, ContentGateError, ValidationFailure
from .llm_provider import (
    CompletionClient,
    CompletionProvider,
    CompletionProviderFactory,
    load_json_object,
    parse_generated_content,
    parse_review_result,
)
from .models import (
    AiActionReport,
    ContentDraft,
    GenerationRequest,
    GenerationResult,
    LinkPolicyContext,
    QualityReport,
    RevisionRound,
    SeoGeoReport,
)
from .platforms import (
    ContentVariant,
    Platform,
    recommended_article_type,
    resolve_article_type,
    resolve_content_variant,
)
from .prompts import (
    AI_REVIEW_SYSTEM_PROMPT,
    REVIEW_SYSTEM_PROMPT,
    build_ai_review_prompt,
    build_hard_issue_suggestions,
    build_review_prompt,
    build_revision_prompt,
    build_search_optimization_prompt,
    prompt_pair,
    url_rule_line,
)
from .repairs import (
    apply_article_type_fallback_structure,
    ensure_keyword_in_title,
    ensure_seo_geo_structure,
    sanitize_content,
    sanitize_stale_years,
)
from .scoring import DEFAULT_WEIGHTS, ScoringWeights, build_ai_action_report, build_quality_report
from .validators import GateIssues, run_validators

logger = get_logger(__name__)

AI_REVIEW_FALLBACK_SUMMARY = "AI评审暂不可用，当前为规则评估结果"
COMPLIANCE_SUGGESTIONS = (
    "URL単独行は禁止（前後に説明文を付ける）",
    "命令口調の販促文（今すぐ/限定/必見/クリック等）を避ける",
    "タイトルと imagePrompt にURLを入れない",
)


class GenerationState(str, Enum):
    """Pipeline states."""
    DRAFTING = "drafting"
    VALIDATING = "validating"
    REVISING = "revising"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class DistanceWeights:
    """Weights of the candidate objective. Lower distance is better."""
    seo: float = 1.0
    geo: float = 1.0
    search: float = 0.6
    ai_action: float = 0.4
    hard_issue: float = 1000.0
    platform_issue: float = 200.0
    article_type_issue: float = 150.0


DEFAULT_DISTANCE_WEIGHTS = DistanceWeights()


@dataclass(frozen=True)
class ScoreTargets:
    """Score thresholds candidates are measured against."""
    seo: int = 85
    geo: int = 85
    search: int = 85
    ai_action: int = 85

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoreTargets":
        return cls(
            seo=settings.seo_threshold,
            geo=settings.geo_threshold,
            search=settings.search_threshold,
            ai_action=settings.ai_action_threshold,
        )

    def as_thresholds(self) -> Dict[str, int]:
        return {"seo": self.seo, "geo": self.geo, "search": self.search}


def distance(
    quality: QualityReport,
    issues: GateIssues,
    targets: ScoreTargets = ScoreTargets(),
    weights: DistanceWeights = DEFAULT_DISTANCE_WEIGHTS,
) -> float:
    """
    Weighted score shortfall below the targets plus per-issue penalties.

    A candidate with any hard issue is always farther than a clean one, so
    selection never trades a validator failure for score.
    """
    shortfall = (
        weights.seo * max(0, targets.seo - quality.seo_geo.seo_score)
        + weights.geo * max(0, targets.geo - quality.seo_geo.geo_score)
        + weights.search * max(0, targets.search - quality.search.score)
    )
    if quality.ai_actions is not None:
        shortfall += weights.ai_action * max(0, targets.ai_action - quality.ai_actions.completion_score)
    penalty = (
        weights.hard_issue * len(issues.hard)
        + weights.platform_issue * len(issues.platform)
        + weights.article_type_issue * len(issues.article_type)
    )
    return round(shortfall + penalty, 2)


class CandidatePool:
    """Every candidate of one pipeline with its distance; keeps the global best."""

    def __init__(self):
        self.rounds: List[RevisionRound] = []

    def add(self, draft: ContentDraft, value: float, label: str = "",
            hard_issues: Optional[Sequence[str]] = None) -> RevisionRound:
        entry = RevisionRound(
            index=len(self.rounds),
            draft=draft.clone(),
            distance=value,
            label=label,
            hard_issues=list(hard_issues or []),
        )
        self.rounds.append(entry)
        return entry

    @property
    def best(self) -> Optional[RevisionRound]:
        """Lowest distance; the earliest candidate wins ties."""
        if not self.rounds:
            return None
        return min(self.rounds, key=lambda entry: (entry.distance, entry.index))

    def summary(self) -> List[Dict[str, Any]]:
        return [
            {
                "index": entry.index,
                "label": entry.label,
                "distance": entry.distance,
                "hard_issues": entry.hard_issues,
            }
            for entry in self.rounds
        ]

    def __len__(self) -> int:
        return len(self.rounds)


async def build_ai_review(
    client: CompletionClient,
    platform,
    draft: ContentDraft,
    report: SeoGeoReport,
    search_score: Optional[int] = None,
) -> Tuple[str, List[str], str]:
    """
    LLM summary plus 1 to 3 improvement actions.

    Returns ``(summary, actions, status)``. Status is ``"fallback"`` with an
    empty action list when the provider fails or answers without usable JSON.
    """
    try:
        raw = await client.complete(AI_REVIEW_SYSTEM_PROMPT, build_ai_review_prompt(platform, draft, report, search_score))
    except ContentGateError as e:
        logger.warning(f"AI review unavailable: {e}")
        return AI_REVIEW_FALLBACK_SUMMARY, [], "fallback"

    parsed = load_json_object(raw)
    if parsed is None:
        logger.warning("AI review returned invalid JSON")
        return AI_REVIEW_FALLBACK_SUMMARY, [], "fallback"

    summary = str(parsed.get("summaryChinese") or "").strip()
    raw_actions = parsed.get("actionsChinese")
    actions = [str(item).strip() for item in raw_actions if str(item).strip()][:3] \
        if isinstance(raw_actions, list) else []
    if not summary or not actions:
        return AI_REVIEW_FALLBACK_SUMMARY, [], "fallback"
    return summary, actions, "generated"


class GenerationPipeline:
    """State for one request. Nothing here is shared between pipelines."""

    def __init__(self, gate: "ContentGate", request: GenerationRequest):
        self.gate = gate
        self.settings = gate.settings
        self.client = gate.client
        self.request = request
        self.platform = Platform(request.platform)
        self.variant = resolve_content_variant(self.platform, ContentVariant(request.content_variant).value)
        self.article_type = resolve_article_type(
            request.article_type, recommended_article_type(self.platform, request.asset_type)
        )
        self.topic = normalize_topic_label(request.topic_label) or request.topic_label.strip()
        self.keyword = request.primary_keyword.strip() or self.topic
        self.reference_year = resolve_reference_year(request.date)
        self.tracked_url = build_tracked_url(request.primary_url, self.platform.value)
        self.ctx = LinkPolicyContext(
            platform=self.platform,
            primary_url=request.primary_url,
            related_note_url=self._resolve_related_note_url(),
            allowed_note_accounts=tuple(self.settings.note_account_list),
            content_variant=self.variant,
        )
        self.related_note_title = request.related_note_title.strip() if self.ctx.related_note_url else ""
        self.pool = CandidatePool()
        self.state = GenerationState.DRAFTING
        self.tag = f"[{request.date} {self.platform.value}/{self.variant.value}]"
        self.log = get_pipeline_logger(__name__, self.tag, self.state.value)

    @property
    def is_note_viral(self) -> bool:
        return self.variant == ContentVariant.NOTE_VIRAL

    def _resolve_related_note_url(self) -> str:
        if self.platform != Platform.NOTE or self.variant != ContentVariant.STANDARD:
            return ""
        url = normalize_note_article_url(self.request.related_note_url)
        accounts = self.settings.note_account_list
        if url and accounts and not is_note_url_allowed_by_accounts(url, accounts):
            logger.warning(f"Related note URL outside allowed accounts dropped: {url}")
            return ""
        return url

    def _transition(self, state: GenerationState) -> None:
        self.log.info(f"{self.state.value} -> {state.value}")
        self.state = state
        self.log.set_state(state.value)

    # -- drafting ----------------------------------------------------------

    async def _draft(self, system_prompt: str, user_prompt: str) -> ContentDraft:
        raw = await self.client.complete(system_prompt, user_prompt)
        draft = self._sanitize(parse_generated_content(raw))
        if not self.is_note_viral:
            draft.body = apply_article_type_fallback_structure(draft.body, self.article_type, self.topic)
            draft = self._sanitize(draft)
        return draft

    def _sanitize(self, draft: ContentDraft) -> ContentDraft:
        return sanitize_content(draft, self.ctx, self.topic, self.related_note_title)

    def _light_repair(self, draft: ContentDraft) -> ContentDraft:
        repaired = draft.clone()
        if not self.is_note_viral:
            repaired.body = apply_article_type_fallback_structure(repaired.body, self.article_type, self.topic)
        repaired = self._sanitize(repaired)
        return sanitize_stale_years(repaired, self.reference_year)

    def _structured_repair(self, draft: ContentDraft, ai_actions: Sequence[str]) -> ContentDraft:
        evidence_items = self.request.evidence_items if self.settings.evidence_mode == "auto" else []
        repaired = draft.clone()
        repaired.body = ensure_seo_geo_structure(
            self.platform,
            repaired.body,
            self.keyword,
            self.tracked_url,
            ai_actions=ai_actions,
            evidence_items=evidence_items,
            related_note_url=self.ctx.related_note_url,
            related_note_title=self.related_note_title,
        )
        repaired.title = ensure_keyword_in_title(repaired.title, self.keyword)
        return self._light_repair(repaired)

    # -- validation --------------------------------------------------------

    def _issues(self, draft: ContentDraft) -> GateIssues:
        article_type = None if self.is_note_viral else self.article_type
        return run_validators(draft, self.ctx, self.reference_year, article_type)

    def _quality(self, draft: ContentDraft, ai_actions: Optional[AiActionReport] = None,
                 article_type_issues: Optional[List[str]] = None) -> QualityReport:
        return build_quality_report(
            draft,
            self.platform,
            self.reference_year,
            primary_keyword=self.keyword,
            ai_actions=ai_actions,
            article_type_issues=article_type_issues,
            weights=self.gate.scoring_weights,
            thresholds=self.gate.targets.as_thresholds(),
            gate_mode=self.settings.search_gate_mode,
        )

    def _record(self, draft: ContentDraft, label: str) -> RevisionRound:
        issues = self._issues(draft)
        value = distance(self._quality(draft), issues, self.gate.targets, self.gate.distance_weights)
        entry = self.pool.add(draft, value, label, issues.all)
        self.log.info(f"candidate {entry.index} ({label}) distance={value} issues={len(issues.all)}")
        return entry

    # -- main loop ---------------------------------------------------------

    async def run(self) -> GenerationResult:
        try:
            return await self._run()
        except ContentGateError as e:
            self._transition(GenerationState.FAILED)
            self.log.error(f"generation failed: {e}")
            raise

    async def _run(self) -> GenerationResult:
        prompts = prompt_pair(self.request, self.tracked_url)
        system_prompt, user_prompt = prompts["system"], prompts["user"]

        draft = await self._draft(system_prompt, user_prompt)

        for round_index in range(max(0, self.settings.review_rounds)):
            self._transition(GenerationState.VALIDATING)
            issues = self._issues(draft)
            self._record(self._light_repair(draft), f"round-{round_index}")

            blocking = issues.hard + issues.article_type
            if blocking:
                issue_list = blocking
                suggestions = build_hard_issue_suggestions(self.platform, self.variant, self.article_type)
            else:
                try:
                    raw_review = await self.client.complete(REVIEW_SYSTEM_PROMPT, build_review_prompt(self.platform, draft))
                except ContentGateError as e:
                    self.log.warning(f"review call failed, keeping draft: {e}")
                    break
                review = parse_review_result(raw_review)
                if review.passed:
                    self.log.info(f"review passed (round {round_index + 1})")
                    break
                issue_list, suggestions = review.issues, review.suggestions

            self.log.info(f"revision {round_index + 1}: {len(issue_list)} issues")
            self._transition(GenerationState.REVISING)
            draft = await self._draft(system_prompt, build_revision_prompt(user_prompt, issue_list, suggestions))

        self._transition(GenerationState.VALIDATING)
        compliance = self._issues(draft).platform
        if compliance:
            self.log.info(f"compliance revision: {compliance}")
            self._transition(GenerationState.REVISING)
            suggestions = [url_rule_line(self.platform, self.variant), *COMPLIANCE_SUGGESTIONS]
            try:
                draft = await self._draft(system_prompt, build_revision_prompt(user_prompt, compliance, suggestions))
            except ContentGateError as e:
                self.log.warning(f"compliance revision failed: {e}")
        self._record(self._light_repair(draft), "final-ai")

        best_ai = self.pool.best
        base_report = self._quality(best_ai.draft)
        summary, actions, review_status = await build_ai_review(
            self.client, self.platform, best_ai.draft, base_report.seo_geo, base_report.search.score
        )
        self._record(self._structured_repair(best_ai.draft, actions), "structured-repair")

        self._transition(GenerationState.FINALIZING)
        chosen = self.pool.best.draft
        chosen = await self._search_pass(chosen, user_prompt, system_prompt)

        chosen, synthetic = await self.gate.bilingual.ensure_translation(chosen)

        final_issues = self._issues(chosen)
        evidence_reason = "" if self.settings.evidence_mode == "auto" and self.request.evidence_items \
            else "no evidence source available"
        ai_report = build_ai_action_report(
            chosen.body,
            actions,
            primary_keyword=self.keyword,
            evidence_failure_reason=evidence_reason,
            summary=summary,
            status=review_status,
        )
        quality = self._quality(chosen, ai_report, final_issues.article_type)

        blocking = list(final_issues.all)
        if self.settings.search_gate_is_hard and not quality.search.passed:
            blocking.append(f"search score {quality.search.score} below threshold")
        if self.settings.ai_action_gate_is_hard and ai_report.completion_score < self.gate.targets.ai_action:
            blocking.append(f"AI action completion {ai_report.completion_score} below threshold")
        if blocking:
            raise ValidationFailure(blocking)

        consistency = validate_final_consistency(chosen)
        if consistency:
            raise ConsistencyFailure(consistency)

        chosen.metadata = {
            **chosen.metadata,
            "quality": quality.dict(),
            "full_threshold_passed": quality.full_threshold_passed,
            "article_type": self.article_type.value,
            "content_variant": self.variant.value,
            "bilingual_synthetic": synthetic,
        }
        if self.gate.store is not None:
            key = ContentKey(self.request.date, self.platform.value, self.variant.value)
            self.gate.store.write(key, chosen)

        self._transition(GenerationState.DONE)
        return GenerationResult(
            draft=chosen,
            quality=quality,
            rounds=self.pool.summary(),
            bilingual_synthetic=synthetic,
        )

    async def _search_pass(self, draft: ContentDraft, user_prompt: str, system_prompt: str) -> ContentDraft:
        """One narrow revision for search extractability; kept only if nothing regresses."""
        issues = self._issues(draft)
        report = self._quality(draft)
        if issues.all or report.search.passed or not report.search.issues:
            return draft
        try:
            candidate = await self._draft(system_prompt, build_search_optimization_prompt(user_prompt, report.search.issues))
        except ContentGateError as e:
            self.log.warning(f"search pass skipped: {e}")
            return draft
        candidate = self._light_repair(candidate)
        candidate_issues = self._issues(candidate)
        candidate_report = self._quality(candidate)
        if (candidate_issues.all
                or candidate_report.search.score <= report.search.score
                or candidate_report.seo_geo.seo_score < report.seo_geo.seo_score
                or candidate_report.seo_geo.geo_score < report.seo_geo.geo_score):
            self.log.info("search pass discarded")
            return draft
        self.pool.add(candidate, distance(candidate_report, candidate_issues, self.gate.targets,
                                          self.gate.distance_weights), "search-pass")
        self.log.info(f"search pass kept: {report.search.score} -> {candidate_report.search.score}")
        return candidate


class ContentGate:
    """
    Entry point of the quality gate.

    Args:
        client: completion client used for drafting, review and translation
        bilingual: engine keeping the secondary variant consistent
        settings: configuration, defaults to the process settings
        store: optional write-once store for finalized drafts
    """

    def __init__(
        self,
        client: CompletionClient,
        bilingual: Optional[BilingualEngine] = None,
        settings: Optional[Settings] = None,
        store: Optional[ContentStore] = None,
        distance_weights: DistanceWeights = DEFAULT_DISTANCE_WEIGHTS,
        scoring_weights: ScoringWeights = DEFAULT_WEIGHTS,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.bilingual = bilingual or BilingualEngine(client, model=self.settings.translation_model)
        self.store = store
        self.distance_weights = distance_weights
        self.scoring_weights = scoring_weights
        self.targets = ScoreTargets.from_settings(self.settings)

    @classmethod
    def from_settings(cls, provider: Optional[CompletionProvider] = None, settings: Optional[Settings] = None,
                      store: Optional[ContentStore] = None) -> "ContentGate":
        settings = settings or get_settings()
        if provider is None:
            provider_type = "openrouter" if settings.openrouter_api_key else "dummy"
            provider = CompletionProviderFactory.create_provider(provider_type)
        client = CompletionClient.from_settings(provider, settings)
        return cls(client, settings=settings, store=store)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Run one request to a finalized draft.

        Raises:
            ValidationFailure: hard issues remained at finalization
            ConsistencyFailure: the secondary variant could not be made consistent
            TransportError / ProviderRejection: drafting failed on every model
        """
        return await GenerationPipeline(self, request).run()

    async def generate_many(
        self, requests: Sequence[GenerationRequest]
    ) -> List[Union[GenerationResult, Exception]]:
        """Run sibling pipelines concurrently; a failed pipeline yields its exception."""
        results = await asyncio.gather(
            *(self.generate(request) for request in requests), return_exceptions=True
        )
        for request, result in zip(requests, results):
            if isinstance(result, Exception):
                logger.error(f"[{request.date} {Platform(request.platform).value}] pipeline failed: {result}")
        return list(results)
