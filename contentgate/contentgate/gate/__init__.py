"""
ContentGate Quality Gate Module

Turns one raw machine-generated draft into a finalized article that satisfies
structural, linguistic, link-policy and scoring rules, using bounded
AI-assisted revision rounds backed by deterministic repair.

Main Components:
- models: Pydantic models for drafts, reports and requests
- platforms: platform profiles, content variants and article types
- analyzers: pure structure detectors over Markdown bodies
- validators: hard rule catalog returning issue lists
- scoring: SEO/GEO, search-extractability and AI-action scoring
- repairs: provider-free, idempotent repair transforms
- bilingual: secondary-language parity checks and repair ladder
- llm_provider: completion providers, model fallback and parsing
- orchestrator: the generation state machine
- app: FastAPI application with REST endpoints

Key Features:
- Exactly one tracked CTA link per body, with note related-article support
- Freshness rules anchored on the schedule date's reference year
- Global best-candidate selection across revision rounds
- Deterministic output for identical input (stable-hash variant picking)
"""

from .errors import (
    ContentGateError,
    TransportError,
    GenerationTimeout,
    ProviderRejection,
    EmptyCompletionError,
    ValidationFailure,
    ConsistencyFailure,
)
from .models import (
    ContentDraft,
    SeoGeoReport,
    SearchReport,
    AiActionReport,
    EvidenceItem,
    QualityReport,
    GenerationRequest,
    GenerationResult,
    LinkPolicyContext,
)
from .platforms import Platform, ContentVariant, ArticleType
from .validators import run_validators, collect_hard_issues, validate_complete_draft
from .scoring import build_seo_geo_report, build_search_report, build_ai_action_report, build_quality_report
from .bilingual import BilingualEngine, validate_bilingual_consistency
from .llm_provider import (
    CompletionProvider,
    OpenRouterProvider,
    DummyCompletionProvider,
    CompletionProviderFactory,
    CompletionClient,
    ModelSelectionContext,
    VisualQAProvider,
    VisualQAResult,
)
from .orchestrator import ContentGate, CandidatePool, DistanceWeights, GenerationState, distance

__version__ = "0.1.0"

# Main exports
__all__ = [
    # Errors
    "ContentGateError",
    "TransportError",
    "GenerationTimeout",
    "ProviderRejection",
    "EmptyCompletionError",
    "ValidationFailure",
    "ConsistencyFailure",

    # Models
    "ContentDraft",
    "SeoGeoReport",
    "SearchReport",
    "AiActionReport",
    "EvidenceItem",
    "QualityReport",
    "GenerationRequest",
    "GenerationResult",
    "LinkPolicyContext",
    "Platform",
    "ContentVariant",
    "ArticleType",

    # Validation and scoring
    "run_validators",
    "collect_hard_issues",
    "validate_complete_draft",
    "build_seo_geo_report",
    "build_search_report",
    "build_ai_action_report",
    "build_quality_report",

    # Bilingual
    "BilingualEngine",
    "validate_bilingual_consistency",

    # Providers
    "CompletionProvider",
    "OpenRouterProvider",
    "DummyCompletionProvider",
    "CompletionProviderFactory",
    "CompletionClient",
    "ModelSelectionContext",
    "VisualQAProvider",
    "VisualQAResult",

    # Orchestration
    "ContentGate",
    "CandidatePool",
    "DistanceWeights",
    "GenerationState",
    "distance",
]
