"""
FastAPI application for the content quality gate.

Provides REST endpoints to validate and score a draft, run the
deterministic repair pipeline, and generate a finalized article through the
orchestrator.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, validator

from contentgate.core.logging import get_logger
from contentgate.core.settings import settings
from contentgate.core.storage import FileContentStore
from contentgate.core.time import resolve_reference_year
from contentgate.core.utils import build_tracked_url, normalize_note_article_url
from contentgate.services.base import create_app
from .errors import (
    ConsistencyFailure,
    ProviderRejection,
    TransportError,
    ValidationFailure,
)
from .models import ContentDraft, GenerationRequest, LinkPolicyContext
from .orchestrator import ContentGate
from .platforms import (
    ContentVariant,
    Platform,
    recommended_article_type,
    resolve_article_type,
    resolve_content_variant,
)
from .repairs import (
    apply_article_type_fallback_structure,
    ensure_seo_geo_structure,
    sanitize_content,
    sanitize_stale_years,
)
from .scoring import build_quality_report
from .validators import validate_complete_draft

logger = get_logger(__name__)

app = create_app("gate")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global gate instance
gate_instance: Optional[ContentGate] = None


class DraftContext(BaseModel):
    """Platform and link context a submitted draft is judged in."""
    draft: ContentDraft = Field(..., description="Draft to check")
    platform: Platform = Field(..., description="Target platform")
    primary_url: str = Field(..., description="Canonical CTA URL")
    date: str = Field("", description="Schedule date YYYY-MM-DD; sets the reference year")
    topic_label: str = Field("", description="Topic label used by repairs")
    content_variant: ContentVariant = Field(default=ContentVariant.STANDARD)
    article_type: Optional[str] = Field(None, description="Archetype id")
    asset_type: Optional[str] = Field(None, description="knowledge-point, tool or past-question")
    related_note_url: str = Field("", description="Related note article")
    related_note_title: str = Field("", description="Related note article title")
    primary_keyword: str = Field("", description="Keyword override for scoring")

    @validator("primary_url")
    def validate_primary_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.strip()

    def link_policy(self) -> LinkPolicyContext:
        variant = resolve_content_variant(self.platform, ContentVariant(self.content_variant).value)
        return LinkPolicyContext(
            platform=Platform(self.platform),
            primary_url=self.primary_url,
            related_note_url=normalize_note_article_url(self.related_note_url),
            allowed_note_accounts=tuple(settings.note_account_list),
            content_variant=variant,
        )

    def resolved_article_type(self):
        if self.link_policy().content_variant == ContentVariant.NOTE_VIRAL:
            return None
        return resolve_article_type(self.article_type, recommended_article_type(self.platform, self.asset_type))


class ValidateResponse(BaseModel):
    """Validator verdict and scores of one draft."""
    validation: Dict[str, Any]
    quality: Dict[str, Any]


class RepairResponse(BaseModel):
    """Repaired draft with the issues left after repair."""
    draft: Dict[str, Any]
    remaining_issues: List[str] = Field(default_factory=list)


async def get_gate() -> ContentGate:
    """Get or create the gate instance."""
    global gate_instance
    if gate_instance is None:
        gate_instance = ContentGate.from_settings(store=FileContentStore(settings.content_dir))
    return gate_instance


@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API information."""
    return {
        "message": "ContentGate API",
        "version": "0.1.0",
        "service": "gate",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoints": {
            "health": "/healthz",
            "docs": "/docs",
            "validate": "/validate",
            "repair": "/repair",
            "generate": "/generate",
        },
    }


@app.post("/validate", response_model=ValidateResponse, tags=["Quality"])
async def validate_draft(request: DraftContext):
    """Run every validator and scorer over a submitted draft."""
    ctx = request.link_policy()
    reference_year = resolve_reference_year(request.date)
    article_type = request.resolved_article_type()
    result = validate_complete_draft(request.draft, ctx, reference_year, article_type)
    quality = build_quality_report(
        request.draft,
        ctx.platform,
        reference_year,
        primary_keyword=request.primary_keyword,
    )
    logger.info(f"Validated {ctx.platform.value} draft: {len(result.errors)} errors")
    return ValidateResponse(validation=result.to_dict(), quality=quality.dict())


@app.post("/repair", response_model=RepairResponse, tags=["Quality"])
async def repair_draft(request: DraftContext):
    """Apply the provider-free repair pipeline to a submitted draft."""
    ctx = request.link_policy()
    reference_year = resolve_reference_year(request.date)
    article_type = request.resolved_article_type()
    topic = request.topic_label or request.primary_keyword or request.draft.title
    keyword = request.primary_keyword or topic

    draft = sanitize_content(request.draft, ctx, topic, request.related_note_title)
    draft.body = ensure_seo_geo_structure(
        ctx.platform,
        draft.body,
        keyword,
        build_tracked_url(ctx.primary_url, ctx.platform.value),
        related_note_url=ctx.related_note_url if ctx.allows_related_note else "",
        related_note_title=request.related_note_title,
    )
    if article_type is not None:
        draft.body = apply_article_type_fallback_structure(draft.body, article_type, topic)
    draft = sanitize_stale_years(sanitize_content(draft, ctx, topic, request.related_note_title), reference_year)

    remaining = validate_complete_draft(draft, ctx, reference_year, article_type).errors
    return RepairResponse(draft=draft.dict(), remaining_issues=remaining)


@app.post("/generate", tags=["Generation"])
async def generate(request: GenerationRequest, gate: ContentGate = Depends(get_gate)):
    """
    Generate one finalized article.

    Quality failures answer 422 with the full issue list; provider failures
    answer 502, or 504 on timeout.
    """
    try:
        result = await gate.generate(request)
    except (ValidationFailure, ConsistencyFailure) as e:
        raise HTTPException(status_code=422, detail={"error": type(e).__name__, "issues": e.issues})
    except TransportError as e:
        status = 504 if e.is_timeout else 502
        raise HTTPException(status_code=status, detail={"error": type(e).__name__, "message": str(e)})
    except ProviderRejection as e:
        raise HTTPException(status_code=502, detail={"error": type(e).__name__, "message": str(e), "status": e.status})
    return result.dict()


if __name__ == "__main__":
    uvicorn.run(
        "contentgate.gate.app:app",
        host=settings.service_host,
        port=settings.service_port,
        reload=settings.debug,
        log_level="info",
    )
