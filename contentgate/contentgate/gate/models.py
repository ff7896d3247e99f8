"""
Core models for the content quality gate.

ContentDraft is the mutable article object that travels through the
validate/repair cycle. Reports are attached only at finalization.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, validator

from contentgate.core.time import is_valid_schedule_date
from contentgate.core.utils import URL_REGEX
from .platforms import ArticleType, ContentVariant, Platform


class ContentDraft(BaseModel):
    """
    In-progress article for one platform.

    Primary-language fields (title, body, hashtags, image prompt) are
    Japanese; the secondary fields carry the Chinese reference translation.
    """

    title: str = Field("", description="Primary-language title")
    body: str = Field("", description="Markdown-like primary body")
    title_secondary: str = Field("", description="Secondary-language title")
    body_secondary: str = Field("", description="Secondary-language body")
    hashtags: List[str] = Field(default_factory=list, description="Hashtags without leading #")
    image_prompt: str = Field("", description="Cover image prompt")
    seo_title: str = Field("", description="Search title, defaults to title")
    primary_url: str = Field("", description="Canonical call-to-action URL")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")

    @validator("hashtags", pre=True)
    def normalize_hashtags(cls, v):
        """Strip '#', URLs and duplicates from hashtags."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        seen = []
        for raw in v:
            tag = URL_REGEX.sub("", str(raw or "")).replace("#", "").strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    class Config:
        """Pydantic configuration."""
        validate_assignment = True
        extra = "ignore"

    def clone(self) -> "ContentDraft":
        return self.copy(deep=True)


class SeoGeoReport(BaseModel):
    """Rule-based SEO and GEO scoring outcome."""
    primary_keyword: str = ""
    seo_score: int = 0
    geo_score: int = 0
    passed: bool = False
    checks: Dict[str, bool] = Field(default_factory=dict)
    metrics: Dict[str, int] = Field(default_factory=dict)
    issues: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)


class SearchReport(BaseModel):
    """Search-extractability scoring outcome."""
    score: int = 0
    passed: bool = False
    gate_mode: str = "soft"
    checks: Dict[str, bool] = Field(default_factory=dict)
    metrics: Dict[str, int] = Field(default_factory=dict)
    issues: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)


class AiActionReport(BaseModel):
    """Completion state of free-text improvement actions."""
    summary: str = ""
    actions: List[str] = Field(default_factory=list)
    completed_actions: List[str] = Field(default_factory=list)
    unresolved_actions: List[str] = Field(default_factory=list)
    completion_score: int = 100
    status: str = "generated"
    signals: Dict[str, Any] = Field(default_factory=dict)


class EvidenceItem(BaseModel):
    """Caller-supplied statistic used to back evidence actions."""
    source: str
    year: str
    metric: str
    summary: str = ""


class QualityReport(BaseModel):
    """Scores attached to a finalized draft."""
    seo_geo: SeoGeoReport
    search: SearchReport
    ai_actions: Optional[AiActionReport] = None
    article_type_issues: List[str] = Field(default_factory=list)

    @property
    def full_threshold_passed(self) -> bool:
        """SEO, GEO and search scores all at or above their thresholds."""
        return self.seo_geo.passed and self.search.passed


class GenerationRequest(BaseModel):
    """One schedule slot to generate for."""
    date: str = Field(..., description="Schedule date YYYY-MM-DD")
    platform: Platform = Field(..., description="Target platform")
    topic_label: str = Field(..., min_length=1, description="Japanese topic label")
    primary_url: str = Field(..., description="Canonical CTA URL")
    asset_type: Optional[str] = Field(None, description="knowledge-point, tool or past-question")
    article_type: Optional[ArticleType] = Field(None, description="Archetype override")
    content_variant: ContentVariant = Field(default=ContentVariant.STANDARD)
    angle: str = Field("", description="Editorial angle")
    phase_label: str = Field("", description="Seasonal phase label")
    related_note_url: str = Field("", description="Related note article for note standard mode")
    related_note_title: str = Field("", description="Title of the related note article")
    primary_keyword: str = Field("", description="Keyword override for scoring")
    evidence_items: List[EvidenceItem] = Field(default_factory=list, description="Statistics for evidence actions")

    @validator("date")
    def validate_date(cls, v):
        if not is_valid_schedule_date(v):
            raise ValueError("date must be YYYY-MM-DD")
        return v

    @validator("primary_url")
    def validate_primary_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.strip()


@dataclass(frozen=True)
class LinkPolicyContext:
    """Link rules of one generation; passed through validators unchanged."""
    platform: Platform
    primary_url: str
    related_note_url: str = ""
    allowed_note_accounts: Tuple[str, ...] = ()
    content_variant: ContentVariant = ContentVariant.STANDARD

    @property
    def allows_related_note(self) -> bool:
        return self.platform == Platform.NOTE and self.content_variant == ContentVariant.STANDARD


@dataclass
class RevisionRound:
    """One candidate considered during best-candidate selection."""
    index: int
    draft: ContentDraft
    distance: float
    label: str = ""
    hard_issues: List[str] = field(default_factory=list)


class GenerationResult(BaseModel):
    """Finalized output of one pipeline."""
    draft: ContentDraft
    quality: QualityReport
    rounds: List[Dict[str, Any]] = Field(default_factory=list)
    bilingual_synthetic: bool = False
