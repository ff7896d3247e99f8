"""
Rule-based scoring engines.

Three independent scorers read a draft body and return pydantic reports:

* SEO/GEO: keyword placement, structure and citation signals
* Search extractability: how easily an answer engine can quote the article
* AI action completion: whether reviewer actions are reflected in the body

Scores start at 100 and lose fixed penalties per missing signal. Penalty
weights live in ``ScoringWeights`` so alternative weightings can be tested.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from contentgate.core.logging import get_logger
from contentgate.core.settings import settings
from contentgate.core.similarity import is_near_duplicate
from contentgate.core.utils import URL_REGEX, split_paragraphs
from .analyzers import (
    DATA_SOURCE_REGEX,
    OVERCLAIM_REGEX,
    analyze_structure,
    contains_keyword,
    infer_primary_keyword,
)
from .models import AiActionReport, ContentDraft, QualityReport, SearchReport, SeoGeoReport
from .platforms import required_faq_count

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScoringWeights:
    """Penalty table for the SEO/GEO and search scorers."""
    seo_title_keyword: int = 25
    seo_intro_keyword: int = 15
    seo_heading_keyword: int = 10
    seo_structured_headings: int = 15
    seo_definition: int = 10
    seo_data_citation: int = 10
    seo_faq: int = 15

    geo_answer_first: int = 12
    geo_faq: int = 20
    geo_data_citation: int = 15
    geo_bullets: int = 15
    geo_structured_headings: int = 15
    geo_intro_keyword: int = 10

    search_answer_first: int = 20
    search_no_source_facts: int = 25
    search_one_source_fact: int = 15
    search_quotable_sentences: int = 15
    search_definition: int = 10
    search_freshness: int = 15
    search_overclaim: int = 20
    search_structure: int = 15


DEFAULT_WEIGHTS = ScoringWeights()

HISTORICAL_YEAR_REGEX = re.compile(r"(?:19|20)\d{2}")


def clamp_score(value: float) -> int:
    return max(0, min(100, int(round(value))))


# ---------------------------------------------------------------------------
# SEO / GEO
# ---------------------------------------------------------------------------

def build_seo_geo_report(
    platform,
    title: str,
    body: str,
    seo_title: str = "",
    primary_keyword: str = "",
    tracked_url: str = "",
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    seo_threshold: Optional[int] = None,
    geo_threshold: Optional[int] = None,
) -> SeoGeoReport:
    """
    Score keyword placement and answer-engine structure.

    Args:
        platform: Target platform (decides the FAQ requirement)
        title: Article title
        body: Article body
        seo_title: Optional search title, also checked for the keyword
        primary_keyword: Keyword override; inferred from the title when empty
        tracked_url: URL the body is expected to carry
        weights: Penalty table
        seo_threshold: Pass threshold for the SEO score
        geo_threshold: Pass threshold for the GEO score

    Returns:
        SeoGeoReport with both scores, issues and strengths
    """
    keyword = (primary_keyword or infer_primary_keyword(title)).strip()
    signals = analyze_structure(body)
    required_faq = required_faq_count(platform)
    faq_count = signals.faq.pair_count

    keyword_in_title = contains_keyword(title, keyword) or contains_keyword(seo_title, keyword)
    keyword_in_intro = contains_keyword(signals.intro.text, keyword)
    keyword_in_headings = any(contains_keyword(heading, keyword) for heading in signals.headings)
    structured = signals.heading_count >= 2
    bullets = signals.bullet_count >= 2
    faq_ok = faq_count >= required_faq

    seo = 100
    if not keyword_in_title:
        seo -= weights.seo_title_keyword
    if not keyword_in_intro:
        seo -= weights.seo_intro_keyword
    if not keyword_in_headings:
        seo -= weights.seo_heading_keyword
    if not structured:
        seo -= weights.seo_structured_headings
    if not signals.has_definition:
        seo -= weights.seo_definition
    if not signals.has_data_citation:
        seo -= weights.seo_data_citation
    if not faq_ok:
        seo -= weights.seo_faq

    geo = 100
    if not signals.intro.has_hook:
        geo -= weights.geo_answer_first
    if not faq_ok:
        geo -= weights.geo_faq
    if not signals.has_data_citation:
        geo -= weights.geo_data_citation
    if not bullets:
        geo -= weights.geo_bullets
    if not structured:
        geo -= weights.geo_structured_headings
    if not keyword_in_intro:
        geo -= weights.geo_intro_keyword

    seo = clamp_score(seo)
    geo = clamp_score(geo)

    issues = []
    strengths = []
    if not keyword_in_title:
        issues.append("primary keyword missing from title / SEO title")
    if not keyword_in_intro:
        issues.append("opening paragraph does not cover the primary keyword")
    if not keyword_in_headings:
        issues.append("H2/H3 headings do not cover the primary keyword")
    if not structured:
        issues.append("not enough structure (fewer than 2 H2/H3 headings)")
    if not signals.has_definition:
        issues.append("missing a '〜とは' definition paragraph")
    if not faq_ok:
        issues.append(f"FAQ insufficient (found {faq_count}, required {required_faq})")
    if not signals.intro.has_hook:
        issues.append("opening lacks a hook or summary sentence")
    if not signals.has_data_citation:
        issues.append("missing a statistic or institutional citation with a year")
    if not bullets:
        issues.append("missing a quotable bullet list")
    if tracked_url and tracked_url not in (body or ""):
        issues.append("body does not contain the tracked CTA URL")

    if keyword_in_title:
        strengths.append("keyword present in the title layer")
    if keyword_in_intro:
        strengths.append("opening covers the keyword")
    if signals.intro.has_hook:
        strengths.append("opening has a hook or summary")
    if structured:
        strengths.append("clear H2/H3 structure")
    if faq_ok:
        strengths.append(f"FAQ coverage met ({faq_count})")
    if signals.has_data_citation:
        strengths.append("includes statistics or institutional citations")
    if bullets:
        strengths.append("has a quotable bullet list")

    seo_threshold = settings.seo_threshold if seo_threshold is None else seo_threshold
    geo_threshold = settings.geo_threshold if geo_threshold is None else geo_threshold

    return SeoGeoReport(
        primary_keyword=keyword,
        seo_score=seo,
        geo_score=geo,
        passed=seo >= seo_threshold and geo >= geo_threshold,
        checks={
            "keyword_in_title": keyword_in_title,
            "keyword_in_intro": keyword_in_intro,
            "keyword_in_headings": keyword_in_headings,
            "answer_first_intro": signals.intro.has_hook,
            "has_definition": signals.has_definition,
            "has_data_citation": signals.has_data_citation,
            "has_structured_headings": structured,
            "has_quote_friendly_bullets": bullets,
            "has_table": signals.has_table,
        },
        metrics={"faq_count": faq_count, "required_faq": required_faq},
        issues=issues,
        strengths=strengths,
    )


# ---------------------------------------------------------------------------
# Search extractability
# ---------------------------------------------------------------------------

def is_historical_year_safe(body: str, reference_year: int) -> bool:
    """Every line with a past year has a data source within one line of it."""
    lines = (body or "").split("\n")
    for idx, raw in enumerate(lines):
        line = URL_REGEX.sub(" ", raw)
        historical = [int(item) for item in HISTORICAL_YEAR_REGEX.findall(line) if int(item) < reference_year]
        if not historical:
            continue
        context = " ".join([
            lines[idx - 1] if idx > 0 else "",
            lines[idx],
            lines[idx + 1] if idx + 1 < len(lines) else "",
        ])
        if not DATA_SOURCE_REGEX.search(context):
            return False
    return True


def build_search_report(
    platform,
    title: str,
    body: str,
    reference_year: int,
    seo_title: str = "",
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    threshold: Optional[int] = None,
    gate_mode: Optional[str] = None,
) -> SearchReport:
    """Score how well an answer engine could extract and quote the body."""
    signals = analyze_structure(body)
    source_facts = signals.evidence_sentence_count
    quotable = signals.citation_ready_sentence_count
    freshness_safe = is_historical_year_safe(body, reference_year)
    no_overclaim = not OVERCLAIM_REGEX.search(f"{title}\n{seo_title}\n{body}")
    structure_ok = (
        signals.heading_count >= 2
        and signals.faq.pair_count >= required_faq_count(platform)
        and signals.bullet_count >= 2
    )

    score = 100
    if not signals.intro.answer_first:
        score -= weights.search_answer_first
    if source_facts == 0:
        score -= weights.search_no_source_facts
    elif source_facts == 1:
        score -= weights.search_one_source_fact
    if quotable < 3:
        score -= weights.search_quotable_sentences
    if not signals.has_definition:
        score -= weights.search_definition
    if not freshness_safe:
        score -= weights.search_freshness
    if not no_overclaim:
        score -= weights.search_overclaim
    if not structure_ok:
        score -= weights.search_structure
    score = clamp_score(score)

    issues = []
    strengths = []
    if signals.intro.answer_first:
        strengths.append("opening answers first")
    else:
        issues.append("opening does not answer the core question first")
    if source_facts < 2:
        issues.append(f"not enough source+year+number evidence sentences ({source_facts}, want >= 2)")
    else:
        strengths.append(f"evidence sentences present ({source_facts})")
    if quotable < 3:
        issues.append(f"not enough standalone quotable sentences ({quotable}, want >= 3)")
    else:
        strengths.append("enough quotable sentences")
    if signals.has_definition:
        strengths.append("includes a definition paragraph")
    else:
        issues.append("missing a '〜とは' definition paragraph")
    if freshness_safe:
        strengths.append("past years only appear in citation context")
    else:
        issues.append("past years appear without a citation context")
    if no_overclaim:
        strengths.append("restrained wording without overclaims")
    else:
        issues.append("absolute or exaggerated claims reduce credibility")
    if structure_ok:
        strengths.append("structure is easy to extract")
    else:
        issues.append("structure not extractable enough (headings, FAQ or bullet list incomplete)")

    threshold = settings.search_threshold if threshold is None else threshold
    return SearchReport(
        score=score,
        passed=score >= threshold,
        gate_mode=gate_mode or settings.search_gate_mode,
        checks={
            "answer_first_intro": signals.intro.answer_first,
            "entity_definition_present": signals.has_definition,
            "freshness_safe": freshness_safe,
            "no_overclaim": no_overclaim,
            "structure_extractable": structure_ok,
        },
        metrics={
            "source_fact_count": source_facts,
            "citation_ready_sentence_count": quotable,
        },
        issues=issues,
        strengths=strengths,
    )


# ---------------------------------------------------------------------------
# AI action completion
# ---------------------------------------------------------------------------

SOURCE_KEYWORD_REGEX = re.compile(
    r"(出典|調査|統計|データ|公表|発表|白書|資料|レポート|国土交通省|総務省|厚生労働省|金融庁|内閣府|消費者庁|国税庁|source|来源|資料來源)",
    re.IGNORECASE,
)
ACTION_YEAR_REGEX = re.compile(r"(?:19|20)\d{2}(?:年|年度)?|令和\d+年(?:度)?|平成\d+年(?:度)?|昭和\d+年(?:度)?")
CASE_REGEX = re.compile(r"(ケース|事例|実務シナリオ|シナリオ|場面|具体例|案例|场景)", re.IGNORECASE)
STEP_REGEX = re.compile(r"(手順|ステップ|まず|次に|最後に|1\.|2\.|3\.|①|②|③|第一|第二|第三)")
ACTION_NUMBER_REGEX = re.compile(r"\d+")

ACTION_CASE_REGEX = re.compile(r"(実務|ケース|事例|場景|シナリオ|案例)", re.IGNORECASE)
ACTION_EVIDENCE_REGEX = re.compile(r"(統計|数据|データ|数値|出典|来源|信頼性|根拠|引用|ソース)", re.IGNORECASE)
ACTION_DEDUPE_REGEX = re.compile(r"(重复|重複|冗長|重複段落|削除|整合|統合)", re.IGNORECASE)
ACTION_TERM_REGEX = re.compile(r"(用語|術語|术语|表現|表述|概念|一貫|一致|統一)", re.IGNORECASE)
ACTION_TOKEN_REGEX = re.compile(r"[A-Za-z0-9\u3040-\u30ff\u3400-\u9fff]{2,}")
QUOTED_TERM_REGEX = re.compile(r"[「\"'“](.{2,24}?)[」\"'”]")

ACTION_STOPWORDS = {
    "文章", "内容", "部分", "具体", "提升", "优化", "改善", "建议", "补充",
    "增加", "删除", "整理", "日本語", "本文", "対応", "必要",
}
TERM_VARIANTS = (
    ("課税標準額", ("課税標準金額",)),
    ("固定資産税", ("固定資產税",)),
)
MAX_ACTIONS = 5


def _normalize_action_text(text: str) -> str:
    normalized = unicodedata.normalize("NFKC", text or "")
    normalized = re.sub(r"[【】\[\]「」『』\"'`]", "", normalized)
    normalized = re.sub(r"[!！?？:：・\-—―、。,.()\s]", "", normalized)
    return normalized.lower()


def count_duplicate_paragraphs(body: str) -> int:
    kept: List[str] = []
    duplicates = 0
    for paragraph in split_paragraphs(body):
        if any(is_near_duplicate(base, paragraph, ignore_urls=False) for base in kept):
            duplicates += 1
        else:
            kept.append(paragraph)
    return duplicates


def extract_terms_from_actions(actions: List[str]) -> List[str]:
    terms = []
    for action in actions:
        for fragment in QUOTED_TERM_REGEX.findall(action):
            cleaned = fragment.strip()
            if len(cleaned) >= 2:
                terms.append(cleaned)
        for canonical, variants in TERM_VARIANTS:
            if canonical in action or any(variant in action for variant in variants):
                terms.append(canonical)
    return list(dict.fromkeys(terms))


def term_consistency_passed(body: str, required_terms: List[str], primary_keyword: str) -> bool:
    normalized_body = _normalize_action_text(body)
    required = [item.strip() for item in list(required_terms) + [primary_keyword] if item and item.strip()]
    if any(_normalize_action_text(term) not in normalized_body for term in dict.fromkeys(required)):
        return False
    for canonical, variants in TERM_VARIANTS:
        if _normalize_action_text(canonical) not in normalized_body:
            continue
        if any(_normalize_action_text(variant) in normalized_body for variant in variants):
            return False
    return True


def ai_action_signals(body: str, actions: List[str], primary_keyword: str = "",
                      required_terms: Optional[List[str]] = None) -> Dict[str, Any]:
    """Body signals the action categories are judged against."""
    terms = list(required_terms or []) + extract_terms_from_actions(actions)
    return {
        "has_concrete_case": bool(CASE_REGEX.search(body or "")) and bool(STEP_REGEX.search(body or "")),
        "has_specific_numbers": bool(ACTION_NUMBER_REGEX.search(body or "")),
        "has_source_with_year": any(
            SOURCE_KEYWORD_REGEX.search(paragraph) and ACTION_YEAR_REGEX.search(paragraph)
            for paragraph in split_paragraphs(body)
        ),
        "duplicate_paragraph_count": count_duplicate_paragraphs(body),
        "term_consistency_passed": term_consistency_passed(body, terms, primary_keyword),
    }


def is_action_completed(action: str, body: str, signals: Dict[str, Any], primary_keyword: str = "") -> bool:
    """Judge one action by its category, else by keyword overlap with the body."""
    if ACTION_CASE_REGEX.search(action):
        return signals["has_concrete_case"]
    if ACTION_EVIDENCE_REGEX.search(action):
        return signals["has_specific_numbers"] and signals["has_source_with_year"]
    if ACTION_DEDUPE_REGEX.search(action):
        return signals["duplicate_paragraph_count"] == 0
    if ACTION_TERM_REGEX.search(action):
        return signals["term_consistency_passed"]

    normalized_body = _normalize_action_text(body)
    for token in ACTION_TOKEN_REGEX.findall(action):
        if token in ACTION_STOPWORDS:
            continue
        normalized = _normalize_action_text(token)
        if normalized and normalized in normalized_body:
            return True
    if primary_keyword:
        return _normalize_action_text(primary_keyword) in normalized_body
    return False


def build_ai_action_report(
    body: str,
    actions: List[str],
    primary_keyword: str = "",
    required_terms: Optional[List[str]] = None,
    evidence_failure_reason: str = "",
    summary: str = "",
    status: str = "generated",
) -> AiActionReport:
    """
    Evaluate which reviewer actions the body already satisfies.

    At most five actions are considered. Completion is the rounded share of
    completed actions. When evidence collection is unavailable, evidence
    actions are accepted if the body already has a source cue and numbers;
    otherwise the unresolved list is annotated with the reason.
    """
    required = [str(item or "").strip() for item in actions or []]
    required = [item for item in required if item][:MAX_ACTIONS]
    signals = ai_action_signals(body, required, primary_keyword, required_terms)

    if not required:
        return AiActionReport(summary=summary, status=status, completion_score=100, signals=signals)

    completed = []
    unresolved = []
    has_source_cue = bool(SOURCE_KEYWORD_REGEX.search(body or ""))
    for action in required:
        if (ACTION_EVIDENCE_REGEX.search(action) and evidence_failure_reason
                and signals["has_specific_numbers"] and has_source_cue):
            completed.append(action)
            continue
        if is_action_completed(action, body, signals, primary_keyword):
            completed.append(action)
        else:
            unresolved.append(action)

    if evidence_failure_reason and any(ACTION_EVIDENCE_REGEX.search(item) for item in unresolved):
        unresolved.append(f"evidence enrichment limited: {evidence_failure_reason}")

    return AiActionReport(
        summary=summary,
        actions=required,
        completed_actions=completed,
        unresolved_actions=unresolved,
        completion_score=clamp_score(len(completed) / len(required) * 100),
        status=status,
        signals=signals,
    )


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

def build_quality_report(
    draft: ContentDraft,
    platform,
    reference_year: int,
    primary_keyword: str = "",
    ai_actions: Optional[AiActionReport] = None,
    article_type_issues: Optional[List[str]] = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    thresholds: Optional[Dict[str, int]] = None,
    gate_mode: Optional[str] = None,
) -> QualityReport:
    """Run both scorers over a draft and wrap the results.

    ``thresholds`` may override the configured ``seo``, ``geo`` and ``search``
    pass marks; ``gate_mode`` overrides the configured search gate mode.
    """
    thresholds = thresholds or {}
    seo_geo = build_seo_geo_report(
        platform,
        draft.title,
        draft.body,
        seo_title=draft.seo_title,
        primary_keyword=primary_keyword,
        weights=weights,
        seo_threshold=thresholds.get("seo"),
        geo_threshold=thresholds.get("geo"),
    )
    search = build_search_report(
        platform,
        draft.title,
        draft.body,
        reference_year,
        seo_title=draft.seo_title,
        weights=weights,
        threshold=thresholds.get("search"),
        gate_mode=gate_mode,
    )
    logger.debug(f"Quality report: seo={seo_geo.seo_score} geo={seo_geo.geo_score} search={search.score}")
    return QualityReport(
        seo_geo=seo_geo,
        search=search,
        ai_actions=ai_actions,
        article_type_issues=list(article_type_issues or []),
    )
