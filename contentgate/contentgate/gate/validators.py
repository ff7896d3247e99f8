"""
Rule validators for generated content.

Each validator is a pure function returning a list of human-readable issue
strings. Validators never raise; an empty list means the draft passes that
rule. ``run_validators`` aggregates the catalog for the orchestrator.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from contentgate.core.logging import get_logger
from contentgate.core.utils import (
    URL_REGEX,
    compact_length,
    extract_urls,
    has_inline_url,
    has_url_or_slug_artifacts,
    is_note_url_allowed_by_accounts,
    is_shortener_url,
    normalize_note_article_url,
    url_hostname,
    urls_match,
)
from .analyzers import (
    BULLET_LINE_REGEX,
    DATA_CITATION_REGEX,
    FAQ_ANSWER_LINE_REGEX,
    FAQ_HEADING_LINE_REGEX,
    FAQ_QUESTION_LINE_REGEX,
    OVERCLAIM_REGEX,
    YEAR_REGEX,
    count_bullets,
    count_headings,
    faq_signals,
)
from .models import ContentDraft, LinkPolicyContext
from .platforms import ArticleType, ContentVariant, Platform, get_platform_profile, required_faq_count

logger = get_logger(__name__)


# Language purity
CHINESE_PUNCTUATION_REGEX = re.compile(r"[，；：“”‘’《》]")
SIMPLIFIED_HINT_REGEX = re.compile(r"[们这为从与产发务动现后时点关应习]")
KANA_REGEX = re.compile(r"[぀-ゟ゠-ヿ]")
LEAKED_KEY_NAMES = (
    "titleChinese|bodyChinese|hashtags|seoGeoReport|imagePrompt|ctaLink|seoTitle|"
    "searchScore|searchPassed|searchIssues|qualityReport|fullThresholdPassed"
)
LEAKED_KEY_REGEX = re.compile(rf"(?:^|[{{,]\s*)(?:{LEAKED_KEY_NAMES})\s*:")
LEAKED_QUOTED_KEYS = ('"titleChinese"', '"bodyChinese"', '"hashtags"', '"seoGeoReport"')

# Links and calls to action
URL_ONLY_LINE_REGEX = re.compile(r"^[>\-*・\s]*https?://\S+\s*$")
MARKETING_PUSH_REGEX = re.compile(r"(今すぐ|絶対|限定|見逃し厳禁|無料登録|急いで|クリック|必見)")
CTA_INTENT_REGEX = re.compile(
    r"(参照してください|確認してください|ご覧ください|チェックしてみて|アクセス|リンク先|公式ページ|参考リンク|補足リンク|関連ページ|あわせて参照)"
)
CTA_ACTION_REGEX = re.compile(
    r"(参照してください|確認してください|ご覧ください|チェックしてみて|アクセス|見ておくと|確認したい|確認できます|活用しやすい|参照すると)"
)

# Freshness
YEAR_TOKEN_REGEX = re.compile(r"(?:19|20)\d{2}(?=年|年度|[/.\-）)]|$)", re.MULTILINE)
CITATION_CONTEXT_REGEX = re.compile(
    r"(出典|調査|統計|データ|公表|発表|白書|資料|レポート|国土交通省|総務省|厚生労働省|金融庁|内閣府|消費者庁|年度)"
)

# Template and meta text that must not reach readers
NON_READER_SECTION_HEADING_REGEX = re.compile(
    r"^#{2,4}\s*(?:計算例（数値シミュレーション）|用語の統一メモ|実務シナリオ（特殊ケース）|参考データ（出典付き）|"
    r"実行ステップ|よくある失敗と回避|実施フロー|実践ステップ|確認ステップ|行動フロー|進め方チェックリスト|"
    r"強み（採用しやすい条件）|劣勢・境界条件（失敗を避ける視点）|実務での進め方|注意点・よくあるミス|"
    r"実務で使うときの確認|つまずきやすいポイント|直近の動向と実務への影響|実務アクション|"
    r"関連ツール(?:・リソース)?(?:の紹介)?|[^#\n]{2,60}の実務ポイント)\s*$"
)
NON_READER_LINE_REGEX = re.compile(
    r"^(?:【文字数】.*|文字数[:：]\s*\d+.*|-?\s*ケース[0-9０-９]+:|"
    r"(?:-?\s*)?本文では「.*」を主要用語として表記を統一.*|"
    r"(?:-?\s*)?同じ概念に複数の呼称を混在させない.*|"
    r"(?:-?\s*)?メリット: 初期運用で比較しやすく、意思決定が速い|"
    r"(?:-?\s*)?デメリット: 前提条件が揃わない場合は期待効果が出にくい|"
    r"(?:-?\s*)?注意: 目的が曖昧なまま導入すると比較軸が崩れやすい|"
    r"(?:-?\s*)?向いている場面: 目的と評価軸が明確なとき|"
    r"(?:-?\s*)?要件を順番に確認すると、判断ミスを減らせます。|"
    r"(?:-?\s*)?まず定義と結論を先に確認する|"
    r"(?:-?\s*)?次に判断手順を例題でチェックする|"
    r"(?:-?\s*)?市場動向は年度ごとに変化するため、最新の公表資料を確認して判断することが重要です。|"
    r"(?:-?\s*)?.*の注意点として、先に結論だけを決めず根拠と例外をセットで確認し、単一データではなく複数条件を横並びで比較することが重要です。|"
    r"(?:-?\s*)?これらのツールを複合的に活用することで、実務効率と理解が飛躍的に向上(?:します|する)[。]?|"
    r"最後にFAQの一つ。Q:.*A:.*)$"
)
NON_READER_ARTIFACT_SENTENCE_REGEX = re.compile(
    r"^(?:FAQの)?確認時(?:は|に).*例外条件.*数値条件.*同時に.*(?:見る(?:と|ことで|ながら)?|見て|確認して).*(?:見落とし|ミス).*(?:防ぎ|避け|減ら).*$"
)
NON_READER_CTA_STYLE_LINE_REGEX = re.compile(
    r"^(?:このポイントを詳しく整理したページ|本文で触れた論点の補足|関連ツール・リソース)\s*（[^）]*）\s*:\s*(?:https?://\S+|__PRIMARY_ALLOWED_LINK__)$"
)

THIN_SECTION_MIN_CHARS = 36


class ValidationResult:
    """Container for validation results."""

    def __init__(self, is_valid: bool = True, errors: List[str] = None, warnings: List[str] = None):
        self.is_valid = is_valid
        self.errors = errors or []
        self.warnings = warnings or []

    def add_error(self, message: str):
        """Add hard issue."""
        if message not in self.errors:
            self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        """Add advisory issue."""
        if message not in self.warnings:
            self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
        }


# ---------------------------------------------------------------------------
# Language purity
# ---------------------------------------------------------------------------

def has_leaked_serialization_keys(text: str) -> bool:
    """Detect JSON key fragments that escaped from an unparsed completion."""
    if not text:
        return False
    if any(key in text for key in LEAKED_QUOTED_KEYS):
        return True
    return any(LEAKED_KEY_REGEX.search(line.strip()) for line in text.split("\n"))


def is_contaminated_line(line: str) -> bool:
    """
    Whether a single line looks like Chinese inside a Japanese field.

    Flags Chinese-only punctuation, at least 4 simplified-script hint
    characters, or 2+ hints with at most one kana.
    """
    text = re.sub(r"^#+\s*", "", line or "").strip()
    if not text:
        return False
    if CHINESE_PUNCTUATION_REGEX.search(text):
        return True
    hints = len(SIMPLIFIED_HINT_REGEX.findall(text))
    if hints >= 4:
        return True
    return hints >= 2 and len(KANA_REGEX.findall(text)) <= 1


def has_foreign_script_contamination(text: str) -> bool:
    if not text:
        return False
    if has_leaked_serialization_keys(text):
        return True
    return any(is_contaminated_line(line) for line in re.split(r"\n+", text))


def validate_language_purity(draft: ContentDraft, ctx: Optional[LinkPolicyContext] = None) -> List[str]:
    """Primary-language fields must stay free of Chinese text and JSON debris."""
    issues = []
    if has_foreign_script_contamination(draft.title):
        issues.append("title contains Chinese text (title must be Japanese only)")
    if has_foreign_script_contamination(draft.body):
        issues.append("body contains Chinese text or JSON fragments (body must be Japanese only)")
    if has_foreign_script_contamination(draft.image_prompt):
        issues.append("image prompt contains Chinese text")
    if any(has_foreign_script_contamination(tag) for tag in draft.hashtags):
        issues.append("hashtags contain Chinese text")
    if ctx and has_url_or_slug_artifacts(draft.title, ctx.primary_url):
        issues.append("title contains a URL or English slug (use the Japanese topic name)")
    return issues


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

def count_likely_cta_lines(body: str) -> int:
    """
    Count lines that read as calls to action.

    Any URL-bearing line counts. A URL-less line counts when it has both CTA
    intent and CTA action wording and either sits next to a URL line or
    names the site domain.
    """
    lines = [line.strip() for line in (body or "").split("\n") if line.strip()]
    count = 0
    for idx, line in enumerate(lines):
        if has_inline_url(line):
            count += 1
            continue
        if not CTA_INTENT_REGEX.search(line) or not CTA_ACTION_REGEX.search(line):
            continue
        previous = lines[idx - 1] if idx > 0 else ""
        following = lines[idx + 1] if idx + 1 < len(lines) else ""
        if has_inline_url(previous) or has_inline_url(following) or "takkenai.jp" in line.lower():
            count += 1
    return count


def has_isolated_url_line(body: str) -> bool:
    return any(URL_ONLY_LINE_REGEX.match(line.strip()) for line in (body or "").split("\n") if line.strip())


def marketing_density(body: str) -> float:
    total = max(compact_length(body), 1)
    return len(MARKETING_PUSH_REGEX.findall(body or "")) / total


def has_aggressive_marketing_density(body: str) -> bool:
    return marketing_density(body) > 0.01


def related_note_url_for(ctx: LinkPolicyContext) -> str:
    if not ctx.allows_related_note:
        return ""
    return normalize_note_article_url(ctx.related_note_url)


def strip_allowed_urls(text: str, ctx: LinkPolicyContext) -> str:
    related = related_note_url_for(ctx)

    def _replace(match):
        url = match.group(0)
        if urls_match(url, ctx.primary_url) or (related and urls_match(url, related)):
            return " "
        return url

    return URL_REGEX.sub(_replace, text or "")


def validate_link_policy(draft: ContentDraft, ctx: LinkPolicyContext) -> List[str]:
    """
    Body link rules.

    Exactly one primary URL (path-exact, query-flexible), at most one
    allow-listed note article in note standard mode, no shorteners, no other
    domains, no isolated URL lines, and a bounded number of CTA lines.
    """
    body = draft.body or ""
    issues = []
    urls = extract_urls(body)
    allow_related = ctx.allows_related_note
    related_url = related_note_url_for(ctx)

    if not urls:
        issues.append("body has no CTA link (insert the primary URL exactly once)")
        return issues

    primary_hits = [url for url in urls if urls_match(url, ctx.primary_url)]
    if not primary_hits:
        issues.append("body URL does not match the primary link")
    if len(primary_hits) > 1:
        issues.append("body contains the primary link more than once")

    note_urls = [url for url in urls if normalize_note_article_url(url)]
    if len(note_urls) > 1:
        issues.append("body may contain at most one note article link")
    if note_urls and not allow_related:
        issues.append("body contains a URL outside the allowed domain")
    if allow_related and related_url and note_urls:
        if not any(urls_match(url, related_url) for url in note_urls):
            issues.append("note article link does not match the selected related article")
    if allow_related and note_urls and ctx.allowed_note_accounts:
        if any(not is_note_url_allowed_by_accounts(url, ctx.allowed_note_accounts) for url in note_urls):
            issues.append("note article link belongs to an account outside the allow-list")

    disallowed = [
        url for url in urls
        if not urls_match(url, ctx.primary_url) and not (allow_related and normalize_note_article_url(url))
    ]
    if disallowed:
        issues.append("body contains a URL outside the allowed domain")
    if any(is_shortener_url(url) for url in disallowed):
        issues.append("body contains a shortened URL")

    if has_url_or_slug_artifacts(strip_allowed_urls(body, ctx), ctx.primary_url):
        issues.append("body contains a stray URL or English slug (one URL only)")

    profile = get_platform_profile(ctx.platform)
    if count_likely_cta_lines(body) > profile.max_cta_lines:
        issues.append(f"too many CTA lines (max {profile.max_cta_lines})")
    if has_isolated_url_line(body):
        issues.append("body has a URL-only line; merge it into a sentence")

    return list(dict.fromkeys(issues))


def validate_platform_compliance(draft: ContentDraft, ctx: LinkPolicyContext) -> List[str]:
    """Per-platform link count, domain allow-list, banned phrases and tone."""
    profile = get_platform_profile(ctx.platform)
    body = draft.body or ""
    urls = extract_urls(body)
    allow_related = ctx.allows_related_note
    related_url = related_note_url_for(ctx)
    primary_host = url_hostname(ctx.primary_url)
    allowed_domains = {primary_host, *profile.allow_external_domains}
    if allow_related:
        allowed_domains.add("note.com")

    issues = []
    if allow_related:
        if not 1 <= len(urls) <= 2:
            issues.append(f"invalid URL count in body (expected 1-2, got {len(urls)})")
    elif len(urls) != profile.max_links:
        issues.append(f"invalid URL count in body (expected {profile.max_links}, got {len(urls)})")

    primary_count = 0
    note_count = 0
    for url in urls:
        host = url_hostname(url)
        if not host:
            issues.append(f"malformed URL: {url}")
            continue
        if host not in allowed_domains:
            issues.append(f"external domain not allowed: {host}")
        if not profile.allow_shorteners and is_shortener_url(url):
            issues.append(f"shortened URL not allowed: {url}")
        if host == primary_host:
            primary_count += 1
            if not urls_match(url, ctx.primary_url):
                issues.append("URL path does not match the primary link (query may differ, path may not)")
        elif host == "note.com":
            note_count += 1
            if not allow_related:
                issues.append("note article links are only allowed in note standard mode")
            else:
                if ctx.allowed_note_accounts and not is_note_url_allowed_by_accounts(url, ctx.allowed_note_accounts):
                    issues.append("note article link belongs to an account outside the allow-list")
                if related_url and not urls_match(url, related_url):
                    issues.append("note article link does not match the selected related article")

    if primary_count != 1:
        issues.append(f"exactly one primary-domain URL required (got {primary_count})")
    if allow_related and note_count > 1:
        issues.append("body may contain at most one note article link")
    if count_likely_cta_lines(body) > profile.max_cta_lines:
        issues.append(f"too many CTA lines (max {profile.max_cta_lines}); reads like an advertisement")
    if has_isolated_url_line(body):
        issues.append("body has a URL-only line; add surrounding explanation")
    if has_aggressive_marketing_density(body):
        issues.append("marketing keyword density too high; tone down the push")
    target = f"{draft.title}\n{body}"
    if any(pattern.search(target) for pattern in profile.banned_patterns):
        issues.append("text matches a banned platform pattern")

    return list(dict.fromkeys(issues))


# ---------------------------------------------------------------------------
# Freshness
# ---------------------------------------------------------------------------

def extract_year_tokens(text: str) -> List[int]:
    """Year tokens in 1900..2099 that read as a date reference."""
    years = []
    for match in YEAR_TOKEN_REGEX.findall(text or ""):
        year = int(match)
        if 1900 <= year <= 2099:
            years.append(year)
    return years


def has_citation_context(lines: List[str], idx: int) -> bool:
    """Citation vocabulary in the previous, current or next line."""
    window = " ".join([
        lines[idx - 1] if idx > 0 else "",
        lines[idx],
        lines[idx + 1] if idx + 1 < len(lines) else "",
    ])
    return bool(CITATION_CONTEXT_REGEX.search(window))


def stale_body_lines(body: str, reference_year: int) -> List[int]:
    """Indexes of body lines holding past years outside a citation window."""
    lines = (body or "").split("\n")
    flagged = []
    for idx, line in enumerate(lines):
        past = [year for year in extract_year_tokens(URL_REGEX.sub(" ", line)) if year < reference_year]
        if past and not has_citation_context(lines, idx):
            flagged.append(idx)
    return flagged


def validate_freshness(draft: ContentDraft, reference_year: int) -> List[str]:
    """
    Past-year references.

    Title, search title and image prompt may not mention any past year. Body
    lines may only do so inside a citation context.
    """
    issues = []
    strict_fields = (
        ("title", draft.title),
        ("seo_title", draft.seo_title),
        ("image_prompt", draft.image_prompt),
    )
    for name, value in strict_fields:
        past = [year for year in extract_year_tokens(value) if year < reference_year]
        if past:
            issues.append(f"{name} mentions a past year ({', '.join(str(y) for y in past)}); not allowed for freshness")

    lines = (draft.body or "").split("\n")
    for idx in stale_body_lines(draft.body, reference_year):
        issues.append(f"body line uses a past year without a citation context: {lines[idx].strip()[:60]}")
        if len(issues) >= 5:
            break
    return issues


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

def split_heading_sections(body: str):
    """Yield (heading_text, section_lines) for every ``##`` heading."""
    lines = (body or "").split("\n")
    indices = [idx for idx, line in enumerate(lines) if re.match(r"^##+\s+", line.strip())]
    sections = []
    for pos, start in enumerate(indices):
        end = indices[pos + 1] if pos + 1 < len(indices) else len(lines)
        heading = re.sub(r"^##+\s+", "", lines[start].strip()).strip()
        sections.append((heading, lines[start + 1:end]))
    return sections


def count_effective_section_chars(section_lines: List[str]) -> int:
    """Characters of real content, ignoring bare list markers and table rules."""
    kept = []
    for raw in section_lines:
        line = raw.strip()
        if not line:
            continue
        if re.match(r"^[-*]\s*$", line) or re.match(r"^\d+\.\s*$", line) or re.match(r"^\|[-:\s|]+\|$", line):
            continue
        kept.append(line)
    return compact_length("".join(kept))


def validate_heading_detail_depth(body: str) -> List[str]:
    """Every heading needs content; thin sections are bounded."""
    if not (body or "").strip():
        return ["body is empty"]
    sections = split_heading_sections(body)
    if not sections:
        return []

    empty = []
    thin = []
    for pos, (heading, section_lines) in enumerate(sections):
        label = heading or f"section-{pos + 1}"
        if not any(line.strip() for line in section_lines):
            empty.append(label)
            continue
        if count_effective_section_chars(section_lines) < THIN_SECTION_MIN_CHARS:
            thin.append(label)

    issues = []
    if empty:
        issues.append(f"headings without explanation (empty sections: {' / '.join(empty[:3])})")
    thin_ratio = len(thin) / max(1, len(sections))
    if len(thin) >= 3 or thin_ratio >= 0.4:
        issues.append(f"too many thin sections (thin ratio {round(thin_ratio * 100)}%)")
    return issues


def validate_faq_qa_structure(platform, body: str) -> List[str]:
    """A FAQ section, when present, needs the platform minimum of Q/A pairs."""
    signals = faq_signals(body)
    if not signals.has_heading:
        return []
    required = required_faq_count(platform)
    issues = []
    if signals.question_count < required or signals.answer_count < required:
        issues.append(
            f"FAQ needs at least {required} Q/A pairs "
            f"(Q:{signals.question_count}, A:{signals.answer_count})"
        )
    if signals.answer_count < signals.question_count:
        issues.append(f"FAQ is missing answers (Q:{signals.question_count}, A:{signals.answer_count})")
    return issues


def validate_faq_presence(platform, body: str) -> List[str]:
    """Report a FAQ shortfall when the body has fewer pairs than required."""
    required = required_faq_count(platform)
    signals = faq_signals(body)
    count = min(signals.question_count, signals.answer_count)
    if count < required:
        return [f"FAQ insufficient (found {count}, required {required})"]
    return []


def validate_safety(draft: ContentDraft) -> List[str]:
    if OVERCLAIM_REGEX.search(f"{draft.title}\n{draft.body}"):
        return ["platform policy risk: exaggerated or guaranteed-outcome claims"]
    return []


def is_non_reader_line(line: str) -> bool:
    text = (line or "").strip()
    return bool(
        NON_READER_SECTION_HEADING_REGEX.match(text)
        or NON_READER_LINE_REGEX.match(text)
        or NON_READER_ARTIFACT_SENTENCE_REGEX.match(text)
        or NON_READER_CTA_STYLE_LINE_REGEX.match(text)
    )


def validate_reader_facing_body(body: str) -> List[str]:
    """Template scaffolding and meta notes must not reach readers."""
    issues = []
    for raw in (body or "").split("\n"):
        line = raw.strip()
        if line and is_non_reader_line(line):
            issues.append(f"non-reader-facing template line remains: {line[:48]}")
            if len(issues) >= 3:
                break
    return issues


# ---------------------------------------------------------------------------
# Article archetypes
# ---------------------------------------------------------------------------

def has_numbered_steps(body: str) -> bool:
    return len(re.findall(r"^\s*(?:\d+\.|ステップ\s*\d+|手順\s*\d+)", body or "", re.MULTILINE)) >= 3


def has_compare_signals(body: str) -> bool:
    return bool(re.search(r"(比較|違い|使い分け|A/B|メリット|デメリット|向いている)", body or "", re.IGNORECASE))


def has_ranking_signals(body: str) -> bool:
    return bool(re.search(r"(ランキング|順位|TOP\s*\d|第\s*\d+位|1位|2位|3位)", body or "", re.IGNORECASE))


def has_definition_signals(body: str) -> bool:
    return bool(re.search(r"(とは|定義|意味)", body or ""))


def has_flow_signals(body: str) -> bool:
    return bool(re.search(r"(手順|流れ|ステップ|進め方|実行)", body or ""))


def has_caution_signals(body: str) -> bool:
    return bool(re.search(r"(注意点|注意事項|落とし穴|よくあるミス|失敗しやすい)", body or ""))


def has_case_signals(body: str) -> bool:
    return bool(re.search(r"(ケース|事例|背景|シナリオ|場面)", body or ""))


def has_template_signals(body: str) -> bool:
    return bool(re.search(r"(テンプレート|雛形|チェックリスト|記入例|フォーマット)", body or ""))


def has_faq_block(body: str) -> bool:
    signals = faq_signals(body)
    heading = bool(re.search(r"(?:^|\n)##+\s*(?:FAQ|よくある質問|Q&A|Q＆A)", body or "", re.IGNORECASE))
    return heading and signals.question_count >= 1 and signals.answer_count >= 1


def has_trend_evidence(body: str) -> bool:
    citation = re.search(
        r"(出典|調査|統計|データ|公表|発表|白書|資料|レポート|国土交通省|総務省|厚生労働省|金融庁|内閣府|消費者庁|国税庁|source|来源)",
        body or "", re.IGNORECASE,
    )
    return bool(citation) and bool(YEAR_REGEX.search(body or ""))


def validate_article_type_structure(body: str, article_type, platform) -> List[str]:
    """Required structural signals of each archetype."""
    text = body or ""
    issues = []

    def require(condition: bool, message: str):
        if not condition:
            issues.append(message)

    require(count_headings(text) >= 2, "article type structure: at least 2 H2/H3 sections required")

    article_type = ArticleType(article_type)
    if article_type == ArticleType.TOOL_RANKING:
        require(has_ranking_signals(text), "tool ranking lacks ranking signals (e.g. 第1位 / ランキング)")
        require(count_bullets(text) >= 3, "tool ranking needs at least 3 comparable points")
        require(bool(re.search(r"(適用|向いている|対象)", text)), "tool ranking lacks audience or scenario fit")
    elif article_type == ArticleType.COMPETITOR_COMPARE:
        require(has_compare_signals(text), "comparison lacks comparison dimensions")
        require(bool(re.search(r"(メリット|強み)", text)), "comparison lacks strengths")
        require(bool(re.search(r"(デメリット|弱み|注意)", text)), "comparison lacks weaknesses or boundaries")
    elif article_type == ArticleType.PRACTICAL_GUIDE:
        require(has_definition_signals(text), "practical guide lacks a definition section (〜とは)")
        require(has_flow_signals(text), "practical guide lacks a procedure")
        require(has_caution_signals(text), "practical guide lacks cautions or common mistakes")
        require(has_faq_block(text), "practical guide should include a Q/A FAQ section")
    elif article_type == ArticleType.HOW_TO:
        require(has_numbered_steps(text), "how-to lacks 3 or more explicit steps")
        require(bool(re.search(r"(例|サンプル|入力例|設定例)", text)), "how-to lacks parameter examples")
        require(bool(re.search(r"(エラー|つまずき|失敗|対処)", text)), "how-to lacks common errors and fixes")
    elif article_type == ArticleType.TREND_ANALYSIS:
        require(bool(re.search(r"(トレンド|動向|推移|変化|市場)", text)), "trend analysis lacks a description of change")
        require(has_trend_evidence(text), "trend analysis lacks source plus year evidence")
        require(bool(re.search(r"(対策|アクション|次に取るべき|実務での使い方|行動)", text)), "trend analysis lacks recommended actions")
    elif article_type == ArticleType.CASE_REVIEW:
        require(has_case_signals(text), "case review lacks case background")
        require(bool(re.search(r"(判断|検討|比較|手順|対応)", text)), "case review lacks the decision process")
        require(bool(re.search(r"(結果|学び|再現|改善|次回に活かす)", text)), "case review lacks results and reusable lessons")
    elif article_type == ArticleType.PITFALL_CHECKLIST:
        require(bool(re.search(r"(落とし穴|よくあるミス|失敗)", text)), "pitfall checklist lacks warning signals")
        require(count_bullets(text) >= 3, "pitfall checklist needs at least 3 items")
    elif article_type == ArticleType.TEMPLATE_PACK:
        require(has_template_signals(text), "template pack lacks a template or checklist")
        require(bool(re.search(r"(使い方|記入|運用|手順)", text)), "template pack lacks usage instructions")

    if Platform(platform) == Platform.AMEBA:
        require(len(text) >= 500, "ameba body too short to express the article type")

    return issues


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

@dataclass
class GateIssues:
    """Hard issues of one draft, grouped by their weight in candidate distance."""
    hard: List[str] = field(default_factory=list)
    platform: List[str] = field(default_factory=list)
    article_type: List[str] = field(default_factory=list)

    @property
    def all(self) -> List[str]:
        return list(dict.fromkeys(self.hard + self.platform + self.article_type))

    @property
    def passed(self) -> bool:
        return not self.all


def collect_hard_issues(
    draft: ContentDraft,
    ctx: LinkPolicyContext,
    reference_year: int,
) -> List[str]:
    """Language, link, freshness, safety, depth, FAQ and reader-facing checks."""
    issues = []
    issues.extend(validate_language_purity(draft, ctx))
    issues.extend(validate_link_policy(draft, ctx))
    if ctx.content_variant != ContentVariant.NOTE_VIRAL:
        issues.extend(validate_freshness(draft, reference_year))
    issues.extend(validate_safety(draft))
    issues.extend(validate_heading_detail_depth(draft.body))
    issues.extend(validate_faq_qa_structure(ctx.platform, draft.body))
    issues.extend(validate_reader_facing_body(draft.body))
    return list(dict.fromkeys(issues))


def run_validators(
    draft: ContentDraft,
    ctx: LinkPolicyContext,
    reference_year: int,
    article_type: Optional[ArticleType] = None,
) -> GateIssues:
    """Run the full validator catalog over a draft."""
    type_issues = []
    if article_type is not None and ctx.content_variant != ContentVariant.NOTE_VIRAL:
        type_issues = validate_article_type_structure(draft.body, article_type, ctx.platform)
    result = GateIssues(
        hard=collect_hard_issues(draft, ctx, reference_year),
        platform=validate_platform_compliance(draft, ctx),
        article_type=type_issues,
    )
    logger.debug(
        f"Validated draft: {len(result.hard)} hard, {len(result.platform)} platform, "
        f"{len(result.article_type)} article-type issues"
    )
    return result


def validate_complete_draft(
    draft: ContentDraft,
    ctx: LinkPolicyContext,
    reference_year: int,
    article_type: Optional[ArticleType] = None,
) -> ValidationResult:
    """Validation result view used by the HTTP surface."""
    issues = run_validators(draft, ctx, reference_year, article_type)
    result = ValidationResult()
    for message in issues.all:
        result.add_error(message)
    for message in validate_faq_presence(ctx.platform, draft.body):
        result.add_warning(message)
    return result
