"""
Deterministic repair transforms.

Provider-free text rewrites used when AI revision did not clear the gate.
Every transform is a pure ``str -> str`` (or draft -> draft) function and is
idempotent: running it on its own output returns the same text.
"""

import re
from typing import List, Optional, Sequence, Tuple

from contentgate.core.logging import get_logger
from contentgate.core.similarity import NEAR_DUPLICATE_THRESHOLD, paragraph_similarity
from contentgate.core.utils import (
    URL_REGEX,
    build_tracked_url,
    collapse_blank_lines,
    extract_url_slug,
    extract_urls,
    has_inline_url,
    normalize_comparable_text,
    normalize_note_article_url,
    normalize_topic_label,
    pick_stable_variant,
    split_paragraphs,
    urls_match,
)
from .analyzers import (
    FAQ_ANSWER_LINE_REGEX,
    FAQ_HEADING_LINE_REGEX,
    FAQ_QUESTION_LINE_REGEX,
    INTRO_HOOK_REGEX,
)
from .models import ContentDraft, EvidenceItem, LinkPolicyContext
from .platforms import ArticleType, Platform, get_platform_profile, required_faq_count, resolve_platform
from .validators import (
    CITATION_CONTEXT_REGEX,
    CHINESE_PUNCTUATION_REGEX,
    LEAKED_KEY_REGEX,
    NON_READER_ARTIFACT_SENTENCE_REGEX,
    NON_READER_CTA_STYLE_LINE_REGEX,
    NON_READER_LINE_REGEX,
    NON_READER_SECTION_HEADING_REGEX,
    THIN_SECTION_MIN_CHARS,
    count_effective_section_chars,
    extract_year_tokens,
    has_caution_signals,
    has_compare_signals,
    has_case_signals,
    has_definition_signals,
    has_faq_block,
    has_flow_signals,
    has_numbered_steps,
    has_ranking_signals,
    has_template_signals,
    is_contaminated_line,
)

logger = get_logger(__name__)

PRIMARY_LINK_PLACEHOLDER = "__PRIMARY_ALLOWED_LINK__"
DEFAULT_TOPIC = "このテーマ"

HEADING_PREFIX_REGEX = re.compile(r"^##+\s+")
FAQ_LITERAL_HEADING_REGEX = re.compile(r"^##+\s*FAQ\s*$", re.IGNORECASE)
RELATED_TOOLS_HEADING_REGEX = re.compile(r"^##+\s*関連ツール(?:・リソース)?(?:の紹介)?\s*$", re.IGNORECASE)
RELATED_NOTE_SECTION_REGEX = re.compile(r"^##+\s*関連記事\s*[\s\S]*?(?=^##+\s+|\Z)", re.MULTILINE | re.IGNORECASE)
FORMULAIC_LEAD_REGEX = re.compile(r"^結論として、.*(?:安定します|重要です|有効です|おすすめです|効果的です)[。！]?\s*$")
PARENTHESIZED_URL_ASCII_REGEX = re.compile(r"\(\s*(https?://[^\s)）]+)\s*\)")
PARENTHESIZED_URL_FULL_REGEX = re.compile(r"（\s*(https?://[^\s)）]+)\s*）")
MARKDOWN_LINK_REGEX = re.compile(r"\[([^\]]+)\]\((https?://[^\s)]+)\)", re.IGNORECASE)
SITE_PATH_REGEX = re.compile(r"/(?:tools|takken)/[a-z0-9_%/-]+", re.IGNORECASE)
LEAKED_KEY_LINE_REGEX = re.compile(
    r'^"?(title|body|titleChinese|bodyChinese|hashtags|imagePrompt|ctaLink|seoTitle|seoGeoReport|seoScore|'
    r'geoScore|searchScore|searchPassed|searchIssues|qualityReport|signals|issues|strengths|aiStatus|'
    r'fullThresholdPassed)"?\s*:'
)
LEAKED_QUOTED_FIELDS = ('"titleChinese"', '"bodyChinese"', '"hashtags"', '"seoGeoReport"',
                        '"imagePrompt"', '"ctaLink"', '"seoTitle"')
REFERENCE_LINE_REGEX = re.compile(r"(公式ページ|参考ページ|関連ページ|参照|活用パターン|関連ツール)")
CTA_PLACEMENT_CUE_REGEX = re.compile(r"(実務|手順|活用|判断|使い方|ポイント|具体例|事例)")
CTA_LOW_PRIORITY_REGEX = re.compile(r"(FAQ|よくある質問|まとめ|結論|関連ツール・リソース)", re.IGNORECASE)
ANSWER_START_REGEX = re.compile(r"^\s*(?:\*\*)?A(?:[0-9０-９]+)?[:：]", re.MULTILINE)

SKIP_FALLBACK_PARTIAL_REGEX = re.compile(r"つまずきやすいポイント|の実務ポイント|直近の動向と実務への影響|実務アクション")
SKIP_FALLBACK_QUESTION_REGEX = re.compile(r"^(?:なぜ|どうして|どのように)")
SKIP_FALLBACK_EXACT_REGEX = re.compile(
    r"^(?:FAQ|よくある質問|Q&A|Q＆A|まとめ|結論|関連ツール(?:・リソース)?|参考資料|出典|補足|注意事項|"
    r"実行ステップ|よくある失敗と回避|実施フロー|実践ステップ)$",
    re.IGNORECASE,
)


def _is_structural_line(trimmed: str) -> bool:
    """Headings, table rows, list items and FAQ lines are never deduped."""
    return bool(
        re.match(r"^#{1,6}\s+", trimmed)
        or trimmed.startswith("|")
        or re.match(r"^[-*]\s+", trimmed)
        or re.match(r"^\d+\.\s+", trimmed)
        or FAQ_QUESTION_LINE_REGEX.match(trimmed)
        or FAQ_ANSWER_LINE_REGEX.match(trimmed)
    )


def _heading_sections(lines: List[str]) -> List[int]:
    return [idx for idx, line in enumerate(lines) if HEADING_PREFIX_REGEX.match(line.strip())]


# ---------------------------------------------------------------------------
# Field cleaners
# ---------------------------------------------------------------------------

def normalize_parenthesized_urls(text: str) -> str:
    """Unwrap ``(url)`` and ``（url）`` into a bare URL."""
    text = PARENTHESIZED_URL_ASCII_REGEX.sub(r"\1", text or "")
    return PARENTHESIZED_URL_FULL_REGEX.sub(r"\1", text)


def strip_url_and_slug_artifacts(text: str, primary_url: str, replacement: str) -> str:
    """Replace URLs, site paths and the primary URL's slug with a readable label."""
    if not text:
        return text or ""
    sanitized = MARKDOWN_LINK_REGEX.sub(r"\1", text)
    sanitized = URL_REGEX.sub(lambda _: replacement, sanitized)
    sanitized = SITE_PATH_REGEX.sub(lambda _: replacement, sanitized)

    slug = extract_url_slug(primary_url)
    if slug and re.search(r"[a-z]", slug):
        sanitized = re.sub(rf"\b{re.escape(slug)}\b", lambda _: replacement, sanitized, flags=re.IGNORECASE)
        spaced = slug.replace("-", " ")
        sanitized = re.sub(rf"\b{re.escape(spaced)}\b", lambda _: replacement, sanitized, flags=re.IGNORECASE)

    sanitized = re.sub(r"[ \t]{2,}", " ", sanitized)
    return collapse_blank_lines(sanitized)


def sanitize_japanese_field(text: str) -> str:
    """
    Drop lines that are serialization debris or Chinese text.

    Removes JSON key lines, bare braces and brackets, and any line the
    language-purity heuristic marks as contaminated. Blank lines are kept.
    """
    if not text:
        return text or ""
    kept = []
    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            kept.append(raw)
            continue
        if LEAKED_KEY_LINE_REGEX.match(line) or LEAKED_KEY_REGEX.search(line):
            continue
        if any(field in line for field in LEAKED_QUOTED_FIELDS):
            continue
        if re.match(r"^[\[\]{},]+$", line):
            continue
        if CHINESE_PUNCTUATION_REGEX.search(line) or is_contaminated_line(line):
            continue
        kept.append(raw)
    return collapse_blank_lines("\n".join(kept))


def strip_leading_duplicated_title_in_body(title: str, body: str) -> str:
    """Remove a first body line that repeats the title."""
    if not body:
        return body or ""
    normalized_title = normalize_comparable_text(title)
    if not normalized_title:
        return body.strip()
    lines = body.split("\n")
    first = next((idx for idx, line in enumerate(lines) if line.strip()), None)
    if first is None:
        return body.strip()
    normalized_first = normalize_comparable_text(lines[first].strip())
    duplicated = bool(normalized_first) and (
        normalized_first == normalized_title
        or normalized_first.startswith(normalized_title)
        or normalized_title.startswith(normalized_first)
    )
    if not duplicated:
        return body.strip()
    return "\n".join(lines[first + 1:]).strip()


def derive_fallback_title_from_body(body: str, topic_label: str) -> str:
    """Title from the first heading or the topic when the model title was unusable."""
    heading = ""
    for line in (body or "").split("\n"):
        if HEADING_PREFIX_REGEX.match(line.strip()):
            heading = HEADING_PREFIX_REGEX.sub("", line.strip()).strip()
            break
    if re.match(r"^https?://", heading, re.IGNORECASE):
        heading = ""
    seed = URL_REGEX.sub("", heading or topic_label or "不動産実務")
    seed = re.sub(r"^このテーマ(?:とは|の.*)?$", "", seed)
    seed = re.sub(r"\s+", " ", seed).strip() or "不動産実務"
    if re.search(r"ガイド|解説|ポイント", seed):
        return seed
    if seed.endswith("とは"):
        return f"{seed[:-2].strip()}の要点解説"
    return f"{seed}の要点解説"


def ensure_keyword_in_title(title: str, keyword: str) -> str:
    """Prefix ``keyword｜`` when the title does not mention the keyword."""
    clean_title = (title or "").strip()
    clean_keyword = (keyword or "").strip()
    if not clean_title or not clean_keyword:
        return clean_title
    normalized_keyword = normalize_comparable_text(clean_keyword)
    if not normalized_keyword or normalized_keyword in normalize_comparable_text(clean_title):
        return clean_title
    return f"{clean_keyword}｜{clean_title}"


def normalize_keyword_for_narrative(keyword: str) -> str:
    normalized = normalize_topic_label(keyword)
    normalized = re.sub(r"[!！?？💡✨📌✅⭐️☆]", "", normalized)
    normalized = re.sub(r"[~〜～]+", "", normalized)
    normalized = re.sub(r"\s+", " ", normalized).strip()
    if not normalized:
        return DEFAULT_TOPIC
    if len(normalized) <= 24:
        return normalized
    return f"{normalized[:24].strip()}…"


# ---------------------------------------------------------------------------
# Reader-facing cleanup
# ---------------------------------------------------------------------------

def prune_empty_heading_sections(body: str) -> str:
    """Drop headings whose section has no content at all."""
    if not body:
        return body or ""
    lines = body.split("\n")
    output = []
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        if not HEADING_PREFIX_REGEX.match(line.strip()):
            output.append(line)
            idx += 1
            continue
        end = idx + 1
        while end < len(lines) and not HEADING_PREFIX_REGEX.match(lines[end].strip()):
            end += 1
        section = lines[idx + 1:end]
        if any(item.strip() for item in section):
            output.append(line)
            output.extend(section)
        idx = end
    return collapse_blank_lines("\n".join(output))


def remove_non_reader_facing_artifacts(body: str) -> str:
    """Remove template sections, meta notes and labelled CTA scaffolding."""
    if not body:
        return body or ""
    kept = []
    skipping_section = False
    for line in body.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            if not skipping_section:
                kept.append(line)
            continue
        if NON_READER_SECTION_HEADING_REGEX.match(trimmed):
            skipping_section = True
            continue
        if skipping_section:
            if HEADING_PREFIX_REGEX.match(trimmed):
                skipping_section = False
                kept.append(line)
            continue
        if (NON_READER_LINE_REGEX.match(trimmed)
                or NON_READER_ARTIFACT_SENTENCE_REGEX.match(trimmed)
                or NON_READER_CTA_STYLE_LINE_REGEX.match(trimmed)):
            continue
        kept.append(line)
    return prune_empty_heading_sections(collapse_blank_lines("\n".join(kept)))


def strip_formulaic_lead_sentence(body: str) -> str:
    """Drop a boilerplate ``結論として、…`` line among the first three content lines."""
    if not body:
        return body or ""
    lines = body.split("\n")
    content = [(idx, line.strip()) for idx, line in enumerate(lines) if line.strip()]
    for idx, line in content[:3]:
        if line.startswith("#"):
            continue
        if FORMULAIC_LEAD_REGEX.match(line):
            del lines[idx]
            break
    return collapse_blank_lines("\n".join(lines))


def remove_faq_meta_guidance_sentences(body: str) -> str:
    """Inside FAQ sections, drop meta advice about how to read the FAQ."""
    if not body:
        return body or ""
    cleaned = []
    in_faq = False
    for line in body.split("\n"):
        trimmed = line.strip()
        if HEADING_PREFIX_REGEX.match(trimmed):
            in_faq = bool(FAQ_HEADING_LINE_REGEX.match(trimmed))
            cleaned.append(line)
            continue
        if in_faq and NON_READER_ARTIFACT_SENTENCE_REGEX.match(trimmed):
            continue
        cleaned.append(line)
    return collapse_blank_lines("\n".join(cleaned))


def drop_related_tools_section(body: str) -> str:
    """Remove a ``関連ツール`` section up to the next heading."""
    if not body:
        return body or ""
    output = []
    skipping = False
    for line in body.replace("\r", "").split("\n"):
        trimmed = line.strip()
        if RELATED_TOOLS_HEADING_REGEX.match(trimmed):
            skipping = True
            continue
        if skipping:
            if HEADING_PREFIX_REGEX.match(trimmed):
                skipping = False
                output.append(line)
            continue
        output.append(line)
    return collapse_blank_lines("\n".join(output))


# ---------------------------------------------------------------------------
# FAQ
# ---------------------------------------------------------------------------

DEFAULT_FAQ_QUESTIONS = (
    "{keyword}は何から始めるべきですか？",
    "進捗が遅れたときはどう立て直せばよいですか？",
    "実務と学習を両立するコツは何ですか？",
)
DEFAULT_FAQ_ANSWERS = (
    "まず{keyword}の定義と基本手順を押さえ、次に小さな実例で確認すると定着しやすくなります。",
    "遅れが出た場合は優先順位を再設定し、毎日の実行量を小さく固定して再開すると安定します。",
    "結論→根拠→例外の順でメモ化し、判断基準を同じ形式で反復すると再現性が上がります。",
)
APPENDED_FAQ_HEADING = "## よくある質問"


def build_default_faq_question(keyword: str, index: int) -> str:
    template = DEFAULT_FAQ_QUESTIONS[min(index, len(DEFAULT_FAQ_QUESTIONS) - 1)]
    return template.format(keyword=(keyword or "").strip() or DEFAULT_TOPIC)


def build_default_faq_answer(keyword: str, index: int) -> str:
    template = DEFAULT_FAQ_ANSWERS[min(index, len(DEFAULT_FAQ_ANSWERS) - 1)]
    return template.format(keyword=(keyword or "").strip() or DEFAULT_TOPIC)


def _strip_faq_marker(line: str, regex) -> str:
    return re.sub(r"\*\*$", "", regex.sub("", line or "", count=1)).strip()


def _normalize_faq_block(section_lines: List[str], required: int, keyword: str) -> List[str]:
    """Rebuild one FAQ section body as ``Q:``/``A:`` pairs."""
    pairs: List[Tuple[str, str]] = []
    narrative: List[str] = []
    pending = ""

    for row in section_lines:
        current = row.strip()
        if not current or NON_READER_ARTIFACT_SENTENCE_REGEX.match(current):
            continue
        if FAQ_QUESTION_LINE_REGEX.match(current):
            if pending:
                pairs.append((pending, build_default_faq_answer(keyword, len(pairs))))
            pending = _strip_faq_marker(current, FAQ_QUESTION_LINE_REGEX)
            continue
        if FAQ_ANSWER_LINE_REGEX.match(current):
            answer = _strip_faq_marker(current, FAQ_ANSWER_LINE_REGEX)
            if pending:
                pairs.append((pending, answer or build_default_faq_answer(keyword, len(pairs))))
                pending = ""
            continue
        if pending:
            pairs.append((pending, current))
            pending = ""
        else:
            narrative.append(current)

    if pending:
        pairs.append((pending, build_default_faq_answer(keyword, len(pairs))))

    while len(pairs) < required:
        answer = narrative.pop(0) if narrative else build_default_faq_answer(keyword, len(pairs))
        pairs.append((build_default_faq_question(keyword, len(pairs)), answer))

    picked = pairs[:max(required, min(3, len(pairs)))]
    output = [""]
    for question, answer in picked:
        if not question.strip() or not answer.strip():
            continue
        output.extend([f"Q: {question.strip()}", f"A: {answer.strip()}", ""])
    return output


def normalize_faq_section_to_qa(body: str, platform, keyword: str) -> str:
    """
    Rewrite every FAQ section into normalized ``Q:``/``A:`` pairs.

    Unanswered questions get a default answer, leftover narrative lines are
    reused as answers for synthesized questions, and the section is padded up
    to the platform minimum. A body without any FAQ section gets one appended.
    """
    if body is None:
        return ""
    required = required_faq_count(platform)
    lines = body.split("\n")
    output = []
    found = False
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        if not FAQ_HEADING_LINE_REGEX.match(line.strip()):
            output.append(line)
            idx += 1
            continue
        found = True
        end = idx + 1
        while end < len(lines) and not HEADING_PREFIX_REGEX.match(lines[end].strip()):
            end += 1
        output.append(line)
        output.extend(_normalize_faq_block(lines[idx + 1:end], required, keyword))
        idx = end

    if not found and body.strip():
        output.extend(["", APPENDED_FAQ_HEADING])
        output.extend(_normalize_faq_block([], required, keyword))

    return collapse_blank_lines("\n".join(output))


def collapse_duplicate_faq_sections(body: str) -> str:
    """Keep the first ``## FAQ`` section and drop later ones."""
    if not body:
        return body or ""
    result = []
    seen = False
    skipping = False
    for line in body.split("\n"):
        trimmed = line.strip()
        if FAQ_LITERAL_HEADING_REGEX.match(trimmed):
            if not seen:
                seen = True
                skipping = False
                result.append(line)
            else:
                skipping = True
            continue
        if skipping:
            if HEADING_PREFIX_REGEX.match(trimmed):
                skipping = False
                result.append(line)
            continue
        result.append(line)
    return collapse_blank_lines("\n".join(result))


# ---------------------------------------------------------------------------
# Sparse sections
# ---------------------------------------------------------------------------

def should_skip_heading_fallback(heading: str) -> bool:
    clean = HEADING_PREFIX_REGEX.sub("", (heading or "").strip()).strip()
    if not clean:
        return False
    if SKIP_FALLBACK_PARTIAL_REGEX.search(clean):
        return True
    if re.search(r"[?？]$", clean) or SKIP_FALLBACK_QUESTION_REGEX.match(clean):
        return True
    return bool(SKIP_FALLBACK_EXACT_REGEX.match(clean))


def build_heading_fallback_paragraph(heading: str, keyword: str) -> str:
    """One explanatory sentence for a thin section, picked by stable hash."""
    clean_keyword = normalize_keyword_for_narrative(keyword)
    clean_heading = HEADING_PREFIX_REGEX.sub("", (heading or "").strip()).strip() or f"{clean_keyword}の要点"
    variants = [
        f"{clean_heading}では、前提条件と判断材料を並べて整理すると、論点の取り違えを防ぎやすくなります。",
        f"{clean_heading}は、{clean_keyword}全体の流れに位置づけて読むと、実務での使いどころが明確になります。",
        f"短いケースに当てはめて確認すると、{clean_heading}の判断基準を実務に転用しやすくなります。",
    ]
    return pick_stable_variant(variants, f"{clean_keyword}:{clean_heading}")


def enrich_sparse_heading_sections(body: str, keyword: str) -> str:
    """Append a fallback paragraph to empty or thin sections."""
    if not body:
        return body or ""
    lines = body.split("\n")
    headings = _heading_sections(lines)
    if not headings:
        return body.strip()

    rebuilt = list(lines[:headings[0]])
    for pos, start in enumerate(headings):
        end = headings[pos + 1] if pos + 1 < len(headings) else len(lines)
        heading_line = lines[start].rstrip()
        section = lines[start + 1:end]
        plain = HEADING_PREFIX_REGEX.sub("", heading_line.strip())
        skip = should_skip_heading_fallback(plain)
        rebuilt.append(heading_line)

        if not any(item.strip() for item in section):
            rebuilt.append("")
            if not skip:
                rebuilt.append(build_heading_fallback_paragraph(plain, keyword))
            rebuilt.append("")
            continue

        rebuilt.extend(section)
        if count_effective_section_chars(section) < THIN_SECTION_MIN_CHARS and not skip:
            rebuilt.append("")
            rebuilt.append(build_heading_fallback_paragraph(plain, keyword))
    return collapse_blank_lines("\n".join(rebuilt))


# ---------------------------------------------------------------------------
# Dedup
# ---------------------------------------------------------------------------

def dedupe_paragraphs(body: str) -> str:
    """
    Collapse repeated lines, then near-duplicate paragraphs.

    Consecutive narrative lines that compare equal (18+ normalized chars) are
    collapsed. Paragraphs at or above the near-duplicate threshold are
    dropped, except that a URL-bearing duplicate replaces a URL-less original.
    """
    collapsed: List[str] = []
    previous = ""
    for raw in (body or "").split("\n"):
        line = raw.rstrip()
        trimmed = line.strip()
        if not trimmed:
            collapsed.append("")
            previous = ""
            continue
        structural = _is_structural_line(trimmed)
        comparable = normalize_comparable_text(URL_REGEX.sub(" ", trimmed))
        if not structural and comparable and len(comparable) >= 18 and comparable == previous:
            if has_inline_url(trimmed) and not has_inline_url(collapsed[-1]):
                collapsed[-1] = line
            continue
        collapsed.append(line)
        previous = "" if structural else comparable

    joined = "\n".join(collapsed)
    paragraphs = split_paragraphs(joined)
    if len(paragraphs) <= 1:
        return collapse_blank_lines(joined)

    kept: List[str] = []
    for paragraph in paragraphs:
        match = next(
            (pos for pos, existing in enumerate(kept)
             if paragraph_similarity(existing, paragraph) >= NEAR_DUPLICATE_THRESHOLD),
            None,
        )
        if match is None:
            kept.append(paragraph)
        elif has_inline_url(paragraph) and not has_inline_url(kept[match]):
            kept[match] = paragraph
    return "\n\n".join(kept).strip()


def dedupe_repeated_narrative_lines_prefer_url(body: str) -> str:
    """Drop repeated narrative lines anywhere in the body, keeping the URL-bearing copy."""
    lines = (body or "").split("\n")
    if len(lines) <= 1:
        return (body or "").strip()

    output: List[str] = []
    seen = {}
    for line in lines:
        trimmed = line.strip()
        if not trimmed or _is_structural_line(trimmed) or re.match(r"^>\s+", trimmed):
            output.append(line)
            continue
        key = normalize_comparable_text(URL_REGEX.sub(" ", trimmed))
        if not key or len(key) < 20:
            output.append(line)
            continue
        if key not in seen:
            seen[key] = len(output)
            output.append(line)
            continue
        previous = output[seen[key]]
        if has_inline_url(trimmed) and not has_inline_url(previous):
            output[seen[key]] = line
    return collapse_blank_lines("\n".join(output))


def dedupe_body(body: str) -> str:
    """Paragraph then line deduplication."""
    return dedupe_repeated_narrative_lines_prefer_url(dedupe_paragraphs(body))


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

CTA_TEMPLATES = {
    Platform.AMEBA: (
        "実際に使いながら理解を固めたい人は、公式ページ: {url} を見ておくと進めやすいです。",
        "{topic}の流れを手元で確認したい場合は、公式ページ: {url} がわかりやすいです。",
    ),
    Platform.NOTE: (
        "{topic}の実務手順は、公式ページ: {url} に整理されています。",
        "本文で触れた論点を実務へ落とし込む際は、公式ページ: {url} を参照してください。",
    ),
    Platform.HATENA: (
        "{topic}の入力例や判断順は、公式ページ: {url} で確認できます。",
        "仕様と活用パターンは公式ページ: {url} にまとまっているため、あわせて参照すると実務に転用しやすくなります。",
    ),
}


def strip_disallowed_urls(text: str, allowed_link: str) -> Tuple[str, bool]:
    """
    Remove every URL except the first allowed one, which becomes a placeholder.

    Returns:
        Tuple of (text, whether the allowed URL was kept)
    """
    kept = False

    def _replace(match):
        nonlocal kept
        url = match.group(0)
        if not kept and urls_match(url, allowed_link):
            kept = True
            return PRIMARY_LINK_PLACEHOLDER
        return ""

    return URL_REGEX.sub(_replace, text or ""), kept


def restore_allowed_url(text: str, allowed_link: str) -> str:
    return (text or "").replace(PRIMARY_LINK_PLACEHOLDER, allowed_link, 1)


def build_safe_cta_line(platform, url: str, topic_label: str) -> str:
    platform = resolve_platform(platform)
    topic = normalize_topic_label(topic_label) or DEFAULT_TOPIC
    templates = [item.format(url=url, topic=topic) for item in CTA_TEMPLATES[platform]]
    return pick_stable_variant(templates, f"{platform.value}:{topic}:{url}")


def merge_with_inserted_cta(body: str, cta_line: str, platform, topic_label: str) -> str:
    """
    Append the CTA line to the best-scored paragraph.

    Paragraphs near the middle score highest; topic mentions and practical
    cue words add, while headings, FAQ and summary paragraphs are avoided,
    and so is the first paragraph where the platform forbids it.
    """
    profile = get_platform_profile(platform)
    paragraphs = split_paragraphs(body)
    if not paragraphs:
        return cta_line

    topic = normalize_comparable_text(topic_label)
    mid = len(paragraphs) // 2
    best_idx = len(paragraphs) - 1
    best_score = None
    for idx, paragraph in enumerate(paragraphs):
        heading_only = bool(re.match(r"^#+\s+", paragraph)) and "\n" not in paragraph
        low_priority = (
            heading_only
            or bool(CTA_LOW_PRIORITY_REGEX.search(paragraph))
            or bool(FAQ_QUESTION_LINE_REGEX.match(paragraph))
            or bool(re.search(r"^\s*(?:\*\*)?Q(?:[0-9０-９]+(?:[.．:：])?|[:：])", paragraph, re.MULTILINE))
            or bool(ANSWER_START_REGEX.search(paragraph))
        )
        score = 100 - abs(idx - mid) * 12
        if topic and topic in normalize_comparable_text(paragraph):
            score += 22
        if CTA_PLACEMENT_CUE_REGEX.search(paragraph):
            score += 14
        if low_priority:
            score -= 80
        if profile.avoid_first_paragraph and idx == 0:
            score -= 30
        if best_score is None or score > best_score:
            best_idx, best_score = idx, score

    if profile.avoid_first_paragraph and len(paragraphs) > 1 and best_idx == 0:
        best_idx = 1
    paragraphs[best_idx] = f"{paragraphs[best_idx]}\n{cta_line}"
    return "\n\n".join(paragraphs)


def inject_link_into_existing_reference_line(body: str, url: str) -> Optional[str]:
    """Attach the URL to a narrative line that already points readers to a page."""
    lines = (body or "").split("\n")
    for idx, raw in enumerate(lines):
        trimmed = raw.strip()
        if not trimmed or _is_structural_line(trimmed):
            continue
        if has_inline_url(trimmed) or not REFERENCE_LINE_REGEX.search(trimmed):
            continue
        sentence = re.sub(r"[。.!！?？]+\s*$", "", trimmed)
        lines[idx] = f"{sentence} {url}。"
        return collapse_blank_lines("\n".join(lines))
    return None


def ensure_related_note_section(body: str, related_url: str, topic_label: str, related_title: str = "") -> str:
    """Replace any ``## 関連記事`` section with one pointing at ``related_url``."""
    related = normalize_note_article_url(related_url)
    if not related:
        return body or ""
    clean_body = collapse_blank_lines(RELATED_NOTE_SECTION_REGEX.sub("", (body or "").replace("\r", "")))
    topic = normalize_topic_label(topic_label) or DEFAULT_TOPIC
    title = normalize_topic_label(related_title)
    if title:
        summary = f"同じ論点を別の切り口で整理した過去記事「{title}」も参考になります: {related}"
    else:
        summary = f"{topic}を別視点で整理した過去記事も参考になります: {related}"
    appendix = f"## 関連記事\n{summary}"
    if not clean_body:
        return appendix
    return collapse_blank_lines(f"{clean_body}\n\n{appendix}")


def _already_single_linked(body: str, canonical: str, related_url: str) -> bool:
    urls = extract_urls(body)
    primary = [url for url in urls if url == canonical]
    others = [url for url in urls if url != canonical]
    if len(primary) != 1:
        return False
    if related_url:
        return others == [related_url] and body.rstrip().endswith(related_url)
    return not others


def ensure_single_body_cta_link(
    body: str,
    canonical_link: str,
    platform,
    topic_label: str,
    related_note_url: str = "",
    related_note_title: str = "",
) -> str:
    """
    Leave exactly one CTA link to ``canonical_link`` in the body.

    All URLs are removed, then the link is attached to an existing reference
    line or a new CTA sentence is merged into the best paragraph. On note a
    related-article section is (re)built when a related URL is given. A body
    already in that final shape is returned unchanged.
    """
    platform = resolve_platform(platform)
    canonical = (canonical_link or "").strip()
    related = normalize_note_article_url(related_note_url) if platform == Platform.NOTE else ""
    if _already_single_linked(body or "", canonical, related):
        return (body or "").strip()

    cleaned = URL_REGEX.sub("", body or "")
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    cleaned = re.sub(r"\(\s*\)", "", cleaned)
    cleaned = re.sub(r"（\s*）", "", cleaned)
    cleaned = collapse_blank_lines(cleaned)

    injected = inject_link_into_existing_reference_line(cleaned, canonical)
    if injected:
        cleaned = dedupe_repeated_narrative_lines_prefer_url(injected)
    else:
        cta_line = build_safe_cta_line(platform, canonical, topic_label)
        cleaned = merge_with_inserted_cta(cleaned, cta_line, platform, topic_label) if cleaned else cta_line

    if platform == Platform.NOTE and related:
        return ensure_related_note_section(cleaned, related, topic_label, related_note_title)
    return cleaned


# ---------------------------------------------------------------------------
# Freshness
# ---------------------------------------------------------------------------

def replace_stale_year_tokens(text: str, reference_year: int) -> str:
    """Rewrite past-year tokens to ``最新`` / ``最新年度``, leaving URLs intact."""
    if not text:
        return text or ""
    urls = []

    def _hide(match):
        urls.append(match.group(0))
        return f"__URL_PLACEHOLDER_{len(urls) - 1}__"

    hidden = URL_REGEX.sub(_hide, text)
    hidden = re.sub(
        r"(?:19|20)\d{2}年度",
        lambda m: "最新年度" if int(m.group(0)[:4]) < reference_year else m.group(0),
        hidden,
    )
    hidden = re.sub(
        r"(?:19|20)\d{2}年",
        lambda m: "最新" if int(m.group(0)[:4]) < reference_year else m.group(0),
        hidden,
    )
    hidden = re.sub(
        r"(?:19|20)\d{2}(?=年|年度|[/.\-）)]|$)",
        lambda m: "最新" if int(m.group(0)) < reference_year else m.group(0),
        hidden,
        flags=re.MULTILINE,
    )
    hidden = hidden.replace("最新年度度", "最新年度")
    hidden = re.sub(r"最新年(?!度)", "最新", hidden)
    return re.sub(r"__URL_PLACEHOLDER_(\d+)__", lambda m: urls[int(m.group(1))], hidden)


def sanitize_stale_body_years(body: str, reference_year: int) -> str:
    """Rewrite past years on body lines that have no citation context nearby."""
    original = (body or "").split("\n")
    lines = list(original)
    for idx, line in enumerate(original):
        past = [year for year in extract_year_tokens(URL_REGEX.sub(" ", line)) if year < reference_year]
        if not past:
            continue
        window = " ".join([
            original[idx - 1] if idx > 0 else "",
            line,
            original[idx + 1] if idx + 1 < len(original) else "",
        ])
        if CITATION_CONTEXT_REGEX.search(window):
            continue
        lines[idx] = replace_stale_year_tokens(line, reference_year)
    return "\n".join(lines)


def sanitize_stale_years(draft: ContentDraft, reference_year: int) -> ContentDraft:
    """Freshness repair over title, search title, image prompt and body."""
    result = draft.clone()
    result.title = replace_stale_year_tokens(draft.title, reference_year)
    result.seo_title = replace_stale_year_tokens(draft.seo_title, reference_year)
    result.image_prompt = replace_stale_year_tokens(draft.image_prompt, reference_year)
    result.body = sanitize_stale_body_years(draft.body, reference_year)
    return result


# ---------------------------------------------------------------------------
# Structured candidate
# ---------------------------------------------------------------------------

HUMANIZED_INTROS = {
    Platform.AMEBA: (
        "最近、{kw}で手が止まる人が増えています。どこで迷いやすいか、先に整理しておきましょう。",
        "{kw}は「順番」を押さえるだけで解きやすくなります。今日はつまずきやすい所から見ていきます。",
        "「これ、なんとなく分かる」で進むと{kw}は失点しがちです。最初に判断の軸を確認しましょう。",
    ),
    Platform.NOTE: (
        "{kw}は、暗記よりも判断手順の設計で差が出ます。実務に繋がる観点から要点を解いていきます。",
        "同じ{kw}でも、読む順番を変えるだけで理解速度は大きく変わります。先に全体像を掴みましょう。",
        "見落とされがちですが、{kw}は現場判断に直結します。試験対策と実務の接点を整理します。",
    ),
    Platform.HATENA: (
        "{kw}は「論点の切り分け方」で精度が変わります。まず判断フローの骨格から整理します。",
        "表面的な暗記だけでは{kw}は安定しません。実務で再利用できる形に構造化して確認します。",
        "{kw}は似た論点との境界整理が鍵です。誤判定を防ぐための確認順を先に示します。",
    ),
}

ACTION_CALCULATION_REGEX = re.compile(r"(計算|算式|数値|数字|シミュレーション|演示|示例|例題|例示|サンプル)", re.IGNORECASE)
ACTION_TERMINOLOGY_REGEX = re.compile(r"(用語|術語|术语|表現|表述|一貫|一致|概念|定義|統一)", re.IGNORECASE)
ACTION_SCENARIO_REGEX = re.compile(r"(実務|場面|场景|シナリオ|ケース|特殊|例外)", re.IGNORECASE)
ACTION_EVIDENCE_FOCUS_REGEX = re.compile(r"(統計|データ|数値|出典|来源|信頼性|引用|根拠|ソース)", re.IGNORECASE)
ACTION_DEDUPE_FOCUS_REGEX = re.compile(r"(重複|重复|冗長|削除|統合)", re.IGNORECASE)


def build_humanized_intro(platform, keyword: str) -> str:
    platform = resolve_platform(platform)
    candidates = [item.format(kw=keyword) for item in HUMANIZED_INTROS[platform]]
    return pick_stable_variant(candidates, f"{platform.value}:{keyword}")


def normalize_ai_actions(actions: Optional[Sequence[str]]) -> List[str]:
    cleaned = [(item or "").strip() for item in actions or []]
    return [item for item in cleaned if item][:3]


def build_evidence_section(items: Sequence[EvidenceItem]) -> str:
    rows = [f"- {item.source}（{item.year}）: {item.metric}。{item.summary}".rstrip() for item in list(items)[:2]]
    if not rows:
        return ""
    return "### 参考データと出典\n" + "\n".join(rows)


def inject_evidence_snippet(body: str, items: Sequence[EvidenceItem]) -> str:
    if not body or not items:
        return body or ""
    if re.search(r"(出典|統計|調査).*(?:\d{4}年|令和\d+年|平成\d+年)", body):
        return body
    section = build_evidence_section(items)
    return f"{body.strip()}\n\n{section}".strip() if section else body


def apply_ai_action_enhancements(
    body: str,
    keyword: str,
    actions: Sequence[str],
    evidence_items: Sequence[EvidenceItem] = (),
) -> str:
    """Add the paragraphs reviewer actions ask for, when the body lacks them."""
    clean_keyword = (keyword or "").strip() or DEFAULT_TOPIC
    text = (body or "").strip()
    if not text or not actions:
        return text
    joined = " ".join(actions)

    if ACTION_CALCULATION_REGEX.search(joined) and not re.search(r"(計算例|数値例|シミュレーション|算出例)", text):
        text += (
            f"\n\n例えば、{clean_keyword}の確認では基準値と係数を先に置いて順番に計算すると、"
            "判断のぶれを防ぎやすくなります。端数処理と例外条件は、計算前に確認しておくと安全です。"
        )
    if ACTION_TERMINOLOGY_REGEX.search(joined) and not re.search(r"(用語の統一|用語整理|表記ルール)", text):
        text += (
            f"\n\nこの記事では「{clean_keyword}」を一つの呼び方にそろえ、"
            "同じ概念を別の言葉で言い換えずに説明していきます。"
        )
    if ACTION_SCENARIO_REGEX.search(joined) and not re.search(r"(実務シナリオ|ケース別|特殊ケース)", text):
        text += (
            "\n\n実務では、標準条件では基本手順をそのまま適用し、"
            "例外条件がある場合は先に例外要件を確認してから判断すると精度が上がります。"
            "迷ったときは、根拠条文や公式資料に戻って確認する流れが有効です。"
        )
    if ACTION_EVIDENCE_FOCUS_REGEX.search(joined):
        text = inject_evidence_snippet(text, evidence_items)
    if ACTION_DEDUPE_FOCUS_REGEX.search(joined):
        text = dedupe_paragraphs(text)

    text = enrich_sparse_heading_sections(text, clean_keyword)
    return remove_faq_meta_guidance_sentences(text)


def ensure_seo_geo_structure(
    platform,
    body: str,
    keyword: str,
    tracked_url: str,
    ai_actions: Optional[Sequence[str]] = None,
    evidence_items: Sequence[EvidenceItem] = (),
    related_note_url: str = "",
    related_note_title: str = "",
) -> str:
    """
    Build the deterministic structured candidate.

    Adds what the SEO/GEO scorer looks for when missing: a keyword-bearing
    answer-first intro, a definition section, two or more headings, a
    keyword heading, bullets and the FAQ minimum. Then applies reviewer
    actions, cleans up and places the single CTA link.
    """
    platform = resolve_platform(platform)
    kw = (keyword or "").strip() or DEFAULT_TOPIC
    text = (body or "").strip() or f"{kw}の要点を整理します。"

    text = strip_formulaic_lead_sentence(text)
    text = collapse_duplicate_faq_sections(text)

    intro = " ".join(
        [line.strip() for line in text.split("\n") if line.strip() and not line.strip().startswith("#")][:3]
    )
    has_hook = bool(INTRO_HOOK_REGEX.search(intro)) or bool(re.search(r"[?？]", intro))
    has_keyword = normalize_comparable_text(kw) in normalize_comparable_text(intro)
    if not has_hook or not has_keyword:
        text = f"{build_humanized_intro(platform, kw)}\n\n{text}"

    if not re.search(r"(?:とは|とは何か|定義)", text):
        text += f"\n\n## {kw}とは\n{kw}とは、試験と実務で判断基準として使う基本知識です。"

    headings = re.findall(r"^##+\s+.+$", text, re.MULTILINE)
    if len(headings) < 2:
        text += f"\n\n## {kw}を判断する前提"
        text += "\n適用条件・対象範囲・期限の3点を先に固定すると、後工程での判断ぶれを抑えやすくなります。"
        text += f"\n\n## {kw}で迷いやすい分岐"
        text += "\n例外規定がある項目は通常ルールと分けてメモし、最後に数値条件を照合すると見落としを減らせます。"
        headings = re.findall(r"^##+\s+.+$", text, re.MULTILINE)

    normalized_kw = normalize_comparable_text(kw)
    if not any(normalized_kw in normalize_comparable_text(line) for line in headings):
        text = f"## {kw}の要点\n{text}"

    if len(re.findall(r"^\s*(?:[-*]|\d+\.)\s+", text, re.MULTILINE)) < 2:
        text += "\n\n- 適用条件を先に固定してから比較する\n- 例外条件を通常ルールと分けて最終確認する"

    required = required_faq_count(platform)
    question_count = len(re.findall(r"^\s*(?:\*\*)?Q(?:[0-9０-９]+(?:[.．:：])?|[:：])\s*", text, re.MULTILINE))
    if question_count < required:
        if not any(FAQ_HEADING_LINE_REGEX.match(line.strip()) for line in text.split("\n")):
            text += "\n\n## FAQ"
        if question_count < 1:
            text += f"\nQ: {kw}は何から覚えるべきですか？"
            text += "\nA: まず定義と計算・判断の基本式を押さえ、次に例題で確認すると定着しやすいです。"
        if required >= 2 and question_count < 2:
            text += "\nQ: 実務で迷ったときの確認順は？"
            text += "\nA: 結論→根拠→例外の順で整理すると、判断がブレにくくなります。"

    actions = normalize_ai_actions(ai_actions)
    if actions:
        text = apply_ai_action_enhancements(text, kw, actions, evidence_items)

    text = dedupe_paragraphs(text)
    text = enrich_sparse_heading_sections(text, kw)
    text = remove_faq_meta_guidance_sentences(text)
    text = normalize_faq_section_to_qa(text, platform, kw)
    text = drop_related_tools_section(text)
    text = remove_non_reader_facing_artifacts(text)
    text = dedupe_repeated_narrative_lines_prefer_url(text)
    return ensure_single_body_cta_link(text, tracked_url, platform, kw, related_note_url, related_note_title).strip()


def apply_article_type_fallback_structure(body: str, article_type, keyword: str) -> str:
    """Append the sections an archetype requires when their signals are missing."""
    text = (body or "").strip()
    if not text:
        return text
    kw = (keyword or DEFAULT_TOPIC).strip()
    article_type = ArticleType(article_type)

    if article_type == ArticleType.TOOL_RANKING and not has_ranking_signals(text):
        text += f"\n\n## {kw}の選定ランキング（実務視点）"
        text += "\n1. 第1位: 導入ハードルと再現性のバランスが良い選択"
        text += "\n2. 第2位: 特定業務で効果が高いが、運用設計が必要"
        text += "\n3. 第3位: 学習コストはあるが中長期で安定運用しやすい"

    if article_type == ArticleType.COMPETITOR_COMPARE:
        if not has_compare_signals(text):
            text += f"\n\n## {kw}を比較する前に見る観点"
            text += "\n導入速度、既存業務との整合、運用負荷の3点を同じ条件で並べると、比較判断の再現性が上がります。"
        if not re.search(r"(メリット|強み)", text):
            text += "\n\n## 採用しやすい場面"
            text += "\n前提条件が明確で短期間に検証したいケースでは、導入初期に判断しやすい強みが出やすくなります。"
        if not re.search(r"(デメリット|弱み|注意)", text):
            text += "\n\n## 判断を誤りやすい境界条件"
            text += "\n注意点として、目的と評価軸が曖昧なまま導入するとデメリットが目立ちやすく、比較結果がぶれやすくなります。"

    if article_type == ArticleType.PRACTICAL_GUIDE:
        if not has_definition_signals(text):
            text += f"\n\n## {kw}とは"
            text += f"\n{kw}は、実務判断の精度を上げるための基準を整理する考え方です。"
        if not has_flow_signals(text):
            text += f"\n\n## {kw}の判断手順"
            text += "\n1. まず対象範囲と適用条件を確認する"
            text += "\n2. 次に判断基準を同じ条件で比較する"
            text += "\n3. 最後に例外条件と数値要件を照合する"
        if not has_caution_signals(text):
            text += f"\n\n## {kw}で失敗しやすい点"
            text += "\n結論を先に固定せず、根拠と例外を同じ段階で確認すると誤判定を避けやすくなります。"
        if not has_faq_block(text):
            text += "\n\n## FAQ"
            text += f"\nQ: {kw}は何から始めるべきですか？"
            text += "\nA: まず定義と基本手順を押さえ、短い実例で確認すると定着しやすくなります。"
            text += "\nQ: 実務で迷ったときはどう確認すればよいですか？"
            text += "\nA: 結論→根拠→例外の順に確認し、最後に数字条件を照合すると判断が安定します。"

    if article_type == ArticleType.HOW_TO and not has_numbered_steps(text):
        text += f"\n\n## {kw}の実行手順"
        text += "\n1. 目的に対して前提条件と評価基準をそろえます。"
        text += "\n2. 入力条件（例：期間、条件、閾値）を揃えて1回実行します。"
        text += "\n3. 出力を確認し、ズレがあれば前提条件か係数を微調整します。"
        text += f"\n\n## {kw}で失敗しやすい点"
        text += "\n- まず、入力順・必須項目・閾値の整合を確認することで手戻りを減らせます。"

    # trend-analysis gets no canned section; unsourced trend text would be filler.

    if article_type == ArticleType.CASE_REVIEW and not has_case_signals(text):
        text += "\n\n## ケース背景"
        text += "\n現場で判断が分かれやすい場面を想定し、前提条件を揃えて検討します。"
        text += "\n\n## 判断プロセスと結果"
        text += "\n論点を分解して順番に確認することで、再現可能な判断手順を作れます。"

    if article_type == ArticleType.PITFALL_CHECKLIST and not re.search(r"(落とし穴|ミス|失敗)", text):
        text += "\n\n## よくある落とし穴チェック"
        text += "\n- 前提条件を確認せずに結論を出す"
        text += "\n- 例外条件を最後まで確認しない"
        text += "\n- 出典のない情報をそのまま使う"

    if article_type == ArticleType.TEMPLATE_PACK and not has_template_signals(text):
        text += "\n\n## すぐ使えるテンプレート"
        text += "\n- 目的: 何を判断したいか"
        text += "\n- 前提: 必要な入力条件"
        text += "\n- 手順: 確認順序と判定基準"

    if len([line for line in text.split("\n") if line.strip()]) < 6:
        text += f"\n\n{kw}を扱う場面を1つ決め、入力条件と判断根拠を並べて確認すると理解が定着しやすくなります。"
    if len(re.findall(r"^##+\s+", text, re.MULTILINE)) < 2:
        text += f"\n\n## {kw}の要点"
        text += "\n判断基準を先に固定し、例外条件を後から照合すると再現性が上がります。"
    if len(re.findall(r"^##+\s+", text, re.MULTILINE)) < 2:
        text += f"\n\n## {kw}の実務適用"
        text += "\n小さなケースで手順を検証してから本番運用に展開してください。"
    return text.strip()


# ---------------------------------------------------------------------------
# Composite sanitation
# ---------------------------------------------------------------------------

def sanitize_content(
    draft: ContentDraft,
    ctx: LinkPolicyContext,
    topic_label: str,
    related_note_title: str = "",
) -> ContentDraft:
    """
    URL and artifact sanitation pipeline.

    Keeps at most the one tracked primary URL, strips slugs and foreign URLs,
    removes template debris and duplicate FAQ blocks, enriches sparse
    sections, normalizes the FAQ and finally places a single CTA link.
    """
    platform = resolve_platform(ctx.platform)
    label = normalize_topic_label(topic_label) or DEFAULT_TOPIC
    tracked = build_tracked_url(ctx.primary_url, platform.value).strip()
    related = ctx.related_note_url if ctx.allows_related_note else ""

    title = sanitize_japanese_field(draft.title)
    body = sanitize_japanese_field(draft.body)
    body = strip_leading_duplicated_title_in_body(title, body)
    body, kept = strip_disallowed_urls(body, tracked)
    body = strip_url_and_slug_artifacts(body, ctx.primary_url, label)
    body = remove_non_reader_facing_artifacts(body)
    body = strip_formulaic_lead_sentence(body)
    body = collapse_duplicate_faq_sections(body)
    body = enrich_sparse_heading_sections(body, label)
    body = remove_non_reader_facing_artifacts(body)
    body = remove_faq_meta_guidance_sentences(body)
    if kept:
        body = restore_allowed_url(body, tracked)
    body = drop_related_tools_section(body)
    body = normalize_faq_section_to_qa(body, platform, label)
    body = dedupe_repeated_narrative_lines_prefer_url(body)
    body = remove_non_reader_facing_artifacts(body)
    body = ensure_single_body_cta_link(body, tracked, platform, label, related, related_note_title)
    body = normalize_parenthesized_urls(body)

    clean_title = strip_url_and_slug_artifacts(title, ctx.primary_url, label)
    hashtags = []
    for tag in draft.hashtags:
        cleaned = strip_url_and_slug_artifacts(tag, ctx.primary_url, label).lstrip("#").strip()
        if cleaned and not is_contaminated_line(cleaned):
            hashtags.append(cleaned)

    result = draft.clone()
    result.primary_url = tracked
    result.title = clean_title.strip() or derive_fallback_title_from_body(body, label)
    result.body = body
    result.image_prompt = strip_url_and_slug_artifacts(sanitize_japanese_field(draft.image_prompt), ctx.primary_url, label)
    result.seo_title = strip_url_and_slug_artifacts(sanitize_japanese_field(draft.seo_title), ctx.primary_url, label)
    result.hashtags = hashtags
    return result
