"""
Bilingual consistency between the Japanese body and its Chinese reference
translation.

Validation is a pure function over the two bodies. Repair escalates from
cheap deterministic patches to provider re-translation and finally to a
structural fallback mapper that needs no provider.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from contentgate.core.logging import get_logger
from contentgate.core.utils import URL_REGEX, compact_length, extract_urls, split_paragraphs
from .analyzers import BULLET_LINE_REGEX
from .errors import ConsistencyFailure, ContentGateError
from .llm_provider import (
    CompletionClient,
    extract_json_string_field,
    parse_plain_text_completion,
    load_json_object,
)
from .models import ContentDraft
from .prompts import (
    PLAIN_TRANSLATION_SYSTEM_PROMPT,
    TITLE_TRANSLATION_SYSTEM_PROMPT,
    TRANSLATION_SYSTEM_PROMPT,
    build_plain_translation_prompt,
    build_title_translation_prompt,
    build_translation_prompt,
)

logger = get_logger(__name__)

KANA_REGEX = re.compile(r"[぀-ゟ゠-ヿ]")
CJK_REGEX = re.compile(r"[一-鿿]")
HEADING_LINE_REGEX = re.compile(r"^(#{2,})\s+(.*)$")
TABLE_LINE_REGEX = re.compile(r"^\|.*\|$")
TABLE_SEPARATOR_REGEX = re.compile(r"^\|(?:\s*:?-+:?\s*\|)+\s*$")
QUOTE_LINE_REGEX = re.compile(r"^>\s*")

CHINESE_TAIL_TERMINATOR_REGEX = re.compile(r"[。！？!?）】」》』’”\"…]$")
INCOMPLETE_TAIL_REGEX = re.compile(
    r"(?:的|和|与|及|并|在|对|将|把|由|为|于|从|到|向|并且|以及|其中|包括|例如|比如|若|如果|当|则|因此|所以|而|但|或|且|：|:|，|,|、|；|;)\s*$"
)
TEMPLATED_HEADING_REGEX = re.compile(r"^##+\s*(?:第\d+节|小节\d+|补充要点\d+)\s*$", re.MULTILINE)
TEMPLATED_FRAGMENT_REGEX = re.compile(r"关键要点\d+|本段为中文参考说明")
SYNTHETIC_SECTION_REGEX = re.compile(r"^##\s*第\d+节$", re.MULTILINE)
SYNTHETIC_KEYPOINT_REGEX = re.compile(r"关键要点\d+")
SYNTHETIC_SENTENCE_REGEX = re.compile(r"本段说明该主题在实务中的判断思路|按步骤核对条件并完成判断")
TITLE_PREFIX_REGEX = re.compile(r"^(?:标题|標題|title)\s*[:：]\s*", re.IGNORECASE)

BRACKET_PAIRS = (("(", ")"), ("（", "）"), ("[", "]"), ("【", "】"), ("「", "」"),
                 ("『", "』"), ("《", "》"), ("“", "”"), ("‘", "’"))

TERM_GLOSSARY = (
    ("関連ツール・リソース", "相关工具与资源"),
    ("モチベーション", "学习动机"),
    ("ランキング", "排行榜"),
    ("参考データ", "参考数据"),
    ("選定基準", "选择标准"),
    ("基礎固め", "基础巩固"),
    ("出典付き", "附来源"),
    ("リソース", "资源"),
    ("ポイント", "要点"),
    ("不動産", "房地产"),
    ("評価軸", "评估维度"),
    ("使い方", "使用方法"),
    ("実務", "实务"),
    ("学習", "学习"),
    ("計画", "计划"),
    ("作成", "制定"),
    ("連携", "联动"),
    ("現場", "现场"),
    ("関連", "相关"),
    ("とは", "是什么"),
)
CONNECTIVE_GLOSSARY = (
    ("たとえば", "例如"),
    ("ならびに", "并且"),
    ("または", "或"),
    ("および", "以及"),
    ("およそ", "约"),
    ("例えば", "例如"),
    ("ただし", "但"),
    ("そのため", "因此"),
    ("一方で", "另一方面"),
)
COVERAGE_TEMPLATES = (
    "在实务中建议先确认前提条件，再按步骤核对依据与例外，并将判断结果记录为可复核结论。",
    "执行时应同步检查金额、时间点与适用条件，避免只看单一指标导致判断偏差。",
    "若出现边界情形，可回到定义与计算逻辑重新核对，再决定下一步处理方式。",
    "建议将关键判断写成简短清单，便于团队协作与后续复盘时快速复用。",
)
CHUNK_PROFILES = ((900, 7), (650, 10), (520, 14), (380, 20))
MAX_COVERAGE_LINES = 14


@dataclass
class BilingualSignals:
    """Measured parity between the primary and secondary bodies."""
    primary_chars: int
    secondary_chars: int
    min_secondary_chars: int
    primary_headings: int
    secondary_headings: int
    japanese_like_headings: int
    kana_leak_lines: int
    kana_leak_chars: int
    primary_urls: int
    secondary_urls: int
    tail_incomplete: bool
    templated: bool


def _lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").replace("\r\n", "\n").split("\n")]


def _heading_texts(text: str) -> List[str]:
    headings = []
    for line in _lines(text):
        match = HEADING_LINE_REGEX.match(line)
        if match:
            headings.append(match.group(2).strip())
    return headings


def _is_structural(line: str) -> bool:
    return bool(HEADING_LINE_REGEX.match(line) or TABLE_LINE_REGEX.match(line) or BULLET_LINE_REGEX.match(line))


def minimum_secondary_length(primary_chars: int) -> int:
    """Length floor for the secondary body given the primary size."""
    if primary_chars >= 900:
        ratio = 0.4
    elif primary_chars >= 400:
        ratio = 0.36
    else:
        ratio = 0.32
    if primary_chars >= 500:
        floor = 160
    elif primary_chars >= 200:
        floor = 80
    else:
        floor = 40
    return max(floor, int(primary_chars * ratio))


def is_japanese_like_heading(heading: str) -> bool:
    kana = len(KANA_REGEX.findall(heading))
    cjk = len(CJK_REGEX.findall(heading))
    return kana >= 1 and cjk <= max(8, int(len(heading) * 0.9))


def has_unbalanced_brackets(line: str) -> bool:
    for opening, closing in BRACKET_PAIRS:
        if line.count(opening) != line.count(closing):
            return True
    return line.count('"') % 2 == 1


def is_tail_incomplete(secondary: str) -> bool:
    lines = [line for line in _lines(secondary) if line]
    if not lines:
        return False
    tail = lines[-1]
    if len(tail) < 8 or not CJK_REGEX.search(tail):
        return False
    if _is_structural(tail) or URL_REGEX.search(tail):
        return False
    if CHINESE_TAIL_TERMINATOR_REGEX.search(tail):
        return False
    return has_unbalanced_brackets(tail) or bool(INCOMPLETE_TAIL_REGEX.search(tail)) or len(tail) >= 72


def bilingual_signals(primary: str, secondary: str) -> BilingualSignals:
    primary_chars = compact_length(primary)
    secondary_headings = _heading_texts(secondary)

    leak_lines = 0
    leak_chars = 0
    for line in _lines(secondary):
        if not line or _is_structural(line) or URL_REGEX.search(line):
            continue
        kana = len(KANA_REGEX.findall(line))
        if kana:
            leak_lines += 1
            leak_chars += kana

    return BilingualSignals(
        primary_chars=primary_chars,
        secondary_chars=compact_length(secondary),
        min_secondary_chars=minimum_secondary_length(primary_chars),
        primary_headings=len(_heading_texts(primary)),
        secondary_headings=len(secondary_headings),
        japanese_like_headings=sum(1 for heading in secondary_headings if is_japanese_like_heading(heading)),
        kana_leak_lines=leak_lines,
        kana_leak_chars=leak_chars,
        primary_urls=len(set(extract_urls(primary))),
        secondary_urls=len(set(extract_urls(secondary))),
        tail_incomplete=is_tail_incomplete(secondary),
        templated=bool(TEMPLATED_HEADING_REGEX.search(secondary or "") or TEMPLATED_FRAGMENT_REGEX.search(secondary or "")),
    )


def validate_bilingual_consistency(primary: str, secondary: str, strict_headings: bool = False) -> List[str]:
    """
    Parity issues between the primary body and its secondary translation.

    With ``strict_headings`` the secondary heading count must be the primary
    count or one less, otherwise the looser shortfall/excess bounds apply.
    """
    if not (secondary or "").strip():
        return ["Secondary body is empty"]

    signals = bilingual_signals(primary, secondary)
    issues = []
    if signals.secondary_chars < signals.min_secondary_chars:
        issues.append(
            f"Secondary body too short ({signals.secondary_chars} < {signals.min_secondary_chars} chars)"
        )

    jp, zh = signals.primary_headings, signals.secondary_headings
    if strict_headings:
        if not (jp - 1 <= zh <= jp):
            issues.append(f"Secondary heading count {zh} does not match primary {jp}")
    else:
        if jp >= 2 and zh < max(1, jp - 1):
            issues.append(f"Secondary headings missing ({zh} < {jp - 1})")
        if jp > 0 and zh > jp + 3:
            issues.append(f"Secondary has too many headings ({zh} > {jp + 3})")

    if signals.japanese_like_headings >= 2:
        issues.append(f"Secondary headings still Japanese ({signals.japanese_like_headings})")
    if signals.kana_leak_lines >= 2 or signals.kana_leak_chars >= 4:
        issues.append(f"Secondary narrative leaks kana ({signals.kana_leak_lines} lines)")
    if signals.primary_urls > 0 and signals.secondary_urls < signals.primary_urls:
        issues.append(f"Secondary lost URLs ({signals.secondary_urls} < {signals.primary_urls})")
    if signals.tail_incomplete:
        issues.append("Secondary body ends mid-sentence")
    if signals.templated:
        issues.append("Secondary body contains templated fragments")
    return issues


def looks_like_synthetic_fallback(secondary: str) -> bool:
    text = secondary or ""
    return (
        len(SYNTHETIC_SECTION_REGEX.findall(text)) >= 4
        or len(SYNTHETIC_KEYPOINT_REGEX.findall(text)) >= 6
        or len(SYNTHETIC_SENTENCE_REGEX.findall(text)) >= 5
    )


# ---------------------------------------------------------------------------
# Deterministic patches
# ---------------------------------------------------------------------------

def patch_tail_punctuation(secondary: str) -> str:
    """Close the last narrative line with 。 when it is a complete thought."""
    lines = (secondary or "").rstrip().split("\n")
    for idx in range(len(lines) - 1, -1, -1):
        line = lines[idx].rstrip()
        if not line.strip():
            continue
        stripped = line.strip()
        if (_is_structural(stripped) or URL_REGEX.search(stripped)
                or CHINESE_TAIL_TERMINATOR_REGEX.search(stripped)
                or INCOMPLETE_TAIL_REGEX.search(stripped)):
            return secondary
        lines[idx] = f"{line}。"
        return "\n".join(lines)
    return secondary


def _apply_glossary(text: str, glossary) -> str:
    for source, target in glossary:
        text = text.replace(source, target)
    return text


def normalize_heading(heading: str, index: int) -> str:
    """Japanese heading text to a kana-free Chinese label."""
    text = HEADING_LINE_REGEX.sub(r"\2", (heading or "").strip())
    text = _apply_glossary(text, TERM_GLOSSARY).replace("・", "·")
    text = KANA_REGEX.sub("", text)
    text = re.sub(r"[「」『』]", "", text).strip(" ·　")
    if not text or not CJK_REGEX.search(text):
        return f"相关要点{index}"
    return text


def rough_translate(line: str, index: int) -> str:
    text = _apply_glossary(line or "", TERM_GLOSSARY)
    text = _apply_glossary(text, CONNECTIVE_GLOSSARY).replace("・", "·")
    text = KANA_REGEX.sub("", text)
    text = re.sub(r"[「」『』]", "", text)
    text = re.sub(r"\s{2,}", " ", text).strip()
    if not text or not CJK_REGEX.search(text):
        return f"相关说明{index}"
    return text


def patch_heading_structure(primary: str, secondary: str) -> str:
    """
    Insert missing headings into the secondary body.

    Brings the secondary heading count up to ``n - 1`` by inserting
    normalized primary headings at evenly spaced paragraph boundaries.
    Returns the input unchanged when nothing improves.
    """
    jp_headings = _heading_texts(primary)
    if len(jp_headings) < 2:
        return secondary
    current = len(_heading_texts(secondary))
    target = max(1, len(jp_headings) - 1)
    if current >= target:
        return secondary

    insert_count = target - current
    blocks = [block for block in re.split(r"\n{2,}", (secondary or "").strip()) if block.strip()]
    slots = {}
    fillers = []
    for i in range(insert_count):
        label = f"## {normalize_heading(jp_headings[min(i, len(jp_headings) - 1)], i + 1)}"
        pos = (i * len(blocks)) // insert_count if blocks else 0
        while pos in slots and pos < len(blocks):
            pos += 1
        if pos < len(blocks):
            slots[pos] = label
        else:
            fillers.append(label)

    patched = []
    for idx, block in enumerate(blocks):
        if idx in slots:
            patched.append(slots[idx])
        patched.append(block)
    if fillers:
        filler_blocks = []
        for label in fillers:
            filler_blocks.extend([label, f"{label[3:]}：{COVERAGE_TEMPLATES[0]}"])
        patched = filler_blocks + patched

    result = "\n\n".join(patched)
    if len(_heading_texts(result)) <= current:
        return secondary
    return result


def ensure_url_parity(primary: str, secondary: str) -> str:
    """Append reference lines for primary URLs missing from the secondary body."""
    result = (secondary or "").rstrip()
    present = set(extract_urls(result))
    for url in extract_urls(primary):
        if url not in present:
            result = f"{result}\n\n参考链接：{url}"
            present.add(url)
    return result


def _fallback_line(line: str, index: int) -> str:
    stripped = line.strip()
    heading = HEADING_LINE_REGEX.match(stripped)
    if heading:
        return f"{heading.group(1)} {normalize_heading(heading.group(2), index)}"
    if TABLE_SEPARATOR_REGEX.match(stripped):
        return stripped
    if TABLE_LINE_REGEX.match(stripped):
        cells = [cell.strip() for cell in stripped.strip("|").split("|")]
        mapped = [normalize_heading(cells[0], index)] + [rough_translate(cell, index) for cell in cells[1:]]
        return "| " + " | ".join(mapped) + " |"
    urls = extract_urls(stripped)
    if urls:
        return f"参考链接：{' '.join(urls)}"
    if BULLET_LINE_REGEX.match(stripped) or QUOTE_LINE_REGEX.match(stripped):
        marker = "- " if BULLET_LINE_REGEX.match(stripped) else "> "
        content = QUOTE_LINE_REGEX.sub("", BULLET_LINE_REGEX.sub("", stripped))
        return f"{marker}{rough_translate(content, index)}"
    return rough_translate(stripped, index)


def build_structural_fallback(title: str, body: str, existing_title: str = "") -> Tuple[str, str]:
    """
    Line-by-line Chinese mapping of the primary body without a provider.

    Headings, tables, lists and URL lines keep their shape; narrative lines
    are glossary-mapped with kana removed.
    """
    mapped = []
    index = 0
    for line in (body or "").replace("\r\n", "\n").split("\n"):
        if not line.strip():
            mapped.append("")
            continue
        index += 1
        mapped.append(_fallback_line(line, index))
    secondary_title = existing_title if existing_title and not KANA_REGEX.search(existing_title) \
        else normalize_heading(title, 1)
    return secondary_title, re.sub(r"\n{3,}", "\n\n", "\n".join(mapped)).strip()


def sanitize_residual_kana(secondary: str) -> str:
    """Remap only the lines of a translation that still carry kana."""
    mapped = []
    for index, line in enumerate((secondary or "").split("\n"), start=1):
        mapped.append(_fallback_line(line, index) if KANA_REGEX.search(line) else line)
    return "\n".join(mapped)


def expand_for_coverage(primary: str, secondary: str) -> str:
    """Pad a short secondary body with per-heading practical notes."""
    primary_chars = compact_length(primary)
    target = max(140, int(primary_chars * 0.34), minimum_secondary_length(primary_chars) + 8)
    if compact_length(secondary) >= target:
        return secondary
    headings = [normalize_heading(h, i) for i, h in enumerate(_heading_texts(primary), start=1)] or ["相关要点1"]
    additions = []
    result = (secondary or "").rstrip()
    for i in range(MAX_COVERAGE_LINES):
        if compact_length(result + "".join(additions)) >= target:
            break
        additions.append(f"{headings[i % len(headings)]}：{COVERAGE_TEMPLATES[i % len(COVERAGE_TEMPLATES)]}")
    if not additions:
        return secondary
    return f"{result}\n\n" + "\n\n".join(additions)


def split_for_translation(body: str, max_chunk_chars: int, max_chunks: int) -> Optional[List[str]]:
    """
    Split a body into paragraph-aligned chunks for piecewise translation.

    Returns None when chunking would not help (a single chunk) or when the
    body needs more than ``max_chunks`` chunks at this size.
    """
    chunks: List[str] = []
    current = ""
    for block in split_paragraphs(body):
        pieces = [block] if len(block) <= max_chunk_chars else [line for line in block.split("\n") if line.strip()]
        for piece in pieces:
            candidate = f"{current}\n\n{piece}" if current else piece
            if current and len(candidate) > max_chunk_chars:
                chunks.append(current)
                current = piece
            else:
                current = candidate
    if current:
        chunks.append(current)
    if len(chunks) <= 1 or len(chunks) > max_chunks:
        return None
    return chunks


def parse_translation_response(raw: str) -> Tuple[str, str]:
    parsed = load_json_object(raw)
    if parsed is not None:
        return str(parsed.get("titleChinese") or "").strip(), str(parsed.get("bodyChinese") or "").strip()
    return (extract_json_string_field(raw, "titleChinese").strip(),
            extract_json_string_field(raw, "bodyChinese").strip())


def parse_title_response(raw: str) -> str:
    first = next((line.strip() for line in (raw or "").split("\n") if line.strip()), "")
    first = TITLE_PREFIX_REGEX.sub("", first)
    return first.strip("\"'“”「」 ").strip()


def validate_final_consistency(draft: ContentDraft) -> List[str]:
    """Completeness plus strict heading parity of a finalized bilingual draft."""
    issues = []
    for name in ("title", "body", "title_secondary", "body_secondary"):
        if not getattr(draft, name, "").strip():
            issues.append(f"Missing field: {name}")
    if issues:
        return issues
    issues.extend(validate_bilingual_consistency(draft.body, draft.body_secondary, strict_headings=True))
    for label, body in (("Primary", draft.body), ("Secondary", draft.body_secondary)):
        lines = [line for line in _lines(body) if line]
        if lines and HEADING_LINE_REGEX.match(lines[-1]):
            issues.append(f"{label} body ends with an empty heading")
    if KANA_REGEX.search(draft.title_secondary):
        issues.append("Secondary title contains kana")
    return issues


class BilingualEngine:
    """
    Keeps ``body_secondary`` consistent with ``body``.

    Every ladder step runs only while the secondary body still fails
    validation, and provider failures fall through to the next step.
    """

    def __init__(self, client: Optional[CompletionClient], model: Optional[str] = None):
        self.client = client
        self.model = model

    async def ensure_translation(self, draft: ContentDraft, force_refresh: bool = False) -> Tuple[ContentDraft, bool]:
        """
        Returns the draft with a consistent secondary variant and whether the
        structural fallback produced it.

        Raises:
            ConsistencyFailure: every ladder step failed
        """
        result = draft.clone()
        primary = result.body
        title_secondary = result.title_secondary
        secondary = patch_tail_punctuation(result.body_secondary)

        if not force_refresh and self._accepts(primary, secondary):
            result.body_secondary = secondary
            result.title_secondary = await self._resolve_title(result.title, title_secondary)
            return result, False

        candidates = [secondary] if secondary.strip() else []

        raw = await self._call(TRANSLATION_SYSTEM_PROMPT, build_translation_prompt(result.title, primary))
        if raw:
            translated_title, translated_body = parse_translation_response(raw)
            if translated_title:
                title_secondary = translated_title
            if translated_body:
                candidates.append(self._polish(primary, translated_body))
                if self._accepts(primary, candidates[-1]):
                    return await self._finish(result, candidates[-1], title_secondary, "full translation")

        best = self._best(primary, candidates)
        if best:
            patched = patch_tail_punctuation(patch_heading_structure(primary, best))
            if self._accepts(primary, patched):
                return await self._finish(result, patched, title_secondary, "heading patch")
            candidates.append(patched)

        raw = await self._call(PLAIN_TRANSLATION_SYSTEM_PROMPT, build_plain_translation_prompt(primary))
        if raw:
            plain = self._polish(primary, parse_plain_text_completion(raw))
            if self._accepts(primary, plain):
                return await self._finish(result, plain, title_secondary, "plain translation")
            candidates.append(plain)

        for max_chars, max_chunks in CHUNK_PROFILES:
            chunks = split_for_translation(primary, max_chars, max_chunks)
            if not chunks:
                continue
            chunked = await self._translate_chunks(chunks)
            if chunked is None:
                continue
            chunked = self._polish(primary, chunked)
            if self._accepts(primary, chunked):
                return await self._finish(result, chunked, title_secondary, f"chunked translation ({max_chars})")
            candidates.append(chunked)

        fallback_title, fallback_body = build_structural_fallback(result.title, primary, title_secondary)
        fallback_body = patch_heading_structure(primary, fallback_body)
        fallback_body = expand_for_coverage(primary, ensure_url_parity(primary, fallback_body))
        fallback_body = patch_tail_punctuation(fallback_body)
        issues = validate_bilingual_consistency(primary, fallback_body, strict_headings=True)
        if issues:
            logger.error(f"Bilingual ladder exhausted: {issues}")
            raise ConsistencyFailure(issues)

        logger.warning("Bilingual variant produced by structural fallback")
        result.body_secondary = fallback_body
        result.title_secondary = fallback_title
        return result, True

    async def _finish(self, draft: ContentDraft, secondary: str, title_secondary: str,
                      step: str) -> Tuple[ContentDraft, bool]:
        logger.info(f"Bilingual variant accepted after {step}")
        draft.body_secondary = secondary
        draft.title_secondary = await self._resolve_title(draft.title, title_secondary)
        return draft, False

    async def _resolve_title(self, title: str, title_secondary: str) -> str:
        if title_secondary.strip() and not KANA_REGEX.search(title_secondary):
            return title_secondary.strip()
        raw = await self._call(TITLE_TRANSLATION_SYSTEM_PROMPT, build_title_translation_prompt(title))
        translated = parse_title_response(raw) if raw else ""
        if translated and not KANA_REGEX.search(translated):
            return translated
        return normalize_heading(title, 1)

    async def _translate_chunks(self, chunks: Sequence[str]) -> Optional[str]:
        translated = []
        for chunk in chunks:
            raw = await self._call(PLAIN_TRANSLATION_SYSTEM_PROMPT, build_plain_translation_prompt(chunk))
            text = parse_plain_text_completion(raw) if raw else ""
            if not text:
                return None
            translated.append(text)
        return "\n\n".join(translated)

    async def _call(self, system_prompt: str, user_prompt: str) -> str:
        if self.client is None:
            return ""
        try:
            return await self.client.complete(system_prompt, user_prompt, model=self.model)
        except ContentGateError as e:
            logger.warning(f"Translation call failed: {e}")
            return ""

    @staticmethod
    def _polish(primary: str, secondary: str) -> str:
        return patch_tail_punctuation(ensure_url_parity(primary, sanitize_residual_kana(secondary)))

    @staticmethod
    def _accepts(primary: str, secondary: str) -> bool:
        return bool(secondary.strip()) \
            and not validate_bilingual_consistency(primary, secondary, strict_headings=True) \
            and not looks_like_synthetic_fallback(secondary)

    @staticmethod
    def _best(primary: str, candidates: Sequence[str]) -> str:
        if not candidates:
            return ""
        return min(candidates, key=lambda item: len(validate_bilingual_consistency(primary, item)))
