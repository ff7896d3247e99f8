"""
Publishing platforms, content variants and article archetypes.

Per-platform compliance profiles and the article-type catalog are fixed
tables; nothing here performs I/O.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple


class Platform(str, Enum):
    """Supported publishing platforms."""
    AMEBA = "ameba"
    NOTE = "note"
    HATENA = "hatena"


class ContentVariant(str, Enum):
    """Generation mode for a schedule slot."""
    STANDARD = "standard"
    NOTE_VIRAL = "note-viral"


class AssetType(str, Enum):
    KNOWLEDGE_POINT = "knowledge-point"
    TOOL = "tool"
    PAST_QUESTION = "past-question"


class ArticleType(str, Enum):
    """Content archetypes with their own structural requirements."""
    TOOL_RANKING = "tool-ranking"
    COMPETITOR_COMPARE = "competitor-compare"
    PRACTICAL_GUIDE = "practical-guide"
    HOW_TO = "how-to"
    TREND_ANALYSIS = "trend-analysis"
    CASE_REVIEW = "case-review"
    PITFALL_CHECKLIST = "pitfall-checklist"
    TEMPLATE_PACK = "template-pack"


CORE_ARTICLE_TYPES = (
    ArticleType.TOOL_RANKING,
    ArticleType.COMPETITOR_COMPARE,
    ArticleType.PRACTICAL_GUIDE,
    ArticleType.HOW_TO,
    ArticleType.TREND_ANALYSIS,
    ArticleType.CASE_REVIEW,
)


@dataclass(frozen=True)
class PlatformProfile:
    """Link and tone constraints of one platform."""
    platform: Platform
    label: str
    max_links: int = 1
    max_cta_lines: int = 2
    allow_shorteners: bool = False
    allow_external_domains: Tuple[str, ...] = ()
    banned_patterns: Tuple[Pattern, ...] = ()
    avoid_first_paragraph: bool = True
    required_faq_count: int = 2


PLATFORM_PROFILES: Dict[Platform, PlatformProfile] = {
    Platform.AMEBA: PlatformProfile(
        platform=Platform.AMEBA,
        label="アメブロ",
        banned_patterns=(re.compile("今すぐやらないと損"), re.compile("絶対に合格"), re.compile("必ず稼げる")),
        required_faq_count=1,
    ),
    Platform.NOTE: PlatformProfile(
        platform=Platform.NOTE,
        label="note",
        banned_patterns=(re.compile("登録しないと損"), re.compile("無料で稼ぐ"), re.compile("今すぐクリック")),
    ),
    Platform.HATENA: PlatformProfile(
        platform=Platform.HATENA,
        label="はてなブログ",
        banned_patterns=(re.compile("今すぐ登録"), re.compile("限定オファー"), re.compile("絶対に得する")),
    ),
}


def resolve_platform(value) -> Platform:
    """Coerce a string or enum to Platform, raising ValueError when unknown."""
    if isinstance(value, Platform):
        return value
    return Platform(str(value).strip().lower())


def get_platform_profile(platform) -> PlatformProfile:
    return PLATFORM_PROFILES[resolve_platform(platform)]


def required_faq_count(platform) -> int:
    """Minimum FAQ question/answer pairs the platform expects."""
    return get_platform_profile(platform).required_faq_count


def resolve_content_variant(platform, raw: Optional[str]) -> ContentVariant:
    """The note-viral variant exists only on note; everything else is standard."""
    if resolve_platform(platform) != Platform.NOTE:
        return ContentVariant.STANDARD
    return ContentVariant.NOTE_VIRAL if raw == ContentVariant.NOTE_VIRAL.value else ContentVariant.STANDARD


@dataclass(frozen=True)
class ArticleTypeOption:
    """Catalog entry describing one archetype for prompts and reports."""
    id: ArticleType
    label: str
    focus: str
    must_have: Tuple[str, ...] = field(default_factory=tuple)
    avoid: Tuple[str, ...] = field(default_factory=tuple)
    core: bool = True


ARTICLE_TYPE_OPTIONS: List[ArticleTypeOption] = [
    ArticleTypeOption(ArticleType.TOOL_RANKING, "ツールランキング", "選定判断",
                      ("評価軸", "順位付けの根拠", "向いている人", "結論"),
                      ("名前だけ並べて説明しない", "推薦の境界がない")),
    ArticleTypeOption(ArticleType.COMPETITOR_COMPARE, "比較解説", "代替の選択",
                      ("比較軸", "強みと弱みの境界", "場面別の提案"),
                      ("断定的な結論", "宣伝文句のような比較")),
    ArticleTypeOption(ArticleType.PRACTICAL_GUIDE, "実務ガイド", "体系的な理解",
                      ("定義", "手順", "注意点", "FAQ"),
                      ("抽象論の積み上げ",)),
    ArticleTypeOption(ArticleType.HOW_TO, "How-to", "すぐ実行できる",
                      ("3ステップ以上", "入力例", "よくあるエラーと対処"),
                      ("概念だけで手順がない",)),
    ArticleTypeOption(ArticleType.TREND_ANALYSIS, "動向解説", "認識の更新",
                      ("出典+年度+数値", "動向の影響", "次の行動"),
                      ("根拠のない動向判断",)),
    ArticleTypeOption(ArticleType.CASE_REVIEW, "ケース振り返り", "場面への応用",
                      ("背景", "判断プロセス", "結果", "再現方法"),
                      ("時系列の羅列",)),
    ArticleTypeOption(ArticleType.PITFALL_CHECKLIST, "落とし穴チェック", "リスク管理",
                      ("失敗のサイン", "影響", "修正アクション"),
                      ("リスクだけで対処がない",), core=False),
    ArticleTypeOption(ArticleType.TEMPLATE_PACK, "テンプレート集", "実行効率",
                      ("テンプレート構成", "記入例", "使う場面"),
                      ("そのまま使えないテンプレート",), core=False),
]


def get_article_type_option(article_type) -> ArticleTypeOption:
    for option in ARTICLE_TYPE_OPTIONS:
        if option.id == article_type or option.id.value == article_type:
            return option
    return ARTICLE_TYPE_OPTIONS[0]


def recommended_article_type(platform, asset_type: Optional[str] = None) -> ArticleType:
    """Default archetype for a platform and asset combination."""
    platform = resolve_platform(platform)
    if asset_type == AssetType.TOOL.value:
        if platform == Platform.AMEBA:
            return ArticleType.HOW_TO
        if platform == Platform.NOTE:
            return ArticleType.COMPETITOR_COMPARE
        return ArticleType.TOOL_RANKING
    if asset_type == AssetType.KNOWLEDGE_POINT.value:
        return ArticleType.PRACTICAL_GUIDE
    if asset_type == AssetType.PAST_QUESTION.value:
        return ArticleType.TREND_ANALYSIS if platform == Platform.NOTE else ArticleType.CASE_REVIEW

    if platform == Platform.AMEBA:
        return ArticleType.HOW_TO
    if platform == Platform.NOTE:
        return ArticleType.PRACTICAL_GUIDE
    return ArticleType.CASE_REVIEW


def resolve_article_type(value, fallback: ArticleType = ArticleType.PRACTICAL_GUIDE) -> ArticleType:
    """Accept only core archetypes from callers; anything else uses the fallback."""
    try:
        article_type = ArticleType(value)
    except ValueError:
        return fallback
    return article_type if article_type in CORE_ARTICLE_TYPES else fallback


def build_article_type_prompt_block(article_type) -> str:
    option = get_article_type_option(article_type)
    lines = [f"タイプ: {option.label}（{option.focus}）", "必須要素:"]
    lines.extend(f"- {item}" for item in option.must_have)
    lines.append("避ける傾向:")
    lines.extend(f"- {item}" for item in option.avoid)
    return "\n".join(lines)
