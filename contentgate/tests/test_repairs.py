"""Tests for the deterministic repair functions."""
import pytest

from contentgate.core.utils import build_tracked_url, extract_urls
from contentgate.gate.analyzers import faq_signals
from contentgate.gate.models import ContentDraft, LinkPolicyContext
from contentgate.gate.platforms import ArticleType, Platform
from contentgate.gate.repairs import (
    APPENDED_FAQ_HEADING,
    PRIMARY_LINK_PLACEHOLDER,
    apply_article_type_fallback_structure,
    dedupe_body,
    ensure_keyword_in_title,
    ensure_single_body_cta_link,
    enrich_sparse_heading_sections,
    normalize_faq_section_to_qa,
    replace_stale_year_tokens,
    sanitize_content,
    sanitize_japanese_field,
    sanitize_stale_years,
    strip_disallowed_urls,
)
from contentgate.gate.validators import (
    run_validators,
    validate_faq_presence,
    validate_freshness,
    validate_link_policy,
)

PRIMARY_URL = "https://takkenai.jp/tools/juuyou/"


class TestFaqNormalization:
    """FAQ repair up to the platform minimum."""

    def test_body_without_faq_gets_pairs(self):
        """A body with no FAQ is reported, then gains two Q/A pairs."""
        body = "## 重要事項説明とは\n契約前に書面を交付して説明する手続きです。説明の時期と相手方を確認します。"

        assert validate_faq_presence(Platform.NOTE, body)

        normalized = normalize_faq_section_to_qa(body, Platform.NOTE, "重要事項説明")
        signals = faq_signals(normalized)

        assert APPENDED_FAQ_HEADING in normalized
        assert signals.question_count >= 2
        assert signals.answer_count >= 2
        assert validate_faq_presence(Platform.NOTE, normalized) == []

    def test_unanswered_question_gets_default_answer(self):
        """A question without an answer line receives one."""
        body = "## FAQ\nQ: 何から始めればよいですか？\nQ: 期限はいつですか？\nA: 契約前です。"

        normalized = normalize_faq_section_to_qa(body, Platform.HATENA, "重要事項説明")
        lines = normalized.split("\n")

        assert lines.count("A: 契約前です。") == 1
        assert faq_signals(normalized).answer_count == 2

    def test_narrative_line_becomes_answer(self):
        """Narrative text in the FAQ section is reused as an answer."""
        body = "## よくある質問\nQ: 説明は誰が行いますか？\n宅地建物取引士が行います。"

        normalized = normalize_faq_section_to_qa(body, Platform.AMEBA, "重要事項説明")

        assert "A: 宅地建物取引士が行います。" in normalized

    def test_normalization_is_idempotent(self):
        """Normalizing twice changes nothing."""
        body = "## FAQ\nQ1: いつ行いますか？\nA1: 契約前です。"

        once = normalize_faq_section_to_qa(body, Platform.NOTE, "重要事項説明")
        twice = normalize_faq_section_to_qa(once, Platform.NOTE, "重要事項説明")

        assert once == twice


class TestStaleYears:
    """Freshness repair."""

    def test_past_year_is_rewritten(self):
        """2024年 outside a citation context becomes a neutral token."""
        draft = ContentDraft(
            title="2024年版 重要事項説明の基本",
            body="## ポイント\n2024年の試験でも出題された論点を整理します。",
        )

        repaired = sanitize_stale_years(draft, 2026)

        assert "2024" not in repaired.title
        assert "2024" not in repaired.body
        assert "最新" in repaired.body
        assert validate_freshness(repaired, 2026) == []

    def test_citation_context_keeps_year(self):
        """Years next to a source keyword are kept."""
        body = "国土交通省の調査によると、2024年度の取引件数は増えました。"

        draft = sanitize_stale_years(ContentDraft(title="最新の動向", body=body), 2026)

        assert draft.body == body

    def test_current_year_untouched(self):
        """Only years before the reference year change."""
        assert replace_stale_year_tokens("2026年の試験日程", 2026) == "2026年の試験日程"

    def test_year_token_variants(self):
        """年度 maps to 最新年度 and a bare 年 suffix does not survive."""
        assert replace_stale_year_tokens("2023年度の改正", 2026) == "最新年度の改正"
        assert replace_stale_year_tokens("2023年の改正", 2026) == "最新の改正"

    def test_urls_are_left_alone(self):
        """Years inside URLs are not rewritten."""
        text = "詳しくは https://takkenai.jp/2024/guide を見てください。"

        assert replace_stale_year_tokens(text, 2026) == text


class TestDedup:
    """Duplicate paragraphs and lines."""

    def test_url_bearing_duplicate_is_kept(self):
        """Two identical sentences collapse into the URL-bearing one."""
        sentence = "重要事項説明は契約前に必ず確認しておきたい大切な手続きです。"
        body = f"{sentence}\n{sentence} {PRIMARY_URL}"

        result = dedupe_body(body)

        assert result.count(sentence) == 1
        assert PRIMARY_URL in result

    def test_near_duplicate_paragraphs_collapse(self):
        """Paragraphs that repeat each other are dropped."""
        paragraph = "宅地建物取引士は契約の前に重要事項を書面で説明し、相手方の理解を確認する必要があります。"
        body = f"{paragraph}\n\n## 手順\n登記記録を確認します。\n\n{paragraph}"

        result = dedupe_body(body)

        assert result.count(paragraph) == 1

    def test_structural_lines_are_not_deduped(self):
        """Repeated headings and list items survive."""
        body = "- 書面を確認する\n- 書面を確認する"

        assert dedupe_body(body) == body


class TestLinks:
    """Single CTA link placement."""

    def test_foreign_urls_are_removed(self):
        """Only the first allowed URL survives as a placeholder."""
        text = f"参考 https://example.com/a と {PRIMARY_URL}?x=1 と {PRIMARY_URL}"

        stripped, kept = strip_disallowed_urls(text, PRIMARY_URL)

        assert kept is True
        assert stripped.count(PRIMARY_LINK_PLACEHOLDER) == 1
        assert "example.com" not in stripped

    def test_cta_link_is_inserted_once(self):
        """A body without links gets exactly one canonical link."""
        body = "導入文です。\n\n## 手順\n登記記録と現地の状況を照合します。\n\n## まとめ\n最後に整理します。"
        tracked = build_tracked_url(PRIMARY_URL, "hatena")

        result = ensure_single_body_cta_link(body, tracked, Platform.HATENA, "重要事項説明")

        assert extract_urls(result) == [tracked]
        assert "公式ページ" in result

    def test_cta_placement_is_idempotent(self):
        """A body already in final shape is returned unchanged."""
        tracked = build_tracked_url(PRIMARY_URL, "note")
        body = ensure_single_body_cta_link("導入文です。\n\n## 手順\n照合します。", tracked, Platform.NOTE, "重要事項説明")

        assert ensure_single_body_cta_link(body, tracked, Platform.NOTE, "重要事項説明") == body

    def test_related_note_section_is_added(self):
        """note standard mode appends the related article at the end."""
        tracked = build_tracked_url(PRIMARY_URL, "note")
        related = "https://note.com/takken_ai/n/abc123"

        result = ensure_single_body_cta_link(
            "導入文です。\n\n## 手順\n照合します。", tracked, Platform.NOTE, "重要事項説明",
            related_note_url=related, related_note_title="契約書の読み方",
        )

        assert result.rstrip().endswith(related)
        assert "## 関連記事" in result
        assert len(extract_urls(result)) == 2

    def test_sanitize_content_satisfies_link_policy(self, hatena_ctx):
        """Multiple links collapse to the tracked primary link."""
        draft = ContentDraft(
            title="重要事項説明の基本",
            body=(
                "重要事項説明の流れを整理します。\n\n## 手順\n"
                f"登記記録と現地を照合します。 https://example.com/x\n"
                f"関連情報は {PRIMARY_URL} と https://bit.ly/abc にあります。"
            ),
        )

        repaired = sanitize_content(draft, hatena_ctx, "重要事項説明")

        assert repaired.primary_url == build_tracked_url(PRIMARY_URL, "hatena")
        assert len(extract_urls(repaired.body)) == 1
        assert validate_link_policy(repaired, hatena_ctx) == []


class TestSanitizePipeline:
    """Composite sanitation."""

    def test_sanitize_is_idempotent(self, clean_draft, hatena_ctx):
        """Running the pipeline on its own output changes nothing."""
        once = sanitize_content(clean_draft, hatena_ctx, "重要事項説明")
        twice = sanitize_content(once, hatena_ctx, "重要事項説明")

        assert twice.body == once.body
        assert twice.title == once.title

    def test_clean_draft_passes_every_validator(self, clean_draft, hatena_ctx):
        """The shared fixture clears the full catalog after sanitation."""
        repaired = sanitize_content(clean_draft, hatena_ctx, "重要事項説明")

        issues = run_validators(repaired, hatena_ctx, 2026, ArticleType.PRACTICAL_GUIDE)

        assert issues.all == []

    def test_chinese_lines_are_dropped(self):
        """Lines in Chinese are removed from Japanese fields."""
        text = "重要事項説明を整理します。\n这是我们的产品说明，请点击查看。\n最後に確認します。"

        cleaned = sanitize_japanese_field(text)

        assert "这是" not in cleaned
        assert "最後に確認します。" in cleaned

    def test_leaked_json_keys_are_dropped(self):
        """Serialization debris does not survive."""
        text = '本文です。\n"titleChinese": "标题"\n}'

        assert sanitize_japanese_field(text) == "本文です。"


class TestStructureHelpers:
    """Section enrichment and archetype fallbacks."""

    def test_sparse_section_is_enriched(self):
        """A thin section gains an explanatory paragraph."""
        body = "## 重要事項説明の準備\n書面を用意する。"

        result = enrich_sparse_heading_sections(body, "重要事項説明")

        assert len(result) > len(body)
        assert result.startswith("## 重要事項説明の準備")

    def test_practical_guide_fallback_sections(self):
        """Missing archetype signals are appended."""
        result = apply_article_type_fallback_structure("重要事項説明の話です。", ArticleType.PRACTICAL_GUIDE, "重要事項説明")

        assert "## 重要事項説明とは" in result
        assert "## FAQ" in result
        assert "手順" in result

    def test_trend_analysis_has_no_canned_section(self):
        """Trend analysis never receives filler trend text."""
        result = apply_article_type_fallback_structure("導入文です。", ArticleType.TREND_ANALYSIS, "市況")

        assert "動向" not in result

    @pytest.mark.parametrize("title,expected", [
        ("契約の基本", "重要事項説明｜契約の基本"),
        ("重要事項説明の基本", "重要事項説明の基本"),
    ])
    def test_keyword_in_title(self, title, expected):
        """Keyword prefix only when missing."""
        assert ensure_keyword_in_title(title, "重要事項説明") == expected


def test_note_context_allows_related_link():
    """Related note links are only allowed in note standard mode."""
    ctx = LinkPolicyContext(platform=Platform.NOTE, primary_url=PRIMARY_URL)
    assert ctx.allows_related_note is True

    hatena = LinkPolicyContext(platform=Platform.HATENA, primary_url=PRIMARY_URL)
    assert hatena.allows_related_note is False
