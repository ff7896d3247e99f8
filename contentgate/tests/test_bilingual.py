"""Tests for bilingual consistency checks and the repair ladder."""
import pytest

from contentgate.gate.bilingual import (
    KANA_REGEX,
    BilingualEngine,
    bilingual_signals,
    build_structural_fallback,
    ensure_url_parity,
    expand_for_coverage,
    is_tail_incomplete,
    looks_like_synthetic_fallback,
    minimum_secondary_length,
    parse_title_response,
    patch_heading_structure,
    patch_tail_punctuation,
    split_for_translation,
    validate_bilingual_consistency,
    validate_final_consistency,
)
from contentgate.gate.errors import TransportError
from contentgate.gate.llm_provider import CompletionClient, DummyCompletionProvider, ModelSelectionContext
from contentgate.gate.models import ContentDraft

from conftest import CLEAN_BODY, CLEAN_TITLE, PRIMARY_URL

SHORT_PRIMARY = """導入文です。

## 概要
説明します。

## 手順
手順を示します。

## 注意点
注意します。

## まとめ
整理します。"""

SHORT_SECONDARY = """这是导入段落的中文说明内容。

## 概要

这里说明基本的概念和适用范围。

## 步骤

按照顺序确认每一个步骤。

最后整理全部要点并复核。"""


class TestConsistencyValidation:
    """Parity checks between the two bodies."""

    def test_missing_heading_fails_strict_then_patch_passes(self):
        """Two of four headings fail strict parity; one inserted heading fixes it."""
        assert validate_bilingual_consistency(SHORT_PRIMARY, SHORT_SECONDARY, strict_headings=True)

        patched = patch_heading_structure(SHORT_PRIMARY, SHORT_SECONDARY)

        assert bilingual_signals(SHORT_PRIMARY, patched).secondary_headings == 3
        assert validate_bilingual_consistency(SHORT_PRIMARY, patched, strict_headings=True) == []

    def test_loose_bounds_accept_one_missing(self):
        """Non-strict mode still needs at least n - 1 headings."""
        issues = validate_bilingual_consistency(SHORT_PRIMARY, SHORT_SECONDARY)

        assert any("headings missing" in issue for issue in issues)

    def test_empty_secondary(self):
        assert validate_bilingual_consistency(SHORT_PRIMARY, "  ") == ["Secondary body is empty"]

    def test_kana_leak(self):
        """Kana in two narrative lines is a leak."""
        secondary = SHORT_SECONDARY + "\n\n这是一段文字です。\n另一行ます。"

        issues = validate_bilingual_consistency(SHORT_PRIMARY, secondary)

        assert any("leaks kana" in issue for issue in issues)

    def test_lost_url(self):
        """URLs in the primary must survive in the secondary."""
        primary = f"{SHORT_PRIMARY}\n公式ページ: {PRIMARY_URL} で確認できます。"

        issues = validate_bilingual_consistency(primary, SHORT_SECONDARY)

        assert any("lost URLs" in issue for issue in issues)
        assert PRIMARY_URL in ensure_url_parity(primary, SHORT_SECONDARY)

    def test_length_floor(self):
        """The floor grows with the primary size."""
        assert minimum_secondary_length(100) == 40
        assert minimum_secondary_length(300) == 96
        assert minimum_secondary_length(1000) == 400

    def test_templated_fragments(self):
        """Template scaffolding is rejected and recognized."""
        secondary = "\n\n".join(f"## 第{i}节\n关键要点{i}" for i in range(1, 5))

        issues = validate_bilingual_consistency(SHORT_PRIMARY, secondary)

        assert "Secondary body contains templated fragments" in issues
        assert looks_like_synthetic_fallback(secondary) is True


class TestTailRepair:
    """Sentence-final punctuation of the secondary body."""

    def test_complete_thought_gets_full_stop(self):
        result = patch_tail_punctuation("第一行。\n这是没有结尾标点的完整句子")

        assert result.endswith("完整句子。")

    def test_dangling_connective_is_left_alone(self):
        """A tail cut after a connective is not masked with punctuation."""
        text = "第一行。\n这里列出的条件包括"

        assert patch_tail_punctuation(text) == text
        assert is_tail_incomplete(text) is True

    def test_structural_tail(self):
        """Lists and URLs are never treated as cut sentences."""
        assert is_tail_incomplete("- 列表项目没有句号的情况") is False
        assert is_tail_incomplete(f"参考链接：{PRIMARY_URL}") is False


class TestStructuralFallback:
    """Provider-free mapping."""

    def test_fallback_has_no_kana(self):
        title, body = build_structural_fallback(CLEAN_TITLE, CLEAN_BODY)

        assert not KANA_REGEX.search(title)
        assert not KANA_REGEX.search(body)
        assert bilingual_signals(CLEAN_BODY, body).secondary_headings == 4

    def test_existing_chinese_title_is_kept(self):
        title, _ = build_structural_fallback(CLEAN_TITLE, CLEAN_BODY, existing_title="重要事项说明")

        assert title == "重要事项说明"

    def test_url_lines_keep_urls(self):
        _, body = build_structural_fallback("タイトル", f"公式ページ: {PRIMARY_URL} で確認できます。")

        assert body == f"参考链接：{PRIMARY_URL}"

    def test_coverage_expansion_reaches_floor(self):
        """Padding lifts a short mapping over the strict length floor."""
        expanded = expand_for_coverage(CLEAN_BODY, "## 概要\n很短。")
        signals = bilingual_signals(CLEAN_BODY, expanded)

        assert signals.secondary_chars >= signals.min_secondary_chars


class TestTranslationHelpers:
    """Chunking and response parsing."""

    def test_split_for_translation(self):
        body = "第一段落です。\n\n第二段落です。\n\n第三段落です。"

        assert split_for_translation(body, 15, 5) == ["第一段落です。", "第二段落です。", "第三段落です。"]
        assert split_for_translation(body, 15, 2) is None
        assert split_for_translation(body, 500, 5) is None

    @pytest.mark.parametrize("raw,expected", [
        ("标题：重要事项说明\n其他内容", "重要事项说明"),
        ('"重要事项说明的基础"', "重要事项说明的基础"),
        ("\n\nTitle: 确认步骤", "确认步骤"),
    ])
    def test_parse_title_response(self, raw, expected):
        assert parse_title_response(raw) == expected


class TestFinalConsistency:
    """Completeness check before a draft is persisted."""

    def test_missing_secondary_fields(self):
        draft = ContentDraft(title="重要事項説明", body=SHORT_PRIMARY)

        issues = validate_final_consistency(draft)

        assert issues == ["Missing field: title_secondary", "Missing field: body_secondary"]

    def test_trailing_heading_and_kana_title(self):
        draft = ContentDraft(
            title="重要事項説明",
            body=SHORT_PRIMARY + "\n\n## 付録",
            title_secondary="重要事項说明のまとめ",
            body_secondary=SHORT_SECONDARY,
        )

        issues = validate_final_consistency(draft)

        assert "Primary body ends with an empty heading" in issues
        assert "Secondary title contains kana" in issues


class TestBilingualEngine:
    """The escalation ladder."""

    @pytest.mark.asyncio
    async def test_consistent_variant_is_kept(self):
        """No provider call when the stored variant already passes."""
        provider = DummyCompletionProvider()
        client = CompletionClient(provider, ModelSelectionContext(primary_model="primary/model"))
        patched = patch_heading_structure(SHORT_PRIMARY, SHORT_SECONDARY)
        draft = ContentDraft(title="概要", body=SHORT_PRIMARY, title_secondary="概要", body_secondary=patched)

        result, synthetic = await BilingualEngine(client).ensure_translation(draft)

        assert synthetic is False
        assert result.body_secondary == patched
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_full_translation(self, scripted_client):
        """A complete provider translation is accepted at the first step."""
        draft = ContentDraft(title=CLEAN_TITLE, body=CLEAN_BODY)

        result, synthetic = await BilingualEngine(scripted_client, model="translate/model").ensure_translation(draft)

        assert synthetic is False
        assert result.title_secondary == "重要事项说明的基础与确认步骤"
        assert validate_final_consistency(result) == []
        assert scripted_client.provider.calls[0]["model"] == "translate/model"

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back(self):
        """Failing translation calls end in the structural fallback."""
        def unavailable(system_prompt, user_prompt, model):
            raise TransportError("connection refused", model=model)

        provider = DummyCompletionProvider(default=unavailable)

        async def no_sleep(_seconds):
            return None

        client = CompletionClient(provider, ModelSelectionContext(primary_model="primary/model"), sleep=no_sleep)
        draft = ContentDraft(title=CLEAN_TITLE, body=CLEAN_BODY)

        result, synthetic = await BilingualEngine(client).ensure_translation(draft)

        assert synthetic is True
        assert not KANA_REGEX.search(result.body_secondary)
        assert validate_final_consistency(result) == []

    @pytest.mark.asyncio
    async def test_no_client_uses_fallback(self):
        draft = ContentDraft(title=CLEAN_TITLE, body=CLEAN_BODY)

        result, synthetic = await BilingualEngine(None).ensure_translation(draft)

        assert synthetic is True
        assert result.title_secondary
        assert draft.body_secondary == ""
