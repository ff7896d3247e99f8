"""Tests for the validator catalog."""
import pytest

from contentgate.core.utils import build_tracked_url
from contentgate.gate.models import ContentDraft, LinkPolicyContext
from contentgate.gate.platforms import ArticleType, ContentVariant, Platform
from contentgate.gate.repairs import sanitize_content
from contentgate.gate.validators import (
    count_likely_cta_lines,
    is_contaminated_line,
    run_validators,
    validate_article_type_structure,
    validate_complete_draft,
    validate_faq_qa_structure,
    validate_freshness,
    validate_heading_detail_depth,
    validate_language_purity,
    validate_link_policy,
    validate_platform_compliance,
    validate_reader_facing_body,
    validate_safety,
)

PRIMARY_URL = "https://takkenai.jp/tools/juuyou/"


def linked_draft(body: str, platform: str = "hatena", title: str = "重要事項説明の基本") -> ContentDraft:
    return ContentDraft(title=title, body=body, primary_url=build_tracked_url(PRIMARY_URL, platform))


class TestLanguagePurity:
    """Chinese text and JSON debris in Japanese fields."""

    @pytest.mark.parametrize("line,expected", [
        ("重要事項説明を契約前に確認します。", False),
        ("这是我们的说明", True),
        ("価格は「安い」；条件は別", True),
        ("发动现关", True),
        ("", False),
    ])
    def test_contaminated_line(self, line, expected):
        """Punctuation and simplified-script hints decide contamination."""
        assert is_contaminated_line(line) is expected

    def test_clean_draft_has_no_issues(self, clean_draft, hatena_ctx):
        """Plain Japanese passes."""
        assert validate_language_purity(clean_draft, hatena_ctx) == []

    def test_json_debris_in_body(self, hatena_ctx):
        """Leaked serialization keys are reported."""
        draft = ContentDraft(title="重要事項説明", body='本文です。\n"bodyChinese": "正文"')

        issues = validate_language_purity(draft, hatena_ctx)

        assert any("body" in issue for issue in issues)

    def test_slug_in_title(self, hatena_ctx):
        """The English slug of the primary URL may not appear in the title."""
        draft = ContentDraft(title="juuyou の使い方", body="本文です。")

        issues = validate_language_purity(draft, hatena_ctx)

        assert any("slug" in issue for issue in issues)


class TestLinkPolicy:
    """Link placement rules."""

    def test_missing_link(self, hatena_ctx):
        """A body without URLs asks for the primary link."""
        issues = validate_link_policy(linked_draft("本文だけです。"), hatena_ctx)

        assert issues == ["body has no CTA link (insert the primary URL exactly once)"]

    def test_duplicate_primary_link(self, hatena_ctx):
        """The primary link may appear only once."""
        body = f"公式ページ: {PRIMARY_URL} で確認できます。\n再掲します {PRIMARY_URL}?a=1 の説明です。"

        issues = validate_link_policy(linked_draft(body), hatena_ctx)

        assert "body contains the primary link more than once" in issues

    def test_foreign_domain_and_shortener(self, hatena_ctx):
        """Other domains and shorteners are rejected."""
        body = f"公式ページ: {PRIMARY_URL} で確認できます。\n短縮 https://bit.ly/xyz を使う説明です。"

        issues = validate_link_policy(linked_draft(body), hatena_ctx)

        assert "body contains a URL outside the allowed domain" in issues
        assert "body contains a shortened URL" in issues

    def test_isolated_url_line(self, hatena_ctx):
        """A URL on its own line is rejected."""
        body = f"導入文です。\n{PRIMARY_URL}\n続きの説明です。"

        issues = validate_link_policy(linked_draft(body), hatena_ctx)

        assert any("URL-only line" in issue for issue in issues)

    def test_tracked_query_is_accepted(self, hatena_ctx):
        """Query strings do not matter when comparing with the primary link."""
        tracked = build_tracked_url(PRIMARY_URL, "hatena")
        body = f"導入文です。\n詳しい入力例は、公式ページ: {tracked} で確認できます。"

        assert validate_link_policy(linked_draft(body), hatena_ctx) == []

    def test_note_related_article_allowed(self):
        """note standard mode accepts one related article from an allowed account."""
        related = "https://note.com/takken_ai/n/abc123"
        ctx = LinkPolicyContext(
            platform=Platform.NOTE,
            primary_url=PRIMARY_URL,
            related_note_url=related,
            allowed_note_accounts=("takken_ai",),
        )
        body = f"導入文です。\n実務手順は、公式ページ: {PRIMARY_URL} に整理されています。\n\n## 関連記事\n過去記事も参考になります: {related}"

        assert validate_link_policy(linked_draft(body, "note"), ctx) == []
        assert validate_platform_compliance(linked_draft(body, "note"), ctx) == []

    def test_note_article_outside_allow_list(self):
        """A note article from another account is rejected."""
        ctx = LinkPolicyContext(
            platform=Platform.NOTE,
            primary_url=PRIMARY_URL,
            allowed_note_accounts=("takken_ai",),
        )
        body = f"導入文です。\n実務手順は、公式ページ: {PRIMARY_URL} に整理されています。\n過去記事も参考になります: https://note.com/other/n/zzz999"

        issues = validate_link_policy(linked_draft(body, "note"), ctx)

        assert "note article link belongs to an account outside the allow-list" in issues

    def test_note_viral_disallows_related_article(self):
        """note-viral mode allows only the primary link."""
        ctx = LinkPolicyContext(
            platform=Platform.NOTE,
            primary_url=PRIMARY_URL,
            content_variant=ContentVariant.NOTE_VIRAL,
        )
        body = f"導入文です。\n公式ページ: {PRIMARY_URL} に整理されています。\n過去記事: https://note.com/takken_ai/n/abc123 も参考になります。"

        issues = validate_platform_compliance(linked_draft(body, "note"), ctx)

        assert any("invalid URL count" in issue for issue in issues)

    def test_cta_line_count(self):
        """URL lines and CTA sentences next to them are counted."""
        body = (
            f"公式ページ: {PRIMARY_URL} で確認できます。\n"
            "関連ページもあわせて確認してください。\n"
            "本文の説明です。"
        )

        assert count_likely_cta_lines(body) == 2


class TestPlatformCompliance:
    """Per-platform counts, domains and tone."""

    def test_marketing_density(self, hatena_ctx):
        """Push words beyond the density limit are reported."""
        body = f"今すぐ限定で必見です。\n公式ページ: {PRIMARY_URL} で確認できます。"

        issues = validate_platform_compliance(linked_draft(body), hatena_ctx)

        assert any("marketing keyword density" in issue for issue in issues)

    def test_banned_pattern(self, hatena_ctx):
        """Platform banned phrases are reported."""
        body = f"限定オファーのご案内です。公式ページ: {PRIMARY_URL} で確認できます。" + "説明文" * 100

        issues = validate_platform_compliance(linked_draft(body), hatena_ctx)

        assert "text matches a banned platform pattern" in issues

    def test_zero_urls(self, hatena_ctx):
        """Exactly one primary-domain URL is required."""
        issues = validate_platform_compliance(linked_draft("本文です。"), hatena_ctx)

        assert "invalid URL count in body (expected 1, got 0)" in issues
        assert "exactly one primary-domain URL required (got 0)" in issues


class TestFreshness:
    """Past years in titles and bodies."""

    def test_title_year(self):
        """Any past year in the title is rejected."""
        draft = ContentDraft(title="2024年 重要事項説明", body="本文です。")

        issues = validate_freshness(draft, 2026)

        assert issues and issues[0].startswith("title mentions a past year (2024)")

    def test_body_year_with_citation(self):
        """A cited past year is allowed in the body."""
        draft = ContentDraft(title="重要事項説明", body="国土交通省の統計では2024年の件数が増えました。")

        assert validate_freshness(draft, 2026) == []

    def test_body_year_without_citation(self):
        """An uncited past year is reported."""
        draft = ContentDraft(title="重要事項説明", body="2024年の出題を振り返ります。")

        assert len(validate_freshness(draft, 2026)) == 1


class TestStructure:
    """Section depth, FAQ shape and reader-facing text."""

    def test_empty_sections(self):
        """Headings without content are reported."""
        body = "## 見出しA\n\n## 見出しB\n本文があります。これは十分な長さの説明文で、内容を丁寧に補足しています。"

        issues = validate_heading_detail_depth(body)

        assert any("empty sections: 見出しA" in issue for issue in issues)

    def test_thin_ratio(self):
        """Too many thin sections fail."""
        body = "## A\n短い。\n\n## B\n短い。\n\n## C\n短い。"

        issues = validate_heading_detail_depth(body)

        assert any("thin ratio" in issue for issue in issues)

    def test_faq_shape(self):
        """A FAQ heading needs the platform minimum pairs."""
        body = "## FAQ\nQ: 一つだけですか？\nA: はい。"

        assert validate_faq_qa_structure(Platform.NOTE, body)
        assert validate_faq_qa_structure(Platform.AMEBA, body) == []

    def test_no_faq_heading_is_not_checked(self):
        """Bodies without a FAQ heading are not judged on FAQ shape."""
        assert validate_faq_qa_structure(Platform.NOTE, "本文のみです。") == []

    def test_template_heading_is_not_reader_facing(self):
        """Template scaffolding headings are reported."""
        issues = validate_reader_facing_body("## 実行ステップ\n本文です。")

        assert issues

    def test_overclaim(self):
        """Guaranteed-outcome claims are a policy risk."""
        draft = ContentDraft(title="絶対合格の勉強法", body="本文です。")

        assert validate_safety(draft)


class TestArticleTypes:
    """Archetype structure requirements."""

    def test_practical_guide_complete(self, clean_draft):
        """The shared draft meets the practical-guide requirements."""
        assert validate_article_type_structure(clean_draft.body, ArticleType.PRACTICAL_GUIDE, Platform.HATENA) == []

    def test_practical_guide_missing_parts(self):
        """Each missing signal is reported."""
        body = "## 概要\n説明です。\n\n## 補足\n説明です。"

        issues = validate_article_type_structure(body, ArticleType.PRACTICAL_GUIDE, Platform.HATENA)

        assert len(issues) == 4

    def test_ameba_length(self):
        """ameba bodies need enough room for the archetype."""
        body = "## 手順\n1. 確認する\n\n## 例\n入力例とエラー対処の説明。"

        issues = validate_article_type_structure(body, ArticleType.HOW_TO, Platform.AMEBA)

        assert "ameba body too short to express the article type" in issues

    def test_note_viral_skips_archetype(self):
        """note-viral drafts are not judged on archetype."""
        ctx = LinkPolicyContext(platform=Platform.NOTE, primary_url=PRIMARY_URL,
                                content_variant=ContentVariant.NOTE_VIRAL)

        issues = run_validators(linked_draft("本文です。", "note"), ctx, 2026, ArticleType.TOOL_RANKING)

        assert issues.article_type == []


class TestAggregation:
    """Combined verdicts."""

    def test_complete_draft_result(self, clean_draft, hatena_ctx):
        """The sanitized shared draft is valid with no warnings."""
        repaired = sanitize_content(clean_draft, hatena_ctx, "重要事項説明")

        result = validate_complete_draft(repaired, hatena_ctx, 2026, ArticleType.PRACTICAL_GUIDE)

        assert result.is_valid is True
        assert result.to_dict() == {"is_valid": True, "errors": [], "warnings": []}

    def test_issue_groups(self, hatena_ctx):
        """Issues are grouped by weight class."""
        issues = run_validators(linked_draft("本文です。"), hatena_ctx, 2026, ArticleType.PRACTICAL_GUIDE)

        assert issues.hard
        assert issues.platform
        assert issues.article_type
        assert issues.passed is False
        assert len(issues.all) == len(set(issues.all))
