"""
Prompt builders for drafting, revision, review and translation.

All platform prompts are Japanese; the review prompt for the operator-facing
AI action list is Chinese. Variant picking (opening style, preferred CTA)
uses a stable hash of the topic so identical requests produce identical
prompts.
"""

from typing import Dict, List, Optional, Sequence

from contentgate.core.utils import normalize_topic_label, pick_stable_variant
from .models import ContentDraft, GenerationRequest, SeoGeoReport
from .platforms import (
    AssetType,
    ContentVariant,
    Platform,
    build_article_type_prompt_block,
    get_article_type_option,
    resolve_platform,
)


OUTPUT_FORMAT_BLOCK = """## 出力フォーマット
以下のJSON形式のみで出力してください：
{
  "title": "記事タイトル",
  "seoTitle": "検索表示タイトル（32文字以内）",
  "body": "記事本文（Markdown、見出しは##、改行は\\nで表現）",
  "titleChinese": "标题的中文翻译",
  "bodyChinese": "正文的中文翻译（保持相同结构，用\\n换行）",
  "hashtags": ["宅建", "不動産"],
  "imagePrompt": "アイキャッチ画像の説明（日本語）",
  "ctaLink": "本文で使用したリンクURL"
}"""

LOCALIZATION_BLOCK = """## 日本語ローカライズ（厳守）
- title/body/hashtags/imagePromptは100%ネイティブ日本語であること
- 中国語の表現・語彙・文法を混入させないこと
- titleChinese/bodyChineseは中国語（簡体字）の翻訳として別フィールドにのみ出力すること"""

FRESHNESS_BLOCK = """- title/seoTitle/imagePrompt に過去年（例: 2024年）を入れない
- bodyで過去年を使う場合は、必ず出典・調査・統計の引用文脈に限定する"""

AMEBA_SYSTEM_PROMPT = f"""あなたは宅建学習サービスの中の人として、アメブロで宅建受験生に向けたブログ記事を書きます。

## 文体・トーン
- カジュアルで親しみやすい口語体（「〜だよ」「〜だね」）
- 絵文字は1段落に1〜2個程度まで
- 難しい法律用語には必ずわかりやすい補足を添える

## 記事の構成
1. アイキャッチ導入（問いかけや共感から始める。「結論として、〜」の固定導入は避ける）
2. 日常・実務シーン（どこで迷うかを先に示す）
3. 解説（判断の軸を先に提示）
4. ワンポイントアドバイス
5. 本文の補足としての自然な導線（リンクは1つだけ）

## 文字数
- 800〜1200文字

## SEO / GEO
- primary keyword をタイトルと冒頭に自然に入れる
- 「〜とは」の定義文を1回入れる
- 統計・制度情報を最低1件入れ、出典組織や年度を明記する（URL不要）
{FRESHNESS_BLOCK}

## 禁止事項
- 誇大・断定・煽り表現、データの捏造
- 1記事内に複数のリンクを貼ること、短縮URL
- title/imagePromptにURL文字列や英字slugを書くこと

{OUTPUT_FORMAT_BLOCK}

{LOCALIZATION_BLOCK}"""

NOTE_SYSTEM_PROMPT = f"""あなたは宅建・不動産学習サービスの公式noteアカウントとして、深掘り記事を書きます。

## 文体・トーン
- 「です・ます」調のプロフェッショナルな文体
- 知的好奇心を刺激する書き出し。絵文字は使わない

## 記事の構成
1. フック導入（意外な事実や問いかけ。「結論として、〜」の固定導入は避ける）
2. 見出し付きの3セクション（背景、深掘り分析、実践的なアドバイス）
3. まとめ
4. FAQ（2問以上、Q:/A:形式、回答は自己完結）
5. 本文の補足としての自然な導線

## 文字数
- 2000〜3000文字

## SEO / GEO
- primary keyword を title/H2/導入に自然配置
- 「〜とは」の定義ブロックを入れる
- 統計データを最低1件入れ、出典組織・年度を明記（URL不要）
{FRESHNESS_BLOCK}

## 本文中のリンク
- 指定URLは必ず1回だけ。URLだけの孤立行にしない
- 関連記事URLが与えられた場合のみ、末尾「## 関連記事」にnote記事URLを1つ追加してよい

{OUTPUT_FORMAT_BLOCK}

{LOCALIZATION_BLOCK}"""

HATENA_SYSTEM_PROMPT = f"""あなたは宅建・不動産学習サービスのはてなブログ執筆担当として、「保存版」品質の記事を書きます。

## 文体・トーン
- 「です・ます」調を基本に、客観的・分析的なトーン
- 絵文字は使わない

## 記事の構成
1. 導入（問い/具体場面/データのいずれかで自然に導入する）
2. H2/H3で構造化した本文（箇条書きを活用、表は任意）
3. まとめ
4. FAQ（2問以上、Q:/A:形式）

## 文字数
- 1500〜3000文字

## SEO / GEO
- primary keyword をタイトルとH2に自然に含める
- 「〜とは」の定義セクションを1つ入れる
- 統計データまたは制度データを最低1件入れ、出典組織・年度を明記（URL不要）
{FRESHNESS_BLOCK}

## 本文要件
- URLは指定の1つだけ。URL単独行は禁止（説明文と一緒に置く）

{OUTPUT_FORMAT_BLOCK}

{LOCALIZATION_BLOCK}"""

SYSTEM_PROMPTS = {
    Platform.AMEBA: AMEBA_SYSTEM_PROMPT,
    Platform.NOTE: NOTE_SYSTEM_PROMPT,
    Platform.HATENA: HATENA_SYSTEM_PROMPT,
}

CTA_CANDIDATES = {
    Platform.AMEBA: (
        "この論点をもう少し整理したい方は、補足ページも見てみてね：{url}",
        "本文で触れたポイントの確認用に、こちらも参考にどうぞ：{url}",
        "学習メモとして残しておきたい人向けに、関連ページはこちら：{url}",
    ),
    Platform.NOTE: (
        "本文で触れた判断基準を整理する補足資料はこちらです：{url}",
        "実務で使う際の参照先として、関連ページも置いておきます：{url}",
        "論点を深掘りしたい方向けに、検証用リンクを共有します：{url}",
    ),
    Platform.HATENA: (
        "本文で扱った条件を実際に試す場合は、以下を参照してください：{url}",
        "比較表の補助資料として、関連ページはこちらです：{url}",
        "手順の確認に使える公式ページはこちらです：{url}",
    ),
}

OPENING_STYLES = {
    Platform.AMEBA: ("共感の問いかけから入る", "つまずきやすい失点例から入る", "今日のミニ気づきから入る"),
    Platform.NOTE: ("意外な統計から入る", "現場で起きる迷いの場面から入る", "読者の疑問を先に提示してから展開する"),
    Platform.HATENA: ("論点のズレが起きる実務場面から入る", "判断を分ける基準を先に提示してから入る", "データ・制度の変化を導入に使う"),
}

ANGLES = {
    Platform.AMEBA: "場面別やさしい解説 / 実務ヒント",
    Platform.NOTE: "深掘り分析 / 実務視点",
    Platform.HATENA: "完全ガイド / 保存版まとめ",
}

GEO_FORMAT_RULES = {
    Platform.AMEBA: (
        "- 本文で「〜とは」を1回入れ、用語定義を短く明示",
        "- FAQは1問以上（読者の実検索に近い質問文）",
        "- 統計/制度情報を最低1件入れ、出典名を明記（URLは不要）",
    ),
    Platform.NOTE: (
        "- H2/H3構成で「定義→背景→実務活用→FAQ」を含める",
        "- FAQを2問以上入れ、各回答は自己完結に",
        "- 数値データを1件以上入れ、出典組織・年度を本文に明記",
    ),
    Platform.HATENA: (
        "- H2/H3構造で網羅的に整理し、必要なら比較表を使う（表は任意）",
        "- FAQを2問以上入れ、AI要約で抜き出しやすい短回答にする",
        "- 重要ポイントは箇条書き化し、引用されやすい文を意図的に配置",
    ),
}

ASSET_CONTEXT = {
    AssetType.KNOWLEDGE_POINT.value: "宅建の知識ポイント「{topic}」",
    AssetType.TOOL.value: "学習ツール「{topic}」",
    AssetType.PAST_QUESTION.value: "宅建過去問「{topic}」",
}

STANDARD_REVISION_SUGGESTIONS = (
    "title と body は必ず100%ネイティブ日本語で出力すること（中国語禁止）",
    "中国語は titleChinese / bodyChinese のみに出力し、本文に混ぜないこと",
    "body に JSON キー（titleChinese/bodyChinese/hashtags）を含めないこと",
    "誇大・断定・煽り表現（絶対合格/必ず受かる/100%稼げる 等）を削除し、事実ベースで表現すること",
    "タイトル/SEOタイトル/画像説明に過去年（例: 2024年）を入れないこと",
    "本文で過去年に言及する場合は必ず出典や調査文脈を付けること",
)

REVIEW_SYSTEM_PROMPT = """あなたはブログ記事の品質チェック担当です。
記事を厳格にレビューし、問題があれば具体的な修正指示を出してください。

以下のJSON形式で必ず回答してください：
{
  "passed": true/false,
  "issues": ["問題点1", "問題点2"],
  "suggestions": ["修正指示1", "修正指示2"]
}"""

AI_REVIEW_SYSTEM_PROMPT = "你是SEO/GEO内容质量审阅助手。请以中文输出简洁、客观、非营销语的建议。必须只输出JSON。"

TRANSLATION_SYSTEM_PROMPT = (
    "あなたは日本語→中国語（簡体字）の翻訳者です。意味を省略せず、見出しと段落構造を維持して完全翻訳してください。"
    "必ずJSONのみで回答してください。"
)
PLAIN_TRANSLATION_SYSTEM_PROMPT = "你是日文到中文（简体）的翻译器。保持Markdown结构，不要省略内容。"
TITLE_TRANSLATION_SYSTEM_PROMPT = "你是日文到中文（简体）的翻译器。仅输出中文标题。"


def get_system_prompt(platform) -> str:
    return SYSTEM_PROMPTS[resolve_platform(platform)]


def url_rule_line(platform, content_variant: ContentVariant) -> str:
    platform = resolve_platform(platform)
    if platform == Platform.NOTE and content_variant == ContentVariant.STANDARD:
        return "本文URLは指定ページを1回必須。関連note記事URLは末尾の関連記事に1回まで追加可。短縮URLは禁止"
    return "本文には指定ページのURLを1回だけ自然に入れ、他URLや短縮URLは入れないこと"


def build_user_prompt(request: GenerationRequest, tracked_url: str, research_notes: str = "") -> str:
    """
    Build the drafting prompt for one request.

    Args:
        request: Generation request
        tracked_url: Primary URL with tracking parameters
        research_notes: Optional pre-collected facts to quote

    Returns:
        Japanese user prompt
    """
    platform = resolve_platform(request.platform)
    topic = normalize_topic_label(request.topic_label)
    is_viral = request.content_variant == ContentVariant.NOTE_VIRAL
    asset_context = ASSET_CONTEXT.get(request.asset_type or "", "テーマ「{topic}」").format(topic=topic)
    preferred_cta = pick_stable_variant(
        [item.format(url=tracked_url) for item in CTA_CANDIDATES[platform]],
        f"{platform.value}:{topic}:cta",
    )
    opening_style = pick_stable_variant(list(OPENING_STYLES[platform]), f"{platform.value}:{topic}:opening")

    lines: List[str] = [
        f"以下の情報をもとに、{platform.value}用のブログ記事を作成してください。",
        "",
        "## 今日のテーマ",
        f"- コンテンツ: {asset_context}",
        f"- アングル: {request.angle or ANGLES[platform]}",
    ]
    if request.phase_label:
        lines.append(f"- 季節フェーズ: {request.phase_label}")
    lines.extend([
        f"- CTA用リンク（本文で1回使用）: {tracked_url}",
        f"- 推奨CTA文: {preferred_cta}",
        f"- 今回の導入スタイル: {opening_style}",
    ])
    if platform == Platform.NOTE and not is_viral and request.related_note_url:
        lines.append(f"- 関連記事URL（末尾の関連記事で1回のみ）: {request.related_note_url}")
        if request.related_note_title:
            lines.append(f"- 関連記事タイトル: {request.related_note_title}")

    lines.extend([
        "",
        "## プラットフォーム安全運用ルール（厳守）",
        "- 誇大・断定の表現は禁止（例: 「絶対合格」「必ず受かる」「100%稼げる」「確実に儲かる」）",
        "- 恐怖訴求・煽り・過度な緊急性訴求は禁止（例: 「今すぐやらないと損」「見ないと危険」）",
        f"- {url_rule_line(platform, request.content_variant)}",
        FRESHNESS_BLOCK,
        "- body冒頭で title をそのまま繰り返さない（本文のみ出力）",
        "- 冒頭を「結論として、」で開始しない",
    ])

    if not is_viral and request.article_type:
        option = get_article_type_option(request.article_type)
        lines.extend([
            "",
            f"## 文章タイプ指示（必須: {option.label}）",
            build_article_type_prompt_block(option.id),
            "- 上記タイプ要件を本文構成に明確に反映すること",
            "- 読者向け本文のみを書き、属性説明やメタ情報は本文に書かないこと",
        ])

    lines.extend([
        "",
        "## SEO / GEO 最適化ルール",
        f"- primary keyword: {request.primary_keyword or topic}",
        "- 冒頭は結論/答えを先に明示してから展開する（answer-first）",
        "- 本文に「機関名+年度+具体数値」を含む根拠文を最低2文入れる（外部URLは追加しない）",
        "- 本文に単独引用しやすい短文（1〜2文で完結）を最低3つ入れる",
        "- 「SEO/GEO/属性/実行ステップ」など運営メタ情報を本文に出力しない",
    ])
    lines.extend(GEO_FORMAT_RULES[platform])

    if research_notes:
        lines.extend([
            "",
            "## リサーチ結果（記事に活用してください）",
            "データを引用する際は数値や出典をそのまま使い、改変や捏造をしないでください。",
            research_notes,
        ])
    return "\n".join(lines)


def build_revision_prompt(user_prompt: str, issues: Sequence[str], suggestions: Sequence[str]) -> str:
    """Original prompt plus the fix-instruction block."""
    issue_lines = "\n".join(f"{idx + 1}. {item}" for idx, item in enumerate(issues))
    suggestion_lines = "\n".join(f"{idx + 1}. {item}" for idx, item in enumerate(suggestions))
    return (
        f"{user_prompt}\n\n"
        "## 前回の生成結果に対するレビュー指摘（必ず修正すること）\n"
        "以下の問題点が見つかりました。これらを必ず修正した上で、記事を再生成してください。\n\n"
        f"### 問題点\n{issue_lines}\n\n"
        f"### 修正指示\n{suggestion_lines}\n\n"
        "【重要】上記の指摘をすべて反映した修正版を出力してください。同じミスを繰り返さないこと。"
    )


def build_hard_issue_suggestions(platform, content_variant: ContentVariant, article_type=None) -> List[str]:
    suggestions = list(STANDARD_REVISION_SUGGESTIONS)
    suggestions.insert(4, url_rule_line(platform, content_variant))
    if content_variant != ContentVariant.NOTE_VIRAL and article_type:
        label = get_article_type_option(article_type).label
        suggestions.append(f"記事タイプ（{label}）の構成要件を満たすこと")
    return suggestions


PLATFORM_REVIEW_RULES = {
    Platform.AMEBA: "【Amebaのルール】カジュアルで親しみやすい口語体、800〜1200文字、CTAリンクは1つだけ",
    Platform.NOTE: "【noteのルール】です・ます調、2000〜3000文字、3セクション＋まとめ＋FAQ、絵文字なし",
    Platform.HATENA: "【はてなブログのルール】客観的・分析的、1500〜3000文字、H2/H3で構造化、絵文字なし",
}


def build_review_prompt(platform, draft: ContentDraft) -> str:
    platform = resolve_platform(platform)
    return (
        "以下のブログ記事を厳格にレビューしてください。\n\n"
        f"{PLATFORM_REVIEW_RULES[platform]}\n\n"
        "【チェック項目】\n"
        "1. 文字数と構成がプラットフォームの指定に沿っているか\n"
        "2. 「〜と言えるでしょう」「いかがでしたでしょうか」等のAI定型文がないか\n"
        "3. 導線が自然で押し売りになっていないか\n"
        "4. 捏造された統計や架空のデータがないか\n"
        "5. 中国語の影響がない100%ネイティブ日本語か\n"
        "6. 誇大・断定・煽り表現がないか\n\n"
        "【レビュー対象の記事】\n"
        f"タイトル: {draft.title}\n"
        f"本文:\n{draft.body}\n"
        f"ハッシュタグ: {', '.join(draft.hashtags)}\n\n"
        '問題がなければ {"passed": true, "issues": [], "suggestions": []} を返してください。'
    )


def build_ai_review_prompt(platform, draft: ContentDraft, report: SeoGeoReport,
                           search_score: Optional[int] = None) -> str:
    platform = resolve_platform(platform)
    excerpt = (draft.body or "")[:1800]
    search_part = f", ChatGPT={search_score}" if search_score is not None else ""
    return (
        "请根据下面的文章与规则评分，输出中文审阅结论。\n\n"
        f"平台: {platform.value}\n"
        f"标题: {draft.title}\n"
        f"SEO标题: {draft.seo_title or '（无）'}\n"
        f"主关键词: {report.primary_keyword}\n"
        f"规则评分: SEO={report.seo_score}, GEO={report.geo_score}{search_part}\n"
        f"规则问题: {'；'.join(report.issues) or '无'}\n"
        f"规则优势: {'；'.join(report.strengths) or '无'}\n\n"
        "补充规则: 若平台为hatena，Markdown表格是可选项，不得将“无表格”作为硬性不达标结论。\n\n"
        f"正文节选:\n{excerpt}\n\n"
        "输出要求：\n"
        "1) 仅输出JSON，不要额外文字\n"
        "2) summaryChinese: 1-2句\n"
        "3) actionsChinese: 1-3条可执行优化建议\n"
        "4) 禁止营销口吻、禁止夸大\n\n"
        '{"summaryChinese": "......", "actionsChinese": ["......"]}'
    )


def build_search_optimization_prompt(user_prompt: str, issues: Sequence[str]) -> str:
    """Narrow revision prompt that targets search-extractability only."""
    issue_lines = "\n".join(f"- {item}" for item in issues)
    return (
        f"{user_prompt}\n\n"
        "## 検索抽出性の改善（他の要件は維持すること）\n"
        "冒頭で答えを先に示し、機関名+年度+数値の根拠文と、単独で引用できる短文を増やしてください。\n"
        f"{issue_lines}"
    )


def build_translation_prompt(title: str, body: str) -> str:
    return (
        "以下の日本語ブログ記事を中国語（簡体字）に翻訳してください。\n\n"
        "【必須ルール】\n"
        "1. 要約しない。全文を翻訳する\n"
        "2. 見出し（## / ###）と段落構造を維持する\n"
        "3. 本文を途中で切らない\n"
        "4. JSON以外の文字を出力しない\n"
        "5. bodyChinese は中国語のみ。日本語の仮名を残さない\n"
        "6. URLはそのまま保持する\n\n"
        f"タイトル: {title}\n\n本文:\n{body}\n\n"
        '{"titleChinese": "标题的中文翻译", "bodyChinese": "正文的中文翻译"}'
    )


def build_plain_translation_prompt(body: str) -> str:
    return (
        "请将下面的日文Markdown正文完整翻译为中文（简体）。\n\n"
        "【规则】\n"
        "1. 只输出翻译后的 Markdown 正文，不要 JSON，不要解释\n"
        "2. 保留 ##/###、列表、表格、URL\n"
        "3. 不能保留日文假名\n"
        "4. 不要截断结尾\n\n"
        f"正文：\n{body}"
    )


def build_title_translation_prompt(title: str) -> str:
    return f"请将下面的日文标题翻译为中文（简体），只输出一行标题：\n{title}"


def prompt_pair(request: GenerationRequest, tracked_url: str) -> Dict[str, str]:
    """System and user prompt for the first draft."""
    return {
        "system": get_system_prompt(request.platform),
        "user": build_user_prompt(request, tracked_url),
    }
