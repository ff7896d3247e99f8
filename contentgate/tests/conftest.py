"""Shared fixtures: a draft that clears every validator and a scripted provider."""
import json
import re

import pytest

from contentgate.core.settings import Settings
from contentgate.core.utils import extract_urls
from contentgate.gate.llm_provider import CompletionClient, DummyCompletionProvider, ModelSelectionContext
from contentgate.gate.models import ContentDraft, GenerationRequest, LinkPolicyContext
from contentgate.gate.platforms import Platform
from contentgate.gate.prompts import (
    AI_REVIEW_SYSTEM_PROMPT,
    PLAIN_TRANSLATION_SYSTEM_PROMPT,
    REVIEW_SYSTEM_PROMPT,
    TITLE_TRANSLATION_SYSTEM_PROMPT,
    TRANSLATION_SYSTEM_PROMPT,
)

PRIMARY_URL = "https://takkenai.jp/tools/juuyou/"
KEYWORD = "重要事項説明"

CLEAN_TITLE = "重要事項説明の基本と確認手順"
CLEAN_BODY = """重要事項説明は、契約前に取引条件を買主へ伝える大切な手続きです。どこから確認すればよいのでしょうか？

## 重要事項説明とは
重要事項説明とは、宅地建物取引士が契約の前に書面を交付して行う法定の説明です。説明する相手方と時期を押さえると全体像がつかめます。

## 重要事項説明の手順
まず登記記録と現地の状況を照合し、物件の権利関係を確認します。
次に法令上の制限と取引条件を一覧にまとめ、説明の順番を決めておきます。

## 注意点とよくあるミス
- 宅地建物取引士以外が説明を担当してしまう
- 書面の記名を忘れたまま説明を始めてしまう
担当者と書面の状態を事前に確認しておくと安心です。

## FAQ
Q: 重要事項説明はいつ行いますか？
A: 契約が成立する前に、相手方へ書面を交付して説明します。
Q: 説明を受ける側は何を準備すればよいですか？
A: 事前に書面の写しを受け取り、疑問点をメモしておくと理解しやすくなります。"""

TRANSLATION_BODY_REGEX = re.compile(r"本文:\n([\s\S]*?)\n\n\{\"titleChinese\"")
PLAIN_BODY_REGEX = re.compile(r"正文：\n([\s\S]*)$")
HEADING_REGEX = re.compile(r"^(#{2,})\s+")


def fake_translate(body: str) -> str:
    """Line-for-line stand-in translation that keeps headings, lists and URLs."""
    output = []
    heading_index = 0
    for raw in body.split("\n"):
        line = raw.strip()
        if not line:
            output.append("")
            continue
        heading = HEADING_REGEX.match(line)
        if heading:
            heading_index += 1
            output.append(f"{heading.group(1)} 中文章节{heading_index}")
            continue
        urls = extract_urls(line)
        if urls:
            output.append(f"可在官方页面 {' '.join(urls)} 查看详细说明。")
        elif line.startswith("Q:"):
            output.append("Q: 这个问题的中文翻译是什么？")
        elif line.startswith("A:"):
            output.append("A: 这是对应回答的中文翻译内容，便于读者理解。")
        elif re.match(r"^(?:[-*]|\d+\.)\s+", line):
            output.append(f"{line.split(' ', 1)[0]} 列表项目的中文翻译内容。")
        else:
            output.append("这是对应段落的中文翻译内容，完整保留原文的结构、要点与含义，便于中文读者对照阅读。")
    return "\n".join(output)


def clean_draft_json(title: str = CLEAN_TITLE, body: str = CLEAN_BODY) -> str:
    return json.dumps(
        {"title": title, "body": body, "hashtags": ["宅建", "重要事項説明"], "imagePrompt": "書類を確認する担当者"},
        ensure_ascii=False,
    )


def gate_responder(system_prompt: str, user_prompt: str, model: str) -> str:
    """Answers every prompt the pipeline sends, keyed by system prompt."""
    if system_prompt == REVIEW_SYSTEM_PROMPT:
        return json.dumps({"passed": True, "issues": [], "suggestions": []})
    if system_prompt == AI_REVIEW_SYSTEM_PROMPT:
        return json.dumps({"summaryChinese": "结构清晰，定义与步骤完整。", "actionsChinese": ["补充具体场景说明"]},
                          ensure_ascii=False)
    if system_prompt == TRANSLATION_SYSTEM_PROMPT:
        match = TRANSLATION_BODY_REGEX.search(user_prompt)
        body = match.group(1) if match else ""
        return json.dumps({"titleChinese": "重要事项说明的基础与确认步骤", "bodyChinese": fake_translate(body)},
                          ensure_ascii=False)
    if system_prompt == PLAIN_TRANSLATION_SYSTEM_PROMPT:
        match = PLAIN_BODY_REGEX.search(user_prompt)
        return fake_translate(match.group(1) if match else "")
    if system_prompt == TITLE_TRANSLATION_SYSTEM_PROMPT:
        return "重要事项说明的基础与确认步骤"
    return clean_draft_json()


@pytest.fixture
def test_settings():
    return Settings(
        review_rounds=1,
        openrouter_api_key="",
        content_model="primary/model",
        translation_model="translate/model",
        fallback_models="backup/model",
        evidence_mode="auto",
        search_gate_mode="soft",
        ai_action_gate_mode="soft",
        allowed_note_accounts="",
    )


@pytest.fixture
def hatena_ctx():
    return LinkPolicyContext(platform=Platform.HATENA, primary_url=PRIMARY_URL)


@pytest.fixture
def clean_draft():
    return ContentDraft(title=CLEAN_TITLE, body=CLEAN_BODY, hashtags=["宅建"])


@pytest.fixture
def hatena_request():
    return GenerationRequest(
        date="2026-03-02",
        platform="hatena",
        topic_label=KEYWORD,
        primary_url=PRIMARY_URL,
        asset_type="knowledge-point",
        primary_keyword=KEYWORD,
    )


@pytest.fixture
def scripted_client():
    """Client over a provider that answers every pipeline prompt."""
    provider = DummyCompletionProvider(default=gate_responder)
    selection = ModelSelectionContext(primary_model="primary/model", fallback_models=["backup/model"])

    async def no_sleep(_seconds):
        return None

    return CompletionClient(provider, selection, sleep=no_sleep)
