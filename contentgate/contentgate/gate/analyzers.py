"""
Structural analyzers for markdown-like article bodies.

Pure functions that turn text into typed signal structs. They never mutate
their input and never raise on malformed text.
"""

import re
from dataclasses import dataclass, field
from typing import List

from contentgate.core.utils import URL_REGEX, normalize_for_search


# Line-level structure
HEADING_LINE_REGEX = re.compile(r"^##+\s+.+$", re.MULTILINE)
FAQ_HEADING_LINE_REGEX = re.compile(r"^##+\s*(?:FAQ|よくある質問|Q&A|Q＆A)\s*$", re.IGNORECASE)
FAQ_HEADING_PREFIX_REGEX = re.compile(r"^##+\s*(?:FAQ|よくある質問|Q&A|Q＆A)", re.IGNORECASE | re.MULTILINE)
FAQ_QUESTION_LINE_REGEX = re.compile(r"^\s*(?:\*\*)?Q(?:[0-9０-９]+(?:[.．:：])?|[:：])\s*", re.IGNORECASE)
FAQ_ANSWER_LINE_REGEX = re.compile(r"^\s*(?:\*\*)?A(?:[0-9０-９]+(?:[.．:：])?|[:：])\s*", re.IGNORECASE)
BULLET_LINE_REGEX = re.compile(r"^(?:[-*]|\d+\.)\s+")
TABLE_ROW_REGEX = re.compile(r"^\|.+\|$", re.MULTILINE)
TABLE_SEPARATOR_REGEX = re.compile(r"^\|(?:\s*:?-+:?\s*\|)+\s*$", re.MULTILINE)

# Vocabulary
DATA_CITATION_REGEX = re.compile(
    r"(出典|調査|統計|データ|公表|発表|白書|資料|レポート|国土交通省|総務省|厚生労働省|金融庁|内閣府|消費者庁|国税庁|年度|年版)"
)
DATA_SOURCE_REGEX = re.compile(
    r"(出典|調査|統計|データ|公表|発表|白書|資料|レポート|国土交通省|総務省|厚生労働省|金融庁|内閣府|消費者庁|国税庁|日銀|不動産流通推進センター|全宅連)"
)
YEAR_REGEX = re.compile(r"(?:(?:19|20)\d{2}年?|(?:19|20)\d{2}年度|令和\d+年?|令和\d+年度|平成\d+年?|平成\d+年度|昭和\d+年?|昭和\d+年度)")
NUMBER_WITH_UNIT_REGEX = re.compile(r"(?:\d+(?:\.\d+)?\s*(?:%|％|倍|件|人|社|棟|戸|万円|円|ポイント|pt|万|億|千))")
INTRO_HOOK_REGEX = re.compile(
    r"(?:結論|先に結論|要点|本記事では|この記事では|まず結論|最初に結論|実は|意外|見落としがち|ご存じ|なぜ|どうして|ポイント|鍵|コツ)"
)
INTRO_ANSWER_REGEX = re.compile(
    r"(?:結論|先に結論|要点|本記事では|この記事では|まず結論|最初に結論|実は|意外|見落としがち|なぜ|どうして|ポイント|鍵|コツ|最短で|先に答え)"
)
DEFINITION_REGEX = re.compile(r"(?:とは|とは何か|定義)")
OVERCLAIM_REGEX = re.compile(
    r"(絶対合格|必ず受かる|必ず稼げる|100%\s*(合格|稼げる|儲かる)|確実に儲かる|元本保証|放置で稼げる|誰でも簡単に稼げる|今すぐやらないと損|見ないと危険)"
)
QUESTION_MARK_REGEX = re.compile(r"[?？]")
JAPANESE_TEXT_REGEX = re.compile(r"[\u3040-\u30ff\u3400-\u9fff]")


@dataclass
class FaqSignals:
    """FAQ presence and shape."""
    has_heading: bool = False
    heading_count: int = 0
    question_count: int = 0
    answer_count: int = 0

    @property
    def pair_count(self) -> int:
        return max(self.heading_count, self.question_count)


@dataclass
class IntroSignals:
    """Lead paragraph: first three non-heading, non-empty lines."""
    text: str = ""
    has_hook: bool = False
    answer_first: bool = False


@dataclass
class StructureSignals:
    """Aggregate structure of one body."""
    headings: List[str] = field(default_factory=list)
    faq: FaqSignals = field(default_factory=FaqSignals)
    bullet_count: int = 0
    has_table: bool = False
    has_definition: bool = False
    has_data_citation: bool = False
    evidence_sentence_count: int = 0
    citation_ready_sentence_count: int = 0
    intro: IntroSignals = field(default_factory=IntroSignals)

    @property
    def heading_count(self) -> int:
        return len(self.headings)


def _lines(body: str) -> List[str]:
    return (body or "").split("\n")


def extract_headings(body: str) -> List[str]:
    """Heading texts (level 2 and deeper) without the ``#`` marks."""
    return [re.sub(r"^##+\s+", "", line).strip() for line in HEADING_LINE_REGEX.findall(body or "")]


def count_headings(body: str) -> int:
    return len(HEADING_LINE_REGEX.findall(body or ""))


def faq_signals(body: str) -> FaqSignals:
    lines = [line.strip() for line in _lines(body)]
    return FaqSignals(
        has_heading=any(FAQ_HEADING_LINE_REGEX.match(line) for line in lines),
        heading_count=len(FAQ_HEADING_PREFIX_REGEX.findall(body or "")),
        question_count=sum(1 for line in lines if FAQ_QUESTION_LINE_REGEX.match(line)),
        answer_count=sum(1 for line in lines if FAQ_ANSWER_LINE_REGEX.match(line)),
    )


def count_bullets(body: str) -> int:
    """Bullet and numbered list items."""
    return sum(1 for line in _lines(body) if BULLET_LINE_REGEX.match(line.strip()))


def detect_table(body: str) -> bool:
    """A markdown table needs at least one row and a separator row."""
    text = "\n".join(line.strip() for line in _lines(body))
    return bool(TABLE_ROW_REGEX.search(text)) and bool(TABLE_SEPARATOR_REGEX.search(text))


def is_evidence_sentence(line: str) -> bool:
    """Authority name, year token and number-with-unit in one line."""
    cleaned = URL_REGEX.sub(" ", line or "").strip()
    if not cleaned:
        return False
    return bool(
        DATA_SOURCE_REGEX.search(cleaned)
        and YEAR_REGEX.search(cleaned)
        and NUMBER_WITH_UNIT_REGEX.search(cleaned)
    )


def evidence_sentences(body: str) -> List[str]:
    return [line.strip() for line in _lines(body) if is_evidence_sentence(line)]


def citation_ready_sentences(body: str) -> List[str]:
    """
    Short, self-contained sentences an answer engine can quote.

    Sentences are split on terminal punctuation; headings, list items and
    URL-bearing fragments are skipped, and only 22..120 character sentences
    containing Japanese text count.
    """
    picked = []
    for line in _lines(body):
        for part in re.split(r"[。！？!?]", line):
            sentence = part.strip()
            if not sentence:
                continue
            if re.match(r"^#{1,6}\s+", sentence) or BULLET_LINE_REGEX.match(sentence):
                continue
            if URL_REGEX.search(sentence):
                continue
            if len(sentence) < 22 or len(sentence) > 120:
                continue
            if not JAPANESE_TEXT_REGEX.search(sentence):
                continue
            picked.append(sentence)
    return picked


def intro_signals(body: str) -> IntroSignals:
    lines = [line.strip() for line in _lines(body)]
    intro = " ".join([line for line in lines if line and not line.startswith("#")][:3])
    has_question = bool(QUESTION_MARK_REGEX.search(intro))
    return IntroSignals(
        text=intro,
        has_hook=bool(INTRO_HOOK_REGEX.search(intro)) or has_question,
        answer_first=bool(INTRO_ANSWER_REGEX.search(intro)) or has_question or len(intro) >= 40,
    )


def has_definition(body: str) -> bool:
    return bool(DEFINITION_REGEX.search(body or ""))


def has_data_citation(body: str) -> bool:
    return bool(DATA_CITATION_REGEX.search(body or "")) and bool(YEAR_REGEX.search(body or ""))


def contains_keyword(text: str, keyword: str) -> bool:
    """Keyword containment after search normalization."""
    normalized_keyword = normalize_for_search(keyword)
    return bool(normalized_keyword) and normalized_keyword in normalize_for_search(text)


def infer_primary_keyword(title: str) -> str:
    """Best keyword guess from a title: the first Japanese-looking segment."""
    cleaned = re.sub(r"[【】\[\]「」『』]", " ", title or "")
    segments = [item.strip() for item in re.split(r"[|｜:：\-―—]", cleaned) if item.strip()]
    if not segments:
        return ""
    for segment in segments:
        if JAPANESE_TEXT_REGEX.search(segment):
            return segment
    return segments[0]


def analyze_structure(body: str) -> StructureSignals:
    """Run every detector over ``body``."""
    return StructureSignals(
        headings=extract_headings(body),
        faq=faq_signals(body),
        bullet_count=count_bullets(body),
        has_table=detect_table(body),
        has_definition=has_definition(body),
        has_data_citation=has_data_citation(body),
        evidence_sentence_count=len(evidence_sentences(body)),
        citation_ready_sentence_count=len(citation_ready_sentences(body)),
        intro=intro_signals(body),
    )
