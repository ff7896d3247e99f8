"""
Utility functions for ContentGate.

Text normalization, URL helpers and the deterministic variant picker shared by
the validators, scorers and repair transforms.
"""

import re
import unicodedata
from typing import List, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode


URL_REGEX = re.compile(r"https?://[^\s)）]+", re.IGNORECASE)
URL_TRAILING_PUNCT_REGEX = re.compile(r"[、。！？,.]+$")
SHORTENER_DOMAIN_REGEX = re.compile(r"^(?:bit\.ly|t\.co|tinyurl\.com|is\.gd|goo\.gl|ow\.ly)$", re.IGNORECASE)
NOTE_URL_PATH_REGEX = re.compile(r"^/([A-Za-z0-9_]+)/n/([A-Za-z0-9]+)/?$")


def stable_hash(seed: str) -> int:
    """
    Deterministic 32-bit rolling hash (multiplier 31) of a semantic key.

    Used instead of a PRNG so identical input always produces identical
    output.
    """
    value = 0
    for char in seed or "":
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def pick_stable_variant(values: Sequence[str], seed: str) -> str:
    """Pick one of ``values`` from the stable hash of ``seed``."""
    if not values:
        return ""
    return values[abs(stable_hash(seed)) % len(values)]


def compact_length(text: str) -> int:
    """Length of ``text`` with every whitespace character removed."""
    return len(re.sub(r"\s+", "", text or ""))


def collapse_blank_lines(text: str) -> str:
    """Squash runs of blank lines to a single blank line and trim."""
    return re.sub(r"\n{3,}", "\n\n", text or "").strip()


def split_paragraphs(text: str) -> List[str]:
    return [item.strip() for item in re.split(r"\n{2,}", text or "") if item.strip()]


def normalize_comparable_text(text: str) -> str:
    """
    Normalize text for equality and similarity comparisons.

    Strips heading marks, a leading ``タイトル:`` label, brackets, quotes,
    punctuation and whitespace, then lowercases.
    """
    normalized = unicodedata.normalize("NFKC", text or "")
    normalized = re.sub(r"^#{1,6}\s*", "", normalized)
    normalized = re.sub(r"^タイトル[:：]\s*", "", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"[【】\[\]「」『』\"'`]", "", normalized)
    normalized = re.sub(r"[()（）,，、。.!！?？:：;；・\-—―]", "", normalized)
    normalized = re.sub(r"\s+", "", normalized)
    return normalized.strip().lower()


def normalize_for_search(text: str) -> str:
    """Normalize text for keyword containment checks."""
    normalized = unicodedata.normalize("NFKC", text or "").lower()
    normalized = re.sub(r"\s+", "", normalized)
    return re.sub(r"[「」『』【】\[\]（）()、。・,:：!?！？]", "", normalized)


def normalize_topic_label(topic_label: str) -> str:
    """Remove URLs and brackets from a topic label used in generated sentences."""
    cleaned = URL_REGEX.sub("", topic_label or "")
    cleaned = re.sub(r"[【】\[\]]", "", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


# URL helpers

def extract_urls(text: str) -> List[str]:
    """Extract URLs, dropping trailing Japanese or ASCII sentence punctuation."""
    if not text:
        return []
    return [URL_TRAILING_PUNCT_REGEX.sub("", match) for match in URL_REGEX.findall(text)]


def has_inline_url(text: str) -> bool:
    return bool(URL_REGEX.search(text or ""))


def normalize_url_for_compare(url: str) -> str:
    """
    Normalize a URL to lowercase origin plus path without trailing slash.

    The query string and fragment are ignored so tracked and untracked
    variants of the same page compare equal.
    """
    trimmed = (url or "").strip()
    if not trimmed:
        return ""
    parts = urlsplit(trimmed)
    if not parts.scheme or not parts.netloc:
        return re.sub(r"/+$", "", re.sub(r"[?#].*$", "", trimmed)).lower()
    path = "" if parts.path == "/" else re.sub(r"/+$", "", parts.path)
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}{path}"


def urls_match(candidate: str, target: str) -> bool:
    normalized = normalize_url_for_compare(candidate)
    return bool(normalized) and normalized == normalize_url_for_compare(target)


def url_hostname(url: str) -> str:
    try:
        host = urlsplit((url or "").strip()).hostname or ""
    except ValueError:
        return ""
    return re.sub(r"^www\.", "", host, flags=re.IGNORECASE).lower()


def is_shortener_url(url: str) -> bool:
    return bool(SHORTENER_DOMAIN_REGEX.match(url_hostname(url)))


def build_tracked_url(url: str, platform: str) -> str:
    """Attach the platform UTM parameters to the primary URL."""
    parts = urlsplit((url or "").strip())
    if not parts.scheme or not parts.netloc:
        return (url or "").strip()
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update({
        "utm_source": platform,
        "utm_medium": "blog",
        "utm_campaign": "daily_content",
    })
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def normalize_note_account(raw: str) -> str:
    return re.sub(r"[^a-z0-9_]", "", (raw or "").strip().lower())


def normalize_note_article_url(url: str) -> str:
    """Return ``https://note.com/{account}/n/{id}`` or an empty string."""
    trimmed = (url or "").strip()
    if not trimmed:
        return ""
    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return ""
    if parts.scheme not in ("http", "https"):
        return ""
    if url_hostname(trimmed) != "note.com":
        return ""
    match = NOTE_URL_PATH_REGEX.match(parts.path)
    if not match:
        return ""
    account = normalize_note_account(match.group(1))
    article_id = match.group(2).lower()
    if not account or not article_id:
        return ""
    return f"https://note.com/{account}/n/{article_id}"


def extract_note_account(url: str) -> str:
    normalized = normalize_note_article_url(url)
    if not normalized:
        return ""
    return normalized.split("/")[3]


def is_note_url_allowed_by_accounts(url: str, allowed_accounts: Optional[Sequence[str]]) -> bool:
    """An empty allow-list accepts any well-formed note article URL."""
    account = extract_note_account(url)
    if not account:
        return False
    allow_set = {normalize_note_account(item) for item in allowed_accounts or [] if normalize_note_account(item)}
    return not allow_set or account in allow_set


def extract_url_slug(url: str) -> str:
    """Last path segment of ``url``, lowercased."""
    path = re.sub(r"^https?://[^/]+", "", url or "", flags=re.IGNORECASE)
    path = re.split(r"[?#]", path)[0]
    parts = [part for part in path.split("/") if part]
    return parts[-1].lower() if parts else ""


def has_url_or_slug_artifacts(text: str, primary_url: str) -> bool:
    """Detect raw URLs, site paths or the primary URL's English slug in prose."""
    if not text:
        return False
    if URL_REGEX.search(text):
        return True
    if re.search(r"/(?:tools|takken)/[a-z0-9_%/-]+", text, re.IGNORECASE):
        return True
    slug = extract_url_slug(primary_url)
    if not slug or not re.search(r"[a-z]", slug):
        return False
    return bool(re.search(rf"\b{re.escape(slug)}\b", text.lower()))
