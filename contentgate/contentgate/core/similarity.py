"""Minimal n-gram similarity utilities for near-duplicate detection."""

from typing import Set, Tuple

from .utils import URL_REGEX, normalize_comparable_text


NEAR_DUPLICATE_THRESHOLD = 0.92
CONTAINMENT_MIN_LENGTH = 50
CONTAINMENT_RATIO_FLOOR = 0.9


def bigram_set(text: str) -> Set[str]:
    """
    Character bigrams of text.

    Args:
        text: Input text (already normalized by the caller)

    Returns:
        Set of two-character substrings; a single character yields itself
    """
    if not text:
        return set()
    if len(text) == 1:
        return {text}
    return {text[i:i + 2] for i in range(len(text) - 1)}


def bigram_jaccard(a: str, b: str) -> float:
    """Jaccard similarity of the character bigram sets of a and b."""
    set_a = bigram_set(a)
    set_b = bigram_set(b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def _comparable_pair(a: str, b: str, ignore_urls: bool) -> Tuple[str, str]:
    if ignore_urls:
        a = URL_REGEX.sub(" ", a or "")
        b = URL_REGEX.sub(" ", b or "")
    return normalize_comparable_text(a), normalize_comparable_text(b)


def _containment_ratio(norm_a: str, norm_b: str) -> float:
    """Length ratio when one long text contains the other, else 0."""
    min_len = min(len(norm_a), len(norm_b))
    max_len = max(len(norm_a), len(norm_b))
    if min_len >= CONTAINMENT_MIN_LENGTH and (norm_a in norm_b or norm_b in norm_a):
        return min_len / max_len
    return 0.0


def paragraph_similarity(a: str, b: str, ignore_urls: bool = True) -> float:
    """
    Similarity of two paragraphs in [0, 1].

    Both sides are compared in their normalized comparable form. Equal texts
    score 1. Long texts (at least 50 chars) where one contains the other
    score the length ratio. Everything else falls back to bigram Jaccard.

    Args:
        a: First paragraph
        b: Second paragraph
        ignore_urls: Drop inline URLs before comparing

    Returns:
        Similarity score
    """
    norm_a, norm_b = _comparable_pair(a, b, ignore_urls)
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0
    ratio = _containment_ratio(norm_a, norm_b)
    if ratio:
        return ratio
    return bigram_jaccard(norm_a, norm_b)


def is_near_duplicate(a: str, b: str, threshold: float = NEAR_DUPLICATE_THRESHOLD,
                      ignore_urls: bool = True) -> bool:
    """
    Check whether two paragraphs are near-duplicates.

    Bigram Jaccard at or above ``threshold`` counts, and so does containment
    of long texts with a length ratio of at least 0.9.
    """
    norm_a, norm_b = _comparable_pair(a, b, ignore_urls)
    if not norm_a or not norm_b:
        return False
    if norm_a == norm_b:
        return True
    if _containment_ratio(norm_a, norm_b) >= CONTAINMENT_RATIO_FLOOR:
        return True
    return bigram_jaccard(norm_a, norm_b) >= threshold
