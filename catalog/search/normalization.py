"""
Term normalization for fragrance queries.

Canonicalizes raw query strings and expands them through the abbreviation,
nickname and misspelling tables in lexicon.py. All functions are pure.

Table matching is bidirectional substring containment on normalized text:
a table key matches when the query contains it or it contains the query.
"""

import logging
import re
from typing import Iterable, List, Optional, Set

from rapidfuzz.distance import Levenshtein

from catalog.search.lexicon import (
    BRAND_ABBREVIATIONS,
    PRODUCT_NICKNAMES,
    TYPO_CORRECTIONS,
)

logger = logging.getLogger(__name__)

# Candidates below this similarity are not offered as typo corrections
TYPO_SIMILARITY_THRESHOLD = 0.8
# Candidates further than this many edits away are not offered either
TYPO_MAX_DISTANCE = 2

_APOSTROPHES = re.compile(r"['`‘’]")
_SEPARATORS = re.compile(r"[.\-_]")
_WHITESPACE = re.compile(r"\s+")


def normalize(raw: Optional[str]) -> str:
    """
    Canonicalize a raw query string.

    Lowercases, strips apostrophes and backticks, spells out "&" as "and",
    turns dots, hyphens and underscores into spaces and collapses whitespace.
    normalize(normalize(x)) == normalize(x) for every input.

    Args:
        raw: Raw user input, may be None or empty

    Returns:
        Normalized string, "" for empty input
    """
    if not raw:
        return ""

    text = raw.lower().strip()
    text = _APOSTROPHES.sub("", text)
    text = text.replace("&", " and ")
    text = _SEPARATORS.sub(" ", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance (insert, delete, substitute)."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Edit-distance similarity in [0, 1]; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - edit_distance(a, b) / longest


def _contains_either_way(query: str, key: str) -> bool:
    if not query or not key:
        return False
    return key in query or query in key


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


# Normalized once at import; tables are constants
_BRAND_KEYS = [(normalize(key), value) for key, value in BRAND_ABBREVIATIONS.items()]
_NICKNAME_KEYS = [(normalize(key), value) for key, value in PRODUCT_NICKNAMES.items()]


def match_brand_abbreviations(normalized: str) -> List[str]:
    """Canonical brand names whose abbreviation matches, in table order."""
    return _dedupe(
        value for key, value in _BRAND_KEYS if _contains_either_way(normalized, key)
    )


def match_nicknames(normalized: str) -> List[str]:
    """Canonical product names whose nickname matches, in table order."""
    return _dedupe(
        value for key, value in _NICKNAME_KEYS if _contains_either_way(normalized, key)
    )


def expand_abbreviations(normalized: str) -> Set[str]:
    """
    Expand a normalized query through the brand and nickname tables.

    Args:
        normalized: Output of normalize()

    Returns:
        Set of canonical brand and product names, empty when nothing matches
    """
    return set(match_brand_abbreviations(normalized)) | set(match_nicknames(normalized))


def default_vocabulary() -> List[str]:
    """Every table key and value, normalized, in table order."""
    terms = []
    for table in (BRAND_ABBREVIATIONS, PRODUCT_NICKNAMES):
        for key, value in table.items():
            terms.append(normalize(key))
            terms.append(normalize(value))
    terms.extend(normalize(value) for value in TYPO_CORRECTIONS.values())
    return _dedupe(terms)


def _is_near_miss(word: str, term: str) -> bool:
    if not word or not term or word == term:
        return False
    distance = edit_distance(word, term)
    if distance > TYPO_MAX_DISTANCE:
        return False
    return similarity(word, term) >= TYPO_SIMILARITY_THRESHOLD


def typo_candidates(normalized: str, vocabulary: Optional[Iterable[str]] = None) -> List[str]:
    """
    Ordered typo corrections for a normalized query.

    Direct table entries come first (whole-word replacement), then vocabulary
    terms close to the whole query, then per-token replacements.
    """
    if not normalized:
        return []

    if vocabulary is None:
        terms = default_vocabulary()
    else:
        terms = _dedupe(normalize(term) for term in vocabulary)

    tokens = normalized.split(" ")
    candidates = []

    for typo, correction in TYPO_CORRECTIONS.items():
        if typo in tokens:
            candidates.append(" ".join(correction if token == typo else token for token in tokens))

    for term in terms:
        if _is_near_miss(normalized, term):
            candidates.append(term)

    if len(tokens) > 1:
        single_words = [term for term in terms if " " not in term]
        for index, token in enumerate(tokens):
            for term in single_words:
                if _is_near_miss(token, term):
                    replaced = tokens[:index] + [term] + tokens[index + 1:]
                    candidates.append(" ".join(replaced))

    return [candidate for candidate in _dedupe(candidates) if candidate != normalized]


def correct_typos(normalized: str, vocabulary: Optional[Iterable[str]] = None) -> Set[str]:
    """
    Propose corrections for a possibly misspelled normalized query.

    Never returns the input itself (edit distance 0).

    Args:
        normalized: Output of normalize()
        vocabulary: Known terms to compare against; defaults to the
            abbreviation and nickname tables

    Returns:
        Set of corrected query strings
    """
    return set(typo_candidates(normalized, vocabulary))
