from __future__ import annotations

from typing import Iterable, List, Set

from rapidfuzz.distance import Levenshtein

from supportbot.schemas.knowledge import KBCard
from supportbot.services.support.normalizer import (
    canonical_phrase,
    normalize,
    normalize_plain,
    searchable_phrase,
)

# Relative ranking weights. Not a probability; retrieval thresholds depend on them.
INTENT_PHRASE_WEIGHT = 90
KEYWORD_PHRASE_WEIGHT = 30
TITLE_PHRASE_WEIGHT = 40
ERROR_KEY_PHRASE_WEIGHT = 20
DOMAIN_TOKEN_WEIGHT = 6
INTENT_TOKEN_WEIGHT = 8
INTENT_FUZZY_WEIGHT = 5
KEYWORD_TOKEN_WEIGHT = 8
KEYWORD_FUZZY_WEIGHT = 4
TITLE_TOKEN_WEIGHT = 4
ERROR_KEY_TOKEN_WEIGHT = 3
COVERAGE_WEIGHT = 20
TRIGRAM_WEIGHT = 25

FUZZY_MIN_TOKEN_LENGTH = 4


def levenshtein_distance(a: str, b: str, max_distance: int = 1) -> int:
    """Edit distance, capped at `max_distance + 1` once exceeded."""
    return Levenshtein.distance(a, b, score_cutoff=max_distance)


def is_approx_token_match(token: str, candidate: str) -> bool:
    if token == candidate:
        return True
    if len(token) < FUZZY_MIN_TOKEN_LENGTH or len(candidate) < FUZZY_MIN_TOKEN_LENGTH:
        return False
    if abs(len(token) - len(candidate)) > 1:
        return False
    return Levenshtein.distance(token, candidate, score_cutoff=1) <= 1


def trigrams(text: str) -> Set[str]:
    if not text:
        return set()
    if len(text) < 3:
        return {text}
    return {text[i : i + 3] for i in range(len(text) - 2)}


def trigram_jaccard(a: str, b: str) -> float:
    left = trigrams(a)
    right = trigrams(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def _token_set(phrases: Iterable[str]) -> List[str]:
    seen: dict = {}
    for phrase in phrases:
        for token in normalize(phrase):
            seen[token] = None
    return list(seen)


def _contains_phrase(phrase: str, message_text: str, message_canonical: str) -> bool:
    if not phrase:
        return False
    return phrase in message_text or canonical_phrase(phrase) in message_canonical


def score_card(tokens: List[str], normalized_message: str, card: KBCard, lang: str) -> int:
    """Additive relevance of `card` for an already normalized question."""
    message_text = searchable_phrase(normalized_message)
    message_canonical = canonical_phrase(normalized_message)

    intents = [searchable_phrase(i) for i in card.intents.get(lang) or []]
    intents = [i for i in intents if i]
    title = searchable_phrase(card.title.get(lang) or "")
    keywords = [searchable_phrase(k) for k in card.keywords]
    keywords = [k for k in keywords if k]
    error_key = searchable_phrase((card.error_key or "").replace("-", " ").replace("_", " "))
    domain = normalize_plain(card.domain)

    score = 0

    for intent in intents:
        if len(intent) > 3 and _contains_phrase(intent, message_text, message_canonical):
            score += INTENT_PHRASE_WEIGHT

    for keyword in keywords:
        if len(keyword) > 2 and _contains_phrase(keyword, message_text, message_canonical):
            score += KEYWORD_PHRASE_WEIGHT

    if title and title in message_text:
        score += TITLE_PHRASE_WEIGHT

    if error_key and error_key in message_text:
        score += ERROR_KEY_PHRASE_WEIGHT

    if domain and domain in tokens:
        score += DOMAIN_TOKEN_WEIGHT

    intent_tokens = _token_set(intents)
    keyword_tokens = _token_set(keywords)
    title_tokens = set(normalize(title))
    error_tokens = set(normalize(error_key))

    matched = 0
    for token in tokens:
        hit = False
        if token in intent_tokens:
            score += INTENT_TOKEN_WEIGHT
            hit = True
        elif any(is_approx_token_match(token, candidate) for candidate in intent_tokens):
            score += INTENT_FUZZY_WEIGHT
            hit = True

        if token in keyword_tokens:
            score += KEYWORD_TOKEN_WEIGHT
            hit = True
        elif any(is_approx_token_match(token, candidate) for candidate in keyword_tokens):
            score += KEYWORD_FUZZY_WEIGHT
            hit = True

        if token in title_tokens:
            score += TITLE_TOKEN_WEIGHT
            hit = True

        if error_tokens and token in error_tokens:
            score += ERROR_KEY_TOKEN_WEIGHT
            hit = True

        if hit:
            matched += 1

    if tokens and matched:
        score += round(COVERAGE_WEIGHT * matched / len(tokens))

    phrases = intents + ([title] if title else [])
    if message_text and phrases:
        best = max(trigram_jaccard(message_text, phrase) for phrase in phrases)
        score += round(TRIGRAM_WEIGHT * best)

    return score
