from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from supportbot.core.config import settings
from supportbot.core.exceptions import EmptyKnowledgeBaseError, ExternalCallbackError
from supportbot.core.logging import get_logger
from supportbot.schemas.knowledge import KBCard
from supportbot.services.support.callbacks import call_with_timeout
from supportbot.services.support.contracts import ClassifyIntentFn, IntentCandidate
from supportbot.services.support.disambiguation import resolve_clarify_choice
from supportbot.services.support.normalizer import (
    STOPWORDS,
    canonical_token,
    normalize,
    normalize_plain,
    words,
)
from supportbot.services.support.scorer import score_card

logger = get_logger(__name__)

GENERIC_FALLBACK_ID = "fallback-no-answer"

# Topic sniffing over normalized tokens, checked in order.
FALLBACK_TOPIC_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    (
        "fallback-fiscal-unclear",
        re.compile(r"fiscal|182|347|aeat|hisenda|hacienda|certificat|certificado|model|modelo"),
    ),
    (
        "fallback-sepa-unclear",
        re.compile(r"sepa|pain|pain008|pain001|domiciliacio|xml|banc|banco"),
    ),
    (
        "fallback-remittances-unclear",
        re.compile(r"remesa|remesas|quota|quotes|cuotas|dividir|processar|procesar|desfer|deshacer"),
    ),
    (
        "fallback-danger-unclear",
        re.compile(r"esborrar|borrar|eliminar|perill|peligro|irreversible|superadmin"),
    ),
)

# Same table seen from the wizard / analytics side: topical domain of a question.
_DOMAIN_BY_FALLBACK = {
    "fallback-fiscal-unclear": "fiscal",
    "fallback-sepa-unclear": "sepa",
    "fallback-remittances-unclear": "remittances",
    "fallback-danger-unclear": "danger",
}

_DOMAIN_HINTS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("projects", re.compile(r"projecte|imputar|subvencio|subvencion|justificacio")),
    ("documents", re.compile(r"factura|nomina|adjuntar|justificant|justificante|document")),
    ("donors", re.compile(r"donant|donante|soci|donatiu")),
    ("transactions", re.compile(r"moviment|movimiento|transferencia|extracte|extracto|saldo")),
    ("config", re.compile(r"logo|logotip|configuracio|configuracion|organitzacio|organizacion|entitat|entidad")),
)


@dataclass(frozen=True)
class ScoredCard:
    card: KBCard
    score: int


@dataclass(frozen=True)
class RetrievalResult:
    card: KBCard
    mode: str
    confidence: str = "low"
    clarify_options: Tuple[KBCard, ...] = ()
    best_card_id: Optional[str] = None
    best_score: Optional[int] = None
    second_card_id: Optional[str] = None
    second_score: Optional[int] = None
    top_candidates: Tuple[ScoredCard, ...] = ()


@dataclass(frozen=True)
class RetrievalResolution:
    result: RetrievalResult
    selected_by_clarify: bool = False
    used_ai_intent: bool = False


def is_retrievable_card(card: KBCard) -> bool:
    if card.is_fallback:
        return False
    # Corrupted guide cards (import mistakes) are never ranked.
    if card.is_guide_card and not card.guide_id:
        return False
    return True


def detect_fallback_id(tokens: Sequence[str]) -> str:
    joined = " ".join(tokens)
    for fallback_id, pattern in FALLBACK_TOPIC_PATTERNS:
        if pattern.search(joined):
            return fallback_id
    return GENERIC_FALLBACK_ID


def find_generic_fallback(cards: Sequence[KBCard]) -> Optional[KBCard]:
    for card in cards:
        if card.id == GENERIC_FALLBACK_ID:
            return card
    return None


def classify_confidence(best_score: int, second_score: int) -> str:
    gap = best_score - second_score
    if best_score >= settings.RETRIEVAL_HIGH_CONFIDENCE_SCORE and gap >= settings.RETRIEVAL_HIGH_CONFIDENCE_GAP:
        return "high"
    if best_score >= settings.RETRIEVAL_DIRECT_MATCH_THRESHOLD and gap >= settings.RETRIEVAL_MEDIUM_CONFIDENCE_GAP:
        return "medium"
    return "low"


def is_confidence_sufficient(confidence: Optional[str]) -> bool:
    return confidence in {"high", "medium"}


def rank_cards(message: str, lang: str, cards: Sequence[KBCard]) -> List[ScoredCard]:
    tokens = normalize(message)
    normalized_message = normalize_plain(message)
    ranked = [
        ScoredCard(card=card, score=score_card(tokens, normalized_message, card, lang))
        for card in cards
        if is_retrievable_card(card)
    ]
    # Stable: equal scores keep KB order, which keeps retrieval deterministic.
    ranked.sort(key=lambda item: item.score, reverse=True)
    return ranked


def retrieve_card(message: str, lang: str, cards: Sequence[KBCard]) -> RetrievalResult:
    if not cards:
        raise EmptyKnowledgeBaseError()

    ranked = rank_cards(message, lang, cards)
    best = ranked[0] if ranked else None
    second = ranked[1] if len(ranked) > 1 else None
    telemetry = dict(
        best_card_id=best.card.id if best else None,
        best_score=best.score if best else None,
        second_card_id=second.card.id if second else None,
        second_score=second.score if second else None,
        top_candidates=tuple(ranked[:3]),
    )

    if best and best.score >= settings.RETRIEVAL_DIRECT_MATCH_THRESHOLD:
        return RetrievalResult(
            card=best.card,
            mode="card",
            confidence=classify_confidence(best.score, second.score if second else 0),
            **telemetry,
        )

    if (
        best
        and second
        and best.score >= settings.RETRIEVAL_CLARIFY_MIN_SCORE
        and second.score >= settings.RETRIEVAL_CLARIFY_MIN_SCORE
        and best.score - second.score <= settings.RETRIEVAL_CLARIFY_MAX_GAP
    ):
        holder = find_generic_fallback(cards) or _topic_fallback(normalize(message), cards)
        return RetrievalResult(
            card=holder,
            mode="fallback",
            confidence="low",
            clarify_options=(best.card, second.card),
            **telemetry,
        )

    return RetrievalResult(
        card=_topic_fallback(normalize(message), cards),
        mode="fallback",
        confidence="low",
        **telemetry,
    )


def _topic_fallback(tokens: Sequence[str], cards: Sequence[KBCard]) -> KBCard:
    by_id = {card.id: card for card in cards}
    fallback_id = detect_fallback_id(tokens)
    return by_id.get(fallback_id) or find_generic_fallback(cards) or cards[0]


def pick_top_disambiguation_options(result: Optional[RetrievalResult], max_options: int = 3) -> List[KBCard]:
    """Operational questions with weak confidence get up to `max_options` choices."""
    if result is None:
        return []
    limit = min(max_options, settings.CLARIFY_MAX_OPTIONS)
    options: List[KBCard] = []
    for item in result.top_candidates:
        if item.score < settings.RETRIEVAL_OPERATIONAL_CLARIFY_MIN_SCORE:
            continue
        if any(existing.id == item.card.id for existing in options):
            continue
        options.append(item.card)
        if len(options) >= limit:
            break
    return options


async def resolve_retrieval(
    *,
    message: str,
    lang: str,
    cards: Sequence[KBCard],
    clarify_option_ids: Sequence[str],
    use_intent_classifier: bool,
    classify_intent: Optional[ClassifyIntentFn] = None,
    timeout_seconds: Optional[float] = None,
) -> RetrievalResolution:
    clarified = resolve_clarify_choice(message, clarify_option_ids, cards)
    if clarified is not None:
        return RetrievalResolution(
            result=RetrievalResult(
                card=clarified,
                mode="card",
                confidence="high",
                best_card_id=clarified.id,
            ),
            selected_by_clarify=True,
        )

    result = retrieve_card(message, lang, cards)

    if not use_intent_classifier or classify_intent is None:
        return RetrievalResolution(result=result)
    if result.clarify_options or is_confidence_sufficient(result.confidence):
        return RetrievalResolution(result=result)

    retrievable = [card for card in cards if is_retrievable_card(card)]
    candidates = [
        IntentCandidate(card_id=card.id, title=card.localized_title(lang), domain=card.domain)
        for card in retrievable
    ]
    try:
        chosen_id = await call_with_timeout(
            "classify_intent",
            lambda: classify_intent(message, lang, candidates),
            timeout_seconds,
        )
    except ExternalCallbackError as exc:
        logger.warning(f"intent classifier failed, keeping deterministic result: {exc}")
        return RetrievalResolution(result=result)

    by_id: Dict[str, KBCard] = {card.id: card for card in retrievable}
    chosen = by_id.get(str(chosen_id or "").strip())
    if chosen is None:
        if chosen_id:
            logger.info(f"intent classifier returned unknown card id {chosen_id!r}")
        return RetrievalResolution(result=result)

    return RetrievalResolution(
        result=replace(result, card=chosen, mode="card", confidence="medium", clarify_options=()),
        used_ai_intent=True,
    )


def infer_question_domain(message: str) -> str:
    """Topical domain of a free-text question (`danger` for destructive actions)."""
    tokens = normalize(message)
    fallback_id = detect_fallback_id(tokens)
    if fallback_id in _DOMAIN_BY_FALLBACK:
        return _DOMAIN_BY_FALLBACK[fallback_id]
    joined = " ".join(tokens)
    for domain, pattern in _DOMAIN_HINTS:
        if pattern.search(joined):
            return domain
    return "general"


def suggest_keywords_from_message(message: str, limit: int = 6) -> List[str]:
    """Canonical content words of `message`, in order of appearance."""
    keywords: Dict[str, None] = {}
    for word in words(message):
        if len(word) <= 2 or word in STOPWORDS:
            continue
        keywords[canonical_token(word)] = None
        if len(keywords) >= limit:
            break
    return list(keywords)
