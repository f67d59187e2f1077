"""Top-level support answer flow.

Order of decisions: intent type, clarify-choice resolution, deterministic
retrieval (optionally assisted by an external intent classifier), then one of
clarify prompt, operational clarify, or rendered answer. Every fault degrades
to the emergency fallback; nothing raises to the caller.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from supportbot.core.config import settings
from supportbot.core.logging import get_logger
from supportbot.schemas.knowledge import KBCard
from supportbot.schemas.support import (
    BotResponse,
    OrchestratorMeta,
    OrchestratorResult,
)
from supportbot.services.support.contracts import ClassifyIntentFn, GuideContentFn, ReformatFn
from supportbot.services.support.disambiguation import (
    CLARIFY_CARD_ID,
    build_clarify_answer,
    build_clarify_options_payload,
)
from supportbot.services.support.policy import (
    is_operational_intent,
    normalize_ui_paths_against_catalog,
    safe_fallback_paths,
)
from supportbot.services.support.renderer import build_emergency_fallback, render_answer
from supportbot.services.support.retrieval import (
    GENERIC_FALLBACK_ID,
    RetrievalResult,
    is_confidence_sufficient,
    pick_top_disambiguation_options,
    resolve_retrieval,
)
from supportbot.services.support.small_talk import detect_small_talk_response

logger = get_logger(__name__)

SUPPORTED_LANGUAGES = ("ca", "es")


def resolve_language(language: Optional[str]) -> str:
    """Fold a locale tag (`es-ES`, `CA`) onto a supported KB language."""
    primary = (language or "").strip().lower().replace("_", "-").split("-")[0]
    if primary in SUPPORTED_LANGUAGES:
        return primary
    default = (settings.SUPPORT_DEFAULT_LANGUAGE or "ca").lower()
    return default if default in SUPPORTED_LANGUAGES else "ca"


def _find_fallback_card(cards: Sequence[KBCard]) -> Optional[KBCard]:
    for card in cards:
        if card.id == GENERIC_FALLBACK_ID:
            return card
    for card in cards:
        if card.is_fallback:
            return card
    return None


def _meta(
    intent_type: str,
    result: Optional[RetrievalResult],
    selected_card_id: str,
    *,
    used_clarification: bool = False,
    trusted_operational_card: bool = False,
    used_ai_intent: bool = False,
) -> OrchestratorMeta:
    return OrchestratorMeta(
        intent_type=intent_type,
        retrieval_confidence=result.confidence if result else None,
        best_card_id=result.best_card_id if result else None,
        best_score=result.best_score if result else None,
        second_card_id=result.second_card_id if result else None,
        second_score=result.second_score if result else None,
        selected_card_id=selected_card_id,
        used_clarification=used_clarification,
        trusted_operational_card=trusted_operational_card,
        used_ai_intent=used_ai_intent,
    )


def _emergency_result(lang: str, intent_type: str, result: Optional[RetrievalResult] = None) -> OrchestratorResult:
    emergency = build_emergency_fallback(lang)
    return OrchestratorResult(
        response=emergency,
        meta=_meta(intent_type, result, emergency.card_id),
        selected_card=None,
        resolved_language=lang,
    )


def _clarify_result(
    lang: str,
    intent_type: str,
    options: List[KBCard],
    result: Optional[RetrievalResult],
) -> OrchestratorResult:
    bounded = options[: settings.CLARIFY_MAX_OPTIONS]
    paths: List[str] = []
    for option in bounded:
        paths.extend(option.ui_paths)
    clarify_paths = normalize_ui_paths_against_catalog(paths)
    response = BotResponse(
        ok=True,
        mode="fallback",
        card_id=CLARIFY_CARD_ID,
        answer=build_clarify_answer(lang, bounded),
        guide_id=None,
        ui_paths=clarify_paths or safe_fallback_paths(lang),
        clarify_options=build_clarify_options_payload(lang, bounded),
    )
    return OrchestratorResult(
        response=response,
        meta=_meta(intent_type, result, CLARIFY_CARD_ID, used_clarification=True),
        selected_card=None,
        resolved_language=lang,
    )


async def orchestrate(
    message: str,
    language: Optional[str],
    cards: Sequence[KBCard],
    clarify_option_ids: Sequence[str] = (),
    tone: str = "neutral",
    allow_ai_intent: bool = False,
    allow_ai_reformat: bool = False,
    classify_intent: Optional[ClassifyIntentFn] = None,
    reformat: Optional[ReformatFn] = None,
    guide_content: Optional[GuideContentFn] = None,
    callback_timeout_seconds: Optional[float] = None,
    allow_small_talk: bool = False,
) -> OrchestratorResult:
    lang = resolve_language(language)
    message = message or ""
    intent_type = "operational" if is_operational_intent(message) else "informational"
    try:
        return await _orchestrate(
            message=message,
            lang=lang,
            intent_type=intent_type,
            cards=list(cards or []),
            clarify_option_ids=list(clarify_option_ids or []),
            tone=tone,
            allow_ai_intent=allow_ai_intent,
            allow_ai_reformat=allow_ai_reformat,
            classify_intent=classify_intent,
            reformat=reformat,
            guide_content=guide_content,
            callback_timeout_seconds=callback_timeout_seconds,
            allow_small_talk=allow_small_talk,
        )
    except Exception as e:
        logger.exception(f"support orchestrator failed, serving emergency fallback: {e}")
        return _emergency_result(lang, intent_type)


async def _orchestrate(
    *,
    message: str,
    lang: str,
    intent_type: str,
    cards: List[KBCard],
    clarify_option_ids: List[str],
    tone: str,
    allow_ai_intent: bool,
    allow_ai_reformat: bool,
    classify_intent: Optional[ClassifyIntentFn],
    reformat: Optional[ReformatFn],
    guide_content: Optional[GuideContentFn],
    callback_timeout_seconds: Optional[float],
    allow_small_talk: bool,
) -> OrchestratorResult:
    if allow_small_talk:
        small_talk = detect_small_talk_response(message, lang)
        if small_talk is not None:
            return OrchestratorResult(
                response=small_talk,
                meta=_meta("informational", None, small_talk.card_id),
                selected_card=None,
                resolved_language=lang,
            )

    if not cards:
        logger.warning("support orchestrator called with an empty card set")
        return _emergency_result(lang, intent_type)

    result: Optional[RetrievalResult] = None
    selected_by_clarify = False
    used_ai_intent = False
    try:
        resolution = await resolve_retrieval(
            message=message,
            lang=lang,
            cards=cards,
            clarify_option_ids=clarify_option_ids,
            use_intent_classifier=allow_ai_intent,
            classify_intent=classify_intent,
            timeout_seconds=callback_timeout_seconds,
        )
        result = resolution.result
        selected_by_clarify = resolution.selected_by_clarify
        used_ai_intent = resolution.used_ai_intent
    except Exception as e:
        logger.error(f"support retrieval failed: {e}")

    if result is not None and result.clarify_options:
        return _clarify_result(lang, intent_type, list(result.clarify_options), result)

    selected = result.card if result is not None else _find_fallback_card(cards)
    if selected is None:
        return _emergency_result(lang, intent_type, result)

    # Weak operational matches never render free text: offer choices instead.
    if intent_type == "operational" and not is_confidence_sufficient(result.confidence if result else None):
        options = pick_top_disambiguation_options(result)
        if len(options) >= 2:
            return _clarify_result(lang, intent_type, options, result)

    mode = result.mode if result is not None else "fallback"
    rendered = await render_answer(
        message=message,
        lang=lang,
        card=selected,
        mode=mode,
        intent_type=intent_type,
        tone=tone,
        allow_reformat=allow_ai_reformat,
        reformat=reformat,
        guide_content=guide_content,
        timeout_seconds=callback_timeout_seconds,
    )

    response = BotResponse(
        ok=True,
        mode=mode,
        card_id=rendered.card.id,
        answer=rendered.answer,
        guide_id=rendered.card.guide_id,
        ui_paths=rendered.ui_paths,
    )
    return OrchestratorResult(
        response=response,
        meta=_meta(
            intent_type,
            result,
            rendered.card.id,
            used_clarification=selected_by_clarify,
            trusted_operational_card=rendered.trusted_operational_card,
            used_ai_intent=used_ai_intent,
        ),
        selected_card=rendered.card,
        resolved_language=lang,
    )
