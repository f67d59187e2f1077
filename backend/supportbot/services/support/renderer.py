from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from supportbot.core.exceptions import ExternalCallbackError
from supportbot.core.logging import get_logger
from supportbot.schemas.knowledge import CardSourceKind, EngineCard, KBCard
from supportbot.schemas.support import BotResponse
from supportbot.services.support.callbacks import call_with_timeout
from supportbot.services.support.contracts import GuideContentFn, ReformatFn, ReformatInput
from supportbot.services.support.policy import (
    contains_procedural_freeform,
    enforce_non_procedural_if_untrusted,
    extract_operational_steps,
    is_trusted_operational_card,
    normalize_ui_paths_against_catalog,
    safe_fallback_paths,
)

logger = get_logger(__name__)

EMERGENCY_CARD_ID = "emergency-fallback"

_WARM_PREFIXES = ("perfecte", "entenc", "cap problema", "perfecto", "entiendo", "sin problema")

_TEXTS = {
    "ca": {
        "warm_opening": "Perfecte, anem pas a pas.",
        "no_verified_procedure": (
            "Entenc què vols fer, però ara mateix no tinc una guia amb passos verificats per a aquest cas. "
            "Si vols, t'ajudo a concretar entre 2 opcions per donar-te la ruta correcta."
        ),
        "no_exact_info": (
            "Ara mateix no he trobat informació exacta per a aquesta consulta. "
            "Pots obrir el Hub de Guies i buscar per paraula clau."
        ),
        "corrupted_guide": (
            "No he trobat una guia vàlida per a aquesta consulta. "
            "Consulta el Hub de Guies (icona ? a dalt a la dreta)."
        ),
        "emergency": (
            "Entenc el teu dubte. Ara mateix no he trobat informació exacta. "
            "Pots obrir el Hub de Guies per trobar la guia més propera."
        ),
    },
    "es": {
        "warm_opening": "Perfecto, vamos paso a paso.",
        "no_verified_procedure": (
            "Entiendo lo que quieres hacer, pero ahora mismo no tengo una guía con pasos verificados para este caso. "
            "Si quieres, te ayudo a concretar entre 2 opciones para darte la ruta correcta."
        ),
        "no_exact_info": (
            "Ahora mismo no he encontrado información exacta para esta consulta. "
            "Puedes abrir el Hub de Guías y buscar por palabra clave."
        ),
        "corrupted_guide": (
            "No he encontrado una guía válida para esta consulta. "
            "Consulta el Hub de Guías (icono ? arriba a la derecha)."
        ),
        "emergency": (
            "Entiendo tu duda. Ahora mismo no he encontrado información exacta. "
            "Puedes abrir el Hub de Guías para encontrar la guía más cercana."
        ),
    },
}


def _text(lang: str, key: str) -> str:
    return (_TEXTS.get(lang) or _TEXTS["ca"])[key]


@dataclass(frozen=True)
class RenderedAnswer:
    answer: str
    card: EngineCard
    trusted_operational_card: bool
    ui_paths: List[str]


@dataclass(frozen=True)
class _RawAnswer:
    text: str
    source: CardSourceKind


def build_ui_path_hint(card: KBCard) -> str:
    unique = list(dict.fromkeys(p.strip() for p in card.ui_paths if p and p.strip()))
    return " · ".join(unique[:2])


def with_warm_opening(answer: str, lang: str) -> str:
    trimmed = (answer or "").strip()
    if not trimmed:
        return trimmed
    if trimmed.lower().startswith(_WARM_PREFIXES):
        return trimmed
    return f"{_text(lang, 'warm_opening')}\n\n{trimmed}"


def no_card_fallback_answer(lang: str, intent_type: str) -> str:
    if intent_type == "operational":
        return _text(lang, "no_verified_procedure")
    return _text(lang, "no_exact_info")


def _resolve_raw_answer(
    card: KBCard,
    lang: str,
    mode: str,
    guide_content: Optional[GuideContentFn],
) -> _RawAnswer:
    if mode == "fallback":
        return _RawAnswer(card.localized_answer(lang).strip(), "validated-kb")

    if card.guide_id:
        content = guide_content(card.guide_id, lang) if guide_content else ""
        if content.strip():
            return _RawAnswer(content, "validated-kb")
        logger.warning(f"guide content missing for card={card.id} guide={card.guide_id} lang={lang}")
        return _RawAnswer(_text(lang, "corrupted_guide"), "runtime-fallback")

    if card.is_guide_card:
        return _RawAnswer(_text(lang, "corrupted_guide"), "runtime-fallback")

    return _RawAnswer(card.localized_answer(lang), "validated-kb")


def to_engine_card(card: KBCard, raw_answer: str, source: CardSourceKind = "validated-kb") -> EngineCard:
    data = card.model_dump()
    data.update(
        source=source,
        ui_paths_allowed=normalize_ui_paths_against_catalog(card.ui_paths),
        steps=extract_operational_steps(raw_answer),
    )
    return EngineCard(**data)


async def render_answer(
    *,
    message: str,
    lang: str,
    card: KBCard,
    mode: str,
    intent_type: str,
    tone: str = "neutral",
    allow_reformat: bool = False,
    reformat: Optional[ReformatFn] = None,
    guide_content: Optional[GuideContentFn] = None,
    timeout_seconds: Optional[float] = None,
) -> RenderedAnswer:
    raw = _resolve_raw_answer(card, lang, mode, guide_content)
    engine_card = to_engine_card(card, raw.text, raw.source)
    trusted = is_trusted_operational_card(engine_card)

    # Hard guardrail: operational answers only from cards with authored steps.
    if intent_type == "operational" and not engine_card.steps:
        safe_paths = safe_fallback_paths(lang)
        return RenderedAnswer(
            answer=no_card_fallback_answer(lang, intent_type),
            card=engine_card.model_copy(update={"ui_paths_allowed": safe_paths}),
            trusted_operational_card=False,
            ui_paths=safe_paths,
        )

    final_answer = raw.text

    can_reformat = (
        allow_reformat
        and reformat is not None
        and mode == "card"
        and not card.guide_id
        and intent_type == "informational"
    )
    if can_reformat:
        payload = ReformatInput(
            user_question=message,
            raw_answer=raw.text,
            is_guarded=card.risk == "guarded",
            is_limited=card.answer_mode == "limited",
            is_warm=tone == "warm",
            lang=lang,
            ui_path_hint=build_ui_path_hint(card),
        )
        try:
            reformatted = await call_with_timeout("reformat", lambda: reformat(payload), timeout_seconds)
            if reformatted and reformatted.strip():
                final_answer = reformatted.strip()
        except ExternalCallbackError as exc:
            logger.warning(f"reformatter failed, using raw answer: {exc}")
            final_answer = raw.text

    if (not trusted or mode == "fallback") and contains_procedural_freeform(final_answer):
        final_answer = enforce_non_procedural_if_untrusted(final_answer, engine_card)
        if mode == "fallback" and contains_procedural_freeform(final_answer):
            final_answer = no_card_fallback_answer(lang, intent_type)

    ui_paths = list(engine_card.ui_paths_allowed)
    if intent_type == "operational" and not trusted:
        # Steps exist but are not backed by a validated card with a canonical path.
        if contains_procedural_freeform(final_answer):
            final_answer = no_card_fallback_answer(lang, intent_type)
        ui_paths = safe_fallback_paths(lang)
    elif not ui_paths and mode == "fallback":
        ui_paths = safe_fallback_paths(lang)

    if tone == "warm":
        final_answer = with_warm_opening(final_answer, lang)

    return RenderedAnswer(
        answer=final_answer,
        card=engine_card,
        trusted_operational_card=trusted,
        ui_paths=ui_paths,
    )


def build_emergency_fallback(lang: str, card_id: str = EMERGENCY_CARD_ID) -> BotResponse:
    return BotResponse(
        ok=True,
        mode="fallback",
        card_id=card_id,
        answer=_text(lang, "emergency"),
        guide_id=None,
        ui_paths=safe_fallback_paths(lang),
    )


def build_emergency_engine_card(lang: str) -> EngineCard:
    return EngineCard(
        id=EMERGENCY_CARD_ID,
        type="fallback",
        domain="general",
        risk="safe",
        guardrail="none",
        answer_mode="full",
        title={lang: EMERGENCY_CARD_ID},
        answer={lang: _text(lang, "emergency")},
        source="bundled-failsafe",
        ui_paths_allowed=safe_fallback_paths(lang),
    )
