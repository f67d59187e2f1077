from __future__ import annotations

from typing import List, Optional, Sequence

from supportbot.core.config import settings
from supportbot.schemas.knowledge import KBCard
from supportbot.schemas.support import ClarifyOption
from supportbot.services.support.policy import normalize_ui_paths_against_catalog

CLARIFY_CARD_ID = "clarify-disambiguation"
_CHOICES = ("1", "2", "3")

_TEXTS = {
    "ca": {
        "intro": "Vull assegurar-me d'entendre bé la pregunta. Et refereixes a alguna d'aquestes opcions?",
        "route": "Ruta",
        "reply": "Respon amb el número ({numbers}) o enganxa el text exacte de l'error que veus.",
        "or": "o",
    },
    "es": {
        "intro": "Quiero asegurarme de entender bien la pregunta. ¿Te refieres a alguna de estas opciones?",
        "route": "Ruta",
        "reply": "Responde con el número ({numbers}) o pega el texto exacto del error que ves.",
        "or": "o",
    },
}


def _texts(lang: str) -> dict:
    return _TEXTS.get(lang) or _TEXTS["ca"]


def _bounded(options: Sequence[KBCard]) -> List[KBCard]:
    return list(options)[: min(len(_CHOICES), settings.CLARIFY_MAX_OPTIONS)]


def _first_ui_path(card: KBCard) -> Optional[str]:
    allowed = normalize_ui_paths_against_catalog(card.ui_paths)
    return allowed[0] if allowed else None


def pending_options(pending_option_ids: Sequence[str], cards: Sequence[KBCard]) -> List[KBCard]:
    by_id = {card.id: card for card in cards}
    options: List[KBCard] = []
    for option_id in list(pending_option_ids or [])[: len(_CHOICES)]:
        card = by_id.get(option_id)
        if card is None or card.is_fallback:
            continue
        options.append(card)
    return options


def resolve_clarify_choice(
    message: str,
    pending_option_ids: Sequence[str],
    cards: Sequence[KBCard],
) -> Optional[KBCard]:
    """Map a bare "1"/"2"/"3" reply onto the pending clarify options."""
    choice = (message or "").strip()
    if choice not in _CHOICES:
        return None
    options = pending_options(pending_option_ids, cards)
    if len(options) < 2:
        return None
    index = int(choice) - 1
    if index >= len(options):
        return None
    return options[index]


def build_clarify_answer(lang: str, options: Sequence[KBCard]) -> str:
    texts = _texts(lang)
    bounded = _bounded(options)
    lines = [texts["intro"], ""]
    for position, card in enumerate(bounded, start=1):
        line = f"{position}. {card.localized_title(lang)}"
        ui_path = _first_ui_path(card)
        if ui_path:
            line += f" ({texts['route']}: {ui_path})"
        lines.append(line)

    numbers = [str(n) for n in range(1, len(bounded) + 1)]
    if len(numbers) > 1:
        joined = f"{', '.join(numbers[:-1])} {texts['or']} {numbers[-1]}"
    else:
        joined = "".join(numbers)
    lines.append("")
    lines.append(texts["reply"].format(numbers=joined))
    return "\n".join(lines)


def build_clarify_options_payload(lang: str, options: Sequence[KBCard]) -> List[ClarifyOption]:
    return [
        ClarifyOption(
            index=position,
            card_id=card.id,
            label=card.localized_title(lang),
            ui_path=_first_ui_path(card),
        )
        for position, card in enumerate(_bounded(options), start=1)
    ]
