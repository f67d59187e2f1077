from __future__ import annotations

import re
from typing import Optional, Tuple

from supportbot.schemas.support import BotResponse
from supportbot.services.support.normalizer import normalize_plain

# Whole-message patterns over folded text with trailing punctuation removed.
_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    (
        "smalltalk-greeting",
        re.compile(r"^(?:hola|bon dia|bona tarda|bona nit|buenos dias|buenas tardes|buenas noches|buenas|hello|hi|ei|hey)$"),
    ),
    (
        "smalltalk-thanks",
        re.compile(r"^(?:(?:moltes )?gracies(?: de nou)?|(?:muchas )?gracias|merci|mil gracies|mil gracias|thanks|thank you)$"),
    ),
    (
        "smalltalk-ack",
        re.compile(r"^(?:d acord|dacord|entesos|perfecte|perfecto|vale|ok|okay|genial|molt be|muy bien|de acuerdo|entendido)$"),
    ),
    (
        "smalltalk-about",
        re.compile(r"^(?:qui ets|que ets|qui ets tu|quien eres|que eres|quien eres tu|que pots fer|que puedes hacer)$"),
    ),
)

_ANSWERS = {
    "ca": {
        "smalltalk-greeting": "Hola! Sóc l'assistent de suport. Explica'm què necessites i et porto a la guia adequada.",
        "smalltalk-thanks": "A tu! Si tens cap altre dubte, pregunta quan vulguis.",
        "smalltalk-ack": "Perfecte. Si necessites res més, aquí em tens.",
        "smalltalk-about": (
            "Sóc l'assistent de suport de l'aplicació. Responc a partir de guies i fitxes revisades "
            "i, si no trobo una resposta fiable, t'indico on mirar."
        ),
    },
    "es": {
        "smalltalk-greeting": "¡Hola! Soy el asistente de soporte. Cuéntame qué necesitas y te llevo a la guía adecuada.",
        "smalltalk-thanks": "¡A ti! Si tienes cualquier otra duda, pregunta cuando quieras.",
        "smalltalk-ack": "Perfecto. Si necesitas algo más, aquí estoy.",
        "smalltalk-about": (
            "Soy el asistente de soporte de la aplicación. Respondo a partir de guías y fichas revisadas "
            "y, si no encuentro una respuesta fiable, te indico dónde mirar."
        ),
    },
}


def _clean(message: str) -> str:
    folded = normalize_plain(message)
    folded = re.sub(r"[^\w\s]", " ", folded)
    return re.sub(r"\s+", " ", folded).strip()


def detect_small_talk_response(message: str, lang: str) -> Optional[BotResponse]:
    cleaned = _clean(message)
    if not cleaned:
        return None
    for card_id, pattern in _PATTERNS:
        if pattern.match(cleaned):
            answers = _ANSWERS.get(lang) or _ANSWERS["ca"]
            return BotResponse(
                ok=True,
                mode="card",
                card_id=card_id,
                answer=answers[card_id],
                guide_id=None,
                ui_paths=[],
            )
    return None
