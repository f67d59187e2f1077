from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from supportbot.schemas.knowledge import KBCard
from supportbot.services.kb.loader import GuideContentLoader, JsonCardSource


@pytest.fixture(scope="session")
def bundled_cards() -> List[KBCard]:
    return JsonCardSource().load_cards()


@pytest.fixture(scope="session")
def guide_content() -> GuideContentLoader:
    return GuideContentLoader()


def build_card(
    card_id: str,
    *,
    intents: Optional[List[str]] = None,
    title: str = "",
    type: str = "howto",
    domain: str = "general",
    risk: str = "safe",
    guardrail: str = "none",
    answer_mode: str = "full",
    answer: Optional[str] = None,
    guide_id: Optional[str] = None,
    ui_paths: Optional[List[str]] = None,
    keywords: Optional[List[str]] = None,
    **extra: Any,
) -> KBCard:
    """Bilingual card with the same text in ca and es."""
    data: Dict[str, Any] = {
        "id": card_id,
        "type": type,
        "domain": domain,
        "risk": risk,
        "guardrail": guardrail,
        "answerMode": answer_mode,
        "title": {"ca": title or card_id, "es": title or card_id},
        "intents": {"ca": list(intents or []), "es": list(intents or [])},
        "guideId": guide_id,
        "answer": {"ca": answer, "es": answer} if answer is not None else None,
        "uiPaths": list(ui_paths or []),
        "keywords": list(keywords or []),
    }
    data.update(extra)
    return KBCard.model_validate(data)


@pytest.fixture
def make_card():
    return build_card


@pytest.fixture
def generic_fallback() -> KBCard:
    return build_card(
        "fallback-no-answer",
        type="fallback",
        title="No answer",
        intents=["no trobo cap resposta"],
        answer="Ara mateix no tinc una resposta exacta per a aquesta pregunta.",
    )


@pytest.fixture
def saldo_cards(generic_fallback: KBCard) -> List[KBCard]:
    """Two cards that tie on the bare word "saldo" inside the clarify band."""
    return [
        generic_fallback,
        build_card(
            "manual-bank-balance",
            title="Balanç del compte",
            intents=["consultar el saldo bancari"],
            answer="El saldo bancari es mostra al Dashboard.",
            ui_paths=["Dashboard"],
        ),
        build_card(
            "manual-pending-balance",
            title="Import pendent",
            intents=["consultar el saldo pendent"],
            answer="El saldo pendent es mostra a Informes.",
            ui_paths=["Informes > Pendents"],
        ),
    ]
