from __future__ import annotations

import pytest

from supportbot.core.config import settings
from supportbot.services.kb.golden_set import CRITICAL_CASES
from supportbot.services.support.disambiguation import CLARIFY_CARD_ID
from supportbot.services.support.orchestrator import orchestrate, resolve_language
from supportbot.services.support.policy import (
    SAFE_FALLBACK_PATHS,
    contains_procedural_freeform,
    extract_operational_steps,
    normalize_ui_paths_against_catalog,
)
from supportbot.services.support.renderer import EMERGENCY_CARD_ID


@pytest.mark.regression
@pytest.mark.asyncio
@pytest.mark.parametrize("case", CRITICAL_CASES, ids=lambda c: f"{c.lang}-{c.expected_card_id}")
async def test_critical_questions_render_trusted_steps(bundled_cards, guide_content, case) -> None:
    result = await orchestrate(case.question, case.lang, bundled_cards, guide_content=guide_content)

    assert result.response.mode == "card"
    assert result.response.card_id == case.expected_card_id
    assert result.meta.intent_type == "operational"
    assert result.meta.trusted_operational_card is True
    assert extract_operational_steps(result.response.answer)
    assert result.response.ui_paths
    assert normalize_ui_paths_against_catalog(result.response.ui_paths) == result.response.ui_paths
    assert result.selected_card is not None
    assert result.selected_card.source == "validated-kb"


@pytest.mark.asyncio
async def test_attach_document_guide_is_trusted(bundled_cards, guide_content) -> None:
    result = await orchestrate("vull pujar una factura", "ca", bundled_cards, guide_content=guide_content)

    assert result.response.card_id == "guide-attach-document"
    assert result.response.guide_id == "attachDocument"
    assert result.meta.trusted_operational_card is True
    assert result.meta.retrieval_confidence == "high"


@pytest.mark.regression
@pytest.mark.asyncio
async def test_nonsense_never_invents_steps(bundled_cards, guide_content) -> None:
    result = await orchestrate("com faig blablabla qwerty asdfgh zzzz", "ca", bundled_cards, guide_content=guide_content)

    assert result.response.mode == "fallback"
    assert result.response.card_id == "fallback-no-answer"
    assert extract_operational_steps(result.response.answer) == []
    assert not contains_procedural_freeform(result.response.answer)
    assert result.response.ui_paths == SAFE_FALLBACK_PATHS["ca"]
    assert result.meta.trusted_operational_card is False


@pytest.mark.asyncio
async def test_guarded_topic_falls_back_with_its_own_route(bundled_cards) -> None:
    result = await orchestrate("tinc un dubte amb hisenda", "ca", bundled_cards)

    assert result.response.mode == "fallback"
    assert result.response.card_id == "fallback-fiscal-unclear"
    assert result.response.ui_paths == ["Informes"]
    assert result.meta.intent_type == "informational"


@pytest.mark.regression
@pytest.mark.asyncio
async def test_clarify_round_trip(saldo_cards) -> None:
    first = await orchestrate("saldo", "ca", saldo_cards)

    assert first.response.card_id == CLARIFY_CARD_ID
    assert first.response.mode == "fallback"
    assert first.meta.used_clarification is True
    assert first.selected_card is None
    options = first.response.clarify_options
    assert [o.card_id for o in options] == ["manual-bank-balance", "manual-pending-balance"]
    assert first.response.ui_paths == ["Dashboard", "Informes > Pendents"]

    second = await orchestrate("2", "ca", saldo_cards, clarify_option_ids=[o.card_id for o in options])

    assert second.response.mode == "card"
    assert second.response.card_id == "manual-pending-balance"
    assert second.response.answer == "El saldo pendent es mostra a Informes."
    assert second.meta.used_clarification is True
    assert second.meta.selected_card_id == "manual-pending-balance"


@pytest.fixture
def logo_cards(generic_fallback, make_card):
    """Four cards sharing one intent: they tie on any question that contains it."""
    titles = ["Imatge de capçalera", "Identitat visual", "Aparença del perfil", "Marca pròpia"]
    return [generic_fallback] + [
        make_card(
            f"manual-logo-{n}",
            title=title,
            intents=["canviar el logo"],
            answer=f"Resposta {n}.",
            ui_paths=["Configuració"],
        )
        for n, title in enumerate(titles, start=1)
    ]


@pytest.mark.regression
@pytest.mark.asyncio
async def test_tied_direct_match_on_operational_question_asks_to_choose(logo_cards) -> None:
    first = await orchestrate("vull canviar el logo", "ca", logo_cards)

    assert first.meta.intent_type == "operational"
    assert first.meta.retrieval_confidence == "low"
    assert first.meta.best_score >= settings.RETRIEVAL_DIRECT_MATCH_THRESHOLD
    assert first.meta.best_score - first.meta.second_score < settings.RETRIEVAL_MEDIUM_CONFIDENCE_GAP
    assert first.response.card_id == CLARIFY_CARD_ID
    assert first.response.mode == "fallback"
    assert first.meta.used_clarification is True
    assert first.selected_card is None
    options = first.response.clarify_options
    assert [o.card_id for o in options] == ["manual-logo-1", "manual-logo-2", "manual-logo-3"]
    assert first.response.ui_paths == ["Configuració"]

    second = await orchestrate("3", "ca", logo_cards, clarify_option_ids=[o.card_id for o in options])

    assert second.response.mode == "card"
    assert second.response.card_id == "manual-logo-3"
    assert second.meta.used_clarification is True
    assert second.meta.selected_card_id == "manual-logo-3"


@pytest.mark.asyncio
async def test_weak_operational_match_outside_clarify_band_asks_to_choose(
    monkeypatch: pytest.MonkeyPatch, logo_cards
) -> None:
    monkeypatch.setattr(settings, "RETRIEVAL_DIRECT_MATCH_THRESHOLD", 10_000)
    monkeypatch.setattr(settings, "RETRIEVAL_CLARIFY_MAX_GAP", -1)

    result = await orchestrate("vull canviar el logo", "ca", logo_cards)

    assert result.meta.best_score < settings.RETRIEVAL_DIRECT_MATCH_THRESHOLD
    assert result.response.card_id == CLARIFY_CARD_ID
    assert result.meta.used_clarification is True
    assert len(result.response.clarify_options) == 3


@pytest.mark.asyncio
async def test_weak_informational_match_is_not_turned_into_a_choice(
    monkeypatch: pytest.MonkeyPatch, logo_cards
) -> None:
    monkeypatch.setattr(settings, "RETRIEVAL_DIRECT_MATCH_THRESHOLD", 10_000)
    monkeypatch.setattr(settings, "RETRIEVAL_CLARIFY_MAX_GAP", -1)

    result = await orchestrate("el logo", "ca", logo_cards)

    assert result.meta.intent_type == "informational"
    assert result.response.card_id == "fallback-no-answer"
    assert result.response.mode == "fallback"
    assert not result.response.clarify_options


@pytest.mark.asyncio
async def test_empty_card_set_serves_emergency_fallback() -> None:
    result = await orchestrate("com imputo una despesa?", "es", [])

    assert result.response.card_id == EMERGENCY_CARD_ID
    assert result.response.mode == "fallback"
    assert result.response.ui_paths == SAFE_FALLBACK_PATHS["es"]
    assert result.resolved_language == "es"
    assert result.meta.intent_type == "operational"


@pytest.mark.asyncio
async def test_unexpected_failure_serves_emergency_fallback(bundled_cards) -> None:
    def exploding_guides(guide_id: str, lang: str) -> str:
        raise RuntimeError("i18n store unavailable")

    result = await orchestrate(
        "com imputo una despesa a diversos projectes?",
        "ca",
        bundled_cards,
        guide_content=exploding_guides,
    )

    assert result.response.ok is True
    assert result.response.card_id == EMERGENCY_CARD_ID
    assert result.meta.selected_card_id == EMERGENCY_CARD_ID
    assert result.meta.intent_type == "operational"


@pytest.mark.asyncio
async def test_small_talk_only_when_enabled(bundled_cards) -> None:
    enabled = await orchestrate("Hola!", "ca", bundled_cards, allow_small_talk=True)
    assert enabled.response.card_id == "smalltalk-greeting"
    assert enabled.response.mode == "card"
    assert enabled.response.ui_paths == []

    disabled = await orchestrate("Hola!", "ca", bundled_cards)
    assert disabled.response.card_id != "smalltalk-greeting"


@pytest.mark.asyncio
async def test_ai_intent_usage_is_reported(bundled_cards) -> None:
    async def classify(message, lang, candidates):
        return "manual-guides-hub"

    result = await orchestrate(
        "tinc un dubte amb hisenda",
        "ca",
        bundled_cards,
        allow_ai_intent=True,
        classify_intent=classify,
    )

    assert result.meta.used_ai_intent is True
    assert result.response.card_id == "manual-guides-hub"
    assert result.response.mode == "card"


@pytest.mark.parametrize(
    "language,expected",
    [("es-ES", "es"), ("CA", "ca"), ("es_ES", "es"), ("fr", "ca"), (None, "ca"), ("", "ca")],
)
def test_resolve_language(language, expected: str) -> None:
    assert resolve_language(language) == expected


def test_resolve_language_honours_default_setting(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "SUPPORT_DEFAULT_LANGUAGE", "es")
    assert resolve_language("en") == "es"

    monkeypatch.setattr(settings, "SUPPORT_DEFAULT_LANGUAGE", "de")
    assert resolve_language("en") == "ca"
