import asyncio

import pytest

from supportbot.services.support.contracts import ReformatInput
from supportbot.services.support.policy import SAFE_FALLBACK_PATHS
from supportbot.services.support.renderer import (
    EMERGENCY_CARD_ID,
    build_emergency_engine_card,
    build_emergency_fallback,
    build_ui_path_hint,
    render_answer,
    with_warm_opening,
)

_STEPS_ANSWER = "Per canviar el logotip:\n1. Obre Configuració.\n2. Puja la imatge nova.\n3. Desa els canvis."


@pytest.mark.regression
@pytest.mark.asyncio
async def test_operational_intent_without_steps_gets_safe_text(make_card) -> None:
    card = make_card("manual-logo", answer="El logotip apareix als informes.", ui_paths=["Configuració > Entitat"])

    rendered = await render_answer(
        message="com canvio el logo?",
        lang="ca",
        card=card,
        mode="card",
        intent_type="operational",
    )

    assert rendered.answer.startswith("Entenc què vols fer")
    assert rendered.trusted_operational_card is False
    assert rendered.ui_paths == SAFE_FALLBACK_PATHS["ca"]
    assert rendered.card.steps == []


@pytest.mark.regression
@pytest.mark.asyncio
async def test_operational_intent_with_authored_steps_is_trusted(make_card) -> None:
    card = make_card("manual-logo", answer=_STEPS_ANSWER, ui_paths=["Configuració > Entitat", "Pantalla inventada"])

    rendered = await render_answer(
        message="com canvio el logo?",
        lang="ca",
        card=card,
        mode="card",
        intent_type="operational",
    )

    assert rendered.trusted_operational_card is True
    assert rendered.answer == _STEPS_ANSWER
    assert rendered.ui_paths == ["Configuració > Entitat"]
    assert rendered.card.steps == ["Obre Configuració.", "Puja la imatge nova.", "Desa els canvis."]
    assert rendered.card.source == "validated-kb"


@pytest.mark.asyncio
async def test_steps_without_catalog_path_are_not_trusted(make_card) -> None:
    card = make_card("manual-logo", answer=_STEPS_ANSWER, ui_paths=["Pantalla inventada"])

    rendered = await render_answer(
        message="com canvio el logo?",
        lang="es",
        card=card,
        mode="card",
        intent_type="operational",
    )

    assert rendered.trusted_operational_card is False
    assert rendered.ui_paths == SAFE_FALLBACK_PATHS["es"]


@pytest.mark.regression
@pytest.mark.asyncio
async def test_guide_with_missing_content_is_runtime_fallback(make_card) -> None:
    card = make_card("guide-ghost", guide_id="ghost", ui_paths=["Projectes"])

    rendered = await render_answer(
        message="informació sobre projectes",
        lang="ca",
        card=card,
        mode="card",
        intent_type="informational",
        guide_content=lambda guide_id, lang: "",
    )

    assert rendered.card.source == "runtime-fallback"
    assert "No he trobat una guia vàlida" in rendered.answer
    assert rendered.trusted_operational_card is False


@pytest.mark.asyncio
async def test_guide_content_is_used_when_available(bundled_cards, guide_content) -> None:
    card = next(c for c in bundled_cards if c.id == "guide-projects")

    rendered = await render_answer(
        message="com imputo una despesa a diversos projectes?",
        lang="ca",
        card=card,
        mode="card",
        intent_type="operational",
        guide_content=guide_content,
    )

    assert rendered.trusted_operational_card is True
    assert "**Pas a pas:**" in rendered.answer
    assert rendered.card.guide_id == "projects"
    assert rendered.ui_paths == ["Projectes > Despeses"]


@pytest.mark.asyncio
async def test_reformat_runs_for_informational_cards_only(make_card) -> None:
    seen = []

    async def reformat(payload: ReformatInput) -> str:
        seen.append(payload)
        return "  Resposta reescrita.  "

    card = make_card(
        "concept-sepa",
        answer="Un fitxer SEPA és un XML bancari.",
        ui_paths=["Moviments > Remeses", "Informes", "Dashboard"],
        risk="guarded",
        answer_mode="limited",
    )

    rendered = await render_answer(
        message="què és un fitxer sepa?",
        lang="ca",
        card=card,
        mode="card",
        intent_type="informational",
        tone="warm",
        allow_reformat=True,
        reformat=reformat,
    )

    assert rendered.answer == "Perfecte, anem pas a pas.\n\nResposta reescrita."
    assert len(seen) == 1
    payload = seen[0]
    assert payload.is_guarded and payload.is_limited and payload.is_warm
    assert payload.ui_path_hint == "Moviments > Remeses · Informes"
    assert payload.raw_answer == "Un fitxer SEPA és un XML bancari."


@pytest.mark.asyncio
async def test_reformat_skipped_for_operational_or_disallowed(make_card) -> None:
    calls = []

    async def reformat(payload: ReformatInput) -> str:
        calls.append(payload)
        return "reescrit"

    card = make_card("manual-logo", answer=_STEPS_ANSWER, ui_paths=["Configuració > Entitat"])

    await render_answer(
        message="com canvio el logo?",
        lang="ca",
        card=card,
        mode="card",
        intent_type="operational",
        allow_reformat=True,
        reformat=reformat,
    )
    await render_answer(
        message="el logo",
        lang="ca",
        card=card,
        mode="card",
        intent_type="informational",
        allow_reformat=False,
        reformat=reformat,
    )
    assert calls == []


@pytest.mark.asyncio
async def test_reformat_failure_keeps_raw_answer(make_card) -> None:
    async def broken(payload: ReformatInput) -> str:
        raise RuntimeError("model offline")

    async def slow(payload: ReformatInput) -> str:
        await asyncio.sleep(1)
        return "massa tard"

    card = make_card("concept-x", answer="Text original.", ui_paths=["Informes"])

    for reformat in (broken, slow):
        rendered = await render_answer(
            message="què és això?",
            lang="ca",
            card=card,
            mode="card",
            intent_type="informational",
            allow_reformat=True,
            reformat=reformat,
            timeout_seconds=0.05,
        )
        assert rendered.answer == "Text original."


@pytest.mark.regression
@pytest.mark.asyncio
async def test_fallback_mode_strips_procedural_lines(generic_fallback) -> None:
    card = generic_fallback.model_copy(
        update={"answer": {"ca": "No tinc la resposta exacta.\nVes a Informes i clica Exporta.", "es": "-"}}
    )

    rendered = await render_answer(
        message="tinc un dubte",
        lang="ca",
        card=card,
        mode="fallback",
        intent_type="informational",
    )

    assert rendered.answer == "No tinc la resposta exacta."
    assert rendered.ui_paths == SAFE_FALLBACK_PATHS["ca"]


def test_warm_opening_is_not_duplicated() -> None:
    assert with_warm_opening("Perfecte, ja està.", "ca") == "Perfecte, ja està."
    assert with_warm_opening("Hola", "es") == "Perfecto, vamos paso a paso.\n\nHola"
    assert with_warm_opening("   ", "ca") == ""


def test_ui_path_hint_uses_first_two_unique_paths(make_card) -> None:
    card = make_card("manual-x", answer="...", ui_paths=["Informes", "Informes", " Dashboard ", "Admin"])
    assert build_ui_path_hint(card) == "Informes · Dashboard"


@pytest.mark.regression
def test_emergency_fallback_is_self_contained() -> None:
    response = build_emergency_fallback("es")
    assert response.ok is True
    assert response.mode == "fallback"
    assert response.card_id == EMERGENCY_CARD_ID
    assert response.ui_paths == SAFE_FALLBACK_PATHS["es"]
    assert "Hub de Guías" in response.answer

    card = build_emergency_engine_card("ca")
    assert card.source == "bundled-failsafe"
    assert card.ui_paths_allowed == SAFE_FALLBACK_PATHS["ca"]
