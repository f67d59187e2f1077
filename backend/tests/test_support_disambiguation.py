import pytest

from supportbot.services.support.disambiguation import (
    build_clarify_answer,
    build_clarify_options_payload,
    resolve_clarify_choice,
)

_PENDING = ["manual-bank-balance", "manual-pending-balance"]


@pytest.mark.regression
def test_clarify_answer_lists_numbered_options_with_route(saldo_cards) -> None:
    options = saldo_cards[1:]
    answer = build_clarify_answer("ca", options)

    assert "1. Balanç del compte (Ruta: Dashboard)" in answer
    assert "2. Import pendent (Ruta: Informes > Pendents)" in answer
    assert answer.rstrip().endswith("Respon amb el número (1 o 2) o enganxa el text exacte de l'error que veus.")


def test_clarify_answer_in_spanish(saldo_cards) -> None:
    answer = build_clarify_answer("es", saldo_cards[1:])
    assert "Responde con el número (1 o 2)" in answer


def test_clarify_never_lists_more_than_three_options(make_card) -> None:
    options = [make_card(f"manual-{n}", answer="...", ui_paths=["Dashboard"]) for n in range(5)]

    payload = build_clarify_options_payload("ca", options)
    answer = build_clarify_answer("ca", options)

    assert [item.index for item in payload] == [1, 2, 3]
    assert "4." not in answer
    assert "(1, 2 o 3)" in answer


def test_option_route_skips_paths_outside_catalog(make_card) -> None:
    card = make_card("manual-x", answer="...", ui_paths=["Pantalla inventada", "Informes > Anuals"])
    payload = build_clarify_options_payload("ca", [card])
    assert payload[0].ui_path == "Informes > Anuals"

    no_path = make_card("manual-y", answer="...", ui_paths=["Pantalla inventada"])
    assert build_clarify_options_payload("ca", [no_path])[0].ui_path is None


@pytest.mark.regression
def test_round_trip_every_option_by_index(saldo_cards) -> None:
    payload = build_clarify_options_payload("ca", saldo_cards[1:])
    pending = [item.card_id for item in payload]

    for item in payload:
        chosen = resolve_clarify_choice(str(item.index), pending, saldo_cards)
        assert chosen is not None
        assert chosen.id == item.card_id


@pytest.mark.parametrize("reply", ["", "4", "0", "dos", "1.", "el primer"])
def test_non_numeric_or_out_of_range_reply_is_ignored(saldo_cards, reply: str) -> None:
    assert resolve_clarify_choice(reply, _PENDING, saldo_cards) is None


def test_reply_is_trimmed(saldo_cards) -> None:
    chosen = resolve_clarify_choice("  1 ", _PENDING, saldo_cards)
    assert chosen is not None and chosen.id == "manual-bank-balance"


def test_unknown_and_fallback_ids_are_discarded(saldo_cards) -> None:
    # Only one valid option survives, which is not enough to resolve a choice.
    assert resolve_clarify_choice("1", ["fallback-no-answer", "ghost", "manual-bank-balance"], saldo_cards) is None


def test_three_pending_options_resolve_third(saldo_cards, make_card) -> None:
    third = make_card("manual-third", answer="...")
    cards = [*saldo_cards, third]
    chosen = resolve_clarify_choice("3", [*_PENDING, "manual-third"], cards)
    assert chosen is not None and chosen.id == "manual-third"
