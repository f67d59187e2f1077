import pytest

from supportbot.services.support.normalizer import normalize, normalize_plain
from supportbot.services.support.scorer import (
    INTENT_PHRASE_WEIGHT,
    is_approx_token_match,
    levenshtein_distance,
    score_card,
    trigram_jaccard,
)


def _score(message: str, card, lang: str = "ca") -> int:
    return score_card(normalize(message), normalize_plain(message), card, lang)


def test_levenshtein_short_circuits_above_max_distance() -> None:
    assert levenshtein_distance("remesa", "remesa") == 0
    assert levenshtein_distance("remesa", "remesb") == 1
    assert levenshtein_distance("remesa", "rxmxsa", max_distance=1) == 2
    assert levenshtein_distance("abc", "abcdef", max_distance=1) == 2
    assert levenshtein_distance("remesa", "rxmxsa", max_distance=2) == 2


@pytest.mark.parametrize(
    "token,candidate,expected",
    [
        ("factura", "factures", False),
        ("factura", "factur", True),
        ("remesa", "remesa", True),
        ("soci", "sodi", True),
        ("iva", "iba", False),
        ("quota", "qota", True),
        ("remesa", "rmeesa", False),
    ],
)
def test_fuzzy_match_bounds(token: str, candidate: str, expected: bool) -> None:
    assert is_approx_token_match(token, candidate) is expected


def test_trigram_jaccard_identity_and_disjoint() -> None:
    assert trigram_jaccard("remesa", "remesa") == 1.0
    assert trigram_jaccard("abc", "xyz") == 0.0
    assert trigram_jaccard("", "abc") == 0.0


@pytest.mark.regression
def test_intent_phrase_containment_dominates(make_card) -> None:
    card = make_card("guide-x", intents=["dividir una remesa"], guide_id="x")
    other = make_card("manual-y", intents=["consultar les quotes"], answer="...")
    message = "tinc problemes per dividir una remessa"

    # Matches through the canonical phrasing (remessa -> remesa).
    assert _score(message, card) >= INTENT_PHRASE_WEIGHT
    assert _score(message, other) < INTENT_PHRASE_WEIGHT


def test_score_is_zero_for_unrelated_card(make_card) -> None:
    card = make_card("manual-logo", title="logo", intents=["canviar el logo"], answer="...")
    assert _score("zzzz", card) == 0


def test_score_uses_requested_language(make_card) -> None:
    card = make_card("manual-x", answer="...").model_copy(
        update={"intents": {"ca": ["canviar el logo"], "es": ["cambiar el logotipo"]}}
    )
    assert _score("vull canviar el logo", card, "ca") > _score("vull canviar el logo", card, "es")
