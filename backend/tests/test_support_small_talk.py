import pytest

from supportbot.services.support.small_talk import detect_small_talk_response


@pytest.mark.parametrize(
    "message,card_id",
    [
        ("Hola!", "smalltalk-greeting"),
        ("  Bon dia  ", "smalltalk-greeting"),
        ("Buenas tardes", "smalltalk-greeting"),
        ("Moltes gràcies!", "smalltalk-thanks"),
        ("gracias", "smalltalk-thanks"),
        ("D'acord", "smalltalk-ack"),
        ("ok", "smalltalk-ack"),
        ("Qui ets?", "smalltalk-about"),
        ("¿Qué puedes hacer?", "smalltalk-about"),
    ],
)
def test_small_talk_is_recognised(message: str, card_id: str) -> None:
    response = detect_small_talk_response(message, "ca")
    assert response is not None
    assert response.card_id == card_id
    assert response.mode == "card"
    assert response.ui_paths == []


@pytest.mark.parametrize(
    "message",
    ["", "   ", "hola, com pujo una factura?", "gracies però no funciona", "ok i la remesa?"],
)
def test_questions_are_not_small_talk(message: str) -> None:
    assert detect_small_talk_response(message, "ca") is None


def test_answers_follow_language() -> None:
    assert detect_small_talk_response("hola", "es").answer.startswith("¡Hola!")
    assert detect_small_talk_response("hola", "ca").answer.startswith("Hola!")
    assert detect_small_talk_response("hola", "fr").answer.startswith("Hola!")
