"""Operator-facing wording for validation and quality-gate messages."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from supportbot.schemas.support import HumanIssue

# (substrings, field, message), first match wins.
_ERROR_RULES: Tuple[Tuple[Tuple[str, ...], str, str], ...] = (
    (
        ("Invalid field", "Cannot read card file", "Card entry is not a JSON object", "Fallbacks file must be"),
        "cardFile",
        "Un fitxer de targeta té un format incorrecte i no s'ha pogut carregar.",
    ),
    (("Missing title.es",), "questionEs", "Falta la pregunta en castellà."),
    (("Missing title.ca",), "questionCa", "Falta la pregunta en català."),
    (("intents.es",), "questionEs", "Cal una intenció en castellà perquè el bot la pugui trobar."),
    (("intents.ca",), "questionCa", "Cal una intenció en català perquè el bot la pugui trobar."),
    (("answer.es is missing",), "answerEs", "Falta la resposta en castellà."),
    (("answer.ca is missing",), "answerCa", "Falta la resposta en català."),
    (
        ("Invalid domain", "Invalid risk", "Invalid guardrail", "Invalid answerMode"),
        "autoPolicy",
        "Tema o nivell de seguretat no vàlid. Revisa la pregunta i torna-ho a provar.",
    ),
    (
        ("Missing required fallback card",),
        "system",
        "Falta una resposta bàsica del sistema. No es pot publicar fins arreglar-ho.",
    ),
    (
        ("Eval CA sota mínim", "Eval ES sota mínim", "Golden critical Top1 sota mínim", "Must-pass query failed"),
        "quality",
        "La qualitat global del bot ha baixat. Revisa aquesta targeta o una altra de relacionada.",
    ),
    (
        ("Critical card has no renderable operational steps", "Missing required critical card"),
        "quality",
        "Una guia clau ha quedat incompleta. Revisa les targetes crítiques abans de publicar.",
    ),
    (("Duplicate id",), "cardId", "Ja existeix una targeta amb aquest identificador."),
)

_WARNING_RULES: Tuple[Tuple[Tuple[str, ...], str, str], ...] = (
    (
        ("answerMode=limited but answer contains risky verbs",),
        "answerCa",
        "La resposta conté verbs massa operatius per aquest tipus de consulta sensible.",
    ),
    (
        ("operatives han caigut a fallback",),
        "quality",
        "Algunes consultes operatives encara no tenen targeta específica.",
    ),
)


def _map(text: str, rules, severity: str) -> HumanIssue:
    for needles, field, message in rules:
        if any(needle in text for needle in needles):
            return HumanIssue(field=field, message=message, severity=severity)
    return HumanIssue(field="general", message=text, severity=severity)


def map_error_to_human(error: str) -> HumanIssue:
    return _map(error, _ERROR_RULES, "error")


def map_warning_to_human(warning: str) -> HumanIssue:
    return _map(warning, _WARNING_RULES, "warning")


def to_human_issues(
    errors: Optional[Sequence[str]] = None,
    warnings: Optional[Sequence[str]] = None,
    max_errors: int = 20,
    max_warnings: int = 10,
) -> List[HumanIssue]:
    issues: List[HumanIssue] = []
    mapped = [map_error_to_human(e) for e in list(errors or [])[:max_errors]]
    mapped += [map_warning_to_human(w) for w in list(warnings or [])[:max_warnings]]
    for issue in mapped:
        if issue not in issues:
            issues.append(issue)
    return issues
