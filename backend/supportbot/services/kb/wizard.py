"""Draft KB card builder for operators answering an unanswered question."""

from __future__ import annotations

import hashlib
import re
import time
import unicodedata
from typing import AbstractSet, Dict, List, Literal, Optional

from pydantic import BaseModel

from supportbot.schemas.knowledge import KBCard
from supportbot.services.support.retrieval import infer_question_domain, suggest_keywords_from_message

WizardMode = Literal["from_unanswered", "manual"]

TROUBLESHOOTING_RE = re.compile(
    r"\b(error|errores|errada|falla|bloquejat|bloqueado|no funciona|invalid|inv\w+|problema)\b",
    re.IGNORECASE,
)

MAX_ID_LENGTH = 54
MAX_TITLE_LENGTH = 80

_RISK_POLICY: Dict[str, Dict[str, str]] = {
    "fiscal": {
        "risk": "guarded",
        "guardrail": "b1_fiscal",
        "answer_mode": "limited",
        "safety_label": "Consulta sensible: resposta orientativa per seguretat.",
    },
    "sepa": {
        "risk": "guarded",
        "guardrail": "b1_sepa",
        "answer_mode": "limited",
        "safety_label": "Consulta sensible: revisa amb calma abans de confirmar cap fitxer.",
    },
    "remittances": {
        "risk": "guarded",
        "guardrail": "b1_remittances",
        "answer_mode": "limited",
        "safety_label": "Consulta sensible: millor orientació pas a pas i validació final.",
    },
    "superadmin": {
        "risk": "guarded",
        "guardrail": "b1_danger",
        "answer_mode": "limited",
        "safety_label": "Acció sensible de SuperAdmin: resposta prudent i verificable.",
    },
}
_DEFAULT_POLICY = {
    "risk": "safe",
    "guardrail": "none",
    "answer_mode": "full",
    "safety_label": "Consulta estàndard: resposta completa.",
}

_UI_PATHS_BY_DOMAIN: Dict[str, List[str]] = {
    "fiscal": ["Informes"],
    "sepa": ["Moviments > Remeses"],
    "remittances": ["Moviments > Remeses"],
    "superadmin": ["Admin > SuperAdmin"],
    "documents": ["Moviments > Documents"],
    "projects": ["Projectes"],
}
_DEFAULT_UI_PATHS = ["Dashboard > ? (Hub de Guies)"]

_TOPIC_LABELS = {
    "fiscal": "Fiscal",
    "sepa": "SEPA",
    "remittances": "Remeses",
    "superadmin": "SuperAdmin",
    "transactions": "Moviments",
    "donors": "Donants",
    "config": "Configuració",
    "documents": "Documents",
    "projects": "Projectes",
}


class WizardCardInput(BaseModel):
    mode: WizardMode = "manual"
    question_ca: str
    question_es: Optional[str] = None
    answer_ca: str
    answer_es: Optional[str] = None
    card_id: Optional[str] = None


class WizardCardResolved(BaseModel):
    card: KBCard
    domain: str
    risk: str
    safety_label: str


def _clean(value: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (value or "").strip())


def slugify(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", _clean(value).lower())
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]+", "-", folded).strip("-")


def _short_hash(seed: str) -> str:
    return hashlib.sha1(seed.encode("utf-8")).hexdigest()[:6]


def to_kebab_id(value: str) -> str:
    return slugify(value) or "kb-card"


def generate_unique_card_id(base_text: str, existing_ids: AbstractSet[str], fixed_seed: Optional[str] = None) -> str:
    base = to_kebab_id(base_text)[:MAX_ID_LENGTH].strip("-")
    if base not in existing_ids:
        return base

    seed = fixed_seed if fixed_seed is not None else f"{base_text}:{time.time_ns()}"
    candidate = f"{base[:47].rstrip('-')}-{_short_hash(seed)}"
    if candidate not in existing_ids:
        return candidate

    for i in range(20):
        attempt = f"{base[:45].rstrip('-')}-{_short_hash(f'{seed}:{i}')}"
        if attempt not in existing_ids:
            return attempt

    return f"{base[:40].rstrip('-')}-{format(time.time_ns(), 'x')[-6:]}"


def resolve_card_type(question: str, answer: str) -> str:
    return "troubleshooting" if TROUBLESHOOTING_RE.search(f"{question} {answer}") else "howto"


def resolve_domain(question: str) -> str:
    domain = infer_question_domain(question)
    return "superadmin" if domain == "danger" else domain


def default_ui_paths(domain: str) -> List[str]:
    return list(_UI_PATHS_BY_DOMAIN.get(domain, _DEFAULT_UI_PATHS))


def build_title(question: str) -> str:
    clean = _clean(question)
    if len(clean) <= MAX_TITLE_LENGTH:
        return clean
    return f"{clean[: MAX_TITLE_LENGTH - 3].strip()}..."


def resolve_wizard_card(
    wizard_input: WizardCardInput,
    existing_ids: AbstractSet[str],
    fallback_card_id: Optional[str] = None,
) -> WizardCardResolved:
    question_ca = _clean(wizard_input.question_ca)
    question_es = _clean(wizard_input.question_es or wizard_input.question_ca)
    answer_ca = _clean(wizard_input.answer_ca)
    answer_es = _clean(wizard_input.answer_es or wizard_input.answer_ca)

    given_id = _clean(wizard_input.card_id or fallback_card_id)
    card_id = to_kebab_id(given_id) if given_id else generate_unique_card_id(question_ca, existing_ids)

    domain = resolve_domain(question_ca or question_es)
    policy = _RISK_POLICY.get(domain, _DEFAULT_POLICY)
    keywords = list(dict.fromkeys(suggest_keywords_from_message(f"{question_ca} {question_es}", 10)))

    card = KBCard(
        id=card_id,
        type=resolve_card_type(question_ca, answer_ca),
        domain=domain,
        risk=policy["risk"],
        guardrail=policy["guardrail"],
        answer_mode=policy["answer_mode"],
        title={"ca": build_title(question_ca), "es": build_title(question_es)},
        intents={"ca": [question_ca], "es": [question_es]},
        guide_id=None,
        answer={"ca": answer_ca, "es": answer_es},
        ui_paths=default_ui_paths(domain),
        needs_snapshot=False,
        keywords=keywords,
        related=[],
        error_key=None,
        symptom={"ca": None, "es": None},
    )
    return WizardCardResolved(card=card, domain=domain, risk=policy["risk"], safety_label=policy["safety_label"])


def to_human_topic_label(domain: str) -> str:
    return _TOPIC_LABELS.get(domain, "General")
