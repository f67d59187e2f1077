from __future__ import annotations

import re
from typing import List, Sequence, Set

from supportbot.schemas.knowledge import KBCard
from supportbot.schemas.support import ValidationResult

VALID_TYPES = ("howto", "concept", "troubleshooting", "glossary", "fallback")
VALID_DOMAINS = (
    "general",
    "config",
    "donors",
    "transactions",
    "remittances",
    "sepa",
    "fiscal",
    "documents",
    "projects",
    "superadmin",
)
VALID_RISKS = ("safe", "guarded")
VALID_GUARDRAILS = ("none", "b1_fiscal", "b1_sepa", "b1_remittances", "b1_danger")
VALID_ANSWER_MODES = ("full", "limited")
GUARDED_DOMAINS = frozenset({"fiscal", "sepa", "remittances", "superadmin"})

KEBAB_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

# Best-effort (ca + es): limited-mode answers should not tell the user to run these.
RISKY_VERBS_RE = re.compile(
    r"\b(processa|desfés|reprocessa|genera\b|exporta\b|esborra|elimina\b|confirma\b|"
    r"procesa\b|deshaz|reprocesa|borra\b)",
    re.IGNORECASE,
)


def validate_kb_cards(cards: Sequence[KBCard]) -> ValidationResult:
    """Schema and coherence checks over a KB snapshot. Pure; never raises."""
    errors: List[str] = []
    warnings: List[str] = []
    seen_ids: Set[str] = set()

    for card in cards:
        label = f"card:{card.id or 'unknown'}"

        if not card.id:
            errors.append(f"{label}: Missing or invalid id")
            continue

        if not KEBAB_RE.match(card.id):
            errors.append(f'{label}: id "{card.id}" is not kebab-case')

        if card.id in seen_ids:
            errors.append(f'{label}: Duplicate id "{card.id}"')
        seen_ids.add(card.id)

        if card.type not in VALID_TYPES:
            errors.append(f'{label}: Invalid type "{card.type}"')
        if card.domain not in VALID_DOMAINS:
            errors.append(f'{label}: Invalid domain "{card.domain}"')
        if card.risk not in VALID_RISKS:
            errors.append(f'{label}: Invalid risk "{card.risk}"')
        if card.guardrail not in VALID_GUARDRAILS:
            errors.append(f'{label}: Invalid guardrail "{card.guardrail}"')
        if card.answer_mode not in VALID_ANSWER_MODES:
            errors.append(f'{label}: Invalid answerMode "{card.answer_mode}"')

        for lang in ("ca", "es"):
            if not card.title.get(lang):
                errors.append(f"{label}: Missing title.{lang}")
        for lang in ("ca", "es"):
            if not card.intents.get(lang):
                errors.append(f"{label}: intents.{lang} must have at least 1 element")

        has_guide = bool(card.guide_id)
        answer = card.answer or {}
        has_answer = bool(answer.get("ca") or answer.get("es"))

        if not has_guide and not has_answer:
            errors.append(f"{label}: Must have guideId or answer (at least one)")

        if has_answer:
            for lang in ("ca", "es"):
                if not answer.get(lang):
                    errors.append(f"{label}: answer.{lang} is missing")

        if card.is_guide_card:
            if not has_guide:
                errors.append(f"{label}: guide-* cards must define guideId")
            if has_answer:
                errors.append(f"{label}: guide-* cards must not define answer text (use guideId content)")
        elif has_guide and has_answer:
            errors.append(f"{label}: Must not define both guideId and answer (exactly one content source)")

        if card.domain in GUARDED_DOMAINS:
            if card.risk != "guarded":
                errors.append(f'{label}: domain "{card.domain}" requires risk="guarded"')
            if card.guardrail == "none":
                errors.append(f'{label}: domain "{card.domain}" requires guardrail != "none"')

        if card.answer_mode == "limited" and has_answer:
            combined = f"{answer.get('ca') or ''} {answer.get('es') or ''}"
            if RISKY_VERBS_RE.search(combined):
                warnings.append(f"{label}: answerMode=limited but answer contains risky verbs (best-effort check)")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
