"""Golden-set regression over the deterministic retriever.

The set is the hand-written critical cases plus the first rows of each
language's expected-answer file. Critical cases must keep a top-1 accuracy of
at least `settings.KB_GOLDEN_MIN_CRITICAL_TOP1`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from supportbot.core.config import settings
from supportbot.schemas.knowledge import KBCard
from supportbot.schemas.support import GoldenCase, GoldenSetMetrics
from supportbot.services.kb.loader import load_expected_rows
from supportbot.services.support.disambiguation import CLARIFY_CARD_ID
from supportbot.services.support.policy import is_operational_intent
from supportbot.services.support.retrieval import RetrievalResult, retrieve_card

CRITICAL_CASES: Tuple[GoldenCase, ...] = (
    GoldenCase(lang="ca", question="com imputo una despesa a diversos projectes?", expected_card_id="guide-projects", critical=True),
    GoldenCase(lang="ca", question="com pujo una factura o rebut o nòmina?", expected_card_id="guide-attach-document", critical=True),
    GoldenCase(lang="ca", question="com puc saber les quotes que un soci ha pagat?", expected_card_id="manual-member-paid-quotas", critical=True),
    GoldenCase(lang="ca", question="com faig arribar el certificat de donatius a un soci?", expected_card_id="guide-donor-certificate", critical=True),
    GoldenCase(lang="ca", question="tinc problemes per dividir una remessa", expected_card_id="guide-split-remittance", critical=True),
    GoldenCase(lang="es", question="como imputo un gasto a varios proyectos?", expected_card_id="guide-projects", critical=True),
    GoldenCase(lang="es", question="como subo una factura o recibo o nomina?", expected_card_id="guide-attach-document", critical=True),
    GoldenCase(lang="es", question="como puedo saber las cuotas que un socio ha pagado?", expected_card_id="manual-member-paid-quotas", critical=True),
    GoldenCase(lang="es", question="como envio el certificado de donacion a un socio?", expected_card_id="guide-donor-certificate", critical=True),
    GoldenCase(lang="es", question="tengo problemas para dividir una remesa", expected_card_id="guide-split-remittance", critical=True),
)


def actual_card_id(result: RetrievalResult) -> str:
    return CLARIFY_CARD_ID if result.clarify_options else result.card.id


def build_derived_cases(rows: Sequence[Dict[str, Optional[str]]], lang: str, limit: int) -> List[GoldenCase]:
    cases: List[GoldenCase] = []
    for row in rows:
        expected = row.get("expectedCardId") or row.get("expectedFallbackId")
        if not expected:
            continue
        cases.append(GoldenCase(question=row["q"], lang=lang, expected_card_id=expected, critical=False))
        if len(cases) >= limit:
            break
    return cases


def dedupe_cases(cases: Sequence[GoldenCase]) -> List[GoldenCase]:
    """One case per (lang, question); a critical duplicate wins over a plain one."""
    by_key: Dict[str, GoldenCase] = {}
    for case in cases:
        key = f"{case.lang}::{case.question.strip().lower()}"
        existing = by_key.get(key)
        if existing is None or (not existing.critical and case.critical):
            by_key[key] = case
    return list(by_key.values())


def build_golden_set(kb_dir: Optional[Path] = None) -> List[GoldenCase]:
    limit = settings.KB_GOLDEN_DERIVED_LIMIT
    return dedupe_cases(
        [
            *CRITICAL_CASES,
            *build_derived_cases(load_expected_rows("ca", kb_dir), "ca", limit),
            *build_derived_cases(load_expected_rows("es", kb_dir), "es", limit),
        ]
    )


def evaluate_golden_set(
    cards: Sequence[KBCard],
    cases: Optional[Sequence[GoldenCase]] = None,
) -> Tuple[GoldenSetMetrics, List[str]]:
    golden = list(cases) if cases is not None else build_golden_set()

    top1_hits = 0
    critical_hits = 0
    critical_total = 0
    fallback_count = 0
    operational_without_card = 0
    errors: List[str] = []

    for case in golden:
        if case.critical:
            critical_total += 1
        try:
            result = retrieve_card(case.question, case.lang, cards)
        except Exception as e:
            errors.append(f'[golden][{case.lang}] "{case.question}" -> retrieval error: {e}')
            continue

        actual = actual_card_id(result)
        if actual == case.expected_card_id:
            top1_hits += 1
            if case.critical:
                critical_hits += 1
        else:
            errors.append(
                f'[golden][{case.lang}] "{case.question}" -> expected "{case.expected_card_id}" '
                f'but got "{actual}" ({result.mode})'
            )

        if result.mode == "fallback":
            fallback_count += 1
        if is_operational_intent(case.question) and result.mode != "card":
            operational_without_card += 1

    total = len(golden)
    metrics = GoldenSetMetrics(
        total=total,
        top1_hits=top1_hits,
        top1_accuracy=top1_hits / total if total else 0.0,
        critical_total=critical_total,
        critical_top1_hits=critical_hits,
        critical_top1_accuracy=critical_hits / critical_total if critical_total else 0.0,
        fallback_count=fallback_count,
        fallback_rate=fallback_count / total if total else 0.0,
        operational_without_card=operational_without_card,
    )
    return metrics, errors
