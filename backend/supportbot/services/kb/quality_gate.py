"""Publish-time quality gate for a candidate KB snapshot.

`errors` is the only publish/block signal. Detailed retrieval mismatches are
kept as capped warnings so operators see drift without being blocked by it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from supportbot.core.config import settings
from supportbot.core.logging import get_logger
from supportbot.schemas.knowledge import KBCard
from supportbot.schemas.support import EvalStats, QualityGateResult
from supportbot.services.kb.golden_set import CRITICAL_CASES, actual_card_id, build_golden_set, evaluate_golden_set
from supportbot.services.kb.loader import GuideContentLoader, load_expected_rows
from supportbot.services.kb.validation import validate_kb_cards
from supportbot.services.support.contracts import GuideContentFn
from supportbot.services.support.policy import extract_operational_steps
from supportbot.services.support.retrieval import retrieve_card

logger = get_logger(__name__)

REQUIRED_FALLBACK_IDS: Tuple[str, ...] = (
    "fallback-no-answer",
    "fallback-fiscal-unclear",
    "fallback-sepa-unclear",
    "fallback-remittances-unclear",
    "fallback-danger-unclear",
)

# Cards behind the must-pass queries; each must render numbered steps in both languages.
CRITICAL_OPERATIONAL_CARD_IDS: Tuple[str, ...] = tuple(dict.fromkeys(c.expected_card_id for c in CRITICAL_CASES))


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def _threshold_pct(value: float) -> str:
    return f"{value * 100:.0f}%"


def raw_card_text(card: KBCard, lang: str, guide_content: GuideContentFn) -> str:
    if card.guide_id:
        return guide_content(card.guide_id, lang) or ""
    return card.localized_answer(lang) if card.answer else ""


def check_critical_cards(cards: Sequence[KBCard], guide_content: GuideContentFn) -> List[str]:
    errors: List[str] = []
    by_id: Dict[str, KBCard] = {card.id: card for card in cards}
    for card_id in CRITICAL_OPERATIONAL_CARD_IDS:
        card = by_id.get(card_id)
        if card is None:
            errors.append(f"Missing required critical card: {card_id}")
            continue
        for lang in ("ca", "es"):
            if not extract_operational_steps(raw_card_text(card, lang, guide_content)):
                errors.append(f"card:{card_id}: Critical card has no renderable operational steps ({lang})")
    return errors


def evaluate_expected_set(
    cards: Sequence[KBCard],
    lang: str,
    rows: Sequence[Dict[str, Optional[str]]],
) -> Tuple[EvalStats, List[str]]:
    mismatches: List[str] = []
    passed = 0
    cap = settings.KB_MAX_MISMATCH_WARNINGS

    for row in rows:
        expected = row.get("expectedCardId") or row.get("expectedFallbackId")
        if not expected:
            passed += 1
            continue
        try:
            result = retrieve_card(row["q"], lang, cards)
        except Exception as e:
            if len(mismatches) < cap:
                mismatches.append(f'[{lang}] "{row["q"]}" -> retrieval error: {e}')
            continue

        actual = actual_card_id(result)
        if actual == expected:
            passed += 1
        elif len(mismatches) < cap:
            mismatches.append(f'[{lang}] "{row["q"]}" -> expected "{expected}" but got "{actual}" ({result.mode})')

    return EvalStats(total=len(rows), passed=passed, failed=len(rows) - passed), mismatches


def check_must_pass_queries(cards: Sequence[KBCard]) -> List[str]:
    errors: List[str] = []
    for case in CRITICAL_CASES:
        try:
            actual = actual_card_id(retrieve_card(case.question, case.lang, cards))
        except Exception as e:
            errors.append(f'Must-pass query failed [{case.lang}] "{case.question}": retrieval error: {e}')
            continue
        if actual != case.expected_card_id:
            errors.append(
                f'Must-pass query failed [{case.lang}] "{case.question}": '
                f'expected "{case.expected_card_id}" but got "{actual}"'
            )
    return errors


def run_kb_quality_gate(
    cards: Sequence[KBCard],
    guide_content: Optional[GuideContentFn] = None,
    kb_dir: Optional[Path] = None,
    load_errors: Optional[Sequence[str]] = None,
) -> QualityGateResult:
    """Run every publish check. `load_errors` are card files the source could not parse."""
    guide_content = guide_content or GuideContentLoader()
    validation = validate_kb_cards(cards)
    errors = list(load_errors or [])
    errors.extend(validation.errors)
    warnings = list(validation.warnings)

    card_ids = {card.id for card in cards}
    for fallback_id in REQUIRED_FALLBACK_IDS:
        if fallback_id not in card_ids:
            errors.append(f"Missing required fallback card: {fallback_id}")

    errors.extend(check_critical_cards(cards, guide_content))

    min_accuracy = settings.KB_EVAL_MIN_ACCURACY
    eval_stats: Dict[str, EvalStats] = {}
    for lang in ("ca", "es"):
        stats, mismatches = evaluate_expected_set(cards, lang, load_expected_rows(lang, kb_dir))
        eval_stats[lang] = stats
        if stats.accuracy < min_accuracy:
            errors.append(
                f"Eval {lang.upper()} sota mínim ({_pct(stats.accuracy)} < {_threshold_pct(min_accuracy)})"
            )
        warnings.extend(mismatches)

    metrics, golden_mismatches = evaluate_golden_set(cards, build_golden_set(kb_dir))
    min_critical = settings.KB_GOLDEN_MIN_CRITICAL_TOP1
    if metrics.critical_top1_accuracy < min_critical:
        errors.append(
            f"Golden critical Top1 sota mínim ({_pct(metrics.critical_top1_accuracy)} < {_threshold_pct(min_critical)})"
        )
    warnings.extend(golden_mismatches[: settings.KB_MAX_MISMATCH_WARNINGS])
    if metrics.operational_without_card:
        warnings.append(f"Golden: {metrics.operational_without_card} consultes operatives han caigut a fallback")

    errors.extend(check_must_pass_queries(cards))

    ok = not errors
    logger.info(
        f"KB quality gate {'passed' if ok else 'failed'}: cards={len(cards)} "
        f"errors={len(errors)} warnings={len(warnings)} "
        f"critical_top1={_pct(metrics.critical_top1_accuracy)}"
    )
    return QualityGateResult(
        ok=ok,
        errors=errors,
        warnings=warnings,
        stats={
            "cards": len(cards),
            "loadErrors": len(load_errors or []),
            "structuralErrors": len(validation.errors),
            "structuralWarnings": len(validation.warnings),
            "evalCa": eval_stats["ca"].model_dump(),
            "evalEs": eval_stats["es"].model_dump(),
            "golden": metrics.model_dump(),
        },
    )
