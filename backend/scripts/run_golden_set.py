from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.append(str(BACKEND_ROOT))

from supportbot.schemas.knowledge import KBCard
from supportbot.schemas.support import GoldenCase
from supportbot.services.kb.golden_set import build_golden_set
from supportbot.services.kb.loader import GuideContentLoader, JsonCardSource
from supportbot.services.support.disambiguation import CLARIFY_CARD_ID
from supportbot.services.support.orchestrator import orchestrate
from supportbot.services.support.policy import contains_procedural_freeform


def _case_result(case: GoldenCase, result: Any) -> Dict[str, Any]:
    response = result.response
    meta = result.meta
    actual = response.card_id
    if response.clarify_options:
        actual = CLARIFY_CARD_ID

    # Untrusted operational answers must never carry free-form navigation.
    hallucination = (
        meta.intent_type == "operational"
        and not meta.trusted_operational_card
        and contains_procedural_freeform(response.answer)
    )
    return {
        "lang": case.lang,
        "question": case.question,
        "critical": case.critical,
        "expected_card_id": case.expected_card_id,
        "actual_card_id": actual,
        "mode": response.mode,
        "intent_type": meta.intent_type,
        "confidence": meta.retrieval_confidence,
        "best_score": meta.best_score,
        "second_score": meta.second_score,
        "trusted_operational_card": meta.trusted_operational_card,
        "hallucination": hallucination,
        "pass": actual == case.expected_card_id and not hallucination,
        "answer_excerpt": response.answer[:200],
    }


async def _run(
    *,
    cases: List[GoldenCase],
    cards: List[KBCard],
    guide_content: GuideContentLoader,
) -> Dict[str, Any]:
    rows: List[Dict[str, Any]] = []
    for case in cases:
        result = await orchestrate(
            message=case.question,
            language=case.lang,
            cards=cards,
            guide_content=guide_content,
        )
        rows.append(_case_result(case, result))

    critical = [row for row in rows if row["critical"]]
    return {
        "summary": {
            "total_cases": len(rows),
            "pass_count": sum(1 for row in rows if row["pass"]),
            "critical_total": len(critical),
            "critical_pass_count": sum(1 for row in critical if row["pass"]),
            "hallucination_count": sum(1 for row in rows if row["hallucination"]),
            "fallback_count": sum(1 for row in rows if row["mode"] == "fallback"),
        },
        "rows": rows,
    }


def _print_human(report: Dict[str, Any]) -> None:
    summary = report["summary"]
    print("GOLDEN SET SUMMARY")
    print(f"- Total cases: {summary['total_cases']}")
    print(f"- Passed: {summary['pass_count']}")
    print(f"- Critical passed: {summary['critical_pass_count']}/{summary['critical_total']}")
    print(f"- Fallbacks: {summary['fallback_count']}")
    print(f"- Hallucinations: {summary['hallucination_count']}")

    failures = [row for row in report["rows"] if not row["pass"]]
    if failures:
        print("")
        print("Failures:")
        for row in failures[:15]:
            print(
                f"- [{row['lang']}] {row['question']!r}: expected={row['expected_card_id']} "
                f"actual={row['actual_card_id']} mode={row['mode']} hallucination={row['hallucination']}"
            )


def _resolve(path_value: Optional[str]) -> Optional[Path]:
    if not path_value:
        return None
    path = Path(path_value)
    if not path.is_absolute():
        path = (BACKEND_ROOT / path).resolve()
    return path


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run the golden set through the support orchestrator.")
    parser.add_argument("--kb-dir", type=str, default=None, help="KB directory (default: bundled KB).")
    parser.add_argument("--i18n-dir", type=str, default=None, help="Guide strings directory (default: bundled).")
    parser.add_argument("--version", type=str, default=None, help="Optional published KB version.")
    parser.add_argument("--critical-only", action="store_true", help="Only run the critical cases.")
    parser.add_argument("--json-out", type=str, default=None, help="Optional report output path.")
    args = parser.parse_args()

    kb_dir = _resolve(args.kb_dir)
    cards = JsonCardSource(kb_dir).load_cards(args.version)
    guide_content = GuideContentLoader(_resolve(args.i18n_dir))

    cases = build_golden_set(kb_dir)
    if args.critical_only:
        cases = [case for case in cases if case.critical]

    report = await _run(cases=cases, cards=cards, guide_content=guide_content)
    _print_human(report)

    if args.json_out:
        out_path = _resolve(args.json_out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
        print("")
        print(f"Saved report to: {out_path}")

    summary = report["summary"]
    failed = summary["critical_pass_count"] < summary["critical_total"] or summary["hallucination_count"] > 0
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
