from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.append(str(BACKEND_ROOT))

from supportbot.services.kb.human_errors import to_human_issues
from supportbot.services.kb.loader import GuideContentLoader, JsonCardSource
from supportbot.services.kb.quality_gate import run_kb_quality_gate


def _resolve(path_value: Optional[str]) -> Optional[Path]:
    if not path_value:
        return None
    path = Path(path_value)
    if not path.is_absolute():
        path = (BACKEND_ROOT / path).resolve()
    return path


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the publish quality gate over a KB directory.")
    parser.add_argument("--kb-dir", type=str, default=None, help="KB directory (default: bundled KB).")
    parser.add_argument("--i18n-dir", type=str, default=None, help="Guide strings directory (default: bundled).")
    parser.add_argument("--version", type=str, default=None, help="Optional published KB version.")
    parser.add_argument("--json-out", type=str, default=None, help="Optional report output path.")
    parser.add_argument("--technical", action="store_true", help="Print raw messages instead of operator wording.")
    args = parser.parse_args()

    kb_dir = _resolve(args.kb_dir)
    source = JsonCardSource(kb_dir)
    cards = source.load_cards(args.version)
    result = run_kb_quality_gate(
        cards,
        GuideContentLoader(_resolve(args.i18n_dir)),
        kb_dir=kb_dir,
        load_errors=source.load_errors(args.version),
    )

    print(f"KB QUALITY GATE: {'OK' if result.ok else 'BLOCKED'}")
    print(f"- Cards: {result.stats.get('cards')}")
    print(f"- Eval CA: {result.stats.get('evalCa')}")
    print(f"- Eval ES: {result.stats.get('evalEs')}")
    golden = result.stats.get("golden", {})
    print(f"- Golden critical top1: {golden.get('critical_top1_hits')}/{golden.get('critical_total')}")

    if args.technical:
        for error in result.errors:
            print(f"ERROR   {error}")
        for warning in result.warnings:
            print(f"WARNING {warning}")
    else:
        issues = to_human_issues(result.errors, result.warnings)
        if issues:
            print("")
        for issue in issues:
            print(f"[{issue.severity}] {issue.field}: {issue.message}")

    if args.json_out:
        out_path = _resolve(args.json_out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(result.model_dump(), indent=2, ensure_ascii=False), encoding="utf-8")
        print("")
        print(f"Saved report to: {out_path}")

    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
