from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from supportbot.core.config import settings

BACKEND_ROOT = Path(__file__).resolve().parents[2]


def resolve_log_path(file_name: Optional[str] = None) -> Path:
    log_dir = Path(settings.LOG_DIR)
    if not log_dir.is_absolute():
        log_dir = BACKEND_ROOT / log_dir
    return log_dir / (file_name or settings.DEBUG_LOG_FILE)


def debug_log(payload: Dict[str, Any], path: Optional[Path] = None) -> None:
    """Append a single NDJSON line to the debug log. Never raises."""
    target = path or resolve_log_path()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except Exception:
        # Never let debug logging break the request
        pass
