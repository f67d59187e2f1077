"""PII-masked log of answered support questions.

Each record carries a stable hash of (lang, normalized question) so repeated
questions can be aggregated downstream without storing personal data.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from supportbot.core.config import settings
from supportbot.schemas.support import OrchestratorMeta
from supportbot.utils.debug_log import debug_log, resolve_log_path

_IBAN_RE = re.compile(r"\b[A-Z]{2}\d{2}\s?[\dA-Z]{4,30}\b", re.IGNORECASE)
_NIF_RES = (
    re.compile(r"\b\d{8}[A-Za-z]\b"),
    re.compile(r"\b[XYZxyz]\d{7}[A-Za-z]\b"),
    re.compile(r"\b[A-Ha-h]\d{8}\b"),
)
_EMAIL_RE = re.compile(r"\b[\w.+-]+@[\w.-]+\.\w{2,}\b")
_PHONE_RE = re.compile(r"(?:\+\d{1,3}[\s.-]?)?\(?\d{2,4}\)?[\s.-]?\d{3}[\s.-]?\d{3,4}\b")


def normalize_for_hash(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", stripped).strip()


def create_question_hash(lang: str, normalized: str) -> str:
    return hashlib.sha256(f"{lang}:{normalized}".encode("utf-8")).hexdigest()


def mask_pii(text: str) -> str:
    """Replace IBANs, Spanish tax ids, e-mails and phone numbers with placeholders."""
    masked = _IBAN_RE.sub("[IBAN]", text or "")
    for pattern in _NIF_RES:
        masked = pattern.sub("[NIF]", masked)
    masked = _EMAIL_RE.sub("[EMAIL]", masked)
    return _PHONE_RE.sub("[PHONE]", masked)


def build_question_log_record(
    message: str,
    lang: str,
    result_mode: str,
    card_id_or_fallback_id: str,
    meta: Optional[OrchestratorMeta] = None,
) -> Dict[str, Any]:
    masked = mask_pii(message)
    return {
        "hash": create_question_hash(lang, normalize_for_hash(message)),
        "lang": lang,
        "messageRaw": masked,
        # Normalized from the masked text so no personal data reaches the log.
        "messageNormalized": normalize_for_hash(masked),
        "resultMode": result_mode,
        "cardIdOrFallbackId": card_id_or_fallback_id,
        "bestCardId": meta.best_card_id if meta else None,
        "bestScore": meta.best_score if meta else None,
        "secondCardId": meta.second_card_id if meta else None,
        "secondScore": meta.second_score if meta else None,
        "retrievalConfidence": meta.retrieval_confidence if meta else None,
        "loggedAt": datetime.now(timezone.utc).isoformat(),
    }


def log_bot_question(
    message: str,
    lang: str,
    result_mode: str,
    card_id_or_fallback_id: str,
    meta: Optional[OrchestratorMeta] = None,
    path: Optional[Path] = None,
) -> Optional[Dict[str, Any]]:
    """Append one NDJSON record when the question log is enabled. Never raises."""
    if not settings.QUESTION_LOG_ENABLED:
        return None
    record = build_question_log_record(message, lang, result_mode, card_id_or_fallback_id, meta)
    debug_log(record, path or resolve_log_path(settings.QUESTION_LOG_FILE))
    return record
