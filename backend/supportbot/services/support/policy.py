"""Operational guardrail policy.

An operational answer may only expose concrete steps that were authored in a
trusted KB card. Everything else degrades to a path-scoped offer to clarify.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Tuple

from supportbot.schemas.knowledge import EngineCard
from supportbot.services.support.normalizer import normalize_plain

# Matched against accent-folded, lower-cased text.
OPERATIONAL_INTENT_RE = re.compile(
    r"\b(?:"
    r"com|como|on|donde|quan|cuando|"
    r"pujo|pujar|puja|subo|subir|sube|adjunt\w*|"
    r"divid\w*|divideix\w*|fraccion\w*|separ\w*|"
    r"esborr\w*|borr\w*|elimin\w*|desf\w*|deshac\w*|"
    r"genera(?:r|t|da|do|s)?|genero|generes|generem|generamos|"
    r"export\w*|import\w*|descarreg\w*|descarg\w*|"
    r"crea(?:r|t|da|do|s)?|creem|creamos|creo un\w*|"
    r"afeg\w*|anad\w*|configur\w*|canvi\w*|cambi\w*|"
    r"imput\w*|assign\w*|asign\w*|envi\w*|"
    r"pas a pas|paso a paso|passos|pasos"
    r")\b"
)

PROCEDURAL_FREEFORM_RE = re.compile(
    r"\b(?:"
    r"ves a|ves al|anar a|entra a|entra al|entra en|obre|clica|fes clic|prem|"
    r"ve a|ve al|vaya a|ir a|abre|haz clic|pulsa|"
    r"go to|click on|click"
    r")\b"
)

_STEP_LINE_RE = re.compile(r"^\s*(\d{1,2})[.)]\s+(\S.*)$")

# Top-level application sections. A path must be one of these or start with "<section> > ".
UI_PATH_CATALOG: Tuple[str, ...] = (
    "Dashboard",
    "Moviments",
    "Movimientos",
    "Donants",
    "Donantes",
    "Contactes",
    "Contactos",
    "Informes",
    "Projectes",
    "Proyectos",
    "Configuració",
    "Configuración",
    "Admin",
    "Hub de Guies",
    "Hub de Guías",
    "Manual d'usuari",
    "Manual de usuario",
)

SAFE_FALLBACK_PATHS: Dict[str, List[str]] = {
    "ca": ["Dashboard > ? (Hub de Guies)", "Manual d'usuari"],
    "es": ["Dashboard > ? (Hub de Guías)", "Manual de usuario"],
}


def safe_fallback_paths(lang: str) -> List[str]:
    return list(SAFE_FALLBACK_PATHS.get(lang) or SAFE_FALLBACK_PATHS["ca"])


def is_operational_intent(message: str) -> bool:
    return bool(OPERATIONAL_INTENT_RE.search(normalize_plain(message)))


def extract_operational_steps(text: str) -> List[str]:
    steps: List[str] = []
    for line in (text or "").splitlines():
        match = _STEP_LINE_RE.match(line)
        if match:
            steps.append(match.group(2).strip())
    return steps


def can_render_operational(card: EngineCard) -> bool:
    return len(card.steps) > 0


def is_trusted_operational_card(card: EngineCard) -> bool:
    return card.source == "validated-kb" and can_render_operational(card) and len(card.ui_paths_allowed) > 0


def contains_procedural_freeform(text: str) -> bool:
    return any(PROCEDURAL_FREEFORM_RE.search(normalize_plain(line)) for line in (text or "").splitlines())


def enforce_non_procedural_if_untrusted(text: str, card: EngineCard) -> str:
    if is_trusted_operational_card(card):
        return text
    kept = [line for line in (text or "").splitlines() if not PROCEDURAL_FREEFORM_RE.search(normalize_plain(line))]
    stripped = "\n".join(kept).strip()
    if not stripped:
        return text
    return re.sub(r"\n{3,}", "\n\n", stripped)


def _matches_catalog(path: str) -> bool:
    return any(path == section or path.startswith(f"{section} > ") for section in UI_PATH_CATALOG)


def normalize_ui_paths_against_catalog(paths: Iterable[str]) -> List[str]:
    allowed: Dict[str, None] = {}
    for raw in paths or []:
        path = (raw or "").strip()
        if path and _matches_catalog(path):
            allowed[path] = None
    return list(allowed)
