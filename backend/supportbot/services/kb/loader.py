"""File-system KB collaborators.

`JsonCardSource` implements the `CardSource` port over a directory holding
`_fallbacks.json` plus any number of `cards/**/*.json` files. Published
snapshots live under `versions/<version>/` with the same layout.
`GuideContentLoader` assembles guide text from flat i18n string tables
(`guides.<id>.<field>` keys).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from supportbot.core.config import settings
from supportbot.core.logging import get_logger
from supportbot.schemas.knowledge import KBCard

logger = get_logger(__name__)

_SECTION_LABELS = {
    "ca": (("lookFirst", "Primer pas"), ("steps", "Pas a pas"), ("doNext", "Després")),
    "es": (("lookFirst", "Primer paso"), ("steps", "Paso a paso"), ("doNext", "Después")),
}
_AVOID_LABEL = {"ca": "Evita", "es": "Evita"}
_COSTLY_ERROR_LABEL = {"ca": "Error costós", "es": "Error costoso"}

MAX_SECTION_ITEMS = 20
MAX_AVOID_ITEMS = 10


def default_kb_dir() -> Path:
    return settings.kb_data_dir / "kb"


def default_i18n_dir() -> Path:
    return settings.kb_data_dir / "i18n"


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _validation_messages(e: ValidationError) -> List[str]:
    messages = []
    for err in e.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "card"
        messages.append(f"Invalid field {field}: {err.get('msg', 'invalid value')}")
    return messages


def _parse_card(raw: Any, origin: str, errors: List[str]) -> Optional[KBCard]:
    """Parse one card; failures are logged and appended to `errors` for the quality gate."""
    if not isinstance(raw, dict):
        logger.error(f"KB entry in {origin} is not an object, skipping")
        errors.append(f"file:{origin}: Card entry is not a JSON object")
        return None
    try:
        return KBCard.model_validate(raw)
    except ValidationError as e:
        logger.error(f"Cannot parse KB card in {origin}: {e}")
        card_id = raw.get("id") if isinstance(raw.get("id"), str) and raw.get("id") else None
        label = f"card:{card_id} ({origin})" if card_id else f"file:{origin}"
        errors.extend(f"{label}: {message}" for message in _validation_messages(e))
        return None


class JsonCardSource:
    def __init__(self, kb_dir: Optional[Path] = None):
        self.kb_dir = Path(kb_dir) if kb_dir else default_kb_dir()
        self._cache: Dict[str, List[KBCard]] = {}
        self._errors: Dict[str, List[str]] = {}

    def _snapshot_dir(self, version: Optional[str]) -> Path:
        if not version:
            return self.kb_dir
        return self.kb_dir / "versions" / version

    def load_cards(self, version: Optional[str] = None) -> List[KBCard]:
        key = version or ""
        if key in self._cache:
            return list(self._cache[key])

        root = self._snapshot_dir(version)
        cards: List[KBCard] = []
        errors: List[str] = []

        fallbacks_path = root / "_fallbacks.json"
        try:
            raw_fallbacks = _read_json(fallbacks_path)
            if not isinstance(raw_fallbacks, list):
                errors.append(f"file:{fallbacks_path.name}: Fallbacks file must be a JSON array")
                raw_fallbacks = []
            for raw in raw_fallbacks:
                card = _parse_card(raw, fallbacks_path.name, errors)
                if card is not None:
                    cards.append(card)
        except (OSError, ValueError) as e:
            logger.error(f"Cannot load fallbacks from {fallbacks_path}: {e}")
            errors.append(f"file:{fallbacks_path.name}: Cannot read card file ({e.__class__.__name__})")

        cards_dir = root / "cards"
        # Sorted so card order (and tie-breaking in retrieval) is stable across platforms.
        for path in sorted(cards_dir.rglob("*.json")):
            try:
                card = _parse_card(_read_json(path), path.name, errors)
            except (OSError, ValueError) as e:
                logger.error(f"Cannot parse {path}: {e}")
                errors.append(f"file:{path.name}: Cannot read card file ({e.__class__.__name__})")
                continue
            if card is not None:
                cards.append(card)

        logger.info(f"Loaded {len(cards)} KB cards from {root} ({len(errors)} load errors)")
        self._cache[key] = cards
        self._errors[key] = errors
        return list(cards)

    def load_errors(self, version: Optional[str] = None) -> List[str]:
        """Files or entries dropped by the last `load_cards(version)`."""
        return list(self._errors.get(version or "", []))

    def clear_cache(self) -> None:
        self._cache.clear()
        self._errors.clear()


class GuideContentLoader:
    """Callable `GuideContentFn`: (guide_id, lang) -> assembled guide text."""

    def __init__(self, i18n_dir: Optional[Path] = None, overrides: Optional[Dict[str, Dict[str, str]]] = None):
        self.i18n_dir = Path(i18n_dir) if i18n_dir else default_i18n_dir()
        self._tables: Dict[str, Dict[str, str]] = {}
        for lang, table in (overrides or {}).items():
            self._tables[lang] = dict(table)

    def strings(self, lang: str) -> Dict[str, str]:
        if lang in self._tables:
            return self._tables[lang]
        path = self.i18n_dir / f"{lang}.json"
        try:
            raw = _read_json(path)
            table = {str(k): str(v) for k, v in raw.items()} if isinstance(raw, dict) else {}
        except (OSError, ValueError) as e:
            logger.warning(f"Cannot load guide strings {path}: {e}")
            table = {}
        self._tables[lang] = table
        return table

    def has_guide(self, guide_id: str, lang: str) -> bool:
        prefix = f"guides.{guide_id}."
        return any(key.startswith(prefix) for key in self.strings(lang))

    def __call__(self, guide_id: str, lang: str) -> str:
        return self.load_guide_content(guide_id, lang)

    def load_guide_content(self, guide_id: str, lang: str) -> str:
        i18n = self.strings(lang)
        prefix = f"guides.{guide_id}"

        title = i18n.get(f"{prefix}.title", "")
        intro = i18n.get(f"{prefix}.intro") or i18n.get(f"{prefix}.whatIs") or ""
        summary = i18n.get(f"{prefix}.summary", "")
        card_text = i18n.get(f"{prefix}.cardText", "")

        parts: List[str] = []
        if title:
            parts.append(f"# {title}")
        for text in (summary, intro, card_text):
            if text:
                parts.append(text)

        for section, label in _SECTION_LABELS.get(lang, _SECTION_LABELS["ca"]):
            items = _numbered_items(i18n, f"{prefix}.{section}", MAX_SECTION_ITEMS)
            if items:
                parts.append(f"\n**{label}:**")
                parts.extend(f"{n}. {item}" for n, item in enumerate(items, start=1))

        avoid = _numbered_items(i18n, f"{prefix}.avoid", MAX_AVOID_ITEMS)
        if avoid:
            parts.append(f"\n**{_AVOID_LABEL.get(lang, 'Evita')}:**")
            parts.extend(f"- {item}" for item in avoid)

        costly_error = i18n.get(f"{prefix}.costlyError", "")
        if costly_error:
            parts.append(f"\n**{_COSTLY_ERROR_LABEL.get(lang, 'Error costós')}:** {costly_error}")

        return "\n".join(parts)


def _numbered_items(i18n: Dict[str, str], prefix: str, limit: int) -> List[str]:
    items: List[str] = []
    for i in range(limit):
        value = i18n.get(f"{prefix}.{i}")
        if not value:
            break
        items.append(value)
    return items


def load_expected_rows(lang: str, kb_dir: Optional[Path] = None) -> List[Dict[str, Optional[str]]]:
    """Expected-answer regression rows `{q, expectedCardId | expectedFallbackId}` for `lang`."""
    eval_dir = (Path(kb_dir) if kb_dir else default_kb_dir()) / "_eval"
    path = eval_dir / ("expected.json" if lang == "ca" else f"expected-{lang}.json")
    try:
        raw = _read_json(path)
    except (OSError, ValueError) as e:
        logger.warning(f"Cannot load expected set {path}: {e}")
        return []
    rows: List[Dict[str, Optional[str]]] = []
    for row in raw if isinstance(raw, list) else []:
        if not isinstance(row, dict) or not isinstance(row.get("q"), str):
            continue
        rows.append(
            {
                "q": row["q"],
                "expectedCardId": row.get("expectedCardId"),
                "expectedFallbackId": row.get("expectedFallbackId"),
            }
        )
    return rows
