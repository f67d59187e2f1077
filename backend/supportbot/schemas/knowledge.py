from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

KbLang = Literal["ca", "es"]
CardSourceKind = Literal["validated-kb", "bundled-failsafe", "runtime-fallback"]


class KBCard(BaseModel):
    """Authored unit of retrievable support content.

    Enum-like fields stay plain strings so a malformed card still loads and
    the validator can report it instead of the parser rejecting the snapshot.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = ""
    type: str = ""
    domain: str = ""
    risk: str = ""
    guardrail: str = ""
    answer_mode: str = Field(default="", alias="answerMode")
    title: Dict[str, str] = {}
    intents: Dict[str, List[str]] = {}
    guide_id: Optional[str] = Field(default=None, alias="guideId")
    answer: Optional[Dict[str, str]] = None
    ui_paths: List[str] = Field(default_factory=list, alias="uiPaths")
    needs_snapshot: bool = Field(default=False, alias="needsSnapshot")
    keywords: List[str] = []
    related: List[str] = []
    error_key: Optional[str] = None
    symptom: Dict[str, Optional[str]] = {}

    @property
    def is_guide_card(self) -> bool:
        return self.id.startswith("guide-")

    @property
    def is_fallback(self) -> bool:
        return self.type == "fallback"

    def localized_title(self, lang: str) -> str:
        return self.title.get(lang) or self.title.get("ca") or self.title.get("es") or self.id

    def localized_answer(self, lang: str) -> str:
        answer = self.answer or {}
        return answer.get(lang) or answer.get("ca") or answer.get("es") or ""


class EngineCard(KBCard):
    """A card enriched at render time. Built per call, never stored."""

    source: CardSourceKind = "validated-kb"
    ui_paths_allowed: List[str] = []
    steps: List[str] = []
