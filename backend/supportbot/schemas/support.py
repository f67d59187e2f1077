from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel

from supportbot.schemas.knowledge import EngineCard

ResponseMode = Literal["card", "fallback"]
IntentType = Literal["operational", "informational"]
RetrievalConfidence = Literal["high", "medium", "low"]
AssistantTone = Literal["neutral", "warm"]


class ClarifyOption(BaseModel):
    index: int
    card_id: str
    label: str
    ui_path: Optional[str] = None


class BotResponse(BaseModel):
    ok: bool = True
    mode: ResponseMode
    card_id: str
    answer: str
    guide_id: Optional[str] = None
    ui_paths: List[str] = []
    clarify_options: Optional[List[ClarifyOption]] = None


class OrchestratorMeta(BaseModel):
    intent_type: IntentType
    retrieval_confidence: Optional[RetrievalConfidence] = None
    best_card_id: Optional[str] = None
    best_score: Optional[int] = None
    second_card_id: Optional[str] = None
    second_score: Optional[int] = None
    selected_card_id: str
    used_clarification: bool = False
    trusted_operational_card: bool = False
    used_ai_intent: bool = False


class OrchestratorResult(BaseModel):
    response: BotResponse
    meta: OrchestratorMeta
    selected_card: Optional[EngineCard] = None
    resolved_language: str


class GoldenCase(BaseModel):
    question: str
    lang: str
    expected_card_id: str
    critical: bool = False


class GoldenSetMetrics(BaseModel):
    total: int = 0
    top1_hits: int = 0
    top1_accuracy: float = 0.0
    critical_total: int = 0
    critical_top1_hits: int = 0
    critical_top1_accuracy: float = 0.0
    fallback_count: int = 0
    fallback_rate: float = 0.0
    operational_without_card: int = 0


class EvalStats(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0

    @property
    def accuracy(self) -> float:
        return self.passed / self.total if self.total > 0 else 0.0


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = []
    warnings: List[str] = []


class QualityGateResult(BaseModel):
    ok: bool
    errors: List[str] = []
    warnings: List[str] = []
    stats: Dict[str, Any] = {}


class HumanIssue(BaseModel):
    field: str
    message: str
    severity: Literal["error", "warning"]
