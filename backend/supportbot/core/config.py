from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_ROOT = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    PROJECT_NAME: str = "Support Answer Engine"

    # Languages
    SUPPORT_DEFAULT_LANGUAGE: str = "ca"

    # Retrieval thresholds (hand-tuned against the golden set)
    RETRIEVAL_DIRECT_MATCH_THRESHOLD: int = 36
    RETRIEVAL_CLARIFY_MIN_SCORE: int = 24
    RETRIEVAL_CLARIFY_MAX_GAP: int = 14
    RETRIEVAL_HIGH_CONFIDENCE_SCORE: int = 56
    RETRIEVAL_HIGH_CONFIDENCE_GAP: int = 14
    RETRIEVAL_MEDIUM_CONFIDENCE_GAP: int = 6
    RETRIEVAL_OPERATIONAL_CLARIFY_MIN_SCORE: int = 18

    # Clarify flow
    CLARIFY_MAX_OPTIONS: int = 3

    # External callbacks (intent classifier / reformatter)
    SUPPORT_CALLBACK_TIMEOUT_SECONDS: float = 4.0

    # Publish quality gate
    KB_GOLDEN_MIN_CRITICAL_TOP1: float = 0.98
    KB_EVAL_MIN_ACCURACY: float = 0.78
    KB_MAX_MISMATCH_WARNINGS: int = 30
    KB_GOLDEN_DERIVED_LIMIT: int = 45

    # Bundled KB (cards, fallbacks, eval sets, guide strings)
    KB_DATA_DIR: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    DEBUG_LOG_FILE: str = "debug.log"
    QUESTION_LOG_FILE: str = "support_questions.ndjson"
    QUESTION_LOG_ENABLED: bool = False

    model_config = SettingsConfigDict(
        env_file=str(PACKAGE_ROOT.parents[1] / ".env"),
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def kb_data_dir(self) -> Path:
        if self.KB_DATA_DIR:
            return Path(self.KB_DATA_DIR)
        return PACKAGE_ROOT / "data"


settings = Settings()
