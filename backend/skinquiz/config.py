from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    """Application configuration with environment variable support"""

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    RELOAD: bool = False
    LOG_LEVEL: str = "INFO"

    # Scoring and routing
    HIGH_CONFIDENCE_THRESHOLD: float = 85.0
    MEDIUM_CONFIDENCE_THRESHOLD: float = 60.0
    MIN_QUESTIONS: int = 8  # Floor before a high-confidence early stop

    # Classification output
    EXPLANATION_LIMIT: int = 5
    DIFFERENTIAL_EVIDENCE_LIMIT: int = 3

    # Idle sessions expire after 48 hours; every answer resets the clock
    SESSION_TTL_HOURS: int = 48

    # Data files (packaged with skinquiz)
    ARCHETYPES_FILE: str = str(DATA_DIR / "archetypes.json")
    QUESTIONS_FILE: str = str(DATA_DIR / "question_bank.json")

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
