"""
SpamShield Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Versioning ---
    ENGINE_VERSION: str = "1.0.0"
    API_VERSION: str = "1"

    # --- Storage ---
    DB_PATH: str = os.getenv("SPAMSHIELD_DB", "spamshield.db")
    AUDIT_DB_PATH: str = os.getenv("SPAMSHIELD_AUDIT_DB", "spamshield_audit.db")

    # --- Rules ---
    # JSON file overriding the built-in phrase/pattern lists (empty = built-in)
    RULES_FILE: str = os.getenv("SPAMSHIELD_RULES_FILE", "")

    # --- Escalation ---
    REJECT_CONFIDENCE: float = float(
        os.getenv("SPAMSHIELD_REJECT_CONFIDENCE", "0.7")
    )
    REVIEW_CONFIDENCE: float = float(
        os.getenv("SPAMSHIELD_REVIEW_CONFIDENCE", "0.4")
    )

    # --- History ---
    HISTORY_LOOKBACK_DAYS: int = int(os.getenv("SPAMSHIELD_HISTORY_DAYS", "30"))

    # --- Records ---
    EXCERPT_LENGTH: int = 1000

    # --- Server ---
    HOST: str = os.getenv("SPAMSHIELD_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("SPAMSHIELD_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("SPAMSHIELD_CORS_ORIGINS", "*")


settings = Settings()
