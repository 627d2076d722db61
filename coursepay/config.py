from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Values in .env fill in whatever the environment does not set
load_dotenv()


@dataclass
class Settings:
    db_url: str = os.getenv("DB_URL", "sqlite+aiosqlite:///./coursepay.db")

    telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    # TELEGRAM_ADMIN_IDS and LOG_CHAT_ID are re-read per call by services/security.py and
    # services/notifications.py, so they are not snapshotted here

    # Reconciliation
    claim_validity_hours: int = int(os.getenv("CLAIM_VALIDITY_HOURS", "48"))
    sweep_interval_seconds: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))

    # Enrollment collaborator
    enrollment_base_url: str = os.getenv("ENROLLMENT_BASE_URL", "")
    enrollment_api_token: str = os.getenv("ENROLLMENT_API_TOKEN", "")
    enrollment_timeout_seconds: float = float(os.getenv("ENROLLMENT_TIMEOUT_SECONDS", "10"))

    rate_limit_user_msg_per_min: int = int(os.getenv("RATE_LIMIT_USER_MSG_PER_MIN", "20"))


settings = Settings()
