"""Configuration management for the survey engagement engine."""

import os
from typing import Optional


class Settings:
    """Simple settings class."""

    def __init__(self) -> None:
        try:
            from dotenv import load_dotenv
            load_dotenv()
        except ImportError:
            pass

        # Database
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./survey_engine.db")
        self.db_echo: bool = os.getenv("DB_ECHO", "false").lower() == "true"

        # Application
        self.debug: bool = os.getenv("DEBUG", "false").lower() == "true"
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")

        # Survey backend
        self.survey_api_base_url: str = os.getenv("SURVEY_API_BASE_URL", "")
        self.survey_api_timeout: float = float(os.getenv("SURVEY_API_TIMEOUT", "10"))
        self.survey_user_id: str = os.getenv("SURVEY_USER_ID", "")
        self.survey_region_id: Optional[int] = self._optional_int(os.getenv("SURVEY_REGION_ID"))

        # Survey engagement
        self.survey_reminder_interval_hours: int = int(os.getenv("SURVEY_REMINDER_INTERVAL_HOURS", "24"))
        # Pause between a successful hero answer and the remaining-questions form
        self.survey_remaining_questions_delay: float = float(
            os.getenv("SURVEY_REMAINING_QUESTIONS_DELAY", "1.5")
        )
        self.recent_stops_limit: int = int(os.getenv("RECENT_STOPS_LIMIT", "10"))

    @staticmethod
    def _optional_int(value: Optional[str]) -> Optional[int]:
        """Parse an optional integer environment value."""
        if value is None or not value.strip():
            return None
        return int(value)


settings = Settings()
