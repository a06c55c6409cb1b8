from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field
from typing import List


class QuizVariant(BaseModel):
    """A named test configuration: where its questions come from and how many to serve."""
    name: str = Field(..., description="Short identifier, also used in button payloads", pattern=r"^[A-Za-z0-9_\-]{1,48}$")
    title: str = Field("", description="Human readable title shown on the variant button")
    source: str = Field(..., description="Path to the question bank (.json, .txt or .docx)")
    questions_per_test: int = Field(30, ge=1)

    @property
    def display_title(self) -> str:
        return self.title or self.name


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    BOT_TOKEN: str
    LANGUAGE: str = Field("UK", description="Language of bot messages: UK or EN")

    # Database
    DATABASE_URL: str = Field(..., description="Async connection string (postgresql+asyncpg://...)")

    # Redis (per-identity event locks)
    REDIS_URL: str = Field("redis://localhost:6379/0")
    IDENTITY_LOCK_TIMEOUT_SECONDS: float = 30.0
    IDENTITY_LOCK_WAIT_SECONDS: float = 10.0

    # Test variants
    TEST_VARIANTS: List[QuizVariant] = Field(
        default_factory=lambda: [QuizVariant(name="default", title="", source="questions.json", questions_per_test=30)]
    )
    NAME_MIN_LENGTH: int = 3
    NAME_MAX_LENGTH: int = 255
    NEXT_QUESTION_DELAY_SECONDS: float = 0.5

    # Delivery
    DELIVERY_MODE: str = Field("polling", description="polling or webhook")
    WEBHOOK_URL: str = Field("", description="Public HTTPS base URL, required in webhook mode")
    WEBHOOK_PATH: str = "/webhook"
    WEBHOOK_SECRET: str = Field("", description="Secret token Telegram echoes in X-Telegram-Bot-Api-Secret-Token")

    # Reporting API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    ADMIN_API_TOKEN: str = Field("", description="If set, the reporting API requires X-Admin-Token")

    # Result notifications
    ADMIN_CHAT_IDS: str = Field("", description="Comma separated Telegram chat ids receiving result digests")
    NOTIFY_ANSWERS_PER_MESSAGE: int = 10
    NOTIFY_MESSAGE_DELAY_SECONDS: float = 0.1
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT_SECONDS: int = 10
    EMAIL_FROM: str = ""
    EMAIL_RECIPIENTS: str = Field("", description="Comma separated result email recipients")

    # Monitoring
    MONITOR_INTERVAL_MINUTES: int = 60
    STALLED_SESSION_HOURS: int = 24
    MONITOR_JOB_ID: str = "stalled_sessions_report"

    # Environment
    TIMEZONE: str = "Europe/Kyiv"
    ENV: str = "production"  # development, staging, production
    DEBUG: bool = False

    @property
    def admin_chat_ids(self) -> List[int]:
        return [int(part) for part in self.ADMIN_CHAT_IDS.split(",") if part.strip()]

    @property
    def email_recipients(self) -> List[str]:
        return [part.strip() for part in self.EMAIL_RECIPIENTS.split(",") if part.strip()]

settings = Settings()
