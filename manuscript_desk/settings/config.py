# manuscript_desk/settings/config.py  (Pydantic v2)
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # ---------- Public links ----------
    # confirm links are built as {APP_BASE_URL}/confirm/{token}
    APP_BASE_URL: str = Field(default="http://localhost:3000")

    # ---------- Notifications (alimtalk) ----------
    # "dummy" = log only, "bizgo" = BizGo OMNI API
    NOTIFY_TRANSPORT: Literal["bizgo", "dummy"] = Field(default="dummy")
    BIZGO_BASE_URL: str = Field(default="https://mars.ibapi.kr/api/comm")
    BIZGO_API_KEY: Optional[str] = Field(default=None)
    BIZGO_SENDER_KEY: Optional[str] = Field(default=None)
    NOTIFY_TIMEOUT_SEC: float = Field(default=15.0)
    # pause between sequential sends in a bulk batch (provider rate limit)
    NOTIFY_SEND_DELAY_MS: int = Field(default=100)

    # ---------- LLM rewrite / generation ----------
    OLLAMA_BASE_URL: str = Field(default="http://host.docker.internal:11434")
    OLLAMA_MODEL: str = Field(default="llama3.1:8b")
    LLM_TIMEOUT_SEC: float = Field(default=120.0)

    # ---------- Confirmation SLA ----------
    AUTO_APPROVE_HOURS: int = Field(default=48)
    REMINDER_HOURS: int = Field(default=24)
    SCHEDULER_ENABLED: bool = Field(default=False)
    SWEEP_CRON: str = Field(default="0 * * * *")
    APP_TZ: str = Field(default="Asia/Seoul")

    # ---------- pydantic-settings config ----------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # allow lower/upper env names
        extra="ignore",
    )

    @property
    def confirm_base_url(self) -> str:
        return (self.APP_BASE_URL or "").rstrip("/")


settings = Settings()
