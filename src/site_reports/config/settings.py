from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Photo analysis (Ollama vision model)
    ollama_host: str = "http://localhost:11434"
    analysis_model: str = "llava"
    analysis_enabled: bool = True
    analysis_timeout_seconds: float = Field(default=60.0, gt=0)
    analysis_temperature: float = 0.1
    analysis_max_tokens: int = 600

    # Identity used for messages posted by the pipeline
    system_sender_id: str = "ai-system"
    system_sender_name: str = "AI Assistant"

    log_level: str = "INFO"
    json_logs: bool = False

    model_config = SettingsConfigDict(
        env_prefix="SITE_REPORTS_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
