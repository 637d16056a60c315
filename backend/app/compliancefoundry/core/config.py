from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CF_", env_file=".env", extra="ignore")

    ENV: str = Field(default="dev")
    DB_URL: str = Field(default="sqlite:///./compliancefoundry.db")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_DIR: str = Field(default="logs")

    # Uploads
    UPLOAD_DIR: str = Field(default="./uploads")
    MAX_UPLOAD_SIZE: int = Field(default=10 * 1024 * 1024)  # 10MB
    MAX_UPLOAD_FILES: int = Field(default=10)

    # AI provider (OpenAI-compatible chat completions)
    AI_PROVIDER: str = Field(default="gemini")
    AI_BASE_URL: str | None = Field(default=None)
    AI_API_KEY: str = Field(default="")
    AI_MODEL: str = Field(default="gemini-2.5-pro")
    AI_CHAT_MODEL: str = Field(default="gemini-2.5-flash")
    AI_TEMPERATURE: float = Field(default=0.2)
    AI_MAX_TOKENS: int = Field(default=8192)
    AI_MAX_RETRIES: int = Field(default=3)
    AI_TIMEOUT_S: float = Field(default=120.0)

    # Pipeline
    ADAPTER_TIMEOUT_S: float | None = Field(default=None)
    GENERATION_MAX_ATTEMPTS: int = Field(default=1, ge=1)


settings = Settings()
