from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # ======================
    # Database (Render-ready)
    # ======================
    DATABASE_URL: str = "sqlite:///./rank_papers.db"

    # =========
    # App
    # =========
    APP_NAME: str = "Rank Paper Service"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "*"

    # =========
    # JWT
    # =========
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440

    # =========
    # Expiry sweep
    # =========
    # 0 disables the background sweep; POST /admin/rank-papers/sweep still works
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 60
    EXPIRY_SWEEP_BATCH_SIZE: int = 200

    # =========
    # Collaborators
    # =========
    UPLOAD_PUBLIC_BASE_URL: str = ""
    NOTIFY_WEBHOOK_URL: Optional[str] = None
    NOTIFY_TIMEOUT_SECONDS: float = 5.0


settings = Settings()
