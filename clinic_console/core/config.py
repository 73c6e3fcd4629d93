from pydantic_settings import BaseSettings
from typing import Optional, List
import os

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Clinic Console"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    TESTING: bool = os.getenv("TESTING", "0").lower() in ("1", "true", "t", "yes", "y")

    # Clinic backend
    BACKEND_API_URL: str = os.getenv("BACKEND_API_URL", "http://localhost:3000")
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Upper bound for a single preview/commit/restore round-trip
    WORKFLOW_TIMEOUT_SECONDS: float = 15.0

    # Token refresh
    REFRESH_MAX_RETRIES: int = 3
    REFRESH_INITIAL_DELAY_SECONDS: float = 2.0
    MIN_REFRESH_INTERVAL_SECONDS: float = 5.0
    ACCESS_TOKEN_LEEWAY_SECONDS: int = 30

    # Optional refresh token used to restore the operator session on startup
    REFRESH_TOKEN: Optional[str] = None

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:8080", "http://testserver"]

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()
