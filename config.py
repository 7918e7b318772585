from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./blog.db"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    FRONTEND_ORIGINS: str = "*"
    PUBLIC_BASE_URL: str = "http://localhost:5000"

    # Sessions / passwords
    SESSION_COOKIE_NAME: str = "blog_session"
    SESSION_EXPIRE_DAYS: int = 7
    SESSION_CLEANUP_INTERVAL_MINUTES: int = 60
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_HASH_ROUNDS: int = 600000

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = None
    RESEND_FROM: Optional[str] = None

    # Uploads: "local" or "supabase". Unset means supabase when configured, else local.
    STORAGE_PROVIDER: Optional[str] = None
    UPLOAD_DIR: str = "uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Supabase (optional)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_BUCKET: Optional[str] = None

    # First-run owner provisioning
    OWNER_BOOTSTRAP_USERNAME: Optional[str] = None
    OWNER_BOOTSTRAP_PASSWORD: Optional[str] = None
    OWNER_BOOTSTRAP_EMAIL: Optional[str] = None
    OWNER_BOOTSTRAP_DISPLAY_NAME: Optional[str] = None

    RATE_LIMIT_ENABLED: bool = True
    LOGIN_RATE_LIMIT: str = "5/minute"
    PASSWORD_RESET_RATE_LIMIT: str = "3/minute"

    @property
    def allow_origins(self) -> List[str]:
        return [origin.strip() for origin in self.FRONTEND_ORIGINS.split(",") if origin.strip()]

    @property
    def secure_cookies(self) -> bool:
        return self.ENVIRONMENT.lower() not in ("development", "dev", "local", "test")

    @property
    def supabase_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY and self.SUPABASE_BUCKET)

    @property
    def storage_provider(self) -> str:
        provider = (self.STORAGE_PROVIDER or "").strip().lower()
        if provider == "local":
            return "local"
        if provider == "supabase" or self.supabase_configured:
            return "supabase"
        return "local"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
