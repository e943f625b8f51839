from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "Senior Check-In Companion"
    SECRET_KEY: str = "change-me-in-production"
    DATABASE_URL: str = "sqlite:///data/checkin.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:8050",
        "http://localhost:8001",
        "https://localhost:8050",
        "https://127.0.0.1:8050",
    ]
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_HOURS: int = 72
    AUTH_COOKIE_NAME: str = "checkin_session"
    AUTH_COOKIE_SECURE: bool = False
    AUTH_COOKIE_HTTPONLY: bool = True
    AUTH_COOKIE_SAMESITE: str = "lax"  # strict | lax | none
    AUTH_COOKIE_DOMAIN: str | None = None
    AUTH_COOKIE_PATH: str = "/"
    SECURITY_HEADERS_ENABLED: bool = True
    SECURITY_CSP: str = (
        "default-src 'self'; "
        "img-src 'self' data: blob:; "
        "style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; "
        "connect-src 'self' https: wss:; "
        "frame-ancestors 'none'; "
        "base-uri 'self';"
    )
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    SENIOR_STORE_BACKEND: str = "sql"  # sql | http
    SENIOR_STORE_URL: str | None = None
    SENIOR_STORE_TOKEN: str | None = None
    SENIOR_STORE_TIMEOUT_SECONDS: float = 10.0
    BRAIN_GAMES_WRITE_POLICY: str = "serial"  # serial | coalesce
    HEALTH_QUIZ_WRITE_POLICY: str = "serial"  # serial | coalesce
    DEVICE_TIMEZONE: str = "UTC"
    DEFAULT_CHECK_IN_SCHEDULES: list[str] = ["11:00 AM"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    @property
    def store_backend(self) -> str:
        return (self.SENIOR_STORE_BACKEND or "sql").strip().lower()

    def validate_security_configuration(self) -> None:
        errors: list[str] = []
        if self.store_backend not in {"sql", "http"}:
            errors.append("SENIOR_STORE_BACKEND must be 'sql' or 'http'")
        if self.store_backend == "http" and not (self.SENIOR_STORE_URL or "").strip():
            errors.append("SENIOR_STORE_URL is required when SENIOR_STORE_BACKEND=http")
        for name in ("BRAIN_GAMES_WRITE_POLICY", "HEALTH_QUIZ_WRITE_POLICY"):
            if (getattr(self, name) or "").strip().lower() not in {"serial", "coalesce"}:
                errors.append(f"{name} must be 'serial' or 'coalesce'")

        if self.is_production_like:
            if self.SECRET_KEY == "change-me-in-production":
                errors.append("SECRET_KEY must be changed from the default value")
            if not self.AUTH_COOKIE_SECURE:
                errors.append("AUTH_COOKIE_SECURE must be true in production-like environments")
            if (self.AUTH_COOKIE_SAMESITE or "").strip().lower() == "none" and not self.AUTH_COOKIE_SECURE:
                errors.append("AUTH_COOKIE_SAMESITE=none requires AUTH_COOKIE_SECURE=true")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Invalid configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
