import os
from dataclasses import dataclass
from datetime import timedelta

PRODUCTION_ENVS = ("prod", "production")

# Proof-of-payment uploads are capped at 10MB; the request cap matches.
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str
    session_hours: int

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    @property
    def is_production(self) -> bool:
        return self.env in PRODUCTION_ENVS


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.") from None


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development").lower(),
        database_url=_getenv("DATABASE_URL", "sqlite:///caixa.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        session_hours=_getenv_int("SESSION_HOURS", 8),
        storage_backend=_getenv("STORAGE_BACKEND", "local").lower(),
        s3_endpoint=_getenv("S3_ENDPOINT"),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET"),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID"),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY"),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # signed-cookie session, refreshed on every request
        "PERMANENT_SESSION_LIFETIME": timedelta(hours=s.session_hours),
        "SESSION_REFRESH_EACH_REQUEST": True,
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": s.is_production,
        "MAX_CONTENT_LENGTH": MAX_UPLOAD_BYTES,
    }
