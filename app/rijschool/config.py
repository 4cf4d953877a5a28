import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    cors_origins: str
    demo_password: str
    allow_demo_seed: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    env = _getenv("ENV", "development")
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=env,
        database_url=_getenv("DATABASE_URL", "sqlite:///rijschool.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=_getenv("CORS_ORIGINS", "*"),
        demo_password=_getenv("DEMO_PASSWORD", "Test1234!"),
        allow_demo_seed=_getbool("ALLOW_DEMO_SEED", env not in ("prod", "production")),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "CORS_ORIGINS": [o.strip() for o in s.cors_origins.split(",") if o.strip()] or ["*"],
        "DEMO_PASSWORD": s.demo_password,
        "ALLOW_DEMO_SEED": s.allow_demo_seed,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
