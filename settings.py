"""
Runtime configuration for the scholar backend.
Everything environment-dependent is read once into a Settings object
that is handed to create_app() and from there to every component.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


def _default_database_url() -> str:
    user = os.getenv("POSTGRES_USER", "scholar_user")
    password = os.getenv("POSTGRES_PASSWORD", "scholar_pass")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "scholar_database")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


@dataclass
class Settings:
    database_url: str
    jwt_secret: str = "scholar-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    temp_permission_default_seconds: int = 3600

    storage_url: str = ""
    public_storage_url: str = ""
    storage_timeout: float = 30.0

    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    admin_password: Optional[str] = None

    cascade_max_attempts: int = 2
    log_level: str = "INFO"
    development: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        origins = os.getenv("ORIGIN", "*")
        return cls(
            database_url=os.getenv("DATABASE_URL") or _default_database_url(),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)),
            storage_url=os.getenv("STORAGE_URL", "").rstrip("/"),
            public_storage_url=os.getenv("PUBLIC_STORAGE_URL", "").rstrip("/"),
            storage_timeout=float(os.getenv("STORAGE_TIMEOUT", "30")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            admin_password=os.getenv("ADMIN_PASSWORD") or None,
            cascade_max_attempts=int(os.getenv("CASCADE_MAX_ATTEMPTS", "2")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            development=os.getenv("DEVELOPMENT", "DEV") != "PROD",
        )
