from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="KAS_", env_file=".env", extra="ignore")

    # Full SQLAlchemy URL. When empty, a SQL Server ODBC URL is built from the db_* parts below.
    database_url: str = "sqlite:///./kas.db"

    # Use the common instance name format used by SSMS, e.g. .\SQLEXPRESS
    db_server: str = r".\SQLEXPRESS"
    db_name: str = "KasLedger"
    db_trusted_connection: bool = True
    db_user: str | None = None
    db_password: str | None = None
    db_driver: str = "ODBC Driver 17 for SQL Server"

    # Create tables from the ORM metadata at startup (SQLite/dev). Production uses alembic.
    auto_create_schema: bool = False

    jwt_secret: str = "change-me"
    jwt_expire_minutes: int = 60

    # Cookie-based auth: store JWT in HttpOnly cookie.
    auth_cookie_name: str = "kas_auth"
    auth_cookie_samesite: str = "lax"  # lax|strict|none
    auth_cookie_secure: bool = False

    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8000,http://127.0.0.1:8000"

    # Seeded administrator (created only when the users table is empty)
    admin_email: str = "admin@forkris.com"
    admin_password: str = "admin"

    # "Today" for the previous-month backfill pass
    time_zone: str = "Asia/Jakarta"

    # A submission parked on the opening-balance prompt longer than this may be discarded
    pending_submission_ttl_seconds: int = 900
    ledger_write_retries: int = 3

    log_level: str = "INFO"
    log_dir: str | None = None


settings = Settings()
