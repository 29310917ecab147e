from __future__ import annotations

from urllib.parse import quote_plus

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from kasledger.core.config import settings


def build_connection_url() -> str:
    if settings.database_url:
        return settings.database_url

    # Use ODBC connection string to avoid URL-escaping pain on Windows instance names.
    # Some .env examples may contain double backslashes (e.g. .\\SQLEXPRESS). ODBC expects .\SQLEXPRESS.
    server = settings.db_server.replace("\\\\", "\\")
    parts: list[str] = [
        f"DRIVER={{{settings.db_driver}}}",
        f"SERVER={server}",
        f"DATABASE={settings.db_name}",
        "TrustServerCertificate=yes",
    ]

    if settings.db_trusted_connection:
        parts.append("Trusted_Connection=yes")
    else:
        if not settings.db_user or not settings.db_password:
            raise ValueError("SQL login requires KAS_DB_USER and KAS_DB_PASSWORD")
        parts.append(f"UID={settings.db_user}")
        parts.append(f"PWD={settings.db_password}")

    odbc_str = ";".join(parts)
    return "mssql+pyodbc:///?odbc_connect=" + quote_plus(odbc_str)


def _connect_args(url: str) -> dict:
    # FastAPI runs sync routes in a threadpool.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


_url = build_connection_url()

engine = create_engine(
    _url,
    pool_pre_ping=True,
    connect_args=_connect_args(_url),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
