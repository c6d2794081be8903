from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .config import settings


def _normalized_database_url(raw_url: str) -> str:
    """
    DATABASE_URL normalisation:
    - postgres:// or postgresql:// without a driver is rewritten to the psycopg3 dialect.
    - Anything else (SQLite etc.) is left as is.
    """
    if not raw_url:
        return "sqlite:///./vouchers.db"
    raw_url = raw_url.strip()
    if raw_url.startswith("postgres://"):
        return "postgresql+psycopg://" + raw_url[len("postgres://") :]
    if raw_url.startswith("postgresql://") and "+psycopg" not in raw_url.split("://", 1)[0]:
        return "postgresql+psycopg://" + raw_url[len("postgresql://") :]
    return raw_url


def build_engine(url: str):
    # In-memory SQLite: a single shared connection so tables created by init_db are visible everywhere
    connect_args = {"check_same_thread": False, "timeout": 30} if url.startswith("sqlite") else {}
    use_static_pool = url.startswith("sqlite") and ":memory:" in url
    return create_engine(
        url,
        connect_args=connect_args,
        poolclass=StaticPool if use_static_pool else None,
    )


DATABASE_URL = _normalized_database_url(settings.database_url)
engine = build_engine(DATABASE_URL)


def get_db():
    with Session(engine) as session:
        yield session


def init_db():
    # Importing the models registers their tables on SQLModel.metadata
    from voucher_engine import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
