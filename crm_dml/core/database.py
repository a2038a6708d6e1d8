from __future__ import annotations

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_dml.core.config import get_settings


class Base(DeclarativeBase):
    pass


def create_db_engine(database_url: str | None = None, *, echo: bool | None = None) -> Engine:
    settings = get_settings()
    url = database_url or settings.database_url
    resolved_echo = settings.database_echo if echo is None else echo

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        # In-memory databases live per connection, so every session must share one.
        if parsed.database in (None, "", ":memory:"):
            return create_engine(
                url,
                echo=resolved_echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, echo=resolved_echo, connect_args={"check_same_thread": False})

    return create_engine(url, echo=resolved_echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(engine: Engine) -> None:
    # Register every mapped table on Base.metadata before creating them.
    import crm_dml.crm.models  # noqa: F401

    Base.metadata.create_all(bind=engine)

