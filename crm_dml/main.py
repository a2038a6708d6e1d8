from __future__ import annotations

import logging

from crm_dml.core.config import get_settings
from crm_dml.core.database import create_db_engine, create_session_factory, init_db
from crm_dml.crm.store import SqlAlchemyRecordStore
from crm_dml.logging import configure_logging
from crm_dml.otel import setup_otel


logger = logging.getLogger("crm_dml.main")


def bootstrap(database_url: str | None = None) -> SqlAlchemyRecordStore:
    """Wire logging, tracing and the database, and hand back a store for the exercises."""
    configure_logging()
    settings = get_settings()
    setup_otel(settings)

    engine = create_db_engine(database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    logger.info("store.ready", extra={"operation": "bootstrap"})
    return SqlAlchemyRecordStore(session_factory())
