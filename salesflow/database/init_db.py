import logging

from sqlalchemy.engine import Engine

from salesflow.core.config import get_config
from salesflow.core.logging_config import configure_logging
from salesflow.database.db import Base, build_engine
from salesflow.database import models  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Engine | None = None) -> Engine:
    """Create every table that does not exist yet."""
    engine = engine or build_engine(get_config().DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    logger.info(
        "database.tables.created",
        extra={
            "event": "database.tables.created",
            "tables": sorted(Base.metadata.tables),
        },
    )
    return engine


if __name__ == "__main__":
    configure_logging()
    init_db()
