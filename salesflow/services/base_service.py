"""Shared base for services bound to one job's SQLAlchemy session."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class BaseService:
    """Services share the caller's session; the caller owns its lifetime."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def commit(self) -> None:
        """Commit, rolling back before re-raising so the session stays usable."""
        try:
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.warning(
                "db.commit_failed",
                extra={"event": "db.commit_failed", "service": type(self).__name__, "error": str(exc)},
            )
            raise

    def rollback(self) -> None:
        self.db.rollback()
