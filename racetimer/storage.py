"""Key-value blob store backing race persistence.

One row per key; every save replaces the whole value, so a failed or
interrupted write never leaves a partially updated document behind.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from . import models
from .db import init_db, make_engine

logger = logging.getLogger(__name__)


class BlobStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, url: str | None = None) -> "BlobStore":
        return cls(init_db(make_engine(url)))

    def load(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                row = session.get(models.KeyValue, key)
                return row.value if row else None
        except SQLAlchemyError:
            logger.exception("Failed to load %r from blob store", key)
            return None

    def save(self, key: str, value: str) -> bool:
        try:
            with self._session_factory() as session:
                row = session.get(models.KeyValue, key)
                now = datetime.now(timezone.utc).replace(tzinfo=None)
                if row:
                    row.value = value
                    row.updated_at_utc = now
                else:
                    session.add(models.KeyValue(key=key, value=value, updated_at_utc=now))
                session.commit()
            return True
        except SQLAlchemyError:
            logger.exception("Failed to save %r to blob store", key)
            return False

    def remove(self, key: str) -> bool:
        try:
            with self._session_factory() as session:
                row = session.get(models.KeyValue, key)
                if row:
                    session.delete(row)
                    session.commit()
            return True
        except SQLAlchemyError:
            logger.exception("Failed to remove %r from blob store", key)
            return False
