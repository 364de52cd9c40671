from __future__ import annotations

from datetime import datetime, timezone
from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


class KeyValue(Base):
    __tablename__ = "kv_store"
    key: Mapped[str] = mapped_column(String, primary_key=True)
    # whole serialized document, replaced on every save
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at_utc: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
