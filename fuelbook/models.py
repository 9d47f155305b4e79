from sqlalchemy import JSON, DateTime, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from fuelbook.db import Base

JSON_TYPE = JSON().with_variant(JSONB, "postgresql")


class LedgerRecord(Base):
    __tablename__ = "ledger_record"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON_TYPE, nullable=False)
    last_updated: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
