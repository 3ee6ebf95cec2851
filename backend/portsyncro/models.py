# backend/portsyncro/models.py
import enum
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class AssetClass(str, enum.Enum):
    STOCK = "stock"
    CRYPTO = "crypto"
    GOLD = "gold"
    CASH = "cash"


class Market(str, enum.Enum):
    """Listing market of an equity. Decides currency and lot convention."""
    DOMESTIC = "domestic"  # Indonesia Stock Exchange, IDR, lots of 100
    FOREIGN = "foreign"  # US listings, USD, single shares


class Currency(str, enum.Enum):
    IDR = "IDR"
    USD = "USD"


class Document(Base):
    """
    One JSON document addressed by a slash-separated key.

    Keys follow ``users/<uid>/portfolio`` and ``users/<uid>/history/<YYYY-MM-DD>``.
    """
    __tablename__ = "documents"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"<Document(key={self.key!r})>"
