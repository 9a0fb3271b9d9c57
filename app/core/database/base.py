"""
SQLAlchemy declarative base and common model utilities.

All SQLAlchemy models should inherit from Base.
"""
from datetime import datetime
from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import ulid


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return ulid.ulid()


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.
    
    Usage:
        from app.core.database.base import Base, UlidPrimaryKeyMixin
        
        class Module(Base, UlidPrimaryKeyMixin):
            __tablename__ = "modules"
            
            name: Mapped[str] = mapped_column(String(100))
    """
    pass


class UlidPrimaryKeyMixin:
    """
    Mixin adding a ULID string primary key.

    ULIDs sort by creation time, so ordering by id breaks ties between rows
    created one after another.
    """
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    
    Usage:
        class User(Base, UlidPrimaryKeyMixin, TimestampMixin):
            __tablename__ = "users"
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
