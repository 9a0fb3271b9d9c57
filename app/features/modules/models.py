"""
Module model: one node of the navigable resource tree.
"""
import enum
from sqlalchemy import String, ForeignKey, Boolean, Integer, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin


class ModuleType(str, enum.Enum):
    """Kind of node. Only folders are expected to own children."""
    FOLDER = "FOLDER"
    PAGE = "PAGE"
    DASHBOARD = "DASHBOARD"


class Module(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    Folder, page or dashboard in the navigation tree.

    Root modules have parent_id = None. The parent/child graph must stay
    acyclic; ModuleTree.would_create_cycle guards parent reassignment.
    """
    __tablename__ = "modules"
    
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    type: Mapped[ModuleType] = mapped_column(
        SQLEnum(ModuleType),
        nullable=False,
        default=ModuleType.PAGE
    )
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("modules.id"),
        nullable=True,
        index=True
    )
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    
    # Sibling ordering, ascending
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Module(id={self.id}, slug={self.slug!r}, type={self.type.value})>"
