"""
Role model.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin


ADMIN_ROLE_NAME = "admin"


class Role(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    Named group of users.

    Names are stored lower-cased. A role holds at most one RolePermission row
    per module; the role named "admin" bypasses every permission check.
    """
    __tablename__ = "roles"
    
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    
    # Relationships
    permissions: Mapped[list["RolePermission"]] = relationship(  # type: ignore
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin"
    )
    
    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r})>"
