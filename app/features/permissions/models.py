"""
Permission models for module-scoped RBAC.

This module implements:
- The four fixed actions (create, read, update, delete)
- Role grants: one row of four booleans per (role, module)
- User overrides: one row of four booleans per (user, module), additive only
"""
import enum
from dataclasses import dataclass, replace
from sqlalchemy import String, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin


class Action(str, enum.Enum):
    """Verb checked against a module."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def column(self) -> str:
        """Name of the boolean column holding this action."""
        return f"can_{self.value}"


@dataclass(frozen=True)
class PermissionFlags:
    """The four booleans of one (subject, module) grant."""
    create: bool = False
    read: bool = False
    update: bool = False
    delete: bool = False

    @classmethod
    def full(cls) -> "PermissionFlags":
        return cls(create=True, read=True, update=True, delete=True)

    def allows(self, action: Action) -> bool:
        return getattr(self, action.value)

    def with_action(self, action: Action, value: bool) -> "PermissionFlags":
        """Copy with one action changed and the other three kept."""
        return replace(self, **{action.value: value})

    @property
    def is_full(self) -> bool:
        return self.create and self.read and self.update and self.delete


# ============================================================================
# Grant rows
# ============================================================================

class PermissionFlagsMixin:
    """Boolean columns shared by role grants and user overrides."""
    can_create: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def allows(self, action: Action) -> bool:
        return bool(getattr(self, action.column))

    def flags(self) -> PermissionFlags:
        return PermissionFlags(
            create=self.can_create,
            read=self.can_read,
            update=self.can_update,
            delete=self.can_delete,
        )

    def apply(self, flags: PermissionFlags) -> None:
        """Replace all four columns."""
        self.can_create = flags.create
        self.can_read = flags.read
        self.can_update = flags.update
        self.can_delete = flags.delete


class RolePermission(Base, UlidPrimaryKeyMixin, PermissionFlagsMixin, TimestampMixin):
    """
    Grant of the four verbs from a role to a module.

    A missing row means all four are false for that role on that module.
    """
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "module_id", name="uq_role_permissions_role_module"),
    )

    role_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    module_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    role: Mapped["Role"] = relationship("Role", back_populates="permissions")  # type: ignore

    def __repr__(self) -> str:
        return f"<RolePermission(role_id={self.role_id}, module_id={self.module_id}, flags={self.flags()})>"


class UserPermission(Base, UlidPrimaryKeyMixin, PermissionFlagsMixin, TimestampMixin):
    """
    Per-user override layered on top of the role grant.

    Overrides only ever add access; a false column never revokes what the
    role grants.
    """
    __tablename__ = "user_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_user_permissions_user_module"),
    )

    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    module_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    user: Mapped["User"] = relationship("User", back_populates="permissions")  # type: ignore

    def __repr__(self) -> str:
        return f"<UserPermission(user_id={self.user_id}, module_id={self.module_id}, flags={self.flags()})>"
