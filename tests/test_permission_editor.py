"""
Tests for the role and user permission editors and the folder cascade.
"""
import pytest
from sqlalchemy import select

from app.core.exceptions import NotFound, PersistenceFailure, Unauthorized
from app.features.modules.models import ModuleType
from app.features.modules.tree import ModuleTree
from app.features.permissions.dependencies import can_access
from app.features.permissions.models import Action, PermissionFlags, RolePermission, UserPermission
from app.features.permissions.schemas import PermissionEntry
from app.features.permissions.service import (
    cascade_permission,
    get_role_permission_rows,
    set_role_permissions,
    set_user_permissions,
    toggle_role_permission,
)

from tests.conftest import create_module_row, grant_role


UNKNOWN_ID = "01HZZZZZZZZZZZZZZZZZZZZZZZ"


async def role_flags(db, role_id):
    result = await db.execute(
        select(RolePermission)
        .where(RolePermission.role_id == role_id)
        .execution_options(populate_existing=True)
    )
    return {grant.module_id: grant.flags() for grant in result.scalars().all()}


async def folder_with_five_descendants(db):
    """
    folder
      sub (folder)
        leaf 1, leaf 2, leaf 3
      page
    """
    folder = await create_module_row(db, "Folder", type=ModuleType.FOLDER)
    sub = await create_module_row(db, "Sub", type=ModuleType.FOLDER, parent=folder)
    page = await create_module_row(db, "Page", parent=folder, order=2)
    leaves = [await create_module_row(db, f"Leaf {i}", parent=sub, order=i) for i in (1, 2, 3)]
    return folder, [sub, page, *leaves]


class TestCascade:
    """The cascade policy as a pure function."""

    async def test_folder_cascades_and_keeps_other_verbs(self, db):
        folder, descendants = await folder_with_five_descendants(db)
        other = await create_module_row(db, "Other")
        tree = ModuleTree([folder, other, *descendants])

        rw = PermissionFlags(read=True, update=True)
        current = {module.id: rw for module in [folder, other, *descendants]}

        changed = cascade_permission(tree, current, folder.id, Action.READ, False)

        assert set(changed) == {folder.id, *(module.id for module in descendants)}
        assert all(flags == PermissionFlags(update=True) for flags in changed.values())

    async def test_page_does_not_cascade(self, db):
        folder, descendants = await folder_with_five_descendants(db)
        page = descendants[1]
        tree = ModuleTree([folder, *descendants])

        changed = cascade_permission(tree, {}, page.id, Action.CREATE, True)

        assert changed == {page.id: PermissionFlags(create=True)}

    def test_unknown_module(self):
        with pytest.raises(NotFound):
            cascade_permission(ModuleTree([]), {}, UNKNOWN_ID, Action.READ, True)


class TestSetRolePermissions:

    async def test_upsert_replaces_listed_modules_only(self, db, admin_user, guest_role):
        first = await create_module_row(db, "First")
        second = await create_module_row(db, "Second")
        third = await create_module_row(db, "Third")
        await grant_role(db, guest_role, first, read=True, update=True)
        await grant_role(db, guest_role, second, read=True)

        touched = await set_role_permissions(db, guest_role.id, [
            PermissionEntry(module_id=first.id, can_create=True),
            PermissionEntry(module_id=third.id, can_read=True, can_delete=True),
        ], admin_user)

        assert {grant.module_id for grant in touched} == {first.id, third.id}
        flags = await role_flags(db, guest_role.id)
        assert flags == {
            first.id: PermissionFlags(create=True),
            second.id: PermissionFlags(read=True),
            third.id: PermissionFlags(read=True, delete=True),
        }

    async def test_one_row_per_role_and_module(self, db, admin_user, guest_role):
        module = await create_module_row(db, "Only")
        for _ in range(2):
            await set_role_permissions(db, guest_role.id, [
                PermissionEntry(module_id=module.id, can_read=True),
            ], admin_user)

        result = await db.execute(select(RolePermission).where(RolePermission.role_id == guest_role.id))
        assert len(result.scalars().all()) == 1

    async def test_unknown_module_rolls_back_batch(self, db, admin_user, guest_role):
        module = await create_module_row(db, "Known")
        await grant_role(db, guest_role, module, read=True)
        module_id = module.id

        with pytest.raises(PersistenceFailure):
            await set_role_permissions(db, guest_role.id, [
                PermissionEntry(module_id=module_id, can_create=True, can_read=True),
                PermissionEntry(module_id=UNKNOWN_ID, can_read=True),
            ], admin_user)

        assert await role_flags(db, guest_role.id) == {module_id: PermissionFlags(read=True)}

    async def test_unknown_role(self, db, admin_user):
        with pytest.raises(NotFound):
            await set_role_permissions(db, UNKNOWN_ID, [], admin_user)

    async def test_requires_admin(self, db, guest_user, guest_role):
        module = await create_module_row(db, "Page")
        with pytest.raises(Unauthorized):
            await set_role_permissions(db, guest_role.id, [
                PermissionEntry(module_id=module.id, can_read=True),
            ], guest_user)
        assert await role_flags(db, guest_role.id) == {}


class TestToggleRolePermission:

    async def test_folder_toggle_cascades(self, db, admin_user, guest_role):
        folder, descendants = await folder_with_five_descendants(db)
        for module in [folder, *descendants]:
            await grant_role(db, guest_role, module, create=True, read=True)

        await toggle_role_permission(db, guest_role.id, folder.id, Action.READ, False, admin_user)

        flags = await role_flags(db, guest_role.id)
        assert len(flags) == 6
        assert all(value == PermissionFlags(create=True) for value in flags.values())

    async def test_toggle_creates_missing_rows(self, db, admin_user, guest_role):
        folder, descendants = await folder_with_five_descendants(db)

        await toggle_role_permission(db, guest_role.id, descendants[0].id, Action.READ, True, admin_user)

        # sub and its three leaves
        flags = await role_flags(db, guest_role.id)
        assert len(flags) == 4
        assert folder.id not in flags
        assert all(value == PermissionFlags(read=True) for value in flags.values())

    async def test_unknown_module(self, db, admin_user, guest_role):
        with pytest.raises(NotFound):
            await toggle_role_permission(db, guest_role.id, UNKNOWN_ID, Action.READ, True, admin_user)


class TestSetUserPermissions:

    async def test_overrides_extend_role_access(self, db, admin_user, guest_user, fresh_user):
        module = await create_module_row(db, "Reports")
        assert not can_access(await fresh_user(guest_user.id), module.id, Action.READ)

        await set_user_permissions(db, guest_user.id, [
            PermissionEntry(module_id=module.id, can_read=True),
        ], admin_user)

        user = await fresh_user(guest_user.id)
        assert can_access(user, module.id, Action.READ)
        assert not can_access(user, module.id, Action.DELETE)

    async def test_unknown_module_rolls_back_batch(self, db, admin_user, guest_user):
        module = await create_module_row(db, "Reports")

        with pytest.raises(PersistenceFailure):
            await set_user_permissions(db, guest_user.id, [
                PermissionEntry(module_id=module.id, can_read=True),
                PermissionEntry(module_id=UNKNOWN_ID, can_read=True),
            ], admin_user)

        result = await db.execute(select(UserPermission))
        assert result.scalars().all() == []

    async def test_unknown_user(self, db, admin_user):
        with pytest.raises(NotFound):
            await set_user_permissions(db, UNKNOWN_ID, [], admin_user)


class TestRolePermissionRows:

    async def test_lists_active_modules_with_grants(self, db, guest_role):
        folder = await create_module_row(db, "Folder", type=ModuleType.FOLDER)
        page = await create_module_row(db, "Page", parent=folder)
        await create_module_row(db, "Hidden", is_active=False)
        await grant_role(db, guest_role, page, read=True)

        rows = await get_role_permission_rows(db, guest_role.id)

        assert [module.id for module, _ in rows] == [folder.id, page.id]
        grants = dict((module.id, grant) for module, grant in rows)
        assert grants[folder.id] is None
        assert grants[page.id].flags() == PermissionFlags(read=True)
