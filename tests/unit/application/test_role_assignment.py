"""
Name: Role Assignment Use Case Tests

Responsibilities:
  - NOT_FOUND / CONFLICT typed errors
  - Assignment invalidates the permission cache
  - Audit entries for role.assign / role.remove
"""

from unittest.mock import MagicMock

import pytest

from conftest import seed_user

pytestmark = pytest.mark.unit


class TestAssignRole:
    @pytest.mark.asyncio
    async def test_assign_grants_permissions_immediately(self, container):
        user = await seed_user(container, name="Ana", email="ana@x.com")
        role = await container.access_repository.add_role_with_permissions(
            "LIBRARIAN", ["music.edit"]
        )
        audit = MagicMock()

        # R: calienta la cache con el set vacío.
        assert await container.resolver.get_user_permissions(user.id) == frozenset()

        result = await container.role_service.assign_role(
            user_id=user.id, role_id=role.id, actor_id="admin-1", audit=audit
        )

        assert result.error is None
        assert result.assignment.assigned_by == "admin-1"
        assert await container.resolver.check_user_permission(user.id, "music.edit")
        audit.record.assert_called_once()
        args, kwargs = audit.record.call_args
        assert args == ("role.assign", "User")
        assert kwargs["entity_id"] == user.id
        assert kwargs["new_values"]["role_name"] == "LIBRARIAN"

    @pytest.mark.asyncio
    async def test_unknown_user_is_not_found(self, container):
        from eccb.application.role_assignment import RoleAssignmentErrorCode

        role = await container.access_repository.add_role_with_permissions("STAFF", [])

        result = await container.role_service.assign_role(
            user_id="nope", role_id=role.id, actor_id="a", audit=MagicMock()
        )

        assert result.error.code == RoleAssignmentErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_role_is_not_found(self, container):
        from eccb.application.role_assignment import RoleAssignmentErrorCode

        user = await seed_user(container, name="Ana", email="ana@x.com")

        result = await container.role_service.assign_role(
            user_id=user.id, role_id="missing", actor_id="a", audit=MagicMock()
        )

        assert result.error.code == RoleAssignmentErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_duplicate_assignment_is_conflict(self, container):
        from eccb.application.role_assignment import RoleAssignmentErrorCode

        user = await seed_user(
            container, name="Ana", email="ana@x.com", roles={"MUSICIAN": []}
        )
        role = await container.access_repository.get_role_by_name("MUSICIAN")
        audit = MagicMock()

        result = await container.role_service.assign_role(
            user_id=user.id, role_id=role.id, actor_id="a", audit=audit
        )

        assert result.error.code == RoleAssignmentErrorCode.CONFLICT
        audit.record.assert_not_called()


class TestRemoveRole:
    @pytest.mark.asyncio
    async def test_remove_revokes_permissions(self, container):
        user = await seed_user(
            container, name="Ana", email="ana@x.com", roles={"LIBRARIAN": ["music.edit"]}
        )
        role = await container.access_repository.get_role_by_name("LIBRARIAN")
        assert await container.resolver.check_user_permission(user.id, "music.edit")
        audit = MagicMock()

        result = await container.role_service.remove_role(
            user_id=user.id, role_id=role.id, actor_id="admin-1", audit=audit
        )

        assert result.error is None
        assert not await container.resolver.check_user_permission(user.id, "music.edit")
        args, kwargs = audit.record.call_args
        assert args == ("role.remove", "User")
        assert kwargs["old_values"]["role_name"] == "LIBRARIAN"

    @pytest.mark.asyncio
    async def test_remove_unassigned_is_not_found(self, container):
        from eccb.application.role_assignment import RoleAssignmentErrorCode

        result = await container.role_service.remove_role(
            user_id="u", role_id="r", actor_id="a", audit=MagicMock()
        )

        assert result.error.code == RoleAssignmentErrorCode.NOT_FOUND


class TestAccessCatalogSeed:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, container):
        from eccb.application.access_catalog import seed_access_catalog
        from eccb.identity.roles import ROLE_DEFINITIONS

        first = await seed_access_catalog(container.access_repository)
        second = await seed_access_catalog(container.access_repository)

        roles = await container.access_repository.list_roles()
        assert len(roles) == len(ROLE_DEFINITIONS)
        assert first.new_grants > 0
        assert second.new_grants == 0

    @pytest.mark.asyncio
    async def test_seeded_director_can_mark_all_attendance(self, container):
        from eccb.application.access_catalog import seed_access_catalog

        await seed_access_catalog(container.access_repository)
        user = await seed_user(container, name="Dir", email="dir@x.com")
        director = await container.access_repository.get_role_by_name("DIRECTOR")
        await container.access_repository.create_assignment(
            user_id=user.id, role_id=director.id, assigned_by=None
        )

        assert await container.resolver.check_user_permission(
            user.id, "attendance:mark:all"
        )

    @pytest.mark.asyncio
    async def test_seeded_permission_records_are_split(self, container):
        from eccb.application.access_catalog import seed_access_catalog

        await seed_access_catalog(container.access_repository)
        admin = await container.access_repository.get_role_by_name("SUPER_ADMIN")
        records = {
            p.name: p
            for p in await container.access_repository.list_role_permissions(admin.id)
        }

        assert records["music:create"].resource == "music"
        assert records["music:create"].action == "create"
        assert records["music.smart_upload.approve"].scope == "approve"
