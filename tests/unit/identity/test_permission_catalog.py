"""
Name: Permission / Role Catalog Tests

Responsibilities:
  - Token helpers (validity, grouping by resource, storage split)
  - Default role grants: SUPER_ADMIN has everything, ADMIN lacks system:settings
"""

import pytest

pytestmark = pytest.mark.unit


class TestPermissionHelpers:
    def test_known_and_unknown_tokens(self):
        from eccb.identity.permissions import is_valid_permission

        assert is_valid_permission("music.view.all")
        assert is_valid_permission("attendance:mark:all")
        # R: los separadores no son intercambiables.
        assert not is_valid_permission("attendance.mark.all:x")
        assert not is_valid_permission("music:view:all")

    def test_by_resource_matches_both_separators(self):
        from eccb.identity.permissions import Permission, get_permissions_by_resource

        music = get_permissions_by_resource("music")

        assert Permission.MUSIC_CREATE in music
        assert Permission.MUSIC_CREATE_ACTION in music
        assert Permission.MEMBERS_READ not in music
        assert get_permissions_by_resource("nope") == []

    @pytest.mark.parametrize(
        "token, expected",
        [
            ("report.view", ("report", "view", None)),
            ("music.view.all", ("music", "view", "all")),
            ("music:smart_upload:read", ("music", "smart_upload", "read")),
            ("system", ("system", None, None)),
        ],
    )
    def test_split_token(self, token, expected):
        from eccb.identity.permissions import split_token

        assert split_token(token) == expected

    def test_action_permissions_use_colon(self):
        from eccb.identity.permissions import ACTION_PERMISSIONS

        assert ACTION_PERMISSIONS
        assert all(":" in p.value for p in ACTION_PERMISSIONS)


    def test_resource_groups_are_disjoint(self):
        from eccb.identity import permissions as p

        groups = [
            p.MUSIC_PERMISSIONS,
            p.MEMBER_PERMISSIONS,
            p.EVENT_PERMISSIONS,
            p.ATTENDANCE_PERMISSIONS,
            p.CMS_PERMISSIONS,
            p.COMMUNICATION_PERMISSIONS,
            p.ADMIN_PERMISSIONS,
        ]
        flat = [perm for group in groups for perm in group]

        assert len(flat) == len(set(flat))
        assert p.Permission.ADMIN_USERS_MANAGE in p.ADMIN_PERMISSIONS
        assert p.Permission.MEMBER_VIEW_OWN in p.MEMBER_PERMISSIONS


class TestDefaultRoleGrants:
    def test_every_role_has_defaults(self):
        from eccb.identity.roles import DEFAULT_ROLE_PERMISSIONS, ROLE_DEFINITIONS

        assert {d.name for d in ROLE_DEFINITIONS} == set(DEFAULT_ROLE_PERMISSIONS)

    def test_super_admin_and_admin(self):
        from eccb.identity.permissions import ALL_PERMISSIONS, Permission
        from eccb.identity.roles import DEFAULT_ROLE_PERMISSIONS, RoleType

        assert set(DEFAULT_ROLE_PERMISSIONS[RoleType.SUPER_ADMIN]) == set(ALL_PERMISSIONS)
        assert Permission.SYSTEM_SETTINGS not in DEFAULT_ROLE_PERMISSIONS[RoleType.ADMIN]
        assert Permission.ADMIN_USERS_MANAGE in DEFAULT_ROLE_PERMISSIONS[RoleType.ADMIN]

    def test_musician_cannot_manage_library(self):
        from eccb.identity.permissions import Permission
        from eccb.identity.roles import DEFAULT_ROLE_PERMISSIONS, RoleType

        musician = DEFAULT_ROLE_PERMISSIONS[RoleType.MUSICIAN]

        assert Permission.MUSIC_VIEW_ASSIGNED in musician
        assert Permission.MUSIC_CREATE not in musician
