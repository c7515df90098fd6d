"""
Name: Permission Resolver Tests

Responsibilities:
  - Effective permission set is the union over active roles
  - Exact token matching (no prefix / separator normalization)
  - Expired assignments grant nothing
  - Cache hit / miss / failure paths and invalidation
  - Storage failures propagate (fail closed)
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

pytestmark = pytest.mark.unit


async def _resolver_with_user(clock, roles: dict[str, list[str]], cache=None):
    from eccb.identity.resolver import PermissionResolver
    from eccb.infrastructure.repositories.in_memory import InMemoryAccessRepository

    repo = InMemoryAccessRepository()
    for name, tokens in roles.items():
        role = await repo.add_role_with_permissions(name, tokens)
        await repo.create_assignment(user_id="u1", role_id=role.id, assigned_by=None)
    resolver = PermissionResolver(repo, cache=cache, now=clock.utcnow)
    return resolver, repo


class TestEffectivePermissions:
    @pytest.mark.asyncio
    async def test_union_over_roles(self, clock):
        resolver, _ = await _resolver_with_user(
            clock, {"A": ["p1", "p2"], "B": ["p2", "p3"]}
        )

        assert await resolver.get_user_permissions("u1") == {"p1", "p2", "p3"}

    @pytest.mark.asyncio
    async def test_user_without_roles_has_empty_set(self, clock):
        resolver, _ = await _resolver_with_user(clock, {})

        assert await resolver.get_user_permissions("u1") == frozenset()
        assert await resolver.check_user_permission("u1", "p1") is False

    @pytest.mark.asyncio
    async def test_matching_is_exact(self, clock):
        resolver, _ = await _resolver_with_user(clock, {"A": ["p4:all"]})

        assert await resolver.check_user_permission("u1", "p4") is False
        assert await resolver.check_user_permission("u1", "p4:all") is True

    @pytest.mark.asyncio
    async def test_separators_are_not_normalized(self, clock):
        resolver, _ = await _resolver_with_user(clock, {"A": ["music.create"]})

        assert await resolver.check_user_permission("u1", "music:create") is False

    @pytest.mark.asyncio
    async def test_expired_assignment_grants_nothing(self, clock):
        from eccb.identity.resolver import PermissionResolver
        from eccb.infrastructure.repositories.in_memory import (
            InMemoryAccessRepository,
        )

        repo = InMemoryAccessRepository()
        role = await repo.add_role_with_permissions("TEMP", ["p1"])
        await repo.create_assignment(
            user_id="u1",
            role_id=role.id,
            assigned_by=None,
            expires_at=clock.utcnow() - timedelta(seconds=1),
        )
        resolver = PermissionResolver(repo, now=clock.utcnow)

        assert await resolver.get_user_permissions("u1") == frozenset()
        assert await resolver.get_user_roles("u1") == frozenset()


class TestRoles:
    @pytest.mark.asyncio
    async def test_role_helpers(self, clock):
        resolver, _ = await _resolver_with_user(clock, {"LIBRARIAN": ["music.view"]})

        assert await resolver.has_any_role("u1", ["MUSICIAN", "LIBRARIAN"]) is True
        assert await resolver.is_librarian("u1") is True
        assert await resolver.is_admin("u1") is False

    @pytest.mark.asyncio
    async def test_admin_roles_count_as_staff(self, clock):
        resolver, _ = await _resolver_with_user(clock, {"ADMIN": []})

        assert await resolver.is_admin("u1") is True
        assert await resolver.is_staff("u1") is True


class TestCache:
    @pytest.mark.asyncio
    async def test_second_lookup_is_served_from_cache(self, clock):
        from eccb.infrastructure.permission_cache import InMemoryPermissionCache

        cache = InMemoryPermissionCache(clock=clock)
        resolver, repo = await _resolver_with_user(clock, {"A": ["p1"]}, cache=cache)
        await resolver.get_user_permissions("u1")

        # R: un permiso nuevo no se ve hasta invalidar.
        await repo.add_role_with_permissions("A", ["p9"])
        assert await resolver.get_user_permissions("u1") == {"p1"}

        await resolver.invalidate("u1")
        assert await resolver.get_user_permissions("u1") == {"p1", "p9"}

    @pytest.mark.asyncio
    async def test_cache_read_failure_falls_back_to_storage(self, clock):
        cache = AsyncMock()
        cache.get.side_effect = ConnectionError("redis down")
        cache.setex.side_effect = ConnectionError("redis down")
        resolver, _ = await _resolver_with_user(clock, {"A": ["p1"]}, cache=cache)

        assert await resolver.get_user_permissions("u1") == {"p1"}

    @pytest.mark.asyncio
    async def test_corrupt_cache_entry_is_ignored(self, clock):
        cache = AsyncMock()
        cache.get.return_value = "{not json"
        resolver, _ = await _resolver_with_user(clock, {"A": ["p1"]}, cache=cache)

        assert await resolver.get_user_permissions("u1") == {"p1"}
        cache.setex.assert_awaited()


class TestFailClosed:
    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, clock):
        from eccb.crosscutting.exceptions import DatabaseError
        from eccb.identity.resolver import PermissionResolver

        repo = AsyncMock()
        repo.get_user_permission_names.side_effect = DatabaseError("db down")
        resolver = PermissionResolver(repo, now=clock.utcnow)

        with pytest.raises(DatabaseError):
            await resolver.check_user_permission("u1", "p1")
