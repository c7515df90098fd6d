"""
Name: Guard Layer Tests

Responsibilities:
  - protect_page: redirect to login (with callbackUrl) / forbidden page
  - protect_action: rate limit first, then 401, then 403
  - require_role: any-of semantics with redirects
  - End-to-end DIRECTOR scenario with a tight action limit
"""

import pytest
from starlette.requests import Request

from conftest import bearer_for, seed_user

pytestmark = pytest.mark.unit


def _request(path="/admin/music", query="", headers=None, client=("10.0.0.7", 5000)):
    raw_headers = [
        (k.lower().encode(), v.encode()) for k, v in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": query.encode(),
        "headers": raw_headers,
        "client": client,
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


class TestProtectPage:
    @pytest.mark.asyncio
    async def test_no_session_redirects_to_login_with_callback(self, container):
        from eccb.crosscutting.exceptions import RedirectRequired

        with pytest.raises(RedirectRequired) as excinfo:
            await container.guards.protect_page(
                _request(path="/admin/music", query="page=2")
            )

        assert excinfo.value.location == "/login?callbackUrl=%2Fadmin%2Fmusic%3Fpage%3D2"

    @pytest.mark.asyncio
    async def test_missing_permission_redirects_to_forbidden(self, container):
        from eccb.crosscutting.exceptions import RedirectRequired

        user = await seed_user(
            container, name="Ana", email="ana@x.com", roles={"MUSICIAN": ["music.view"]}
        )

        with pytest.raises(RedirectRequired) as excinfo:
            await container.guards.protect_page(
                _request(headers=bearer_for(container, user)), "music.edit"
            )

        assert excinfo.value.location == "/forbidden"

    @pytest.mark.asyncio
    async def test_custom_redirect_paths(self, container):
        from eccb.crosscutting.exceptions import RedirectRequired

        with pytest.raises(RedirectRequired) as excinfo:
            await container.guards.protect_page(
                _request(path="/member"), redirect_path="/member/login"
            )

        assert excinfo.value.location.startswith("/member/login?callbackUrl=")

    @pytest.mark.asyncio
    async def test_allowed_returns_context(self, container):
        user = await seed_user(
            container, name="Ana", email="ana@x.com", roles={"MUSICIAN": ["music.view"]}
        )

        ctx = await container.guards.protect_page(
            _request(headers=bearer_for(container, user)), "music.view"
        )

        assert ctx.user.id == user.id
        assert ctx.rate_limit is None


class TestProtectAction:
    @pytest.mark.asyncio
    async def test_no_session_consumes_slot_before_unauthorized(self, container):
        from eccb.crosscutting.exceptions import UnauthorizedError

        with pytest.raises(UnauthorizedError):
            await container.guards.protect_action(_request(), "music.create")

        assert await container.counter_store.get("rate-limit:ip:10.0.0.7") == "1"

    @pytest.mark.asyncio
    async def test_rate_limit_is_checked_before_session(self, container):
        from eccb.application.rate_limiting import RateLimitOptions
        from eccb.crosscutting.exceptions import RateLimitExceededError, UnauthorizedError

        opts = RateLimitOptions(limit=1, window_seconds=60)
        with pytest.raises(UnauthorizedError):
            await container.guards.protect_action(_request(), rate_limit=opts)

        with pytest.raises(RateLimitExceededError) as excinfo:
            await container.guards.protect_action(_request(), rate_limit=opts)

        assert excinfo.value.retry_after == 60
        assert excinfo.value.result.remaining == 0

    @pytest.mark.asyncio
    async def test_missing_permission_is_forbidden(self, container):
        from eccb.crosscutting.exceptions import ForbiddenError

        user = await seed_user(
            container, name="Ana", email="ana@x.com", roles={"MUSICIAN": ["music.view"]}
        )

        with pytest.raises(ForbiddenError) as excinfo:
            await container.guards.protect_action(
                _request(headers=bearer_for(container, user)), "music.delete"
            )

        assert excinfo.value.required == "music.delete"

    @pytest.mark.asyncio
    async def test_session_key_is_per_user(self, container):
        user = await seed_user(container, name="Ana", email="ana@x.com")

        await container.guards.protect_action(_request(headers=bearer_for(container, user)))

        assert await container.counter_store.get(f"rate-limit:user:{user.id}") == "1"

    @pytest.mark.asyncio
    async def test_forwarded_ip_is_used_for_anonymous_key(self, container):
        from eccb.crosscutting.exceptions import UnauthorizedError

        request = _request(headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        with pytest.raises(UnauthorizedError):
            await container.guards.protect_action(request)

        assert await container.counter_store.get("rate-limit:ip:203.0.113.5") == "1"

    @pytest.mark.asyncio
    async def test_director_tight_limit_scenario(self, container):
        from eccb.application.rate_limiting import RateLimitOptions
        from eccb.crosscutting.exceptions import RateLimitExceededError
        from eccb.identity.permissions import Permission

        director = await seed_user(
            container,
            name="Dir",
            email="dir@x.com",
            roles={"DIRECTOR": [Permission.ATTENDANCE_MARK_ALL_ACTION.value]},
        )
        request = _request(headers=bearer_for(container, director))
        opts = RateLimitOptions(limit=5, window_seconds=60)

        remaining = []
        for _ in range(5):
            ctx = await container.guards.protect_action(
                request, "attendance:mark:all", rate_limit=opts
            )
            remaining.append(ctx.rate_limit.remaining)

        assert remaining == [4, 3, 2, 1, 0]
        with pytest.raises(RateLimitExceededError):
            await container.guards.protect_action(
                request, "attendance:mark:all", rate_limit=opts
            )

    @pytest.mark.asyncio
    async def test_counter_store_outage_does_not_block(self, container):
        from unittest.mock import AsyncMock

        from eccb.application.rate_limiting import RateLimiter
        from eccb.identity.guards import Guards

        user = await seed_user(
            container, name="Ana", email="ana@x.com", roles={"MUSICIAN": ["music.view"]}
        )
        broken = AsyncMock()
        broken.get.side_effect = ConnectionError("redis down")
        guards = Guards(container.sessions, container.resolver, RateLimiter(broken))

        ctx = await guards.protect_action(
            _request(headers=bearer_for(container, user)), "music.view"
        )

        assert ctx.rate_limit.allowed is True


class TestRequireRole:
    @pytest.mark.asyncio
    async def test_any_of_roles_is_enough(self, container):
        user = await seed_user(
            container, name="Lib", email="lib@x.com", roles={"LIBRARIAN": []}
        )

        ctx = await container.guards.require_role(
            _request(headers=bearer_for(container, user)), "ADMIN", "LIBRARIAN"
        )

        assert ctx.user.email == "lib@x.com"

    @pytest.mark.asyncio
    async def test_without_role_redirects_to_forbidden(self, container):
        from eccb.crosscutting.exceptions import RedirectRequired
        from eccb.identity.roles import RoleType

        user = await seed_user(
            container, name="Mus", email="mus@x.com", roles={"MUSICIAN": []}
        )

        with pytest.raises(RedirectRequired) as excinfo:
            await container.guards.require_role(
                _request(headers=bearer_for(container, user)), RoleType.ADMIN
            )

        assert excinfo.value.location == "/forbidden"


class TestDependencyFactories:
    def _app_request(self, container, headers=None):
        from types import SimpleNamespace

        request = _request(headers=headers)
        request.scope["app"] = SimpleNamespace(state=SimpleNamespace(container=container))
        return request

    @pytest.mark.asyncio
    async def test_require_session_stores_context_on_request(self, container):
        from eccb.identity.guards import require_session

        user = await seed_user(container, name="Ana", email="ana@x.com")
        request = self._app_request(container, bearer_for(container, user))

        ctx = await require_session()(request)

        assert ctx.user.id == user.id
        assert request.state.auth is ctx

    @pytest.mark.asyncio
    async def test_require_roles_redirects_anonymous_to_login(self, container):
        from eccb.crosscutting.exceptions import RedirectRequired
        from eccb.identity.guards import require_roles

        with pytest.raises(RedirectRequired) as excinfo:
            await require_roles("ADMIN")(self._app_request(container))

        assert excinfo.value.location.startswith("/login?callbackUrl=")

    @pytest.mark.asyncio
    async def test_require_action_preset_limit(self, container):
        from eccb.identity.guards import require_action

        user = await seed_user(
            container, name="Ana", email="ana@x.com", roles={"ADMIN": ["x"]}
        )
        dependency = require_action("x", preset="admin_action")

        ctx = await dependency(self._app_request(container, bearer_for(container, user)))

        assert ctx.rate_limit.limit == 20
        assert ctx.rate_limit.remaining == 19
