# tests/v1/test_dependencies.py
"""Tests for API dependencies module."""

import pytest

from phone_auth.api.v1.dependencies import require_roles
from phone_auth.core.errors import AuthError, ErrorCode
from phone_auth.models import Account, AccountRole


def _account(role: AccountRole) -> Account:
    return Account(id=1, phone="912345678", role=role)


class TestRequireRoles:
    """Role gate built on top of the session gate."""

    @pytest.mark.asyncio
    async def test_allowed_role_passes(self):
        check = require_roles(AccountRole.ADMIN, AccountRole.AUTHOR)
        account = _account(AccountRole.ADMIN)
        assert await check(account) is account

    @pytest.mark.asyncio
    async def test_missing_role_is_forbidden(self):
        check = require_roles(AccountRole.ADMIN)
        with pytest.raises(AuthError) as exc_info:
            await check(_account(AccountRole.USER))
        assert exc_info.value.code is ErrorCode.FORBIDDEN
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_excluded_role_is_forbidden(self):
        check = require_roles(AccountRole.USER, allow=False)
        with pytest.raises(AuthError):
            await check(_account(AccountRole.USER))
        account = _account(AccountRole.AUTHOR)
        assert await check(account) is account
