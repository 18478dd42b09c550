"""Shared API dependencies for session handling and service wiring.

Also exports ``require_roles`` for applications that embed this router.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from phone_auth.core.errors import AuthError, ErrorCode
from phone_auth.core.settings import Settings, settings
from phone_auth.db.session import get_session
from phone_auth.db.time import Clock, utcnow
from phone_auth.models import Account, AccountRole
from phone_auth.repositories.credential_store import CredentialStore
from phone_auth.services.auth_flow import AuthFlowOrchestrator
from phone_auth.services.otp_delivery import LoggingOtpDelivery, OtpDelivery
from phone_auth.services.token_manager import SessionResult

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_settings() -> Settings:
    """Return the active settings; overridden in tests."""
    return settings


def get_clock() -> Clock:
    """Return the wall clock; overridden in tests with a frozen one."""
    return utcnow


def get_otp_delivery() -> OtpDelivery:
    """Return the channel that delivers OTP codes."""
    return LoggingOtpDelivery()


SettingsDep = Annotated[Settings, Depends(get_settings)]
ClockDep = Annotated[Clock, Depends(get_clock)]
OtpDeliveryDep = Annotated[OtpDelivery, Depends(get_otp_delivery)]


def get_orchestrator(
    session: SessionDep,
    app_settings: SettingsDep,
    clock: ClockDep,
    delivery: OtpDeliveryDep,
) -> AuthFlowOrchestrator:
    """Build the per-request orchestrator around a request-scoped store."""
    store = CredentialStore(session, clock)
    return AuthFlowOrchestrator(store, app_settings, delivery, clock)


OrchestratorDep = Annotated[AuthFlowOrchestrator, Depends(get_orchestrator)]


def set_session_cookies(
    response: Response,
    access_token: str,
    refresh_token: str,
    app_settings: Settings,
) -> None:
    """Attach both session tokens as HTTP-only cookies."""
    common = {
        "httponly": True,
        "secure": app_settings.cookie_secure,
        "samesite": app_settings.cookie_samesite,
        "path": "/",
    }
    response.set_cookie(
        app_settings.access_cookie_name,
        access_token,
        max_age=app_settings.access_cookie_max_age,
        **common,
    )
    response.set_cookie(
        app_settings.refresh_cookie_name,
        refresh_token,
        max_age=app_settings.refresh_cookie_max_age,
        **common,
    )


def clear_session_cookies(response: Response, app_settings: Settings) -> None:
    """Expire both session cookies on the client."""
    for name in (app_settings.access_cookie_name, app_settings.refresh_cookie_name):
        response.delete_cookie(
            name,
            path="/",
            secure=app_settings.cookie_secure,
            httponly=True,
            samesite=app_settings.cookie_samesite,
        )


async def require_session(
    request: Request,
    response: Response,
    orchestrator: OrchestratorDep,
    app_settings: SettingsDep,
) -> SessionResult:
    """Authenticate the request from its cookies, re-issuing them on rotation.

    Raises:
        AuthError: If neither token can authenticate the request.
    """
    result = await orchestrator.refresh_or_validate_session(
        request.cookies.get(app_settings.access_cookie_name),
        request.cookies.get(app_settings.refresh_cookie_name),
    )
    if result.rotated and result.refresh_token is not None:
        set_session_cookies(response, result.access_token, result.refresh_token, app_settings)
    return result


SessionGateDep = Annotated[SessionResult, Depends(require_session)]


async def get_current_account(
    session_result: SessionGateDep,
    orchestrator: OrchestratorDep,
) -> Account:
    """Load the account behind the authenticated request."""
    return await orchestrator.load_account(session_result.account_id)


# Type alias for current account dependency
CurrentAccountDep = Annotated[Account, Depends(get_current_account)]


def require_roles(
    *roles: AccountRole,
    allow: bool = True,
) -> Callable[[Account], Awaitable[Account]]:
    """Build a dependency admitting only (or, with ``allow=False``, excluding) ``roles``.

    None of the auth routes need a role. This gate is for services that mount
    ``auth_router`` and protect their own routes, e.g.
    ``Depends(require_roles(AccountRole.ADMIN))``.
    """

    async def _check_role(account: CurrentAccountDep) -> Account:
        has_role = account.role in roles
        if has_role != allow:
            raise AuthError(ErrorCode.FORBIDDEN, "This action is not allowed.")
        return account

    return _check_role
