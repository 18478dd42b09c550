# src/phone_auth/api/v1/endpoints/auth.py
"""Authentication endpoints for the phone-auth API."""

from fastapi import APIRouter, Request, Response, status

from phone_auth.api.rate_limit import AUTH_LIMIT, OTP_LIMIT, limiter
from phone_auth.api.v1.dependencies import (
    CurrentAccountDep,
    OrchestratorDep,
    SessionGateDep,
    SettingsDep,
    clear_session_cookies,
    set_session_cookies,
)
from phone_auth.core.phone import MOBILE_PREFIX
from phone_auth.schemas.auth import (
    AccountSummary,
    ChangePasswordRequest,
    ConfirmPasswordRequest,
    LoginRequest,
    MessageResponse,
    OtpRequestResponse,
    ProfileResponse,
    RegisterRequest,
    SessionResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "/register",
    summary="Request a registration OTP",
    status_code=status.HTTP_201_CREATED,
    response_model=OtpRequestResponse,
)
@limiter.limit(OTP_LIMIT)
async def register(
    request: Request,
    payload: RegisterRequest,
    orchestrator: OrchestratorDep,
) -> OtpRequestResponse:
    """Issue an OTP to the phone and return the remember token for this attempt."""
    issue = await orchestrator.request_otp(payload.phone)
    return OtpRequestResponse(
        message=f"We are sending OTP to {MOBILE_PREFIX}{issue.phone}",
        phone=issue.phone,
        token=issue.remember_token,
    )


@router.post(
    "/verify-otp",
    summary="Verify a registration OTP",
    response_model=VerifyOtpResponse,
)
@limiter.limit(AUTH_LIMIT)
async def verify_otp(
    request: Request,
    payload: VerifyOtpRequest,
    orchestrator: OrchestratorDep,
) -> VerifyOtpResponse:
    """Exchange the OTP and remember token for a verify token."""
    verification = await orchestrator.verify_otp(payload.phone, payload.otp, payload.token)
    return VerifyOtpResponse(
        message="OTP is successfully verified.",
        phone=verification.phone,
        token=verification.verify_token,
    )


@router.post(
    "/confirm-password",
    summary="Create the account for a verified phone",
    status_code=status.HTTP_201_CREATED,
    response_model=SessionResponse,
)
@limiter.limit(AUTH_LIMIT)
async def confirm_password(
    request: Request,
    payload: ConfirmPasswordRequest,
    response: Response,
    orchestrator: OrchestratorDep,
    app_settings: SettingsDep,
) -> SessionResponse:
    """Set the password, create the account and open its first session."""
    auth_session = await orchestrator.confirm_account(payload.phone, payload.password, payload.token)
    set_session_cookies(
        response,
        auth_session.tokens.access_token,
        auth_session.tokens.refresh_token,
        app_settings,
    )
    return SessionResponse(
        message="Successfully created an account.",
        user=AccountSummary.model_validate(auth_session.account),
    )


@router.post(
    "/login",
    summary="Log in with phone and password",
    response_model=SessionResponse,
)
@limiter.limit(AUTH_LIMIT)
async def login(
    request: Request,
    payload: LoginRequest,
    response: Response,
    orchestrator: OrchestratorDep,
    app_settings: SettingsDep,
) -> SessionResponse:
    """Authenticate and replace any existing session with a new one."""
    auth_session = await orchestrator.login(payload.phone, payload.password)
    set_session_cookies(
        response,
        auth_session.tokens.access_token,
        auth_session.tokens.refresh_token,
        app_settings,
    )
    return SessionResponse(
        message="Successfully logged in",
        user=AccountSummary.model_validate(auth_session.account),
    )


@router.post(
    "/logout",
    summary="End the current session",
    response_model=MessageResponse,
)
async def logout(
    request: Request,
    response: Response,
    orchestrator: OrchestratorDep,
    app_settings: SettingsDep,
) -> MessageResponse:
    """Invalidate the refresh token from the cookie and clear both cookies."""
    await orchestrator.logout(request.cookies.get(app_settings.refresh_cookie_name))
    clear_session_cookies(response, app_settings)
    return MessageResponse(message="Successfully logged out. See you soon.")


@router.post(
    "/change-password",
    summary="Change the account password",
    response_model=MessageResponse,
)
async def change_password(
    payload: ChangePasswordRequest,
    session_result: SessionGateDep,
    orchestrator: OrchestratorDep,
) -> MessageResponse:
    """Re-check the old password and store the new one.

    Runs behind the session gate, so an expired access token is first rotated
    and the fresh one is used here.
    """
    await orchestrator.change_password(
        session_result.access_token,
        payload.old_password,
        payload.new_password,
    )
    return MessageResponse(message="Password successfully changed")


@router.get(
    "/me",
    summary="Return the authenticated account",
    response_model=ProfileResponse,
)
async def read_me(account: CurrentAccountDep) -> ProfileResponse:
    """Return the account behind the session cookies."""
    return ProfileResponse(
        id=account.id,
        phone=account.phone,
        role=account.role.value,
        status=account.status.value,
    )
