# baas_gateway/src/auth/routes.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from ...middlewares.jwt_auth import CurrentUser, bearer_token, get_current_user
from .controller import AuthController
from .schema import (
    ChangePasswordRequest,
    ForgetPasswordRequest,
    LogoutRequest,
    RefreshTokenRequest,
    ResendRequest,
    SigninRequest,
    SignupRequest,
    VerificationRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_auth_controller() -> AuthController:
    return AuthController()


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(request: SignupRequest, auth: AuthController = Depends(get_auth_controller)):
    """Register a new user (unverified) and e-mail an OTP.

    If the e-mail belongs to an unverified or soft-deleted account, that account is
    restored and a fresh OTP is sent. Verified accounts answer 409.
    """
    return await auth.signup(request)


@router.post("/signin")
async def signin(request: SigninRequest, auth: AuthController = Depends(get_auth_controller)):
    """Password sign-in. 401 on bad credentials, 403 when the e-mail is not verified."""
    return await auth.signin(request)


@router.post("/verify-otp")
async def verify_otp(request: VerificationRequest, auth: AuthController = Depends(get_auth_controller)):
    """Verify an e-mailed OTP and receive tokens. Works for signup, MFA and password reset codes."""
    return await auth.verify_otp(request)


@router.post("/resend")
async def resend_otp(request: ResendRequest, auth: AuthController = Depends(get_auth_controller)):
    return await auth.resend(request)


@router.post("/forget-password")
async def forget_password(request: ForgetPasswordRequest, auth: AuthController = Depends(get_auth_controller)):
    """Step 1 of password recovery: e-mail an OTP.

    Then verify it via /auth/verify-otp and call /auth/change-password with only newPassword.
    """
    return await auth.forget_password(request)


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    current: CurrentUser = Depends(get_current_user),
    auth: AuthController = Depends(get_auth_controller),
):
    """Change password. oldPassword is required unless the token came from the forget-password flow."""
    return await auth.change_password(current, request)


@router.post("/refresh-token")
async def refresh_token(
    http_request: Request,
    response: Response,
    body: Optional[RefreshTokenRequest] = None,
    auth: AuthController = Depends(get_auth_controller),
):
    """Exchange a refresh token (body or Bearer header) for a new access token"""
    response.headers["Cache-Control"] = "no-store"
    token = (body.refresh_token if body else None) or bearer_token(http_request)
    return await auth.refresh_token(token)


@router.post("/logout")
async def logout(
    body: Optional[LogoutRequest] = None,
    current: CurrentUser = Depends(get_current_user),
    auth: AuthController = Depends(get_auth_controller),
):
    return await auth.logout(current, body.refresh_token if body else None)


@router.post("/logout-all")
async def logout_all(
    current: CurrentUser = Depends(get_current_user),
    auth: AuthController = Depends(get_auth_controller),
):
    """Invalidate every access and refresh token of the user"""
    return await auth.logout_all(current)


@router.get("/me")
async def me(
    current: CurrentUser = Depends(get_current_user),
    auth: AuthController = Depends(get_auth_controller),
):
    return await auth.me(current)


@router.delete("/account")
async def delete_account(
    current: CurrentUser = Depends(get_current_user),
    auth: AuthController = Depends(get_auth_controller),
):
    return await auth.delete_account(current)


# ----- OAuth -----

@router.get("/google")
async def google_auth(auth: AuthController = Depends(get_auth_controller)):
    """Start the Google OAuth flow (redirects to Google)"""
    return RedirectResponse(await auth.oauth_authorization_url("google"))


@router.get("/google/callback")
async def google_auth_callback(
    code: str = Query(...),
    state: str = Query(...),
    auth: AuthController = Depends(get_auth_controller),
):
    return await auth.oauth_callback("google", code, state)


@router.get("/facebook")
async def facebook_auth(auth: AuthController = Depends(get_auth_controller)):
    """Start the Facebook OAuth flow (redirects to Facebook)"""
    return RedirectResponse(await auth.oauth_authorization_url("facebook"))


@router.get("/facebook/callback")
async def facebook_auth_callback(
    code: str = Query(...),
    state: str = Query(...),
    auth: AuthController = Depends(get_auth_controller),
):
    return await auth.oauth_callback("facebook", code, state)
