import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from passlib.context import CryptContext
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from redis.exceptions import RedisError

from ...config import get_settings
from ...database.db import get_database
from ...database.redis_client import get_redis
from ...middlewares.jwt_auth import CurrentUser, JWTAuthController, get_jwt_auth
from ...utils.helperFunctions import (
    generate_logout_pin,
    generate_unique_id,
    normalize_email,
    public_user,
)
from .oauth import OAuthClient, OAuthError, OAuthNotConfiguredError, OAuthProfile, build_oauth_clients
from .otp_service import (
    OtpError,
    OtpExpiredError,
    OtpMismatchError,
    OtpService,
)
from .schema import (
    ChangePasswordRequest,
    ForgetPasswordRequest,
    LoginSource,
    OtpPurpose,
    ResendRequest,
    SigninRequest,
    SignupRequest,
    VerificationRequest,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

OAUTH_STATE_PREFIX = "oauth:state:"
OAUTH_STATE_TTL_SECONDS = 600


class AuthController:
    """Authentication use-cases: signup, OTP verification, sign-in, password and session management"""

    def __init__(
        self,
        db=None,
        redis=None,
        jwt_auth: Optional[JWTAuthController] = None,
        otp_service: Optional[OtpService] = None,
        oauth_clients: Optional[Dict[str, OAuthClient]] = None,
    ):
        self.settings = get_settings()
        self.db = db if db is not None else get_database()
        self.redis = redis if redis is not None else get_redis()
        self.jwt_auth = jwt_auth or get_jwt_auth()
        self.otp_service = otp_service or OtpService(redis=self.redis)
        self.oauth_clients = oauth_clients if oauth_clients is not None else build_oauth_clients()

    def hash_password(self, password: str) -> str:
        """Hash password using bcrypt"""
        return pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify password against hash"""
        return pwd_context.verify(plain_password, hashed_password)

    # ----- helpers -----

    def _find_active_user(self, email: str) -> Optional[Dict[str, Any]]:
        return self.db.users.find_one({"email": email, "deleted_at": None})

    def _touch(self, user_id: str) -> None:
        self.db.users.update_one({"id": user_id}, {"$set": {"last_activity_at": datetime.utcnow()}})

    def _otp_info(self) -> Dict[str, Any]:
        return {"timeout": self.settings.OTP_TTL, "unit": "mins"}

    @staticmethod
    def _ensure_not_locked(user: Dict[str, Any]) -> None:
        locked_until = user.get("account_locked_until")
        if locked_until and locked_until > datetime.utcnow():
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account locked due to too many failed attempts. Try again later."
            )

    async def _register_failed_otp(self, user: Dict[str, Any]) -> None:
        updated = self.db.users.find_one_and_update(
            {"id": user["id"]},
            {"$inc": {"failed_otp_attempts": 1}},
            return_document=ReturnDocument.AFTER,
        )
        attempts = (updated or {}).get("failed_otp_attempts", 0)
        if attempts >= self.settings.OTP_MAX_FAILED_ATTEMPTS:
            locked_until = datetime.utcnow() + timedelta(minutes=self.settings.ACCOUNT_LOCK_MINUTES)
            self.db.users.update_one(
                {"id": user["id"]},
                {"$set": {"failed_otp_attempts": 0, "account_locked_until": locked_until}}
            )
            await self.otp_service.discard(user["email"])
            logger.warning(f"Account {user['id']} locked until {locked_until.isoformat()} after {attempts} failed OTP attempts")

    async def _complete_signin(self, user: Dict[str, Any], message: str) -> Dict[str, Any]:
        """Shared tail of password and OAuth sign-in: MFA challenge or token issue"""
        self._touch(user["id"])

        if user.get("mfa_enabled"):
            try:
                await self.otp_service.issue(user["email"], OtpPurpose.MFA, name=user.get("first_name"))
            except OtpError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
            return {
                "success": True,
                "message": "Verification code sent to your email",
                "data": {"user": public_user(user), "otp": self._otp_info()},
                "mfa": {"required": True},
            }

        return {
            "success": True,
            "message": message,
            "tokens": self.jwt_auth.issue_tokens(user),
            "data": {"user": public_user(user)},
            "mfa": {"required": False},
        }

    # ----- signup / verification -----

    async def signup(self, request: SignupRequest) -> Dict[str, Any]:
        """Create a new unverified user, or restore an unverified/soft-deleted one, then e-mail an OTP"""
        email = normalize_email(request.email)
        now = datetime.utcnow()

        existing = self.db.users.find_one({"email": email})
        if existing and existing.get("verified") and existing.get("deleted_at") is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

        set_fields = {
            "password_hash": self.hash_password(request.password),
            "first_name": request.first_name,
            "last_name": request.last_name,
            "verified": False,
            "deleted_at": None,
            "failed_otp_attempts": 0,
            "account_locked_until": None,
            "logout_pin": generate_logout_pin(),
            "updated_at": now,
        }
        insert_fields = {
            "id": generate_unique_id("user"),
            "email": email,
            "login_source": LoginSource.DEFAULT.value,
            "authorizer_id": None,
            "created_at": now,
        }
        if request.mfa_enabled is not None:
            set_fields["mfa_enabled"] = request.mfa_enabled
        else:
            insert_fields["mfa_enabled"] = False

        try:
            user = self.db.users.find_one_and_update(
                {"email": email},
                {"$set": set_fields, "$setOnInsert": insert_fields},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

        if existing:
            logger.info(f"Restored account {user['id']} on signup")

        try:
            await self.otp_service.issue(email, OtpPurpose.SIGNUP, name=request.first_name)
        except (OtpError, RedisError) as e:
            logger.warning(f"Signup OTP for {email} not delivered: {e}")

        self._touch(user["id"])

        return {
            "success": True,
            "message": "User registered successfully. Please verify the OTP sent to your email.",
            "data": {"user": public_user(user), "otp": self._otp_info()},
        }

    async def verify_otp(self, request: VerificationRequest) -> Dict[str, Any]:
        email = normalize_email(request.email)
        user = self._find_active_user(email)
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid OTP")

        self._ensure_not_locked(user)

        try:
            purpose = await self.otp_service.verify(email, request.otp)
        except OtpExpiredError as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
        except OtpMismatchError as e:
            await self._register_failed_otp(user)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
        except RedisError as e:
            logger.error(f"OTP store unavailable while verifying {email}: {e}")
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Verification temporarily unavailable")

        now = datetime.utcnow()
        updates = {
            "verified": True,
            "failed_otp_attempts": 0,
            "account_locked_until": None,
            "last_activity_at": now,
            "updated_at": now,
        }
        self.db.users.update_one({"id": user["id"]}, {"$set": updates})
        user.update(updates)

        return {
            "success": True,
            "message": "OTP verified successfully",
            "tokens": self.jwt_auth.issue_tokens(
                user, forget_password=purpose == OtpPurpose.FORGET_PASSWORD
            ),
            "data": {"user": public_user(user)},
            "mfa": {"required": False},
        }

    async def resend(self, request: ResendRequest) -> Dict[str, Any]:
        email = normalize_email(request.email)
        user = self._find_active_user(email)
        if not user:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to send OTP email")

        try:
            purpose = await self.otp_service.pending_purpose(email) or OtpPurpose.SIGNUP
            await self.otp_service.issue(email, purpose, name=user.get("first_name"))
        except OtpError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except RedisError as e:
            logger.error(f"OTP resend for {email} failed: {e}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to send OTP email")

        return {"success": True, "message": "OTP sent successfully", "data": {"otp": self._otp_info()}}

    # ----- sign-in -----

    async def signin(self, request: SigninRequest) -> Dict[str, Any]:
        email = normalize_email(request.email)
        user = self._find_active_user(email)

        if not user or not user.get("password_hash") or \
           not self.verify_password(request.password, user["password_hash"]):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

        if not user.get("verified"):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User not verified")

        self._ensure_not_locked(user)
        return await self._complete_signin(user, "Signed in successfully")

    async def oauth_authorization_url(self, provider: str) -> str:
        client = self.oauth_clients.get(provider)
        if client is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider '{provider}'")

        state = secrets.token_urlsafe(24)
        try:
            url = client.authorization_url(state)
        except OAuthNotConfiguredError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

        await self.redis.set(f"{OAUTH_STATE_PREFIX}{state}", provider, ex=OAUTH_STATE_TTL_SECONDS)
        return url

    async def oauth_callback(self, provider: str, code: str, state: str) -> Dict[str, Any]:
        client = self.oauth_clients.get(provider)
        if client is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider '{provider}'")

        key = f"{OAUTH_STATE_PREFIX}{state}"
        stored = await self.redis.get(key)
        await self.redis.delete(key)
        if stored != provider:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid OAuth state")

        try:
            profile = await client.fetch_profile(code)
        except OAuthNotConfiguredError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        except OAuthError as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

        return await self.oauth_signin(profile)

    async def oauth_signin(self, profile: OAuthProfile) -> Dict[str, Any]:
        """Upsert the OAuth identity as a verified user, then finish sign-in"""
        email = normalize_email(profile.email)
        now = datetime.utcnow()
        existing = self.db.users.find_one({"email": email})

        if existing:
            set_fields = {
                "verified": True,
                "authorizer_id": profile.subject,
                "updated_at": now,
            }
            claimed = not existing.get("verified") or existing.get("deleted_at") is not None
            if claimed:
                # provider owns the e-mail; drop credentials set by whoever registered it unverified
                set_fields.update({
                    "password_hash": "",
                    "login_source": profile.provider,
                    "mfa_enabled": False,
                    "deleted_at": None,
                    "failed_otp_attempts": 0,
                    "account_locked_until": None,
                    "logout_pin": generate_logout_pin(),
                })
                logger.info(f"Claimed account {existing['id']} via {profile.provider} sign-in")
            elif not existing.get("password_hash"):
                set_fields["login_source"] = profile.provider
            user = self.db.users.find_one_and_update(
                {"id": existing["id"]},
                {"$set": set_fields},
                return_document=ReturnDocument.AFTER,
            )
            if claimed:
                self.jwt_auth.revoke_all_refresh_tokens(existing["id"])
                await self.otp_service.discard(email)
        else:
            user = {
                "id": generate_unique_id("user"),
                "email": email,
                "password_hash": "",
                "first_name": profile.first_name,
                "last_name": profile.last_name,
                "verified": True,
                "mfa_enabled": False,
                "login_source": profile.provider,
                "authorizer_id": profile.subject,
                "failed_otp_attempts": 0,
                "account_locked_until": None,
                "logout_pin": generate_logout_pin(),
                "last_activity_at": now,
                "deleted_at": None,
                "created_at": now,
                "updated_at": now,
            }
            self.db.users.insert_one(user)
            logger.info(f"Created account {user['id']} via {profile.provider} sign-in")

        self._ensure_not_locked(user)
        return await self._complete_signin(user, f"Signed in with {profile.provider.capitalize()}")

    # ----- passwords -----

    async def forget_password(self, request: ForgetPasswordRequest) -> Dict[str, Any]:
        email = normalize_email(request.email)
        user = self._find_active_user(email)
        if not user:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to send OTP email")

        try:
            await self.otp_service.issue(email, OtpPurpose.FORGET_PASSWORD, name=user.get("first_name"))
        except OtpError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except RedisError as e:
            logger.error(f"Password reset OTP for {email} failed: {e}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to send OTP email")

        return {
            "success": True,
            "message": "Password reset OTP sent to your email",
            "data": {"otp": self._otp_info()},
        }

    async def change_password(self, current: CurrentUser, request: ChangePasswordRequest) -> Dict[str, Any]:
        """Forget-password tokens need only the new password; otherwise the old one must match"""
        user = current.user
        if not user.get("verified"):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User not verified")

        if not current.claims.forget_password:
            if not request.old_password:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Old password is required")
            if not user.get("password_hash") or \
               not self.verify_password(request.old_password, user["password_hash"]):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Old password is incorrect")

        self.db.users.update_one(
            {"id": user["id"]},
            {"$set": {
                "password_hash": self.hash_password(request.new_password),
                "logout_pin": generate_logout_pin(),
                "updated_at": datetime.utcnow(),
            }}
        )
        self.jwt_auth.revoke_all_refresh_tokens(user["id"])

        return {"success": True, "message": "Password changed successfully. Please sign in again."}

    # ----- tokens / sessions -----

    async def refresh_token(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token required")

        token_data = self.jwt_auth.verify_refresh_token(token)
        user = self.db.users.find_one({"id": token_data["user_id"], "deleted_at": None})
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

        self._touch(user["id"])
        return {
            "success": True,
            "message": "Token refreshed successfully",
            "tokens": {
                "accessToken": self.jwt_auth.create_access_token(user),
                "refreshToken": token,
            },
        }

    async def logout(self, current: CurrentUser, refresh_token: Optional[str] = None) -> Dict[str, Any]:
        await self.jwt_auth.revoke_access_token(current.claims)
        if refresh_token:
            self.jwt_auth.revoke_refresh_token(refresh_token, current.id)
        return {"success": True, "message": "Logged out successfully"}

    async def logout_all(self, current: CurrentUser) -> Dict[str, Any]:
        self.db.users.update_one(
            {"id": current.id},
            {"$set": {"logout_pin": generate_logout_pin(), "updated_at": datetime.utcnow()}}
        )
        self.jwt_auth.revoke_all_refresh_tokens(current.id)
        logger.info(f"User {current.id} logged out from all devices")
        return {"success": True, "message": "Logged out from all devices"}

    async def delete_account(self, current: CurrentUser) -> Dict[str, Any]:
        """Soft delete; a later signup with the same e-mail restores the record"""
        now = datetime.utcnow()
        self.db.users.update_one(
            {"id": current.id},
            {"$set": {"deleted_at": now, "logout_pin": generate_logout_pin(), "updated_at": now}}
        )
        self.jwt_auth.revoke_all_refresh_tokens(current.id)
        return {"success": True, "message": "Account deleted successfully"}

    async def me(self, current: CurrentUser) -> Dict[str, Any]:
        return {"success": True, "data": {"user": public_user(current.user)}}
