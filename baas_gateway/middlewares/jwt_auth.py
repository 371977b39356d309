import logging
import os
import secrets
import time
import uuid
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from jose import jwt, JWTError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pydantic import BaseModel

from ..config import get_settings
from ..database.db import get_database
from ..database.redis_client import get_redis
from ..src.auth.schema import JWTClaims

logger = logging.getLogger(__name__)

BLOCKLIST_PREFIX = "jwt:blocklist:"


class CurrentUser(BaseModel):
    claims: JWTClaims
    user: Dict[str, Any]

    @property
    def id(self) -> str:
        return self.user["id"]


class JWTAuthController:
    """Issues and verifies access/refresh tokens.

    Access tokens are RS256 JWTs carrying the user's logout pin; refresh tokens are
    opaque values stored in the ``refresh_tokens`` collection.
    """

    # RSA keys are shared across instances
    _private_key = None
    _public_key = None

    def __init__(self, db=None, redis=None):
        self.settings = get_settings()
        self.db = db if db is not None else get_database()
        self.redis = redis if redis is not None else get_redis()

        self.algorithm = self.settings.JWT_ALGORITHM
        self.access_token_expire_minutes = self.settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        self.refresh_token_expire_days = self.settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS

        self._load_or_generate_keys()

    def _load_or_generate_keys(self):
        """Load RSA keys from the configured paths or generate new ones"""
        if JWTAuthController._private_key and JWTAuthController._public_key:
            self.private_key = JWTAuthController._private_key
            self.public_key = JWTAuthController._public_key
            return

        private_key_path = self.settings.JWT_PRIVATE_KEY_PATH
        public_key_path = self.settings.JWT_PUBLIC_KEY_PATH

        if private_key_path and os.path.exists(private_key_path) and \
           public_key_path and os.path.exists(public_key_path):
            with open(private_key_path, "rb") as f:
                self.private_key = serialization.load_pem_private_key(f.read(), password=None)
            with open(public_key_path, "rb") as f:
                self.public_key = serialization.load_pem_public_key(f.read())
        else:
            self.private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
            self.public_key = self.private_key.public_key()

            # Persist generated keys when paths are provided
            if private_key_path and public_key_path:
                private_pem = self.private_key.private_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PrivateFormat.PKCS8,
                    encryption_algorithm=serialization.NoEncryption()
                )
                public_pem = self.public_key.public_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PublicFormat.SubjectPublicKeyInfo
                )
                os.makedirs(os.path.dirname(private_key_path) or ".", exist_ok=True)
                os.makedirs(os.path.dirname(public_key_path) or ".", exist_ok=True)
                with open(private_key_path, "wb") as f:
                    f.write(private_pem)
                with open(public_key_path, "wb") as f:
                    f.write(public_pem)
                logger.info(f"Generated JWT signing keys at {private_key_path}")

        JWTAuthController._private_key = self.private_key
        JWTAuthController._public_key = self.public_key

    @property
    def _private_pem(self) -> str:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode("utf-8")

    @property
    def _public_pem(self) -> str:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode("utf-8")

    # ----- issuing -----

    def create_access_token(self, user: Dict[str, Any], forget_password: bool = False) -> str:
        """Create a JWT access token bound to the user's current logout pin"""
        now = datetime.utcnow()
        claims = {
            "sub": user["id"],
            "email": user["email"],
            "pin": user.get("logout_pin") or "",
            "fp": forget_password,
            "typ": "access",
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
        }
        return jwt.encode(claims, self._private_pem, algorithm=self.algorithm)

    def create_refresh_token(self, user_id: str) -> str:
        """Create a refresh token and store it in the database"""
        token = secrets.token_urlsafe(32)
        self.db.refresh_tokens.insert_one({
            "token": token,
            "user_id": user_id,
            "expires_at": datetime.utcnow() + timedelta(days=self.refresh_token_expire_days),
            "is_active": True,
            "created_at": datetime.utcnow(),
        })
        return token

    def issue_tokens(self, user: Dict[str, Any], forget_password: bool = False) -> Dict[str, str]:
        return {
            "accessToken": self.create_access_token(user, forget_password=forget_password),
            "refreshToken": self.create_refresh_token(user["id"]),
        }

    # ----- verification -----

    def decode_access_token(self, token: str) -> JWTClaims:
        """Check signature, expiry and token type"""
        try:
            payload = jwt.decode(token, self._public_pem, algorithms=[self.algorithm])
        except JWTError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid token: {str(e)}"
            )

        if payload.get("typ") != "access":
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")

        try:
            return JWTClaims(
                user_id=payload["sub"],
                email=payload.get("email", ""),
                pin=payload.get("pin", ""),
                forget_password=bool(payload.get("fp", False)),
                exp=payload["exp"],
                iat=payload["iat"],
                jti=payload["jti"],
            )
        except KeyError as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: missing {e}")

    async def verify_access_token(self, token: str) -> CurrentUser:
        """Decode the token, then check the blocklist and the user's logout pin"""
        claims = self.decode_access_token(token)

        if await self.redis.exists(f"{BLOCKLIST_PREFIX}{claims.jti}"):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has been revoked")

        user = self.db.users.find_one({"id": claims.user_id, "deleted_at": None})
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

        if (user.get("logout_pin") or "") != claims.pin:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session has been logged out")

        return CurrentUser(claims=claims, user=user)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        """Verify refresh token from database"""
        token_data = self.db.refresh_tokens.find_one({"token": token, "is_active": True})
        if not token_data:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )

        expires_at = token_data.get("expires_at")
        if expires_at and expires_at < datetime.utcnow():
            self.db.refresh_tokens.update_one({"token": token}, {"$set": {"is_active": False}})
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Refresh token expired"
            )

        return token_data

    # ----- revocation -----

    async def revoke_access_token(self, claims: JWTClaims) -> None:
        """Blocklist the token's jti until it would have expired anyway"""
        ttl = int(claims.exp - time.time())
        if ttl > 0:
            await self.redis.set(f"{BLOCKLIST_PREFIX}{claims.jti}", "1", ex=ttl)

    def revoke_refresh_token(self, token: str, user_id: str) -> None:
        self.db.refresh_tokens.update_one(
            {"token": token, "user_id": user_id},
            {"$set": {"is_active": False}}
        )

    def revoke_all_refresh_tokens(self, user_id: str) -> None:
        self.db.refresh_tokens.update_many(
            {"user_id": user_id, "is_active": True},
            {"$set": {"is_active": False}}
        )


@lru_cache()
def get_jwt_auth() -> JWTAuthController:
    return JWTAuthController()


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return None


async def get_current_user(
    request: Request,
    jwt_auth: JWTAuthController = Depends(get_jwt_auth),
) -> CurrentUser:
    """FastAPI dependency: authenticate the Bearer access token and track last activity"""
    access_token = bearer_token(request)
    if not access_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    current = await jwt_auth.verify_access_token(access_token)
    jwt_auth.db.users.update_one(
        {"id": current.id},
        {"$set": {"last_activity_at": datetime.utcnow()}}
    )
    return current
