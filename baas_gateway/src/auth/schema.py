from pydantic import BaseModel, EmailStr, validator
from pydantic.alias_generators import to_camel
from typing import Optional
from enum import Enum


# ----- Enums -----
class OtpPurpose(str, Enum):
    SIGNUP = "signup"
    MFA = "mfa"
    FORGET_PASSWORD = "forget_password"

class LoginSource(str, Enum):
    DEFAULT = "default"
    GOOGLE = "google"
    FACEBOOK = "facebook"

# ----- Validators -----
def password_validator(v: str) -> str:
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters long')
    if not any(c.isupper() for c in v):
        raise ValueError('Password must contain at least one uppercase letter')
    if not any(c.islower() for c in v):
        raise ValueError('Password must contain at least one lowercase letter')
    if not any(c.isdigit() for c in v):
        raise ValueError('Password must contain at least one digit')
    return v

def name_validator(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError('Name must not be empty')
    if len(v) > 100:
        raise ValueError('Name must be at most 100 characters long')
    return v

class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

# ----- Request Models -----
class SignupRequest(CamelModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    mfa_enabled: Optional[bool] = None

    _validate_password = validator('password', allow_reuse=True)(password_validator)
    _validate_first_name = validator('first_name', allow_reuse=True)(name_validator)
    _validate_last_name = validator('last_name', allow_reuse=True)(name_validator)

class SigninRequest(CamelModel):
    email: EmailStr
    password: str

class VerificationRequest(CamelModel):
    email: EmailStr
    otp: str

    @validator("otp")
    def validate_otp_format(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit():
            raise ValueError("OTP must be numeric")
        return v

class ResendRequest(CamelModel):
    email: EmailStr

class ForgetPasswordRequest(CamelModel):
    email: EmailStr

class ChangePasswordRequest(CamelModel):
    old_password: Optional[str] = None
    new_password: str

    _validate_password = validator('new_password', allow_reuse=True)(password_validator)

class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None

class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None

# ----- Token Models -----
class JWTClaims(BaseModel):
    user_id: str
    email: str
    pin: str
    forget_password: bool = False
    exp: int
    iat: int
    jti: str
