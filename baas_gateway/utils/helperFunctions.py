# baas_gateway/utils/helperFunctions.py
import uuid
import secrets
from datetime import datetime
from typing import Dict, Any, Optional

def generate_unique_id(prefix: str = "") -> str:
    """Generate unique ID with optional prefix"""
    unique_id = str(uuid.uuid4()).replace("-", "")[:12]
    return f"{prefix}_{unique_id}" if prefix else unique_id

def generate_logout_pin() -> str:
    """Random per-user value embedded in access tokens; rotating it logs out every session."""
    return secrets.token_hex(8)

def generate_otp(length: int = 6) -> str:
    """Numeric one-time password"""
    return "".join(str(secrets.randbelow(10)) for _ in range(length))

def normalize_email(email: str) -> str:
    return email.strip().lower()

def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime to ISO string"""
    return dt.isoformat() if dt else None

def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """User document as returned by the API (no secrets)."""
    return {
        "id": user["id"],
        "email": user["email"],
        "firstName": user.get("first_name"),
        "lastName": user.get("last_name"),
        "verified": bool(user.get("verified", False)),
        "mfaEnabled": bool(user.get("mfa_enabled", False)),
        "loginSource": user.get("login_source", "default"),
        "lastActivityAt": format_datetime(user.get("last_activity_at")),
        "createdAt": format_datetime(user.get("created_at")),
    }
