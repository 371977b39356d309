from html import escape
from typing import Optional, Tuple

SUBJECTS = {
    "signup": "Verify your email address",
    "mfa": "Your sign-in code",
    "forget_password": "Reset your password",
}

INTROS = {
    "signup": "Thanks for signing up. Use the code below to verify your email address.",
    "mfa": "Use the code below to finish signing in.",
    "forget_password": "We received a request to reset your password. Use the code below to continue.",
}


def render_otp_email(otp: str, purpose: str, ttl_minutes: int, name: Optional[str] = None) -> Tuple[str, str, str]:
    """Return (subject, html, text) for an OTP email."""
    subject = SUBJECTS.get(purpose, SUBJECTS["signup"])
    intro = INTROS.get(purpose, INTROS["signup"])
    greeting = f"Hi {name}," if name else "Hi,"

    text = (
        f"{greeting}\n\n{intro}\n\n    {otp}\n\n"
        f"The code expires in {ttl_minutes} minutes.\n"
        "If you didn't request this, you can ignore this e-mail.\n"
    )
    html = (
        f"<p>{escape(greeting)}</p>"
        f"<p>{escape(intro)}</p>"
        f"<p style=\"font-size:24px;font-weight:bold;letter-spacing:4px\">{escape(otp)}</p>"
        f"<p>The code expires in {ttl_minutes} minutes.</p>"
        "<p>If you didn't request this, you can ignore this e-mail.</p>"
    )
    return subject, html, text
