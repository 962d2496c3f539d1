"""HTML bodies for account lifecycle emails"""
from html import escape
from typing import Optional, Tuple
from urllib.parse import quote

BUTTON_STYLE = (
    "display: inline-block; padding: 12px 24px; background-color: #2563eb; color: white; "
    "text-decoration: none; border-radius: 4px; font-weight: bold;"
)


def _action_link(url: str, label: str) -> str:
    return f"""
    <p style="margin: 20px 0;">
      <a href="{url}" target="_blank" rel="noopener noreferrer" style="{BUTTON_STYLE}">{label}</a>
    </p>
    <p style="color: #999; font-size: 12px; margin-top: 20px;">
      Or copy and paste this link into your browser:<br/>
      {url}
    </p>
    """


def verification_email(base_url: str, token: str) -> Tuple[str, str]:
    """Returns (subject, html)"""
    url = f"{base_url.rstrip('/')}/verify-email?token={quote(token)}"
    html = f"""
    <p>Welcome! Please confirm your email address.</p>
    {_action_link(url, "Verify your email")}
    <p>This link will expire in 24 hours.</p>
    """
    return "Verify your email address", html


def welcome_email(base_url: str, name: Optional[str] = None) -> Tuple[str, str]:
    greeting = f"Hi {escape(name)}," if name else "Hi there,"
    html = f"""
    <p>{greeting}</p>
    <p>Your account is ready. Thanks for signing up!</p>
    {_action_link(base_url.rstrip('/'), "Get started")}
    """
    return "Welcome aboard", html


def password_reset_email(base_url: str, token: str) -> Tuple[str, str]:
    url = f"{base_url.rstrip('/')}/reset-password?token={quote(token)}"
    html = f"""
    <p>You requested to reset your password.</p>
    {_action_link(url, "Reset your password")}
    <p>If you did not request this, you can safely ignore this email.</p>
    <p>This link will expire in 15 minutes.</p>
    """
    return "Reset your password", html
