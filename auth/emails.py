"""
auth/emails.py -- Message bodies for password reset and email verification.

Builders only: they return EmailData and never talk to SMTP. Links are
HTML-escaped before interpolation into the HTML part.
"""

from __future__ import annotations

import html

from core.mailer import EmailData

_BUTTON_STYLE = (
    "display: inline-block; padding: 10px 20px; background-color: #007bff; "
    "color: white; text-decoration: none; border-radius: 5px;"
)


def build_reset_email(to: str, url: str) -> EmailData:
    safe_url = html.escape(url, quote=True)
    text = (
        "You are receiving this email because a password reset was requested for your account. "
        f"Please click on the link below to reset your password: {url}\n\n"
        "If you did not request a password reset, please ignore this email."
    )
    body = f"""
    <p>You are receiving this email because a password reset was requested for your account.</p>
    <p>Please click the button below to reset your password:</p>
    <a href="{safe_url}" style="{_BUTTON_STYLE}">Reset Password</a>
    <p>If the button doesn't work, you can also copy and paste this link into your browser: <br/> {safe_url}</p>
    <p>If you did not request a password reset, please ignore this email.</p>
    """
    return EmailData(to=to, subject="Reset Your Password", text=text, html=body)


def build_verification_email(to: str, url: str, name: str = "") -> EmailData:
    greeting = f"Hi {name}," if name else "Hi,"
    safe_url = html.escape(url, quote=True)
    text = (
        f"{greeting}\n\n"
        f"Please confirm your email address by opening this link: {url}\n\n"
        "If you did not create an account, you can ignore this email."
    )
    body = f"""
    <p>{html.escape(greeting)}</p>
    <p>Please confirm your email address by clicking the button below:</p>
    <a href="{safe_url}" style="{_BUTTON_STYLE}">Verify Email</a>
    <p>If the button doesn't work, copy and paste this link into your browser: <br/> {safe_url}</p>
    <p>If you did not create an account, you can ignore this email.</p>
    """
    return EmailData(to=to, subject="Verify your email address", text=text, html=body)
