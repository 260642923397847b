"""Transactional email via the Resend HTTP API.

Set RESEND_API_KEY in .env to enable delivery. Without a key every send is a
no-op that returns False, so local runs never need mail credentials.

Sends notifications for:
- Business status changes (approved, rejected, suspended, deactivated)
- Anything else falls back to the "under review" notice
- A welcome note when a visitor registers their first business

Callers send after their transaction commits, through ``deliver_quietly``.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from html import escape
from typing import Callable, Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import Config

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

_FOOTER = (
    '<div style="background:#333;color:#fff;padding:20px;text-align:center;font-size:14px;">'
    '<p style="margin:0;">Director Value - Everything you need worldwide</p>'
    "</div>"
)


class EmailDeliveryError(Exception):
    """The email API answered with a non-2xx status."""


class EmailSender:
    def __init__(
        self,
        api_key: Optional[str],
        sender: str,
        base_url: str,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if api_key:
            self.session.headers.update({
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            })

    @classmethod
    def from_config(cls, config: Config) -> EmailSender:
        return cls(
            api_key=config.resend_api_key,
            sender=config.email_from,
            base_url=config.app_base_url,
            timeout=config.http_timeout,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def send(self, to: str, subject: str, html: str) -> bool:
        """Send one message. Returns False when delivery is not configured."""
        if not self.enabled:
            logger.debug("RESEND_API_KEY not set; skipping email to %s", to)
            return False
        self._post({"from": self.sender, "to": [to], "subject": subject, "html": html})
        logger.info("Email sent to %s: %s", to, subject)
        return True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(requests.RequestException),
        reraise=True,
    )
    def _post(self, payload: dict) -> None:
        resp = self.session.post(RESEND_API_URL, json=payload, timeout=self.timeout)
        if not resp.ok:
            raise EmailDeliveryError(f"Resend returned {resp.status_code}: {resp.text[:200]}")


def _layout(header_color: str, heading: str, title: str, body: str) -> str:
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">'
        f'<div style="background:{header_color};padding:40px 20px;text-align:center;">'
        f'<h1 style="color:white;margin:0;font-size:28px;">{heading}</h1></div>'
        '<div style="padding:40px 20px;background:#f8f9fa;">'
        f'<h2 style="color:#333;margin-bottom:20px;">{title}</h2>'
        f"{body}</div>{_FOOTER}</div>"
    )


def _reason_block(label: str, reason: Optional[str], color: str) -> str:
    if not reason:
        return ""
    return (
        f'<div style="padding:20px;margin:20px 0;border-left:4px solid {color};">'
        f'<h3 style="color:{color};margin-top:0;">{label}</h3>'
        f'<p style="color:#666;margin-bottom:0;">{escape(reason)}</p></div>'
    )


def _steps(heading: str, items: list[str]) -> str:
    rows = "".join(f"<li>{item}</li>" for item in items)
    return (
        '<div style="background:white;padding:20px;margin:20px 0;">'
        f'<h3 style="color:#333;margin-top:0;">{heading}</h3>'
        f'<ul style="color:#666;line-height:1.6;">{rows}</ul></div>'
    )


def _button(href: str, label: str, color: str) -> str:
    return (
        '<div style="text-align:center;margin:30px 0;">'
        f'<a href="{href}" style="background:{color};color:white;padding:12px 30px;'
        f'text-decoration:none;border-radius:6px;font-weight:bold;">{label}</a></div>'
    )


def render_status_email(
    business_name: str,
    owner_name: str,
    status: str,
    reason: Optional[str] = None,
    category_name: Optional[str] = None,
    base_url: str = "https://directorvalue.com",
) -> tuple[str, str]:
    """Return ``(subject, html)`` for a business status notice."""
    name = escape(business_name)
    greeting = f'<p style="color:#666;line-height:1.6;">Hi {escape(owner_name)},<br><br>'

    if status == "ACTIVE":
        category = f" Your listing appears in the <strong>{escape(category_name)}</strong> category." if category_name else ""
        body = (
            f"{greeting}Great news! Your business \"<strong>{name}</strong>\" has been approved "
            f"and is now live on Director Value.{category}</p>"
            + _steps("What's next?", [
                "Your business is now visible to customers worldwide",
                "You can manage your listing in your dashboard",
                "Start receiving customer inquiries and reviews",
            ])
            + _button(f"{base_url}/dashboard/businesses", "Manage Your Business", "#667eea")
        )
        return (
            f'Your business "{business_name}" has been approved!',
            _layout("#667eea", "Congratulations!", "Your business is now live on Director Value!", body),
        )

    if status == "REJECTED":
        body = (
            f"{greeting}We've reviewed your business application for \"<strong>{name}</strong>\", "
            "and unfortunately, we're unable to approve it at this time.</p>"
            + _reason_block("Reason for rejection:", reason, "#dc2626")
            + _steps("What can you do?", [
                "Review the feedback provided above",
                "Make necessary corrections to your business information",
                "Submit a new application when ready",
            ])
            + _button(f"{base_url}/dashboard/businesses/new", "Submit New Application", "#3b82f6")
        )
        return (
            f'Update on your business application - "{business_name}"',
            _layout("#dc2626", "Application Update", "Your business application needs attention", body),
        )

    if status == "SUSPENDED":
        body = (
            f"{greeting}Your business \"<strong>{name}</strong>\" has been temporarily suspended "
            "from Director Value.</p>"
            + _reason_block("Reason for suspension:", reason, "#f59e0b")
            + _steps("To restore your listing:", [
                "Address the issues mentioned above",
                "Contact our support team to discuss the situation",
                "Wait for our team to review and restore your listing",
            ])
            + _button("mailto:support@directorvalue.com", "Contact Support", "#f59e0b")
        )
        return (
            f'Important: Your business "{business_name}" has been temporarily suspended',
            _layout("#f59e0b", "Business Suspended", "Your business has been temporarily suspended", body),
        )

    if status == "DEACTIVATED":
        body = (
            f"{greeting}Your business \"<strong>{name}</strong>\" has been deactivated and no longer "
            "appears in the directory.</p>"
            + _reason_block("Reason:", reason, "#6b7280")
            + _button("mailto:support@directorvalue.com", "Contact Support", "#6b7280")
        )
        return (
            f'Your business "{business_name}" has been deactivated',
            _layout("#6b7280", "Business Deactivated", "Your listing is no longer public", body),
        )

    body = (
        f"{greeting}We've received your business application for \"<strong>{name}</strong>\" "
        "and it's currently under review.</p>"
        + _steps("What happens next?", [
            "Our team will review your business information",
            "You'll receive an email once the review is complete",
            "The review process typically takes 1-2 business days",
        ])
    )
    return (
        f'Your business application is being reviewed - "{business_name}"',
        _layout("#3b82f6", "Application Received", "Thank you for your submission!", body),
    )


def send_business_status_email(
    sender: EmailSender,
    business_name: str,
    owner_name: str,
    owner_email: str,
    status: str,
    reason: Optional[str] = None,
    category_name: Optional[str] = None,
) -> bool:
    subject, html = render_status_email(
        business_name,
        owner_name,
        status,
        reason=reason,
        category_name=category_name,
        base_url=sender.base_url,
    )
    return sender.send(owner_email, subject, html)


@dataclass(frozen=True)
class StatusNotice:
    """Everything needed to tell an owner about a status change, detached from the session."""

    business_name: str
    owner_name: str
    owner_email: str
    status: str
    reason: Optional[str] = None
    category_name: Optional[str] = None


def send_status_notice(sender: EmailSender, notice: StatusNotice) -> bool:
    return send_business_status_email(sender, **asdict(notice))


def render_welcome_email(user_name: str, business_name: Optional[str] = None, base_url: str = "https://directorvalue.com") -> tuple[str, str]:
    listing = "Manage your business listing" if business_name else "List your own business (VIP plan)"
    body = (
        f'<p style="color:#666;line-height:1.6;">Hi {escape(user_name)},<br><br>'
        "Welcome to Director Value! We're excited to have you join our global business directory platform.</p>"
        + _steps("What you can do:", [
            "Search and discover businesses worldwide",
            "Read and write reviews",
            "Connect with local services",
            listing,
        ])
        + _button(f"{base_url}/dashboard", "Your Dashboard", "#667eea")
    )
    return (
        "Welcome to Director Value - Everything you need worldwide!",
        _layout("#667eea", "Welcome to Director Value!", "Everything you need worldwide", body),
    )


def send_welcome_email(sender: EmailSender, user_email: str, user_name: str, business_name: Optional[str] = None) -> bool:
    subject, html = render_welcome_email(user_name, business_name, base_url=sender.base_url)
    return sender.send(user_email, subject, html)


def deliver_quietly(send: Callable[..., bool], *args, **kwargs) -> bool:
    """Run one send; delivery failures are logged and reported as False."""
    try:
        return send(*args, **kwargs)
    except (EmailDeliveryError, requests.RequestException) as exc:
        logger.warning("%s failed: %s", getattr(send, "__name__", "email"), exc)
        return False
