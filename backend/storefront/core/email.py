"""Outbound notifications via the Resend API.

The account and purchase services depend on the NotificationSink protocol
only; ResendNotificationSink is the production implementation and tests
substitute an in-memory fake. Plain-text templates, one per TemplateKind.
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

import httpx

from storefront.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0

_SHOP_NAME = "3D Model Shop"


class TemplateKind(StrEnum):
    """Message templates the sink knows how to render."""

    VERIFICATION = "VERIFICATION"
    RESET = "RESET"
    ORDER_CONFIRMATION = "ORDER_CONFIRMATION"


@dataclass(frozen=True)
class Notification:
    """A templated message addressed to one recipient.

    Attributes:
        recipient_email: Address to deliver to.
        template: Which template to render.
        parameters: Template parameters (links, order summary).
    """

    recipient_email: str
    template: TemplateKind
    parameters: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    """Accepts a notification and reports whether it was handed off."""

    async def send(self, notification: Notification) -> bool: ...


def format_price(amount: int) -> str:
    """Format an integer yen amount for display (e.g. ``¥1,000``)."""
    return f"¥{amount:,}"


def render_notification(notification: Notification) -> tuple[str, str]:
    """Render subject and plain-text body for a notification.

    Args:
        notification: Message to render.

    Returns:
        (subject, text) tuple.

    Raises:
        KeyError: If a required template parameter is missing.
    """
    params = notification.parameters

    if notification.template is TemplateKind.VERIFICATION:
        return (
            f"Confirm your email address - {_SHOP_NAME}",
            (
                "Click the link below to confirm your email address:\n\n"
                f"{params['url']}\n\n"
                "This link expires in 24 hours. "
                "If you didn't create an account, you can safely ignore this email."
            ),
        )

    if notification.template is TemplateKind.RESET:
        return (
            f"Reset your password - {_SHOP_NAME}",
            (
                "Click the link below to choose a new password:\n\n"
                f"{params['url']}\n\n"
                "This link expires in 1 hour. "
                "If you didn't request a reset, you can safely ignore this email."
            ),
        )

    lines = [
        f"Thank you for your purchase (order {params['order_number']}).",
        "",
    ]
    lines.extend(
        f"- {item['name']}: {format_price(item['price'])}" for item in params["items"]
    )
    lines.extend(
        [
            "",
            f"Total: {format_price(params['total_amount'])}",
            "",
            "Download your files here (link valid for 7 days):",
            params["download_url"],
        ]
    )
    if params.get("signup_url"):
        lines.extend(
            [
                "",
                "Create an account with this email address to keep access "
                "to your purchases after the link expires:",
                params["signup_url"],
            ]
        )
    return (f"Order confirmation {params['order_number']} - {_SHOP_NAME}", "\n".join(lines))


class ResendNotificationSink:
    """NotificationSink backed by a simple HTTP POST to Resend.

    Args:
        api_key: Resend API key.
        sender: From address.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        timeout: float = _RESEND_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout

    async def send(self, notification: Notification) -> bool:
        """Deliver a notification. Never raises; failures return False."""
        subject, text = render_notification(notification)
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self._sender,
                        "to": notification.recipient_email,
                        "subject": subject,
                        "text": text,
                    },
                    timeout=self._timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPError:
            logger.warning(
                "Failed to send email",
                extra={"template": str(notification.template)},
                exc_info=True,
            )
            return False
        return True


def get_notification_sink() -> NotificationSink:
    """Build the production notification sink from settings."""
    return ResendNotificationSink(
        api_key=settings.resend_api_key.get_secret_value(),
        sender=settings.email_from,
    )
