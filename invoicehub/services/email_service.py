"""
Outbound email through the Brevo transactional API.

Network failures and 5xx answers are retried with exponential back-off;
4xx answers are final. Callers get a bool and decide what a failed
delivery means for them.
"""

from dataclasses import dataclass, field
from html import escape
import logging
from typing import List, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from invoicehub.config import settings

logger = structlog.get_logger()
_std_logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"
MAX_ATTEMPTS = 3

_retry_wait = wait_exponential(multiplier=1, min=2, max=10)
_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Shared client so TLS connections are reused between sends."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
    return _http_client


class TransientEmailError(Exception):
    pass


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    html: str
    sender_name: str = field(default_factory=lambda: settings.EMAIL_FROM_NAME)
    sender_email: str = field(default_factory=lambda: settings.EMAIL_FROM_ADDRESS)

    def brevo_payload(self) -> dict:
        return {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": address} for address in self.to],
            "subject": self.subject,
            "htmlContent": self.html,
        }


async def _post_once(client: httpx.AsyncClient, message: EmailMessage) -> bool:
    try:
        response = await client.post(
            BREVO_API_URL,
            headers={"accept": "application/json", "api-key": settings.BREVO_API_KEY},
            json=message.brevo_payload(),
        )
    except httpx.TransportError as exc:
        raise TransientEmailError(str(exc)) from exc

    if response.status_code >= 500:
        raise TransientEmailError(f"Brevo answered {response.status_code}")
    if response.status_code not in (200, 201, 202):
        logger.error(
            "email_rejected",
            status_code=response.status_code,
            response=response.text[:500],
            to=message.to,
        )
        return False

    logger.info("email_sent", to=message.to, message_id=response.json().get("messageId"))
    return True


async def deliver(message: EmailMessage, client: Optional[httpx.AsyncClient] = None) -> bool:
    if not settings.BREVO_API_KEY:
        logger.warning("email_skipped_no_api_key", to=message.to)
        return False
    if not message.to:
        logger.warning("email_no_recipients", subject=message.subject)
        return False

    client = client or get_http_client()
    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TransientEmailError),
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=_retry_wait,
            before_sleep=before_sleep_log(_std_logger, logging.WARNING),
        ):
            with attempt:
                return await _post_once(client, message)
    except RetryError as exc:
        logger.error(
            "email_retries_exhausted",
            error=str(exc.last_attempt.exception()),
            to=message.to,
        )
    return False


async def send_email(to_emails: List[str], subject: str, html_content: str) -> bool:
    return await deliver(EmailMessage(to=list(to_emails), subject=subject, html=html_content))


def render_invoice_email(invoice, client, sender_name: str) -> tuple[str, str]:
    """Build (subject, html) for an invoice notification."""
    link = f"{settings.APP_DOMAIN}/invoices/{invoice.id}"
    due = invoice.due_date.isoformat() if invoice.due_date else "on receipt"
    rows = [
        ("Subtotal", f"{invoice.subtotal:.2f} {invoice.currency}"),
        (f"Tax ({invoice.tax_rate:.2f}%)", f"{invoice.tax:.2f} {invoice.currency}"),
        ("<strong>Total</strong>", f"<strong>{invoice.total:.2f} {invoice.currency}</strong>"),
        ("Due", due),
    ]
    table = "".join(f"<tr><td>{label}</td><td>{value}</td></tr>" for label, value in rows)
    html = (
        f"<p>Dear {escape(client.name)},</p>"
        f"<p>{escape(sender_name)} has sent you invoice "
        f"<strong>{escape(invoice.invoice_number)}</strong>.</p>"
        f"<table>{table}</table>"
        f'<p>View it at <a href="{link}">{link}</a>.</p>'
    )
    return f"Invoice {invoice.invoice_number} from {sender_name}", html


async def send_invoice_email(invoice, client, sender_name: str) -> bool:
    if not client.email:
        logger.warning("invoice_email_client_without_email", invoice_id=str(invoice.id))
        return False
    subject, html = render_invoice_email(invoice, client, sender_name)
    return await send_email([client.email], subject, html)
