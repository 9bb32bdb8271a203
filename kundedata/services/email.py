# ==== EMAIL DELIVERY SERVICE ==== #

"""
Email delivery through the Resend REST API for Kundedata.

Delivery failures never raise: callers get an ``EmailResult`` and decide
whether a failure matters (automation jobs do, lead notifications do not).
Rendering of the HTML bodies lives in ``kundedata.services.rendering``.
"""

from dataclasses import dataclass
from typing import List, Optional, Union

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from kundedata.observability.logging import get_logger
from kundedata.observability.metrics import emails_sent_total
from kundedata.observability.tracing import get_tracer
from kundedata.settings import settings


tracer = get_tracer(__name__)
logger = get_logger(__name__)


class EmailDeliveryError(Exception):
    """Raised by callers that require delivery to succeed (invoice emails)."""


@dataclass
class EmailResult:
    """Outcome of a single send attempt."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailClient:
    """
    Thin async client for Resend.

    Args:
        api_key: Resend API key; defaults to ``RESEND_API_KEY``
        api_url: Endpoint for sending; defaults to ``RESEND_API_URL``
        default_from: Sender used when a call does not pass ``from_``
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        default_from: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.api_url = api_url or settings.RESEND_API_URL
        self.default_from = default_from or settings.EMAIL_FROM
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS
        self.max_attempts = max_attempts or settings.EMAIL_MAX_ATTEMPTS

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        to: Union[str, List[str]],
        subject: str,
        html: str,
        text: Optional[str] = None,
        from_: Optional[str] = None,
        reply_to: Optional[str] = None,
        kind: str = "lead",
    ) -> EmailResult:
        """Send one email.

        Args:
            to: Recipient address or list of addresses
            subject: Subject line
            html: HTML body
            text: Optional plain text body
            from_: Sender, ``Name <address>`` or bare address
            reply_to: Optional Reply-To address
            kind: Metric label (lead, notification, invoice, auth)

        Returns:
            EmailResult with the provider message id on success
        """
        if not self.is_configured:
            logger.warning("Email not sent: RESEND_API_KEY is not configured", subject=subject)
            emails_sent_total.labels(kind=kind, status="skipped").inc()
            return EmailResult(success=False, error="E-posttjenesten er ikke konfigurert")

        body = {
            "from": from_ or self.default_from,
            "to": to if isinstance(to, list) else [to],
            "subject": subject,
            "html": html,
        }
        if text:
            body["text"] = text
        if reply_to:
            body["reply_to"] = reply_to

        with tracer.start_as_current_span("resend_send_email") as span:
            span.set_attribute("email.kind", kind)
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    # Only connection-level failures are retried; provider rejections are final
                    async for attempt in AsyncRetrying(
                        stop=stop_after_attempt(self.max_attempts),
                        wait=wait_exponential(multiplier=0.5, max=4),
                        retry=retry_if_exception_type(httpx.TransportError),
                        before_sleep=_log_retry,
                        reraise=True,
                    ):
                        with attempt:
                            response = await client.post(
                                self.api_url,
                                json=body,
                                headers={"Authorization": f"Bearer {self.api_key}"},
                            )
                    response.raise_for_status()
                    data = response.json()
            except httpx.HTTPStatusError as e:
                error = _provider_error(e.response)
                logger.error("Resend rejected email", status=e.response.status_code, error=error)
                emails_sent_total.labels(kind=kind, status="failed").inc()
                return EmailResult(success=False, error=error)
            except (httpx.HTTPError, ValueError) as e:
                logger.error("Email sending error", error=str(e))
                emails_sent_total.labels(kind=kind, status="failed").inc()
                return EmailResult(success=False, error=str(e) or "Ukjent feil ved sending av e-post")

            message_id = data.get("id")
            span.set_attribute("email.message_id", message_id or "")
            emails_sent_total.labels(kind=kind, status="sent").inc()
            return EmailResult(success=True, message_id=message_id)


def _log_retry(retry_state) -> None:
    logger.warning(
        "Retrying email delivery",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


def _provider_error(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    return payload.get("message") or payload.get("error") or f"HTTP {response.status_code}"


# ==== GLOBAL CLIENT INSTANCE ==== #

_email_client: Optional[EmailClient] = None


def get_email_client() -> EmailClient:
    """Get the process-wide email client."""
    global _email_client
    if _email_client is None:
        _email_client = EmailClient()
    return _email_client


def set_email_client(client: Optional[EmailClient]) -> None:
    """Replace the process-wide client (tests, CLI overrides)."""
    global _email_client
    _email_client = client


async def send_email(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_: Optional[str] = None,
    reply_to: Optional[str] = None,
    kind: str = "lead",
) -> EmailResult:
    """Send an email with the process-wide client."""
    return await get_email_client().send(
        to, subject, html, text=text, from_=from_, reply_to=reply_to, kind=kind
    )
