import logging
from dataclasses import dataclass, field
from html import escape
from typing import Optional, List, Dict, Any

import httpx

from substrack.core.config import settings
from substrack.schemas.invoice import InvoiceData
from substrack.services.invoice_service import invoice_service

logger = logging.getLogger(__name__)

WELCOME = "welcome"
PAYMENT_RECEIVED = "payment_received"
PAYMENT_FAILED = "payment_failed"


@dataclass
class EmailAttachment:
    filename: str
    content: str  # base64
    content_type: str = "application/pdf"


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    html: str
    reply_to: Optional[str] = None
    attachments: List[EmailAttachment] = field(default_factory=list)


@dataclass
class PendingNotification:
    """An email a committed transition wants sent. Rendered and delivered after the response."""
    kind: str
    to: str
    merchant_name: str
    merchant_email: str
    customer_name: str
    plan_name: str
    amount: Optional[str] = None
    next_renewal: Optional[str] = None
    features: List[str] = field(default_factory=list)
    invoice: Optional[InvoiceData] = None


def _layout(title: str, body: str, merchant_name: str, merchant_email: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; color: #1f2937; max-width: 600px; margin: 0 auto;">
  <div style="background: #4f46e5; color: #ffffff; padding: 24px; text-align: center;">
    <h1 style="margin: 0;">{title}</h1>
  </div>
  <div style="padding: 24px;">
    {body}
  </div>
  <div style="padding: 16px; text-align: center; color: #6b7280; font-size: 12px;">
    <p>This is an automated email from {escape(merchant_name)}</p>
    <p>{escape(merchant_email)}</p>
  </div>
</body>
</html>"""


def render_welcome(n: PendingNotification) -> str:
    features = "".join(f"<li>{escape(f)}</li>" for f in n.features)
    body = f"""
    <p>Dear {escape(n.customer_name)},</p>
    <p>Thank you for subscribing! Your subscription to <strong>{escape(n.plan_name)}</strong> is now active.</p>
    {f'<p>Amount: <strong>{escape(n.amount)}</strong></p>' if n.amount else ''}
    {f'<p>Next renewal: {escape(n.next_renewal)}</p>' if n.next_renewal else ''}
    {f'<p>Your plan includes:</p><ul>{features}</ul>' if features else ''}
    {'<p>Your invoice is attached to this email.</p>' if n.invoice else ''}
    """
    return _layout("Subscription Confirmed!", body, n.merchant_name, n.merchant_email)


def render_payment_received(n: PendingNotification) -> str:
    invoice_line = f"<p>Invoice #{escape(n.invoice.invoice_id)}</p>" if n.invoice else ""
    body = f"""
    {invoice_line}
    <p>Dear {escape(n.customer_name)},</p>
    <p>Thank you for your payment for <strong>{escape(n.plan_name)}</strong>. Your invoice is attached to this email.</p>
    {f'<p>Amount paid: <strong>{escape(n.amount)}</strong></p>' if n.amount else ''}
    <p>If you have any questions about this invoice, please contact us at {escape(n.merchant_email)}</p>
    """
    return _layout("Payment Received", body, n.merchant_name, n.merchant_email)


def render_payment_failed(n: PendingNotification) -> str:
    body = f"""
    <p>Dear {escape(n.customer_name)},</p>
    <p>We were unable to process your payment{f' of <strong>{escape(n.amount)}</strong>' if n.amount else ''}
    for <strong>{escape(n.plan_name)}</strong>.</p>
    <p>Please update your payment method to keep your subscription active.
    Contact us at {escape(n.merchant_email)} if you need help.</p>
    """
    return _layout("Payment Failed", body, n.merchant_name, n.merchant_email)


def subject_for(n: PendingNotification) -> str:
    if n.kind == WELCOME:
        return f"Welcome to {n.plan_name} - Subscription Confirmed"
    if n.kind == PAYMENT_RECEIVED:
        if n.invoice:
            return f"Invoice {n.invoice.invoice_id} from {n.merchant_name}"
        return f"Payment received - {n.merchant_name}"
    return f"Payment failed for {n.plan_name}"


RENDERERS = {
    WELCOME: render_welcome,
    PAYMENT_RECEIVED: render_payment_received,
    PAYMENT_FAILED: render_payment_failed,
}


class EmailSender:
    """Resend HTTP API client"""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.api_url = api_url or settings.resend_api_url
        self.timeout = timeout or settings.email_timeout

    async def send(self, message: EmailMessage) -> Dict[str, Any]:
        if not self.api_key:
            logger.warning(f"⚠️ RESEND_API_KEY not configured, skipping email '{message.subject}'")
            return {"success": False, "error": "Email not configured"}

        payload: Dict[str, Any] = {
            "from": settings.email_from_address,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.reply_to:
            payload["reply_to"] = message.reply_to
        if message.attachments:
            payload["attachments"] = [
                {"filename": a.filename, "content": a.content, "content_type": a.content_type}
                for a in message.attachments
            ]

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            data = response.json()
        logger.info(f"✅ Email sent to {', '.join(message.to)}: {data.get('id')}")
        return {"success": True, "id": data.get("id")}


class NotificationDispatcher:
    """Renders and sends queued notifications. Never raises."""

    def __init__(self, sender: Optional[EmailSender] = None):
        self.sender = sender or EmailSender()

    async def build_message(self, n: PendingNotification) -> EmailMessage:
        attachments = []
        if n.invoice is not None:
            content = await invoice_service.generate_pdf_base64(n.invoice)
            attachments.append(EmailAttachment(filename=f"invoice-{n.invoice.invoice_id}.pdf", content=content))
        return EmailMessage(
            to=[n.to],
            subject=subject_for(n),
            html=RENDERERS[n.kind](n),
            reply_to=n.merchant_email or None,
            attachments=attachments,
        )

    async def dispatch(self, notifications: List[PendingNotification]) -> int:
        """Returns how many were delivered"""
        sent = 0
        for n in notifications:
            try:
                message = await self.build_message(n)
                result = await self.sender.send(message)
                if result.get("success"):
                    sent += 1
            except Exception as e:
                logger.error(f"❌ Failed to send {n.kind} email to {n.to}: {e}")
        return sent


def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()
