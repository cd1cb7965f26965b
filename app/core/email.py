"""Email service for order, status and refund notifications"""

from html import escape
from typing import List, Optional
import logging

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from pydantic import BaseModel

from app.config import Settings
from app.models.order import Order, OrderStatus
from app.models.return_model import ReturnRequest

logger = logging.getLogger(__name__)


class SmtpConfig(BaseModel):
    """SMTP connection and sender settings"""
    host: str
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    email_from: str
    store_name: str = "A2Z Bookshop"
    currency: str = "USD"
    admin_email: Optional[str] = None
    enabled: bool = True
    timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpConfig":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            email_from=settings.email_from,
            store_name=settings.store_name,
            currency=settings.currency,
            admin_email=settings.admin_email,
            enabled=settings.email_enabled,
        )


STATUS_MESSAGES = {
    OrderStatus.CONFIRMED: "We have received your payment and confirmed your order.",
    OrderStatus.PROCESSING: "We are packing your books. We'll send another update when your order ships.",
    OrderStatus.SHIPPED: "Your order is on its way! Use the tracking details below to follow the delivery.",
    OrderStatus.DELIVERED: "Your order has been delivered. We hope you enjoy your new books!",
    OrderStatus.CANCELLED: "Your order has been cancelled. Contact us if this was unexpected.",
}


class EmailSender:
    """Renders and sends transactional emails over SMTP"""

    def __init__(self, config: SmtpConfig):
        self.config = config

    async def send_email(self, to_email: str, subject: str, html_content: str, text_content: str = None):
        """
        Send an email using SMTP

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML content of the email
            text_content: Plain text content (optional)
        """
        if not self.config.enabled:
            logger.info(f"Email disabled, not sending '{subject}' to {to_email}")
            return

        message = MIMEMultipart("alternative")
        message["From"] = f"{self.config.store_name} <{self.config.email_from}>"
        message["To"] = to_email
        message["Subject"] = subject

        if text_content:
            message.attach(MIMEText(text_content, "plain"))
        message.attach(MIMEText(html_content, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.config.host,
                port=self.config.port,
                username=self.config.user,
                password=self.config.password,
                start_tls=True,
                timeout=self.config.timeout,
            )
            logger.info(f"Email sent successfully to {to_email}")
        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {str(e)}")
            raise

    async def _send_with_admin_copy(self, to_email: str, subject: str, html: str, text: str):
        await self.send_email(to_email, subject, html, text)
        if self.config.admin_email:
            await self.send_email(self.config.admin_email, f"[Admin copy] {subject}", html, text)

    def _money(self, amount) -> str:
        return f"{amount:.2f} {self.config.currency}"

    def _wrap(self, title: str, body: str) -> str:
        store = escape(self.config.store_name)
        return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <title>{escape(title)} - {store}</title>
    </head>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
        <div style="text-align: center; margin-bottom: 30px;">
            <h1 style="color: #1f2937;">{store}</h1>
        </div>
        {body}
        <div style="text-align: center; margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb;">
            <p style="color: #6b7280;">Thank you for choosing {store}!</p>
        </div>
    </body>
    </html>
    """

    def _items_table(self, order: Order) -> str:
        rows: List[str] = []
        for item in order.items:
            price = "FREE GIFT" if item.is_gift else self._money(item.subtotal)
            rows.append(
                f"""
            <tr style="border-bottom: 1px solid #e5e7eb;">
                <td style="padding: 12px;"><strong>{escape(item.title)}</strong><br>
                    <small style="color: #6b7280;">by {escape(item.author)}</small></td>
                <td style="padding: 12px; text-align: center;">{item.quantity}</td>
                <td style="padding: 12px; text-align: right;">{price}</td>
            </tr>"""
            )
        return f"""
        <table style="width: 100%; border-collapse: collapse;">
            <tr><th align="left">Book</th><th>Qty</th><th align="right">Amount</th></tr>
            {''.join(rows)}
        </table>
        <table style="width: 100%; margin-top: 20px;">
            <tr><td>Subtotal</td><td align="right">{self._money(order.subtotal)}</td></tr>
            <tr><td>Shipping</td><td align="right">{self._money(order.shipping)}</td></tr>
            <tr><td>Tax</td><td align="right">{self._money(order.tax)}</td></tr>
            <tr><td><strong>Total</strong></td><td align="right"><strong>{self._money(order.total)}</strong></td></tr>
        </table>
        """

    async def send_order_confirmation(self, order: Order):
        address = order.shipping_address
        body = f"""
        <div style="background-color: #f9fafb; padding: 20px; border-radius: 8px;">
            <h2 style="color: #059669; margin-top: 0;">Order Confirmation</h2>
            <p>Dear {escape(order.customer_name)},</p>
            <p>Thank you for your order! Here are the details of order <strong>{order.order_number}</strong>:</p>
        </div>
        {self._items_table(order)}
        <h3>Shipping to</h3>
        <p>{escape(address.street)}<br>{escape(address.city)} {escape(address.state or '')} {escape(address.zip)}<br>{escape(address.country)}</p>
        """
        subject = f"Order Confirmation {order.order_number} - {self.config.store_name}"
        text = (
            f"Thank you for your order {order.order_number}! "
            f"Your order total is {self._money(order.total)}. "
            "We'll send you tracking information once it ships."
        )
        await self._send_with_admin_copy(order.customer_email, subject, self._wrap("Order Confirmation", body), text)

    async def send_status_update(self, order: Order, new_status: OrderStatus):
        tracking = ""
        if order.tracking_number:
            carrier = f" ({escape(order.shipping_carrier)})" if order.shipping_carrier else ""
            tracking = f"<p><strong>Tracking number:</strong> {escape(order.tracking_number)}{carrier}</p>"
        notes = f"<p>{escape(order.notes)}</p>" if order.notes else ""
        body = f"""
        <div style="background-color: #f9fafb; padding: 20px; border-radius: 8px;">
            <h2 style="margin-top: 0;">Order Status Update</h2>
            <p>Dear {escape(order.customer_name)},</p>
            <p>Your order {order.order_number} is now <strong>{new_status.value.upper()}</strong>.</p>
            <p>{STATUS_MESSAGES.get(new_status, "")}</p>
            {tracking}
            {notes}
        </div>
        """
        subject = f"Order Status Update - Order {order.order_number}"
        text = f"Your order {order.order_number} status has been updated to: {new_status.value}."
        if order.tracking_number:
            text += f" Tracking: {order.tracking_number}"
        await self._send_with_admin_copy(order.customer_email, subject, self._wrap("Order Status Update", body), text)

    async def send_refund_processed(self, return_request: ReturnRequest):
        body = f"""
        <div style="background-color: #f9fafb; padding: 20px; border-radius: 8px;">
            <h2 style="margin-top: 0;">Refund Processed</h2>
            <p>Dear {escape(return_request.customer_name)},</p>
            <p>Your refund of <strong>{self._money(return_request.total_refund_amount)}</strong>
               for return {return_request.return_number} (order {return_request.order_number}) has been issued.</p>
            <p>Refund reference: {escape(return_request.refund_transaction_id or '')}</p>
        </div>
        """
        subject = f"Refund Processed - Return {return_request.return_number}"
        text = (
            f"Your refund of {self._money(return_request.total_refund_amount)} for return "
            f"{return_request.return_number} has been issued."
        )
        await self._send_with_admin_copy(return_request.customer_email, subject, self._wrap("Refund Processed", body), text)
