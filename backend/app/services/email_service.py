"""
Email Service for KonnectSphere
===============================
Transactional email:
- Email verification codes and password resets
- Subscription confirmations, reminders, cancellations and expiry notices
- Stripe invoice notifications (failed, action required, upcoming, paid)
- Contact form delivery

Supports both SMTP and SendGrid.
"""

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Dict, Any
from datetime import datetime
import asyncio

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from app.core.config import settings
from app.core.logging_config import logger


CONTACT_SUBJECT_LABELS = {
    "technical-support": "Technical Support",
    "billing-question": "Billing Question",
    "feature-request": "Feature Request",
    "bug-report": "Bug Report",
    "account-support": "Account Support",
    "other": "General Inquiry",
}

_STYLES = """
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: linear-gradient(135deg, #1e3a8a 0%, #0ea5e9 100%); color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }
    .content { background: #f9fafb; padding: 30px; border-radius: 0 0 10px 10px; }
    .button { display: inline-block; background: #1e3a8a; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; font-weight: 600; margin: 20px 0; }
    .code { font-size: 32px; letter-spacing: 8px; font-weight: 700; text-align: center; background: #e5e7eb; padding: 16px; border-radius: 8px; }
    .details { background: white; border: 1px solid #e5e7eb; border-radius: 8px; padding: 16px; margin: 16px 0; }
    .warning { color: #b91c1c; font-weight: 600; }
    .footer { text-align: center; margin-top: 30px; font-size: 12px; color: #6b7280; }
"""


def _format_date(value: Optional[datetime]) -> str:
    if not value:
        return "-"
    return value.strftime("%A, %B %d, %Y")


def _format_amount(amount: Optional[float], currency: str = "usd") -> str:
    if amount is None:
        return "-"
    symbol = "$" if (currency or "usd").lower() == "usd" else f"{currency.upper()} "
    return f"{symbol}{amount:,.2f}"


class EmailService:
    """Async email service using SMTP or SendGrid"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME
        self.frontend_url = settings.FRONTEND_URL
        self.sendgrid_api_key = settings.SENDGRID_API_KEY
        self.use_sendgrid = settings.USE_SENDGRID and bool(self.sendgrid_api_key)

    @property
    def is_configured(self) -> bool:
        """Check if email service is properly configured"""
        if self.use_sendgrid:
            return bool(self.sendgrid_api_key)
        return bool(self.smtp_user and self.smtp_password)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email asynchronously.

        Returns True if successful, False otherwise.
        """
        if not self.is_configured:
            logger.warning("[Email] Email service not configured, skipping email send")
            return False

        if self.use_sendgrid:
            return await self._send_via_sendgrid(to_email, subject, html_content, text_content)
        return await self._send_via_smtp(to_email, subject, html_content, text_content)

    async def _send_via_sendgrid(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Send email via SendGrid API"""
        try:
            message = Mail(
                from_email=Email(self.from_email, self.from_name),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content)
            )

            if text_content:
                message.add_content(Content("text/plain", text_content))

            sg = SendGridAPIClient(self.sendgrid_api_key)
            # SendGrid client is synchronous
            loop = asyncio.get_event_loop()
            response = await loop.run_in_executor(None, sg.send, message)

            if response.status_code in [200, 201, 202]:
                logger.info(f"[Email/SendGrid] Sent to {to_email}: {subject}")
                return True
            logger.error(f"[Email/SendGrid] Failed with status {response.status_code}: {response.body}")
            return False

        except Exception as e:
            logger.error(f"[Email/SendGrid] Failed to send email to {to_email}: {e}")
            return False

    async def _send_via_smtp(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Send email via SMTP with STARTTLS"""
        try:
            message = MIMEMultipart("alternative")
            message["From"] = f"{self.from_name} <{self.from_email}>"
            message["To"] = to_email
            message["Subject"] = subject

            if text_content:
                message.attach(MIMEText(text_content, "plain"))
            message.attach(MIMEText(html_content, "html"))

            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=True
            )

            logger.info(f"[Email/SMTP] Sent to {to_email}: {subject}")
            return True

        except Exception as e:
            logger.error(f"[Email/SMTP] Failed to send email to {to_email}: {e}")
            return False

    def _render(self, title: str, body: str) -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="utf-8"><style>{_STYLES}</style></head>
        <body>
            <div class="container">
                <div class="header"><h1>{title}</h1></div>
                <div class="content">{body}</div>
                <div class="footer">
                    <p>&copy; {datetime.utcnow().year} KonnectSphere. All rights reserved.</p>
                </div>
            </div>
        </body>
        </html>
        """

    def _button(self, label: str, path: str) -> str:
        return f'<p style="text-align: center;"><a href="{self.frontend_url}{path}" class="button">{label}</a></p>'

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def send_verification_otp(self, to_email: str, user_name: str, otp: str) -> bool:
        """Six digit code sent on registration"""
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Thanks for joining KonnectSphere! Use this code to verify your email address:</p>
            <div class="code">{otp}</div>
            <p style="font-size: 14px; color: #6b7280;">This code expires in {settings.OTP_EXPIRE_MINUTES} minutes.</p>
            <p style="font-size: 14px; color: #6b7280;">If you didn't create an account, you can ignore this email.</p>
        """
        text = f"Your KonnectSphere verification code is {otp}. It expires in {settings.OTP_EXPIRE_MINUTES} minutes."
        return await self.send_email(to_email, "Verify Your Email Address", self._render("Verify Your Email", body), text)

    async def send_password_reset_email(self, to_email: str, user_name: str, reset_url: str) -> bool:
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>We received a request to reset your password. Click the button below to choose a new one.</p>
            <p style="text-align: center;"><a href="{reset_url}" class="button">Reset Password</a></p>
            <p style="font-size: 14px; color: #6b7280;">
                This link expires in {settings.PASSWORD_RESET_EXPIRE_MINUTES} minutes.
                If you didn't request a reset, you can ignore this email.
            </p>
        """
        text = f"Reset your KonnectSphere password: {reset_url}"
        return await self.send_email(to_email, "Password Reset Request", self._render("Reset Your Password", body), text)

    async def send_password_reset_success_email(self, to_email: str, user_name: str) -> bool:
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Your password was changed successfully. If this wasn't you, contact support immediately.</p>
            {self._button("Log In", "/login")}
        """
        return await self.send_email(to_email, "Password Reset Successful", self._render("Password Updated", body))

    async def send_account_deleted_email(self, to_email: str, user_name: str) -> bool:
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Your KonnectSphere account and all associated data have been deleted.</p>
            <p>We're sorry to see you go. You're welcome back any time.</p>
        """
        return await self.send_email(
            to_email, "Your KonnectSphere Account Has Been Deleted", self._render("Account Deleted", body)
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def send_subscription_confirmation(
        self,
        to_email: str,
        user_name: str,
        plan_name: str,
        amount: Optional[float] = None,
        interval: Optional[str] = None,
        period_end: Optional[datetime] = None
    ) -> bool:
        """Pick the plan-specific confirmation"""
        if plan_name == "Basic":
            subject = "Your KonnectSphere Basic Plan is Active"
            perks = "<li>Publish one pitch visible to investors in your country</li><li>Upload business documents</li>"
            cta = self._button("Create Your Pitch", "/add-pitch")
        elif plan_name == "Premium":
            subject = "Your KonnectSphere Premium Subscription Has Been Activated"
            perks = (
                "<li>Publish up to five pitches</li><li>Global visibility to investors</li>"
                "<li>Priority placement in search results</li><li>Browse investors worldwide</li>"
            )
            cta = self._button("Create Your Pitch", "/add-pitch")
        elif plan_name == "Investor Access Plan":
            subject = "Welcome to KonnectSphere - Investor Access Confirmed"
            perks = (
                "<li>Browse pitches from every country</li><li>Contact entrepreneurs directly</li>"
                "<li>Save favourite pitches</li>"
            )
            cta = self._button("Explore Pitches", "/explore-pitches")
        else:
            subject = "Your Subscription is Now Active"
            perks = ""
            cta = self._button("Go to Dashboard", "/")

        interval_label = f" / {interval}" if interval else ""
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Your <strong>{plan_name}</strong> subscription is now active.</p>
            <div class="details">
                <p><strong>Plan:</strong> {plan_name}</p>
                <p><strong>Price:</strong> {_format_amount(amount)}{interval_label}</p>
                <p><strong>Next billing date:</strong> {_format_date(period_end)}</p>
            </div>
            {f'<ul>{perks}</ul>' if perks else ''}
            {cta}
        """
        return await self.send_email(to_email, subject, self._render("Subscription Active", body))

    async def send_subscription_cancelled(
        self,
        to_email: str,
        user_name: str,
        plan_name: str,
        cancel_date: Optional[datetime],
        immediate: bool = False
    ) -> bool:
        if immediate:
            subject = "Your Subscription Has Been Cancelled"
            detail = f"Your <strong>{plan_name}</strong> subscription was cancelled and access has ended."
        else:
            subject = "Your Subscription Will End Soon"
            detail = (
                f"Your <strong>{plan_name}</strong> subscription will not renew. "
                f"You keep access until <strong>{_format_date(cancel_date)}</strong>."
            )
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>{detail}</p>
            <p>Changed your mind? You can subscribe again at any time.</p>
            {self._button("View Plans", "/pricing")}
        """
        return await self.send_email(to_email, subject, self._render("Subscription Cancelled", body))

    async def send_renewal_reminder(
        self,
        to_email: str,
        user_name: str,
        plan_name: str,
        renewal_date: Optional[datetime],
        amount: Optional[float] = None
    ) -> bool:
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Your <strong>{plan_name}</strong> subscription renews on <strong>{_format_date(renewal_date)}</strong>.</p>
            <div class="details"><p><strong>Amount:</strong> {_format_amount(amount)}</p></div>
            {self._button("Manage Subscription", "/account")}
        """
        return await self.send_email(to_email, "Your Subscription Will Renew Soon", self._render("Renewal Reminder", body))

    async def send_two_day_expiration_reminder(
        self,
        to_email: str,
        user_name: str,
        plan_name: str,
        period_end: Optional[datetime]
    ) -> bool:
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p class="warning">Your {plan_name} subscription expires in 2 days ({_format_date(period_end)}).</p>
            <p>Make sure your payment method is up to date to keep your pitches visible and your access uninterrupted.</p>
            {self._button("Review Subscription", "/account")}
        """
        return await self.send_email(to_email, "Your Subscription Expires in 2 Days", self._render("Expiring Soon", body))

    async def send_subscription_expired(
        self,
        to_email: str,
        user_name: str,
        plan_name: str,
        amount_due: Optional[float] = None
    ) -> bool:
        due_line = (
            f'<p class="warning">An outstanding balance of {_format_amount(amount_due)} is due.</p>'
            if amount_due else ""
        )
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Your <strong>{plan_name}</strong> subscription has ended. Your pitches are hidden until you subscribe again.</p>
            {due_line}
            {self._button("Renew Now", "/pricing")}
        """
        subject = "Subscription Expired - Payment Due" if amount_due else "Your Subscription Has Ended"
        return await self.send_email(to_email, subject, self._render("Subscription Ended", body))

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def _invoice_details(self, details: Dict[str, Any]) -> str:
        return f"""
            <div class="details">
                <p><strong>Plan:</strong> {details.get('plan_name', '-')}</p>
                <p><strong>Amount:</strong> {_format_amount(details.get('amount'), details.get('currency', 'usd'))}</p>
                <p><strong>Invoice:</strong> {details.get('invoice_number') or details.get('invoice_id', '-')}</p>
                <p><strong>Date:</strong> {_format_date(details.get('date'))}</p>
            </div>
        """

    async def send_payment_failed(self, to_email: str, user_name: str, details: Dict[str, Any]) -> bool:
        attempt = details.get("attempt_count") or 1
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p class="warning">We couldn't process your payment (attempt {attempt}).</p>
            {self._invoice_details(details)}
            <p>Please update your payment method to avoid losing access.</p>
            {f'<p style="text-align: center;"><a href="{details["invoice_url"]}" class="button">Pay Invoice</a></p>' if details.get("invoice_url") else ''}
        """
        subject = f"Payment Failed - Action Required for Your {details.get('plan_name', '')} Plan"
        return await self.send_email(to_email, subject, self._render("Payment Failed", body))

    async def send_payment_action_required(self, to_email: str, user_name: str, details: Dict[str, Any]) -> bool:
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Your bank needs you to confirm this payment before it can be completed.</p>
            {self._invoice_details(details)}
            {f'<p style="text-align: center;"><a href="{details["invoice_url"]}" class="button">Confirm Payment</a></p>' if details.get("invoice_url") else ''}
        """
        subject = f"Payment Authentication Required - {details.get('plan_name', '')} Plan"
        return await self.send_email(to_email, subject, self._render("Action Required", body))

    async def send_upcoming_payment(self, to_email: str, user_name: str, details: Dict[str, Any]) -> bool:
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Your next payment will be charged automatically.</p>
            {self._invoice_details(details)}
            {self._button("Manage Subscription", "/account")}
        """
        subject = f"Upcoming Payment: {details.get('plan_name', '')} Plan Renewal"
        return await self.send_email(to_email, subject, self._render("Upcoming Payment", body))

    async def send_recurring_payment_success(self, to_email: str, user_name: str, details: Dict[str, Any]) -> bool:
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Thanks! Your subscription has been renewed.</p>
            {self._invoice_details(details)}
            <p><strong>Next billing date:</strong> {_format_date(details.get('period_end'))}</p>
        """
        subject = f"Payment Successful - {details.get('plan_name', '')} Renewed"
        return await self.send_email(to_email, subject, self._render("Payment Received", body))

    # ------------------------------------------------------------------
    # Contact form
    # ------------------------------------------------------------------

    async def send_contact_form(self, name: str, email: str, subject: str, message: str) -> bool:
        """Forward a contact form submission to the support inbox"""
        label = CONTACT_SUBJECT_LABELS.get(subject, subject)
        body = f"""
            <div class="details">
                <p><strong>Name:</strong> {name}</p>
                <p><strong>Email:</strong> <a href="mailto:{email}?subject=Re: {label}">{email}</a></p>
                <p><strong>Subject:</strong> {label}</p>
                <p><strong>Received:</strong> {datetime.utcnow().strftime('%Y-%m-%d %H:%M UTC')}</p>
            </div>
            <p style="white-space: pre-wrap;">{message}</p>
        """
        return await self.send_email(
            settings.CONTACT_EMAIL,
            f"Contact Form: {subject} - {name}",
            self._render(f"New {label} Inquiry", body),
            f"{name} <{email}> wrote about {label}:\n\n{message}",
        )

    async def send_contact_confirmation(self, to_email: str, user_name: str, subject: str) -> bool:
        label = CONTACT_SUBJECT_LABELS.get(subject, subject)
        body = f"""
            <p>Hi {user_name or 'there'},</p>
            <p>Thank you for reaching out to KonnectSphere! We've received your inquiry regarding <strong>{label}</strong>.</p>
            <p>Our team usually replies within one business day.</p>
        """
        return await self.send_email(
            to_email, "We've Received Your Message - KonnectSphere", self._render("Message Received", body)
        )


def send_in_background(coro) -> asyncio.Task:
    """Fire-and-forget for emails whose outcome doesn't affect the response"""
    task = asyncio.create_task(coro)
    task.add_done_callback(_log_task_failure)
    return task


def _log_task_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"[Email] Background send failed: {task.exception()}")


email_service = EmailService()
