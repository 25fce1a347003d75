from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from html import escape as html_escape
from string import Template
from typing import Any, Mapping

import boto3
import resend
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError, NoCredentialsError

from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailDeliveryError(RuntimeError):
    """
    Raised when a provider is configured but delivery fails.
    Message should be safe to surface to clients in dev.
    """


class UnknownEmailTemplateError(ValueError):
    pass


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    text: str
    html: str


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


OTP_TEMPLATE_ID = "otp"

EMAIL_TEMPLATES: dict[str, EmailTemplate] = {
    OTP_TEMPLATE_ID: EmailTemplate(
        subject="Your $app_name sign-in code",
        text="""
Your $app_name sign-in code

Enter this code in the app (expires in $expires_text):

$otp

If you didn't request this, ignore the message.
""".strip(),
        html="""
<html>
  <body style="font-family: Arial, sans-serif; background: #0f172a; padding: 24px; color: #f8fafc;">
    <div style="max-width: 520px; margin: 0 auto; background: #111827; border-radius: 12px; padding: 32px;">
      <h2 style="margin-top: 0; font-size: 1.5rem; color: #f8fafc;">Your sign-in code</h2>
      <p style="line-height: 1.6; color: #e2e8f0;">
        Enter the code below in $app_name to continue. This code expires in $expires_text.
      </p>
      <div style="margin: 24px 0; background: #38bdf8; color: #0f172a; font-size: 32px; letter-spacing: 8px; text-align: center; padding: 18px; border-radius: 10px;">
        $otp
      </div>
      <p style="line-height: 1.6; color: #94a3b8;">
        Didn't request this? You can safely ignore this message.
      </p>
    </div>
  </body>
</html>
""".strip(),
    ),
}


def _expires_text(minutes: Any) -> str:
    try:
        n = int(minutes)
    except (TypeError, ValueError):
        return str(minutes)
    return f"{n} minute{'s' if n != 1 else ''}"


def render_template(template_id: str, variables: Mapping[str, Any]) -> RenderedEmail:
    template = EMAIL_TEMPLATES.get(template_id)
    if template is None:
        raise UnknownEmailTemplateError(f"Unknown email template: {template_id!r}")

    values = {"app_name": settings.FROM_NAME or "Hirebox"}
    values.update({k: str(v) for k, v in variables.items()})
    if "expires_minutes" in variables:
        values["expires_text"] = _expires_text(variables["expires_minutes"])
    html_values = {k: html_escape(v) for k, v in values.items()}

    try:
        return RenderedEmail(
            subject=Template(template.subject).substitute(values),
            text=Template(template.text).substitute(values),
            html=Template(template.html).substitute(html_values),
        )
    except KeyError as exc:
        raise UnknownEmailTemplateError(f"Missing variable {exc.args[0]!r} for template {template_id!r}") from exc


# -----------------------------
# Provider configuration
# -----------------------------
def _normalize_provider(raw: str | None) -> str:
    """
    Supported providers:
    - resend (default when unset)
    - ses
    - gmail
    Legacy alias:
    - smtp -> gmail
    """
    provider = (raw or "").strip().lower()
    if not provider:
        return "resend"
    if provider == "smtp":
        return "gmail"
    if provider in {"resend", "ses", "gmail"}:
        return provider
    raise EmailNotConfiguredError(
        f"Unsupported EMAIL_PROVIDER={provider!r}. Supported: resend (default), ses, gmail. Legacy alias: smtp -> gmail."
    )


def _require_from_email() -> str:
    if not settings.FROM_EMAIL:
        raise EmailNotConfiguredError("FROM_EMAIL is not set")
    return settings.FROM_EMAIL


def _from_header() -> str:
    return formataddr((settings.FROM_NAME or "", _require_from_email()))


def _require_smtp_config() -> None:
    if not settings.SMTP_HOST:
        raise EmailNotConfiguredError("SMTP_HOST is not set")
    if not settings.SMTP_FROM_EMAIL:
        raise EmailNotConfiguredError("SMTP_FROM_EMAIL is not set")


def _require_ses_config() -> str:
    region = (settings.AWS_REGION or "").strip()
    if not region:
        raise EmailNotConfiguredError("AWS_REGION is not set (required for SES)")
    return region


def _require_resend_config() -> str:
    api_key = (settings.RESEND_API_KEY or "").strip()
    if not api_key:
        raise EmailNotConfiguredError("RESEND_API_KEY is not set")
    return api_key


# -----------------------------
# Providers
# -----------------------------
def _send_email_ses(to_email: str, message: RenderedEmail) -> str | None:
    region = _require_ses_config()
    client = boto3.client("ses", region_name=region)

    try:
        res = client.send_email(
            Source=_from_header(),
            Destination={"ToAddresses": [to_email]},
            Message={
                "Subject": {"Data": message.subject, "Charset": "UTF-8"},
                "Body": {
                    "Text": {"Data": message.text, "Charset": "UTF-8"},
                    "Html": {"Data": message.html, "Charset": "UTF-8"},
                },
            },
        )
    except NoCredentialsError as e:
        logger.exception("SES email failed (no AWS credentials)")
        raise EmailDeliveryError("SES email failed: AWS credentials not available") from e
    except EndpointConnectionError as e:
        logger.exception("SES email failed (endpoint connection)")
        raise EmailDeliveryError("SES email failed: could not connect to SES endpoint") from e
    except ClientError as e:
        logger.exception("SES email failed (client error)")
        code = (e.response or {}).get("Error", {}).get("Code", "ClientError")
        raise EmailDeliveryError(f"SES email failed: {code}") from e
    except BotoCoreError as e:
        logger.exception("SES email failed (botocore)")
        raise EmailDeliveryError("SES email failed") from e

    msg_id = res.get("MessageId")
    logger.info("SES email sent: to=%s msg_id=%s", to_email, msg_id)
    return msg_id


def _send_email_resend(to_email: str, message: RenderedEmail) -> str | None:
    api_key = _require_resend_config()

    payload: dict[str, Any] = {
        "from": _from_header(),
        "to": [to_email],
        "subject": message.subject,
        "text": message.text,
        "html": message.html,
    }

    try:
        resend.api_key = api_key
        res = resend.Emails.send(payload)  # type: ignore[attr-defined]
    except Exception as e:  # noqa: BLE001 - resend raises runtime-specific errors
        raise EmailDeliveryError("Resend send failed") from e

    msg_id: str | None = None
    if isinstance(res, dict):
        if res.get("error"):
            raise EmailDeliveryError("Resend API error")
        v = res.get("id")
        if isinstance(v, str) and v.strip():
            msg_id = v.strip()

    logger.info("Resend email sent: to=%s msg_id=%s", to_email, msg_id)
    return msg_id


def _send_email_smtp(to_email: str, message: RenderedEmail) -> None:
    """
    Send a multipart (text + html) email via SMTP using stdlib only.
    """
    _require_smtp_config()

    msg = MIMEMultipart("alternative")
    msg["From"] = settings.SMTP_FROM_EMAIL
    msg["To"] = to_email
    msg["Subject"] = message.subject
    msg["Date"] = formatdate(localtime=True)
    msg.attach(MIMEText(message.text, "plain", "utf-8"))
    msg.attach(MIMEText(message.html, "html", "utf-8"))

    if settings.SMTP_USE_SSL:
        server: smtplib.SMTP = smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10)
    else:
        server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10)

    try:
        server.ehlo()
        if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
            server.starttls()
            server.ehlo()

        if settings.SMTP_USERNAME:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)

        server.sendmail(settings.SMTP_FROM_EMAIL, [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("SMTP email failed")
        raise EmailDeliveryError("SMTP email failed") from e
    finally:
        try:
            server.quit()
        except (smtplib.SMTPException, OSError):
            pass

    logger.info("SMTP email sent: to=%s", to_email)


def send_templated_email(to_email: str, template_id: str, variables: Mapping[str, Any]) -> str | None:
    """
    Render `template_id` with `variables` and deliver it via the configured provider.

    - EMAIL_PROVIDER=resend (default): Resend API
    - EMAIL_PROVIDER=ses: AWS SES via boto3
    - EMAIL_PROVIDER=gmail: SMTP via stdlib
    - EMAIL_PROVIDER=smtp: legacy alias for gmail

    Returns the provider message id when one is available. Raises
    EmailNotConfiguredError / EmailDeliveryError on failure.
    """
    message = render_template(template_id, variables)

    if not settings.EMAIL_ENABLED:
        logger.warning("EMAIL_ENABLED=false; not delivering template=%s to=%s", template_id, to_email)
        return None

    provider = _normalize_provider(settings.EMAIL_PROVIDER)
    logger.info("Sending template=%s to=%s via %s", template_id, to_email, provider)
    if provider == "gmail":
        _send_email_smtp(to_email, message)
        return None
    if provider == "ses":
        return _send_email_ses(to_email, message)
    return _send_email_resend(to_email, message)
