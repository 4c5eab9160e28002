"""
Email Service using Resend
Renders MJML templates by template key and sends them through Resend
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import EMAIL_TEMPLATES

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # Newer mjml releases return an object with html/errors attributes
        errors = getattr(result, "errors", None)
        if errors:
            logger.warning(f"MJML compilation warnings: {errors}")
        if hasattr(result, "html"):
            return result.html
        if isinstance(result, dict):
            return result.get("html", "")
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


def render_template_email(template_key: str, context: dict) -> tuple[str, str]:
    """Return (subject, mjml) for a template key"""
    if template_key not in EMAIL_TEMPLATES:
        raise ValueError(f"Unknown email template: {template_key}")
    subject_builder, body_builder = EMAIL_TEMPLATES[template_key]
    return subject_builder(context), body_builder(context)


async def send_template_email(to: str, template_key: str, context: dict) -> dict:
    """Send a lifecycle email identified by its template key"""
    subject, mjml_content = render_template_email(template_key, context)
    return await send_email(to=to, subject=subject, mjml_content=mjml_content)
