import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def send_email(to, subject, html, text):
    try:
        send_mail(
            subject,
            text,
            settings.DEFAULT_FROM_EMAIL,
            [to],
            html_message=html,
        )
    except Exception:
        # Transport errors vary by backend (smtplib, socket, ...).
        logger.exception("Failed to send email %r to %s", subject, to)
        return False
    logger.info("Email %r sent to %s", subject, to)
    return True


def verification_email(name, url):
    hours = settings.TASKFLOW['EMAIL_VERIFICATION_TTL_HOURS']
    subject = "Verify your email - TaskFlow"
    text = (
        f"Hi {name},\n\n"
        "Thanks for signing up! Please verify your email address by opening "
        f"this link:\n\n{url}\n\n"
        f"This link will expire in {hours} hours.\n"
        "If you didn't create an account, you can safely ignore this email.\n"
    )
    html = (
        f"<p>Hi {name},</p>"
        "<p>Thanks for signing up! Please verify your email address:</p>"
        f'<p><a href="{url}">Verify Email Address</a></p>'
        f"<p>This link will expire in {hours} hours.</p>"
    )
    return subject, html, text


def password_reset_email(name, url):
    hours = settings.TASKFLOW['PASSWORD_RESET_TTL_HOURS']
    subject = "Reset your password - TaskFlow"
    text = (
        f"Hi {name},\n\n"
        f"We received a request to reset your password. Open this link to "
        f"choose a new one:\n\n{url}\n\n"
        f"This link will expire in {hours} hour(s).\n"
        "If you didn't ask for a reset, you can ignore this email.\n"
    )
    html = (
        f"<p>Hi {name},</p>"
        "<p>We received a request to reset your password.</p>"
        f'<p><a href="{url}">Reset Password</a></p>'
        f"<p>This link will expire in {hours} hour(s).</p>"
    )
    return subject, html, text
