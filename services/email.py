import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings

logger = logging.getLogger(__name__)

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_email(to_email: str, subject: str, body: str) -> bool:
    """Send a plain-text email over SMTP. Returns False when delivery is skipped."""
    if settings.TESTING or not settings.SMTP_PASSWORD:
        logger.debug("Email to %s skipped (no SMTP credentials): %s", to_email, subject)
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
    msg["To"] = to_email
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        server.starttls()
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)

    logger.info("Email sent to %s: %s", to_email, subject)
    return True


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> bool:
    """Render a template and send it."""
    body = render_template(template_path, context)
    return send_email(to_email, subject, body)
