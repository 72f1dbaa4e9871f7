import json
import logging
import os
import smtplib
from email.message import EmailMessage

_logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[dict] = []


def send_template_email(to_email: str, subject: str, template: str, merge_vars: dict[str, str]):
    """Send a templated message through the Mandrill SMTP relay."""

    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append(
            {"to": to_email, "subject": subject, "template": template, "vars": dict(merge_vars)}
        )
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        _logger.warning("SMTP_SERVER not configured, dropping mail to %s", to_email)
        return
    from_addr = os.getenv("EMAIL_FROM", "Powerbag <info@talkative.se>")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg["Reply-To"] = os.getenv("EMAIL_REPLY_TO", "info@talkative.se")
    msg["X-MC-Template"] = template
    msg["X-MC-MergeLanguage"] = "mailchimp"
    msg["X-MC-MergeVars"] = json.dumps({name.upper(): value for name, value in merge_vars.items()})
    msg.set_content("")
    port = int(os.getenv("SMTP_PORT", "587"))
    with smtplib.SMTP(server, port) as s:
        username = os.getenv("SMTP_USERNAME")
        if username:
            s.starttls()
            s.login(username, os.getenv("SMTP_PASSWORD", ""))
        s.send_message(msg)
