"""Reviewer notifications: email via SMTP, or a file when no credentials are configured."""

import logging
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from dotenv import load_dotenv

load_dotenv(override=True)

log = logging.getLogger(__name__)


class Notifier:
    def __init__(self, output_path="output/notification.txt"):
        self.output_path = output_path
        self.sent = []

    def send(self, subject: str, body: str):
        """Send email or save to file as fallback."""
        smtp_user = os.getenv("SMTP_USER", "")
        smtp_pass = os.getenv("SMTP_PASSWORD", "")
        to_email = os.getenv("NOTIFICATION_EMAIL", "")
        self.sent.append((subject, body))

        if not smtp_user or not smtp_pass or not to_email:
            os.makedirs(os.path.dirname(self.output_path) or ".", exist_ok=True)
            with open(self.output_path, "w") as f:
                f.write(f"Subject: {subject}\n\n{body}")
            log.info(f"Notification saved to {self.output_path}")
            return

        try:
            msg = MIMEMultipart()
            msg["From"] = smtp_user
            msg["To"] = to_email
            msg["Subject"] = subject
            msg.attach(MIMEText(body, "plain"))

            with smtplib.SMTP(os.getenv("SMTP_HOST", "smtp.gmail.com"), int(os.getenv("SMTP_PORT", "587"))) as server:
                server.starttls()
                server.login(smtp_user, smtp_pass)
                server.send_message(msg)
            log.info(f"Notification sent to {to_email}")
        except (smtplib.SMTPException, OSError) as e:
            log.error(f"Email failed: {e}")


def format_sla_report(approved: list[dict], blocked: list[dict], deadline_days: int,
                      dashboard_url: str = "") -> tuple[str, str]:
    """Subject and body for the consolidated escalation report."""
    subject = (
        f"SLA sweep: {len(approved)} auto-approved, {len(blocked)} blocked "
        f"(deadline {deadline_days} days)"
    )
    lines = [f"Items pending review for {deadline_days}+ days were re-checked against the publish gate.", ""]

    if approved:
        lines.append(f"AUTO-APPROVED ({len(approved)}):")
        for item in approved:
            lines.append(f"  - {item['title']} ({item['days_pending']} days pending)")
        lines.append("")

    if blocked:
        lines.append(f"BLOCKED, NEEDS ATTENTION ({len(blocked)}):")
        for item in blocked:
            lines.append(f"  - {item['title']} ({item['days_pending']} days pending)")
            for error in item.get("errors", []):
                lines.append(f"      * {error}")
        lines.append("")

    if dashboard_url:
        lines.append(f"Review queue: {dashboard_url}")
    return subject, "\n".join(lines)
