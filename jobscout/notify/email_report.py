"""Send the rendered evaluation report by email (SMTP + STARTTLS)."""
from __future__ import annotations

import smtplib
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from jobscout.config.settings import Settings
from jobscout.pipeline.errors import EmailDeliveryError

BODY = (
    "Hello,\n\n"
    "Please find the LinkedIn Evaluations attached as an HTML file.\n\n"
    "Thanks,\n"
    "LinkedIn Job Scout"
)


def subject_for(now: datetime) -> str:
    """e.g. 'LinkedIn Evaluations - Aug 2 3:04 PM CEST'."""
    hour = now.hour % 12 or 12
    tz = now.strftime("%Z")
    stamp = f"{now.strftime('%b')} {now.day} {hour}:{now.strftime('%M %p')}"
    return f"LinkedIn Evaluations - {stamp} {tz}".rstrip()


def build_message(attachment_path: Path, *, sender: str, recipient: str, now: datetime) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = subject_for(now)
    msg.set_content(BODY)
    msg.add_attachment(
        attachment_path.read_bytes(),
        maintype="text",
        subtype="html",
        filename=attachment_path.name,
    )
    return msg


def send_report_email(
    attachment_path: Path,
    *,
    settings: Settings,
    now: Optional[datetime] = None,
    smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
) -> None:
    if not (settings.email_from and settings.email_to and settings.smtp_host):
        raise EmailDeliveryError("email settings incomplete (from/to/smtp host)")
    attachment_path = Path(attachment_path)
    if not attachment_path.is_file():
        raise EmailDeliveryError(f"report attachment missing: {attachment_path}")

    msg = build_message(
        attachment_path,
        sender=settings.email_from,
        recipient=settings.email_to,
        now=now or datetime.now().astimezone(),
    )
    try:
        with smtp_factory(settings.smtp_host, settings.smtp_port, timeout=30) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            if settings.email_password:
                server.login(settings.email_from, settings.email_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(f"could not send email: {exc}") from exc

    logger.info("report emailed to {} ({})", settings.email_to, attachment_path.name)
