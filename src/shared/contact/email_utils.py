"""Email delivery for contact form messages."""

import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from pathlib import Path
from typing import Optional

from src.shared.contact.config import ContactSettings
from src.shared.contact.errors import MailDeliveryError
from src.shared.contact.schemas import ValidatedMessage


class Mailer:
    """What the pipeline needs from a mail transport."""

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        reply_to: str,
        attachment: Optional[Path] = None,
    ) -> None:
        """Send a message or raise MailDeliveryError."""
        raise NotImplementedError


class SmtpMailer(Mailer):
    """Sends mail through an SMTP relay, with STARTTLS and login when credentials are set."""

    def __init__(
        self,
        host: str,
        port: int,
        mail_from: str,
        sender_name: str = "Website",
        user: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.mail_from = mail_from
        self.sender_name = sender_name
        self.user = user
        self.password = password
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: ContactSettings) -> "SmtpMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            mail_from=settings.mail_from,
            sender_name=f"{settings.site_name} Website",
            user=settings.smtp_user,
            password=settings.smtp_password,
            timeout=settings.smtp_timeout,
        )

    def build_message(
        self,
        to: str,
        subject: str,
        body: str,
        reply_to: str,
        attachment: Optional[Path] = None,
    ) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg['From'] = formataddr((self.sender_name, self.mail_from))
        msg['To'] = to
        msg['Reply-To'] = reply_to  # Allow the recipient to reply directly to the sender
        msg['Subject'] = subject

        msg.attach(MIMEText(body, 'plain', 'utf-8'))

        if attachment is not None:
            attachment = Path(attachment)
            part = MIMEApplication(attachment.read_bytes(), _subtype="octet-stream")
            part.add_header('Content-Disposition', 'attachment', filename=attachment.name)
            msg.attach(part)

        return msg

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        reply_to: str,
        attachment: Optional[Path] = None,
    ) -> None:
        try:
            msg = self.build_message(to, subject, body, reply_to, attachment)

            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.user and self.password:
                    server.starttls()  # Enable encryption
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            # str(e) of smtplib errors never carries the password
            raise MailDeliveryError(f"SMTP delivery to {self.host}:{self.port} failed: {str(e)}") from e

        logging.info(f"Contact form email relayed via {self.host}:{self.port}")


def compose_subject(site_name: str, subject: str) -> str:
    # Header values must stay on one line
    subject = " ".join(subject.split())
    return f"[{site_name} Contact] {subject}"


def compose_body(site_name: str, message: ValidatedMessage) -> str:
    """Plain-text body relayed to the recipient mailbox."""
    lines = [
        f"New contact form submission from {site_name} website",
        "",
        f"Name: {message.name}",
        f"Email: {message.email}",
        f"Subject: {message.subject}",
        "",
        "Message:",
        message.body,
        "",
    ]
    if message.attachment is not None:
        lines.append("Logo attachment: Yes (attached to this email)")
    lines.extend([
        "---",
        f"Submitted: {message.submitted_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"IP Address: {message.client_identifier}",
    ])
    return "\n".join(lines) + "\n"
