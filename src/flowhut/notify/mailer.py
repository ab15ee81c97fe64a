"""Email delivery of notifications."""

import logging
import smtplib
import socket
from abc import ABC, abstractmethod
from email.message import EmailMessage

from flowhut.config_schema import SMTPConfig
from flowhut.errors import DeliveryError

logger = logging.getLogger(__name__)


class Mailer(ABC):
    """Abstract message transport."""

    @abstractmethod
    def send(self, recipient: str, subject: str, body: str) -> None:
        """Deliver one message.

        Raises:
            DeliveryError: The message could not be handed to the transport.
        """
        ...


class SMTPMailer(Mailer):
    """Sends plain-text mail through an SMTP relay."""

    def __init__(self, config: SMTPConfig) -> None:
        self.config = config

    @property
    def sender(self) -> str:
        return self.config.sender or f"flowhut@{socket.getfqdn()}"

    def send(self, recipient: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)

        try:
            with smtplib.SMTP(self.config.host, self.config.port, timeout=self.config.timeout) as smtp:
                if self.config.starttls:
                    smtp.starttls()
                if self.config.username:
                    smtp.login(self.config.username, self.config.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"Failed to mail {recipient} via {self.config.host}: {e}") from e

        logger.info(f"Sent '{subject}' to {recipient}")
