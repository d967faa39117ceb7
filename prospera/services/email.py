"""
Outbound Email

The dispatcher hands each queued notification to an EmailSender.
Actual delivery (SMTP, transactional mail API) is deployment-specific;
LoggingEmailSender records the message on the structured log and
reports success, which is what local runs use.
"""

from abc import ABC, abstractmethod

import structlog

from prospera.config import get_settings


class EmailDeliveryError(Exception):
    """The sender could not deliver a message."""
    pass


class EmailSenderInterface(ABC):
    """Delivers one plain-text email."""

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        """
        Deliver a message.

        Raises:
            EmailDeliveryError: If delivery fails
        """
        pass


class LoggingEmailSender(EmailSenderInterface):
    """Writes messages to the structured log instead of a mail server."""

    def __init__(self, from_address: str = None):
        self._from = from_address or get_settings().email.from_address
        self._logger = structlog.get_logger("prospera.email")

    async def send(self, to: str, subject: str, body: str) -> None:
        if not to or "@" not in to:
            raise EmailDeliveryError(f"Invalid recipient: {to!r}")

        self._logger.info(
            "email_delivered",
            sender=self._from,
            to=to,
            subject=subject,
            body_length=len(body),
        )
