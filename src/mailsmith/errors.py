# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for building and delivering messages.

Nothing in mailsmith retries: every error is raised at the step that failed,
with the underlying exception chained, and the SMTP connection already closed.

Hierarchy::

    MailError
    ├── BuildError
    └── DeliveryError
        ├── SMTPConnectionError
        ├── AuthError
        ├── ProtocolError
        └── ResponseReadError
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .smtp_driver import SessionState


class MailError(Exception):
    """Base class for every error raised by mailsmith."""


class BuildError(MailError):
    """Raised when the document cannot be assembled: unreadable attachment or bad custom header name."""

    def __init__(self, message: str, filename: str | None = None):
        super().__init__(message)
        self.filename = filename


class DeliveryError(MailError):
    """Base class for SMTP session failures.

    Attributes:
        stage: Session state being entered when the failure happened.
        code: SMTP reply code, when the server sent one.
        smtp_message: SMTP reply text, when the server sent one.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: SessionState,
        code: int | None = None,
        smtp_message: str | None = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.code = code
        self.smtp_message = smtp_message


class SMTPConnectionError(DeliveryError):
    """Dial, greeting or STARTTLS failure, or the session dropped mid-command."""


class AuthError(DeliveryError):
    """The server rejected the credentials, or the mechanism cannot be used."""


class ProtocolError(DeliveryError):
    """An SMTP command was rejected; nothing after it was sent."""

    def __init__(self, message: str, *, recipient: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.recipient = recipient


class ResponseReadError(DeliveryError):
    """The final reply to DATA could not be read.

    The server may already have accepted the message, so this must not be
    treated like a rejection: retrying can deliver it twice.
    """
