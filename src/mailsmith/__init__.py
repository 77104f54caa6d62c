"""Compose MIME email documents and deliver them over SMTP.

This package provides:

- Message model with header-injection safe setters
- MIME assembly choosing single-part, multipart/alternative or
  multipart/mixed structure from the bodies and attachments present
- Attachments read from bytes, files or binary streams at build time
- Single-use SMTP delivery driver with opportunistic STARTTLS
- Pluggable AUTH mechanisms (PLAIN, LOGIN, CRAM-MD5, XOAUTH2)
- INI / environment based SMTP settings

Example:
    Exporting raw MIME for an HTTP mail API::

        from mailsmith import Message

        message = Message(from_addr="me@example.com", to_addrs="you@example.com")
        message.set_subject("Hello")
        message.plain.set("Hi there")
        raw = message.mime_bytes()
"""

from .attachments import Attachment, guess_mime
from .auth import CramMD5Auth, LoginAuth, PlainAuth, SMTPAuth, XOAuth2Auth
from .config_loader import SMTPSettings, load_smtp_settings
from .errors import (
    AuthError,
    BuildError,
    DeliveryError,
    MailError,
    ProtocolError,
    ResponseReadError,
    SMTPConnectionError,
)
from .message import BodyPart, Message
from .mime import MimeAssembler
from .sanitize import strip_line_breaks
from .smtp_driver import SessionState, SMTPDeliveryDriver, SMTPReply

__all__ = [
    "Attachment",
    "AuthError",
    "BodyPart",
    "BuildError",
    "CramMD5Auth",
    "DeliveryError",
    "LoginAuth",
    "MailError",
    "Message",
    "MimeAssembler",
    "PlainAuth",
    "ProtocolError",
    "ResponseReadError",
    "SMTPAuth",
    "SMTPConnectionError",
    "SMTPDeliveryDriver",
    "SMTPReply",
    "SMTPSettings",
    "SessionState",
    "XOAuth2Auth",
    "guess_mime",
    "load_smtp_settings",
    "strip_line_breaks",
]
