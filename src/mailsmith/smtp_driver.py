# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Sequential SMTP delivery of an assembled MIME document.

One :class:`SMTPDeliveryDriver` instance drives one session over one
connection, step by step, and stops at the first failure::

    NEW -> CONNECTED -> GREETED -> [TLS_NEGOTIATED] -> [AUTHENTICATED]
        -> ENVELOPE_SENDER -> ENVELOPE_RECIPIENTS -> DATA_OPEN
        -> DATA_WRITTEN -> CLOSED

STARTTLS is opportunistic: used when the server advertises it, skipped
otherwise. Authentication runs only when the server advertises ``AUTH`` and a
mechanism was configured. The connection is closed on every exit path.

The data step is split in three: ``DATA`` must be answered with 354
(``DATA_OPEN``), the framed content is written (``DATA_WRITTEN``), then the
final reply is read. Only a failure of that last read leaves the outcome
unknown and raises :class:`~mailsmith.errors.ResponseReadError`.

Example:
    Delivering raw MIME bytes::

        driver = SMTPDeliveryDriver("smtp.example.com", 587, local_hostname="app.example.com")
        reply = await driver.deliver("me@example.com", ["you@example.com"], payload)
        print(reply.code, reply.message)
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable
from enum import Enum
from typing import NamedTuple

import aiosmtplib

from .auth import SMTPAuth
from .errors import AuthError, ProtocolError, ResponseReadError, SMTPConnectionError
from .logger import get_logger

DEFAULT_TIMEOUT = 60.0

logger = get_logger("SMTPDeliveryDriver")


class SessionState(str, Enum):
    """Steps of an SMTP delivery session."""

    NEW = "new"
    CONNECTED = "connected"
    GREETED = "greeted"
    TLS_NEGOTIATED = "tls_negotiated"
    AUTHENTICATED = "authenticated"
    ENVELOPE_SENDER = "envelope_sender"
    ENVELOPE_RECIPIENTS = "envelope_recipients"
    DATA_OPEN = "data_open"
    DATA_WRITTEN = "data_written"
    CLOSED = "closed"


class SMTPReply(NamedTuple):
    """Final server reply to the message data."""

    code: int
    message: str


_NETWORK_ERRORS = (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError)
_START_INPUT = 354
_COMPLETED = 250
_LINE_ENDINGS = re.compile(rb"\r\n|\r|\n")
_LEADING_PERIOD = re.compile(rb"^\.", re.MULTILINE)


class SMTPDeliveryDriver:
    """Single-use SMTP session that ships one document.

    Attributes:
        host: SMTP server host name or address.
        port: SMTP server port.
        local_hostname: Name sent with EHLO/HELO.
        auth: Optional authentication mechanism.
        timeout: Per-command timeout in seconds.
        validate_certs: Whether the STARTTLS certificate is verified.
        state: Current :class:`SessionState`.
    """

    def __init__(
        self,
        host: str,
        port: int = 25,
        *,
        local_hostname: str = "localhost",
        auth: SMTPAuth | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        validate_certs: bool = True,
    ):
        self.host = host
        self.port = port
        self.local_hostname = local_hostname
        self.auth = auth
        self.timeout = timeout
        self.validate_certs = validate_certs
        self.state = SessionState.NEW
        self.encrypted = False

    async def deliver(self, sender: str, recipients: Iterable[str], payload: bytes) -> SMTPReply:
        """Run the whole session and return the server's final reply.

        Args:
            sender: Envelope sender for ``MAIL FROM``.
            recipients: Envelope recipients, one ``RCPT TO`` each, in order.
            payload: Complete MIME document.

        Raises:
            SMTPConnectionError: Dial, greeting or STARTTLS failure, or the
                session dropped before the message content was sent.
            AuthError: Credentials rejected or mechanism not usable.
            ProtocolError: MAIL, RCPT, DATA or the message itself rejected.
            ResponseReadError: The content was sent but the final reply
                could not be read.
        """
        if self.state is not SessionState.NEW:
            raise RuntimeError("SMTPDeliveryDriver instances are single-use")

        smtp = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            local_hostname=self.local_hostname,
            timeout=self.timeout,
            use_tls=False,
            start_tls=False,
            validate_certs=self.validate_certs,
        )
        try:
            await self._connect(smtp)
            await self._greet(smtp)
            if smtp.supports_extension("starttls"):
                await self._start_tls(smtp)
            else:
                logger.debug("%s:%s does not offer STARTTLS, continuing in clear text", self.host, self.port)
            if self.auth is not None and smtp.supports_extension("auth"):
                await self._authenticate(smtp)
            await self._mail_from(smtp, sender)
            for recipient in recipients:
                await self._rcpt_to(smtp, recipient)
            return await self._send_data(smtp, payload)
        finally:
            smtp.close()
            self.state = SessionState.CLOSED

    async def _connect(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.connect()
        except _NETWORK_ERRORS as exc:
            logger.warning("Cannot connect to %s:%s: %s", self.host, self.port, exc)
            raise SMTPConnectionError(
                f"Cannot connect to {self.host}:{self.port}: {exc}",
                stage=SessionState.CONNECTED,
            ) from exc
        logger.debug("Connected to %s:%s", self.host, self.port)
        self.state = SessionState.CONNECTED

    async def _greet(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            try:
                await smtp.ehlo()
            except aiosmtplib.SMTPHeloError:
                await smtp.helo()
        except _NETWORK_ERRORS as exc:
            raise SMTPConnectionError(
                f"Greeting rejected by {self.host}: {exc}",
                stage=SessionState.GREETED,
                **_reply_details(exc),
            ) from exc
        self.state = SessionState.GREETED

    async def _start_tls(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.starttls(validate_certs=self.validate_certs)
            # Capabilities must be fetched again over the encrypted channel.
            await smtp.ehlo()
        except _NETWORK_ERRORS as exc:
            logger.warning("STARTTLS with %s failed: %s", self.host, exc)
            raise SMTPConnectionError(
                f"STARTTLS with {self.host} failed: {exc}",
                stage=SessionState.TLS_NEGOTIATED,
                **_reply_details(exc),
            ) from exc
        logger.debug("STARTTLS negotiated with %s", self.host)
        self.encrypted = True
        self.state = SessionState.TLS_NEGOTIATED

    async def _authenticate(self, smtp: aiosmtplib.SMTP) -> None:
        mechanism = self.auth.mechanism
        offered = [method.lower() for method in smtp.server_auth_methods]
        if mechanism.lower() not in offered:
            raise AuthError(
                f"{self.host} does not offer AUTH {mechanism} (offers: {', '.join(offered) or 'none'})",
                stage=SessionState.AUTHENTICATED,
            )
        try:
            await self.auth.authenticate(smtp, encrypted=self.encrypted)
        except _NETWORK_ERRORS as exc:
            logger.warning("AUTH %s rejected by %s", mechanism, self.host)
            raise AuthError(
                f"AUTH {mechanism} failed: {exc}",
                stage=SessionState.AUTHENTICATED,
                **_reply_details(exc),
            ) from exc
        logger.debug("Authenticated with %s using %s", self.host, mechanism)
        self.state = SessionState.AUTHENTICATED

    async def _mail_from(self, smtp: aiosmtplib.SMTP, sender: str) -> None:
        try:
            await smtp.mail(sender)
        except aiosmtplib.SMTPResponseException as exc:
            raise ProtocolError(
                f"MAIL FROM:<{sender}> rejected: {exc.code} {exc.message}",
                stage=SessionState.ENVELOPE_SENDER,
                code=exc.code,
                smtp_message=exc.message,
            ) from exc
        except _NETWORK_ERRORS as exc:
            raise SMTPConnectionError(
                f"Session lost during MAIL FROM: {exc}",
                stage=SessionState.ENVELOPE_SENDER,
            ) from exc
        self.state = SessionState.ENVELOPE_SENDER

    async def _rcpt_to(self, smtp: aiosmtplib.SMTP, recipient: str) -> None:
        try:
            await smtp.rcpt(recipient)
        except aiosmtplib.SMTPResponseException as exc:
            logger.warning("%s rejected recipient %s: %s %s", self.host, recipient, exc.code, exc.message)
            raise ProtocolError(
                f"RCPT TO:<{recipient}> rejected: {exc.code} {exc.message}",
                stage=SessionState.ENVELOPE_RECIPIENTS,
                code=exc.code,
                smtp_message=exc.message,
                recipient=recipient,
            ) from exc
        except _NETWORK_ERRORS as exc:
            raise SMTPConnectionError(
                f"Session lost during RCPT TO: {exc}",
                stage=SessionState.ENVELOPE_RECIPIENTS,
            ) from exc
        self.state = SessionState.ENVELOPE_RECIPIENTS

    async def _send_data(self, smtp: aiosmtplib.SMTP, payload: bytes) -> SMTPReply:
        await self._open_data(smtp)
        self._write_data(smtp, payload)
        return await self._read_final_reply(smtp)

    async def _open_data(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            response = await smtp.execute_command(b"DATA")
        except aiosmtplib.SMTPResponseException as exc:
            raise ProtocolError(
                f"DATA rejected: {exc.code} {exc.message}",
                stage=SessionState.DATA_OPEN,
                code=exc.code,
                smtp_message=exc.message,
            ) from exc
        except _NETWORK_ERRORS as exc:
            raise SMTPConnectionError(
                f"Session lost during DATA: {exc}",
                stage=SessionState.DATA_OPEN,
            ) from exc
        if response.code != _START_INPUT:
            raise ProtocolError(
                f"DATA rejected: {response.code} {response.message}",
                stage=SessionState.DATA_OPEN,
                code=response.code,
                smtp_message=response.message,
            )
        self.state = SessionState.DATA_OPEN

    def _write_data(self, smtp: aiosmtplib.SMTP, payload: bytes) -> None:
        try:
            if smtp.protocol is None:
                raise aiosmtplib.SMTPServerDisconnected("Connection lost")
            smtp.protocol.write(encode_data(payload))
        except _NETWORK_ERRORS as exc:
            raise SMTPConnectionError(
                f"Session lost before the message was sent: {exc}",
                stage=SessionState.DATA_WRITTEN,
            ) from exc
        self.state = SessionState.DATA_WRITTEN

    async def _read_final_reply(self, smtp: aiosmtplib.SMTP) -> SMTPReply:
        try:
            response = await smtp.protocol.read_response(timeout=self.timeout)
        except _NETWORK_ERRORS as exc:
            # The server may have committed the message before the link failed.
            logger.warning("No final reply from %s after DATA, delivery outcome unknown: %s", self.host, exc)
            raise ResponseReadError(
                f"No final reply after DATA: {exc}",
                stage=SessionState.DATA_WRITTEN,
            ) from exc
        if response.code != _COMPLETED:
            raise ProtocolError(
                f"Message rejected: {response.code} {response.message}",
                stage=SessionState.DATA_WRITTEN,
                code=response.code,
                smtp_message=response.message,
            )
        logger.debug("%s accepted message: %s %s", self.host, response.code, response.message)
        return SMTPReply(response.code, response.message)


def encode_data(payload: bytes) -> bytes:
    """Frame ``payload`` for the DATA stream.

    Line endings become CRLF, lines starting with a period are dot-stuffed and
    the ``.`` terminator line is appended.
    """
    data = _LINE_ENDINGS.sub(b"\r\n", payload)
    if not data.endswith(b"\r\n"):
        data += b"\r\n"
    return _LEADING_PERIOD.sub(b"..", data) + b".\r\n"


def _reply_details(exc: BaseException) -> dict[str, object]:
    if isinstance(exc, aiosmtplib.SMTPResponseException):
        return {"code": exc.code, "smtp_message": exc.message}
    return {}
