# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP authentication mechanisms.

The delivery driver only knows the :class:`SMTPAuth` interface: it checks that
the server offers ``auth.mechanism`` and then awaits ``auth.authenticate()``.
Callers pick the concrete mechanism.

Example:
    Authenticating with an OAuth 2.0 access token::

        from mailsmith.auth import XOAuth2Auth

        message.auth = XOAuth2Auth("sender@example.com", access_token)
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod

import aiosmtplib

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class SMTPAuth(ABC):
    """Capability interface for an SMTP ``AUTH`` mechanism.

    Attributes:
        mechanism: SASL mechanism name as advertised in the EHLO ``AUTH`` line.
        requires_tls: Whether credentials may only travel over an encrypted
            connection (local servers are exempt).
    """

    mechanism: str = ""
    requires_tls: bool = True

    def check_transport(self, smtp: aiosmtplib.SMTP, *, encrypted: bool) -> None:
        """Refuse to expose credentials over a clear-text link to a remote host."""
        if self.requires_tls and not encrypted and smtp.hostname not in LOCAL_HOSTS:
            raise aiosmtplib.SMTPException(
                f"{self.mechanism} authentication requires an encrypted connection"
            )

    @abstractmethod
    async def authenticate(self, smtp: aiosmtplib.SMTP, *, encrypted: bool) -> None:
        """Run the mechanism on an established, greeted session.

        Raises:
            aiosmtplib.SMTPException: If the server rejects the credentials or
                the mechanism cannot be used on this connection.
        """


class PlainAuth(SMTPAuth):
    """``AUTH PLAIN`` with a username and password."""

    mechanism = "PLAIN"

    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    async def authenticate(self, smtp: aiosmtplib.SMTP, *, encrypted: bool) -> None:
        self.check_transport(smtp, encrypted=encrypted)
        await smtp.auth_plain(self.username, self.password)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(username={self.username!r}, password='***')"


class LoginAuth(PlainAuth):
    """``AUTH LOGIN``, for servers that do not offer PLAIN."""

    mechanism = "LOGIN"

    async def authenticate(self, smtp: aiosmtplib.SMTP, *, encrypted: bool) -> None:
        self.check_transport(smtp, encrypted=encrypted)
        await smtp.auth_login(self.username, self.password)


class CramMD5Auth(SMTPAuth):
    """``AUTH CRAM-MD5``; the secret never crosses the wire."""

    mechanism = "CRAM-MD5"
    requires_tls = False

    def __init__(self, username: str, secret: str):
        self.username = username
        self.secret = secret

    async def authenticate(self, smtp: aiosmtplib.SMTP, *, encrypted: bool) -> None:
        await smtp.auth_crammd5(self.username, self.secret)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(username={self.username!r}, secret='***')"


class XOAuth2Auth(SMTPAuth):
    """OAuth 2.0 bearer token authentication (``AUTH XOAUTH2``)."""

    mechanism = "XOAUTH2"

    def __init__(self, username: str, token: str):
        self.username = username
        self.token = token

    def initial_response(self) -> bytes:
        """Build the base64 SASL initial client response."""
        raw = f"user={self.username}\x01auth=Bearer {self.token}\x01\x01"
        return base64.b64encode(raw.encode("utf-8"))

    async def authenticate(self, smtp: aiosmtplib.SMTP, *, encrypted: bool) -> None:
        self.check_transport(smtp, encrypted=encrypted)
        response = await smtp.execute_command(b"AUTH", self.mechanism.encode("ascii"), self.initial_response())
        if response.code == 334:
            # Error details come as a challenge; an empty reply ends the exchange.
            response = await smtp.execute_command(b"")
        if response.code != 235:
            raise aiosmtplib.SMTPAuthenticationError(response.code, response.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(username={self.username!r}, token='***')"
