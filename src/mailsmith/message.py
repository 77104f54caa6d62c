# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outgoing email message model.

:class:`Message` is the aggregate root: addresses, subject, custom headers,
the plain and HTML :class:`BodyPart` objects, attachments and the SMTP server
to deliver to. Every header-bound field is stripped of line breaks when it is
assigned, so the stored value is always safe to write into a header line.

Example:
    Building and sending a message::

        from mailsmith import Message, PlainAuth

        message = Message(host="smtp.example.com", port=587,
                          auth=PlainAuth("sender@example.com", "secret"))
        message.set_from("sender@example.com")
        message.set_from_name("Sender")
        message.set_to("one@example.com", "two@example.com")
        message.set_subject("Quarterly report")
        message.plain.set("See attachment.")
        message.html.set("<p>See attachment.</p>")
        message.attach("report.pdf", Path("report.pdf"))

        reply = message.send("app.example.com")
"""

from __future__ import annotations

import asyncio
import io
from collections.abc import Iterable
from datetime import datetime
from email.utils import format_datetime
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from .attachments import Attachment, AttachmentSource
from .auth import SMTPAuth
from .logger import get_logger
from .mime import MimeAssembler
from .sanitize import check_header_name, strip_all, strip_line_breaks
from .smtp_driver import DEFAULT_TIMEOUT, SMTPDeliveryDriver, SMTPReply

if TYPE_CHECKING:
    from .config_loader import SMTPSettings

logger = get_logger("Message")


def rfc1123z_now() -> str:
    """Current local time as ``Mon, 02 Jan 2006 15:04:05 -0700``."""
    return format_datetime(datetime.now().astimezone())


class BodyPart:
    """One textual body variant of a message.

    Behaves like a small text buffer: :meth:`set` replaces the content,
    :meth:`write` appends to it. A body part counts as present when it is
    not empty.
    """

    def __init__(self, kind: Literal["plain", "html"], content: str = ""):
        self.kind = kind
        self._content = content

    def set(self, content: str) -> None:
        self._content = content

    def write(self, text: str) -> int:
        self._content += text
        return len(text)

    def clear(self) -> None:
        self._content = ""

    def __str__(self) -> str:
        return self._content

    def __len__(self) -> int:
        return len(self._content)

    def __repr__(self) -> str:
        return f"BodyPart(kind={self.kind!r}, length={len(self)})"


class Message(BaseModel):
    """An email to be assembled and delivered.

    Attributes:
        from_addr: Sender address, also the envelope sender.
        from_name: Sender display name.
        reply_to: Reply-To address.
        to_addrs: To recipients; accepts one address or a list.
        cc_addrs: Cc recipients; accepts one address or a list.
        bcc_addrs: Bcc recipients; accepts one address or a list.
        subject: Subject line.
        headers: Custom headers written after ``MIME-Version``. ``Content-*``
            and ``MIME-Version`` are reserved for the assembler.
        date: ``Date`` header value, fixed when the message is created.
        write_bcc_header: Write the Bcc list into the document itself. Off by
            default: turning it on shows every Bcc recipient to everyone who
            receives the message, which defeats the purpose of Bcc.
        host: SMTP server host.
        port: SMTP server port.
        local_hostname: Name announced with EHLO/HELO.
        timeout: Per-command SMTP timeout in seconds.
        validate_certs: Verify the server certificate after STARTTLS.
        auth: Authentication mechanism; never shown in ``str()`` or ``repr()``.
    """

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    from_addr: Annotated[str, Field(default="", description="Sender address")]
    from_name: Annotated[str, Field(default="", description="Sender display name")]
    reply_to: Annotated[str, Field(default="", description="Reply-To address")]
    to_addrs: Annotated[list[str], Field(default_factory=list, description="To recipients")]
    cc_addrs: Annotated[list[str], Field(default_factory=list, description="Cc recipients")]
    bcc_addrs: Annotated[list[str], Field(default_factory=list, description="Bcc recipients")]
    subject: Annotated[str, Field(default="", description="Subject line")]
    headers: Annotated[dict[str, str], Field(default_factory=dict, description="Custom headers")]
    date: Annotated[str, Field(default_factory=rfc1123z_now, description="RFC 1123 date with numeric zone")]
    write_bcc_header: Annotated[bool, Field(default=False, description="Expose Bcc recipients in the document")]
    host: Annotated[str, Field(default="", description="SMTP server host")]
    port: Annotated[int, Field(default=25, ge=1, le=65535, description="SMTP server port")]
    local_hostname: Annotated[str, Field(default="localhost", description="EHLO/HELO name")]
    timeout: Annotated[float, Field(default=DEFAULT_TIMEOUT, gt=0, description="SMTP command timeout")]
    validate_certs: Annotated[bool, Field(default=True, description="Verify STARTTLS certificates")]
    auth: Annotated[
        SMTPAuth | None,
        Field(default=None, repr=False, exclude=True, description="SMTP authentication mechanism"),
    ]

    _plain: BodyPart = PrivateAttr(default_factory=lambda: BodyPart("plain"))
    _html: BodyPart = PrivateAttr(default_factory=lambda: BodyPart("html"))
    _attachments: list[Attachment] = PrivateAttr(default_factory=list)

    @field_validator("from_addr", "from_name", "reply_to", "subject", mode="before")
    @classmethod
    def strip_header_text(cls, v: Any) -> Any:
        """Remove line breaks from single-value header fields."""
        if v is None:
            return ""
        if isinstance(v, str):
            return strip_line_breaks(v)
        return v

    @field_validator("to_addrs", "cc_addrs", "bcc_addrs", mode="before")
    @classmethod
    def strip_addresses(cls, v: Any) -> Any:
        """Accept one address or many, removing line breaks from each."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [strip_line_breaks(addr) if isinstance(addr, str) else addr for addr in v]

    @field_validator("headers", mode="before")
    @classmethod
    def strip_custom_headers(cls, v: Any) -> Any:
        """Remove line breaks from custom header names and values, then check the names."""
        if not isinstance(v, dict):
            return v
        return {
            check_header_name(strip_line_breaks(str(name))): strip_line_breaks(str(value))
            for name, value in v.items()
            if value is not None
        }

    @classmethod
    def from_settings(cls, settings: SMTPSettings, **fields: Any) -> Message:
        """Create a message bound to the SMTP server described by ``settings``."""
        return cls(
            host=settings.host,
            port=settings.port,
            local_hostname=settings.local_hostname,
            timeout=settings.timeout,
            validate_certs=settings.validate_certs,
            auth=settings.build_auth(),
            **fields,
        )

    # ------------------------------------------------------------------ setters
    def set_to(self, *addrs: str) -> None:
        self.to_addrs = list(addrs)

    def set_cc(self, *addrs: str) -> None:
        self.cc_addrs = list(addrs)

    def set_bcc(self, *addrs: str) -> None:
        self.bcc_addrs = list(addrs)

    def set_from(self, addr: str) -> None:
        self.from_addr = addr

    def set_from_name(self, name: str) -> None:
        self.from_name = name

    def set_reply_to(self, addr: str) -> None:
        self.reply_to = addr

    def set_subject(self, subject: str) -> None:
        self.subject = subject

    def add_header(self, name: str, value: str) -> None:
        """Add or replace a custom header.

        Raises:
            pydantic.ValidationError: If ``name`` is not a valid header field
                name or is one of the MIME structure headers.
        """
        self.headers = {**self.headers, name: value}

    # -------------------------------------------------------------- body parts
    @property
    def plain(self) -> BodyPart:
        return self._plain

    @property
    def html(self) -> BodyPart:
        return self._html

    # ------------------------------------------------------------- attachments
    @property
    def attachments(self) -> list[Attachment]:
        return list(self._attachments)

    def attach(self, filename: str, source: AttachmentSource) -> None:
        """Attach content; the MIME type is guessed from ``filename``.

        ``source`` is read when the document is built, not now.
        """
        self._attachments.append(Attachment(filename, source))

    def attach_with_mime_type(self, filename: str, source: AttachmentSource, mime_type: str) -> None:
        """Attach content with an explicit ``maintype/subtype``."""
        self._attachments.append(Attachment(filename, source, mime_type=mime_type))

    def clear_attachments(self) -> None:
        self._attachments.clear()

    # ---------------------------------------------------------------- document
    def all_recipients(self) -> list[str]:
        """To, Cc and Bcc addresses in that order, for use as envelope recipients."""
        return [*self.to_addrs, *self.cc_addrs, *self.bcc_addrs]

    def mime_bytes(self) -> bytes:
        """Assemble the raw MIME document.

        Suitable for services that accept raw MIME instead of speaking SMTP.

        Raises:
            BuildError: If an attachment cannot be read or a custom header
                name is not usable.
        """
        return MimeAssembler(self).build()

    def mime_buffer(self) -> io.BytesIO:
        """Assemble the raw MIME document into a fresh buffer."""
        return io.BytesIO(self.mime_bytes())

    # ---------------------------------------------------------------- delivery
    async def send_async(
        self,
        local_hostname: str | None = None,
        *,
        envelope_recipients: Iterable[str] | None = None,
    ) -> SMTPReply:
        """Assemble the document and deliver it over one SMTP session.

        Args:
            local_hostname: EHLO/HELO name; defaults to ``self.local_hostname``.
            envelope_recipients: ``RCPT TO`` addresses. Defaults to the To
                list only; pass :meth:`all_recipients` to also deliver to Cc
                and Bcc.

        Returns:
            The server's final reply to the message data.

        Raises:
            BuildError: If an attachment cannot be read or a custom header
                name is not usable.
            DeliveryError: Any SMTP session failure (see :mod:`mailsmith.errors`).
        """
        if not self.host:
            raise ValueError("No SMTP host configured")
        payload = self.mime_bytes()
        if envelope_recipients is None:
            recipients = strip_all(self.to_addrs)
        else:
            recipients = strip_all(envelope_recipients)
        driver = SMTPDeliveryDriver(
            self.host,
            self.port,
            local_hostname=local_hostname or self.local_hostname,
            auth=self.auth,
            timeout=self.timeout,
            validate_certs=self.validate_certs,
        )
        logger.debug(
            "Sending %d bytes from %s to %d recipient(s) via %s:%s",
            len(payload),
            self.from_addr,
            len(recipients),
            self.host,
            self.port,
        )
        return await driver.deliver(self.from_addr, recipients, payload)

    def send(
        self,
        local_hostname: str | None = None,
        *,
        envelope_recipients: Iterable[str] | None = None,
    ) -> SMTPReply:
        """Blocking version of :meth:`send_async`.

        Must not be called from a running event loop; use :meth:`send_async`
        there.
        """
        return asyncio.run(self.send_async(local_hostname, envelope_recipients=envelope_recipients))

    def __str__(self) -> str:
        attachments = [f"{{filename: {attachment.filename}}}" for attachment in self._attachments]
        custom = "".join(f"{name}: {value!r}, " for name, value in self.headers.items())
        return (
            f"Message(date: {self.date!r}, from: {self.from_addr!r}, fromName: {self.from_name!r}, "
            f"html: {len(str(self._html).encode('utf-8'))} bytes, "
            f"plain: {len(str(self._plain).encode('utf-8'))} bytes, "
            f"to: {self.to_addrs}, cc: {self.cc_addrs}, bcc: {self.bcc_addrs}, "
            f"subject: {self.subject!r}, {custom}host: {self.host!r}, "
            f"attachments ({len(attachments)}): [{', '.join(attachments)}], "
            f"auth set: {self.auth is not None})"
        )
