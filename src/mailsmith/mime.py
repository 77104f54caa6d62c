# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""MIME document assembly.

:class:`MimeAssembler` renders a :class:`~mailsmith.message.Message` into one
RFC 5322 document with CRLF line endings. The structure depends on what the
message carries:

==================  ==================  ===========================================
bodies              attachments         document
==================  ==================  ===========================================
one                 none                single part
plain + html        none                multipart/alternative (plain, html)
none                some                multipart/mixed (attachments)
one                 some                multipart/mixed (body, attachments)
plain + html        some                multipart/mixed (alternative, attachments)
==================  ==================  ===========================================

Boundaries are random tokens drawn fresh for every build.
"""

from __future__ import annotations

import secrets
from email import policy
from email.message import EmailMessage, MIMEPart
from email.utils import formataddr
from typing import TYPE_CHECKING

from .errors import BuildError
from .logger import get_logger
from .sanitize import check_header_name, strip_all, strip_line_breaks

if TYPE_CHECKING:
    from .message import BodyPart, Message

# 78 columns keeps base64 lines at 76 characters (57 input bytes per line).
MIME_POLICY = policy.SMTP.clone(cte_type="7bit", max_line_length=78)
# Serialization only: headers fold at the RFC 5322 hard limit, so long
# unbreakable ASCII values stay literal instead of becoming encoded words.
HEADER_POLICY = MIME_POLICY.clone(max_line_length=998)

logger = get_logger("MimeAssembler")


class BoundaryFactory:
    """Hands out boundary tokens that are unique within one document."""

    def __init__(self, nbytes: int = 16):
        self._nbytes = nbytes
        self._issued: set[str] = set()

    def new(self) -> str:
        token = secrets.token_hex(self._nbytes)
        while token in self._issued:
            token = secrets.token_hex(self._nbytes)
        self._issued.add(token)
        return token


class MimeAssembler:
    """Builds the MIME document for one message.

    Attachment content is read when :meth:`build` runs; the message itself is
    never modified.
    """

    def __init__(self, message: Message):
        self.message = message

    def build(self) -> bytes:
        """Assemble the full document.

        Returns:
            The document bytes, ending with CRLF.

        Raises:
            BuildError: If an attachment cannot be read or a custom header
                name is not usable.
        """
        message = self.message
        boundaries = BoundaryFactory()
        bodies = [body for body in (message.plain, message.html) if len(body)]
        attachments = [self._attachment_part(attachment) for attachment in message.attachments]

        if not attachments:
            if len(bodies) == 2:
                content = self._multipart("alternative", [self._text_part(b) for b in bodies], boundaries)
                structure = "multipart/alternative"
            else:
                # Without any body the document still needs a (blank) text part.
                content = self._text_part(bodies[0]) if bodies else self._blank_part()
                structure = content.get_content_type()
        else:
            children = []
            if len(bodies) == 2:
                children.append(self._multipart("alternative", [self._text_part(b) for b in bodies], boundaries))
            elif bodies:
                children.append(self._text_part(bodies[0]))
            children.extend(attachments)
            content = self._multipart("mixed", children, boundaries)
            structure = "multipart/mixed"

        root = EmailMessage(policy=MIME_POLICY)
        self._write_headers(root)
        for name, value in content.items():
            if name in root:
                root.replace_header(name, value)
            else:
                root[name] = value
        root.set_payload(content.get_payload())
        logger.debug(
            "Assembled %s document: %d body part(s), %d attachment(s)",
            structure,
            len(bodies),
            len(attachments),
        )
        raw = root.as_bytes(policy=HEADER_POLICY)
        if not raw.endswith(b"\r\n"):
            raw += b"\r\n"
        return raw

    def _write_headers(self, root: EmailMessage) -> None:
        message = self.message
        root["Date"] = message.date
        if message.from_addr:
            root["From"] = formataddr((message.from_name, message.from_addr)) if message.from_name else message.from_addr
        # Lists can be edited in place, past the assignment validators.
        if message.to_addrs:
            root["To"] = ", ".join(strip_all(message.to_addrs))
        if message.cc_addrs:
            root["Cc"] = ", ".join(strip_all(message.cc_addrs))
        if message.write_bcc_header and message.bcc_addrs:
            root["Bcc"] = ", ".join(strip_all(message.bcc_addrs))
        if message.reply_to:
            root["Reply-To"] = message.reply_to
        root["Subject"] = message.subject
        root["MIME-Version"] = "1.0"
        for name, value in message.headers.items():
            try:
                name = check_header_name(strip_line_breaks(name))
            except ValueError as exc:
                raise BuildError(str(exc)) from exc
            value = strip_line_breaks(str(value))
            if name in root:
                root.replace_header(name, value)
            else:
                root[name] = value

    @staticmethod
    def _text_part(body: BodyPart) -> MIMEPart:
        part = MIMEPart(policy=MIME_POLICY)
        part.set_content(str(body), subtype=body.kind, charset="utf-8")
        return part

    @staticmethod
    def _blank_part() -> MIMEPart:
        part = MIMEPart(policy=MIME_POLICY)
        part.set_content("", subtype="plain", charset="utf-8", cte="7bit")
        return part

    def _attachment_part(self, attachment) -> MIMEPart:
        content = attachment.read()
        maintype, subtype = attachment.content_type()
        part = MIMEPart(policy=MIME_POLICY)
        part.set_content(
            content,
            maintype=maintype,
            subtype=subtype,
            cte="base64",
            disposition="attachment",
            filename=strip_line_breaks(attachment.filename),
        )
        return part

    @staticmethod
    def _multipart(subtype: str, children: list[MIMEPart], boundaries: BoundaryFactory) -> MIMEPart:
        container = MIMEPart(policy=MIME_POLICY)
        container["Content-Type"] = f"multipart/{subtype}"
        container.set_boundary(boundaries.new())
        for child in children:
            container.attach(child)
        return container
