# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Attachment sources and content type resolution.

An attachment couples a filename with a content source that is read only when
the document is assembled. Supported sources:

- ``bytes`` / ``bytearray`` / ``memoryview`` - used as-is
- ``os.PathLike`` or ``str`` - a filesystem path read with ``read_bytes()``
- a binary file-like object - anything with a ``read()`` method

Example:
    Attaching a report from disk and an in-memory CSV::

        from mailsmith.attachments import Attachment

        pdf = Attachment("report.pdf", Path("/var/reports/q3.pdf"))
        csv = Attachment("data.csv", b"a,b\\n1,2\\n", mime_type="text/csv")

        content = pdf.read()
        maintype, subtype = csv.content_type()
"""

from __future__ import annotations

import mimetypes
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Union

from .errors import BuildError

DEFAULT_CONTENT_TYPE = ("application", "octet-stream")

AttachmentSource = Union[bytes, bytearray, memoryview, str, os.PathLike, BinaryIO]


def guess_mime(filename: str) -> tuple[str, str]:
    """Determine the MIME type for a filename based on its extension.

    Falls back to ``application/octet-stream`` for unrecognized extensions.

    Args:
        filename: Name of the file including extension.

    Returns:
        Tuple of (maintype, subtype). For example, "document.pdf" returns
        ("application", "pdf").
    """
    mt, _ = mimetypes.guess_type(filename)
    if not mt:
        return DEFAULT_CONTENT_TYPE
    return tuple(mt.split("/", 1))  # type: ignore[return-value]


@dataclass
class Attachment:
    """A file attached to a message.

    Attributes:
        filename: Name announced in the ``Content-Disposition`` header.
        source: Content source, see the module docstring.
        mime_type: Explicit ``maintype/subtype``; when missing or malformed the
            type is guessed from ``filename``.
    """

    filename: str
    source: AttachmentSource = field(repr=False)
    mime_type: str | None = None

    def content_type(self) -> tuple[str, str]:
        """Return (maintype, subtype) for this attachment."""
        if self.mime_type and "/" in self.mime_type:
            maintype, subtype = self.mime_type.strip().split("/", 1)
            if maintype and subtype:
                return maintype.lower(), subtype.lower()
        return guess_mime(self.filename)

    def read(self) -> bytes:
        """Read the whole attachment content.

        Raises:
            BuildError: If the backing file or stream cannot be read.
        """
        source = self.source
        if isinstance(source, (bytes, bytearray, memoryview)):
            return bytes(source)
        try:
            if isinstance(source, (str, os.PathLike)):
                return Path(source).read_bytes()
            if hasattr(source, "read"):
                data = source.read()
                if isinstance(data, str):
                    raise TypeError("attachment stream must be opened in binary mode")
                return bytes(data)
        except (OSError, TypeError) as exc:
            raise BuildError(f"Cannot read attachment {self.filename!r}: {exc}", filename=self.filename) from exc
        raise BuildError(
            f"Unsupported attachment source for {self.filename!r}: {type(source).__name__}",
            filename=self.filename,
        )
