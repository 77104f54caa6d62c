# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Header value sanitization.

Every string that ends up verbatim in a header line goes through
:func:`strip_line_breaks` so a caller-supplied value can never start a new
header (CRLF / header injection). Custom header names are also checked with
:func:`check_header_name`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_LINE_BREAKS = re.compile(r"\r\n|\r|\n")


def strip_line_breaks(value: str) -> str:
    """Return ``value`` with every CRLF, bare CR and bare LF removed."""
    return _LINE_BREAKS.sub("", value)


def strip_all(values: Iterable[str]) -> list[str]:
    """Apply :func:`strip_line_breaks` to each item, preserving order."""
    return [strip_line_breaks(value) for value in values]


# RFC 5322 field names: printable US-ASCII except colon.
_FIELD_NAME = re.compile(r"[\x21-\x39\x3b-\x7e]+")

# Set by the assembler only.
_RESERVED_PREFIX = "content-"
_RESERVED_NAMES = frozenset({"mime-version"})


def check_header_name(name: str) -> str:
    """Return ``name`` if it can be used for a custom header.

    Raises:
        ValueError: If ``name`` contains characters not allowed in a header
            field name, or names a MIME structure header.
    """
    if not _FIELD_NAME.fullmatch(name):
        raise ValueError(f"Invalid header name {name!r}")
    lowered = name.lower()
    if lowered.startswith(_RESERVED_PREFIX) or lowered in _RESERVED_NAMES:
        raise ValueError(f"Header {name!r} is set by the MIME assembler and cannot be overridden")
    return name
