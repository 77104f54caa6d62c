# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP server settings from an INI file with environment fallbacks.

Values in the ``[smtp]`` section win; each missing option falls back to its
``MAILSMITH_SMTP_*`` environment variable, then to the built-in default.

Example:
    Configuration file format (mailsmith.ini)::

        [smtp]
        host = smtp.example.com
        port = 587
        local_hostname = app.example.com
        timeout = 30
        validate_certs = yes

        # none, plain, login, cram-md5 or xoauth2
        auth_method = plain
        username = sender@example.com
        password = secret

    Loading it::

        settings = load_smtp_settings("/etc/mailsmith.ini")
        message = Message.from_settings(settings)

Environment variables:
    MAILSMITH_CONFIG - Path to the INI file (default: mailsmith.ini)
    MAILSMITH_SMTP_HOST, MAILSMITH_SMTP_PORT, MAILSMITH_SMTP_LOCAL_HOSTNAME,
    MAILSMITH_SMTP_TIMEOUT, MAILSMITH_SMTP_VALIDATE_CERTS,
    MAILSMITH_SMTP_AUTH_METHOD, MAILSMITH_SMTP_USERNAME,
    MAILSMITH_SMTP_PASSWORD, MAILSMITH_SMTP_TOKEN
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path

from .auth import CramMD5Auth, LoginAuth, PlainAuth, SMTPAuth, XOAuth2Auth
from .logger import get_logger
from .smtp_driver import DEFAULT_TIMEOUT

logger = get_logger("SMTPSettings")

ENV_PREFIX = "MAILSMITH_SMTP_"
AUTH_METHODS = ("none", "plain", "login", "cram-md5", "xoauth2")


@dataclass
class SMTPSettings:
    """Connection and authentication settings for one SMTP server.

    Attributes:
        host: SMTP server host name or address.
        port: SMTP server port.
        local_hostname: Name announced with EHLO/HELO.
        timeout: Per-command timeout in seconds.
        validate_certs: Verify the server certificate after STARTTLS.
        auth_method: One of ``AUTH_METHODS``.
        username: Login name for every method but ``none``.
        password: Password for plain, login and cram-md5.
        token: OAuth 2.0 access token for xoauth2.
    """

    host: str = ""
    port: int = 25
    local_hostname: str = "localhost"
    timeout: float = DEFAULT_TIMEOUT
    validate_certs: bool = True
    auth_method: str = "none"
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    token: str | None = field(default=None, repr=False)

    def build_auth(self) -> SMTPAuth | None:
        """Instantiate the configured authentication mechanism.

        Raises:
            ValueError: If the method is unknown or its credentials are missing.
        """
        method = (self.auth_method or "none").strip().lower()
        if method == "none":
            return None
        if method not in AUTH_METHODS:
            raise ValueError(f"Unknown auth_method {self.auth_method!r}, expected one of {', '.join(AUTH_METHODS)}")
        if not self.username:
            raise ValueError(f"auth_method {method!r} requires a username")
        if method == "xoauth2":
            if not self.token:
                raise ValueError("auth_method 'xoauth2' requires a token")
            return XOAuth2Auth(self.username, self.token)
        if not self.password:
            raise ValueError(f"auth_method {method!r} requires a password")
        if method == "plain":
            return PlainAuth(self.username, self.password)
        if method == "login":
            return LoginAuth(self.username, self.password)
        return CramMD5Auth(self.username, self.password)


def _parse_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def load_smtp_settings(config_path: str | os.PathLike | None = None) -> SMTPSettings:
    """Load :class:`SMTPSettings` from ``config_path`` and the environment.

    Args:
        config_path: INI file to read. Defaults to ``$MAILSMITH_CONFIG`` or
            ``mailsmith.ini``. A missing file is not an error.

    Raises:
        ValueError: If a numeric or boolean option cannot be parsed.
    """
    path = Path(config_path or os.getenv("MAILSMITH_CONFIG", "mailsmith.ini"))
    parser = configparser.ConfigParser()
    if path.exists():
        parser.read(path)
    else:
        logger.debug("Config file %s not found, using environment only", path)

    def get(option: str) -> str | None:
        if parser.has_option("smtp", option):
            return parser.get("smtp", option)
        return os.getenv(ENV_PREFIX + option.upper())

    defaults = SMTPSettings()
    port = get("port")
    timeout = get("timeout")
    validate_certs = get("validate_certs")
    return SMTPSettings(
        host=(get("host") or defaults.host).strip(),
        port=int(port) if port else defaults.port,
        local_hostname=(get("local_hostname") or defaults.local_hostname).strip(),
        timeout=float(timeout) if timeout else defaults.timeout,
        validate_certs=_parse_bool(validate_certs) if validate_certs else defaults.validate_certs,
        auth_method=(get("auth_method") or defaults.auth_method).strip().lower(),
        username=get("username") or None,
        password=get("password") or None,
        token=get("token") or None,
    )
