"""Tests for SMTP settings loading from mailsmith.ini and the environment."""

import pytest

from mailsmith import Message
from mailsmith.auth import CramMD5Auth, LoginAuth, PlainAuth, XOAuth2Auth
from mailsmith.config_loader import ENV_PREFIX, SMTPSettings, load_smtp_settings
from mailsmith.smtp_driver import DEFAULT_TIMEOUT

OPTIONS = ("host", "port", "local_hostname", "timeout", "validate_certs", "auth_method", "username", "password", "token")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("MAILSMITH_CONFIG", raising=False)
    for option in OPTIONS:
        monkeypatch.delenv(ENV_PREFIX + option.upper(), raising=False)


def write_config(tmp_path, body):
    config_file = tmp_path / "mailsmith.ini"
    config_file.write_text(body)
    return config_file


def test_load_from_ini(tmp_path):
    config_file = write_config(
        tmp_path,
        """
[smtp]
host = smtp.example.com
port = 587
local_hostname = app.example.com
timeout = 12.5
validate_certs = no
auth_method = LOGIN
username = sender@example.com
password = secret
""",
    )

    settings = load_smtp_settings(config_file)

    assert settings.host == "smtp.example.com"
    assert settings.port == 587
    assert settings.local_hostname == "app.example.com"
    assert settings.timeout == 12.5
    assert settings.validate_certs is False
    assert settings.auth_method == "login"
    assert settings.username == "sender@example.com"
    assert settings.password == "secret"
    assert settings.token is None


def test_missing_file_uses_defaults(tmp_path):
    settings = load_smtp_settings(tmp_path / "absent.ini")
    assert settings == SMTPSettings()
    assert settings.port == 25
    assert settings.timeout == DEFAULT_TIMEOUT
    assert settings.validate_certs is True


def test_environment_fallback(tmp_path, monkeypatch):
    monkeypatch.setenv("MAILSMITH_SMTP_HOST", "env.example.com")
    monkeypatch.setenv("MAILSMITH_SMTP_PORT", "2525")
    monkeypatch.setenv("MAILSMITH_SMTP_TOKEN", "ya29.token")

    settings = load_smtp_settings(tmp_path / "absent.ini")

    assert settings.host == "env.example.com"
    assert settings.port == 2525
    assert settings.token == "ya29.token"


def test_ini_wins_over_environment(tmp_path, monkeypatch):
    config_file = write_config(tmp_path, "[smtp]\nhost = ini.example.com\n")
    monkeypatch.setenv("MAILSMITH_SMTP_HOST", "env.example.com")
    monkeypatch.setenv("MAILSMITH_SMTP_PORT", "465")

    settings = load_smtp_settings(config_file)

    assert settings.host == "ini.example.com"
    assert settings.port == 465


def test_config_path_from_environment(tmp_path, monkeypatch):
    config_file = write_config(tmp_path, "[smtp]\nhost = pointed.example.com\n")
    monkeypatch.setenv("MAILSMITH_CONFIG", str(config_file))
    assert load_smtp_settings().host == "pointed.example.com"


def test_other_sections_are_ignored(tmp_path):
    config_file = write_config(tmp_path, "[server]\nhost = 0.0.0.0\nport = 8000\n")
    settings = load_smtp_settings(config_file)
    assert settings.host == ""
    assert settings.port == 25


@pytest.mark.parametrize(
    "body",
    [
        "[smtp]\nport = smtp\n",
        "[smtp]\ntimeout = soon\n",
        "[smtp]\nvalidate_certs = maybe\n",
    ],
)
def test_unparseable_values_raise(tmp_path, body):
    with pytest.raises(ValueError):
        load_smtp_settings(write_config(tmp_path, body))


@pytest.mark.parametrize(
    "method, expected",
    [
        ("plain", PlainAuth),
        ("login", LoginAuth),
        ("cram-md5", CramMD5Auth),
        ("PLAIN", PlainAuth),
    ],
)
def test_build_auth_password_methods(method, expected):
    auth = SMTPSettings(auth_method=method, username="user", password="pw").build_auth()
    assert type(auth) is expected
    assert auth.username == "user"


def test_build_auth_xoauth2():
    auth = SMTPSettings(auth_method="xoauth2", username="me@example.com", token="tok").build_auth()
    assert isinstance(auth, XOAuth2Auth)
    assert auth.token == "tok"


def test_build_auth_none():
    assert SMTPSettings().build_auth() is None
    assert SMTPSettings(auth_method="none", username="ignored").build_auth() is None


@pytest.mark.parametrize(
    "settings, message",
    [
        (SMTPSettings(auth_method="kerberos", username="u", password="p"), "Unknown auth_method"),
        (SMTPSettings(auth_method="plain", password="p"), "requires a username"),
        (SMTPSettings(auth_method="login", username="u"), "requires a password"),
        (SMTPSettings(auth_method="xoauth2", username="u", password="p"), "requires a token"),
    ],
)
def test_build_auth_errors(settings, message):
    with pytest.raises(ValueError, match=message):
        settings.build_auth()


def test_repr_hides_secrets():
    text = repr(SMTPSettings(password="hunter2", token="ya29.token"))
    assert "hunter2" not in text
    assert "ya29.token" not in text


def test_message_from_settings(tmp_path):
    config_file = write_config(
        tmp_path,
        """
[smtp]
host = smtp.example.com
port = 587
local_hostname = app.example.com
auth_method = plain
username = user
password = pw
""",
    )

    message = Message.from_settings(load_smtp_settings(config_file), subject="Report")

    assert message.host == "smtp.example.com"
    assert message.port == 587
    assert message.local_hostname == "app.example.com"
    assert isinstance(message.auth, PlainAuth)
    assert message.subject == "Report"
