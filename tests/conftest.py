import aiosmtplib
import pytest
from aiosmtplib import SMTPResponse


class FakeServer:
    """Scripted server behaviour shared by every FakeSMTP it creates."""

    def __init__(self):
        self.extensions = {"size", "8bitmime"}
        self.extensions_after_tls = None
        self.auth_methods = []
        self.accepted_credentials = None
        self.helo_only = False
        self.connect_error = None
        self.starttls_error = None
        self.rejected_sender = None
        self.rejected_recipients = set()
        self.data_start_reply = SMTPResponse(354, "End data with <CR><LF>.<CR><LF>")
        self.data_start_error = None
        self.write_error = None
        self.data_error = None
        self.final_reply = SMTPResponse(250, "2.0.0 Ok: queued as 4F2A1")
        self.clients = []

    @property
    def client(self):
        return self.clients[-1]

    def advertise(self, *names):
        self.extensions.update(name.lower() for name in names)


class FakeSMTP:
    def __init__(self, server, **kwargs):
        self.server = server
        self.hostname = kwargs["hostname"]
        self.port = kwargs["port"]
        self.kwargs = kwargs
        self.commands = []
        self.esmtp_extensions = {}
        self.server_auth_methods = []
        self.connected = False
        self.encrypted = False
        self.closed = False
        self.data = None

    async def connect(self):
        if self.server.connect_error is not None:
            raise self.server.connect_error
        self.connected = True
        return SMTPResponse(220, "fake.example.com ESMTP ready")

    async def ehlo(self, hostname=None):
        self.commands.append(("EHLO", hostname or self.kwargs.get("local_hostname")))
        if self.server.helo_only:
            raise aiosmtplib.SMTPHeloError(502, "5.5.2 Error: command not recognized")
        extensions = self.server.extensions
        if self.encrypted and self.server.extensions_after_tls is not None:
            extensions = self.server.extensions_after_tls
        self.esmtp_extensions = {name: "" for name in extensions}
        if "auth" in extensions:
            self.server_auth_methods = [method.lower() for method in self.server.auth_methods]
        return SMTPResponse(250, "fake.example.com")

    async def helo(self, hostname=None):
        self.commands.append(("HELO", hostname or self.kwargs.get("local_hostname")))
        return SMTPResponse(250, "fake.example.com")

    def supports_extension(self, name):
        return name.lower() in self.esmtp_extensions

    async def starttls(self, **kwargs):
        self.commands.append(("STARTTLS",))
        if self.server.starttls_error is not None:
            raise self.server.starttls_error
        self.encrypted = True
        self.esmtp_extensions = {}
        return SMTPResponse(220, "2.0.0 Ready to start TLS")

    def _check_credentials(self, mechanism, username, secret):
        self.commands.append(("AUTH", mechanism, username))
        if self.server.accepted_credentials != (username, secret):
            raise aiosmtplib.SMTPAuthenticationError(535, "5.7.8 Authentication credentials invalid")
        return SMTPResponse(235, "2.7.0 Authentication successful")

    async def auth_plain(self, username, password):
        return self._check_credentials("PLAIN", username, password)

    async def auth_login(self, username, password):
        return self._check_credentials("LOGIN", username, password)

    async def auth_crammd5(self, username, password):
        return self._check_credentials("CRAM-MD5", username, password)

    async def execute_command(self, *args):
        if args == (b"DATA",):
            self.commands.append(("DATA",))
            if self.server.data_start_error is not None:
                raise self.server.data_start_error
            return self.server.data_start_reply
        self.commands.append(tuple(args))
        if args[0] == b"AUTH":
            expected = self.server.accepted_credentials
            if expected is not None and args[2] == expected:
                return SMTPResponse(235, "2.7.0 Accepted")
            return SMTPResponse(334, "eyJzdGF0dXMiOiI0MDEifQ==")
        return SMTPResponse(535, "5.7.8 Username and Password not accepted")

    async def mail(self, sender):
        self.commands.append(("MAIL", sender))
        if sender == self.server.rejected_sender:
            raise aiosmtplib.SMTPSenderRefused(553, "5.7.1 Sender address rejected", sender)
        return SMTPResponse(250, "2.1.0 Ok")

    async def rcpt(self, recipient):
        self.commands.append(("RCPT", recipient))
        if recipient in self.server.rejected_recipients:
            raise aiosmtplib.SMTPRecipientRefused(550, "5.1.1 User unknown", recipient)
        return SMTPResponse(250, "2.1.5 Ok")

    @property
    def protocol(self):
        return FakeProtocol(self) if self.connected else None

    def close(self):
        self.connected = False
        self.closed = True

    @property
    def verbs(self):
        return [command[0] for command in self.commands]


class FakeProtocol:
    """Transport-level writes and reads used for the message content."""

    def __init__(self, client):
        self.client = client

    def write(self, data):
        if self.client.server.write_error is not None:
            raise self.client.server.write_error
        self.client.data = data

    async def read_response(self, timeout=None):
        if self.client.server.data_error is not None:
            raise self.client.server.data_error
        return self.client.server.final_reply


@pytest.fixture
def smtp_server(monkeypatch):
    server = FakeServer()

    def factory(**kwargs):
        client = FakeSMTP(server, **kwargs)
        server.clients.append(client)
        return client

    monkeypatch.setattr("mailsmith.smtp_driver.aiosmtplib.SMTP", factory)
    return server


@pytest.fixture
def make_client():
    """Standalone FakeSMTP for exercising auth mechanisms directly."""

    def factory(hostname="smtp.example.com", credentials=None):
        server = FakeServer()
        server.accepted_credentials = credentials
        return FakeSMTP(server, hostname=hostname, port=587)

    return factory
