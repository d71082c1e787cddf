"""XMPP check — open a client stream and log in with SASL PLAIN."""

from __future__ import annotations

import base64
import re
import socket
import ssl

from pydantic import SecretStr

from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline

STREAM_HEADER = (
    "<?xml version='1.0'?>"
    "<stream:stream to='{domain}' version='1.0' xmlns='jabber:client' "
    "xmlns:stream='http://etherx.jabber.org/streams'>"
)
STARTTLS = "<starttls xmlns='urn:ietf:params:xml:ns:xmpp-tls'/>"
AUTH_PLAIN = "<auth xmlns='urn:ietf:params:xml:ns:xmpp-sasl' mechanism='PLAIN'>{payload}</auth>"


class XMPPError(Exception):
    """The server rejected or broke off the stream."""


class XMPPDefinition(CheckDefinitionModel):
    Host: str = ""
    Username: str = ""  # full JID, user@domain
    Password: SecretStr = SecretStr("")
    Encrypted: bool = True  # STARTTLS
    Port: str = "5222"


def _read_until(sock: socket.socket, pattern: str) -> str:
    data = ""
    regex = re.compile(pattern)
    while not regex.search(data):
        chunk = sock.recv(4096)
        if not chunk:
            raise XMPPError("connection closed by server")
        data += chunk.decode("utf-8", errors="replace")
        if "<stream:error" in data:
            raise XMPPError(f"stream error: {data[-200:]}")
    return data


@register_check
class XMPPCheck(Check):
    check_type = "xmpp"
    Definition = XMPPDefinition
    required_fields = ("Host", "Username", "Password")

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        user, _, domain = p.Username.partition("@")
        domain = domain.split("/", 1)[0] or p.Host
        try:
            sock = socket.create_connection((p.Host, int(p.Port)), timeout=self.timeout(deadline))
        except (OSError, ValueError) as e:
            return self.fail(f"Could not connect to XMPP server {p.Host}: {e}")

        try:
            with sock:
                self._login(sock, domain, user, p.Password.get_secret_value(), p.Encrypted)
        except ssl.SSLError as e:
            return self.fail(f"TLS session creation failed: {e}")
        except (XMPPError, OSError) as e:
            return self.fail(f"Failed to login with user {p.Username}: {e}")

        return self.succeed(f"Logged in as {p.Username}")

    def _login(self, sock: socket.socket, domain: str, user: str, password: str, encrypted: bool) -> None:
        sock.sendall(STREAM_HEADER.format(domain=domain).encode())
        features = _read_until(sock, r"</stream:features>")

        if encrypted:
            if "urn:ietf:params:xml:ns:xmpp-tls" not in features:
                raise XMPPError("server does not offer STARTTLS")
            sock.sendall(STARTTLS.encode())
            _read_until(sock, r"<proceed[^>]*/>")
            ctx = ssl.create_default_context()
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            sock = ctx.wrap_socket(sock, server_hostname=domain)
            sock.sendall(STREAM_HEADER.format(domain=domain).encode())
            features = _read_until(sock, r"</stream:features>")

        if "<mechanism>PLAIN</mechanism>" not in features:
            raise XMPPError("server does not offer SASL PLAIN")
        payload = base64.b64encode(f"\0{user}\0{password}".encode()).decode()
        sock.sendall(AUTH_PLAIN.format(payload=payload).encode())
        reply = _read_until(sock, r"<(success|failure)[\s/>]")
        if "<failure" in reply:
            condition = re.search(r"<failure[^>]*>\s*<([\w-]+)", reply)
            raise XMPPError(condition.group(1) if condition else "authentication failed")
        sock.sendall(b"</stream:stream>")
