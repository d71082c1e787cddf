"""VNC check — RFB handshake followed by VNC password authentication."""

from __future__ import annotations

import socket
import struct

from Crypto.Cipher import DES
from pydantic import SecretStr

from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline

SECURITY_NONE = 1
SECURITY_VNC_AUTH = 2


class VNCDefinition(CheckDefinitionModel):
    Host: str = ""
    Password: SecretStr = SecretStr("")
    Port: str = "5900"


class RFBError(Exception):
    """The server broke off or refused the handshake."""


def vnc_response(password: str, challenge: bytes) -> bytes:
    """Encrypt the 16-byte challenge with the password as a DES key.

    VNC uses the password's first 8 bytes, zero padded, with the bit
    order of every byte reversed.
    """
    key = password.encode("latin-1", errors="replace")[:8].ljust(8, b"\0")
    key = bytes(int(f"{b:08b}"[::-1], 2) for b in key)
    return DES.new(key, DES.MODE_ECB).encrypt(challenge)


def _recv_exact(sock: socket.socket, n: int) -> bytes:
    data = b""
    while len(data) < n:
        chunk = sock.recv(n - len(data))
        if not chunk:
            raise RFBError("connection closed by server")
        data += chunk
    return data


def _read_reason(sock: socket.socket) -> str:
    (length,) = struct.unpack("!I", _recv_exact(sock, 4))
    return _recv_exact(sock, length).decode("utf-8", errors="replace")


@register_check
class VNCCheck(Check):
    check_type = "vnc"
    Definition = VNCDefinition
    required_fields = ("Host", "Password")

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        try:
            sock = socket.create_connection((p.Host, int(p.Port)), timeout=self.timeout(deadline))
        except (OSError, ValueError) as e:
            return self.fail(f"Could not connect to VNC server {p.Host}: {e}")

        try:
            with sock:
                sock.settimeout(self.timeout(deadline))
                version = self._handshake(sock, p.Password.get_secret_value())
        except (RFBError, OSError, struct.error) as e:
            return self.fail(f"VNC login to {p.Host} failed: {e}")

        return self.succeed(f"Authenticated to {p.Host}", details={"protocol": version})

    def _handshake(self, sock: socket.socket, password: str) -> str:
        banner = _recv_exact(sock, 12)
        if not banner.startswith(b"RFB "):
            raise RFBError(f"unexpected banner {banner!r}")
        server_version = banner[4:11].decode("ascii", errors="replace")
        minor = int(banner[8:11]) if banner[8:11].isdigit() else 3
        # Answer with the highest version both sides speak
        minor = 8 if minor >= 8 else (7 if minor == 7 else 3)
        sock.sendall(f"RFB 003.{minor:03d}\n".encode("ascii"))

        if minor == 3:
            (sec_type,) = struct.unpack("!I", _recv_exact(sock, 4))
            if sec_type == 0:
                raise RFBError(_read_reason(sock))
            offered = [sec_type]
        else:
            (count,) = struct.unpack("!B", _recv_exact(sock, 1))
            if count == 0:
                raise RFBError(_read_reason(sock))
            offered = list(_recv_exact(sock, count))

        if SECURITY_VNC_AUTH in offered:
            if minor >= 7:
                sock.sendall(bytes([SECURITY_VNC_AUTH]))
            challenge = _recv_exact(sock, 16)
            sock.sendall(vnc_response(password, challenge))
        elif SECURITY_NONE in offered:
            if minor >= 7:
                sock.sendall(bytes([SECURITY_NONE]))
            if minor < 8:
                return server_version
        else:
            raise RFBError(f"no supported security type in {offered}")

        (status,) = struct.unpack("!I", _recv_exact(sock, 4))
        if status != 0:
            reason = _read_reason(sock) if minor >= 8 else "authentication failed"
            raise RFBError(reason)
        return server_version
