"""SOCKS5 wire helpers: greeting, authentication, address parsing and replies."""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from enum import IntEnum

SOCKS5_VERSION = 5

NO_AUTH = 0
NO_ACCEPTABLE = 255
USER_PASS_AUTH = 2
USER_AUTH_VERSION = 1
AUTH_SUCCESS = 0
AUTH_FAILURE = 1

CONNECT_COMMAND = 1
BIND_COMMAND = 2
ASSOCIATE_COMMAND = 3

IPV4_ADDRESS = 1
FQDN_ADDRESS = 3
IPV6_ADDRESS = 4

_TIMEOUT = 2.0


class Socks5Error(Exception):
    """Raised for malformed, unsupported or truncated SOCKS5 messages."""


class Reply(IntEnum):
    """Reply codes sent to the client after a request."""

    SUCCESS = 0
    SERVER_FAILURE = 1
    RULE_FAILURE = 2
    NETWORK_UNREACHABLE = 3
    HOST_UNREACHABLE = 4
    CONNECTION_REFUSED = 5
    TTL_EXPIRED = 6
    COMMAND_NOT_SUPPORTED = 7
    ADDR_TYPE_NOT_SUPPORTED = 8


IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


@dataclass(frozen=True)
class AddrSpec:
    """A destination given either as a domain name or as an IP address, plus a port."""

    fqdn: str = ""
    ip: IPAddress | None = None
    port: int = 0

    def address(self) -> str:
        """Return ``host:port``, bracketing IPv6 hosts; the IP wins over the name."""
        host = str(self.ip) if self.ip is not None else self.fqdn
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{self.port}"

    def __str__(self) -> str:
        if self.fqdn:
            ip = self.ip if self.ip is not None else "unresolved"
            return f"{self.fqdn} ({ip}):{self.port}"
        return f"{self.ip}:{self.port}"


def _recv_exact(conn: socket.socket, size: int) -> bytes:
    conn.settimeout(_TIMEOUT)
    data = bytearray()
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            raise Socks5Error(f"connection closed after {len(data)} of {size} bytes")
        data.extend(chunk)
    return bytes(data)


def _read_byte(conn: socket.socket) -> int:
    return _recv_exact(conn, 1)[0]


def _send(conn: socket.socket, data: bytes) -> None:
    conn.settimeout(_TIMEOUT)
    conn.sendall(data)


def read_dest_addr(conn: socket.socket) -> AddrSpec:
    """Read a request header (version, command, reserved) and its destination."""
    header = _recv_exact(conn, 3)
    if header[0] != SOCKS5_VERSION:
        raise Socks5Error(f"unsupported command version: {header[0]}")
    return read_addr_spec(conn)


def read_version(conn: socket.socket) -> int:
    """Read the greeting's version byte; raise Socks5Error unless it is 5."""
    version = _read_byte(conn)
    if version != SOCKS5_VERSION:
        raise Socks5Error(f"unsupported SOCKS version: {version}")
    return version


def read_methods(conn: socket.socket) -> bytes:
    """Read the method count and the authentication methods the client offers."""
    count = _read_byte(conn)
    return _recv_exact(conn, count)


def send_reply(conn: socket.socket, resp: int, addr: AddrSpec | None = None) -> None:
    """Send a reply with code ``resp`` and bound address ``addr`` (0.0.0.0:0 if None)."""
    if addr is None:
        addr_type, body, port = IPV4_ADDRESS, bytes(4), 0
    elif addr.fqdn:
        name = addr.fqdn.encode("utf-8")
        if len(name) > 255:
            raise Socks5Error(f"domain name too long: {addr.fqdn!r}")
        addr_type, body, port = FQDN_ADDRESS, bytes([len(name)]) + name, addr.port
    elif addr.ip is not None:
        ip = addr.ip
        if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped
        addr_type = IPV4_ADDRESS if ip.version == 4 else IPV6_ADDRESS
        body, port = ip.packed, addr.port
    else:
        raise Socks5Error(f"cannot format address: {addr!r}")
    message = (
        bytes([SOCKS5_VERSION, int(resp), 0, addr_type])
        + body
        + (port & 0xFFFF).to_bytes(2, "big")
    )
    _send(conn, message)


def read_addr_spec(conn: socket.socket) -> AddrSpec:
    """Read an address type byte, the address and the port."""
    addr_type = _read_byte(conn)
    fqdn = ""
    ip: IPAddress | None = None
    if addr_type == IPV4_ADDRESS:
        ip = ipaddress.IPv4Address(_recv_exact(conn, 4))
    elif addr_type == IPV6_ADDRESS:
        ip = ipaddress.IPv6Address(_recv_exact(conn, 16))
    elif addr_type == FQDN_ADDRESS:
        length = _read_byte(conn)
        fqdn = _recv_exact(conn, length).decode("utf-8", errors="surrogateescape")
    else:
        raise Socks5Error(f"unrecognized address type: {addr_type}")
    port = int.from_bytes(_recv_exact(conn, 2), "big")
    return AddrSpec(fqdn=fqdn, ip=ip, port=port)


def get_user_password(conn: socket.socket) -> tuple[str, str]:
    """Ask for username/password authentication and read the credentials."""
    _send(conn, bytes([SOCKS5_VERSION, USER_PASS_AUTH]))
    version, user_len = _recv_exact(conn, 2)
    if version != USER_AUTH_VERSION:
        raise Socks5Error(f"unsupported auth version: {version}")
    user = _recv_exact(conn, user_len)
    pass_len = _read_byte(conn)
    secret = _recv_exact(conn, pass_len)
    return (
        user.decode("utf-8", errors="surrogateescape"),
        secret.decode("utf-8", errors="surrogateescape"),
    )