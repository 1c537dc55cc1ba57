"""Small helpers: random letter strings and local address discovery."""

from __future__ import annotations

import ipaddress
import random
import socket

import psutil

LETTERS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

_rng = random.Random()


def rand_string(n: int) -> str:
    """Return ``n`` random ASCII letters; an empty string when ``n`` <= 0."""
    if n <= 0:
        return ""
    return "".join(_rng.choices(LETTERS, k=n))


def get_ipv4_from_link() -> str:
    """Return the first non-loopback IPv4 address of this host, or ''."""
    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, psutil.Error):
        return ""
    for addresses in interfaces.values():
        for addr in addresses:
            if addr.family != socket.AF_INET:
                continue
            try:
                ip = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if not ip.is_loopback:
                return str(ip)
    return ""