import ipaddress
import socket

import pytest

from proxytools.socks5 import (
    IPV4_ADDRESS,
    IPV6_ADDRESS,
    FQDN_ADDRESS,
    NO_AUTH,
    SOCKS5_VERSION,
    USER_AUTH_VERSION,
    USER_PASS_AUTH,
    AddrSpec,
    Reply,
    Socks5Error,
    get_user_password,
    read_addr_spec,
    read_dest_addr,
    read_methods,
    read_version,
    send_reply,
)


@pytest.fixture
def pair():
    server, client = socket.socketpair()
    yield server, client
    server.close()
    client.close()


def recv_exact(sock, size):
    sock.settimeout(2.0)
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        assert chunk
        data += chunk
    return data


def test_read_version_accepts_five(pair):
    server, client = pair
    client.sendall(bytes([SOCKS5_VERSION]))
    assert read_version(server) == SOCKS5_VERSION


def test_read_version_rejects_other_versions(pair):
    server, client = pair
    client.sendall(bytes([4]))
    with pytest.raises(Socks5Error):
        read_version(server)


def test_read_version_on_closed_connection(pair):
    server, client = pair
    client.close()
    with pytest.raises(Socks5Error):
        read_version(server)


def test_read_methods(pair):
    server, client = pair
    client.sendall(bytes([2, NO_AUTH, USER_PASS_AUTH]))
    assert read_methods(server) == bytes([NO_AUTH, USER_PASS_AUTH])


def test_read_methods_truncated(pair):
    server, client = pair
    client.sendall(bytes([3, NO_AUTH]))
    client.close()
    with pytest.raises(Socks5Error):
        read_methods(server)


def test_read_addr_spec_ipv4(pair):
    server, client = pair
    ip = ipaddress.ip_address("127.0.0.1")
    client.sendall(bytes([IPV4_ADDRESS]) + ip.packed + (8080).to_bytes(2, "big"))
    assert read_addr_spec(server) == AddrSpec(ip=ip, port=8080)


def test_read_addr_spec_ipv6(pair):
    server, client = pair
    ip = ipaddress.ip_address("2001:db8::1")
    client.sendall(bytes([IPV6_ADDRESS]) + ip.packed + (443).to_bytes(2, "big"))
    assert read_addr_spec(server) == AddrSpec(ip=ip, port=443)


def test_read_addr_spec_fqdn(pair):
    server, client = pair
    name = b"example.com"
    client.sendall(bytes([FQDN_ADDRESS, len(name)]) + name + (80).to_bytes(2, "big"))
    assert read_addr_spec(server) == AddrSpec(fqdn="example.com", port=80)


def test_read_addr_spec_unknown_type(pair):
    server, client = pair
    client.sendall(bytes([9]))
    with pytest.raises(Socks5Error):
        read_addr_spec(server)


def test_read_dest_addr_rejects_bad_version(pair):
    server, client = pair
    client.sendall(bytes([4, 1, 0]))
    with pytest.raises(Socks5Error):
        read_dest_addr(server)


def test_send_reply_without_address_wire_bytes(pair):
    server, client = pair
    send_reply(server, Reply.SUCCESS, None)
    assert recv_exact(client, 3) == b"\x05\x00\x00"
    assert read_addr_spec(client) == AddrSpec(ip=ipaddress.ip_address("0.0.0.0"), port=0)


def test_send_reply_carries_code(pair):
    server, client = pair
    send_reply(server, Reply.HOST_UNREACHABLE, None)
    header = recv_exact(client, 3)
    assert header[1] == Reply.HOST_UNREACHABLE
    assert read_addr_spec(client) == AddrSpec(ip=ipaddress.ip_address("0.0.0.0"), port=0)


@pytest.mark.parametrize(
    "addr",
    [
        AddrSpec(ip=ipaddress.ip_address("10.0.0.1"), port=1080),
        AddrSpec(ip=ipaddress.ip_address("2001:db8::1"), port=443),
        AddrSpec(fqdn="example.com", port=80),
    ],
)
def test_send_reply_round_trip(pair, addr):
    server, client = pair
    send_reply(server, Reply.SUCCESS, addr)
    assert read_dest_addr(client) == addr


def test_send_reply_ipv4_mapped_uses_ipv4_type(pair):
    server, client = pair
    addr = AddrSpec(ip=ipaddress.ip_address("::ffff:10.0.0.1"), port=1080)
    send_reply(server, Reply.SUCCESS, addr)
    header = recv_exact(client, 3)
    assert header[0] == SOCKS5_VERSION
    assert read_addr_spec(client) == AddrSpec(ip=ipaddress.ip_address("10.0.0.1"), port=1080)


def test_send_reply_empty_address_fails(pair):
    server, _ = pair
    with pytest.raises(Socks5Error):
        send_reply(server, Reply.SUCCESS, AddrSpec())


def test_get_user_password(pair):
    server, client = pair
    user = "user"
    password = "password"
    client.sendall(
        bytes([USER_AUTH_VERSION, len(user)])
        + user.encode()
        + bytes([len(password)])
        + password.encode()
    )
    assert get_user_password(server) == (user, password)
    assert recv_exact(client, 2) == bytes([SOCKS5_VERSION, USER_PASS_AUTH])


def test_get_user_password_bad_version(pair):
    server, client = pair
    client.sendall(bytes([2, 0]))
    with pytest.raises(Socks5Error):
        get_user_password(server)


def test_address_brackets_ipv6():
    addr = AddrSpec(ip=ipaddress.ip_address("2001:db8::1"), port=443)
    assert addr.address() == "[2001:db8::1]:443"


def test_address_prefers_ip_over_name():
    addr = AddrSpec(fqdn="example.com", ip=ipaddress.ip_address("10.0.0.1"), port=80)
    assert addr.address() == "10.0.0.1:80"


def test_address_with_name_only():
    assert AddrSpec(fqdn="example.com", port=80).address() == "example.com:80"


def test_str_forms():
    plain = AddrSpec(ip=ipaddress.ip_address("10.0.0.1"), port=1080)
    assert str(plain) == "10.0.0.1:1080"
    named = str(AddrSpec(fqdn="example.com", ip=ipaddress.ip_address("10.0.0.1"), port=80))
    assert named.startswith("example.com (10.0.0.1)")
    assert named.endswith(":80")