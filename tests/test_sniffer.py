import socket

import pytest

from portswitch.model.Core.Sniffer import SNIFF_SIZE, BufferedConnection, classify, classify_prefix, looks_binary
from portswitch.model.Core.header import Traffic


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    yield left, right
    left.close()
    right.close()


@pytest.mark.parametrize("prefix", [
    b"GET /x",
    b"POST /",
    b"PUT /?id=a HTTP/1.1",
    b"HEAD / HTTP/1.1\r\n",
    b"OPTIONS * HTTP/1.1",
])
def test_http_methods_are_control(prefix):
    assert classify_prefix(prefix) is Traffic.CONTROL


@pytest.mark.parametrize("prefix", [
    b"\x00GET / HTTP/1.1\r\n",
    b"abc\xffdefghijklmnop",
    b"\x16\x03\x01\x02\x00\x01\x00\x01",
    b"SSH-2.0-OpenSSH_9",
    b"DELETE / HTTP/1.1",
    b"get / HTTP/1.1\r\n",
])
def test_everything_else_is_data(prefix):
    assert classify_prefix(prefix) is Traffic.DATA


def test_looks_binary_checks_leading_bytes():
    assert looks_binary(b"\x16\x03\x01")
    assert looks_binary(b"abc\x00")
    assert not looks_binary(b"SSH-2.0-OpenSSH_9")
    # only the first 8 bytes count
    assert not looks_binary(b"ABCDEFGH\xff")


def test_classify_http_request(pair):
    client, server = pair
    client.sendall(b"GET /?id=route-a HTTP/1.1\r\nHost: x\r\n\r\n")
    assert classify(BufferedConnection(server), timeout=1) is Traffic.CONTROL


def test_classify_binary_with_nul_and_ff(pair):
    client, server = pair
    client.sendall(b"\x00\xff" + b"\x01" * 20)
    assert classify(BufferedConnection(server), timeout=1) is Traffic.DATA


def test_immediate_eof_is_data(pair):
    client, server = pair
    client.shutdown(socket.SHUT_WR)
    conn = BufferedConnection(server)
    assert classify(conn, timeout=1) is Traffic.DATA
    assert conn.eof is True
    assert conn.buffered() == 0


def test_short_prefix_then_eof_is_data(pair):
    client, server = pair
    client.sendall(b"GET /")
    client.shutdown(socket.SHUT_WR)
    conn = BufferedConnection(server)
    assert classify(conn, timeout=1) is Traffic.DATA
    assert conn.take_buffered() == b"GET /"


def test_timeout_is_data_and_keeps_bytes(pair):
    client, server = pair
    client.sendall(b"hello")
    conn = BufferedConnection(server)
    assert classify(conn, timeout=0.1) is Traffic.DATA
    assert conn.take_buffered() == b"hello"
    # sniff timeout must not stick to the socket
    assert server.gettimeout() is None


def test_closed_socket_is_inconclusive(pair):
    client, server = pair
    server.close()
    assert classify(BufferedConnection(server), timeout=0.1) is Traffic.INCONCLUSIVE


def test_peeked_bytes_are_delivered_first(pair):
    client, server = pair
    payload = bytes(range(256)) * 4
    client.sendall(payload)
    client.shutdown(socket.SHUT_WR)

    conn = BufferedConnection(server)
    assert conn.peek(SNIFF_SIZE, timeout=1) == payload[:SNIFF_SIZE]
    assert conn.peek(SNIFF_SIZE, timeout=1) == payload[:SNIFF_SIZE]

    received = bytearray()
    while True:
        chunk = conn.recv(100)
        if not chunk:
            break
        received.extend(chunk)
    assert bytes(received) == payload


def test_read_until_leaves_the_rest_buffered(pair):
    client, server = pair
    client.sendall(b"head\r\n\r\nbody-bytes")
    conn = BufferedConnection(server)
    conn.peek(4, timeout=1)
    assert conn.read_until(b"\r\n\r\n", 1024) == b"head\r\n\r\n"
    assert conn.recv(4) == b"body"


def test_read_until_gives_up_past_limit(pair):
    client, server = pair
    client.sendall(b"x" * 64)
    client.shutdown(socket.SHUT_WR)
    assert BufferedConnection(server).read_until(b"\r\n\r\n", 16) is None
