from __future__ import annotations

import struct
import threading

import pytest
import websocket

import pebble_host.transport.display as display_mod
from pebble_host.transport.display import KEYSYMS, WebSocketDisplayConnection
from pebble_host.transport.errors import DisplayConnectError, DisplayIOError

SERVER_INIT = struct.pack(">HH16sI", 144, 168, bytes(16), 6) + b"pebble"


class FakeWebSocket:
    """Scripted binary frames in, sent frames recorded; an empty frame means closed."""
    def __init__(self, frames):
        self.frames = list(frames)
        self.sent: list[bytes] = []
        self.timeout = None
        self.closed = False

    def settimeout(self, t):
        self.timeout = t

    def recv(self):
        if not self.frames:
            raise websocket.WebSocketTimeoutException("timed out")
        item = self.frames.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def send_binary(self, data):
        if self.closed:
            raise websocket.WebSocketConnectionClosedException("socket is already closed.")
        self.sent.append(bytes(data))

    def close(self):
        self.closed = True


@pytest.fixture
def fake_ws(monkeypatch):
    calls = []
    holder = {}

    def _install(frames):
        ws = FakeWebSocket(frames)
        holder["ws"] = ws

        def create_connection(url, **kw):
            calls.append((url, kw))
            return ws

        monkeypatch.setattr(display_mod.websocket, "create_connection", create_connection)
        return ws, calls

    return _install


def test_handshake_over_websocket_and_key_event(fake_ws):
    ws, calls = fake_ws([b"RFB 003.008\n", b"\x01\x01", b"\x00\x00\x00\x00", SERVER_INIT])
    conn = WebSocketDisplayConnection("ws://127.0.0.1:5701/", poll_s=0.05)
    conn.connect()

    assert calls[0][0] == "ws://127.0.0.1:5701/"
    assert calls[0][1]["subprotocols"] == ["binary"]
    assert ws.timeout == 0.05
    assert ws.sent == [b"RFB 003.008\n", b"\x01", b"\x01"]
    assert conn.server_name == "pebble"

    conn.send_key("down")
    keysym = KEYSYMS["down"].to_bytes(4, "big")
    assert ws.sent[-2:] == [b"\x04\x01\x00\x00" + keysym, b"\x04\x00\x00\x00" + keysym]


def test_handshake_bytes_split_across_frames(fake_ws):
    ws, _ = fake_ws([b"RFB 003.", b"008\n\x01", b"\x01\x00\x00", b"\x00\x00" + SERVER_INIT[:10], SERVER_INIT[10:]])
    conn = WebSocketDisplayConnection(poll_s=0.05)
    conn.connect()
    assert conn.framebuffer_size == (144, 168)


def test_close_frame_ends_wait(fake_ws):
    ws, _ = fake_ws([b"RFB 003.008\n", b"\x01\x01", b"\x00\x00\x00\x00", SERVER_INIT, b"\x00" * 8, ""])
    conn = WebSocketDisplayConnection(poll_s=0.05)
    conn.connect()

    assert conn.wait_closed(threading.Event()) == "connection closed by emulator"
    assert ws.closed
    with pytest.raises(DisplayIOError):
        conn.send_key("up")


def test_dropped_websocket_ends_wait(fake_ws):
    dropped = websocket.WebSocketConnectionClosedException("Connection to remote host was lost.")
    fake_ws([b"RFB 003.008\n", b"\x01\x01", b"\x00\x00\x00\x00", SERVER_INIT, dropped])
    conn = WebSocketDisplayConnection(poll_s=0.05)
    conn.connect()
    assert conn.wait_closed(threading.Event()) == "connection closed by emulator"


def test_upgrade_failure_is_a_connect_error(monkeypatch):
    def refuse(url, **kw):
        raise ConnectionRefusedError(111, "Connection refused")

    monkeypatch.setattr(display_mod.websocket, "create_connection", refuse)
    conn = WebSocketDisplayConnection("ws://127.0.0.1:1/")
    with pytest.raises(DisplayConnectError, match="ws://127.0.0.1:1/"):
        conn.connect()
    assert not conn.is_open


def test_handshake_failure_closes_websocket(fake_ws):
    ws, _ = fake_ws([b"RFB 003.008\n", ""])
    conn = WebSocketDisplayConnection(poll_s=0.05)
    with pytest.raises(DisplayConnectError):
        conn.connect()
    assert ws.closed
    assert not conn.is_open
