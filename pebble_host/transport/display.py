# pebble_host/transport/display.py
from __future__ import annotations

import re
import socket
import struct
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import websocket

from .errors import DisplayConnectError, DisplayHandshakeError, DisplayIOError

_VERSION_RE = re.compile(rb"^RFB (\d{3})\.(\d{3})\n$")
_U8 = struct.Struct(">B")
_U32 = struct.Struct(">I")
# ServerInit: width(2) height(2) pixel-format(16) name-length(4)
_SERVER_INIT = struct.Struct(">HH16sI")
# RFB client->server KeyEvent: type(1) down-flag(1) padding(2) keysym(4)
_KEY_EVENT = struct.Struct(">BBxxI")
_KEY_EVENT_TYPE = 4

SEC_INVALID = 0
SEC_NONE = 1

# X11 keysyms for the emulator's buttons
KEYSYMS = {
    "back": 0xFF51,    # Left
    "up": 0xFF52,      # Up
    "select": 0xFF53,  # Right
    "down": 0xFF54,    # Down
}


class DisplayConnection(ABC):
    """
    Remote display endpoint as seen by the reconnect loop.

    Contract:
      - connect() raises DisplayConnectError when the endpoint is not reachable
        or does not complete the handshake.
      - wait_closed(stop) blocks until the peer disconnects (returns a reason)
        or `stop` is set (returns None).
      - close() is idempotent.
    """

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def wait_closed(self, stop: threading.Event) -> Optional[str]: ...

    @abstractmethod
    def send_key(self, key: str) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class _Carrier(ABC):
    """Byte pipe underneath an RFB session."""

    @abstractmethod
    def recv(self) -> Optional[bytes]:
        """Next chunk; None on poll timeout, b"" once the peer has closed."""

    @abstractmethod
    def sendall(self, data: bytes) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class _SocketCarrier(_Carrier):
    def __init__(self, sock: socket.socket):
        self._sock = sock

    def recv(self) -> Optional[bytes]:
        try:
            return self._sock.recv(65536)
        except socket.timeout:
            return None

    def sendall(self, data: bytes) -> None:
        self._sock.sendall(data)

    def close(self) -> None:
        try:
            self._sock.close()
        except OSError:
            pass


class _WebSocketCarrier(_Carrier):
    """RFB bytes carried in binary WebSocket messages (websockify / QEMU style)."""

    def __init__(self, ws: "websocket.WebSocket"):
        self._ws = ws

    def recv(self) -> Optional[bytes]:
        try:
            data = self._ws.recv()
        except (websocket.WebSocketTimeoutException, socket.timeout):
            return None
        except websocket.WebSocketConnectionClosedException:
            return b""
        except websocket.WebSocketException as e:
            raise OSError(str(e)) from None
        if isinstance(data, str):
            data = data.encode("latin-1")
        return data

    def sendall(self, data: bytes) -> None:
        try:
            self._ws.send_binary(data)
        except websocket.WebSocketException as e:
            raise OSError(str(e)) from None

    def close(self) -> None:
        try:
            self._ws.close()
        except (websocket.WebSocketException, OSError):
            pass


class _HandshakeReader:
    def __init__(self, carrier: _Carrier, endpoint: str, deadline: float):
        self._carrier = carrier
        self._endpoint = endpoint
        self._deadline = deadline
        self._buf = bytearray()

    def read(self, n: int) -> bytes:
        while len(self._buf) < n:
            if time.monotonic() >= self._deadline:
                raise DisplayHandshakeError(f"{self._endpoint}: timed out during RFB handshake")
            chunk = self._carrier.recv()
            if chunk is None:
                continue
            if not chunk:
                raise DisplayHandshakeError(f"{self._endpoint}: closed during RFB handshake")
            self._buf += chunk
        out = bytes(self._buf[:n])
        del self._buf[:n]
        return out

    def read_reason(self) -> str:
        (n,) = _U32.unpack(self.read(4))
        return self.read(n).decode("utf-8", errors="replace")


class RfbDisplayConnection(DisplayConnection):
    """
    RFB client over a carrier opened by _open().

    connect() runs the ProtocolVersion / Security / ClientInit exchange
    (protocol 3.3, 3.7 and 3.8, security type None) and only returns once
    ServerInit has arrived, so an endpoint that accepts but is not serving yet
    counts as a failed attempt. After that only key events are sent; server
    messages are drained and discarded.
    """

    endpoint = "?"

    def __init__(self, *, timeout: float = 1.0, poll_s: float = 0.2, handshake_timeout: float = 5.0):
        self.timeout = float(timeout)
        self.poll_s = float(poll_s)
        self.handshake_timeout = float(handshake_timeout)
        self.server_name: Optional[str] = None
        self.framebuffer_size: Optional[Tuple[int, int]] = None
        self._carrier: Optional[_Carrier] = None
        self._lock = threading.Lock()

    @abstractmethod
    def _open(self) -> _Carrier:
        """Open the carrier or raise DisplayConnectError."""

    @property
    def is_open(self) -> bool:
        return self._carrier is not None

    def connect(self) -> None:
        self.close()
        carrier = self._open()
        try:
            self._handshake(carrier)
        except DisplayConnectError:
            carrier.close()
            raise
        except OSError as e:
            carrier.close()
            raise DisplayConnectError(f"{self.endpoint}: {e}") from None
        with self._lock:
            self._carrier = carrier

    def _handshake(self, carrier: _Carrier) -> None:
        reader = _HandshakeReader(carrier, self.endpoint, time.monotonic() + self.handshake_timeout)

        raw = reader.read(12)
        m = _VERSION_RE.match(raw)
        if m is None:
            raise DisplayHandshakeError(f"{self.endpoint}: not an RFB server ({raw!r})")
        server = (int(m.group(1)), int(m.group(2)))
        if server < (3, 3):
            raise DisplayHandshakeError(f"{self.endpoint}: unsupported RFB version {server[0]}.{server[1]}")
        minor = 8 if server >= (3, 8) else 7 if server >= (3, 7) else 3
        carrier.sendall(b"RFB 003.%03d\n" % minor)

        if minor == 3:
            # 3.3: the server picks the security type
            (sec,) = _U32.unpack(reader.read(4))
            if sec == SEC_INVALID:
                raise DisplayHandshakeError(f"{self.endpoint}: connection refused: {reader.read_reason()}")
            if sec != SEC_NONE:
                raise DisplayHandshakeError(f"{self.endpoint}: unsupported security type {sec}")
        else:
            (count,) = _U8.unpack(reader.read(1))
            if count == 0:
                raise DisplayHandshakeError(f"{self.endpoint}: connection refused: {reader.read_reason()}")
            offered = reader.read(count)
            if SEC_NONE not in offered:
                raise DisplayHandshakeError(
                    f"{self.endpoint}: no supported security type (offered {list(offered)})"
                )
            carrier.sendall(_U8.pack(SEC_NONE))
            if minor == 8:
                (result,) = _U32.unpack(reader.read(4))
                if result != 0:
                    raise DisplayHandshakeError(
                        f"{self.endpoint}: security handshake failed: {reader.read_reason()}"
                    )

        carrier.sendall(_U8.pack(1))  # ClientInit: shared
        width, height, _pixel_format, name_len = _SERVER_INIT.unpack(reader.read(_SERVER_INIT.size))
        self.framebuffer_size = (width, height)
        self.server_name = reader.read(name_len).decode("utf-8", errors="replace")

    def wait_closed(self, stop: threading.Event) -> Optional[str]:
        while not stop.is_set():
            with self._lock:
                carrier = self._carrier
            if carrier is None:
                return "closed locally"
            try:
                chunk = carrier.recv()
            except OSError as e:
                self.close()
                return str(e)
            if chunk is None:
                continue
            if not chunk:
                self.close()
                return "connection closed by emulator"
        return None

    def send_key(self, key: str) -> None:
        keysym = KEYSYMS.get(key)
        if keysym is None:
            raise ValueError(f"unknown key {key!r} (known: {', '.join(sorted(KEYSYMS))})")
        with self._lock:
            carrier = self._carrier
            if carrier is None:
                raise DisplayIOError("send_key while display not connected")
            try:
                carrier.sendall(_KEY_EVENT.pack(_KEY_EVENT_TYPE, 1, keysym))
                carrier.sendall(_KEY_EVENT.pack(_KEY_EVENT_TYPE, 0, keysym))
            except OSError as e:
                raise DisplayIOError(f"send_key failed: {e}") from None

    def close(self) -> None:
        with self._lock:
            carrier, self._carrier = self._carrier, None
        if carrier is not None:
            carrier.close()


class TcpDisplayConnection(RfbDisplayConnection):
    """RFB straight over TCP, e.g. QEMU's `-vnc` port."""

    def __init__(self, host: str = "127.0.0.1", port: int = 5901, **kwargs):
        super().__init__(**kwargs)
        self.host = host
        self.port = int(port)
        self.endpoint = f"{self.host}:{self.port}"

    def _open(self) -> _Carrier:
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise DisplayConnectError(f"{self.endpoint}: {e}") from None
        sock.settimeout(self.poll_s)
        return _SocketCarrier(sock)


class WebSocketDisplayConnection(RfbDisplayConnection):
    """RFB over a WebSocket endpoint (`binary` subprotocol)."""

    def __init__(self, url: str = "ws://127.0.0.1:5901/", **kwargs):
        super().__init__(**kwargs)
        self.url = url
        self.endpoint = url

    def _open(self) -> _Carrier:
        try:
            ws = websocket.create_connection(self.url, timeout=self.timeout, subprotocols=["binary"])
        except (websocket.WebSocketException, OSError, ValueError) as e:
            raise DisplayConnectError(f"{self.url}: {e}") from None
        ws.settimeout(self.poll_s)
        return _WebSocketCarrier(ws)
