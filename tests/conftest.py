"""
Brief: Global pytest configuration: src/ on sys.path, a per-test 10s timeout
and threaded UDP/TCP stub name servers.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import socket
import socketserver
import sys
import threading
from typing import Callable, List, Optional, Sequence, Tuple, Union

import pytest

# Ensure 'src' is on sys.path so 'buoy' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        # Fallback: no-op on platforms without SIGALRM
        yield


# Stub name servers ----------------------------------------------------------

Reply = Union[None, bytes, Sequence[bytes]]
Handler = Callable[[bytes, str], Reply]


def _replies(reply: Reply) -> List[bytes]:
    if reply is None:
        return []
    if isinstance(reply, (bytes, bytearray)):
        return [bytes(reply)]
    return [bytes(r) for r in reply]


class StubDnsServer:
    """
    Brief: UDP and TCP listener on one 127.0.0.1 port answering via a callback.

    Inputs:
      - handler: callable(query_bytes, transport) returning None (drop),
        one reply or a list of replies; transport is "udp" or "tcp"

    Outputs:
      - StubDnsServer; `requests` records (transport, query_bytes) in order.
    """

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.requests: List[Tuple[str, bytes]] = []
        self._lock = threading.Lock()
        self._servers: List[socketserver.BaseServer] = []
        self.port = 0

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    def transports(self) -> List[str]:
        with self._lock:
            return [t for t, _ in self.requests]

    def _record(self, transport: str, data: bytes) -> List[bytes]:
        with self._lock:
            self.requests.append((transport, data))
        return _replies(self.handler(data, transport))

    def start(self) -> "StubDnsServer":
        stub = self

        class _Udp(socketserver.BaseRequestHandler):
            def handle(self):
                data, sock = self.request
                for reply in stub._record("udp", data):
                    sock.sendto(reply, self.client_address)

        class _Tcp(socketserver.BaseRequestHandler):
            def handle(self):
                while True:
                    hdr = self._read(2)
                    if hdr is None:
                        return
                    data = self._read(int.from_bytes(hdr, "big"))
                    if data is None:
                        return
                    for reply in stub._record("tcp", data):
                        self.request.sendall(len(reply).to_bytes(2, "big") + reply)

            def _read(self, n: int) -> Optional[bytes]:
                buf = b""
                while len(buf) < n:
                    try:
                        chunk = self.request.recv(n - len(buf))
                    except OSError:
                        return None
                    if not chunk:
                        return None
                    buf += chunk
                return buf

        for _ in range(20):
            udp = socketserver.ThreadingUDPServer(("127.0.0.1", 0), _Udp)
            port = udp.server_address[1]
            try:
                tcp = socketserver.ThreadingTCPServer(("127.0.0.1", port), _Tcp)
            except OSError:
                udp.server_close()
                continue
            break
        else:  # pragma: no cover - port exhaustion
            raise RuntimeError("could not bind a UDP/TCP port pair")
        udp.daemon_threads = True
        tcp.daemon_threads = True
        self.port = port
        self._servers = [udp, tcp]
        for srv in self._servers:
            threading.Thread(target=srv.serve_forever, daemon=True).start()
        return self

    def stop(self) -> None:
        for srv in self._servers:
            srv.shutdown()
            srv.server_close()


@pytest.fixture
def dns_server():
    """
    Brief: Factory fixture starting stub name servers, stopped after the test.

    Inputs:
      - handler passed to the returned callable

    Outputs:
      - callable(handler) -> StubDnsServer
    """
    started: List[StubDnsServer] = []

    def _start(handler: Handler) -> StubDnsServer:
        srv = StubDnsServer(handler).start()
        started.append(srv)
        return srv

    yield _start
    for srv in started:
        srv.stop()


@pytest.fixture
def unused_udp_port():
    """A 127.0.0.1 port with nothing bound to it (best effort)."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
