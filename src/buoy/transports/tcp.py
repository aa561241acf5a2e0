import asyncio
import logging
from typing import Optional

from ..errors import ConnectionClosed, OversizeResponse, TransportIOError, TransportTimeout

logger = logging.getLogger(__name__)

MAX_TCP_SIZE = 0xFFFF


def _remaining(deadline: float, server: str) -> float:
    remaining = deadline - asyncio.get_running_loop().time()
    if remaining <= 0:
        raise TransportTimeout(f"TCP timeout talking to {server}", server=server)
    return remaining


async def _read_exact(reader: asyncio.StreamReader, n: int, deadline: float, server: str) -> bytes:
    """
    Brief: Read exactly n bytes before the deadline, accumulating short reads.

    Inputs:
      - reader: asyncio StreamReader
      - n: number of bytes to read
      - deadline: absolute loop.time() instant
      - server: peer label for errors

    Outputs:
      - bytes of length n

    Raises:
      - TransportTimeout when the deadline fires first
      - ConnectionClosed when the peer closes early
    """
    try:
        return await asyncio.wait_for(reader.readexactly(n), _remaining(deadline, server))
    except asyncio.IncompleteReadError as e:
        raise ConnectionClosed(
            f"short read from {server}: {len(e.partial)} of {n} bytes", server=server
        ) from e
    except asyncio.TimeoutError as e:
        raise TransportTimeout(f"TCP timeout reading from {server}", server=server) from e
    except OSError as e:
        raise TransportIOError(f"TCP error: {e}", server=server) from e


class TCPChannel:
    """
    Brief: One DNS-over-TCP connection; every message carries a 2-byte length prefix.

    Inputs:
      - host, port: server address
      - max_size: largest response accepted

    Outputs:
      - open(deadline), send(query), recv(deadline), close()
    """

    def __init__(self, host: str, port: int = 53, *, max_size: int = MAX_TCP_SIZE):
        self.host = host
        self.port = int(port)
        self.max_size = int(max_size)
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def server(self) -> str:
        return f"{self.host}:{self.port}"

    async def open(self, deadline: float) -> "TCPChannel":
        self.close()
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                _remaining(deadline, self.server),
            )
        except asyncio.TimeoutError as e:
            raise TransportTimeout(
                f"TCP connect to {self.server} timed out", server=self.server
            ) from e
        except OSError as e:
            raise TransportIOError(f"TCP error: {e}", server=self.server) from e
        return self

    async def send(self, query: bytes) -> None:
        if self._writer is None:
            raise TransportIOError("connection not established", server=self.server)
        if len(query) > 0xFFFF:
            raise OversizeResponse(
                f"query of {len(query)} bytes does not fit a TCP frame", server=self.server
            )
        try:
            self._writer.write(len(query).to_bytes(2, "big") + query)
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransportIOError(f"TCP error: {e}", server=self.server) from e
        logger.debug("TCP sent %d bytes to %s", len(query), self.server)

    async def recv(self, deadline: float) -> bytes:
        """Read one length-prefixed message before the absolute deadline."""
        if self._reader is None:
            raise TransportIOError("connection not established", server=self.server)
        hdr = await _read_exact(self._reader, 2, deadline, self.server)
        ln = int.from_bytes(hdr, "big")
        if ln > self.max_size:
            raise OversizeResponse(
                f"TCP response of {ln} bytes exceeds {self.max_size}", server=self.server
            )
        return await _read_exact(self._reader, ln, deadline, self.server)

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
        self._reader = None
        self._writer = None


async def tcp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
    max_size: int = MAX_TCP_SIZE,
) -> bytes:
    """
    Brief: Perform a single DNS-over-TCP exchange on a fresh connection.

    Inputs:
      - host, port: upstream server
      - query: wire-format query bytes (without the length prefix)
      - timeout_ms: budget for connect, send and the full response
      - max_size: largest response accepted

    Outputs:
      - bytes: response without the length prefix
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000.0
    channel = TCPChannel(host, port, max_size=max_size)
    await channel.open(deadline)
    try:
        await channel.send(query)
        return await channel.recv(deadline)
    finally:
        channel.close()
