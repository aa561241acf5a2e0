import asyncio
import logging
from typing import Optional, Union

from ..errors import OversizeResponse, TransportIOError, TransportTimeout

logger = logging.getLogger(__name__)

# Largest UDP payload that fits an IPv4 datagram.
MAX_UDP_SIZE = 65507


class _DatagramQueue(asyncio.DatagramProtocol):
    """Collects datagrams and socket errors for UDPChannel.recv()."""

    def __init__(self) -> None:
        self.queue: "asyncio.Queue[Union[bytes, Exception]]" = asyncio.Queue()
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr) -> None:
        self.queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            self.queue.put_nowait(exc)


class UDPChannel:
    """
    Brief: One connected UDP socket to a single server.

    Inputs:
      - host, port: server address
      - max_size: largest datagram accepted (the advertised EDNS payload)

    Outputs:
      - send(query) then recv(deadline) as many times as the caller needs;
        replies that fail validation do not consume the socket.

    Example:
      >>> async def ask(query):
      ...     async with UDPChannel("127.0.0.1", 53) as ch:
      ...         await ch.send(query)
      ...         return await ch.recv(asyncio.get_running_loop().time() + 2)
    """

    def __init__(self, host: str, port: int = 53, *, max_size: int = MAX_UDP_SIZE):
        self.host = host
        self.port = int(port)
        self.max_size = int(max_size)
        self._proto: Optional[_DatagramQueue] = None

    @property
    def server(self) -> str:
        return f"{self.host}:{self.port}"

    async def open(self) -> "UDPChannel":
        loop = asyncio.get_running_loop()
        try:
            _, proto = await loop.create_datagram_endpoint(
                _DatagramQueue, remote_addr=(self.host, self.port)
            )
        except OSError as e:
            raise TransportIOError(f"UDP error: {e}", server=self.server) from e
        self._proto = proto
        return self

    async def send(self, query: bytes) -> None:
        if self._proto is None or self._proto.transport is None:
            await self.open()
        try:
            self._proto.transport.sendto(query)  # type: ignore[union-attr]
        except OSError as e:
            raise TransportIOError(f"UDP error: {e}", server=self.server) from e
        logger.debug("UDP sent %d bytes to %s", len(query), self.server)

    async def recv(self, deadline: float) -> bytes:
        """
        Brief: Wait for the next datagram until the absolute loop-time deadline.

        Inputs:
          - deadline: asyncio loop.time() instant

        Outputs:
          - datagram bytes

        Raises:
          - TransportTimeout, TransportIOError, OversizeResponse
        """
        if self._proto is None:
            raise TransportIOError("UDP channel is not open", server=self.server)
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise TransportTimeout(f"UDP timeout waiting for {self.server}", server=self.server)
        try:
            item = await asyncio.wait_for(self._proto.queue.get(), remaining)
        except asyncio.TimeoutError as e:
            raise TransportTimeout(
                f"UDP timeout waiting for {self.server}", server=self.server
            ) from e
        if isinstance(item, Exception):
            raise TransportIOError(f"UDP error: {item}", server=self.server) from item
        if len(item) > self.max_size:
            raise OversizeResponse(
                f"UDP response of {len(item)} bytes exceeds {self.max_size}",
                server=self.server,
            )
        return item

    def close(self) -> None:
        if self._proto is not None and self._proto.transport is not None:
            self._proto.transport.close()
        self._proto = None

    async def __aenter__(self) -> "UDPChannel":
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        self.close()


async def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
    max_size: int = MAX_UDP_SIZE,
) -> bytes:
    """
    Brief: Perform a single UDP DNS exchange.

    Inputs:
      - host: upstream server IP
      - port: upstream UDP port
      - query: wire-format DNS query bytes
      - timeout_ms: deadline in milliseconds from now
      - max_size: largest response accepted

    Outputs:
      - bytes: the first datagram received (not validated)
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000.0
    async with UDPChannel(host, port, max_size=max_size) as channel:
        await channel.send(query)
        return await channel.recv(deadline)

