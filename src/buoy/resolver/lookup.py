"""Lookup state machine: one request against the configured servers.

Brief:
  A StateBlock is created for every request that misses the cache. Each
  transmission spends one unit of the request's work counter and one of the
  current server's transmissions. Timeouts retry the same server while it
  has transmissions left; transport and format errors move on to the next
  server. A truncated UDP answer is re-asked once over TCP. NOERROR answers
  are cached and returned; RCODEs 1..5 end the request immediately.

  Sockets are only touched through UDPChannel/TCPChannel, and the cache lock
  is only taken inside ResolverCache calls, never across an await.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from ..cache import ResolverCache
from ..config.config import ResolverConfig, ServerConfig
from ..errors import (
    BadVersion,
    FormatError,
    NotImplementedRcode,
    ResolverTimeout,
    TemporaryError,
    TransportError,
    TransportTimeout,
    TsigError,
    error_for_rcode,
)
from ..message.message import DnsMessage, make_query
from ..message.record import Question
from ..message.types import META_TYPES, RRType
from ..transports import TCPChannel, Transport, UDPChannel
from ..tsig import TsigSigner
from .servers import ServerStats

logger = logging.getLogger(__name__)

# Questions that need zone transfer state.
_TRANSFER_TYPES = frozenset({RRType.AXFR, RRType.IXFR})

Channel = Union[UDPChannel, TCPChannel]


@dataclass
class ServerEntry:
    server: ServerConfig
    remaining: int
    index: int = 0


@dataclass
class StateBlock:
    """
    Brief: Mutable state of one in-flight request.

    Inputs:
      - start: loop.time() when the request started
      - work_counter: remaining units of protocol work
      - servers: ServerEntry list in try order
      - current_index: position in servers of the server being tried

    Outputs:
      - StateBlock instance
    """

    start: float
    work_counter: int
    servers: List[ServerEntry] = field(default_factory=list)
    current_index: int = 0

    @classmethod
    def for_request(
        cls, config: ResolverConfig, stats: ServerStats, start: float
    ) -> "StateBlock":
        transmissions = max(1, config.retries)
        entries = [
            ServerEntry(server, transmissions, index)
            for index, server in stats.ordered(config.servers)
        ]
        return cls(start, config.global_work_budget, entries)

    @property
    def current(self) -> ServerEntry:
        return self.servers[self.current_index]

    def advance(self) -> None:
        self.current_index = (self.current_index + 1) % len(self.servers)

    def exhausted(self) -> bool:
        return all(entry.remaining <= 0 for entry in self.servers)

    def select(self) -> Optional[ServerEntry]:
        """The current server if it has transmissions left, else the next one that does."""
        for _ in range(len(self.servers)):
            if self.current.remaining > 0:
                return self.current
            self.advance()
        return None

    def spend(self, entry: ServerEntry) -> None:
        """Charge one transmission; the work counter strictly decreases."""
        if self.work_counter <= 0:
            raise TemporaryError("lookup work budget exhausted")
        self.work_counter -= 1
        entry.remaining = max(0, entry.remaining - 1)


class LookupEngine:
    """
    Brief: Runs requests for one resolver.

    Inputs:
      - config: ResolverConfig snapshot
      - cache: ResolverCache for positive/negative answers, or None
      - stats: shared ServerStats
      - signer: optional TsigSigner (defaults to config.tsig)

    Outputs:
      - LookupEngine; `await engine.run(question)` returns the DnsMessage.
    """

    def __init__(
        self,
        config: ResolverConfig,
        cache: Optional[ResolverCache] = None,
        stats: Optional[ServerStats] = None,
        *,
        signer: Optional[TsigSigner] = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.stats = stats if stats is not None else ServerStats()
        if signer is None and config.tsig is not None:
            signer = config.tsig.signer()
        self.signer = signer
        self._edns = config.edns.to_edns() if config.edns is not None else None

    # Query construction ----------------------------------------------------

    def check_question(self, question: Question) -> None:
        """Refuse question types this resolver does not send."""
        if question.rrtype in _TRANSFER_TYPES:
            raise NotImplementedRcode(
                f"{RRType.get(question.rrtype)} queries need zone transfer support",
                rcode=4,
            )
        if question.rrtype == RRType.ANY and not self.config.allow_any:
            raise NotImplementedRcode("ANY queries are disabled", rcode=4)
        if question.rrtype in META_TYPES and question.rrtype != RRType.ANY:
            raise NotImplementedRcode(
                f"{RRType.get(question.rrtype)} is not a query type", rcode=4
            )

    def build_query(
        self, question: Question, rng: random.Random, msg_id: Optional[int] = None
    ) -> Tuple[DnsMessage, bytes, Optional[bytes]]:
        """(query, wire, request MAC); TSIG signing runs after every other record."""
        query = make_query(
            question.name,
            question.rrtype,
            question.rclass,
            msg_id=msg_id,
            rd=self.config.recursion_desired,
            edns=self._edns,
            rng=rng,
        )
        if self.signer is not None:
            wire, mac = self.signer.sign(query)
            return query, wire, mac
        return query, query.to_wire(), None

    # Request loop ------------------------------------------------------------

    async def run(
        self,
        question: Question,
        *,
        transport: Optional[Transport] = None,
        msg_id: Optional[int] = None,
        raise_for_rcode: bool = True,
    ) -> DnsMessage:
        """
        Brief: Resolve one question against the configured servers.

        Inputs:
          - question: Question to ask
          - transport: override of config.protocol for this request
          - msg_id: fixed message id (random when None)
          - raise_for_rcode: raise the mapped error for RCODE 1..15 instead of
            returning the response

        Outputs:
          - DnsMessage from the server that answered

        Raises:
          - NXDomainError, ServerFailure, Refused, ... (raise_for_rcode)
          - BadVersion when the server rejects our EDNS version
          - TemporaryError when the work budget or every server is exhausted
          - ResolverTimeout when request_timeout_ms runs out
        """
        self.check_question(question)
        loop = asyncio.get_running_loop()
        rng = random.Random()
        state = StateBlock.for_request(self.config, self.stats, loop.time())
        query, wire, request_mac = self.build_query(question, rng, msg_id)
        preferred = Transport(transport or self.config.protocol)
        request_deadline = None
        if self.config.request_timeout_ms is not None:
            request_deadline = state.start + self.config.request_timeout_ms / 1000.0

        last_error: Optional[BaseException] = None
        attempts_on_server = 0
        previous_index = -1
        while True:
            if request_deadline is not None and loop.time() >= request_deadline:
                raise ResolverTimeout(
                    f"no answer for {question} within {self.config.request_timeout_ms} ms"
                ) from last_error
            entry = state.select()
            if entry is None:
                raise TemporaryError(
                    f"all {len(state.servers)} servers failed for {question}"
                ) from last_error
            if state.work_counter <= 0:
                logger.warning("Work budget exhausted for %s", question)
                raise TemporaryError(f"work budget exhausted for {question}") from last_error

            if state.current_index == previous_index:
                attempts_on_server += 1
                await self._backoff(attempts_on_server)
            else:
                attempts_on_server = 0
            previous_index = state.current_index

            state.spend(entry)
            server = entry.server
            logger.debug(
                "Sending %s via %s to %s (server %d, %d left, budget %d)",
                question,
                preferred.value,
                server.label,
                entry.index,
                entry.remaining,
                state.work_counter,
            )
            try:
                response, rtt = await self._exchange(
                    server, preferred, wire, query, request_mac, request_deadline
                )
                if preferred is Transport.UDP and response.header.tc:
                    logger.warning(
                        "Truncated UDP response for %s from %s; retrying over TCP",
                        question,
                        server.label,
                    )
                    state.spend(entry)
                    response, rtt = await self._exchange(
                        server, Transport.TCP, wire, query, request_mac, request_deadline
                    )
            except TransportTimeout as exc:
                last_error = exc
                self.stats.observe(server, server.timeout_ms)
                logger.debug("Timeout from %s for %s", server.label, question)
                if entry.remaining <= 0:
                    state.advance()
                continue
            except (TransportError, FormatError) as exc:
                last_error = exc
                logger.warning(
                    "Discarding server %s for %s: %s", server.label, question, exc
                )
                state.advance()
                continue

            self.stats.observe(server, rtt)
            return self._finish(question, response, rtt, server, raise_for_rcode)

    def _finish(
        self,
        question: Question,
        response: DnsMessage,
        rtt: float,
        server: ServerConfig,
        raise_for_rcode: bool,
    ) -> DnsMessage:
        edns = response.edns
        rcode = response.rcode
        if rcode == BadVersion.rcode or (edns is not None and edns.version > 0):
            raise BadVersion(
                f"{server.label} does not support EDNS version "
                f"{self._edns.version if self._edns else 0}",
                rcode=BadVersion.rcode,
                response=response,
            )
        if self.cache is not None:
            self.cache.update_response_time(server.address, rtt)
            if rcode in (0, 3):
                self.cache.store_response(question, response, rtt)
        if rcode != 0 and raise_for_rcode:
            error = error_for_rcode(rcode, response)
            logger.debug("%s answered %s with rcode %d", server.label, question, rcode)
            raise error  # type: ignore[misc]
        return response

    async def _backoff(self, attempt: int) -> None:
        base = self.config.retry_backoff_ms
        if base <= 0 or attempt <= 0:
            return
        delay = min(base * (2 ** (attempt - 1)), self.config.max_retry_backoff_ms)
        await asyncio.sleep(delay / 1000.0)

    # One exchange -------------------------------------------------------------

    def open_channel(self, server: ServerConfig, transport: Transport) -> Channel:
        if transport is Transport.TCP:
            return TCPChannel(server.address, server.port)
        max_size = self._edns.payload if self._edns is not None else 512
        return UDPChannel(server.address, server.port, max_size=max(max_size, 512))

    async def _exchange(
        self,
        server: ServerConfig,
        transport: Transport,
        wire: bytes,
        query: DnsMessage,
        request_mac: Optional[bytes],
        request_deadline: Optional[float],
    ) -> Tuple[DnsMessage, float]:
        """
        Brief: Send wire to server and wait for a matching, verified reply.

        Inputs:
          - server, transport: where and how
          - wire: encoded (possibly signed) query
          - query: decoded form used to match the reply
          - request_mac: MAC of a signed query
          - request_deadline: request-level deadline, if any

        Outputs:
          - (response, rtt_ms)

        Notes:
          - Replies with another id, without QR, or with a different question
            are discarded; so are replies failing TSIG verification. The
            wait continues until the per-attempt deadline.
          - A reply that does not decode raises FormatError.
        """
        loop = asyncio.get_running_loop()
        sent_at = loop.time()
        deadline = sent_at + server.timeout_ms / 1000.0
        if request_deadline is not None:
            deadline = min(deadline, request_deadline)
        channel = self.open_channel(server, transport)
        started = time.monotonic()
        try:
            if isinstance(channel, TCPChannel):
                await channel.open(deadline)
            else:
                await channel.open()
            await channel.send(wire)
            while True:
                data = await channel.recv(deadline)
                response = DnsMessage.from_wire(
                    data, max_pointers=self.config.max_pointer_depth
                )
                if not response.is_response_to(query):
                    logger.warning(
                        "Discarding mismatched reply %d from %s (expected %d)",
                        response.id,
                        server.label,
                        query.id,
                    )
                    continue
                if self.signer is not None and request_mac is not None:
                    if not (response.header.tc and transport is Transport.UDP):
                        try:
                            self.signer.verify(data, request_mac, response)
                        except (TsigError, FormatError) as exc:
                            logger.warning(
                                "Discarding reply from %s failing TSIG: %s", server.label, exc
                            )
                            continue
                return response, (time.monotonic() - started) * 1000.0
        finally:
            channel.close()
