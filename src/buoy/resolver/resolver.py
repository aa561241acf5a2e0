"""Resolver façade: cache first, then the lookup engine.

Inputs:
  - ResolverConfig (immutable snapshot)

Outputs:
  - Resolver with async lookup_ip(), lookup() and reverse_lookup()
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import List, Optional, Union

from ..cache import CacheHit, ResolverCache
from ..config.config import ResolverConfig
from ..errors import error_for_rcode
from ..message.message import DnsMessage, make_query, make_response
from ..message.names import DomainName, NameLike, reverse_name
from ..message.rdata import PTR
from ..message.record import Question, ResourceRecord
from ..message.types import RClass, RRType
from ..transports import Transport
from ..tsig import TsigSigner
from .lookup import LookupEngine
from .servers import ServerStats

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class Resolver:
    """
    Brief: Stub resolver with a shared cache and server statistics.

    Inputs:
      - config: ResolverConfig (defaults to ResolverConfig())
      - signer: optional TsigSigner overriding config.tsig
      - cache: optional ResolverCache to share between resolvers

    Outputs:
      - Resolver instance

    Example:
      >>> async def main():
      ...     resolver = Resolver(ResolverConfig(servers=["127.0.0.1:5353"]))
      ...     return await resolver.lookup_ip("example.com")
    """

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        *,
        signer: Optional[TsigSigner] = None,
        cache: Optional[ResolverCache] = None,
    ) -> None:
        self.config = config if config is not None else ResolverConfig()
        if cache is None and self.config.cache_enabled:
            cache = ResolverCache(
                self.config.cache_max_entries,
                cache_non_authoritative=self.config.cache_non_authoritative,
            )
        self._cache = cache
        self.stats = ServerStats()
        self.engine = LookupEngine(self.config, self._cache, self.stats, signer=signer)

    @property
    def cache(self) -> Optional[ResolverCache]:
        return self._cache

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    async def query(
        self,
        name: NameLike,
        rrtype: Union[int, str] = "A",
        rclass: Union[int, str] = "IN",
        *,
        transport: Optional[Union[Transport, str]] = None,
    ) -> DnsMessage:
        """
        Brief: Answer one question as a full message, from the cache when possible.

        Inputs:
          - name: query name
          - rrtype, rclass: numbers or mnemonics
          - transport: udp/tcp override for this request

        Outputs:
          - DnsMessage; cached answers come back with AA=0, RA=1 and TTLs
            decremented to their remaining lifetime.

        Raises:
          - NXDomainError (also for a cached negative), other ResponseCodeError
            subclasses, TemporaryError, ResolverTimeout
        """
        question = Question(
            DomainName.from_text(name, strict=False),
            RRType.from_text(rrtype),
            RClass.from_text(rclass),
        )
        self.engine.check_question(question)
        if self._cache is not None and question.rclass == RClass.IN:
            hit = self._cache.lookup(question.name, question.rrtype)
            if hit is not None:
                logger.debug("cache hit %s (negative=%s)", question, hit.negative)
                return self._from_cache(question, hit)
            logger.debug("cache miss %s", question)
        return await self.engine.run(
            question, transport=Transport(transport) if transport else None
        )

    def _from_cache(self, question: Question, hit: CacheHit) -> DnsMessage:
        query = make_query(
            question.name,
            question.rrtype,
            question.rclass,
            msg_id=0,
            rd=self.config.recursion_desired,
        )
        if hit.negative:
            response = make_response(
                query,
                rcode=hit.rcode,
                ra=True,
                answer=hit.records,
                authority=[hit.soa] if hit.soa is not None else [],
            )
            if hit.rcode:
                raise error_for_rcode(hit.rcode, response)  # type: ignore[misc]
            return response
        return make_response(query, ra=True, answer=hit.records)

    async def lookup(
        self,
        name: NameLike,
        transport: Optional[Union[Transport, str]] = None,
        rrtype: Union[int, str] = "A",
        rclass: Union[int, str] = "IN",
    ) -> List[ResourceRecord]:
        """
        Brief: Records of type rrtype for name.

        Outputs:
          - list of ResourceRecord (empty for NODATA); ANY returns the whole
            answer section.
        """
        code = RRType.from_text(rrtype)
        response = await self.query(name, code, rclass, transport=transport)
        if code == RRType.ANY:
            return list(response.answer)
        return [rr for rr in response.answer if rr.rrtype == code]

    async def lookup_ip(
        self,
        name: NameLike,
        transport: Optional[Union[Transport, str]] = None,
        rclass: Union[int, str] = "IN",
    ) -> List[IPAddress]:
        """
        Brief: IPv4 (and with probe_aaaa, IPv6) addresses of name.

        Inputs:
          - name: host name
          - transport: udp/tcp override
          - rclass: query class

        Outputs:
          - list of ipaddress objects, A results first.

        Notes:
          - With probe_aaaa both questions run concurrently. NXDOMAIN from
            either raises; NODATA from one side contributes nothing.
        """
        types = [RRType.A]
        if self.config.probe_aaaa:
            types.append(RRType.AAAA)
        results = await asyncio.gather(
            *(self.lookup(name, transport, t, rclass) for t in types)
        )
        addresses: List[IPAddress] = []
        for records in results:
            for rr in records:
                addresses.append(ipaddress.ip_address(rr.rdata.address))
        return addresses

    async def reverse_lookup(
        self,
        address: Union[str, IPAddress],
        transport: Optional[Union[Transport, str]] = None,
    ) -> List[DomainName]:
        """PTR targets of address (in-addr.arpa / ip6.arpa)."""
        records = await self.lookup(reverse_name(address), transport, RRType.PTR)
        return [rr.rdata.target for rr in records if isinstance(rr.rdata, PTR)]


__all__ = ["IPAddress", "Resolver"]
