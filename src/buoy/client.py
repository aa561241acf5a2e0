"""Low-level client: one question, one response message, no cache."""

from __future__ import annotations

import logging
from typing import Optional, Union

from .config.config import ResolverConfig
from .message.message import DnsMessage
from .message.names import DomainName, NameLike
from .message.record import Question
from .message.types import RClass, RRType
from .resolver.lookup import LookupEngine
from .resolver.servers import ServerStats
from .transports import Transport
from .tsig import TsigSigner

logger = logging.getLogger(__name__)


class Client:
    """
    Brief: Send questions straight to the configured servers.

    Inputs:
      - config: ResolverConfig; cache settings are ignored
      - signer: optional TsigSigner overriding config.tsig

    Outputs:
      - Client instance; `await client.query(name, rrtype, rclass)` returns
        the response DnsMessage, whatever its RCODE.

    Notes:
      - Retries, TC fallback, TSIG and server ordering behave exactly as for
        Resolver; only the cache is bypassed.
    """

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        *,
        signer: Optional[TsigSigner] = None,
    ) -> None:
        self.config = config if config is not None else ResolverConfig()
        self.stats = ServerStats()
        self.engine = LookupEngine(self.config, None, self.stats, signer=signer)

    async def query(
        self,
        name: NameLike,
        rrtype: Union[int, str] = "A",
        rclass: Union[int, str] = "IN",
        *,
        query_id: Optional[int] = None,
        transport: Optional[Union[Transport, str]] = None,
    ) -> DnsMessage:
        question = Question(
            DomainName.from_text(name, strict=False),
            RRType.from_text(rrtype),
            RClass.from_text(rclass),
        )
        logger.debug("client query %s", question)
        return await self.engine.run(
            question,
            transport=Transport(transport) if transport else None,
            msg_id=query_id,
            raise_for_rcode=False,
        )
