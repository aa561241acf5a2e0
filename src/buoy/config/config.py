"""Resolver configuration models.

Brief:
  Pydantic models for everything a Resolver needs: upstream servers, the
  preferred transport, retry and work budgets, cache sizing, EDNS(0) and
  TSIG. A ResolverConfig is frozen; lookups read it as an immutable snapshot.
"""

from __future__ import annotations

import ipaddress
from typing import List, Optional, Union

from pydantic import BaseModel, Field, validator

from ..errors import FormatError
from ..message.edns import DEFAULT_PAYLOAD, MIN_PAYLOAD, Edns, EdnsOption, option_from_text
from ..transports import Transport
from ..tsig import TsigKey, TsigSigner, algorithm_from_text

DEFAULT_TIMEOUT_MS = 2000

DEFAULT_SERVERS = (
    "8.8.8.8",
    "1.1.1.1",
    "208.67.222.222",
    "9.9.9.9",
    "8.8.4.4",
    "1.0.0.1",
    "208.67.220.220",
    "149.112.112.112",
)


def parse_server(value: str) -> dict:
    """Split "ip", "ip:port", "[v6]:port" or a bare IPv6 address into a mapping."""
    text = value.strip()
    if text.startswith("["):
        host, _, rest = text[1:].partition("]")
        if rest.startswith(":"):
            return {"address": host, "port": int(rest[1:])}
        return {"address": host}
    if text.count(":") == 1:
        host, port = text.split(":")
        return {"address": host, "port": int(port)}
    return {"address": text}


class ServerConfig(BaseModel):
    """
    Brief: One upstream name server.

    Inputs:
      - address: IPv4 or IPv6 address
      - port: UDP/TCP port (default 53)
      - timeout_ms: per-attempt deadline for this server

    Outputs:
      - ServerConfig instance

    Example:
      >>> ServerConfig(address="9.9.9.9").label
      '9.9.9.9:53'
    """

    address: str
    port: int = Field(53, ge=1, le=65535)
    timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, gt=0)

    class Config:
        extra = "forbid"
        frozen = True

    @validator("address", pre=True)
    def _normalize_address(cls, v):
        try:
            return str(ipaddress.ip_address(str(v).strip()))
        except ValueError as exc:
            raise ValueError(f"server address {v!r} is not an IP address") from exc

    @property
    def label(self) -> str:
        if ":" in self.address:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


class EdnsConfig(BaseModel):
    """EDNS(0) parameters sent with every query."""

    payload: int = Field(DEFAULT_PAYLOAD, ge=MIN_PAYLOAD, le=65535)
    version: int = Field(0, ge=0, le=255)
    do_bit: bool = False
    options: List[int] = Field(default_factory=list)

    class Config:
        extra = "forbid"
        frozen = True

    @validator("options", pre=True)
    def _option_codes(cls, v):
        if v is None:
            return []
        if isinstance(v, (str, int)):
            v = [v]
        codes = []
        for item in v:
            try:
                codes.append(option_from_text(item).code)
            except FormatError as exc:
                raise ValueError(str(exc)) from exc
        return codes

    def to_edns(self) -> Edns:
        return Edns(
            payload=self.payload,
            version=self.version,
            do_bit=self.do_bit,
            options=tuple(EdnsOption(code) for code in self.options),
        )


class TsigConfig(BaseModel):
    """
    Brief: TSIG key used to sign queries and verify responses.

    Inputs:
      - key_name: key name (TSIG owner)
      - algorithm: hmac-sha1, hmac-sha256, ... (any registered algorithm)
      - secret: base64 secret (configuration files)
      - key_bytes: raw secret (programmatic use); exactly one of the two
      - fudge: permitted clock skew in seconds
      - allow_truncation: accept truncated MACs in responses

    Outputs:
      - TsigConfig instance; signer() builds the TsigSigner.
    """

    key_name: str
    algorithm: str = "hmac-sha256"
    secret: Optional[str] = None
    key_bytes: Optional[bytes] = None
    fudge: int = Field(300, ge=0, le=65535)
    allow_truncation: bool = False

    class Config:
        extra = "forbid"
        frozen = True

    @validator("algorithm", pre=True)
    def _known_algorithm(cls, v):
        return algorithm_from_text(str(v)).to_text()

    @validator("key_bytes", always=True)
    def _one_secret(cls, v, values):
        if (v is None) == (values.get("secret") is None):
            raise ValueError("exactly one of 'secret' and 'key_bytes' is required")
        return v

    def key(self) -> TsigKey:
        if self.key_bytes is not None:
            return TsigKey(self.key_name, self.key_bytes, self.algorithm)
        return TsigKey.from_base64(self.key_name, self.secret or "", self.algorithm)

    def signer(self) -> TsigSigner:
        return TsigSigner(self.key(), fudge=self.fudge, allow_truncation=self.allow_truncation)


def _default_servers() -> List[ServerConfig]:
    return [ServerConfig(address=a) for a in DEFAULT_SERVERS]


class ResolverConfig(BaseModel):
    """
    Brief: Immutable resolver configuration.

    Inputs:
      - servers: upstream servers, tried in order of measured response time
      - protocol: preferred transport (udp or tcp)
      - retries: transmissions per server before moving on
      - global_work_budget: units of protocol work per request
      - cache_enabled, cache_max_entries: cache switch and bound
      - edns: optional EdnsConfig
      - tsig: optional TsigConfig
      - recursion_desired: RD flag of queries
      - request_timeout_ms: optional wall-clock budget per request
      - retry_backoff_ms, max_retry_backoff_ms: sleep between retransmissions
        to the same server, doubling from the base up to the cap
      - probe_aaaa: lookup_ip also asks for AAAA records
      - allow_any: permit QTYPE ANY
      - max_pointer_depth: compression pointers followed per name
      - cache_non_authoritative: cache authority/additional records of
        non-authoritative responses

    Outputs:
      - ResolverConfig instance

    Example:
      >>> cfg = ResolverConfig(servers=["127.0.0.1:5353"], protocol="tcp")
      >>> (cfg.servers[0].port, cfg.protocol.value, cfg.retries)
      (5353, 'tcp', 3)
    """

    servers: List[ServerConfig] = Field(default_factory=_default_servers)
    protocol: Transport = Transport.UDP
    retries: int = Field(3, ge=0, le=65535)
    global_work_budget: int = Field(30, ge=1, le=65535)
    cache_enabled: bool = True
    cache_max_entries: int = Field(1000, ge=0, le=0xFFFFFFFF)
    edns: Optional[EdnsConfig] = None
    tsig: Optional[TsigConfig] = None
    recursion_desired: bool = True
    request_timeout_ms: Optional[int] = Field(None, gt=0)
    retry_backoff_ms: int = Field(0, ge=0)
    max_retry_backoff_ms: int = Field(10000, ge=0)
    probe_aaaa: bool = False
    allow_any: bool = False
    max_pointer_depth: int = Field(16, ge=1, le=127)
    cache_non_authoritative: bool = False

    class Config:
        extra = "forbid"
        frozen = True

    @validator("servers", pre=True)
    def _normalize_servers(cls, v):
        if v is None:
            return _default_servers()
        if isinstance(v, (str, dict, ServerConfig)):
            v = [v]
        out: List[Union[dict, ServerConfig]] = []
        for item in v:
            out.append(parse_server(item) if isinstance(item, str) else item)
        if not out:
            raise ValueError("at least one server is required")
        return out

    @validator("protocol", pre=True)
    def _normalize_protocol(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @validator("edns", pre=True)
    def _edns_shorthand(cls, v):
        # `edns: true` means the defaults.
        if v is True:
            return {}
        if v is False:
            return None
        return v
