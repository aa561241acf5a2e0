"""buoy: an asyncio DNS stub resolver."""

import logging

from .client import Client
from .config import ResolverConfig, ServerConfig, EdnsConfig, TsigConfig, parse_config_file
from .errors import (
    BadKey,
    BadSig,
    BadTime,
    BadTruncation,
    ConfigError,
    DnsError,
    FormatError,
    NXDomainError,
    NotImplementedRcode,
    Refused,
    ResolverTimeout,
    ResponseCodeError,
    ResponseError,
    ServerFailure,
    TemporaryError,
    TransportError,
    TsigError,
)
from .message import DnsMessage, DomainName, Question, ResourceRecord
from .resolver import Resolver
from .transports import Transport

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "BadKey",
    "BadSig",
    "BadTime",
    "BadTruncation",
    "Client",
    "ConfigError",
    "DnsError",
    "DnsMessage",
    "DomainName",
    "EdnsConfig",
    "FormatError",
    "NXDomainError",
    "NotImplementedRcode",
    "Question",
    "Refused",
    "ResolverConfig",
    "ResolverTimeout",
    "ResourceRecord",
    "ResponseCodeError",
    "ResponseError",
    "Resolver",
    "ServerConfig",
    "ServerFailure",
    "TemporaryError",
    "Transport",
    "TransportError",
    "TsigConfig",
    "TsigError",
    "parse_config_file",
]
