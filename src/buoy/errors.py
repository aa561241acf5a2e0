"""Error taxonomy for buoy.

Brief:
  Every failure surfaced by the library derives from DnsError. Transport
  failures are recovered by the lookup engine; response-code errors and TSIG
  failures carry the offending message where one was received.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .message.message import DnsMessage


class DnsError(Exception):
    """Base class for all buoy errors."""


class ConfigError(DnsError, ValueError):
    """Invalid resolver or logging configuration."""


# Transport -------------------------------------------------------------------


class TransportError(DnsError):
    """
    Brief: A single exchange with one server failed below the DNS layer.

    Inputs:
      - message: description
      - server: optional "host:port" string of the peer

    Outputs:
      - Exception instance
    """

    def __init__(self, message: str, *, server: Optional[str] = None) -> None:
        super().__init__(message)
        self.server = server


class TransportTimeout(TransportError):
    """The per-attempt deadline fired before a usable reply arrived."""


class TransportIOError(TransportError):
    """Socket-level failure (connect refused, unreachable, reset...)."""


class ConnectionClosed(TransportError):
    """The peer closed a TCP stream before a full message was read."""


class OversizeResponse(TransportError):
    """A reply exceeded the size the transport was prepared to accept."""


# Wire format -----------------------------------------------------------------


class FormatError(DnsError):
    """Malformed wire data (or a FORMERR answer, see FormatErrorResponse)."""


# Response codes --------------------------------------------------------------


class ResponseCodeError(DnsError):
    """
    Brief: A server answered with a non-zero RCODE.

    Inputs:
      - message: description
      - rcode: the (possibly extended) response code
      - response: the DnsMessage that carried it, when available

    Outputs:
      - Exception instance
    """

    rcode: int = 0

    def __init__(
        self,
        message: str,
        *,
        rcode: Optional[int] = None,
        response: Optional["DnsMessage"] = None,
    ) -> None:
        super().__init__(message)
        if rcode is not None:
            self.rcode = int(rcode)
        self.response = response


class FormatErrorResponse(FormatError, ResponseCodeError):
    rcode = 1


class ServerFailure(ResponseCodeError):
    rcode = 2


class NXDomainError(ResponseCodeError):
    rcode = 3


class NotImplementedRcode(ResponseCodeError):
    rcode = 4


class Refused(ResponseCodeError):
    rcode = 5


class ResponseError(ResponseCodeError):
    """RCODE 6..15 (and other extended codes without a dedicated class)."""


class BadVersion(ResponseCodeError):
    """The server does not implement the EDNS version we sent."""

    rcode = 16


# Lookup ----------------------------------------------------------------------


class TemporaryError(DnsError):
    """Work budget exhausted or every server failed; retrying later may help."""


class ResolverTimeout(DnsError):
    """The request-level wall-clock budget ran out."""


# TSIG ------------------------------------------------------------------------


class TsigError(DnsError):
    """Base for TSIG verification failures; `error` is the RFC 8945 code."""

    error: int = 0


class BadSig(TsigError):
    error = 16


class BadKey(TsigError):
    error = 17


class BadTime(TsigError):
    error = 18


class BadTruncation(TsigError):
    error = 22


_RCODE_ERRORS = {
    1: (FormatErrorResponse, "The name server was unable to interpret the query."),
    2: (
        ServerFailure,
        "The name server was unable to process this query due to a problem "
        "with the name server.",
    ),
    3: (NXDomainError, "The domain name referenced in the query does not exist."),
    4: (
        NotImplementedRcode,
        "The name server does not support the requested kind of query.",
    ),
    5: (
        Refused,
        "The name server refuses to perform the specified operation for "
        "policy reasons.",
    ),
    16: (BadVersion, "The name server does not implement the EDNS version sent."),
}


def error_for_rcode(
    rcode: int, response: Optional["DnsMessage"] = None
) -> Optional[ResponseCodeError]:
    """
    Brief: Map a response code to the error a caller should see.

    Inputs:
      - rcode: response code (header RCODE or EDNS-extended value)
      - response: optional message to attach to the error

    Outputs:
      - None for NOERROR, otherwise a ResponseCodeError instance (not raised).

    Example:
      >>> type(error_for_rcode(3)).__name__
      'NXDomainError'
    """
    rcode = int(rcode)
    if rcode == 0:
        return None
    cls, text = _RCODE_ERRORS.get(
        rcode, (ResponseError, f"The name server answered with RCODE {rcode}.")
    )
    return cls(text, rcode=rcode, response=response)
