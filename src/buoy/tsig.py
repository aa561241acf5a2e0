"""Transaction signatures (RFC 8945).

Brief:
  sign_request() and sign_response() append a TSIG record to an encoded
  message; verify() checks one against a keyring. The digest covers, in
  order: the request MAC (responses only, prefixed with its 16-bit length),
  the message as sent without the TSIG record, then the TSIG variables
  (owner, class ANY, TTL 0, algorithm, time signed, fudge, error, other).

  TsigSigner bundles a key and policy so the lookup engine only sees a
  sign(message) / verify(wire, request_mac) pair.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import struct
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from .errors import BadKey, BadSig, BadTime, BadTruncation, FormatError
from .message.message import DnsMessage
from .message.names import DomainName, NameLike
from .message.rdata import TSIG
from .message.record import ResourceRecord
from .message.types import RClass, RRType

logger = logging.getLogger(__name__)

DEFAULT_FUDGE = 300

HMAC_MD5 = DomainName.from_text("hmac-md5.sig-alg.reg.int.")
HMAC_SHA1 = DomainName.from_text("hmac-sha1.")
HMAC_SHA224 = DomainName.from_text("hmac-sha224.")
HMAC_SHA256 = DomainName.from_text("hmac-sha256.")
HMAC_SHA384 = DomainName.from_text("hmac-sha384.")
HMAC_SHA512 = DomainName.from_text("hmac-sha512.")


@dataclass(frozen=True)
class TsigAlgorithm:
    name: DomainName
    digestmod: Callable
    mac_size: int

    def mac(self, secret: bytes, data: bytes) -> bytes:
        return hmac.new(secret, data, self.digestmod).digest()


_ALGORITHMS: Dict[DomainName, TsigAlgorithm] = {}
# "hmacsha256" style aliases used in configuration files.
_ALIASES: Dict[str, DomainName] = {}


def register_algorithm(name: NameLike, digestmod: Callable, *aliases: str) -> TsigAlgorithm:
    """
    Brief: Make an HMAC algorithm available for signing and verification.

    Inputs:
      - name: algorithm domain name as carried in the TSIG RR
      - digestmod: hashlib constructor
      - aliases: extra configuration spellings

    Outputs:
      - The registered TsigAlgorithm.
    """
    dname = DomainName.from_text(name, strict=False)
    alg = TsigAlgorithm(dname, digestmod, digestmod().digest_size)
    _ALGORITHMS[dname] = alg
    for alias in (dname.to_text(omit_final_dot=True),) + aliases:
        _ALIASES[_alias_key(alias)] = dname
    return alg


def _alias_key(text: str) -> str:
    return text.lower().replace("-", "").replace("_", "").rstrip(".")


def get_algorithm(name: NameLike) -> Optional[TsigAlgorithm]:
    return _ALGORITHMS.get(DomainName.from_text(name, strict=False))


def algorithm_from_text(value: Union[str, DomainName]) -> DomainName:
    """Resolve "hmac-sha256", "HmacSha256" or "hmac-sha256." to the algorithm name."""
    if isinstance(value, DomainName):
        return value
    dname = _ALIASES.get(_alias_key(value))
    if dname is None:
        raise ValueError(f"unknown TSIG algorithm {value!r}")
    return dname


register_algorithm(HMAC_MD5, hashlib.md5, "hmac-md5")
register_algorithm(HMAC_SHA1, hashlib.sha1)
register_algorithm(HMAC_SHA224, hashlib.sha224)
register_algorithm(HMAC_SHA256, hashlib.sha256)
register_algorithm(HMAC_SHA384, hashlib.sha384)
register_algorithm(HMAC_SHA512, hashlib.sha512)


@dataclass(frozen=True)
class TsigKey:
    """
    Brief: A shared TSIG secret.

    Inputs:
      - name: key name (owner of the TSIG RR)
      - secret: raw key octets
      - algorithm: algorithm name; anything algorithm_from_text() accepts

    Outputs:
      - TsigKey instance

    Example:
      >>> key = TsigKey.from_base64("weird.nictest", "c2VjcmV0", "hmac-sha1")
      >>> (str(key.name), str(key.algorithm), key.secret)
      ('weird.nictest.', 'hmac-sha1.', b'secret')
    """

    name: DomainName
    secret: bytes
    algorithm: DomainName = HMAC_SHA256

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", DomainName.from_text(self.name, strict=False))
        object.__setattr__(self, "algorithm", algorithm_from_text(self.algorithm))
        object.__setattr__(self, "secret", bytes(self.secret))

    @classmethod
    def from_base64(cls, name: NameLike, secret: str, algorithm=HMAC_SHA256) -> "TsigKey":
        try:
            raw = base64.b64decode(secret, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"TSIG secret for {name} is not valid base64") from exc
        return cls(name, raw, algorithm)

    def __repr__(self) -> str:
        return f"TsigKey(name={str(self.name)!r}, algorithm={str(self.algorithm)!r})"


class TsigKeyring:
    """Key name -> TsigKey lookup; names compare case-insensitively."""

    def __init__(self, keys: Iterable[TsigKey] = ()) -> None:
        self._keys: Dict[DomainName, TsigKey] = {}
        for key in keys:
            self.add(key)

    @classmethod
    def from_secrets(cls, secrets: Mapping[str, str], algorithm=HMAC_SHA256) -> "TsigKeyring":
        return cls(TsigKey.from_base64(name, s, algorithm) for name, s in secrets.items())

    def add(self, key: TsigKey) -> None:
        self._keys[key.name] = key

    def get(self, name: NameLike) -> Optional[TsigKey]:
        return self._keys.get(DomainName.from_text(name, strict=False))

    def __contains__(self, name: object) -> bool:
        return self.get(name) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._keys)


# Digest composition ---------------------------------------------------------


def _variables(owner: DomainName, rdata: TSIG) -> bytes:
    time_fudge = struct.pack(
        "!HIH", (rdata.time_signed >> 32) & 0xFFFF, rdata.time_signed & 0xFFFFFFFF, rdata.fudge
    )
    return (
        owner.to_wire(canonical=True)
        + struct.pack("!HI", RClass.ANY, 0)
        + rdata.algorithm.to_wire(canonical=True)
        + time_fudge
        + struct.pack("!HH", rdata.error, len(rdata.other))
        + rdata.other
    )


def _digest_input(
    unsigned_wire: bytes,
    owner: DomainName,
    rdata: TSIG,
    request_mac: Optional[bytes],
) -> bytes:
    prefix = b""
    if request_mac is not None:
        prefix = struct.pack("!H", len(request_mac)) + request_mac
    return prefix + unsigned_wire + _variables(owner, rdata)


def _strip_tsig(wire: bytes, tsig_offset: int, original_id: int) -> bytes:
    """The message as it was before signing: original id, ARCOUNT-1, no TSIG."""
    head = bytearray(wire[:tsig_offset])
    (arcount,) = struct.unpack_from("!H", head, 10)
    struct.pack_into("!H", head, 0, original_id)
    struct.pack_into("!H", head, 10, arcount - 1)
    return bytes(head)


# Signing ---------------------------------------------------------------------


def _sign(
    message: DnsMessage,
    key: TsigKey,
    *,
    request_mac: Optional[bytes],
    fudge: int,
    now: Optional[float],
    error: int,
    other: bytes,
) -> Tuple[bytes, bytes]:
    if message.tsig is not None:
        raise FormatError("message already carries a TSIG record")
    alg = get_algorithm(key.algorithm)
    if alg is None:
        raise BadKey(f"TSIG algorithm {key.algorithm} is not implemented")
    wire = message.to_wire()
    time_signed = int(time.time() if now is None else now)
    placeholder = TSIG(key.algorithm, time_signed, fudge, b"", message.id, error, other)
    mac = alg.mac(key.secret, _digest_input(wire, key.name, placeholder, request_mac))
    record = ResourceRecord(
        key.name,
        RRType.TSIG,
        RClass.ANY,
        0,
        TSIG(key.algorithm, time_signed, fudge, mac, message.id, error, other),
    )
    signed = bytearray(wire)
    (arcount,) = struct.unpack_from("!H", signed, 10)
    struct.pack_into("!H", signed, 10, arcount + 1)
    record.to_wire(signed, None)
    return bytes(signed), mac


def sign_request(
    message: DnsMessage,
    key: TsigKey,
    *,
    fudge: int = DEFAULT_FUDGE,
    now: Optional[float] = None,
) -> Tuple[bytes, bytes]:
    """
    Brief: Encode and sign a request.

    Inputs:
      - message: unsigned message; every other additional record is final
      - key: TsigKey
      - fudge: permitted clock skew in seconds
      - now: signing time (defaults to the current time)

    Outputs:
      - (wire, mac): the signed octets and the MAC to verify the reply with
    """
    return _sign(message, key, request_mac=None, fudge=fudge, now=now, error=0, other=b"")


def sign_response(
    response: DnsMessage,
    key: TsigKey,
    request_mac: bytes,
    *,
    fudge: int = DEFAULT_FUDGE,
    now: Optional[float] = None,
    error: int = 0,
    other: bytes = b"",
) -> Tuple[bytes, bytes]:
    """Sign a response; the request MAC is chained into the digest."""
    return _sign(
        response,
        key,
        request_mac=request_mac,
        fudge=fudge,
        now=now,
        error=error,
        other=other,
    )


# Verification ----------------------------------------------------------------

_SERVER_ERRORS = {cls.error: cls for cls in (BadSig, BadKey, BadTime, BadTruncation)}


def verify(
    wire: bytes,
    keyring: TsigKeyring,
    request_mac: Optional[bytes] = None,
    *,
    now: Optional[float] = None,
    allow_truncation: bool = False,
    message: Optional[DnsMessage] = None,
) -> DnsMessage:
    """
    Brief: Verify the TSIG record of a received message.

    Inputs:
      - wire: message octets exactly as received
      - keyring: known keys
      - request_mac: MAC of our request when verifying a response
      - now: verification time (defaults to the current time)
      - allow_truncation: accept MACs shorter than the algorithm output
      - message: the already decoded form of wire, if available

    Outputs:
      - The decoded DnsMessage.

    Raises, in this order:
      - FormatError: TSIG missing or not last in the additional section
      - BadKey: unknown key name, or unknown / mismatching algorithm
      - BadSig: MAC mismatch
      - BadTime: |now - time signed| > fudge
      - BadTruncation: shortened MAC not permitted
    """
    if message is None:
        message = DnsMessage.from_wire(wire)
    tsig_rr = message.tsig
    if tsig_rr is None or message.tsig_offset is None:
        raise FormatError("message carries no TSIG record")
    rdata: TSIG = tsig_rr.rdata  # type: ignore[assignment]

    key = keyring.get(tsig_rr.name)
    if key is None:
        raise BadKey(f"unknown TSIG key {tsig_rr.name}")
    alg = get_algorithm(rdata.algorithm)
    if alg is None or rdata.algorithm != key.algorithm:
        raise BadKey(f"TSIG algorithm {rdata.algorithm} is not usable with key {key.name}")

    if rdata.error and not rdata.mac:
        # Unsigned error reply from the server (RFC 8945 5.3.2).
        cls = _SERVER_ERRORS.get(rdata.error, BadSig)
        raise cls(f"server rejected TSIG key {key.name} with error {rdata.error}")

    mac_len = len(rdata.mac)
    if mac_len > alg.mac_size or (
        mac_len < alg.mac_size and mac_len < max(10, alg.mac_size // 2)
    ):
        raise FormatError(f"TSIG MAC of {mac_len} octets for {alg.name}")
    unsigned = _strip_tsig(bytes(wire), message.tsig_offset, rdata.original_id)
    expected = alg.mac(key.secret, _digest_input(unsigned, tsig_rr.name, rdata, request_mac))
    if not hmac.compare_digest(expected[:mac_len], rdata.mac):
        raise BadSig(f"TSIG MAC mismatch for key {key.name}")

    current = time.time() if now is None else now
    if abs(current - rdata.time_signed) > rdata.fudge:
        raise BadTime(
            f"TSIG time {rdata.time_signed} outside fudge {rdata.fudge}s of {int(current)}"
        )
    if mac_len < alg.mac_size and not allow_truncation:
        raise BadTruncation(f"truncated TSIG MAC ({mac_len} of {alg.mac_size} octets)")
    return message


class TsigSigner:
    """
    Brief: Key plus policy used by the lookup engine.

    Inputs:
      - key: TsigKey used for signing
      - fudge: seconds of permitted clock skew
      - allow_truncation: accept truncated MACs in responses
      - keyring: keys accepted on verification (defaults to just `key`)

    Outputs:
      - TsigSigner with sign(message) and verify(wire, request_mac).
    """

    def __init__(
        self,
        key: TsigKey,
        *,
        fudge: int = DEFAULT_FUDGE,
        allow_truncation: bool = False,
        keyring: Optional[TsigKeyring] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key = key
        self.fudge = fudge
        self.allow_truncation = allow_truncation
        self.keyring = keyring if keyring is not None else TsigKeyring([key])
        self._clock = clock

    def sign(self, message: DnsMessage) -> Tuple[bytes, bytes]:
        return sign_request(message, self.key, fudge=self.fudge, now=self._clock())

    def verify(
        self, wire: bytes, request_mac: bytes, message: Optional[DnsMessage] = None
    ) -> DnsMessage:
        return verify(
            wire,
            self.keyring,
            request_mac,
            now=self._clock(),
            allow_truncation=self.allow_truncation,
            message=message,
        )
