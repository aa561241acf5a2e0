"""RDATA variants and their per-type wire codecs.

Brief:
  Each RR type is a frozen dataclass holding only data. Encoding and decoding
  are plain functions registered in a table keyed by RRTYPE, so the variant
  is always identified by its type number and never by a to_bytes() method.

  Names inside RDATA may be compressed only for the RFC 1035 types (NS,
  CNAME, SOA, PTR, MINFO, MX); every later type carries literal labels
  (RFC 3597 section 4).
"""

from __future__ import annotations

import base64
import ipaddress
import struct
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple, Type, Union

from ..errors import FormatError
from .edns import EdnsOption, decode_options
from .names import CompressionMap, DomainName, decode_name, encode_name
from .types import RRType


def _names(obj, *attrs: str) -> None:
    """Coerce str fields of a frozen dataclass to DomainName."""
    for attr in attrs:
        value = getattr(obj, attr)
        if not isinstance(value, DomainName):
            object.__setattr__(obj, attr, DomainName.from_text(value, strict=False))


def _char_string(value: Union[str, bytes]) -> bytes:
    raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    if len(raw) > 255:
        raise FormatError("character-string longer than 255 octets")
    return raw


def _quote(raw: bytes) -> str:
    out = []
    for ch in raw:
        if ch in (0x22, 0x5C):
            out.append("\\" + chr(ch))
        elif 0x20 <= ch <= 0x7E:
            out.append(chr(ch))
        else:
            out.append("\\%03d" % ch)
    return '"' + "".join(out) + '"'


# Variants ---------------------------------------------------------------------


class _PresentationText:
    """Gives a variant its zone file text as str()."""

    def __str__(self) -> str:
        return rdata_to_text(self)  # type: ignore[arg-type]


@dataclass(frozen=True)
class A(_PresentationText):
    address: str

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "address", str(ipaddress.IPv4Address(self.address)))
        except ValueError as exc:
            raise FormatError(f"invalid IPv4 address {self.address!r}") from exc


@dataclass(frozen=True)
class AAAA(_PresentationText):
    address: str

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "address", str(ipaddress.IPv6Address(self.address)))
        except ValueError as exc:
            raise FormatError(f"invalid IPv6 address {self.address!r}") from exc


@dataclass(frozen=True)
class NS(_PresentationText):
    target: DomainName

    def __post_init__(self) -> None:
        _names(self, "target")


@dataclass(frozen=True)
class CNAME(_PresentationText):
    target: DomainName

    def __post_init__(self) -> None:
        _names(self, "target")


@dataclass(frozen=True)
class PTR(_PresentationText):
    target: DomainName

    def __post_init__(self) -> None:
        _names(self, "target")


@dataclass(frozen=True)
class DNAME(_PresentationText):
    target: DomainName

    def __post_init__(self) -> None:
        _names(self, "target")


@dataclass(frozen=True)
class SOA(_PresentationText):
    mname: DomainName
    rname: DomainName
    serial: int
    refresh: int
    retry: int
    expire: int
    minimum: int

    def __post_init__(self) -> None:
        _names(self, "mname", "rname")


@dataclass(frozen=True)
class MX(_PresentationText):
    preference: int
    exchange: DomainName

    def __post_init__(self) -> None:
        _names(self, "exchange")


@dataclass(frozen=True)
class TXT(_PresentationText):
    strings: Tuple[bytes, ...]

    def __post_init__(self) -> None:
        if isinstance(self.strings, (str, bytes)):
            strings: Tuple[bytes, ...] = (_char_string(self.strings),)
        else:
            strings = tuple(_char_string(s) for s in self.strings)
        if not strings:
            raise FormatError("TXT needs at least one character-string")
        object.__setattr__(self, "strings", strings)


@dataclass(frozen=True)
class HINFO(_PresentationText):
    cpu: bytes
    os: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "cpu", _char_string(self.cpu))
        object.__setattr__(self, "os", _char_string(self.os))


@dataclass(frozen=True)
class MINFO(_PresentationText):
    rmailbx: DomainName
    emailbx: DomainName

    def __post_init__(self) -> None:
        _names(self, "rmailbx", "emailbx")


@dataclass(frozen=True)
class SRV(_PresentationText):
    priority: int
    weight: int
    port: int
    target: DomainName

    def __post_init__(self) -> None:
        _names(self, "target")


@dataclass(frozen=True)
class OPT(_PresentationText):
    options: Tuple[EdnsOption, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", tuple(self.options))


@dataclass(frozen=True)
class RRSIG(_PresentationText):
    type_covered: int
    algorithm: int
    labels: int
    original_ttl: int
    expiration: int
    inception: int
    key_tag: int
    signer: DomainName
    signature: bytes

    def __post_init__(self) -> None:
        _names(self, "signer")


@dataclass(frozen=True)
class NSEC(_PresentationText):
    next_name: DomainName
    types: Tuple[int, ...]

    def __post_init__(self) -> None:
        _names(self, "next_name")
        object.__setattr__(self, "types", tuple(sorted(set(self.types))))


@dataclass(frozen=True)
class NSEC3(_PresentationText):
    hash_algorithm: int
    flags: int
    iterations: int
    salt: bytes
    next_hashed: bytes
    types: Tuple[int, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "types", tuple(sorted(set(self.types))))


@dataclass(frozen=True)
class NSEC3PARAM(_PresentationText):
    hash_algorithm: int
    flags: int
    iterations: int
    salt: bytes


@dataclass(frozen=True)
class DNSKEY(_PresentationText):
    flags: int
    protocol: int
    algorithm: int
    key: bytes

    def key_tag(self) -> int:
        """RFC 4034 appendix B key tag."""
        wire = struct.pack("!HBB", self.flags, self.protocol, self.algorithm) + self.key
        acc = 0
        for i, byte in enumerate(wire):
            acc += byte if i & 1 else byte << 8
        acc += (acc >> 16) & 0xFFFF
        return acc & 0xFFFF


@dataclass(frozen=True)
class DS(_PresentationText):
    key_tag: int
    algorithm: int
    digest_type: int
    digest: bytes


@dataclass(frozen=True)
class TSIG(_PresentationText):
    algorithm: DomainName
    time_signed: int
    fudge: int
    mac: bytes
    original_id: int
    error: int = 0
    other: bytes = b""

    def __post_init__(self) -> None:
        _names(self, "algorithm")


@dataclass(frozen=True)
class UnknownRdata(_PresentationText):
    """Opaque RDATA for types without a dedicated codec (RFC 3597)."""

    rrtype: int
    data: bytes


Rdata = Union[
    A, AAAA, NS, CNAME, PTR, DNAME, SOA, MX, TXT, HINFO, MINFO, SRV, OPT,
    RRSIG, NSEC, NSEC3, NSEC3PARAM, DNSKEY, DS, TSIG, UnknownRdata,
]


# Decoding helpers ---------------------------------------------------------------


class DecodeOptions(NamedTuple):
    max_pointers: int = 16
    strict_names: bool = True


class _Cursor:
    """Bounded reader over wire[offset:end]; every overrun is a FormatError."""

    __slots__ = ("wire", "pos", "end", "opts", "rrtype")

    def __init__(self, wire: bytes, offset: int, end: int, opts: DecodeOptions, rrtype: int):
        self.wire = wire
        self.pos = offset
        self.end = end
        self.opts = opts
        self.rrtype = rrtype

    def _need(self, n: int) -> None:
        if self.pos + n > self.end:
            raise FormatError(
                f"{RRType.get(self.rrtype)} RDATA needs {n} more octets, "
                f"{self.end - self.pos} left"
            )

    def unpack(self, fmt: str) -> tuple:
        size = struct.calcsize(fmt)
        self._need(size)
        values = struct.unpack_from(fmt, self.wire, self.pos)
        self.pos += size
        return values

    def u48(self) -> int:
        hi, lo = self.unpack("!HI")
        return (hi << 32) | lo

    def take(self, n: int) -> bytes:
        self._need(n)
        data = bytes(self.wire[self.pos : self.pos + n])
        self.pos += n
        return data

    def rest(self) -> bytes:
        return self.take(self.end - self.pos)

    def char_string(self) -> bytes:
        (length,) = self.unpack("!B")
        return self.take(length)

    def name(self, compressed: bool) -> DomainName:
        name, nxt = decode_name(
            self.wire,
            self.pos,
            allow_compression=compressed,
            max_pointers=self.opts.max_pointers,
            strict=self.opts.strict_names,
        )
        if nxt > self.end:
            raise FormatError(f"name in {RRType.get(self.rrtype)} RDATA overruns RDLENGTH")
        self.pos = nxt
        return name

    def done(self) -> None:
        if self.pos != self.end:
            raise FormatError(
                f"{self.end - self.pos} trailing octets in {RRType.get(self.rrtype)} RDATA"
            )


def _type_bitmap(types: Tuple[int, ...]) -> bytes:
    windows: Dict[int, bytearray] = {}
    for rrtype in types:
        window, low = divmod(int(rrtype), 256)
        bitmap = windows.setdefault(window, bytearray(32))
        bitmap[low // 8] |= 0x80 >> (low % 8)
    out = bytearray()
    for window in sorted(windows):
        bitmap = windows[window].rstrip(b"\x00")
        out += struct.pack("!BB", window, len(bitmap)) + bitmap
    return bytes(out)


def _read_type_bitmap(cur: _Cursor) -> Tuple[int, ...]:
    types: List[int] = []
    last_window = -1
    while cur.pos < cur.end:
        window, length = cur.unpack("!BB")
        if window <= last_window:
            raise FormatError("type bitmap windows out of order")
        if not 1 <= length <= 32:
            raise FormatError(f"type bitmap length {length} outside 1..32")
        last_window = window
        for i, byte in enumerate(cur.take(length)):
            for bit in range(8):
                if byte & (0x80 >> bit):
                    types.append(window * 256 + i * 8 + bit)
    return tuple(types)


# Per-type codecs ------------------------------------------------------------------

Encoder = Callable[[object, bytearray, Optional[CompressionMap]], None]
Decoder = Callable[[_Cursor], object]
Formatter = Callable[[object], str]


class _Codec(NamedTuple):
    cls: type
    encode: Encoder
    decode: Decoder
    text: Formatter
    compressible: bool = False


def _enc_a(rd: A, buf, _c) -> None:
    buf += ipaddress.IPv4Address(rd.address).packed


def _dec_a(cur: _Cursor) -> A:
    return A(str(ipaddress.IPv4Address(cur.take(4))))


def _enc_aaaa(rd: AAAA, buf, _c) -> None:
    buf += ipaddress.IPv6Address(rd.address).packed


def _dec_aaaa(cur: _Cursor) -> AAAA:
    return AAAA(str(ipaddress.IPv6Address(cur.take(16))))


def _single_name(cls: type, compressible: bool) -> _Codec:
    def enc(rd, buf, compress) -> None:
        encode_name(rd.target, buf, compress)

    def dec(cur: _Cursor):
        return cls(cur.name(compressible))

    return _Codec(cls, enc, dec, lambda rd: str(rd.target), compressible)


def _enc_soa(rd: SOA, buf, compress) -> None:
    encode_name(rd.mname, buf, compress)
    encode_name(rd.rname, buf, compress)
    buf += struct.pack("!IIIII", rd.serial, rd.refresh, rd.retry, rd.expire, rd.minimum)


def _dec_soa(cur: _Cursor) -> SOA:
    mname = cur.name(True)
    rname = cur.name(True)
    return SOA(mname, rname, *cur.unpack("!IIIII"))


def _enc_mx(rd: MX, buf, compress) -> None:
    buf += struct.pack("!H", rd.preference)
    encode_name(rd.exchange, buf, compress)


def _dec_mx(cur: _Cursor) -> MX:
    (pref,) = cur.unpack("!H")
    return MX(pref, cur.name(True))


def _enc_txt(rd: TXT, buf, _c) -> None:
    for s in rd.strings:
        buf.append(len(s))
        buf += s


def _dec_txt(cur: _Cursor) -> TXT:
    strings = []
    while cur.pos < cur.end:
        strings.append(cur.char_string())
    return TXT(tuple(strings))


def _enc_hinfo(rd: HINFO, buf, _c) -> None:
    for s in (rd.cpu, rd.os):
        buf.append(len(s))
        buf += s


def _dec_hinfo(cur: _Cursor) -> HINFO:
    return HINFO(cur.char_string(), cur.char_string())


def _enc_minfo(rd: MINFO, buf, compress) -> None:
    encode_name(rd.rmailbx, buf, compress)
    encode_name(rd.emailbx, buf, compress)


def _dec_minfo(cur: _Cursor) -> MINFO:
    return MINFO(cur.name(True), cur.name(True))


def _enc_srv(rd: SRV, buf, _c) -> None:
    buf += struct.pack("!HHH", rd.priority, rd.weight, rd.port)
    encode_name(rd.target, buf, None)


def _dec_srv(cur: _Cursor) -> SRV:
    priority, weight, port = cur.unpack("!HHH")
    return SRV(priority, weight, port, cur.name(False))


def _enc_opt(rd: OPT, buf, _c) -> None:
    for opt in rd.options:
        buf += opt.to_wire()


def _dec_opt(cur: _Cursor) -> OPT:
    options = decode_options(cur.wire, cur.pos, cur.end)
    cur.pos = cur.end
    return OPT(options)


def _enc_rrsig(rd: RRSIG, buf, _c) -> None:
    buf += struct.pack(
        "!HBBIIIH",
        rd.type_covered,
        rd.algorithm,
        rd.labels,
        rd.original_ttl,
        rd.expiration,
        rd.inception,
        rd.key_tag,
    )
    encode_name(rd.signer, buf, None)
    buf += rd.signature


def _dec_rrsig(cur: _Cursor) -> RRSIG:
    head = cur.unpack("!HBBIIIH")
    signer = cur.name(False)
    return RRSIG(*head, signer, cur.rest())


def _enc_nsec(rd: NSEC, buf, _c) -> None:
    encode_name(rd.next_name, buf, None)
    buf += _type_bitmap(rd.types)


def _dec_nsec(cur: _Cursor) -> NSEC:
    next_name = cur.name(False)
    return NSEC(next_name, _read_type_bitmap(cur))


def _enc_nsec3(rd: NSEC3, buf, _c) -> None:
    buf += struct.pack("!BBHB", rd.hash_algorithm, rd.flags, rd.iterations, len(rd.salt))
    buf += rd.salt
    buf.append(len(rd.next_hashed))
    buf += rd.next_hashed
    buf += _type_bitmap(rd.types)


def _dec_nsec3(cur: _Cursor) -> NSEC3:
    alg, flags, iterations, salt_len = cur.unpack("!BBHB")
    salt = cur.take(salt_len)
    (hash_len,) = cur.unpack("!B")
    if hash_len == 0:
        raise FormatError("NSEC3 next hashed owner name is empty")
    next_hashed = cur.take(hash_len)
    return NSEC3(alg, flags, iterations, salt, next_hashed, _read_type_bitmap(cur))


def _enc_nsec3param(rd: NSEC3PARAM, buf, _c) -> None:
    buf += struct.pack("!BBHB", rd.hash_algorithm, rd.flags, rd.iterations, len(rd.salt))
    buf += rd.salt


def _dec_nsec3param(cur: _Cursor) -> NSEC3PARAM:
    alg, flags, iterations, salt_len = cur.unpack("!BBHB")
    return NSEC3PARAM(alg, flags, iterations, cur.take(salt_len))


def _enc_dnskey(rd: DNSKEY, buf, _c) -> None:
    buf += struct.pack("!HBB", rd.flags, rd.protocol, rd.algorithm) + rd.key


def _dec_dnskey(cur: _Cursor) -> DNSKEY:
    flags, protocol, algorithm = cur.unpack("!HBB")
    return DNSKEY(flags, protocol, algorithm, cur.rest())


def _enc_ds(rd: DS, buf, _c) -> None:
    buf += struct.pack("!HBB", rd.key_tag, rd.algorithm, rd.digest_type) + rd.digest


def _dec_ds(cur: _Cursor) -> DS:
    key_tag, algorithm, digest_type = cur.unpack("!HBB")
    return DS(key_tag, algorithm, digest_type, cur.rest())


def _enc_tsig(rd: TSIG, buf, _c) -> None:
    encode_name(rd.algorithm, buf, None)
    buf += struct.pack(
        "!HIHH", (rd.time_signed >> 32) & 0xFFFF, rd.time_signed & 0xFFFFFFFF, rd.fudge, len(rd.mac)
    )
    buf += rd.mac
    buf += struct.pack("!HHH", rd.original_id, rd.error, len(rd.other))
    buf += rd.other


def _dec_tsig(cur: _Cursor) -> TSIG:
    algorithm = cur.name(False)
    time_signed = cur.u48()
    fudge, mac_size = cur.unpack("!HH")
    mac = cur.take(mac_size)
    original_id, error, other_len = cur.unpack("!HHH")
    return TSIG(algorithm, time_signed, fudge, mac, original_id, error, cur.take(other_len))


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii") or "-"


def _types_text(types: Tuple[int, ...]) -> str:
    return " ".join(RRType.get(t) for t in types)


CODECS: Dict[int, _Codec] = {
    RRType.A: _Codec(A, _enc_a, _dec_a, lambda rd: rd.address),
    RRType.AAAA: _Codec(AAAA, _enc_aaaa, _dec_aaaa, lambda rd: rd.address),
    RRType.NS: _single_name(NS, True),
    RRType.CNAME: _single_name(CNAME, True),
    RRType.PTR: _single_name(PTR, True),
    RRType.DNAME: _single_name(DNAME, False),
    RRType.SOA: _Codec(
        SOA,
        _enc_soa,
        _dec_soa,
        lambda rd: f"{rd.mname} {rd.rname} {rd.serial} {rd.refresh} "
        f"{rd.retry} {rd.expire} {rd.minimum}",
        True,
    ),
    RRType.MX: _Codec(MX, _enc_mx, _dec_mx, lambda rd: f"{rd.preference} {rd.exchange}", True),
    RRType.TXT: _Codec(TXT, _enc_txt, _dec_txt, lambda rd: " ".join(_quote(s) for s in rd.strings)),
    RRType.HINFO: _Codec(HINFO, _enc_hinfo, _dec_hinfo, lambda rd: f"{_quote(rd.cpu)} {_quote(rd.os)}"),
    RRType.MINFO: _Codec(MINFO, _enc_minfo, _dec_minfo, lambda rd: f"{rd.rmailbx} {rd.emailbx}", True),
    RRType.SRV: _Codec(
        SRV, _enc_srv, _dec_srv, lambda rd: f"{rd.priority} {rd.weight} {rd.port} {rd.target}"
    ),
    RRType.OPT: _Codec(OPT, _enc_opt, _dec_opt, lambda rd: " ".join(str(o) for o in rd.options)),
    RRType.RRSIG: _Codec(
        RRSIG,
        _enc_rrsig,
        _dec_rrsig,
        lambda rd: f"{RRType.get(rd.type_covered)} {rd.algorithm} {rd.labels} "
        f"{rd.original_ttl} {rd.expiration} {rd.inception} {rd.key_tag} "
        f"{rd.signer} {_b64(rd.signature)}",
    ),
    RRType.NSEC: _Codec(
        NSEC, _enc_nsec, _dec_nsec, lambda rd: f"{rd.next_name} {_types_text(rd.types)}".rstrip()
    ),
    RRType.NSEC3: _Codec(
        NSEC3,
        _enc_nsec3,
        _dec_nsec3,
        lambda rd: f"{rd.hash_algorithm} {rd.flags} {rd.iterations} "
        f"{rd.salt.hex() or '-'} {base64.b32hexencode(rd.next_hashed).decode().rstrip('=')} "
        f"{_types_text(rd.types)}".rstrip(),
    ),
    RRType.NSEC3PARAM: _Codec(
        NSEC3PARAM,
        _enc_nsec3param,
        _dec_nsec3param,
        lambda rd: f"{rd.hash_algorithm} {rd.flags} {rd.iterations} {rd.salt.hex() or '-'}",
    ),
    RRType.DNSKEY: _Codec(
        DNSKEY,
        _enc_dnskey,
        _dec_dnskey,
        lambda rd: f"{rd.flags} {rd.protocol} {rd.algorithm} {_b64(rd.key)}",
    ),
    RRType.DS: _Codec(
        DS,
        _enc_ds,
        _dec_ds,
        lambda rd: f"{rd.key_tag} {rd.algorithm} {rd.digest_type} {rd.digest.hex().upper()}",
    ),
    RRType.TSIG: _Codec(
        TSIG,
        _enc_tsig,
        _dec_tsig,
        lambda rd: f"{rd.algorithm} {rd.time_signed} {rd.fudge} {len(rd.mac)} "
        f"{_b64(rd.mac)} {rd.original_id} {rd.error} {len(rd.other)}",
    ),
}

_TYPE_OF: Dict[type, int] = {codec.cls: rrtype for rrtype, codec in CODECS.items()}


def rdata_type(rdata: Rdata) -> int:
    """RRTYPE number that identifies a variant."""
    if isinstance(rdata, UnknownRdata):
        return rdata.rrtype
    try:
        return _TYPE_OF[type(rdata)]
    except KeyError:
        raise TypeError(f"{type(rdata).__name__} is not an RDATA variant") from None


def variant_for(rrtype: int) -> Optional[Type]:
    codec = CODECS.get(int(rrtype))
    return codec.cls if codec else None


def is_compressible(rrtype: int) -> bool:
    codec = CODECS.get(int(rrtype))
    return bool(codec and codec.compressible)


def encode_rdata(
    rrtype: int,
    rdata: Rdata,
    buf: bytearray,
    compress: Optional[CompressionMap] = None,
) -> None:
    """
    Brief: Append RDATA for rrtype to buf.

    Inputs:
      - rrtype: the RR's type; must match the variant
      - rdata: variant instance
      - buf: message buffer (offsets of compressed names are relative to it)
      - compress: message compression map; ignored for non-RFC 1035 types

    Outputs:
      - None
    """
    if isinstance(rdata, UnknownRdata):
        buf += rdata.data
        return
    codec = CODECS.get(int(rrtype))
    if codec is None or not isinstance(rdata, codec.cls):
        raise FormatError(f"{type(rdata).__name__} cannot be encoded as {RRType.get(rrtype)}")
    try:
        codec.encode(rdata, buf, compress if codec.compressible else None)
    except (struct.error, ValueError) as exc:
        raise FormatError(f"cannot encode {RRType.get(rrtype)} RDATA: {exc}") from exc


def decode_rdata(
    rrtype: int,
    wire: bytes,
    offset: int,
    rdlength: int,
    opts: DecodeOptions = DecodeOptions(),
) -> Rdata:
    """
    Brief: Decode exactly rdlength octets of RDATA at offset.

    Inputs:
      - rrtype: RR type selecting the codec
      - wire: the complete message (needed to follow compression pointers)
      - offset: first RDATA octet
      - rdlength: RDLENGTH from the RR header
      - opts: DecodeOptions (pointer depth, label strictness)

    Outputs:
      - Rdata variant; unknown types become UnknownRdata

    Raises:
      - FormatError when the data is shorter than the type requires, a name
        overruns RDLENGTH, or octets are left over.
    """
    end = offset + rdlength
    if end > len(wire):
        raise FormatError(f"RDLENGTH {rdlength} runs past the end of the message")
    codec = CODECS.get(int(rrtype))
    if codec is None:
        return UnknownRdata(int(rrtype), bytes(wire[offset:end]))
    cur = _Cursor(wire, offset, end, opts, int(rrtype))
    rdata = codec.decode(cur)
    cur.done()
    return rdata


def rdata_to_text(rdata: Rdata) -> str:
    """Presentation (zone file) form of an RDATA value."""
    if isinstance(rdata, UnknownRdata):
        return f"\\# {len(rdata.data)} {rdata.data.hex()}".rstrip()
    return CODECS[rdata_type(rdata)].text(rdata)


__all__ = [
    "A", "AAAA", "NS", "CNAME", "PTR", "DNAME", "SOA", "MX", "TXT", "HINFO",
    "MINFO", "SRV", "OPT", "RRSIG", "NSEC", "NSEC3", "NSEC3PARAM", "DNSKEY",
    "DS", "TSIG", "UnknownRdata", "Rdata", "DecodeOptions", "encode_rdata",
    "decode_rdata", "rdata_type", "rdata_to_text", "variant_for", "is_compressible",
]
