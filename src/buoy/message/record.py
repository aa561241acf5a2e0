"""Questions and resource records."""

from __future__ import annotations

import struct
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from ..errors import FormatError
from .names import CompressionMap, DomainName, decode_name, encode_name
from .rdata import (
    RRSIG,
    DecodeOptions,
    Rdata,
    decode_rdata,
    encode_rdata,
    rdata_to_text,
    rdata_type,
)
from .types import RClass, RRType


def _as_name(value) -> DomainName:
    if isinstance(value, DomainName):
        return value
    return DomainName.from_text(value, strict=False)


@dataclass(frozen=True)
class Question:
    name: DomainName
    rrtype: int = RRType.A
    rclass: int = RClass.IN

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _as_name(self.name))
        object.__setattr__(self, "rrtype", RRType.from_text(self.rrtype))
        object.__setattr__(self, "rclass", RClass.from_text(self.rclass))

    def to_wire(self, buf: bytearray, compress: Optional[CompressionMap] = None) -> None:
        encode_name(self.name, buf, compress)
        buf += struct.pack("!HH", self.rrtype, self.rclass)

    @classmethod
    def from_wire(
        cls, wire: bytes, offset: int, opts: DecodeOptions = DecodeOptions()
    ) -> Tuple["Question", int]:
        name, pos = decode_name(
            wire, offset, max_pointers=opts.max_pointers, strict=opts.strict_names
        )
        if pos + 4 > len(wire):
            raise FormatError("truncated question")
        rrtype, rclass = struct.unpack_from("!HH", wire, pos)
        return cls(name, rrtype, rclass), pos + 4

    def __str__(self) -> str:
        return f"{self.name} {RClass.get(self.rclass)} {RRType.get(self.rrtype)}"


@dataclass(frozen=True)
class ResourceRecord:
    """
    Brief: One resource record (name, type, class, TTL, RDATA).

    Inputs:
      - name: owner name (str or DomainName)
      - rrtype: RR type code; must match the RDATA variant
      - rclass: class code (the UDP payload size for OPT)
      - ttl: unsigned 32-bit TTL (packed EDNS flags for OPT)
      - rdata: RDATA variant instance

    Outputs:
      - ResourceRecord instance

    Example:
      >>> from buoy.message.rdata import A
      >>> rr = ResourceRecord("example.com", RRType.A, RClass.IN, 3600, A("93.184.216.34"))
      >>> str(rr)
      'example.com. 3600 IN A 93.184.216.34'
    """

    name: DomainName
    rrtype: int
    rclass: int
    ttl: int
    rdata: Rdata

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _as_name(self.name))
        object.__setattr__(self, "rrtype", RRType.from_text(self.rrtype))
        if self.rrtype != RRType.OPT:
            object.__setattr__(self, "rclass", RClass.from_text(self.rclass))
        if not 0 <= int(self.ttl) <= 0xFFFFFFFF:
            raise FormatError(f"TTL {self.ttl} is not an unsigned 32-bit value")
        if rdata_type(self.rdata) != self.rrtype:
            raise FormatError(
                f"{type(self.rdata).__name__} RDATA in a {RRType.get(self.rrtype)} record"
            )
        if isinstance(self.rdata, RRSIG):
            # RFC 4034 3.1.3: the labels field never exceeds the owner's labels.
            owner_labels = self.name.label_count()
            if self.rdata.labels > owner_labels:
                raise FormatError(
                    f"RRSIG labels {self.rdata.labels} exceeds the {owner_labels} "
                    f"labels of {self.name}"
                )

    def with_ttl(self, ttl: int) -> "ResourceRecord":
        return replace(self, ttl=int(ttl))

    def rdata_wire(self) -> bytes:
        buf = bytearray()
        encode_rdata(self.rrtype, self.rdata, buf, None)
        return bytes(buf)

    def to_wire(self, buf: bytearray, compress: Optional[CompressionMap] = None) -> None:
        encode_name(self.name, buf, compress)
        buf += struct.pack("!HHI", self.rrtype, self.rclass, self.ttl)
        length_at = len(buf)
        buf += b"\x00\x00"
        encode_rdata(self.rrtype, self.rdata, buf, compress)
        rdlength = len(buf) - length_at - 2
        if rdlength > 0xFFFF:
            raise FormatError(f"RDATA of {self.name} is {rdlength} octets (max 65535)")
        struct.pack_into("!H", buf, length_at, rdlength)

    @classmethod
    def from_wire(
        cls, wire: bytes, offset: int, opts: DecodeOptions = DecodeOptions()
    ) -> Tuple["ResourceRecord", int]:
        name, pos = decode_name(
            wire,
            offset,
            max_pointers=opts.max_pointers,
            strict=opts.strict_names,
        )
        if pos + 10 > len(wire):
            raise FormatError(f"truncated header for record {name}")
        rrtype, rclass, ttl, rdlength = struct.unpack_from("!HHIH", wire, pos)
        pos += 10
        rdata = decode_rdata(rrtype, wire, pos, rdlength, opts)
        return cls(name, rrtype, rclass, ttl, rdata), pos + rdlength

    def to_text(self) -> str:
        rclass = str(self.rclass) if self.rrtype == RRType.OPT else RClass.get(self.rclass)
        text = rdata_to_text(self.rdata)
        return f"{self.name} {self.ttl} {rclass} {RRType.get(self.rrtype)} {text}".rstrip()

    def __str__(self) -> str:
        return self.to_text()
