"""EDNS(0) support (RFC 6891): OPT options and the OPT pseudo-record view.

Brief:
  EdnsOption is the {code, data} tuple carried in OPT RDATA; unknown codes
  are kept verbatim. Edns is a decoded view of an OPT record: the class field
  is the requester's UDP payload size and the TTL packs extended RCODE,
  version, the DO bit and Z.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Tuple, Union

from ..errors import FormatError
from .types import EdeCode, EdnsOptionCode

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .record import ResourceRecord

DEFAULT_PAYLOAD = 1232
MIN_PAYLOAD = 512
DO_BIT = 0x8000


@dataclass(frozen=True)
class EdnsOption:
    """
    Brief: One EDNS option.

    Inputs:
      - code: 16-bit option code
      - data: option payload (at most 65535 octets)

    Outputs:
      - EdnsOption instance

    Example:
      >>> EdnsOption(EdnsOptionCode.NSID).to_wire()
      b'\\x00\\x03\\x00\\x00'
    """

    code: int
    data: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= int(self.code) <= 0xFFFF:
            raise FormatError(f"option code {self.code} out of range")
        if len(self.data) > 0xFFFF:
            raise FormatError("option data longer than 65535 octets")

    def to_wire(self) -> bytes:
        return struct.pack("!HH", self.code, len(self.data)) + bytes(self.data)

    def __str__(self) -> str:
        return f"{EdnsOptionCode.get(self.code, f'OPT{self.code}')}={self.data.hex()}"


def option_from_text(value: Union[str, int, EdnsOption]) -> EdnsOption:
    """Build an empty option from a code or mnemonic ("NSID", 3, "opt65001")."""
    if isinstance(value, EdnsOption):
        return value
    if isinstance(value, str) and value.strip().upper().startswith("OPT"):
        value = value.strip()[3:]
    try:
        code = EdnsOptionCode.from_text(value)
    except ValueError as exc:
        raise FormatError(str(exc)) from exc
    return EdnsOption(code)


def decode_options(wire: bytes, offset: int, end: int) -> Tuple[EdnsOption, ...]:
    """Split OPT RDATA into options; a short or overrunning option is a FormatError."""
    options: List[EdnsOption] = []
    pos = offset
    while pos < end:
        if pos + 4 > end:
            raise FormatError("truncated EDNS option header")
        code, length = struct.unpack_from("!HH", wire, pos)
        pos += 4
        if pos + length > end:
            raise FormatError(f"EDNS option {code} overruns the OPT record")
        options.append(EdnsOption(code, bytes(wire[pos : pos + length])))
        pos += length
    return tuple(options)


# Typed option helpers --------------------------------------------------------


@dataclass(frozen=True)
class ExtendedError:
    """Extended DNS Error (RFC 8914): info-code plus optional UTF-8 text."""

    info_code: int
    extra_text: str = ""

    @property
    def description(self) -> str:
        return EdeCode.get(self.info_code, f"Unknown EDE {self.info_code}")

    def to_option(self) -> EdnsOption:
        return EdnsOption(
            EdnsOptionCode.EDE,
            struct.pack("!H", self.info_code) + self.extra_text.encode("utf-8"),
        )

    @classmethod
    def from_option(cls, option: EdnsOption) -> "ExtendedError":
        if option.code != EdnsOptionCode.EDE:
            raise FormatError(f"option {option.code} is not an EDE option")
        if len(option.data) < 2:
            raise FormatError("EDE option shorter than 2 octets")
        (info_code,) = struct.unpack_from("!H", option.data, 0)
        text = option.data[2:].decode("utf-8", errors="replace").rstrip("\x00")
        return cls(info_code, text)

    def __str__(self) -> str:
        if self.extra_text:
            return f"EDE {self.info_code} ({self.description}): {self.extra_text}"
        return f"EDE {self.info_code} ({self.description})"


@dataclass(frozen=True)
class ZoneVersion:
    """ZONEVERSION option (RFC 9660) as returned by a server."""

    label_count: int
    version_type: int
    version: bytes

    def to_option(self) -> EdnsOption:
        return EdnsOption(
            EdnsOptionCode.ZONEVERSION,
            struct.pack("!BB", self.label_count, self.version_type) + self.version,
        )

    @classmethod
    def from_option(cls, option: EdnsOption) -> "ZoneVersion":
        if option.code != EdnsOptionCode.ZONEVERSION:
            raise FormatError(f"option {option.code} is not a ZONEVERSION option")
        if len(option.data) < 2:
            raise FormatError("ZONEVERSION option shorter than 2 octets")
        return cls(option.data[0], option.data[1], bytes(option.data[2:]))

    @property
    def serial(self) -> Optional[int]:
        """SOA serial for version type 0, else None."""
        if self.version_type == 0 and len(self.version) == 4:
            return struct.unpack("!I", self.version)[0]
        return None


def nsid_option(data: bytes = b"") -> EdnsOption:
    """NSID request (empty) or answer (server identifier)."""
    return EdnsOption(EdnsOptionCode.NSID, data)


# OPT pseudo-record view ------------------------------------------------------


@dataclass(frozen=True)
class Edns:
    """
    Brief: Decoded EDNS(0) parameters of a message.

    Inputs:
      - payload: requester's UDP payload size
      - extended_rcode: upper 8 bits of the 12-bit RCODE
      - version: EDNS version
      - do_bit: DNSSEC OK flag
      - z: remaining 15 flag bits
      - options: EdnsOption tuple

    Outputs:
      - Edns instance; to_record() builds the OPT ResourceRecord.

    Example:
      >>> rr = Edns(payload=4096, do_bit=True).to_record()
      >>> (rr.rclass, hex(rr.ttl))
      (4096, '0x8000')
    """

    payload: int = DEFAULT_PAYLOAD
    extended_rcode: int = 0
    version: int = 0
    do_bit: bool = False
    z: int = 0
    options: Tuple[EdnsOption, ...] = field(default_factory=tuple)

    def ttl_bits(self) -> int:
        flags = (DO_BIT if self.do_bit else 0) | (self.z & 0x7FFF)
        return (
            ((self.extended_rcode & 0xFF) << 24)
            | ((self.version & 0xFF) << 16)
            | flags
        )

    def to_record(self) -> "ResourceRecord":
        from .names import DomainName
        from .rdata import OPT
        from .record import ResourceRecord
        from .types import RRType

        return ResourceRecord(
            name=DomainName.root(),
            rrtype=RRType.OPT,
            rclass=self.payload,
            ttl=self.ttl_bits(),
            rdata=OPT(tuple(self.options)),
        )

    @classmethod
    def from_record(cls, record: "ResourceRecord") -> "Edns":
        from .types import RRType

        if record.rrtype != RRType.OPT:
            raise FormatError("not an OPT record")
        ttl = record.ttl
        return cls(
            payload=record.rclass,
            extended_rcode=(ttl >> 24) & 0xFF,
            version=(ttl >> 16) & 0xFF,
            do_bit=bool(ttl & DO_BIT),
            z=ttl & 0x7FFF,
            options=tuple(getattr(record.rdata, "options", ())),
        )

    def option(self, code: int) -> Optional[EdnsOption]:
        for opt in self.options:
            if opt.code == code:
                return opt
        return None

    def extended_errors(self) -> List[ExtendedError]:
        errors = []
        for opt in self.options:
            if opt.code == EdnsOptionCode.EDE:
                try:
                    errors.append(ExtendedError.from_option(opt))
                except FormatError:
                    continue
        return errors
