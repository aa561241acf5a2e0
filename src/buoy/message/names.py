"""Domain names and their wire codec (RFC 1035 section 3.1 and 4.1.4).

Brief:
  DomainName holds absolute names as a tuple of raw labels. Comparison and
  hashing fold ASCII case; the original spelling is preserved for output.
  encode_name/decode_name implement length-prefixed labels with optional
  compression pointers.
"""

from __future__ import annotations

import ipaddress
import struct
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..errors import FormatError

MAX_LABEL_LENGTH = 63
MAX_NAME_LENGTH = 255
MAX_POINTER_OFFSET = 0x3FFF
DEFAULT_MAX_POINTERS = 16

_LETTERS_DIGITS = frozenset(
    b"abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
)
_LDH = _LETTERS_DIGITS | frozenset(b"-")

# Compression map key: lower-cased label suffix -> message offset.
CompressionMap = Dict[Tuple[bytes, ...], int]


def check_label(label: bytes) -> None:
    """
    Brief: Validate one label against the letter/digit/hyphen rules.

    Inputs:
      - label: raw label octets

    Outputs:
      - None; raises FormatError when the label is not acceptable.

    Notes:
      - Labels must start with a letter or digit and end with one.
      - Service labels (leading underscore, RFC 8552) and the lone wildcard
        label "*" are also accepted because real zones use them.
    """
    if not 1 <= len(label) <= MAX_LABEL_LENGTH:
        raise FormatError(f"label length {len(label)} outside 1..63")
    if label == b"*":
        return
    body = label[1:] if label[:1] == b"_" else label
    if not body:
        raise FormatError("empty service label")
    if body[0] not in _LETTERS_DIGITS or body[-1] not in _LETTERS_DIGITS:
        raise FormatError(f"label {label!r} must start and end alphanumeric")
    for ch in body:
        if ch not in _LDH:
            raise FormatError(f"label {label!r} contains invalid octet {ch:#04x}")


class DomainName:
    """
    Brief: An absolute domain name.

    Inputs:
      - labels: iterable of labels (str or bytes), most specific first,
        without the terminating root label

    Outputs:
      - DomainName instance

    Example:
      >>> n = DomainName.from_text("WWW.Example.com")
      >>> str(n)
      'WWW.Example.com.'
      >>> n == DomainName.from_text("www.example.COM.")
      True
    """

    __slots__ = ("_labels", "_key")

    def __init__(self, labels: Iterable[Union[str, bytes]] = ()) -> None:
        raw: List[bytes] = []
        for label in labels:
            if isinstance(label, str):
                try:
                    label = label.encode("ascii")
                except UnicodeEncodeError as exc:
                    raise FormatError(f"non-ASCII label {label!r}") from exc
            raw.append(bytes(label))
        total = 1
        for label in raw:
            if not 1 <= len(label) <= MAX_LABEL_LENGTH:
                raise FormatError(f"label length {len(label)} outside 1..63")
            total += len(label) + 1
        if total > MAX_NAME_LENGTH:
            raise FormatError(f"name is {total} octets on the wire (max 255)")
        self._labels: Tuple[bytes, ...] = tuple(raw)
        self._key: Tuple[bytes, ...] = tuple(lb.lower() for lb in raw)

    @classmethod
    def from_text(cls, text: Union[str, "DomainName"], *, strict: bool = True):
        """
        Brief: Parse presentation format ("example.com" or "example.com.").

        Inputs:
          - text: name text; "" and "." both mean the root
          - strict: apply check_label() to every label

        Outputs:
          - DomainName

        Example:
          >>> DomainName.from_text("a..b")
          Traceback (most recent call last):
          ...
          buoy.errors.FormatError: empty label in 'a..b'
        """
        if isinstance(text, DomainName):
            return text
        text = str(text).strip()
        if text in ("", "."):
            return cls.root()
        body = text[:-1] if text.endswith(".") else text
        labels = body.split(".")
        if any(not label for label in labels):
            raise FormatError(f"empty label in {text!r}")
        name = cls(labels)
        if strict:
            for label in name._labels:
                check_label(label)
        return name

    @classmethod
    def root(cls) -> "DomainName":
        return cls(())

    @property
    def labels(self) -> Tuple[bytes, ...]:
        return self._labels

    @property
    def is_root(self) -> bool:
        return not self._labels

    @property
    def wire_length(self) -> int:
        return sum(len(lb) + 1 for lb in self._labels) + 1

    def label_count(self) -> int:
        """Label count as used by RRSIG: root is 0, a leading '*' is not counted."""
        count = len(self._labels)
        if count and self._labels[0] == b"*":
            count -= 1
        return count

    def canonical(self) -> "DomainName":
        return DomainName(self._key)

    def parent(self) -> "DomainName":
        if self.is_root:
            raise ValueError("the root name has no parent")
        return DomainName(self._labels[1:])

    def is_subdomain(self, other: "DomainName") -> bool:
        """True when self equals other or lies below it."""
        n = len(other._key)
        if n == 0:
            return True
        return self._key[-n:] == other._key

    def to_text(self, omit_final_dot: bool = False) -> str:
        if not self._labels:
            return "."
        parts = []
        for label in self._labels:
            chunk = []
            for ch in label:
                if ch in (0x2E, 0x5C):
                    chunk.append("\\" + chr(ch))
                elif 0x21 <= ch <= 0x7E:
                    chunk.append(chr(ch))
                else:
                    chunk.append("\\%03d" % ch)
            parts.append("".join(chunk))
        text = ".".join(parts)
        return text if omit_final_dot else text + "."

    def to_wire(self, *, canonical: bool = False) -> bytes:
        """Uncompressed wire form; canonical=True lower-cases (RFC 4034 6.2)."""
        out = bytearray()
        for label in self._key if canonical else self._labels:
            out.append(len(label))
            out += label
        out.append(0)
        return bytes(out)

    def __str__(self) -> str:
        return self.to_text()

    def __repr__(self) -> str:
        return f"DomainName({self.to_text()!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, str):
            try:
                other = DomainName.from_text(other, strict=False)
            except FormatError:
                return False
        if not isinstance(other, DomainName):
            return NotImplemented
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __lt__(self, other: "DomainName") -> bool:
        # RFC 4034 canonical ordering: compare label by label from the root.
        return tuple(reversed(self._key)) < tuple(reversed(other._key))

    def __len__(self) -> int:
        return len(self._labels)


NameLike = Union[str, DomainName]


def as_name(value: NameLike) -> DomainName:
    if isinstance(value, DomainName):
        return value
    return DomainName.from_text(value)


def reverse_name(address: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]):
    """
    Brief: Build the in-addr.arpa / ip6.arpa name for an address.

    Example:
      >>> str(reverse_name("93.184.216.34"))
      '34.216.184.93.in-addr.arpa.'
    """
    ip = ipaddress.ip_address(str(address))
    return DomainName.from_text(ip.reverse_pointer)


def encode_name(
    name: DomainName,
    buf: bytearray,
    compress: Optional[CompressionMap] = None,
) -> None:
    """
    Brief: Append a name to a message buffer, compressing when possible.

    Inputs:
      - name: DomainName to write
      - buf: message buffer; offsets are taken relative to its start
      - compress: suffix -> offset map shared across the whole message, or
        None to write every label literally

    Outputs:
      - None (buf is extended in place)
    """
    labels = name.labels
    key = name._key
    for i, label in enumerate(labels):
        if compress is not None:
            suffix = key[i:]
            pointer = compress.get(suffix)
            if pointer is not None:
                buf += struct.pack("!H", 0xC000 | pointer)
                return
            if len(buf) <= MAX_POINTER_OFFSET:
                compress[suffix] = len(buf)
        buf.append(len(label))
        buf += label
    buf.append(0)


def decode_name(
    wire: bytes,
    offset: int,
    *,
    allow_compression: bool = True,
    max_pointers: int = DEFAULT_MAX_POINTERS,
    strict: bool = True,
) -> Tuple[DomainName, int]:
    """
    Brief: Read a (possibly compressed) name starting at offset.

    Inputs:
      - wire: the complete message
      - offset: position of the first length octet
      - allow_compression: reject pointers when False (RDATA of newer types)
      - max_pointers: maximum number of pointers followed for one name
      - strict: validate labels with check_label()

    Outputs:
      - (name, next_offset) where next_offset follows the name in the
        original byte stream (after the first pointer, if any).

    Notes:
      - Pointers must move strictly backwards; this alone rules out loops.
      - Label types 01 and 10 are reserved and rejected.
    """
    labels: List[bytes] = []
    pos = offset
    end: Optional[int] = None
    hops = 0
    total = 1
    size = len(wire)
    while True:
        if pos >= size:
            raise FormatError("name runs past the end of the message")
        length = wire[pos]
        kind = length & 0xC0
        if kind == 0xC0:
            if not allow_compression:
                raise FormatError("compression pointer where none is allowed")
            if pos + 1 >= size:
                raise FormatError("truncated compression pointer")
            target = ((length & 0x3F) << 8) | wire[pos + 1]
            if end is None:
                end = pos + 2
            if target >= pos:
                raise FormatError(
                    f"compression pointer at {pos} does not point backwards"
                )
            hops += 1
            if hops > max_pointers:
                raise FormatError(f"more than {max_pointers} compression pointers")
            pos = target
            continue
        if kind:
            raise FormatError(f"reserved label type {kind >> 6:#04b}")
        if length == 0:
            if end is None:
                end = pos + 1
            break
        if pos + 1 + length > size:
            raise FormatError("label runs past the end of the message")
        label = bytes(wire[pos + 1 : pos + 1 + length])
        total += length + 1
        if total > MAX_NAME_LENGTH:
            raise FormatError("name exceeds 255 octets")
        if strict:
            check_label(label)
        labels.append(label)
        pos += 1 + length
    return DomainName(labels), end
