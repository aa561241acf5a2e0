"""DNS message codec (RFC 1035 section 4.1) with EDNS(0) and TSIG placement rules.

Brief:
  DnsMessage keeps the four sections as lists; the header counts are never
  stored and always derived from the section lengths, so they cannot drift.
  from_wire() rejects count mismatches, trailing octets, misplaced OPT
  records and a TSIG record that is not last in the additional section.
"""

from __future__ import annotations

import logging
import random
import struct
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..errors import FormatError
from .edns import Edns, ExtendedError
from .names import CompressionMap, DomainName, NameLike
from .rdata import DecodeOptions
from .record import Question, ResourceRecord
from .types import Opcode, RClass, Rcode, RRType

logger = logging.getLogger(__name__)

HEADER = struct.Struct("!HHHHHH")
HEADER_SIZE = HEADER.size

_QR = 0x8000
_AA = 0x0400
_TC = 0x0200
_RD = 0x0100
_RA = 0x0080
_AD = 0x0020
_CD = 0x0010


@dataclass
class Header:
    """
    Brief: Message header without the section counts.

    Inputs:
      - id: 16-bit message id
      - qr, aa, tc, rd, ra, ad, cd: flag bits
      - opcode: 4-bit opcode
      - rcode: low 4 bits of the response code

    Outputs:
      - Header instance; flags() packs the second header word.
    """

    id: int = 0
    qr: bool = False
    opcode: int = Opcode.QUERY
    aa: bool = False
    tc: bool = False
    rd: bool = False
    ra: bool = False
    ad: bool = False
    cd: bool = False
    rcode: int = 0

    def flags(self) -> int:
        value = ((self.opcode & 0xF) << 11) | (self.rcode & 0xF)
        for bit, on in (
            (_QR, self.qr),
            (_AA, self.aa),
            (_TC, self.tc),
            (_RD, self.rd),
            (_RA, self.ra),
            (_AD, self.ad),
            (_CD, self.cd),
        ):
            if on:
                value |= bit
        return value

    @classmethod
    def from_flags(cls, msg_id: int, flags: int) -> "Header":
        return cls(
            id=msg_id,
            qr=bool(flags & _QR),
            opcode=(flags >> 11) & 0xF,
            aa=bool(flags & _AA),
            tc=bool(flags & _TC),
            rd=bool(flags & _RD),
            ra=bool(flags & _RA),
            ad=bool(flags & _AD),
            cd=bool(flags & _CD),
            rcode=flags & 0xF,
        )

    def flag_text(self) -> str:
        names = ("qr", "aa", "tc", "rd", "ra", "ad", "cd")
        return " ".join(n for n in names if getattr(self, n))


@dataclass
class DnsMessage:
    """
    Brief: A decoded or to-be-encoded DNS message.

    Inputs:
      - header: Header
      - question, answer, authority, additional: section lists

    Outputs:
      - DnsMessage; to_wire() encodes, from_wire() decodes.

    Example:
      >>> q = make_query("example.com", "A", msg_id=1)
      >>> DnsMessage.from_wire(q.to_wire()) == q
      True
    """

    header: Header = field(default_factory=Header)
    question: List[Question] = field(default_factory=list)
    answer: List[ResourceRecord] = field(default_factory=list)
    authority: List[ResourceRecord] = field(default_factory=list)
    additional: List[ResourceRecord] = field(default_factory=list)
    # Offset of the TSIG RR in the wire form this message was decoded from.
    tsig_offset: Optional[int] = field(default=None, compare=False, repr=False)

    # Convenience accessors -------------------------------------------------

    @property
    def id(self) -> int:
        return self.header.id

    @property
    def counts(self):
        return (
            len(self.question),
            len(self.answer),
            len(self.authority),
            len(self.additional),
        )

    @property
    def opt(self) -> Optional[ResourceRecord]:
        for rr in self.additional:
            if rr.rrtype == RRType.OPT:
                return rr
        return None

    @property
    def edns(self) -> Optional[Edns]:
        rr = self.opt
        return Edns.from_record(rr) if rr is not None else None

    @property
    def tsig(self) -> Optional[ResourceRecord]:
        if self.additional and self.additional[-1].rrtype == RRType.TSIG:
            return self.additional[-1]
        return None

    @property
    def rcode(self) -> int:
        """Full 12-bit response code (header bits plus the OPT extension)."""
        edns = self.edns
        ext = edns.extended_rcode if edns is not None else 0
        return (ext << 4) | self.header.rcode

    def set_rcode(self, rcode: int) -> None:
        if not 0 <= rcode <= 0xFFF:
            raise FormatError(f"rcode {rcode} out of range")
        self.header.rcode = rcode & 0xF
        ext = rcode >> 4
        opt = self.opt
        if opt is None:
            if ext:
                raise FormatError(f"rcode {Rcode.get(rcode)} needs an OPT record")
            return
        edns = Edns.from_record(opt)
        new = Edns(edns.payload, ext, edns.version, edns.do_bit, edns.z, edns.options)
        self.additional[self.additional.index(opt)] = new.to_record()

    def set_edns(self, edns: Optional[Edns]) -> None:
        """Replace (or with None remove) the OPT record; it stays before any TSIG."""
        self.additional = [rr for rr in self.additional if rr.rrtype != RRType.OPT]
        if edns is None:
            return
        if self.tsig is not None:
            self.additional.insert(len(self.additional) - 1, edns.to_record())
        else:
            self.additional.append(edns.to_record())

    def extended_errors(self) -> List[ExtendedError]:
        edns = self.edns
        return edns.extended_errors() if edns is not None else []

    def answers_for(self, name: NameLike, rrtype: int) -> List[ResourceRecord]:
        qname = DomainName.from_text(name, strict=False)
        return [rr for rr in self.answer if rr.rrtype == rrtype and rr.name == qname]

    def is_response_to(self, query: "DnsMessage") -> bool:
        """Same id, QR set and an identical question section (case-insensitive)."""
        return (
            self.header.qr
            and self.header.id == query.header.id
            and self.question == query.question
        )

    # Codec --------------------------------------------------------------------

    def check_pseudo_records(self) -> None:
        """Enforce OPT and TSIG placement; FormatError on violation."""
        for section, records in (("answer", self.answer), ("authority", self.authority)):
            for rr in records:
                if rr.rrtype == RRType.OPT:
                    raise FormatError(f"OPT record in the {section} section")
                if rr.rrtype == RRType.TSIG:
                    raise FormatError(f"TSIG record in the {section} section")
        opts = [rr for rr in self.additional if rr.rrtype == RRType.OPT]
        if len(opts) > 1:
            raise FormatError(f"{len(opts)} OPT records (only one allowed)")
        if opts and not opts[0].name.is_root:
            raise FormatError(f"OPT owner {opts[0].name} is not the root")
        for i, rr in enumerate(self.additional):
            if rr.rrtype == RRType.TSIG and i != len(self.additional) - 1:
                raise FormatError("TSIG record is not last in the additional section")

    def to_wire(self, *, compress: bool = True) -> bytes:
        """
        Brief: Encode the message.

        Inputs:
          - compress: emit compression pointers for names (default True)

        Outputs:
          - bytes
        """
        self.check_pseudo_records()
        counts = self.counts
        if max(counts) > 0xFFFF:
            raise FormatError("section holds more than 65535 entries")
        buf = bytearray(HEADER.pack(self.header.id, self.header.flags(), *counts))
        table: Optional[CompressionMap] = {} if compress else None
        for q in self.question:
            q.to_wire(buf, table)
        for records in (self.answer, self.authority, self.additional):
            for rr in records:
                # TSIG owner names are never compressed (RFC 8945 4.2).
                rr.to_wire(buf, None if rr.rrtype == RRType.TSIG else table)
        return bytes(buf)

    @classmethod
    def from_wire(
        cls,
        wire: bytes,
        *,
        max_pointers: int = 16,
        strict_names: bool = True,
    ) -> "DnsMessage":
        """
        Brief: Decode a complete message.

        Inputs:
          - wire: message octets
          - max_pointers: compression pointer chain limit per name
          - strict_names: apply the letter/digit/hyphen label rules

        Outputs:
          - DnsMessage

        Notes:
          - A truncated (TC=1) message whose records run out early is
            returned with the records that could be read; any other short
            or over-long message is a FormatError.
        """
        wire = bytes(wire)
        if len(wire) < HEADER_SIZE:
            raise FormatError(f"message of {len(wire)} octets is shorter than a header")
        msg_id, flags, qd, an, ns, ar = HEADER.unpack_from(wire, 0)
        msg = cls(header=Header.from_flags(msg_id, flags))
        opts = DecodeOptions(max_pointers=max_pointers, strict_names=strict_names)
        pos = HEADER_SIZE
        try:
            for _ in range(qd):
                q, pos = Question.from_wire(wire, pos, opts)
                msg.question.append(q)
            for section, count in (
                (msg.answer, an),
                (msg.authority, ns),
                (msg.additional, ar),
            ):
                for _ in range(count):
                    start = pos
                    rr, pos = ResourceRecord.from_wire(wire, pos, opts)
                    if rr.rrtype == RRType.TSIG and section is msg.additional:
                        msg.tsig_offset = start
                    section.append(rr)
        except FormatError:
            if not msg.header.tc:
                raise
            logger.debug("truncated message %d decoded partially", msg_id)
            msg.check_pseudo_records()
            return msg
        if pos != len(wire):
            raise FormatError(f"{len(wire) - pos} trailing octets after the message")
        msg.check_pseudo_records()
        return msg

    # Presentation ---------------------------------------------------------

    def to_text(self) -> str:
        h = self.header
        lines = [
            f";; opcode: {Opcode.get(h.opcode)}, status: {Rcode.get(self.rcode)}, id: {h.id}",
            f";; flags: {h.flag_text()}; QUERY: {len(self.question)}, "
            f"ANSWER: {len(self.answer)}, AUTHORITY: {len(self.authority)}, "
            f"ADDITIONAL: {len(self.additional)}",
        ]
        edns = self.edns
        if edns is not None:
            lines.append(
                f";; EDNS: version {edns.version}, flags: {'do' if edns.do_bit else ''}; "
                f"udp: {edns.payload}"
            )
            for opt in edns.options:
                lines.append(f";; {opt}")
        lines.append(";; QUESTION SECTION:")
        lines.extend(f";{q}" for q in self.question)
        for title, records in (
            ("ANSWER", self.answer),
            ("AUTHORITY", self.authority),
            ("ADDITIONAL", self.additional),
        ):
            shown = [rr for rr in records if rr.rrtype != RRType.OPT]
            if shown:
                lines.append(f";; {title} SECTION:")
                lines.extend(str(rr) for rr in shown)
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.to_text()


def make_query(
    name: NameLike,
    rrtype="A",
    rclass="IN",
    *,
    msg_id: Optional[int] = None,
    rd: bool = True,
    edns: Optional[Edns] = None,
    rng: Optional[random.Random] = None,
) -> DnsMessage:
    """
    Brief: Build a standard query.

    Inputs:
      - name: QNAME
      - rrtype, rclass: numbers or mnemonics
      - msg_id: message id; random 16-bit value when None
      - rd: recursion desired flag
      - edns: optional Edns parameters appended as an OPT record
      - rng: random generator used for the id

    Outputs:
      - DnsMessage
    """
    if msg_id is None:
        msg_id = (rng or random).getrandbits(16)
    qname = DomainName.from_text(name, strict=False)
    msg = DnsMessage(
        header=Header(id=msg_id, rd=rd),
        question=[Question(qname, RRType.from_text(rrtype), RClass.from_text(rclass))],
    )
    if edns is not None:
        msg.set_edns(edns)
    return msg


def make_response(
    query: DnsMessage,
    *,
    rcode: int = 0,
    aa: bool = False,
    ra: bool = True,
    answer: Iterable[ResourceRecord] = (),
    authority: Iterable[ResourceRecord] = (),
    additional: Iterable[ResourceRecord] = (),
) -> DnsMessage:
    """
    Brief: Build a response skeleton for query.

    Inputs:
      - query: the request being answered (id, opcode, RD and question copied)
      - rcode: response code; values above 15 need the query to carry EDNS
      - aa, ra: header flags
      - answer, authority, additional: records

    Outputs:
      - DnsMessage with QR=1
    """
    response = DnsMessage(
        header=Header(
            id=query.header.id,
            qr=True,
            opcode=query.header.opcode,
            aa=aa,
            rd=query.header.rd,
            ra=ra,
            cd=query.header.cd,
        ),
        question=list(query.question),
        answer=list(answer),
        authority=list(authority),
        additional=list(additional),
    )
    query_edns = query.edns
    if query_edns is not None and response.opt is None:
        response.set_edns(Edns(payload=query_edns.payload, do_bit=query_edns.do_bit))
    response.set_rcode(rcode)
    return response
