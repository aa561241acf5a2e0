"""
Brief: Tests for buoy.message.message and buoy.message.edns.

Inputs:
  - None

Outputs:
  - None
"""

import random
import struct

import dnslib
import pytest

from buoy.errors import FormatError
from buoy.message.edns import (
    DEFAULT_PAYLOAD,
    Edns,
    EdnsOption,
    ExtendedError,
    ZoneVersion,
    nsid_option,
    option_from_text,
)
from buoy.message.message import HEADER_SIZE, DnsMessage, Header, make_query, make_response
from buoy.message.rdata import CNAME, SOA, A
from buoy.message.record import Question, ResourceRecord
from buoy.message.types import EdnsOptionCode, Rcode, RRType


def test_header_flag_bits():
    """
    Brief: Header flags pack into the second header word.

    Inputs:
      - Header with every flag set

    Outputs:
      - None: Asserts the packed value and the reverse mapping
    """
    h = Header(id=1, qr=True, opcode=2, aa=True, tc=True, rd=True, ra=True, ad=True, cd=True, rcode=5)
    assert h.flags() == 0x8000 | (2 << 11) | 0x0400 | 0x0200 | 0x0100 | 0x0080 | 0x0020 | 0x0010 | 5
    assert Header.from_flags(1, h.flags()) == h
    assert h.flag_text() == "qr aa tc rd ra ad cd"


def test_query_encoding_is_bit_exact():
    query = make_query("example.com", "A", msg_id=1)
    assert query.to_wire() == (
        b"\x00\x01\x01\x00\x00\x01\x00\x00\x00\x00\x00\x00"
        b"\x07example\x03com\x00\x00\x01\x00\x01"
    )
    parsed = dnslib.DNSRecord.parse(query.to_wire())
    assert parsed.header.id == 1
    assert parsed.header.rd == 1
    assert str(parsed.q.qname) == "example.com."


def test_random_ids_come_from_the_supplied_generator():
    a = make_query("example.com", rng=random.Random(5))
    b = make_query("example.com", rng=random.Random(5))
    assert a.id == b.id
    assert 0 <= a.id <= 0xFFFF


def test_counts_follow_sections():
    query = make_query("example.com", "A", msg_id=3)
    response = make_response(
        query,
        answer=[ResourceRecord("example.com", "A", "IN", 60, A("192.0.2.1"))] * 2,
    )
    assert response.counts == (1, 2, 0, 0)
    wire = response.to_wire()
    assert struct.unpack_from("!HHHH", wire, 4) == (1, 2, 0, 0)


def test_decode_uncompressed_round_trip():
    """
    Brief: decode(encode(m)) == m for messages encoded without compression.

    Inputs:
      - response with answer, authority and additional records

    Outputs:
      - None: Asserts equality of decoded and original messages
    """
    query = make_query("www.example.com", "A", msg_id=4242)
    response = make_response(
        query,
        aa=True,
        answer=[ResourceRecord("www.example.com", "A", "IN", 300, A("192.0.2.10"))],
        authority=[
            ResourceRecord(
                "example.com", "SOA", "IN", 300, SOA("ns.example.com", "h.example.com", 1, 2, 3, 4, 5)
            )
        ],
        additional=[ResourceRecord("ns.example.com", "A", "IN", 300, A("192.0.2.53"))],
    )
    assert DnsMessage.from_wire(response.to_wire(compress=False)) == response
    assert DnsMessage.from_wire(response.to_wire()) == response
    assert len(response.to_wire()) < len(response.to_wire(compress=False))


def test_empty_label_in_wire_is_format_error():
    """
    Brief: A question whose name contains an empty label ("a..b") fails to decode.

    Inputs:
      - wire with the labels 'a', '', 'b'

    Outputs:
      - None: Asserts FormatError
    """
    header = struct.pack("!HHHHHH", 1, 0x0100, 1, 0, 0, 0)
    wire = header + b"\x01a\x00\x01b\x00" + struct.pack("!HH", 1, 1)
    with pytest.raises(FormatError):
        DnsMessage.from_wire(wire)


def test_short_header_and_trailing_bytes():
    with pytest.raises(FormatError):
        DnsMessage.from_wire(b"\x00" * (HEADER_SIZE - 1))
    wire = make_query("example.com", msg_id=1).to_wire()
    with pytest.raises(FormatError):
        DnsMessage.from_wire(wire + b"\x00")
    with pytest.raises(FormatError):
        DnsMessage.from_wire(wire[:-1])


def test_truncated_response_decodes_partially():
    """
    Brief: With TC=1 a count larger than the data yields what could be read.

    Inputs:
      - TC response claiming two answers but carrying one

    Outputs:
      - None: Asserts the partial message keeps TC and one answer
    """
    query = make_query("example.com", msg_id=9)
    response = make_response(
        query, answer=[ResourceRecord("example.com", "A", "IN", 60, A("192.0.2.1"))]
    )
    response.header.tc = True
    wire = bytearray(response.to_wire())
    struct.pack_into("!H", wire, 6, 2)
    msg = DnsMessage.from_wire(bytes(wire))
    assert msg.header.tc
    assert len(msg.answer) == 1
    response.header.tc = False
    wire = bytearray(response.to_wire())
    struct.pack_into("!H", wire, 6, 2)
    with pytest.raises(FormatError):
        DnsMessage.from_wire(bytes(wire))


def test_edns_record_layout():
    """
    Brief: payload=4096, DO=1 and NSID produce the expected OPT record.

    Inputs:
      - query with Edns(payload=4096, do_bit=True, options=(NSID,))

    Outputs:
      - None: Asserts ARCOUNT, owner, class, TTL bits and RDATA
    """
    edns = Edns(payload=4096, do_bit=True, options=(option_from_text("NSID"),))
    query = make_query("example.com", msg_id=1, edns=edns)
    wire = query.to_wire()
    (arcount,) = struct.unpack_from("!H", wire, 10)
    assert arcount >= 1
    # The OPT record is the tail of the message.
    assert wire.endswith(b"\x00" + b"\x00\x29" + b"\x10\x00" + b"\x00\x00\x80\x00" + b"\x00\x04" + b"\x00\x03\x00\x00")
    last = DnsMessage.from_wire(wire).additional[-1]
    assert last.rrtype == RRType.OPT
    assert last.name.is_root
    assert last.rclass == 4096
    decoded = Edns.from_record(last)
    assert (decoded.extended_rcode, decoded.version, decoded.do_bit, decoded.z) == (0, 0, True, 0)
    assert decoded.options == (EdnsOption(3, b""),)

    parsed = dnslib.DNSRecord.parse(wire)
    assert parsed.ar[0].rtype == dnslib.QTYPE.OPT
    assert parsed.ar[0].rclass == 4096


def test_edns_defaults():
    edns = Edns()
    assert edns.payload == DEFAULT_PAYLOAD == 1232
    assert edns.to_record().ttl == 0


def test_more_than_one_opt_is_rejected():
    query = make_query("example.com", msg_id=1, edns=Edns())
    query.additional.append(Edns().to_record())
    with pytest.raises(FormatError):
        query.to_wire()


def test_opt_outside_additional_is_rejected():
    query = make_query("example.com", msg_id=1)
    query.answer.append(Edns().to_record())
    with pytest.raises(FormatError):
        query.to_wire()


def test_opt_with_non_root_owner_is_rejected():
    """
    Brief: Decoding an OPT RR owned by a non-root name is a FormatError.

    Inputs:
      - wire with OPT owner 'a.'

    Outputs:
      - None: Asserts FormatError
    """
    header = struct.pack("!HHHHHH", 1, 0x0100, 1, 0, 0, 1)
    question = b"\x07example\x03com\x00" + struct.pack("!HH", 1, 1)
    opt = b"\x01a\x00" + struct.pack("!HHIH", RRType.OPT, 1232, 0, 0)
    with pytest.raises(FormatError):
        DnsMessage.from_wire(header + question + opt)


def test_extended_rcode_uses_opt():
    query = make_query("example.com", msg_id=1, edns=Edns())
    response = make_response(query, rcode=Rcode.BADVERS)
    assert response.header.rcode == 0
    assert response.edns.extended_rcode == 1
    assert response.rcode == 16
    decoded = DnsMessage.from_wire(response.to_wire())
    assert decoded.rcode == 16
    plain = make_query("example.com", msg_id=1)
    with pytest.raises(FormatError):
        make_response(plain, rcode=16)


def test_make_response_copies_query_edns_and_question():
    query = make_query("Example.COM", "MX", msg_id=77, edns=Edns(payload=4096, do_bit=True))
    response = make_response(query, rcode=3, aa=True)
    assert response.header.qr and response.header.aa and response.header.rd
    assert response.is_response_to(query)
    assert response.edns.payload == 4096
    assert response.edns.do_bit
    assert response.rcode == 3


def test_is_response_to_checks_id_qr_and_question():
    query = make_query("example.com", "A", msg_id=5)
    response = make_response(query)
    assert response.is_response_to(query)
    response.header.id = 6
    assert not response.is_response_to(query)
    response.header.id = 5
    response.question = [Question("example.org", "A")]
    assert not response.is_response_to(query)
    assert not query.is_response_to(query)
    upper = make_response(make_query("EXAMPLE.com", "A", msg_id=5))
    assert upper.is_response_to(query)


def test_set_edns_keeps_opt_before_tsig():
    from buoy.tsig import TsigKey, sign_request

    query = make_query("example.com", msg_id=1)
    wire, _ = sign_request(query, TsigKey("k", b"secret"), now=1_700_000_000)
    signed = DnsMessage.from_wire(wire)
    signed.set_edns(Edns(payload=1400))
    assert signed.additional[-1].rrtype == RRType.TSIG
    assert signed.additional[0].rrtype == RRType.OPT


def test_tsig_must_be_last():
    from buoy.tsig import TsigKey, sign_request

    query = make_query("example.com", msg_id=1)
    wire, _ = sign_request(query, TsigKey("k", b"secret"), now=1_700_000_000)
    signed = DnsMessage.from_wire(wire)
    signed.additional.append(ResourceRecord("a.example", "A", "IN", 1, A("192.0.2.1")))
    with pytest.raises(FormatError):
        signed.check_pseudo_records()


def test_extended_errors_and_zone_version():
    """
    Brief: EDE (RFC 8914) and ZONEVERSION (RFC 9660) options decode to typed values.

    Inputs:
      - response with EDE 18 "Prohibited" text and a ZONEVERSION serial

    Outputs:
      - None: Asserts the decoded helpers
    """
    ede = ExtendedError(18, "blocked by policy")
    zv = ZoneVersion(2, 0, struct.pack("!I", 2024010101))
    query = make_query("example.com", msg_id=1, edns=Edns())
    response = make_response(query, rcode=5)
    response.set_edns(Edns(options=(ede.to_option(), zv.to_option(), nsid_option(b"ns1"))))
    decoded = DnsMessage.from_wire(response.to_wire())
    assert decoded.extended_errors() == [ede]
    assert decoded.extended_errors()[0].description == "Prohibited"
    assert "blocked by policy" in str(decoded.extended_errors()[0])
    option = decoded.edns.option(EdnsOptionCode.ZONEVERSION)
    assert ZoneVersion.from_option(option).serial == 2024010101
    assert decoded.edns.option(EdnsOptionCode.NSID).data == b"ns1"


def test_option_from_text_forms():
    assert option_from_text("nsid").code == 3
    assert option_from_text(10).code == 10
    assert option_from_text("OPT65001").code == 65001
    with pytest.raises(FormatError):
        option_from_text("no-such-option")
    with pytest.raises(FormatError):
        EdnsOption(70000)


def test_to_text_looks_like_dig():
    query = make_query("example.com", "A", msg_id=1)
    response = make_response(
        query, answer=[ResourceRecord("example.com", "A", "IN", 3600, A("93.184.216.34"))]
    )
    text = response.to_text()
    assert "status: NOERROR, id: 1" in text
    assert ";example.com. IN A" in text
    assert "example.com. 3600 IN A 93.184.216.34" in text


def test_answers_for_filters_by_name_and_type():
    query = make_query("example.com", "A", msg_id=1)
    response = make_response(
        query,
        answer=[
            ResourceRecord("example.com", "CNAME", "IN", 60, CNAME("b.example")),
            ResourceRecord("b.example", "A", "IN", 60, A("192.0.2.1")),
        ],
    )
    assert [str(rr.rdata) for rr in response.answers_for("b.example", RRType.A)] == ["192.0.2.1"]
    assert response.answers_for("example.com", RRType.A) == []
