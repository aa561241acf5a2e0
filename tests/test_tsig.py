"""
Brief: Tests for buoy.tsig signing and verification (RFC 8945).

Inputs:
  - None

Outputs:
  - None
"""

import base64
import struct

import dns.message
import dns.rrset
import dns.tsig
import dns.tsigkeyring
import pytest

from buoy.errors import BadKey, BadSig, BadTime, BadTruncation, FormatError
from buoy.message.message import DnsMessage, make_query, make_response
from buoy.message.rdata import TSIG, A
from buoy.message.record import ResourceRecord
from buoy.message.types import RRType
from buoy.tsig import (
    HMAC_SHA1,
    HMAC_SHA256,
    TsigKey,
    TsigKeyring,
    TsigSigner,
    algorithm_from_text,
    get_algorithm,
    sign_request,
    sign_response,
    verify,
)

NOW = 1_700_000_000
SECRET = b"0123456789abcdef0123"
KEY = TsigKey("weird.nictest", SECRET, "hmac-sha1")


def test_request_round_trip_and_rejections():
    """
    Brief: A signed request verifies in the window and fails for a wrong key or time.

    Inputs:
      - key "weird.nictest", HMAC-SHA1, fudge 300

    Outputs:
      - None: Asserts acceptance, BadKey and BadTime
    """
    query = make_query("example.com", "A", msg_id=42)
    wire, mac = sign_request(query, KEY, fudge=300, now=NOW)
    assert len(mac) == 20

    verified = verify(wire, TsigKeyring([KEY]), now=NOW)
    assert verified.tsig.rdata.mac == mac
    assert verify(wire, TsigKeyring([KEY]), now=NOW + 300).id == 42

    other = TsigKeyring([TsigKey("other.nictest", SECRET, "hmac-sha1")])
    with pytest.raises(BadKey):
        verify(wire, other, now=NOW)

    with pytest.raises(BadTime):
        verify(wire, TsigKeyring([KEY]), now=NOW + 400)


def test_signing_appends_tsig_last_and_bumps_arcount_once():
    query = make_query("example.com", "A", msg_id=42)
    unsigned = query.to_wire()
    wire, _ = sign_request(query, KEY, now=NOW)
    assert wire.startswith(unsigned[:10])
    assert struct.unpack_from("!H", wire, 10)[0] == 1
    assert wire[12 : len(unsigned)] == unsigned[12:]
    decoded = DnsMessage.from_wire(wire)
    assert decoded.tsig is decoded.additional[-1]
    assert decoded.tsig.name == "weird.nictest"
    assert decoded.tsig.rclass == 255 and decoded.tsig.ttl == 0
    rd = decoded.tsig.rdata
    assert isinstance(rd, TSIG)
    assert (rd.algorithm, rd.time_signed, rd.fudge, rd.original_id) == (HMAC_SHA1, NOW, 300, 42)


def test_signing_twice_is_refused():
    query = make_query("example.com", msg_id=1)
    wire, _ = sign_request(query, KEY, now=NOW)
    with pytest.raises(FormatError):
        sign_request(DnsMessage.from_wire(wire), KEY, now=NOW)


def test_response_chains_request_mac():
    """
    Brief: Responses are verified with the request MAC prepended to the digest.

    Inputs:
      - signed request, response signed with its MAC

    Outputs:
      - None: Asserts acceptance with the right MAC and BadSig otherwise
    """
    query = make_query("example.com", "A", msg_id=7)
    _, request_mac = sign_request(query, KEY, now=NOW)
    response = make_response(
        query, answer=[ResourceRecord("example.com", "A", "IN", 60, A("192.0.2.1"))]
    )
    wire, _ = sign_response(response, KEY, request_mac, now=NOW + 1)
    ring = TsigKeyring([KEY])
    assert verify(wire, ring, request_mac, now=NOW + 2).answer[0].rdata == A("192.0.2.1")
    with pytest.raises(BadSig):
        verify(wire, ring, b"\x00" * 20, now=NOW + 2)
    with pytest.raises(BadSig):
        verify(wire, ring, None, now=NOW + 2)


def test_tampered_message_is_bad_sig():
    query = make_query("example.com", "A", msg_id=7)
    wire, _ = sign_request(query, KEY, now=NOW)
    tampered = bytearray(wire)
    tampered[2] ^= 0x01  # flip RD
    with pytest.raises(BadSig):
        verify(bytes(tampered), TsigKeyring([KEY]), now=NOW)


def test_wrong_secret_same_name_is_bad_sig():
    query = make_query("example.com", msg_id=7)
    wire, _ = sign_request(query, KEY, now=NOW)
    ring = TsigKeyring([TsigKey("weird.nictest", b"another secret", "hmac-sha1")])
    with pytest.raises(BadSig):
        verify(wire, ring, now=NOW)


def test_algorithm_mismatch_is_bad_key():
    query = make_query("example.com", msg_id=7)
    wire, _ = sign_request(query, KEY, now=NOW)
    ring = TsigKeyring([TsigKey("weird.nictest", SECRET, "hmac-sha256")])
    with pytest.raises(BadKey):
        verify(wire, ring, now=NOW)


def test_missing_tsig_is_format_error():
    wire = make_query("example.com", msg_id=7).to_wire()
    with pytest.raises(FormatError):
        verify(wire, TsigKeyring([KEY]), now=NOW)


def _truncate_mac(wire: bytes, keep: int) -> bytes:
    """Rewrite the MAC of a signed message to its first `keep` octets."""
    msg = DnsMessage.from_wire(wire)
    rd = msg.tsig.rdata
    short = TSIG(rd.algorithm, rd.time_signed, rd.fudge, rd.mac[:keep], rd.original_id)
    head = wire[: msg.tsig_offset]
    rr = ResourceRecord(msg.tsig.name, RRType.TSIG, 255, 0, short)
    buf = bytearray(head)
    rr.to_wire(buf, None)
    return bytes(buf)


def test_truncated_mac_policy():
    """
    Brief: Shortened MACs need allow_truncation; too short ones are malformed.

    Inputs:
      - SHA-256 signature cut to 16 and to 8 octets

    Outputs:
      - None: Asserts BadTruncation, acceptance and FormatError
    """
    key = TsigKey("k.example", SECRET, HMAC_SHA256)
    wire, _ = sign_request(make_query("example.com", msg_id=3), key, now=NOW)
    ring = TsigKeyring([key])
    half = _truncate_mac(wire, 16)
    with pytest.raises(BadTruncation):
        verify(half, ring, now=NOW)
    assert verify(half, ring, now=NOW, allow_truncation=True).id == 3
    with pytest.raises(FormatError):
        verify(_truncate_mac(wire, 8), ring, now=NOW, allow_truncation=True)


def test_unsigned_server_error_maps_to_tsig_error():
    query = make_query("example.com", msg_id=11)
    _, request_mac = sign_request(query, KEY, now=NOW)
    response = make_response(query, rcode=9)
    response.additional.append(
        ResourceRecord("weird.nictest", RRType.TSIG, 255, 0, TSIG(HMAC_SHA1, NOW, 300, b"", 11, 17))
    )
    with pytest.raises(BadKey):
        verify(response.to_wire(), TsigKeyring([KEY]), request_mac, now=NOW)


def test_key_names_are_case_insensitive():
    query = make_query("example.com", msg_id=7)
    wire, _ = sign_request(query, TsigKey("WEIRD.Nictest", SECRET, "hmac-sha1"), now=NOW)
    assert verify(wire, TsigKeyring([KEY]), now=NOW).id == 7
    assert "weird.NICTEST." in TsigKeyring([KEY])


def test_algorithm_aliases():
    assert algorithm_from_text("HmacSha256") == HMAC_SHA256
    assert algorithm_from_text("hmac_sha1") == HMAC_SHA1
    assert str(algorithm_from_text("hmac-md5")) == "hmac-md5.sig-alg.reg.int."
    assert get_algorithm("hmac-sha512.").mac_size == 64
    with pytest.raises(ValueError):
        algorithm_from_text("hmac-whirlpool")


def test_keyring_from_base64_secrets():
    ring = TsigKeyring.from_secrets({"a.example": base64.b64encode(b"abc").decode()})
    assert len(ring) == 1
    assert ring.get("A.EXAMPLE").secret == b"abc"
    with pytest.raises(ValueError):
        TsigKey.from_base64("a.example", "not base64!")


def test_signer_uses_clock():
    clock = [NOW]
    signer = TsigSigner(KEY, fudge=10, clock=lambda: clock[0])
    query = make_query("example.com", msg_id=5)
    wire, mac = signer.sign(query)
    response = make_response(DnsMessage.from_wire(wire))
    reply, _ = sign_response(response, KEY, mac, fudge=10, now=NOW)
    assert signer.verify(reply, mac).id == 5
    clock[0] = NOW + 11
    with pytest.raises(BadTime):
        signer.verify(reply, mac)


# Interoperability with dnspython -------------------------------------------


def _dnspython_keyring():
    return dns.tsigkeyring.from_text({"weird.nictest.": base64.b64encode(SECRET).decode()})


def test_dnspython_accepts_our_signed_request():
    """
    Brief: dnspython validates a request signed here.

    Inputs:
      - HMAC-SHA256 key shared with dnspython

    Outputs:
      - None: Asserts dnspython decodes it with had_tsig set
    """
    key = TsigKey("weird.nictest", SECRET, "hmac-sha256")
    wire, _ = sign_request(make_query("example.com", "A", msg_id=100), key)
    parsed = dns.message.from_wire(wire, keyring=_dnspython_keyring())
    assert parsed.had_tsig
    assert parsed.id == 100


def test_we_accept_dnspython_signed_exchange():
    """
    Brief: A dnspython-signed request and our signed response verify on both sides.

    Inputs:
      - dnspython query with TSIG

    Outputs:
      - None: Asserts our verify() and dnspython's from_wire() succeed
    """
    key = TsigKey("weird.nictest", SECRET, "hmac-sha256")
    ring = TsigKeyring([key])
    q = dns.message.make_query("example.com", "A")
    q.use_tsig(_dnspython_keyring(), keyname="weird.nictest.", algorithm=dns.tsig.HMAC_SHA256)
    q_wire = q.to_wire()

    request = verify(q_wire, ring)
    request_mac = request.tsig.rdata.mac
    assert request_mac == q.mac

    response = make_response(
        DnsMessage(header=request.header, question=request.question),
        answer=[ResourceRecord("example.com", "A", "IN", 60, A("192.0.2.1"))],
    )
    r_wire, _ = sign_response(response, key, request_mac)
    parsed = dns.message.from_wire(r_wire, keyring=_dnspython_keyring(), request_mac=q.mac)
    assert parsed.had_tsig
    assert parsed.answer[0] == dns.rrset.from_text("example.com.", 60, "IN", "A", "192.0.2.1")
