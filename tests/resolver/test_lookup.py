"""
Brief: Tests for buoy.resolver.lookup: the per-request state machine driven
against stub name servers.

Inputs:
  - None

Outputs:
  - None
"""

import asyncio
import base64
import time

import dns.message
import dns.rrset
import dns.tsigkeyring
import pytest
from dnslib import QTYPE, RR, A as DA, DNSRecord

from buoy.cache import ResolverCache
from buoy.config.config import ResolverConfig, ServerConfig, TsigConfig
from buoy.errors import (
    BadVersion,
    NotImplementedRcode,
    NXDomainError,
    ResolverTimeout,
    ServerFailure,
    TemporaryError,
)
from buoy.message.message import DnsMessage, make_response
from buoy.message.record import Question
from buoy.message.types import RRType
from buoy.resolver import lookup as lookup_mod
from buoy.resolver.lookup import LookupEngine, StateBlock
from buoy.resolver.servers import ServerStats
from buoy.transports import Transport

SECRET = b"lookup-engine-test-secret"


def make_config(*servers, timeout_ms=300, **kwargs):
    entries = [
        {"address": "127.0.0.1", "port": srv.port, "timeout_ms": timeout_ms} for srv in servers
    ]
    return ResolverConfig(servers=entries, **kwargs)


def reply(data, address="192.0.2.1", *, ttl=300, rcode=0, tc=False, answer=True):
    """dnslib reply to the query in data carrying one A record."""
    q = DNSRecord.parse(data)
    r = q.reply()
    if answer:
        r.add_answer(RR(str(q.q.qname), QTYPE.A, rdata=DA(address), ttl=ttl))
    r.header.rcode = rcode
    r.header.tc = int(tc)
    return r.pack()


def run(engine, name="example.com", rrtype=RRType.A, **kwargs):
    return asyncio.run(engine.run(Question(name, rrtype), **kwargs))


def addresses(response):
    return [rr.rdata.address for rr in response.answer if rr.rrtype == RRType.A]


# StateBlock ------------------------------------------------------------------


def test_state_block_orders_and_spends():
    """
    Brief: StateBlock follows ServerStats order and charges transmissions.

    Inputs:
      - two servers, the first measured slower

    Outputs:
      - None: Asserts try order, spend accounting and exhaustion
    """
    cfg = ResolverConfig(servers=["192.0.2.1", "192.0.2.2"], retries=2, global_work_budget=3)
    stats = ServerStats()
    stats.observe(cfg.servers[0], 50.0)
    state = StateBlock.for_request(cfg, stats, 0.0)
    assert [e.server.address for e in state.servers] == ["192.0.2.2", "192.0.2.1"]
    assert [e.index for e in state.servers] == [1, 0]

    first = state.select()
    state.spend(first)
    state.spend(first)
    assert first.remaining == 0 and state.work_counter == 1
    second = state.select()
    assert second.server.address == "192.0.2.1"
    state.spend(second)
    assert state.work_counter == 0
    with pytest.raises(TemporaryError):
        state.spend(second)
    assert not state.exhausted()


def test_state_block_select_returns_none_when_exhausted():
    cfg = ResolverConfig(servers=["192.0.2.1"], retries=1)
    state = StateBlock.for_request(cfg, ServerStats(), 0.0)
    state.spend(state.select())
    assert state.exhausted()
    assert state.select() is None


def test_zero_retries_still_sends_once():
    cfg = ResolverConfig(servers=["192.0.2.1"], retries=0)
    state = StateBlock.for_request(cfg, ServerStats(), 0.0)
    assert state.current.remaining == 1


# Query construction ---------------------------------------------------------


@pytest.mark.parametrize("rrtype", [RRType.AXFR, RRType.IXFR, RRType.OPT, RRType.ANY])
def test_check_question_rejects_meta_types(rrtype):
    engine = LookupEngine(ResolverConfig(servers=["192.0.2.1"]))
    with pytest.raises(NotImplementedRcode) as excinfo:
        engine.check_question(Question("example.com", rrtype))
    assert excinfo.value.rcode == 4


def test_any_allowed_when_configured():
    engine = LookupEngine(ResolverConfig(servers=["192.0.2.1"], allow_any=True))
    engine.check_question(Question("example.com", RRType.ANY))
    with pytest.raises(NotImplementedRcode):
        engine.check_question(Question("example.com", RRType.AXFR))


def test_build_query_carries_edns_and_rd():
    import random

    cfg = ResolverConfig(
        servers=["192.0.2.1"],
        edns={"payload": 1232, "do_bit": True, "options": ["nsid"]},
        recursion_desired=False,
    )
    engine = LookupEngine(cfg)
    query, wire, mac = engine.build_query(Question("example.com", "MX"), random.Random(1), 77)
    assert mac is None
    decoded = DnsMessage.from_wire(wire)
    assert decoded.id == 77 and query.id == 77
    assert decoded.header.rd is False
    assert decoded.edns.payload == 1232 and decoded.edns.do_bit
    assert [o.code for o in decoded.edns.options] == [3]


def test_build_query_signs_last():
    import random

    cfg = ResolverConfig(
        servers=["192.0.2.1"],
        edns=True,
        tsig={"key_name": "weird.nictest", "key_bytes": SECRET},
    )
    engine = LookupEngine(cfg)
    _, wire, mac = engine.build_query(Question("example.com", "A"), random.Random(1))
    decoded = DnsMessage.from_wire(wire)
    assert [rr.rrtype for rr in decoded.additional] == [RRType.OPT, RRType.TSIG]
    assert mac and decoded.tsig.rdata.mac == mac


# Request loop -----------------------------------------------------------------


def test_simple_udp_answer(dns_server):
    """
    Brief: One UDP exchange answers the question and feeds ServerStats.

    Inputs:
      - stub answering every query with 192.0.2.1

    Outputs:
      - None: Asserts the response, a single UDP request and a recorded RTT
    """
    srv = dns_server(lambda data, transport: reply(data))
    cfg = make_config(srv)
    engine = LookupEngine(cfg)
    response = run(engine, msg_id=4242)
    assert response.id == 4242
    assert addresses(response) == ["192.0.2.1"]
    assert srv.transports() == ["udp"]
    assert engine.stats.estimate(cfg.servers[0]) is not None


def test_truncated_udp_retries_over_tcp(dns_server):
    """
    Brief: TC=1 over UDP is re-asked over TCP; only the TCP answer is cached.

    Inputs:
      - stub returning a truncated UDP reply and a full TCP reply

    Outputs:
      - None: Asserts udp then tcp, the TCP address and the cache contents
    """

    def handler(data, transport):
        if transport == "udp":
            return reply(data, "192.0.2.99", tc=True)
        return reply(data, "192.0.2.7")

    srv = dns_server(handler)
    cache = ResolverCache(10)
    engine = LookupEngine(make_config(srv), cache)
    response = run(engine)
    assert srv.transports() == ["udp", "tcp"]
    assert addresses(response) == ["192.0.2.7"]
    cached = cache.records("answer", "example.com", RRType.A)
    assert [rr.rdata.address for rr in cached] == ["192.0.2.7"]


def test_transport_override_uses_tcp(dns_server):
    srv = dns_server(lambda data, transport: reply(data))
    engine = LookupEngine(make_config(srv))
    run(engine, transport=Transport.TCP)
    assert srv.transports() == ["tcp"]


def test_timeout_retries_same_server_then_next(dns_server):
    """
    Brief: Timeouts are retried on the same server before moving on.

    Inputs:
      - a silent server and an answering server, retries=2

    Outputs:
      - None: Asserts two transmissions to the first, one to the second
    """
    silent = dns_server(lambda data, transport: None)
    good = dns_server(lambda data, transport: reply(data, "192.0.2.2"))
    engine = LookupEngine(make_config(silent, good, timeout_ms=150, retries=2))
    response = run(engine)
    assert addresses(response) == ["192.0.2.2"]
    assert len(silent.requests) == 2
    assert len(good.requests) == 1


def test_all_servers_failed(dns_server):
    silent = dns_server(lambda data, transport: None)
    engine = LookupEngine(make_config(silent, timeout_ms=100, retries=2))
    with pytest.raises(TemporaryError, match="all 1 servers failed"):
        run(engine)
    assert len(silent.requests) == 2


def test_work_budget_bounds_transmissions(dns_server):
    silent = dns_server(lambda data, transport: None)
    engine = LookupEngine(
        make_config(silent, timeout_ms=100, retries=10, global_work_budget=3)
    )
    with pytest.raises(TemporaryError, match="work budget exhausted"):
        run(engine)
    assert len(silent.requests) == 3


def test_format_error_moves_to_next_server(dns_server):
    broken = dns_server(lambda data, transport: b"\x00\x01\x02")
    good = dns_server(lambda data, transport: reply(data, "192.0.2.3"))
    engine = LookupEngine(make_config(broken, good))
    response = run(engine)
    assert addresses(response) == ["192.0.2.3"]
    assert len(broken.requests) == 1


def test_mismatched_reply_is_discarded(dns_server):
    """
    Brief: A reply with the wrong id does not end the exchange.

    Inputs:
      - stub sending a reply with another id, then the real one

    Outputs:
      - None: Asserts the real reply is returned after a single request
    """

    def handler(data, transport):
        good = reply(data, "192.0.2.4")
        bad = DNSRecord.parse(reply(data, "192.0.2.66"))
        bad.header.id = (bad.header.id + 1) & 0xFFFF
        return [bad.pack(), good]

    srv = dns_server(handler)
    response = run(LookupEngine(make_config(srv)))
    assert addresses(response) == ["192.0.2.4"]
    assert len(srv.requests) == 1


def test_servfail_is_not_retried(dns_server):
    first = dns_server(lambda data, transport: reply(data, rcode=2, answer=False))
    second = dns_server(lambda data, transport: reply(data))
    engine = LookupEngine(make_config(first, second))
    with pytest.raises(ServerFailure) as excinfo:
        run(engine)
    assert excinfo.value.response is not None
    assert second.requests == []


def test_rcode_returned_when_not_raising(dns_server):
    srv = dns_server(lambda data, transport: reply(data, rcode=3, answer=False))
    engine = LookupEngine(make_config(srv))
    response = run(engine, raise_for_rcode=False)
    assert response.rcode == 3
    with pytest.raises(NXDomainError):
        run(engine)


def test_badvers_raises(dns_server):
    def handler(data, transport):
        query = DnsMessage.from_wire(data)
        return make_response(query, rcode=16).to_wire()

    srv = dns_server(handler)
    engine = LookupEngine(make_config(srv, edns=True))
    with pytest.raises(BadVersion):
        run(engine)


def test_request_timeout(dns_server):
    silent = dns_server(lambda data, transport: None)
    engine = LookupEngine(
        make_config(silent, timeout_ms=2000, retries=3, request_timeout_ms=200)
    )
    with pytest.raises(ResolverTimeout):
        run(engine)
    assert len(silent.requests) == 1


def test_edns_sent_with_query(dns_server):
    srv = dns_server(lambda data, transport: reply(data))
    engine = LookupEngine(make_config(srv, edns={"payload": 1400, "do_bit": True}))
    run(engine)
    sent = DNSRecord.parse(srv.requests[0][1])
    [opt] = [rr for rr in sent.ar if rr.rtype == QTYPE.OPT]
    assert opt.rclass == 1400
    assert opt.ttl & 0x8000


def test_faster_server_is_tried_first(dns_server):
    slow = dns_server(lambda data, transport: reply(data, "192.0.2.10"))
    fast = dns_server(lambda data, transport: reply(data, "192.0.2.20"))
    cfg = make_config(slow, fast)
    stats = ServerStats()
    stats.observe(cfg.servers[0], 900.0)
    stats.observe(cfg.servers[1], 5.0)
    response = run(LookupEngine(cfg, None, stats))
    assert addresses(response) == ["192.0.2.20"]
    assert slow.requests == []


def test_tsig_signed_lookup(dns_server):
    """
    Brief: Signed queries are answered by a dnspython server; a reply with a
    broken MAC is discarded and the valid one accepted.

    Inputs:
      - key weird.nictest (hmac-sha256) shared with the stub

    Outputs:
      - None: Asserts the signed answer is returned
    """
    keyring = dns.tsigkeyring.from_text(
        {"weird.nictest.": base64.b64encode(SECRET).decode()}
    )

    def handler(data, transport):
        q = dns.message.from_wire(data, keyring=keyring)
        assert q.had_tsig
        r = dns.message.make_response(q)
        r.answer.append(dns.rrset.from_text(q.question[0].name, 300, "IN", "A", "192.0.2.66"))
        good = r.to_wire()
        tampered = good.replace(bytes([192, 0, 2, 66]), bytes([192, 0, 2, 67]))
        return [tampered, good]

    srv = dns_server(handler)
    cfg = make_config(
        srv, tsig=TsigConfig(key_name="weird.nictest", key_bytes=SECRET)
    )
    response = run(LookupEngine(cfg))
    assert addresses(response) == ["192.0.2.66"]
    assert response.tsig is not None


def test_backoff_doubles_up_to_cap(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr(lookup_mod.asyncio, "sleep", fake_sleep)
    cfg = ResolverConfig(servers=["192.0.2.1"], retry_backoff_ms=100, max_retry_backoff_ms=250)
    engine = LookupEngine(cfg)

    async def go():
        for attempt in (0, 1, 2, 3):
            await engine._backoff(attempt)

    asyncio.run(go())
    assert delays == [0.1, 0.2, 0.25]


def test_udp_channel_size_follows_edns_payload():
    engine = LookupEngine(ResolverConfig(servers=["192.0.2.1"], edns={"payload": 4096}))
    server = ServerConfig(address="192.0.2.1")
    assert engine.open_channel(server, Transport.UDP).max_size == 4096
    plain = LookupEngine(ResolverConfig(servers=["192.0.2.1"]))
    assert plain.open_channel(server, Transport.UDP).max_size == 512


def test_cancelled_lookup_closes_channel_and_never_caches(dns_server):
    """
    Brief: Cancelling a running lookup closes its socket and stores nothing,
    even when the reply turns up afterwards.

    Inputs:
      - stub answering each query after 0.3s, task cancelled after 0.1s

    Outputs:
      - None: Asserts CancelledError, a closed channel and an empty cache
    """

    def slow(data, transport):
        time.sleep(0.3)
        return reply(data)

    srv = dns_server(slow)
    cache = ResolverCache(10)
    engine = LookupEngine(make_config(srv, timeout_ms=2000), cache)
    opened = []
    open_channel = engine.open_channel

    def recording_open_channel(server, transport):
        channel = open_channel(server, transport)
        opened.append(channel)
        return channel

    engine.open_channel = recording_open_channel

    async def go():
        task = asyncio.ensure_future(engine.run(Question("example.com", RRType.A)))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        # let the late reply arrive
        await asyncio.sleep(0.4)

    asyncio.run(go())
    assert len(srv.requests) == 1
    assert len(opened) == 1 and opened[0]._proto is None
    assert len(cache) == 0
    assert cache.lookup("example.com", RRType.A) is None
