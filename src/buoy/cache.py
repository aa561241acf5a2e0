from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .message.message import DnsMessage
from .message.names import DomainName, NameLike
from .message.rdata import CNAME, SOA
from .message.record import Question, ResourceRecord
from .message.types import RClass, RRType

""" TTL-aware DNS record caches with bounded size and negative entries. """

logger = logging.getLogger(__name__)

# Records that describe a transaction, never data.
_UNCACHEABLE = frozenset({RRType.OPT, RRType.TSIG})
MAX_CNAME_CHAIN = 8
EMA_WEIGHT = 0.5


@dataclass
class RRStoredData:
    """
    Brief: One cached record plus its bookkeeping.

    Inputs:
      - record: ResourceRecord as received (TTL is the original TTL)
      - absolute_ttl: epoch seconds at which the record expires
      - response_time: latency estimate (ms) of the server holding this address
      - last_use: epoch seconds of the last read or write
      - negative: True for NXDOMAIN/NODATA entries (record is then the SOA)
      - rcode: response code of a negative entry (3 NXDOMAIN, 0 NODATA)

    Outputs:
      - RRStoredData instance
    """

    record: ResourceRecord
    absolute_ttl: float
    response_time: float = 0.0
    last_use: float = 0.0
    negative: bool = False
    rcode: int = 0

    def remaining(self, now: float) -> int:
        return max(0, int(self.absolute_ttl - now))

    def expired(self, now: float) -> bool:
        return self.absolute_ttl <= now

    def current_record(self, now: float) -> ResourceRecord:
        """The record with its TTL lowered to the time left."""
        return self.record.with_ttl(self.remaining(now))


class DnsCache:
    """
    Thread-safe record cache indexed rtype -> name -> [RRStoredData].

    Inputs:
        max_entries: strict upper bound on stored records (0 disables storage)
        now: optional clock returning epoch seconds (defaults to time.time)
    Outputs:
        DnsCache instance

    Notes:
        Reads skip expired records and drop them; timeout() purges everything
        expired. When an insert pushes the size over max_entries, whole
        (rtype, name) groups are evicted, least recently used first, ties in
        insertion order. The lock is held for map operations only.

    Example use:
        >>> from buoy.message.rdata import A
        >>> cache = DnsCache(10, now=lambda: 1000.0)
        >>> rr = ResourceRecord("example.com", RRType.A, 1, 3600, A("93.184.216.34"))
        >>> cache.add(rr)
        True
        >>> [e.absolute_ttl for e in cache.get("example.com", RRType.A)]
        [4600.0]
    """

    def __init__(
        self,
        max_entries: int = 1000,
        *,
        now: Optional[Callable[[], float]] = None,
        lock: Optional[threading.RLock] = None,
        counter: Optional[Iterator[int]] = None,
    ):
        self.max_entries = max(0, int(max_entries))
        self._now: Callable[[], float] = now or time.time
        self._store: Dict[int, Dict[DomainName, List[RRStoredData]]] = {}
        # (rtype, name) -> insertion sequence, used to break last_use ties.
        self._seq: Dict[Tuple[int, DomainName], int] = {}
        self._counter = counter if counter is not None else itertools.count()
        self._size = 0
        self._lock = lock if lock is not None else threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return self._size

    def is_empty(self) -> bool:
        return len(self) == 0

    def now(self) -> float:
        return self._now()

    # Writes -----------------------------------------------------------------

    def add(self, record: ResourceRecord, response_time: float = 0.0) -> bool:
        """
        Brief: Store a positive record; an identical record is refreshed.

        Inputs:
          - record: ResourceRecord; TTL 0, OPT and TSIG records are ignored
          - response_time: latency estimate of the answering server (ms)

        Outputs:
          - True when stored.
        """
        if record.ttl == 0 or record.rrtype in _UNCACHEABLE or self.max_entries == 0:
            return False
        now = self._now()
        entry = RRStoredData(record, now + record.ttl, response_time, now)
        with self._lock:
            group = self._group(record.rrtype, record.name)
            if any(e.negative for e in group):
                self._drop_locked(record.rrtype, record.name)
                group = self._group(record.rrtype, record.name)
            for i, existing in enumerate(group):
                if existing.record.rdata == entry.record.rdata:
                    entry.response_time = existing.response_time or response_time
                    group[i] = entry
                    break
            else:
                group.append(entry)
                self._size += 1
            self._enforce_limit_locked()
        logger.debug("cache store %s %s ttl=%d", record.name, RRType.get(record.rrtype), record.ttl)
        return True

    def add_negative(
        self, qname: NameLike, qtype: int, soa: ResourceRecord, rcode: int
    ) -> Optional[int]:
        """
        Brief: Record that (qname, qtype) has no data (RFC 2308).

        Inputs:
          - qname, qtype: the question that was denied
          - soa: SOA record from the authority section
          - rcode: 3 for NXDOMAIN, 0 for NODATA

        Outputs:
          - the negative TTL used, or None when nothing was stored
        """
        if not isinstance(soa.rdata, SOA) or self.max_entries == 0:
            return None
        ttl = min(soa.rdata.minimum, soa.ttl)
        if ttl <= 0:
            return None
        name = DomainName.from_text(qname, strict=False)
        now = self._now()
        entry = RRStoredData(soa.with_ttl(ttl), now + ttl, 0.0, now, True, int(rcode))
        with self._lock:
            self._drop_locked(int(qtype), name)
            self._group(int(qtype), name).append(entry)
            self._size += 1
            self._enforce_limit_locked()
        logger.debug("cache store negative %s %s ttl=%d", name, RRType.get(qtype), ttl)
        return ttl

    def remove(self, name: NameLike, rtype: int) -> int:
        with self._lock:
            return self._drop_locked(int(rtype), DomainName.from_text(name, strict=False))

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._seq.clear()
            self._size = 0

    def timeout(self) -> int:
        """Remove all expired entries; returns how many were removed."""
        with self._lock:
            return self._purge_expired_locked(self._now())

    def update_response_time(self, address: str, rtt_ms: float) -> int:
        """
        Brief: Fold a latency sample into every cached A/AAAA entry for address.

        Inputs:
          - address: server IP as text
          - rtt_ms: observed round-trip time

        Outputs:
          - number of entries updated
        """
        updated = 0
        with self._lock:
            for rtype in (RRType.A, RRType.AAAA):
                for group in self._store.get(rtype, {}).values():
                    for entry in group:
                        if getattr(entry.record.rdata, "address", None) == address:
                            if entry.response_time:
                                entry.response_time = (
                                    EMA_WEIGHT * entry.response_time
                                    + (1 - EMA_WEIGHT) * rtt_ms
                                )
                            else:
                                entry.response_time = float(rtt_ms)
                            updated += 1
        return updated

    # Reads -----------------------------------------------------------------

    def get(self, name: NameLike, rtype: int) -> List[RRStoredData]:
        """
        Brief: Live entries for (name, rtype); expired ones are dropped.

        Inputs:
          - name: owner name
          - rtype: record type

        Outputs:
          - list of RRStoredData (possibly empty); last_use is refreshed.
        """
        key_name = DomainName.from_text(name, strict=False)
        now = self._now()
        with self._lock:
            names = self._store.get(int(rtype))
            if not names or key_name not in names:
                return []
            group = names[key_name]
            live = [e for e in group if not e.expired(now)]
            if len(live) != len(group):
                if live:
                    names[key_name] = live
                    self._size -= len(group) - len(live)
                else:
                    self._drop_locked(int(rtype), key_name)
            for e in live:
                e.last_use = now
            return list(live)

    def get_records(self, name: NameLike, rtype: int) -> List[ResourceRecord]:
        """Positive records for (name, rtype) with TTLs set to the time left."""
        now = self._now()
        return [e.current_record(now) for e in self.get(name, rtype) if not e.negative]

    def keys(self) -> List[Tuple[int, DomainName]]:
        with self._lock:
            return [(t, n) for t, names in self._store.items() for n in names]

    # Internals ---------------------------------------------------------------

    def _group(self, rtype: int, name: DomainName) -> List[RRStoredData]:
        names = self._store.setdefault(int(rtype), {})
        if name not in names:
            names[name] = []
            self._seq[(int(rtype), name)] = next(self._counter)
        return names[name]

    def _drop_locked(self, rtype: int, name: DomainName) -> int:
        names = self._store.get(rtype)
        if not names or name not in names:
            return 0
        removed = len(names.pop(name))
        self._seq.pop((rtype, name), None)
        if not names:
            del self._store[rtype]
        self._size -= removed
        return removed

    def _purge_expired_locked(self, now: float) -> int:
        removed = 0
        for rtype, names in list(self._store.items()):
            for name, group in list(names.items()):
                live = [e for e in group if not e.expired(now)]
                if len(live) == len(group):
                    continue
                removed += len(group) - len(live)
                if live:
                    names[name] = live
                    self._size -= len(group) - len(live)
                else:
                    self._drop_locked(rtype, name)
        return removed

    def _enforce_limit_locked(self) -> None:
        if self._size <= self.max_entries:
            return
        self._purge_expired_locked(self._now())
        while self._size > self.max_entries:
            self._evict_one_locked()

    def _lru_key_locked(self) -> Optional[Tuple[Tuple[float, int], Tuple[int, DomainName]]]:
        """(last_use, insertion sequence) and key of the least recently used group."""
        keys = self.keys()
        if not keys:
            return None
        return min(
            (
                (max(e.last_use for e in self._store[k[0]][k[1]]), self._seq.get(k, 0)),
                k,
            )
            for k in keys
        )

    def _evict_one_locked(self) -> None:
        found = self._lru_key_locked()
        if found is None:
            return
        victim = found[1]
        logger.debug("cache evict %s %s", victim[1], RRType.get(victim[0]))
        self._drop_locked(*victim)


@dataclass
class CacheHit:
    """Result of ResolverCache.lookup(): records (CNAME chain first) or a negative."""

    records: List[ResourceRecord]
    negative: bool = False
    rcode: int = 0
    soa: Optional[ResourceRecord] = None


class ResolverCache:
    """
    Answer, authority and additional caches of one resolver.

    Inputs:
        max_entries: strict bound on the records held across all three caches
        cache_non_authoritative: also keep authority/additional records of
            non-authoritative responses
        now: optional clock (epoch seconds)
    Outputs:
        ResolverCache instance
    """

    def __init__(
        self,
        max_entries: int = 1000,
        *,
        cache_non_authoritative: bool = False,
        now: Optional[Callable[[], float]] = None,
    ) -> None:
        self.max_entries = max(0, int(max_entries))
        # One lock and one insertion sequence so eviction can compare groups
        # across the three caches.
        self._lock = threading.RLock()
        shared = dict(now=now, lock=self._lock, counter=itertools.count())
        self.answer = DnsCache(max_entries, **shared)
        self.authority = DnsCache(max_entries, **shared)
        self.additional = DnsCache(max_entries, **shared)
        self.cache_non_authoritative = cache_non_authoritative

    def store_response(
        self, question: Question, response: DnsMessage, response_time: float = 0.0
    ) -> bool:
        """
        Brief: Apply the caching rules to a response.

        Inputs:
          - question: the question that was asked
          - response: decoded response
          - response_time: measured latency (ms) of the answering server

        Outputs:
          - True when anything was stored.

        Notes:
          - Truncated responses are never cached, and only IN-class
            questions are; answer records of another class are skipped.
          - An authoritative response with an empty answer and an SOA in
            authority yields a negative entry for (qname, qtype) with TTL
            min(SOA minimum, SOA TTL).
        """
        if response.header.tc:
            logger.debug("not caching truncated response for %s", question)
            return False
        if question.rclass != RClass.IN:
            return False
        rcode = response.rcode
        if rcode not in (0, 3):
            return False
        with self._lock:
            stored = False
            if not response.answer and response.header.aa:
                soa = next((rr for rr in response.authority if rr.rrtype == RRType.SOA), None)
                if soa is not None:
                    stored = (
                        self.answer.add_negative(question.name, question.rrtype, soa, rcode)
                        is not None
                    )
            for rr in response.answer:
                if rr.rclass != question.rclass:
                    continue
                stored = self.answer.add(rr, response_time) or stored
            if response.header.aa or self.cache_non_authoritative:
                for rr in response.authority:
                    stored = self.authority.add(rr, response_time) or stored
                for rr in response.additional:
                    stored = self.additional.add(rr, response_time) or stored
            self._enforce_limit_locked()
        return stored

    def lookup(self, name: NameLike, rrtype: int) -> Optional[CacheHit]:
        """
        Brief: Find (name, rrtype), following cached CNAMEs.

        Inputs:
          - name: query name
          - rrtype: query type

        Outputs:
          - CacheHit, or None on a miss (including a broken CNAME chain).
        """
        qname = DomainName.from_text(name, strict=False)
        chain: List[ResourceRecord] = []
        now = self.answer.now()
        for _ in range(MAX_CNAME_CHAIN + 1):
            entries = self.answer.get(qname, rrtype)
            if entries:
                negative = next((e for e in entries if e.negative), None)
                if negative is not None:
                    return CacheHit(
                        chain, True, negative.rcode, negative.current_record(now)
                    )
                return CacheHit(chain + [e.current_record(now) for e in entries])
            if rrtype == RRType.CNAME:
                return None
            cnames = [e for e in self.answer.get(qname, RRType.CNAME) if not e.negative]
            if not cnames:
                return None
            record = cnames[0].current_record(now)
            chain.append(record)
            target = record.rdata.target if isinstance(record.rdata, CNAME) else None
            if target is None or target == qname:
                return None
            qname = target
        return None

    def records(self, section: str, name: NameLike, rrtype: int) -> List[ResourceRecord]:
        cache: DnsCache = getattr(self, section)
        return cache.get_records(name, rrtype)

    def update_response_time(self, address: str, rtt_ms: float) -> None:
        for cache in self._caches():
            cache.update_response_time(address, rtt_ms)

    def timeout(self) -> int:
        return sum(cache.timeout() for cache in self._caches())

    def clear(self) -> None:
        for cache in self._caches():
            cache.clear()

    def __len__(self) -> int:
        return sum(len(cache) for cache in self._caches())

    def _caches(self) -> Iterable[DnsCache]:
        return (self.answer, self.authority, self.additional)

    def _enforce_limit_locked(self) -> None:
        if len(self) <= self.max_entries:
            return
        for cache in self._caches():
            cache._purge_expired_locked(cache.now())
        while len(self) > self.max_entries:
            oldest: Optional[Tuple[Tuple[float, int], DnsCache]] = None
            for cache in self._caches():
                found = cache._lru_key_locked()
                if found is not None and (oldest is None or found[0] < oldest[0]):
                    oldest = (found[0], cache)
            if oldest is None:
                return
            oldest[1]._evict_one_locked()
