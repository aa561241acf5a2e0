from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Sequence, Tuple

from ..config.config import ServerConfig

logger = logging.getLogger(__name__)

EMA_WEIGHT = 0.5


class ServerStats:
    """
    Response-time estimates for upstream servers, shared by all lookups of
    one resolver.

    Inputs:
        weight: weight of the previous estimate in the moving average
    Outputs:
        ServerStats instance

    Notes:
        Each sample is folded in as est = weight * est + (1 - weight) * sample;
        the first sample becomes the estimate. Servers without samples
        estimate as 0 so they are tried before measured ones.

    Example use:
        >>> stats = ServerStats()
        >>> s = ServerConfig(address="192.0.2.1")
        >>> stats.observe(s, 40.0)
        40.0
        >>> stats.observe(s, 20.0)
        30.0
        >>> stats.estimate(s)
        30.0
    """

    def __init__(self, weight: float = EMA_WEIGHT) -> None:
        self.weight = float(weight)
        self._rtt: Dict[Tuple[str, int], float] = {}
        self._lock = threading.Lock()

    def observe(self, server: ServerConfig, rtt_ms: float) -> float:
        key = (server.address, server.port)
        with self._lock:
            previous = self._rtt.get(key)
            if previous is None:
                value = float(rtt_ms)
            else:
                value = self.weight * previous + (1 - self.weight) * float(rtt_ms)
            self._rtt[key] = value
        return value

    def estimate(self, server: ServerConfig) -> Optional[float]:
        with self._lock:
            return self._rtt.get((server.address, server.port))

    def ordered(self, servers: Sequence[ServerConfig]) -> List[Tuple[int, ServerConfig]]:
        """(configured index, server) pairs, fastest first, ties by index."""
        with self._lock:
            snapshot = dict(self._rtt)
        indexed = list(enumerate(servers))
        indexed.sort(key=lambda p: (snapshot.get((p[1].address, p[1].port), 0.0), p[0]))
        return indexed

    def reset(self) -> None:
        with self._lock:
            self._rtt.clear()
