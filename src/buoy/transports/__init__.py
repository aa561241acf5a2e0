"""UDP and TCP transports (asyncio)."""

import enum

from .tcp import TCPChannel, tcp_query
from .udp import UDPChannel, udp_query


class Transport(str, enum.Enum):
    UDP = "udp"
    TCP = "tcp"

    @classmethod
    def _missing_(cls, value):
        # "UDP", " tcp " and friends name the same members.
        if isinstance(value, str):
            folded = value.strip().lower()
            for member in cls:
                if member.value == folded:
                    return member
        return None


__all__ = ["TCPChannel", "Transport", "UDPChannel", "tcp_query", "udp_query"]
