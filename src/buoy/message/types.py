"""Numeric code tables: RR types, classes, opcodes, response codes, EDNS options.

Each table behaves like the bimaps used throughout the code base:
attribute access yields the number (``RRType.A == 1``) and ``get`` maps a
number back to its mnemonic, falling back to the RFC 3597 generic form.
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional, Union


class CodeTable:
    """
    Brief: Two-way mapping between mnemonics and 16-bit codes.

    Inputs:
      - name: table name used in error messages
      - codes: mapping of code -> mnemonic
      - generic_prefix: prefix of the generic text form ("TYPE", "CLASS"),
        or None when the table has no generic form

    Outputs:
      - CodeTable instance with one attribute per mnemonic.

    Example:
      >>> RRType.MX
      15
      >>> RRType.get(15)
      'MX'
      >>> RRType.get(65280)
      'TYPE65280'
      >>> RRType.from_text("type65280")
      65280
    """

    def __init__(
        self,
        name: str,
        codes: Dict[int, str],
        *,
        generic_prefix: Optional[str] = None,
        maximum: int = 0xFFFF,
    ) -> None:
        self._name = name
        self._by_code: Dict[int, str] = dict(codes)
        self._by_text: Dict[str, int] = {v.upper(): k for k, v in codes.items()}
        self._prefix = generic_prefix
        self._max = maximum
        for code, text in codes.items():
            setattr(self, text.replace("-", "_"), code)

    def get(self, code: int, default: Optional[str] = None) -> str:
        code = int(code)
        text = self._by_code.get(code)
        if text is not None:
            return text
        if default is not None:
            return default
        if self._prefix:
            return f"{self._prefix}{code}"
        return str(code)

    def from_text(self, value: Union[str, int]) -> int:
        """Return the numeric code for a mnemonic, generic form or number."""
        if isinstance(value, int):
            code = value
        else:
            text = str(value).strip().upper()
            if text in self._by_text:
                return self._by_text[text]
            if self._prefix and text.startswith(self._prefix):
                text = text[len(self._prefix) :]
            if not text.isdigit():
                raise ValueError(f"unknown {self._name} {value!r}")
            code = int(text)
        if not 0 <= code <= self._max:
            raise ValueError(f"{self._name} {code} out of range")
        return code

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def __iter__(self) -> Iterator[int]:
        return iter(self._by_code)

    def __repr__(self) -> str:
        return f"<{self._name}: {len(self._by_code)} codes>"


RRType = CodeTable(
    "RRType",
    {
        1: "A",
        2: "NS",
        5: "CNAME",
        6: "SOA",
        11: "WKS",
        12: "PTR",
        13: "HINFO",
        14: "MINFO",
        15: "MX",
        16: "TXT",
        17: "RP",
        18: "AFSDB",
        24: "SIG",
        25: "KEY",
        28: "AAAA",
        29: "LOC",
        33: "SRV",
        35: "NAPTR",
        36: "KX",
        37: "CERT",
        39: "DNAME",
        41: "OPT",
        42: "APL",
        43: "DS",
        44: "SSHFP",
        45: "IPSECKEY",
        46: "RRSIG",
        47: "NSEC",
        48: "DNSKEY",
        49: "DHCID",
        50: "NSEC3",
        51: "NSEC3PARAM",
        52: "TLSA",
        53: "SMIMEA",
        55: "HIP",
        59: "CDS",
        60: "CDNSKEY",
        61: "OPENPGPKEY",
        62: "CSYNC",
        63: "ZONEMD",
        64: "SVCB",
        65: "HTTPS",
        99: "SPF",
        108: "EUI48",
        109: "EUI64",
        249: "TKEY",
        250: "TSIG",
        251: "IXFR",
        252: "AXFR",
        253: "MAILB",
        254: "MAILA",
        255: "ANY",
        256: "URI",
        257: "CAA",
        261: "RESINFO",
    },
    generic_prefix="TYPE",
)

# Types that only make sense as QTYPEs or pseudo records.
META_TYPES = frozenset({41, 249, 250, 251, 252, 253, 254, 255})

RClass = CodeTable(
    "RClass",
    {1: "IN", 2: "CS", 3: "CH", 4: "HS", 254: "NONE", 255: "ANY"},
    generic_prefix="CLASS",
)

Opcode = CodeTable(
    "Opcode",
    {0: "QUERY", 1: "IQUERY", 2: "STATUS", 4: "NOTIFY", 5: "UPDATE", 6: "DSO"},
    maximum=15,
)

Rcode = CodeTable(
    "Rcode",
    {
        0: "NOERROR",
        1: "FORMERR",
        2: "SERVFAIL",
        3: "NXDOMAIN",
        4: "NOTIMP",
        5: "REFUSED",
        6: "YXDOMAIN",
        7: "YXRRSET",
        8: "NXRRSET",
        9: "NOTAUTH",
        10: "NOTZONE",
        11: "DSOTYPENI",
        16: "BADVERS",
        17: "BADKEY",
        18: "BADTIME",
        19: "BADMODE",
        20: "BADNAME",
        21: "BADALG",
        22: "BADTRUNC",
        23: "BADCOOKIE",
    },
    maximum=0xFFF,
)

# RCODE 16 means BADSIG inside a TSIG RR and BADVERS in an OPT RR.
TSIG_BADSIG = 16

EdnsOptionCode = CodeTable(
    "EdnsOptionCode",
    {
        3: "NSID",
        5: "DAU",
        6: "DHU",
        7: "N3U",
        8: "ECS",
        9: "EXPIRE",
        10: "COOKIE",
        11: "TCP-KEEPALIVE",
        12: "PADDING",
        13: "CHAIN",
        14: "KEY-TAG",
        15: "EDE",
        18: "REPORT-CHANNEL",
        19: "ZONEVERSION",
    },
)

EdeCode = CodeTable(
    "EdeCode",
    {
        0: "Other Error",
        1: "Unsupported DNSKEY Algorithm",
        2: "Unsupported DS Digest Type",
        3: "Stale Answer",
        4: "Forged Answer",
        5: "DNSSEC Indeterminate",
        6: "DNSSEC Bogus",
        7: "Signature Expired",
        8: "Signature Not Yet Valid",
        9: "DNSKEY Missing",
        10: "RRSIGs Missing",
        11: "No Zone Key Bit Set",
        12: "NSEC Missing",
        13: "Cached Error",
        14: "Not Ready",
        15: "Blocked",
        16: "Censored",
        17: "Filtered",
        18: "Prohibited",
        19: "Stale NXDomain Answer",
        20: "Not Authoritative",
        21: "Not Supported",
        22: "No Reachable Authority",
        23: "Network Error",
        24: "Invalid Data",
    },
)
