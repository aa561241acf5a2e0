"""DNS wire format: names, RDATA, records, EDNS(0) and messages."""

from .edns import Edns, EdnsOption, ExtendedError, ZoneVersion, nsid_option, option_from_text
from .message import DnsMessage, Header, make_query, make_response
from .names import DomainName, as_name, decode_name, encode_name, reverse_name
from .rdata import rdata_to_text
from .record import Question, ResourceRecord
from .types import EdeCode, EdnsOptionCode, Opcode, RClass, Rcode, RRType

__all__ = [
    "DnsMessage",
    "DomainName",
    "EdeCode",
    "Edns",
    "EdnsOption",
    "EdnsOptionCode",
    "ExtendedError",
    "Header",
    "Opcode",
    "Question",
    "RClass",
    "RRType",
    "Rcode",
    "ResourceRecord",
    "ZoneVersion",
    "as_name",
    "decode_name",
    "encode_name",
    "make_query",
    "make_response",
    "nsid_option",
    "option_from_text",
    "rdata_to_text",
    "reverse_name",
]
