"""Wire messages exchanged between solicitors and announcers.

Each message is a single JSON object in one UTF-8 encoded UDP datagram.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict

from .errors import MessageError


def _decode_object(data: bytes) -> Dict[str, Any]:
    try:
        obj = json.loads(data.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageError(f"error parsing message json: {e}") from e
    if not isinstance(obj, dict):
        raise MessageError(f"message is not a JSON object: {obj!r}")
    return obj


def _str_field(obj: Dict[str, Any], key: str) -> str:
    value = obj.get(key, "")
    if not isinstance(value, str):
        raise MessageError(f"field {key!r} must be a string, got {value!r}")
    return value


@dataclass
class Solicitation:
    """Request multicast by a solicitor.

    Attributes:
        inform: IPv6 address the response is sent to, also the address the
            announcer matches its own addresses against
        response_port: UDP port the response is sent to
    """
    inform: str
    response_port: int

    def to_json(self) -> bytes:
        return json.dumps({"inform": self.inform,
                           "response_port": self.response_port}).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> "Solicitation":
        obj = _decode_object(data)
        port = obj.get("response_port", 0)
        # bool is an int subclass
        if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
            raise MessageError(f"field 'response_port' must be a port number, got {port!r}")
        return cls(inform=_str_field(obj, "inform"), response_port=port)


@dataclass
class Response:
    """Reply unicast by an announcer.

    Attributes:
        ipstr: Announced IP address
        hostname: Announcer's self-reported short host name
    """
    ipstr: str
    hostname: str

    def to_json(self) -> bytes:
        return json.dumps({"ipstr": self.ipstr, "hostname": self.hostname}).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> "Response":
        obj = _decode_object(data)
        return cls(ipstr=_str_field(obj, "ipstr"), hostname=_str_field(obj, "hostname"))
