"""Interface address selection and address helpers for ipannounce."""

import ipaddress
import logging
import re
import socket
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import psutil

from ..errors import AddressEnumerationError

logger = logging.getLogger(__name__)

# Number of high-order bits compared when matching addresses
NETWORK_BITS = 64

InterfaceProvider = Callable[[], Mapping[str, Sequence[str]]]


def list_interface_addresses() -> Dict[str, List[str]]:
    """List the IP addresses assigned to each host interface.

    Returns:
        Mapping of interface name to its IPv4 and IPv6 address strings,
        in the order the operating system reports them
    """
    interfaces: Dict[str, List[str]] = {}
    for name, addrs in psutil.net_if_addrs().items():
        interfaces[name] = [
            a.address for a in addrs
            if a.family in (socket.AF_INET, socket.AF_INET6)
        ]
    return interfaces


def network_part(ip: ipaddress.IPv6Address) -> int:
    """Return the first 64 bits of an IPv6 address as a big-endian integer."""
    return int.from_bytes(ip.packed[:8], "big")


def match_score(a: ipaddress.IPv6Address, b: ipaddress.IPv6Address) -> int:
    """Count the leading bits (0-64) shared by the network portions of two addresses."""
    return NETWORK_BITS - (network_part(a) ^ network_part(b)).bit_length()


def _strip_address(addr: str) -> str:
    # psutil reports link-local addresses with a %zone suffix, other
    # sources use a /prefixlen suffix
    return addr.split("/", 1)[0].split("%", 1)[0]


def select_matching_ip(reference: ipaddress.IPv6Address,
                       name_pattern: Optional[re.Pattern] = None,
                       interfaces: Optional[InterfaceProvider] = None
                       ) -> Optional[ipaddress.IPv6Address]:
    """Select the host address whose network portion best matches a reference.

    Every IPv6 address on the host is compared with the reference address,
    most significant bit first, over the first 64 bits only. The address with
    the longest run of matching leading bits wins; on a tie the address
    enumerated first is kept.

    Example with reference ``fc00::``::

        fc00::                 1111 1100 0000 0000 ...
        fd35:a2b9:543c:10aa::  1111 1101 0011 0101 ...  -> 7 matching bits
        2605:4415:92bc:115f::  0010 0110 0000 0101 ...  -> 0 matching bits

    so ``fd35:a2b9:543c:10aa::20`` is selected over ``2605:4415:92bc:115f::20``.

    Args:
        reference: Address to compare every candidate with
        name_pattern: Compiled regex; interfaces whose name does not match
            are skipped entirely
        interfaces: Callable returning a mapping of interface name to address
            strings, defaults to the live host interfaces

    Returns:
        The best matching IPv6 address, or None if there is no IPv6 candidate

    Raises:
        AddressEnumerationError: If interfaces or addresses cannot be listed or parsed
    """
    provider = interfaces or list_interface_addresses
    try:
        iflist = provider()
    except Exception as e:
        raise AddressEnumerationError(f"error getting interface list: {e}") from e

    best_score = -1
    best_match: Optional[ipaddress.IPv6Address] = None

    for name, addrs in iflist.items():
        if name_pattern is not None and not name_pattern.search(name):
            continue

        for addr in addrs:
            stripped = _strip_address(addr)
            try:
                ip = ipaddress.ip_address(stripped)
            except ValueError as e:
                raise AddressEnumerationError(
                    f"could not parse address {addr!r} of interface {name}") from e

            # IPv4, mapped or not, is never a candidate
            if ip.version == 4 or ip.ipv4_mapped is not None:
                continue

            score = match_score(reference, ip)
            if score > best_score:
                best_match = ip
                best_score = score

    if best_match is not None:
        logger.debug(f"Selected {best_match} for {reference} ({best_score} matching bits)")
    return best_match


def parse_ipv6(text: str) -> ipaddress.IPv6Address:
    """Parse a textual IPv6 address, rejecting IPv4 and IPv4-mapped forms.

    Raises:
        ValueError: If the text is not an IPv6 address
    """
    ip = ipaddress.ip_address(text.strip())
    if ip.version != 6 or ip.ipv4_mapped is not None:
        raise ValueError(f"{text!r} is not an IPv6 address")
    return ip


def split_host_port(addr: str) -> Tuple[str, int]:
    """Split ``host:port`` or ``[v6host]:port`` into its host and integer port."""
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0 or addr[end + 1:end + 2] != ":":
            raise ValueError(f"malformed address {addr!r}")
        host, port_str = addr[1:end], addr[end + 2:]
    else:
        host, sep, port_str = addr.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {addr!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address {addr!r}")

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port in address {addr!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range in address {addr!r}")
    return host, port


def join_host_port(host: str, port: int) -> str:
    """Inverse of split_host_port, bracketing hosts that contain a colon."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def udp6_sockaddr(host: str, port: int) -> tuple:
    """Resolve a host and port to an IPv6 UDP socket address tuple.

    An empty host means the unspecified address. Zone suffixes such as
    ``fe80::1%eth0`` are resolved to a scope id.
    """
    infos = socket.getaddrinfo(host or "::", port, socket.AF_INET6, socket.SOCK_DGRAM)
    return infos[0][4]


def multicast_interfaces() -> List[Tuple[str, int]]:
    """List (name, index) of every non-loopback interface on the host."""
    try:
        addrs = psutil.net_if_addrs()
    except Exception as e:
        raise OSError(f"error getting interface addresses: {e}") from e

    result = []
    for index, name in socket.if_nameindex():
        if name == "lo":
            continue
        if any(_is_loopback(a.address) for a in addrs.get(name, [])
               if a.family in (socket.AF_INET, socket.AF_INET6)):
            continue
        result.append((name, index))
    return result


def _is_loopback(addr: str) -> bool:
    try:
        return ipaddress.ip_address(_strip_address(addr)).is_loopback
    except ValueError:
        return False


def short_hostname() -> str:
    """Return the host name with any domain part removed."""
    return socket.gethostname().split(".", 1)[0]
