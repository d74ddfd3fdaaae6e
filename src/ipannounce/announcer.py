"""Announcer role: answer solicitations multicast to a group."""

import ipaddress
import logging
import socket
import struct
from typing import Callable, List, Optional, Tuple

from .errors import AddressEnumerationError, GroupJoinError, ListenError, MessageError, ReceiveError
from .messages import Response, Solicitation
from .utils.addresses import (multicast_interfaces, parse_ipv6, select_matching_ip,
                              short_hostname, split_host_port, udp6_sockaddr)

logger = logging.getLogger(__name__)

MAX_DATAGRAM = 1500
# Larger responses risk fragmentation at the IPv6 minimum MTU
RESPONSE_WARN_SIZE = 1400


class Announcer:
    """Listens on a multicast group and replies to each solicitation in turn."""

    def __init__(self,
                 listen_addr: str,
                 group: ipaddress.IPv6Address,
                 logger: Optional[logging.Logger] = None,
                 hostname_func: Callable[[], str] = short_hostname,
                 selector: Callable = select_matching_ip,
                 interfaces_func: Callable[[], List[Tuple[str, int]]] = multicast_interfaces,
                 socket_factory: Callable[..., socket.socket] = socket.socket) -> None:
        """Initialize the announcer.

        Args:
            listen_addr: Address to listen on, e.g. ``[::]:5190``
            group: Multicast group to join
            logger: Logger for per-message diagnostics
            hostname_func: Returns the host name sent in responses
            selector: Address matcher called as ``selector(reference, None)``
            interfaces_func: Returns (name, index) of interfaces to join the group on
            socket_factory: Creates sockets, replaced in tests
        """
        self.listen_addr = listen_addr
        self.group = group
        self.logger = logger or logging.getLogger(__name__)
        self.hostname_func = hostname_func
        self.selector = selector
        self.interfaces_func = interfaces_func
        self.socket_factory = socket_factory
        self.sock: Optional[socket.socket] = None

    def __enter__(self) -> "Announcer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def open(self) -> None:
        """Bind the listening socket.

        Raises:
            ListenError: If the socket cannot be created or bound
        """
        try:
            host, port = split_host_port(self.listen_addr)
            sockaddr = udp6_sockaddr(host, port)
            self.sock = self.socket_factory(socket.AF_INET6, socket.SOCK_DGRAM)
            self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.sock.bind(sockaddr)
        except (OSError, ValueError) as e:
            self.close()
            raise ListenError(f"error listening on {self.listen_addr}: {e}") from e
        self.logger.info(f"Listening on {self.listen_addr}")

    def join_group(self) -> None:
        """Join the multicast group on every non-loopback interface.

        Raises:
            GroupJoinError: If listing interfaces or joining on any one of them fails
        """
        if self.sock is None:
            raise GroupJoinError("socket is not open")
        try:
            iflist = self.interfaces_func()
        except OSError as e:
            raise GroupJoinError(f"error listing interfaces: {e}") from e

        group_bin = socket.inet_pton(socket.AF_INET6, str(self.group))
        for name, index in iflist:
            # v6: member_request = { multicast_addr, intf_idx }
            mreq = group_bin + struct.pack('@I', index)
            try:
                self.sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, mreq)
            except OSError as e:
                raise GroupJoinError(f"error joining {name} to group {self.group}: {e}") from e
            self.logger.info(f"Joined group {self.group} on {name}")

    def handle_datagram(self, data: bytes, src: Optional[tuple] = None) -> Optional[Response]:
        """Answer one received datagram.

        Failures are logged and never raised.

        Returns:
            The response that was sent, or None if the datagram was discarded
            or the reply could not be sent
        """
        self.logger.info(f"Message from {src[0] if src else 'unknown'}")
        self.logger.debug(f"Payload: {data!r}")

        try:
            sol = Solicitation.from_json(data)
        except MessageError as e:
            self.logger.error(str(e))
            return None

        try:
            inform_ip = parse_ipv6(sol.inform)
        except ValueError:
            self.logger.error(f"message inform IP was not a valid IPv6 address: {sol.inform!r}")
            return None

        try:
            response_ip = self.selector(inform_ip, None)
        except AddressEnumerationError as e:
            self.logger.error(f"unable to select matching host ip: {e}")
            return None
        if response_ip is None:
            self.logger.error(f"no host address available to announce for {inform_ip}")
            return None

        try:
            hostname = self.hostname_func()
        except OSError as e:
            self.logger.error(f"unable to get hostname: {e}")
            return None
        if not hostname:
            self.logger.error("unable to get hostname")
            return None

        response = Response(ipstr=str(response_ip), hostname=hostname)
        payload = response.to_json()
        if len(payload) > RESPONSE_WARN_SIZE:
            self.logger.warning(f"length of response is {len(payload)} bytes")
        self.logger.info(f"Response: {payload.decode('utf-8')}")

        if not self._send(payload, inform_ip, sol.response_port):
            return None
        return response

    def _send(self, payload: bytes, dest_ip: ipaddress.IPv6Address, port: int) -> bool:
        """Send one datagram on a fresh unicast socket, without retry."""
        dest = f"[{dest_ip}]:{port}"
        try:
            sockaddr = udp6_sockaddr(str(dest_ip), port)
            resp_sock = self.socket_factory(socket.AF_INET6, socket.SOCK_DGRAM)
        except OSError as e:
            self.logger.error(f"error opening socket to {dest}: {e}")
            return False
        try:
            resp_sock.connect(sockaddr)
            resp_sock.send(payload)
            return True
        except OSError as e:
            self.logger.error(f"error writing response to {dest}: {e}")
            return False
        finally:
            resp_sock.close()

    def serve_forever(self) -> None:
        """Handle solicitations one at a time until reading fails.

        Raises:
            ReceiveError: If reading from the socket fails
        """
        if self.sock is None:
            raise ReceiveError("socket is not open")
        while True:
            try:
                data, src = self.sock.recvfrom(MAX_DATAGRAM)
            except OSError as e:
                raise ReceiveError(f"error reading from socket: {e}") from e
            self.handle_datagram(data, src)

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None


def run_announcer(listen_addr: str, group: ipaddress.IPv6Address, **kwargs) -> None:
    """Run an announcer in the foreground until a fatal socket error.

    Keyword arguments are passed to Announcer.

    Raises:
        ListenError: If the listening socket cannot be bound
        GroupJoinError: If the group cannot be joined on every interface
        ReceiveError: If reading from the socket fails
    """
    with Announcer(listen_addr, group, **kwargs) as announcer:
        announcer.open()
        announcer.join_group()
        announcer.serve_forever()
