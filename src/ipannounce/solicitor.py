"""Solicitor role: multicast one solicitation and collect the responses."""

import ipaddress
import logging
import socket
import time
from typing import Callable, List, Optional

from .errors import ListenError, MessageError, ReceiveError, SendError
from .messages import Response, Solicitation
from .utils.addresses import split_host_port, udp6_sockaddr

logger = logging.getLogger(__name__)

MAX_DATAGRAM = 1500
COLLECT_WINDOW = 10.0  # seconds
READ_TIMEOUT = 10.0  # seconds


def print_response(response: Response) -> None:
    """Print a response as a hostname and address line."""
    print(f"{response.hostname:>16}  {response.ipstr}", flush=True)


class Solicitor:
    """Sends a single solicitation to a group and gathers the replies."""

    def __init__(self,
                 listen_addr: str,
                 reference: ipaddress.IPv6Address,
                 group: ipaddress.IPv6Address,
                 announce_port: int,
                 logger: Optional[logging.Logger] = None,
                 on_response: Optional[Callable[[Response], None]] = None,
                 window: float = COLLECT_WINDOW,
                 clock: Callable[[], float] = time.monotonic,
                 socket_factory: Callable[..., socket.socket] = socket.socket) -> None:
        """Initialize the solicitor.

        Args:
            listen_addr: Address to receive responses on, e.g. ``[::]:5190``;
                its port is sent as the response port
            reference: Address announcers match against and reply to
            group: Multicast group announcers listen on
            announce_port: UDP port announcers listen on
            logger: Logger for diagnostics
            on_response: Called with every response as it arrives
            window: Seconds to collect responses for
            clock: Monotonic clock, replaced in tests
            socket_factory: Creates sockets, replaced in tests
        """
        self.listen_addr = listen_addr
        self.reference = reference
        self.group = group
        self.announce_port = announce_port
        self.logger = logger or logging.getLogger(__name__)
        self.on_response = on_response
        self.window = window
        self.clock = clock
        self.socket_factory = socket_factory
        self.sock: Optional[socket.socket] = None
        self.response_port = 0

    def __enter__(self) -> "Solicitor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def open(self) -> None:
        """Bind the socket responses are received on.

        Raises:
            ListenError: If the socket cannot be created or bound
        """
        try:
            host, self.response_port = split_host_port(self.listen_addr)
            sockaddr = udp6_sockaddr(host, self.response_port)
            self.sock = self.socket_factory(socket.AF_INET6, socket.SOCK_DGRAM)
            self.sock.bind(sockaddr)
        except (OSError, ValueError) as e:
            self.close()
            raise ListenError(f"error listening on {self.listen_addr}: {e}") from e
        self.logger.info(f"Listening for responses on {self.listen_addr}")

    def send_solicitation(self) -> Solicitation:
        """Send the solicitation to the group exactly once.

        Raises:
            SendError: If the solicitation cannot be encoded or sent
        """
        sol = Solicitation(inform=str(self.reference), response_port=self.response_port)
        try:
            payload = sol.to_json()
        except (TypeError, ValueError) as e:
            raise SendError(f"error marshalling solicitation: {e}") from e

        group_dst = f"[{self.group}]:{self.announce_port}"
        try:
            sockaddr = udp6_sockaddr(str(self.group), self.announce_port)
            gsock = self.socket_factory(socket.AF_INET6, socket.SOCK_DGRAM)
        except OSError as e:
            raise SendError(f"error dialing group {group_dst}: {e}") from e
        try:
            gsock.connect(sockaddr)
            gsock.send(payload)
        except OSError as e:
            raise SendError(f"error sending solicitation to group {group_dst}: {e}") from e
        finally:
            gsock.close()

        self.logger.info(f"Sent solicitation to {group_dst}: {payload.decode('utf-8')}")
        return sol

    def collect(self) -> List[Response]:
        """Collect responses until the window elapses.

        A read timeout only means nothing arrived; the window is checked
        again. Responses are not deduplicated.

        Returns:
            Responses in arrival order, possibly empty

        Raises:
            ReceiveError: If reading fails for a reason other than a timeout
        """
        if self.sock is None:
            raise ReceiveError("socket is not open")

        responses: List[Response] = []
        end_listen = self.clock() + self.window
        while True:
            remaining = end_listen - self.clock()
            if remaining <= 0:
                break
            self.sock.settimeout(min(READ_TIMEOUT, remaining))
            try:
                data, src = self.sock.recvfrom(MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError as e:
                raise ReceiveError(f"error reading from socket: {e}") from e

            try:
                resp = Response.from_json(data)
            except MessageError as e:
                self.logger.error(f"{e} (from {src[0]})")
                continue

            responses.append(resp)
            if self.on_response is not None:
                self.on_response(resp)

        self.logger.info(f"Collected {len(responses)} responses")
        return responses

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None


def run_solicitor(listen_addr: str,
                  reference: ipaddress.IPv6Address,
                  group: ipaddress.IPv6Address,
                  announce_port: int,
                  **kwargs) -> List[Response]:
    """Solicit the group once and return the responses gathered in the window.

    Keyword arguments are passed to Solicitor.

    Raises:
        ListenError: If the listening socket cannot be bound
        SendError: If the solicitation cannot be sent
        ReceiveError: If reading fails for a reason other than a timeout
    """
    with Solicitor(listen_addr, reference, group, announce_port, **kwargs) as solicitor:
        solicitor.open()
        solicitor.send_solicitation()
        return solicitor.collect()
