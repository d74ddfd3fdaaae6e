"""ipannounce - discover hosts' best-matching IPv6 addresses over link-local multicast."""

__version__ = "0.1.0"

from .announcer import Announcer, run_announcer
from .errors import (AddressEnumerationError, GroupJoinError, IPAnnounceError, ListenError,
                     MessageError, ReceiveError, SendError)
from .messages import Response, Solicitation
from .solicitor import Solicitor, run_solicitor
from .utils.addresses import select_matching_ip

__all__ = [
    "Announcer",
    "Solicitor",
    "Solicitation",
    "Response",
    "run_announcer",
    "run_solicitor",
    "select_matching_ip",
    "IPAnnounceError",
    "AddressEnumerationError",
    "ListenError",
    "GroupJoinError",
    "SendError",
    "ReceiveError",
    "MessageError",
]
