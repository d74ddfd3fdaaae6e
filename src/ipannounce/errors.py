"""Exception types raised by ipannounce."""


class IPAnnounceError(Exception):
    """Base class for all ipannounce errors."""


class AddressEnumerationError(IPAnnounceError):
    """Listing or parsing the host's interface addresses failed."""


class ListenError(IPAnnounceError):
    """A listening socket could not be opened or bound."""


class GroupJoinError(IPAnnounceError):
    """The multicast group could not be joined on an interface."""


class SendError(IPAnnounceError):
    """A datagram could not be sent."""


class ReceiveError(IPAnnounceError):
    """Reading from a listening socket failed for a reason other than a timeout."""


class MessageError(IPAnnounceError, ValueError):
    """A datagram did not contain a well-formed protocol message."""
