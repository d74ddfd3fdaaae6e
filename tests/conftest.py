import logging
import socket
import struct

import pytest


class FakeSocket:
    """Datagram socket double driven by its FakeSocketFactory."""

    def __init__(self, factory, family, type):
        self.factory = factory
        self.family = family
        self.type = type
        self.options = []
        self.timeouts = []
        self.sent = []
        self.bound = None
        self.connected = None
        self.closed = False

    def _check(self, name):
        exc = self.factory.fail_on.get(name)
        if exc is not None:
            raise exc

    def setsockopt(self, level, opt, value):
        if opt == getattr(socket, "IPV6_JOIN_GROUP", None):
            index = struct.unpack('@I', value[16:])[0]
            if index in self.factory.fail_join:
                raise OSError(19, "No such device")
        self.options.append((level, opt, value))

    def bind(self, addr):
        self._check("bind")
        self.bound = addr

    def connect(self, addr):
        self._check("connect")
        self.connected = addr

    def send(self, data):
        self._check("send")
        self.sent.append(data)
        self.factory.outgoing.append((self.connected, data))
        return len(data)

    def settimeout(self, timeout):
        self.timeouts.append(timeout)

    def recvfrom(self, bufsize):
        if self.factory.on_recv is not None:
            self.factory.on_recv(self)
        if self.factory.incoming:
            item = self.factory.incoming.pop(0)
        else:
            item = self.factory.end_exc
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self.closed = True


class FakeSocketFactory:
    """Stands in for socket.socket and records every socket created."""

    def __init__(self):
        self.sockets = []
        self.incoming = []
        self.outgoing = []
        self.end_exc = OSError(9, "Bad file descriptor")
        self.fail_on = {}
        self.fail_join = set()
        self.on_recv = None

    def __call__(self, family=socket.AF_INET6, type=socket.SOCK_DGRAM, *args):
        self._check_create()
        sock = FakeSocket(self, family, type)
        self.sockets.append(sock)
        return sock

    def _check_create(self):
        exc = self.fail_on.get("create")
        if exc is not None:
            raise exc


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now
        self.start = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds

    @property
    def elapsed(self):
        return self.now - self.start


@pytest.fixture
def socket_factory():
    """Fixture for a recording fake socket factory."""
    return FakeSocketFactory()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def restore_root_logger():
    """Put back the root logger's handlers and level after a test reconfigures it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
