import ipaddress
import re
import socket
from collections import namedtuple
from unittest import mock

import psutil
import pytest

from ipannounce.announcer import Announcer
from ipannounce.errors import AddressEnumerationError, GroupJoinError
from ipannounce.utils import addresses
from ipannounce.utils.addresses import (join_host_port, list_interface_addresses, match_score,
                                        multicast_interfaces, parse_ipv6, select_matching_ip,
                                        short_hostname, split_host_port)

ip = ipaddress.ip_address

SnicAddr = namedtuple("SnicAddr", "family address netmask broadcast ptp")


def provider(mapping):
    return lambda: mapping


def test_match_score():
    assert match_score(ip("fc00::"), ip("fd35:a2b9:543c:10aa::20")) == 7
    assert match_score(ip("fc00::"), ip("2605:4415:92bc:115f::20")) == 0
    assert match_score(ip("fd00:1:2:3::1"), ip("fd00:1:2:3::1")) == 64


def test_match_score_ignores_interface_identifier():
    assert match_score(ip("fd00:1:2:3::1"), ip("fd00:1:2:3:ffff:ffff:ffff:ffff")) == 64


def test_selects_longest_prefix():
    ifaces = {
        "eth0": ["2605:4415:92bc:115f::20"],
        "eth1": ["fd35:a2b9:543c:10aa::20"],
    }
    best = select_matching_ip(ip("fc00::"), interfaces=provider(ifaces))
    assert best == ip("fd35:a2b9:543c:10aa::20")


def test_more_specific_reference_picks_matching_ula():
    ifaces = {
        "eth0": ["fd00:aaaa::1", "fd00:bbbb::1", "fd00:bbbb:1::1"],
    }
    best = select_matching_ip(ip("fd00:bbbb:1::9"), interfaces=provider(ifaces))
    assert best == ip("fd00:bbbb:1::1")


def test_tie_keeps_first_found():
    ifaces = {
        "eth0": ["fd00:1::1"],
        "eth1": ["fd00:1::2"],
    }
    best = select_matching_ip(ip("fd00:1::99"), interfaces=provider(ifaces))
    assert best == ip("fd00:1::1")


def test_zero_score_candidate_is_still_returned():
    ifaces = {"eth0": ["2605:4415::20"]}
    best = select_matching_ip(ip("fc00::"), interfaces=provider(ifaces))
    assert best == ip("2605:4415::20")


def test_ipv4_and_mapped_addresses_are_never_selected():
    ifaces = {
        "eth0": ["192.168.1.10", "::ffff:192.168.1.10"],
        "lo": ["127.0.0.1"],
    }
    assert select_matching_ip(ip("::ffff:192.168.1.10"), interfaces=provider(ifaces)) is None


def test_name_pattern_excludes_interfaces():
    ifaces = {
        "eth0": ["fc00::1"],
        "wlan0": ["2001:db8::1"],
    }
    best = select_matching_ip(ip("fc00::"), re.compile("^wlan"), interfaces=provider(ifaces))
    assert best == ip("2001:db8::1")


def test_name_pattern_matching_nothing_is_no_match():
    ifaces = {"eth0": ["fc00::1"]}
    assert select_matching_ip(ip("fc00::"), re.compile("^tun"), interfaces=provider(ifaces)) is None


def test_no_ipv6_addresses_is_no_match():
    assert select_matching_ip(ip("fc00::"), interfaces=provider({})) is None


def test_prefix_and_zone_suffixes_are_stripped():
    ifaces = {"eth0": ["fe80::1%eth0", "fd00:1::5/64"]}
    best = select_matching_ip(ip("fd00:1::"), interfaces=provider(ifaces))
    assert best == ip("fd00:1::5")


def test_unparseable_address_aborts():
    ifaces = {"eth0": ["fc00::1", "not-an-address"]}
    with pytest.raises(AddressEnumerationError):
        select_matching_ip(ip("fc00::"), interfaces=provider(ifaces))


def test_listing_failure_aborts():
    def broken():
        raise OSError("netlink unavailable")

    with pytest.raises(AddressEnumerationError, match="interface list"):
        select_matching_ip(ip("fc00::"), interfaces=broken)


def test_default_provider_uses_psutil():
    fake = {
        "lo": [SnicAddr(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None),
               SnicAddr(socket.AF_INET6, "::1", "ffff:ffff:ffff:ffff:ffff:ffff:ffff:ffff", None, None)],
        "eth0": [SnicAddr(psutil.AF_LINK, "52:54:00:12:34:56", None, None, None),
                 SnicAddr(socket.AF_INET6, "fd00:1::5", "ffff:ffff:ffff:ffff::", None, None),
                 SnicAddr(socket.AF_INET6, "fe80::5054:ff:fe12:3456%eth0", "ffff:ffff:ffff:ffff::", None, None)],
    }
    with mock.patch.object(addresses.psutil, "net_if_addrs", return_value=fake):
        assert list_interface_addresses() == {
            "lo": ["127.0.0.1", "::1"],
            "eth0": ["fd00:1::5", "fe80::5054:ff:fe12:3456%eth0"],
        }
        assert select_matching_ip(ip("fd00:1::")) == ip("fd00:1::5")


def test_multicast_interfaces_skips_loopback():
    fake = {
        "lo": [SnicAddr(socket.AF_INET6, "::1", None, None, None)],
        "eth0": [SnicAddr(socket.AF_INET6, "fd00:1::5", None, None, None)],
        "wlan0": [],
    }
    with mock.patch.object(addresses.psutil, "net_if_addrs", return_value=fake), \
            mock.patch.object(addresses.socket, "if_nameindex",
                              return_value=[(1, "lo"), (2, "eth0"), (3, "wlan0")]):
        assert multicast_interfaces() == [("eth0", 2), ("wlan0", 3)]


def test_parse_ipv6():
    assert parse_ipv6("fc00::9") == ip("fc00::9")
    with pytest.raises(ValueError):
        parse_ipv6("10.0.0.1")
    with pytest.raises(ValueError):
        parse_ipv6("::ffff:10.0.0.1")
    with pytest.raises(ValueError):
        parse_ipv6("hostname")


@pytest.mark.parametrize("addr,expected", [
    ("[::]:5190", ("::", 5190)),
    ("[fe80::1%eth0]:5555", ("fe80::1%eth0", 5555)),
    (":5190", ("", 5190)),
    ("localhost:80", ("localhost", 80)),
])
def test_split_host_port(addr, expected):
    assert split_host_port(addr) == expected


@pytest.mark.parametrize("addr", ["::1", "[::1]", "[::1]5190", "host:port", "[::]:70000", "5190"])
def test_split_host_port_rejects(addr):
    with pytest.raises(ValueError):
        split_host_port(addr)


def test_join_host_port():
    assert join_host_port("::", 5190) == "[::]:5190"
    assert join_host_port("localhost", 80) == "localhost:80"


def test_short_hostname_strips_domain():
    with mock.patch.object(addresses.socket, "gethostname", return_value="alpha.example.com"):
        assert short_hostname() == "alpha"


def test_multicast_interfaces_propagates_enumeration_failure():
    with mock.patch.object(addresses.psutil, "net_if_addrs", side_effect=RuntimeError("no netlink")):
        with pytest.raises(OSError, match="no netlink"):
            multicast_interfaces()


def test_group_join_fails_when_interfaces_cannot_be_listed(socket_factory):
    announcer = Announcer("[::]:5190", ip("ff15::793e:287a"), socket_factory=socket_factory)
    announcer.open()
    with mock.patch.object(addresses.psutil, "net_if_addrs", side_effect=RuntimeError("no netlink")):
        with pytest.raises(GroupJoinError, match="no netlink"):
            announcer.join_group()
