"""Main entry point for the ipannounce package."""

import argparse
import ipaddress
import logging
import os
import re
import sys
from typing import List, Optional

from .errors import IPAnnounceError
from .utils.addresses import join_host_port, parse_ipv6, select_matching_ip, short_hostname
from .utils.logs import setup_logging

logger = logging.getLogger(__name__)

# ff15::793e:287a
#   ff       multicast
#   1        flags: transient (non-permanent) group
#   5        scope: site-local, not routed off site
#   793e:287a  group id, chosen randomly
DEFAULT_GROUP = "ff15::793e:287a"
DEFAULT_PORT = 5190


def ipv6_address(text: str) -> ipaddress.IPv6Address:
    """argparse type for an IPv6 address."""
    try:
        return parse_ipv6(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{text!r} is not an IPv6 address")


def multicast_group(text: str) -> ipaddress.IPv6Address:
    """argparse type for an IPv6 multicast group."""
    ip = ipv6_address(text)
    if not ip.is_multicast:
        raise argparse.ArgumentTypeError(f"{text!r} is not an IPv6 multicast address")
    return ip


def port_number(text: str) -> int:
    """argparse type for a UDP port."""
    try:
        port = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{text!r} is not a port number")
    if not 0 < port <= 65535:
        raise argparse.ArgumentTypeError(f"port {port} out of range")
    return port


def regex(text: str) -> re.Pattern:
    """argparse type for a regular expression."""
    try:
        return re.compile(text)
    except re.error as e:
        raise argparse.ArgumentTypeError(f"could not compile regex {text!r}: {e}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    default_group = os.environ.get("IPANNOUNCE_GROUP", DEFAULT_GROUP)
    default_port = os.environ.get("IPANNOUNCE_PORT", str(DEFAULT_PORT))

    parser = argparse.ArgumentParser(
        prog="ipannounce",
        description="Announce IPv6 addresses with hostnames over link-local multicast")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--syslog", action="store_true",
                        help="Log to the system log instead of stderr")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Announce command
    announce_parser = subparsers.add_parser("announce", help="Answer solicitations on a multicast group")
    announce_parser.add_argument("--group", type=multicast_group, default=default_group,
                                 help=f"Multicast group to join (default: {default_group})")
    announce_parser.add_argument("--port", type=port_number, default=default_port,
                                 help=f"Port to listen on (default: {default_port})")
    announce_parser.add_argument("--listen-host", default="::", help="Address to listen on")

    # Solicit command
    solicit_parser = subparsers.add_parser("solicit", help="Solicit announcements and print replies")
    solicit_parser.add_argument("--selector", type=ipv6_address, required=True,
                                help="Interface address most like this address is sent as the reply address")
    solicit_parser.add_argument("--ifpat", type=regex,
                                help="Regex an interface name must match to have its addresses selected")
    solicit_parser.add_argument("--group", type=multicast_group, default=default_group,
                                help=f"Multicast group to solicit (default: {default_group})")
    solicit_parser.add_argument("--port", type=port_number, default=default_port,
                                help=f"Port announcers listen on (default: {default_port})")
    solicit_parser.add_argument("--listen-port", type=port_number, default=DEFAULT_PORT,
                                help=f"Port to receive replies on (default: {DEFAULT_PORT})")
    solicit_parser.add_argument("--listen-host", default="::", help="Address to receive replies on")
    solicit_parser.add_argument("--window", type=float, default=10.0,
                                help="Seconds to collect replies for")

    # Select command
    select_parser = subparsers.add_parser("select", help="Print the local address most like a selector")
    select_parser.add_argument("--selector", type=ipv6_address, required=True,
                               help="Address to match local interface addresses against")
    select_parser.add_argument("--ifpat", type=regex,
                               help="Regex an interface name must match to have its addresses selected")

    # Version command
    subparsers.add_parser("version", help="Show version information")

    return parser.parse_args(argv)


def select_source_ip(args: argparse.Namespace) -> ipaddress.IPv6Address:
    """Run the address matcher for --selector/--ifpat, exiting if nothing matches."""
    source_ip = select_matching_ip(args.selector, args.ifpat)
    if source_ip is None:
        logger.error("No source IP could be selected with provided selector and ifpat args")
        sys.exit(1)
    return source_ip


def run_select(args: argparse.Namespace) -> None:
    source_ip = select_source_ip(args)
    print(f"IP most like selector is: {source_ip}")
    print(f"Hostname: {short_hostname()}")


def run_announce(args: argparse.Namespace) -> None:
    from .announcer import run_announcer

    listen_addr = join_host_port(args.listen_host, args.port)
    logger.info(f"Announcing on {listen_addr}, group {args.group}")
    run_announcer(listen_addr, args.group, hostname_func=short_hostname)


def run_solicit(args: argparse.Namespace) -> None:
    from .solicitor import print_response, run_solicitor

    source_ip = select_source_ip(args)
    listen_addr = join_host_port(args.listen_host, args.listen_port)
    logger.info(f"Soliciting group {args.group} port {args.port} for {source_ip}")
    responses = run_solicitor(listen_addr, source_ip, args.group, args.port,
                              on_response=print_response, window=args.window)
    logger.info(f"{len(responses)} hosts responded")


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    if args.command == "version":
        from . import __version__
        print(f"ipannounce version {__version__}")
        return

    if args.command is None:
        print("Error: Command is required. Use --help for available commands.")
        sys.exit(1)

    log_level = logging.WARNING
    if args.debug:
        log_level = logging.DEBUG
    elif args.verbose or args.command == "announce":
        log_level = logging.INFO
    setup_logging(log_level, use_syslog=args.syslog)

    commands = {
        "announce": run_announce,
        "solicit": run_solicit,
        "select": run_select,
    }
    try:
        commands[args.command](args)
    except IPAnnounceError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
