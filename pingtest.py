#!/usr/bin/env python3
"""ICMP echo (ping) command-line tool."""

import argparse
import logging
import signal
import sys
from enum import IntEnum
from types import FrameType

from common.config import ConfigError, PingConfig, apply_env, load_config, parse_duration
from common.protocol import DEFAULT_INTERVAL_S, DEFAULT_TIMEOUT_S, MIN_PAYLOAD_SIZE, TRACE, PingError
from session.engine import Pinger
from session.report import ConsoleObserver, StatisticsReport

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 5


class ExitCode(IntEnum):
    """Exit codes for the ping tool."""

    SUCCESS = 0  # At least one reply received
    NO_REPLIES = 1  # Ran to completion, no replies
    ERROR = 2  # Resolution, socket, receive or configuration failure


def _duration(text: str) -> float:
    """argparse type for durations like 500ms, 2s or 1.5."""
    try:
        return parse_duration(text)
    except ConfigError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Send ICMP echo requests to a host",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s www.github.com                 Ping 5 times
  %(prog)s -c www.github.com              Ping until Ctrl-C
  %(prog)s -n 5 -i 500ms www.github.com   Ping 5 times at 500ms intervals
  %(prog)s -t 10s www.github.com          Ping for 10 seconds
  %(prog)s config.yaml                    Ping with settings from a YAML file
  sudo %(prog)s --privileged ::1          Send raw ICMP (requires root)
""",
    )
    parser.add_argument("host", help="Host name, IP address, or .yaml/.yml config file")
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=DEFAULT_COUNT,
        help=f"Stop after this many replies, 0 = no limit (default: {DEFAULT_COUNT})",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=_duration,
        default=DEFAULT_INTERVAL_S,
        help=f"Wait between requests, e.g. 500ms or 2s (default: {DEFAULT_INTERVAL_S:g}s)",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=_duration,
        default=DEFAULT_TIMEOUT_S,
        help=f"Stop after this long regardless of count (default: {DEFAULT_TIMEOUT_S:g}s)",
    )
    parser.add_argument(
        "-c",
        "--continuous",
        action="store_true",
        help="Ping until interrupted (ignores count and timeout)",
    )
    parser.add_argument(
        "-s",
        "--size",
        type=int,
        default=MIN_PAYLOAD_SIZE,
        help=f"Payload size in bytes, at least {MIN_PAYLOAD_SIZE} (default: {MIN_PAYLOAD_SIZE})",
    )
    parser.add_argument(
        "--privileged",
        action="store_true",
        help="Send raw ICMP instead of unprivileged datagram ICMP (requires root)",
    )
    parser.add_argument("-S", "--source", type=str, help="Source address to send from")
    family = parser.add_mutually_exclusive_group()
    family.add_argument("-4", dest="network", action="store_const", const="ip4", help="Use IPv4")
    family.add_argument("-6", dest="network", action="store_const", const="ip6", help="Use IPv6")
    parser.add_argument(
        "--no-record",
        action="store_true",
        help="Do not keep RTT samples (min/avg/max are not reported)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose", action="count", default=0, help="More logging (-vv for per-packet trace)"
    )
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    return parser


def _log_level(args: argparse.Namespace) -> int:
    if args.quiet:
        return logging.ERROR
    return {0: logging.WARNING, 1: logging.DEBUG}.get(args.verbose, TRACE)


def config_from_args(args: argparse.Namespace) -> tuple[str, PingConfig]:
    """Build (host, config) from parsed arguments, a YAML file, and the environment."""
    if args.host.endswith((".yaml", ".yml")):
        host, config = load_config(args.host)
    else:
        host = args.host
        config = PingConfig(
            interval_s=args.interval,
            timeout_s=None if args.continuous else args.timeout,
            count=0 if args.continuous else args.count,
            size=args.size,
            privileged=args.privileged,
            record_rtts=not args.no_record,
            source=args.source,
            network=args.network or "ip",
        )
    return host, apply_env(config).validate()


def run_ping(host: str, config: PingConfig) -> int:
    """Run one ping session and print results. Returns exit code."""
    observer = ConsoleObserver()
    pinger = Pinger(host, config, observer=observer)

    def handle_signal(_sig: int, _frame: FrameType | None) -> None:
        logger.info("Signal received - stopping")
        pinger.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        ip_addr = pinger.resolve()
        print(f"PING {host} ({ip_addr}):", flush=True)
        stats = pinger.run()
    except PingError as e:
        logger.error(f"{host}: {e}")
        return ExitCode.ERROR

    return ExitCode.SUCCESS if StatisticsReport(stats).success() else ExitCode.NO_REPLIES


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=_log_level(args),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        host, config = config_from_args(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return ExitCode.ERROR

    return run_ping(host, config)


if __name__ == "__main__":
    sys.exit(main())
