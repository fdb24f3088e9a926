#!/usr/bin/env python3
"""
CLI for running a telemetry session from the command line.

Usage:
    pixel-telemetry run --url https://example.com/ --duration 60
    pixel-telemetry locate
    pixel-telemetry send click label=signup element_type=button
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from colorama import Fore, Style, just_fix_windows_console

from .client import PixelClient
from .config import PixelConfig
from .errors import ConfigError
from .location import LocationResolver
from .session import PageContext


def colorize(text: str, color: str) -> str:
    return f"{color}{text}{Style.RESET_ALL}"


def parse_data(pairs: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` arguments into event data (values parsed as JSON when possible)."""
    data: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Expected key=value, got {pair!r}")
        key, raw = pair.split("=", 1)
        try:
            data[key] = json.loads(raw)
        except json.JSONDecodeError:
            data[key] = raw
    return data


def load_config(args) -> PixelConfig:
    if args.config:
        if args.config.endswith((".yaml", ".yml")):
            config = PixelConfig.from_yaml(args.config)
        else:
            config = PixelConfig.from_json(args.config)
    else:
        config = PixelConfig()

    if getattr(args, "collector", None):
        config.collector_url = args.collector
    if getattr(args, "debug", False):
        config.debug = True
    return config


async def cmd_run(args) -> int:
    """Run a session until the duration elapses or the process is signalled."""
    config = load_config(args)
    client = PixelClient(
        config=config,
        page=PageContext(url=args.url, referrer=args.referrer, title=args.title),
    )

    ended = asyncio.Event()
    client.termination.register(ended.set)

    await client.start(bind_process_exit=True)
    print(colorize("Session:", Style.BRIGHT), client.session_id)

    try:
        await asyncio.wait_for(ended.wait(), timeout=args.duration)
    except asyncio.TimeoutError:
        client.terminate()

    await client.stop()

    stats = client.stats
    print(colorize("Batches sent:", Style.BRIGHT), stats["batches_sent"])
    print(colorize("Events sent:", Style.BRIGHT), stats["events_sent"])
    if stats["flush_errors"]:
        print(colorize(f"Flush errors: {stats['flush_errors']}", Fore.YELLOW))
    return 0


async def cmd_locate(args) -> int:
    """Resolve and print the geolocation."""
    config = load_config(args)
    resolver = LocationResolver(url=config.geo_url, timeout_seconds=config.geo_timeout_seconds)
    location = await resolver.resolve()

    for key, value in location.to_dict().items():
        print(f"{colorize(key + ':', Fore.CYAN)} {value}")
    return 0 if not location.is_unknown else 1


async def cmd_send(args) -> int:
    """Send a single event and report whether the collector accepted it."""
    config = load_config(args)
    client = PixelClient(config=config, page=PageContext(url=args.url))
    client.track(args.type, parse_data(args.data))

    try:
        delivered = await client.flush()
    finally:
        await client.transport.stop()

    if delivered:
        print(colorize("Delivered", Fore.GREEN))
        return 0
    print(colorize("Delivery failed", Fore.RED), file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pixel-telemetry", description="Telemetry client")
    parser.add_argument("--config", help="YAML or JSON config file")
    parser.add_argument("--collector", help="Collector URL (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Print batches instead of sending")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a telemetry session")
    run.add_argument("--url", default="", help="Page URL stamped on events")
    run.add_argument("--referrer", default="")
    run.add_argument("--title", default="")
    run.add_argument("--duration", type=float, default=None, help="Seconds to run (default: until signalled)")
    run.set_defaults(func=cmd_run)

    locate = sub.add_parser("locate", help="Resolve the session geolocation")
    locate.set_defaults(func=cmd_locate)

    send = sub.add_parser("send", help="Send one event")
    send.add_argument("type", help="Event type (e.g. click)")
    send.add_argument("data", nargs="*", help="key=value pairs")
    send.add_argument("--url", default="")
    send.set_defaults(func=cmd_send)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    just_fix_windows_console()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(args.func(args))
    except (ConfigError, ValueError) as e:
        print(colorize(f"Error: {e}", Fore.RED), file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
