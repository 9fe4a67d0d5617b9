"""CLI entry point for Detour.

Runs a single call through the resilient transport, or only its DoH
resolver, and prints the diagnostic trail for troubleshooting.

Examples:
    ```bash
    python -m detour fetch https://xyz.supabase.co/rest/v1/ --show-log
    python -m detour fetch https://api.example.com/items -X POST -H "Content-Type: application/json" -d '{"a": 1}'
    python -m detour resolve api.example.com
    python -m detour fetch https://api.example.com --config config/detour.yaml --log-level DEBUG
    ```
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from detour.client import ResilientTransport, TransportConfig
from detour.core.diagnostics import DiagnosticLog
from detour.core.exceptions import ConfigurationError
from detour.core.logger import Logger, StructuredFormatter
from detour.models import RequestOptions
from detour.utils.doh import DohResolver
from detour.utils.http import AiohttpFetcher


logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="detour",
        description="Resilient HTTP transport with DoH and relay fallbacks",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Transport config path (YAML)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level (default: WARNING)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    fetch = commands.add_parser("fetch", help="Fetch a URL with fallbacks")
    fetch.add_argument("url", help="URL to fetch")
    fetch.add_argument("-X", "--method", default="GET", help="HTTP method (default: GET)")
    fetch.add_argument(
        "-H",
        "--header",
        action="append",
        default=[],
        metavar="NAME:VALUE",
        help="Request header, repeatable",
    )
    fetch.add_argument("-d", "--data", help="Request body")
    fetch.add_argument(
        "--show-log",
        action="store_true",
        help="Print the diagnostic trail after the call",
    )

    resolve = commands.add_parser("resolve", help="Resolve a hostname via DoH only")
    resolve.add_argument("hostname", help="Hostname to resolve")

    return parser.parse_args(argv)


def parse_headers(values: list[str]) -> dict[str, str]:
    """Parse ``NAME:VALUE`` strings into a header dict.

    Raises:
        ConfigurationError: If an entry has no colon or an empty name.
    """
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise ConfigurationError(f"Invalid header {value!r}, expected NAME:VALUE")
        headers[name.strip()] = content.strip()
    return headers


def setup_logging(level: str) -> None:
    """Install a ``StructuredFormatter`` on the root handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def _print_log(diagnostics: DiagnosticLog) -> None:
    print("--- diagnostics ---", file=sys.stderr)
    for line in diagnostics.lines():
        print(line, file=sys.stderr)


async def run_fetch(args: argparse.Namespace, config: TransportConfig) -> int:
    """Fetch ``args.url`` and print the response. Returns 0 on a 2xx."""
    options = RequestOptions(
        method=args.method,
        headers=parse_headers(args.header),
        body=args.data,
    )
    async with ResilientTransport(config) as transport:
        outcome = await transport.attempt(args.url, options)
        if args.show_log:
            _print_log(transport.diagnostics)

    if outcome.response is None:
        logger.error("fetch_failed", url=args.url, error=repr(outcome.error))
        return 1

    response = outcome.response
    print(f"{response.status} {response.url}", file=sys.stderr)
    print(response.text())
    return 0 if response.ok else 1


async def run_resolve(args: argparse.Namespace, config: TransportConfig) -> int:
    """Resolve ``args.hostname`` through DoH only. Returns 0 on an answer."""
    diagnostics = DiagnosticLog(config.diagnostics.capacity)
    async with AiohttpFetcher(timeout=config.attempt_timeout) as fetcher:
        resolver = DohResolver(
            fetcher,
            endpoint=config.doh.endpoint,
            diagnostics=diagnostics,
            max_response_size=config.doh.max_response_size,
        )
        ip = await resolver.resolve(args.hostname)

    _print_log(diagnostics)
    if ip is None:
        return 1
    print(ip)
    return 0


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, load config, and run the command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = (
            TransportConfig.from_yaml(str(args.config)) if args.config else TransportConfig()
        )
        if args.command == "fetch":
            return await run_fetch(args, config)
        return await run_resolve(args, config)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error("config_error", error=str(e))
        return 2
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
