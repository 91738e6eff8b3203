"""CLI entry point for running simulations against a topology file.

Examples:
  netsimlab simulate ping lab.json 192.168.1.10 192.168.2.10

  netsimlab simulate dns lab.json 192.168.1.10 192.168.3.53 www.example.com

  netsimlab simulate http lab.json 192.168.1.10 www.example.com --port 8080 \\
      --format markdown -o result.md
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger

from netsimlab.exceptions import NetSimError
from netsimlab.simulation.dns import resolve_dns
from netsimlab.simulation.formatters import MarkdownFormatter, TerminalFormatter, format_summary
from netsimlab.simulation.http import resolve_http
from netsimlab.simulation.models import SimulationResult
from netsimlab.simulation.resolver import resolve_path
from netsimlab.topology.io import load_topology
from netsimlab.topology.models import DEFAULT_HTTP_PORT, Topology

OUTPUT_FORMATS = ("text", "json", "markdown", "summary")


def cmd_ping(topology: Topology, args: argparse.Namespace) -> SimulationResult:
    return resolve_path(topology.devices, topology.connections, args.source, args.destination)


def cmd_dns(topology: Topology, args: argparse.Namespace) -> SimulationResult:
    return resolve_dns(topology.devices, topology.connections, args.source, args.dns_server, args.domain)


def cmd_http(topology: Topology, args: argparse.Namespace) -> SimulationResult:
    return resolve_http(
        topology.devices,
        topology.connections,
        args.source,
        args.target,
        port=args.port,
        dns_server_address=args.dns_server,
    )


COMMAND_HANDLERS = {
    "ping": cmd_ping,
    "dns": cmd_dns,
    "http": cmd_http,
}


def build_parser() -> argparse.ArgumentParser:
    """Build argparse parser for the simulate command."""
    parser = argparse.ArgumentParser(
        prog="netsimlab simulate",
        description="Simulate Ping, DNS and HTTP traffic across a saved topology.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging (hop-by-hop decisions)")
    parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument("-o", "--output", help="Output file (default: stdout)")

    subparsers = parser.add_subparsers(dest="command")

    ping = subparsers.add_parser("ping", help="Trace a packet between two addresses")
    ping.add_argument("topology", help="Topology JSON file")
    ping.add_argument("source", help="Source device address")
    ping.add_argument("destination", help="Destination address")

    dns = subparsers.add_parser("dns", help="Resolve a domain through a DNS server")
    dns.add_argument("topology", help="Topology JSON file")
    dns.add_argument("source", help="Source device address")
    dns.add_argument("dns_server", help="DNS server address")
    dns.add_argument("domain", help="Domain to look up")

    http = subparsers.add_parser("http", help="Fetch the page of a web server")
    http.add_argument("topology", help="Topology JSON file")
    http.add_argument("source", help="Source device address")
    http.add_argument("target", help="Web server address or domain")
    http.add_argument(
        "-p",
        "--port",
        type=int,
        default=DEFAULT_HTTP_PORT,
        help=f"Requested port (default: {DEFAULT_HTTP_PORT})",
    )
    http.add_argument("--dns-server", help="DNS server address (default: the source device's DNS setting)")

    return parser


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(args)


def render(result: SimulationResult, kind: str, output_format: str) -> str:
    """Render *result* in one of ``OUTPUT_FORMATS``."""
    if output_format == "json":
        return result.model_dump_json(indent=2)
    if output_format == "markdown":
        return MarkdownFormatter(result, kind=kind).format()
    if output_format == "summary":
        return format_summary(kind, result)
    return TerminalFormatter(result, kind=kind).format()


def main(args: list[str] | None = None) -> None:
    """Main entry point for the simulate CLI.

    Exits 0 when the simulated request succeeded, 2 when it failed, 1 on
    usage or file errors.
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        sys.exit(1)

    if not parsed.verbose:
        logger.remove()
        logger.add(sys.stderr, level="INFO")

    try:
        topology = load_topology(parsed.topology)
        result = COMMAND_HANDLERS[parsed.command](topology, parsed)
        output = render(result, parsed.command, parsed.format)

        if parsed.output:
            Path(parsed.output).write_text(output + "\n")
            logger.info(f"Output written to {parsed.output}")
        else:
            print(output)
    except NetSimError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nAborted.", file=sys.stderr)
        sys.exit(130)

    if not result.success:
        sys.exit(2)


if __name__ == "__main__":
    main()
