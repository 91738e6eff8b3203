"""CLI entry point for inspecting topology snapshot files.

Examples:
  netsimlab topology show lab.json

  netsimlab topology diagram lab.json --style subnets --highlight PC1,R1,R2,PC2 -o lab.md

  netsimlab topology check submission.json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger
from tabulate import tabulate

from netsimlab.exceptions import NetSimError
from netsimlab.topology.editor import audit_topology
from netsimlab.topology.io import dump_topology, load_topology
from netsimlab.topology.mermaid import TopologyMermaidGenerator
from netsimlab.topology.models import Topology


def _device_rows(topology: Topology) -> list[list[str]]:
    rows = []
    for d in topology.devices:
        if d.is_router:
            detail = ", ".join(f"{i.name}={i.address}/{i.subnet_mask}" for i in d.interfaces)
        elif d.dns_records:
            detail = ", ".join(f"{r.domain}->{r.address}" for r in d.dns_records)
        elif d.port is not None or d.content:
            detail = f"port {d.listen_port}" + (", content set" if d.content else ", no content")
        else:
            detail = ""
        rows.append([d.name, d.kind.value, d.address, d.subnet, detail])
    return rows


def format_table(topology: Topology) -> str:
    """Device, link and routing-table overview for the terminal."""
    lines: list[str] = []
    lines.append(tabulate(_device_rows(topology), headers=["Name", "Kind", "Address", "Subnet", "Details"]))

    lines.append("")
    link_rows = []
    for c in topology.connections:
        source = topology.device_by_id(c.source)
        target = topology.device_by_id(c.target)
        link_rows.append([c.id, source.name if source else c.source, target.name if target else c.target])
    lines.append(tabulate(link_rows, headers=["Connection", "From", "To"]))

    for router in (d for d in topology.devices if d.is_router):
        lines.append(f"\nRouting table of {router.name}:")
        if not router.routing_table:
            lines.append("  (empty)")
            continue
        rows = [[r.destination, r.next_hop, r.metric, r.interface or "-"] for r in router.routing_table]
        lines.append(tabulate(rows, headers=["Destination", "Next hop", "Metric", "Interface"]))

    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    """Build argparse parser for the topology command."""
    parser = argparse.ArgumentParser(
        prog="netsimlab topology",
        description="Inspect, draw and check topology snapshot files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("-o", "--output", help="Output file (default: stdout)")

    subparsers = parser.add_subparsers(dest="command")

    show = subparsers.add_parser("show", help="List devices, links and routing tables")
    show.add_argument("topology", help="Topology JSON file")
    show.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format; json re-exports the normalized snapshot (default: table)",
    )

    diagram = subparsers.add_parser("diagram", help="Render a Mermaid flowchart")
    diagram.add_argument("topology", help="Topology JSON file")
    diagram.add_argument(
        "-d",
        "--style",
        choices=TopologyMermaidGenerator.DIAGRAM_STYLES,
        default="flat",
        help="Diagram style (default: flat)",
    )
    diagram.add_argument("--direction", choices=["LR", "TD"], default="LR", help="Flowchart direction (default: LR)")
    diagram.add_argument("--highlight", help="Comma-separated device names to highlight as a path")

    check = subparsers.add_parser("check", help="Report inconsistencies; exits 1 if any are found")
    check.add_argument("topology", help="Topology JSON file")

    return parser


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(args)


def main(args: list[str] | None = None) -> None:
    """Main entry point for the topology CLI."""
    parser = build_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        sys.exit(1)

    if not parsed.verbose:
        logger.remove()
        logger.add(sys.stderr, level="INFO")

    problems: list[str] = []
    try:
        topology = load_topology(parsed.topology)

        if parsed.command == "show":
            output = dump_topology(topology) if parsed.format == "json" else format_table(topology)
        elif parsed.command == "diagram":
            highlight = [n.strip() for n in parsed.highlight.split(",") if n.strip()] if parsed.highlight else []
            generator = TopologyMermaidGenerator(
                topology,
                style=parsed.style,
                direction=parsed.direction,
                highlight_path=highlight,
            )
            output = generator.generate()
        else:
            problems = audit_topology(topology)
            if problems:
                output = "\n".join(f"- {p}" for p in problems)
            else:
                output = f"OK: {len(topology.devices)} devices, {len(topology.connections)} connections"

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

    if problems:
        sys.exit(1)


if __name__ == "__main__":
    main()
