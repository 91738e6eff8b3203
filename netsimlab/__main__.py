"""netsimlab command dispatcher.

Sub-commands:
  simulate  Ping / DNS / HTTP simulation over a topology file
  topology  Show, draw and check topology files

Examples:
  netsimlab simulate ping lab.json 192.168.1.10 192.168.2.10

  netsimlab simulate http lab.json 192.168.1.10 www.example.com --format markdown

  netsimlab topology diagram lab.json --style subnets
"""

from __future__ import annotations

import os
import sys

from tabulate import tabulate

from netsimlab import __version__, configure_logging
from netsimlab import glogger

COMMANDS = {
    "simulate": ("netsimlab.simulation.cli", "Ping / DNS / HTTP simulation"),
    "topology": ("netsimlab.topology.cli", "Inspect, draw and check topologies"),
}


def _print_usage() -> None:
    print("usage: netsimlab <command> [options]\n")
    print("Available commands:")
    for cmd, (_, desc) in COMMANDS.items():
        print(f"  {cmd:14s}  {desc}")
    print("\nRun 'netsimlab <command> --help' for command-specific options.")


def _print_startup_banner() -> None:
    from netsimlab.simulation.resolver import MAX_HOPS

    rows = [
        ["version", __version__],
        ["max hops", str(MAX_HOPS)],
        ["log level", os.getenv("LOGURU_LEVEL", "DEBUG")],
    ]
    classroom = os.environ.get("NETSIMLAB_CLASSROOM")
    if classroom:
        rows.append(["classroom", classroom])

    table_lines = tabulate(rows, tablefmt="mixed_grid").split("\n")
    width = len(table_lines[0])
    header = [
        "┍" + "━" * (width - 2) + "┑",
        "│ " + "netsimlab".center(width - 4) + " │",
        table_lines[0].replace("┍", "┝").replace("┑", "┥").replace("┯", "┿"),
    ]
    glogger.opt(raw=True).info("\n{}\n", "\n".join(header + table_lines[1:]))


def main(args: list[str] | None = None) -> None:
    """Dispatch to the sub-CLI named by the first argument."""
    argv = sys.argv[1:] if args is None else list(args)

    configure_logging()
    _print_startup_banner()

    if not argv or argv[0] in ("-h", "--help"):
        _print_usage()
        sys.exit(0 if argv else 1)

    if argv[0] in ("-V", "--version"):
        print(f"netsimlab {__version__}")
        sys.exit(0)

    command = argv[0]
    if command not in COMMANDS:
        print(f"netsimlab: unknown command '{command}'\n", file=sys.stderr)
        _print_usage()
        sys.exit(1)

    module_path, _ = COMMANDS[command]

    # Import and call the sub-CLI's main(), passing remaining args
    from importlib import import_module

    module = import_module(module_path)
    module.main(argv[1:])


if __name__ == "__main__":
    main()
