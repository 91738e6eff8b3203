"""Simulation subpackage: path resolution plus the DNS and HTTP layers on top."""

from netsimlab.simulation.dns import resolve_dns
from netsimlab.simulation.formatters import MarkdownFormatter, TerminalFormatter, format_summary
from netsimlab.simulation.http import resolve_http
from netsimlab.simulation.models import (
    FailedRoute,
    FailureKind,
    RouteFailureReason,
    SimulationResult,
    SimulationStep,
)
from netsimlab.simulation.resolver import MAX_HOPS, resolve_path

__all__ = [
    "resolve_path",
    "resolve_dns",
    "resolve_http",
    "MAX_HOPS",
    "FailedRoute",
    "FailureKind",
    "RouteFailureReason",
    "SimulationResult",
    "SimulationStep",
    "TerminalFormatter",
    "MarkdownFormatter",
    "format_summary",
]
