"""Network Teaching Lab Simulator.

Models a small classroom network (PCs, routers, DNS and web servers) and
simulates Ping, DNS lookups and HTTP requests across it, explaining exactly
where and why a packet stops.

Library use is silent; call :func:`configure_logging` to see the resolver's
hop-by-hop decisions on stderr.
"""

__version__ = "0.1.0"

import os
import sys
from typing import Any, Callable, Dict, Optional

from loguru import logger as glogger

glogger.disable(__name__)

LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def _loguru_skiplog_filter(record: dict) -> bool:  # type: ignore[type-arg]
    """Hide records bound with ``skiplog=True``."""
    return not record["extra"].get("skiplog", False)


def configure_logging(
    level: Optional[str] = None,
    loguru_filter: Callable[[Dict[str, Any]], bool] = _loguru_skiplog_filter,
) -> None:
    """Route netsimlab log records to stderr.

    *level* defaults to ``LOGURU_LEVEL`` from the environment, else ``DEBUG``.
    """
    level = level or os.getenv("LOGURU_LEVEL", "DEBUG")
    glogger.remove()
    glogger.add(sys.stderr, level=level, format=LOG_FORMAT, filter=loguru_filter)  # type: ignore[arg-type]
    glogger.configure(extra={"skiplog": False})
    glogger.enable(__name__)


from netsimlab.exceptions import (  # noqa: E402
    AddressError,
    DeviceNotFoundError,
    LinkError,
    NetSimError,
    RoutingTableError,
    TopologyError,
)
from netsimlab.simulation.dns import resolve_dns  # noqa: E402
from netsimlab.simulation.http import resolve_http  # noqa: E402
from netsimlab.simulation.models import FailureKind, SimulationResult  # noqa: E402
from netsimlab.simulation.resolver import resolve_path  # noqa: E402
from netsimlab.topology.models import Connection, Device, DeviceKind, Topology  # noqa: E402

__all__ = [
    "glogger",
    "configure_logging",
    "resolve_path",
    "resolve_dns",
    "resolve_http",
    "SimulationResult",
    "FailureKind",
    "Device",
    "DeviceKind",
    "Connection",
    "Topology",
    "NetSimError",
    "AddressError",
    "TopologyError",
    "DeviceNotFoundError",
    "LinkError",
    "RoutingTableError",
]
