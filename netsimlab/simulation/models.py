"""Pydantic models and enums describing the outcome of a simulated request."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from netsimlab.topology.models import RouteEntry


class FailureKind(str, Enum):
    # path resolution
    INVALID_ADDRESS = "invalid-address"
    SOURCE_NOT_FOUND = "source-not-found"
    NO_GATEWAY = "no-gateway"
    GATEWAY_DISCONNECTED = "gateway-disconnected"
    EMPTY_ROUTING_TABLE = "empty-routing-table"
    NO_ROUTE = "no-route"
    ROUTES_EXHAUSTED = "routes-exhausted"
    ROUTING_LOOP = "routing-loop"
    HOP_LIMIT_EXCEEDED = "hop-limit-exceeded"
    # DNS
    DNS_SERVER_NOT_FOUND = "dns-server-not-found"
    NOT_A_DNS_SERVER = "not-a-dns-server"
    DNS_SERVER_UNREACHABLE = "dns-server-unreachable"
    DOMAIN_NOT_FOUND = "domain-not-found"
    ADDRESS_CONFLICT = "address-conflict"
    # HTTP
    HOST_NOT_FOUND = "host-not-found"
    NOT_A_WEB_SERVER = "not-a-web-server"
    WEB_SERVER_UNREACHABLE = "web-server-unreachable"
    PORT_MISMATCH = "port-mismatch"


class RouteFailureReason(str, Enum):
    """Why a single candidate route could not be used."""

    DESTINATION_MISSING = "destination device does not exist"
    NO_INTERFACE_IN_SUBNET = "router has no interface in the destination subnet"
    DESTINATION_DISCONNECTED = "no physical link to the destination"
    NEXT_HOP_NOT_FOUND = "next-hop router does not exist"
    NEXT_HOP_NOT_ROUTER = "next hop is not a router"
    NEXT_HOP_DISCONNECTED = "no physical link to the next hop"
    NO_COMMON_SUBNET = "no common subnet with the next hop"


class FailedRoute(BaseModel):
    route: RouteEntry
    reason: RouteFailureReason
    detail: str = ""

    def describe(self) -> str:
        """E.g. ``R3 (metric 1, no physical link to the next hop)``."""
        hop = "direct" if self.route.is_direct else self.route.next_hop
        text = self.detail or self.reason.value
        return f"{hop} (metric {self.route.metric}, {text})"


class SimulationStep(BaseModel):
    device: str
    action: str
    route_entry: Optional[RouteEntry] = None
    failed_routes: list[FailedRoute] = Field(default_factory=list)


class SimulationResult(BaseModel):
    success: bool
    path: list[str] = Field(default_factory=list)
    message: str = ""
    steps: list[SimulationStep] = Field(default_factory=list)
    failure: Optional[FailureKind] = None
    failed_routes: list[FailedRoute] = Field(default_factory=list)
    # resolver failure underneath a DNS / HTTP failure
    path_failure: Optional[FailureKind] = None

    # round trip (DNS / HTTP)
    is_round_trip: bool = False
    request_path: list[str] = Field(default_factory=list)
    response_path: list[str] = Field(default_factory=list)
    request_label: str = ""
    response_label: str = ""

    # DNS
    domain: str = ""
    resolved_address: str = ""

    # HTTP
    http_success: Optional[bool] = None
    http_status_code: Optional[int] = None
    content: str = ""
    dns: Optional[SimulationResult] = None

    @property
    def chosen_routes(self) -> list[RouteEntry]:
        """Route entries actually used, one per router hop."""
        return [s.route_entry for s in self.steps if s.route_entry is not None]
