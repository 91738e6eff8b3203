"""Pydantic models and enums for the simulated network topology."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, computed_field, field_validator

from netsimlab.topology.addressing import DEFAULT_SUBNET_MASK, derive_subnet

DEFAULT_HTTP_PORT = 80

# Next-hop values meaning "network is on one of my own interfaces"
DIRECT_NEXT_HOPS = ("-", "direct", "0.0.0.0")
# Older exported files wrote the direct marker in Chinese
_LEGACY_DIRECT_NEXT_HOPS = ("直连",)

_LEGACY_KINDS = {
    "dns": "dns-server",
    "web": "web-server",
    "server": "generic-server",
}


class DeviceKind(str, Enum):
    ROUTER = "router"
    PC = "pc"
    DNS_SERVER = "dns-server"
    WEB_SERVER = "web-server"
    GENERIC_SERVER = "generic-server"

    @property
    def label(self) -> str:
        """Human-readable name used in diagnostics."""
        return _KIND_LABELS[self]


_KIND_LABELS = {
    DeviceKind.ROUTER: "router",
    DeviceKind.PC: "PC",
    DeviceKind.DNS_SERVER: "DNS server",
    DeviceKind.WEB_SERVER: "web server",
    DeviceKind.GENERIC_SERVER: "server",
}


class NetworkInterface(BaseModel):
    id: str = ""
    name: str
    address: str = Field(default="", validation_alias=AliasChoices("address", "ip"))
    subnet_mask: str = Field(
        default=DEFAULT_SUBNET_MASK,
        validation_alias=AliasChoices("subnet_mask", "subnetMask"),
    )

    @field_validator("subnet_mask", mode="before")
    @classmethod
    def _default_mask(cls, value: object) -> object:
        return value or DEFAULT_SUBNET_MASK

    @computed_field  # type: ignore[prop-decorator]
    @property
    def subnet(self) -> str:
        """Network address of this interface (address AND mask)."""
        return derive_subnet(self.address, self.subnet_mask)

    def contains(self, address: str) -> bool:
        """Return True if *address* lies in this interface's subnet."""
        return derive_subnet(address, self.subnet_mask) == self.subnet


class RouteEntry(BaseModel):
    """One routing-table line: where to send packets for *destination*."""

    destination: str
    next_hop: str = Field(validation_alias=AliasChoices("next_hop", "nextHop"))
    metric: int = 1
    interface: str = ""  # egress interface name

    @field_validator("next_hop", mode="before")
    @classmethod
    def _normalize_next_hop(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip()
            if value in _LEGACY_DIRECT_NEXT_HOPS:
                return "-"
        return value

    @property
    def is_direct(self) -> bool:
        return self.next_hop in DIRECT_NEXT_HOPS


class DnsRecord(BaseModel):
    id: str = ""
    domain: str
    address: str = Field(validation_alias=AliasChoices("address", "ip"))
    type: Literal["A"] = "A"


class Device(BaseModel):
    id: str
    name: str
    kind: DeviceKind = Field(validation_alias=AliasChoices("kind", "type"))
    address: str = Field(default="", validation_alias=AliasChoices("address", "ip"))
    interfaces: list[NetworkInterface] = Field(default_factory=list)
    routing_table: list[RouteEntry] = Field(
        default_factory=list,
        validation_alias=AliasChoices("routing_table", "routingTable"),
    )
    # End-device client settings
    gateway: str = ""
    dns_server: str = Field(default="", validation_alias=AliasChoices("dns_server", "dnsServer"))
    # dns-server payload
    dns_records: list[DnsRecord] = Field(
        default_factory=list,
        validation_alias=AliasChoices("dns_records", "dnsRecords"),
    )
    # web-server payload
    content: str = Field(default="", validation_alias=AliasChoices("content", "webContent"))
    port: Optional[int] = None

    @field_validator("kind", mode="before")
    @classmethod
    def _legacy_kind(cls, value: object) -> object:
        if isinstance(value, str):
            return _LEGACY_KINDS.get(value, value)
        return value

    @field_validator("routing_table", "dns_records", "interfaces", mode="before")
    @classmethod
    def _none_is_empty(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("gateway", "dns_server", "content", mode="before")
    @classmethod
    def _none_is_blank(cls, value: object) -> object:
        return "" if value is None else value

    @property
    def is_router(self) -> bool:
        return self.kind == DeviceKind.ROUTER

    @property
    def lan_interface(self) -> Optional[NetworkInterface]:
        """The router's gateway-side interface, if any."""
        return next((i for i in self.interfaces if i.name == "LAN"), None)

    @property
    def subnet_mask(self) -> str:
        """Mask of the interface carrying the primary address."""
        for iface in self.interfaces:
            if iface.address == self.address:
                return iface.subnet_mask
        return DEFAULT_SUBNET_MASK

    @property
    def subnet(self) -> str:
        return derive_subnet(self.address, self.subnet_mask)

    @property
    def listen_port(self) -> int:
        """Web-server listen port (80 when unset)."""
        return self.port or DEFAULT_HTTP_PORT

    def interface_by_id(self, interface_id: str) -> Optional[NetworkInterface]:
        return next((i for i in self.interfaces if i.id == interface_id), None)


class Connection(BaseModel):
    id: str
    source: str
    target: str
    source_interface_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("source_interface_id", "sourceInterfaceId"),
    )
    target_interface_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("target_interface_id", "targetInterfaceId"),
    )

    def joins(self, first_id: str, second_id: str) -> bool:
        """Return True if this link connects the two devices (either direction)."""
        return (self.source == first_id and self.target == second_id) or (
            self.source == second_id and self.target == first_id
        )

    def touches(self, device_id: str) -> bool:
        return device_id in (self.source, self.target)


class Topology(BaseModel):
    """A complete, self-contained network snapshot."""

    devices: list[Device] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)

    def device_by_id(self, device_id: str) -> Optional[Device]:
        return next((d for d in self.devices if d.id == device_id), None)

    def device_by_name(self, name: str) -> Optional[Device]:
        return next((d for d in self.devices if d.name == name), None)

    def devices_at(self, address: str) -> list[Device]:
        """All devices whose primary address is *address* (normally one)."""
        return [d for d in self.devices if d.address == address]

    def connection_between(self, first_id: str, second_id: str) -> Optional[Connection]:
        return next((c for c in self.connections if c.joins(first_id, second_id)), None)

    def neighbors(self, device_id: str) -> list[Device]:
        """Devices physically linked to *device_id*, in connection order."""
        result: list[Device] = []
        for conn in self.connections:
            if not conn.touches(device_id):
                continue
            other = self.device_by_id(conn.target if conn.source == device_id else conn.source)
            if other is not None:
                result.append(other)
        return result
