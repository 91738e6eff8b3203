"""Topology subpackage.

Address helpers, pydantic models for devices and links, snapshot-in /
snapshot-out mutation functions, JSON import/export and Mermaid diagrams.
"""

from netsimlab.topology.addressing import derive_subnet, is_in_same_subnet, validate_address
from netsimlab.topology.editor import (
    add_connection,
    add_device,
    add_dns_record,
    audit_topology,
    remove_connection,
    remove_device,
    remove_dns_record,
    set_routing_table,
    update_device,
)
from netsimlab.topology.io import dump_topology, load_topology, parse_topology
from netsimlab.topology.mermaid import PathMermaidGenerator, TopologyMermaidGenerator
from netsimlab.topology.models import (
    Connection,
    Device,
    DeviceKind,
    DnsRecord,
    NetworkInterface,
    RouteEntry,
    Topology,
)

__all__ = [
    "derive_subnet",
    "is_in_same_subnet",
    "validate_address",
    "add_device",
    "update_device",
    "remove_device",
    "add_connection",
    "remove_connection",
    "set_routing_table",
    "add_dns_record",
    "remove_dns_record",
    "audit_topology",
    "load_topology",
    "parse_topology",
    "dump_topology",
    "TopologyMermaidGenerator",
    "PathMermaidGenerator",
    "Connection",
    "Device",
    "DeviceKind",
    "DnsRecord",
    "NetworkInterface",
    "RouteEntry",
    "Topology",
]
