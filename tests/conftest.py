"""Shared fixtures for the netsimlab test suite."""

from __future__ import annotations

import pytest

from netsimlab.topology.editor import normalize_topology
from netsimlab.topology.models import Connection, Device, DnsRecord, NetworkInterface, RouteEntry, Topology

# ── device factories ──────────────────────────────────────────────────


@pytest.fixture()
def make_device():
    """Factory fixture returning a Device with customizable fields."""

    def _make(**kwargs):
        defaults = {
            "id": "pc1",
            "name": "PC1",
            "kind": "pc",
            "address": "192.168.1.10",
        }
        defaults.update(kwargs)
        return Device(**defaults)

    return _make


@pytest.fixture()
def make_router():
    """Factory fixture returning a router with a LAN interface and optional extras."""

    def _make(id="r1", name="R1", address="192.168.1.1", mask="255.255.255.0", extra=(), routes=()):
        interfaces = [NetworkInterface(id=f"{id}-lan", name="LAN", address=address, subnet_mask=mask)]
        for iface_name, iface_address in extra:
            interfaces.append(NetworkInterface(id=f"{id}-{iface_name}", name=iface_name, address=iface_address))
        return Device(
            id=id,
            name=name,
            kind="router",
            address=address,
            interfaces=interfaces,
            routing_table=[
                RouteEntry(destination=d, next_hop=h, metric=m, interface=i) for d, h, m, i in routes
            ],
        )

    return _make


# ── scenario topologies ───────────────────────────────────────────────


@pytest.fixture()
def lab_topology(make_router):
    """Two routed LANs joined by a 10.0.0.0/24 backbone.

    192.168.1.0/24: PC1 -- R1
    192.168.2.0/24: R2 -- PC2, DNS1, WEB1
    """
    r1 = make_router(
        id="r1",
        name="R1",
        address="192.168.1.1",
        extra=[("eth1", "10.0.0.1")],
        routes=[
            ("192.168.1.0", "-", 0, "LAN"),
            ("192.168.2.0", "R2", 1, "eth1"),
        ],
    )
    r2 = make_router(
        id="r2",
        name="R2",
        address="192.168.2.1",
        extra=[("eth1", "10.0.0.2")],
        routes=[
            ("192.168.2.0", "-", 0, "LAN"),
            ("192.168.1.0", "R1", 1, "eth1"),
        ],
    )
    devices = [
        Device(id="pc1", name="PC1", kind="pc", address="192.168.1.10", dns_server="192.168.2.53"),
        r1,
        r2,
        Device(id="pc2", name="PC2", kind="pc", address="192.168.2.10"),
        Device(
            id="dns1",
            name="DNS1",
            kind="dns-server",
            address="192.168.2.53",
            dns_records=[
                DnsRecord(id="dns-1-www.example.com", domain="www.example.com", address="192.168.2.80"),
                DnsRecord(id="dns-2-pc.example.com", domain="pc.example.com", address="192.168.2.10"),
                DnsRecord(id="dns-3-ghost.example.com", domain="ghost.example.com", address="192.168.2.99"),
            ],
        ),
        Device(id="web1", name="WEB1", kind="web-server", address="192.168.2.80", content="<h1>Welcome</h1>"),
    ]
    connections = [
        Connection(id="conn-pc1-r1", source="pc1", target="r1"),
        Connection(
            id="conn-r1-r2",
            source="r1",
            target="r2",
            source_interface_id="r1-eth1",
            target_interface_id="r2-eth1",
        ),
        Connection(id="conn-r2-pc2", source="r2", target="pc2"),
        Connection(id="conn-r2-dns1", source="r2", target="dns1"),
        Connection(id="conn-r2-web1", source="r2", target="web1"),
    ]
    return normalize_topology(Topology(devices=devices, connections=connections))


@pytest.fixture()
def set_routes():
    """Return a copy of a topology with one router's table replaced (no validation)."""

    def _set(topology, router_name, routes):
        table = [RouteEntry(destination=d, next_hop=h, metric=m) for d, h, m in routes]
        devices = [
            d.model_copy(update={"routing_table": table}) if d.name == router_name else d for d in topology.devices
        ]
        return topology.model_copy(update={"devices": devices})

    return _set


@pytest.fixture()
def drop_connection():
    """Return a copy of a topology without the given connection id."""

    def _drop(topology, connection_id):
        return topology.model_copy(
            update={"connections": [c for c in topology.connections if c.id != connection_id]}
        )

    return _drop


@pytest.fixture()
def replace_device():
    """Return a copy of a topology with one device's fields updated."""

    def _replace(topology, device_name, **changes):
        devices = [d.model_copy(update=changes) if d.name == device_name else d for d in topology.devices]
        return topology.model_copy(update={"devices": devices})

    return _replace
