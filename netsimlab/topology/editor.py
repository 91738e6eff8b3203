"""Topology mutations: every function takes a snapshot and returns a new one.

Inputs are never modified. A rejected change raises a ``TopologyError``
subclass whose message tells the student what to fix.
"""

from __future__ import annotations

from typing import Any, Iterable

from loguru import logger

from netsimlab.exceptions import (
    AddressConflictError,
    AddressError,
    DeviceNotFoundError,
    DnsRecordError,
    DuplicateDeviceError,
    DuplicateLinkError,
    EndpointLinkError,
    LanConflictError,
    LinkError,
    RoutingTableError,
    SubnetMismatchError,
    TopologyError,
)
from netsimlab.topology.addressing import (
    DEFAULT_SUBNET_MASK,
    derive_subnet,
    is_in_same_subnet,
    is_valid_domain,
    is_valid_mask,
    looks_like_address,
    validate_address,
)
from netsimlab.topology.models import (
    Connection,
    Device,
    DeviceKind,
    DnsRecord,
    NetworkInterface,
    RouteEntry,
    Topology,
)

BACKBONE_PREFIX = "10.0"
BACKBONE_MASK = "255.255.255.0"
FALLBACK_ROUTER_ADDRESS = "192.168.1.1"

# Fields update_device() may change; everything else is derived state
_EDITABLE_FIELDS = frozenset({"name", "address", "subnet_mask", "gateway", "dns_server", "content", "port"})


# ── normalisation ────────────────────────────────────────────────────


def ensure_router_lan_interface(device: Device) -> Device:
    """Return *device* with a well-formed ``LAN`` interface if it is a router."""
    if not device.is_router:
        return device

    interfaces = [i.model_copy() for i in device.interfaces]
    fallback = device.address or FALLBACK_ROUTER_ADDRESS
    lan_index = next((idx for idx, i in enumerate(interfaces) if i.name == "LAN"), None)

    if lan_index is not None:
        lan = interfaces[lan_index]
        lan_address = lan.address or fallback
        interfaces[lan_index] = lan.model_copy(update={"address": lan_address, "id": lan.id or f"{device.id}-lan"})
        return device.model_copy(update={"address": device.address or lan_address, "interfaces": interfaces})

    logger.debug(f"Router {device.name} has no LAN interface, synthesising one at {fallback}")
    lan = NetworkInterface(id=f"{device.id}-lan", name="LAN", address=fallback, subnet_mask=DEFAULT_SUBNET_MASK)
    return device.model_copy(update={"address": fallback, "interfaces": [lan, *interfaces]})


def _ensure_endpoint_interface(device: Device) -> Device:
    """Give an end device exactly one ``eth0`` interface carrying its address."""
    if device.is_router:
        return device
    existing = device.interfaces[0] if device.interfaces else None
    mask = existing.subnet_mask if existing else DEFAULT_SUBNET_MASK
    iface_id = existing.id if existing and existing.id else f"{device.id}-eth0"
    name = existing.name if existing else "eth0"
    nic = NetworkInterface(id=iface_id, name=name, address=device.address, subnet_mask=mask)
    return device.model_copy(update={"interfaces": [nic]})


def normalize_devices(devices: Iterable[Device]) -> list[Device]:
    """Apply interface invariants to every device."""
    return [_ensure_endpoint_interface(ensure_router_lan_interface(d)) for d in devices]


def normalize_topology(topology: Topology) -> Topology:
    return Topology(devices=normalize_devices(topology.devices), connections=list(topology.connections))


def clear_topology() -> Topology:
    return Topology()


# ── helpers ──────────────────────────────────────────────────────────


def _require_device(topology: Topology, device_id: str) -> Device:
    device = topology.device_by_id(device_id)
    if device is None:
        raise DeviceNotFoundError(device_id)
    return device


def _replace_devices(topology: Topology, *updated: Device) -> list[Device]:
    by_id = {d.id: d for d in updated}
    return [by_id.get(d.id, d) for d in topology.devices]


def _backbone_index(address: str) -> int | None:
    parts = address.split(".")
    if len(parts) < 3 or f"{parts[0]}.{parts[1]}" != BACKBONE_PREFIX:
        return None
    return int(parts[2]) if parts[2].isdigit() else None


def used_backbone_indices(devices: Iterable[Device]) -> set[int]:
    """Third octets of every ``10.0.N.x`` address on a router's non-LAN interfaces."""
    used: set[int] = set()
    for device in devices:
        if not device.is_router:
            continue
        for iface in device.interfaces:
            if iface.name == "LAN" or not iface.address:
                continue
            idx = _backbone_index(iface.address)
            if idx is not None:
                used.add(idx)
    return used


def allocate_backbone_network(devices: Iterable[Device]) -> tuple[str, str, str]:
    """Pick the lowest free ``10.0.N.0/24`` and return (subnet, side_a, side_b)."""
    used = used_backbone_indices(devices)
    index = 0
    while index in used:
        index += 1
    if index > 255:
        raise TopologyError(f"Backbone address space {BACKBONE_PREFIX}.0.0/16 is exhausted")
    base = f"{BACKBONE_PREFIX}.{index}"
    return f"{base}.0", f"{base}.1", f"{base}.2"


def next_eth_name(device: Device) -> str:
    """Lowest ``eth<N>`` (N >= 1) not yet used on *device*."""
    names = {i.name for i in device.interfaces}
    index = 1
    while f"eth{index}" in names:
        index += 1
    return f"eth{index}"


def _duplicate_endpoint_addresses(devices: Iterable[Device]) -> list[str]:
    """Return ``"ip: name, name"`` lines for addresses shared by non-routers."""
    owners: dict[str, list[str]] = {}
    for d in devices:
        if d.is_router or not d.address:
            continue
        owners.setdefault(d.address, []).append(d.name)
    return [f"{ip}: {', '.join(names)}" for ip, names in owners.items() if len(names) > 1]


def _check_port(port: int | None) -> None:
    if port is not None and not 1 <= port <= 65535:
        raise TopologyError(f"Web server port {port} is invalid; use an integer 1-65535 such as 80 or 8080")


# ── devices ──────────────────────────────────────────────────────────


def add_device(topology: Topology, device: Device) -> Topology:
    """Add *device*, synthesising its LAN / eth0 interface."""
    if topology.device_by_id(device.id) is not None:
        raise DuplicateDeviceError(f"Device id '{device.id}' is already in use")
    if topology.device_by_name(device.name) is not None:
        raise DuplicateDeviceError(f"Device name '{device.name}' is already in use; names must be unique")

    validate_address(device.address)

    if device.is_router:
        lan = device.lan_interface
        mask = lan.subnet_mask if lan else DEFAULT_SUBNET_MASK
        if not is_valid_mask(mask):
            raise AddressError(f"Invalid subnet mask '{mask}'; use a standard mask such as 255.255.255.0")
        lan_iface = NetworkInterface(id=f"{device.id}-lan", name="LAN", address=device.address, subnet_mask=mask)
        others = [i for i in device.interfaces if i.name != "LAN"]
        device = device.model_copy(update={"interfaces": [lan_iface, *others]})
    else:
        if device.kind == DeviceKind.WEB_SERVER:
            _check_port(device.port)
        device = _ensure_endpoint_interface(device)

    logger.info(f"Added {device.kind.label} {device.name} ({device.address})")
    return Topology(devices=[*topology.devices, device], connections=list(topology.connections))


def update_device(topology: Topology, device_id: str, **changes: Any) -> Topology:
    """Change a device's editable settings.

    Accepted keys: ``name``, ``address``, ``subnet_mask`` (routers),
    ``gateway``, ``dns_server``, ``content``, ``port``.
    """
    device = _require_device(topology, device_id)
    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise TopologyError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")

    new_name = changes.get("name", device.name)
    if new_name != device.name and topology.device_by_name(new_name) is not None:
        raise DuplicateDeviceError(f"Device name '{new_name}' is already in use; names must be unique")

    if "port" in changes:
        _check_port(changes["port"])

    new_address = changes.get("address", device.address)
    address_changed = new_address != device.address
    if address_changed:
        validate_address(new_address)

    attached = topology.neighbors(device.id)

    if device.is_router:
        lan = device.lan_interface
        old_mask = lan.subnet_mask if lan else DEFAULT_SUBNET_MASK
        new_mask = changes.get("subnet_mask", old_mask)
        if not is_valid_mask(new_mask):
            raise AddressError(f"Invalid subnet mask '{new_mask}'; use a standard mask such as 255.255.255.0")
        lan_changed = address_changed or new_mask != old_mask
        new_subnet = derive_subnet(new_address, new_mask)
        if lan_changed and new_subnet != derive_subnet(device.address, old_mask):
            if any(not n.is_router for n in attached):
                raise LinkError(
                    f"Disconnect all end devices from {device.name} before moving its LAN to another subnet"
                )
            for peer in (n for n in attached if n.is_router):
                if peer.lan_interface is not None and peer.lan_interface.subnet == new_subnet:
                    raise LanConflictError(
                        f"{device.name} is linked to {peer.name}, whose LAN already uses subnet {new_subnet}; "
                        f"pick another subnet or remove the link first"
                    )
        interfaces = [
            i.model_copy(update={"address": new_address, "subnet_mask": new_mask}) if i.name == "LAN" else i
            for i in device.interfaces
        ]
        updated = device.model_copy(
            update={k: v for k, v in changes.items() if k != "subnet_mask"} | {"interfaces": interfaces}
        )
    else:
        if "subnet_mask" in changes:
            raise TopologyError("Only routers carry an editable subnet mask")
        if address_changed:
            for router in (n for n in attached if n.is_router):
                lan = router.lan_interface
                if lan is not None and not is_in_same_subnet(lan.address, lan.subnet_mask, new_address):
                    raise SubnetMismatchError(
                        f"{device.name} is still connected to {router.name}; disconnect it before moving "
                        f"to another subnet (LAN {lan.subnet}, mask {lan.subnet_mask})",
                        subnet=lan.subnet,
                        mask=lan.subnet_mask,
                    )
        updated = _ensure_endpoint_interface(device.model_copy(update=changes))

    logger.info(f"Updated {updated.name}: {', '.join(sorted(changes))}")
    return Topology(devices=_replace_devices(topology, updated), connections=list(topology.connections))


def remove_device(topology: Topology, device_id: str) -> Topology:
    """Remove a device and every connection touching it."""
    device = _require_device(topology, device_id)
    result = topology
    for conn in [c for c in topology.connections if c.touches(device_id)]:
        result = remove_connection(result, conn.id)
    logger.info(f"Removed {device.kind.label} {device.name}")
    return Topology(
        devices=[d for d in result.devices if d.id != device_id],
        connections=list(result.connections),
    )


# ── connections ──────────────────────────────────────────────────────


def add_connection(topology: Topology, source_id: str, target_id: str, connection_id: str | None = None) -> Topology:
    """Wire two devices together, allocating a backbone subnet for router pairs."""
    source = _require_device(topology, source_id)
    target = _require_device(topology, target_id)

    if source.id == target.id:
        raise LinkError(f"{source.name} cannot be connected to itself")

    if topology.connection_between(source.id, target.id) is not None:
        raise DuplicateLinkError(f"{source.name} and {target.name} are already connected")

    if not source.is_router and not target.is_router:
        raise EndpointLinkError(
            f"{source.name} and {target.name} are both end devices; connect each of them to a router instead"
        )

    if not (source.is_router and target.is_router):
        duplicates = _duplicate_endpoint_addresses(topology.devices)
        if duplicates:
            raise AddressConflictError(
                "IP address conflict, these devices share an address:\n"
                + "\n".join(duplicates)
                + "\nChange the duplicate addresses before connecting."
            )

    conn_id = connection_id or f"conn-{source.id}-{target.id}"

    if source.is_router and target.is_router:
        source_lan, target_lan = source.lan_interface, target.lan_interface
        if source_lan and target_lan and source_lan.subnet == target_lan.subnet:
            raise LanConflictError(
                f"Routers {source.name} and {target.name} both use LAN subnet {source_lan.subnet}; "
                f"change one router's LAN first"
            )

        subnet, source_ip, target_ip = allocate_backbone_network(topology.devices)
        source_name, target_name = next_eth_name(source), next_eth_name(target)
        source_iface = NetworkInterface(
            id=f"{source.id}-{source_name}", name=source_name, address=source_ip, subnet_mask=BACKBONE_MASK
        )
        target_iface = NetworkInterface(
            id=f"{target.id}-{target_name}", name=target_name, address=target_ip, subnet_mask=BACKBONE_MASK
        )
        devices = _replace_devices(
            topology,
            source.model_copy(update={"interfaces": [*source.interfaces, source_iface]}),
            target.model_copy(update={"interfaces": [*target.interfaces, target_iface]}),
        )
        connection = Connection(
            id=conn_id,
            source=source.id,
            target=target.id,
            source_interface_id=source_iface.id,
            target_interface_id=target_iface.id,
        )
        logger.info(
            f"Backbone {subnet}/24: {source.name} {source_name}={source_ip} <-> {target.name} {target_name}={target_ip}"
        )
        return Topology(devices=devices, connections=[*topology.connections, connection])

    router, endpoint = (source, target) if source.is_router else (target, source)
    lan = router.lan_interface
    if lan is None:
        raise LinkError(f"Router {router.name} has no LAN interface; configure the router first")
    if lan.address == endpoint.address:
        raise AddressConflictError(
            f"{endpoint.name} uses the same address as {router.name}'s LAN interface ({lan.address}); "
            f"pick another address in the same subnet"
        )
    if not is_in_same_subnet(lan.address, lan.subnet_mask, endpoint.address):
        raise SubnetMismatchError(
            f"Subnet mismatch: {endpoint.name} has address {endpoint.address} but {router.name}'s LAN subnet "
            f"is {lan.subnet} (mask {lan.subnet_mask}); move {endpoint.name} into the router's LAN subnet",
            subnet=lan.subnet,
            mask=lan.subnet_mask,
        )

    logger.info(f"Connected {endpoint.name} to {router.name} LAN {lan.subnet}")
    connection = Connection(id=conn_id, source=source.id, target=target.id)
    return Topology(devices=list(topology.devices), connections=[*topology.connections, connection])


def _matching_backbone_pair(source: Device, target: Device) -> tuple[str, str] | None:
    """First pair of non-LAN interface ids sharing a network address."""
    for s_iface in source.interfaces:
        if s_iface.name == "LAN":
            continue
        for t_iface in target.interfaces:
            if t_iface.name == "LAN":
                continue
            if s_iface.subnet == t_iface.subnet:
                return s_iface.id, t_iface.id
    return None


def remove_connection(topology: Topology, connection_id: str) -> Topology:
    """Remove a connection and the backbone interfaces it created."""
    connection = next((c for c in topology.connections if c.id == connection_id), None)
    if connection is None:
        raise TopologyError(f"Connection '{connection_id}' does not exist")

    devices = list(topology.devices)
    source = topology.device_by_id(connection.source)
    target = topology.device_by_id(connection.target)

    pair: tuple[str, str] | None = None
    if connection.source_interface_id and connection.target_interface_id:
        pair = (connection.source_interface_id, connection.target_interface_id)
    elif source is not None and target is not None and source.is_router and target.is_router:
        pair = _matching_backbone_pair(source, target)

    if pair is not None and source is not None and target is not None:
        source_iface_id, target_iface_id = pair
        devices = _replace_devices(
            topology,
            source.model_copy(update={"interfaces": [i for i in source.interfaces if i.id != source_iface_id]}),
            target.model_copy(update={"interfaces": [i for i in target.interfaces if i.id != target_iface_id]}),
        )

    logger.info(f"Removed connection {connection_id}")
    return Topology(devices=devices, connections=[c for c in topology.connections if c.id != connection_id])


# ── routing tables & DNS records ─────────────────────────────────────


def check_routing_table(entries: Iterable[RouteEntry]) -> None:
    """Reject tables where one destination has two routes of equal metric."""
    seen: dict[str, set[int]] = {}
    for entry in entries:
        metrics = seen.setdefault(entry.destination, set())
        if entry.metric in metrics:
            raise RoutingTableError(
                f"Destination {entry.destination} has two routes with metric {entry.metric}; "
                f"routes to the same destination need different metrics"
            )
        metrics.add(entry.metric)


def set_routing_table(topology: Topology, router_id: str, entries: Iterable[RouteEntry]) -> Topology:
    router = _require_device(topology, router_id)
    if not router.is_router:
        raise RoutingTableError(f"{router.name} is a {router.kind.label}; only routers have routing tables")
    table = [e.model_copy() for e in entries]
    check_routing_table(table)
    logger.info(f"Saved {len(table)} route(s) on {router.name}")
    updated = router.model_copy(update={"routing_table": table})
    return Topology(devices=_replace_devices(topology, updated), connections=list(topology.connections))


def add_dns_record(topology: Topology, dns_server_id: str, domain: str, address: str) -> Topology:
    server = _require_device(topology, dns_server_id)
    if server.kind != DeviceKind.DNS_SERVER:
        raise DnsRecordError(f"{server.name} is a {server.kind.label}, not a DNS server")
    if not is_valid_domain(domain):
        raise DnsRecordError(f"Malformed domain name '{domain}' (example: www.example.com)")
    if not looks_like_address(address):
        raise DnsRecordError(f"Malformed IP address '{address}'")
    if any(r.domain.lower() == domain.lower() for r in server.dns_records):
        raise DnsRecordError(f"{server.name} already has a record for {domain}")

    record = DnsRecord(id=f"dns-{len(server.dns_records) + 1}-{domain.lower()}", domain=domain, address=address)
    updated = server.model_copy(update={"dns_records": [*server.dns_records, record]})
    logger.info(f"{server.name}: {domain} -> {address}")
    return Topology(devices=_replace_devices(topology, updated), connections=list(topology.connections))


def remove_dns_record(topology: Topology, dns_server_id: str, domain: str) -> Topology:
    server = _require_device(topology, dns_server_id)
    remaining = [r for r in server.dns_records if r.domain.lower() != domain.lower()]
    if len(remaining) == len(server.dns_records):
        raise DnsRecordError(f"{server.name} has no record for {domain}")
    updated = server.model_copy(update={"dns_records": remaining})
    return Topology(devices=_replace_devices(topology, updated), connections=list(topology.connections))


# ── consistency check ────────────────────────────────────────────────


def audit_topology(topology: Topology) -> list[str]:
    """Return human-readable problems in a snapshot; empty means consistent.

    Catches what a hand-edited or imported file can contain but the
    mutation functions would have refused.
    """
    problems: list[str] = []

    names: dict[str, int] = {}
    for device in topology.devices:
        names[device.name] = names.get(device.name, 0) + 1
    problems.extend(f"Device name '{n}' is used {c} times" for n, c in names.items() if c > 1)

    problems.extend(f"Address conflict {line}" for line in _duplicate_endpoint_addresses(topology.devices))

    for device in topology.devices:
        if not is_valid_address_or_blank(device.address):
            problems.append(f"{device.name}: invalid address '{device.address}'")
        if device.is_router:
            try:
                check_routing_table(device.routing_table)
            except RoutingTableError as e:
                problems.append(f"{device.name}: {e}")
        elif device.routing_table:
            problems.append(f"{device.name}: only routers may carry a routing table")

    for conn in topology.connections:
        source = topology.device_by_id(conn.source)
        target = topology.device_by_id(conn.target)
        if source is None or target is None:
            problems.append(f"Connection {conn.id} references a missing device")
            continue
        if not source.is_router and not target.is_router:
            problems.append(f"Connection {conn.id} joins two end devices ({source.name}, {target.name})")
            continue
        if source.is_router and target.is_router:
            if not any(a.subnet == b.subnet for a in source.interfaces for b in target.interfaces):
                problems.append(
                    f"Routers {source.name} and {target.name} are linked but have no interfaces in a common subnet"
                )
            continue
        router, endpoint = (source, target) if source.is_router else (target, source)
        lan = router.lan_interface
        if lan is not None and not is_in_same_subnet(lan.address, lan.subnet_mask, endpoint.address):
            problems.append(f"{endpoint.name} ({endpoint.address}) is outside {router.name}'s LAN {lan.subnet}")

    for router in (d for d in topology.devices if d.is_router):
        for iface in router.interfaces:
            if iface.name != "LAN" and not _backbone_interface_linked(topology, router, iface):
                problems.append(
                    f"{router.name}: interface {iface.name} ({iface.address}) is not connected to any device"
                )

    return problems


def _backbone_interface_linked(topology: Topology, router: Device, iface: NetworkInterface) -> bool:
    """True if a connection names *iface*, or links *router* to a router sharing its subnet."""
    for conn in topology.connections:
        if not conn.touches(router.id):
            continue
        if iface.id and iface.id in (conn.source_interface_id, conn.target_interface_id):
            return True
        if conn.source_interface_id or conn.target_interface_id:
            continue
        peer = topology.device_by_id(conn.target if conn.source == router.id else conn.source)
        if peer is not None and peer.is_router and any(i.subnet == iface.subnet for i in peer.interfaces):
            return True
    return False


def is_valid_address_or_blank(address: str) -> bool:
    if not address:
        return True
    try:
        validate_address(address)
    except AddressError:
        return False
    return True
