"""Hop-by-hop packet path resolution over a topology snapshot.

End devices hand the packet to the router owning their subnet (default
gateway); routers consult their routing table. Matching routes are tried in
ascending metric order and an unusable route falls through to the next one,
so the result can explain why an entry that *looks* right does not work.

Resolution never raises: every outcome, including failures, is returned as a
:class:`~netsimlab.simulation.models.SimulationResult`.
"""

from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from netsimlab.exceptions import AddressError
from netsimlab.simulation.models import (
    FailedRoute,
    FailureKind,
    RouteFailureReason,
    SimulationResult,
    SimulationStep,
)
from netsimlab.topology.addressing import DEFAULT_SUBNET_MASK, derive_subnet, validate_address
from netsimlab.topology.models import Connection, Device, DeviceKind, RouteEntry

MAX_HOPS = 10


def find_device_by_address(devices: Sequence[Device], address: str) -> Optional[Device]:
    """First device whose primary address is *address*."""
    return next((d for d in devices if d.address == address), None)


def find_device_of_kind(devices: Sequence[Device], address: str, kind: DeviceKind) -> Optional[Device]:
    """First device of *kind* whose primary address is *address*."""
    return next((d for d in devices if d.kind == kind and d.address == address), None)


def find_device_by_name(devices: Sequence[Device], name: str) -> Optional[Device]:
    return next((d for d in devices if d.name == name), None)


def has_physical_link(connections: Sequence[Connection], first: Device, second: Device) -> bool:
    return any(c.joins(first.id, second.id) for c in connections)


def destination_network(devices: Sequence[Device], address: str) -> str:
    """Network of *address*, using the owning device's mask when it exists."""
    owner = find_device_by_address(devices, address)
    mask = owner.subnet_mask if owner is not None else DEFAULT_SUBNET_MASK
    return derive_subnet(address, mask)


def endpoint_label(device: Device) -> str:
    """E.g. ``PC PC1`` or ``DNS server DNS1``."""
    return f"{device.kind.label} {device.name}"


def _find_gateway(
    devices: Sequence[Device], connections: Sequence[Connection], endpoint: Device
) -> tuple[Optional[Device], bool]:
    """Return (gateway, linked) for an end device.

    Prefers a router in the endpoint's subnet that is physically linked to it;
    otherwise the first router in the subnet, flagged as not linked.
    """
    candidates = [d for d in devices if d.is_router and any(i.contains(endpoint.address) for i in d.interfaces)]
    for router in candidates:
        if has_physical_link(connections, endpoint, router):
            return router, True
    if candidates:
        return candidates[0], False
    return None, False


def _find_next_router(devices: Sequence[Device], next_hop: str) -> Optional[Device]:
    """Resolve a next hop by device name first, then by router interface address."""
    by_name = find_device_by_name(devices, next_hop)
    if by_name is not None:
        return by_name
    return next(
        (d for d in devices if d.is_router and any(i.address == next_hop for i in d.interfaces)),
        None,
    )


def _share_subnet(first: Device, second: Device) -> bool:
    return any(a.subnet == b.subnet for a in first.interfaces for b in second.interfaces)


def _try_route(
    router: Device,
    route: RouteEntry,
    dest_address: str,
    devices: Sequence[Device],
    connections: Sequence[Connection],
) -> tuple[Optional[Device], Optional[FailedRoute]]:
    """Check one candidate route; return (next device, None) or (None, failure)."""
    if route.is_direct:
        dest = find_device_by_address(devices, dest_address)
        if dest is None:
            return None, FailedRoute(
                route=route,
                reason=RouteFailureReason.DESTINATION_MISSING,
                detail=f"destination {dest_address} does not exist",
            )
        if not any(i.contains(dest_address) for i in router.interfaces):
            return None, FailedRoute(route=route, reason=RouteFailureReason.NO_INTERFACE_IN_SUBNET)
        if not has_physical_link(connections, router, dest):
            return None, FailedRoute(
                route=route,
                reason=RouteFailureReason.DESTINATION_DISCONNECTED,
                detail=f"no physical link to {dest.name}",
            )
        return dest, None

    next_router = _find_next_router(devices, route.next_hop)
    if next_router is None:
        return None, FailedRoute(route=route, reason=RouteFailureReason.NEXT_HOP_NOT_FOUND)
    if not next_router.is_router:
        return None, FailedRoute(
            route=route,
            reason=RouteFailureReason.NEXT_HOP_NOT_ROUTER,
            detail=f"{next_router.name} is a {next_router.kind.label}, not a router",
        )
    if not has_physical_link(connections, router, next_router):
        return None, FailedRoute(route=route, reason=RouteFailureReason.NEXT_HOP_DISCONNECTED)
    if not _share_subnet(router, next_router):
        return None, FailedRoute(
            route=route,
            reason=RouteFailureReason.NO_COMMON_SUBNET,
            detail=f"{router.name} and {next_router.name} have no interfaces in a common subnet",
        )
    return next_router, None


def _fail(
    kind: FailureKind,
    message: str,
    path: list[str],
    steps: list[SimulationStep],
    failed_routes: Optional[list[FailedRoute]] = None,
) -> SimulationResult:
    logger.debug(f"Resolution failed ({kind.value}): {message.splitlines()[0]}")
    return SimulationResult(
        success=False,
        path=list(path),
        message=message,
        steps=list(steps),
        failure=kind,
        failed_routes=list(failed_routes or []),
    )


def _succeed(path: list[str], steps: list[SimulationStep]) -> SimulationResult:
    hops = len(path) - 1
    logger.debug(f"Destination reached: {' -> '.join(path)}")
    return SimulationResult(
        success=True,
        path=list(path),
        message=f"Destination reached in {hops} hop{'s' if hops != 1 else ''}: {' -> '.join(path)}",
        steps=list(steps),
    )


def resolve_path(
    devices: Sequence[Device],
    connections: Sequence[Connection],
    source_address: str,
    dest_address: str,
) -> SimulationResult:
    """Simulate a packet travelling from *source_address* to *dest_address*.

    Args:
        devices: Snapshot of all devices. Names must be unique.
        connections: Snapshot of all physical links.
        source_address: Primary address of the sending device.
        dest_address: Address the packet is sent to.

    Returns:
        A ``SimulationResult``; on failure ``failure`` names the reason and
        ``path`` holds the devices reached so far.
    """
    path: list[str] = []
    steps: list[SimulationStep] = []

    for label, address in (("source", source_address), ("destination", dest_address)):
        try:
            validate_address(address)
        except AddressError as e:
            return _fail(FailureKind.INVALID_ADDRESS, f"Invalid {label} address {address}: {e}", path, steps)

    source = find_device_by_address(devices, source_address)
    if source is None:
        return _fail(FailureKind.SOURCE_NOT_FOUND, f"No device has source address {source_address}", path, steps)

    path.append(source.name)
    if source_address == dest_address:
        return SimulationResult(success=True, path=path, message="Source and destination are the same device")

    logger.debug(f"Resolving {source_address} -> {dest_address} from {source.name}")
    current = source
    visited = {source.id}
    hop_count = 0

    while hop_count < MAX_HOPS:
        if current.address == dest_address:
            return _succeed(path, steps)

        if not current.is_router:
            label = endpoint_label(current)
            gateway, linked = _find_gateway(devices, connections, current)
            if gateway is None:
                return _fail(
                    FailureKind.NO_GATEWAY,
                    f"{label} ({current.address}) has no default gateway: no router has an interface "
                    f"in subnet {current.subnet}",
                    path,
                    steps,
                )
            if not linked:
                return _fail(
                    FailureKind.GATEWAY_DISCONNECTED,
                    f"{label} and its gateway {gateway.name} are not physically connected; "
                    f"draw a link between the two devices first",
                    path,
                    steps,
                )
            steps.append(
                SimulationStep(
                    device=current.name, action=f"{label} sends the packet to default gateway {gateway.name}"
                )
            )
            next_device = gateway
        else:
            table = current.routing_table
            if not table:
                return _fail(
                    FailureKind.EMPTY_ROUTING_TABLE,
                    f"Router {current.name} has an empty routing table; add routes first",
                    path,
                    steps,
                )

            dest_network = destination_network(devices, dest_address)
            candidates = [r for r in table if r.destination == dest_address]
            if not candidates:
                candidates = [r for r in table if r.destination == dest_network]
            if not candidates:
                known = ", ".join(r.destination for r in table)
                return _fail(
                    FailureKind.NO_ROUTE,
                    f"Router {current.name} has no routing-table entry for {dest_network} "
                    f"(destination {dest_address})\nCurrent table only has: {known}",
                    path,
                    steps,
                )

            # sorted() is stable: equal metrics keep table order
            ordered = sorted(candidates, key=lambda r: r.metric)
            failed: list[FailedRoute] = []
            chosen: Optional[RouteEntry] = None
            next_device = None
            for route in ordered:
                target, failure = _try_route(current, route, dest_address, devices, connections)
                if failure is not None:
                    logger.debug(f"{current.name}: route via {route.next_hop} rejected: {failure.reason.value}")
                    failed.append(failure)
                    continue
                chosen, next_device = route, target
                break

            if chosen is None or next_device is None:
                tried = ", ".join(f.describe() for f in failed)
                steps.append(
                    SimulationStep(
                        device=current.name,
                        action=f"All {len(failed)} route(s) to {dest_network} are unusable",
                        failed_routes=failed,
                    )
                )
                return _fail(
                    FailureKind.ROUTES_EXHAUSTED,
                    f"Every route on router {current.name} to {dest_address} is unusable\n"
                    f"Tried: {tried}\nCheck the physical links and the routing table.",
                    path,
                    steps,
                    failed_routes=failed,
                )

            hop = "direct" if chosen.is_direct else chosen.next_hop
            if failed:
                skipped = ", ".join(f.describe() for f in failed)
                action = f"Preferred route unavailable [{skipped}], using fallback {hop} (metric {chosen.metric})"
            else:
                action = f"Route lookup: destination {dest_network}, next hop {hop}, metric {chosen.metric}"
            steps.append(SimulationStep(device=current.name, action=action, route_entry=chosen, failed_routes=failed))

            if chosen.is_direct:
                path.append(next_device.name)
                return _succeed(path, steps)

        if next_device.id in visited:
            return _fail(
                FailureKind.ROUTING_LOOP,
                f"Routing loop detected: {next_device.name} was already visited\nPath: {' -> '.join(path)}",
                path,
                steps,
            )

        path.append(next_device.name)
        visited.add(next_device.id)
        current = next_device
        hop_count += 1

    return _fail(
        FailureKind.HOP_LIMIT_EXCEEDED,
        f"Exceeded the maximum of {MAX_HOPS} hops; there is probably a routing loop",
        path,
        steps,
    )
