"""DNS query simulation: route a query to a DNS server and look up an A record."""

from __future__ import annotations

from typing import Sequence

from loguru import logger

from netsimlab.simulation.models import FailureKind, SimulationResult, SimulationStep
from netsimlab.simulation.resolver import find_device_by_address, find_device_of_kind, resolve_path
from netsimlab.topology.models import Connection, Device, DeviceKind


def dns_request_label(domain: str) -> str:
    return f"DNS query: {domain}"


def resolve_dns(
    devices: Sequence[Device],
    connections: Sequence[Connection],
    source_address: str,
    dns_server_address: str,
    domain: str,
) -> SimulationResult:
    """Simulate *source_address* asking *dns_server_address* for *domain*.

    The query travels the resolved path; the answer travels it in reverse.
    Record lookup is case-insensitive.
    """
    source = find_device_by_address(devices, source_address)
    if source is None:
        return SimulationResult(
            success=False,
            failure=FailureKind.SOURCE_NOT_FOUND,
            message=f"No device has source address {source_address}",
            domain=domain,
        )

    server = find_device_of_kind(devices, dns_server_address, DeviceKind.DNS_SERVER)
    if server is None:
        owner = find_device_by_address(devices, dns_server_address)
        if owner is None:
            return SimulationResult(
                success=False,
                failure=FailureKind.DNS_SERVER_NOT_FOUND,
                message=f"No DNS server at {dns_server_address}",
                domain=domain,
            )
        return SimulationResult(
            success=False,
            failure=FailureKind.NOT_A_DNS_SERVER,
            message=f"{dns_server_address} belongs to {owner.name}, which is a {owner.kind.label}, not a DNS server",
            domain=domain,
        )

    logger.debug(f"DNS query for {domain} from {source.name} to {server.name}")
    route = resolve_path(devices, connections, source_address, dns_server_address)
    if not route.success:
        return SimulationResult(
            success=False,
            failure=FailureKind.DNS_SERVER_UNREACHABLE,
            path_failure=route.failure,
            message=f"Cannot reach DNS server {server.name}: {route.message}",
            path=route.path,
            steps=route.steps,
            failed_routes=route.failed_routes,
            domain=domain,
        )

    if not route.path or route.path[-1] != server.name:
        landed = route.path[-1] if route.path else "?"
        return SimulationResult(
            success=False,
            failure=FailureKind.ADDRESS_CONFLICT,
            message=f"Query for {dns_server_address} reached {landed} instead of {server.name}; "
            f"check for duplicate addresses",
            path=route.path,
            steps=route.steps,
            domain=domain,
        )

    request_path = list(route.path)
    response_path = list(reversed(request_path))
    steps = list(route.steps)

    wanted = domain.strip().lower()
    record = next((r for r in server.dns_records if r.domain.lower() == wanted), None)
    if record is None:
        steps.append(SimulationStep(device=server.name, action=f"No A record for {domain}"))
        return SimulationResult(
            success=False,
            failure=FailureKind.DOMAIN_NOT_FOUND,
            message=f"DNS server {server.name} has no record for {domain}",
            path=request_path,
            steps=steps,
            is_round_trip=True,
            request_path=request_path,
            response_path=response_path,
            request_label=dns_request_label(domain),
            response_label="Domain not found",
            domain=domain,
        )

    steps.append(SimulationStep(device=server.name, action=f"Answered {record.domain} -> {record.address}"))
    if find_device_by_address(devices, record.address) is None:
        logger.warning(f"DNS record {record.domain} points at {record.address}, which no device owns")
        steps.append(
            SimulationStep(
                device=server.name,
                action=f"Warning: no device has address {record.address}; the record may be stale",
            )
        )

    return SimulationResult(
        success=True,
        message=f"{domain} resolved to {record.address} by {server.name}",
        path=request_path,
        steps=steps,
        is_round_trip=True,
        request_path=request_path,
        response_path=response_path,
        request_label=dns_request_label(domain),
        response_label=f"Returned IP: {record.address}",
        domain=domain,
        resolved_address=record.address,
    )
