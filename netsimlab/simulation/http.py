"""HTTP GET simulation against web-server devices.

A target given as a domain is first resolved through :func:`resolve_dns`;
the nested DNS result is attached to the returned HTTP result.
"""

from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from netsimlab.exceptions import AddressError
from netsimlab.simulation.dns import resolve_dns
from netsimlab.simulation.models import FailureKind, SimulationResult, SimulationStep
from netsimlab.simulation.resolver import find_device_by_address, find_device_of_kind, resolve_path
from netsimlab.topology.addressing import looks_like_address, validate_address
from netsimlab.topology.models import DEFAULT_HTTP_PORT, Connection, Device, DeviceKind

HTTP_OK = 200
HTTP_NO_CONTENT = 204
HTTP_NOT_FOUND = 404
HTTP_SERVICE_UNAVAILABLE = 503

HTTP_REQUEST_LABEL = "HTTP GET /"


def _http_failure(
    kind: FailureKind,
    status: int,
    message: str,
    target: str,
    dns: Optional[SimulationResult] = None,
    route: Optional[SimulationResult] = None,
) -> SimulationResult:
    logger.debug(f"HTTP request to {target} failed ({kind.value}, {status})")
    return SimulationResult(
        success=False,
        failure=kind,
        message=message,
        http_success=False,
        http_status_code=status,
        domain=dns.domain if dns is not None else "",
        resolved_address=dns.resolved_address if dns is not None else "",
        dns=dns,
        path=route.path if route is not None else [],
        steps=route.steps if route is not None else [],
        failed_routes=route.failed_routes if route is not None else [],
        path_failure=route.failure if route is not None else None,
    )


def resolve_http(
    devices: Sequence[Device],
    connections: Sequence[Connection],
    source_address: str,
    target: str,
    port: int = DEFAULT_HTTP_PORT,
    dns_server_address: Optional[str] = None,
) -> SimulationResult:
    """Simulate an HTTP GET from *source_address* to *target*.

    Args:
        devices: Snapshot of all devices.
        connections: Snapshot of all physical links.
        source_address: Primary address of the browsing device.
        target: Literal IPv4 address or domain name.
        port: Requested TCP port.
        dns_server_address: DNS server used for domain targets; defaults to
            the source device's configured ``dns_server``.

    Returns:
        A ``SimulationResult`` with ``http_status_code`` set; ``success`` is
        True whenever the request reached a web server on the right port.
    """
    source = find_device_by_address(devices, source_address)
    if source is None:
        return _http_failure(
            FailureKind.SOURCE_NOT_FOUND,
            HTTP_NOT_FOUND,
            f"No device has source address {source_address}",
            target,
        )

    dns_result: Optional[SimulationResult] = None
    target = target.strip()
    if looks_like_address(target):
        try:
            validate_address(target)
        except AddressError as e:
            return _http_failure(FailureKind.INVALID_ADDRESS, HTTP_NOT_FOUND, f"Invalid target address: {e}", target)
        target_address = target
    else:
        server_address = dns_server_address or source.dns_server
        if not server_address:
            return _http_failure(
                FailureKind.DNS_SERVER_NOT_FOUND,
                HTTP_NOT_FOUND,
                f"{source.name} has no DNS server configured; cannot resolve {target}",
                target,
            )
        dns_result = resolve_dns(devices, connections, source_address, server_address, target)
        if not dns_result.success:
            return SimulationResult(
                success=False,
                failure=dns_result.failure,
                message=f"DNS resolution failed: {dns_result.message}",
                http_success=False,
                http_status_code=HTTP_NOT_FOUND,
                domain=target,
                dns=dns_result,
            )
        target_address = dns_result.resolved_address

    server = find_device_of_kind(devices, target_address, DeviceKind.WEB_SERVER)
    if server is None:
        owner = find_device_by_address(devices, target_address)
        if owner is None:
            return _http_failure(
                FailureKind.HOST_NOT_FOUND,
                HTTP_NOT_FOUND,
                f"Destination host unreachable: no device has address {target_address} (request timeout)",
                target,
                dns=dns_result,
            )
        return _http_failure(
            FailureKind.NOT_A_WEB_SERVER,
            HTTP_SERVICE_UNAVAILABLE,
            f"{target_address} is not a web server: it belongs to {owner.name} ({owner.kind.label}), "
            f"which cannot answer HTTP requests",
            target,
            dns=dns_result,
        )

    route = resolve_path(devices, connections, source_address, target_address)
    if not route.success:
        return _http_failure(
            FailureKind.WEB_SERVER_UNREACHABLE,
            HTTP_SERVICE_UNAVAILABLE,
            f"Cannot reach web server {server.name}: {route.message}",
            target,
            dns=dns_result,
            route=route,
        )
    if not route.path or route.path[-1] != server.name:
        landed = route.path[-1] if route.path else "?"
        return _http_failure(
            FailureKind.ADDRESS_CONFLICT,
            HTTP_SERVICE_UNAVAILABLE,
            f"Request for {target_address} reached {landed} instead of {server.name}; "
            f"check for duplicate addresses",
            target,
            dns=dns_result,
            route=route,
        )

    if port != server.listen_port:
        return _http_failure(
            FailureKind.PORT_MISMATCH,
            HTTP_SERVICE_UNAVAILABLE,
            f"Port mismatch: {server.name} listens on port {server.listen_port} but the request used port {port}. "
            f"Use :{server.listen_port} in the URL or change the server port to {port}",
            target,
            dns=dns_result,
            route=route,
        )

    request_path = list(route.path)
    response_path = list(reversed(request_path))
    round_trip = dict(
        path=request_path,
        is_round_trip=True,
        request_path=request_path,
        response_path=response_path,
        request_label=HTTP_REQUEST_LABEL,
        domain=dns_result.domain if dns_result is not None else "",
        resolved_address=target_address,
        dns=dns_result,
    )

    if not server.content.strip():
        steps = list(route.steps)
        steps.append(SimulationStep(device=server.name, action="Web server has no page content configured"))
        logger.debug(f"{server.name} answered with no content")
        return SimulationResult(
            success=True,
            message=f"Web server {server.name} has no page content configured",
            steps=steps,
            http_success=False,
            http_status_code=HTTP_NO_CONTENT,
            response_label=f"HTTP {HTTP_NO_CONTENT} No Content",
            **round_trip,
        )

    steps = list(route.steps)
    steps.append(SimulationStep(device=server.name, action=f"Web server answered GET / on port {port}"))
    return SimulationResult(
        success=True,
        message=f"HTTP {HTTP_OK} OK: fetched {target} from {server.name}",
        steps=steps,
        http_success=True,
        http_status_code=HTTP_OK,
        content=server.content,
        response_label=f"HTTP {HTTP_OK} OK",
        **round_trip,
    )
