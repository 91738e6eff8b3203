"""Tests for netsimlab.simulation.resolver."""

from __future__ import annotations

import pytest

from netsimlab.simulation import resolver
from netsimlab.simulation.models import FailureKind, RouteFailureReason
from netsimlab.simulation.resolver import MAX_HOPS, destination_network, resolve_path
from netsimlab.topology.models import Device


def _ping(topology, source, dest):
    return resolve_path(topology.devices, topology.connections, source, dest)


class TestSuccessfulPaths:
    """Packets that reach their destination."""

    def test_two_router_path(self, lab_topology):
        """PC1 reaches PC2 through both routers."""
        result = _ping(lab_topology, "192.168.1.10", "192.168.2.10")
        assert result.success is True
        assert result.path == ["PC1", "R1", "R2", "PC2"]
        assert result.failure is None
        assert "3 hops" in result.message

    def test_reverse_direction(self, lab_topology):
        """The return route works as well."""
        result = _ping(lab_topology, "192.168.2.10", "192.168.1.10")
        assert result.success is True
        assert result.path == ["PC2", "R2", "R1", "PC1"]

    def test_same_address(self, lab_topology):
        """Source equal to destination succeeds with a one-element path."""
        result = _ping(lab_topology, "192.168.1.10", "192.168.1.10")
        assert result.success is True
        assert result.path == ["PC1"]

    def test_same_subnet_via_gateway(self, lab_topology):
        """Hosts on the same LAN still go through their router."""
        result = _ping(lab_topology, "192.168.2.10", "192.168.2.80")
        assert result.success is True
        assert result.path == ["PC2", "R2", "WEB1"]

    def test_ping_router_interface(self, lab_topology):
        """A router's own primary address is a valid destination."""
        result = _ping(lab_topology, "192.168.1.10", "192.168.1.1")
        assert result.success is True
        assert result.path == ["PC1", "R1"]

    def test_steps_record_gateway_and_lookups(self, lab_topology):
        """Every hop leaves a step; router steps carry the chosen route."""
        result = _ping(lab_topology, "192.168.1.10", "192.168.2.10")
        assert [s.device for s in result.steps] == ["PC1", "R1", "R2"]
        assert "default gateway R1" in result.steps[0].action
        assert result.steps[1].route_entry.next_hop == "R2"
        assert result.steps[2].route_entry.is_direct
        assert [r.next_hop for r in result.chosen_routes] == ["R2", "-"]

    def test_next_hop_by_interface_address(self, lab_topology, set_routes):
        """A next hop written as the neighbour's interface address is resolved."""
        topo = set_routes(lab_topology, "R1", [("192.168.2.0", "10.0.0.2", 1)])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.success is True
        assert result.path == ["PC1", "R1", "R2", "PC2"]

    def test_host_route_preferred_over_network_route(self, lab_topology, set_routes):
        """Exact host entries win even against a lower-metric network entry."""
        topo = set_routes(
            lab_topology,
            "R1",
            [("192.168.2.0", "R9", 1), ("192.168.2.10", "R2", 5)],
        )
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.success is True
        assert result.steps[1].route_entry.destination == "192.168.2.10"
        assert result.steps[1].failed_routes == []

    def test_idempotent(self, lab_topology):
        """Same snapshot and arguments produce identical results."""
        first = _ping(lab_topology, "192.168.1.10", "192.168.2.10")
        second = _ping(lab_topology, "192.168.1.10", "192.168.2.10")
        assert first == second
        assert first.model_dump_json() == second.model_dump_json()

    def test_inputs_untouched(self, lab_topology):
        """Resolution does not modify the snapshot."""
        before = lab_topology.model_dump_json()
        _ping(lab_topology, "192.168.1.10", "192.168.2.99")
        assert lab_topology.model_dump_json() == before


class TestMetricFallback:
    """Candidate routes tried in ascending metric order."""

    def test_disconnected_best_route_falls_back(self, lab_topology, set_routes, make_router):
        """Metric 1 via an unlinked router fails, metric 2 succeeds."""
        r3 = make_router(id="r3", name="R3", address="192.168.3.1")
        topo = lab_topology.model_copy(update={"devices": [*lab_topology.devices, r3]})
        topo = set_routes(topo, "R1", [("192.168.2.0", "R3", 1), ("192.168.2.0", "R2", 2)])

        result = _ping(topo, "192.168.1.10", "192.168.2.10")

        assert result.success is True
        assert result.path == ["PC1", "R1", "R2", "PC2"]
        r1_step = result.steps[1]
        assert r1_step.route_entry.metric == 2
        assert len(r1_step.failed_routes) == 1
        assert r1_step.failed_routes[0].route.next_hop == "R3"
        assert r1_step.failed_routes[0].reason == RouteFailureReason.NEXT_HOP_DISCONNECTED
        assert "fallback" in r1_step.action

    def test_table_order_is_not_metric_order(self, lab_topology, set_routes):
        """Routes are sorted by metric regardless of their position in the table."""
        topo = set_routes(lab_topology, "R1", [("192.168.2.0", "R2", 5), ("192.168.2.0", "R9", 1)])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.success is True
        assert [f.route.next_hop for f in result.steps[1].failed_routes] == ["R9"]

    def test_equal_metrics_keep_table_order(self, lab_topology, set_routes):
        """Stable sort: with equal metrics the earlier entry is tried first."""
        topo = set_routes(lab_topology, "R1", [("192.168.2.0", "R9", 1), ("192.168.2.0", "R2", 1)])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.success is True
        assert result.steps[1].failed_routes[0].route.next_hop == "R9"

    def test_all_failed_routes_reported(self, lab_topology, set_routes):
        """Each rejected candidate appears in the exhausted result."""
        topo = set_routes(lab_topology, "R1", [("192.168.2.0", "R8", 1), ("192.168.2.0", "PC2", 2)])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.success is False
        assert result.failure == FailureKind.ROUTES_EXHAUSTED
        assert [f.reason for f in result.failed_routes] == [
            RouteFailureReason.NEXT_HOP_NOT_FOUND,
            RouteFailureReason.NEXT_HOP_NOT_ROUTER,
        ]
        assert "R8" in result.message
        assert "PC2" in result.message
        assert result.path == ["PC1", "R1"]


class TestFailures:
    """Each failure kind with its partial path."""

    def test_missing_route(self, lab_topology, set_routes):
        """Deleting R1's route stops the packet at R1."""
        topo = set_routes(lab_topology, "R1", [("192.168.1.0", "-", 0)])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.success is False
        assert result.failure == FailureKind.NO_ROUTE
        assert "no routing-table entry for 192.168.2.0" in result.message
        assert "192.168.1.0" in result.message
        assert result.path == ["PC1", "R1"]

    def test_empty_routing_table(self, lab_topology, set_routes):
        """A router without routes cannot forward anything."""
        topo = set_routes(lab_topology, "R1", [])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.failure == FailureKind.EMPTY_ROUTING_TABLE
        assert result.path == ["PC1", "R1"]

    @pytest.mark.parametrize("dest", ["192.168.2.256", "abc", "", "192.168.2.0", "127.0.0.1"])
    def test_invalid_destination(self, lab_topology, dest):
        """Malformed or reserved destinations are rejected up front."""
        result = _ping(lab_topology, "192.168.1.10", dest)
        assert result.failure == FailureKind.INVALID_ADDRESS
        assert result.path == []

    def test_invalid_source(self, lab_topology):
        """An invalid source address is reported as such."""
        result = _ping(lab_topology, "192.168.1.255", "192.168.2.10")
        assert result.failure == FailureKind.INVALID_ADDRESS
        assert "source" in result.message

    def test_trailing_newline_source(self, lab_topology):
        """Stray whitespace makes the address invalid rather than unknown."""
        result = _ping(lab_topology, "192.168.1.10\n", "192.168.2.10")
        assert result.failure == FailureKind.INVALID_ADDRESS

    def test_unknown_source(self, lab_topology):
        """No device owns the source address."""
        result = _ping(lab_topology, "192.168.9.9", "192.168.2.10")
        assert result.failure == FailureKind.SOURCE_NOT_FOUND
        assert result.path == []

    def test_no_gateway(self, lab_topology):
        """An end device outside every router LAN has no gateway."""
        stray = Device(id="pc9", name="PC9", kind="pc", address="192.168.7.10")
        topo = lab_topology.model_copy(update={"devices": [*lab_topology.devices, stray]})
        result = _ping(topo, "192.168.7.10", "192.168.2.10")
        assert result.failure == FailureKind.NO_GATEWAY
        assert result.path == ["PC9"]

    def test_gateway_not_linked(self, lab_topology, drop_connection):
        """A gateway exists but the cable is missing."""
        topo = drop_connection(lab_topology, "conn-pc1-r1")
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.failure == FailureKind.GATEWAY_DISCONNECTED
        assert "R1" in result.message
        assert result.path == ["PC1"]

    def test_unknown_destination_host(self, lab_topology):
        """A free address in a routed subnet exhausts the direct route."""
        result = _ping(lab_topology, "192.168.1.10", "192.168.2.99")
        assert result.failure == FailureKind.ROUTES_EXHAUSTED
        assert result.failed_routes[0].reason == RouteFailureReason.DESTINATION_MISSING
        assert result.path == ["PC1", "R1", "R2"]

    def test_destination_not_linked(self, lab_topology, drop_connection):
        """Direct route to a device without a cable fails."""
        topo = drop_connection(lab_topology, "conn-r2-pc2")
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.failure == FailureKind.ROUTES_EXHAUSTED
        assert result.failed_routes[0].reason == RouteFailureReason.DESTINATION_DISCONNECTED

    def test_direct_route_without_interface(self, lab_topology, set_routes):
        """A direct route for a subnet the router is not attached to fails."""
        topo = set_routes(lab_topology, "R1", [("192.168.2.0", "-", 0)])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.failed_routes[0].reason == RouteFailureReason.NO_INTERFACE_IN_SUBNET

    def test_routers_without_common_subnet(self, lab_topology, replace_device):
        """Linked routers still need interfaces on a shared network."""
        r1 = lab_topology.device_by_name("R1")
        topo = replace_device(lab_topology, "R1", interfaces=[i for i in r1.interfaces if i.name == "LAN"])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.failure == FailureKind.ROUTES_EXHAUSTED
        assert result.failed_routes[0].reason == RouteFailureReason.NO_COMMON_SUBNET

    def test_routing_loop(self, lab_topology, set_routes):
        """Two routers pointing at each other are detected as a loop."""
        topo = set_routes(lab_topology, "R2", [("192.168.2.0", "R1", 1)])
        result = _ping(topo, "192.168.1.10", "192.168.2.10")
        assert result.success is False
        assert result.failure == FailureKind.ROUTING_LOOP
        assert result.path == ["PC1", "R1", "R2"]
        assert "PC1 -> R1 -> R2" in result.message

    def test_hop_limit(self, lab_topology, monkeypatch):
        """Running out of hops fails instead of looping forever."""
        monkeypatch.setattr(resolver, "MAX_HOPS", 1)
        result = _ping(lab_topology, "192.168.1.10", "192.168.2.10")
        assert result.failure == FailureKind.HOP_LIMIT_EXCEEDED
        assert result.path == ["PC1", "R1"]

    def test_default_hop_limit(self):
        """Ten hops is the default ceiling."""
        assert MAX_HOPS == 10


class TestDestinationNetwork:
    """Network used for routing-table lookups."""

    def test_known_device_uses_its_mask(self, lab_topology):
        """An existing destination is looked up with its interface mask."""
        assert destination_network(lab_topology.devices, "192.168.2.10") == "192.168.2.0"

    def test_unknown_address_uses_default_mask(self, lab_topology):
        """Unowned addresses fall back to /24."""
        assert destination_network(lab_topology.devices, "172.16.5.4") == "172.16.5.0"
