"""Mermaid flowchart generation for topologies and simulated packet paths."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Optional

from netsimlab.topology.models import Device, DeviceKind, Topology

if TYPE_CHECKING:
    from netsimlab.simulation.models import SimulationResult


def _sanitize(text: str) -> str:
    """Sanitize text for Mermaid labels."""
    return text.replace('"', "'").replace("<", "&lt;").replace(">", "&gt;")


def _node_shape(device: Device, node_id: str, label: str) -> str:
    """Mermaid node declaration; the shape reflects the device kind."""
    if device.kind == DeviceKind.ROUTER:
        return f'{node_id}{{{{"{label}"}}}}'
    if device.kind == DeviceKind.PC:
        return f'{node_id}["{label}"]'
    return f'{node_id}[("{label}")]'


class TopologyMermaidGenerator:
    """Generate a Mermaid flowchart of devices and physical links.

    Styles:
      - flat: every device at top level
      - subnets: end devices grouped into one subgraph per router LAN
    """

    DIAGRAM_STYLES = ("flat", "subnets")

    def __init__(
        self,
        topology: Topology,
        style: str = "flat",
        direction: str = "LR",
        highlight_path: Optional[list[str]] = None,
    ) -> None:
        self.topology = topology
        self.style = style
        self.direction = direction
        self.highlight_path = highlight_path or []
        self._id_counter = 0
        self._node_ids: dict[str, str] = {}

    def _next_id(self, prefix: str = "n") -> str:
        self._id_counter += 1
        return f"{prefix}{self._id_counter}"

    def _device_label(self, device: Device) -> str:
        parts = [_sanitize(device.name)]
        if device.is_router:
            parts.extend(f"{i.name}: {i.address}" for i in device.interfaces)
        elif device.address:
            parts.append(device.address)
        return "<br/>".join(parts)

    def _link_label(self, source: Device, target: Device, conn_source_iface: Optional[str]) -> str:
        """Backbone links show their subnet; LAN links are unlabeled."""
        if not (source.is_router and target.is_router):
            return ""
        iface = source.interface_by_id(conn_source_iface) if conn_source_iface else None
        return iface.subnet if iface is not None else ""

    def _lan_groups(self) -> tuple[dict[str, list[Device]], list[Device]]:
        """Map each router LAN subnet to the end devices inside it."""
        lans: dict[str, Device] = {}
        for device in self.topology.devices:
            lan = device.lan_interface if device.is_router else None
            if lan is not None:
                lans.setdefault(lan.subnet, device)

        groups: dict[str, list[Device]] = defaultdict(list)
        ungrouped: list[Device] = []
        for device in self.topology.devices:
            if device.is_router:
                ungrouped.append(device)
                continue
            for subnet, router in lans.items():
                lan = router.lan_interface
                if lan is not None and lan.contains(device.address):
                    groups[subnet].append(device)
                    break
            else:
                ungrouped.append(device)
        return groups, ungrouped

    def generate(self) -> str:
        """Generate the diagram as a fenced ``mermaid`` block."""
        t = self.topology
        lines: list[str] = ["```mermaid", f"flowchart {self.direction}"]

        for device in t.devices:
            self._node_ids[device.id] = self._next_id("d")

        if self.style == "subnets":
            groups, ungrouped = self._lan_groups()
            for index, (subnet, members) in enumerate(sorted(groups.items())):
                lines.append(f'    subgraph lan{index}["LAN {subnet}"]')
                for device in members:
                    node = _node_shape(device, self._node_ids[device.id], self._device_label(device))
                    lines.append(f"        {node}")
                lines.append("    end")
            for device in ungrouped:
                lines.append(f"    {_node_shape(device, self._node_ids[device.id], self._device_label(device))}")
        else:
            for device in t.devices:
                lines.append(f"    {_node_shape(device, self._node_ids[device.id], self._device_label(device))}")

        highlighted_pairs = set()
        names = [t.device_by_name(n) for n in self.highlight_path]
        for first, second in zip(names, names[1:]):
            if first is not None and second is not None:
                highlighted_pairs.add(frozenset((first.id, second.id)))

        highlighted_edges: list[int] = []
        edge_index = 0
        for conn in t.connections:
            source = t.device_by_id(conn.source)
            target = t.device_by_id(conn.target)
            if source is None or target is None:
                continue
            label = self._link_label(source, target, conn.source_interface_id)
            arrow = f"---|{label}|" if label else "---"
            lines.append(f"    {self._node_ids[source.id]} {arrow} {self._node_ids[target.id]}")
            if frozenset((source.id, target.id)) in highlighted_pairs:
                highlighted_edges.append(edge_index)
            edge_index += 1

        if self.highlight_path:
            lines.append("    classDef onpath fill:#fde68a,stroke:#b45309,stroke-width:2px")
            for name in self.highlight_path:
                device = t.device_by_name(name)
                if device is not None:
                    lines.append(f"    class {self._node_ids[device.id]} onpath")
            for index in highlighted_edges:
                lines.append(f"    linkStyle {index} stroke:#b45309,stroke-width:3px")

        lines.append("```")
        lines.append("")
        return "\n".join(lines)


class PathMermaidGenerator:
    """Sequence of hops for one simulation result.

    Request hops are solid arrows; for round trips the response path is drawn
    dashed. A failed hop ends in a red "X" node.
    """

    def __init__(self, result: SimulationResult, direction: str = "LR") -> None:
        self.result = result
        self.direction = direction
        self._id_counter = 0

    def _next_id(self, prefix: str = "p") -> str:
        self._id_counter += 1
        return f"{prefix}{self._id_counter}"

    def generate(self) -> str:
        r = self.result
        lines: list[str] = ["```mermaid", f"flowchart {self.direction}"]
        request = r.request_path if r.is_round_trip else r.path

        node_ids: dict[str, str] = {}
        for name in list(request) + list(r.response_path):
            if name not in node_ids:
                node_ids[name] = self._next_id()
                lines.append(f'    {node_ids[name]}["{_sanitize(name)}"]')

        req_label = f"|{_sanitize(r.request_label)}|" if r.request_label else ""
        for index, (first, second) in enumerate(zip(request, request[1:])):
            label = req_label if index == 0 else ""
            lines.append(f"    {node_ids[first]} -->{label} {node_ids[second]}")

        if r.is_round_trip and r.response_path:
            resp_label = f"|{_sanitize(r.response_label)}|" if r.response_label else ""
            response = r.response_path
            for index, (first, second) in enumerate(zip(response, response[1:])):
                label = resp_label if index == 0 else ""
                lines.append(f"    {node_ids[first]} -.->{label} {node_ids[second]}")

        if not r.success and request:
            fail_id = self._next_id("x")
            reason = r.failure.value if r.failure is not None else "failed"
            lines.append(f'    {fail_id}(("X {_sanitize(reason)}"))')
            lines.append(f"    {node_ids[request[-1]]} --> {fail_id}")
            lines.append("    classDef failed fill:#fecaca,stroke:#b91c1c")
            lines.append(f"    class {fail_id} failed")

        lines.append("```")
        lines.append("")
        return "\n".join(lines)
