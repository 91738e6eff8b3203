"""Load and save topology snapshots as JSON."""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union

from loguru import logger
from pydantic import ValidationError

from netsimlab.exceptions import TopologyFormatError
from netsimlab.topology.editor import normalize_topology
from netsimlab.topology.models import Topology

EXPORT_VERSION = "1.0"

# Submission files nest the snapshot under one of these keys
_WRAPPER_KEYS = ("topology", "config")


def _unwrap(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise TopologyFormatError(f"Expected a JSON object, got {type(data).__name__}")
    if "devices" in data:
        return data
    for key in _WRAPPER_KEYS:
        inner = data.get(key)
        if isinstance(inner, dict) and "devices" in inner:
            student = data.get("studentInfo")
            if isinstance(student, dict) and student.get("name"):
                logger.info(f"Loading submission of {student['name']}")
            return inner
    raise TopologyFormatError("No 'devices' list found (neither at top level nor under 'topology')")


def parse_topology(text: str) -> Topology:
    """Parse a JSON snapshot in the direct or submission-wrapper format.

    Routers are normalized on import. Duplicate device names are accepted
    but logged, since name-based next hops become ambiguous.

    Raises:
        TopologyFormatError: If the text is not valid JSON or the snapshot
            does not validate.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise TopologyFormatError(f"Invalid JSON: {e}") from e

    payload = _unwrap(data)
    try:
        topology = Topology.model_validate(
            {"devices": payload.get("devices") or [], "connections": payload.get("connections") or []}
        )
    except ValidationError as e:
        raise TopologyFormatError(f"Invalid topology: {e}") from e

    duplicates = sorted(name for name, count in Counter(d.name for d in topology.devices).items() if count > 1)
    if duplicates:
        logger.warning(f"Duplicate device names {duplicates}: next-hop lookups by name will be ambiguous")

    known = {d.id for d in topology.devices}
    dangling = [c.id for c in topology.connections if c.source not in known or c.target not in known]
    if dangling:
        logger.warning(f"Connections referencing unknown devices: {dangling}")

    logger.debug(f"Parsed {len(topology.devices)} devices, {len(topology.connections)} connections")
    return normalize_topology(topology)


def load_topology(source: Union[str, Path]) -> Topology:
    """Read a snapshot file; see :func:`parse_topology`."""
    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TopologyFormatError(f"Cannot read {path}: {e}") from e
    return parse_topology(text)


def dump_topology(topology: Topology, timestamp: datetime | None = None) -> str:
    """Serialize *topology* in the export format (version, timestamp, devices, connections)."""
    ts = timestamp or datetime.now(timezone.utc)
    document = {
        "version": EXPORT_VERSION,
        "timestamp": ts.isoformat(),
        "devices": [d.model_dump(mode="json") for d in topology.devices],
        "connections": [c.model_dump(mode="json") for c in topology.connections],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def save_topology(topology: Topology, target: Union[str, Path]) -> None:
    path = Path(target)
    path.write_text(dump_topology(topology) + "\n", encoding="utf-8")
    logger.info(f"Topology written to {path}")
