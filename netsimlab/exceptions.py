"""Exception hierarchy for topology editing and snapshot loading.

Path simulation never raises these: failures there are returned as data on
``SimulationResult``.
"""


class NetSimError(Exception):
    """Base exception for all netsimlab errors."""


class AddressError(NetSimError, ValueError):
    """An IPv4 host address or subnet mask is not acceptable."""


class TopologyFormatError(NetSimError):
    """A topology snapshot could not be parsed."""


class TopologyError(NetSimError):
    """A topology change was rejected."""


class DeviceNotFoundError(TopologyError):
    """No device with the given id exists."""

    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"Device '{device_id}' does not exist")


class DuplicateDeviceError(TopologyError):
    """Device id or name already in use."""


class LinkError(TopologyError):
    """A connection could not be created."""


class DuplicateLinkError(LinkError):
    """The two devices are already connected."""


class EndpointLinkError(LinkError):
    """Two end devices cannot be wired together without a router."""


class AddressConflictError(LinkError):
    """Two devices would share one address."""


class LanConflictError(LinkError):
    """Two routers use the same LAN subnet."""


class SubnetMismatchError(LinkError):
    """An end device's address lies outside its router's LAN."""

    def __init__(self, message: str, subnet: str, mask: str):
        self.subnet = subnet
        self.mask = mask
        super().__init__(message)


class RoutingTableError(TopologyError):
    """A routing table cannot be saved."""


class DnsRecordError(TopologyError):
    """A DNS record is malformed or duplicated."""
