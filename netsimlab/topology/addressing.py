"""IPv4 address and subnet helpers.

The rules here are deliberately stricter and narrower than real IPv4: only a
handful of canonical masks are accepted, and addresses ending in ``.0`` or
``.255`` are never valid hosts, regardless of the mask in use.
"""

from __future__ import annotations

import re

from netsimlab.exceptions import AddressError

DEFAULT_SUBNET_MASK = "255.255.255.0"

VALID_MASKS = (
    "255.255.255.0",
    "255.255.0.0",
    "255.0.0.0",
    "255.255.255.128",
    "255.255.255.192",
    "255.255.255.224",
    "255.255.255.240",
    "255.255.255.248",
    "255.255.255.252",
)

_ADDRESS_RE = re.compile(r"([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})")
_DOMAIN_RE = re.compile(
    r"[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?(\.[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?)*\.[a-zA-Z]{2,}"
)


def _octets(text: str) -> list[int] | None:
    """Return the four octets of a dotted quad, or None if it is not one."""
    m = _ADDRESS_RE.fullmatch(text.strip()) if text else None
    if not m:
        return None
    octets = [int(g) for g in m.groups()]
    if any(o > 255 for o in octets):
        return None
    return octets


def looks_like_address(text: str) -> bool:
    """Return True if *text* is a four-octet literal (0-255 each)."""
    return _octets(text) is not None


def derive_subnet(address: str, mask: str = DEFAULT_SUBNET_MASK) -> str:
    """Return the network address of *address* under *mask*.

    A malformed mask degrades to the first three octets plus ``.0``; an
    unparseable address degrades to ``0.0.0.0``.
    """
    addr = _octets(address)
    if addr is None:
        return "0.0.0.0"

    mask_octets = _octets(mask or "")
    if mask_octets is None:
        return f"{addr[0]}.{addr[1]}.{addr[2]}.0"

    return ".".join(str(a & m) for a, m in zip(addr, mask_octets))


def is_in_same_subnet(first: str, mask: str, second: str) -> bool:
    """Return True if both addresses share a network under *mask*."""
    if _octets(first) is None or _octets(second) is None:
        return False
    return derive_subnet(first, mask) == derive_subnet(second, mask)


def is_valid_mask(mask: str) -> bool:
    """Accept only the canonical masks used in class (/8, /16, /24, /25-/30)."""
    return mask in VALID_MASKS


def mask_to_cidr(mask: str) -> int:
    """Convert a dotted mask to its prefix length (counts set bits)."""
    octets = _octets(mask)
    if octets is None:
        raise AddressError(f"Invalid subnet mask: {mask}")
    return sum(bin(o).count("1") for o in octets)


def cidr_to_mask(prefix: int) -> str:
    """Convert a prefix length to a dotted mask."""
    if not 0 <= prefix <= 32:
        raise AddressError(f"Invalid prefix length: {prefix}")
    parts = []
    for i in range(4):
        bits = min(8, max(0, prefix - i * 8))
        parts.append(256 - 2 ** (8 - bits))
    return ".".join(str(p) for p in parts)


def validate_address(address: str) -> None:
    """Check that *address* may be assigned to a device.

    Raises:
        AddressError: With a message explaining which rule was broken.
    """
    if not address or not address.strip():
        raise AddressError("IP address must not be empty")

    m = _ADDRESS_RE.fullmatch(address)
    if not m:
        raise AddressError(
            f"Malformed IP address '{address}': expected four decimal numbers 0-255 (e.g. 192.168.1.1)"
        )

    octets = [int(g) for g in m.groups()]
    for i, octet in enumerate(octets, start=1):
        if octet > 255:
            raise AddressError(f"Octet {i} of '{address}' ({octet}) is out of range, must be 0-255")

    if octets[0] == 0:
        raise AddressError(f"'{address}' starts with 0; 0.x.x.x is reserved and cannot be a device address")
    if octets[0] == 127:
        raise AddressError(f"'{address}' is a loopback address (127.x.x.x)")
    if octets[0] == 255:
        raise AddressError(f"'{address}' starts with 255, which is a broadcast address")
    if octets[3] == 0:
        raise AddressError(f"'{address}' ends in .0, which is a network address, not a host")
    if octets[3] == 255:
        raise AddressError(f"'{address}' ends in .255, which is a broadcast address, not a host")


def is_valid_address(address: str) -> bool:
    """Return True if *address* passes :func:`validate_address`."""
    try:
        validate_address(address)
        return True
    except AddressError:
        return False


def is_valid_domain(domain: str) -> bool:
    """Loose hostname syntax check (labels plus an alphabetic TLD)."""
    return bool(_DOMAIN_RE.fullmatch(domain or ""))
