"""
MAC address and firmware version helpers.
"""

import re
import logging
from typing import Callable, List, Optional

from .errors import InvalidFormat

logger = logging.getLogger(__name__)

# XX:XX:XX:XX:XX:XX or XX-XX-XX-XX-XX-XX
MAC_ADDRESS_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")
_NON_HEX = re.compile(r"[^0-9A-Fa-f]")


def validate_mac_address(mac_address: str) -> bool:
    """Check that a MAC address has six two-digit hex groups separated by ':' or '-'."""
    if not isinstance(mac_address, str):
        return False
    if not MAC_ADDRESS_PATTERN.match(mac_address):
        return False
    # Mixed separators ("AA:BB-CC...") are not a valid address
    return len(set(mac_address[2::3])) == 1


def canonicalize_mac_address(mac_address: str) -> str:
    """Convert a MAC address to the canonical ``XX:XX:XX:XX:XX:XX`` form.

    Every non-hex character is stripped first, so ``aa-bb-cc-dd-ee-ff``,
    ``aabb.ccdd.eeff`` and ``AA:BB:CC:DD:EE:FF`` all map to the same value.

    Raises:
        InvalidFormat: if anything other than exactly 12 hex digits remain
    """
    clean = _NON_HEX.sub("", mac_address or "")
    if len(clean) != 12:
        raise InvalidFormat(f"Invalid MAC address: {mac_address!r}")
    return ":".join(clean[i:i + 2] for i in range(0, 12, 2)).upper()


def parse_version(version: str, on_drop: Optional[Callable[[str], None]] = None) -> List[int]:
    """Split a dotted version string into its numeric components.

    Components that are not non-negative integers are skipped rather than
    rejected, so "1.2.beta.4" parses as [1, 2, 4]. ``on_drop`` is called with
    every skipped component.
    """
    components = []
    for part in version.split("."):
        if part.isdigit() and part.isascii():
            components.append(int(part))
            continue
        if on_drop is not None:
            on_drop(part)
        else:
            logger.debug(f"Ignoring non-numeric version component {part!r} in {version!r}")
    return components


def compare_versions(current: str, latest: Optional[str]) -> bool:
    """Return True if ``latest`` is newer than ``current``.

    Components are compared numerically up to the shorter length; the first
    difference decides. If all compared components match, the version with
    more components is the newer one ("1.2" < "1.2.0").
    """
    if latest is None:
        return False

    current_parts = parse_version(current)
    latest_parts = parse_version(latest)

    for cur, new in zip(current_parts, latest_parts):
        if new > cur:
            return True
        if new < cur:
            return False

    return len(latest_parts) > len(current_parts)
