"""
Device capabilities and their comma-separated token encoding.
"""

import logging
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)


class Capability(Enum):
    """Optional features a wearable may support. The token is the member name."""
    HEART_RATE = "HEART_RATE"
    CONTINUOUS_HEART_RATE = "CONTINUOUS_HEART_RATE"
    BLOOD_OXYGEN = "BLOOD_OXYGEN"
    BLOOD_PRESSURE = "BLOOD_PRESSURE"
    ECG = "ECG"
    HRV = "HRV"
    RESPIRATORY_RATE = "RESPIRATORY_RATE"
    TEMPERATURE = "TEMPERATURE"
    STEPS = "STEPS"
    SLEEP_TRACKING = "SLEEP_TRACKING"
    STRESS_MONITORING = "STRESS_MONITORING"
    NOTIFICATIONS = "NOTIFICATIONS"
    WEATHER = "WEATHER"
    FIND_PHONE = "FIND_PHONE"
    CAMERA_CONTROL = "CAMERA_CONTROL"
    MUSIC_CONTROL = "MUSIC_CONTROL"

    @classmethod
    def from_token(cls, token: str) -> Optional["Capability"]:
        """Look up a capability by token, returning None for unknown tokens"""
        return cls.__members__.get(token)


def decode_capabilities(tokens: Optional[str],
                        on_unknown: Optional[Callable[[str], None]] = None) -> FrozenSet[Capability]:
    """Decode a comma-separated token list into a set of capabilities.

    Unknown tokens are dropped so records written by newer firmware still
    load. ``on_unknown`` receives each dropped token.
    """
    if not tokens or not tokens.strip():
        return frozenset()

    result = set()
    for token in tokens.split(","):
        token = token.strip()
        if not token:
            continue
        capability = Capability.from_token(token)
        if capability is None:
            if on_unknown is not None:
                on_unknown(token)
            else:
                logger.debug(f"Dropping unknown capability token {token!r}")
            continue
        result.add(capability)

    return frozenset(result)


def encode_capabilities(capabilities: Iterable[Capability]) -> str:
    """Encode capabilities as a comma-separated token list in declaration order"""
    present = set(capabilities)
    return ",".join(c.name for c in Capability if c in present)


def coerce_capabilities(value, on_unknown: Optional[Callable[[str], None]] = None) -> FrozenSet[Capability]:
    """Accept a token string, an iterable of tokens/capabilities, or None"""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return decode_capabilities(value, on_unknown)

    result = set()
    for item in value:
        if isinstance(item, Capability):
            result.add(item)
        else:
            result |= decode_capabilities(str(item), on_unknown)
    return frozenset(result)


def has_capability(capabilities: Iterable[Capability], capability: Capability) -> bool:
    return capability in set(capabilities)
