"""
Exception types raised by the wearable device core.
"""


class DeviceCoreError(Exception):
    """Base class for all device core errors"""
    pass


class InvalidFormat(DeviceCoreError, ValueError):
    """Raised when an identifier or version string is malformed"""
    pass


class OutOfRange(DeviceCoreError, ValueError):
    """Raised when a numeric record field falls outside its allowed range"""

    def __init__(self, field_name: str, value, allowed: str):
        self.field_name = field_name
        self.value = value
        self.allowed = allowed
        super().__init__(f"{field_name}={value!r} is out of range (expected {allowed})")


class UnknownState(DeviceCoreError, ValueError):
    """Raised when a stored status value does not name a known state"""

    def __init__(self, enum_name: str, value):
        self.enum_name = enum_name
        self.value = value
        super().__init__(f"Unknown {enum_name} value: {value!r}")


class DuplicateDeviceError(DeviceCoreError):
    """Raised when a device with the same id or MAC address already exists"""
    pass


class DeviceNotFoundError(DeviceCoreError, KeyError):
    """Raised when a device lookup finds nothing"""

    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(device_id)

    def __str__(self):
        return f"Device not found: {self.device_id}"
