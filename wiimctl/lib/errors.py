# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Error taxonomy for device commands.

Everything raised by the LinkPlay client derives from ``WiiMError`` so the
polling layer can absorb a single type.  The router wraps a failed user
command in ``CommandFailed``.
"""


class WiiMError(Exception):
    """Base class for device and command failures."""

    message = "WiiM error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class NotConfigured(WiiMError):
    message = "No WiiM device configured"


class InvalidRequest(WiiMError):
    message = "Invalid device URL"


class DeviceError(WiiMError):
    """Device answered with a non-2xx HTTP status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Device returned error ({status_code})")


class Unreachable(WiiMError):
    message = "Cannot reach device"


class Timeout(WiiMError):
    message = "Device not responding"


class NoConnectivity(WiiMError):
    message = "No network connection"


class DecodeError(WiiMError):
    message = "Invalid response"


class CommandFailed(WiiMError):
    """A user command routed by the arbitrator failed (non-fatal, not retried)."""

    def __init__(self, action: str, error: Exception):
        self.action = action
        self.error = error
        super().__init__(f"{action} failed: {error}")


class BridgeError(WiiMError):
    """The local now-playing bridge or system mixer could not be driven."""

    message = "Local player unavailable"
