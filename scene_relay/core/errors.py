"""
Error conditions of the relay.

None of these are fatal to the process: each one is caught at the component
boundary where it occurs, logged, and turned into degraded data or a dropped
message.
"""

from __future__ import annotations


class RelayError(Exception):
    pass


# =========================
# DEVICE
# =========================

class DeviceError(RelayError):
    pass


class DeviceReadFailure(DeviceError):
    """A device query for one entity or field failed."""


class DeviceCommandFailure(DeviceError):
    """A device command did not complete."""


class DeviceTimeout(DeviceCommandFailure):
    """A device query or command did not answer in time."""


# =========================
# CLIENTS
# =========================

class InvalidClientMessage(RelayError):
    """Inbound frame is not valid JSON or not a known message shape."""


class UnrecognizedCommand(InvalidClientMessage):
    def __init__(self, tag: object) -> None:
        super().__init__(f"unrecognized command: {tag!r}")
        self.tag = tag


class InvalidIndex(RelayError):
    def __init__(self, index: int, scene_count: int) -> None:
        super().__init__(f"scene index {index} out of range (scenes: {scene_count})")
        self.index = index
        self.scene_count = scene_count


class ClientDeliveryFailure(RelayError):
    pass


# =========================
# STATE
# =========================

class StaleAggregation(RelayError):
    """An aggregation finished after a newer snapshot was already published."""

    def __init__(self, based_on: int, current: int) -> None:
        super().__init__(f"aggregation based on v{based_on} superseded by v{current}")
        self.based_on = based_on
        self.current = current
