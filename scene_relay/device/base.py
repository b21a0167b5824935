"""
Device adapter boundary.

The relay only ever talks to the control surface through this surface:
queries over scenes / clip slots / clips, three transport commands, and
change subscriptions. Concrete adapters live next to this module.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from scene_relay.core.errors import DeviceTimeout

log = logging.getLogger("device")

T = TypeVar("T")


# =========================
# REFS
# =========================

@dataclass(frozen=True)
class SceneRef:
    id: str
    index: int


@dataclass(frozen=True)
class ClipSlotRef:
    track: int
    scene: SceneRef


@dataclass(frozen=True)
class ClipRef:
    track: int
    scene: SceneRef


DeviceRef = Union[SceneRef, ClipSlotRef, ClipRef]

SCENE_PROPS = ("name", "color")
CLIP_PROPS = ("is_triggered", "is_playing", "length", "playing_position")


class DeviceEvent(str, Enum):
    SCENES = "scenes"
    SELECTED_SCENE = "selected_scene"
    PLAYING_SLOT_INDEX = "playing_slot_index"


Listener = Callable[[Any], None]


async def with_timeout(aw: Awaitable[T], timeout_s: float, what: str) -> T:
    try:
        return await asyncio.wait_for(aw, timeout=timeout_s)
    except asyncio.TimeoutError as e:
        raise DeviceTimeout(f"{what} timed out after {timeout_s}s") from e


class DeviceAdapter:
    """
    Base class for control-surface adapters.

    Subclasses implement the async queries and commands. Subscriptions are
    handled here: adapters call `_emit()` from the event loop whenever the
    device reports a change, and every listener for that event runs in turn.
    A listener that raises is logged and does not stop the others.
    """

    name = "device"

    def __init__(self) -> None:
        self._listeners: dict[DeviceEvent, list[Listener]] = {}

    # =========================
    # Lifecycle
    # =========================

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    # =========================
    # Queries
    # =========================

    async def get_scene_list(self) -> list[SceneRef]:
        raise NotImplementedError

    async def get_clip_slots(self, scene: SceneRef) -> list[ClipSlotRef]:
        raise NotImplementedError

    async def get_clip(self, slot: ClipSlotRef) -> Optional[ClipRef]:
        raise NotImplementedError

    async def get(self, ref: DeviceRef, prop: str) -> Any:
        raise NotImplementedError

    async def get_selected_scene(self) -> Optional[SceneRef]:
        raise NotImplementedError

    # =========================
    # Commands
    # =========================

    async def fire_scene(self, scene: SceneRef) -> None:
        raise NotImplementedError

    async def stop_all_clips(self) -> None:
        raise NotImplementedError

    async def stop_playing(self) -> None:
        raise NotImplementedError

    # =========================
    # Subscriptions
    # =========================

    def subscribe(self, event: DeviceEvent, callback: Listener) -> Callable[[], None]:
        self._listeners.setdefault(event, []).append(callback)
        log.debug("device_subscribed", extra={"event": event.value})

        def unsubscribe() -> None:
            callbacks = self._listeners.get(event, [])
            self._listeners[event] = [cb for cb in callbacks if cb is not callback]

        return unsubscribe

    def _emit(self, event: DeviceEvent, payload: Any = None) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception:
                log.exception("device_listener_failed", extra={"event": event.value})
