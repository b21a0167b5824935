from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from scene_relay.core.errors import DeviceCommandFailure, DeviceReadFailure
from scene_relay.device.base import (
    ClipRef,
    ClipSlotRef,
    DeviceAdapter,
    DeviceEvent,
    DeviceRef,
    SceneRef,
)

log = logging.getLogger("device.simulated")

STOPPED_SLOT = -1


@dataclass
class SimulatedScene:
    id: str
    name: str
    color: int = 0


@dataclass
class SimulatedClip:
    is_triggered: bool = False
    is_playing: bool = False
    length: float = 4.0
    playing_position: float = 0.0


class SimulatedDevice(DeviceAdapter):
    """
    In-memory session view: a list of scenes crossed with `num_tracks` tracks.

    Scene ids stay stable when scenes are reordered. Failure injection:
    `failing_props` makes `get()` raise for those property names, and
    `latency_s` delays every query (set it above the relay's device timeout
    to simulate a hung device).
    """

    name = "simulated"

    def __init__(self, scene_names: Iterable[str] = (), num_tracks: int = 0) -> None:
        super().__init__()
        self._ids = itertools.count()
        self.scenes: list[SimulatedScene] = [self._new_scene(n) for n in scene_names]
        self.num_tracks = num_tracks
        self.clips: dict[tuple[int, str], SimulatedClip] = {}
        self.selected_scene_id: Optional[str] = self.scenes[0].id if self.scenes else None

        self.latency_s: float = 0.0
        self.failing_props: set[str] = set()
        self.fail_scene_list = False
        self.fail_commands = False

        # command log, for inspection
        self.fired: list[str] = []
        self.stop_calls: list[str] = []

    def _new_scene(self, name: str) -> SimulatedScene:
        return SimulatedScene(id=f"scene-{next(self._ids)}", name=name)

    # =========================
    # Setup / mutation (device side)
    # =========================

    def set_scenes(self, names: Iterable[str]) -> None:
        """Replace the scene list, keeping ids of scenes whose names survive."""
        by_name = {s.name: s for s in self.scenes}
        self.scenes = [by_name.pop(n, None) or self._new_scene(n) for n in names]
        live_ids = {s.id for s in self.scenes}
        self.clips = {k: c for k, c in self.clips.items() if k[1] in live_ids}
        self._emit(DeviceEvent.SCENES, [s.id for s in self.scenes])

    def set_clip(self, track: int, scene_index: int, **attrs: Any) -> SimulatedClip:
        if track >= self.num_tracks:
            self.num_tracks = track + 1
        scene = self.scenes[scene_index]
        clip = self.clips.setdefault((track, scene.id), SimulatedClip())
        for key, value in attrs.items():
            setattr(clip, key, value)
        return clip

    def select_scene(self, scene_index: int) -> None:
        self.selected_scene_id = self.scenes[scene_index].id
        self._emit(DeviceEvent.SELECTED_SCENE, scene_index)

    def notify_slot_index(self, track: int, index: int) -> None:
        self._emit(DeviceEvent.PLAYING_SLOT_INDEX, {"track": track, "index": index})

    # =========================
    # Queries
    # =========================

    async def _tick(self) -> None:
        await asyncio.sleep(self.latency_s)

    def _scene(self, ref: SceneRef) -> SimulatedScene:
        for scene in self.scenes:
            if scene.id == ref.id:
                return scene
        raise DeviceReadFailure(f"scene {ref.id} no longer exists")

    async def get_scene_list(self) -> list[SceneRef]:
        await self._tick()
        if self.fail_scene_list:
            raise DeviceReadFailure("scene list unavailable")
        return [SceneRef(id=s.id, index=i) for i, s in enumerate(self.scenes)]

    async def get_clip_slots(self, scene: SceneRef) -> list[ClipSlotRef]:
        await self._tick()
        self._scene(scene)
        return [ClipSlotRef(track=t, scene=scene) for t in range(self.num_tracks)]

    async def get_clip(self, slot: ClipSlotRef) -> Optional[ClipRef]:
        await self._tick()
        if (slot.track, slot.scene.id) not in self.clips:
            return None
        return ClipRef(track=slot.track, scene=slot.scene)

    async def get(self, ref: DeviceRef, prop: str) -> Any:
        await self._tick()
        if prop in self.failing_props:
            raise DeviceReadFailure(f"{prop} unreadable")

        if isinstance(ref, SceneRef):
            target: Any = self._scene(ref)
        elif isinstance(ref, ClipRef):
            target = self.clips.get((ref.track, ref.scene.id))
            if target is None:
                raise DeviceReadFailure(f"clip {ref.track}/{ref.scene.id} is gone")
        else:
            raise DeviceReadFailure(f"no properties on {ref!r}")

        if not hasattr(target, prop):
            raise DeviceReadFailure(f"unknown property {prop!r}")
        return getattr(target, prop)

    async def get_selected_scene(self) -> Optional[SceneRef]:
        await self._tick()
        for i, scene in enumerate(self.scenes):
            if scene.id == self.selected_scene_id:
                return SceneRef(id=scene.id, index=i)
        return None

    # =========================
    # Commands
    # =========================

    async def fire_scene(self, scene: SceneRef) -> None:
        await self._tick()
        if self.fail_commands:
            raise DeviceCommandFailure("fire_scene rejected")
        target = self._scene(scene)
        index = self.scenes.index(target)
        self.fired.append(target.name)
        log.info("sim_scene_fired", extra={"scene": target.name, "index": index})

        for track in range(self.num_tracks):
            for (t, scene_id), clip in self.clips.items():
                if t == track:
                    clip.is_playing = scene_id == target.id
                    clip.is_triggered = False
                    clip.playing_position = 0.0
            has_clip = (track, target.id) in self.clips
            self.notify_slot_index(track, index if has_clip else STOPPED_SLOT)

    async def stop_all_clips(self) -> None:
        await self._tick()
        if self.fail_commands:
            raise DeviceCommandFailure("stop_all_clips rejected")
        self.stop_calls.append("stop_all_clips")
        self._stop()

    async def stop_playing(self) -> None:
        await self._tick()
        if self.fail_commands:
            raise DeviceCommandFailure("stop_playing rejected")
        self.stop_calls.append("stop_playing")
        self._stop()

    def _stop(self) -> None:
        for clip in self.clips.values():
            clip.is_playing = False
            clip.is_triggered = False
            clip.playing_position = 0.0
        for track in range(self.num_tracks):
            self.notify_slot_index(track, STOPPED_SLOT)
