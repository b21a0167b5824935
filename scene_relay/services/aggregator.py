from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

from scene_relay.device.base import (
    CLIP_PROPS,
    ClipRef,
    ClipSlotRef,
    DeviceAdapter,
    SceneRef,
    with_timeout,
)
from scene_relay.models.scene import ClipState, SceneSnapshot, SceneView

log = logging.getLogger("aggregator")

DEFAULT_COLOR = "#000000"


def encode_color(raw: Any) -> str:
    """Live reports colors as 0xRRGGBB integers; clients get `#rrggbb`."""
    if isinstance(raw, bool) or raw is None:
        return DEFAULT_COLOR
    if isinstance(raw, (int, float)):
        return f"#{int(raw) & 0xFFFFFF:06x}"
    return str(raw)


def summarize_clips(clips: Sequence[ClipState]) -> dict:
    """
    Derived scene fields: OR of the flags, MAX of length / position.
    A scene with no clips is not triggered, not playing, length 0, position 0.
    """
    return {
        "isTriggered": any(c.isTriggered for c in clips),
        "isPlaying": any(c.isPlaying for c in clips),
        "length": max((c.length for c in clips), default=0.0),
        "playingPosition": max((c.playingPosition for c in clips), default=0.0),
    }


class MetadataAggregator:
    """
    Builds a SceneSnapshot from the device's scene list.

    Reads fan out per scene and per clip; each scene's record is produced
    only after all of its own reads are back. A failed read degrades the
    field or drops the clip, it never fails the whole snapshot.
    """

    def __init__(self, device: DeviceAdapter, timeout_s: float = 2.0) -> None:
        self.device = device
        self.timeout_s = timeout_s

    async def aggregate(
        self,
        scenes: Sequence[SceneRef],
        active: Optional[SceneRef] = None,
    ) -> SceneSnapshot:
        views = await asyncio.gather(
            *(self._scene_view(scene, index) for index, scene in enumerate(scenes))
        )
        active_id = active.id if active is not None else None
        log.debug("aggregated", extra={"scenes": len(views), "active": active_id})
        return SceneSnapshot(scenes=tuple(views), refs=tuple(scenes), active_scene_id=active_id)

    # =========================
    # Per scene
    # =========================

    async def _scene_view(self, scene: SceneRef, index: int) -> SceneView:
        name, color, clips = await asyncio.gather(
            self._read(scene, "name", index),
            self._read(scene, "color", index),
            self._clips(scene, index),
        )
        return SceneView(
            id=scene.id,
            name="" if name is None else str(name),
            color=encode_color(color),
            index=index,
            **summarize_clips(clips),
        )

    async def _clips(self, scene: SceneRef, index: int) -> list[ClipState]:
        try:
            slots = await with_timeout(
                self.device.get_clip_slots(scene), self.timeout_s, "get_clip_slots"
            )
        except Exception as e:
            log.warning("clip_slots_unreadable", extra={"scene": index, "error": str(e)})
            return []

        clips = await asyncio.gather(*(self._slot_clip(slot, index) for slot in slots))
        return [c for c in clips if c is not None]

    # =========================
    # Per clip
    # =========================

    async def _slot_clip(self, slot: ClipSlotRef, index: int) -> Optional[ClipState]:
        try:
            clip = await with_timeout(self.device.get_clip(slot), self.timeout_s, "get_clip")
        except Exception as e:
            log.warning(
                "clip_unreadable",
                extra={"scene": index, "track": slot.track, "error": str(e)},
            )
            return None
        if clip is None:
            return None
        return await self._clip_state(clip, index)

    async def _clip_state(self, clip: ClipRef, index: int) -> Optional[ClipState]:
        results = await asyncio.gather(
            *(
                with_timeout(self.device.get(clip, prop), self.timeout_s, f"clip.{prop}")
                for prop in CLIP_PROPS
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.warning(
                    "clip_unreadable",
                    extra={"scene": index, "track": clip.track, "error": str(result)},
                )
                return None

        is_triggered, is_playing, length, position = results
        try:
            return ClipState(
                isTriggered=bool(is_triggered),
                isPlaying=bool(is_playing),
                length=float(length or 0.0),
                playingPosition=float(position or 0.0),
            )
        except (TypeError, ValueError) as e:
            log.warning(
                "clip_unreadable",
                extra={"scene": index, "track": clip.track, "error": str(e)},
            )
            return None

    async def _read(self, scene: SceneRef, prop: str, index: int) -> Any:
        try:
            return await with_timeout(self.device.get(scene, prop), self.timeout_s, f"scene.{prop}")
        except Exception as e:
            log.warning(
                "scene_field_unreadable",
                extra={"scene": index, "prop": prop, "error": str(e)},
            )
            return None
