from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ConfigDict

from scene_relay.device.base import SceneRef


class ClipState(BaseModel):
    model_config = ConfigDict(frozen=True)

    isTriggered: bool = False
    isPlaying: bool = False
    length: float = 0.0
    playingPosition: float = 0.0


class SceneView(BaseModel):
    """One scene as clients see it; the last four fields are derived from its clips."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: str
    index: int
    isTriggered: bool = False
    isPlaying: bool = False
    length: float = 0.0
    playingPosition: float = 0.0


@dataclass(frozen=True)
class SceneSnapshot:
    """
    Full mirrored state at one instant.

    `refs` is aligned with `scenes` and is what commands fire against; it is
    never sent to clients.
    """

    scenes: tuple[SceneView, ...] = ()
    refs: tuple[SceneRef, ...] = ()
    active_scene_id: Optional[str] = None

    def __post_init__(self) -> None:
        if len(self.scenes) != len(self.refs):
            raise ValueError("scenes and refs must be aligned")

    def __len__(self) -> int:
        return len(self.scenes)

    def wire_scenes(self) -> list[dict]:
        return [s.model_dump() for s in self.scenes]


EMPTY_SNAPSHOT = SceneSnapshot()


@dataclass(frozen=True)
class MirrorState:
    snapshot: SceneSnapshot = field(default=EMPTY_SNAPSHOT)
    version: int = 0
