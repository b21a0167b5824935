from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from scene_relay.models.scene import SceneSnapshot

# =========================
# CLIENT -> SERVER
# =========================


class TriggerScene(BaseModel):
    msg: Literal["TriggerScene"]
    index: int


class StopNicely(BaseModel):
    msg: Literal["StopNicely"]


class StopNow(BaseModel):
    msg: Literal["StopNow"]


Command = Annotated[
    Union[TriggerScene, StopNicely, StopNow],
    Field(discriminator="msg"),
]

COMMAND_TAGS = ("TriggerScene", "StopNicely", "StopNow")


# =========================
# SERVER -> CLIENT
# =========================


class ScenesMessage(BaseModel):
    msg: Literal["scenes"] = "scenes"
    scenes: list[Dict[str, Any]]


class ActiveSceneMessage(BaseModel):
    msg: Literal["activeSceneId"] = "activeSceneId"
    id: Optional[str] = None


def snapshot_messages(snapshot: SceneSnapshot) -> list[dict]:
    """Frames sent for one snapshot, in order: scenes first, then the selected scene."""
    return [
        ScenesMessage(scenes=snapshot.wire_scenes()).model_dump(),
        ActiveSceneMessage(id=snapshot.active_scene_id).model_dump(),
    ]
