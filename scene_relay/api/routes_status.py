from __future__ import annotations

from fastapi import APIRouter, Depends

from scene_relay.api.deps import get_device, get_mirror, get_relay
from scene_relay.device.base import DeviceAdapter
from scene_relay.models.messages import snapshot_messages
from scene_relay.models.status import RelayStatus
from scene_relay.state.scene_mirror import SceneMirror
from scene_relay.ws.relay import BroadcastRelay

router = APIRouter(prefix="/status", tags=["status"])


@router.get("", response_model=RelayStatus)
async def get_status(
    mirror: SceneMirror = Depends(get_mirror),
    relay: BroadcastRelay = Depends(get_relay),
    device: DeviceAdapter = Depends(get_device),
):
    snapshot, version = mirror.current()
    return RelayStatus(
        version=version,
        sceneCount=len(snapshot),
        activeSceneId=snapshot.active_scene_id,
        clients=relay.client_count(),
        device=device.name,
        staleDiscards=mirror.stale_discards,
    )


@router.get("/scenes")
async def get_scenes(mirror: SceneMirror = Depends(get_mirror)):
    snapshot, _ = mirror.current()
    return snapshot_messages(snapshot)[0]
