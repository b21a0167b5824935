"""
Tests for the AbletonOSC adapter's message handling, without sockets:
outgoing messages are recorded and replies are fed to the dispatcher
callback directly.
"""

import asyncio

import pytest

from scene_relay.device.ableton_osc import AbletonOscDevice
from scene_relay.device.base import ClipRef, ClipSlotRef, DeviceEvent, SceneRef

pytestmark = pytest.mark.asyncio


class RecordingClient:
    def __init__(self):
        self.sent = []

    def send_message(self, address, value):
        self.sent.append((address, value))


def _device() -> AbletonOscDevice:
    device = AbletonOscDevice()
    device._client = RecordingClient()
    return device


async def test_replies_are_matched_by_echoed_arguments():
    device = _device()
    scene = SceneRef(id="0", index=0)
    first = asyncio.create_task(device.get(ClipRef(track=2, scene=scene), "length"))
    second = asyncio.create_task(device.get(ClipRef(track=3, scene=scene), "length"))
    await asyncio.sleep(0)

    device._on_message("/live/clip/get/length", 3, 0, 4.0)
    device._on_message("/live/clip/get/length", 2, 0, 8.0)

    assert await first == 8.0
    assert await second == 4.0
    assert device._pending == {}


async def test_scene_list_and_clip_lookup():
    device = _device()

    scenes_task = asyncio.create_task(device.get_scene_list())
    await asyncio.sleep(0)
    device._on_message("/live/song/get/num_scenes", 3)
    scenes = await scenes_task

    assert [s.index for s in scenes] == [0, 1, 2]

    clip_task = asyncio.create_task(device.get_clip(ClipSlotRef(track=1, scene=scenes[2])))
    await asyncio.sleep(0)
    device._on_message("/live/clip_slot/get/has_clip", 1, 2, False)

    assert await clip_task is None
    assert device._client.sent[-1] == ("/live/clip_slot/get/has_clip", [1, 2])


async def test_unsolicited_updates_become_events():
    device = _device()
    seen = []
    device.subscribe(DeviceEvent.PLAYING_SLOT_INDEX, seen.append)
    device.subscribe(DeviceEvent.SELECTED_SCENE, seen.append)

    device._on_message("/live/track/get/playing_slot_index", 4, 1)
    device._on_message("/live/view/get/selected_scene", 2)

    assert seen == [{"track": 4, "index": 1}, 2]


async def test_commands_send_transport_messages():
    device = _device()

    await device.fire_scene(SceneRef(id="1", index=1))
    await device.stop_all_clips()
    await device.stop_playing()

    assert device._client.sent == [
        ("/live/scene/fire", [1]),
        ("/live/song/stop_all_clips", []),
        ("/live/song/stop_playing", []),
    ]


async def test_track_listeners_follow_track_count():
    device = _device()
    device._listened_tracks = [0, 1]
    scene = SceneRef(id="0", index=0)

    grow = asyncio.create_task(device.get_clip_slots(scene))
    await asyncio.sleep(0)
    device._on_message("/live/song/get/num_tracks", 4)
    assert len(await grow) == 4

    shrink = asyncio.create_task(device.get_clip_slots(scene))
    await asyncio.sleep(0)
    device._on_message("/live/song/get/num_tracks", 1)
    assert len(await shrink) == 1

    listener_calls = [m for m in device._client.sent if "listen/playing_slot_index" in m[0]]
    assert listener_calls == [
        ("/live/track/start_listen/playing_slot_index", [2]),
        ("/live/track/start_listen/playing_slot_index", [3]),
        ("/live/track/stop_listen/playing_slot_index", [1]),
        ("/live/track/stop_listen/playing_slot_index", [2]),
        ("/live/track/stop_listen/playing_slot_index", [3]),
    ]
    assert device._listened_tracks == [0]
