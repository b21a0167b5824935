"""
Ableton Live adapter over the AbletonOSC remote script.

AbletonOSC listens on UDP 11000 and answers on 11001. Every query reply
comes back on the query's own address with the query arguments echoed
first, e.g. `/live/clip/get/length 2 0` -> `/live/clip/get/length 2 0 8.0`.
Listener updates reuse the same `get` addresses, so a message that matches
no pending query is treated as a change notification.

Scenes are addressed by index here, so a scene's id is its index at the
time the scene list was read.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_server import AsyncIOOSCUDPServer
from pythonosc.udp_client import SimpleUDPClient

from scene_relay.core.errors import DeviceCommandFailure, DeviceReadFailure
from scene_relay.device.base import (
    ClipRef,
    ClipSlotRef,
    DeviceAdapter,
    DeviceEvent,
    DeviceRef,
    SceneRef,
)

log = logging.getLogger("device.ableton_osc")

_EVENT_ADDRESSES = {
    "/live/song/get/num_scenes": DeviceEvent.SCENES,
    "/live/view/get/selected_scene": DeviceEvent.SELECTED_SCENE,
    "/live/track/get/playing_slot_index": DeviceEvent.PLAYING_SLOT_INDEX,
}


class AbletonOscDevice(DeviceAdapter):
    name = "ableton_osc"

    def __init__(
        self,
        host: str = "127.0.0.1",
        send_port: int = 11000,
        listen_port: int = 11001,
        listen_host: str = "0.0.0.0",
    ) -> None:
        super().__init__()
        self.host = host
        self.send_port = send_port
        self.listen_port = listen_port
        self.listen_host = listen_host

        self._client: SimpleUDPClient | None = None
        self._transport: asyncio.BaseTransport | None = None
        self._pending: dict[str, list[tuple[tuple, asyncio.Future]]] = {}
        self._listened_tracks: list[int] = []

    # =========================
    # Lifecycle
    # =========================

    async def start(self) -> None:
        dispatcher = Dispatcher()
        dispatcher.set_default_handler(self._on_message)

        loop = asyncio.get_running_loop()
        server = AsyncIOOSCUDPServer((self.listen_host, self.listen_port), dispatcher, loop)
        self._transport, _ = await server.create_serve_endpoint()
        self._client = SimpleUDPClient(self.host, self.send_port)
        log.info(
            "osc_device_started",
            extra={"send": f"{self.host}:{self.send_port}", "listen": self.listen_port},
        )

        self._send("/live/song/start_listen/num_scenes")
        self._send("/live/view/start_listen/selected_scene")
        num_tracks = await self._query_value("/live/song/get/num_tracks")
        self._sync_track_listeners(int(num_tracks))

    async def stop(self) -> None:
        if self._client is not None:
            self._send("/live/song/stop_listen/num_scenes")
            self._send("/live/view/stop_listen/selected_scene")
            for track in self._listened_tracks:
                self._send("/live/track/stop_listen/playing_slot_index", track)

        for waiters in self._pending.values():
            for _, fut in waiters:
                fut.cancel()
        self._pending.clear()

        if self._transport is not None:
            self._transport.close()
            self._transport = None
        log.info("osc_device_stopped")

    # =========================
    # OSC plumbing
    # =========================

    def _send(self, address: str, *args: Any) -> None:
        if self._client is None:
            raise DeviceCommandFailure(f"OSC client not started, cannot send {address}")
        log.debug("osc_send", extra={"address": address, "osc_args": list(args)})
        self._client.send_message(address, list(args))

    async def _query(self, address: str, *args: Any) -> tuple:
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        entry = (tuple(args), fut)
        self._pending.setdefault(address, []).append(entry)
        try:
            self._send(address, *args)
            return await fut
        finally:
            waiters = self._pending.get(address, [])
            if entry in waiters:
                waiters.remove(entry)
            if not waiters:
                self._pending.pop(address, None)

    async def _query_value(self, address: str, *args: Any) -> Any:
        values = await self._query(address, *args)
        if not values:
            raise DeviceReadFailure(f"empty reply for {address}")
        return values[0]

    def _sync_track_listeners(self, num_tracks: int) -> None:
        """Listen to playing_slot_index on exactly tracks 0..num_tracks-1."""
        if num_tracks == len(self._listened_tracks):
            return
        for track in range(len(self._listened_tracks), num_tracks):
            self._send("/live/track/start_listen/playing_slot_index", track)
        for track in range(num_tracks, len(self._listened_tracks)):
            self._send("/live/track/stop_listen/playing_slot_index", track)
        self._listened_tracks = list(range(num_tracks))
        log.info("track_listeners_synced", extra={"tracks": num_tracks})

    def _on_message(self, address: str, *args: Any) -> None:
        for prefix, fut in self._pending.get(address, []):
            if fut.done():
                continue
            if tuple(args[: len(prefix)]) == prefix:
                fut.set_result(tuple(args[len(prefix):]))
                return

        event = _EVENT_ADDRESSES.get(address)
        if event is None:
            if address == "/live/error":
                log.warning("osc_device_error", extra={"osc_args": list(args)})
            return

        if event is DeviceEvent.PLAYING_SLOT_INDEX and len(args) >= 2:
            self._emit(event, {"track": int(args[0]), "index": int(args[1])})
        else:
            self._emit(event, args[0] if args else None)

    # =========================
    # Queries
    # =========================

    async def get_scene_list(self) -> list[SceneRef]:
        count = int(await self._query_value("/live/song/get/num_scenes"))
        return [SceneRef(id=str(i), index=i) for i in range(count)]

    async def get_clip_slots(self, scene: SceneRef) -> list[ClipSlotRef]:
        num_tracks = int(await self._query_value("/live/song/get/num_tracks"))
        # every refresh reads this, so tracks added mid-set get a listener
        self._sync_track_listeners(num_tracks)
        return [ClipSlotRef(track=t, scene=scene) for t in range(num_tracks)]

    async def get_clip(self, slot: ClipSlotRef) -> Optional[ClipRef]:
        has_clip = await self._query_value(
            "/live/clip_slot/get/has_clip", slot.track, slot.scene.index
        )
        if not has_clip:
            return None
        return ClipRef(track=slot.track, scene=slot.scene)

    async def get(self, ref: DeviceRef, prop: str) -> Any:
        if isinstance(ref, SceneRef):
            return await self._query_value(f"/live/scene/get/{prop}", ref.index)
        if isinstance(ref, ClipRef):
            return await self._query_value(f"/live/clip/get/{prop}", ref.track, ref.scene.index)
        raise DeviceReadFailure(f"no properties on {ref!r}")

    async def get_selected_scene(self) -> Optional[SceneRef]:
        index = await self._query_value("/live/view/get/selected_scene")
        if index is None or int(index) < 0:
            return None
        return SceneRef(id=str(int(index)), index=int(index))

    # =========================
    # Commands
    # =========================

    async def fire_scene(self, scene: SceneRef) -> None:
        self._send("/live/scene/fire", scene.index)

    async def stop_all_clips(self) -> None:
        self._send("/live/song/stop_all_clips")

    async def stop_playing(self) -> None:
        self._send("/live/song/stop_playing")
