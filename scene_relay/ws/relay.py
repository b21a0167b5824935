from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from starlette.websockets import WebSocket

from scene_relay.core.errors import ClientDeliveryFailure
from scene_relay.models.messages import snapshot_messages
from scene_relay.models.scene import SceneSnapshot
from scene_relay.state.scene_mirror import SceneMirror

log = logging.getLogger("relay")


class ClientChannel:
    """
    Outbound side of one client connection.

    Holds at most one pending snapshot; a newer publish replaces an unsent
    older one, so a slow client skips versions instead of queueing them.
    A dedicated sender task drains it, one send at a time, each bounded by
    `send_timeout_s`.
    """

    def __init__(self, ws: WebSocket, send_timeout_s: float) -> None:
        self.ws = ws
        self.send_timeout_s = send_timeout_s
        self.sent_version = 0

        self._pending: Optional[tuple[int, list[dict]]] = None
        self._ready = asyncio.Event()
        self.task: Optional[asyncio.Task] = None

    def offer(self, version: int, messages: list[dict]) -> None:
        if version <= self.sent_version:
            return
        if self._pending is not None and self._pending[0] >= version:
            return
        self._pending = (version, messages)
        self._ready.set()

    async def send(self, version: int, messages: list[dict]) -> None:
        try:
            for message in messages:
                await asyncio.wait_for(self.ws.send_json(message), timeout=self.send_timeout_s)
        except Exception as e:
            raise ClientDeliveryFailure(f"send of v{version} failed: {e!r}") from e
        self.sent_version = version

    async def pump(self) -> None:
        while True:
            await self._ready.wait()
            self._ready.clear()
            pending, self._pending = self._pending, None
            if pending is None or pending[0] <= self.sent_version:
                continue
            await self.send(*pending)


class BroadcastRelay:
    """
    Keeps every connected client on the mirror's latest snapshot.

    `join` sends the current snapshot straight away, before the client is
    handed any later update. Publishes are fanned out by offering the new
    snapshot to each client's channel, so publishing never waits on client
    I/O. A client whose send fails or times out is dropped and its socket
    closed with 1011; the others are unaffected.
    """

    def __init__(self, mirror: SceneMirror, send_timeout_s: float = 1.0) -> None:
        self.mirror = mirror
        self.send_timeout_s = send_timeout_s
        self._channels: dict[WebSocket, ClientChannel] = {}

    def start(self) -> None:
        self.mirror.add_listener(self.on_publish)
        log.info("relay_started")

    async def stop(self) -> None:
        self.mirror.remove_listener(self.on_publish)
        for ws in list(self._channels):
            await self.leave(ws)
        log.info("relay_stopped")

    def client_count(self) -> int:
        return len(self._channels)

    @property
    def clients(self) -> Set[WebSocket]:
        return set(self._channels)

    # =========================
    # Membership
    # =========================

    async def join(self, ws: WebSocket) -> bool:
        """Register an accepted connection and send it the current snapshot.

        Returns False if the initial send failed and the client was dropped.
        """
        channel = ClientChannel(ws, self.send_timeout_s)
        snapshot, version = self.mirror.current()
        # registered first so publishes during the initial send are kept for later
        self._channels[ws] = channel
        log.info("client_joined", extra={"clients": len(self._channels), "version": version})

        try:
            await channel.send(version, snapshot_messages(snapshot))
        except ClientDeliveryFailure as e:
            log.warning("client_initial_send_failed", extra={"error": str(e)})
            await self._drop(ws)
            return False

        if ws in self._channels:
            channel.task = asyncio.create_task(self._run_channel(channel))
        return True

    async def leave(self, ws: WebSocket) -> None:
        channel = self._channels.pop(ws, None)
        if channel is None:
            return
        task = channel.task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        log.info("client_left", extra={"clients": len(self._channels)})

    # =========================
    # Fan-out
    # =========================

    def on_publish(self, snapshot: SceneSnapshot, version: int) -> None:
        messages = snapshot_messages(snapshot)
        for channel in list(self._channels.values()):
            channel.offer(version, messages)

    async def _run_channel(self, channel: ClientChannel) -> None:
        try:
            await channel.pump()
        except ClientDeliveryFailure as e:
            log.warning("client_dropped", extra={"error": str(e)})
            await self._drop(channel.ws)

    async def _drop(self, ws: WebSocket) -> None:
        # the close also ends the endpoint's receive loop
        await self.leave(ws)
        try:
            await asyncio.wait_for(ws.close(code=1011), timeout=self.send_timeout_s)
        except Exception as e:
            log.debug("client_close_failed", extra={"error": str(e)})
