from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Callable, Optional

from scene_relay.core.errors import StaleAggregation
from scene_relay.device.base import DeviceAdapter, DeviceEvent, with_timeout
from scene_relay.services.aggregator import MetadataAggregator
from scene_relay.state.scene_mirror import SceneMirror

log = logging.getLogger("ingestion")


class ChangeIngestion:
    """
    Turns device change notifications into published snapshots.

    Every notification (scene list, selected scene, any track's playing
    slot) only marks the mirror dirty and wakes one worker task; the worker
    is the only writer. Notifications that land while a refresh is running
    trigger exactly one more refresh afterwards, so nothing is lost and
    bursts collapse. Each refresh re-reads the scene list from the device
    and publishes with a version check against the version it started from.
    """

    def __init__(
        self,
        device: DeviceAdapter,
        aggregator: MetadataAggregator,
        mirror: SceneMirror,
        timeout_s: float = 2.0,
    ) -> None:
        self.device = device
        self.aggregator = aggregator
        self.mirror = mirror
        self.timeout_s = timeout_s

        self._wake = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._reasons: Counter[str] = Counter()
        self._unsubscribe: list[Callable[[], None]] = []
        self._task: Optional[asyncio.Task] = None
        self._running = False

        self.refresh_count = 0

    # =========================
    # Lifecycle
    # =========================

    async def start(self) -> None:
        if self._running:
            return
        self._running = True

        for event in DeviceEvent:
            self._unsubscribe.append(
                self.device.subscribe(event, self._make_listener(event))
            )

        # first snapshot is in the mirror before anyone can join
        try:
            await self.refresh({"startup": 1})
        except Exception:
            log.exception("refresh_failed", extra={"reasons": {"startup": 1}})

        self._task = asyncio.create_task(self._worker())
        log.info("ingestion_started")

    async def stop(self) -> None:
        self._running = False
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("ingestion_stopped")

    # =========================
    # Triggers
    # =========================

    def _make_listener(self, event: DeviceEvent) -> Callable[[Any], None]:
        def on_change(payload: Any) -> None:
            log.debug("device_change", extra={"event": event.value, "payload": payload})
            self.request_refresh(event.value)

        return on_change

    def request_refresh(self, reason: str) -> None:
        self._reasons[reason] += 1
        self._idle.clear()
        self._wake.set()

    async def wait_idle(self) -> None:
        """Wait until every requested refresh has been processed."""
        await self._idle.wait()

    # =========================
    # Worker (single writer)
    # =========================

    async def _worker(self) -> None:
        while self._running:
            await self._wake.wait()
            self._wake.clear()
            reasons = dict(self._reasons)
            self._reasons.clear()

            try:
                await self.refresh(reasons)
            except Exception:
                log.exception("refresh_failed", extra={"reasons": reasons})

            if not self._wake.is_set():
                self._idle.set()

    async def refresh(self, reasons: Optional[dict] = None) -> Optional[int]:
        """
        Read the live scene list, aggregate it and publish.

        Returns the published version, or None if the scene list could not
        be read (the previous snapshot stays current) or the result was
        superseded by another publish.
        """
        based_on = self.mirror.version
        self.refresh_count += 1

        try:
            scenes = await with_timeout(
                self.device.get_scene_list(), self.timeout_s, "get_scene_list"
            )
        except Exception as e:
            log.warning("scene_list_unreadable", extra={"error": str(e), "reasons": reasons})
            return None

        try:
            active = await with_timeout(
                self.device.get_selected_scene(), self.timeout_s, "get_selected_scene"
            )
        except Exception as e:
            log.warning("selected_scene_unreadable", extra={"error": str(e)})
            active = None

        snapshot = await self.aggregator.aggregate(scenes, active)
        try:
            version = self.mirror.publish(snapshot, based_on=based_on)
        except StaleAggregation as e:
            log.debug(
                "stale_snapshot_discarded",
                extra={"based_on": e.based_on, "current": e.current, "reasons": reasons},
            )
            return None
        log.debug(
            "refresh_done",
            extra={"reasons": reasons, "based_on": based_on, "version": version},
        )
        return version
