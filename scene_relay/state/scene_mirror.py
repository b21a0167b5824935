from __future__ import annotations

import logging
from typing import Callable, Optional

from scene_relay.core.errors import StaleAggregation
from scene_relay.models.scene import MirrorState, SceneSnapshot

log = logging.getLogger("mirror")

PublishListener = Callable[[SceneSnapshot, int], None]


class SceneMirror:
    """
    The single current SceneSnapshot plus its version.

    Snapshot and version are swapped together as one immutable MirrorState,
    so `current()` can never pair a body with another body's version.
    All writes go through `publish()`; listeners run synchronously right
    after a successful publish and must only hand the snapshot off (no I/O).
    """

    def __init__(self, initial: Optional[SceneSnapshot] = None) -> None:
        self._state = MirrorState(snapshot=initial or SceneSnapshot(), version=0)
        self._listeners: list[PublishListener] = []
        self.stale_discards = 0

    # =========================
    # Read
    # =========================

    def current(self) -> tuple[SceneSnapshot, int]:
        state = self._state
        return state.snapshot, state.version

    @property
    def version(self) -> int:
        return self._state.version

    @property
    def snapshot(self) -> SceneSnapshot:
        return self._state.snapshot

    # =========================
    # Write
    # =========================

    def publish(self, snapshot: SceneSnapshot, based_on: Optional[int] = None) -> int:
        """
        Replace the current snapshot and bump the version.

        With `based_on`, this is a compare-and-swap: if another snapshot was
        published since version `based_on` was read, nothing changes and
        StaleAggregation is raised. Returns the new version.
        """
        current = self._state
        if based_on is not None and based_on != current.version:
            self.stale_discards += 1
            raise StaleAggregation(based_on, current.version)

        new_state = MirrorState(snapshot=snapshot, version=current.version + 1)
        self._state = new_state
        log.info(
            "snapshot_published",
            extra={"version": new_state.version, "scenes": len(snapshot)},
        )

        for listener in list(self._listeners):
            try:
                listener(new_state.snapshot, new_state.version)
            except Exception:
                log.exception("publish_listener_failed", extra={"version": new_state.version})

        return new_state.version

    # =========================
    # Listeners
    # =========================

    def add_listener(self, listener: PublishListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: PublishListener) -> None:
        self._listeners = [cb for cb in self._listeners if cb is not listener]
