from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional, Set

from pydantic import TypeAdapter, ValidationError

from scene_relay.core.errors import (
    DeviceCommandFailure,
    DeviceTimeout,
    InvalidClientMessage,
    InvalidIndex,
    UnrecognizedCommand,
)
from scene_relay.device.base import DeviceAdapter, with_timeout
from scene_relay.models.messages import (
    COMMAND_TAGS,
    Command,
    StopNicely,
    StopNow,
    TriggerScene,
)
from scene_relay.state.scene_mirror import SceneMirror

log = logging.getLogger("commands")

_command_adapter: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(raw: str | bytes) -> Command:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidClientMessage(f"not JSON: {e}") from e

    if not isinstance(data, dict):
        raise InvalidClientMessage("message must be a JSON object")

    tag = data.get("msg")
    if tag not in COMMAND_TAGS:
        raise UnrecognizedCommand(tag)

    try:
        return _command_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidClientMessage(f"bad {tag} message: {e.errors()}") from e


class CommandHandler:
    """
    Applies client commands to the device.

    Scene indexes are resolved against the mirror when the command runs,
    not when it arrived. Device calls are bounded by `timeout_s` and never
    retried. `submit()` runs each command in its own task so a hung device
    call cannot hold up the next message from the same client.
    """

    def __init__(self, device: DeviceAdapter, mirror: SceneMirror, timeout_s: float = 2.0) -> None:
        self.device = device
        self.mirror = mirror
        self.timeout_s = timeout_s
        self._tasks: Set[asyncio.Task] = set()

    # =========================
    # Entry points
    # =========================

    def submit(self, raw: str | bytes) -> Optional[asyncio.Task]:
        """Parse a raw frame and schedule it. Bad frames are logged and dropped."""
        try:
            command = parse_command(raw)
        except UnrecognizedCommand as e:
            log.warning("command_unrecognized", extra={"tag": e.tag})
            return None
        except InvalidClientMessage as e:
            log.warning("command_invalid", extra={"error": str(e)})
            return None

        task = asyncio.create_task(self.run(command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, command: Command) -> bool:
        """Handle one command, logging any failure. Returns True on success."""
        try:
            await self.handle(command)
            return True
        except InvalidIndex as e:
            log.warning(
                "command_invalid_index",
                extra={"index": e.index, "scene_count": e.scene_count},
            )
        except DeviceTimeout as e:
            log.error("command_timeout", extra={"command": command.msg, "error": str(e)})
        except DeviceCommandFailure as e:
            log.error("command_failed", extra={"command": command.msg, "error": str(e)})
        except Exception:
            log.exception("command_crashed", extra={"command": command.msg})
        return False

    async def handle(self, command: Command) -> None:
        log.info("command_received", extra={"command": command.model_dump()})

        if isinstance(command, TriggerScene):
            await self._trigger_scene(command.index)
        elif isinstance(command, StopNicely):
            await self._device_call(self.device.stop_all_clips(), "stop_all_clips")
        elif isinstance(command, StopNow):
            await self._device_call(self.device.stop_playing(), "stop_playing")
        else:
            raise UnrecognizedCommand(getattr(command, "msg", None))

    async def drain(self) -> None:
        """Wait for every submitted command to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================
    # Commands
    # =========================

    async def _trigger_scene(self, index: int) -> None:
        snapshot, version = self.mirror.current()
        if index < 0 or index >= len(snapshot.refs):
            raise InvalidIndex(index, len(snapshot.refs))

        scene = snapshot.refs[index]
        log.info(
            "scene_fire",
            extra={"index": index, "scene": snapshot.scenes[index].name, "version": version},
        )
        await self._device_call(self.device.fire_scene(scene), "fire_scene")

    async def _device_call(self, aw, what: str) -> None:
        try:
            await with_timeout(aw, self.timeout_s, what)
        except DeviceCommandFailure:
            raise
        except Exception as e:
            raise DeviceCommandFailure(f"{what} failed: {e!r}") from e
