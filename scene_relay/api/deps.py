from __future__ import annotations

from fastapi import Request, WebSocket

from scene_relay.device.base import DeviceAdapter
from scene_relay.services.command_handler import CommandHandler
from scene_relay.state.scene_mirror import SceneMirror
from scene_relay.ws.relay import BroadcastRelay


# =========================
# CORE STATE
# =========================

def get_mirror(request: Request) -> SceneMirror:
    return request.app.state.mirror


def get_device(request: Request) -> DeviceAdapter:
    return request.app.state.device


def get_relay(request: Request) -> BroadcastRelay:
    return request.app.state.relay


# =========================
# WEBSOCKET
# =========================

def get_relay_ws(websocket: WebSocket) -> BroadcastRelay:
    return websocket.app.state.relay


def get_commands_ws(websocket: WebSocket) -> CommandHandler:
    return websocket.app.state.commands
