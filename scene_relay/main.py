from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from scene_relay.core.config import Settings, settings as default_settings
from scene_relay.core.logging import setup_logging

from scene_relay.device.ableton_osc import AbletonOscDevice
from scene_relay.device.base import DeviceAdapter, with_timeout
from scene_relay.device.simulated import SimulatedDevice

from scene_relay.services.aggregator import MetadataAggregator
from scene_relay.services.change_ingestion import ChangeIngestion
from scene_relay.services.command_handler import CommandHandler
from scene_relay.state.scene_mirror import SceneMirror
from scene_relay.ws.relay import BroadcastRelay

from scene_relay.api.routes_ws import router as ws_router
from scene_relay.api.routes_status import router as status_router

log = logging.getLogger("app")


def build_device(settings: Settings) -> DeviceAdapter:
    if settings.device_backend == "ableton_osc":
        return AbletonOscDevice(
            host=settings.osc_host,
            send_port=settings.osc_send_port,
            listen_port=settings.osc_listen_port,
        )
    return SimulatedDevice(settings.simulated_scenes, num_tracks=settings.simulated_tracks)


def create_app(
    settings: Optional[Settings] = None,
    device: Optional[DeviceAdapter] = None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        log.info("app_starting", extra={"device": settings.device_backend})

        # DEVICE
        dev = device or build_device(settings)
        await with_timeout(dev.start(), settings.device_timeout_s * 5, "device start")
        app.state.device = dev
        log.info("device_connected", extra={"device": dev.name})

        # STATE
        app.state.mirror = SceneMirror()

        # RELAY
        app.state.relay = BroadcastRelay(app.state.mirror, settings.client_send_timeout_s)
        app.state.relay.start()

        # COMMANDS
        app.state.commands = CommandHandler(dev, app.state.mirror, settings.device_timeout_s)

        # INGESTION
        aggregator = MetadataAggregator(dev, settings.device_timeout_s)
        app.state.ingestion = ChangeIngestion(
            dev, aggregator, app.state.mirror, settings.device_timeout_s
        )
        await app.state.ingestion.start()

        try:
            yield
        finally:
            try:
                await app.state.ingestion.stop()
            except Exception:
                log.exception("error_stopping_ingestion")

            try:
                await app.state.relay.stop()
            except Exception:
                log.exception("error_stopping_relay")

            try:
                await dev.stop()
            except Exception:
                log.exception("error_stopping_device")
            log.info("app_stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(ws_router)
    app.include_router(status_router)

    @app.get("/health")
    def health():
        return {
            "ok": True,
            "app": settings.app_name,
            "env": settings.app_env,
        }

    # viewer UI, when one is deployed next to the relay
    if settings.static_dir and os.path.isdir(settings.static_dir):
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=default_settings.host, port=default_settings.port)


if __name__ == "__main__":
    main()
