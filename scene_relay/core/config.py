from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # app
    app_name: str = "Live Scene Relay"
    app_env: str = "dev"
    log_level: str = "INFO"

    # http / ws
    host: str = "0.0.0.0"
    port: int = 8001
    static_dir: str = "./public"
    cors_origins: list[str] = ["http://localhost:8000", "http://127.0.0.1:8000"]

    # device
    device_backend: Literal["simulated", "ableton_osc"] = "simulated"
    device_timeout_s: float = 2.0

    # AbletonOSC remote script
    osc_host: str = "127.0.0.1"
    osc_send_port: int = 11000
    osc_listen_port: int = 11001

    # simulated device
    simulated_scenes: list[str] = ["Intro", "Verse", "Chorus"]
    simulated_tracks: int = 4

    # clients
    client_send_timeout_s: float = 1.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
