"""Shared pytest fixtures for the relay test suite.

Tests run against the in-memory SimulatedDevice and a fake WebSocket that
records what it was sent, so nothing needs Ableton Live or a network.
"""

from __future__ import annotations

from typing import Callable

import pytest

from helpers import FakeWebSocket
from scene_relay.device.simulated import SimulatedDevice
from scene_relay.services.aggregator import MetadataAggregator
from scene_relay.state.scene_mirror import SceneMirror


@pytest.fixture()
def make_ws() -> Callable[..., FakeWebSocket]:
    return FakeWebSocket


@pytest.fixture()
def device() -> SimulatedDevice:
    return SimulatedDevice(["Intro", "Verse", "Chorus"], num_tracks=2)


@pytest.fixture()
def aggregator(device: SimulatedDevice) -> MetadataAggregator:
    return MetadataAggregator(device, timeout_s=0.5)


@pytest.fixture()
def mirror() -> SceneMirror:
    return SceneMirror()
