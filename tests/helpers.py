"""Test doubles shared by the relay tests."""

from __future__ import annotations

import asyncio


class FakeWebSocket:
    """Records sent frames. Can fail or stall after a number of good sends."""

    def __init__(self, fail_after: int | None = None, delay_s: float = 0.0, delay_after: int = 0):
        self.sent: list[dict] = []
        self.fail_after = fail_after
        self.delay_s = delay_s
        self.delay_after = delay_after
        self.close_code: int | None = None

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    async def send_json(self, data: dict) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise RuntimeError("connection closed")
        if self.delay_s and len(self.sent) >= self.delay_after:
            await asyncio.sleep(self.delay_s)
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code

    def scenes_messages(self) -> list[dict]:
        return [m for m in self.sent if m["msg"] == "scenes"]


async def settle(rounds: int = 5, delay_s: float = 0.01) -> None:
    for _ in range(rounds):
        await asyncio.sleep(delay_s)
