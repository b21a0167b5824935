from __future__ import annotations

from pydantic import BaseModel
from typing import Optional


class RelayStatus(BaseModel):
    version: int = 0
    sceneCount: int = 0
    activeSceneId: Optional[str] = None
    clients: int = 0
    device: str = ""
    staleDiscards: int = 0
