"""测试配置文件。

提供假的图片编辑客户端和测试图片。
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from image_healer.exceptions import RemoteEditError
from image_healer.models import EditResult, SourceImage


class FakeEditClient:
    """记录调用的假客户端，按图片字节决定成功或失败"""

    def __init__(self, failures: Optional[Dict[bytes, str]] = None, gate: Optional[asyncio.Event] = None):
        self.failures = failures or {}
        self.gate = gate
        self.calls: List[tuple] = []

    async def __aenter__(self) -> "FakeEditClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    async def edit(self, data, mime_type, corner, tool, log_prefix=""):
        self.calls.append((data, mime_type, corner, tool))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        message = self.failures.get(data)
        if message:
            raise RemoteEditError(message, status_code=429)
        return EditResult(data=b"healed:" + data, mime_type=mime_type)


def make_sources(*names: str) -> list[SourceImage]:
    mime = {"jpg": "image/jpeg", "png": "image/png"}
    return [
        SourceImage(name=name, data=name.encode(), mime_type=mime.get(name.rsplit(".", 1)[-1], "image/png"))
        for name in names
    ]


@pytest.fixture
def fake_client() -> FakeEditClient:
    return FakeEditClient()
