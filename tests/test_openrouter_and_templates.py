"""OpenRouter 直连客户端与 Prompt 模板。"""

from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path

import httpx
import pytest

from image_healer.exceptions import NoImageReturnedError, RemoteEditError, TemplateRenderError
from image_healer.models import Corner, Tool
from image_healer.openrouter_image_client import OpenRouterImageClient
from image_healer.template_engine import TemplateEngine


def make_client(handler, **kwargs) -> OpenRouterImageClient:
    return OpenRouterImageClient(
        api_key="sk-test",
        base_url="https://openrouter.test/api/v1/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_default_prompts_mention_corner() -> None:
    engine = TemplateEngine()

    heal = engine.render_prompt(Tool.HEAL, Corner.BOTTOM_RIGHT)
    generative = engine.render_prompt("generative-remove", "top left")

    assert "spot healing" in heal
    assert "bottom right corner" in heal
    assert "Generatively remove" in generative
    assert "top left corner" in generative


def test_template_directory_overrides_prompt(tmp_path: Path) -> None:
    (tmp_path / "heal.j2").write_text("Heal the {{ corner }} corner with {{ tool }}.", encoding="utf-8")
    engine = TemplateEngine(template_dir=tmp_path)

    assert engine.render_prompt(Tool.HEAL, Corner.TOP_RIGHT) == "Heal the top right corner with heal."
    # 目录中没有的工具仍使用内置 Prompt
    assert "Generatively remove" in engine.render_prompt(Tool.GENERATIVE_REMOVE, Corner.TOP_RIGHT)


def test_broken_template_raises(tmp_path: Path) -> None:
    (tmp_path / "heal.j2").write_text("Heal {{ corner", encoding="utf-8")
    engine = TemplateEngine(template_dir=tmp_path)

    with pytest.raises(TemplateRenderError):
        engine.render_prompt(Tool.HEAL, Corner.TOP_LEFT)


def test_openrouter_edit_returns_image_from_message_images() -> None:
    seen = []
    encoded = base64.b64encode(b"result").decode()

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "choices": [{
                "message": {
                    "content": "done",
                    "images": [{"type": "image_url", "image_url": {"url": f"data:image/webp;base64,{encoded}"}}],
                }
            }]
        })

    client = make_client(handler, site_name="healer")
    result = asyncio.run(client.edit(b"source", "image/jpeg", Corner.TOP_RIGHT, Tool.HEAL))

    assert result.data == b"result"
    assert result.mime_type == "image/webp"

    request = seen[0]
    assert str(request.url) == "https://openrouter.test/api/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["X-Title"] == "healer"

    body = json.loads(request.content)
    parts = body["messages"][0]["content"]
    assert parts[0]["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert "top right corner" in parts[1]["text"]
    assert body["modalities"] == ["image", "text"]


def test_openrouter_image_in_content_parts() -> None:
    encoded = base64.b64encode(b"inline").decode()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={
            "choices": [{"message": {"content": [
                {"type": "text", "text": "here"},
                {"type": "image_url", "image_url": {"url": encoded}},
            ]}}]
        })

    async def scenario():
        async with make_client(handler) as client:
            return await client.edit(b"source", "image/png", Corner.TOP_LEFT, Tool.GENERATIVE_REMOVE)

    result = asyncio.run(scenario())
    assert result.data == b"inline"
    assert result.mime_type == "image/png"


def test_openrouter_text_only_response_is_no_image() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "I cannot edit this image."}}]})

    with pytest.raises(NoImageReturnedError):
        asyncio.run(make_client(handler).edit(b"x", "image/png", Corner.TOP_LEFT, Tool.HEAL))


@pytest.mark.parametrize("body", [
    {"choices": ["oops"]},
    {"choices": "oops"},
    {"choices": [{"message": "oops"}]},
    {"choices": [{"message": {"images": ["bad"]}}]},
    {"choices": [{"message": {"images": [{"image_url": "data:image/png;base64,AAAA"}]}}]},
    {"choices": [{"message": {"images": [{"image_url": {"url": 42}}]}}]},
    {"choices": [{"message": {"images": "bad", "content": [{"type": "image_url", "image_url": None}]}}]},
    ["not", "an", "object"],
])
def test_openrouter_malformed_response_is_no_image(body) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    with pytest.raises(NoImageReturnedError):
        asyncio.run(make_client(handler).edit(b"x", "image/png", Corner.TOP_LEFT, Tool.HEAL))


def test_openrouter_skips_malformed_entries_before_valid_image() -> None:
    encoded = base64.b64encode(b"found").decode()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"images": [
            "bad",
            {"image_url": None},
            {"type": "image_url", "image_url": {"url": f"data:image/webp;base64,{encoded}"}},
        ]}}]})

    result = asyncio.run(make_client(handler).edit(b"x", "image/png", Corner.TOP_LEFT, Tool.HEAL))

    assert result.data == b"found"
    assert result.mime_type == "image/webp"


def test_openrouter_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "No auth credentials found", "code": 401}})

    with pytest.raises(RemoteEditError) as exc_info:
        asyncio.run(make_client(handler).edit(b"x", "image/png", Corner.TOP_LEFT, Tool.HEAL))

    assert exc_info.value.status_code == 401
    assert "401" in str(exc_info.value)
