"""命令行：完整流程、打包输出与退出码。"""

from __future__ import annotations

import asyncio
import json
import zipfile
from pathlib import Path

import pytest

from conftest import FakeEditClient, make_sources
from image_healer import cli
from image_healer.archive import ArchiveBuilder
from image_healer.models import Corner, ProcessingSelection, Tool
from image_healer.output_manager import OutputManager


def test_run_batch_retries_and_writes_outputs(tmp_path: Path) -> None:
    client = FakeEditClient(failures={b"b.png": "rate limited", b"c.jpg": "blocked"})
    output = tmp_path / "out"

    async def scenario():
        # 第一轮重试前修复 b.png，c.jpg 一直失败
        task = cli.run_batch(
            client=client,
            sources=make_sources("a.jpg", "b.png", "c.jpg"),
            selection=ProcessingSelection(corner=Corner.BOTTOM_RIGHT, tool=Tool.GENERATIVE_REMOVE),
            output_manager=OutputManager(base_dir=output),
            archive_builder=ArchiveBuilder(),
            archive_name="healed-images.zip",
            retry_rounds=2,
        )
        original_edit = client.edit

        async def edit(data, *args, **kwargs):
            if len(client.calls) >= 3:
                client.failures.pop(b"b.png", None)
            return await original_edit(data, *args, **kwargs)

        client.edit = edit
        return await task

    summary = asyncio.run(scenario())

    assert summary["total"] == 3
    assert summary["succeeded"] == 2
    assert summary["failed"] == 1
    assert summary["failures"] == {"c.jpg": "blocked"}

    # 全部处理 3 次 + 第一轮重试 2 次 + 第二轮重试 1 次
    assert [call[0] for call in client.calls] == [
        b"a.jpg", b"b.png", b"c.jpg", b"b.png", b"c.jpg", b"c.jpg",
    ]

    with zipfile.ZipFile(output / "healed-images.zip") as zf:
        assert sorted(zf.namelist()) == ["a_healed.jpg", "b_healed.png"]

    run_log = json.loads((output / "run_log.json").read_text(encoding="utf-8"))
    assert [run["mode"] for run in run_log["runs"]] == ["process_all", "retry_failed", "retry_failed"]
    assert [img["status"] for img in run_log["images"]] == ["done", "done", "error"]
    assert run_log["images"][0]["tool_used"] == "generative-remove"


def test_run_batch_without_results_skips_archive(tmp_path: Path) -> None:
    client = FakeEditClient(failures={b"a.jpg": "nope"})

    summary = asyncio.run(cli.run_batch(
        client=client,
        sources=make_sources("a.jpg"),
        selection=ProcessingSelection(),
        output_manager=OutputManager(base_dir=tmp_path),
        archive_builder=ArchiveBuilder(),
        archive_name="healed-images.zip",
    ))

    assert summary["archive"] is None
    assert not (tmp_path / "healed-images.zip").exists()
    assert (tmp_path / "run_log.json").exists()


def test_main_processes_images(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "one.png").write_bytes(b"one")
    (tmp_path / "two.jpg").write_bytes(b"two")
    client = FakeEditClient()
    monkeypatch.setattr(cli, "create_client", lambda config_manager, global_config: client)

    exit_code = cli.main([
        "one.png", "two.jpg",
        "--corner", "top right",
        "--tool", "heal",
        "-o", "results",
    ])

    assert exit_code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["succeeded"] == 2
    assert Path(summary["archive"]) == Path("results") / "healed-images.zip"
    assert [(call[2], call[3]) for call in client.calls] == [(Corner.TOP_RIGHT, Tool.HEAL)] * 2


def test_main_reports_failures_with_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "one.png").write_bytes(b"one")
    client = FakeEditClient(failures={b"one": "service down"})
    monkeypatch.setattr(cli, "create_client", lambda config_manager, global_config: client)

    assert cli.main(["one.png", "--retry-failed", "1"]) == 1
    summary = json.loads(capsys.readouterr().out)
    assert summary["failures"] == {"one.png": "service down"}
    assert len(client.calls) == 2


def test_main_missing_path_returns_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)

    assert cli.main(["missing.png"]) == 1
    assert "error" in json.loads(capsys.readouterr().out)


def test_main_invalid_config_returns_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("IMAGE_HEALER_SERVICE", raising=False)
    (tmp_path / "one.png").write_bytes(b"one")
    (tmp_path / "config.json").write_text(json.dumps({"image_service": "openrouter"}), encoding="utf-8")

    assert cli.main(["one.png"]) == 1
    assert "error" in json.loads(capsys.readouterr().out)


def test_main_malformed_config_section_returns_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "one.png").write_bytes(b"one")
    (tmp_path / "config.json").write_text(json.dumps({"proxy": "x"}), encoding="utf-8")

    assert cli.main(["one.png"]) == 1
    assert "proxy" in json.loads(capsys.readouterr().out)["error"]


def test_create_client_selects_service(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("IMAGE_HEALER_SERVICE", raising=False)
    monkeypatch.delenv("IMAGE_HEALER_ENDPOINT", raising=False)
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")

    manager = cli.ConfigManager(project_root=tmp_path)
    cfg = manager.load_global_config()
    assert isinstance(cli.create_client(manager, cfg), cli.ImageEditClient)

    cfg.image_service = "openrouter"
    client = cli.create_client(manager, cfg)
    assert isinstance(client, cli.OpenRouterImageClient)
    assert client.api_key == "sk-test"
