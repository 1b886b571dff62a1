"""
命令行接口
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .archive import ArchiveBuilder
from .config import ConfigManager
from .edit_client import ImageEditClient
from .engine import BatchEngine
from .exceptions import ConfigurationError, HealerError
from .image_selector import ImageSelector
from .models import (
    Corner,
    GlobalConfig,
    ImageServiceProvider,
    ProcessingSelection,
    RunResult,
    SourceImage,
    Tool,
)
from .openrouter_image_client import OpenRouterImageClient
from .output_manager import OutputManager
from .template_engine import TemplateEngine

logger = logging.getLogger(__name__)

EditClient = Union[ImageEditClient, OpenRouterImageClient]


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None):
    """配置日志"""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    # 简化日志格式
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
    )

    # 降低第三方库的日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_client(config_manager: ConfigManager, global_config: GlobalConfig) -> EditClient:
    """根据配置选择图片编辑服务"""
    if global_config.image_service == ImageServiceProvider.OPENROUTER.value:
        logger.info(f"📡 使用 OpenRouter 图片编辑服务, model={global_config.openrouter_model}")
        prompts_dir = config_manager.resolve_path(global_config.prompts_dir) if global_config.prompts_dir else None
        return OpenRouterImageClient(
            api_key=global_config.openrouter_api_key,
            base_url=global_config.openrouter_base_url,
            model=global_config.openrouter_model,
            template_engine=TemplateEngine(template_dir=prompts_dir),
            site_url=global_config.openrouter_site_url,
            site_name=global_config.openrouter_site_name,
            timeout=global_config.timeout,
            proxy=global_config.openrouter_proxy,
        )

    logger.info(f"📡 使用图片编辑接口: {global_config.endpoint}")
    return ImageEditClient(endpoint=global_config.endpoint, timeout=global_config.timeout)


class ProgressReporter:
    """引擎监听器，进度变化时输出日志"""

    def __init__(self):
        self._last = (0, 0)

    def __call__(self, engine: BatchEngine):
        progress = engine.progress
        current = (progress.processed, progress.total)
        if current != self._last and progress.total:
            logger.info(f"进度: {progress.processed}/{progress.total}")
        self._last = current


async def run_batch(
    client: EditClient,
    sources: Sequence[SourceImage],
    selection: ProcessingSelection,
    output_manager: OutputManager,
    archive_builder: ArchiveBuilder,
    archive_name: str,
    retry_rounds: int = 0,
) -> Dict:
    """
    处理一批图片：全部处理 -> 重试失败 -> 打包

    Args:
        client: 图片编辑客户端
        sources: 待处理图片
        selection: 角落和工具
        output_manager: 输出管理器
        archive_builder: 打包器
        archive_name: 压缩包文件名
        retry_rounds: 失败后额外重试的轮数

    Returns:
        运行汇总
    """
    engine = BatchEngine(client, selection=selection)
    engine.add_listener(ProgressReporter())
    engine.select_files(sources)

    runs: List[RunResult] = []
    async with client:
        result = await engine.process_all()
        if result:
            runs.append(result)

        for round_num in range(1, retry_rounds + 1):
            if not engine.has_errors:
                break
            logger.info(f"🔁 第{round_num}轮重试失败的图片")
            result = await engine.retry_failed()
            if result:
                runs.append(result)

    archive_path = None
    if engine.has_results:
        archive_path = output_manager.save_archive(archive_builder.build(engine.images), archive_name)
    else:
        logger.warning("⚠️ 没有处理成功的图片，跳过打包")

    log_path = output_manager.save_run_log(engine.images, runs, archive_path)

    return {
        "total": len(engine.images),
        "succeeded": len(engine.done_images),
        "failed": len(engine.failed_images),
        "archive": str(archive_path) if archive_path else None,
        "run_log": str(log_path),
        "failures": {img.name: img.error for img in engine.failed_images},
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-healer",
        description="批量移除图片角落中的物体",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  # 处理目录中的所有图片，物体在右上角
  python -m image_healer photos/ --corner "top right"

  # 使用生成式移除，失败的图片最多再重试两轮
  python -m image_healer a.jpg b.png --tool generative-remove --retry-failed 2
        """,
    )

    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="图片文件或目录",
    )

    parser.add_argument(
        "--corner",
        default=Corner.TOP_LEFT.value,
        choices=[c.value for c in Corner],
        help="物体所在角落 (默认: top left)",
    )

    parser.add_argument(
        "--tool",
        default=Tool.HEAL.value,
        choices=[t.value for t in Tool],
        help="移除工具 (默认: heal)",
    )

    parser.add_argument(
        "-c", "--config",
        help="全局配置文件路径 (默认: ./config.json，不存在时使用默认配置)",
    )

    parser.add_argument(
        "--endpoint",
        help="图片编辑接口地址（覆盖配置文件）",
    )

    parser.add_argument(
        "-o", "--output-dir",
        default="outputs",
        help="输出目录 (默认: outputs)",
    )

    parser.add_argument(
        "--retry-failed",
        type=int,
        default=0,
        metavar="N",
        help="失败的图片额外重试的轮数 (默认: 0)",
    )

    parser.add_argument(
        "-r", "--recursive",
        action="store_true",
        help="递归查找目录中的图片",
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别 (默认: INFO)",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        help="同时写入日志文件",
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """主入口"""
    args = build_parser().parse_args(argv)

    setup_logging(level=args.log_level, log_file=args.log_file)

    try:
        config_manager = ConfigManager(config_path=Path(args.config) if args.config else None)
        global_config = config_manager.load_global_config()
        if args.endpoint:
            global_config.endpoint = args.endpoint

        errors = config_manager.validate_config()
        if errors:
            for err in errors:
                logger.error(f"配置错误: {err}")
            raise ConfigurationError(f"配置验证失败: {errors}")

        sources = ImageSelector(recursive=args.recursive).select(args.paths)

        summary = asyncio.run(run_batch(
            client=create_client(config_manager, global_config),
            sources=sources,
            selection=ProcessingSelection(corner=Corner(args.corner), tool=Tool(args.tool)),
            output_manager=OutputManager(base_dir=Path(args.output_dir)),
            archive_builder=ArchiveBuilder(suffix=global_config.archive_suffix),
            archive_name=global_config.archive_name,
            retry_rounds=max(0, args.retry_failed),
        ))

        print(json.dumps(summary, ensure_ascii=False, indent=2))
        return 0 if summary["failed"] == 0 else 1

    except HealerError as e:
        logger.error(f"处理错误: {e}")
        print(json.dumps({"error": str(e)}, ensure_ascii=False))
        return 1


if __name__ == "__main__":
    sys.exit(main())
