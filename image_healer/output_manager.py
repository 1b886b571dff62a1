"""
输出管理器 - 负责输出目录、压缩包和运行日志
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from .models import RunResult, TrackedImage

logger = logging.getLogger(__name__)


class OutputManager:
    """输出管理器"""

    RUN_LOG_NAME = "run_log.json"

    def __init__(self, base_dir: Path):
        """
        初始化输出管理器

        Args:
            base_dir: 输出目录
        """
        self.base_dir = Path(base_dir)
        self.started_at = datetime.now()

    def create_output_directory(self) -> Path:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        return self.base_dir

    def save_archive(self, data: bytes, name: str) -> Path:
        """
        保存压缩包

        Args:
            data: 压缩包字节
            name: 文件名

        Returns:
            压缩包路径
        """
        path = self.create_output_directory() / name
        path.write_bytes(data)
        logger.info(f"💾 保存压缩包: {path}")
        return path

    def save_run_log(
        self,
        images: Iterable[TrackedImage],
        runs: List[RunResult],
        archive_path: Optional[Path] = None,
    ) -> Path:
        """
        保存本次运行的结果汇总（每张图片的状态、错误和使用的工具）

        Args:
            images: 批次中的图片
            runs: 各次运行的结果
            archive_path: 压缩包路径（没有成功的图片时为 None）

        Returns:
            日志文件路径
        """
        log_path = self.create_output_directory() / self.RUN_LOG_NAME

        data = {
            "started_at": self.started_at.isoformat(),
            "completed_at": datetime.now().isoformat(),
            "archive": str(archive_path) if archive_path else None,
            "runs": [run.to_dict() for run in runs],
            "images": [image.to_dict() for image in images],
        }

        with open(log_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

        logger.info(f"保存运行日志: {log_path}")
        return log_path
