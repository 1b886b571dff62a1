"""
图片选择器 - 把命令行传入的文件和目录转换为待处理图片
"""

import logging
import mimetypes
import re
from pathlib import Path
from typing import Iterable, List

from .exceptions import PathNotFoundError
from .models import SourceImage

logger = logging.getLogger(__name__)

# 支持的图片格式
SUPPORTED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".heif"}

# mimetypes 在部分系统上不认识的格式
EXTRA_MIME_TYPES = {
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}


def natural_sort_key(path: Path) -> List:
    """
    自然排序键函数，让数字按数值大小排序
    例如: 1, 2, 3, 10, 11 而不是 1, 10, 11, 2, 3
    """
    def convert(text):
        return int(text) if text.isdigit() else text.lower()

    return [convert(c) for c in re.split(r'(\d+)', path.name)]


def guess_mime_type(path: Path) -> str:
    """根据扩展名推断 MIME 类型"""
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type:
        return mime_type
    return EXTRA_MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")


class ImageSelector:
    """图片选择器"""

    def __init__(self, recursive: bool = False):
        """
        Args:
            recursive: 目录是否递归查找
        """
        self.recursive = recursive

    def list_images(self, directory: Path) -> List[Path]:
        """
        列出目录中的所有图片（自然排序）

        Args:
            directory: 图片目录

        Returns:
            图片路径列表
        """
        if not directory.exists():
            raise PathNotFoundError(str(directory))

        pattern = "**/*" if self.recursive else "*"
        images = [
            p for p in directory.glob(pattern)
            if p.is_file() and p.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS and not p.name.startswith(".")
        ]
        images.sort(key=natural_sort_key)
        return images

    def expand_paths(self, paths: Iterable[Path]) -> List[Path]:
        """展开文件和目录，保持传入顺序"""
        result = []
        for path in paths:
            path = Path(path)
            if not path.exists():
                raise PathNotFoundError(str(path))
            if path.is_dir():
                found = self.list_images(path)
                logger.info(f"目录 {path} 中找到 {len(found)} 张图片")
                result.extend(found)
            elif path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS:
                result.append(path)
            else:
                logger.warning(f"⚠️ 跳过不支持的文件: {path}")
        return result

    def load(self, path: Path) -> SourceImage:
        """读取单张图片"""
        path = Path(path)
        if not path.exists():
            raise PathNotFoundError(str(path))

        return SourceImage(
            name=path.name,
            data=path.read_bytes(),
            mime_type=guess_mime_type(path),
            path=path,
        )

    def select(self, paths: Iterable[Path]) -> List[SourceImage]:
        """
        读取所有选择的图片

        Args:
            paths: 文件或目录列表

        Returns:
            待处理图片列表
        """
        return [self.load(p) for p in self.expand_paths(paths)]
