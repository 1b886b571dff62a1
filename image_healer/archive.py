"""
打包器 - 将处理成功的图片打包为 zip
"""

import io
import logging
import zipfile
from typing import Dict, Iterable, List

from .exceptions import ArchiveBuildError, EmptyResultSetError
from .models import ImageStatus, TrackedImage

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = "_healed"
DEFAULT_ARCHIVE_NAME = "healed-images.zip"


def output_name(name: str, suffix: str = DEFAULT_SUFFIX) -> str:
    """
    在扩展名前插入后缀

    例如: photo.jpg -> photo_healed.jpg，没有扩展名时直接追加: photo -> photo_healed
    """
    stem, dot, extension = name.rpartition(".")
    if not dot or not stem:
        return f"{name}{suffix}"
    return f"{stem}{suffix}.{extension}"


def _dedupe(name: str, used: Dict[str, int]) -> str:
    """同名文件依次追加 _2, _3 ..."""
    count = used.get(name, 0) + 1
    used[name] = count
    if count == 1:
        return name

    stem, dot, extension = name.rpartition(".")
    if not dot or not stem:
        candidate = f"{name}_{count}"
    else:
        candidate = f"{stem}_{count}.{extension}"
    return _dedupe(candidate, used)


class ArchiveBuilder:
    """zip 打包器"""

    def __init__(self, suffix: str = DEFAULT_SUFFIX):
        self.suffix = suffix

    def entries(self, images: Iterable[TrackedImage]) -> List[tuple]:
        """
        生成压缩包条目列表

        Returns:
            [(文件名, 图片字节), ...]，只包含处理成功的图片
        """
        used: Dict[str, int] = {}
        entries = []
        for image in images:
            if image.status != ImageStatus.DONE or image.result_data is None:
                continue
            entries.append((_dedupe(output_name(image.name, self.suffix), used), image.result_data))
        return entries

    def build(self, images: Iterable[TrackedImage]) -> bytes:
        """
        打包所有处理成功的图片

        Raises:
            EmptyResultSetError: 没有处理成功的图片
            ArchiveBuildError: 打包失败，不会返回不完整的压缩包
        """
        entries = self.entries(images)
        if not entries:
            raise EmptyResultSetError()

        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for filename, data in entries:
                    zf.writestr(filename, data)
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            logger.error(f"创建压缩包失败: {e}")
            raise ArchiveBuildError(f"无法创建压缩包，请尝试单独下载图片: {e}") from e

        logger.info(f"📦 已打包 {len(entries)} 张图片")
        return buffer.getvalue()
