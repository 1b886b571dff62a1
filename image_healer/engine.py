"""
批处理引擎 - 跟踪每张图片的处理状态

状态流转: pending -> processing -> done / error
- process_all: 按顺序处理整个批次
- retry_failed: 只重新处理调用时处于 error 状态的图片
- retry_single: 用指定工具重新处理单张图片

同一时间只允许一个运行（全部处理、重试失败或单张重试），
忙碌时的请求直接忽略，不排队也不报错。
"""

import logging
import time
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .exceptions import EditFailure, EmptyBatchError
from .models import (
    Corner,
    ImageStatus,
    ProcessingSelection,
    Progress,
    RunResult,
    SourceImage,
    Tool,
    TrackedImage,
)

logger = logging.getLogger(__name__)

Listener = Callable[["BatchEngine"], None]


class BatchEngine:
    """批处理引擎"""

    MODE_PROCESS_ALL = "process_all"
    MODE_RETRY_FAILED = "retry_failed"

    def __init__(
        self,
        client,
        selection: Optional[ProcessingSelection] = None,
        on_release: Optional[Callable[[Any], None]] = None,
    ):
        """
        初始化批处理引擎

        Args:
            client: 图片编辑客户端，需提供 async edit(data, mime_type, corner, tool, log_prefix)
            selection: 初始的角落/工具选择
            on_release: 批次被替换或清空时，用于释放预览句柄的回调
        """
        self.client = client
        self.selection = selection or ProcessingSelection()
        self.on_release = on_release

        self._images: List[TrackedImage] = []
        self._progress = Progress()
        self._active_run: Optional[str] = None
        self._retrying_id: Optional[str] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # 状态查询
    # ------------------------------------------------------------------

    @property
    def images(self) -> Sequence[TrackedImage]:
        return tuple(self._images)

    @property
    def progress(self) -> Progress:
        return Progress(processed=self._progress.processed, total=self._progress.total)

    @property
    def active_run(self) -> Optional[str]:
        return self._active_run

    @property
    def retrying_id(self) -> Optional[str]:
        return self._retrying_id

    @property
    def busy(self) -> bool:
        """是否有运行中的操作（全部处理、重试失败或单张重试）"""
        return self._active_run is not None or self._retrying_id is not None

    @property
    def has_errors(self) -> bool:
        return any(img.status == ImageStatus.ERROR for img in self._images)

    @property
    def has_results(self) -> bool:
        return any(img.status == ImageStatus.DONE for img in self._images)

    @property
    def done_images(self) -> List[TrackedImage]:
        return [img for img in self._images if img.status == ImageStatus.DONE]

    @property
    def failed_images(self) -> List[TrackedImage]:
        return [img for img in self._images if img.status == ImageStatus.ERROR]

    def get(self, image_id: str) -> TrackedImage:
        """按 id 获取图片，找不到时抛出 KeyError"""
        for image in self._images:
            if image.image_id == image_id:
                return image
        raise KeyError(image_id)

    # ------------------------------------------------------------------
    # 监听
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener):
        """注册状态变化回调，每次图片状态、进度或忙碌状态变化后同步调用"""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self):
        # 回调失败不能打断状态流转
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception(f"⚠️ 状态监听回调失败: {listener!r}")

    # ------------------------------------------------------------------
    # 批次管理
    # ------------------------------------------------------------------

    def select_files(
        self,
        sources: Iterable[SourceImage],
        previews: Optional[Sequence[Any]] = None,
    ) -> bool:
        """
        用新的选择替换整个批次

        每张图片的 id 由选择时的序号和文件名组成，同名文件不会互相覆盖。

        Args:
            sources: 选择的图片
            previews: 与 sources 一一对应的预览句柄（可选）

        Returns:
            是否已替换；运行中时不做任何修改并返回 False
        """
        if self.busy:
            logger.warning("⚠️ 正在处理中，忽略新的图片选择")
            return False

        sources = list(sources)
        previews = list(previews) if previews is not None else [None] * len(sources)
        if len(previews) != len(sources):
            raise ValueError("预览句柄数量与图片数量不一致")

        self._release_previews()
        self._images = [
            TrackedImage(image_id=f"{index}:{source.name}", source=source, preview_ref=preview)
            for index, (source, preview) in enumerate(zip(sources, previews))
        ]
        self._progress.reset()

        logger.info(f"已选择 {len(self._images)} 张图片")
        self._notify()
        return True

    def clear(self) -> bool:
        """
        清空批次并释放预览

        Returns:
            是否已清空；运行中时不做任何修改并返回 False
        """
        if self.busy:
            logger.warning("⚠️ 正在处理中，忽略清空操作")
            return False

        self._release_previews()
        self._images = []
        self._progress.reset()
        self._notify()
        return True

    def _release_previews(self):
        if not self.on_release:
            return
        for image in self._images:
            if image.preview_ref is not None:
                self.on_release(image.preview_ref)

    def set_corner(self, corner: Corner):
        self.selection.corner = Corner(corner)

    def set_tool(self, tool: Tool):
        self.selection.tool = Tool(tool)

    # ------------------------------------------------------------------
    # 运行
    # ------------------------------------------------------------------

    async def process_all(self) -> Optional[RunResult]:
        """
        按批次顺序逐张处理所有图片

        Returns:
            运行结果；忙碌时忽略请求并返回 None

        Raises:
            EmptyBatchError: 批次为空
        """
        if not self._images:
            raise EmptyBatchError()
        if self.busy:
            logger.debug("引擎忙碌，忽略全部处理请求")
            return None

        working_set = list(self._images)
        self._active_run = self.MODE_PROCESS_ALL
        try:
            for image in working_set:
                image.mark_pending()
            return await self._run(working_set, self.MODE_PROCESS_ALL)
        finally:
            self._active_run = None
            self._notify()

    async def retry_failed(self) -> Optional[RunResult]:
        """
        只重新处理调用时处于 error 状态的图片，其他图片保持不变

        Returns:
            运行结果；没有失败图片或忙碌时返回 None
        """
        failed = self.failed_images
        if not failed or self.busy:
            logger.debug("没有失败的图片或引擎忙碌，忽略重试请求")
            return None

        self._active_run = self.MODE_RETRY_FAILED
        try:
            for image in failed:
                image.mark_pending()
            return await self._run(failed, self.MODE_RETRY_FAILED)
        finally:
            self._active_run = None
            self._notify()

    async def retry_single(self, image_id: str, tool: Tool) -> Optional[TrackedImage]:
        """
        使用指定工具重新处理单张图片，不影响进度计数

        Args:
            image_id: 图片 id
            tool: 本次使用的工具，可以与全局选择不同

        Returns:
            处理后的图片；忙碌时忽略请求并返回 None

        Raises:
            KeyError: 找不到图片
        """
        if self.busy:
            logger.debug("引擎忙碌，忽略单张重试请求")
            return None

        image = self.get(image_id)
        tool = Tool(tool)

        self._retrying_id = image.image_id
        try:
            logger.info(f"[{image.name}] 🔁 使用 {tool.value} 重新处理")
            await self._process_image(image, self.selection.corner, tool)
            return image
        finally:
            self._retrying_id = None
            self._notify()

    async def _run(self, working_set: List[TrackedImage], mode: str) -> RunResult:
        """顺序处理工作集，每张图片完成后进度加一"""
        # 运行开始时固定角落和工具，中途修改只影响之后的运行
        corner = self.selection.corner
        tool = self.selection.tool

        start_time = time.time()
        self._progress.reset(len(working_set))
        self._notify()

        logger.info(f"开始处理 {len(working_set)} 张图片, corner={corner.value}, tool={tool.value}")

        for image in working_set:
            await self._process_image(image, corner, tool)
            self._progress.processed += 1
            logger.debug(f"进度: {self._progress.processed}/{self._progress.total}")
            self._notify()

        succeeded = [img for img in working_set if img.status == ImageStatus.DONE]
        failures = {img.name: img.error for img in working_set if img.status == ImageStatus.ERROR}
        duration = time.time() - start_time

        logger.info(f"🎉 处理完成: {len(succeeded)}/{len(working_set)}张成功, 耗时{duration:.1f}秒")

        return RunResult(
            mode=mode,
            total=len(working_set),
            succeeded=len(succeeded),
            failed=len(failures),
            duration_seconds=duration,
            failures=failures,
        )

    async def _process_image(self, image: TrackedImage, corner: Corner, tool: Tool):
        """处理单张图片，失败只记录到该图片上，不会中断运行"""
        log_prefix = f"[{image.name}]"

        image.mark_processing()
        self._notify()

        try:
            result = await self.client.edit(
                image.source.data,
                image.source.mime_type,
                corner,
                tool,
                log_prefix=log_prefix,
            )
        except EditFailure as e:
            logger.warning(f"{log_prefix} ❌ 处理失败: {e}")
            image.mark_error(str(e))
        except Exception as e:
            logger.error(f"{log_prefix} ❌ 处理异常: {e}")
            image.mark_error(str(e))
        else:
            image.mark_done(result.data, result.mime_type or image.source.mime_type, tool)
            logger.info(f"{log_prefix} ✅ 处理成功")

        self._notify()
