"""
图片编辑客户端 - 通过代理接口调用远程图片编辑服务

请求格式:
    POST {endpoint}
    {"imageData": "<base64>", "mimeType": "image/png", "corner": "top left", "tool": "heal"}

成功响应:
    {"resultImageData": "<base64>"}

失败响应:
    非 2xx 状态码，尽可能带有 {"error": "..."}
"""

import base64
import binascii
import logging
import time
from typing import Optional

import httpx

from .exceptions import NoImageReturnedError, RemoteEditError
from .models import Corner, EditResult, Tool

logger = logging.getLogger(__name__)

# 原始响应文本作为错误信息的长度上限
MAX_RAW_ERROR_LENGTH = 500


def decode_image_payload(payload) -> Optional[bytes]:
    """
    解码 base64 图片数据，兼容 data URL

    Returns:
        图片字节，数据为空或无法解码时返回 None
    """
    if not payload or not isinstance(payload, str):
        return None

    if payload.startswith("data:"):
        # 格式: data:image/png;base64,xxxxx
        _, _, payload = payload.partition(",")

    # 部分服务按 76 列换行输出 base64
    payload = "".join(payload.split())

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None

    return data or None


def looks_like_markup(text: str) -> bool:
    """判断响应文本是否像 HTML 错误页"""
    head = text.lstrip()[:200].lower()
    return head.startswith("<") or "<html" in head or "<!doctype" in head


def extract_error_message(response: httpx.Response) -> str:
    """
    从失败响应中提取可读的错误信息

    优先级: JSON 中的 error 字段 > 状态码提示（短文本时附带原始文本）
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str) and error.strip():
            return error.strip()

    message = f"请求失败，状态码: {response.status_code}"

    text = (response.text or "").strip()
    if body is None and text and len(text) < MAX_RAW_ERROR_LENGTH and not looks_like_markup(text):
        message = f"{message} ({text})"

    return message


class ImageEditClient:
    """代理接口图片编辑客户端"""

    def __init__(
        self,
        endpoint: str,
        timeout: Optional[float] = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        初始化客户端

        Args:
            endpoint: 图片编辑接口地址
            timeout: 请求超时时间（秒），交给 httpx 处理
            transport: 自定义传输层（测试时注入 MockTransport）
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "ImageEditClient":
        self._client = self._new_http_client()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _new_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def edit(
        self,
        data: bytes,
        mime_type: str,
        corner: Corner,
        tool: Tool,
        log_prefix: str = "",
    ) -> EditResult:
        """
        移除图片指定角落的物体，每次调用只发送一个请求，不做重试

        Args:
            data: 原图字节
            mime_type: 原图 MIME 类型
            corner: 物体所在角落
            tool: 使用的移除工具
            log_prefix: 日志前缀

        Returns:
            EditResult: 编辑后的图片（MIME 类型与原图一致）

        Raises:
            RemoteEditError: 服务返回失败或网络错误
            NoImageReturnedError: 服务返回成功但没有图片
        """
        payload = {
            "imageData": base64.b64encode(data).decode("utf-8"),
            "mimeType": mime_type,
            "corner": Corner(corner).value,
            "tool": Tool(tool).value,
        }

        start_time = time.time()
        logger.debug(f"{log_prefix} 发送编辑请求: {self.endpoint}, corner={payload['corner']}, tool={payload['tool']}")

        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, json=payload)
            else:
                async with self._new_http_client() as http_client:
                    response = await http_client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"{log_prefix} 请求编辑服务失败: {e}")
            raise RemoteEditError(f"无法连接图片编辑服务: {e}") from e

        elapsed = time.time() - start_time
        logger.debug(f"{log_prefix} 响应状态码 {response.status_code}, 耗时 {elapsed:.1f}秒")

        if not response.is_success:
            message = extract_error_message(response)
            logger.error(f"{log_prefix} 编辑服务返回错误: {message}")
            raise RemoteEditError(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError:
            body = None

        result = decode_image_payload(body.get("resultImageData")) if isinstance(body, dict) else None
        if result is None:
            logger.error(f"{log_prefix} 编辑服务未返回图片: {response.text[:200]}")
            raise NoImageReturnedError()

        return EditResult(data=result, mime_type=mime_type)
