"""
数据模型定义
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class Corner(Enum):
    """待移除物体所在的角落"""
    TOP_LEFT = "top left"
    TOP_RIGHT = "top right"
    BOTTOM_LEFT = "bottom left"
    BOTTOM_RIGHT = "bottom right"


class Tool(Enum):
    """移除工具"""
    HEAL = "heal"
    GENERATIVE_REMOVE = "generative-remove"


class ImageStatus(Enum):
    """单张图片的处理状态"""
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class ImageServiceProvider(Enum):
    """图片编辑服务"""
    PROXY = "proxy"
    OPENROUTER = "openrouter"


@dataclass(frozen=True)
class SourceImage:
    """用户选择的原始图片"""
    name: str
    data: bytes
    mime_type: str
    path: Optional[Path] = None


@dataclass
class TrackedImage:
    """批次中被跟踪的单张图片"""
    image_id: str
    source: SourceImage
    preview_ref: Any = None  # 由展示层持有，引擎不会读取
    status: ImageStatus = ImageStatus.PENDING
    result_data: Optional[bytes] = None
    result_mime: Optional[str] = None
    error: Optional[str] = None
    tool_used: Optional[Tool] = None

    @property
    def name(self) -> str:
        return self.source.name

    def mark_pending(self):
        """重置为待处理，清除上一次的结果和错误"""
        self.status = ImageStatus.PENDING
        self._clear_outcome()

    def mark_processing(self):
        self.status = ImageStatus.PROCESSING
        self._clear_outcome()

    def mark_done(self, data: bytes, mime_type: str, tool: Tool):
        self.status = ImageStatus.DONE
        self.result_data = data
        self.result_mime = mime_type
        self.tool_used = tool
        self.error = None

    def mark_error(self, message: str):
        self.status = ImageStatus.ERROR
        self.error = message or "发生未知错误"
        self.result_data = None
        self.result_mime = None
        self.tool_used = None

    def _clear_outcome(self):
        self.result_data = None
        self.result_mime = None
        self.tool_used = None
        self.error = None

    def to_dict(self) -> Dict[str, Any]:
        """转换为可序列化的字典（不含图片字节）"""
        return {
            "id": self.image_id,
            "name": self.name,
            "mime_type": self.source.mime_type,
            "status": self.status.value,
            "error": self.error,
            "tool_used": self.tool_used.value if self.tool_used else None,
            "result_size": len(self.result_data) if self.result_data else 0,
        }


@dataclass
class ProcessingSelection:
    """全局的角落和工具选择，对之后处理的所有图片生效"""
    corner: Corner = Corner.TOP_LEFT
    tool: Tool = Tool.HEAL


@dataclass
class Progress:
    """批处理进度"""
    processed: int = 0
    total: int = 0

    def reset(self, total: int = 0):
        self.processed = 0
        self.total = total


@dataclass
class EditResult:
    """编辑服务返回的图片"""
    data: bytes
    mime_type: str


@dataclass
class GlobalConfig:
    """全局配置"""
    image_service: str = ImageServiceProvider.PROXY.value
    # 代理接口配置
    endpoint: str = "http://localhost:3000/api/process-image"
    timeout: float = 120.0
    # OpenRouter 直连配置
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "google/gemini-2.5-flash-image-preview"
    openrouter_site_url: str = ""
    openrouter_site_name: str = ""
    openrouter_proxy: str = ""
    prompts_dir: str = ""
    # 打包配置
    archive_suffix: str = "_healed"
    archive_name: str = "healed-images.zip"


@dataclass
class RunResult:
    """一次运行（全部处理或重试失败）的结果"""
    mode: str
    total: int
    succeeded: int
    failed: int
    duration_seconds: float
    failures: Dict[str, str] = field(default_factory=dict)  # 图片名 -> 错误信息

    def to_dict(self) -> Dict[str, Any]:
        """转换为可序列化的字典"""
        return {
            "mode": self.mode,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "duration_seconds": round(self.duration_seconds, 2),
            "failures": self.failures,
        }
