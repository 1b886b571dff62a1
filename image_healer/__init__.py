"""
Image Healer - 批量移除图片角落中的物体

流程：选择图片 -> 选择角落和工具 -> 逐张调用图片编辑服务 -> 重试失败 -> 打包下载
"""

__version__ = "1.0.0"

from .models import (
    Corner,
    Tool,
    ImageStatus,
    ImageServiceProvider,
    SourceImage,
    TrackedImage,
    ProcessingSelection,
    Progress,
    EditResult,
    GlobalConfig,
    RunResult,
)
from .exceptions import (
    HealerError,
    ConfigurationError,
    PathNotFoundError,
    TemplateRenderError,
    EmptyBatchError,
    EmptyResultSetError,
    EditFailure,
    RemoteEditError,
    NoImageReturnedError,
    ArchiveBuildError,
)
from .config import ConfigManager
from .template_engine import TemplateEngine
from .image_selector import ImageSelector
from .edit_client import ImageEditClient
from .openrouter_image_client import OpenRouterImageClient
from .archive import ArchiveBuilder
from .output_manager import OutputManager
from .engine import BatchEngine

__all__ = [
    # Enums
    "Corner",
    "Tool",
    "ImageStatus",
    "ImageServiceProvider",
    # Data Models
    "SourceImage",
    "TrackedImage",
    "ProcessingSelection",
    "Progress",
    "EditResult",
    "GlobalConfig",
    "RunResult",
    # Exceptions
    "HealerError",
    "ConfigurationError",
    "PathNotFoundError",
    "TemplateRenderError",
    "EmptyBatchError",
    "EmptyResultSetError",
    "EditFailure",
    "RemoteEditError",
    "NoImageReturnedError",
    "ArchiveBuildError",
    # Components
    "ConfigManager",
    "TemplateEngine",
    "ImageSelector",
    "ImageEditClient",
    "OpenRouterImageClient",
    "ArchiveBuilder",
    "OutputManager",
    "BatchEngine",
]
