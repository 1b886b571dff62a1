"""
配置管理器 - 负责加载和验证配置
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigurationError, PathNotFoundError
from .models import GlobalConfig, ImageServiceProvider


class ConfigManager:
    """配置管理器"""

    DEFAULT_CONFIG_NAME = "config.json"

    def __init__(
        self,
        config_path: Optional[Path] = None,
        project_root: Optional[Path] = None,
    ):
        """
        初始化配置管理器

        Args:
            config_path: 全局配置文件路径 (config.json)，不指定时尝试项目根目录下的默认文件
            project_root: 项目根目录，用于解析相对路径
        """
        self.project_root = project_root or Path.cwd()
        self.config_path = config_path
        self._global_config: Optional[GlobalConfig] = None

    def _load_json(self, path: Path) -> Dict[str, Any]:
        """加载JSON文件"""
        if not path.exists():
            raise PathNotFoundError(str(path), f"配置文件不存在: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"JSON解析错误: {path}, {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"配置文件根对象必须是字典: {path}")
        return data

    @staticmethod
    def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
        """读取配置分节，缺省或为 null 时视为空"""
        section = data.get(name)
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"配置项 {name} 必须是字典，实际为: {type(section).__name__}", field=name)
        return section

    def resolve_path(self, path_str: str) -> Path:
        """解析路径，相对路径相对于项目根目录"""
        p = Path(path_str)
        if p.is_absolute():
            return p
        return self.project_root / p

    def load_global_config(self) -> GlobalConfig:
        """加载全局配置（配置文件可选，环境变量优先）"""
        if self._global_config:
            return self._global_config

        data: Dict[str, Any] = {}
        if self.config_path:
            data = self._load_json(Path(self.config_path))
        else:
            default_path = self.project_root / self.DEFAULT_CONFIG_NAME
            if default_path.exists():
                self.config_path = default_path
                data = self._load_json(default_path)

        proxy_cfg = self._section(data, "proxy")
        openrouter_cfg = self._section(data, "openrouter")
        archive_cfg = self._section(data, "archive")
        defaults = GlobalConfig()

        try:
            timeout = float(proxy_cfg.get("timeout", defaults.timeout))
        except (TypeError, ValueError):
            raise ConfigurationError(f"无效的超时时间: {proxy_cfg.get('timeout')}", field="proxy.timeout")

        self._global_config = GlobalConfig(
            # 服务选择
            image_service=os.getenv("IMAGE_HEALER_SERVICE") or data.get("image_service", defaults.image_service),
            # 代理接口配置
            endpoint=os.getenv("IMAGE_HEALER_ENDPOINT") or proxy_cfg.get("endpoint", defaults.endpoint),
            timeout=timeout,
            # OpenRouter 直连配置
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or openrouter_cfg.get("api_key", ""),
            openrouter_base_url=(
                os.getenv("OPENROUTER_BASE_URL") or
                openrouter_cfg.get("base_url", defaults.openrouter_base_url)
            ),
            openrouter_model=openrouter_cfg.get("model", defaults.openrouter_model),
            openrouter_site_url=os.getenv("OPENROUTER_SITE_URL") or openrouter_cfg.get("site_url", ""),
            openrouter_site_name=os.getenv("OPENROUTER_SITE_NAME") or openrouter_cfg.get("site_name", ""),
            openrouter_proxy=os.getenv("OPENROUTER_PROXY") or openrouter_cfg.get("proxy", ""),
            prompts_dir=openrouter_cfg.get("prompts_dir", ""),
            # 打包配置
            archive_suffix=archive_cfg.get("suffix", defaults.archive_suffix),
            archive_name=archive_cfg.get("name", defaults.archive_name),
        )

        return self._global_config

    def validate_config(self) -> List[str]:
        """验证配置完整性，返回错误列表"""
        errors = []

        try:
            cfg = self.load_global_config()
        except Exception as e:
            return [f"全局配置错误: {e}"]

        services = [p.value for p in ImageServiceProvider]
        if cfg.image_service not in services:
            errors.append(f"无效的图片服务: {cfg.image_service}，可选: {', '.join(services)}")

        if cfg.timeout <= 0:
            errors.append("超时时间必须大于0")

        if cfg.image_service == ImageServiceProvider.PROXY.value and not cfg.endpoint:
            errors.append("缺少图片编辑接口地址")

        if cfg.image_service == ImageServiceProvider.OPENROUTER.value and not cfg.openrouter_api_key:
            errors.append("缺少 OpenRouter API 密钥")

        if not cfg.archive_name.endswith(".zip"):
            errors.append(f"压缩包文件名必须以 .zip 结尾: {cfg.archive_name}")

        return errors
