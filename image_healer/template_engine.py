"""
Jinja2模板引擎 - 负责各移除工具的 Prompt 渲染
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound

from .exceptions import TemplateRenderError
from .models import Corner, Tool

logger = logging.getLogger(__name__)

# 内置 Prompt，模板目录中的同名文件（heal.j2 / generative-remove.j2）可以覆盖
DEFAULT_PROMPTS: Dict[Tool, str] = {
    Tool.HEAL: (
        "Using a spot healing brush effect, seamlessly remove the small object located "
        "in the {{ corner }} corner of this image. Ensure the background is perfectly "
        "reconstructed and the final image maintains its original quality, resolution, "
        "and style. Do not add any new elements or change the overall composition."
    ),
    Tool.GENERATIVE_REMOVE: (
        "Generatively remove the object located in the {{ corner }} corner of this image. "
        "Inpaint the removed area to perfectly match the surrounding background, textures, "
        "and lighting. The result should be photorealistic and indistinguishable from the "
        "original image, maintaining all original quality and details."
    ),
}

FALLBACK_PROMPT = "Remove the object in the {{ corner }} corner."


class TemplateEngine:
    """Jinja2模板引擎"""

    def __init__(self, template_dir: Optional[Path] = None):
        """
        初始化模板引擎

        Args:
            template_dir: 自定义 Prompt 模板目录
        """
        self.template_dir = template_dir

        # 配置Jinja2环境
        if template_dir and template_dir.exists():
            self.env = Environment(
                loader=FileSystemLoader(str(template_dir)),
                autoescape=False,  # prompt不需要HTML转义
            )
        else:
            if template_dir:
                logger.warning(f"Prompt 模板目录不存在: {template_dir}，使用内置 Prompt")
            self.env = Environment(autoescape=False)

    def get_template_source(self, tool: Tool) -> str:
        """获取工具对应的模板源码，优先使用模板目录中的文件"""
        tool = Tool(tool)

        if self.env.loader is not None:
            try:
                source, _, _ = self.env.loader.get_source(self.env, f"{tool.value}.j2")
                return source
            except TemplateNotFound:
                logger.debug(f"未找到自定义模板 {tool.value}.j2，使用内置 Prompt")

        return DEFAULT_PROMPTS.get(tool, FALLBACK_PROMPT)

    def render_dict(self, template_str: str, context_dict: Dict[str, Any]) -> str:
        """
        使用字典渲染模板

        Args:
            template_str: 模板字符串
            context_dict: 上下文字典

        Returns:
            渲染后的字符串
        """
        try:
            template = self.env.from_string(template_str)
            return template.render(**context_dict)
        except TemplateError as e:
            raise TemplateRenderError(f"模板渲染失败: {e}", template=template_str) from e

    def render_prompt(self, tool: Tool, corner: Corner) -> str:
        """
        渲染指定工具和角落的 Prompt

        Args:
            tool: 移除工具
            corner: 物体所在角落

        Returns:
            渲染后的 Prompt
        """
        corner = Corner(corner)
        return self.render_dict(
            self.get_template_source(tool),
            {"corner": corner.value, "tool": Tool(tool).value},
        ).strip()
