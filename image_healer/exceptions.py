"""
自定义异常类
"""


class HealerError(Exception):
    """基础异常"""
    pass


class ConfigurationError(HealerError):
    """配置错误"""

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)


class PathNotFoundError(HealerError):
    """路径不存在错误"""

    def __init__(self, path: str, message: str = None):
        self.path = path
        msg = message or f"路径不存在: {path}"
        super().__init__(msg)


class TemplateRenderError(HealerError):
    """Prompt 模板渲染错误"""

    def __init__(self, message: str, template: str = None):
        self.template = template
        super().__init__(message)


class EmptyBatchError(HealerError):
    """批次为空，操作需要至少一张图片"""

    def __init__(self, message: str = "请先选择需要处理的图片"):
        super().__init__(message)


class EmptyResultSetError(HealerError):
    """没有处理成功的图片可以打包"""

    def __init__(self, message: str = "没有可下载的处理结果"):
        super().__init__(message)


class EditFailure(HealerError):
    """单张图片编辑失败（会被记录到该图片的错误状态中）"""
    pass


class RemoteEditError(EditFailure):
    """远程服务拒绝或处理失败"""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class NoImageReturnedError(EditFailure):
    """服务返回成功，但没有可用的图片数据"""

    def __init__(self, message: str = "服务未返回图片，内容可能被安全策略拦截"):
        super().__init__(message)


class ArchiveBuildError(HealerError):
    """打包压缩文件失败"""
    pass
