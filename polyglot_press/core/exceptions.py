# polyglot_press/core/exceptions.py
"""
本模块定义了 Polyglot-Press 项目中所有自定义的、语义化的异常类型。

上层调用者可以根据不同的异常类型决定是重试、降级还是直接报告错误。
"""


class PolyglotPressError(Exception):
    """
    所有 Polyglot-Press 自定义异常的通用基类。
    捕获此异常可以处理所有源自本项目的预期错误。
    """

    pass


class ConfigurationError(PolyglotPressError):
    """
    表示在加载、解析或验证配置时发生的错误。
    例如，缺少提供商的 API 密钥，或数据库 URL 不受支持。
    """

    pass


class ProviderNotFoundError(PolyglotPressError, KeyError):
    """
    表示尝试访问一个未注册或不可用的补全提供商时引发的错误。
    继承自 KeyError 是为了保持与字典查找行为的一致性。
    """

    pass


class DatabaseError(PolyglotPressError):
    """
    表示在持久化层操作（如连接、查询、写入）中发生的错误。
    通常是底层数据库驱动异常的包装。
    """

    pass


class ProviderError(PolyglotPressError):
    """
    表示与外部生成式 AI 提供商交互失败。

    `is_retryable` 指明该错误是否是瞬时的（限流、网络抖动等）。
    """

    def __init__(self, message: str, *, is_retryable: bool = False) -> None:
        super().__init__(message)
        self.is_retryable = is_retryable


class TranslationTimeoutError(PolyglotPressError):
    """表示单个预翻译任务超出了允许的执行时间。"""

    pass
