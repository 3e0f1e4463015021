"""统一业务异常模型。

模型 Provider、聊天平台与工具层抛出的错误都继承自 BusinessError。
ResponseRelay 在 run() 顶层统一捕获，并把 message 写回聊天消息。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 用户可读错误信息，会作为消息正文展示给终端用户。
        http_status: 上游返回的 HTTP 状态码，默认 400。
        extra: 其他补充字段（例如 provider、message_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, "
            f"http_status={self.http_status})"
        )


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """上游限流。本包不做重试，直接按错误路径结束本次回复。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class TransportError(BusinessError):
    """聊天平台（发送事件、更新消息）调用失败。"""
