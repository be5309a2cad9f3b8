"""Landscape API 异常定义"""


class LandscapeError(Exception):
    """Landscape 相关错误的基类。

    所有 Landscape 相关的异常都继承自此类，便于 CLI 统一捕获。
    """

    pass


class ConfigurationError(LandscapeError):
    """配置错误。

    凭证缺失或为空、配置文件无效时抛出此异常。此时不会发起任何网络请求。
    """

    pass


class NetworkError(LandscapeError):
    """网络错误（连接被拒绝、超时、TLS 失败等）。不会自动重试。"""

    pass


class DecodeError(LandscapeError):
    """响应无法解析为预期的成功结构，也不是错误信封。"""

    pass


class UnexpectedStatus(LandscapeError):
    """HTTP 状态码不在成功范围内，且响应体不是结构化的 API 错误。"""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        body = self.body[:200] if self.body else "<空响应>"
        return f"UnexpectedStatus({self.status_code}): {body}"


class ApiError(LandscapeError):
    """Landscape API 业务错误。

    当 Landscape 返回错误信封（包含 error 和 message 字段）时抛出此异常，
    无论 HTTP 状态码是否为成功。包含服务端提供的错误代码和信息。
    """

    def __init__(self, code: str, message: str) -> None:
        """初始化 API 错误。

        Args:
            code: 服务端错误代码（如 "InvalidCredentials"）
            message: 服务端错误信息
        """
        super().__init__(message)
        self.code = code
        self.message = message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ApiError):
            return NotImplemented
        return (self.code, self.message) == (other.code, other.message)

    def __hash__(self) -> int:
        return hash((self.code, self.message))

    def __str__(self) -> str:
        return f"ApiError({self.code}): {self.message}"


class ScriptNotFoundError(LandscapeError):
    """按标题找不到脚本。"""

    def __init__(self, title: str) -> None:
        super().__init__(f"Script not found: {title}")
        self.title = title


class UnknownActionError(LandscapeError):
    """不支持的 action 名称。"""

    pass
