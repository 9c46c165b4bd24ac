"""
Relay 错误分类
- ConfigurationError / NonceStoreUnavailable: 直接失败
- TransientSubmissionError (含 SubmissionTimeout): 可重试
- FatalExecutionError: 重试也不会改变结果
"""
from enum import Enum


class RelayError(RuntimeError):
    """所有 relay 错误的基类"""


class ConfigurationError(RelayError):
    """缺少必需的密钥或 endpoint"""


class NonceStoreUnavailable(RelayError):
    """共享计数器存储（Redis）不可达"""


class TransientSubmissionError(RelayError):
    """网络 / transport 错误，或无法归类的 RPC 错误"""

    def __init__(self, message: str, *, code: int | None = None):
        super().__init__(message)
        self.code = code


class SubmissionTimeout(TransientSubmissionError):
    """轮询窗口内没有拿到 receipt"""

    def __init__(self, user_op_hash: str, timeout: float):
        super().__init__(f"UserOp {user_op_hash} not confirmed within {timeout}s")
        self.user_op_hash = user_op_hash
        self.timeout = timeout


class ErrorKind(str, Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    EXECUTION_REVERTED = "execution_reverted"
    PAYMASTER_REJECTED = "paymaster_rejected"


class FatalExecutionError(RelayError):
    def __init__(self, message: str, *, kind: ErrorKind, code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.code = code


class RetriesExhausted(RelayError):
    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Failed to submit UserOperation after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


# 小写匹配；AA21 = prefund 不足，AA3x = paymaster 校验失败
_FATAL_PATTERNS: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.INSUFFICIENT_FUNDS, ("insufficient funds", "aa21")),
    (ErrorKind.EXECUTION_REVERTED, ("execution reverted", "userop failed")),
    (ErrorKind.PAYMASTER_REJECTED, ("paymaster", "aa31", "aa32", "aa33", "aa34")),
)


def match_fatal_kind(message: str) -> ErrorKind | None:
    text = (message or "").lower()
    for kind, needles in _FATAL_PATTERNS:
        if any(needle in text for needle in needles):
            return kind
    return None


def classify_error(exc: BaseException) -> RelayError:
    """
    把任意异常归类为 RelayError。
    bundler / paymaster 客户端已经在边界处翻译过的错误原样返回，
    其余按 message 匹配 fatal 集合，匹配不到的视为 transient。
    """
    if isinstance(exc, RelayError):
        return exc
    message = str(exc)
    kind = match_fatal_kind(message)
    if kind is not None:
        return FatalExecutionError(message, kind=kind)
    return TransientSubmissionError(message or type(exc).__name__)
