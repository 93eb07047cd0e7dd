from __future__ import annotations


class RewriteError(RuntimeError):
    """
    所有改写流程错误的基类。

    code 同时作为 CLI 的进程退出码使用。
    """

    code = 1

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class FormatError(RewriteError):
    """输入非空，但解析后没有任何可用的字幕块。"""

    code = 3

    def __init__(self, source: str = "<input>") -> None:
        super().__init__(f"No valid SRT blocks found in {source}")
        self.source = source


class EmptyInput(RewriteError):
    code = 4

    def __init__(self, message: str = "No subtitle blocks to process") -> None:
        super().__init__(message)


class AuthorizationFailure(RewriteError):
    """
    API Key 缺失、无效或目标实体不存在。

    属于致命错误：不重试，任务立即终止，调用方应提示更换凭据而不是“再试一次”。
    """

    code = 5


class ServiceError(RewriteError):
    """外部生成服务的其它失败（HTTP 错误、网络错误、响应无法解析等）。"""

    code = 6

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientServiceError(ServiceError):
    """限流 / 配额耗尽，可按指数退避重试。"""


class BatchFailure(RewriteError):
    code = 7

    def __init__(self, position: int, cause: BaseException) -> None:
        super().__init__(f"Batch starting at block {position} failed: {cause}")
        self.position = position
        self.cause = cause


class JobCancelled(RewriteError):
    code = 8

    def __init__(self, position: int) -> None:
        super().__init__(f"Job cancelled before block {position}")
        self.position = position
