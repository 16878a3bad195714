"""
调用结果记录（每次调用一个）。

core 中的操作不会为「预期内的失败」抛异常：参数校验失败、传输失败、服务端报错、
响应解析失败，都只写入 OperationResponse，调用方在调用返回后检查 is_successful。
调用方违反约定（如枚举回收站不给 hint）才直接抛 ValueError。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any


class ErrorKind(str, enum.Enum):
    """失败类别。"""

    INVALID_ARGUMENT = "invalid_argument"
    TRANSPORT = "transport"
    REMOTE = "remote"
    PARSE = "parse"
    EMPTY_RESPONSE = "empty_response"


@dataclass
class OperationResponse:
    """
    单次调用的结果记录，由参数构建、传输、解析各阶段写入，调用返回后读取一次。

    is_successful 为 False 时，调用返回的值（False/None/0）没有意义。
    """

    is_successful: bool = True
    error: str = ""
    kind: ErrorKind | None = None
    op: str | None = None
    http_status: int | None = None
    remote_exception: str | None = None
    exception_type: str | None = None

    def fail(self, kind: ErrorKind, message: str, **details: Any) -> None:
        """标记失败；details 可覆盖 http_status / remote_exception / exception_type。"""
        self.is_successful = False
        self.kind = kind
        self.error = message
        for key, value in details.items():
            if not hasattr(self, key):
                raise AttributeError(f"OperationResponse has no field {key!r}")
            setattr(self, key, value)


class DLSOperationError(Exception):
    """DLSClient / CLI 在调用失败时抛出，携带失败的 OperationResponse。"""

    def __init__(self, response: OperationResponse):
        self.response = response
        op = f"{response.op}: " if response.op else ""
        super().__init__(f"{op}{response.error}")

    @property
    def kind(self) -> ErrorKind | None:
        return self.response.kind
