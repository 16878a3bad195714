"""
pytest 配置与共享 fixture。

FakeTransport 记录收到的每个 WireRequest，并按顺序返回预设的响应体；
阻塞与异步入口共用同一份逻辑，便于比较两种调用方式发出的请求。
"""

from __future__ import annotations

from typing import Callable, Union

import pytest

from dlsapi import DLSClient
from dlsapi.result import ErrorKind, OperationResponse
from dlsapi.transport import WireReply, WireRequest

from tests.config import DLS_BASE_URL

# bytes：成功响应体；None：成功但无响应体；tuple(status, exception, message)：服务端报错
Reply = Union[bytes, None, tuple, Callable[[WireRequest, OperationResponse], "WireReply | None"]]


class FakeTransport:
    """按顺序返回 replies；用完后重复最后一个。"""

    def __init__(self, *replies: Reply):
        self.replies = list(replies) or [b""]
        self.requests: list[WireRequest] = []

    def _reply(self, request: WireRequest, resp: OperationResponse) -> WireReply | None:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if callable(reply):
            return reply(request, resp)
        if isinstance(reply, tuple):
            status, exception, message = reply
            resp.fail(ErrorKind.REMOTE, message, http_status=status, remote_exception=exception)
            return None
        if reply is None:
            return WireReply(None, 0)
        if request.destination is not None:
            view = request.destination.view()
            count = min(len(reply), len(view))
            view[:count] = reply[:count]
            return WireReply(b"", count)
        return WireReply(reply, len(reply))

    def call(self, request: WireRequest, resp: OperationResponse) -> WireReply | None:
        return self._reply(request, resp)

    async def acall(self, request: WireRequest, resp: OperationResponse) -> WireReply | None:
        return self._reply(request, resp)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """默认返回空响应体的 FakeTransport；需要特定响应时在测试里自己构造。"""
    return FakeTransport()


@pytest.fixture
def resp() -> OperationResponse:
    return OperationResponse()


@pytest.fixture
def make_client() -> Callable[..., tuple[DLSClient, FakeTransport]]:
    """make_client(*replies) -> (DLSClient, FakeTransport)"""

    def _make(*replies: Reply) -> tuple[DLSClient, FakeTransport]:
        transport = FakeTransport(*replies)
        return DLSClient(DLS_BASE_URL, transport=transport), transport

    return _make
