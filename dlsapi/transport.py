"""
传输层：把一次操作（操作名 + 路径 + query 参数 + 可选请求体/读取目标）发送到服务端。

core 只依赖 Transport 协议；HttpTransport 是基于 httpx 的实现，同时提供阻塞（call）
与异步（acall）两个入口，两者构造完全相同的请求。

约定：任何传输层失败（网络错误、非法 URL、取 token 失败、非 2xx 响应）都由传输层自己写入 OperationResponse，
然后返回 None；成功时返回 WireReply。重试、重定向、认证都在这一层，core 不关心。
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, Union
from urllib.parse import quote

import httpx

from dlsapi.params import ByteBuffer, QueryParams
from dlsapi.result import ErrorKind, OperationResponse

logger = logging.getLogger(__name__)

API_PREFIX = "/webhdfs/v1"
REQUEST_ID_HEADER = "x-request-id"

# 各操作对应的 HTTP 方法
OPERATION_METHODS: dict[str, str] = {
    "OPEN": "GET",
    "GETFILESTATUS": "GET",
    "LISTSTATUS": "GET",
    "GETCONTENTSUMMARY": "GET",
    "GETACLSTATUS": "GET",
    "CHECKACCESS": "GET",
    "CREATE": "PUT",
    "MKDIRS": "PUT",
    "RENAME": "PUT",
    "SETOWNER": "PUT",
    "SETPERMISSION": "PUT",
    "SETEXPIRY": "PUT",
    "SETACL": "PUT",
    "MODIFYACLENTRIES": "PUT",
    "REMOVEACLENTRIES": "PUT",
    "REMOVEDEFAULTACL": "PUT",
    "REMOVEACL": "PUT",
    "APPEND": "POST",
    "CONCURRENTAPPEND": "POST",
    "MSCONCAT": "POST",
    "ENUMERATEDELETEDITEMS": "POST",
    "RESTOREDELETEDITEMS": "POST",
    "DELETE": "DELETE",
}

TokenSource = Union[str, Callable[[], str], None]


class TokenError(Exception):
    """获取 token 的可调用对象抛出异常。"""


# 这些异常都记为 TRANSPORT 失败，不向调用方抛出
_TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL, TokenError)


@dataclass(frozen=True)
class RequestOptions:
    """单次请求的选项：超时覆盖与请求 id（不传则每次生成）。"""

    timeout: float | None = None
    request_id: str | None = None


@dataclass(frozen=True)
class WireRequest:
    op: str
    path: str
    params: QueryParams = field(default_factory=QueryParams)
    body: ByteBuffer | None = None
    destination: ByteBuffer | None = None
    headers: Mapping[str, str] | None = None
    options: RequestOptions | None = None


@dataclass(frozen=True)
class WireReply:
    """
    data: 响应体（读取到目标缓冲区时为空）
    count: 读取操作写入目标缓冲区的字节数，其它操作为响应体长度
    """

    data: bytes
    count: int


class Transport(Protocol):
    def call(self, request: WireRequest, resp: OperationResponse) -> WireReply | None:
        ...

    async def acall(self, request: WireRequest, resp: OperationResponse) -> WireReply | None:
        ...


def _path_for_url(path: str) -> str:
    """将路径按段做 UTF-8 百分号编码，保留层级。"""
    segments = path.strip("/").split("/") if path.strip("/") else []
    return "/" + "/".join(quote(seg, safe="") for seg in segments)


def _remote_error(response: httpx.Response) -> tuple[str | None, str]:
    """从 {"RemoteException": {"exception": .., "message": ..}} 中取出异常名与消息。"""
    try:
        payload = response.json()
    except ValueError:
        return None, response.text.strip()
    remote = payload.get("RemoteException") if isinstance(payload, dict) else None
    if not isinstance(remote, dict):
        return None, response.text.strip()
    return remote.get("exception"), remote.get("message") or ""


class HttpTransport:
    """
    基于 httpx 的传输实现。

    :param base_url: 服务地址，如 https://account.example.net（不要带 /webhdfs/v1）
    :param token: bearer token，或返回 token 的可调用对象（每次请求调用一次）
    :param timeout: 默认请求超时秒数
    :param verify: 是否验证 HTTPS 证书
    """

    def __init__(
        self,
        base_url: str,
        token: TokenSource = None,
        *,
        timeout: float = 30.0,
        verify: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.verify = verify
        self._client: httpx.Client | None = None
        self._async_client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                verify=self.verify,
                follow_redirects=True,
            )
        return self._client

    def _get_async_client(self) -> httpx.AsyncClient:
        if self._async_client is None or self._async_client.is_closed:
            self._async_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                verify=self.verify,
                follow_redirects=True,
            )
        return self._async_client

    def close(self) -> None:
        """关闭阻塞客户端。异步客户端需用 aclose()。"""
        if self._client and not self._client.is_closed:
            self._client.close()
            self._client = None

    async def aclose(self) -> None:
        if self._async_client and not self._async_client.is_closed:
            await self._async_client.aclose()
            self._async_client = None
        self.close()

    def _headers(self, request: WireRequest) -> dict[str, str]:
        options = request.options or RequestOptions()
        headers = {REQUEST_ID_HEADER: options.request_id or str(uuid.uuid4())}
        token = self._resolve_token()
        if token:
            headers["Authorization"] = token if token.lower().startswith("bearer ") else f"Bearer {token}"
        if request.headers:
            headers.update(request.headers)
        return headers

    def _resolve_token(self) -> str | None:
        if not callable(self.token):
            return self.token
        try:
            return self.token()
        except Exception as e:
            raise TokenError(f"{type(e).__name__}: {e}") from e

    def build_request_kwargs(self, request: WireRequest) -> dict[str, Any]:
        """阻塞与异步共用：生成 httpx request(...) 的参数。"""
        method = OPERATION_METHODS.get(request.op, "GET")
        kwargs: dict[str, Any] = {
            "method": method,
            "url": API_PREFIX + _path_for_url(request.path),
            "params": {"op": request.op, **request.params},
            "headers": self._headers(request),
        }
        if request.body is not None:
            kwargs["content"] = request.body.tobytes()
        if request.options and request.options.timeout is not None:
            kwargs["timeout"] = request.options.timeout
        return kwargs

    def call(self, request: WireRequest, resp: OperationResponse) -> WireReply | None:
        logger.debug("%s %s op=%s", OPERATION_METHODS.get(request.op, "GET"), request.path, request.op)
        try:
            response = self._get_client().request(**self.build_request_kwargs(request))
        except _TRANSPORT_ERRORS as e:
            return self._transport_failed(request, resp, e)
        return self._handle_response(request, response, resp)

    async def acall(self, request: WireRequest, resp: OperationResponse) -> WireReply | None:
        logger.debug("%s %s op=%s (async)", OPERATION_METHODS.get(request.op, "GET"), request.path, request.op)
        try:
            response = await self._get_async_client().request(**self.build_request_kwargs(request))
        except _TRANSPORT_ERRORS as e:
            return self._transport_failed(request, resp, e)
        return self._handle_response(request, response, resp)

    def _transport_failed(self, request: WireRequest, resp: OperationResponse, exc: Exception) -> None:
        logger.warning("%s %s failed: %s", request.op, request.path, exc)
        resp.fail(
            ErrorKind.TRANSPORT,
            f"Error in sending the request: {type(exc).__name__}: {exc}",
            exception_type=type(exc).__name__,
        )
        return None

    def _handle_response(
        self,
        request: WireRequest,
        response: httpx.Response,
        resp: OperationResponse,
    ) -> WireReply | None:
        if not response.is_success:
            exception, message = _remote_error(response)
            logger.warning("%s %s -> %s %s", request.op, request.path, response.status_code, exception or "")
            prefix = f"{exception}: " if exception else ""
            resp.fail(
                ErrorKind.REMOTE,
                f"HTTP {response.status_code} {prefix}{message}".rstrip(),
                http_status=response.status_code,
                remote_exception=exception,
            )
            return None
        resp.http_status = response.status_code
        data = response.content
        if request.destination is not None:
            view = request.destination.view()
            count = min(len(data), len(view))
            view[:count] = data[:count]
            return WireReply(b"", count)
        return WireReply(data, len(data))
