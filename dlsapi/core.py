"""
各 REST 操作的调度：参数校验 → 交给传输层 → 解析响应 → 补全路径。

每个操作只写一份实现（一个 generator）：先校验、构造参数，然后 yield 一个 WireRequest，
拿到 WireReply 后解析并 return 结果。run_steps 在调用线程上阻塞驱动它，run_steps_async
在协程里驱动它；两者都不创建额外线程，发出的请求完全相同。

所有公开操作都接受 async_ 参数：
- async_=False（默认）：阻塞直到完成，返回结果
- async_=True：返回 coroutine，await 后得到结果；可传入 cancel_event（asyncio.Event）取消

预期内的失败只写入 resp（OperationResponse），返回 False / None / 0；
调用方违反约定（如枚举回收站不给 hint）直接抛 ValueError。

并发：不同调用之间没有共享状态。同一路径以不同 lease id 并发 create/append 的结果由服务端决定；
多写者追加同一文件应使用 concurrent_append（由服务端决定追加位置）。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Coroutine, Generator, Literal, Mapping, Sequence, TypeVar

from dlsapi.models import (
    AclStatus,
    ContentSummary,
    DirectoryEntry,
    ExpiryOption,
    Selection,
    SyncFlag,
    TrashStatus,
    UserGroupRepresentation,
)
from dlsapi.params import (
    AclSpec,
    ByteBuffer,
    QueryParams,
    build_acl_spec_params,
    build_append_params,
    build_check_access_params,
    build_concat_request,
    build_concurrent_append_params,
    build_create_params,
    build_delete_params,
    build_enumerate_deleted_items_params,
    build_expiry_params,
    build_file_status_params,
    build_list_status_params,
    build_mkdirs_params,
    build_open_params,
    build_rename_params,
    build_restore_deleted_items_params,
    build_set_owner_params,
    build_set_permission_params,
    build_user_id_params,
    check_buffer,
)
from dlsapi.parsing import (
    guarded_parse,
    parse_acl_status,
    parse_boolean,
    parse_content_summary,
    parse_file_status,
    parse_list_status,
    parse_trash_status,
)
from dlsapi.paths import complete_file_status, complete_list_status
from dlsapi.result import OperationResponse
from dlsapi.transport import RequestOptions, Transport, WireReply, WireRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 一个操作的实现：yield 请求，接收响应（失败时为 None），return 结果
Steps = Generator[WireRequest, "WireReply | None", T]

JSON_HEADERS = {"Content-Type": "application/json"}


# ------------------------- 驱动 -------------------------


def _log_outcome(op: str, path: str, resp: OperationResponse) -> None:
    if not resp.is_successful:
        logger.debug("%s %s unsuccessful (%s): %s", op, path, resp.kind and resp.kind.value, resp.error)


def run_steps(steps: Steps[T], transport: Transport, resp: OperationResponse) -> T:
    """在调用线程上阻塞执行。"""
    try:
        request = next(steps)
        while True:
            reply = transport.call(request, resp)
            request = steps.send(reply)
    except StopIteration as e:
        return e.value


async def _wait_cancellable(call: Awaitable[T], cancel_event: asyncio.Event | None) -> T:
    if cancel_event is None:
        return await call
    if cancel_event.is_set():
        if asyncio.iscoroutine(call):
            call.close()
        raise asyncio.CancelledError("operation cancelled")
    call_task = asyncio.ensure_future(call)
    cancel_task = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({call_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancel_task.cancel()
        if not call_task.done():
            call_task.cancel()
    if not call_task.done() or call_task.cancelled():
        # 等待被取消的请求真正退出，避免留下悬空的连接
        await asyncio.gather(call_task, return_exceptions=True)
        raise asyncio.CancelledError("operation cancelled")
    return call_task.result()


async def run_steps_async(
    steps: Steps[T],
    transport: Transport,
    resp: OperationResponse,
    cancel_event: asyncio.Event | None = None,
) -> T:
    """
    在协程中执行，只在调用传输层处让出。

    cancel_event 被设置后，未完成的传输调用被取消并抛出 asyncio.CancelledError；
    resp 只在传输层返回后才被写入，因此取消不会留下写了一半的结果。
    """
    try:
        request = next(steps)
        while True:
            reply = await _wait_cancellable(transport.acall(request, resp), cancel_event)
            request = steps.send(reply)
    except StopIteration as e:
        return e.value


def _dispatch(
    op: str,
    path: str,
    steps: Steps[T],
    transport: Transport,
    resp: OperationResponse,
    async_: bool,
    cancel_event: asyncio.Event | None,
) -> T | Coroutine[Any, Any, T]:
    resp.op = op
    if async_:
        async def process() -> T:
            result = await run_steps_async(steps, transport, resp, cancel_event)
            _log_outcome(op, path, resp)
            return result
        return process()
    result = run_steps(steps, transport, resp)
    _log_outcome(op, path, resp)
    return result


def _as_buffer(data: ByteBuffer | bytes | bytearray | memoryview | None) -> ByteBuffer | None:
    if data is None or isinstance(data, ByteBuffer):
        return data
    return ByteBuffer(data)


def _body(reply: WireReply | None) -> bytes | None:
    return None if reply is None else reply.data


def _ack_steps(op: str, path: str, qp: QueryParams | None, options: RequestOptions | None, resp: OperationResponse) -> Steps[bool]:
    if qp is None:
        return False
    reply = yield WireRequest(op, path, qp, options=options)
    if not resp.is_successful:
        return False
    return bool(guarded_parse(parse_boolean, _body(reply), resp))


def _no_result_steps(
    op: str,
    path: str,
    qp: QueryParams | None,
    options: RequestOptions | None,
    resp: OperationResponse,
    body: ByteBuffer | None = None,
    headers: Mapping[str, str] | None = None,
) -> Steps[None]:
    if qp is None or not check_buffer(body, resp):
        return None
    yield WireRequest(op, path, qp, body=body, headers=headers, options=options)
    return None


# ------------------------- 目录与文件 -------------------------


def mkdirs(
    path: str,
    octal_permission: str | None = None,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> bool | Coroutine[Any, Any, bool]:
    """创建目录（含不存在的父目录）。返回服务端的 boolean 结果。"""
    steps = _ack_steps("MKDIRS", path, build_mkdirs_params(octal_permission, resp), options, resp)
    return _dispatch("MKDIRS", path, steps, transport, resp, async_, cancel_event)


def create(
    path: str,
    data: ByteBuffer | bytes | None = None,
    *,
    overwrite: bool = False,
    octal_permission: str | None = None,
    lease_id: str | None = None,
    session_id: str | None = None,
    create_parent: bool = True,
    flag: SyncFlag = SyncFlag.DATA,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """
    创建文件，可同时写入第一段数据。

    同一路径以不同 lease_id 并发调用时结果由服务端决定。
    """
    qp = build_create_params(overwrite, octal_permission, lease_id, session_id, create_parent, flag, resp)
    steps = _no_result_steps("CREATE", path, qp, options, resp, body=_as_buffer(data))
    return _dispatch("CREATE", path, steps, transport, resp, async_, cancel_event)


def append(
    path: str,
    data: ByteBuffer | bytes,
    file_offset: int,
    *,
    lease_id: str | None = None,
    session_id: str | None = None,
    flag: SyncFlag = SyncFlag.DATA,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """在文件的 file_offset 处追加数据；file_offset 必须非负。"""
    qp = build_append_params(lease_id, session_id, flag, file_offset, resp)
    steps = _no_result_steps("APPEND", path, qp, options, resp, body=_as_buffer(data))
    return _dispatch("APPEND", path, steps, transport, resp, async_, cancel_event)


def concurrent_append(
    path: str,
    data: ByteBuffer | bytes,
    auto_create: bool = False,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """
    追加数据，追加位置由服务端决定，多个写者无需协调即可追加同一文件。

    :param auto_create: 文件不存在时由服务端创建
    """
    qp = build_concurrent_append_params(auto_create)
    steps = _no_result_steps("CONCURRENTAPPEND", path, qp, options, resp, body=_as_buffer(data))
    return _dispatch("CONCURRENTAPPEND", path, steps, transport, resp, async_, cancel_event)


def _read_steps(
    path: str,
    buffer: ByteBuffer,
    file_offset: int,
    session_id: str | None,
    options: RequestOptions | None,
    resp: OperationResponse,
) -> Steps[int]:
    qp = build_open_params(session_id, file_offset, buffer.length, resp)
    if qp is None or not check_buffer(buffer, resp, "destination", writable=True):
        return 0
    reply = yield WireRequest("OPEN", path, qp, destination=buffer, options=options)
    if not resp.is_successful or reply is None:
        return 0
    return reply.count


def read(
    path: str,
    buffer: ByteBuffer | bytearray | memoryview,
    file_offset: int = 0,
    *,
    session_id: str | None = None,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> int | Coroutine[Any, Any, int]:
    """
    从文件 file_offset 处读取最多 buffer.length 字节到 buffer，返回实际读取的字节数。

    buffer 必须可写（bytearray 或可写 memoryview，或包装它们的 ByteBuffer）。
    """
    steps = _read_steps(path, _as_buffer(buffer), file_offset, session_id, options, resp)
    return _dispatch("OPEN", path, steps, transport, resp, async_, cancel_event)


def delete(
    path: str,
    recursive: bool = False,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> bool | Coroutine[Any, Any, bool]:
    steps = _ack_steps("DELETE", path, build_delete_params(recursive), options, resp)
    return _dispatch("DELETE", path, steps, transport, resp, async_, cancel_event)


def rename(
    path: str,
    destination: str,
    overwrite: bool = False,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> bool | Coroutine[Any, Any, bool]:
    steps = _ack_steps("RENAME", path, build_rename_params(destination, overwrite, resp), options, resp)
    return _dispatch("RENAME", path, steps, transport, resp, async_, cancel_event)


def _concat_steps(
    path: str,
    source_files: Sequence[str] | None,
    delete_source_directory: bool,
    options: RequestOptions | None,
    resp: OperationResponse,
) -> Steps[None]:
    built = build_concat_request(path, source_files, delete_source_directory, resp)
    if built is None:
        return None
    qp, body = built
    yield WireRequest("MSCONCAT", path, qp, body=ByteBuffer(body), headers=JSON_HEADERS, options=options)
    return None


def concat(
    path: str,
    source_files: Sequence[str],
    delete_source_directory: bool = False,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """将 source_files 依次合并到 path。源列表不合法时不发请求。"""
    steps = _concat_steps(path, source_files, delete_source_directory, options, resp)
    return _dispatch("MSCONCAT", path, steps, transport, resp, async_, cancel_event)


# ------------------------- 元数据 -------------------------


def _file_status_steps(path: str, qp: QueryParams, options: RequestOptions | None, resp: OperationResponse) -> Steps[DirectoryEntry | None]:
    reply = yield WireRequest("GETFILESTATUS", path, qp, options=options)
    if not resp.is_successful:
        return None
    entry = guarded_parse(parse_file_status, _body(reply), resp)
    if entry is None:
        return None
    return complete_file_status(path, entry)


def get_file_status(
    path: str,
    user_id_format: UserGroupRepresentation | None = None,
    *,
    get_consistent_length: bool = False,
    extra_params: Mapping[str, object] | None = None,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> DirectoryEntry | None | Coroutine[Any, Any, DirectoryEntry | None]:
    """
    获取单个条目的元数据。

    :param get_consistent_length: 要求服务端返回与已写入数据一致的长度
    """
    qp = build_file_status_params(user_id_format, get_consistent_length, extra_params)
    steps = _file_status_steps(path, qp, options, resp)
    return _dispatch("GETFILESTATUS", path, steps, transport, resp, async_, cancel_event)


def _list_status_steps(path: str, qp: QueryParams, options: RequestOptions | None, resp: OperationResponse) -> Steps[list[DirectoryEntry] | None]:
    reply = yield WireRequest("LISTSTATUS", path, qp, options=options)
    if not resp.is_successful:
        return None
    entries = guarded_parse(parse_list_status, _body(reply), resp)
    if entries is None:
        return None
    return complete_list_status(path, entries)


def list_status(
    path: str,
    list_after: str | None = None,
    list_before: str | None = None,
    list_size: int = 0,
    user_id_format: UserGroupRepresentation | None = None,
    selection: Selection = Selection.STANDARD,
    *,
    extra_params: Mapping[str, object] | None = None,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> list[DirectoryEntry] | None | Coroutine[Any, Any, list[DirectoryEntry] | None]:
    """
    列目录（单页）。

    :param list_after: 只返回名称排在其后的条目（翻页游标）
    :param list_before: 只返回名称排在其前的条目
    :param list_size: 每页条目数，<= 0 时由服务端决定
    :param selection: MINIMAL 时不发送 tooid，非 STANDARD 时发送 select
    """
    qp = build_list_status_params(list_after, list_before, list_size, user_id_format, selection, extra_params)
    steps = _list_status_steps(path, qp, options, resp)
    return _dispatch("LISTSTATUS", path, steps, transport, resp, async_, cancel_event)


def _trash_steps(qp: QueryParams, options: RequestOptions | None, resp: OperationResponse) -> Steps[TrashStatus | None]:
    reply = yield WireRequest("ENUMERATEDELETEDITEMS", "/", qp, options=options)
    if not resp.is_successful:
        return None
    return guarded_parse(parse_trash_status, _body(reply), resp)


def enumerate_deleted_items(
    hint: str,
    list_after: str | None = None,
    num_results: int = 4000,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> TrashStatus | None | Coroutine[Any, Any, TrashStatus | None]:
    """
    按 hint 搜索回收站。num_results 不在 (0, 4000] 内时按 4000 处理。

    :raises ValueError: hint 为空或只含空白（在发出请求前、调用时立即抛出）
    """
    qp = build_enumerate_deleted_items_params(hint, list_after, num_results)
    steps = _trash_steps(qp, options, resp)
    return _dispatch("ENUMERATEDELETEDITEMS", "/", steps, transport, resp, async_, cancel_event)


def restore_deleted_items(
    restore_token: str | None,
    restore_destination: str | None = None,
    type: str | None = None,
    restore_action: str | None = None,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """用 enumerate_deleted_items 返回的 restore token 恢复条目。"""
    qp = build_restore_deleted_items_params(restore_token, restore_destination, type, restore_action)
    steps = _no_result_steps("RESTOREDELETEDITEMS", "/", qp, options, resp)
    return _dispatch("RESTOREDELETEDITEMS", "/", steps, transport, resp, async_, cancel_event)


def set_expiry_time(
    path: str,
    option: ExpiryOption,
    expire_time: int = 0,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    steps = _no_result_steps("SETEXPIRY", path, build_expiry_params(option, expire_time), options, resp)
    return _dispatch("SETEXPIRY", path, steps, transport, resp, async_, cancel_event)


def check_access(
    path: str,
    rwx: str,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """检查当前用户是否有 rwx（如 "r-x"）权限；没有权限时 resp 为失败。"""
    steps = _no_result_steps("CHECKACCESS", path, build_check_access_params(rwx, resp), options, resp)
    return _dispatch("CHECKACCESS", path, steps, transport, resp, async_, cancel_event)


def set_permission(
    path: str,
    permission: str,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """permission 为八进制字符串，如 "741"，可带 sticky 位如 "1777"。"""
    steps = _no_result_steps("SETPERMISSION", path, build_set_permission_params(permission, resp), options, resp)
    return _dispatch("SETPERMISSION", path, steps, transport, resp, async_, cancel_event)


def set_owner(
    path: str,
    user: str | None = None,
    group: str | None = None,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    steps = _no_result_steps("SETOWNER", path, build_set_owner_params(user, group, resp), options, resp)
    return _dispatch("SETOWNER", path, steps, transport, resp, async_, cancel_event)


# ------------------------- ACL -------------------------


def _acl_mutation(
    op: str,
    path: str,
    acl_spec: AclSpec,
    remove_acl: bool,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None,
    async_: bool,
    cancel_event: asyncio.Event | None,
) -> Any:
    steps = _no_result_steps(op, path, build_acl_spec_params(acl_spec, remove_acl, resp), options, resp)
    return _dispatch(op, path, steps, transport, resp, async_, cancel_event)


def modify_acl_entries(
    path: str,
    acl_spec: AclSpec,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """与现有 ACL 合并。acl_spec 为逗号分隔字符串或 AclEntry 列表。"""
    return _acl_mutation("MODIFYACLENTRIES", path, acl_spec, False, transport, resp, options, async_, cancel_event)


def set_acl(
    path: str,
    acl_spec: AclSpec,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """替换全部 ACL。"""
    return _acl_mutation("SETACL", path, acl_spec, False, transport, resp, options, async_, cancel_event)


def remove_acl_entries(
    path: str,
    acl_spec: AclSpec,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    """删除指定条目；AclEntry 列表按不带权限的格式序列化。"""
    return _acl_mutation("REMOVEACLENTRIES", path, acl_spec, True, transport, resp, options, async_, cancel_event)


def remove_default_acl(
    path: str,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    steps = _no_result_steps("REMOVEDEFAULTACL", path, QueryParams(), options, resp)
    return _dispatch("REMOVEDEFAULTACL", path, steps, transport, resp, async_, cancel_event)


def remove_acl(
    path: str,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> None | Coroutine[Any, Any, None]:
    steps = _no_result_steps("REMOVEACL", path, QueryParams(), options, resp)
    return _dispatch("REMOVEACL", path, steps, transport, resp, async_, cancel_event)


def _streaming_steps(op: str, path: str, qp: QueryParams, parser: Any, options: RequestOptions | None, resp: OperationResponse) -> Steps[Any]:
    reply = yield WireRequest(op, path, qp, options=options)
    if not resp.is_successful:
        return None
    return guarded_parse(parser, _body(reply), resp)


def get_acl_status(
    path: str,
    user_id_format: UserGroupRepresentation | None = None,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> AclStatus | None | Coroutine[Any, Any, AclStatus | None]:
    steps = _streaming_steps("GETACLSTATUS", path, build_user_id_params(user_id_format), parse_acl_status, options, resp)
    return _dispatch("GETACLSTATUS", path, steps, transport, resp, async_, cancel_event)


def get_content_summary(
    path: str,
    *,
    transport: Transport,
    resp: OperationResponse,
    options: RequestOptions | None = None,
    async_: Literal[False, True] = False,
    cancel_event: asyncio.Event | None = None,
) -> ContentSummary | None | Coroutine[Any, Any, ContentSummary | None]:
    steps = _streaming_steps("GETCONTENTSUMMARY", path, QueryParams(), parse_content_summary, options, resp)
    return _dispatch("GETCONTENTSUMMARY", path, steps, transport, resp, async_, cancel_event)
