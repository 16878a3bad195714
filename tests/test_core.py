"""
操作调度（core）单元测试：阻塞/异步请求一致、校验失败不发请求、解析失败写入结果、取消。

异步路径在普通测试函数里用 asyncio.run 驱动。
"""

from __future__ import annotations

import asyncio
import json

import pytest

from dlsapi import core
from dlsapi.acl import AclAction, AclEntry, AclType
from dlsapi.models import ExpiryOption, Selection, SyncFlag
from dlsapi.params import ByteBuffer
from dlsapi.result import ErrorKind, OperationResponse
from dlsapi.transport import WireReply

from tests.conftest import FakeTransport
from tests.config import (
    ACL_STATUS,
    BOOLEAN_TRUE,
    CONTENT_SUMMARY,
    DLS_DIR,
    DLS_FILE,
    FILE_STATUS,
    LIST_STATUS,
    REMOTE_NOT_FOUND,
    TRASH_STATUS,
    UNPARSABLE,
)


def _run_both(func, args: tuple, kwargs: dict, reply: bytes):
    """同一操作分别以阻塞与异步方式执行，返回 (阻塞请求, 阻塞结果, 异步请求, 异步结果)。"""
    sync_transport = FakeTransport(reply)
    sync_resp = OperationResponse()
    sync_result = func(*args, transport=sync_transport, resp=sync_resp, **kwargs)

    async_transport = FakeTransport(reply)
    async_resp = OperationResponse()
    async_result = asyncio.run(func(*args, transport=async_transport, resp=async_resp, async_=True, **kwargs))

    assert sync_resp == async_resp
    return sync_transport.requests, sync_result, async_transport.requests, async_result


# ------------------------- 阻塞 / 异步一致 -------------------------


@pytest.mark.parametrize(
    ("func", "args", "kwargs", "reply"),
    [
        (core.mkdirs, (DLS_DIR, "750"), {}, BOOLEAN_TRUE),
        (core.create, (DLS_FILE, b"hello"), {"overwrite": True, "flag": SyncFlag.CLOSE}, b""),
        (core.append, (DLS_FILE, b"more", 5), {"lease_id": "l1"}, b""),
        (core.concurrent_append, (DLS_FILE, b"x", True), {}, b""),
        (core.delete, (DLS_DIR, True), {}, BOOLEAN_TRUE),
        (core.rename, (DLS_FILE, "/data/b.csv", True), {}, BOOLEAN_TRUE),
        (core.concat, (DLS_FILE, ["/data/x", "/data/y"], True), {}, b""),
        (core.get_file_status, (DLS_FILE,), {"get_consistent_length": True}, FILE_STATUS),
        (core.list_status, (DLS_DIR, "a", None, 100), {"selection": Selection.EXTENDED}, LIST_STATUS),
        (core.enumerate_deleted_items, ("old",), {}, TRASH_STATUS),
        (core.restore_deleted_items, ("trash/1", "/data/restored"), {}, b""),
        (core.set_expiry_time, (DLS_FILE, ExpiryOption.ABSOLUTE, 1800000000000), {}, b""),
        (core.check_access, (DLS_FILE, "r-x"), {}, b""),
        (core.set_permission, (DLS_FILE, "1777"), {}, b""),
        (core.set_owner, (DLS_FILE, "alice", "staff"), {}, b""),
        (core.modify_acl_entries, (DLS_FILE, "user:bob:r-x"), {}, b""),
        (core.set_acl, (DLS_FILE, "user::rwx,group::r-x,other::---"), {}, b""),
        (core.remove_acl_entries, (DLS_FILE, [AclEntry(AclType.USER, "bob")]), {}, b""),
        (core.remove_default_acl, (DLS_DIR,), {}, b""),
        (core.remove_acl, (DLS_DIR,), {}, b""),
        (core.get_acl_status, (DLS_FILE,), {}, ACL_STATUS),
        (core.get_content_summary, (DLS_DIR,), {}, CONTENT_SUMMARY),
    ],
)
def test_sync_and_async_send_identical_requests(func, args, kwargs, reply) -> None:
    sync_requests, sync_result, async_requests, async_result = _run_both(func, args, kwargs, reply)
    assert len(sync_requests) == 1
    assert sync_requests == async_requests
    assert sync_result == async_result


def test_read_sync_and_async_identical() -> None:
    payload = b"0123456789"
    sync_buf = bytearray(4)
    sync_transport = FakeTransport(payload)
    sync_count = core.read(DLS_FILE, sync_buf, 3, transport=sync_transport, resp=OperationResponse())

    async_buf = bytearray(4)
    async_transport = FakeTransport(payload)
    async_count = asyncio.run(
        core.read(DLS_FILE, async_buf, 3, transport=async_transport, resp=OperationResponse(), async_=True)
    )

    assert sync_count == async_count == 4
    assert sync_buf == async_buf == bytearray(b"0123")
    assert [r.params for r in sync_transport.requests] == [r.params for r in async_transport.requests]
    assert sync_transport.requests[0].params == {"read": "true", "offset": "3", "length": "4"}


# ------------------------- 返回值与请求内容 -------------------------


def test_mkdirs_returns_boolean(resp: OperationResponse) -> None:
    transport = FakeTransport(b'{"boolean": false}')
    assert core.mkdirs(DLS_DIR, transport=transport, resp=resp) is False
    assert resp.is_successful
    assert resp.op == "MKDIRS"


def test_create_sends_body(resp: OperationResponse) -> None:
    transport = FakeTransport(b"")
    core.create(DLS_FILE, ByteBuffer(b"xxhelloxx", 2, 5), transport=transport, resp=resp)
    request = transport.requests[0]
    assert request.op == "CREATE"
    assert request.body.tobytes() == b"hello"
    assert request.params["syncFlag"] == "DATA"
    assert request.params["CreateParent"] == "True"


def test_concat_sends_json(resp: OperationResponse) -> None:
    transport = FakeTransport(b"")
    core.concat(DLS_FILE, ["/data/x", "/data/y"], transport=transport, resp=resp)
    request = transport.requests[0]
    assert request.op == "MSCONCAT"
    assert request.headers == {"Content-Type": "application/json"}
    assert json.loads(request.body.tobytes()) == {"sources": ["/data/x", "/data/y"]}


def test_concurrent_append_twice_without_offset(resp: OperationResponse) -> None:
    """两个写者各追加一次，请求中都不带 offset。"""
    transport = FakeTransport(b"")
    core.concurrent_append(DLS_FILE, b"first", True, transport=transport, resp=resp)
    core.concurrent_append(DLS_FILE, b"second", True, transport=transport, resp=OperationResponse())
    assert len(transport.requests) == 2
    for request in transport.requests:
        assert request.op == "CONCURRENTAPPEND"
        assert "offset" not in request.params
        assert request.params == {"appendMode": "autocreate"}
    assert [r.body.tobytes() for r in transport.requests] == [b"first", b"second"]


def test_get_file_status_completes_path(resp: OperationResponse) -> None:
    entry = core.get_file_status(DLS_FILE, transport=FakeTransport(FILE_STATUS), resp=resp)
    assert entry.name == ""
    assert entry.full_name == DLS_FILE
    assert entry.length == 42


def test_list_status_completes_paths(resp: OperationResponse) -> None:
    entries = core.list_status(DLS_DIR, transport=FakeTransport(LIST_STATUS), resp=resp)
    assert [e.full_name for e in entries] == ["/data/a.csv", "/data/b.csv", "/data/logs"]


def test_enumerate_deleted_items_clamps_size(resp: OperationResponse) -> None:
    transport = FakeTransport(TRASH_STATUS)
    status = core.enumerate_deleted_items("old", None, 0, transport=transport, resp=resp)
    assert status.num_found == 2
    assert transport.requests[0].params["listSize"] == "4000"
    assert transport.requests[0].path == "/"


def test_remove_acl_entries_serializes_without_permissions(resp: OperationResponse) -> None:
    transport = FakeTransport(b"")
    entries = [AclEntry(AclType.USER, "bob", AclAction.from_rwx("rwx")), AclEntry(AclType.MASK)]
    core.remove_acl_entries(DLS_FILE, entries, transport=transport, resp=resp)
    assert transport.requests[0].params == {"aclspec": "user:bob,mask:"}


# ------------------------- 校验失败不发请求 -------------------------


@pytest.mark.parametrize(
    ("func", "args", "message"),
    [
        (core.mkdirs, (DLS_DIR, "8"), "Octal Permission not valid"),
        (core.append, (DLS_FILE, b"x", -1), "Offset of file is negative"),
        (core.read, (DLS_FILE, bytearray(4), -1), "Offset of file is negative"),
        (core.read, (DLS_FILE, b"read-only"), "The destination buffer is read-only"),
        (core.rename, (DLS_FILE, ""), "Destination path is null"),
        (core.concat, (DLS_FILE, []), "No source files to concatenate"),
        (core.concat, (DLS_FILE, ["/data/x", DLS_FILE]), "One of the Files to concatenate has same path"),
        (core.concat, (DLS_FILE, ["/data/x", "/data/x"]), "One of the Files to concatenate is same as another file"),
        (core.check_access, (DLS_FILE, "rwz"), "RWX is not valid"),
        (core.check_access, (DLS_FILE, "r-x\n"), "RWX is not valid"),
        (core.set_permission, (DLS_FILE, "755\n"), "Octal Permission not valid"),
        (core.mkdirs, (DLS_DIR, "750\n"), "Octal Permission not valid"),
        (core.set_permission, (DLS_FILE, ""), "permission is empty"),
        (core.set_owner, (DLS_FILE, None, " "), "User and group is empty"),
        (core.set_acl, (DLS_FILE, ""), "Acl Specification is empty"),
        (core.modify_acl_entries, (DLS_FILE, []), "Acl Specification List is empty"),
        (core.create, (DLS_FILE, ByteBuffer(b"abc", 1, 5)), "Offset and length exceed the size of data buffer"),
    ],
)
def test_invalid_arguments_make_no_request(func, args, message) -> None:
    for async_ in (False, True):
        transport = FakeTransport(BOOLEAN_TRUE)
        resp = OperationResponse()
        result = func(*args, transport=transport, resp=resp, async_=async_)
        if async_:
            result = asyncio.run(result)
        assert not resp.is_successful
        assert resp.kind is ErrorKind.INVALID_ARGUMENT
        assert resp.error == message
        assert result in (None, False, 0)
        assert transport.requests == []


@pytest.mark.parametrize("hint", ["", "   ", None])
def test_enumerate_blank_hint_raises_before_request(hint) -> None:
    transport = FakeTransport(TRASH_STATUS)
    with pytest.raises(ValueError):
        core.enumerate_deleted_items(hint, transport=transport, resp=OperationResponse())
    # 异步调用在创建 coroutine 之前就抛出
    with pytest.raises(ValueError):
        core.enumerate_deleted_items(hint, transport=transport, resp=OperationResponse(), async_=True)
    assert transport.requests == []


# ------------------------- 失败写入结果 -------------------------


@pytest.mark.parametrize(
    ("func", "args"),
    [
        (core.mkdirs, (DLS_DIR,)),
        (core.delete, (DLS_DIR,)),
        (core.rename, (DLS_FILE, "/data/b.csv")),
        (core.get_file_status, (DLS_FILE,)),
        (core.list_status, (DLS_DIR,)),
        (core.enumerate_deleted_items, ("old",)),
        (core.get_acl_status, (DLS_FILE,)),
        (core.get_content_summary, (DLS_DIR,)),
    ],
)
def test_unparsable_payload_is_parse_failure(func, args) -> None:
    resp = OperationResponse()
    result = func(*args, transport=FakeTransport(UNPARSABLE), resp=resp)
    assert result in (None, False)
    assert not resp.is_successful
    assert resp.kind is ErrorKind.PARSE
    assert "Unexpected problem with parsing JSON output" in resp.error


def test_missing_body_is_empty_response(resp: OperationResponse) -> None:
    result = core.get_content_summary(DLS_DIR, transport=FakeTransport(None), resp=resp)
    assert result is None
    assert resp.kind is ErrorKind.EMPTY_RESPONSE


def test_remote_failure_skips_parsing(resp: OperationResponse) -> None:
    transport = FakeTransport((404, "FileNotFoundException", "File/Folder does not exist"))
    assert core.get_file_status("/data/missing", transport=transport, resp=resp) is None
    assert resp.kind is ErrorKind.REMOTE
    assert resp.http_status == 404
    assert resp.remote_exception == "FileNotFoundException"
    assert resp.op == "GETFILESTATUS"


def test_remote_failure_on_read_returns_zero(resp: OperationResponse) -> None:
    transport = FakeTransport((404, "FileNotFoundException", "missing"))
    assert core.read(DLS_FILE, bytearray(8), transport=transport, resp=resp) == 0
    assert not resp.is_successful


def test_remote_payload_constant_is_remote_exception_json() -> None:
    assert json.loads(REMOTE_NOT_FOUND)["RemoteException"]["exception"] == "FileNotFoundException"


# ------------------------- 取消 -------------------------


class _SlowTransport(FakeTransport):
    def __init__(self, *replies):
        super().__init__(*replies)
        self.started = asyncio.Event()
        self.finished = False

    async def acall(self, request, resp):
        self.requests.append(request)
        self.started.set()
        await asyncio.sleep(10)
        self.finished = True
        return WireReply(BOOLEAN_TRUE, len(BOOLEAN_TRUE))


def test_cancel_in_flight_request() -> None:
    async def main() -> tuple[_SlowTransport, OperationResponse]:
        transport = _SlowTransport()
        resp = OperationResponse()
        cancel_event = asyncio.Event()
        pending = core.mkdirs(DLS_DIR, transport=transport, resp=resp, async_=True, cancel_event=cancel_event)
        task = asyncio.ensure_future(pending)
        await transport.started.wait()
        cancel_event.set()
        with pytest.raises(asyncio.CancelledError):
            await task
        return transport, resp

    transport, resp = asyncio.run(main())
    assert len(transport.requests) == 1
    assert not transport.finished
    # 取消后结果记录保持未写入状态
    assert resp.is_successful
    assert resp.error == ""


def test_cancel_before_start_sends_nothing() -> None:
    async def main() -> FakeTransport:
        transport = FakeTransport(BOOLEAN_TRUE)
        cancel_event = asyncio.Event()
        cancel_event.set()
        with pytest.raises(asyncio.CancelledError):
            await core.mkdirs(DLS_DIR, transport=transport, resp=OperationResponse(), async_=True, cancel_event=cancel_event)
        return transport

    assert asyncio.run(main()).requests == []


def test_cancel_event_not_set_completes() -> None:
    async def main() -> bool:
        return await core.mkdirs(
            DLS_DIR,
            transport=FakeTransport(BOOLEAN_TRUE),
            resp=OperationResponse(),
            async_=True,
            cancel_event=asyncio.Event(),
        )

    assert asyncio.run(main()) is True
