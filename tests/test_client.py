"""
DLSClient 单元测试：失败转为 DLSOperationError、exists / check_access / 分页 / 分块读取。
"""

from __future__ import annotations

import asyncio

import pytest

from dlsapi import DLSClient, DLSOperationError, ErrorKind, HttpTransport
from dlsapi.models import SyncFlag

from tests.config import (
    BOOLEAN_TRUE,
    CONTENT_SUMMARY,
    DLS_BASE_URL,
    DLS_DIR,
    DLS_FILE,
    FILE_STATUS,
    LIST_STATUS,
    UNPARSABLE,
)


def _page(*names: str) -> bytes:
    items = ",".join(f'{{"pathSuffix": "{n}", "type": "FILE"}}' for n in names)
    return f'{{"FileStatuses": {{"FileStatus": [{items}]}}}}'.encode()


def test_default_transport_is_http() -> None:
    client = DLSClient(f"{DLS_BASE_URL}/", token="t")
    assert client.base_url == DLS_BASE_URL
    assert isinstance(client.transport, HttpTransport)
    client.close()


def test_success_returns_result(make_client) -> None:
    client, transport = make_client(BOOLEAN_TRUE)
    assert client.mkdirs(DLS_DIR) is True
    assert transport.requests[0].op == "MKDIRS"


def test_failure_raises_operation_error(make_client) -> None:
    client, _ = make_client((500, "RuntimeException", "boom"))
    with pytest.raises(DLSOperationError) as excinfo:
        client.get_content_summary(DLS_DIR)
    assert excinfo.value.kind is ErrorKind.REMOTE
    assert str(excinfo.value) == "GETCONTENTSUMMARY: boom"
    assert excinfo.value.response.http_status == 500


def test_invalid_argument_raises_operation_error(make_client) -> None:
    client, transport = make_client(b"")
    with pytest.raises(DLSOperationError) as excinfo:
        client.set_permission(DLS_FILE, "abc")
    assert excinfo.value.kind is ErrorKind.INVALID_ARGUMENT
    assert transport.requests == []


def test_parse_failure_raises_operation_error(make_client) -> None:
    client, _ = make_client(UNPARSABLE)
    with pytest.raises(DLSOperationError) as excinfo:
        client.list_status(DLS_DIR)
    assert excinfo.value.kind is ErrorKind.PARSE


def test_blank_hint_raises_value_error(make_client) -> None:
    client, transport = make_client(b"")
    with pytest.raises(ValueError):
        client.enumerate_deleted_items(" ")
    assert transport.requests == []


def test_exists(make_client) -> None:
    client, _ = make_client(FILE_STATUS)
    assert client.exists(DLS_FILE) is True
    client, _ = make_client((404, "FileNotFoundException", "missing"))
    assert client.exists(DLS_FILE) is False
    client, _ = make_client((403, "AccessControlException", "denied"))
    with pytest.raises(DLSOperationError):
        client.exists(DLS_FILE)


def test_check_access(make_client) -> None:
    client, transport = make_client(b"")
    assert client.check_access(DLS_FILE, "r-x") is True
    assert transport.requests[0].params == {"fsaction": "r-x"}
    client, _ = make_client((403, "AccessControlException", "denied"))
    assert client.check_access(DLS_FILE, "rwx") is False
    assert asyncio.run(client.check_access_async(DLS_FILE, "rwx")) is False


def test_iter_directory_pages(make_client) -> None:
    """每页满时以最后一个名称继续；不足一页时结束。"""
    client, transport = make_client(_page("a", "b"), _page("c", "d"), _page("e"))
    names = [entry.name for entry in client.iter_directory(DLS_DIR, page_size=2)]
    assert names == ["a", "b", "c", "d", "e"]
    assert [r.params.get("listAfter") for r in transport.requests] == [None, "b", "d"]
    assert all(r.params["listSize"] == "2" for r in transport.requests)


def test_iter_directory_full_names(make_client) -> None:
    client, _ = make_client(LIST_STATUS)
    entries = list(client.iter_directory(DLS_DIR))
    assert [e.full_name for e in entries] == ["/data/a.csv", "/data/b.csv", "/data/logs"]


def test_read_all_reads_until_short_chunk(make_client) -> None:
    client, transport = make_client(b"abcd", b"efgh", b"ij")
    assert client.read_all(DLS_FILE, chunk_size=4) == b"abcdefghij"
    assert [r.params["offset"] for r in transport.requests] == ["0", "4", "8"]


def test_write_file_closes(make_client) -> None:
    client, transport = make_client(b"")
    client.write_file(DLS_FILE, b"payload", overwrite=True, octal_permission="640")
    request = transport.requests[0]
    assert request.op == "CREATE"
    assert request.params["syncFlag"] == SyncFlag.CLOSE.value
    assert request.params["overwrite"] == "True"
    assert request.params["permission"] == "640"
    assert request.body.tobytes() == b"payload"


def test_async_methods(make_client) -> None:
    client, transport = make_client(CONTENT_SUMMARY)

    async def main():
        async with client:
            return await client.get_content_summary_async(DLS_DIR)

    summary = asyncio.run(main())
    assert summary.file_count == 7
    assert transport.requests[0].op == "GETCONTENTSUMMARY"


def test_async_failure_raises(make_client) -> None:
    client, _ = make_client((404, "FileNotFoundException", "missing"))
    with pytest.raises(DLSOperationError):
        asyncio.run(client.get_file_status_async(DLS_FILE))


def test_context_manager_closes_transport() -> None:
    closed = []

    class _Transport:
        def close(self) -> None:
            closed.append(True)

    with DLSClient(DLS_BASE_URL, transport=_Transport()):
        pass
    assert closed == [True]
