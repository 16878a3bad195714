"""
数据湖文件存储的 Python 客户端。

对 dlsapi.core 的一层封装：每次调用创建新的 OperationResponse，失败时抛出 DLSOperationError，
成功时直接返回结果。每个操作都有阻塞版本和 *_async 版本，两者发出的请求相同。
需要自己检查 OperationResponse 而不想处理异常时，直接使用 dlsapi.core。
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterator, Sequence

from dlsapi import core
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
from dlsapi.params import AclSpec, ByteBuffer
from dlsapi.result import DLSOperationError, ErrorKind, OperationResponse
from dlsapi.transport import HttpTransport, RequestOptions, TokenSource, Transport

READ_CHUNK_SIZE = 4 * 1024 * 1024  # 4 MiB，read_all 每次读取的块大小
LIST_PAGE_SIZE = 4000


class DLSClient:
    """
    数据湖文件存储客户端。

    示例： DLSClient("https://account.example.net", token="...")
    """

    def __init__(
        self,
        base_url: str,
        token: TokenSource = None,
        *,
        timeout: float = 30.0,
        verify: bool = True,
        transport: Transport | None = None,
        options: RequestOptions | None = None,
    ):
        """
        :param base_url: 服务地址
        :param token: bearer token 或返回 token 的可调用对象
        :param timeout: 请求超时秒数
        :param verify: 是否验证 HTTPS 证书
        :param transport: 自定义传输层（测试或自定义重试策略时使用），提供时忽略 token/timeout/verify
        :param options: 每次请求附带的 RequestOptions
        """
        self.base_url = base_url.rstrip("/")
        self.transport: Transport = transport or HttpTransport(self.base_url, token, timeout=timeout, verify=verify)
        self.options = options

    def close(self) -> None:
        """关闭底层 HTTP 客户端。"""
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    async def aclose(self) -> None:
        aclose = getattr(self.transport, "aclose", None)
        if aclose is not None:
            await aclose()
        else:
            self.close()

    def __enter__(self) -> DLSClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    async def __aenter__(self) -> DLSClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # ------------------------- 调用 core -------------------------

    @staticmethod
    def _check(resp: OperationResponse, result: Any) -> Any:
        if not resp.is_successful:
            raise DLSOperationError(resp)
        return result

    def _invoke(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        resp = OperationResponse()
        result = func(*args, transport=self.transport, resp=resp, options=self.options, **kwargs)
        return self._check(resp, result)

    async def _ainvoke(
        self,
        func: Callable[..., Any],
        *args: Any,
        cancel_event: asyncio.Event | None = None,
        **kwargs: Any,
    ) -> Any:
        resp = OperationResponse()
        result = await func(
            *args,
            transport=self.transport,
            resp=resp,
            options=self.options,
            async_=True,
            cancel_event=cancel_event,
            **kwargs,
        )
        return self._check(resp, result)

    # ------------------------- 目录与文件 -------------------------

    def mkdirs(self, path: str, octal_permission: str | None = None) -> bool:
        return self._invoke(core.mkdirs, path, octal_permission)

    async def mkdirs_async(self, path: str, octal_permission: str | None = None, *, cancel_event: asyncio.Event | None = None) -> bool:
        return await self._ainvoke(core.mkdirs, path, octal_permission, cancel_event=cancel_event)

    def create(self, path: str, data: ByteBuffer | bytes | None = None, **kwargs: Any) -> None:
        """
        创建文件。kwargs: overwrite, octal_permission, lease_id, session_id, create_parent, flag
        """
        self._invoke(core.create, path, data, **kwargs)

    async def create_async(self, path: str, data: ByteBuffer | bytes | None = None, *, cancel_event: asyncio.Event | None = None, **kwargs: Any) -> None:
        await self._ainvoke(core.create, path, data, cancel_event=cancel_event, **kwargs)

    def append(self, path: str, data: ByteBuffer | bytes, file_offset: int, **kwargs: Any) -> None:
        """kwargs: lease_id, session_id, flag"""
        self._invoke(core.append, path, data, file_offset, **kwargs)

    async def append_async(self, path: str, data: ByteBuffer | bytes, file_offset: int, *, cancel_event: asyncio.Event | None = None, **kwargs: Any) -> None:
        await self._ainvoke(core.append, path, data, file_offset, cancel_event=cancel_event, **kwargs)

    def concurrent_append(self, path: str, data: ByteBuffer | bytes, auto_create: bool = False) -> None:
        self._invoke(core.concurrent_append, path, data, auto_create)

    async def concurrent_append_async(self, path: str, data: ByteBuffer | bytes, auto_create: bool = False, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.concurrent_append, path, data, auto_create, cancel_event=cancel_event)

    def read(self, path: str, buffer: ByteBuffer | bytearray | memoryview, file_offset: int = 0, session_id: str | None = None) -> int:
        return self._invoke(core.read, path, buffer, file_offset, session_id=session_id)

    async def read_async(
        self,
        path: str,
        buffer: ByteBuffer | bytearray | memoryview,
        file_offset: int = 0,
        session_id: str | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        return await self._ainvoke(core.read, path, buffer, file_offset, session_id=session_id, cancel_event=cancel_event)

    def read_all(self, path: str, chunk_size: int = READ_CHUNK_SIZE) -> bytes:
        """按块读取整个文件（读到不足一块为止）。"""
        chunks: list[bytes] = []
        buffer = bytearray(chunk_size)
        offset = 0
        while True:
            count = self.read(path, buffer, offset)
            chunks.append(bytes(buffer[:count]))
            offset += count
            if count < chunk_size:
                return b"".join(chunks)

    def write_file(self, path: str, data: bytes, *, overwrite: bool = False, octal_permission: str | None = None) -> None:
        """一次调用创建文件并写入全部数据（CLOSE）。大文件应由上层分块 append。"""
        self.create(path, data, overwrite=overwrite, octal_permission=octal_permission, flag=SyncFlag.CLOSE)

    def delete(self, path: str, recursive: bool = False) -> bool:
        return self._invoke(core.delete, path, recursive)

    async def delete_async(self, path: str, recursive: bool = False, *, cancel_event: asyncio.Event | None = None) -> bool:
        return await self._ainvoke(core.delete, path, recursive, cancel_event=cancel_event)

    def rename(self, path: str, destination: str, overwrite: bool = False) -> bool:
        return self._invoke(core.rename, path, destination, overwrite)

    async def rename_async(self, path: str, destination: str, overwrite: bool = False, *, cancel_event: asyncio.Event | None = None) -> bool:
        return await self._ainvoke(core.rename, path, destination, overwrite, cancel_event=cancel_event)

    def concat(self, path: str, source_files: Sequence[str], delete_source_directory: bool = False) -> None:
        self._invoke(core.concat, path, source_files, delete_source_directory)

    async def concat_async(self, path: str, source_files: Sequence[str], delete_source_directory: bool = False, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.concat, path, source_files, delete_source_directory, cancel_event=cancel_event)

    # ------------------------- 元数据 -------------------------

    def get_file_status(self, path: str, user_id_format: UserGroupRepresentation | None = None, *, get_consistent_length: bool = False) -> DirectoryEntry:
        return self._invoke(core.get_file_status, path, user_id_format, get_consistent_length=get_consistent_length)

    async def get_file_status_async(
        self,
        path: str,
        user_id_format: UserGroupRepresentation | None = None,
        *,
        get_consistent_length: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> DirectoryEntry:
        return await self._ainvoke(
            core.get_file_status, path, user_id_format,
            get_consistent_length=get_consistent_length, cancel_event=cancel_event,
        )

    def exists(self, path: str) -> bool:
        """路径是否存在；服务端返回 404 / FileNotFoundException 时为 False，其它失败照常抛出。"""
        try:
            self.get_file_status(path)
        except DLSOperationError as e:
            resp = e.response
            if resp.kind is ErrorKind.REMOTE and (resp.http_status == 404 or resp.remote_exception == "FileNotFoundException"):
                return False
            raise
        return True

    def list_status(
        self,
        path: str,
        list_after: str | None = None,
        list_before: str | None = None,
        list_size: int = 0,
        user_id_format: UserGroupRepresentation | None = None,
        selection: Selection = Selection.STANDARD,
    ) -> list[DirectoryEntry]:
        return self._invoke(core.list_status, path, list_after, list_before, list_size, user_id_format, selection)

    async def list_status_async(
        self,
        path: str,
        list_after: str | None = None,
        list_before: str | None = None,
        list_size: int = 0,
        user_id_format: UserGroupRepresentation | None = None,
        selection: Selection = Selection.STANDARD,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[DirectoryEntry]:
        return await self._ainvoke(
            core.list_status, path, list_after, list_before, list_size, user_id_format, selection,
            cancel_event=cancel_event,
        )

    def iter_directory(self, path: str, page_size: int = LIST_PAGE_SIZE, **kwargs: Any) -> Iterator[DirectoryEntry]:
        """逐页列出目录全部条目，以上一页最后一个名称作为 list_after。"""
        list_after = None
        while True:
            page = self.list_status(path, list_after, None, page_size, **kwargs)
            yield from page
            if len(page) < page_size or not page:
                return
            list_after = page[-1].name

    def get_content_summary(self, path: str) -> ContentSummary:
        return self._invoke(core.get_content_summary, path)

    async def get_content_summary_async(self, path: str, *, cancel_event: asyncio.Event | None = None) -> ContentSummary:
        return await self._ainvoke(core.get_content_summary, path, cancel_event=cancel_event)

    def set_expiry_time(self, path: str, option: ExpiryOption, expire_time: int = 0) -> None:
        self._invoke(core.set_expiry_time, path, option, expire_time)

    async def set_expiry_time_async(self, path: str, option: ExpiryOption, expire_time: int = 0, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.set_expiry_time, path, option, expire_time, cancel_event=cancel_event)

    # ------------------------- 回收站 -------------------------

    def enumerate_deleted_items(self, hint: str, list_after: str | None = None, num_results: int = 4000) -> TrashStatus:
        return self._invoke(core.enumerate_deleted_items, hint, list_after, num_results)

    async def enumerate_deleted_items_async(
        self,
        hint: str,
        list_after: str | None = None,
        num_results: int = 4000,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> TrashStatus:
        return await self._ainvoke(core.enumerate_deleted_items, hint, list_after, num_results, cancel_event=cancel_event)

    def restore_deleted_items(
        self,
        restore_token: str,
        restore_destination: str | None = None,
        type: str | None = None,
        restore_action: str | None = None,
    ) -> None:
        self._invoke(core.restore_deleted_items, restore_token, restore_destination, type, restore_action)

    async def restore_deleted_items_async(
        self,
        restore_token: str,
        restore_destination: str | None = None,
        type: str | None = None,
        restore_action: str | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        await self._ainvoke(
            core.restore_deleted_items, restore_token, restore_destination, type, restore_action,
            cancel_event=cancel_event,
        )

    # ------------------------- 权限与 ACL -------------------------

    def check_access(self, path: str, rwx: str) -> bool:
        """有权限返回 True；服务端拒绝（403）时返回 False，其它失败照常抛出。"""
        try:
            self._invoke(core.check_access, path, rwx)
        except DLSOperationError as e:
            if e.response.kind is ErrorKind.REMOTE and e.response.http_status == 403:
                return False
            raise
        return True

    async def check_access_async(self, path: str, rwx: str, *, cancel_event: asyncio.Event | None = None) -> bool:
        try:
            await self._ainvoke(core.check_access, path, rwx, cancel_event=cancel_event)
        except DLSOperationError as e:
            if e.response.kind is ErrorKind.REMOTE and e.response.http_status == 403:
                return False
            raise
        return True

    def set_permission(self, path: str, permission: str) -> None:
        self._invoke(core.set_permission, path, permission)

    async def set_permission_async(self, path: str, permission: str, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.set_permission, path, permission, cancel_event=cancel_event)

    def set_owner(self, path: str, user: str | None = None, group: str | None = None) -> None:
        self._invoke(core.set_owner, path, user, group)

    async def set_owner_async(self, path: str, user: str | None = None, group: str | None = None, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.set_owner, path, user, group, cancel_event=cancel_event)

    def modify_acl_entries(self, path: str, acl_spec: AclSpec) -> None:
        self._invoke(core.modify_acl_entries, path, acl_spec)

    async def modify_acl_entries_async(self, path: str, acl_spec: AclSpec, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.modify_acl_entries, path, acl_spec, cancel_event=cancel_event)

    def set_acl(self, path: str, acl_spec: AclSpec) -> None:
        self._invoke(core.set_acl, path, acl_spec)

    async def set_acl_async(self, path: str, acl_spec: AclSpec, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.set_acl, path, acl_spec, cancel_event=cancel_event)

    def remove_acl_entries(self, path: str, acl_spec: AclSpec) -> None:
        self._invoke(core.remove_acl_entries, path, acl_spec)

    async def remove_acl_entries_async(self, path: str, acl_spec: AclSpec, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.remove_acl_entries, path, acl_spec, cancel_event=cancel_event)

    def remove_default_acl(self, path: str) -> None:
        self._invoke(core.remove_default_acl, path)

    async def remove_default_acl_async(self, path: str, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.remove_default_acl, path, cancel_event=cancel_event)

    def remove_acl(self, path: str) -> None:
        self._invoke(core.remove_acl, path)

    async def remove_acl_async(self, path: str, *, cancel_event: asyncio.Event | None = None) -> None:
        await self._ainvoke(core.remove_acl, path, cancel_event=cancel_event)

    def get_acl_status(self, path: str, user_id_format: UserGroupRepresentation | None = None) -> AclStatus:
        return self._invoke(core.get_acl_status, path, user_id_format)

    async def get_acl_status_async(
        self,
        path: str,
        user_id_format: UserGroupRepresentation | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AclStatus:
        return await self._ainvoke(core.get_acl_status, path, user_id_format, cancel_event=cancel_event)
