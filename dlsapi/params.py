"""
请求参数构建：校验各操作的输入并生成 query 参数，不做任何网络请求。

校验失败时写入 OperationResponse（kind=INVALID_ARGUMENT）并返回 None，调用方据此直接结束，
不会发出请求。阻塞与异步两种调用方式共用这里的全部逻辑。
"""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence, Union

from dlsapi.acl import AclEntry, serialize_acl
from dlsapi.models import ExpiryOption, Selection, SyncFlag, UserGroupRepresentation
from dlsapi.result import ErrorKind, OperationResponse

# 可选 sticky 位（0/1）+ 1~3 位 rwx 八进制
_OCTAL_RE = re.compile(r"[01]?[0-7]?[0-7]?[0-7]")
_RWX_RE = re.compile(r"[r-][w-][x-]")

TRASH_API_VERSION = "2018-08-01"
MAX_TRASH_LIST_SIZE = 4000

AclSpec = Union[str, Sequence[AclEntry]]


def is_valid_octal(octal_permission: str) -> bool:
    return _OCTAL_RE.fullmatch(octal_permission) is not None


def is_valid_rwx(rwx: str) -> bool:
    return _RWX_RE.fullmatch(rwx) is not None


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _to_query_value(value: object) -> str:
    # bool 写成 True/False，枚举写成符号名
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


class QueryParams(dict[str, str]):
    """有序的 query 参数集合，值统一为字符串。"""

    def add(self, name: str, value: object) -> QueryParams:
        self[name] = _to_query_value(value)
        return self

    def update_extra(self, extra: Mapping[str, object] | None) -> QueryParams:
        if extra:
            for name, value in extra.items():
                self.add(name, value)
        return self


@dataclass(frozen=True)
class ByteBuffer:
    """
    缓冲区的一段视图（data[offset:offset+count]），不复制、不持有底层存储。

    count 为 None 表示从 offset 到末尾。
    """

    data: bytes | bytearray | memoryview
    offset: int = 0
    count: int | None = None

    @property
    def length(self) -> int:
        if self.count is not None:
            return self.count
        return max(len(self.data) - self.offset, 0)

    def is_valid(self) -> bool:
        return self.offset >= 0 and self.length >= 0 and self.offset + self.length <= len(self.data)

    def view(self) -> memoryview:
        return memoryview(self.data)[self.offset:self.offset + self.length]

    def tobytes(self) -> bytes:
        if isinstance(self.data, bytes) and self.offset == 0 and self.length == len(self.data):
            return self.data
        return self.view().tobytes()

    def is_writable(self) -> bool:
        return not memoryview(self.data).readonly


def _fail(resp: OperationResponse, message: str) -> None:
    resp.fail(ErrorKind.INVALID_ARGUMENT, message)


def check_buffer(
    buffer: ByteBuffer | None,
    resp: OperationResponse,
    what: str = "data",
    *,
    writable: bool = False,
) -> bool:
    """offset/count 必须非负且落在缓冲区内；writable 时缓冲区必须可写（读取的目标）。"""
    if buffer is None:
        return True
    if buffer.offset < 0:
        _fail(resp, f"Offset of {what} buffer is negative")
        return False
    if buffer.length < 0:
        _fail(resp, f"Length of {what} buffer is negative")
        return False
    if not buffer.is_valid():
        _fail(resp, f"Offset and length exceed the size of {what} buffer")
        return False
    if writable and not buffer.is_writable():
        _fail(resp, f"The {what} buffer is read-only")
        return False
    return True


def _add_permission(qp: QueryParams, octal_permission: str | None, resp: OperationResponse) -> bool:
    if octal_permission:
        if not is_valid_octal(octal_permission):
            _fail(resp, "Octal Permission not valid")
            return False
        qp.add("permission", octal_permission)
    return True


def _add_if_present(qp: QueryParams, name: str, value: str | None) -> None:
    if value:
        qp.add(name, value)


def build_mkdirs_params(octal_permission: str | None, resp: OperationResponse) -> QueryParams | None:
    qp = QueryParams()
    if not _add_permission(qp, octal_permission, resp):
        return None
    return qp


def build_create_params(
    overwrite: bool,
    octal_permission: str | None,
    lease_id: str | None,
    session_id: str | None,
    create_parent: bool,
    flag: SyncFlag,
    resp: OperationResponse,
) -> QueryParams | None:
    qp = QueryParams()
    if not _add_permission(qp, octal_permission, resp):
        return None
    qp.add("overwrite", overwrite)
    _add_if_present(qp, "leaseid", lease_id)
    _add_if_present(qp, "filesessionid", session_id)
    qp.add("CreateParent", create_parent)
    qp.add("write", "true")
    qp.add("syncFlag", SyncFlag(flag))
    return qp


def build_append_params(
    lease_id: str | None,
    session_id: str | None,
    flag: SyncFlag,
    file_offset: int,
    resp: OperationResponse,
) -> QueryParams | None:
    if file_offset < 0:
        _fail(resp, "Offset of file is negative")
        return None
    qp = QueryParams()
    _add_if_present(qp, "leaseid", lease_id)
    _add_if_present(qp, "filesessionid", session_id)
    qp.add("append", "true")
    qp.add("offset", file_offset)
    qp.add("syncFlag", SyncFlag(flag))
    return qp


def build_concurrent_append_params(auto_create: bool) -> QueryParams:
    qp = QueryParams()
    if auto_create:
        qp.add("appendMode", "autocreate")
    return qp


def build_open_params(
    session_id: str | None,
    file_offset: int,
    length: int,
    resp: OperationResponse,
) -> QueryParams | None:
    if file_offset < 0:
        _fail(resp, "Offset of file is negative")
        return None
    if length < 0:
        _fail(resp, "Length of file is negative")
        return None
    qp = QueryParams()
    qp.add("read", "true")
    _add_if_present(qp, "filesessionid", session_id)
    qp.add("offset", file_offset)
    qp.add("length", length)
    return qp


def build_delete_params(recursive: bool) -> QueryParams:
    return QueryParams().add("recursive", recursive)


def build_rename_params(destination: str | None, overwrite: bool, resp: OperationResponse) -> QueryParams | None:
    if not destination:
        _fail(resp, "Destination path is null")
        return None
    qp = QueryParams().add("destination", destination)
    if overwrite:
        qp.add("renameoptions", "overwrite")
    return qp


def build_concat_request(
    path: str,
    source_files: Sequence[str] | None,
    delete_source_directory: bool,
    resp: OperationResponse,
) -> tuple[QueryParams, bytes] | None:
    """
    校验待合并文件列表并生成 (query 参数, JSON 请求体)。

    依次检查：列表非空、无空路径、无与目标相同的路径、无重复路径；第一个不满足的条件即失败。
    """
    if not source_files:
        _fail(resp, "No source files to concatenate")
        return None
    seen: set[str] = set()
    sources: list[str] = []
    for source in source_files:
        if _is_blank(source):
            _fail(resp, "One of the Files to concatenate is empty")
            return None
        if source == path:
            _fail(resp, "One of the Files to concatenate has same path")
            return None
        if source in seen:
            _fail(resp, "One of the Files to concatenate is same as another file")
            return None
        seen.add(source)
        sources.append(source)
    body = json.dumps({"sources": sources}, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    qp = QueryParams()
    if delete_source_directory:
        qp.add("deleteSourceDirectory", "true")
    return qp, body


def _tooid(user_id_format: UserGroupRepresentation | None) -> bool:
    return (user_id_format or UserGroupRepresentation.OBJECT_ID) is UserGroupRepresentation.OBJECT_ID


def build_user_id_params(user_id_format: UserGroupRepresentation | None) -> QueryParams:
    return QueryParams().add("tooid", _tooid(user_id_format))


def build_file_status_params(
    user_id_format: UserGroupRepresentation | None,
    get_consistent_length: bool = False,
    extra_params: Mapping[str, object] | None = None,
) -> QueryParams:
    qp = build_user_id_params(user_id_format)
    if get_consistent_length:
        qp.add("getconsistentlength", "true")
    return qp.update_extra(extra_params)


def build_list_status_params(
    list_after: str | None,
    list_before: str | None,
    list_size: int,
    user_id_format: UserGroupRepresentation | None,
    selection: Selection = Selection.STANDARD,
    extra_params: Mapping[str, object] | None = None,
) -> QueryParams:
    qp = QueryParams()
    if not _is_blank(list_after):
        qp.add("listAfter", list_after)
    if not _is_blank(list_before):
        qp.add("listBefore", list_before)
    if list_size > 0:
        qp.add("listSize", list_size)
    selection = Selection(selection)
    if selection is not Selection.MINIMAL:
        qp.add("tooid", _tooid(user_id_format))
    if selection is not Selection.STANDARD:
        qp.add("select", selection)
    return qp.update_extra(extra_params)


def clamp_trash_list_size(num_results: int) -> int:
    if num_results <= 0 or num_results > MAX_TRASH_LIST_SIZE:
        return MAX_TRASH_LIST_SIZE
    return num_results


def build_enumerate_deleted_items_params(hint: str | None, list_after: str | None, num_results: int) -> QueryParams:
    """
    :raises ValueError: hint 为空或只含空白；属于调用方错误，不写入 OperationResponse
    """
    if _is_blank(hint):
        raise ValueError("Hint cannot be skipped or be empty or a whitespace. Please provide a specific hint")
    qp = QueryParams().add("hint", hint)
    if not _is_blank(list_after):
        qp.add("listAfter", list_after)
    qp.add("listSize", clamp_trash_list_size(num_results))
    qp.add("api-version", TRASH_API_VERSION)
    return qp


def build_restore_deleted_items_params(
    restore_token: str | None,
    restore_destination: str | None,
    type: str | None,
    restore_action: str | None,
) -> QueryParams:
    qp = QueryParams()
    for name, value in (
        ("restoreToken", restore_token),
        ("restoreDestination", restore_destination),
        ("type", type),
        ("restoreAction", restore_action),
    ):
        if not _is_blank(value):
            qp.add(name, value)
    qp.add("api-version", TRASH_API_VERSION)
    return qp


def build_expiry_params(option: ExpiryOption, expire_time: int) -> QueryParams:
    return QueryParams().add("expireTime", expire_time).add("expiryOption", ExpiryOption(option))


def build_check_access_params(rwx: str | None, resp: OperationResponse) -> QueryParams | None:
    if _is_blank(rwx):
        _fail(resp, "RWX is empty")
        return None
    if not is_valid_rwx(rwx):
        _fail(resp, "RWX is not valid")
        return None
    return QueryParams().add("fsaction", rwx)


def build_set_permission_params(permission: str | None, resp: OperationResponse) -> QueryParams | None:
    if _is_blank(permission):
        _fail(resp, "permission is empty")
        return None
    if not is_valid_octal(permission):
        _fail(resp, "Octal Permission not valid")
        return None
    return QueryParams().add("permission", permission)


def build_set_owner_params(user: str | None, group: str | None, resp: OperationResponse) -> QueryParams | None:
    user_blank = _is_blank(user)
    group_blank = _is_blank(group)
    if user_blank and group_blank:
        _fail(resp, "User and group is empty")
        return None
    qp = QueryParams()
    if not user_blank:
        qp.add("owner", user)
    if not group_blank:
        qp.add("group", group)
    return qp


def build_acl_spec_params(acl_spec: AclSpec | None, remove_acl: bool, resp: OperationResponse) -> QueryParams | None:
    """acl_spec 可以是逗号分隔的字符串，也可以是 AclEntry 列表（删除时按不带权限的格式序列化）。"""
    if isinstance(acl_spec, str) or acl_spec is None:
        if _is_blank(acl_spec):
            _fail(resp, "Acl Specification is empty")
            return None
        spec = acl_spec
    else:
        entries: Iterable[AclEntry] = list(acl_spec)
        if not entries:
            _fail(resp, "Acl Specification List is empty")
            return None
        spec = serialize_acl(entries, remove_acl)
    return QueryParams().add("aclspec", spec)
