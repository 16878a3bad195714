"""数据湖分层文件存储的 Python API 客户端：REST 操作调度、响应解析与结果记录。"""

from dlsapi.acl import AclAction, AclEntry, AclScope, AclType, parse_acl_entry, parse_acl_spec, serialize_acl
from dlsapi.client import DLSClient
from dlsapi.models import (
    AclStatus,
    ContentSummary,
    DirectoryEntry,
    DirectoryEntryList,
    DirectoryEntryType,
    ExpiryOption,
    Selection,
    SyncFlag,
    TrashEntry,
    TrashStatus,
    UserGroupRepresentation,
)
from dlsapi.params import ByteBuffer, QueryParams
from dlsapi.result import DLSOperationError, ErrorKind, OperationResponse
from dlsapi.transport import HttpTransport, RequestOptions, Transport, WireReply, WireRequest

__all__ = [
    "DLSClient",
    "HttpTransport",
    "Transport",
    "RequestOptions",
    "WireRequest",
    "WireReply",
    "OperationResponse",
    "ErrorKind",
    "DLSOperationError",
    "ByteBuffer",
    "QueryParams",
    "DirectoryEntry",
    "DirectoryEntryList",
    "DirectoryEntryType",
    "AclStatus",
    "ContentSummary",
    "TrashEntry",
    "TrashStatus",
    "SyncFlag",
    "Selection",
    "UserGroupRepresentation",
    "ExpiryOption",
    "AclEntry",
    "AclAction",
    "AclScope",
    "AclType",
    "parse_acl_entry",
    "parse_acl_spec",
    "serialize_acl",
]
