"""
数据模型（与服务端 REST 响应一致）。

- DirectoryEntry：GETFILESTATUS / LISTSTATUS 返回的单个条目，字段名沿用线上格式
  （pathSuffix, type, length, accessTime, modificationTime, owner, group, permission, aclBit ...）
- AclStatus / ContentSummary：由流式解析得到，不经过完整文档
- TrashStatus / TrashEntry：回收站枚举结果，num_found 由客户端根据条目数计算
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from dlsapi.acl import AclEntry


class SyncFlag(str, enum.Enum):
    """
    写入的提交粒度：
    - DATA: 只写数据
    - METADATA: 同时更新长度、修改时间等元数据，之后 get_file_status / list_status 可见
    - CLOSE: 不再追加，更新元数据、释放 lease 并关闭
    """

    DATA = "DATA"
    METADATA = "METADATA"
    CLOSE = "CLOSE"


class Selection(str, enum.Enum):
    """列目录的字段详细程度。"""

    MINIMAL = "Minimal"
    STANDARD = "Standard"
    EXTENDED = "Extended"


class UserGroupRepresentation(str, enum.Enum):
    OBJECT_ID = "ObjectID"
    USER_PRINCIPAL_NAME = "UserPrincipalName"


class ExpiryOption(str, enum.Enum):
    NEVER_EXPIRE = "NeverExpire"
    RELATIVE_TO_NOW = "RelativeToNow"
    RELATIVE_TO_CREATION_DATE = "RelativeToCreationDate"
    ABSOLUTE = "Absolute"


class DirectoryEntryType(str, enum.Enum):
    FILE = "FILE"
    DIRECTORY = "DIRECTORY"


def _from_millis(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class DirectoryEntry(BaseModel):
    """文件或目录的元数据。name 为 None 表示服务端没有返回名称。"""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str | None = Field(default=None, validation_alias=AliasChoices("pathSuffix", "name"))
    full_name: str = ""
    type: DirectoryEntryType = DirectoryEntryType.FILE
    length: int = 0
    access_time: int = Field(default=0, alias="accessTime")
    modification_time: int = Field(default=0, alias="modificationTime")
    owner: str = ""
    group: str = ""
    permission: str = ""
    acl_bit: bool = Field(default=False, alias="aclBit")
    replication: int = 0
    block_size: int = Field(default=0, alias="blockSize")
    expiry_time: int = Field(default=0, alias="msExpirationTime")

    @property
    def is_directory(self) -> bool:
        return self.type is DirectoryEntryType.DIRECTORY

    @property
    def last_modified(self) -> datetime:
        return _from_millis(self.modification_time)

    @property
    def last_accessed(self) -> datetime:
        return _from_millis(self.access_time)


DirectoryEntryList = list[DirectoryEntry]


@dataclass(frozen=True)
class AclStatus:
    """ACL 快照：条目列表、所有者、组、八进制权限、sticky bit（仅目录有意义）。"""

    entries: list[AclEntry] = field(default_factory=list)
    owner: str = ""
    group: str = ""
    permission: str = ""
    sticky_bit: bool = False


@dataclass(frozen=True)
class ContentSummary:
    """子树统计。"""

    directory_count: int = 0
    file_count: int = 0
    length: int = 0
    space_consumed: int = 0


class TrashEntry(BaseModel):
    """回收站中的一项；trash_dir_path 即 restore_deleted_items 需要的 restore token。"""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    trash_dir_path: str = Field(default="", alias="trashDirPath")
    original_path: str = Field(default="", alias="originalPath")
    type: DirectoryEntryType = DirectoryEntryType.FILE
    creation_time: int = Field(default=0, alias="creationTime")

    @property
    def restore_token(self) -> str:
        return self.trash_dir_path

    @property
    def created(self) -> datetime:
        return _from_millis(self.creation_time)


class TrashStatus(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    entries: list[TrashEntry] | None = Field(default=None, alias="trashDirEntry")
    next_list_after: str = Field(default="", alias="nextListAfter")
    num_searched: int = Field(default=0, alias="numSearched")
    num_found: int = 0
