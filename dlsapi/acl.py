"""
ACL 条目的文本格式：``[default:]user|group|mask|other:[id][:rwx]``，多个条目以逗号分隔。

- 删除条目（remove_acl=True）时不带权限部分，如 ``user:bob``、``default:group:g1``
- 权限部分为 rwx 形式，如 ``r-x``
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Iterable

_RWX_RE = re.compile(r"[r-][w-][x-]")


class AclScope(str, enum.Enum):
    ACCESS = "access"
    DEFAULT = "default"


class AclType(str, enum.Enum):
    USER = "user"
    GROUP = "group"
    MASK = "mask"
    OTHER = "other"


@dataclass(frozen=True)
class AclAction:
    """rwx 三元组。"""

    read: bool = False
    write: bool = False
    execute: bool = False

    @classmethod
    def from_rwx(cls, rwx: str) -> AclAction:
        if not _RWX_RE.fullmatch(rwx):
            raise ValueError(f"invalid rwx string: {rwx!r}")
        return cls(rwx[0] == "r", rwx[1] == "w", rwx[2] == "x")

    @classmethod
    def from_octal(cls, digit: int) -> AclAction:
        if not 0 <= digit <= 7:
            raise ValueError(f"invalid octal permission digit: {digit}")
        return cls(bool(digit & 4), bool(digit & 2), bool(digit & 1))

    def to_rwx(self) -> str:
        return ("r" if self.read else "-") + ("w" if self.write else "-") + ("x" if self.execute else "-")

    def __str__(self) -> str:
        return self.to_rwx()


@dataclass(frozen=True)
class AclEntry:
    type: AclType
    user_or_group: str = ""
    action: AclAction | None = None
    scope: AclScope = AclScope.ACCESS

    def to_string(self, remove_acl: bool = False) -> str:
        parts = []
        if self.scope is AclScope.DEFAULT:
            parts.append("default")
        parts.append(self.type.value)
        parts.append(self.user_or_group)
        if not remove_acl and self.action is not None:
            parts.append(self.action.to_rwx())
        return ":".join(parts)

    def __str__(self) -> str:
        return self.to_string()


def parse_acl_entry(text: str, remove_acl: bool = False) -> AclEntry:
    """
    解析单个 ACL 条目。

    :param text: 如 ``user:bob:rwx``、``default:other::r--``；remove_acl 时如 ``user:bob``
    :param remove_acl: 为 True 时条目不含权限部分
    :raises ValueError: 格式不合法
    """
    if not text or not text.strip():
        raise ValueError("ACL entry is empty")
    parts = text.strip().split(":")
    scope = AclScope.ACCESS
    if parts[0].lower() == AclScope.DEFAULT.value:
        scope = AclScope.DEFAULT
        parts = parts[1:]
    expected = 2 if remove_acl else 3
    # remove 时 "other" / "mask" 可只写类型
    if remove_acl and len(parts) == 1:
        parts.append("")
    if len(parts) != expected:
        raise ValueError(f"invalid ACL entry: {text!r}")
    try:
        acl_type = AclType(parts[0].lower())
    except ValueError:
        raise ValueError(f"invalid ACL type in entry: {text!r}") from None
    user_or_group = parts[1]
    if acl_type in (AclType.MASK, AclType.OTHER) and user_or_group:
        raise ValueError(f"{acl_type.value} entry cannot name a user or group: {text!r}")
    action = None if remove_acl else AclAction.from_rwx(parts[2])
    return AclEntry(acl_type, user_or_group, action, scope)


def parse_acl_spec(spec: str, remove_acl: bool = False) -> list[AclEntry]:
    """解析以逗号分隔的 ACL spec。"""
    return [parse_acl_entry(part, remove_acl) for part in spec.split(",") if part.strip()]


def serialize_acl(entries: Iterable[AclEntry], remove_acl: bool = False) -> str:
    """将条目列表序列化为逗号分隔的 ACL spec。"""
    return ",".join(entry.to_string(remove_acl) for entry in entries)
