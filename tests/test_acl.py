"""
ACL 条目文本格式（acl）单元测试。
"""

from __future__ import annotations

import pytest

from dlsapi.acl import AclAction, AclEntry, AclScope, AclType, parse_acl_entry, parse_acl_spec, serialize_acl


def test_action_from_rwx_and_octal() -> None:
    assert AclAction.from_rwx("r-x") == AclAction(True, False, True)
    assert AclAction.from_octal(6) == AclAction(True, True, False)
    assert AclAction.from_octal(5).to_rwx() == "r-x"
    with pytest.raises(ValueError):
        AclAction.from_rwx("rw")
    with pytest.raises(ValueError):
        AclAction.from_rwx("r-x\n")
    with pytest.raises(ValueError):
        AclAction.from_octal(8)


def test_parse_access_entry() -> None:
    entry = parse_acl_entry("user:bob:rw-")
    assert entry == AclEntry(AclType.USER, "bob", AclAction(True, True, False), AclScope.ACCESS)
    assert str(entry) == "user:bob:rw-"


def test_parse_default_entry() -> None:
    entry = parse_acl_entry("default:other::r--")
    assert entry.scope is AclScope.DEFAULT
    assert entry.type is AclType.OTHER
    assert entry.user_or_group == ""
    assert entry.to_string() == "default:other::r--"


def test_parse_remove_entry() -> None:
    """删除格式不带权限部分；mask/other 可只写类型。"""
    assert parse_acl_entry("user:bob", remove_acl=True) == AclEntry(AclType.USER, "bob")
    assert parse_acl_entry("mask", remove_acl=True).type is AclType.MASK
    assert parse_acl_entry("default:group:g1", remove_acl=True).to_string(remove_acl=True) == "default:group:g1"


@pytest.mark.parametrize(
    "text",
    ["", "  ", "user:bob", "owner:bob:rwx", "user:bob:rwz", "mask:bob:rwx", "other:x:---", "user:a:b:c:d"],
)
def test_parse_invalid_entry(text: str) -> None:
    with pytest.raises(ValueError):
        parse_acl_entry(text)


def test_parse_and_serialize_spec() -> None:
    spec = "user::rwx,group::r-x,other::---,default:user:bob:rwx"
    entries = parse_acl_spec(spec)
    assert len(entries) == 4
    assert entries[3].scope is AclScope.DEFAULT
    assert serialize_acl(entries) == spec
    assert serialize_acl(entries, remove_acl=True) == "user:,group:,other:,default:user:bob"
