"""
响应解析。

两种方式：
- 结构化解码（pydantic）：单个条目、目录列表、回收站枚举这类嵌套/数组结构
- 流式遍历（JsonCursor）：{"boolean": ...}、{"AclStatus": {...}}、{"ContentSummary": {...}}
  这类扁平、带外层包装键的响应，只按属性名取需要的字段，不构造中间文档

任何解析错误都由 guarded_parse 捕获并写入 OperationResponse，不会抛出到调用方。
"""

from __future__ import annotations

import enum
import json.decoder
import json.scanner
import logging
import re
from typing import Any, Callable, Iterator, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from dlsapi.acl import parse_acl_entry
from dlsapi.models import AclStatus, ContentSummary, DirectoryEntry, TrashStatus
from dlsapi.result import ErrorKind, OperationResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WS_RE = re.compile(r"[ \t\n\r]*")
_NUMBER_RE = json.scanner.NUMBER_RE
_scanstring = json.decoder.scanstring


class JsonToken(enum.Enum):
    START_OBJECT = "start_object"
    END_OBJECT = "end_object"
    START_ARRAY = "start_array"
    END_ARRAY = "end_array"
    PROPERTY_NAME = "property_name"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    END = "end"


class JsonCursorError(ValueError):
    """JSON 格式错误或 token 序列不符合预期。"""


class JsonTypeMismatch(JsonCursorError):
    """值的类型与期望不符。"""


# 解析器内部状态：下一个 token 期望的是什么
_VALUE = 0
_VALUE_OR_END_ARRAY = 1
_KEY = 2
_KEY_OR_END_OBJECT = 3
_AFTER_VALUE = 4
_DONE = 5


class JsonCursor:
    """
    拉取式 JSON token 读取器。每次 read() 前进一个 token，当前 token 在 .token，值在 .value。

    只维护容器栈，不构造任何中间对象。
    """

    def __init__(self, data: bytes | bytearray | memoryview | str):
        if isinstance(data, str):
            text = data
        else:
            text = bytes(data).decode("utf-8-sig")
        self._text = text
        self._pos = 0
        self._stack: list[str] = []
        self._state = _VALUE
        self.token: JsonToken | None = None
        self.value: Any = None

    @property
    def depth(self) -> int:
        return len(self._stack)

    def _error(self, message: str, pos: int | None = None) -> JsonCursorError:
        pos = self._pos if pos is None else pos
        return JsonCursorError(f"{message} at position {pos}")

    def _emit(self, token: JsonToken, value: Any = None) -> JsonToken:
        self.token = token
        self.value = value
        return token

    def _skip_ws(self, pos: int) -> int:
        return _WS_RE.match(self._text, pos).end()

    def _close(self, pos: int) -> JsonToken:
        opener = self._stack.pop()
        self._pos = pos + 1
        self._state = _AFTER_VALUE
        return self._emit(JsonToken.END_OBJECT if opener == "{" else JsonToken.END_ARRAY)

    def _scalar(self, token: JsonToken, value: Any, end: int) -> JsonToken:
        self._pos = end
        self._state = _AFTER_VALUE
        return self._emit(token, value)

    def read(self) -> JsonToken:
        text = self._text
        pos = self._skip_ws(self._pos)
        state = self._state
        if state == _DONE:
            return self._emit(JsonToken.END)
        if state == _AFTER_VALUE:
            if not self._stack:
                if pos != len(text):
                    raise self._error("Extra data", pos)
                self._pos = pos
                self._state = _DONE
                return self._emit(JsonToken.END)
            ch = text[pos:pos + 1]
            closer = "}" if self._stack[-1] == "{" else "]"
            if ch == closer:
                return self._close(pos)
            if ch != ",":
                raise self._error(f"Expecting ',' or {closer!r}", pos)
            pos = self._skip_ws(pos + 1)
            state = _KEY if closer == "}" else _VALUE
        ch = text[pos:pos + 1]
        if not ch:
            raise self._error("Unexpected end of input", pos)
        if state in (_KEY, _KEY_OR_END_OBJECT):
            if ch == "}" and state == _KEY_OR_END_OBJECT:
                return self._close(pos)
            if ch != '"':
                raise self._error("Expecting property name enclosed in double quotes", pos)
            name, end = _scanstring(text, pos + 1)
            end = self._skip_ws(end)
            if text[end:end + 1] != ":":
                raise self._error("Expecting ':' delimiter", end)
            self._pos = end + 1
            self._state = _VALUE
            return self._emit(JsonToken.PROPERTY_NAME, name)
        if ch == "]" and state == _VALUE_OR_END_ARRAY:
            return self._close(pos)
        if ch == "{":
            self._stack.append("{")
            self._pos = pos + 1
            self._state = _KEY_OR_END_OBJECT
            return self._emit(JsonToken.START_OBJECT)
        if ch == "[":
            self._stack.append("[")
            self._pos = pos + 1
            self._state = _VALUE_OR_END_ARRAY
            return self._emit(JsonToken.START_ARRAY)
        if ch == '"':
            value, end = _scanstring(text, pos + 1)
            return self._scalar(JsonToken.STRING, value, end)
        if text.startswith("true", pos):
            return self._scalar(JsonToken.BOOLEAN, True, pos + 4)
        if text.startswith("false", pos):
            return self._scalar(JsonToken.BOOLEAN, False, pos + 5)
        if text.startswith("null", pos):
            return self._scalar(JsonToken.NULL, None, pos + 4)
        m = _NUMBER_RE.match(text, pos)
        if m is None:
            raise self._error("Expecting value", pos)
        integer, frac, exp = m.groups()
        number = float(integer + (frac or "") + (exp or "")) if frac or exp else int(integer)
        return self._scalar(JsonToken.NUMBER, number, m.end())

    def expect(self, token: JsonToken) -> None:
        if self.read() is not token:
            raise self._error(f"Expected {token.value}, got {self.token.value}")

    def skip(self) -> None:
        """跳过当前 token 所代表的整个值（容器则跳到与之匹配的结束 token）。"""
        if self.token is JsonToken.PROPERTY_NAME:
            self.read()
        if self.token in (JsonToken.START_OBJECT, JsonToken.START_ARRAY):
            depth = self.depth - 1
            while self.depth > depth:
                if self.read() is JsonToken.END:
                    raise self._error("Unexpected end of input")

    def skip_value(self) -> None:
        """读取并跳过下一个值（用于忽略未知属性）。"""
        self.read()
        self.skip()

    def iter_properties(self) -> Iterator[str]:
        """
        在 START_OBJECT 之后调用，逐个产出属性名，直到 END_OBJECT。

        每次产出后调用方必须消费掉该属性的值（read_* 或 skip_value）。
        """
        while True:
            token = self.read()
            if token is JsonToken.END_OBJECT:
                return
            if token is not JsonToken.PROPERTY_NAME:
                raise self._error(f"Expected property name, got {token.value}")
            yield self.value

    def read_string(self, default: str = "") -> str:
        token = self.read()
        if token is JsonToken.NULL:
            return default
        if token is not JsonToken.STRING:
            raise JsonTypeMismatch(f"Expected string, got {token.value}")
        return self.value

    def read_bool(self) -> bool:
        token = self.read()
        if token is not JsonToken.BOOLEAN:
            raise JsonTypeMismatch(f"Expected boolean, got {token.value}")
        return self.value

    def read_int(self) -> int:
        token = self.read()
        if token is not JsonToken.NUMBER or not isinstance(self.value, int):
            raise JsonTypeMismatch(f"Expected integer, got {token.value} {self.value!r}")
        return self.value


# ------------------------- 流式解析 -------------------------


def parse_boolean(data: bytes) -> bool:
    """{"boolean": true|false}；缺少 boolean 属性时为 False。"""
    cursor = JsonCursor(data)
    cursor.expect(JsonToken.START_OBJECT)
    result = False
    for name in cursor.iter_properties():
        if name == "boolean":
            result = cursor.read_bool()
        else:
            cursor.skip_value()
    return result


def _find_wrapped_object(cursor: JsonCursor, wrapper: str) -> None:
    """定位到 {"<wrapper>": { 的内层 START_OBJECT 之后。"""
    cursor.expect(JsonToken.START_OBJECT)
    for name in cursor.iter_properties():
        if name == wrapper:
            cursor.expect(JsonToken.START_OBJECT)
            return
        cursor.skip_value()
    raise JsonCursorError(f"Property {wrapper!r} not found")


def parse_acl_status(data: bytes) -> AclStatus:
    """{"AclStatus": {"entries": [...], "owner": .., "group": .., "permission": .., "stickyBit": ..}}"""
    cursor = JsonCursor(data)
    _find_wrapped_object(cursor, "AclStatus")
    entries = []
    owner = group = permission = ""
    sticky_bit = False
    for name in cursor.iter_properties():
        if name == "entries":
            cursor.expect(JsonToken.START_ARRAY)
            while cursor.read() is not JsonToken.END_ARRAY:
                if cursor.token is not JsonToken.STRING:
                    raise JsonTypeMismatch(f"Expected string ACL entry, got {cursor.token.value}")
                entries.append(parse_acl_entry(cursor.value, False))
        elif name == "owner":
            owner = cursor.read_string()
        elif name == "group":
            group = cursor.read_string()
        elif name == "permission":
            permission = cursor.read_string()
        elif name == "stickyBit":
            sticky_bit = cursor.read_bool()
        else:
            cursor.skip_value()
    return AclStatus(entries, owner, group, permission, sticky_bit)


def parse_content_summary(data: bytes) -> ContentSummary:
    """{"ContentSummary": {"directoryCount": N, "fileCount": N, "length": N, "spaceConsumed": N}}"""
    cursor = JsonCursor(data)
    _find_wrapped_object(cursor, "ContentSummary")
    directory_count = file_count = length = space_consumed = 0
    for name in cursor.iter_properties():
        if name == "directoryCount":
            directory_count = cursor.read_int()
        elif name == "fileCount":
            file_count = cursor.read_int()
        elif name == "length":
            length = cursor.read_int()
        elif name == "spaceConsumed":
            space_consumed = cursor.read_int()
        else:
            cursor.skip_value()
    return ContentSummary(directory_count, file_count, length, space_consumed)


# ------------------------- 结构化解码 -------------------------


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class _FileStatusResult(_Envelope):
    file_status: DirectoryEntry | None = Field(default=None, alias="FileStatus")


class _FileStatuses(_Envelope):
    file_status: list[DirectoryEntry] | None = Field(default=None, alias="FileStatus")


class _ListStatusResult(_Envelope):
    file_statuses: _FileStatuses | None = Field(default=None, alias="FileStatuses")


class _TrashStatusResult(_Envelope):
    trash_dir: TrashStatus | None = Field(default=None, alias="trashDir")


def parse_file_status(data: bytes) -> DirectoryEntry:
    entry = _FileStatusResult.model_validate_json(data).file_status
    if entry is None:
        raise JsonCursorError("Property 'FileStatus' not found")
    return entry


def parse_list_status(data: bytes) -> list[DirectoryEntry]:
    statuses = _ListStatusResult.model_validate_json(data).file_statuses
    if statuses is None or statuses.file_status is None:
        raise JsonCursorError("Property 'FileStatuses.FileStatus' not found")
    return statuses.file_status


def parse_trash_status(data: bytes) -> TrashStatus:
    status = _TrashStatusResult.model_validate_json(data).trash_dir
    if status is None:
        raise JsonCursorError("Property 'trashDir' not found")
    if status.entries is not None:
        status = status.model_copy(update={"num_found": len(status.entries)})
    return status


# ------------------------- 解析边界 -------------------------


def guarded_parse(
    parser: Callable[[bytes], T],
    data: bytes | None,
    resp: OperationResponse,
) -> T | None:
    """
    调用 parser 解析响应体；失败时写入 resp 并返回 None。

    data 为 None（传输成功但无响应体）记为 EMPTY_RESPONSE，其余任何异常记为 PARSE。
    """
    if data is None:
        resp.fail(ErrorKind.EMPTY_RESPONSE, "The request was successful but output was null")
        return None
    try:
        return parser(data)
    except Exception as e:
        exc_type = type(e).__name__
        resp.fail(
            ErrorKind.PARSE,
            f"Unexpected problem with parsing JSON output. ExceptionType: {exc_type} ExceptionMessage: {e}",
            exception_type=exc_type,
        )
        logger.warning("failed to parse %s response: %s: %s", resp.op or "?", exc_type, e)
        return None
