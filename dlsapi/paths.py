"""补全服务端未返回的名称与完整路径。路径原样使用，不做规范化。"""

from __future__ import annotations

from dlsapi.models import DirectoryEntry

_SEPARATORS = ("/", "\\", ":")


def get_file_name(path: str | None) -> str | None:
    """取最后一个路径分隔符（/ \\ :）之后的部分；没有分隔符则原样返回。"""
    if path is None:
        return None
    index = max(path.rfind(sep) for sep in _SEPARATORS)
    return path[index + 1:] if index >= 0 else path


def complete_file_status(path: str, entry: DirectoryEntry) -> DirectoryEntry:
    """
    单个条目：
    - 名称缺失（None）时由请求路径推出
    - 完整路径：返回的名称为空（None 或 ""）时即请求路径，否则为 请求路径 + "/" + 名称

    两个条件不同：名称为 "" 时保留 ""，但完整路径取请求路径。
    """
    returned = entry.name
    name = get_file_name(path) if returned is None else returned
    full_name = path if not returned else f"{path}/{returned}"
    return entry.model_copy(update={"name": name, "full_name": full_name})


def complete_list_status(path: str, entries: list[DirectoryEntry]) -> list[DirectoryEntry]:
    """目录列表：完整路径 = 以 / 结尾的请求路径 + 条目名称；名称为空的条目取请求路径。"""
    prefix = path if path.endswith("/") else path + "/"
    return [
        entry.model_copy(update={"full_name": prefix + entry.name if entry.name else path})
        for entry in entries
    ]
