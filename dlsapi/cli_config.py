"""
dls 命令行的登录状态。

`dls login` 把数据湖账户地址（如 https://account.example.net，不带 /webhdfs/v1）和
bearer token 写进 ~/.config/dlsapi/config.json，之后的命令不再需要 --base-url/--token。
文件里是明文 token，写入后权限收紧为仅本人可读写。
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "config.json"


def _config_dir() -> Path:
    return Path.home() / ".config" / "dlsapi"


def _config_path() -> Path:
    return _config_dir() / CONFIG_FILENAME


def load_config() -> dict[str, Any] | None:
    """
    读取已登录的账户地址与 token。

    未登录、文件损坏或缺少 base_url 时返回 None，调用方据此提示先执行 `dls login`。
    """
    path = _config_path()
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or "base_url" not in data:
        return None
    return data


def save_config(base_url: str, token: str | None = None) -> None:
    """记录账户地址（去掉末尾 /）；token 为 None 时只记地址，请求时不带 Authorization。"""
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data: dict[str, Any] = {"base_url": base_url.rstrip("/")}
    if token is not None:
        data["token"] = token
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    if os.name == "posix":
        path.chmod(0o600)


def clear_config() -> bool:
    """`dls logout`：删除登录状态，原本未登录时返回 False。"""
    path = _config_path()
    if not path.exists():
        return False
    path.unlink()
    return True
