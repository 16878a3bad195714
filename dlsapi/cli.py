"""
dlsapi CLI：认证一次保存到本地，之后所有命令使用保存的服务地址与 token。
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer

from dlsapi import DLSClient, DLSOperationError
from dlsapi.cli_config import clear_config, load_config, save_config
from dlsapi.models import DirectoryEntry


def _format_size(n: int) -> str:
    """将字节数格式化为人类可读（KiB/MiB/GiB）。"""
    if n < 1024:
        return f"{n} B"
    if n < 1024 * 1024:
        return f"{n / 1024:.1f} KiB"
    if n < 1024 * 1024 * 1024:
        return f"{n / (1024 * 1024):.1f} MiB"
    return f"{n / (1024 * 1024 * 1024):.1f} GiB"


def _format_entry(entry: DirectoryEntry) -> str:
    kind = "d" if entry.is_directory else "-"
    modified = entry.last_modified.strftime("%Y-%m-%d %H:%M") if entry.modification_time else "-"
    name = entry.name + ("/" if entry.is_directory else "") if entry.name else entry.full_name
    return f"  {kind}{entry.permission or '---':>4}  {entry.owner or '-':<12} {_format_size(entry.length):>10}  {modified}  {name}"


app = typer.Typer(
    name="dls",
    help="Data lake store CLI. Auth once and save; use saved auth for all commands.",
)

_base_url_option: type = Annotated[
    Optional[str],
    typer.Option("--base-url", "-b", help="Override saved base URL (or required if not logged in)"),
]


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log requests to stderr")] = False,
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")


def _remote_path(path: str) -> str:
    """远程路径统一以 / 开头。"""
    path = (path or "").strip()
    return path if path.startswith("/") else "/" + path


def _get_client(base_url: str | None) -> DLSClient | None:
    cfg = load_config()
    url = base_url or (cfg and cfg.get("base_url"))
    if not url:
        return None
    token = cfg.get("token") if cfg else None
    return DLSClient(base_url=url, token=token, timeout=30.0)


def _require_client(base_url: str | None) -> DLSClient:
    client = _get_client(base_url)
    if client is None:
        typer.echo("error: no saved credentials. run 'dls login' or pass --base-url", err=True)
        raise typer.Exit(1)
    return client


def _fail(e: Exception) -> typer.Exit:
    typer.echo(f"error: {e}", err=True)
    return typer.Exit(1)


# ------------------------- login / logout / auth -------------------------


@app.command("login", help="Save base URL and token to local config")
def login(
    base_url: Annotated[Optional[str], typer.Option("--base-url", "-b", help="Service base URL")] = None,
    token: Annotated[Optional[str], typer.Option("--token", "-t", help="Bearer token (unsafe in shell)")] = None,
) -> None:
    base_url = base_url or input("Base URL (e.g. https://account.example.net): ").strip()
    if not base_url:
        typer.echo("error: base URL required", err=True)
        raise typer.Exit(1)
    if token is None:
        token = typer.prompt("Token", default="", hide_input=True, show_default=False) or None
    save_config(base_url, token)
    typer.echo("Saved.")


@app.command("logout", help="Clear saved credentials")
def logout() -> None:
    if clear_config():
        typer.echo("Cleared.")
    else:
        typer.echo("No saved credentials.")


auth_app = typer.Typer(help="Auth subcommands")
app.add_typer(auth_app, name="auth")


@auth_app.command("status", help="Show whether credentials are saved")
def auth_status() -> None:
    cfg = load_config()
    if not cfg:
        typer.echo("Not logged in.")
        return
    typer.echo(f"base_url: {cfg.get('base_url', '')}")
    typer.echo(f"auth: {'yes' if cfg.get('token') else 'no'}")


@app.command("info", help="Show saved base_url and auth status")
def info_cmd() -> None:
    cfg = load_config()
    if not cfg:
        typer.echo("Not logged in. Run 'dls login' or pass --base-url for commands.")
        return
    typer.echo(f"base_url: {cfg.get('base_url')}")
    typer.echo(f"auth: {'yes' if cfg.get('token') else 'no'}")


# ------------------------- list / stat / du -------------------------


def _cmd_list_impl(path: str, base_url: str | None) -> None:
    client = _require_client(base_url)
    try:
        for entry in client.iter_directory(_remote_path(path)):
            typer.echo(_format_entry(entry))
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()


@app.command("list", help="List directory")
def list_cmd(
    path: Annotated[str, typer.Argument(help="Directory path (default: /)")] = "/",
    base_url: _base_url_option = None,
) -> None:
    _cmd_list_impl(path, base_url)


@app.command("ls", help="Alias for list")
def ls_cmd(
    path: Annotated[str, typer.Argument(help="Directory path (default: /)")] = "/",
    base_url: _base_url_option = None,
) -> None:
    _cmd_list_impl(path, base_url)


@app.command("stat", help="Show file or directory status (JSON)")
def stat_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")],
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        entry = client.get_file_status(_remote_path(path))
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    typer.echo(json.dumps(entry.model_dump(mode="json"), ensure_ascii=False, indent=2))


@app.command("du", help="Show content summary of a path")
def du_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")] = "/",
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        summary = client.get_content_summary(_remote_path(path))
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    typer.echo(f"directories: {summary.directory_count}")
    typer.echo(f"files: {summary.file_count}")
    typer.echo(f"length: {_format_size(summary.length)}")
    typer.echo(f"space consumed: {_format_size(summary.space_consumed)}")


# ------------------------- mkdir / rm / mv -------------------------


@app.command("mkdir", help="Create a directory (with parents)")
def mkdir_cmd(
    path: Annotated[str, typer.Argument(help="Remote directory path")],
    permission: Annotated[Optional[str], typer.Option("--permission", "-m", help="Octal permission, e.g. 750")] = None,
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        created = client.mkdirs(_remote_path(path), permission)
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    if not created:
        typer.echo("error: mkdir returned false", err=True)
        raise typer.Exit(1)
    typer.echo("Created.")


@app.command("rm", help="Delete a file or directory")
def rm_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")],
    recursive: Annotated[bool, typer.Option("--recursive", "-r", help="Delete directories recursively")] = False,
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        deleted = client.delete(_remote_path(path), recursive)
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    if not deleted:
        typer.echo("error: delete returned false", err=True)
        raise typer.Exit(1)
    typer.echo("Deleted.")


@app.command("mv", help="Rename / move a path")
def mv_cmd(
    source: Annotated[str, typer.Argument(help="Remote source path")],
    destination: Annotated[str, typer.Argument(help="Remote destination path")],
    overwrite: Annotated[bool, typer.Option("--overwrite", "-f", help="Overwrite destination")] = False,
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        renamed = client.rename(_remote_path(source), _remote_path(destination), overwrite)
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    if not renamed:
        typer.echo("error: rename returned false", err=True)
        raise typer.Exit(1)
    typer.echo("Renamed.")


# ------------------------- cat / put -------------------------


@app.command("cat", help="Print a remote file to stdout, or save it with --output")
def cat_cmd(
    path: Annotated[str, typer.Argument(help="Remote file path")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Local path to save to")] = None,
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        content = client.read_all(_remote_path(path))
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(content)
        typer.echo(f"Saved to {output}.")
        return
    sys.stdout.buffer.write(content)
    sys.stdout.flush()


@app.command("put", help="Upload a local file")
def put_cmd(
    local: Annotated[Path, typer.Argument(help="Local file path")],
    path: Annotated[str, typer.Argument(help="Remote file path")],
    overwrite: Annotated[bool, typer.Option("--overwrite", "-f", help="Overwrite existing file")] = False,
    permission: Annotated[Optional[str], typer.Option("--permission", "-m", help="Octal permission")] = None,
    base_url: _base_url_option = None,
) -> None:
    if not local.is_file():
        typer.echo(f"error: not a file: {local}", err=True)
        raise typer.Exit(1)
    client = _require_client(base_url)
    try:
        client.write_file(_remote_path(path), local.read_bytes(), overwrite=overwrite, octal_permission=permission)
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    typer.echo("Uploaded.")


# ------------------------- chmod / chown -------------------------


@app.command("chmod", help="Set octal permission of a path")
def chmod_cmd(
    permission: Annotated[str, typer.Argument(help="Octal permission, e.g. 750 or 1777")],
    path: Annotated[str, typer.Argument(help="Remote path")],
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        client.set_permission(_remote_path(path), permission)
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    typer.echo("OK.")


@app.command("chown", help="Set owner and/or group of a path")
def chown_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")],
    owner: Annotated[Optional[str], typer.Option("--owner", "-u", help="Owner id")] = None,
    group: Annotated[Optional[str], typer.Option("--group", "-g", help="Group id")] = None,
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        client.set_owner(_remote_path(path), owner, group)
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    typer.echo("OK.")


# ------------------------- acl -------------------------


acl_app = typer.Typer(help="ACL subcommands")
app.add_typer(acl_app, name="acl")


@acl_app.command("get", help="Show ACL status of a path")
def acl_get(
    path: Annotated[str, typer.Argument(help="Remote path")],
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        status = client.get_acl_status(_remote_path(path))
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    typer.echo(f"owner: {status.owner}")
    typer.echo(f"group: {status.group}")
    typer.echo(f"permission: {status.permission}")
    typer.echo(f"sticky: {'yes' if status.sticky_bit else 'no'}")
    for entry in status.entries:
        typer.echo(f"  {entry}")


def _acl_mutation(action: str, path: str, spec: str, base_url: str | None) -> None:
    client = _require_client(base_url)
    try:
        getattr(client, action)(_remote_path(path), spec)
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    typer.echo("OK.")


@acl_app.command("set", help="Replace ACL of a path")
def acl_set(
    path: Annotated[str, typer.Argument(help="Remote path")],
    spec: Annotated[str, typer.Argument(help="ACL spec, e.g. user::rwx,group::r-x,other::---")],
    base_url: _base_url_option = None,
) -> None:
    _acl_mutation("set_acl", path, spec, base_url)


@acl_app.command("modify", help="Merge ACL entries into a path's ACL")
def acl_modify(
    path: Annotated[str, typer.Argument(help="Remote path")],
    spec: Annotated[str, typer.Argument(help="ACL spec, e.g. user:bob:r-x")],
    base_url: _base_url_option = None,
) -> None:
    _acl_mutation("modify_acl_entries", path, spec, base_url)


@acl_app.command("remove", help="Remove ACL entries (or all with --all)")
def acl_remove(
    path: Annotated[str, typer.Argument(help="Remote path")],
    spec: Annotated[Optional[str], typer.Argument(help="ACL spec without permissions, e.g. user:bob")] = None,
    all_entries: Annotated[bool, typer.Option("--all", help="Remove all ACL entries")] = False,
    default: Annotated[bool, typer.Option("--default", help="Remove all default ACL entries")] = False,
    base_url: _base_url_option = None,
) -> None:
    if all_entries or default:
        client = _require_client(base_url)
        try:
            if all_entries:
                client.remove_acl(_remote_path(path))
            else:
                client.remove_default_acl(_remote_path(path))
        except DLSOperationError as e:
            raise _fail(e)
        finally:
            client.close()
        typer.echo("OK.")
        return
    if not spec:
        typer.echo("error: ACL spec required (or pass --all / --default)", err=True)
        raise typer.Exit(1)
    _acl_mutation("remove_acl_entries", path, spec, base_url)


# ------------------------- trash -------------------------


trash_app = typer.Typer(help="Trash subcommands")
app.add_typer(trash_app, name="trash")


@trash_app.command("list", help="Search deleted items by hint")
def trash_list(
    hint: Annotated[str, typer.Argument(help="Search hint (part of the original path)")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max results (1-4000)")] = 4000,
    list_after: Annotated[Optional[str], typer.Option("--after", help="Continue after this token")] = None,
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        status = client.enumerate_deleted_items(hint, list_after, limit)
    except (DLSOperationError, ValueError) as e:
        raise _fail(e)
    finally:
        client.close()
    for entry in status.entries or []:
        typer.echo(f"  {entry.original_path}  {entry.type.value}  {entry.restore_token}")
    typer.echo(f"found: {status.num_found}")
    if status.next_list_after:
        typer.echo(f"next: {status.next_list_after}")


@trash_app.command("restore", help="Restore a deleted item by its restore token")
def trash_restore(
    token: Annotated[str, typer.Argument(help="Restore token from 'dls trash list'")],
    destination: Annotated[Optional[str], typer.Option("--to", help="Restore destination path")] = None,
    type: Annotated[Optional[str], typer.Option("--type", help="file or folder")] = None,
    action: Annotated[Optional[str], typer.Option("--action", help="Conflict action, e.g. copy or overwrite")] = None,
    base_url: _base_url_option = None,
) -> None:
    client = _require_client(base_url)
    try:
        client.restore_deleted_items(token, destination, type, action)
    except DLSOperationError as e:
        raise _fail(e)
    finally:
        client.close()
    typer.echo("Restored.")


# ------------------------- main -------------------------


def main() -> None:
    app()


if __name__ == "__main__":
    main()
