"""branchops CLI エントリポイント。

成功時は説明文を表示、失敗時は原因つきのメッセージを表示して exit 1。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from branchops.config import BranchOpsConfig, load_config
from branchops.errors import BranchOpsError, ConfigError
from branchops.git_ops import (
    GitRepo,
    commit_all_changes,
    ensure_local_branch,
    export_repository,
    open_repository,
)
from branchops.github_ops import (
    GitHubClient,
    create_remote_branch,
    fetch_remote_file_content,
    open_pull_request,
)
from branchops.logging_setup import setup_logging
from branchops.tokens import load_github_token
from branchops.tool_container import TOOLS, build_tool_cmd, run_tool
from branchops.upstream import (
    apply_upgrade,
    check_versions,
    fetch_latest_release,
    read_local_version,
    update_decision,
    upgrade_branch_name,
)

APP_HELP = "git ブランチ作成/コミット・GitHub PR・上流バージョン追従のための CI ヘルパー"

app = typer.Typer(add_completion=False, help=APP_HELP)
console = Console()
logger = logging.getLogger(__name__)


@dataclass
class _State:
    config: BranchOpsConfig


def _fail(e: Exception) -> NoReturn:
    logger.error("%s", e)
    console.print(f"❌ {e}", style="red", markup=False, emoji=False)
    raise typer.Exit(code=1)


def _ok(message: str) -> None:
    console.print(f"✅ {message}", style="green", markup=False, emoji=False)


def _config(ctx: typer.Context) -> BranchOpsConfig:
    st = ctx.obj
    if isinstance(st, _State):
        return st.config
    return BranchOpsConfig()


def _open_repo(repo_path: Path, export_to: Path | None) -> GitRepo:
    if export_to is not None:
        return export_repository(repo_path, export_to)
    return open_repository(repo_path)


def _owner_repo(cfg: BranchOpsConfig, owner: str | None, repo: str | None) -> tuple[str, str]:
    o = owner or cfg.github.owner
    r = repo or cfg.github.repo
    if not o or not r:
        raise ConfigError("owner/repo is required: pass --owner/--repo or set [github] in branchops.toml")
    return o, r


def _client(cfg: BranchOpsConfig, token: str | None) -> GitHubClient:
    token_file = Path(cfg.github.token_file) if cfg.github.token_file else None
    secret = load_github_token(
        explicit=token, env_var=cfg.github.token_env, token_file=token_file
    )
    return GitHubClient(token=secret, api_url=cfg.github.api_url, policy=cfg.retry_policy())


@app.callback()
def main(
    ctx: typer.Context,
    config: Path = typer.Option(Path("branchops.toml"), "--config", help="設定ファイル"),
    log_level: str = typer.Option("INFO", "--log-level", help="ログレベル"),
    log_dir: Path | None = typer.Option(
        None, "--log-dir", help="ログ出力先（既定: $BRANCHOPS_LOG_DIR または ~/.branchops/logs）"
    ),
) -> None:
    try:
        cfg = load_config(config)
    except BranchOpsError as e:
        _fail(e)
    setup_logging(log_dir=log_dir, level=log_level)
    ctx.obj = _State(config=cfg)


@app.command("create-local-branch")
def create_local_branch(
    ctx: typer.Context,
    branch: str = typer.Option(..., "--branch", help="作成するブランチ名"),
    repo_path: Path = typer.Option(Path("."), "--repo-path", help="git 作業ツリー"),
    base_branch: str | None = typer.Option(None, "--base-branch", help="派生元ブランチ（既定: 設定の base_branch）"),
    export_to: Path | None = typer.Option(None, "--export-to", help="作業ツリーを書き出してから操作する"),
    overwrite: bool = typer.Option(True, "--overwrite/--no-overwrite", help="既存ブランチを上書きする"),
) -> None:
    """base branch から新しいローカルブランチを作る。"""
    cfg = _config(ctx)
    try:
        repo = _open_repo(repo_path, export_to)
        ref = ensure_local_branch(
            repo, base_branch or cfg.github.base_branch, branch, overwrite=overwrite
        )
    except BranchOpsError as e:
        _fail(e)
    _ok(f"created local branch {ref.branch} at {ref.hash}")


@app.command("commit-changes")
def commit_changes(
    ctx: typer.Context,
    branch: str = typer.Option(..., "--branch", help="コミット先ブランチ"),
    title: str = typer.Option("Update file", "--title", help="コミットタイトル"),
    repo_path: Path = typer.Option(Path("."), "--repo-path", help="git 作業ツリー"),
    export_to: Path | None = typer.Option(None, "--export-to", help="作業ツリーを書き出してから操作する"),
    author_name: str | None = typer.Option(None, "--author-name", help="author 名"),
    author_email: str | None = typer.Option(None, "--author-email", help="author メール"),
) -> None:
    """作業ツリーの変更を全てコミットする。"""
    cfg = _config(ctx)
    try:
        author = cfg.author_identity(author_name, author_email)
        repo = _open_repo(repo_path, export_to)
        record = commit_all_changes(repo, branch, title, author)
    except BranchOpsError as e:
        _fail(e)
    _ok(f"successfully committed changes ({record.hash[:12]} on {branch})")


@app.command("get-file")
def get_file(
    ctx: typer.Context,
    branch: str = typer.Option(..., "--branch", help="対象ブランチ"),
    file_path: str = typer.Option(..., "--file-path", help="リポジトリ内のファイルパス"),
    owner: str | None = typer.Option(None, "--owner"),
    repo: str | None = typer.Option(None, "--repo"),
    token: str | None = typer.Option(None, "--token", help="GitHub トークン（既定: 環境変数）"),
) -> None:
    """リモートのファイル内容を base64 のまま表示する。"""
    cfg = _config(ctx)
    try:
        o, r = _owner_repo(cfg, owner, repo)
        content = fetch_remote_file_content(_client(cfg, token), o, r, branch, file_path)
    except BranchOpsError as e:
        _fail(e)
    # パイプで使えるよう装飾しない
    typer.echo(content)


@app.command("create-pr")
def create_pr(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", help="PR タイトル"),
    head: str = typer.Option(..., "--head", help="PR 元ブランチ"),
    base: str | None = typer.Option(None, "--base", help="PR 先ブランチ（既定: 設定の base_branch）"),
    body: str = typer.Option("", "--body", help="PR 本文"),
    owner: str | None = typer.Option(None, "--owner"),
    repo: str | None = typer.Option(None, "--repo"),
    token: str | None = typer.Option(None, "--token", help="GitHub トークン（既定: 環境変数）"),
) -> None:
    """プルリクエストを作成する。"""
    cfg = _config(ctx)
    try:
        o, r = _owner_repo(cfg, owner, repo)
        msg = open_pull_request(
            _client(cfg, token),
            o,
            r,
            title=title,
            head=head,
            base=base or cfg.github.base_branch,
            body=body,
        )
    except BranchOpsError as e:
        _fail(e)
    _ok(msg)


@app.command("create-remote-branch")
def create_remote_branch_cmd(
    ctx: typer.Context,
    branch: str = typer.Option(..., "--branch", help="作成するブランチ名"),
    base: str | None = typer.Option(None, "--base", help="派生元ブランチ（既定: 設定の base_branch）"),
    owner: str | None = typer.Option(None, "--owner"),
    repo: str | None = typer.Option(None, "--repo"),
    token: str | None = typer.Option(None, "--token", help="GitHub トークン（既定: 環境変数）"),
) -> None:
    """GitHub 上に base から新しいブランチを作る。"""
    cfg = _config(ctx)
    try:
        o, r = _owner_repo(cfg, owner, repo)
        msg = create_remote_branch(
            _client(cfg, token), o, r, base=base or cfg.github.base_branch, new_branch=branch
        )
    except BranchOpsError as e:
        _fail(e)
    _ok(msg)


@app.command("check-version")
def check_version(
    ctx: typer.Context,
    resource_dir: Path = typer.Option(Path("."), "--dir", help="リソースのルート"),
    cm_path: str | None = typer.Option(None, "--cm-path", help="バージョンを持つ ConfigMap（--dir からの相対）"),
    latest: str | None = typer.Option(None, "--latest", help="最新版（省略時はリリースフィードから取得）"),
) -> None:
    """上流の最新版とローカル版を比べ、PR が必要か表示する。"""
    cfg = _config(ctx)
    up = cfg.upstream
    try:
        local = read_local_version(resource_dir / (cm_path or up.cm_path))
        if latest is None:
            latest = fetch_latest_release(
                up.owner, up.repo, api_url=cfg.github.api_url, policy=cfg.retry_policy()
            ).tag_name
        check = check_versions(latest, local)
    except BranchOpsError as e:
        _fail(e)
    console.print(check.message, markup=False, emoji=False)
    _ok(update_decision(check))


@app.command("upgrade")
def upgrade(
    ctx: typer.Context,
    repo_path: Path = typer.Option(Path("."), "--repo-path", help="git 作業ツリー"),
    cm_path: str | None = typer.Option(None, "--cm-path", help="バージョンを持つ ConfigMap（作業ツリーからの相対）"),
    latest: str | None = typer.Option(None, "--latest", help="最新版（省略時はリリースフィードから取得）"),
    branch: str | None = typer.Option(None, "--branch", help="作業ブランチ（既定: upgrade-<repo>-<version>）"),
    base_branch: str | None = typer.Option(None, "--base-branch"),
    title: str | None = typer.Option(None, "--title", help="コミットタイトル"),
    author_name: str | None = typer.Option(None, "--author-name"),
    author_email: str | None = typer.Option(None, "--author-email"),
) -> None:
    """新しい版があればブランチを作って版数を書き換え、コミットする。"""
    cfg = _config(ctx)
    up = cfg.upstream
    path = cm_path or up.cm_path
    try:
        author = cfg.author_identity(author_name, author_email)
        repo = open_repository(repo_path)
        local = read_local_version(repo.path / path)
        if latest is None:
            latest = fetch_latest_release(
                up.owner, up.repo, api_url=cfg.github.api_url, policy=cfg.retry_policy()
            ).tag_name
        check = check_versions(latest, local)
        target = branch or upgrade_branch_name(up.repo, latest)
        record = apply_upgrade(
            repo,
            cm_path=path,
            check=check,
            branch=target,
            base_branch=base_branch or cfg.github.base_branch,
            commit_title=title or f"Upgrade {up.repo} to {latest}",
            author=author,
        )
    except BranchOpsError as e:
        _fail(e)
    if record is None:
        _ok(check.message)
        return
    _ok(f"{check.message} (committed {record.hash[:12]} on {target})")


@app.command("tool")
def tool(
    ctx: typer.Context,
    name: str = typer.Argument(..., help=f"実行するツール ({' | '.join(TOOLS)})"),
    args: list[str] | None = typer.Argument(None, help="ツールに渡す引数（-- の後ろに書く）"),
    workdir: Path = typer.Option(Path("."), "--workdir", help="/work にマウントするディレクトリ"),
    token_env: str | None = typer.Option(None, "--token-env", help="コンテナへ渡すトークンの環境変数名"),
    print_only: bool = typer.Option(False, "--print-only", help="docker コマンドを表示するだけ"),
) -> None:
    """git / gh をバージョン固定したコンテナで実行する。"""
    cfg = _config(ctx)
    tool_args = list(args or [])
    try:
        image = cfg.image_for(name)
        if print_only:
            cmd = build_tool_cmd(
                name, tool_args, workdir=workdir.resolve(), image=image, token_env=token_env
            )
            typer.echo(" ".join(cmd))
            return
        result = run_tool(
            name, tool_args, workdir=workdir.resolve(), image=image, token_env=token_env
        )
    except BranchOpsError as e:
        _fail(e)
    if result.stdout:
        typer.echo(result.stdout.rstrip("\n"))
    if not result.ok:
        _fail(BranchOpsError(f"{name} failed (exit {result.returncode}): {result.stderr.strip()}"))
