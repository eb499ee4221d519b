"""git 操作ユーティリティとブランチ・オーケストレーション。

方針:
- git の実体は `git` バイナリ（subprocess）。オブジェクトDBを自前で触らない
- 1回の操作につき1つの作業ツリーを専有する（ロックは持たない。直列化は呼び出し側の責任）
- ブランチ作成はメタデータ書き込みのみ。コミットは作らない

GitHub 側の操作は github_ops で扱う。
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from branchops.errors import (
    BranchExistsError,
    CommitError,
    ReferenceNotFoundError,
    RepositoryError,
    StagingError,
)

logger = logging.getLogger(__name__)


def branch_ref_name(branch: str) -> str:
    return f"refs/heads/{branch}"


@dataclass(frozen=True)
class AuthorIdentity:
    name: str
    email: str


@dataclass(frozen=True)
class BranchReference:
    name: str  # refs/heads/<branch>
    hash: str

    @property
    def branch(self) -> str:
        return self.name.removeprefix("refs/heads/")


@dataclass(frozen=True)
class CommitRecord:
    message: str
    author_name: str
    author_email: str
    parent: str
    hash: str
    tree: str


@dataclass
class GitRepo:
    path: Path

    def _exec(
        self, args: list[str], *, env: dict[str, str] | None = None
    ) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.path,
                text=True,
                capture_output=True,
                check=False,
                env=env,
            )
        except FileNotFoundError as e:
            raise RepositoryError("git is not installed or not in PATH") from e

    def run(self, args: list[str], *, env: dict[str, str] | None = None) -> str:
        proc = self._exec(args, env=env)
        if proc.returncode != 0:
            raise RuntimeError(proc.stderr.strip() or "git failed")
        return proc.stdout.strip()

    def ensure_repo(self) -> None:
        if (self.path / ".git").exists():
            return
        # default branch を main に揃える
        self.run(["init", "-b", "main"])

    def is_work_tree(self) -> bool:
        if not self.path.is_dir():
            return False
        proc = self._exec(["rev-parse", "--is-inside-work-tree"])
        return proc.returncode == 0 and proc.stdout.strip() == "true"

    def branch_exists(self, branch: str) -> bool:
        proc = self._exec(["show-ref", "--verify", "--quiet", branch_ref_name(branch)])
        return proc.returncode == 0

    def resolve(self, rev: str) -> str:
        """rev をコミットハッシュに解決する。無ければ ReferenceNotFoundError。"""
        proc = self._exec(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
        if proc.returncode != 0:
            raise ReferenceNotFoundError(rev)
        return proc.stdout.strip()

    def head(self) -> str:
        return self.resolve("HEAD")

    def tree_of(self, rev: str) -> str:
        return self.run(["rev-parse", f"{rev}^{{tree}}"])

    def current_branch(self) -> str:
        return self.run(["rev-parse", "--abbrev-ref", "HEAD"])

    def checkout(self, branch: str, create: bool = False) -> None:
        if create:
            self.run(["checkout", "-b", branch])
        else:
            self.run(["checkout", branch])

    def set_ref(self, branch: str, commit: str) -> None:
        self.run(["update-ref", branch_ref_name(branch), commit])

    def point_head(self, branch: str) -> None:
        """HEAD を branch に付け替える（作業ツリー/index はそのまま）。"""
        self.run(["symbolic-ref", "HEAD", branch_ref_name(branch)])

    def status(self) -> list[str]:
        proc = self._exec(["status", "--porcelain"])
        if proc.returncode != 0:
            raise RuntimeError(proc.stderr.strip() or "git status failed")
        return [line for line in proc.stdout.splitlines() if line]

    def add_all(self) -> None:
        self.run(["add", "-A"])

    def commit(self, message: str, author: AuthorIdentity | None = None) -> None:
        env = None
        if author is not None:
            # author/committer を固定する。ユーザーの git config には依存しない
            env = dict(**os.environ)
            env["GIT_AUTHOR_NAME"] = author.name
            env["GIT_AUTHOR_EMAIL"] = author.email
            env["GIT_COMMITTER_NAME"] = author.name
            env["GIT_COMMITTER_EMAIL"] = author.email
        self.run(
            [
                "-c",
                "commit.gpgsign=false",
                "commit",
                "--allow-empty",
                "--no-verify",
                "-m",
                message,
            ],
            env=env,
        )


def open_repository(path: Path) -> GitRepo:
    repo = GitRepo(path.resolve())
    if not repo.is_work_tree():
        raise RepositoryError(f"failed to open repository: not a git work tree: {path}")
    return repo


def export_repository(source: Path, dest: Path) -> GitRepo:
    """source の内容（.git 含む）を dest に書き出して開く。

    dest が既にあれば上書きコピーする。同じ dest を並行して使ってはいけない。
    """
    if not source.is_dir():
        raise RepositoryError(f"failed to export repository: no such directory: {source}")
    try:
        shutil.copytree(source, dest, symlinks=True, dirs_exist_ok=True)
    except OSError as e:
        raise RepositoryError(f"failed to export repository: {e}") from e
    logger.info("exported repository %s -> %s", source, dest)
    return open_repository(dest)


def ensure_local_branch(
    repo: GitRepo,
    base_branch: str,
    new_branch: str,
    *,
    overwrite: bool = True,
) -> BranchReference:
    """base_branch を checkout し、その HEAD に new_branch を作る。

    既存の new_branch は overwrite=True なら fast-forward 判定なしで上書きする。
    失敗しても checkout は巻き戻さない。
    """
    if not repo.branch_exists(base_branch):
        raise ReferenceNotFoundError(branch_ref_name(base_branch))
    if not overwrite and repo.branch_exists(new_branch):
        raise BranchExistsError(branch_ref_name(new_branch))

    try:
        repo.checkout(base_branch)
    except RuntimeError as e:
        raise RepositoryError(f"failed to checkout {base_branch}: {e}") from e

    head = repo.head()

    try:
        repo.set_ref(new_branch, head)
    except RuntimeError as e:
        raise RepositoryError(f"failed to set reference: {e}") from e

    logger.info("created local branch %s at %s (base=%s)", new_branch, head, base_branch)
    return BranchReference(name=branch_ref_name(new_branch), hash=head)


def commit_all_changes(
    repo: GitRepo,
    branch_name: str,
    commit_title: str,
    author: AuthorIdentity,
) -> CommitRecord:
    """作業ツリーの変更を全て stage して branch_name にコミットする。

    branch_name は現在の HEAD に作成/上書きされ、HEAD はそのブランチを指す。
    差分が無くても空コミットを作る。
    """
    parent = repo.head()

    try:
        repo.set_ref(branch_name, parent)
        repo.point_head(branch_name)
    except RuntimeError as e:
        raise RepositoryError(f"failed to set reference: {e}") from e

    try:
        repo.add_all()
    except RuntimeError as e:
        raise StagingError(f"failed to add changes: {e}") from e

    try:
        repo.commit(commit_title, author)
    except RuntimeError as e:
        raise CommitError(f"failed to commit changes: {e}") from e

    new_hash = repo.head()
    record = CommitRecord(
        message=commit_title,
        author_name=author.name,
        author_email=author.email,
        parent=parent,
        hash=new_hash,
        tree=repo.tree_of(new_hash),
    )
    logger.info("committed %s on %s (parent=%s)", new_hash, branch_name, parent)
    return record
