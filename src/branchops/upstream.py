"""上流リリースの追従（istio など）。

- 最新版: GitHub の `releases/latest` の tag_name
- ローカル版: ConfigMap 形式の YAML の `data.version`
- 比較は semver（packaging.version）。解釈できない文字列は ParseError

"更新不要" はエラーではなく正常終了として扱う。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests
import yaml
from packaging.version import InvalidVersion, Version

from branchops.errors import APIError, BranchOpsError, ParseError
from branchops.git_ops import (
    AuthorIdentity,
    CommitRecord,
    GitRepo,
    commit_all_changes,
    ensure_local_branch,
)
from branchops.network import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_CM_PATH = "./test-data/istio-version.yaml"

MSG_NEWER = "newer version available"
MSG_NO_UPDATE = "no update needed"


@dataclass(frozen=True)
class Release:
    tag_name: str
    name: str = ""


@dataclass(frozen=True)
class VersionCheck:
    latest: str
    local: str
    newer: bool

    @property
    def message(self) -> str:
        if self.newer:
            return f"{MSG_NEWER}: {self.local} -> {self.latest}"
        return f"{MSG_NO_UPDATE}: {self.local}"


def fetch_latest_release(
    owner: str = "istio",
    repo: str = "istio",
    *,
    api_url: str = "https://api.github.com",
    policy: RetryPolicy | None = None,
    session: requests.Session | None = None,
) -> Release:
    policy = policy or RetryPolicy()
    session = session or requests.Session()
    url = f"{api_url.rstrip('/')}/repos/{owner}/{repo}/releases/latest"
    try:
        resp = policy.request(session, "GET", url, headers={"Accept": "application/vnd.github+json"})
    except requests.RequestException as e:
        raise APIError(f"failed to get latest version: {e}") from e
    if not resp.ok:
        raise APIError(
            "failed to get latest version", status=resp.status_code, body=resp.text
        )

    try:
        raw = resp.json()
    except ValueError as e:
        raise ParseError(f"failed to unmarshal json: {e}") from e
    if not isinstance(raw, dict) or not raw.get("tag_name"):
        raise ParseError("failed to unmarshal json: tag_name missing")
    return Release(tag_name=str(raw["tag_name"]), name=str(raw.get("name") or ""))


def _load_document(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise BranchOpsError(f"failed to read file contents: {path}: {e}") from e
    try:
        # BaseLoader: スカラーを文字列のまま読む（`version: 1.20` を 1.2 にしない）
        doc = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        raise ParseError(f"failed to unmarshal yaml: {e}") from e
    if not isinstance(doc, dict):
        raise ParseError(f"failed to unmarshal yaml: {path} is not a mapping")
    return doc


def read_local_version(path: Path) -> str:
    doc = _load_document(path)
    data = doc.get("data")
    version = data.get("version") if isinstance(data, dict) else None
    if not isinstance(version, str) or not version.strip():
        raise ParseError(f"data.version missing in {path}")
    return version.strip()


def write_local_version(path: Path, version: str) -> None:
    """data.version だけ書き換える（他のキーと順序は保持、スカラーは文字列として書き戻す）。"""
    doc = _load_document(path)
    data = doc.get("data")
    if not isinstance(data, dict):
        raise ParseError(f"data section missing in {path}")
    data["version"] = version
    path.write_text(
        yaml.safe_dump(doc, sort_keys=False, allow_unicode=True, default_flow_style=False),
        encoding="utf-8",
    )
    logger.info("rewrote %s data.version=%s", path, version)


def parse_version(raw: str) -> Version:
    try:
        return Version(raw.strip())
    except InvalidVersion as e:
        raise ParseError(f"failed to parse version: {raw!r}") from e


def is_newer_version(latest: str, local: str) -> bool:
    return parse_version(latest) > parse_version(local)


def check_versions(latest: str, local: str) -> VersionCheck:
    return VersionCheck(latest=latest, local=local, newer=is_newer_version(latest, local))


def update_decision(check: VersionCheck) -> str:
    return "Create PR" if check.newer else "No PR needed"


def upgrade_branch_name(package: str, version: str) -> str:
    return f"upgrade-{package}-{version.lstrip('v')}"


def apply_upgrade(
    repo: GitRepo,
    *,
    cm_path: str,
    check: VersionCheck,
    branch: str,
    base_branch: str,
    commit_title: str,
    author: AuthorIdentity,
) -> CommitRecord | None:
    """新しい版があれば branch を作り、版数を書き換えてコミットする。

    更新不要なら何もせず None を返す。
    """
    if not check.newer:
        logger.info("%s", check.message)
        return None

    ensure_local_branch(repo, base_branch, branch)
    write_local_version(repo.path / cm_path, check.latest)
    return commit_all_changes(repo, branch, commit_title, author)
