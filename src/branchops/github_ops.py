"""GitHub REST 操作。

- 認証は呼び出しごとに渡される Secret（bearer token）
- 使うエンドポイント: git/ref 取得, contents 取得, git/refs 作成, pulls 作成
- エラー時はレスポンス本文をそのまま例外に載せる（診断用）

実装は requests（gh CLI を使う場合は tool_container 経由でコンテナ内実行する）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import requests

from branchops.errors import (
    APIError,
    ContentNotFoundError,
    ParseError,
    PullRequestCreationError,
    RefNotFoundError,
)
from branchops.network import RetryPolicy
from branchops.tokens import Secret

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


def _json(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise ParseError(f"invalid JSON from {resp.url}: {e}") from e


@dataclass
class GitHubClient:
    token: Secret
    api_url: str = DEFAULT_API_URL
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.token.plaintext()}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _call(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self.api_url.rstrip("/") + path
        headers = self._headers()
        logger.debug("github %s %s", method, path)
        try:
            return self.policy.request(self.session, method, url, headers=headers, **kwargs)
        except requests.RequestException as e:
            raise APIError(f"{method} {path} failed: {e}") from e

    def get_ref(self, owner: str, repo: str, branch: str) -> tuple[str, str]:
        """branch の (ref名, sha) を返す。"""
        resp = self._call("GET", f"/repos/{owner}/{repo}/git/ref/heads/{quote(branch)}")
        if resp.status_code == 404:
            raise RefNotFoundError(
                f"failed to get ref: refs/heads/{branch}", status=404, body=resp.text
            )
        if not resp.ok:
            raise APIError("failed to get ref", status=resp.status_code, body=resp.text)

        data = _json(resp)
        # 完全一致しない場合 GitHub は前方一致した ref の配列を返す
        if not isinstance(data, dict):
            raise RefNotFoundError(f"failed to get ref: refs/heads/{branch}", status=404)
        try:
            return str(data["ref"]), str(data["object"]["sha"])
        except (KeyError, TypeError) as e:
            raise ParseError(f"unexpected ref payload for {branch}") from e

    def get_contents(self, owner: str, repo: str, path: str, ref: str) -> dict[str, Any]:
        resp = self._call(
            "GET",
            f"/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'), safe='/')}",
            params={"ref": ref},
        )
        if resp.status_code == 404:
            raise ContentNotFoundError(
                f"failed to get contents: {path}@{ref}", status=404, body=resp.text
            )
        if not resp.ok:
            raise APIError("failed to get contents", status=resp.status_code, body=resp.text)

        data = _json(resp)
        if isinstance(data, list):
            raise ContentNotFoundError(f"failed to get contents: {path} is a directory")
        if data.get("type", "file") != "file" or data.get("content") is None:
            raise ContentNotFoundError(f"failed to get contents: {path} has no file content")
        # 1MB 超のファイルは content="" / encoding="none" で返ってくる
        if data.get("encoding") == "none" or not data.get("content"):
            raise ContentNotFoundError(
                f"failed to get contents: {path} is too large for the contents API"
            )
        return data

    def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> dict[str, Any]:
        resp = self._call(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": ref, "sha": sha},
        )
        if not resp.ok:
            raise APIError(
                f"failed to create ref: {ref}", status=resp.status_code, body=resp.text
            )
        return _json(resp)

    def create_pull_request(
        self,
        owner: str,
        repo: str,
        *,
        title: str,
        head: str,
        base: str,
        body: str = "",
    ) -> dict[str, Any]:
        payload = {"title": title, "head": head, "base": base}
        if body:
            payload["body"] = body
        resp = self._call("POST", f"/repos/{owner}/{repo}/pulls", json=payload)
        if not resp.ok:
            raise PullRequestCreationError(
                f"failed to create pull request with error: HTTP {resp.status_code}",
                status=resp.status_code,
                body=resp.text,
            )
        return _json(resp)


def fetch_remote_file_content(
    client: GitHubClient, owner: str, repo: str, branch: str, file_path: str
) -> str:
    """branch 上の file_path の内容を base64 のまま返す。"""
    ref, _ = client.get_ref(owner, repo, branch)
    data = client.get_contents(owner, repo, file_path, ref)
    return str(data["content"])


def open_pull_request(
    client: GitHubClient,
    owner: str,
    repo: str,
    *,
    title: str,
    head: str,
    base: str,
    body: str = "",
) -> str:
    data = client.create_pull_request(owner, repo, title=title, head=head, base=base, body=body)
    url = data.get("html_url", "") if isinstance(data, dict) else ""
    logger.info("created pull request %s (%s -> %s)", url or title, head, base)
    if url:
        return f"successfully created the pull request: {url}"
    return "successfully created the pull request"


def create_remote_branch(
    client: GitHubClient, owner: str, repo: str, *, base: str, new_branch: str
) -> str:
    """base の先頭 sha から new_branch を GitHub 上に作る。"""
    _, sha = client.get_ref(owner, repo, base)
    client.create_ref(owner, repo, f"refs/heads/{new_branch}", sha)
    logger.info("created remote branch %s at %s", new_branch, sha)
    return f"created remote branch {new_branch}"
