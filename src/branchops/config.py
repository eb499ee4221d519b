"""branchops の設定。

設定ファイル: `branchops.toml`（デフォルト）。無ければ全てデフォルト値。

トークンはこのファイルに直書きしない。
環境変数名（token_env）またはトークンファイル（token_file）で参照する。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from branchops.errors import ConfigError
from branchops.git_ops import AuthorIdentity
from branchops.network import RetryPolicy
from branchops.tool_container import DEFAULT_GH_IMAGE, DEFAULT_GIT_IMAGE
from branchops.upstream import DEFAULT_CM_PATH

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]

DEFAULT_CONFIG_PATH = Path("branchops.toml")


@dataclass
class GitHubConfig:
    owner: str = ""
    repo: str = ""
    base_branch: str = "master"
    api_url: str = "https://api.github.com"
    token_env: str = "GITHUB_TOKEN"
    token_file: str = ""


@dataclass
class AuthorConfig:
    name: str = ""
    email: str = ""


@dataclass
class NetworkConfig:
    timeout_seconds: float = 30.0
    retries: int = 3
    backoff_seconds: float = 1.0


@dataclass
class UpstreamConfig:
    owner: str = "istio"
    repo: str = "istio"
    cm_path: str = DEFAULT_CM_PATH


@dataclass
class ContainerConfig:
    git_image: str = DEFAULT_GIT_IMAGE
    gh_image: str = DEFAULT_GH_IMAGE


@dataclass
class BranchOpsConfig:
    github: GitHubConfig = field(default_factory=GitHubConfig)
    author: AuthorConfig = field(default_factory=AuthorConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    container: ContainerConfig = field(default_factory=ContainerConfig)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout_seconds=self.network.timeout_seconds,
            retries=self.network.retries,
            backoff_seconds=self.network.backoff_seconds,
        )

    def author_identity(self, name: str | None = None, email: str | None = None) -> AuthorIdentity:
        """CLI の値 > 設定ファイル の順で author を決める。どちらも無ければ ConfigError。"""
        n = name or self.author.name
        e = email or self.author.email
        if not n or not e:
            raise ConfigError(
                "commit author is required: set [author] name/email in branchops.toml "
                "or pass --author-name/--author-email"
            )
        return AuthorIdentity(name=n, email=e)

    def image_for(self, tool: str) -> str | None:
        if tool == "git":
            return self.container.git_image
        if tool == "gh":
            return self.container.gh_image
        return None


def load_config(path: Path | None = None) -> BranchOpsConfig:
    if path is None:
        path = DEFAULT_CONFIG_PATH
    if not path.exists():
        return BranchOpsConfig()

    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid config {path}: {e}") from e

    github = raw.get("github", {})
    author = raw.get("author", {})
    network = raw.get("network", {})
    upstream = raw.get("upstream", {})
    container = raw.get("container", {})

    try:
        return BranchOpsConfig(
            github=GitHubConfig(
                owner=str(github.get("owner", "")),
                repo=str(github.get("repo", "")),
                base_branch=str(github.get("base_branch", "master")),
                api_url=str(github.get("api_url", "https://api.github.com")),
                token_env=str(github.get("token_env", "GITHUB_TOKEN")),
                token_file=str(github.get("token_file", "")),
            ),
            author=AuthorConfig(
                name=str(author.get("name", "")),
                email=str(author.get("email", "")),
            ),
            network=NetworkConfig(
                timeout_seconds=float(network.get("timeout_seconds", 30.0)),
                retries=int(network.get("retries", 3)),
                backoff_seconds=float(network.get("backoff_seconds", 1.0)),
            ),
            upstream=UpstreamConfig(
                owner=str(upstream.get("owner", "istio")),
                repo=str(upstream.get("repo", "istio")),
                cm_path=str(upstream.get("cm_path", DEFAULT_CM_PATH)),
            ),
            container=ContainerConfig(
                git_image=str(container.get("git_image", DEFAULT_GIT_IMAGE)),
                gh_image=str(container.get("gh_image", DEFAULT_GH_IMAGE)),
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid config {path}: {e}") from e
