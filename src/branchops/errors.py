"""branchops の例外定義。

呼び出し側（CLI）は BranchOpsError だけ捕まえれば良い。
原因となった例外は `raise ... from e` で必ず連結する。
"""

from __future__ import annotations


class BranchOpsError(Exception):
    """branchops の全エラーの基底。"""


class ConfigError(BranchOpsError):
    """設定値が足りない/不正。"""


class RepositoryError(BranchOpsError):
    """git リポジトリとして開けない、または git 自体が使えない。"""


class ReferenceNotFoundError(BranchOpsError):
    """ローカルの branch/ref が見つからない。"""

    def __init__(self, ref: str) -> None:
        super().__init__(f"reference not found: {ref}")
        self.ref = ref


class BranchExistsError(BranchOpsError):
    """overwrite=False で既存ブランチに書き込もうとした。"""

    def __init__(self, ref: str) -> None:
        super().__init__(f"branch already exists: {ref}")
        self.ref = ref


class StagingError(BranchOpsError):
    pass


class CommitError(BranchOpsError):
    pass


class AuthError(BranchOpsError):
    """GitHub トークンが取得できない。"""


class ParseError(BranchOpsError):
    """バージョン文書/semver 文字列/レスポンスJSON が解釈できない。"""


class APIError(BranchOpsError):
    """GitHub API 呼び出しの失敗。

    status はHTTPステータス（接続失敗時は None）、body はレスポンス本文をそのまま保持する。
    """

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        if body:
            message = f"{message}\nMore details in response: {body}"
        super().__init__(message)
        self.status = status
        self.body = body


class RefNotFoundError(APIError):
    pass


class ContentNotFoundError(APIError):
    pass


class PullRequestCreationError(APIError):
    pass
