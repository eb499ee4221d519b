"""GitHub トークン管理。

読み込み優先順位:
1. 明示的に渡された値（CLI --token）
2. 環境変数（既定 GITHUB_TOKEN、無ければ GH_TOKEN）
3. トークンファイル（branchops.toml の github.token_file）

トークンはメモリ上でのみ保持し、ログやエラーメッセージには絶対に出力しない。
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from branchops.errors import AuthError


@dataclass(frozen=True)
class Secret:
    """repr に値を出さないトークン入れ物。"""

    _value: str = field(repr=False)

    def plaintext(self) -> str:
        if not self._value:
            raise AuthError("failed to get token: empty secret")
        return self._value


def load_github_token(
    *,
    explicit: str | None = None,
    env_var: str = "GITHUB_TOKEN",
    token_file: Path | None = None,
) -> Secret:
    if explicit:
        return Secret(explicit.strip())

    for name in (env_var, "GH_TOKEN"):
        value = os.environ.get(name, "").strip()
        if value:
            return Secret(value)

    if token_file is not None:
        try:
            content = token_file.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise AuthError(f"failed to get token: cannot read {token_file}") from e
        if content:
            return Secret(content)

    msg = (
        "failed to get token: GitHub トークンが設定されていません。\n"
        f"{env_var} 環境変数を設定するか、branchops.toml の "
        "[github] token_file を確認してください。"
    )
    raise AuthError(msg)
