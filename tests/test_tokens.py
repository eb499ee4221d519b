"""tokens モジュールのテスト。"""

from pathlib import Path

import pytest

from branchops.errors import AuthError
from branchops.tokens import load_github_token


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)


def test_explicit_wins(monkeypatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "from-env")
    assert load_github_token(explicit="cli").plaintext() == "cli"


def test_env_var(monkeypatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", " env-token\n")
    assert load_github_token().plaintext() == "env-token"


def test_custom_env_var_then_gh_token(monkeypatch) -> None:
    monkeypatch.setenv("GH_TOKEN", "gh")
    assert load_github_token(env_var="MY_TOKEN").plaintext() == "gh"
    monkeypatch.setenv("MY_TOKEN", "mine")
    assert load_github_token(env_var="MY_TOKEN").plaintext() == "mine"


def test_token_file(tmp_path: Path) -> None:
    f = tmp_path / "token.txt"
    f.write_text("file-token\n", encoding="utf-8")
    assert load_github_token(token_file=f).plaintext() == "file-token"


def test_unreadable_token_file(tmp_path: Path) -> None:
    with pytest.raises(AuthError):
        load_github_token(token_file=tmp_path / "missing.txt")


def test_missing_token_raises() -> None:
    with pytest.raises(AuthError) as ei:
        load_github_token()
    assert "GITHUB_TOKEN" in str(ei.value)
