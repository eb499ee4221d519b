from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from branchops.git_ops import AuthorIdentity, GitRepo

VERSION_CM = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: istio-version
  namespace: flux-system
  annotations:
    kustomize.toolkit.fluxcd.io/ssa: merge
data:
  version: 1.21.2
"""


@pytest.fixture()
def author() -> AuthorIdentity:
    return AuthorIdentity(name="ci-bot", email="ci-bot@example.invalid")


@pytest.fixture()
def git_repo(tmp_path: Path, author: AuthorIdentity) -> GitRepo:
    """main に1コミットだけあるリポジトリ。"""
    if shutil.which("git") is None:
        pytest.skip("git not available")

    root = tmp_path / "repo"
    root.mkdir()
    repo = GitRepo(root)
    repo.ensure_repo()
    (root / "README.md").write_text("# test\n", encoding="utf-8")
    repo.add_all()
    repo.commit("init", author)
    return repo


@pytest.fixture()
def version_cm(tmp_path: Path) -> Path:
    p = tmp_path / "test-data" / "istio-version.yaml"
    p.parent.mkdir(parents=True)
    p.write_text(VERSION_CM, encoding="utf-8")
    return p
