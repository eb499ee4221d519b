"""upstream（バージョン追従）のテスト。"""

from pathlib import Path

import pytest
import yaml

from branchops.errors import APIError, BranchOpsError, ParseError
from branchops.git_ops import AuthorIdentity, GitRepo
from branchops.network import RetryPolicy
from branchops.upstream import (
    VersionCheck,
    apply_upgrade,
    check_versions,
    fetch_latest_release,
    is_newer_version,
    read_local_version,
    update_decision,
    upgrade_branch_name,
    write_local_version,
)

from conftest import VERSION_CM
from fakes import FakeSession, make_response


def test_newer_version() -> None:
    assert is_newer_version("1.2.0", "1.1.9") is True
    assert is_newer_version("1.1.9", "1.2.0") is False


def test_v_prefixed_tags() -> None:
    assert is_newer_version("v1.10.0", "1.9.3") is True


def test_equal_versions_no_update() -> None:
    check = check_versions("1.2.0", "1.2.0")
    assert check.newer is False
    assert check.message.startswith("no update needed")
    assert update_decision(check) == "No PR needed"


def test_newer_message_and_decision() -> None:
    check = check_versions("1.2.0", "1.1.9")
    assert check.message == "newer version available: 1.1.9 -> 1.2.0"
    assert update_decision(check) == "Create PR"


@pytest.mark.parametrize("latest,local", [("not-a-version", "1.0.0"), ("1.0.0", "")])
def test_malformed_version_raises(latest: str, local: str) -> None:
    with pytest.raises(ParseError):
        is_newer_version(latest, local)


def test_read_local_version(version_cm: Path) -> None:
    assert read_local_version(version_cm) == "1.21.2"


def test_read_local_version_keeps_scalar_text(tmp_path: Path) -> None:
    p = tmp_path / "cm.yaml"
    p.write_text("data:\n  version: 1.20\n", encoding="utf-8")

    local = read_local_version(p)

    assert local == "1.20"
    assert is_newer_version("1.3.0", local) is False


def test_write_local_version_keeps_numeric_looking_fields(tmp_path: Path) -> None:
    p = tmp_path / "cm.yaml"
    p.write_text("metadata:\n  revision: 1.10\ndata:\n  version: 1.20\n", encoding="utf-8")

    write_local_version(p, "1.21.0")

    assert read_local_version(p) == "1.21.0"
    doc = yaml.load(p.read_text(encoding="utf-8"), Loader=yaml.BaseLoader)
    assert doc["metadata"]["revision"] == "1.10"


def test_read_local_version_missing_field(tmp_path: Path) -> None:
    p = tmp_path / "cm.yaml"
    p.write_text("apiVersion: v1\ndata: {}\n", encoding="utf-8")
    with pytest.raises(ParseError):
        read_local_version(p)


def test_read_local_version_bad_yaml(tmp_path: Path) -> None:
    p = tmp_path / "cm.yaml"
    p.write_text("data: [unclosed\n", encoding="utf-8")
    with pytest.raises(ParseError):
        read_local_version(p)


def test_read_local_version_missing_file(tmp_path: Path) -> None:
    with pytest.raises(BranchOpsError):
        read_local_version(tmp_path / "nope.yaml")


def test_write_local_version_keeps_other_fields(version_cm: Path) -> None:
    write_local_version(version_cm, "1.22.0")

    doc = yaml.safe_load(version_cm.read_text(encoding="utf-8"))
    assert doc["data"]["version"] == "1.22.0"
    assert doc["metadata"]["annotations"]["kustomize.toolkit.fluxcd.io/ssa"] == "merge"
    assert list(doc) == ["apiVersion", "kind", "metadata", "data"]


def test_fetch_latest_release() -> None:
    session = FakeSession(make_response(200, {"tag_name": "1.22.1", "name": "Istio 1.22.1"}))
    rel = fetch_latest_release(
        "istio",
        "istio",
        api_url="https://api.example.test",
        policy=RetryPolicy(retries=1),
        session=session,  # type: ignore[arg-type]
    )
    assert rel.tag_name == "1.22.1"
    assert session.calls[0]["url"] == "https://api.example.test/repos/istio/istio/releases/latest"


def test_fetch_latest_release_http_error() -> None:
    session = FakeSession(make_response(403, text='{"message":"API rate limit exceeded"}'))
    with pytest.raises(APIError) as ei:
        fetch_latest_release(policy=RetryPolicy(retries=1), session=session)  # type: ignore[arg-type]
    assert "rate limit" in ei.value.body


def test_fetch_latest_release_without_tag() -> None:
    session = FakeSession(make_response(200, {"name": "x"}))
    with pytest.raises(ParseError):
        fetch_latest_release(policy=RetryPolicy(retries=1), session=session)  # type: ignore[arg-type]


def test_upgrade_branch_name() -> None:
    assert upgrade_branch_name("istio", "v1.22.1") == "upgrade-istio-1.22.1"


def _seed_cm(repo: GitRepo, author: AuthorIdentity) -> str:
    cm = repo.path / "test-data" / "istio-version.yaml"
    cm.parent.mkdir()
    cm.write_text(VERSION_CM, encoding="utf-8")
    repo.add_all()
    repo.commit("add version cm", author)
    return "test-data/istio-version.yaml"


def test_apply_upgrade_commits_new_version(git_repo: GitRepo, author: AuthorIdentity) -> None:
    cm_path = _seed_cm(git_repo, author)
    base = git_repo.head()
    check = VersionCheck(latest="1.22.0", local="1.21.2", newer=True)

    record = apply_upgrade(
        git_repo,
        cm_path=cm_path,
        check=check,
        branch="upgrade-istio-1.22.0",
        base_branch="main",
        commit_title="Upgrade istio to 1.22.0",
        author=author,
    )

    assert record is not None
    assert record.parent == base
    assert git_repo.resolve("refs/heads/upgrade-istio-1.22.0") == record.hash
    assert git_repo.resolve("refs/heads/main") == base
    assert read_local_version(git_repo.path / cm_path) == "1.22.0"
    assert git_repo.status() == []


def test_apply_upgrade_noop_when_current(git_repo: GitRepo, author: AuthorIdentity) -> None:
    cm_path = _seed_cm(git_repo, author)
    head = git_repo.head()
    check = check_versions("1.21.2", "1.21.2")

    record = apply_upgrade(
        git_repo,
        cm_path=cm_path,
        check=check,
        branch="upgrade-istio",
        base_branch="main",
        commit_title="noop",
        author=author,
    )

    assert record is None
    assert git_repo.head() == head
    assert not git_repo.branch_exists("upgrade-istio")
