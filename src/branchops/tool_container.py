"""git / gh をコンテナ内で実行するためのヘルパー。

ホストに git/gh が無くても、バージョン固定したツールイメージで実行できるようにする。

フロー:
1. 作業ディレクトリを /work にマウント
2. gh の場合はトークンを環境変数名だけ渡す（値はコマンドラインに載せない）
3. docker run --rm <image> <tool> <args...>
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from branchops.errors import BranchOpsError

logger = logging.getLogger(__name__)

DEFAULT_GIT_IMAGE = "alpine/git:2.45.2"
DEFAULT_GH_IMAGE = "maniator/gh:v2.49.2"

TOOLS = ("git", "gh")


@dataclass
class ToolResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def default_image(tool: str) -> str:
    if tool == "git":
        return DEFAULT_GIT_IMAGE
    if tool == "gh":
        return DEFAULT_GH_IMAGE
    raise BranchOpsError(f"unsupported tool: {tool} (expected one of {', '.join(TOOLS)})")


def build_tool_cmd(
    tool: str,
    args: list[str],
    *,
    workdir: Path,
    image: str | None = None,
    token_env: str | None = None,
) -> list[str]:
    """ツールコンテナ起動用の docker run コマンドを構築。"""
    image = image or default_image(tool)
    env_args: list[str] = []
    if token_env:
        # `-e NAME` 形式: 値はホスト環境から docker が引き継ぐ
        env_args.extend(["-e", token_env])
        if tool == "gh" and token_env != "GH_TOKEN":
            # gh は GH_TOKEN しか見ない。値は run_tool が子プロセス環境に写す
            env_args.extend(["-e", "GH_TOKEN"])

    # alpine/git の ENTRYPOINT は git なので、明示的に上書きして揃える
    return [
        "docker",
        "run",
        "--rm",
        "-v",
        f"{workdir}:/work",
        "-w",
        "/work",
        *env_args,
        "--entrypoint",
        tool,
        image,
        *args,
    ]


def run_tool(
    tool: str,
    args: list[str],
    *,
    workdir: Path,
    image: str | None = None,
    token_env: str | None = None,
) -> ToolResult:
    cmd = build_tool_cmd(tool, args, workdir=workdir, image=image, token_env=token_env)
    env = None
    if tool == "gh" and token_env and token_env != "GH_TOKEN":
        env = dict(**os.environ)
        env["GH_TOKEN"] = os.environ.get(token_env, "")

    logger.info("running %s in container %s: %s", tool, image or default_image(tool), args)
    try:
        r = subprocess.run(cmd, check=False, capture_output=True, text=True, env=env)
    except FileNotFoundError as e:
        raise BranchOpsError("docker is not installed or not in PATH") from e
    # stdout/stderr はそのまま返すだけにする（トークンをログに出さない）
    return ToolResult(
        returncode=int(r.returncode),
        stdout=r.stdout or "",
        stderr=r.stderr or "",
    )
