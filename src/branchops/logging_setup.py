"""logging の初期化。

ログは操作対象の作業ツリーの外に置く（`git add -A` に拾われないように）。
既定: `$BRANCHOPS_LOG_DIR`、無ければ `~/.branchops/logs`。
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "branchops.log"

_configured_path: Path | None = None


def default_log_dir() -> Path:
    env = os.environ.get("BRANCHOPS_LOG_DIR", "").strip()
    if env:
        return Path(env)
    return Path.home() / ".branchops" / "logs"


def setup_logging(*, log_dir: Path | None = None, level: str = "INFO") -> Path:
    """ファイルハンドラを1つだけ root logger に付け、実際の出力先を返す。

    2回目以降は何もせず、最初に設定したパスを返す。
    """
    global _configured_path
    if _configured_path is not None:
        return _configured_path

    log_dir = log_dir or default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME

    handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.addHandler(handler)
    # requests の接続ログは冗長
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    _configured_path = log_path
    return log_path
