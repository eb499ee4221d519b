"""HTTP呼び出しのタイムアウト/リトライ方針。

- 接続エラー・タイムアウト・5xx/429 のみリトライ（指数バックオフ）
- 4xx はリトライせずそのまま返す（呼び出し側がエラー分類する）
- retries=1 でリトライなし
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import requests

logger = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class RetryPolicy:
    timeout_seconds: float = 30.0
    retries: int = 3  # 総試行回数
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay(self, attempt: int) -> float:
        return min(self.backoff_seconds * (2**attempt), self.max_backoff_seconds)

    def request(
        self,
        session: requests.Session,
        method: str,
        url: str,
        **kwargs,
    ) -> requests.Response:
        """session.request を方針どおりに実行する。

        最後の試行でも失敗した場合、接続系の例外はそのまま送出し、
        5xx のレスポンスはそのまま返す。
        """
        attempts = max(1, self.retries)
        for attempt in range(attempts):
            last = attempt == attempts - 1
            try:
                resp = session.request(method, url, timeout=self.timeout_seconds, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                if last:
                    raise
                logger.warning("%s %s failed (%s); retrying", method, url, type(e).__name__)
            else:
                if resp.status_code not in RETRY_STATUSES or last:
                    return resp
                logger.warning("%s %s -> %s; retrying", method, url, resp.status_code)
            self.sleep(self.delay(attempt))

        raise AssertionError("unreachable")
