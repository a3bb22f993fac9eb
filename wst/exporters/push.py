"""Push this instance's raw distributions to a remote collector.

``PUT <url>/collected-stats`` with ``{id, stats, config}``; HTTP basic auth
``admin:<secret>``; bodies over 16 KiB are gzip encoded. TLS verification is
disabled (load-test fleets commonly use self-signed certificates). Failures
raise RemotePushError; the caller logs them and the next tick retries.
"""
from __future__ import annotations

import asyncio
import gzip
import json
import logging
from typing import Any

import requests
import urllib3

from ..stats.snapshot import MetricSnapshot
from ..utils.exceptions import RemotePushError
from ..utils.formatting import hide_auth

logger = logging.getLogger(__name__)

GZIP_THRESHOLD = 16 * 1024
PUSH_USERNAME = "admin"


class RemoteStatsPusher:
    def __init__(self, url: str, push_id: str = "default", secret: str = "", timeout: float = 10.0, session: requests.Session | None = None):
        self.url = url.rstrip("/") + "/collected-stats"
        self.push_id = push_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (PUSH_USERNAME, secret)
        self.session.verify = False
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def build_body(self, snapshot: MetricSnapshot) -> tuple[bytes, dict[str, str]]:
        payload: dict[str, Any] = {
            "id": self.push_id,
            "stats": snapshot.to_raw(),
            "config": snapshot.config.to_dict(),
        }
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if len(body) > GZIP_THRESHOLD:
            body = gzip.compress(body)
            headers["Content-Encoding"] = "gzip"
        return body, headers

    def _put(self, snapshot: MetricSnapshot) -> None:
        body, headers = self.build_body(snapshot)
        try:
            resp = self.session.put(self.url, data=body, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise RemotePushError(f"push to {hide_auth(self.url)} failed: {e}") from e
        logger.debug("pushStats status=%s", resp.status_code)

    async def push(self, snapshot: MetricSnapshot) -> None:
        await asyncio.to_thread(self._put, snapshot)

    def close(self) -> None:
        self.session.close()


__all__ = ["GZIP_THRESHOLD", "RemoteStatsPusher"]
