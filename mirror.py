from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import get_settings

logger = logging.getLogger(__name__)


class DocumentMirror:
    """Fire-and-forget copy of local writes to a remote document store.

    The local database stays the source of truth: a failed push is logged
    and dropped, never raised and never retried.
    """

    def __init__(self, base_url: str = "", timeout: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def upsert(self, collection: str, doc_id: Any, payload: dict[str, Any]) -> bool:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return self._send("PUT", collection, doc_id, body)

    def delete(self, collection: str, doc_id: Any) -> bool:
        return self._send("DELETE", collection, doc_id, None)

    def _send(
        self, method: str, collection: str, doc_id: Any, body: Optional[bytes]
    ) -> bool:
        if not self.enabled:
            return False
        url = f"{self.base_url}/{collection}/{doc_id}"
        req = Request(
            url,
            data=body,
            method=method,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                resp.read()
        except (URLError, TimeoutError, OSError) as exc:
            logger.warning(
                f"mirror_failed: method={method} collection={collection} "
                f"id={doc_id} error={exc}"
            )
            return False
        return True


@lru_cache(maxsize=1)
def get_mirror() -> DocumentMirror:
    settings = get_settings()
    return DocumentMirror(settings.mirror_url, timeout=settings.mirror_timeout_secs)
