import json
import logging
from typing import Any, Dict

import httpx

from models import ActionResult

from .base import ActionHandler, first_param

logger = logging.getLogger(__name__)

# Repeating these cannot create a second side effect on a well-behaved server.
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

_MAX_BODY_IN_RESULT = 2000


def _headers(raw: Any) -> Dict[str, str]:
    """Headers may be a mapping or a list of {key, value} entries."""
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items() if k}
    headers: Dict[str, str] = {}
    if isinstance(raw, list):
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            key = first_param(entry, "key", "keyTemplate")
            if key:
                headers[str(key)] = str(first_param(entry, "value", "valueTemplate") or "")
    return headers


class HttpRequestHandler(ActionHandler):
    """sendHttpRequest: call an external URL."""

    def __init__(self, client: httpx.Client | None = None, timeout: float = 10.0) -> None:
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def _method(self, params: Dict[str, Any]) -> str:
        return str(params.get("method") or "GET").upper()

    def is_retryable(self, params: Dict[str, Any]) -> bool:
        return self._method(params) in IDEMPOTENT_METHODS

    def execute(self, params: Dict[str, Any]) -> ActionResult:
        url = first_param(params, "url", "urlTemplate")
        if not url:
            return ActionResult(success=False, error="sendHttpRequest requires a url")
        method = self._method(params)
        headers = _headers(params.get("headers"))
        body = first_param(params, "body", "bodyTemplate")
        content_type = params.get("contentType")
        if content_type and "content-type" not in {k.lower() for k in headers}:
            headers["Content-Type"] = str(content_type)
        if isinstance(body, (dict, list)):
            body = json.dumps(body)

        try:
            response = self._client.request(method, str(url), headers=headers, content=body if method not in ("GET", "HEAD") else None)
        except httpx.HTTPError as exc:
            logger.warning("HTTP action %s %s failed: %s", method, url, exc)
            return ActionResult(success=False, error=f"{type(exc).__name__}: {exc}")

        result = {
            "statusCode": response.status_code,
            "responseBody": response.text[:_MAX_BODY_IN_RESULT],
        }
        if response.is_success:
            return ActionResult(success=True, result_data=result)
        return ActionResult(success=False, result_data=result, error=f"HTTP {response.status_code}")
