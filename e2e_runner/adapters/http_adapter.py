"""
HTTP Adapter

REST calls over aiohttp. One action, "request":

    - adapter: http
      action: request
      method: POST
      url: /users
      headers: {Authorization: "Bearer {{token}}"}
      body: {name: "{{name}}"}
      capture:
        userId: $.id
      assert:
        status: 201
        json:
          - path: $.name
            equals: "{{name}}"
        duration:
          lessThan: 500

Captures are evaluated against the response body. Assertions understand
status, statusRange, headers, json, body and duration.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from ..assertions.matchers import stringify
from ..assertions.runner import run_assertion, run_path_assertions
from ..errors import AdapterError, AssertionFailedError
from ..models import AdapterType
from ..utils import now_ms
from .base import BaseAdapter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30000
DEFAULT_HEADERS = {"Content-Type": "application/json"}


class HTTPAdapter(BaseAdapter):
    """HTTP client for API steps."""

    adapter_type = AdapterType.HTTP

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.base_url = self.config.get("baseUrl") or ""
        self.default_headers = {**DEFAULT_HEADERS, **(self.config.get("defaultHeaders") or {})}
        self.default_timeout = self.config.get("timeout") or DEFAULT_TIMEOUT
        self._session = None
        self._handlers = {"request": self._handle_request}

    async def connect(self):
        if self.connected:
            return
        import aiohttp

        self._session = aiohttp.ClientSession()
        self.connected = True

    async def disconnect(self):
        if self._session:
            await self._session.close()
            self._session = None
        self.connected = False

    async def health_check(self) -> bool:
        if not self.base_url:
            return True
        if not self._session:
            return False

        import aiohttp

        try:
            async with self._session.head(
                self.base_url, timeout=aiohttp.ClientTimeout(total=5)
            ) as resp:
                return resp.status < 500
        except Exception as e:
            logger.debug(f"HTTP health check failed: {e}")
            return False

    # =========================================================================
    # Requests
    # =========================================================================

    async def _handle_request(self, params: Dict[str, Any], ctx: Any) -> Dict[str, Any]:
        url = self.require(params, "url", "request")
        base_url = getattr(ctx, "base_url", None) or self.base_url
        return await self.send(
            method=params.get("method", "GET"),
            url=url,
            headers=params.get("headers"),
            body=params.get("body"),
            query=params.get("query"),
            timeout=params.get("timeout"),
            follow_redirects=params.get("followRedirects", True),
            base_url=base_url,
        )

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, Any]] = None,
        body: Any = None,
        query: Optional[Dict[str, Any]] = None,
        timeout: Optional[int] = None,
        follow_redirects: bool = True,
        base_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a request and return {request, response}."""
        import aiohttp

        if not self._session:
            raise AdapterError(self.name, "request", "Not connected")

        method = str(method).upper()
        full_url = build_url(url, query, base_url or self.base_url)
        request_headers = {**self.default_headers}
        for key, value in (headers or {}).items():
            request_headers[key] = stringify(value)

        data = None
        if body is not None and method not in ("GET", "HEAD"):
            data = body if isinstance(body, str) else json.dumps(body, default=str)

        start = now_ms()
        async with self._session.request(
            method,
            full_url,
            headers=request_headers,
            data=data,
            timeout=aiohttp.ClientTimeout(total=(timeout or self.default_timeout) / 1000),
            allow_redirects=follow_redirects is not False,
        ) as resp:
            text = await resp.text()
            duration = now_ms() - start
            response_body = _parse_body(text, resp.headers.get("Content-Type", ""))

            return {
                "request": {
                    "method": method,
                    "url": full_url,
                    "headers": request_headers,
                    "body": body,
                },
                "response": {
                    "status": resp.status,
                    "statusText": resp.reason or "",
                    "headers": {k.lower(): v for k, v in resp.headers.items()},
                    "body": response_body,
                    "duration": duration,
                },
            }

    async def request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """Convenience for procedural tests: returns the response part only."""
        result = await self.send(method, url, **kwargs)
        return result["response"]

    # =========================================================================
    # Capture and assertions
    # =========================================================================

    def capture_source(self, data: Any) -> Any:
        return (data or {}).get("response", {}).get("body")

    def check_assertions(self, data: Any, assertion: Any):
        if not assertion:
            return
        response = (data or {}).get("response", {})
        check_response(response, assertion)


def build_url(path: str, query: Optional[Dict[str, Any]], base_url: str) -> str:
    """Resolve path against base_url and merge query parameters."""
    if path.startswith(("http://", "https://")) or not base_url:
        url = path
    else:
        url = urljoin(base_url, path)

    if not query:
        return url

    parts = urlsplit(url)
    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in query.items():
        params[key] = stringify(value)
    return urlunsplit(parts._replace(query=urlencode(params)))


def check_response(response: Dict[str, Any], assertion: Dict[str, Any]):
    """Run HTTP assertions against a response dict."""
    status = response.get("status")

    expected_status = assertion.get("status")
    if expected_status is not None:
        expected = expected_status if isinstance(expected_status, list) else [expected_status]
        if status not in [int(s) for s in expected]:
            raise AssertionFailedError(
                f"Expected status {' or '.join(str(s) for s in expected)}, got {status}",
                expected=expected,
                actual=status,
                operator="status",
            )

    status_range = assertion.get("statusRange")
    if status_range:
        low, high = status_range
        if status is None or status < low or status > high:
            raise AssertionFailedError(
                f"Expected status in range [{low}, {high}], got {status}",
                expected=list(status_range),
                actual=status,
                operator="statusRange",
            )

    headers = response.get("headers") or {}
    for name, expected in (assertion.get("headers") or {}).items():
        actual = headers.get(name.lower())
        if isinstance(expected, Mapping):
            run_assertion(actual, expected, f"headers.{name}")
        elif actual != stringify(expected):
            raise AssertionFailedError(
                f'Header "{name}" expected "{expected}", got "{actual}"',
                expected=expected,
                actual=actual,
                path=f"headers.{name}",
                operator="equals",
            )

    if assertion.get("json"):
        run_path_assertions(response.get("body"), assertion["json"])

    body_assertion = assertion.get("body")
    if body_assertion:
        body = response.get("body")
        body_text = body if isinstance(body, str) else json.dumps(body, default=str)
        contains = body_assertion.get("contains")
        if contains and contains not in body_text:
            raise AssertionFailedError(
                f'Body does not contain "{contains}"',
                expected=contains,
                actual=body_text[:200],
                operator="contains",
            )
        if body_assertion.get("matches"):
            run_assertion(body_text, {"matches": body_assertion["matches"]}, "body")
        equals = body_assertion.get("equals")
        if equals and body_text != equals:
            raise AssertionFailedError(
                "Body does not equal expected value",
                expected=equals,
                actual=body_text[:200],
                operator="equals",
            )

    duration_assertion = assertion.get("duration")
    if duration_assertion:
        duration = response.get("duration", 0)
        less = duration_assertion.get("lessThan")
        if less is not None and duration >= less:
            raise AssertionFailedError(
                f"Response time {duration}ms exceeds limit {less}ms",
                expected=f"< {less}",
                actual=duration,
                operator="lessThan",
            )
        greater = duration_assertion.get("greaterThan")
        if greater is not None and duration <= greater:
            raise AssertionFailedError(
                f"Response time {duration}ms below minimum {greater}ms",
                expected=f"> {greater}",
                actual=duration,
                operator="greaterThan",
            )


def _parse_body(text: str, content_type: str) -> Any:
    if "application/json" not in content_type:
        return text
    try:
        return json.loads(text)
    except ValueError:
        return text
