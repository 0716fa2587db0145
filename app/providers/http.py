# app/providers/http.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from services.redaction import redact_dict, redact_value

logger = logging.getLogger("bundlepay.http_client")


@dataclass
class HttpResponse:
    status_code: int
    json: Optional[Any]
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpClient:
    """
    Thin wrapper around httpx.Client shared by the gateway and supplier adapters.
    Transport failures surface as httpx.HTTPError; callers classify them.
    """

    def __init__(
        self,
        timeout_s: float = 15.0,
        follow_redirects: bool = True,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=follow_redirects, transport=transport)

    def post(
        self,
        url: str,
        *,
        headers: dict[str, str],
        json_body: dict[str, Any] | None = None,
    ) -> HttpResponse:
        r = self._client.post(url, headers=headers, json=json_body)
        self._debug_dump("POST", url, headers, json_body, r)
        return self._wrap(r)

    def get(
        self,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
    ) -> HttpResponse:
        r = self._client.get(url, headers=headers, params=params)
        self._debug_dump("GET", url, headers, None, r)
        return self._wrap(r)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _wrap(r: httpx.Response) -> HttpResponse:
        try:
            payload = r.json()
        except ValueError:
            payload = None
        return HttpResponse(status_code=r.status_code, json=payload, text=r.text)

    @staticmethod
    def _debug_dump(method: str, url: str, headers: dict[str, str], json_body: Any, r: httpx.Response) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(
            "http_call method=%s url=%s headers=%s json=%s status=%s text=%s",
            method,
            url,
            redact_dict(dict(headers or {})),
            redact_value(json_body),
            r.status_code,
            redact_value(r.text[:300]),
        )


def is_retryable_http(code: int) -> bool:
    # Retry transient / throttling / gateway issues
    return code in (408, 425, 429, 500, 502, 503, 504)
