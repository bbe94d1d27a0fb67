"""JSON-over-HTTP transport for the CircleCI REST API."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import requests

from circleci_provisioner.client.errors import APIError, TransportError
from circleci_provisioner.client.retry import RetryPolicy
from circleci_provisioner.core.masking import censor_value

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://circleci.com/api/v2/"

_JSON_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}

# Body keys whose values are secrets and must not show up in debug logs.
_REDACTED_KEYS = frozenset({"value"})


def _redact(body: Any) -> Any:
    if isinstance(body, dict):
        return {
            k: censor_value(v) if k in _REDACTED_KEYS and isinstance(v, str) else _redact(v)
            for k, v in body.items()
        }
    if isinstance(body, list):
        return [_redact(v) for v in body]
    return body


def _error_message(response: requests.Response) -> str:
    """Pull ``message`` out of an error body, or ``""`` if there is none."""
    if not response.content:
        return ""
    try:
        payload = response.json()
    except ValueError:
        return ""
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return ""


class RestClient:
    """Authenticated JSON requests against a CircleCI API base URL.

    Every call runs under the client's :class:`RetryPolicy`. Non-2xx responses
    raise :class:`APIError`; network and decoding failures raise
    :class:`TransportError`.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._token = token
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._session = session if session is not None else requests.Session()
        self._retry = retry_policy if retry_policy is not None else RetryPolicy()
        self._request_timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def url(self, path: str) -> str:
        return urljoin(self._base_url, path.lstrip("/"))

    def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        """Perform one logical API call and return the decoded JSON body.

        Returns ``None`` when the response has no body (e.g. DELETE).
        """
        return self._retry.call(self._send, method, path, body=body, params=params)

    def _send(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        url = self.url(path)
        data = None
        if body is not None:
            try:
                data = json.dumps(body)
            except (TypeError, ValueError) as exc:
                raise TransportError(method, path, f"cannot encode request body: {exc}") from exc

        logger.debug("%s %s params=%s body=%s", method, url, dict(params or {}), _redact(body))

        try:
            response = self._session.request(
                method,
                url,
                params=params,
                data=data,
                headers=_JSON_HEADERS,
                auth=(self._token, ""),
                timeout=self._request_timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(method, path, str(exc)) from exc

        logger.debug("%s %s -> %d", method, url, response.status_code)

        if response.status_code >= 300:
            raise APIError(response.status_code, _error_message(response))

        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(method, path, f"invalid JSON in response: {exc}") from exc
        logger.debug("Response body: %s", _redact(payload))
        return payload

    def paginate(self, path: str, params: Mapping[str, str] | None = None) -> Iterator[Any]:
        """Yield ``items`` across pages, following ``next_page_token``."""
        query = dict(params or {})
        while True:
            page = self.request("GET", path, params=query) or {}
            yield from page.get("items", [])
            token = page.get("next_page_token")
            if not token:
                return
            query["page-token"] = token
