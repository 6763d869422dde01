"""
HTTP utilities shared by remote store adapters.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import StoreError, StoreErrorKind, store_error_for


def _kind_for_status(status: int) -> StoreErrorKind:
    if status in (401, 403):
        return StoreErrorKind.PERMISSION_DENIED
    if status == 404:
        return StoreErrorKind.NOT_FOUND
    if status in (400, 409, 412):
        return StoreErrorKind.VALIDATION
    if status == 429 or status >= 500:
        return StoreErrorKind.UNAVAILABLE
    return StoreErrorKind.UNKNOWN


class HTTPClient:
    """
    Thin wrapper around requests.Session with retries and error mapping.
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth_token: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        retry = Retry(
            total=max_retries,
            read=max_retries,
            connect=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET",),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)
        self.session.headers.update({"Accept": "application/json"})
        if auth_token:
            self.session.headers.update({"Authorization": f"Bearer {auth_token}"})

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """
        Perform an HTTP request and return decoded JSON.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise store_error_for(StoreErrorKind.UNAVAILABLE, str(exc)) from exc

        self._raise_for_status(response)
        if not response.content:
            return None
        content_type = response.headers.get("Content-Type", "").lower()
        if "application/json" not in content_type:
            raise StoreError(
                f"Unexpected content type '{content_type or 'unknown'}' from store response."
            )
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError("Failed to parse JSON response from store.") from exc

    def _raise_for_status(self, response: Response) -> None:
        """
        Map HTTP errors to store error kinds.
        """
        if 200 <= response.status_code < 300:
            return
        status = response.status_code
        message = f"Store request failed with status {status}"
        detail = _error_detail(response)
        if detail:
            message = f"{message}: {detail}"
        raise store_error_for(_kind_for_status(status), message, status_code=status)


def _error_detail(response: Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("status")
    return None
