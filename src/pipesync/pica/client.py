"""
Async client for the Pica passthrough API.

Every request is proxied through `{base_url}/v1/passthrough{path}` and
authenticated with three headers instead of third-party credentials:

    x-pica-secret:          account secret key
    x-pica-connection-key:  which connected account to act as
    x-pica-action-id:       which upstream action is being called

Non-2xx responses raise PicaAPIError. There are no retries here; a failed
page fetch is fatal to the run that issued it.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from pipesync.sync.resolver import stringify

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.picaos.com"


class PicaAPIError(RuntimeError):
    """Raised when the passthrough API answers with a non-2xx status."""

    def __init__(self, status: int, body: Any):
        self.status = status
        self.body = body
        detail = body if isinstance(body, str) else json.dumps(body)
        super().__init__(f"Pica API error {status}: {detail}")


class MissingSecretKeyError(RuntimeError):
    """Raised when no Pica secret key is configured."""


@dataclass
class PicaResponse:
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)
    status: int = 200


class PicaClient:
    """
    Thin async wrapper over httpx.AsyncClient.

    Usage:
        async with PicaClient(secret_key) as client:
            resp = await client.request(connection_key, action_id, path="/x")
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            secret_key: Pica secret key sent as x-pica-secret.
            base_url: Passthrough API host.
            timeout: Per-request timeout in seconds.
            http: Pre-built httpx client (tests inject a MockTransport here).
        """
        if not secret_key:
            raise MissingSecretKeyError(
                "No Pica secret key. Set PICA_SECRET_KEY in the environment or .env."
            )
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "PicaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _headers(self, connection_key: str, action_id: str) -> Dict[str, str]:
        return {
            "x-pica-secret": self._secret_key,
            "x-pica-connection-key": connection_key,
            "x-pica-action-id": action_id,
            "Content-Type": "application/json",
        }

    async def request(
        self,
        connection_key: str,
        action_id: str,
        *,
        method: str = "GET",
        path: str = "",
        query_params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> PicaResponse:
        """Issue one passthrough request and decode the response."""
        method = method.upper()
        params = {
            key: stringify(value)
            for key, value in (query_params or {}).items()
            if value is not None
        }
        request_headers = self._headers(connection_key, action_id)
        request_headers.update(headers or {})

        content = None
        if body is not None and method != "GET":
            content = json.dumps(body)

        url = f"{self._base_url}/v1/passthrough{path}"
        logger.debug("%s %s params=%s", method, url, params)
        response = await self._http.request(
            method, url, params=params, headers=request_headers, content=content
        )
        return self._decode(response)

    async def request_url(
        self, url: str, connection_key: str, action_id: str
    ) -> PicaResponse:
        """GET a fully-formed URL (a Link-header continuation)."""
        logger.debug("GET %s", url)
        response = await self._http.get(
            url, headers=self._headers(connection_key, action_id)
        )
        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> PicaResponse:
        headers = {key.lower(): value for key, value in response.headers.items()}
        text = response.text
        try:
            data = json.loads(text)
        except ValueError:
            data = text

        if not response.is_success:
            raise PicaAPIError(response.status_code, data)

        return PicaResponse(data=data, headers=headers, status=response.status_code)
