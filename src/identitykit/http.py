"""Async HTTP client for the remote identity, IAM and metadata services.

Each request opens a short-lived httpx.AsyncClient. Errors are wrapped into the
identitykit taxonomy:
- non-2xx responses -> RemoteServiceError / UserNotFoundError (from_remote_error)
- transport failures and timeouts -> RemoteServiceError(retryable=True)
- a fired cancel event -> OperationCancelledError
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from identitykit.errors import OperationCancelledError, RemoteServiceError, from_remote_error

logger = logging.getLogger("identitykit.http")

Credential = str | Callable[[], Awaitable[str]] | None


class IdentityHttpClient:
    """Sends authenticated JSON requests to a remote service.

    Args:
        credential: Bearer access token, or an async callable returning one (optional).
        service_name: Name used in error messages (default "Identity service").
        headers: Extra headers added to every request.
        http_timeout: HTTP request timeout in seconds (default 10).
    """

    def __init__(
        self,
        *,
        credential: Credential = None,
        service_name: str = "Identity service",
        headers: dict[str, str] | None = None,
        http_timeout: float = 10.0,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credential = credential
        self._service_name = service_name
        self._headers = dict(headers or {})
        self._http_timeout = http_timeout
        self._transport = _transport

    def with_service(self, service_name: str, *, headers: dict[str, str] | None = None,
                     authenticated: bool = True) -> IdentityHttpClient:
        """Return a client sharing this transport, for a different remote service."""
        return IdentityHttpClient(
            credential=self._credential if authenticated else None,
            service_name=service_name,
            headers=headers,
            http_timeout=self._http_timeout,
            _transport=self._transport,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> httpx.Response:
        """Send a request and return the successful response.

        Raises:
            RemoteServiceError: On a non-2xx response or transport failure.
            UserNotFoundError: When the service reports USER_NOT_FOUND.
            OperationCancelledError: If ``cancel`` fires before the response arrives.
        """
        if cancel is None:
            return await self._send(method, url, json=json, params=params)
        if cancel.is_set():
            raise OperationCancelledError()

        send = asyncio.ensure_future(self._send(method, url, json=json, params=params))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({send, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not send.done():
                send.cancel()
                await asyncio.gather(send, return_exceptions=True)

        if send.cancelled():
            logger.debug("%s %s cancelled by caller", method, url)
            raise OperationCancelledError()
        return send.result()

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> dict:
        """Like :meth:`request`, but decode the body as a JSON object."""
        response = await self.request(method, url, json=json, params=params, cancel=cancel)
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteServiceError(
                f"{self._service_name} returned a non-JSON response",
                "unknown",
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise RemoteServiceError(
                f"{self._service_name} returned an unexpected response",
                "unknown",
                status_code=response.status_code,
            )
        return data

    async def _auth_headers(self) -> dict[str, str]:
        headers = dict(self._headers)
        if self._credential is None:
            return headers
        if isinstance(self._credential, str):
            token = self._credential
        else:
            token = await self._credential()
        headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json: Any,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        headers = await self._auth_headers()
        kwargs: dict = {"timeout": self._http_timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        try:
            async with httpx.AsyncClient(**kwargs) as client:
                response = await client.request(
                    method, url, json=json, params=params, headers=headers,
                )
        except httpx.TimeoutException as e:
            raise RemoteServiceError(
                f"{self._service_name} request timed out: {method} {url}",
                "deadline_exceeded",
                retryable=True,
            ) from e
        except httpx.TransportError as e:
            raise RemoteServiceError(
                f"Failed to reach {self._service_name}: {e}",
                "unavailable",
                retryable=True,
            ) from e

        if response.is_success:
            return response

        try:
            body = response.json()
        except ValueError:
            body = None
        error = from_remote_error(response.status_code, body, service=self._service_name)
        logger.debug(
            "%s %s failed with HTTP %d (%s)", method, url, response.status_code, error.code,
        )
        raise error
