"""Cloudflare D1 backend over the REST API.

Managed deployment backend. Exposes the CHAINED statement shape
(``prepare(sql).bind(*params).all()``) and a native ``batch()`` that sends
all statements in one request, which D1 executes as a single transaction.
"""

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from linkauth.backends.errors import D1QueryError

logger = logging.getLogger(__name__)

DEFAULT_D1_API_BASE_URL = "https://api.cloudflare.com/client/v4"
_DEFAULT_TIMEOUT = 30.0


class D1Statement:
    """A prepared D1 statement, optionally bound to parameters.

    ``bind()`` returns a new statement; the prepared original is unchanged.
    """

    def __init__(
        self,
        database: "D1HttpDatabase",
        sql: str,
        params: Sequence[Any] = (),
    ) -> None:
        self._database = database
        self.sql = sql
        self.params: tuple[Any, ...] = tuple(params)

    def bind(self, *params: Any) -> "D1Statement":
        """Return a copy of this statement bound to ``params``."""
        return D1Statement(self._database, self.sql, params)

    def to_payload(self) -> dict[str, Any]:
        """Request body fragment for this statement."""
        return {"sql": self.sql, "params": list(self.params)}

    async def all(self) -> dict[str, Any]:
        """Execute and return the D1 result envelope."""
        results = await self._database.post_query(self.to_payload())
        return results[0]

    async def first(self) -> dict[str, Any] | None:
        """Execute and return the first row, or None."""
        envelope = await self.all()
        rows = envelope.get("results") or []
        return rows[0] if rows else None

    async def run(self) -> dict[str, Any]:
        """Execute a write and return the D1 result envelope."""
        return await self.all()


class D1HttpDatabase:
    """Handle for one D1 database reached through the Cloudflare REST API.

    Args:
        account_id: Cloudflare account id.
        database_id: D1 database UUID.
        api_token: API token with D1 edit permission.
        base_url: API root. Defaults to the public v4 endpoint.
        timeout: Request timeout in seconds.
        client: Pre-built httpx client (tests pass one with a mock
            transport). The handle closes only clients it created.
    """

    def __init__(
        self,
        *,
        account_id: str,
        database_id: str,
        api_token: str,
        base_url: str = DEFAULT_D1_API_BASE_URL,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._query_path = (
            f"/accounts/{account_id}/d1/database/{database_id}/query"
        )
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {"Authorization": f"Bearer {api_token}"}

    def prepare(self, sql: str) -> D1Statement:
        """Prepare a statement. Nothing is sent until it is executed."""
        return D1Statement(self, sql)

    async def batch(self, statements: Sequence[D1Statement]) -> list[dict[str, Any]]:
        """Execute bound statements in one request.

        D1 runs a batch as one transaction: either every statement applies or
        none does.

        Args:
            statements: Bound statements, in execution order.

        Returns:
            One result envelope per statement.
        """
        return await self.post_query(
            {"batch": [statement.to_payload() for statement in statements]}
        )

    async def post_query(self, body: dict[str, Any]) -> list[dict[str, Any]]:
        """POST a query body and return the list of result envelopes.

        Raises:
            D1QueryError: If the request fails or D1 reports an error.
        """
        try:
            response = await self._client.post(
                self._query_path, json=body, headers=self._headers
            )
        except httpx.HTTPError as exc:
            logger.warning("D1 request failed: %s", type(exc).__name__)
            raise D1QueryError(f"D1 request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("D1 returned non-JSON (HTTP %d)", response.status_code)
            raise D1QueryError(
                f"D1 returned a non-JSON response (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc

        if response.is_error or not payload.get("success", False):
            errors = payload.get("errors") or []
            message = errors[0].get("message") if errors else None
            logger.warning(
                "D1 query rejected (HTTP %d): %s", response.status_code, message
            )
            raise D1QueryError(
                message or f"D1 query failed (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        results: list[dict[str, Any]] = payload.get("result") or []
        for envelope in results:
            if envelope.get("success") is False:
                logger.warning("D1 statement failed: %s", envelope.get("error"))
                raise D1QueryError(
                    envelope.get("error") or "D1 statement failed",
                    status_code=response.status_code,
                )
        return results

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this handle created it."""
        if self._owns_client:
            await self._client.aclose()
