"""Async HTTP client wrapper for the HubSpot CRM REST and GraphQL APIs.

Provides HubSpotClient with transport-level retry logic (tenacity, 3 attempts,
exponential backoff 1-10s) for connection errors, timeouts, 429 and 5xx
responses. Non-retryable 4xx responses fail on the first attempt.

Every httpx failure is converted into the engine's error taxonomy:
reads raise UpstreamFetchError, writes raise UpstreamWriteError. A 2xx body that
is not a JSON object is treated the same way.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.dealclone.deals.errors import UpstreamFetchError, UpstreamWriteError

logger = structlog.get_logger(__name__)


def _is_retryable_status(exc: BaseException) -> bool:
    """Rate limiting and server errors are worth another attempt."""
    if not isinstance(exc, httpx.HTTPStatusError):
        return False
    status_code = exc.response.status_code
    return status_code == 429 or status_code >= 500


_hubspot_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=(
        retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException))
        | retry_if_exception(_is_retryable_status)
    ),
    reraise=True,
)


def _status_of(exc: httpx.HTTPError) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


def _json_object(
    response: httpx.Response,
    error_cls: type[UpstreamFetchError] | type[UpstreamWriteError],
    message: str,
    deal_id: str | None = None,
) -> dict[str, Any]:
    """Decode a 2xx body that must be a JSON object.

    Raises:
        error_cls: The body was not JSON (e.g. a gateway HTML page) or
            decoded to something other than an object.
    """
    try:
        body = response.json()
    except ValueError as exc:
        logger.warning("hubspot.malformed_body", url=str(response.request.url), error=str(exc))
        raise error_cls(f"{message}: response body is not JSON", deal_id=deal_id) from exc
    if not isinstance(body, dict):
        logger.warning("hubspot.malformed_body", url=str(response.request.url), body_type=type(body).__name__)
        raise error_cls(f"{message}: response body is not an object", deal_id=deal_id)
    return body


def _to_hubspot_value(value: Any) -> str:
    """HubSpot expects property values as strings."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class HubSpotClient:
    """Async client for the HubSpot CRM API.

    Covers the deal operations used by the duplication engine: property
    reads, record create/update, association listing, the two association
    write generations (v3 per-pair PUT and v4 batch create) and the
    collector GraphQL endpoint.

    Args:
        access_token: HubSpot private app access token.
        base_url: API root (default: https://api.hubapi.com).
        read_timeout: Timeout in seconds for read operations.
        mutate_timeout: Timeout in seconds for write operations.
    """

    GRAPHQL_PATH = "/collector/graphql"

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.hubapi.com",
        read_timeout: float = 10.0,
        mutate_timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._read_timeout = read_timeout
        self._mutate_timeout = mutate_timeout
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=timeout,
        )

    @_hubspot_retry
    async def _send(
        self, method: str, path: str, timeout: float, **kwargs: Any
    ) -> httpx.Response:
        """Issue one HTTP request and raise for non-2xx status."""
        async with self._client(timeout) as client:
            send = getattr(client, method)
            response = await send(f"{self._base_url}{path}", **kwargs)
            response.raise_for_status()
            return response

    # ── Deal Records ─────────────────────────────────────────────────────

    async def get_deal(
        self, deal_id: str, properties: list[str] | tuple[str, ...] | None = None
    ) -> dict[str, Any]:
        """Fetch a deal's property bag.

        GET /crm/v3/objects/deals/{id}, optionally restricted to an explicit
        property list. Returns the `properties` mapping of the response.

        Raises:
            UpstreamFetchError: Request failed, deal not found, or the response
                carried no properties mapping.
        """
        params = {"properties": ",".join(properties)} if properties else None
        try:
            response = await self._send(
                "get",
                f"/crm/v3/objects/deals/{deal_id}",
                self._read_timeout,
                params=params,
            )
        except httpx.HTTPError as exc:
            logger.warning("hubspot.get_deal_failed", deal_id=deal_id, error=str(exc))
            raise UpstreamFetchError(
                f"Failed to fetch deal {deal_id}",
                deal_id=deal_id,
                status_code=_status_of(exc),
            ) from exc

        body = _json_object(
            response, UpstreamFetchError, f"Failed to fetch deal {deal_id}", deal_id
        )
        properties_bag = body.get("properties")
        if not isinstance(properties_bag, dict):
            raise UpstreamFetchError(
                f"Deal {deal_id} response carried no properties", deal_id=deal_id
            )
        return properties_bag

    async def create_deal(self, properties: dict[str, Any]) -> str:
        """Create a deal and return its id.

        Raises:
            UpstreamWriteError: Request failed or the response had no id.
        """
        payload = {k: _to_hubspot_value(v) for k, v in properties.items() if v is not None}
        try:
            response = await self._send(
                "post",
                "/crm/v3/objects/deals",
                self._mutate_timeout,
                json={"properties": payload},
            )
        except httpx.HTTPError as exc:
            logger.error("hubspot.create_deal_failed", error=str(exc))
            raise UpstreamWriteError(
                "Failed to create deal", status_code=_status_of(exc)
            ) from exc

        new_id = _json_object(response, UpstreamWriteError, "Failed to create deal").get("id")
        if not new_id:
            raise UpstreamWriteError("Deal creation response carried no id")
        logger.info("hubspot.deal_created", deal_id=str(new_id))
        return str(new_id)

    async def update_deal(self, deal_id: str, properties: dict[str, Any]) -> None:
        """PATCH a deal's properties.

        Raises:
            UpstreamWriteError: Request failed.
        """
        payload = {k: _to_hubspot_value(v) for k, v in properties.items() if v is not None}
        try:
            await self._send(
                "patch",
                f"/crm/v3/objects/deals/{deal_id}",
                self._mutate_timeout,
                json={"properties": payload},
            )
        except httpx.HTTPError as exc:
            logger.error("hubspot.update_deal_failed", deal_id=deal_id, error=str(exc))
            raise UpstreamWriteError(
                f"Failed to update deal {deal_id}",
                deal_id=deal_id,
                status_code=_status_of(exc),
            ) from exc

    # ── Associations ─────────────────────────────────────────────────────

    async def list_associations(self, deal_id: str, to_type: str) -> list[str]:
        """List ids of `to_type` records associated with a deal.

        GET /crm/v3/objects/deals/{id}/associations/{to_type}. Accepts both
        the v3 (`id`) and v4 (`toObjectId`) result item shapes.

        Raises:
            UpstreamFetchError: Request failed.
        """
        try:
            response = await self._send(
                "get",
                f"/crm/v3/objects/deals/{deal_id}/associations/{to_type}",
                self._read_timeout,
            )
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(
                f"Failed to list {to_type} associations for deal {deal_id}",
                deal_id=deal_id,
                status_code=_status_of(exc),
            ) from exc

        message = f"Failed to list {to_type} associations for deal {deal_id}"
        results = _json_object(response, UpstreamFetchError, message, deal_id).get("results") or []
        if not isinstance(results, list):
            raise UpstreamFetchError(f"{message}: results is not a list", deal_id=deal_id)
        ids: list[str] = []
        for item in results:
            if not isinstance(item, dict):
                continue
            item_id = item.get("id") or item.get("toObjectId")
            if item_id is not None:
                ids.append(str(item_id))
        return ids

    async def put_association(
        self,
        from_type: str,
        from_id: str,
        to_type: str,
        to_id: str,
        association_type_id: int,
    ) -> None:
        """Create-or-replace a single typed association (v3 per-pair endpoint).

        Raises:
            UpstreamWriteError: Request failed.
        """
        path = (
            f"/crm/v3/objects/{from_type}/{from_id}"
            f"/associations/{to_type}/{to_id}/{association_type_id}"
        )
        try:
            await self._send("put", path, self._mutate_timeout, json={})
        except httpx.HTTPError as exc:
            raise UpstreamWriteError(
                f"Failed to associate {from_type} {from_id} -> {to_type} {to_id}",
                deal_id=from_id,
                status_code=_status_of(exc),
            ) from exc

    async def batch_create_associations(
        self, from_type: str, to_type: str, inputs: list[dict[str, Any]]
    ) -> None:
        """Create associations via the v4 batch endpoint.

        A 207 multi-status response reporting per-input errors counts as failure.

        Raises:
            UpstreamWriteError: Request failed or any input was rejected.
        """
        path = f"/crm/v4/associations/{from_type}/{to_type}/batch/create"
        try:
            response = await self._send(
                "post", path, self._mutate_timeout, json={"inputs": inputs}
            )
        except httpx.HTTPError as exc:
            raise UpstreamWriteError(
                f"Batch association {from_type} -> {to_type} failed",
                status_code=_status_of(exc),
            ) from exc

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return
        errors = body.get("errors") or []
        num_errors = body.get("numErrors") or 0
        if errors or num_errors:
            if errors and isinstance(errors[0], dict):
                message = errors[0].get("message")
            else:
                message = f"{num_errors or len(errors)} input(s) rejected"
            raise UpstreamWriteError(
                f"Batch association {from_type} -> {to_type} rejected: {message}",
                status_code=response.status_code,
            )

    # ── GraphQL ──────────────────────────────────────────────────────────

    async def query_graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST a query document to the collector GraphQL endpoint.

        Returns the `data` object of the response.

        Raises:
            UpstreamFetchError: Request failed, the response carried GraphQL
                errors, or it had no data object.
        """
        try:
            response = await self._send(
                "post",
                self.GRAPHQL_PATH,
                self._read_timeout,
                json={"operationName": "data", "query": query, "variables": variables},
            )
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(
                "GraphQL request failed", status_code=_status_of(exc)
            ) from exc

        body = _json_object(response, UpstreamFetchError, "GraphQL request failed")
        errors = body.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else errors
            detail = first.get("message") if isinstance(first, dict) else first
            raise UpstreamFetchError(f"GraphQL Error: {detail}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise UpstreamFetchError("GraphQL response carried no data")
        return data
