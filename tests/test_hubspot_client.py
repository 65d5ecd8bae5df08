"""Unit tests for HubSpotClient request construction, retries and error mapping.

httpx.AsyncClient verbs are patched with AsyncMock, so no network is used.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.dealclone.deals.associations import AssociationReader
from src.dealclone.deals.crm.client import HubSpotClient
from src.dealclone.deals.crm.sync import RelationshipSynchronizer
from src.dealclone.deals.errors import UpstreamFetchError, UpstreamWriteError
from src.dealclone.deals.schemas import EdgeSet


BASE = "https://api.test.hubapi.com"


def _response(status: int, method: str = "GET", **kwargs) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request(method, f"{BASE}/x"), **kwargs)


@pytest.fixture
def hubspot():
    return HubSpotClient(access_token="pat-test", base_url=f"{BASE}/")


# ── Deal Records ───────────────────────────────────────────────────────────


class TestDealRecords:
    async def test_get_deal_returns_properties(self, hubspot):
        response = _response(200, json={"id": "101", "properties": {"dealname": "Acme"}})

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=response) as mock_get:
            properties = await hubspot.get_deal("101", ("dealname", "amount"))

        assert properties == {"dealname": "Acme"}
        call = mock_get.call_args
        assert call.args[0] == f"{BASE}/crm/v3/objects/deals/101"
        assert call.kwargs["params"] == {"properties": "dealname,amount"}

    async def test_get_deal_without_property_list_sends_no_params(self, hubspot):
        response = _response(200, json={"properties": {}})

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=response) as mock_get:
            await hubspot.get_deal("101")

        assert mock_get.call_args.kwargs["params"] is None

    async def test_get_deal_not_found_is_not_retried(self, hubspot):
        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(404, json={})
        ) as mock_get:
            with pytest.raises(UpstreamFetchError) as exc_info:
                await hubspot.get_deal("999")

        assert exc_info.value.status_code == 404
        assert exc_info.value.deal_id == "999"
        assert mock_get.call_count == 1

    async def test_get_deal_without_properties_bag(self, hubspot):
        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(200, json={"id": "101"})
        ):
            with pytest.raises(UpstreamFetchError):
                await hubspot.get_deal("101")

    async def test_create_deal_stringifies_values(self, hubspot):
        response = _response(201, "POST", json={"id": 9001})

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response) as mock_post:
            new_id = await hubspot.create_deal(
                {"dealname": "Acme 2", "deal_number": 2, "is_renewal": True, "notes": None}
            )

        assert new_id == "9001"
        assert mock_post.call_args.kwargs["json"] == {
            "properties": {"dealname": "Acme 2", "deal_number": "2", "is_renewal": "true"}
        }

    async def test_create_deal_failure_raises_write_error(self, hubspot):
        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=_response(400, "POST", json={})
        ):
            with pytest.raises(UpstreamWriteError) as exc_info:
                await hubspot.create_deal({"dealname": "Acme 2"})

        assert exc_info.value.status_code == 400

    async def test_update_deal_patches_properties(self, hubspot):
        response = _response(200, "PATCH", json={"id": "9001"})

        with patch("httpx.AsyncClient.patch", new_callable=AsyncMock, return_value=response) as mock_patch:
            await hubspot.update_deal("9001", {"dealstage": "991352390"})

        call = mock_patch.call_args
        assert call.args[0] == f"{BASE}/crm/v3/objects/deals/9001"
        assert call.kwargs["json"] == {"properties": {"dealstage": "991352390"}}


# ── Associations ───────────────────────────────────────────────────────────


class TestAssociations:
    async def test_list_associations_accepts_both_shapes(self, hubspot):
        response = _response(200, json={"results": [{"id": "201"}, {"toObjectId": 202}, {}]})

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=response) as mock_get:
            ids = await hubspot.list_associations("101", "contacts")

        assert ids == ["201", "202"]
        assert mock_get.call_args.args[0] == f"{BASE}/crm/v3/objects/deals/101/associations/contacts"

    async def test_put_association_path(self, hubspot):
        with patch(
            "httpx.AsyncClient.put", new_callable=AsyncMock, return_value=_response(200, "PUT", json={})
        ) as mock_put:
            await hubspot.put_association("deals", "9001", "contacts", "201", 3)

        assert mock_put.call_args.args[0] == (
            f"{BASE}/crm/v3/objects/deals/9001/associations/contacts/201/3"
        )

    async def test_put_association_failure(self, hubspot):
        with patch(
            "httpx.AsyncClient.put", new_callable=AsyncMock, return_value=_response(400, "PUT", json={})
        ):
            with pytest.raises(UpstreamWriteError):
                await hubspot.put_association("deals", "9001", "tickets", "401", 116)

    async def test_batch_create_posts_inputs(self, hubspot):
        inputs = [{"from": {"id": "9001"}, "to": {"id": "401"}, "types": []}]

        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            return_value=_response(201, "POST", json={"status": "COMPLETE", "results": []}),
        ) as mock_post:
            await hubspot.batch_create_associations("deals", "tickets", inputs)

        call = mock_post.call_args
        assert call.args[0] == f"{BASE}/crm/v4/associations/deals/tickets/batch/create"
        assert call.kwargs["json"] == {"inputs": inputs}

    async def test_batch_multi_status_errors_are_failures(self, hubspot):
        response = _response(
            207,
            "POST",
            json={"numErrors": 1, "errors": [{"message": "Invalid association type"}]},
        )

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response):
            with pytest.raises(UpstreamWriteError, match="Invalid association type"):
                await hubspot.batch_create_associations("deals", "tickets", [])


# ── GraphQL ────────────────────────────────────────────────────────────────


class TestGraphQL:
    async def test_query_returns_data(self, hubspot):
        response = _response(200, "POST", json={"data": {"CRM": {"deal": None}}})

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response) as mock_post:
            data = await hubspot.query_graphql("query data { x }", {"id": "101"})

        assert data == {"CRM": {"deal": None}}
        call = mock_post.call_args
        assert call.args[0] == f"{BASE}/collector/graphql"
        assert call.kwargs["json"]["operationName"] == "data"
        assert call.kwargs["json"]["variables"] == {"id": "101"}

    async def test_graphql_errors_raise(self, hubspot):
        response = _response(200, "POST", json={"errors": [{"message": "Unknown field"}]})

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response):
            with pytest.raises(UpstreamFetchError, match="Unknown field"):
                await hubspot.query_graphql("query data { x }", {"id": "101"})


# ── Retry ──────────────────────────────────────────────────────────────────


class TestRetry:
    async def test_retry_on_transient_failure(self, hubspot):
        """Server errors are retried; the second attempt succeeds."""
        call_count = 0

        async def mock_get(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                return _response(503)
            return _response(200, json={"properties": {"dealname": "Acme"}})

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=mock_get):
            properties = await hubspot.get_deal("101")

        assert properties == {"dealname": "Acme"}
        assert call_count == 2


# ── Malformed Bodies ───────────────────────────────────────────────────────


class TestMalformedBodies:
    """2xx bodies that are not JSON objects map onto the error taxonomy."""

    async def test_non_json_deal_body(self, hubspot):
        response = _response(200, text="<html>gateway</html>")

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=response):
            with pytest.raises(UpstreamFetchError, match="not JSON"):
                await hubspot.get_deal("101")

    async def test_array_association_body(self, hubspot):
        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(200, json=[1, 2])
        ):
            with pytest.raises(UpstreamFetchError, match="not an object"):
                await hubspot.list_associations("101", "tickets")

    async def test_non_json_graphql_body(self, hubspot):
        response = _response(200, "POST", text="<html>gateway</html>")

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response):
            with pytest.raises(UpstreamFetchError):
                await hubspot.query_graphql("query data { x }", {"id": "101"})

    async def test_non_json_create_body_is_write_error(self, hubspot):
        response = _response(201, "POST", text="<html>gateway</html>")

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response):
            with pytest.raises(UpstreamWriteError):
                await hubspot.create_deal({"dealname": "Acme 2"})

    async def test_clone_count_degrades_to_zero(self, hubspot):
        response = _response(200, "POST", text="<html>gateway</html>")

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response):
            assert await AssociationReader(hubspot).count_prior_clones("101") == 0

    async def test_ticket_pass_tolerates_malformed_list(self, hubspot):
        """Lineage is still written when the ticket re-read returns garbage."""
        put_response = _response(200, "PUT", json={})
        get_response = _response(200, text="<html>gateway</html>")

        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=get_response
        ), patch("httpx.AsyncClient.put", new_callable=AsyncMock, return_value=put_response):
            report = await RelationshipSynchronizer(hubspot).sync("9001", "101", EdgeSet())

        assert report.is_linked("101", "9001")
        assert report.is_linked("9001", "101")
        assert report.failed == 0
