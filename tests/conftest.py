"""Shared test fixtures for the deal duplication engine.

Provides:
- FakeHubSpotClient: in-memory stand-in for HubSpotClient with the same
  async method surface, call recording, and per-edge failure injection
- fake_hubspot: a FakeHubSpotClient seeded with one source deal and its
  contacts, company and ticket
- service: DuplicationService wired to fake_hubspot
"""

from __future__ import annotations

import itertools
from typing import Any, Callable

import pytest

from src.dealclone.deals.duplication import DuplicationService
from src.dealclone.deals.errors import UpstreamFetchError, UpstreamWriteError

LINEAGE_TYPE_ID = 79
TARGET_STAGE = "991352390"
TARGET_PIPELINE = "676191779"


class FakeHubSpotClient:
    """In-memory HubSpot store.

    Associations are kept per (from_type, from_id, to_type). Deal-to-deal
    writes with the lineage type id also feed the GraphQL lineage collection,
    so repeated duplications see their earlier clones.
    """

    def __init__(self) -> None:
        self.deals: dict[str, dict[str, Any]] = {}
        self.associations: dict[tuple[str, str, str], list[str]] = {}
        self.lineage: dict[str, list[str]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._ids = itertools.count(9001)

        # Failure injection
        self.fail_put: Callable[[str, str, str, str], bool] = lambda *args: False
        self.fail_batch: Callable[[str, str, str, str], bool] = lambda *args: False
        self.fail_rest_associations: set[str] = set()
        self.fail_graphql = False
        self.fail_create = False
        self.fail_update = False

    # ── Seeding ──────────────────────────────────────────────────────────

    def add_deal(self, deal_id: str, **properties: Any) -> None:
        self.deals[deal_id] = {"hs_object_id": deal_id, **properties}

    def link(self, from_type: str, from_id: str, to_type: str, to_id: str) -> None:
        bucket = self.associations.setdefault((from_type, from_id, to_type), [])
        if to_id not in bucket:
            bucket.append(to_id)

    def add_lineage(self, deal_id: str, *clone_ids: str) -> None:
        for clone_id in clone_ids:
            self.lineage.setdefault(deal_id, []).append(clone_id)
            self.link("deals", deal_id, "deals", clone_id)

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    # ── HubSpotClient surface ────────────────────────────────────────────

    async def get_deal(self, deal_id, properties=None):
        self.calls.append(("get_deal", (deal_id, properties)))
        if deal_id not in self.deals:
            raise UpstreamFetchError(f"Failed to fetch deal {deal_id}", deal_id=deal_id, status_code=404)
        deal = self.deals[deal_id]
        if properties:
            return {name: deal.get(name) for name in properties}
        return dict(deal)

    async def create_deal(self, properties):
        self.calls.append(("create_deal", (dict(properties),)))
        if self.fail_create:
            raise UpstreamWriteError("Failed to create deal", status_code=400)
        new_id = str(next(self._ids))
        self.deals[new_id] = {"hs_object_id": new_id, **properties}
        return new_id

    async def update_deal(self, deal_id, properties):
        self.calls.append(("update_deal", (deal_id, dict(properties))))
        if self.fail_update:
            raise UpstreamWriteError(f"Failed to update deal {deal_id}", deal_id=deal_id, status_code=500)
        self.deals[deal_id].update(properties)

    async def list_associations(self, deal_id, to_type):
        self.calls.append(("list_associations", (deal_id, to_type)))
        if to_type in self.fail_rest_associations:
            raise UpstreamFetchError(f"Failed to list {to_type} associations", status_code=500)
        return list(self.associations.get(("deals", deal_id, to_type), []))

    def _record_edge(self, from_type, from_id, to_type, to_id, type_id):
        self.link(from_type, from_id, to_type, to_id)
        if from_type == "deals" and to_type == "deals" and type_id == LINEAGE_TYPE_ID:
            bucket = self.lineage.setdefault(from_id, [])
            if to_id not in bucket:
                bucket.append(to_id)

    async def put_association(self, from_type, from_id, to_type, to_id, association_type_id):
        self.calls.append(("put_association", (from_type, from_id, to_type, to_id, association_type_id)))
        if self.fail_put(from_type, from_id, to_type, to_id):
            raise UpstreamWriteError(f"Failed to associate {from_type} {from_id} -> {to_type} {to_id}", status_code=400)
        self._record_edge(from_type, from_id, to_type, to_id, association_type_id)

    async def batch_create_associations(self, from_type, to_type, inputs):
        self.calls.append(("batch_create_associations", (from_type, to_type, inputs)))
        for item in inputs:
            from_id, to_id = item["from"]["id"], item["to"]["id"]
            if self.fail_batch(from_type, from_id, to_type, to_id):
                raise UpstreamWriteError(f"Batch association {from_type} -> {to_type} failed", status_code=400)
            self._record_edge(from_type, from_id, to_type, to_id, item["types"][0]["associationTypeId"])

    async def query_graphql(self, query, variables):
        self.calls.append(("query_graphql", (variables,)))
        if self.fail_graphql:
            raise UpstreamFetchError("GraphQL request failed", status_code=502)
        deal_id = variables["id"]
        if deal_id not in self.deals:
            return {"CRM": {"deal": None}}

        def collection(to_type: str) -> dict[str, Any]:
            ids = self.associations.get(("deals", deal_id, to_type), [])
            return {"total": len(ids), "items": [{"hs_object_id": i} for i in ids]}

        lineage_ids = self.lineage.get(deal_id, [])
        deal = self.deals[deal_id]
        return {
            "CRM": {
                "deal": {
                    "hs_object_id": deal_id,
                    "properties": {
                        "deal_clone_number": deal.get("deal_clone_number"),
                        "dealname": deal.get("dealname"),
                    },
                    "associations": {
                        "contact_collection__deal_to_contact": collection("contacts"),
                        "company_collection__deal_to_company_unlabeled": collection("companies"),
                        "deal_collection__original_deal_cloned_deal": {
                            "total": len(lineage_ids),
                            "items": [{"hs_object_id": i} for i in lineage_ids],
                        },
                        "ticket_collection__deal_to_ticket": collection("tickets"),
                    },
                }
            }
        }


@pytest.fixture
def fake_hubspot() -> FakeHubSpotClient:
    """Store seeded with deal 101 ("Acme Deal"), two contacts, a company and a ticket."""
    store = FakeHubSpotClient()
    store.add_deal(
        "101",
        dealname="Acme Deal",
        deal_number="1",
        amount="5000",
        dealstage="closedwon",
        pipeline="default",
        createdate="2026-01-15T00:00:00Z",
        hs_lastmodifieddate="2026-01-20T00:00:00Z",
        hs_mrr="410",
        pricing_model="tiered",
        closed_won_notes=None,
    )
    store.link("deals", "101", "contacts", "201")
    store.link("deals", "101", "contacts", "202")
    store.link("deals", "101", "companies", "301")
    store.link("deals", "101", "tickets", "401")
    return store


@pytest.fixture
def service(fake_hubspot) -> DuplicationService:
    return DuplicationService(
        client=fake_hubspot,  # type: ignore[arg-type]
        target_deal_stage=TARGET_STAGE,
        target_pipeline=TARGET_PIPELINE,
    )
