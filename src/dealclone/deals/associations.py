"""Association normalization -- REST and GraphQL shapes to one canonical EdgeSet.

Associations reach the engine in two shapes:
- REST shape: ``{label: [{"id": ..., "type": "contacts"}, ...]}`` where label
  is a canonical RelationLabel value or a legacy alias (``deal_contact``,
  ``DEAL_TO_COMPANY``, ``original_deal_cloned_deal``, ``ramp``).
- GraphQL shape: the collector API's nested document, keyed by upstream
  collection names, each with ``total`` and ``items[].hs_object_id``.

Both are normalized through the static tables in field_mapping. Unknown
labels and malformed items are dropped; normalization never raises.

AssociationReader reads a deal's associations from HubSpot, REST first per
relation type and falling back to one lazily fetched GraphQL document for any
type whose REST read failed or came back empty.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, NamedTuple

import structlog

from src.dealclone.deals.crm.client import HubSpotClient
from src.dealclone.deals.crm.field_mapping import (
    CLONE_NUMBER_PROPERTY,
    COLLECTION_LABEL_MAP,
    DEAL_NAME_PROPERTY,
    LABEL_OBJECT_TYPES,
    resolve_label,
)
from src.dealclone.deals.errors import UpstreamFetchError
from src.dealclone.deals.schemas import Edge, EdgeSet, ObjectType, RelationLabel

logger = structlog.get_logger(__name__)


DEAL_ASSOCIATIONS_QUERY = """
  query data($id: String!) {
    CRM {
      deal(uniqueIdentifier: "hs_object_id", uniqueIdentifierValue: $id) {
        hs_object_id
        properties {
          deal_clone_number
          dealname
        }
        associations {
          contact_collection__deal_to_contact {
            total
            items { hs_object_id }
          }
          company_collection__deal_to_company_unlabeled {
            total
            items { hs_object_id }
          }
          deal_collection__original_deal_cloned_deal {
            total
            items { hs_object_id }
          }
          ticket_collection__deal_to_ticket {
            total
            items { hs_object_id }
          }
        }
      }
    }
  }
"""

CLONE_LINEAGE_QUERY = """
  query data($id: String!) {
    CRM {
      deal(uniqueIdentifier: "hs_object_id", uniqueIdentifierValue: $id) {
        associations {
          deal_collection__original_deal_cloned_deal {
            total
            items { hs_object_id }
          }
        }
      }
    }
  }
"""

_LINEAGE_COLLECTION = "deal_collection__original_deal_cloned_deal"
_ID_KEYS = ("id", "hs_object_id", "toObjectId", "target_id")


# ── Normalization ──────────────────────────────────────────────────────────


def _item_id(item: Any) -> str | None:
    """Extract an object id from an item in any supported shape."""
    if isinstance(item, (str, int)) and not isinstance(item, bool):
        return str(item) if str(item) else None
    if isinstance(item, Mapping):
        for key in _ID_KEYS:
            value = item.get(key)
            if value is not None and value != "":
                return str(value)
    return None


def _item_type(item: Any, label: RelationLabel) -> ObjectType | None:
    """Object type declared by the item, defaulting to the label's type."""
    raw_type = None
    if isinstance(item, Mapping):
        raw_type = item.get("type") or item.get("target_type")
    if raw_type is None:
        return LABEL_OBJECT_TYPES[label]
    try:
        return ObjectType(raw_type)
    except ValueError:
        return None


def _collection_items(collection: Any) -> list[Any]:
    if isinstance(collection, Mapping):
        items = collection.get("items")
    else:
        items = collection
    return list(items) if isinstance(items, list) else []


def normalize_rest(raw: Mapping[str, Any]) -> EdgeSet:
    """Normalize a REST-shaped association mapping into an EdgeSet."""
    edges: list[Edge] = []
    for raw_label, items in raw.items():
        label = resolve_label(str(raw_label))
        if label is None:
            logger.debug("associations.unknown_label", label=raw_label)
            continue
        if not isinstance(items, list):
            continue
        for item in items:
            target_id = _item_id(item)
            target_type = _item_type(item, label)
            if target_id is None or target_type is None:
                logger.debug("associations.malformed_item", label=label.value, item=item)
                continue
            edges.append(Edge(target_id=target_id, target_type=target_type, relation_label=label))
    return EdgeSet.from_edges(edges)


def _graphql_associations(document: Mapping[str, Any]) -> Mapping[str, Any]:
    """Locate the collections node in a deal node or bare associations node."""
    inner = document.get("associations")
    if isinstance(inner, Mapping):
        return inner
    return document


def normalize_graphql(document: Mapping[str, Any]) -> EdgeSet:
    """Normalize a GraphQL deal (or associations) node into an EdgeSet."""
    collections = _graphql_associations(document)
    edges: list[Edge] = []
    for collection_name, label in COLLECTION_LABEL_MAP.items():
        target_type = LABEL_OBJECT_TYPES[label]
        for item in _collection_items(collections.get(collection_name)):
            target_id = _item_id(item)
            if target_id is None:
                continue
            edges.append(Edge(target_id=target_id, target_type=target_type, relation_label=label))
    return EdgeSet.from_edges(edges)


def is_graphql_shape(raw: Mapping[str, Any]) -> bool:
    collections = _graphql_associations(raw)
    return any(key in COLLECTION_LABEL_MAP for key in collections)


def normalize_associations(raw: Mapping[str, Any] | EdgeSet | None) -> EdgeSet:
    """Normalize a caller-supplied association payload of either shape.

    Pure and idempotent: the same payload always yields an equal EdgeSet.
    """
    if raw is None:
        return EdgeSet()
    if isinstance(raw, EdgeSet):
        return raw
    if isinstance(raw, Mapping) and isinstance(raw.get("edges"), Mapping):
        # Round-tripped EdgeSet / AssociationSummary payload
        return normalize_associations(raw["edges"])
    if is_graphql_shape(raw):
        return normalize_graphql(raw)
    return normalize_rest(raw)


def count_lineage(document: Mapping[str, Any]) -> int:
    """Count clone-lineage associations in a GraphQL document."""
    collection = _graphql_associations(document).get(_LINEAGE_COLLECTION)
    if isinstance(collection, Mapping) and isinstance(collection.get("total"), int):
        return collection["total"]
    return len(_collection_items(collection))


# ── Reader ─────────────────────────────────────────────────────────────────


def _deal_node(data: Any) -> dict[str, Any] | None:
    """The ``CRM.deal`` node of a GraphQL data object, if well formed."""
    crm = data.get("CRM") if isinstance(data, Mapping) else None
    deal = crm.get("deal") if isinstance(crm, Mapping) else None
    return deal if isinstance(deal, dict) else None


class AssociationSnapshot(NamedTuple):
    """Associations read from HubSpot plus the stored clone counter hint."""

    edges: EdgeSet
    stored_clone_number: str


class _DocumentCache:
    """Fetches the GraphQL deal document at most once; None if unavailable."""

    def __init__(self, reader: AssociationReader, deal_id: str) -> None:
        self._reader = reader
        self._deal_id = deal_id
        self._document: dict[str, Any] | None = None
        self._failed = False

    async def get(self) -> dict[str, Any] | None:
        if self._document is None and not self._failed:
            try:
                self._document = await self._reader.fetch_deal_document(self._deal_id)
            except UpstreamFetchError as exc:
                self._failed = True
                logger.warning(
                    "associations.graphql_unavailable", deal_id=self._deal_id, error=str(exc)
                )
        return self._document


class AssociationReader:
    """Reads a deal's associations from HubSpot into the canonical EdgeSet.

    Args:
        client: HubSpotClient used for REST and GraphQL reads.
    """

    def __init__(self, client: HubSpotClient) -> None:
        self._client = client

    async def fetch_deal_document(self, deal_id: str) -> dict[str, Any]:
        """Fetch the GraphQL deal node with properties and all collections.

        Raises:
            UpstreamFetchError: Request failed or the deal node was missing.
        """
        data = await self._client.query_graphql(DEAL_ASSOCIATIONS_QUERY, {"id": str(deal_id)})
        deal = _deal_node(data)
        if deal is None:
            raise UpstreamFetchError(
                f"Deal not found or inaccessible with ID: {deal_id}", deal_id=deal_id
            )
        return deal

    async def count_prior_clones(self, deal_id: str) -> int:
        """Count clone-lineage associations on a deal; 0 if the read fails."""
        try:
            data = await self._client.query_graphql(CLONE_LINEAGE_QUERY, {"id": str(deal_id)})
        except UpstreamFetchError as exc:
            logger.warning("associations.clone_count_unavailable", deal_id=deal_id, error=str(exc))
            return 0
        count = count_lineage(_deal_node(data) or {})
        logger.info("associations.clone_count", deal_id=deal_id, prior_clones=count)
        return count

    async def read_edges(
        self, deal_id: str, fallback: _DocumentCache | None = None
    ) -> EdgeSet:
        """Read every relation type, REST first with per-type GraphQL fallback.

        A relation type with neither source available yields no edges. Never
        raises for an unavailable source.
        """
        if fallback is None:
            fallback = _DocumentCache(self, deal_id)

        edges: list[Edge] = []
        for label in RelationLabel:
            target_type = LABEL_OBJECT_TYPES[label]
            ids: list[str] = []
            try:
                ids = await self._client.list_associations(deal_id, target_type.value)
            except UpstreamFetchError as exc:
                logger.info(
                    "associations.rest_read_failed",
                    deal_id=deal_id,
                    object_type=target_type.value,
                    error=str(exc),
                )

            if ids:
                edges.extend(
                    Edge(target_id=target_id, target_type=target_type, relation_label=label)
                    for target_id in ids
                )
                continue

            document = await fallback.get()
            if document is not None:
                edges.extend(normalize_graphql(document).get(label))

        edge_set = EdgeSet.from_edges(edges).without_target(str(deal_id))
        logger.info("associations.read", deal_id=deal_id, counts=edge_set.counts())
        return edge_set

    async def read(self, deal_id: str) -> AssociationSnapshot:
        """Read the deal's edges together with its stored clone counter hint.

        Raises:
            UpstreamFetchError: Neither the REST property read nor the GraphQL
                document could be fetched, so the deal itself is unreachable.
        """
        fallback = _DocumentCache(self, deal_id)

        try:
            properties = await self._client.get_deal(
                deal_id, (CLONE_NUMBER_PROPERTY, DEAL_NAME_PROPERTY)
            )
            stored_clone_number = properties.get(CLONE_NUMBER_PROPERTY)
        except UpstreamFetchError as exc:
            logger.warning("associations.rest_deal_unavailable", deal_id=deal_id, error=str(exc))
            document = await fallback.get()
            if document is None:
                raise
            deal_properties = document.get("properties")
            stored_clone_number = (
                deal_properties.get(CLONE_NUMBER_PROPERTY)
                if isinstance(deal_properties, Mapping)
                else None
            )

        edge_set = await self.read_edges(deal_id, fallback)
        return AssociationSnapshot(
            edges=edge_set,
            stored_clone_number=str(stored_clone_number or "0"),
        )
