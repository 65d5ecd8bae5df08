"""Association writer abstract base class and the two HubSpot API generations.

HubSpot exposes two incompatible association write APIs:
- v3 per-pair PUT: create-or-replace one typed edge between two records.
- v4 batch create: POST a list of inputs; the only reliable path for some
  object-type pairs (notably anything involving tickets).

Each generation is an AssociationWriter tagged with the object-type pairs it
handles. The RelationshipSynchronizer tries writers in a fixed order and is
the only place that knows a fallback exists.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.dealclone.deals.crm.client import HubSpotClient
from src.dealclone.deals.crm.field_mapping import AssociationType
from src.dealclone.deals.errors import RelationshipSyncError, UpstreamWriteError
from src.dealclone.deals.schemas import ObjectType, WriteStrategy


class AssociationWriter(ABC):
    """Abstract interface for creating one association on the store.

    Attributes:
        strategy: The WriteStrategy tag recorded on EdgeOutcome attempts.
    """

    strategy: WriteStrategy

    @abstractmethod
    def supports(self, from_type: ObjectType, to_type: ObjectType) -> bool:
        """Return True if this writer should be tried for the object-type pair."""
        ...

    @abstractmethod
    async def write(
        self,
        from_type: ObjectType,
        from_id: str,
        to_type: ObjectType,
        to_id: str,
        association_type: AssociationType,
    ) -> None:
        """Create the association, raising RelationshipSyncError on failure."""
        ...


class PerPairAssociationWriter(AssociationWriter):
    """v3 per-pair PUT writer. Handles every object-type pair."""

    strategy = WriteStrategy.PER_PAIR

    def __init__(self, client: HubSpotClient) -> None:
        self._client = client

    def supports(self, from_type: ObjectType, to_type: ObjectType) -> bool:
        return True

    async def write(
        self,
        from_type: ObjectType,
        from_id: str,
        to_type: ObjectType,
        to_id: str,
        association_type: AssociationType,
    ) -> None:
        try:
            await self._client.put_association(
                from_type.value, from_id, to_type.value, to_id, association_type.type_id
            )
        except UpstreamWriteError as exc:
            raise RelationshipSyncError(
                f"per-pair association {from_type.value} {from_id} -> "
                f"{to_type.value} {to_id} failed: {exc}",
                deal_id=from_id,
                status_code=exc.status_code,
            ) from exc


class BatchAssociationWriter(AssociationWriter):
    """v4 batch-create writer with a single input element.

    Only used for pairs involving tickets, where the per-pair endpoint is
    unreliable.
    """

    strategy = WriteStrategy.BATCH

    def __init__(self, client: HubSpotClient) -> None:
        self._client = client

    def supports(self, from_type: ObjectType, to_type: ObjectType) -> bool:
        return ObjectType.TICKETS in (from_type, to_type)

    async def write(
        self,
        from_type: ObjectType,
        from_id: str,
        to_type: ObjectType,
        to_id: str,
        association_type: AssociationType,
    ) -> None:
        inputs = [
            {
                "from": {"id": str(from_id)},
                "to": {"id": str(to_id)},
                "types": [
                    {
                        "associationCategory": association_type.category,
                        "associationTypeId": association_type.type_id,
                    }
                ],
            }
        ]
        try:
            await self._client.batch_create_associations(
                from_type.value, to_type.value, inputs
            )
        except UpstreamWriteError as exc:
            raise RelationshipSyncError(
                f"batch association {from_type.value} {from_id} -> "
                f"{to_type.value} {to_id} failed: {exc}",
                deal_id=from_id,
                status_code=exc.status_code,
            ) from exc
