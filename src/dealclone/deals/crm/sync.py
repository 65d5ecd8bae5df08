"""Best-effort relationship synchronizer for cloned deals.

Replays a canonical EdgeSet onto a freshly created deal.

Key design decisions:
- The clone-lineage pair (source -> clone, clone -> source) is always
  scheduled, whatever the EdgeSet holds; downstream numbering counts these.
- Writers are tried in a fixed order: v3 per-pair PUT first, then the v4 batch
  endpoint, but only for pairs involving tickets. One fallback, no backoff.
- Tickets get an extra proactive pass: the source deal's ticket associations
  are re-read and batch-created in both directions, minus the deal -> ticket
  writes the EdgeSet already schedules.
- All writes fan out concurrently and are joined with
  ``asyncio.gather(return_exceptions=True)``; one failed edge never fails the
  others. Every attempt becomes an EdgeOutcome on the SyncReport.
"""

from __future__ import annotations

import asyncio
from typing import NamedTuple

import structlog

from src.dealclone.deals.crm.adapter import (
    AssociationWriter,
    BatchAssociationWriter,
    PerPairAssociationWriter,
)
from src.dealclone.deals.crm.client import HubSpotClient
from src.dealclone.deals.crm.field_mapping import (
    ASSOCIATION_TYPES,
    AssociationType,
    resolve_association_type,
)
from src.dealclone.deals.errors import RelationshipSyncError, UpstreamFetchError
from src.dealclone.deals.schemas import (
    Edge,
    EdgeOutcome,
    EdgeSet,
    EdgeStatus,
    ObjectType,
    RelationLabel,
    SyncReport,
    WriteStrategy,
)

logger = structlog.get_logger(__name__)


class PlannedWrite(NamedTuple):
    """One association scheduled for creation."""

    from_type: ObjectType
    from_id: str
    to_type: ObjectType
    to_id: str
    label: RelationLabel
    association_type: AssociationType
    writers: tuple[AssociationWriter, ...]


class RelationshipSynchronizer:
    """Creates every association a clone should carry, tolerating partial failure.

    Args:
        client: HubSpotClient used for the proactive ticket read and, by
            default, by the writers.
        writers: Association writers in the order they are tried. Defaults to
            per-pair PUT followed by batch create.
    """

    def __init__(
        self,
        client: HubSpotClient,
        writers: list[AssociationWriter] | None = None,
    ) -> None:
        self._client = client
        self._writers: tuple[AssociationWriter, ...] = tuple(
            writers
            if writers is not None
            else [PerPairAssociationWriter(client), BatchAssociationWriter(client)]
        )

    def _writers_for(self, from_type: ObjectType, to_type: ObjectType) -> tuple[AssociationWriter, ...]:
        return tuple(w for w in self._writers if w.supports(from_type, to_type))

    def _batch_writers(self) -> tuple[AssociationWriter, ...]:
        return tuple(w for w in self._writers if w.strategy == WriteStrategy.BATCH)

    def _plan(
        self,
        from_type: ObjectType,
        from_id: str,
        to_type: ObjectType,
        to_id: str,
        label: RelationLabel,
        association_type: AssociationType,
        writers: tuple[AssociationWriter, ...] | None = None,
    ) -> PlannedWrite:
        return PlannedWrite(
            from_type=from_type,
            from_id=str(from_id),
            to_type=to_type,
            to_id=str(to_id),
            label=label,
            association_type=association_type,
            writers=writers if writers is not None else self._writers_for(from_type, to_type),
        )

    # ── Planning ─────────────────────────────────────────────────────────

    def plan_lineage(self, new_deal_id: str, source_deal_id: str) -> list[PlannedWrite]:
        """Bidirectional clone-lineage pair between source and clone."""
        if not source_deal_id or not new_deal_id or source_deal_id == new_deal_id:
            return []
        lineage = ASSOCIATION_TYPES[RelationLabel.DEAL_LINEAGE]
        return [
            self._plan(
                ObjectType.DEALS, source_deal_id, ObjectType.DEALS, new_deal_id,
                RelationLabel.DEAL_LINEAGE, lineage,
            ),
            self._plan(
                ObjectType.DEALS, new_deal_id, ObjectType.DEALS, source_deal_id,
                RelationLabel.DEAL_LINEAGE, lineage,
            ),
        ]

    def plan_edges(
        self, new_deal_id: str, source_deal_id: str, edge_set: EdgeSet
    ) -> tuple[list[PlannedWrite], list[EdgeOutcome]]:
        """Plan clone -> target writes for every resolvable edge.

        Returns the planned writes plus SKIPPED outcomes for edges whose
        (label, target type) has no association type.
        """
        planned: list[PlannedWrite] = []
        skipped: list[EdgeOutcome] = []

        for edge in edge_set.all_edges():
            if edge.target_id == new_deal_id:
                logger.debug("sync.self_edge_discarded", deal_id=new_deal_id)
                continue
            if (
                edge.relation_label == RelationLabel.DEAL_LINEAGE
                and edge.target_id == source_deal_id
            ):
                # Covered by the lineage pair
                continue

            association_type = resolve_association_type(edge.relation_label, edge.target_type)
            if association_type is None:
                logger.warning(
                    "sync.edge_unresolved",
                    label=edge.relation_label.value,
                    target_type=edge.target_type.value,
                    target_id=edge.target_id,
                )
                skipped.append(_skipped_outcome(new_deal_id, edge))
                continue

            planned.append(
                self._plan(
                    ObjectType.DEALS, new_deal_id, edge.target_type, edge.target_id,
                    edge.relation_label, association_type,
                )
            )

        return planned, skipped

    async def plan_ticket_pass(
        self,
        new_deal_id: str,
        source_deal_id: str,
        planned_ticket_ids: frozenset[str] = frozenset(),
    ) -> list[PlannedWrite]:
        """Re-read the source's tickets and plan batch writes in both directions.

        Deal -> ticket writes already in planned_ticket_ids are not scheduled
        again. A failed read is logged and yields no writes.
        """
        batch_writers = self._batch_writers()
        if not batch_writers:
            return []

        try:
            ticket_ids = await self._client.list_associations(
                source_deal_id, ObjectType.TICKETS.value
            )
        except UpstreamFetchError as exc:
            logger.warning(
                "sync.ticket_pass_read_failed", deal_id=source_deal_id, error=str(exc)
            )
            return []

        ticket_type = ASSOCIATION_TYPES[RelationLabel.TICKET]
        planned: list[PlannedWrite] = []
        for ticket_id in dict.fromkeys(str(t) for t in ticket_ids):
            if ticket_id not in planned_ticket_ids:
                planned.append(
                    self._plan(
                        ObjectType.DEALS, new_deal_id, ObjectType.TICKETS, ticket_id,
                        RelationLabel.TICKET, ticket_type, batch_writers,
                    )
                )
            planned.append(
                self._plan(
                    ObjectType.TICKETS, ticket_id, ObjectType.DEALS, new_deal_id,
                    RelationLabel.TICKET, ticket_type, batch_writers,
                )
            )
        return planned

    # ── Execution ────────────────────────────────────────────────────────

    async def execute(self, planned: PlannedWrite) -> EdgeOutcome:
        """Try each writer in order until one succeeds.

        pending -> attempted(per_pair) -> linked | attempted(batch) -> linked | failed
        """
        attempts: list[WriteStrategy] = []
        last_error: str | None = None

        for writer in planned.writers:
            attempts.append(writer.strategy)
            try:
                await writer.write(
                    planned.from_type,
                    planned.from_id,
                    planned.to_type,
                    planned.to_id,
                    planned.association_type,
                )
            except RelationshipSyncError as exc:
                last_error = str(exc)
                logger.warning(
                    "sync.edge_attempt_failed",
                    strategy=writer.strategy.value,
                    from_type=planned.from_type.value,
                    from_id=planned.from_id,
                    to_type=planned.to_type.value,
                    to_id=planned.to_id,
                    association_type_id=planned.association_type.type_id,
                    error=last_error,
                )
                continue

            logger.debug(
                "sync.edge_linked",
                strategy=writer.strategy.value,
                from_id=planned.from_id,
                to_id=planned.to_id,
                label=planned.label.value,
            )
            return _outcome(planned, EdgeStatus.LINKED, attempts, writer.strategy)

        logger.error(
            "sync.edge_failed",
            from_type=planned.from_type.value,
            from_id=planned.from_id,
            to_type=planned.to_type.value,
            to_id=planned.to_id,
            label=planned.label.value,
            attempts=[a.value for a in attempts],
            error=last_error,
        )
        return _outcome(
            planned,
            EdgeStatus.FAILED,
            attempts,
            attempts[-1] if attempts else None,
            last_error or "no writer supports this object-type pair",
        )

    async def sync(self, new_deal_id: str, source_deal_id: str, edge_set: EdgeSet) -> SyncReport:
        """Replay edge_set onto the new deal and return the per-edge report.

        Individual edge failures are recorded, never raised.
        """
        planned = self.plan_lineage(new_deal_id, source_deal_id)
        edge_writes, skipped = self.plan_edges(new_deal_id, source_deal_id, edge_set)
        planned.extend(edge_writes)
        planned_ticket_ids = frozenset(
            write.to_id for write in edge_writes if write.to_type == ObjectType.TICKETS
        )
        planned.extend(
            await self.plan_ticket_pass(new_deal_id, source_deal_id, planned_ticket_ids)
        )

        results = await asyncio.gather(
            *(self.execute(write) for write in planned),
            return_exceptions=True,
        )

        outcomes: list[EdgeOutcome] = list(skipped)
        for write, result in zip(planned, results):
            if isinstance(result, BaseException):
                logger.error(
                    "sync.edge_crashed",
                    from_id=write.from_id,
                    to_id=write.to_id,
                    error=repr(result),
                )
                outcomes.append(_outcome(write, EdgeStatus.FAILED, [], None, repr(result)))
            else:
                outcomes.append(result)

        report = SyncReport.from_outcomes(outcomes)
        logger.info(
            "sync.complete",
            deal_id=new_deal_id,
            source_deal_id=source_deal_id,
            linked=report.linked,
            failed=report.failed,
            skipped=report.skipped,
        )
        return report


def _outcome(
    planned: PlannedWrite,
    status: EdgeStatus,
    attempts: list[WriteStrategy],
    strategy: WriteStrategy | None,
    error: str | None = None,
) -> EdgeOutcome:
    return EdgeOutcome(
        from_type=planned.from_type,
        from_id=planned.from_id,
        to_type=planned.to_type,
        to_id=planned.to_id,
        label=planned.label,
        association_type_id=planned.association_type.type_id,
        status=status,
        strategy=strategy,
        attempts=list(attempts),
        error=error,
    )


def _skipped_outcome(new_deal_id: str, edge: Edge) -> EdgeOutcome:
    return EdgeOutcome(
        from_type=ObjectType.DEALS,
        from_id=new_deal_id,
        to_type=edge.target_type,
        to_id=edge.target_id,
        label=edge.relation_label,
        status=EdgeStatus.SKIPPED,
        error="no association type for label/target type",
    )
