"""Deal duplication orchestrator -- the engine's two entry points.

duplicate() sequences the whole clone operation:
1. validate deal id and credential
2. merge default + custom properties
3. count prior clones from live lineage associations (degrades to 0)
4. derive name/ordinal and sanitize
5. create the deal                          <- commit point
6. normalize associations, forcing a lineage edge back to the source
7. synchronize relationships (best effort, never rolls back 5)
8. re-apply the target stage/pipeline
9. return ok with the new id

Failures before step 5 abort with an error result. After step 5 only the
stage update (step 8) is load-bearing; relationship failures are recorded on
the SyncReport.

Both entry points report failures as typed results and never raise.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from src.dealclone.config import Settings
from src.dealclone.deals.associations import AssociationReader, normalize_associations
from src.dealclone.deals.crm.client import HubSpotClient
from src.dealclone.deals.crm.field_mapping import DEAL_STAGE_PROPERTY, PIPELINE_PROPERTY
from src.dealclone.deals.crm.sync import RelationshipSynchronizer
from src.dealclone.deals.errors import ConfigError, UpstreamFetchError, UpstreamWriteError
from src.dealclone.deals.naming import DEFAULT_PLACEHOLDER_NAME, derive_from_properties
from src.dealclone.deals.properties import build_clone_properties, fetch_merged_properties
from src.dealclone.deals.schemas import (
    AssociationSummary,
    DuplicateResult,
    Edge,
    EdgeSet,
    ObjectType,
    RelationLabel,
)

logger = structlog.get_logger(__name__)


class DuplicationService:
    """Clones a deal with its curated properties and relationship graph.

    Stateless between calls; all durable state lives in HubSpot.

    Args:
        client: HubSpotClient, or None when no credential is configured.
        target_deal_stage: Stage written onto every clone.
        target_pipeline: Pipeline written onto every clone.
        placeholder_name: Name used when the source deal has none.
        synchronizer: Optional RelationshipSynchronizer override.
    """

    def __init__(
        self,
        client: HubSpotClient | None,
        target_deal_stage: str,
        target_pipeline: str,
        placeholder_name: str = DEFAULT_PLACEHOLDER_NAME,
        synchronizer: RelationshipSynchronizer | None = None,
    ) -> None:
        self._client = client
        self._target_stage = target_deal_stage
        self._target_pipeline = target_pipeline
        self._placeholder_name = placeholder_name
        self._reader = AssociationReader(client) if client is not None else None
        self._synchronizer = synchronizer or (
            RelationshipSynchronizer(client) if client is not None else None
        )

    def _require_client(self, deal_id: str | None) -> HubSpotClient:
        if not deal_id or not str(deal_id).strip():
            raise ConfigError("No deal id provided!")
        if self._client is None:
            raise ConfigError("No HubSpot Private App token available!", deal_id=deal_id)
        return self._client

    async def duplicate(
        self,
        source_deal_id: str | None,
        associations: Mapping[str, Any] | EdgeSet | None = None,
    ) -> DuplicateResult:
        """Clone source_deal_id and replay its associations onto the clone.

        Args:
            source_deal_id: Deal to clone.
            associations: Caller-supplied association payload in REST or
                GraphQL shape. When omitted, associations are read from HubSpot.

        Returns:
            DuplicateResult(status="ok", new_deal_id=...) or a single error.
        """
        log = logger.bind(source_deal_id=source_deal_id)
        new_deal_id: str | None = None

        try:
            client = self._require_client(source_deal_id)
            source_deal_id = str(source_deal_id).strip()
            log.info("duplication.started")

            properties = await fetch_merged_properties(client, source_deal_id)
            prior_clones = await self._reader.count_prior_clones(source_deal_id)
            clone_name = derive_from_properties(
                properties, prior_clones, self._placeholder_name
            )
            payload = build_clone_properties(
                properties, clone_name, self._target_stage, self._target_pipeline
            )

            new_deal_id = await client.create_deal(payload)
            log.info(
                "duplication.deal_created",
                new_deal_id=new_deal_id,
                dealname=clone_name.name,
                ordinal=clone_name.ordinal,
            )

            edge_set = await self._resolve_edge_set(source_deal_id, associations)
            edge_set = edge_set.without_target(new_deal_id).with_edge(
                Edge(
                    target_id=source_deal_id,
                    target_type=ObjectType.DEALS,
                    relation_label=RelationLabel.DEAL_LINEAGE,
                )
            )

            report = await self._synchronizer.sync(new_deal_id, source_deal_id, edge_set)

            await client.update_deal(
                new_deal_id,
                {DEAL_STAGE_PROPERTY: self._target_stage, PIPELINE_PROPERTY: self._target_pipeline},
            )
            log.info(
                "duplication.completed",
                new_deal_id=new_deal_id,
                linked=report.linked,
                failed=report.failed,
            )
            return DuplicateResult.ok(new_deal_id, report)

        except UpstreamWriteError as exc:
            if new_deal_id is not None:
                exc.message = f"{exc.message} (deal {new_deal_id} was created)"
            log.error("duplication.write_failed", new_deal_id=new_deal_id, error=str(exc))
            return DuplicateResult.from_error(exc)
        except ConfigError as exc:
            log.warning("duplication.rejected", error=str(exc))
            return DuplicateResult.from_error(exc)
        except Exception as exc:
            log.exception("duplication.failed", new_deal_id=new_deal_id)
            return DuplicateResult.from_error(exc)

    async def _resolve_edge_set(
        self,
        source_deal_id: str,
        associations: Mapping[str, Any] | EdgeSet | None,
    ) -> EdgeSet:
        """Normalize the caller's payload, or read associations when none was given.

        Runs after the commit point, so an unreadable source yields an empty
        EdgeSet instead of an error.
        """
        if associations:
            return normalize_associations(associations)
        try:
            return await self._reader.read_edges(source_deal_id)
        except UpstreamFetchError as exc:
            logger.warning(
                "duplication.associations_unavailable",
                source_deal_id=source_deal_id,
                error=str(exc),
            )
            return EdgeSet()

    async def fetch_associations(self, deal_id: str | None) -> AssociationSummary:
        """Read-only association view plus the clone-count hint.

        Returns:
            AssociationSummary with the canonical EdgeSet, per-label counts,
            the authoritative clone_count and the stored counter hint.
        """
        try:
            self._require_client(deal_id)
            deal_id = str(deal_id).strip()
            snapshot = await self._reader.read(deal_id)
        except ConfigError as exc:
            logger.warning("associations.rejected", deal_id=deal_id, error=str(exc))
            return AssociationSummary.from_error(exc, deal_id)
        except Exception as exc:
            logger.exception("associations.failed", deal_id=deal_id)
            return AssociationSummary.from_error(exc, deal_id)

        return AssociationSummary.from_edge_set(
            deal_id, snapshot.edges, snapshot.stored_clone_number
        )


def create_duplication_service(settings: Settings) -> DuplicationService:
    """Build a DuplicationService from validated settings.

    The HubSpot client is created once here. Without a credential the service
    is still returned; its entry points report a ConfigError.
    """
    client: HubSpotClient | None = None
    if settings.has_access_token:
        client = HubSpotClient(
            access_token=settings.PRIVATE_APP_ACCESS_TOKEN.strip(),
            base_url=settings.HUBSPOT_API_BASE_URL,
            read_timeout=settings.HTTP_TIMEOUT_READ,
            mutate_timeout=settings.HTTP_TIMEOUT_MUTATE,
        )
    else:
        logger.warning("duplication.no_access_token")

    return DuplicationService(
        client=client,
        target_deal_stage=settings.CLONE_TARGET_DEAL_STAGE,
        target_pipeline=settings.CLONE_TARGET_PIPELINE,
        placeholder_name=settings.CLONE_PLACEHOLDER_NAME,
    )
