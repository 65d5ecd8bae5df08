"""Pydantic schemas for deal duplication -- edges, sync outcomes, and entry point results.

Defines all structured types that flow through the duplication engine:
- Enums: RelationLabel, ObjectType, EdgeStatus, WriteStrategy
- Relationship graph: Edge, EdgeSet
- Synchronizer diagnostics: EdgeOutcome, SyncReport
- Entry point results: DuplicateResult, AssociationSummary
"""

from __future__ import annotations

import traceback
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    FieldSerializationInfo,
    field_serializer,
    field_validator,
)


# ── Enums ───────────────────────────────────────────────────────────────────


class RelationLabel(str, Enum):
    """Canonical relationship categories a cloned deal carries over."""

    CONTACT = "contact-link"
    COMPANY = "company-link"
    TICKET = "ticket-link"
    DEAL_LINEAGE = "deal-lineage-link"


class ObjectType(str, Enum):
    """HubSpot CRM object types (REST path segment form)."""

    DEALS = "deals"
    CONTACTS = "contacts"
    COMPANIES = "companies"
    TICKETS = "tickets"


class EdgeStatus(str, Enum):
    """Terminal state of a single association write."""

    LINKED = "linked"
    FAILED = "failed"
    SKIPPED = "skipped"


class WriteStrategy(str, Enum):
    """Association API generation used for a write attempt."""

    PER_PAIR = "per_pair"
    BATCH = "batch"


# ── Relationship Graph ──────────────────────────────────────────────────────


class Edge(BaseModel):
    """A relationship candidate from the deal to one target record."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    target_type: ObjectType
    relation_label: RelationLabel


class EdgeSet(BaseModel):
    """Canonical association set, keyed by relation label.

    Every label is always present (possibly with an empty tuple). Built once
    per operation; the helpers below return new EdgeSets instead of mutating.
    """

    model_config = ConfigDict(frozen=True)

    edges: Mapping[RelationLabel, tuple[Edge, ...]] = Field(
        default_factory=lambda: {label: () for label in RelationLabel},
        validate_default=True,
    )

    @field_validator("edges", mode="after")
    @classmethod
    def _freeze_edges(
        cls, value: Mapping[RelationLabel, tuple[Edge, ...]]
    ) -> Mapping[RelationLabel, tuple[Edge, ...]]:
        """Fill in missing labels and store the groups as a read-only view."""
        return MappingProxyType({label: tuple(value.get(label, ())) for label in RelationLabel})

    @field_serializer("edges")
    def _serialize_edges(
        self, value: Mapping[RelationLabel, tuple[Edge, ...]], info: FieldSerializationInfo
    ) -> dict[str, list]:
        return {
            label.value: [edge.model_dump(mode=info.mode) for edge in value.get(label, ())]
            for label in RelationLabel
        }

    @classmethod
    def from_edges(cls, edges: list[Edge]) -> EdgeSet:
        """Group edges by label, collapsing duplicates (first occurrence wins)."""
        grouped: dict[RelationLabel, list[Edge]] = {label: [] for label in RelationLabel}
        seen: set[Edge] = set()
        for edge in edges:
            if edge in seen:
                continue
            seen.add(edge)
            grouped[edge.relation_label].append(edge)
        return cls(edges={label: tuple(items) for label, items in grouped.items()})

    def get(self, label: RelationLabel) -> tuple[Edge, ...]:
        return self.edges.get(label, ())

    def all_edges(self) -> list[Edge]:
        """All edges in label declaration order."""
        return [edge for label in RelationLabel for edge in self.get(label)]

    def counts(self) -> dict[str, int]:
        return {label.value: len(self.get(label)) for label in RelationLabel}

    def with_edge(self, edge: Edge) -> EdgeSet:
        return EdgeSet.from_edges([*self.all_edges(), edge])

    def without_target(self, target_id: str) -> EdgeSet:
        """Drop every edge pointing at target_id (used to prevent self-edges)."""
        return EdgeSet.from_edges(
            [edge for edge in self.all_edges() if edge.target_id != target_id]
        )

    def __len__(self) -> int:
        return sum(len(items) for items in self.edges.values())


# ── Synchronizer Diagnostics ────────────────────────────────────────────────


class EdgeOutcome(BaseModel):
    """Result of replaying one association onto the store."""

    from_type: ObjectType
    from_id: str
    to_type: ObjectType
    to_id: str
    label: RelationLabel
    association_type_id: int | None = None
    status: EdgeStatus
    strategy: WriteStrategy | None = None
    attempts: list[WriteStrategy] = Field(default_factory=list)
    error: str | None = None


class SyncReport(BaseModel):
    """Aggregated outcomes of one synchronization run."""

    outcomes: list[EdgeOutcome] = Field(default_factory=list)
    linked: int = 0
    failed: int = 0
    skipped: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: list[EdgeOutcome]) -> SyncReport:
        return cls(
            outcomes=outcomes,
            linked=sum(1 for o in outcomes if o.status == EdgeStatus.LINKED),
            failed=sum(1 for o in outcomes if o.status == EdgeStatus.FAILED),
            skipped=sum(1 for o in outcomes if o.status == EdgeStatus.SKIPPED),
        )

    def is_linked(self, from_id: str, to_id: str) -> bool:
        """Return True if an association from_id -> to_id was created."""
        return any(
            o.from_id == from_id and o.to_id == to_id and o.status == EdgeStatus.LINKED
            for o in self.outcomes
        )


# ── Entry Point Results ─────────────────────────────────────────────────────


def _format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


class DuplicateResult(BaseModel):
    """Outcome of duplicate(): either ok with the new id, or a single error."""

    status: Literal["ok", "error"]
    new_deal_id: str | None = None
    message: str | None = None
    error_type: str | None = None
    stack: str | None = None
    sync_report: SyncReport | None = None

    @classmethod
    def ok(cls, new_deal_id: str, sync_report: SyncReport | None = None) -> DuplicateResult:
        return cls(status="ok", new_deal_id=new_deal_id, sync_report=sync_report)

    @classmethod
    def from_error(cls, exc: BaseException) -> DuplicateResult:
        return cls(
            status="error",
            message=str(exc) or type(exc).__name__,
            error_type=type(exc).__name__,
            stack=_format_stack(exc),
        )


class AssociationSummary(BaseModel):
    """Read-only association view used to render counts before duplicating."""

    status: Literal["ok", "error"]
    deal_id: str | None = None
    edges: EdgeSet | None = None
    counts: dict[str, int] = Field(default_factory=dict)
    clone_count: int = 0
    stored_clone_number: str = "0"
    message: str | None = None
    error_type: str | None = None
    stack: str | None = None

    @classmethod
    def from_edge_set(
        cls, deal_id: str, edges: EdgeSet, stored_clone_number: str = "0"
    ) -> AssociationSummary:
        return cls(
            status="ok",
            deal_id=deal_id,
            edges=edges,
            counts=edges.counts(),
            clone_count=len(edges.get(RelationLabel.DEAL_LINEAGE)),
            stored_clone_number=stored_clone_number,
        )

    @classmethod
    def from_error(cls, exc: BaseException, deal_id: str | None = None) -> AssociationSummary:
        return cls(
            status="error",
            deal_id=deal_id,
            message=str(exc) or type(exc).__name__,
            error_type=type(exc).__name__,
            stack=_format_stack(exc),
        )
