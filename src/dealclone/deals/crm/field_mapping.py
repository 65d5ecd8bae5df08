"""Static HubSpot property lists and association lookup tables for deal cloning.

Defines:
- CUSTOM_DEAL_PROPERTIES: The hand-curated deal properties fetched explicitly
  (financial, contractual, and ownership fields) and copied onto clones.
- EXCLUDED_PROPERTIES: Server-owned properties never sent on record creation.
- ASSOCIATION_TYPES: Relation label -> numeric association type id + category.
- COLLECTION_LABEL_MAP: GraphQL collection field -> relation label.
- LEGACY_LABEL_ALIASES: Older caller-side label names -> relation label.
- LABEL_OBJECT_TYPES: Relation label -> REST object type of the target.

All tables are read-only views; the label universe is fixed.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import NamedTuple

from src.dealclone.deals.schemas import ObjectType, RelationLabel


# ── Deal Properties ────────────────────────────────────────────────────────

CUSTOM_DEAL_PROPERTIES: tuple[str, ...] = (
    "accounting_currency",
    "deal_type_",
    "acquiring_profitability__rate",
    "of_potential_clients",
    "deal_number",
    "funding",
    "primary_trade_name",
    "reporting_name",
    "solutions_design_document_link",
    "solutions_review_owner",
    "technical_review_link",
    "tier",
    "travel_type",
    "bonus",
    "bonus_amount",
    "bonus_terms",
    "bonus_type",
    "closed_won_reason_s_",
    "closed_won_notes",
    "company_revenue",
    "company_type",
    "contract_date",
    "contract_link",
    "contracted_minimum_volume__annualized_",
    "customer_care_representative",
    "customer_success_manager",
    "estimated_annual_ach_in_volume",
    "estimated_annual_ach_out_volume",
    "estimated_annual_acquiring_volume",
    "estimated_annual_push_to_card_volume",
    "estimated_annual_issuing_volume",
    "total_potential_annual_pay_in_volume",
    "total_potential_annual_pay_out_volume",
    "hubspot_owner_id",
    "disqualification_notes",
    "disqualification_reasons",
    "expiration_date",
    "expected_start_date",
    "go_live_target_date__pay_in_",
    "implementation_manager",
    "issuing_profitability__rate",
    "keep_rate",
    "last_bonus_payout_date",
    "merchant_of_record",
    "needs_analysis_notes",
    "notice_period__in_days_",
    "notification_period_to_terminate__in_days_",
    "partnership_type",
    "pay_in___pay_out",
    "performance_bonus_frequency",
    "performance_effective_date",
    "performance_minimum_threshold",
    "pricing",
    "pricing_model",
    "proposal_link",
    "revenue_share",
    "sign_on_effective_date",
    "signing_date",
    "term__in_years_",
    "underwriting_comments",
    "underwriting_denial_reason_s_",
    "underwriting_status",
)

# Identity, audit, timestamps, and computed revenue metrics
EXCLUDED_PROPERTIES: frozenset[str] = frozenset({
    "hs_object_id",
    "associations",
    "createdate",
    "hs_lastmodifieddate",
    "hs_created_by_user_id",
    "hs_updated_by_user_id",
    "hs_object_source_id",
    "hs_mrr",
    "hs_acv",
})

DEAL_NAME_PROPERTY = "dealname"
DEAL_NUMBER_PROPERTY = "deal_number"
DEAL_STAGE_PROPERTY = "dealstage"
PIPELINE_PROPERTY = "pipeline"
CLONE_NUMBER_PROPERTY = "deal_clone_number"


# ── Association Tables ─────────────────────────────────────────────────────


class AssociationType(NamedTuple):
    """A HubSpot association type definition."""

    type_id: int
    category: str


ASSOCIATION_TYPES: MappingProxyType[RelationLabel, AssociationType] = MappingProxyType({
    RelationLabel.CONTACT: AssociationType(3, "HUBSPOT_DEFINED"),
    RelationLabel.COMPANY: AssociationType(5, "HUBSPOT_DEFINED"),
    RelationLabel.DEAL_LINEAGE: AssociationType(79, "USER_DEFINED"),
    RelationLabel.TICKET: AssociationType(116, "USER_DEFINED"),
})

COLLECTION_LABEL_MAP: MappingProxyType[str, RelationLabel] = MappingProxyType({
    "contact_collection__deal_to_contact": RelationLabel.CONTACT,
    "company_collection__deal_to_company_unlabeled": RelationLabel.COMPANY,
    "deal_collection__original_deal_cloned_deal": RelationLabel.DEAL_LINEAGE,
    "ticket_collection__deal_to_ticket": RelationLabel.TICKET,
})

LEGACY_LABEL_ALIASES: MappingProxyType[str, RelationLabel] = MappingProxyType({
    "deal_contact": RelationLabel.CONTACT,
    "DEAL_TO_COMPANY": RelationLabel.COMPANY,
    "original_deal_cloned_deal": RelationLabel.DEAL_LINEAGE,
    "ramp": RelationLabel.TICKET,
})

LABEL_OBJECT_TYPES: MappingProxyType[RelationLabel, ObjectType] = MappingProxyType({
    RelationLabel.CONTACT: ObjectType.CONTACTS,
    RelationLabel.COMPANY: ObjectType.COMPANIES,
    RelationLabel.DEAL_LINEAGE: ObjectType.DEALS,
    RelationLabel.TICKET: ObjectType.TICKETS,
})


def resolve_label(raw_label: str) -> RelationLabel | None:
    """Map a caller or upstream label to its canonical RelationLabel.

    Accepts canonical values, GraphQL collection names, and legacy aliases.
    Returns None for anything outside the fixed label universe.
    """
    try:
        return RelationLabel(raw_label)
    except ValueError:
        pass
    if raw_label in COLLECTION_LABEL_MAP:
        return COLLECTION_LABEL_MAP[raw_label]
    return LEGACY_LABEL_ALIASES.get(raw_label)


def resolve_association_type(
    label: RelationLabel, target_type: ObjectType
) -> AssociationType | None:
    """Resolve (label, target type) to an association type.

    Returns None when the target type does not match the label's object type,
    e.g. a ticket-link edge pointing at a contact.
    """
    if LABEL_OBJECT_TYPES.get(label) != target_type:
        return None
    return ASSOCIATION_TYPES.get(label)
