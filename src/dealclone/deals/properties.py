"""Property merging and sanitization for deal clones.

Merging combines two disjoint HubSpot reads of the source deal: the default
property set and the explicit CUSTOM_DEAL_PROPERTIES list, with custom values
winning on key collision.

Sanitization is three pure passes that turn a merged bag into a payload that
is safe to hand to the record-creation call:
1. filter_properties: drop server-owned keys and null values.
2. extract_values: unwrap ``{"value": ...}`` wrapper objects.
3. prune_empty: drop anything that unwrapped to null.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.dealclone.deals.crm.client import HubSpotClient
from src.dealclone.deals.crm.field_mapping import (
    CUSTOM_DEAL_PROPERTIES,
    DEAL_NAME_PROPERTY,
    DEAL_NUMBER_PROPERTY,
    DEAL_STAGE_PROPERTY,
    EXCLUDED_PROPERTIES,
    PIPELINE_PROPERTY,
)
from src.dealclone.deals.naming import CloneName

logger = structlog.get_logger(__name__)


# ── Merger ─────────────────────────────────────────────────────────────────


async def fetch_merged_properties(client: HubSpotClient, deal_id: str) -> dict[str, Any]:
    """Fetch and merge the default and custom property sets of a deal.

    No retry here: transient failures are retried by the transport.

    Raises:
        UpstreamFetchError: Either fetch failed or the deal does not exist.
    """
    default_properties = await client.get_deal(deal_id)
    custom_properties = await client.get_deal(deal_id, CUSTOM_DEAL_PROPERTIES)

    merged = {**default_properties, **custom_properties}
    logger.debug(
        "properties.merged",
        deal_id=deal_id,
        default_count=len(default_properties),
        custom_count=len(custom_properties),
        merged_count=len(merged),
    )
    return merged


# ── Sanitizer ──────────────────────────────────────────────────────────────


def filter_properties(properties: dict[str, Any]) -> dict[str, Any]:
    """Remove server-owned keys and null values."""
    return {
        key: value
        for key, value in properties.items()
        if key not in EXCLUDED_PROPERTIES and value is not None
    }


def extract_values(properties: dict[str, Any]) -> dict[str, Any]:
    """Replace wrapper objects exposing a ``value`` sub-field with that value."""
    return {
        key: value["value"] if isinstance(value, dict) and "value" in value else value
        for key, value in properties.items()
    }


def prune_empty(properties: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in properties.items() if value is not None}


def sanitize_properties(properties: dict[str, Any]) -> dict[str, Any]:
    """Run filter -> extract -> prune over a property bag."""
    return prune_empty(extract_values(filter_properties(properties)))


def build_clone_properties(
    properties: dict[str, Any],
    clone_name: CloneName,
    deal_stage: str,
    pipeline: str,
) -> dict[str, Any]:
    """Overlay the derived name, ordinal and target stage, then sanitize.

    The returned payload always carries dealname, deal_number (as a string),
    dealstage and pipeline, whatever the source deal held.
    """
    overlaid = {
        **properties,
        DEAL_NAME_PROPERTY: clone_name.name,
        DEAL_NUMBER_PROPERTY: str(clone_name.ordinal),
        DEAL_STAGE_PROPERTY: deal_stage,
        PIPELINE_PROPERTY: pipeline,
    }
    payload = sanitize_properties(overlaid)
    logger.debug(
        "properties.sanitized",
        input_count=len(properties),
        output_count=len(payload),
        dropped=sorted(set(overlaid) - set(payload)),
    )
    return payload
