"""Clone name and ordinal derivation.

The original deal is generation 1 and its first clone generation 2, so a
clone's ordinal is always ``prior clone count + 2``. The prior clone count
comes from the live clone-lineage associations, never from a stored counter
property (see DuplicationService).
"""

from __future__ import annotations

import re
from typing import Any, NamedTuple

from src.dealclone.deals.crm.field_mapping import DEAL_NAME_PROPERTY

DEFAULT_PLACEHOLDER_NAME = "Unnamed Deal"

# One trailing run of whitespace followed by digits, e.g. "Acme Deal 7"
_ORDINAL_SUFFIX = re.compile(r"\s+\d+\Z")


class CloneName(NamedTuple):
    """Derived display name and generation ordinal for a clone."""

    name: str
    ordinal: int


def strip_ordinal_suffix(name: str) -> str:
    """Remove a single trailing " <digits>" suffix, if present."""
    return _ORDINAL_SUFFIX.sub("", name, count=1)


def derive_clone_name(
    name: str | None,
    prior_clone_count: int,
    placeholder: str = DEFAULT_PLACEHOLDER_NAME,
) -> CloneName:
    """Compute the clone's name and ordinal.

    Args:
        name: Source deal name. Empty or missing names use the placeholder.
        prior_clone_count: Number of existing clone-lineage associations.
        placeholder: Name substituted when the source has none.

    Returns:
        CloneName with ``name = base + " " + ordinal``.
    """
    if prior_clone_count < 0:
        prior_clone_count = 0
    ordinal = prior_clone_count + 2
    base_name = strip_ordinal_suffix(name or placeholder)
    return CloneName(name=f"{base_name} {ordinal}", ordinal=ordinal)


def derive_from_properties(
    properties: dict[str, Any],
    prior_clone_count: int,
    placeholder: str = DEFAULT_PLACEHOLDER_NAME,
) -> CloneName:
    """derive_clone_name() over a property bag whose name may be a wrapper object."""
    raw_name = properties.get(DEAL_NAME_PROPERTY)
    if isinstance(raw_name, dict):
        raw_name = raw_name.get("value")
    return derive_clone_name(
        str(raw_name) if raw_name is not None else None,
        prior_clone_count,
        placeholder,
    )
