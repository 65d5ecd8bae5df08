"""HubSpot integration layer -- transport, static tables, and association replay.

Provides:
- HubSpotClient: Async REST + GraphQL client with transport-level retries
- AssociationWriter: Capability-tagged writer interface with two generations:
  PerPairAssociationWriter (v3 PUT) and BatchAssociationWriter (v4 batch create)
- RelationshipSynchronizer: Best-effort concurrent association replay
- Static property lists and association lookup tables (field_mapping)
"""

from src.dealclone.deals.crm.adapter import (
    AssociationWriter,
    BatchAssociationWriter,
    PerPairAssociationWriter,
)
from src.dealclone.deals.crm.client import HubSpotClient
from src.dealclone.deals.crm.field_mapping import (
    ASSOCIATION_TYPES,
    COLLECTION_LABEL_MAP,
    CUSTOM_DEAL_PROPERTIES,
    EXCLUDED_PROPERTIES,
)
from src.dealclone.deals.crm.sync import RelationshipSynchronizer

__all__ = [
    "AssociationWriter",
    "PerPairAssociationWriter",
    "BatchAssociationWriter",
    "HubSpotClient",
    "RelationshipSynchronizer",
    "ASSOCIATION_TYPES",
    "COLLECTION_LABEL_MAP",
    "CUSTOM_DEAL_PROPERTIES",
    "EXCLUDED_PROPERTIES",
]
