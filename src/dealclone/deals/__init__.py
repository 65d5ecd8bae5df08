"""Deal duplication module -- clones a deal with its curated properties and relationships.

Provides the property merger and sanitizer, the clone name/ordinal deriver,
the association normalizer, and DuplicationService, which sequences them into
the duplicate() and fetch_associations() entry points.
"""
