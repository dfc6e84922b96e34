"""Deterministic Qdrant point ids derived from record ids."""

import uuid

# Namespace UUID for generating deterministic UUIDs from string IDs
NAMESPACE_UUID = uuid.UUID("6ba7b810-9dad-11d1-80b4-00c04fd430c8")


def record_point_id(record_id: str) -> str:
    """Map a record id (e.g. ``foodseg103-0001.jpg``) to the UUID Qdrant stores it under.

    Re-indexing the same record always targets the same point, so upserts overwrite.
    """
    return str(uuid.uuid5(NAMESPACE_UUID, record_id))
